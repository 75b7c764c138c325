import json
from functools import cache
from pathlib import Path


class ContractUtility:
    """Loads contract ABIs bundled with the package."""

    ABI_DIR: Path = Path(__file__).parent.parent / "abi"

    @staticmethod
    @cache
    def get_contract_abi(contract_name: str) -> list:
        """Fetches ABI of the given contract from the abi folder"""
        contract_path = (ContractUtility.ABI_DIR / f"{contract_name}.json").resolve()

        with contract_path.open() as file:
            contract_data = json.load(file)

        return contract_data["abi"]
