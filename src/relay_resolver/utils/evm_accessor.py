"""
EVM chain accessor backed by web3.

Reads blocks, the SpokePool deposit counter, relay fill statuses and fill
events from a JSON-RPC endpoint through ``AsyncWeb3``.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import aiohttp
from web3 import AsyncWeb3, Web3
from web3.contract import AsyncContract
from web3.exceptions import BlockNotFound
from web3.providers import AsyncHTTPProvider
from web3.types import BlockIdentifier, EventData

from ..errors import MalformedResponseError
from ..models import FILL_EVENT_NAMES, SLOW_FILL_EVENT_NAMES, ChainEvent, FillStatus, Sample
from ..relay_hash import relay_key_from_event_args
from .contract_utility import ContractUtility

DEFAULT_EVENT_NAMES: tuple[str, ...] = FILL_EVENT_NAMES + SLOW_FILL_EVENT_NAMES


class EvmChainAccessor:
    """
    ChainAccessor and FillStatusReader for EVM chains.

    Block numbers are the ids; the deposit count of the SpokePool is the
    monotonic counter.
    """

    def __init__(
        self,
        rpc_url: str,
        spoke_pool_address: str,
        chain_id: int,
        request_timeout: float = 30.0,
        max_block_lookback: int = 10_000,
        max_concurrent_requests: int = 8,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        """
        Initialize the EVM accessor.

        Args:
            rpc_url: HTTP(S) RPC endpoint
            spoke_pool_address: SpokePool contract address
            chain_id: Chain id of this chain, the destination chain of fills read here
            request_timeout: HTTP timeout for one request
            max_block_lookback: Widest block window per eth_getLogs query
            max_concurrent_requests: Most requests kept in flight at once
            w3: Preconfigured AsyncWeb3 instance (mainly for tests)
        """
        self.chain_id = chain_id
        self.max_block_lookback = max_block_lookback
        self.max_concurrent_requests = max_concurrent_requests
        self._request_slots = asyncio.Semaphore(max_concurrent_requests)
        self.w3 = w3 or AsyncWeb3(
            AsyncHTTPProvider(
                rpc_url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=request_timeout)},
            )
        )
        self.abi = ContractUtility.get_contract_abi("SpokePool")
        self._event_names = {entry["name"] for entry in self.abi if entry["type"] == "event"}
        self._contracts: dict[str, AsyncContract] = {}
        self.spoke_pool = self._contract(spoke_pool_address)

        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def _contract(self, address: str) -> AsyncContract:
        checksummed = Web3.to_checksum_address(address)
        if checksummed not in self._contracts:
            self._contracts[checksummed] = self.w3.eth.contract(address=checksummed, abi=self.abi)
        return self._contracts[checksummed]

    @staticmethod
    def _to_sample(block: Any) -> Sample:
        return Sample(number=int(block["number"]), timestamp=int(block["timestamp"]))

    async def get_sample(self, number: int) -> Sample | None:
        try:
            async with self._request_slots:
                block = await self.w3.eth.get_block(number)
        except BlockNotFound:
            return None
        return self._to_sample(block)

    async def get_head(self, commitment: str | None = None) -> Sample:
        """Return the head block; ``commitment`` is a block tag such as 'safe' or 'finalized'."""
        block_tag: BlockIdentifier = commitment or "latest"
        async with self._request_slots:
            block = await self.w3.eth.get_block(block_tag)
        return self._to_sample(block)

    async def get_monotonic_counter_at(self, number: int) -> int | None:
        """Number of deposits made on the SpokePool as of block ``number``."""
        async with self._request_slots:
            count = await self.spoke_pool.functions.numberOfDeposits().call(block_identifier=number)
        if count < 0:
            raise MalformedResponseError(f"Negative deposit count {count} at block {number}")
        return int(count)

    async def get_fill_status(self, relay_hash: str, number: int) -> FillStatus:
        """Read ``fillStatuses(relay_hash)`` as of block ``number``."""
        async with self._request_slots:
            value = await self.spoke_pool.functions.fillStatuses(
                Web3.to_bytes(hexstr=relay_hash)
            ).call(block_identifier=number)
        try:
            return FillStatus(value)
        except ValueError:
            raise MalformedResponseError(
                f"Unknown fill status {value} for relay {relay_hash} at block {number}"
            ) from None

    async def get_events_for_address(
        self,
        address: str,
        from_id: int,
        to_id: int,
        event_names: Sequence[str] | None = None,
    ) -> list[ChainEvent]:
        """
        Fetch the named events emitted by ``address`` in blocks ``[from_id, to_id]``.

        Queries are split into windows of ``max_block_lookback`` blocks, with no
        more than ``max_concurrent_requests`` in flight. Names that the
        SpokePool ABI does not define are skipped.
        """
        contract = self._contract(address)
        names = [name for name in (event_names or DEFAULT_EVENT_NAMES) if name in self._event_names]
        skipped = set(event_names or ()) - set(names)
        if skipped:
            self.logger.debug(f"Skipping events not in the SpokePool ABI: {sorted(skipped)}")

        queries = []
        for start in range(from_id, to_id + 1, self.max_block_lookback):
            end = min(start + self.max_block_lookback - 1, to_id)
            for name in names:
                queries.append(self._get_logs(contract, name, start, end))

        results = await asyncio.gather(*queries)
        events = [self._to_event(log) for logs in results for log in logs]
        self.logger.debug(
            f"Found {len(events)} events on {address} in blocks {from_id}-{to_id}"
        )
        return sorted(events, key=lambda event: event.sort_key)

    async def _get_logs(
        self, contract: AsyncContract, name: str, start: int, end: int
    ) -> list[EventData]:
        async with self._request_slots:
            event_obj = getattr(contract.events, name)()
            return await event_obj.get_logs(from_block=start, to_block=end)

    def _to_event(self, log: EventData) -> ChainEvent:
        args = dict(log["args"])
        return ChainEvent(
            id=int(log["blockNumber"]),
            name=log["event"],
            payload=args,
            index=(int(log["transactionIndex"]), int(log["logIndex"])),
            tx_ref=Web3.to_hex(log["transactionHash"]),
            relay_key=relay_key_from_event_args(args, self.chain_id),
        )
