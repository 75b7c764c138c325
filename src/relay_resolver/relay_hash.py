"""
Relay hashing utilities.

A relay is identified on-chain by the keccak256 of its ABI-encoded terms plus
the destination chain id. Two variants are used:

- the relay data hash, which encodes the full message and keys the
  ``fillStatuses`` mapping (and seeds the SVM fill-status PDA)
- the RelayKey, which encodes the message hash instead so that it can be
  recomputed from fill and slow-fill events, which only carry the hash
"""

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from eth_abi import encode
from web3 import Web3

if TYPE_CHECKING:
    from .models import RelayTerms

ZERO_BYTES32 = b"\x00" * 32

_RELAY_FIELDS = "bytes32,bytes32,bytes32,bytes32,bytes32,uint256,uint256,uint256,uint256,uint32,uint32"

# Event argument names, in encoding order, excluding the message hash.
_EVENT_ARG_NAMES = (
    "depositor",
    "recipient",
    "exclusiveRelayer",
    "inputToken",
    "outputToken",
    "inputAmount",
    "outputAmount",
    "originChainId",
    "depositId",
    "fillDeadline",
    "exclusivityDeadline",
)


def _to_bytes(value: bytes | str) -> bytes:
    match value:
        case bytes():
            return value
        case str():
            return bytes(Web3.to_bytes(hexstr=value))
        case _:
            raise TypeError(f"Expected bytes or hex string, got {type(value).__name__}")


def to_bytes32(value: bytes | str) -> bytes:
    """Left-pad an address or short hex value to 32 bytes."""
    raw = _to_bytes(value)
    if len(raw) > 32:
        raise ValueError(f"Value is longer than 32 bytes: {len(raw)}")
    return raw.rjust(32, b"\x00")


def get_message_hash(message: bytes | str) -> str:
    """keccak256 of the relay message, or the zero hash for an empty message."""
    raw = _to_bytes(message)
    if not raw:
        return Web3.to_hex(ZERO_BYTES32)
    return Web3.to_hex(Web3.keccak(raw))


def _terms_tuple(terms: "RelayTerms") -> tuple[Any, ...]:
    return (
        to_bytes32(terms.depositor),
        to_bytes32(terms.recipient),
        to_bytes32(terms.exclusive_relayer),
        to_bytes32(terms.input_token),
        to_bytes32(terms.output_token),
        int(terms.input_amount),
        int(terms.output_amount),
        int(terms.origin_chain_id),
        int(terms.deposit_id),
        int(terms.fill_deadline),
        int(terms.exclusivity_deadline),
    )


def get_relay_data_hash(terms: "RelayTerms", destination_chain_id: int) -> str:
    """Hash of the relay data including the full message."""
    encoded = encode(
        [f"({_RELAY_FIELDS},bytes)", "uint256"],
        [(*_terms_tuple(terms), _to_bytes(terms.message)), destination_chain_id],
    )
    return Web3.to_hex(Web3.keccak(encoded))


def _relay_key(values: tuple[Any, ...], message_hash: bytes, destination_chain_id: int) -> str:
    encoded = encode(
        [f"({_RELAY_FIELDS},bytes32)", "uint256"],
        [(*values, message_hash), destination_chain_id],
    )
    return Web3.to_hex(Web3.keccak(encoded))


def get_relay_key(terms: "RelayTerms", destination_chain_id: int) -> str:
    """RelayKey of a relay: its terms with the message replaced by its hash."""
    return _relay_key(
        _terms_tuple(terms),
        to_bytes32(get_message_hash(terms.message)),
        destination_chain_id,
    )


def relay_key_from_event_args(args: Mapping[str, Any], destination_chain_id: int) -> str | None:
    """Recompute the RelayKey from decoded FilledRelay/RequestedSlowFill args.

    Returns None if the arguments do not carry every relay field.
    """
    try:
        raw = [args[name] for name in _EVENT_ARG_NAMES]
        message_hash = args["messageHash"]
    except KeyError:
        return None

    values = (
        *(to_bytes32(value) for value in raw[:5]),
        *(int(value) for value in raw[5:]),
    )
    return _relay_key(values, to_bytes32(message_hash), destination_chain_id)


def normalize_key(key: str) -> str:
    """Lowercase, 0x-prefixed form used when comparing keys."""
    key = key.lower()
    return key if key.startswith("0x") else f"0x{key}"
