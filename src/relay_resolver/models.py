"""
Shared data models for the chain-state resolver.

This module contains the samples, search hints, relay terms and event types
passed between the accessors, the searches and the relay status resolver.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from .relay_hash import get_message_hash, get_relay_data_hash, get_relay_key


@dataclass(frozen=True, slots=True)
class Sample:
    """A produced block (EVM) or slot (SVM) and its timestamp.

    Attributes:
        number: Block number or slot number
        timestamp: Unix timestamp in seconds
    """
    number: int
    timestamp: int

    def __str__(self) -> str:
        return f"Sample(number={self.number}, timestamp={self.timestamp})"


@dataclass(frozen=True, slots=True)
class SearchBounds:
    """Optional low/high ids used to seed a search. Never trusted as answers."""
    low: int | None = None
    high: int | None = None

    def hint_ids(self) -> Iterator[int]:
        for number in (self.low, self.high):
            if number is not None:
                yield number


class FillStatus(IntEnum):
    """Settlement state of a relay, matching the on-chain fillStatuses values."""
    UNFILLED = 0
    REQUESTED_SLOW_FILL = 1
    FILLED = 2


@dataclass(frozen=True, slots=True)
class RelayTerms:
    """The immutable fields that define one relay.

    Addresses are hex strings (20 or 32 bytes); ``message`` is raw bytes or a
    0x-prefixed hex string.
    """
    depositor: str
    recipient: str
    exclusive_relayer: str
    input_token: str
    output_token: str
    input_amount: int
    output_amount: int
    origin_chain_id: int
    deposit_id: int
    fill_deadline: int
    exclusivity_deadline: int
    message: bytes | str = b""

    @property
    def message_hash(self) -> str:
        return get_message_hash(self.message)

    def relay_key(self, destination_chain_id: int) -> str:
        """RelayKey used to correlate deposit, fill and slow-fill events."""
        return get_relay_key(self, destination_chain_id)

    def relay_data_hash(self, destination_chain_id: int) -> str:
        """Key of the on-chain fillStatuses mapping."""
        return get_relay_data_hash(self, destination_chain_id)


@dataclass(frozen=True, slots=True)
class ChainEvent:
    """A raw event as returned by an accessor.

    Attributes:
        id: Block number or slot where the event was emitted
        name: Event name from the decoded log or instruction
        payload: Decoded event arguments
        index: Position within the block, used to order same-id events
        tx_ref: Transaction hash (EVM) or signature (SVM)
        relay_key: RelayKey computed from the payload, or None when the
            event was read from an address scoped to a single relay
    """
    id: int
    name: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    index: tuple[int, ...] = ()
    tx_ref: str | None = None
    relay_key: str | None = None

    @property
    def sort_key(self) -> tuple[int, ...]:
        return (self.id, *self.index)


@dataclass(frozen=True, slots=True)
class FilledRelayEvent:
    event: ChainEvent


@dataclass(frozen=True, slots=True)
class RequestedSlowFillEvent:
    event: ChainEvent


@dataclass(frozen=True, slots=True)
class UnrecognizedEvent:
    event: ChainEvent


RelayEvent = FilledRelayEvent | RequestedSlowFillEvent | UnrecognizedEvent

FILL_EVENT_NAMES: tuple[str, ...] = ("FilledRelay", "FilledV3Relay")
SLOW_FILL_EVENT_NAMES: tuple[str, ...] = ("RequestedSlowFill", "RequestedV3SlowFill")


def decode_relay_event(event: ChainEvent) -> RelayEvent:
    """Map a raw event onto the closed set of relay lifecycle events."""
    match event.name:
        case "FilledRelay" | "FilledV3Relay":
            return FilledRelayEvent(event)
        case "RequestedSlowFill" | "RequestedV3SlowFill":
            return RequestedSlowFillEvent(event)
        case _:
            return UnrecognizedEvent(event)
