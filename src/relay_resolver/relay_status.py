"""
Event-sourced relay status.

A relay moves from UNFILLED to REQUESTED_SLOW_FILL and on to FILLED, and FILLED
is terminal. Only the chronologically last fill or slow-fill event for a relay
therefore decides its status.
"""

import asyncio
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .errors import MalformedResponseError
from .models import (
    FILL_EVENT_NAMES,
    SLOW_FILL_EVENT_NAMES,
    ChainEvent,
    FilledRelayEvent,
    FillStatus,
    RelayEvent,
    RequestedSlowFillEvent,
    UnrecognizedEvent,
    decode_relay_event,
)
from .relay_hash import normalize_key
from .utils.chain_accessor import ChainAccessor
from .utils.deadline import Deadline

logger = logging.getLogger(__name__)

RELAY_EVENT_NAMES: tuple[str, ...] = FILL_EVENT_NAMES + SLOW_FILL_EVENT_NAMES


@dataclass(frozen=True, slots=True)
class StatusRequest:
    """One relay to resolve: its key and the address its events are read from."""
    relay_key: str
    address: str
    from_id: int = 0


def status_of(event: RelayEvent) -> FillStatus:
    match event:
        case FilledRelayEvent():
            return FillStatus.FILLED
        case RequestedSlowFillEvent():
            return FillStatus.REQUESTED_SLOW_FILL
        case UnrecognizedEvent(event=raw):
            raise MalformedResponseError(
                f"Unexpected event {raw.name} at {raw.id} for relay {raw.relay_key}"
            )


class RelayStatusResolver:
    """
    Reduces the fill and slow-fill events of a relay to its FillStatus.

    ``resolve`` is a pure function of its inputs; ``fetch_status`` reads the
    events through a ChainAccessor first.
    """

    def __init__(self, accessor: ChainAccessor | None = None, search_timeout: float | None = None) -> None:
        self.accessor = accessor
        self.search_timeout = search_timeout

        # Metrics tracking
        self.relays_resolved = 0
        self.events_seen = 0
        self.events_filtered = 0
        self.statuses: dict[FillStatus, int] = {status: 0 for status in FillStatus}

    def resolve(
        self,
        relay_key: str,
        events: Iterable[ChainEvent],
        as_of_id: int | None = None,
    ) -> FillStatus:
        """
        Return the status of ``relay_key`` given its events, in any order.

        Events after ``as_of_id`` are ignored. Events carrying a different
        relay key are filtered out; events without a key are assumed to come
        from an address scoped to this relay.

        Raises:
            MalformedResponseError: If a relevant event is not a fill or a
                slow-fill request
        """
        key = normalize_key(relay_key)
        relevant: list[ChainEvent] = []
        for event in events:
            self.events_seen += 1
            if as_of_id is not None and event.id > as_of_id:
                self.events_filtered += 1
                continue
            if event.relay_key is not None and normalize_key(event.relay_key) != key:
                self.events_filtered += 1
                continue
            relevant.append(event)

        # Pagination returns events newest-first or in no particular order.
        decoded = sorted(
            (decode_relay_event(event) for event in relevant),
            key=lambda relay_event: relay_event.event.sort_key,
        )
        # Every event must map to a transition, not only the last one.
        transitions = [status_of(relay_event) for relay_event in decoded]
        status = transitions[-1] if transitions else FillStatus.UNFILLED
        self.relays_resolved += 1
        self.statuses[status] += 1
        logger.debug(f"Relay {key} is {status.name} after {len(decoded)} events")
        return status

    async def fetch_status(
        self,
        relay_key: str,
        address: str,
        from_id: int = 0,
        as_of_id: int | None = None,
        timeout: Deadline | float | None = None,
    ) -> FillStatus:
        """Fetch fill and slow-fill events for ``address`` and resolve ``relay_key``."""
        if self.accessor is None:
            raise ValueError("RelayStatusResolver needs an accessor to fetch events")

        deadline = Deadline.coerce(timeout if timeout is not None else self.search_timeout)
        to_id = as_of_id
        if to_id is None:
            head = await deadline.call(self.accessor.get_head)
            to_id = head.number
        events = await deadline.call(
            self.accessor.get_events_for_address, address, from_id, to_id, RELAY_EVENT_NAMES
        )
        return self.resolve(relay_key, events, as_of_id=to_id)

    async def fetch_statuses(
        self,
        requests: Sequence[StatusRequest],
        as_of_id: int | None = None,
        timeout: Deadline | float | None = None,
    ) -> dict[str, FillStatus]:
        """Resolve several relays concurrently against the same ``as_of_id``."""
        if self.accessor is None:
            raise ValueError("RelayStatusResolver needs an accessor to fetch events")

        deadline = Deadline.coerce(timeout if timeout is not None else self.search_timeout)
        if as_of_id is None and requests:
            head = await deadline.call(self.accessor.get_head)
            as_of_id = head.number

        statuses = await asyncio.gather(
            *(
                self.fetch_status(
                    request.relay_key, request.address, request.from_id, as_of_id, deadline
                )
                for request in requests
            )
        )
        return {request.relay_key: status for request, status in zip(requests, statuses)}

    def get_stats(self) -> dict:
        """
        Get current resolver statistics.

        Returns:
            Dictionary with event counters and a histogram of resolved statuses
        """
        return {
            'relays_resolved': self.relays_resolved,
            'events_seen': self.events_seen,
            'events_filtered': self.events_filtered,
            'statuses': {status.name: count for status, count in self.statuses.items()},
        }
