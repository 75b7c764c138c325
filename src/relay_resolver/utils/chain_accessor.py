"""
Boundary contract towards the RPC layer.

Accessors are supplied by a provider layer that already handles rate
limiting, retries and quorum checks. The searches only rely on the
capabilities below.
"""

import logging
from collections.abc import Callable, Sequence
from typing import Protocol, runtime_checkable

from ..errors import MalformedResponseError
from ..models import ChainEvent, FillStatus, Sample
from .deadline import Deadline

logger = logging.getLogger(__name__)


@runtime_checkable
class ChainAccessor(Protocol):
    """Read-only view of one chain."""

    async def get_sample(self, number: int) -> Sample | None:
        """Return the sample at ``number``, or None if no block was produced there."""
        ...

    async def get_head(self, commitment: str | None = None) -> Sample:
        ...

    async def get_monotonic_counter_at(self, number: int) -> int | None:
        """Deposit count (EVM) or block height (SVM) at ``number``; None for a hole."""
        ...

    async def get_events_for_address(
        self,
        address: str,
        from_id: int,
        to_id: int,
        event_names: Sequence[str] | None = None,
    ) -> list[ChainEvent]:
        ...


@runtime_checkable
class FillStatusReader(Protocol):
    """Reads the on-chain fill status of a relay at a given block."""

    async def get_fill_status(self, relay_hash: str, number: int) -> FillStatus:
        ...


async def fetch_sample_at_or_below(
    accessor: ChainAccessor,
    number: int,
    *,
    max_skipped: int,
    deadline: Deadline,
    lookup: Callable[[int], Sample | None] | None = None,
) -> Sample:
    """Fetch the produced sample at ``number`` or the nearest one below it.

    Holes are retried one id lower. ``lookup`` lets a caller answer from its
    cache before any RPC is issued for a lower id.

    Raises:
        MalformedResponseError: If no sample exists within ``max_skipped`` ids
    """
    probe = number
    while True:
        if lookup is not None and (cached := lookup(probe)) is not None:
            return cached
        sample = await deadline.call(accessor.get_sample, probe)
        if sample is not None:
            if probe != number:
                logger.debug(f"Id {number} is a hole, using produced id {sample.number}")
            return sample
        if probe == 0 or number - probe >= max_skipped:
            raise MalformedResponseError(
                f"No produced block within {number - probe + 1} ids at or below {number}"
            )
        probe -= 1


async def fetch_counter_at_or_below(
    accessor: ChainAccessor,
    number: int,
    *,
    max_skipped: int,
    deadline: Deadline,
) -> tuple[int, int]:
    """Return ``(produced_id, counter)`` for ``number`` or the nearest produced id below it."""
    probe = number
    while True:
        counter = await deadline.call(accessor.get_monotonic_counter_at, probe)
        if counter is not None:
            return probe, counter
        if probe == 0 or number - probe >= max_skipped:
            raise MalformedResponseError(
                f"No produced block within {number - probe + 1} ids at or below {number}"
            )
        probe -= 1
