"""
Monotonic boundary searches.

Binary searches over an integer id domain where a sampled on-chain value is
non-decreasing. Three call sites use them:

- deposit to block: first block whose deposit count exceeds a deposit id
- fill to block: first block where a relay's fill status is FILLED
- slot to block height: the slot at which a given block height was produced

The deposit and fill searches narrow with ``high = mid`` and return the
leftmost satisfying id. The slot search keeps its own rule, widening the
upper bound to ``mid + 1`` on an overshoot and returning on an exact match.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .errors import InvalidSearchRangeError, MalformedResponseError, UnsafeInputError
from .models import FILL_EVENT_NAMES, ChainEvent, FillStatus
from .relay_hash import normalize_key
from .utils.chain_accessor import ChainAccessor, FillStatusReader, fetch_counter_at_or_below
from .utils.deadline import Deadline

logger = logging.getLogger(__name__)

V = TypeVar("V")

MAX_SAFE_DEPOSIT_ID = 2**32 - 1
DEFAULT_MAX_SKIPPED_IDS = 120
DEFAULT_MAX_PROBES = 256


async def _leftmost(
    low: int,
    high: int,
    sample: Callable[[int], Awaitable[V]],
    predicate: Callable[[V], bool],
    deadline: Deadline,
) -> int:
    # Expects predicate(sample(high)) to hold.
    while low < high:
        mid = (low + high) // 2
        if predicate(await deadline.call(sample, mid)):
            high = mid
        else:
            low = mid + 1
    return low


async def find_first_satisfying(
    low: int,
    high: int,
    sample: Callable[[int], Awaitable[V]],
    predicate: Callable[[V], bool],
    timeout: Deadline | float | None = None,
) -> int | None:
    """
    Find the leftmost id in ``[low, high]`` whose sampled value satisfies ``predicate``.

    Args:
        low: Lowest id to consider
        high: Highest id to consider
        sample: Async oracle returning the value at an id
        predicate: Monotone predicate (False ... False True ... True)
        timeout: Deadline or budget in seconds

    Returns:
        The boundary id, or None if the predicate does not hold at ``high``

    Raises:
        InvalidSearchRangeError: If ``high < low``
    """
    if high < low:
        raise InvalidSearchRangeError(f"Search range out of order ({low} > {high})")
    deadline = Deadline.coerce(timeout)
    if not predicate(await deadline.call(sample, high)):
        return None
    return await _leftmost(low, high, sample, predicate, deadline)


def is_unsafe_deposit_id(deposit_id: int, max_safe_deposit_id: int = MAX_SAFE_DEPOSIT_ID) -> bool:
    """Deposit ids above the ceiling are derived by hashing and are not ordered by block."""
    return deposit_id < 0 or deposit_id > max_safe_deposit_id


async def _resolve_high(accessor: ChainAccessor, high: int | None, deadline: Deadline) -> int:
    if high is not None:
        return high
    head = await deadline.call(accessor.get_head)
    return head.number


async def find_deposit_block(
    accessor: ChainAccessor,
    deposit_id: int,
    low: int,
    high: int | None = None,
    *,
    max_safe_deposit_id: int = MAX_SAFE_DEPOSIT_ID,
    max_skipped: int = DEFAULT_MAX_SKIPPED_IDS,
    timeout: Deadline | float | None = None,
) -> int | None:
    """
    Find the first block whose deposit count exceeds ``deposit_id``.

    Args:
        accessor: Chain accessor exposing the deposit counter
        deposit_id: Deposit id to locate
        low: Lowest block to search
        high: Highest block to search (defaults to the head)
        max_safe_deposit_id: Ceiling above which ids are not searchable
        max_skipped: Longest run of holes walked per probe
        timeout: Deadline or budget in seconds

    Returns:
        The block number, or None if the deposit is not within ``[low, high]``

    Raises:
        UnsafeInputError: If the deposit id is not binary searchable
        InvalidSearchRangeError: If ``high <= low``
    """
    if is_unsafe_deposit_id(deposit_id, max_safe_deposit_id):
        raise UnsafeInputError(f"Cannot binary search for depositId {deposit_id}")

    deadline = Deadline.coerce(timeout)
    high = await _resolve_high(accessor, high, deadline)
    if high <= low:
        raise InvalidSearchRangeError(f"Block numbers out of range ({low} >= {high})")

    async def deposit_count(number: int) -> int:
        _, count = await fetch_counter_at_or_below(
            accessor, number, max_skipped=max_skipped, deadline=deadline
        )
        return count

    # Make sure the deposit occurred within the block range supplied by the caller.
    count_low, count_high = await asyncio.gather(deposit_count(low), deposit_count(high))
    if count_low > deposit_id or count_high <= deposit_id:
        logger.debug(
            f"Deposit {deposit_id} not in blocks {low}-{high} "
            f"(deposit counts {count_low}-{count_high})"
        )
        return None

    block = await _leftmost(low, high, deposit_count, lambda count: count > deposit_id, deadline)
    logger.info(f"Deposit {deposit_id} found at block {block}")
    return block


async def find_fill_block(
    accessor: ChainAccessor,
    relay_hash: str,
    low: int,
    high: int | None = None,
    *,
    reader: FillStatusReader | None = None,
    timeout: Deadline | float | None = None,
) -> int | None:
    """
    Find the first block where the relay identified by ``relay_hash`` is FILLED.

    Fill statuses are read through ``reader``, which defaults to the accessor.

    Returns:
        The block number, or None if the relay was not filled by ``high``

    Raises:
        InvalidSearchRangeError: If ``high <= low`` or the relay was already
            filled at ``low``
    """
    deadline = Deadline.coerce(timeout)
    high = await _resolve_high(accessor, high, deadline)
    if high <= low:
        raise InvalidSearchRangeError(f"Block numbers out of range ({low} >= {high})")

    reader = reader or accessor
    if not isinstance(reader, FillStatusReader):
        raise TypeError(f"{type(reader).__name__} cannot read fill statuses")

    async def fill_status(number: int) -> FillStatus:
        return await reader.get_fill_status(relay_hash, number)

    initial, final = await asyncio.gather(
        deadline.call(fill_status, low),
        deadline.call(fill_status, high),
    )
    if final != FillStatus.FILLED:
        return None
    if initial == FillStatus.FILLED:
        raise InvalidSearchRangeError(f"Relay {relay_hash} filled before block {low}")

    block = await _leftmost(
        low, high, fill_status, lambda status: status == FillStatus.FILLED, deadline
    )
    logger.info(f"Relay {relay_hash} filled at block {block}")
    return block


async def find_fill_event(
    accessor: ChainAccessor,
    address: str,
    relay_key: str,
    relay_hash: str,
    low: int,
    high: int | None = None,
    *,
    reader: FillStatusReader | None = None,
    timeout: Deadline | float | None = None,
) -> ChainEvent | None:
    """
    Locate the fill block of a relay and return its fill event.

    Raises:
        MalformedResponseError: If the fill block carries no matching fill event
    """
    deadline = Deadline.coerce(timeout)
    block = await find_fill_block(
        accessor, relay_hash, low, high, reader=reader, timeout=deadline
    )
    if block is None:
        return None

    events = await deadline.call(
        accessor.get_events_for_address, address, block, block, FILL_EVENT_NAMES
    )
    key = normalize_key(relay_key)
    for event in sorted(events, key=lambda event: event.sort_key):
        if event.relay_key is None or normalize_key(event.relay_key) == key:
            return event
    raise MalformedResponseError(f"Failed to find fill event at block {block}")


async def find_slot_for_block_height(
    accessor: ChainAccessor,
    block_height: int,
    low_slot: int,
    high_slot: int | None = None,
    *,
    max_probes: int = DEFAULT_MAX_PROBES,
    max_skipped: int = DEFAULT_MAX_SKIPPED_IDS,
    timeout: Deadline | float | None = None,
) -> int | None:
    """
    Find the slot at which ``block_height`` was produced.

    A slot without a block takes the height of the nearest produced slot below
    it; a match at such a slot returns the produced slot.

    Returns:
        The slot, or None if the height is outside ``[low_slot, high_slot]``

    Raises:
        MalformedResponseError: If the heights skip the target or the probe
            budget is exhausted
    """
    deadline = Deadline.coerce(timeout)
    low = low_slot
    high = await _resolve_high(accessor, high_slot, deadline)
    if high < low:
        raise InvalidSearchRangeError(f"Slot numbers out of range ({low} > {high})")

    async def height_at(slot: int) -> tuple[int, int]:
        return await fetch_counter_at_or_below(
            accessor, slot, max_skipped=max_skipped, deadline=deadline
        )

    (_, height_low), (_, height_high) = await asyncio.gather(height_at(low), height_at(high))
    if height_low > block_height or height_high < block_height:
        logger.debug(
            f"Block height {block_height} not in slots {low}-{high} "
            f"(heights {height_low}-{height_high})"
        )
        return None

    probes = 0
    while low <= high:
        if probes >= max_probes:
            raise MalformedResponseError(
                f"Slot search for block height {block_height} exceeded {max_probes} probes"
            )
        probes += 1

        mid = (low + high) // 2
        slot, height = await height_at(mid)
        if height < block_height:
            low = mid + 1
        elif height > block_height:
            if mid == high:
                raise MalformedResponseError(f"Block height {block_height} skipped at slot {mid}")
            # Keep mid + 1 in range unless that leaves the bracket unchanged.
            high = mid + 1 if mid + 1 < high else mid
        else:
            logger.info(f"Block height {block_height} produced at slot {slot}")
            return slot

    return None
