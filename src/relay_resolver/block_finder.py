"""
Block finder: map a wall-clock timestamp to a block or slot.

The finder answers "which id was the chain at when the clock read T" with as
few point queries as possible. Samples are memoized in a TimeIndexCache and
the search narrows a bracketing pair of samples by linear interpolation, which
converges quickly because block timestamps grow almost linearly.
"""

import asyncio
import logging
import math

from .block_time import BlockTimeEstimator
from .config import SearchConfig
from .errors import MalformedResponseError, OutOfRangeError
from .models import Sample, SearchBounds
from .time_index import TimeIndexCache
from .utils.chain_accessor import ChainAccessor, fetch_sample_at_or_below
from .utils.deadline import Deadline

logger = logging.getLogger(__name__)


class BlockFinder:
    """
    Resolves timestamps to the latest produced id at or before them.

    One instance serves one chain. The cache it owns only grows, so repeated
    or nearby lookups are answered with few or no RPC calls.
    """

    def __init__(
        self,
        accessor: ChainAccessor,
        cache: TimeIndexCache | None = None,
        estimator: BlockTimeEstimator | None = None,
        search: SearchConfig | None = None,
        seed_block_time: float | None = None,
    ) -> None:
        """
        Initialize the BlockFinder.

        Args:
            accessor: Chain accessor for the resolved chain
            cache: Time index to share with other components (a new one by default)
            estimator: Average block time source used for left expansion
            search: Search configuration
            seed_block_time: Known seconds per id, used when no estimator is given
        """
        self.accessor = accessor
        self.search = search or SearchConfig()
        self.cache = cache if cache is not None else TimeIndexCache()
        self.estimator = estimator or BlockTimeEstimator(
            accessor, self.search, seed=seed_block_time, cache=self.cache
        )

        # Metrics tracking
        self.searches = 0
        self.cache_hits = 0
        self.probes = 0
        self.holes_skipped = 0

    async def resolve(
        self,
        timestamp: int,
        hints: SearchBounds | None = None,
        timeout: Deadline | float | None = None,
    ) -> Sample:
        """
        Get the latest sample whose timestamp is <= the provided timestamp.

        Args:
            timestamp: Unix timestamp in seconds
            hints: Optional low and high ids used to seed the search
            timeout: Deadline or budget in seconds shared by every RPC call

        Returns:
            The produced sample at or before ``timestamp``

        Raises:
            OutOfRangeError: If the timestamp predates the first block
            MalformedResponseError: If the chain returns non-monotonic samples
            asyncio.TimeoutError: If the deadline expires
        """
        timestamp = int(timestamp)
        deadline = Deadline.coerce(timeout if timeout is not None else self.search.search_timeout)
        self.searches += 1

        # If the last sample we have stored is too early, grab the head.
        last = self.cache.last
        if last is None or last.timestamp < timestamp:
            head = self.cache.insert(await deadline.call(self.accessor.get_head))
            self.probes += 1
            if head.timestamp <= timestamp:
                logger.debug(f"Timestamp {timestamp} is at or after head {head}")
                return head

        if hints is not None:
            await self._prime(hints, deadline)

        await self._expand_left(timestamp, deadline)
        sample = await self._narrow(timestamp, deadline)
        logger.debug(f"Resolved timestamp {timestamp} to {sample}")
        return sample

    async def _prime(self, hints: SearchBounds, deadline: Deadline) -> None:
        """Fetch the hinted ids concurrently so an accurate hint skips estimation."""
        ceiling = self.cache.last.number
        numbers = {min(max(number, 0), ceiling) for number in hints.hint_ids()}
        await asyncio.gather(*(self._fetch(number, deadline) for number in sorted(numbers)))

    async def _expand_left(self, timestamp: int, deadline: Deadline) -> None:
        """Probe backwards until the earliest cached sample is at or before the target."""
        initial = self.cache.first
        if initial.timestamp <= timestamp:
            return
        if initial.number == 0:
            raise OutOfRangeError(f"Timestamp {timestamp} is before block 0")

        step = max(
            await self.estimator.estimate_ids_elapsed(
                initial.timestamp - timestamp, self.search.cushion, deadline
            ),
            1,
        )
        multiplier = 1
        while True:
            number = max(initial.number - multiplier * step, 0)
            sample = await self._fetch(number, deadline)
            if sample.timestamp <= timestamp:
                return
            if number == 0:
                raise OutOfRangeError(f"Timestamp {timestamp} is before block 0")
            multiplier += 1

    async def _narrow(self, timestamp: int, deadline: Deadline) -> Sample:
        start, end = self.cache.bracket(timestamp)
        if end is None:
            raise MalformedResponseError(
                f"No cached sample at or after timestamp {timestamp}, last is {self.cache.last}"
            )
        if end.timestamp == timestamp:
            return end
        if start is None:
            raise OutOfRangeError(f"Timestamp {timestamp} is before block {end.number}")

        # Ids in (start.number, low] are known holes.
        low = self.cache.hole_ceiling(start.number)
        while True:
            if end.timestamp == timestamp:
                return end
            if end.number <= low + 1:
                return start
            if not start.timestamp < timestamp < end.timestamp:
                raise MalformedResponseError(
                    f"Bracket {start}..{end} does not contain timestamp {timestamp}"
                )

            pct = (timestamp - start.timestamp) / (end.timestamp - start.timestamp)
            estimate = start.number + math.floor(pct * (end.number - start.number) + 0.5)
            number = min(max(estimate, low + 1), end.number - 1)
            sample = await self._fetch(number, deadline)

            if sample.number <= start.number:
                low = number
            elif sample.timestamp < timestamp:
                start = sample
                low = max(number, self.cache.hole_ceiling(sample.number))
            else:
                end = sample

    async def _fetch(self, number: int, deadline: Deadline) -> Sample:
        """Return the produced sample at or below ``number``, from the cache when known."""
        if (cached := self.cache.lookup(number)) is not None:
            self.cache_hits += 1
            return cached

        sample = await fetch_sample_at_or_below(
            self.accessor,
            number,
            max_skipped=self.search.max_skipped_ids,
            deadline=deadline,
            lookup=self.cache.lookup,
        )
        self.probes += 1
        if sample.number != number:
            self.holes_skipped += 1
            logger.debug(f"Probe {number} fell in a hole, nearest produced id is {sample.number}")
        return self.cache.insert(sample, requested=number)

    def get_stats(self) -> dict:
        """
        Get current search statistics.

        Returns:
            Dictionary with cache size and probe counters
        """
        return {
            'searches': self.searches,
            'cached_samples': len(self.cache),
            'cache_hits': self.cache_hits,
            'probes': self.probes,
            'holes_skipped': self.holes_skipped,
        }
