"""
Average block (or slot) time estimation.

The estimate drives the left expansion of the block finder. It is measured
over a short window just below the head and retained for a configurable TTL.
"""

import asyncio
import logging
import math
import time
from collections.abc import Callable

from .config import SearchConfig
from .errors import MalformedResponseError
from .time_index import TimeIndexCache
from .utils.chain_accessor import ChainAccessor, fetch_sample_at_or_below
from .utils.deadline import Deadline

logger = logging.getLogger(__name__)


class BlockTimeEstimator:
    """Average seconds per id for one chain, cached for ``block_time_cache_ttl``."""

    def __init__(
        self,
        accessor: ChainAccessor,
        search: SearchConfig | None = None,
        seed: float | None = None,
        cache: TimeIndexCache | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the estimator.

        Args:
            accessor: Chain accessor used to measure the average
            search: Search configuration (window size, offset and TTL)
            seed: Known average used until the first TTL expires
            cache: Shared time index that receives the measured samples
            clock: Wall clock in seconds
        """
        self.accessor = accessor
        self.search = search or SearchConfig()
        self.cache = cache
        self._clock = clock
        self._average: float | None = None
        self._measured_at = 0.0
        self._id_range = 0
        if seed is not None:
            if seed <= 0:
                raise ValueError(f"Seed block time must be positive, got {seed}")
            self._average = seed
            self._measured_at = clock()
            self._id_range = 1

    @property
    def is_fresh(self) -> bool:
        return (
            self._average is not None
            and self._clock() < self._measured_at + self.search.block_time_cache_ttl
        )

    async def average(self, deadline: Deadline | None = None) -> float:
        """Return the average seconds per id, measuring it if the cached value expired."""
        if self.is_fresh:
            return self._average
        return await self.refresh(deadline)

    async def refresh(self, deadline: Deadline | None = None) -> float:
        """Measure the average over ``block_range`` ids below the head.

        Raises:
            MalformedResponseError: If the measured window has no positive span
        """
        deadline = deadline or Deadline()
        head = await deadline.call(self.accessor.get_head)
        high = head.number - self.search.high_block_offset
        if high <= 0:
            # Chain is younger than the offset; measure its whole history.
            high = head.number
        low = max(high - self.search.block_range, 0)

        lookup = self.cache.lookup if self.cache is not None else None
        first, last = await asyncio.gather(
            fetch_sample_at_or_below(
                self.accessor, low,
                max_skipped=self.search.max_skipped_ids, deadline=deadline, lookup=lookup,
            ),
            fetch_sample_at_or_below(
                self.accessor, high,
                max_skipped=self.search.max_skipped_ids, deadline=deadline, lookup=lookup,
            ),
        )
        if self.cache is not None:
            self.cache.insert(first, requested=low)
            self.cache.insert(last, requested=high)

        id_range = last.number - first.number
        elapsed = last.timestamp - first.timestamp
        if id_range <= 0 or elapsed <= 0:
            raise MalformedResponseError(
                f"Cannot average block time between {first} and {last}"
            )

        self._average = elapsed / id_range
        self._id_range = id_range
        self._measured_at = self._clock()
        logger.info(f"Average block time {self._average:.3f}s over {id_range} ids")
        return self._average

    async def estimate_ids_elapsed(
        self,
        seconds: float,
        cushion_percentage: float = 0.0,
        deadline: Deadline | None = None,
    ) -> int:
        """Number of ids expected to elapse in ``seconds``, inflated by the cushion."""
        average = await self.average(deadline)
        return math.floor(seconds * (1.0 + cushion_percentage) / average)
