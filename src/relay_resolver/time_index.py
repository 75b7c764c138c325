"""
Ordered memo of block/slot timestamps.

The cache is the shared memo table for every timestamp search on one chain.
Samples are kept sorted ascending by number with no duplicates, and since
timestamps grow with the number, the same list can be searched by timestamp.
"""

import bisect
import threading
from collections.abc import Iterable, Iterator
from operator import attrgetter

from .models import Sample

BEFORE_START = -1

_by_number = attrgetter("number")
_by_timestamp = attrgetter("timestamp")


class TimeIndexCache:
    """Append-only, sorted and deduplicated set of samples for one chain."""

    def __init__(self, samples: Iterable[Sample] = ()) -> None:
        self._samples: list[Sample] = []
        # Requested ids that turned out to be holes -> number of the produced
        # sample found below them.
        self._aliases: dict[int, int] = {}
        # Produced number -> highest requested id known to be a hole above it.
        self._hole_ceilings: dict[int, int] = {}
        self._lock = threading.Lock()
        for sample in samples:
            self.insert(sample)

    def insert(self, sample: Sample, requested: int | None = None) -> Sample:
        """Insert a sample, returning the cached instance.

        Inserting an id that is already cached is a no-op. When ``requested``
        is above ``sample.number``, the requested id is remembered as a
        hole that resolves to ``sample``.
        """
        with self._lock:
            index = bisect.bisect_left(self._samples, sample.number, key=_by_number)
            if index < len(self._samples) and self._samples[index].number == sample.number:
                cached = self._samples[index]
            else:
                self._samples.insert(index, sample)
                cached = sample
            if requested is not None and requested > sample.number:
                self._aliases[requested] = sample.number
                ceiling = self._hole_ceilings.get(sample.number, sample.number)
                self._hole_ceilings[sample.number] = max(ceiling, requested)
            return cached

    def get(self, number: int) -> Sample | None:
        index = bisect.bisect_left(self._samples, number, key=_by_number)
        if index < len(self._samples) and self._samples[index].number == number:
            return self._samples[index]
        return None

    def lookup(self, number: int) -> Sample | None:
        """Like ``get``, but also resolves ids previously found to be holes."""
        if (sample := self.get(number)) is not None:
            return sample
        if (produced := self._aliases.get(number)) is not None:
            return self.get(produced)
        return None

    def hole_ceiling(self, number: int) -> int:
        """Highest id known to resolve to the produced sample ``number``."""
        return self._hole_ceilings.get(number, number)

    def floor_before(self, timestamp: int) -> int:
        """Index of the last sample with ``timestamp <= target``, or BEFORE_START."""
        return bisect.bisect_right(self._samples, timestamp, key=_by_timestamp) - 1

    def bracket(self, timestamp: int) -> tuple[Sample | None, Sample | None]:
        """Return ``(start, end)`` where end is the first sample at or after the target."""
        index = bisect.bisect_left(self._samples, timestamp, key=_by_timestamp)
        start = self._samples[index - 1] if index > 0 else None
        end = self._samples[index] if index < len(self._samples) else None
        return start, end

    @property
    def first(self) -> Sample | None:
        return self._samples[0] if self._samples else None

    @property
    def last(self) -> Sample | None:
        return self._samples[-1] if self._samples else None

    @property
    def samples(self) -> tuple[Sample, ...]:
        return tuple(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(tuple(self._samples))

    def __bool__(self) -> bool:
        return bool(self._samples)
