#!/usr/bin/env python3
"""Tests for the TimeIndexCache."""

import random
import threading

from relay_resolver.models import Sample
from relay_resolver.time_index import BEFORE_START, TimeIndexCache


def assert_sorted_unique(cache: TimeIndexCache) -> None:
    numbers = [sample.number for sample in cache]
    assert numbers == sorted(set(numbers))


class TestInsert:
    """Tests for sorted, deduplicated inserts."""

    def test_out_of_order_inserts_stay_sorted(self):
        """Test that inserts in any order keep the cache sorted."""
        cache = TimeIndexCache()
        for number in (5, 1, 9, 3, 7):
            cache.insert(Sample(number, number * 10))

        assert [sample.number for sample in cache] == [1, 3, 5, 7, 9]
        assert cache.first == Sample(1, 10)
        assert cache.last == Sample(9, 90)

    def test_duplicate_insert_is_noop(self):
        """Test that inserting the same id twice keeps the first sample."""
        cache = TimeIndexCache()
        first = cache.insert(Sample(4, 40))
        second = cache.insert(Sample(4, 40))

        assert second is first
        assert len(cache) == 1

    def test_random_insert_sequences(self):
        """Test the sorted/unique invariant over random insert sequences."""
        rng = random.Random(7)
        for _ in range(50):
            cache = TimeIndexCache()
            for number in (rng.randint(0, 40) for _ in range(60)):
                cache.insert(Sample(number, 1000 + number * 12))
                assert_sorted_unique(cache)

    def test_concurrent_inserts(self):
        """Test that threads inserting overlapping ids keep the invariant."""
        cache = TimeIndexCache()

        def worker(offset: int) -> None:
            for number in range(offset, 500, 3):
                cache.insert(Sample(number, number * 2))

        threads = [threading.Thread(target=worker, args=(offset,)) for offset in (0, 1, 2, 0, 1)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert_sorted_unique(cache)
        assert len(cache) == 500

    def test_initial_samples(self):
        """Test construction from an unsorted iterable."""
        cache = TimeIndexCache([Sample(3, 30), Sample(1, 10), Sample(3, 30)])
        assert cache.samples == (Sample(1, 10), Sample(3, 30))


class TestQueries:
    """Tests for floor_before, bracket and hole lookups."""

    def setup_method(self):
        self.cache = TimeIndexCache([Sample(10, 100), Sample(20, 200), Sample(30, 300)])

    def test_floor_before(self):
        """Test the index of the last sample at or before a timestamp."""
        assert self.cache.floor_before(99) == BEFORE_START
        assert self.cache.floor_before(100) == 0
        assert self.cache.floor_before(250) == 1
        assert self.cache.floor_before(300) == 2
        assert self.cache.floor_before(10_000) == 2

    def test_floor_before_empty(self):
        """Test that an empty cache reports the sentinel."""
        assert TimeIndexCache().floor_before(5) == BEFORE_START

    def test_bracket(self):
        """Test that the bracket straddles the target timestamp."""
        assert self.cache.bracket(250) == (Sample(20, 200), Sample(30, 300))
        assert self.cache.bracket(200) == (Sample(10, 100), Sample(20, 200))
        assert self.cache.bracket(50) == (None, Sample(10, 100))
        assert self.cache.bracket(301) == (Sample(30, 300), None)

    def test_hole_alias(self):
        """Test that a requested hole resolves to the produced sample below it."""
        self.cache.insert(Sample(20, 200), requested=24)

        assert self.cache.get(24) is None
        assert self.cache.lookup(24) == Sample(20, 200)
        assert self.cache.hole_ceiling(20) == 24
        assert self.cache.hole_ceiling(10) == 10

    def test_hole_ceiling_keeps_highest(self):
        """Test that the highest known hole above a sample is retained."""
        self.cache.insert(Sample(20, 200), requested=27)
        self.cache.insert(Sample(20, 200), requested=22)

        assert self.cache.hole_ceiling(20) == 27
        assert len(self.cache) == 3
