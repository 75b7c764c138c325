"""Shared fixtures: an in-memory chain that counts every accessor call."""

import asyncio
import random
from collections import Counter
from collections.abc import Sequence

import pytest

from relay_resolver.models import ChainEvent, FillStatus, Sample


class SyntheticChain:
    """ChainAccessor and FillStatusReader over fixed in-memory data.

    ``timestamps`` maps produced ids to timestamps; any other id is a hole.
    ``counters`` maps ids to the monotonic counter (deposit count or block
    height); ids missing from it are holes as well.
    """

    def __init__(
        self,
        timestamps: dict[int, int],
        counters: dict[int, int] | None = None,
        events: Sequence[ChainEvent] = (),
        fill_blocks: dict[str, int] | None = None,
        head: int | None = None,
        delay: float = 0.0,
    ) -> None:
        self.timestamps = timestamps
        self.counters = counters or {}
        self.events = list(events)
        self.fill_blocks = fill_blocks or {}
        self.head = head if head is not None else max(timestamps)
        self.delay = delay
        self.calls: Counter[str] = Counter()
        self.counter_probes: list[int] = []

    @property
    def rpc_calls(self) -> int:
        return sum(self.calls.values())

    async def _respond(self, method: str) -> None:
        self.calls[method] += 1
        if self.delay:
            await asyncio.sleep(self.delay)

    async def get_sample(self, number: int) -> Sample | None:
        await self._respond("get_sample")
        timestamp = self.timestamps.get(number)
        return None if timestamp is None else Sample(number, timestamp)

    async def get_head(self, commitment: str | None = None) -> Sample:
        await self._respond("get_head")
        return Sample(self.head, self.timestamps[self.head])

    async def get_monotonic_counter_at(self, number: int) -> int | None:
        self.counter_probes.append(number)
        await self._respond("get_monotonic_counter_at")
        return self.counters.get(number)

    async def get_events_for_address(
        self,
        address: str,
        from_id: int,
        to_id: int,
        event_names: Sequence[str] | None = None,
    ) -> list[ChainEvent]:
        await self._respond("get_events_for_address")
        return [
            event
            for event in reversed(self.events)
            if from_id <= event.id <= to_id and (event_names is None or event.name in event_names)
        ]

    async def get_fill_status(self, relay_hash: str, number: int) -> FillStatus:
        await self._respond("get_fill_status")
        fill_block = self.fill_blocks.get(relay_hash)
        if fill_block is not None and number >= fill_block:
            return FillStatus.FILLED
        return FillStatus.UNFILLED


def step_counts(points: dict[int, int], low: int, high: int) -> dict[int, int]:
    """Expand ``{id: value}`` change points into a value for every id in ``[low, high]``."""
    counts = {}
    value = None
    for number in range(low, high + 1):
        value = points.get(number, value)
        counts[number] = value
    return counts


def random_chain(length: int, seed: int, hole_rate: float = 0.0) -> dict[int, int]:
    """Timestamps for ``length`` ids with uneven block times and optional holes."""
    rng = random.Random(seed)
    timestamps = {0: 1_700_000_000}
    current = timestamps[0]
    for number in range(1, length):
        current += rng.randint(1, 20)
        if rng.random() >= hole_rate or number == length - 1:
            timestamps[number] = current
    return timestamps


def floor_sample(timestamps: dict[int, int], target: int) -> int:
    """Brute-force answer: the latest produced id with timestamp <= target."""
    return max(number for number, timestamp in timestamps.items() if timestamp <= target)


@pytest.fixture
def scenario_chain():
    """Blocks 0..4 at timestamps 100, 140, 180, 220, 260."""
    return SyntheticChain({0: 100, 1: 140, 2: 180, 3: 220, 4: 260})
