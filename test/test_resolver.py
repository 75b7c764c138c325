#!/usr/bin/env python3
"""Tests for the per-chain ChainStateResolver."""

import os
from unittest.mock import patch

import pytest

from conftest import SyntheticChain, step_counts
from relay_resolver.config import MAINNET, SOLANA, ChainConfig, ResolverConfig, SearchConfig
from relay_resolver.models import ChainEvent, FillStatus, Sample
from relay_resolver.relay_status import StatusRequest
from relay_resolver.resolver import ChainStateResolver
from relay_resolver.utils.evm_accessor import EvmChainAccessor
from relay_resolver.utils.svm_accessor import SvmChainAccessor

SPOKE_POOL = "0x5c7bcd6e7de5423a257d81b442095a1a6ced35c5"
SVM_PROGRAM = "DLv3NggMiSaef97YCkew5xKUHDh13tVGZ7tydt3ZeAru"
RELAY_KEY = "0x" + "11" * 32
RELAY_HASH = "0x" + "ab" * 32


def evm_config(**search) -> ResolverConfig:
    return ResolverConfig(
        chain=ChainConfig(MAINNET, "evm", "https://eth.example", SPOKE_POOL, average_block_time=10),
        search=SearchConfig(**search),
    )


@pytest.fixture
def chain():
    """A 200 block chain with deposits, a fill and a slow-fill request."""
    return SyntheticChain(
        {n: 1000 + n * 10 for n in range(0, 201)},
        counters=step_counts({0: 0, 40: 3, 90: 8, 150: 9}, 0, 200),
        events=[
            ChainEvent(60, "RequestedSlowFill", relay_key=RELAY_KEY),
            ChainEvent(120, "FilledRelay", index=(2, 5), relay_key=RELAY_KEY),
        ],
        fill_blocks={RELAY_HASH: 120},
    )


@pytest.fixture
def resolver(chain):
    """Create a resolver over the synthetic chain."""
    return ChainStateResolver(evm_config(), accessor=chain)


class TestChainStateResolver:
    """Tests for the resolver facade."""

    def test_components_share_cache(self, resolver):
        """Test that the finder and the estimator share one time index."""
        assert resolver.block_finder.cache is resolver.cache
        assert resolver.estimator.cache is resolver.cache
        assert resolver.block_finder.estimator is resolver.estimator

    @pytest.mark.asyncio
    async def test_block_for_timestamp(self, resolver):
        """Test resolving a timestamp between blocks."""
        assert await resolver.block_for_timestamp(1000 + 73 * 10 + 4) == Sample(73, 1730)
        assert await resolver.block_for_timestamp(5000) == Sample(200, 3000)

    @pytest.mark.asyncio
    async def test_find_deposit_block(self, resolver):
        """Test the deposit search through the facade."""
        assert await resolver.find_deposit_block(5, 0, 200) == 90
        assert await resolver.find_deposit_block(8, 0) == 150

    @pytest.mark.asyncio
    async def test_find_fill(self, resolver):
        """Test the fill block and fill event searches through the facade."""
        assert await resolver.find_fill_block(RELAY_HASH, 0, 200) == 120

        event = await resolver.find_fill_event(RELAY_KEY, RELAY_HASH, 0, 200)
        assert event.name == "FilledRelay"
        assert event.id == 120

    @pytest.mark.asyncio
    async def test_find_slot_for_block_height(self):
        """Test the slot search through the facade."""
        chain = SyntheticChain({n: n for n in range(0, 101) if n % 3}, counters={
            slot: 500 + index for index, slot in enumerate(n for n in range(0, 101) if n % 3)
        })
        resolver = ChainStateResolver(evm_config(), accessor=chain)

        assert await resolver.find_slot_for_block_height(510, 1, 100) == 16

    @pytest.mark.asyncio
    async def test_relay_status(self, resolver, chain):
        """Test that statuses are read from the SpokePool by default."""
        assert await resolver.relay_status(RELAY_KEY) == FillStatus.FILLED
        assert await resolver.relay_status(RELAY_KEY, as_of_id=100) == FillStatus.REQUESTED_SLOW_FILL

        statuses = await resolver.relay_statuses([
            StatusRequest(RELAY_KEY, resolver.config.chain.spoke_pool_address),
            StatusRequest("0x" + "99" * 32, resolver.config.chain.spoke_pool_address),
        ])
        assert list(statuses.values()) == [FillStatus.FILLED, FillStatus.UNFILLED]

    def test_resolve_status(self, resolver):
        """Test resolving supplied events without an RPC call."""
        events = [ChainEvent(5, "RequestedSlowFill")]

        assert resolver.resolve_status(RELAY_KEY, events) == FillStatus.REQUESTED_SLOW_FILL

    @pytest.mark.asyncio
    async def test_get_stats(self, resolver):
        """Test the combined statistics."""
        await resolver.block_for_timestamp(1500)
        resolver.resolve_status(RELAY_KEY, [])

        stats = resolver.get_stats()

        assert stats['chain_id'] == MAINNET
        assert stats['block_finder']['searches'] == 1
        assert stats['relay_status']['relays_resolved'] == 1


class TestBuildAccessor:
    """Tests for building the accessor from configuration."""

    def test_evm_accessor(self):
        """Test that EVM configuration builds a web3 accessor."""
        resolver = ChainStateResolver(evm_config(max_block_lookback=500, max_concurrent_requests=3))

        assert isinstance(resolver.accessor, EvmChainAccessor)
        assert resolver.accessor.chain_id == MAINNET
        assert resolver.accessor.max_block_lookback == 500
        assert resolver.accessor.max_concurrent_requests == 3

    def test_svm_accessor(self):
        """Test that SVM configuration builds a JSON-RPC accessor with the decoder."""
        def decoder(transaction):
            return ()

        config = ResolverConfig(
            chain=ChainConfig(SOLANA, "svm", "https://sol.example", SVM_PROGRAM, commitment="finalized"),
            search=SearchConfig(max_concurrent_requests=5),
        )
        resolver = ChainStateResolver(config, decoder=decoder)

        assert isinstance(resolver.accessor, SvmChainAccessor)
        assert resolver.accessor.commitment == "finalized"
        assert resolver.accessor.decoder is decoder
        assert resolver.accessor.max_concurrent_requests == 5
        assert resolver.estimator.is_fresh

    @patch.dict(os.environ, {
        "CHAIN_ID": "1",
        "RPC_URL": "https://eth.example",
        "SPOKE_POOL_ADDRESS": SPOKE_POOL,
    }, clear=True)
    def test_from_env(self):
        """Test building a resolver from the environment."""
        resolver = ChainStateResolver.from_env()

        assert isinstance(resolver.accessor, EvmChainAccessor)
        assert resolver.config.chain.seed_block_time == 12.5
