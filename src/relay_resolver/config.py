#!/usr/bin/env python3
"""Configuration management for the chain-state resolver.

This module provides type-safe configuration dataclasses with validation for
one resolved chain. Configuration is loaded from environment variables with
sensible defaults where appropriate.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import ClassVar
from urllib.parse import urlparse

from web3 import Web3

# Get logger for this module
logger = logging.getLogger(__name__)

MAINNET = 1
OPTIMISM = 10
UNICHAIN = 130
INK = 57073
LINEA = 59144
SOLANA = 34268394551451
BASE = 8453
BLAST = 81457
LISK = 1135
MODE = 34443
OPTIMISM_SEPOLIA = 11155420
BASE_SEPOLIA = 84532
BLAST_SEPOLIA = 168587773
LISK_SEPOLIA = 4202
MODE_SEPOLIA = 919

# Seed values for the average seconds per block (or slot).
DEFAULT_BLOCK_TIMES: dict[int, float] = {
    INK: 1.0,
    LINEA: 3.0,
    MAINNET: 12.5,
    OPTIMISM: 2.0,
    UNICHAIN: 1.0,
    SOLANA: 0.4,
}

# OP stack chains inherit the Optimism block time unless listed above.
OP_STACK_CHAINS: frozenset[int] = frozenset({
    OPTIMISM,
    BASE,
    BLAST,
    INK,
    LISK,
    MODE,
    UNICHAIN,
    OPTIMISM_SEPOLIA,
    BASE_SEPOLIA,
    BLAST_SEPOLIA,
    LISK_SEPOLIA,
    MODE_SEPOLIA,
})

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: int | str = logging.INFO) -> None:
    """Configure the root logger with the standard format."""
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _optional_float(name: str) -> float | None:
    value = os.environ.get(name)
    return float(value) if value else None


@dataclass(frozen=True, slots=True)
class SearchConfig:
    """Tuning knobs shared by every search on a chain.

    Attributes:
        block_range: Ids between the two samples used to average block time
        high_block_offset: Ids subtracted from the head when averaging
        block_time_cache_ttl: Seconds an average block time stays valid
        cushion: Fractional overshoot used when expanding left of the cache
        max_skipped_ids: Longest run of holes walked before giving up
        max_safe_deposit_id: Deposit ids above this are not binary searchable
        search_timeout: Default budget for one search (None = unbounded)
        request_timeout: HTTP timeout for a single RPC request
        event_page_limit: Page size for paged event queries (SVM signatures)
        max_block_lookback: Widest id window per log query (EVM)
        max_probes: Probe budget for the slot-to-height search
        max_concurrent_requests: Most RPC requests one accessor keeps in flight
    """
    block_range: int = 120
    high_block_offset: int = 10
    block_time_cache_ttl: int = 60 * 15  # seconds
    cushion: float = 1.0
    max_skipped_ids: int = 120
    max_safe_deposit_id: int = 2**32 - 1
    search_timeout: float | None = None
    request_timeout: float = 30.0
    event_page_limit: int = 1000
    max_block_lookback: int = 10_000
    max_probes: int = 256
    max_concurrent_requests: int = 8

    def __post_init__(self) -> None:
        """Validate search configuration."""
        if self.block_range <= 0:
            raise ValueError(f"Block range must be positive, got {self.block_range}")
        if self.high_block_offset < 0:
            raise ValueError(f"High block offset must be non-negative, got {self.high_block_offset}")
        if self.block_time_cache_ttl < 0:
            raise ValueError(
                f"Block time cache TTL must be non-negative, got {self.block_time_cache_ttl}"
            )
        if self.cushion < 0:
            raise ValueError(f"Cushion must be non-negative, got {self.cushion}")
        if self.max_skipped_ids <= 0:
            raise ValueError(f"Max skipped ids must be positive, got {self.max_skipped_ids}")
        if self.max_safe_deposit_id <= 0:
            raise ValueError(f"Max safe deposit id must be positive, got {self.max_safe_deposit_id}")
        if self.search_timeout is not None and self.search_timeout <= 0:
            raise ValueError(f"Search timeout must be positive, got {self.search_timeout}")
        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")
        if not 0 < self.event_page_limit <= 1000:
            raise ValueError(f"Event page limit must be in (0, 1000], got {self.event_page_limit}")
        if self.max_block_lookback <= 0:
            raise ValueError(f"Max block lookback must be positive, got {self.max_block_lookback}")
        if self.max_probes <= 0:
            raise ValueError(f"Max probes must be positive, got {self.max_probes}")
        if self.max_concurrent_requests <= 0:
            raise ValueError(
                f"Max concurrent requests must be positive, got {self.max_concurrent_requests}"
            )


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Configuration for the resolved chain.

    Attributes:
        chain_id: Numeric chain id
        family: Chain family, 'evm' (block based) or 'svm' (slot based)
        rpc_url: RPC endpoint
        spoke_pool_address: SpokePool contract (EVM) or program id (SVM)
        average_block_time: Override for the seeded seconds per id
        commitment: SVM commitment level used for head and block queries
    """

    chain_id: int
    family: str
    rpc_url: str
    spoke_pool_address: str
    average_block_time: float | None = None
    commitment: str = "confirmed"

    SUPPORTED_FAMILIES: ClassVar[set[str]] = {'evm', 'svm'}
    SUPPORTED_COMMITMENTS: ClassVar[set[str]] = {'processed', 'confirmed', 'finalized'}

    def __post_init__(self) -> None:
        """Validate chain configuration."""
        if self.chain_id <= 0:
            raise ValueError(f"Chain id must be positive, got {self.chain_id}")

        if self.family not in self.SUPPORTED_FAMILIES:
            raise ValueError(
                f"Unsupported chain family: {self.family}. "
                f"Supported families: {', '.join(sorted(self.SUPPORTED_FAMILIES))}"
            )

        # Validate RPC URL
        if not self.rpc_url:
            raise ValueError("RPC URL is required (RPC_URL)")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https', 'ws', 'wss'):
            raise ValueError(
                f"Invalid RPC URL scheme: {parsed.scheme}. "
                "Expected http, https, ws, or wss"
            )

        if self.commitment not in self.SUPPORTED_COMMITMENTS:
            raise ValueError(
                f"Unsupported commitment: {self.commitment}. "
                f"Supported commitments: {', '.join(sorted(self.SUPPORTED_COMMITMENTS))}"
            )

        if self.average_block_time is not None and self.average_block_time <= 0:
            raise ValueError(
                f"Average block time must be positive, got {self.average_block_time}"
            )

        if not self.spoke_pool_address:
            raise ValueError("SpokePool address is required (SPOKE_POOL_ADDRESS)")

        if self.family == 'evm':
            if not Web3.is_address(self.spoke_pool_address):
                raise ValueError(f"Invalid SpokePool address: {self.spoke_pool_address}")

            # Convert to checksum address
            checksummed = Web3.to_checksum_address(self.spoke_pool_address)
            if checksummed != self.spoke_pool_address:
                # Use object.__setattr__ since dataclass is frozen
                object.__setattr__(self, 'spoke_pool_address', checksummed)

    @property
    def is_svm(self) -> bool:
        return self.family == 'svm'

    @property
    def seed_block_time(self) -> float | None:
        """Configured average block time, falling back to the known chain default."""
        if self.average_block_time is not None:
            return self.average_block_time
        if self.chain_id in DEFAULT_BLOCK_TIMES:
            return DEFAULT_BLOCK_TIMES[self.chain_id]
        if self.chain_id in OP_STACK_CHAINS:
            return DEFAULT_BLOCK_TIMES[OPTIMISM]
        return None


@dataclass(frozen=True, slots=True)
class ResolverConfig:
    """Main configuration for one chain-state resolver.

    Attributes:
        chain: Configuration of the chain being resolved
        search: Search tuning
    """

    chain: ChainConfig
    search: SearchConfig = field(default_factory=SearchConfig)

    @classmethod
    def from_env(cls) -> "ResolverConfig":
        """Load configuration from environment variables.

        Returns:
            ResolverConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        chain_id = os.environ.get("CHAIN_ID", "")
        if not chain_id:
            raise ValueError(
                "CHAIN_ID environment variable is required. "
                "Example: 1 for Ethereum mainnet"
            )

        spoke_pool_address = os.environ.get("SPOKE_POOL_ADDRESS", "")
        if not spoke_pool_address:
            raise ValueError(
                "SPOKE_POOL_ADDRESS environment variable is required. "
                "This should be the SpokePool contract address or SVM program id."
            )

        chain_config = ChainConfig(
            chain_id=int(chain_id),
            family=os.environ.get("CHAIN_FAMILY", "evm").lower(),
            rpc_url=os.environ.get("RPC_URL", ""),
            spoke_pool_address=spoke_pool_address,
            average_block_time=_optional_float("AVERAGE_BLOCK_TIME"),
            commitment=os.environ.get("COMMITMENT", "confirmed"),
        )

        search_config = SearchConfig(
            search_timeout=_optional_float("SEARCH_TIMEOUT"),
            request_timeout=float(os.environ.get("REQUEST_TIMEOUT", "30")),
            max_safe_deposit_id=int(os.environ.get("MAX_SAFE_DEPOSIT_ID", str(2**32 - 1))),
            event_page_limit=int(os.environ.get("EVENT_PAGE_LIMIT", "1000")),
            max_block_lookback=int(os.environ.get("MAX_BLOCK_LOOKBACK", "10000")),
            max_concurrent_requests=int(os.environ.get("MAX_CONCURRENT_REQUESTS", "8")),
        )

        return cls(chain=chain_config, search=search_config)

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Chain State Resolver Configuration")
        logger.info("=" * 60)

        logger.info("Chain:")
        logger.info(f"  Chain ID: {self.chain.chain_id}")
        logger.info(f"  Family: {self.chain.family.upper()}")
        logger.info(f"  RPC URL: {self.chain.rpc_url}")
        logger.info(f"  SpokePool: {self.chain.spoke_pool_address}")
        if self.chain.is_svm:
            logger.info(f"  Commitment: {self.chain.commitment}")
        seed = self.chain.seed_block_time
        logger.info(f"  Seed Block Time: {f'{seed}s' if seed is not None else '[MEASURED]'}")

        logger.info("Search Settings:")
        logger.info(f"  Block Range: {self.search.block_range}")
        logger.info(f"  High Block Offset: {self.search.high_block_offset}")
        logger.info(f"  Block Time TTL: {self.search.block_time_cache_ttl} seconds")
        logger.info(f"  Max Skipped Ids: {self.search.max_skipped_ids}")
        logger.info(f"  Max Safe Deposit Id: {self.search.max_safe_deposit_id}")
        timeout = self.search.search_timeout
        logger.info(f"  Search Timeout: {f'{timeout} seconds' if timeout else '[NONE]'}")
        logger.info(f"  Request Timeout: {self.search.request_timeout} seconds")
        logger.info(f"  Max Concurrent Requests: {self.search.max_concurrent_requests}")

        logger.info("=" * 60)
