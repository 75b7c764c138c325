"""
Chain-state resolver for one chain.

This module wires the accessor, the shared time index and the searches
together behind a single object that relayer code holds per chain.
"""

import logging
from collections.abc import Iterable, Sequence

from .block_finder import BlockFinder
from .block_time import BlockTimeEstimator
from .config import ResolverConfig
from .models import ChainEvent, FillStatus, Sample, SearchBounds
from .predicate_search import (
    find_deposit_block,
    find_fill_block,
    find_fill_event,
    find_slot_for_block_height,
)
from .relay_status import RelayStatusResolver, StatusRequest
from .time_index import TimeIndexCache
from .utils.chain_accessor import ChainAccessor
from .utils.deadline import Deadline
from .utils.evm_accessor import EvmChainAccessor
from .utils.svm_accessor import EventDecoder, SvmChainAccessor

logger = logging.getLogger(__name__)


class ChainStateResolver:
    """
    Resolves timestamps, deposit and fill blocks, slots and relay statuses
    for one chain.
    """

    def __init__(
        self,
        config: ResolverConfig,
        accessor: ChainAccessor | None = None,
        decoder: EventDecoder | None = None,
    ) -> None:
        """
        Initialize the resolver.

        Args:
            config: Resolver configuration
            accessor: Chain accessor to use instead of the one built from config
            decoder: SVM event decoder, passed to the built SVM accessor
        """
        self.config = config
        self.accessor = accessor or self._build_accessor(decoder)
        self.cache = TimeIndexCache()
        self.estimator = BlockTimeEstimator(
            self.accessor,
            config.search,
            seed=config.chain.seed_block_time,
            cache=self.cache,
        )
        self.block_finder = BlockFinder(
            self.accessor,
            cache=self.cache,
            estimator=self.estimator,
            search=config.search,
        )
        self.status_resolver = RelayStatusResolver(
            self.accessor, search_timeout=config.search.search_timeout
        )

        logger.info(
            f"ChainStateResolver initialized for {config.chain.family.upper()} "
            f"chain {config.chain.chain_id}"
        )

    @classmethod
    def from_env(cls, decoder: EventDecoder | None = None) -> "ChainStateResolver":
        """Build a resolver from environment variables (see ResolverConfig.from_env)."""
        config = ResolverConfig.from_env()
        config.log_config()
        return cls(config, decoder=decoder)

    def _build_accessor(self, decoder: EventDecoder | None) -> ChainAccessor:
        chain, search = self.config.chain, self.config.search
        match chain.family:
            case 'evm':
                return EvmChainAccessor(
                    chain.rpc_url,
                    chain.spoke_pool_address,
                    chain.chain_id,
                    request_timeout=search.request_timeout,
                    max_block_lookback=search.max_block_lookback,
                    max_concurrent_requests=search.max_concurrent_requests,
                )
            case 'svm':
                return SvmChainAccessor(
                    chain.rpc_url,
                    commitment=chain.commitment,
                    request_timeout=search.request_timeout,
                    event_page_limit=search.event_page_limit,
                    max_concurrent_requests=search.max_concurrent_requests,
                    decoder=decoder,
                )
            case _:
                raise ValueError(f"Unsupported chain family: {chain.family}")

    def _deadline(self, timeout: Deadline | float | None) -> Deadline:
        return Deadline.coerce(timeout if timeout is not None else self.config.search.search_timeout)

    async def block_for_timestamp(
        self,
        timestamp: int,
        hints: SearchBounds | None = None,
        timeout: Deadline | float | None = None,
    ) -> Sample:
        return await self.block_finder.resolve(timestamp, hints, self._deadline(timeout))

    async def find_deposit_block(
        self,
        deposit_id: int,
        low: int,
        high: int | None = None,
        timeout: Deadline | float | None = None,
    ) -> int | None:
        return await find_deposit_block(
            self.accessor,
            deposit_id,
            low,
            high,
            max_safe_deposit_id=self.config.search.max_safe_deposit_id,
            max_skipped=self.config.search.max_skipped_ids,
            timeout=self._deadline(timeout),
        )

    async def find_fill_block(
        self,
        relay_hash: str,
        low: int,
        high: int | None = None,
        timeout: Deadline | float | None = None,
    ) -> int | None:
        return await find_fill_block(
            self.accessor, relay_hash, low, high, timeout=self._deadline(timeout)
        )

    async def find_fill_event(
        self,
        relay_key: str,
        relay_hash: str,
        low: int,
        high: int | None = None,
        timeout: Deadline | float | None = None,
    ) -> ChainEvent | None:
        return await find_fill_event(
            self.accessor,
            self.config.chain.spoke_pool_address,
            relay_key,
            relay_hash,
            low,
            high,
            timeout=self._deadline(timeout),
        )

    async def find_slot_for_block_height(
        self,
        block_height: int,
        low_slot: int,
        high_slot: int | None = None,
        timeout: Deadline | float | None = None,
    ) -> int | None:
        return await find_slot_for_block_height(
            self.accessor,
            block_height,
            low_slot,
            high_slot,
            max_probes=self.config.search.max_probes,
            max_skipped=self.config.search.max_skipped_ids,
            timeout=self._deadline(timeout),
        )

    async def relay_status(
        self,
        relay_key: str,
        address: str | None = None,
        from_id: int = 0,
        as_of_id: int | None = None,
        timeout: Deadline | float | None = None,
    ) -> FillStatus:
        """Status of one relay; events are read from the SpokePool unless ``address`` is given."""
        return await self.status_resolver.fetch_status(
            relay_key,
            address or self.config.chain.spoke_pool_address,
            from_id,
            as_of_id,
            self._deadline(timeout),
        )

    async def relay_statuses(
        self,
        requests: Sequence[StatusRequest],
        as_of_id: int | None = None,
        timeout: Deadline | float | None = None,
    ) -> dict[str, FillStatus]:
        return await self.status_resolver.fetch_statuses(requests, as_of_id, self._deadline(timeout))

    def resolve_status(
        self,
        relay_key: str,
        events: Iterable[ChainEvent],
        as_of_id: int | None = None,
    ) -> FillStatus:
        return self.status_resolver.resolve(relay_key, events, as_of_id)

    def get_stats(self) -> dict:
        """
        Get current resolver statistics.

        Returns:
            Dictionary with block finder and relay status metrics
        """
        return {
            'chain_id': self.config.chain.chain_id,
            'block_finder': self.block_finder.get_stats(),
            'relay_status': self.status_resolver.get_stats(),
        }
