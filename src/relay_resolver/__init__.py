"""
Chain-state resolution for cross-chain relayers.

Maps timestamps to blocks and slots, locates the block where an on-chain
counter crosses a target, and reduces relay events to a fill status, for
EVM and SVM chains.
"""

from .block_finder import BlockFinder
from .block_time import BlockTimeEstimator
from .config import ChainConfig, ResolverConfig, SearchConfig, setup_logging
from .errors import (
    InvalidSearchRangeError,
    MalformedResponseError,
    OutOfRangeError,
    ResolverError,
    RpcError,
    UnsafeInputError,
)
from .models import ChainEvent, FillStatus, RelayTerms, Sample, SearchBounds
from .predicate_search import (
    find_deposit_block,
    find_fill_block,
    find_fill_event,
    find_first_satisfying,
    find_slot_for_block_height,
    is_unsafe_deposit_id,
)
from .relay_status import RelayStatusResolver, StatusRequest
from .resolver import ChainStateResolver
from .time_index import TimeIndexCache
from .utils.chain_accessor import ChainAccessor, FillStatusReader
from .utils.deadline import Deadline

__version__ = "0.1.0"

__all__ = [
    "BlockFinder",
    "BlockTimeEstimator",
    "ChainAccessor",
    "ChainConfig",
    "ChainEvent",
    "ChainStateResolver",
    "Deadline",
    "FillStatus",
    "FillStatusReader",
    "InvalidSearchRangeError",
    "MalformedResponseError",
    "OutOfRangeError",
    "RelayStatusResolver",
    "RelayTerms",
    "ResolverConfig",
    "ResolverError",
    "RpcError",
    "Sample",
    "SearchBounds",
    "SearchConfig",
    "StatusRequest",
    "TimeIndexCache",
    "UnsafeInputError",
    "find_deposit_block",
    "find_fill_block",
    "find_fill_event",
    "find_first_satisfying",
    "find_slot_for_block_height",
    "is_unsafe_deposit_id",
    "setup_logging",
]
