"""
SVM (Solana) chain accessor over plain JSON-RPC.

Slots are the ids. Slots without a block are holes and map to None. Program
events are recovered from transactions found through
``getSignaturesForAddress``; decoding the instruction data is delegated to an
injected decoder.
"""

import asyncio
import itertools
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..errors import MalformedResponseError, RpcError
from ..models import ChainEvent, Sample

logger = logging.getLogger(__name__)

# getBlock error codes for slots that have (or serve) no block.
SVM_BLOCK_NOT_AVAILABLE = -32004
SVM_NO_BLOCK_AT_SLOT = -32007
SVM_SLOT_SKIPPED = -32009
SKIPPED_SLOT_CODES = frozenset({SVM_BLOCK_NOT_AVAILABLE, SVM_NO_BLOCK_AT_SLOT, SVM_SLOT_SKIPPED})

# Window scanned below the current slot to find the latest produced block.
HEAD_SEARCH_WINDOW = 150


@dataclass(frozen=True, slots=True)
class DecodedEvent:
    """An event recovered from a transaction by an EventDecoder."""
    name: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    relay_key: str | None = None


EventDecoder = Callable[[Mapping[str, Any]], Sequence[DecodedEvent]]


def _no_events(transaction: Mapping[str, Any]) -> Sequence[DecodedEvent]:
    return ()


class SvmChainAccessor:
    """ChainAccessor for Solana: slot samples, block heights and program events."""

    def __init__(
        self,
        rpc_url: str,
        commitment: str = "confirmed",
        request_timeout: float = 30.0,
        event_page_limit: int = 1000,
        max_concurrent_requests: int = 8,
        decoder: EventDecoder | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the SVM accessor.

        Args:
            rpc_url: HTTP(S) JSON-RPC endpoint
            commitment: Commitment level for slot and block queries
            request_timeout: HTTP timeout for one request
            event_page_limit: Page size for getSignaturesForAddress
            max_concurrent_requests: Most requests kept in flight at once
            decoder: Extracts program events from a getTransaction result
            transport: Optional httpx transport (mainly for tests)
        """
        self.rpc_url = rpc_url
        self.commitment = commitment
        self.request_timeout = request_timeout
        self.event_page_limit = event_page_limit
        self.decoder = decoder or _no_events
        self.transport = transport
        self._request_ids = itertools.count(1)
        self.max_concurrent_requests = max_concurrent_requests
        self._request_slots = asyncio.Semaphore(max_concurrent_requests)

    @property
    def _read_commitment(self) -> str:
        # getBlocks, getSignaturesForAddress and getTransaction reject "processed".
        return "confirmed" if self.commitment == "processed" else self.commitment

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        """Post a JSON-RPC request and return its result.

        Raises:
            RpcError: If the endpoint answers with an error object
            httpx.HTTPStatusError: If the request fails
        """
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }
        async with self._request_slots, httpx.AsyncClient(transport=self.transport) as client:
            response = await client.post(self.rpc_url, json=payload, timeout=self.request_timeout)
            response.raise_for_status()
            body = response.json()

        match body:
            case {"error": {"code": code, "message": message}}:
                raise RpcError(method, code, message)
            case {"error": error}:
                raise RpcError(method, None, str(error))
            case {"result": result}:
                return result
            case _:
                raise MalformedResponseError(f"{method} returned neither result nor error: {body}")

    async def _get_block(self, slot: int) -> dict[str, Any] | None:
        config = {
            "commitment": self._read_commitment,
            "transactionDetails": "none",
            "rewards": False,
            "maxSupportedTransactionVersion": 0,
        }
        try:
            return await self._rpc("getBlock", [slot, config])
        except RpcError as e:
            if e.code in SKIPPED_SLOT_CODES:
                logger.debug(f"No block at slot {slot} ({e.code})")
                return None
            raise

    async def get_sample(self, number: int) -> Sample | None:
        block = await self._get_block(number)
        if block is None or block.get("blockTime") is None:
            return None
        return Sample(number=number, timestamp=int(block["blockTime"]))

    async def get_head(self, commitment: str | None = None) -> Sample:
        """Return the latest produced slot at the given (or configured) commitment."""
        slot = await self._rpc("getSlot", [{"commitment": commitment or self.commitment}])
        produced = await self._rpc(
            "getBlocks",
            [max(slot - HEAD_SEARCH_WINDOW, 0), slot, {"commitment": self._read_commitment}],
        )
        for candidate in reversed(produced):
            if (sample := await self.get_sample(candidate)) is not None:
                return sample
        raise MalformedResponseError(
            f"No produced block within {HEAD_SEARCH_WINDOW} slots of slot {slot}"
        )

    async def get_monotonic_counter_at(self, number: int) -> int | None:
        """Block height of the block produced at slot ``number``."""
        block = await self._get_block(number)
        if block is None or block.get("blockHeight") is None:
            return None
        return int(block["blockHeight"])

    async def _signatures_for_address(self, address: str, from_id: int) -> list[dict[str, Any]]:
        # Pages are ordered newest first; page backwards until from_id is passed.
        signatures: list[dict[str, Any]] = []
        options: dict[str, Any] = {
            "limit": self.event_page_limit,
            "commitment": self._read_commitment,
        }
        while True:
            page = await self._rpc("getSignaturesForAddress", [address, options])
            signatures.extend(page)
            if page:
                options = {**options, "before": page[-1]["signature"]}
            if len(page) < self.event_page_limit:
                break
            if signatures[-1]["slot"] < from_id:
                break
        return signatures

    async def _events_from_signature(self, signature: str) -> Sequence[DecodedEvent]:
        config = {
            "commitment": self._read_commitment,
            "maxSupportedTransactionVersion": 0,
            "encoding": "json",
        }
        transaction = await self._rpc("getTransaction", [signature, config])
        if transaction is None:
            return ()
        return self.decoder(transaction)

    async def get_events_for_address(
        self,
        address: str,
        from_id: int,
        to_id: int,
        event_names: Sequence[str] | None = None,
    ) -> list[ChainEvent]:
        """
        Fetch events from transactions touching ``address`` in slots ``[from_id, to_id]``.

        Transactions are fetched concurrently, no more than
        ``max_concurrent_requests`` at a time. Failed transactions carry no
        events and are skipped.
        """
        signatures = [
            signature
            for signature in await self._signatures_for_address(address, from_id)
            if from_id <= signature["slot"] <= to_id and signature.get("err") is None
        ]
        decoded = await asyncio.gather(
            *(self._events_from_signature(signature["signature"]) for signature in signatures)
        )

        wanted = set(event_names) if event_names is not None else None
        events: list[ChainEvent] = []
        # Signatures arrive newest first; count down so the ordinal ascends with time.
        for ordinal, (signature, tx_events) in enumerate(zip(signatures, decoded)):
            for position, event in enumerate(tx_events):
                if wanted is not None and event.name not in wanted:
                    continue
                events.append(
                    ChainEvent(
                        id=int(signature["slot"]),
                        name=event.name,
                        payload=event.payload,
                        index=(len(signatures) - ordinal, position),
                        tx_ref=signature["signature"],
                        relay_key=event.relay_key,
                    )
                )

        logger.debug(
            f"Found {len(events)} events in {len(signatures)} transactions "
            f"on {address} in slots {from_id}-{to_id}"
        )
        return sorted(events, key=lambda event: event.sort_key)
