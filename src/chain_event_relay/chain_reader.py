#!/usr/bin/env python3
"""RPC access for the Chain Event Relay.

Wraps an ``AsyncWeb3`` handle with the three reads the relay needs
(logs, chain head, transactions) and turns fetched logs into decoded Events.
RPC errors are not caught here: they propagate to the scheduler, which hands
them to the connection supervisor.
"""

import asyncio
import logging
from typing import Any

from web3 import AsyncWeb3
from web3.types import FilterParams, LogReceipt

from .event_decoder import EventDecoder
from .models import Event
from .utils.tasks import gather_all

logger = logging.getLogger(__name__)


class ChainReader:
    """Reads and decodes the logs of one contract through one RPC handle."""

    def __init__(
        self,
        w3: AsyncWeb3,
        contract_address: str,
        decoder: EventDecoder,
        topics: tuple[str, ...] = (),
        max_concurrency: int = 16
    ) -> None:
        """
        Initialize the chain reader.

        Args:
            w3: Connected AsyncWeb3 instance
            contract_address: Checksummed address of the watched contract
            decoder: Decoder for the contract's logs
            topics: Optional topic0 filters (OR-ed together)
            max_concurrency: Max concurrent transaction lookups
        """
        self.w3 = w3
        self.contract_address = contract_address
        self.decoder = decoder
        self.topics = topics
        self._semaphore = asyncio.Semaphore(max_concurrency)

    def build_filter(self, from_block: int, to_block: int) -> FilterParams:
        """Build an eth_getLogs filter for an inclusive block range."""
        filter_params: FilterParams = {
            "fromBlock": from_block,
            "toBlock": to_block,
            "address": self.contract_address,
        }
        if self.topics:
            filter_params["topics"] = [list(self.topics)]
        return filter_params

    async def get_block_number(self) -> int:
        """Return the current chain head."""
        return await self.w3.eth.block_number

    async def get_logs(self, from_block: int, to_block: int) -> list[LogReceipt]:
        """Fetch every matching log in ``[from_block, to_block]`` in one call."""
        return list(await self.w3.eth.get_logs(self.build_filter(from_block, to_block)))

    async def get_transaction(self, transaction_hash: Any) -> Any:
        """Fetch a transaction, bounded by the reader's concurrency limit."""
        async with self._semaphore:
            return await self.w3.eth.get_transaction(transaction_hash)

    async def _to_event(self, raw_log: LogReceipt) -> Event:
        transaction = await self.get_transaction(raw_log["transactionHash"])
        return self.decoder.decode(raw_log, transaction)

    async def fetch_events(self, from_block: int, to_block: int) -> list[Event]:
        """
        Fetch and decode the contract's events in ``[from_block, to_block]``.

        Transactions are resolved concurrently; results keep the log order.

        Args:
            from_block: First block (inclusive)
            to_block: Last block (inclusive)

        Returns:
            Decoded events, possibly empty
        """
        logs = await self.get_logs(from_block, to_block)
        if not logs:
            return []
        return await gather_all(*(self._to_event(log) for log in logs))
