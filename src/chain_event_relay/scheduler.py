#!/usr/bin/env python3
"""One poll cycle of the Chain Event Relay.

A tick reads the cursor and the chain head, re-checks the shallow window for
reorgs, scans ``[cursor, head]`` forward and only then advances the cursor to
``head + 1``. When the head has not reached the cursor there is nothing to
scan; the cached blocks are re-checked where they are instead. Any error
raised by a phase aborts the tick before the cursor moves, so the next
successful tick starts from the same place.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .block_scanner import BlockRangeScanner
from .models import BlockRange
from .reorg_rescanner import ReorgRescanner

if TYPE_CHECKING:
    from .chain_reader import ChainReader
    from .cursor_store import RedisCursorStore
    from .forwarder import Forwarder

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TickResult:
    """Outcome of a completed tick.

    Attributes:
        head: Chain head seen by the tick
        block_range: Range scanned forward (None when the head was behind the cursor)
        events_found: Events found by the forward scan
        rescan_forwarded: Events forwarded by the reorg rescan
        cursor: Cursor stored at the end of the tick
    """

    head: int
    block_range: BlockRange | None
    events_found: int
    rescan_forwarded: int
    cursor: int


class Scheduler:
    """Runs poll ticks: rescan, forward scan, cursor advance."""

    def __init__(
        self,
        reader: "ChainReader",
        store: "RedisCursorStore",
        forwarder: "Forwarder",
        reorg_window: int = 5,
        lookback_cap: int = 50_000
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            reader: RPC reader for the watched contract
            store: Cursor/cache store
            forwarder: Forwarder to the event store
            reorg_window: Shallow window size N
            lookback_cap: Max distance between head and scan start
        """
        self.reader = reader
        self.store = store
        self.lookback_cap = lookback_cap
        self.rescanner = ReorgRescanner(reader, store, forwarder, reorg_window)
        self.scanner = BlockRangeScanner(reader, store, forwarder, reorg_window)

        self.tick_in_progress = False
        self.ticks_completed = 0
        self.ticks_skipped = 0

    def scan_range(self, cursor: int, head: int) -> BlockRange | None:
        """
        Compute the forward scan range for a tick.

        The start is clamped to ``head - lookback_cap`` after long downtime;
        blocks older than that are skipped on purpose.

        Returns:
            The range to scan, or None when the head is behind the cursor
        """
        if head < cursor:
            return None

        start = cursor
        if head - cursor > self.lookback_cap:
            start = head - self.lookback_cap
            logger.warning(
                f"Cursor {cursor} is {head - cursor} blocks behind head {head}, "
                f"skipping ahead to block {start}"
            )
        return BlockRange(block_start=start, block_end=head)

    async def tick(self) -> TickResult | None:
        """
        Run one tick unless another one is still in progress.

        Overlapping ticks are skipped, not queued.

        Returns:
            The tick outcome, or None if the tick was skipped

        Raises:
            Exception: Any RPC or cache error, with the cursor left unchanged
        """
        if self.tick_in_progress:
            self.ticks_skipped += 1
            logger.warning("Previous tick still in progress, skipping this one")
            return None

        self.tick_in_progress = True
        try:
            result = await self._run_tick()
        finally:
            self.tick_in_progress = False

        self.ticks_completed += 1
        return result

    async def _run_tick(self) -> TickResult:
        cursor = await self.store.get_cursor()
        head = await self.reader.get_block_number()
        logger.info(f"Start polling from block {cursor} to block {head}")

        block_range = self.scan_range(cursor, head)
        events_found = 0
        if block_range is None:
            if head == cursor - 1:
                logger.info(f"No new block since {head}")
            else:
                logger.warning(f"Chain head {head} is behind cursor {cursor}, nothing to scan")
            rescan_forwarded = await self.rescanner.recheck_in_place(head, cursor)
        else:
            # The rescan must see last tick's slots before the scan reseeds them
            rescan_forwarded = await self.rescanner.rescan_window(head)
            events = await self.scanner.scan(block_range, already_forwarded=rescan_forwarded)
            events_found = len(events)

        new_cursor = await self.store.set_cursor(head + 1)

        return TickResult(
            head=head,
            block_range=block_range,
            events_found=events_found,
            rescan_forwarded=len(rescan_forwarded),
            cursor=new_cursor,
        )
