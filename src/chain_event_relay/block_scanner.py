#!/usr/bin/env python3
"""Forward scan of a block range.

The scanner fetches every contract log between the cursor and the chain head,
forwards the decoded events and seeds the shallow-window cache with the
fingerprints of events close enough to the head to still be reorged.
"""

import logging
from collections import defaultdict
from collections.abc import Set
from typing import TYPE_CHECKING

from .models import BlockRange, Event
from .utils.tasks import gather_all

if TYPE_CHECKING:
    from .chain_reader import ChainReader
    from .cursor_store import RedisCursorStore
    from .forwarder import Forwarder

logger = logging.getLogger(__name__)


def scan_depth(block_end: int, block_number: int) -> int:
    """Cache depth for a block scanned with head ``block_end``.

    The next tick is expected to see head ``block_end + 1`` and rescans block
    ``b`` at depth ``head - b``, so the slot written now is
    ``block_end - block_number + 1``.
    """
    return block_end - block_number + 1


class BlockRangeScanner:
    """Scans ``[block_start, block_end]`` and forwards every event found."""

    def __init__(
        self,
        reader: "ChainReader",
        store: "RedisCursorStore",
        forwarder: "Forwarder",
        reorg_window: int = 5
    ) -> None:
        """
        Initialize the scanner.

        Args:
            reader: RPC reader for the watched contract
            store: Cursor/cache store holding the shallow-window slots
            forwarder: Forwarder to the event store
            reorg_window: Number of blocks below the head treated as not final
        """
        self.reader = reader
        self.store = store
        self.forwarder = forwarder
        self.reorg_window = reorg_window

    def in_shallow_window(self, block_range: BlockRange, block_number: int) -> bool:
        return block_range.block_end - block_number < self.reorg_window

    async def scan(
        self,
        block_range: BlockRange,
        already_forwarded: Set[str] = frozenset()
    ) -> list[Event]:
        """
        Scan a block range, forward its events and seed the shallow cache.

        Args:
            block_range: Inclusive range; ``block_end`` is the head at scan time
            already_forwarded: Fingerprints forwarded earlier in the same tick
                (by the rescan phase), which are cached but not sent again

        Returns:
            Every event found in the range

        Raises:
            Exception: RPC and cache errors propagate to the caller
        """
        events = await self.reader.fetch_events(block_range.block_start, block_range.block_end)

        if not events:
            logger.info(
                f"No events from block {block_range.block_start} "
                f"to block {block_range.block_end}"
            )
            return events

        logger.info(
            f"Found {len(events)} events from block {block_range.block_start} "
            f"to block {block_range.block_end}"
        )

        slots: dict[int, set[str]] = defaultdict(set)
        to_forward: list[Event] = []
        for event in events:
            fingerprint = event.fingerprint
            if self.in_shallow_window(block_range, event.block_number):
                slots[scan_depth(block_range.block_end, event.block_number)].add(fingerprint)
            if fingerprint in already_forwarded:
                logger.debug(f"Skipping {event}: already forwarded by rescan")
                continue
            to_forward.append(event)

        forwarded, _ = await gather_all(
            self.forwarder.forward_all(to_forward),
            gather_all(*(
                self.store.add_to_slot(depth, fingerprints)
                for depth, fingerprints in slots.items()
            )),
        )

        if forwarded < len(to_forward):
            logger.warning(
                f"{len(to_forward) - forwarded} of {len(to_forward)} events "
                f"could not be forwarded"
            )
        return events
