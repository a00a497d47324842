#!/usr/bin/env python3
"""Re-verification of the shallow window for chain reorganizations.

Every tick re-queries the blocks just below the chain head one at a time and
compares their events, by fingerprint, with what the previous tick cached.
Only events absent from the cache are forwarded: events from an orphaned
branch were already cached (and forwarded) and are never re-emitted, while
events that replaced them on the canonical chain are new and get forwarded.

This assumes finality after ``reorg_window`` confirmations; the window is a
trust/latency trade-off, not a protocol guarantee.
"""

import logging
from collections import defaultdict
from collections.abc import Set
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .models import Event
from .utils.tasks import gather_all

if TYPE_CHECKING:
    from .chain_reader import ChainReader
    from .cursor_store import RedisCursorStore
    from .forwarder import Forwarder

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BlockRescan:
    """Outcome of re-checking one block.

    Attributes:
        block_number: Block that was re-queried
        depth: Cache slot the block was compared at
        current: Events the block holds now
        new: Subset of ``current`` absent from the cache (forwarded)
    """

    block_number: int
    depth: int
    current: list[Event]
    new: list[Event]


class ReorgRescanner:
    """Re-checks the last ``reorg_window`` blocks against the shallow cache."""

    def __init__(
        self,
        reader: "ChainReader",
        store: "RedisCursorStore",
        forwarder: "Forwarder",
        reorg_window: int = 5
    ) -> None:
        """
        Initialize the rescanner.

        Args:
            reader: RPC reader for the watched contract
            store: Cursor/cache store holding the shallow-window slots
            forwarder: Forwarder to the event store
            reorg_window: Number of blocks below the head to re-check
        """
        self.reader = reader
        self.store = store
        self.forwarder = forwarder
        self.reorg_window = reorg_window

    def blocks_to_rescan(self, head: int) -> list[tuple[int, int]]:
        """
        List ``(block_number, depth)`` pairs to re-check for a given head.

        The head itself is excluded; depth is ``head - block_number``.
        """
        return [
            (head - depth, depth)
            for depth in range(1, self.reorg_window + 1)
            if head - depth >= 0
        ]

    async def rescan(
        self,
        block_number: int,
        previous_fingerprints: Set[str],
        depth: int
    ) -> BlockRescan:
        """
        Re-query one block and forward the events not seen on the previous tick.

        The cache slot for ``depth`` is cleared when the rescan ends, whether
        or not new events were found and whether or not the query failed.

        Args:
            block_number: Block to re-check
            previous_fingerprints: Fingerprints cached by the previous tick
            depth: Cache slot of this block

        Returns:
            The block's current events and the new ones among them
        """
        try:
            return await self._check_block(block_number, previous_fingerprints, depth)
        finally:
            await self.store.clear_slot(depth)

    async def _check_block(
        self,
        block_number: int,
        previous_fingerprints: Set[str],
        depth: int
    ) -> BlockRescan:
        current = await self.reader.fetch_events(block_number, block_number)

        new_events: list[Event] = []
        seen: set[str] = set()
        for event in current:
            fingerprint = event.fingerprint
            if fingerprint in previous_fingerprints or fingerprint in seen:
                continue
            seen.add(fingerprint)
            new_events.append(event)

        if new_events:
            logger.info(
                f"Rescan of block {block_number} (depth {depth}) found "
                f"{len(new_events)} new of {len(current)} events"
            )
            await self.forwarder.forward_all(new_events)
        else:
            logger.debug(f"Rescan of block {block_number} (depth {depth}): no changes")

        return BlockRescan(block_number, depth, current, new_events)

    async def rescan_window(self, head: int) -> set[str]:
        """
        Rescan every block of the shallow window below ``head`` concurrently.

        All slots are read before any rescan clears one. Each block is
        compared against the union of the slots: fingerprints carry the block
        number and hash, so this matches the per-depth comparison when the
        head moved by one block since the previous tick and still finds the
        cached events when it moved by more.

        Once all slots are cleared, each re-checked block is cached again one
        depth deeper, where the next tick will look for it.

        Args:
            head: Chain head of this tick

        Returns:
            Fingerprints of the events forwarded by the rescan
        """
        targets = self.blocks_to_rescan(head)
        if not targets:
            return set()

        logger.info(f"Rescan blocks: {[block for block, _ in targets]}")

        slots = await gather_all(*(self.store.get_slot(depth) for _, depth in targets))
        previous: set[str] = set().union(*slots)

        results: list[BlockRescan] = await gather_all(*(
            self.rescan(block_number, previous, depth)
            for block_number, depth in targets
        ))

        carried: dict[int, set[str]] = defaultdict(set)
        for result in results:
            if result.depth < self.reorg_window:
                carried[result.depth + 1].update(event.fingerprint for event in result.current)

        await gather_all(*(
            self.store.add_to_slot(depth, fingerprints)
            for depth, fingerprints in carried.items()
        ))

        return {event.fingerprint for result in results for event in result.new}

    async def recheck_in_place(self, head: int, cursor: int) -> set[str]:
        """
        Re-check the cached blocks on a tick whose head has not reached the cursor.

        The slots were seeded for a next head of ``cursor``, and that tick is
        still to come. Slot ``d`` keeps holding block ``cursor - d``: the cached
        blocks the node can serve are re-queried, new events are forwarded and
        the current fingerprints are added to the block's own slot. Nothing is
        cleared or shifted.

        Args:
            head: Chain head of this tick, below ``cursor``
            cursor: Stored cursor, one past the last scanned head

        Returns:
            Fingerprints of the events forwarded by the re-check
        """
        targets = [
            (cursor - depth, depth)
            for depth in range(1, self.reorg_window + 1)
            if 0 <= cursor - depth <= head
        ]
        if not targets:
            return set()

        logger.info(f"Head {head} has not advanced, re-checking cached blocks in place")

        slots = await gather_all(*(self.store.get_slot(depth) for _, depth in targets))
        previous: set[str] = set().union(*slots)

        results: list[BlockRescan] = await gather_all(*(
            self._check_block(block_number, previous, depth)
            for block_number, depth in targets
        ))

        await gather_all(*(
            self.store.add_to_slot(result.depth, {event.fingerprint for event in result.current})
            for result in results
            if result.current
        ))

        return {event.fingerprint for result in results for event in result.new}
