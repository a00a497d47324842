#!/usr/bin/env python3
"""Forwarding of decoded events to the downstream event store.

Forwarding is fire-and-forget relative to the scan cycle: a failed write is
logged and counted, never raised and never queued for retry at this layer.
Delivery is therefore at-least-once with best-effort dedup, not exactly-once.
"""

import asyncio
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from .models import Event

if TYPE_CHECKING:
    from .event_store import EventStoreClient

logger = logging.getLogger(__name__)


class Forwarder:
    """Pushes events to the event store and keeps delivery metrics."""

    def __init__(self, event_store: "EventStoreClient", max_concurrency: int = 16) -> None:
        """
        Initialize the forwarder.

        Args:
            event_store: Client of the downstream event store
            max_concurrency: Max concurrent writes to the event store
        """
        self.event_store = event_store
        self._semaphore = asyncio.Semaphore(max_concurrency)

        # Metrics tracking
        self.events_forwarded = 0
        self.events_failed = 0

    async def forward(self, event: Event) -> bool:
        """
        Forward one event to the event store.

        Args:
            event: The event to forward

        Returns:
            True if the store accepted the event, False if it was dropped
        """
        try:
            async with self._semaphore:
                await self.event_store.create_event(event)
        except Exception as e:
            self.events_failed += 1
            logger.error(f"Dropping {event}: forward failed: {e}")
            return False

        self.events_forwarded += 1
        logger.debug(f"Forwarded {event}")
        return True

    async def forward_all(self, events: Iterable[Event]) -> int:
        """
        Forward events concurrently; one failure never affects the others.

        Returns:
            Number of events the store accepted
        """
        results = await asyncio.gather(*(self.forward(event) for event in events))
        return sum(results)

    def get_stats(self) -> dict[str, int]:
        """
        Get current forwarding statistics.

        Returns:
            Dictionary of metric names to values
        """
        return {
            "events_forwarded": self.events_forwarded,
            "events_failed": self.events_failed,
        }

    def log_metrics(self) -> None:
        """Log current forwarding metrics."""
        stats = self.get_stats()
        logger.info(
            f"Forwarder Metrics: "
            f"Forwarded={stats['events_forwarded']}, "
            f"Failed={stats['events_failed']}"
        )
