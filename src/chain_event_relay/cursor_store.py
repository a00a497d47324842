#!/usr/bin/env python3
"""Cursor and shallow-cache persistence for the Chain Event Relay.

The store keeps two kinds of keys in Redis:

- ``BLOCK_SCAN``: the next block the forward scan starts from, as a decimal
  string. It only ever moves forward.
- ``events_pre_{depth}_block``: one set per depth ``1..N`` of the shallow
  window, holding the fingerprints seen at that depth during the previous
  tick. Sets are cleared wholesale, never trimmed.

The Redis client is created by the caller and passed in; this module keeps no
process-wide connection.
"""

import logging
from collections.abc import Iterable

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisCursorStore:
    """Durable cursor and per-depth fingerprint sets backed by Redis."""

    CURSOR_KEY = "BLOCK_SCAN"

    def __init__(
        self,
        client: redis.Redis,
        default_cursor: int,
        key_prefix: str = ""
    ) -> None:
        """
        Initialize the store.

        Args:
            client: Connected ``redis.asyncio`` client (``decode_responses=True``)
            default_cursor: Cursor returned when none has been stored yet
            key_prefix: Optional prefix for every key, to share a Redis database
        """
        self.client = client
        self.default_cursor = default_cursor
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, default_cursor: int, key_prefix: str = "") -> "RedisCursorStore":
        """
        Create a store with a new Redis client for the given URL.

        Args:
            url: Redis connection URL
            default_cursor: Cursor returned when none has been stored yet
            key_prefix: Optional key prefix

        Returns:
            RedisCursorStore owning the new client
        """
        client = redis.from_url(url, decode_responses=True)
        return cls(client, default_cursor=default_cursor, key_prefix=key_prefix)

    @property
    def cursor_key(self) -> str:
        return f"{self.key_prefix}{self.CURSOR_KEY}"

    def slot_key(self, depth: int) -> str:
        """Key of the fingerprint set for the given shallow-window depth."""
        if depth < 1:
            raise ValueError(f"Slot depth must be at least 1, got {depth}")
        return f"{self.key_prefix}events_pre_{depth}_block"

    async def ping(self) -> bool:
        """Check the connection; raises if Redis is unreachable."""
        return await self.client.ping()

    async def get_cursor(self) -> int:
        """Return the next block to scan from."""
        value = await self.client.get(self.cursor_key)
        return int(value) if value is not None else self.default_cursor

    async def set_cursor(self, block_number: int) -> int:
        """
        Advance the cursor.

        The cursor never moves backwards: a lower value than the stored one
        is ignored.

        Args:
            block_number: New cursor (next block to scan from)

        Returns:
            The cursor value stored after the call
        """
        current = await self.client.get(self.cursor_key)
        if current is not None and block_number < int(current):
            logger.warning(
                f"Refusing to move cursor backwards from {current} to {block_number}"
            )
            return int(current)

        await self.client.set(self.cursor_key, str(block_number))
        logger.debug(f"Cursor advanced to {block_number}")
        return block_number

    async def get_slot(self, depth: int) -> set[str]:
        """Return the fingerprints cached at ``depth``."""
        return set(await self.client.smembers(self.slot_key(depth)))

    async def add_to_slot(self, depth: int, fingerprints: Iterable[str]) -> int:
        """
        Add fingerprints to the set at ``depth``.

        Returns:
            Number of fingerprints newly added
        """
        members = list(fingerprints)
        if not members:
            return 0
        return await self.client.sadd(self.slot_key(depth), *members)

    async def clear_slot(self, depth: int) -> None:
        """Drop every fingerprint cached at ``depth``."""
        await self.client.delete(self.slot_key(depth))

    async def close(self) -> None:
        """Close the underlying Redis connection pool."""
        await self.client.aclose()
