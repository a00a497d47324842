#!/usr/bin/env python3
"""Unit tests for RedisCursorStore."""

from unittest.mock import MagicMock, patch

import pytest

from chain_event_relay.cursor_store import RedisCursorStore


class TestCursor:
    """Tests for the durable cursor."""

    @pytest.mark.asyncio
    async def test_default_when_missing(self, store):
        """Test that an empty store reports the configured default."""
        assert await store.get_cursor() == 100

    @pytest.mark.asyncio
    async def test_set_and_get(self, store, redis_client):
        """Test that the cursor is stored as a decimal string."""
        assert await store.set_cursor(151) == 151

        assert redis_client.values["BLOCK_SCAN"] == "151"
        assert await store.get_cursor() == 151

    @pytest.mark.asyncio
    async def test_never_moves_backwards(self, store, redis_client):
        """Test that a lower cursor is refused."""
        await store.set_cursor(200)

        assert await store.set_cursor(150) == 200
        assert redis_client.values["BLOCK_SCAN"] == "200"

    @pytest.mark.asyncio
    async def test_key_prefix(self, redis_client):
        """Test that every key carries the configured prefix."""
        store = RedisCursorStore(redis_client, default_cursor=0, key_prefix="relay:")

        await store.set_cursor(7)
        await store.add_to_slot(2, ["fp"])

        assert set(redis_client.values) == {"relay:BLOCK_SCAN"}
        assert set(redis_client.sets) == {"relay:events_pre_2_block"}


class TestSlots:
    """Tests for the shallow-window fingerprint sets."""

    @pytest.mark.asyncio
    async def test_add_and_read(self, store, redis_client):
        assert await store.add_to_slot(1, ["a", "b", "a"]) == 2

        assert await store.get_slot(1) == {"a", "b"}
        assert "events_pre_1_block" in redis_client.sets

    @pytest.mark.asyncio
    async def test_add_nothing(self, store, redis_client):
        """Test that an empty batch does not touch Redis."""
        assert await store.add_to_slot(3, []) == 0
        assert redis_client.sets == {}

    @pytest.mark.asyncio
    async def test_missing_slot_is_empty(self, store):
        assert await store.get_slot(4) == set()

    @pytest.mark.asyncio
    async def test_clear_slot(self, store):
        """Test that clearing drops the whole set and only that set."""
        await store.add_to_slot(1, ["a"])
        await store.add_to_slot(2, ["b"])

        await store.clear_slot(1)

        assert await store.get_slot(1) == set()
        assert await store.get_slot(2) == {"b"}

    def test_depth_must_be_positive(self, store):
        with pytest.raises(ValueError, match="at least 1"):
            store.slot_key(0)


class TestLifecycle:
    """Tests for client creation and shutdown."""

    def test_from_url_decodes_responses(self):
        """Test that the client is created with string responses."""
        with patch("chain_event_relay.cursor_store.redis.from_url") as mock_from_url:
            mock_from_url.return_value = MagicMock()
            store = RedisCursorStore.from_url("redis://cache:6379/1", default_cursor=5)

        mock_from_url.assert_called_once_with("redis://cache:6379/1", decode_responses=True)
        assert store.client is mock_from_url.return_value
        assert store.default_cursor == 5

    @pytest.mark.asyncio
    async def test_ping_and_close(self, store, redis_client):
        assert await store.ping() is True

        await store.close()

        assert redis_client.closed
