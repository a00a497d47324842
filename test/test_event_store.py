#!/usr/bin/env python3
"""Unit tests for EventStoreClient."""

import json

import httpx
import pytest

from chain_event_relay.event_store import EventStoreClient
from chain_event_relay.models import BlockRange, Event

BASE_URL = "http://event-store.test:4000/api/v1/event"

EVENT = Event(
    from_address="0xSender",
    to_address="0xContract",
    event_data={"value": "1"},
    block_hash="0xblock",
    block_number=42,
    transaction_hash="0xtx",
)


class Recorder:
    """httpx transport handler replaying canned responses."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def make_client(recorder: Recorder, retry_attempts: int = 2) -> EventStoreClient:
    return EventStoreClient(
        BASE_URL,
        retry_attempts=retry_attempts,
        retry_delay=0,
        transport=httpx.MockTransport(recorder),
    )


class TestCreateEvent:
    """Tests for POSTing events."""

    @pytest.mark.asyncio
    async def test_posts_wire_format(self):
        """Test that the event is POSTed as JSON to the event resource."""
        recorder = Recorder(httpx.Response(201, json=EVENT.to_dict()))
        client = make_client(recorder)

        created = await client.create_event(EVENT)

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/v1/event/"
        assert json.loads(request.content) == EVENT.to_dict()
        assert created == EVENT
        await client.close()

    @pytest.mark.asyncio
    async def test_empty_response_echoes_event(self):
        recorder = Recorder(httpx.Response(204))
        client = make_client(recorder)

        assert await client.create_event(EVENT) == EVENT
        await client.close()

    @pytest.mark.asyncio
    async def test_partial_echo_returns_event(self):
        """Test that an echo missing required fields still counts as created."""
        recorder = Recorder(httpx.Response(201, json={"id": 7, "transactionHash": "0xtx"}))
        client = make_client(recorder)

        assert await client.create_event(EVENT) == EVENT
        await client.close()

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        """Test that a 503 followed by success is retried transparently."""
        recorder = Recorder(
            httpx.Response(503),
            httpx.Response(429),
            httpx.Response(201, json=EVENT.to_dict()),
        )
        client = make_client(recorder)

        assert await client.create_event(EVENT) == EVENT
        assert len(recorder.requests) == 3
        await client.close()

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self):
        """Test that a 400 fails immediately."""
        recorder = Recorder(httpx.Response(400, json={"error": "bad event"}))
        client = make_client(recorder)

        with pytest.raises(httpx.HTTPStatusError):
            await client.create_event(EVENT)
        assert len(recorder.requests) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_retries_exhausted(self):
        """Test that the last error is raised once retries run out."""
        recorder = Recorder(httpx.Response(500), httpx.Response(502), httpx.Response(503))
        client = make_client(recorder, retry_attempts=2)

        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await client.create_event(EVENT)
        assert exc_info.value.response.status_code == 503
        assert len(recorder.requests) == 3
        await client.close()


class TestQueries:
    """Tests for the read endpoints."""

    @pytest.mark.asyncio
    async def test_by_block(self):
        recorder = Recorder(httpx.Response(200, json=[EVENT.to_dict()]))
        client = make_client(recorder)

        events = await client.get_events_by_block(42)

        request = recorder.requests[0]
        assert request.url.path.rstrip("/") == "/api/v1/event"
        assert request.url.params["block"] == "42"
        assert events == [EVENT]
        await client.close()

    @pytest.mark.asyncio
    async def test_by_transaction(self):
        recorder = Recorder(httpx.Response(200, json=[EVENT.to_dict()]))
        client = make_client(recorder)

        events = await client.get_events_by_transaction("0xtx")

        assert recorder.requests[0].url.path == "/api/v1/event/0xtx"
        assert events == [EVENT]
        await client.close()

    @pytest.mark.asyncio
    async def test_by_block_range(self):
        recorder = Recorder(httpx.Response(200, json=[]))
        client = make_client(recorder)

        events = await client.get_events_by_block_range(BlockRange(block_start=10, block_end=20))

        request = recorder.requests[0]
        assert request.url.path == "/api/v1/event/range"
        assert request.url.params["blockStart"] == "10"
        assert request.url.params["blockEnd"] == "20"
        assert events == []
        await client.close()
