#!/usr/bin/env python3
"""HTTP client for the downstream event store.

Transport-level retries for rate limiting (429) and server errors (5xx) live
here, so callers only ever see the final outcome of a request.
"""

import asyncio
import logging
from typing import Any

import httpx

from .models import BlockRange, Event

logger = logging.getLogger(__name__)


class EventStoreClient:
    """Async client for the event store ``/api/v1/event`` resource."""

    RETRY_STATUS_CODES = frozenset({429})

    def __init__(
        self,
        base_url: str,
        timeout: float = 30,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Base URL of the event resource, e.g. http://localhost:4000/api/v1/event
            timeout: Request timeout in seconds
            retry_attempts: Retries on 429/5xx before giving up
            retry_delay: Base delay in seconds, multiplied by the attempt number
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    def _should_retry(self, response: httpx.Response) -> bool:
        return (
            response.status_code in self.RETRY_STATUS_CODES
            or response.status_code >= 500
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Send a request, retrying on 429/5xx.

        Raises:
            httpx.HTTPStatusError: On a non-retryable error status, or when
                retries are exhausted
            httpx.RequestError: On transport failures
        """
        attempt = 0
        while True:
            response = await self.client.request(method, path, **kwargs)

            if self._should_retry(response) and attempt < self.retry_attempts:
                attempt += 1
                delay = self.retry_delay * attempt
                logger.debug(
                    f"{method} {path} returned {response.status_code}, "
                    f"retry {attempt}/{self.retry_attempts} in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
                continue

            if response.is_error:
                logger.error(
                    f"Event store error: {method} {path} -> "
                    f"{response.status_code} {response.text[:200]}"
                )
            response.raise_for_status()
            return response.json() if response.content else None

    async def create_event(self, event: Event) -> Event:
        """
        Store an event.

        Args:
            event: Event to create

        Returns:
            The created Event as echoed by the store, or ``event`` itself when
            the store echoes nothing usable
        """
        data = await self._request("POST", "/", json=event.to_dict())
        if not data:
            return event
        try:
            return Event.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            # The write succeeded; only the echo is malformed
            logger.warning(f"Unparseable event store echo for {event.transaction_hash}: {e}")
            return event

    async def get_events_by_block(self, block_identifier: str | int) -> list[Event]:
        """Fetch events by block number or hash."""
        data = await self._request("GET", "", params={"block": str(block_identifier)})
        return [Event.from_dict(item) for item in data or []]

    async def get_events_by_transaction(self, transaction_hash: str) -> list[Event]:
        """Fetch events emitted by a transaction."""
        data = await self._request("GET", f"/{transaction_hash}")
        return [Event.from_dict(item) for item in data or []]

    async def get_events_by_block_range(self, block_range: BlockRange) -> list[Event]:
        """Fetch events within an inclusive block range."""
        data = await self._request(
            "GET",
            "/range",
            params={
                "blockStart": block_range.block_start,
                "blockEnd": block_range.block_end,
            },
        )
        return [Event.from_dict(item) for item in data or []]

    async def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self.client.aclose()
