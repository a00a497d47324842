#!/usr/bin/env python3
"""Connection supervision for the Chain Event Relay.

The supervisor owns the RPC handle of one endpoint and drives the poll timer:

    DISCONNECTED -> CONNECTING -> POLLING <-> RECONNECTING -> STOPPED

Any error escaping a tick tears the RPC handle down and reconnects after a
bounded exponential backoff with jitter. Connection attempts run in a loop
with an attempt counter, never by recursion. Until a first connection has
been established the attempts are bounded, so the bootstrap can fall back to
the next configured endpoint; after that they are unbounded.
"""

import asyncio
import logging
import random
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING

from web3 import AsyncHTTPProvider, AsyncWeb3

from .chain_reader import ChainReader
from .scheduler import Scheduler

if TYPE_CHECKING:
    from .config import RelayConfig
    from .cursor_store import RedisCursorStore
    from .event_decoder import EventDecoder
    from .forwarder import Forwarder

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    POLLING = "polling"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter_max: float = 1.0
) -> float:
    """
    Exponential backoff delay for the given attempt, with jitter.

    The exponential part is capped at ``max_delay``; the jitter never exceeds
    ``jitter_max`` nor the exponential part itself.

    Args:
        attempt: Attempt number, starting at 1
        base_delay: Delay of the first attempt in seconds
        max_delay: Cap of the exponential part in seconds
        jitter_max: Cap of the random jitter in seconds

    Returns:
        Delay in seconds
    """
    delay = min(base_delay * (2 ** max(attempt - 1, 0)), max_delay)
    return delay + random.uniform(0, min(jitter_max, delay))


def default_provider_factory(url: str) -> AsyncWeb3:
    """Create an AsyncWeb3 instance over HTTP for the given endpoint."""
    return AsyncWeb3(AsyncHTTPProvider(url))


class ConnectionSupervisor:
    """Keeps one RPC endpoint connected and polled."""

    def __init__(
        self,
        provider_url: str,
        config: "RelayConfig",
        store: "RedisCursorStore",
        forwarder: "Forwarder",
        decoder: "EventDecoder",
        provider_factory: Callable[[str], AsyncWeb3] = default_provider_factory
    ) -> None:
        """
        Initialize the supervisor.

        Args:
            provider_url: RPC endpoint this supervisor connects to
            config: Relay configuration
            store: Connected cursor/cache store (owned by the caller)
            forwarder: Forwarder to the event store (owned by the caller)
            decoder: Decoder for the watched contract's logs
            provider_factory: Builds the AsyncWeb3 handle for an endpoint
        """
        self.provider_url = provider_url
        self.config = config
        self.store = store
        self.forwarder = forwarder
        self.decoder = decoder
        self.provider_factory = provider_factory

        self.state = ConnectionState.DISCONNECTED
        self.w3: AsyncWeb3 | None = None
        self.scheduler: Scheduler | None = None

        self.has_connected = False
        self.consecutive_failures = 0
        self.reconnects = 0
        self._stop_event = asyncio.Event()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if a stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return self.stopping

    def _backoff(self, attempt: int) -> float:
        return backoff_delay(
            attempt,
            self.config.monitoring.reconnect_base_delay,
            self.config.monitoring.reconnect_max_delay,
        )

    async def _open(self) -> None:
        """Build and verify the RPC handle, check the store, build the scheduler."""
        w3 = self.provider_factory(self.provider_url)
        if not await w3.is_connected():
            raise ConnectionError(f"RPC endpoint {self.provider_url} is not reachable")

        expected_chain_id = self.config.source_chain.chain_id
        if expected_chain_id is not None:
            chain_id = await w3.eth.chain_id
            if chain_id != expected_chain_id:
                raise ConnectionError(
                    f"RPC endpoint {self.provider_url} serves chain {chain_id}, "
                    f"expected {expected_chain_id}"
                )

        await self.store.ping()

        source = self.config.source_chain
        monitoring = self.config.monitoring
        reader = ChainReader(
            w3,
            contract_address=source.contract_address,
            decoder=self.decoder,
            topics=source.topics,
            max_concurrency=monitoring.max_concurrency,
        )
        self.w3 = w3
        self.scheduler = Scheduler(
            reader,
            self.store,
            self.forwarder,
            reorg_window=monitoring.reorg_window,
            lookback_cap=monitoring.lookback_cap,
        )

    def _discard_connection(self) -> None:
        self.w3 = None
        self.scheduler = None

    async def connect(self) -> None:
        """
        Connect to the endpoint, retrying with backoff.

        Raises:
            ConnectionError: If no connection was ever established and
                ``max_connect_attempts`` attempts failed
        """
        self.state = ConnectionState.CONNECTING
        attempt = 0

        while not self.stopping:
            attempt += 1
            try:
                await self._open()
            except Exception as e:
                self._discard_connection()
                max_attempts = self.config.monitoring.max_connect_attempts
                if not self.has_connected and attempt >= max_attempts:
                    self.state = ConnectionState.DISCONNECTED
                    raise ConnectionError(
                        f"Could not connect to {self.provider_url} after {attempt} attempts: {e}"
                    ) from e

                delay = self._backoff(attempt)
                logger.warning(
                    f"Connection attempt {attempt} to {self.provider_url} failed: {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                if await self._wait(delay):
                    break
                continue

            self.has_connected = True
            self.state = ConnectionState.POLLING
            logger.info(f"Connected to {self.provider_url} (attempt {attempt})")
            return

        self.state = ConnectionState.STOPPED

    async def reconnect(self) -> None:
        """Tear down the RPC handle, back off and connect again."""
        self.state = ConnectionState.RECONNECTING
        self.reconnects += 1
        self.consecutive_failures += 1
        self._discard_connection()

        delay = self._backoff(self.consecutive_failures)
        logger.info(
            f"Reconnecting to {self.provider_url} in {delay:.1f}s "
            f"(consecutive failures: {self.consecutive_failures})"
        )
        if await self._wait(delay):
            self.state = ConnectionState.STOPPED
            return
        await self.connect()

    async def _poll(self) -> None:
        """Fire a tick every polling interval until stopped or a tick fails."""
        interval = self.config.monitoring.polling_interval
        while self.state is ConnectionState.POLLING and self.scheduler is not None:
            if await self._wait(interval):
                return
            result = await self.scheduler.tick()
            if result is not None:
                self.consecutive_failures = 0

    async def run(self) -> None:
        """
        Poll until stopped, reconnecting after any failed tick.

        Raises:
            ConnectionError: If the initial connection cannot be established
        """
        if self.state is not ConnectionState.POLLING:
            await self.connect()

        if not self.stopping:
            logger.info(
                f"Polling {self.config.source_chain.contract_address} via {self.provider_url} "
                f"every {self.config.monitoring.polling_interval} seconds"
            )

        while not self.stopping:
            try:
                await self._poll()
            except Exception as e:
                logger.error(f"Polling error: {e}", exc_info=True)
                await self.reconnect()

        self._discard_connection()
        self.state = ConnectionState.STOPPED
        logger.info(f"Stopped polling {self.provider_url}")

    def stop(self) -> None:
        """Request the polling loop to stop."""
        logger.info(f"Stopping supervisor for {self.provider_url}")
        self._stop_event.set()

    def get_status(self) -> dict:
        """
        Get current status of the supervisor.

        Returns:
            Dictionary with status information
        """
        scheduler = self.scheduler
        return {
            "state": self.state.value,
            "provider_url": self.provider_url,
            "reconnects": self.reconnects,
            "consecutive_failures": self.consecutive_failures,
            "ticks_completed": scheduler.ticks_completed if scheduler else 0,
            "ticks_skipped": scheduler.ticks_skipped if scheduler else 0,
        }
