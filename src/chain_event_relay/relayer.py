"""
Chain Event Relay service.

This module contains the main relay service that wires the components
together, falls back across RPC endpoints at startup and manages the
lifecycle of the owned clients.
"""

import asyncio
import logging
from collections.abc import Callable

from web3 import AsyncWeb3

from .config import RelayConfig
from .cursor_store import RedisCursorStore
from .event_decoder import EventDecoder
from .event_store import EventStoreClient
from .forwarder import Forwarder
from .supervisor import ConnectionSupervisor, default_provider_factory
from .utils.contract_utility import load_contract_abi

logger = logging.getLogger(__name__)


class EventRelay:
    """
    Main relay service: owns the store clients and the active supervisor.

    This class focuses on wiring and lifecycle management, delegating the
    polling itself to the ConnectionSupervisor of the endpoint in use.
    """

    STATUS_LOG_INTERVAL = 60  # seconds

    def __init__(
        self,
        config: RelayConfig,
        store: RedisCursorStore,
        event_store: EventStoreClient,
        decoder: EventDecoder,
        provider_factory: Callable[[str], AsyncWeb3] = default_provider_factory
    ) -> None:
        """
        Initialize the relay.

        Args:
            config: Relay configuration
            store: Cursor/cache store
            event_store: Downstream event store client
            decoder: Decoder for the watched contract
            provider_factory: Builds the AsyncWeb3 handle for an endpoint
        """
        self.config = config
        self.store = store
        self.event_store = event_store
        self.decoder = decoder
        self.provider_factory = provider_factory
        self.forwarder = Forwarder(event_store, max_concurrency=config.monitoring.max_concurrency)

        self.supervisor: ConnectionSupervisor | None = None
        self.running = False
        self.stop_requested = False

    @classmethod
    def from_config(cls, config: RelayConfig) -> "EventRelay":
        """
        Create a relay and its clients from a configuration.

        Raises:
            ValueError: If the ABI file cannot be loaded
        """
        abi = load_contract_abi(config.source_chain.abi_path)
        store = RedisCursorStore.from_url(
            config.storage.redis_url,
            default_cursor=config.monitoring.default_block_scan,
            key_prefix=config.storage.key_prefix,
        )
        event_store = EventStoreClient(
            config.storage.event_store_url,
            timeout=config.monitoring.request_timeout,
            retry_attempts=config.monitoring.retry_attempts,
            retry_delay=config.monitoring.retry_delay,
        )
        return cls(config, store, event_store, EventDecoder(abi))

    @classmethod
    def from_env(cls) -> "EventRelay":
        """
        Create an EventRelay instance from environment variables.

        Raises:
            ValueError: If required environment variables are missing
        """
        config = RelayConfig.from_env()
        config.log_config()
        return cls.from_config(config)

    def create_supervisor(self, provider_url: str) -> ConnectionSupervisor:
        return ConnectionSupervisor(
            provider_url,
            self.config,
            self.store,
            self.forwarder,
            self.decoder,
            provider_factory=self.provider_factory,
        )

    async def start(self) -> ConnectionSupervisor | None:
        """
        Connect to the first reachable endpoint, in priority order.

        The supervisor being connected is exposed as ``self.supervisor`` so a
        stop requested meanwhile reaches it.

        Returns:
            The connected supervisor, or None if a stop was requested before
            any endpoint connected

        Raises:
            ConnectionError: If every configured endpoint failed
        """
        urls = self.config.source_chain.provider_urls
        for priority, url in enumerate(urls, start=1):
            if self.stop_requested:
                break
            supervisor = self.create_supervisor(url)
            self.supervisor = supervisor
            try:
                await supervisor.connect()
            except ConnectionError as e:
                logger.error(f"Endpoint #{priority} ({url}) unavailable: {e}")
                continue

            return supervisor

        if self.stop_requested:
            logger.info("Stop requested during startup")
            return None
        raise ConnectionError(f"None of the {len(urls)} configured RPC endpoints could be reached")

    async def _periodic_status_logger(self) -> None:
        """Log status periodically while running."""
        while self.running:
            await asyncio.sleep(self.STATUS_LOG_INTERVAL)
            self.forwarder.log_metrics()
            if self.supervisor:
                status = self.supervisor.get_status()
                logger.info(
                    f"Status: {status['state']} on {status['provider_url']}, "
                    f"{status['ticks_completed']} ticks, {status['reconnects']} reconnects"
                )

    async def run(self) -> None:
        """Main loop: connect, poll until stopped, then release the clients."""
        self.running = True
        logger.info("Chain Event Relay starting...")

        status_task = asyncio.create_task(self._periodic_status_logger())
        try:
            supervisor = await self.start()
            if supervisor is not None:
                await supervisor.run()
        finally:
            self.running = False
            status_task.cancel()
            try:
                await status_task
            except asyncio.CancelledError:
                pass  # Expected when cancelling
            await self.close()
            logger.info("Chain Event Relay stopped")

    def stop(self) -> None:
        """Stop the relay service."""
        self.running = False
        self.stop_requested = True
        if self.supervisor:
            self.supervisor.stop()

    async def close(self) -> None:
        """Close the owned store and HTTP clients."""
        await self.event_store.close()
        await self.store.close()
