#!/usr/bin/env python3
"""Configuration management for the Chain Event Relay.

Every setting of the relay lives in a frozen dataclass that validates itself
on construction. RelayConfig.from_env() builds the whole tree from environment
variables; only the RPC endpoints and the contract address are required.
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from web3 import Web3

logger = logging.getLogger(__name__)


def parse_csv_list(raw: str) -> tuple[str, ...]:
    """Parse a comma separated list, tolerating ``['a', 'b']`` style input."""
    cleaned = raw.translate(str.maketrans("", "", "[]'\""))
    return tuple(item.strip() for item in cleaned.split(",") if item.strip())


@dataclass(frozen=True, slots=True)
class SourceChainConfig:
    """Configuration for the watched chain and contract.

    Attributes:
        provider_urls: HTTP(S) RPC endpoints in priority order
        contract_address: Checksummed address of the watched contract
        abi_path: Path of the JSON artifact holding the contract ABI
        topics: Optional topic0 filters for eth_getLogs
        chain_id: Expected chain ID (None to accept whatever the RPC reports)
    """

    provider_urls: tuple[str, ...]
    contract_address: str
    abi_path: str = "contracts/Contract.json"
    topics: tuple[str, ...] = ()
    chain_id: int | None = None

    def __post_init__(self) -> None:
        """Check endpoints, address and topic filters."""
        if not self.provider_urls:
            raise ValueError("At least one RPC provider URL is required (RPC_PROVIDER_URLS)")

        for url in self.provider_urls:
            parsed = urlparse(url)
            if parsed.scheme not in ('http', 'https'):
                raise ValueError(
                    f"Invalid RPC URL scheme: {parsed.scheme or url}. "
                    "Expected http or https"
                )

        if not self.contract_address:
            raise ValueError("Contract address is required (CONTRACT_ADDRESS)")

        if not Web3.is_address(self.contract_address):
            raise ValueError(f"Invalid contract address: {self.contract_address}")

        checksummed = Web3.to_checksum_address(self.contract_address)
        if checksummed != self.contract_address:
            # Frozen dataclass
            object.__setattr__(self, 'contract_address', checksummed)

        for topic in self.topics:
            if not (topic.startswith('0x') and len(topic) == 66):
                raise ValueError(f"Invalid topic filter (expected 32-byte hex): {topic}")


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Configuration for the cursor/cache store and the downstream event store.

    Attributes:
        redis_url: Redis connection URL for the cursor and shallow cache
        key_prefix: Optional prefix for every Redis key
        event_store_host: Host of the event store HTTP API
        event_store_port: Port of the event store HTTP API
    """

    redis_url: str = "redis://localhost:6379"
    key_prefix: str = ""
    event_store_host: str = "localhost"
    event_store_port: int = 4000

    def __post_init__(self) -> None:
        """Validate storage configuration."""
        parsed = urlparse(self.redis_url)
        if parsed.scheme not in ('redis', 'rediss', 'unix'):
            raise ValueError(
                f"Invalid Redis URL scheme: {parsed.scheme or self.redis_url}. "
                "Expected redis, rediss or unix"
            )

        if not self.event_store_host:
            raise ValueError("Event store host is required (EVENT_STORE_HOST)")

        if not 0 < self.event_store_port < 65536:
            raise ValueError(f"Invalid event store port: {self.event_store_port}")

    @property
    def event_store_url(self) -> str:
        """Base URL of the event resource on the event store."""
        return f"http://{self.event_store_host}:{self.event_store_port}/api/v1/event"

    @property
    def redis_url_redacted(self) -> str:
        """Redis URL with the password, if any, replaced by ``[SET]``."""
        parsed = urlparse(self.redis_url)
        if parsed.password is None:
            return self.redis_url
        host = parsed.netloc.rpartition("@")[2]
        return parsed._replace(netloc=f"{parsed.username or ''}:[SET]@{host}").geturl()


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Configuration for polling, reorg handling and retries."""
    polling_interval: float = 12  # seconds between ticks
    reorg_window: int = 5  # shallow window re-checked every tick
    lookback_cap: int = 50_000  # max blocks behind head a scan may start
    default_block_scan: int = 2000  # starting cursor when none is stored
    request_timeout: float = 30  # event store HTTP timeout in seconds
    retry_attempts: int = 1  # event store retries on 429/5xx
    retry_delay: float = 1.0  # seconds, multiplied by the attempt number
    reconnect_base_delay: float = 1.0
    reconnect_max_delay: float = 60.0
    max_connect_attempts: int = 5  # per endpoint, before any connection succeeded
    max_concurrency: int = 16  # concurrent RPC lookups / forwards within a tick

    def __post_init__(self) -> None:
        """Check polling, window and retry bounds."""
        if self.polling_interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {self.polling_interval}")
        if self.polling_interval > 300:
            raise ValueError(f"Polling interval too long (max 300s), got {self.polling_interval}")

        if self.reorg_window < 1:
            raise ValueError(f"Reorg window must be at least 1, got {self.reorg_window}")
        if self.reorg_window > 128:
            raise ValueError(f"Reorg window too large (max 128), got {self.reorg_window}")

        if self.lookback_cap <= self.reorg_window:
            raise ValueError(
                f"Lookback cap must exceed the reorg window, got {self.lookback_cap}"
            )

        if self.default_block_scan < 0:
            raise ValueError(f"Default block scan must be non-negative, got {self.default_block_scan}")

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")

        if self.retry_attempts < 0:
            raise ValueError(f"Retry attempts must be non-negative, got {self.retry_attempts}")
        if self.retry_attempts > 10:
            raise ValueError(f"Retry attempts too high (max 10), got {self.retry_attempts}")

        if self.retry_delay < 0:
            raise ValueError(f"Retry delay must be non-negative, got {self.retry_delay}")

        if self.reconnect_base_delay < 0 or self.reconnect_max_delay < self.reconnect_base_delay:
            raise ValueError(
                "Reconnect delays must satisfy 0 <= base <= max, got "
                f"base={self.reconnect_base_delay}, max={self.reconnect_max_delay}"
            )

        if self.max_connect_attempts < 1:
            raise ValueError(f"Max connect attempts must be at least 1, got {self.max_connect_attempts}")

        if self.max_concurrency < 1:
            raise ValueError(f"Max concurrency must be at least 1, got {self.max_concurrency}")


@dataclass(frozen=True, slots=True)
class RelayConfig:
    """Main configuration for the Chain Event Relay.

    Attributes:
        source_chain: Watched chain, endpoints and contract
        storage: Cursor/cache store and downstream event store
        monitoring: Polling, reorg window and retry settings
    """

    source_chain: SourceChainConfig
    storage: StorageConfig = field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Load configuration from environment variables.

        Returns:
            RelayConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        provider_urls = parse_csv_list(os.environ.get("RPC_PROVIDER_URLS", ""))
        if not provider_urls:
            raise ValueError(
                "RPC_PROVIDER_URLS environment variable is required. "
                "Example: https://rpc-a.example.org,https://rpc-b.example.org"
            )

        contract_address = os.environ.get("CONTRACT_ADDRESS", "")
        if not contract_address:
            raise ValueError(
                "CONTRACT_ADDRESS environment variable is required. "
                "This should be the address of the contract whose events are relayed."
            )

        chain_id = os.environ.get("CHAIN_ID")
        topics = parse_csv_list(os.environ.get("EVENT_TOPICS", ""))

        source_config = SourceChainConfig(
            provider_urls=provider_urls,
            contract_address=contract_address,
            abi_path=os.environ.get("CONTRACT_ABI_PATH", "contracts/Contract.json"),
            topics=topics,
            chain_id=int(chain_id) if chain_id else None,
        )

        redis_host = os.environ.get("REDIS_HOST", "localhost")
        redis_port = os.environ.get("REDIS_PORT", "6379")
        storage_config = StorageConfig(
            redis_url=os.environ.get("REDIS_URL", f"redis://{redis_host}:{redis_port}"),
            key_prefix=os.environ.get("REDIS_KEY_PREFIX", ""),
            event_store_host=os.environ.get("EVENT_STORE_HOST", "localhost"),
            event_store_port=int(os.environ.get("EVENT_STORE_PORT", "4000")),
        )

        monitoring_config = MonitoringConfig(
            polling_interval=float(os.environ.get("POLLING_INTERVAL", "12")),
            reorg_window=int(os.environ.get("REORG_WINDOW", "5")),
            lookback_cap=int(os.environ.get("LOOKBACK_CAP", "50000")),
            default_block_scan=int(os.environ.get("DEFAULT_BLOCK_SCAN", "2000")),
            request_timeout=float(os.environ.get("REQUEST_TIMEOUT", "30")),
            retry_attempts=int(os.environ.get("RETRY_ATTEMPTS", "1")),
            retry_delay=float(os.environ.get("RETRY_DELAY", "1.0")),
            reconnect_base_delay=float(os.environ.get("RECONNECT_BASE_DELAY", "1.0")),
            reconnect_max_delay=float(os.environ.get("RECONNECT_MAX_DELAY", "60.0")),
            max_connect_attempts=int(os.environ.get("MAX_CONNECT_ATTEMPTS", "5")),
            max_concurrency=int(os.environ.get("MAX_CONCURRENCY", "16")),
        )

        return cls(
            source_chain=source_config,
            storage=storage_config,
            monitoring=monitoring_config,
        )

    def log_config(self) -> None:
        """Log the effective configuration, one setting per line."""
        logger.info("=" * 60)
        logger.info("Chain Event Relay Configuration")
        logger.info("=" * 60)

        logger.info("Source Chain:")
        for priority, url in enumerate(self.source_chain.provider_urls, start=1):
            logger.info(f"  RPC URL #{priority}: {url}")
        logger.info(f"  Contract: {self.source_chain.contract_address}")
        logger.info(f"  ABI: {self.source_chain.abi_path}")
        if self.source_chain.topics:
            logger.info(f"  Topics: {', '.join(self.source_chain.topics)}")
        if self.source_chain.chain_id is not None:
            logger.info(f"  Chain ID: {self.source_chain.chain_id}")

        logger.info("Storage:")
        logger.info(f"  Redis: {self.storage.redis_url_redacted}")
        logger.info(f"  Event Store: {self.storage.event_store_url}")

        logger.info("Monitoring Settings:")
        logger.info(f"  Polling Interval: {self.monitoring.polling_interval} seconds")
        logger.info(f"  Reorg Window: {self.monitoring.reorg_window} blocks")
        logger.info(f"  Lookback Cap: {self.monitoring.lookback_cap} blocks")
        logger.info(f"  Default Block Scan: {self.monitoring.default_block_scan}")
        logger.info(f"  Retry Attempts: {self.monitoring.retry_attempts}")

        logger.info("=" * 60)
