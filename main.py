#!/usr/bin/env python3
"""Entry point for the Chain Event Relay service.

Polls a contract's events on an EVM chain and forwards them to the event
store until SIGINT/SIGTERM.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

from chain_event_relay.relayer import EventRelay

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging.

    Args:
        level: Name of the logging level; unknown names fall back to INFO
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Chain Event Relay - forward contract events to the event store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  RPC_PROVIDER_URLS     - Comma separated RPC endpoints, in priority order
  CONTRACT_ADDRESS      - Address of the contract whose events are relayed
  CONTRACT_ABI_PATH     - ABI artifact (default: contracts/Contract.json)
  REDIS_URL             - Cursor/cache store (default: redis://localhost:6379)
  EVENT_STORE_HOST      - Event store host (default: localhost)
  EVENT_STORE_PORT      - Event store port (default: 4000)
  POLLING_INTERVAL      - Seconds between polls (default: 12)
  REORG_WINDOW          - Blocks re-checked for reorgs (default: 5)
  LOOKBACK_CAP          - Max blocks behind head to catch up (default: 50000)
  DEFAULT_BLOCK_SCAN    - Starting block when no cursor is stored (default: 2000)
  LOG_LEVEL             - Logging level (overridden by --log-level)
        """
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: $LOG_LEVEL or INFO)"
    )
    return parser.parse_args(argv)


async def main() -> None:
    """Load the configuration, then relay events until stopped.

    Raises:
        SystemExit: With status 1 on configuration or startup errors
    """
    args = parse_args()
    setup_logging(args.log_level)

    logger.info("=== Chain Event Relay Starting ===")

    try:
        relay = EventRelay.from_env()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, relay.stop)

        await relay.run()

    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        logger.error("Required environment variables:")
        logger.error("  - RPC_PROVIDER_URLS: RPC endpoints in priority order")
        logger.error("  - CONTRACT_ADDRESS: Contract whose events are relayed")
        logger.error("  - CONTRACT_ABI_PATH: ABI artifact of that contract")
        sys.exit(1)

    except ConnectionError as e:
        logger.error(f"Startup failed: {e}")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
