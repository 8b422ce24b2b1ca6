#!/usr/bin/env python3
"""Entry point for the hopchain block hash pusher.

Starts a local parent/child devnet, produces blocks on both chains and runs
the pusher service that keeps the child chain's buffer of parent block
hashes up to date.
"""

import argparse
import asyncio
import logging
import os
import sys


# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


# Get logger for this module
logger = logging.getLogger(__name__)

from hopchain.config import HopChainConfig
from hopchain.devnet import Devnet
from hopchain.service import BlockHashPusherService


async def main() -> None:
    """Main entry point for the block hash pusher.

    Parses startup arguments, loads configuration from environment,
    builds the devnet and runs block production alongside the pusher.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="hopchain Block Hash Pusher - Feed parent block hashes to a child chain buffer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  PARENT_CHAIN_ID          - Parent chain ID (default: 1)
  CHILD_CHAIN_ID           - Child chain ID (default: 42161)
  BRIDGE                   - arbitrum or optimism (default: arbitrum)
  BLOCK_TIME               - Seconds per block (default: 12)
  BUFFER_SIZE              - Ring buffer size (default: 393168)
  POLLING_INTERVAL         - Push interval in seconds (default: 12)
  PUSH_BATCH_SIZE          - Max blocks per push (default: 256)
  RETRY_COUNT              - Retries per push (default: 3)
  OPERATOR_ADDRESS         - Account sending pushes
  LOG_LEVEL                - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--rounds",
        type=int,
        default=None,
        help="Stop after this many push rounds (default: run until interrupted)"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args: argparse.Namespace = parser.parse_args()

    setup_logging(args.log_level)

    if rounds_msg := (f"({args.rounds} rounds)" if args.rounds else ""):
        logger.info(f"=== hopchain Pusher Starting {rounds_msg} ===")
    else:
        logger.info("=== hopchain Pusher Starting ===")

    logger.info("Loading configuration from environment...")

    try:
        config: HopChainConfig = HopChainConfig.from_env()
        logger.info("Configuration loaded successfully")
        config.log_config()

        devnet: Devnet = Devnet(config)
        service: BlockHashPusherService = BlockHashPusherService(devnet, config)
        producer = asyncio.create_task(devnet.produce_blocks(service.shutdown_event))
        try:
            await service.run(max_rounds=args.rounds)
        finally:
            service.stop()
            await producer

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - PARENT_CHAIN_ID / CHILD_CHAIN_ID: must be distinct positive integers")
        logger.error("  - BRIDGE: arbitrum or optimism")
        logger.error("  - PUSH_BATCH_SIZE: between 1 and 8191, at most BUFFER_SIZE")
        logger.error("  - OPERATOR_ADDRESS: valid Ethereum address")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("\nReceived interrupt signal, shutting down gracefully...")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
