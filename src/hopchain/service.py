"""
Block hash pusher service.

This module contains the off-chain job that keeps a child chain's buffer
fed: every polling interval it pushes the next contiguous range of sealed
parent blocks that has not been pushed yet.
"""

import asyncio
import logging
from typing import Any

from .config import HopChainConfig
from .devnet import Devnet
from .errors import HopChainError

logger = logging.getLogger(__name__)


class BlockHashPusherService:
    """
    Periodically pushes parent-chain block hashes to the child-chain buffer.

    Pushing is fire-and-forget; delivery is the bridge's job. The service
    tracks the next block to push itself, starting after whatever the buffer
    already holds.
    """

    MAX_RETRY_DELAY = 30  # seconds

    def __init__(self, devnet: Devnet, config: HopChainConfig) -> None:
        """
        Initialize the service.

        Args:
            devnet: Chains and contracts to operate on
            config: Service configuration
        """
        self.devnet = devnet
        self.config = config
        self.running = False
        self.shutdown_event = asyncio.Event()

        self.next_block = devnet.buffer.newest_block_number() + 1
        self.pushes = 0
        self.blocks_pushed = 0
        self.failures = 0
        self.retries = 0
        self.skipped_blocks = 0

    def next_batch(self) -> tuple[int, int] | None:
        """
        Compute the next range to push.

        Returns:
            ``(first_block_number, batch_size)`` or None if nothing new is sealed
        """
        parent = self.devnet.parent
        newest_sealed = parent.block_number - 1
        oldest_available = max(1, parent.block_number - parent.history_window)

        if self.next_block < oldest_available:
            skipped = oldest_available - self.next_block
            logger.warning(f"Blocks {self.next_block}..{oldest_available - 1} left the history window, "
                           f"skipping {skipped}")
            self.skipped_blocks += skipped
            self.next_block = oldest_available

        if self.next_block > newest_sealed:
            return None
        return self.next_block, min(self.config.monitoring.batch_size, newest_sealed - self.next_block + 1)

    async def push_once(self) -> bool:
        """
        Push the next range, retrying failed transactions.

        Returns:
            True if a batch was pushed, False if there was nothing to push or all attempts failed
        """
        if (batch := self.next_batch()) is None:
            logger.debug("No new parent blocks to push")
            return False

        first_block_number, batch_size = batch
        last_block_number = first_block_number + batch_size - 1
        attempts = self.config.monitoring.retry_count + 1

        for attempt in range(1, attempts + 1):
            try:
                message_id = self.devnet.push(first_block_number, batch_size)
            except HopChainError as e:
                self.failures += 1
                logger.error(f"✗ Push of blocks {first_block_number}..{last_block_number} failed "
                             f"(attempt {attempt}/{attempts}): {e}")
                if attempt < attempts:
                    self.retries += 1
                    await asyncio.sleep(min(2 ** attempt, self.MAX_RETRY_DELAY))
                continue

            self.pushes += 1
            self.blocks_pushed += batch_size
            self.next_block = last_block_number + 1
            logger.info(f"✓ Pushed blocks {first_block_number}..{last_block_number} "
                        f"(message {message_id.hex()})")
            return True

        return False

    def get_stats(self) -> dict[str, Any]:
        """Get current service statistics.

        Returns:
            Dictionary of statistic names to values
        """
        return {
            "pushes": self.pushes,
            "blocks_pushed": self.blocks_pushed,
            "failures": self.failures,
            "retries": self.retries,
            "skipped_blocks": self.skipped_blocks,
            "next_block": self.next_block,
            "buffer_newest_block": self.devnet.buffer.newest_block_number(),
            "pending_messages": len(self.devnet.channel.pending()),
            "delivered_messages": self.devnet.channel.metrics['delivered'],
        }

    def log_stats(self) -> None:
        stats = self.get_stats()
        logger.info(
            f"Pusher Stats: "
            f"Pushes={stats['pushes']}, "
            f"Blocks={stats['blocks_pushed']}, "
            f"Failures={stats['failures']}, "
            f"Buffer newest={stats['buffer_newest_block']}, "
            f"Pending={stats['pending_messages']}"
        )

    async def run(self, max_rounds: int | None = None) -> None:
        """
        Main loop: push, then wait ``polling_interval`` seconds.

        Args:
            max_rounds: Stop after this many rounds (None runs until ``stop``)
        """
        self.running = True
        interval = self.config.monitoring.polling_interval
        logger.info("Block hash pusher starting...")
        logger.info(f"Polling interval: {interval}s, batch size: {self.config.monitoring.batch_size}")

        rounds = 0
        try:
            while self.running:
                try:
                    await self.push_once()
                except Exception as e:
                    logger.error(f"Error in push loop: {e}", exc_info=True)

                rounds += 1
                if rounds % 10 == 0:
                    self.log_stats()
                if max_rounds is not None and rounds >= max_rounds:
                    break

                try:
                    await asyncio.wait_for(self.shutdown_event.wait(), timeout=interval)
                    break
                except asyncio.TimeoutError:
                    pass
        finally:
            self.running = False
            self.log_stats()
            logger.info("Block hash pusher stopped")

    def stop(self) -> None:
        """Stop the service."""
        self.running = False
        self.shutdown_event.set()
