#!/usr/bin/env python3
"""Configuration management for hopchain.

This module provides type-safe configuration dataclasses with validation for
the block hash pusher service and the local devnet it drives. Configuration
is loaded from environment variables with sensible defaults.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import ClassVar

from web3 import Web3

from .buffer import BUFFER_SIZE
from .pusher import MAX_BATCH_SIZE

# Get logger for this module
logger = logging.getLogger(__name__)

DEFAULT_OPERATOR_ADDRESS = "0x5000000000000000000000000000000000000005"


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Configuration for one chain.

    Attributes:
        chain_id: EIP-155 chain ID
        name: Human readable name used in logs
        block_time: Seconds between blocks
        history_window: Number of recent block hashes the chain serves
    """

    chain_id: int
    name: str
    block_time: int = 12
    history_window: int = 8191

    def __post_init__(self) -> None:
        """Validate chain configuration."""
        if self.chain_id <= 0:
            raise ValueError(f"Chain ID must be positive, got {self.chain_id}")
        if not self.name:
            raise ValueError("Chain name is required")
        if self.block_time <= 0:
            raise ValueError(f"Block time must be positive, got {self.block_time}")
        if self.history_window < 256:
            raise ValueError(f"History window too small (min 256), got {self.history_window}")


@dataclass(frozen=True, slots=True)
class BridgeConfig:
    """Cross-domain messaging settings.

    Attributes:
        kind: Messaging layer, 'arbitrum' or 'optimism'
        gas_limit: Gas limit for the child-chain call
        gas_price_bid: Max fee per gas (Arbitrum only)
        submission_cost: Retryable submission cost (Arbitrum only)
    """

    kind: str = 'arbitrum'
    gas_limit: int = 1_000_000
    gas_price_bid: int = 100_000_000
    submission_cost: int = 10 ** 14

    SUPPORTED_BRIDGES: ClassVar[set[str]] = {'arbitrum', 'optimism'}

    def __post_init__(self) -> None:
        """Validate bridge configuration."""
        if self.kind not in self.SUPPORTED_BRIDGES:
            raise ValueError(
                f"Unsupported bridge: {self.kind}. "
                f"Supported bridges: {', '.join(sorted(self.SUPPORTED_BRIDGES))}"
            )
        if self.gas_limit <= 0 or self.gas_limit >= 2 ** 32:
            raise ValueError(f"Gas limit must be in (0, 2^32), got {self.gas_limit}")
        if self.gas_price_bid < 0:
            raise ValueError(f"Gas price bid must be non-negative, got {self.gas_price_bid}")
        if self.submission_cost < 0:
            raise ValueError(f"Submission cost must be non-negative, got {self.submission_cost}")

    @property
    def push_value(self) -> int:
        """msg.value to attach to a push."""
        if self.kind == 'arbitrum':
            return self.submission_cost + self.gas_limit * self.gas_price_bid
        return 0


@dataclass(frozen=True, slots=True)
class BufferConfig:
    """Ring buffer settings."""
    buffer_size: int = BUFFER_SIZE

    def __post_init__(self) -> None:
        """Validate buffer configuration."""
        if self.buffer_size <= 0:
            raise ValueError(f"Buffer size must be positive, got {self.buffer_size}")


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Configuration for the push loop."""
    polling_interval: int = 12  # seconds between push rounds
    batch_size: int = 256  # max blocks per push
    retry_count: int = 3  # retry attempts per round

    def __post_init__(self) -> None:
        """Validate monitoring configuration."""
        if self.polling_interval <= 0:
            raise ValueError(f"Polling interval must be positive, got {self.polling_interval}")
        if self.polling_interval > 300:
            raise ValueError(f"Polling interval too long (max 300s), got {self.polling_interval}")

        if not 1 <= self.batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"Batch size must be in [1, {MAX_BATCH_SIZE}], got {self.batch_size}")

        if self.retry_count < 0:
            raise ValueError(f"Retry count must be non-negative, got {self.retry_count}")
        if self.retry_count > 10:
            raise ValueError(f"Retry count too high (max 10), got {self.retry_count}")


@dataclass(frozen=True, slots=True)
class HopChainConfig:
    """Main configuration for the pusher service.

    Attributes:
        parent_chain: Chain whose block hashes are pushed
        child_chain: Chain hosting the buffer
        bridge: Messaging layer between them
        buffer: Buffer settings
        monitoring: Push loop settings
        operator_address: Account that sends push transactions
    """

    parent_chain: ChainConfig
    child_chain: ChainConfig
    bridge: BridgeConfig = field(default_factory=BridgeConfig)
    buffer: BufferConfig = field(default_factory=BufferConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    operator_address: str = DEFAULT_OPERATOR_ADDRESS

    def __post_init__(self) -> None:
        """Validate top-level configuration."""
        if self.parent_chain.chain_id == self.child_chain.chain_id:
            raise ValueError(
                f"Parent and child chain IDs must differ, both are {self.parent_chain.chain_id}"
            )
        if self.monitoring.batch_size > self.buffer.buffer_size:
            raise ValueError(
                f"Batch size {self.monitoring.batch_size} exceeds buffer size {self.buffer.buffer_size}"
            )

        if not Web3.is_address(self.operator_address):
            raise ValueError(f"Invalid operator address: {self.operator_address}")

        checksummed = Web3.to_checksum_address(self.operator_address)
        if checksummed != self.operator_address:
            # Use object.__setattr__ since dataclass is frozen
            object.__setattr__(self, 'operator_address', checksummed)

    @classmethod
    def from_env(cls) -> "HopChainConfig":
        """Load configuration from environment variables.

        Returns:
            HopChainConfig instance with loaded values

        Raises:
            ValueError: If environment variables are missing or invalid
        """
        block_time = int(os.environ.get("BLOCK_TIME", "12"))
        history_window = int(os.environ.get("HISTORY_WINDOW", "8191"))

        parent_config = ChainConfig(
            chain_id=int(os.environ.get("PARENT_CHAIN_ID", "1")),
            name=os.environ.get("PARENT_CHAIN_NAME", "parent"),
            block_time=block_time,
            history_window=history_window
        )
        child_config = ChainConfig(
            chain_id=int(os.environ.get("CHILD_CHAIN_ID", "42161")),
            name=os.environ.get("CHILD_CHAIN_NAME", "child"),
            block_time=block_time,
            history_window=history_window
        )

        bridge_config = BridgeConfig(
            kind=os.environ.get("BRIDGE", "arbitrum").lower(),
            gas_limit=int(os.environ.get("ARBITRUM_GAS_LIMIT", "1000000")),
            gas_price_bid=int(os.environ.get("ARBITRUM_GAS_PRICE_BID", "100000000")),
            submission_cost=int(os.environ.get("ARBITRUM_SUBMISSION_COST", str(10 ** 14)))
        )

        buffer_config = BufferConfig(
            buffer_size=int(os.environ.get("BUFFER_SIZE", str(BUFFER_SIZE)))
        )

        monitoring_config = MonitoringConfig(
            polling_interval=int(os.environ.get("POLLING_INTERVAL", "12")),
            batch_size=int(os.environ.get("PUSH_BATCH_SIZE", "256")),
            retry_count=int(os.environ.get("RETRY_COUNT", "3"))
        )

        return cls(
            parent_chain=parent_config,
            child_chain=child_config,
            bridge=bridge_config,
            buffer=buffer_config,
            monitoring=monitoring_config,
            operator_address=os.environ.get("OPERATOR_ADDRESS", DEFAULT_OPERATOR_ADDRESS)
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("hopchain Pusher Configuration")
        logger.info("=" * 60)

        for label, chain in (("Parent Chain", self.parent_chain), ("Child Chain", self.child_chain)):
            logger.info(f"{label}:")
            logger.info(f"  Name: {chain.name}")
            logger.info(f"  Chain ID: {chain.chain_id}")
            logger.info(f"  Block Time: {chain.block_time} seconds")

        logger.info("Bridge:")
        logger.info(f"  Kind: {self.bridge.kind}")
        logger.info(f"  Gas Limit: {self.bridge.gas_limit}")
        if self.bridge.kind == 'arbitrum':
            logger.info(f"  Gas Price Bid: {self.bridge.gas_price_bid}")
            logger.info(f"  Submission Cost: {self.bridge.submission_cost}")

        logger.info("Buffer:")
        logger.info(f"  Size: {self.buffer.buffer_size}")

        logger.info("Monitoring Settings:")
        logger.info(f"  Polling Interval: {self.monitoring.polling_interval} seconds")
        logger.info(f"  Batch Size: {self.monitoring.batch_size}")
        logger.info(f"  Retry Count: {self.monitoring.retry_count}")

        logger.info(f"Operator: {self.operator_address}")
        logger.info("=" * 60)
