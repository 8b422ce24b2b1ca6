"""
Local parent/child devnet.

Wires two ``Chain`` instances together the way a rollup deployment does: a
messaging layer (Arbitrum inbox or OP-stack messengers), a pusher on the
parent chain and a buffer on the child chain that trusts it. Block
production and message relaying are driven explicitly (``step``) or by the
async ``produce_blocks`` loop.
"""

import asyncio
import logging

from .buffer import ARBITRUM_BUFFER_ADDRESS, ArbitrumBuffer, BaseBuffer, OptimismBuffer
from .chain import Chain
from .config import ChainConfig, HopChainConfig
from .messaging import (
    OPTIMISM_L2_MESSENGER_ADDRESS,
    ArbitrumChannel,
    ArbitrumInbox,
    CrossDomainChannel,
    OptimismChannel,
    OptimismL1Messenger,
    OptimismL2Messenger,
)
from .pusher import ArbitrumPusher, BasePusher, OptimismPusher

logger = logging.getLogger(__name__)


def _make_chain(config: ChainConfig) -> Chain:
    return Chain(
        config.chain_id,
        name=config.name,
        block_time=config.block_time,
        history_window=config.history_window,
    )


class Devnet:
    """A parent chain pushing its block hashes into a buffer on a child chain."""

    def __init__(self, config: HopChainConfig) -> None:
        self.config = config
        self.operator = config.operator_address
        self.parent = _make_chain(config.parent_chain)
        self.child = _make_chain(config.child_chain)

        self.pusher: BasePusher
        self.buffer: BaseBuffer
        self.channel: CrossDomainChannel

        if config.bridge.kind == 'arbitrum':
            self._deploy_arbitrum()
        else:
            self._deploy_optimism()

        self.buffer.set_pusher_address(self.pusher.address, sender=self.operator)
        self.parent.mine()
        self.child.mine()
        logger.info(f"Devnet ready: {self.parent.name} ({self.parent.chain_id}) -> "
                    f"{self.child.name} ({self.child.chain_id}) over {config.bridge.kind}")
        logger.info(f"  Pusher: {self.pusher.address}")
        logger.info(f"  Buffer: {self.buffer.address}")

    def _deploy_arbitrum(self) -> None:
        inbox = self.parent.deploy(ArbitrumInbox(self.child.chain_id))
        self.pusher = self.parent.deploy(ArbitrumPusher(inbox.address))
        self.buffer = self.child.deploy(
            ArbitrumBuffer(self.operator, self.config.buffer.buffer_size),
            ARBITRUM_BUFFER_ADDRESS,
        )
        self.channel = ArbitrumChannel(self.parent, inbox.address, self.child)

    def _deploy_optimism(self) -> None:
        l1_messenger = self.parent.deploy(OptimismL1Messenger(self.child.chain_id))
        l2_messenger = self.child.deploy(OptimismL2Messenger(l1_messenger.address), OPTIMISM_L2_MESSENGER_ADDRESS)
        self.pusher = self.parent.deploy(OptimismPusher(l1_messenger.address))
        self.buffer = self.child.deploy(
            OptimismBuffer(self.operator, l2_messenger.address, self.config.buffer.buffer_size)
        )
        self.channel = OptimismChannel(self.parent, l1_messenger.address, self.child, l2_messenger.address)

    def chain_tx_data(self) -> bytes:
        """Bridge parameters for ``push_hashes``, taken from the bridge config."""
        bridge = self.config.bridge
        if bridge.kind == 'arbitrum':
            return ArbitrumPusher.encode_tx_data(bridge.gas_price_bid, bridge.gas_limit, bridge.submission_cost)
        return OptimismPusher.encode_tx_data(bridge.gas_limit)

    def push(self, first_block_number: int, batch_size: int) -> bytes:
        """Send one push transaction from the operator; returns the message id."""
        return self.pusher.push_hashes(
            self.buffer.address, first_block_number, batch_size, self.chain_tx_data(),
            sender=self.operator, value=self.config.bridge.push_value,
        )

    def relay(self) -> int:
        """Deliver all pending messages to the child chain and seal them in a block."""
        delivered = self.channel.deliver_all()
        if delivered:
            self.child.mine()
        return delivered

    def advance(self, blocks: int = 1) -> None:
        self.parent.mine(blocks)
        self.child.mine(blocks)

    def step(self) -> int:
        """Produce one block on each chain and relay what is pending."""
        self.parent.mine()
        delivered = self.channel.deliver_all()
        self.child.mine()
        return delivered

    async def produce_blocks(self, stop_event: asyncio.Event) -> None:
        """Produce blocks every ``block_time`` seconds until ``stop_event`` is set."""
        interval = self.config.parent_chain.block_time
        logger.info(f"Producing blocks every {interval} seconds")
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                delivered = self.step()
                logger.debug(f"Sealed {self.parent.name} block {self.parent.block_number - 1}, "
                             f"delivered {delivered} message(s)")
        logger.info("Block production stopped")
