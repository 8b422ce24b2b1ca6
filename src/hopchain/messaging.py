"""
Cross-domain messaging between a parent chain and a child chain.

Sending is a contract call on the source chain that emits a
``CrossDomainMessage`` event. Delivery happens later: a channel (the bridge's
relayer) scans the source chain's events in order and executes each message
on the destination chain in a separate transaction. Ordering is FIFO per
channel; a message can be replayed with ``redeliver``.
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import ClassVar

from eth_abi import encode
from web3 import Web3

from .chain import Chain, Contract, external
from .encoding import apply_l1_to_l2_alias, keccak
from .errors import CrossDomainSenderNotSet, HopChainError, InsufficientValue, NotPusher

logger = logging.getLogger(__name__)

OPTIMISM_L2_MESSENGER_ADDRESS = "0x4200000000000000000000000000000000000007"


@dataclass(frozen=True, slots=True)
class CrossDomainMessage:
    """A message dispatched on the source chain, awaiting delivery."""
    message_id: bytes
    sender: str
    target: str
    data: bytes
    value: int = 0

    def __str__(self) -> str:
        return f"CrossDomainMessage({Web3.to_hex(self.message_id)[:10]}… {self.sender} -> {self.target})"


class _NonceCounter(Contract):
    NONCE_SLOT: ClassVar[int] = 0

    def __init__(self, destination_chain_id: int) -> None:
        self.destination_chain_id = destination_chain_id

    def immutables(self) -> tuple:
        return (self.destination_chain_id,)

    def _next_message_id(self, sender: str) -> bytes:
        nonce = self._sload_int(self.NONCE_SLOT)
        self._sstore_int(self.NONCE_SLOT, nonce + 1)
        return keccak(encode(['uint256', 'uint256', 'address'], [self.destination_chain_id, nonce, sender]))


class ArbitrumInbox(_NonceCounter):
    """Parent-chain inbox creating retryable tickets for an Arbitrum child."""

    @external
    def create_retryable_ticket(self, to: str, l2_call_value: int, max_submission_cost: int,
                                excess_fee_refund_address: str, call_value_refund_address: str,
                                gas_limit: int, max_fee_per_gas: int, data: bytes) -> bytes:
        """
        Queue an L2 call; ``msg.value`` must cover submission and execution.

        Raises:
            InsufficientValue: If ``msg.value`` is below the required deposit
        """
        required = max_submission_cost + l2_call_value + gas_limit * max_fee_per_gas
        if self.msg_value < required:
            raise InsufficientValue(required, self.msg_value)

        ticket_id = self._next_message_id(self.msg_sender)
        self._emit(CrossDomainMessage(ticket_id, self.msg_sender, Web3.to_checksum_address(to), data, l2_call_value))
        logger.debug(f"Retryable ticket {Web3.to_hex(ticket_id)} from {self.msg_sender} to {to}")
        return ticket_id


class OptimismL1Messenger(_NonceCounter):
    """Parent-chain side of the OP-stack cross-domain messenger."""

    @external
    def send_message(self, target: str, message: bytes, min_gas_limit: int) -> bytes:
        message_id = self._next_message_id(self.msg_sender)
        self._emit(CrossDomainMessage(message_id, self.msg_sender, Web3.to_checksum_address(target),
                                      message, self.msg_value))
        logger.debug(f"OP message {Web3.to_hex(message_id)} from {self.msg_sender} to {target} "
                     f"(min gas {min_gas_limit})")
        return message_id


class OptimismL2Messenger(Contract):
    """Child-chain side of the OP-stack messenger; exposes the L1 sender during relay."""

    def __init__(self, l1_messenger: str) -> None:
        self.l1_messenger = Web3.to_checksum_address(l1_messenger)
        self._x_domain_sender: str | None = None

    def immutables(self) -> tuple:
        return (self.l1_messenger,)

    def x_domain_message_sender(self) -> str:
        if self._x_domain_sender is None:
            raise CrossDomainSenderNotSet()
        return self._x_domain_sender

    @external
    def relay_message(self, l1_sender: str, target: str, message: bytes) -> None:
        if self.msg_sender != apply_l1_to_l2_alias(self.l1_messenger):
            raise NotPusher(self.msg_sender)
        self._x_domain_sender = Web3.to_checksum_address(l1_sender)
        try:
            self.chain.contract_at(target).execute(message, sender=self.address)
        finally:
            self._x_domain_sender = None


class CrossDomainChannel(ABC):
    """Relays messages emitted by one source contract to a destination chain."""

    def __init__(self, source_chain: Chain, source_address: str, destination_chain: Chain) -> None:
        self.source_chain = source_chain
        self.source_address = Web3.to_checksum_address(source_address)
        self.destination_chain = destination_chain
        self._cursor = 0
        self._queue: deque[CrossDomainMessage] = deque()
        self._processed: dict[bytes, CrossDomainMessage] = {}
        self.metrics = {'delivered': 0, 'failed': 0, 'redelivered': 0}

    def _poll(self) -> None:
        logs = self.source_chain.logs(self._cursor)
        self._cursor += len(logs)
        for entry in logs:
            if entry.emitter == self.source_address and isinstance(entry.event, CrossDomainMessage):
                self._queue.append(entry.event)

    def pending(self) -> list[CrossDomainMessage]:
        self._poll()
        return list(self._queue)

    @abstractmethod
    def _dispatch(self, message: CrossDomainMessage) -> None:
        """Execute ``message`` on the destination chain."""

    def _deliver(self, message: CrossDomainMessage) -> bool:
        try:
            self._dispatch(message)
        except HopChainError as e:
            self.metrics['failed'] += 1
            logger.error(f"✗ Delivery of {message} failed on {self.destination_chain.name}: {e}")
            return False
        self.metrics['delivered'] += 1
        logger.info(f"✓ Delivered {message} on {self.destination_chain.name}")
        return True

    def deliver_next(self) -> bool:
        """Deliver the oldest pending message; returns False if none or if it failed."""
        self._poll()
        if not self._queue:
            return False
        message = self._queue.popleft()
        self._processed[message.message_id] = message
        return self._deliver(message)

    def deliver_all(self) -> int:
        """Deliver every pending message in order; returns the number that succeeded."""
        delivered = 0
        while self.pending():
            if self.deliver_next():
                delivered += 1
        return delivered

    def redeliver(self, message_id: bytes) -> bool:
        """Replay an already processed message."""
        if (message := self._processed.get(message_id)) is None:
            raise KeyError(f"Unknown message {Web3.to_hex(message_id)}")
        self.metrics['redelivered'] += 1
        return self._deliver(message)


class ArbitrumChannel(CrossDomainChannel):
    """Executes retryable tickets with the L1 sender's alias as ``msg.sender``."""

    def _dispatch(self, message: CrossDomainMessage) -> None:
        target = self.destination_chain.contract_at(message.target)
        target.execute(message.data, sender=apply_l1_to_l2_alias(message.sender), value=message.value)


class OptimismChannel(CrossDomainChannel):
    """Relays messages through the L2 messenger."""

    def __init__(self, source_chain: Chain, l1_messenger: str, destination_chain: Chain,
                 l2_messenger: str = OPTIMISM_L2_MESSENGER_ADDRESS) -> None:
        super().__init__(source_chain, l1_messenger, destination_chain)
        self.l2_messenger = Web3.to_checksum_address(l2_messenger)

    def _dispatch(self, message: CrossDomainMessage) -> None:
        messenger = self.destination_chain.contract_at(self.l2_messenger)
        messenger.relay_message(message.sender, message.target, message.data,
                                sender=apply_l1_to_l2_alias(self.source_address))
