"""Broadcaster: write-once, provable message records."""

import logging

from eth_abi import encode
from web3 import Web3

from .chain import Contract, external
from .encoding import ZERO_BYTES32, keccak, to_bytes32, to_int
from .errors import MessageAlreadyBroadcast
from .models import MessageBroadcast

logger = logging.getLogger(__name__)


def message_slot(message: bytes, publisher: str) -> int:
    """Storage slot of a broadcast: ``keccak(abi.encode(bytes32 message, address publisher))``."""
    return to_int(keccak(encode(['bytes32', 'address'], [message, Web3.to_checksum_address(publisher)])))


class Broadcaster(Contract):
    """Records ``(message, publisher) -> block timestamp`` so remote chains can prove it."""

    def has_broadcasted(self, message: bytes, publisher: str) -> bool:
        return self._sload(message_slot(message, publisher)) != ZERO_BYTES32

    def broadcast_timestamp(self, message: bytes, publisher: str) -> int:
        return self._sload_int(message_slot(message, publisher))

    @external
    def broadcast_message(self, message: bytes) -> None:
        """
        Broadcast ``message`` from the caller.

        Raises:
            MessageAlreadyBroadcast: If the caller already broadcast this message
        """
        publisher = self.msg_sender
        slot = message_slot(message, publisher)
        if self._sload(slot) != ZERO_BYTES32:
            raise MessageAlreadyBroadcast(message, publisher)

        self._sstore(slot, to_bytes32(self.chain.timestamp))
        self._emit(MessageBroadcast(message, publisher))
        logger.info(f"Broadcast {Web3.to_hex(message)} from {publisher} at {self.chain.timestamp}")
