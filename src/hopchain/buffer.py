"""
Parent-chain block hash buffers.

A buffer lives on a child chain and stores recent parent-chain block hashes
pushed across the cross-domain messaging boundary. Storage is a sparse ring:
``blockNumberBuffer[n % size]`` remembers which block currently owns a ring
slot, and ``blockHashMapping[n]`` holds the hash. Writing a block into an
occupied ring slot evicts the previous owner's hash.
"""

import logging
from abc import ABC, abstractmethod
from typing import ClassVar, Sequence

from web3 import Web3

from .chain import external
from .encoding import ZERO_ADDRESS, apply_l1_to_l2_alias, derived_slot, function_selector, mapping_slot
from .errors import (
    InvalidBatch,
    InvalidPusherAddress,
    NotPusher,
    PusherAddressAlreadySet,
    UnknownParentChainBlockHash,
)
from .models import BlockHashesPushed, PusherAddressSet
from .ownable import Ownable

logger = logging.getLogger(__name__)

BUFFER_SIZE = 393168
NEWEST_BLOCK_NUMBER_SLOT = 50
BLOCK_HASH_MAPPING_SLOT = 51
PUSHER_ADDRESS_SLOT = 52
RING_BASE_SLOT = derived_slot("hopchain.buffer.ring")

RECEIVE_HASHES_SIGNATURE = "receiveHashes(uint256,bytes32[])"
RECEIVE_HASHES_TYPES = ['uint256', 'bytes32[]']

# Well-known Arbitrum buffer deployment
ARBITRUM_BUFFER_ADDRESS = "0x0000000048C4Ed10cF14A02B9E0AbDDA5227b071"


def block_hash_slot(block_number: int) -> int:
    """Storage slot of ``blockHashMapping[block_number]``."""
    return mapping_slot('uint256', block_number, BLOCK_HASH_MAPPING_SLOT)


class BaseBuffer(Ownable, ABC):
    """Ring buffer of parent-chain block hashes; the pusher check is chain specific."""

    ENTRYPOINTS: ClassVar[dict[bytes, tuple[str, list[str]]]] = {
        function_selector(RECEIVE_HASHES_SIGNATURE): ('receive_hashes', RECEIVE_HASHES_TYPES),
    }

    def __init__(self, initial_owner: str, buffer_size: int = BUFFER_SIZE) -> None:
        super().__init__(initial_owner)
        if buffer_size <= 0:
            raise ValueError(f"Buffer size must be positive, got {buffer_size}")
        self._buffer_size = buffer_size

    def immutables(self) -> tuple:
        return (self._buffer_size,)

    def buffer_size(self) -> int:
        return self._buffer_size

    def newest_block_number(self) -> int:
        return self._sload_int(NEWEST_BLOCK_NUMBER_SLOT)

    def pusher_address(self) -> str:
        return self._sload_address(PUSHER_ADDRESS_SLOT)

    def _ring_slot(self, block_number: int) -> int:
        return RING_BASE_SLOT + block_number % self._buffer_size

    def parent_chain_block_hash(self, block_number: int) -> bytes:
        """
        Return the stored hash of parent block ``block_number``.

        Raises:
            UnknownParentChainBlockHash: If the block was never pushed or has been evicted
        """
        if block_number == 0 or self._sload_int(self._ring_slot(block_number)) != block_number:
            raise UnknownParentChainBlockHash(block_number)
        return self._sload(block_hash_slot(block_number))

    @external
    def set_pusher_address(self, pusher: str) -> None:
        """Designate the pusher on the parent chain. Owner only, once."""
        self._check_owner()
        if self.pusher_address() != ZERO_ADDRESS:
            raise PusherAddressAlreadySet(self.pusher_address())
        pusher = Web3.to_checksum_address(pusher)
        if pusher == ZERO_ADDRESS:
            raise InvalidPusherAddress(pusher)

        self._sstore_address(PUSHER_ADDRESS_SLOT, pusher)
        self._emit(PusherAddressSet(pusher))
        logger.info(f"{type(self).__name__} {self.address} accepts pushes from {pusher}")

    @abstractmethod
    def _check_pusher(self) -> None:
        """Raise NotPusher unless the current caller speaks for the pusher."""

    @external
    def receive_hashes(self, first_block_number: int, block_hashes: Sequence[bytes]) -> None:
        """
        Store a contiguous batch of parent-chain block hashes.

        A batch that ends at or before ``newest_block_number()`` changes
        nothing and emits nothing, so redelivery of a message is harmless.

        Args:
            first_block_number: Parent block number of ``block_hashes[0]``
            block_hashes: Hashes of consecutive parent blocks

        Raises:
            NotPusher: If the caller is not the aliased/relayed pusher
            InvalidBatch: If the batch is empty, starts at 0, or exceeds the ring size
        """
        self._check_pusher()

        batch_size = len(block_hashes)
        if first_block_number == 0 or batch_size == 0 or batch_size > self._buffer_size:
            raise InvalidBatch(first_block_number, batch_size)

        last_block_number = first_block_number + batch_size - 1
        newest = self.newest_block_number()
        if last_block_number <= newest:
            logger.debug(f"Ignoring stale batch {first_block_number}..{last_block_number} (newest {newest})")
            return

        for offset, block_hash in enumerate(block_hashes):
            block_number = first_block_number + offset
            ring_slot = self._ring_slot(block_number)
            evicted = self._sload_int(ring_slot)
            if evicted not in (0, block_number):
                self._sstore(block_hash_slot(evicted), bytes(32))
            self._sstore_int(ring_slot, block_number)
            self._sstore(block_hash_slot(block_number), bytes(block_hash))

        self._sstore_int(NEWEST_BLOCK_NUMBER_SLOT, last_block_number)
        self._emit(BlockHashesPushed(first_block_number, last_block_number))
        logger.info(f"Buffer {self.address} stored parent blocks {first_block_number}..{last_block_number}")


class ArbitrumBuffer(BaseBuffer):
    """Buffer on an Arbitrum chain; the pusher arrives under its L1-to-L2 alias."""

    def _check_pusher(self) -> None:
        pusher = self.pusher_address()
        if pusher == ZERO_ADDRESS or self.msg_sender != apply_l1_to_l2_alias(pusher):
            raise NotPusher(self.msg_sender)


class OptimismBuffer(BaseBuffer):
    """Buffer on an OP-stack chain; the pusher arrives through the L2 messenger."""

    def __init__(self, initial_owner: str, l2_messenger: str, buffer_size: int = BUFFER_SIZE) -> None:
        super().__init__(initial_owner, buffer_size)
        self.l2_messenger = Web3.to_checksum_address(l2_messenger)

    def immutables(self) -> tuple:
        return super().immutables() + (self.l2_messenger,)

    def _check_pusher(self) -> None:
        pusher = self.pusher_address()
        if pusher == ZERO_ADDRESS or self.msg_sender != self.l2_messenger:
            raise NotPusher(self.msg_sender)
        messenger = self.chain.contract_at(self.l2_messenger)
        if messenger.x_domain_message_sender() != pusher:
            raise NotPusher(self.msg_sender)
