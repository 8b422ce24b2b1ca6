"""
Block hash pushers.

A pusher runs on a parent chain. It reads a contiguous range of its own
chain's historical block hashes and sends them to a buffer on a child chain
through the bridge's messaging primitive. Dispatch is fire-and-forget:
``BlockHashesPushed`` means the message was sent, not that it arrived.
"""

import logging
from abc import ABC, abstractmethod
from typing import ClassVar

from eth_abi import encode
from web3 import Web3

from .buffer import RECEIVE_HASHES_SIGNATURE, RECEIVE_HASHES_TYPES
from .chain import Contract, external
from .encoding import decode_input, encode_call
from .errors import BlockHashUnavailable, IncorrectFee, InvalidBatch, InvalidChainTxData, InvalidHopInput
from .models import BlockHashesPushed

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 8191

ARBITRUM_TX_DATA_TYPES = ['uint256', 'uint256', 'uint256']
OPTIMISM_TX_DATA_TYPES = ['uint32']


class BasePusher(Contract, ABC):
    """Validates a batch, collects hashes and hands the call to the bridge."""

    MAX_BATCH_SIZE: ClassVar[int] = MAX_BATCH_SIZE

    def _block_hashes(self, first_block_number: int, batch_size: int) -> list[bytes]:
        if not 1 <= batch_size <= self.MAX_BATCH_SIZE or first_block_number == 0:
            raise InvalidBatch(first_block_number, batch_size)
        if first_block_number + batch_size - 1 >= self.chain.block_number:
            raise InvalidBatch(first_block_number, batch_size)

        try:
            return [self.chain.block_hash(n) for n in range(first_block_number, first_block_number + batch_size)]
        except BlockHashUnavailable as e:
            raise InvalidBatch(first_block_number, batch_size) from e

    @abstractmethod
    def _send_message(self, buffer: str, calldata: bytes, chain_tx_data: bytes) -> bytes:
        """Dispatch ``calldata`` to ``buffer`` on the child chain; returns the message id."""

    @external
    def push_hashes(self, buffer: str, first_block_number: int, batch_size: int,
                    chain_tx_data: bytes) -> bytes:
        """
        Push ``batch_size`` consecutive block hashes starting at ``first_block_number``.

        Args:
            buffer: Buffer address on the child chain
            first_block_number: First block of the batch
            batch_size: Number of blocks, at most ``MAX_BATCH_SIZE``
            chain_tx_data: Bridge-specific parameters (gas, fees)

        Returns:
            Cross-domain message id

        Raises:
            InvalidBatch: If the range is empty, too long, not yet sealed or outside history
            InvalidChainTxData: If ``chain_tx_data`` cannot be decoded
        """
        block_hashes = self._block_hashes(first_block_number, batch_size)
        calldata = encode_call(RECEIVE_HASHES_SIGNATURE, RECEIVE_HASHES_TYPES, [first_block_number, block_hashes])
        message_id = self._send_message(Web3.to_checksum_address(buffer), calldata, chain_tx_data)

        last_block_number = first_block_number + batch_size - 1
        self._emit(BlockHashesPushed(first_block_number, last_block_number))
        logger.info(f"Pushed blocks {first_block_number}..{last_block_number} to {buffer} "
                    f"(message {Web3.to_hex(message_id)})")
        return message_id

    @staticmethod
    def _decode_tx_data(types: list[str], chain_tx_data: bytes) -> tuple:
        try:
            return decode_input(types, chain_tx_data)
        except InvalidHopInput as e:
            raise InvalidChainTxData(*e.args) from e


class ArbitrumPusher(BasePusher):
    """Pushes through retryable tickets on the Arbitrum inbox."""

    def __init__(self, inbox: str) -> None:
        self.inbox = Web3.to_checksum_address(inbox)

    def immutables(self) -> tuple:
        return (self.inbox,)

    @staticmethod
    def encode_tx_data(gas_price_bid: int, gas_limit: int, submission_cost: int) -> bytes:
        return encode(ARBITRUM_TX_DATA_TYPES, [gas_price_bid, gas_limit, submission_cost])

    @staticmethod
    def required_value(gas_price_bid: int, gas_limit: int, submission_cost: int) -> int:
        return submission_cost + gas_limit * gas_price_bid

    def _send_message(self, buffer: str, calldata: bytes, chain_tx_data: bytes) -> bytes:
        gas_price_bid, gas_limit, submission_cost = self._decode_tx_data(ARBITRUM_TX_DATA_TYPES, chain_tx_data)
        return self.chain.contract_at(self.inbox).create_retryable_ticket(
            buffer, 0, submission_cost, self.msg_sender, self.msg_sender,
            gas_limit, gas_price_bid, calldata,
            sender=self.address, value=self.msg_value,
        )


class OptimismPusher(BasePusher):
    """Pushes through the OP-stack L1 cross-domain messenger; no fee is taken."""

    def __init__(self, l1_messenger: str) -> None:
        self.l1_messenger = Web3.to_checksum_address(l1_messenger)

    def immutables(self) -> tuple:
        return (self.l1_messenger,)

    @staticmethod
    def encode_tx_data(gas_limit: int) -> bytes:
        return encode(OPTIMISM_TX_DATA_TYPES, [gas_limit])

    def _send_message(self, buffer: str, calldata: bytes, chain_tx_data: bytes) -> bytes:
        if self.msg_value != 0:
            raise IncorrectFee(0, self.msg_value)
        (gas_limit,) = self._decode_tx_data(OPTIMISM_TX_DATA_TYPES, chain_tx_data)
        return self.chain.contract_at(self.l1_messenger).send_message(
            buffer, calldata, gas_limit, sender=self.address,
        )
