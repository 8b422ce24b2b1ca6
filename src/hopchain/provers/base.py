"""
Hop prover base classes.

A hop prover turns a commitment on its home chain into a commitment on its
target chain, either by reading local state (``get_target_commitment``, home
chain only) or by verifying a storage proof against a supplied home
commitment (``verify_target_commitment``, any chain). The terminal operation
``verify_storage_slot`` proves one slot of one account on the target chain.

Provers hold no mutable state. Their code hash covers their class, version
and constructor arguments, so a copy deployed on another chain is
recognisable by the code hash recorded in the home chain's pointer.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, ClassVar

from eth_abi import encode
from web3 import Web3

from ..chain import Contract
from ..encoding import ZERO_BYTES32, decode_input
from ..errors import (
    CallNotOnHomeChain,
    InvalidHomeBlockHeader,
    InvalidTargetBlockHeader,
    TargetCommitmentNotFound,
)
from ..models import StorageProof, StorageSlot
from ..mpt import verify_slot_against_block_hash

logger = logging.getLogger(__name__)

STORAGE_SLOT_INPUT_TYPES = ['bytes', 'address', 'uint256', 'bytes', 'bytes']


class HopProver(Contract, ABC):
    """One hop from a home chain to a target chain."""

    VERSION: ClassVar[int] = 1

    def __init__(self, home_chain_id: int, target_chain_id: int) -> None:
        if home_chain_id == target_chain_id:
            raise ValueError(f"Home and target chain must differ, got {home_chain_id}")
        self.home_chain_id = home_chain_id
        self.target_chain_id = target_chain_id

    def immutables(self) -> tuple:
        return (self.version(), self.home_chain_id, self.target_chain_id)

    def version(self) -> int:
        return self.VERSION

    def _require_home_chain(self) -> None:
        if self.chain.chain_id != self.home_chain_id:
            raise CallNotOnHomeChain(self.home_chain_id, self.chain.chain_id)

    def get_target_commitment(self, hop_input: bytes) -> bytes:
        """
        Read the target commitment from home-chain state.

        Raises:
            CallNotOnHomeChain: If not executing on the home chain
        """
        self._require_home_chain()
        commitment = self._get_target_commitment(hop_input)
        if commitment == ZERO_BYTES32:
            raise TargetCommitmentNotFound()
        return commitment

    @abstractmethod
    def _get_target_commitment(self, hop_input: bytes) -> bytes:
        ...

    @abstractmethod
    def verify_target_commitment(self, home_commitment: bytes, hop_input: bytes) -> bytes:
        ...

    @abstractmethod
    def verify_storage_slot(self, target_commitment: bytes, hop_input: bytes) -> StorageSlot:
        ...

    def _verify_home_slot(self, home_block_hash: bytes, rlp_header: bytes, account: str, slot: int,
                          account_proof: bytes, storage_proof: bytes) -> bytes:
        """Prove a home-chain slot holding the target commitment; zero is rejected."""
        commitment = verify_slot_against_block_hash(
            home_block_hash, rlp_header, account, slot, account_proof, storage_proof,
            header_error=InvalidHomeBlockHeader,
        )
        if commitment == ZERO_BYTES32:
            raise TargetCommitmentNotFound()
        logger.debug(f"{self}: {Web3.to_hex(home_block_hash)} -> {Web3.to_hex(commitment)}")
        return commitment

    @staticmethod
    def _decode(types: list[str], hop_input: bytes) -> tuple[Any, ...]:
        return decode_input(types, hop_input)

    def __str__(self) -> str:
        return (f"{type(self).__name__} v{self.version()} "
                f"({self.home_chain_id} -> {self.target_chain_id})")


class BlockHashHopProver(HopProver):
    """Prover whose target commitment is a block hash."""

    def verify_storage_slot(self, target_block_hash: bytes, hop_input: bytes) -> StorageSlot:
        """
        Prove one slot of one account against a target-chain block hash.

        Args:
            target_block_hash: Commitment produced by this hop
            hop_input: ``abi(bytes header, address account, uint256 slot, bytes accountProof, bytes storageProof)``

        Returns:
            StorageSlot with the proven value (zero for an exclusion proof)
        """
        rlp_header, account, slot, account_proof, storage_proof = self._decode(STORAGE_SLOT_INPUT_TYPES, hop_input)
        account = Web3.to_checksum_address(account)
        value = verify_slot_against_block_hash(
            target_block_hash, rlp_header, account, slot, account_proof, storage_proof,
            header_error=InvalidTargetBlockHeader,
        )
        return StorageSlot(account=account, slot=slot, value=value)

    @staticmethod
    def encode_storage_slot_input(rlp_header: bytes, proof: StorageProof) -> bytes:
        return encode(
            STORAGE_SLOT_INPUT_TYPES,
            [rlp_header, proof.address, proof.slot, proof.encoded_account_proof, proof.encoded_storage_proof],
        )
