"""Child-to-parent hop backed by the parent block hash buffer on the child chain."""

import logging

from eth_abi import encode
from web3 import Web3

from ..buffer import BLOCK_HASH_MAPPING_SLOT, block_hash_slot
from ..models import StorageProof
from .base import BlockHashHopProver

logger = logging.getLogger(__name__)

GET_INPUT_TYPES = ['uint256']
VERIFY_INPUT_TYPES = ['bytes', 'uint256', 'bytes', 'bytes']


class ChildToParentProver(BlockHashHopProver):
    """
    Home: a child chain with a buffer. Target: its parent chain.

    ``get_target_commitment(abi(uint256 n))`` reads the buffer directly.
    ``verify_target_commitment(childBlockHash, abi(bytes header, uint256 n, bytes accountProof, bytes storageProof))``
    proves ``blockHashMapping[n]`` in the buffer's storage.
    """

    def __init__(self, home_chain_id: int, target_chain_id: int, buffer_address: str) -> None:
        super().__init__(home_chain_id, target_chain_id)
        self.buffer_address = Web3.to_checksum_address(buffer_address)

    def immutables(self) -> tuple:
        return super().immutables() + (self.buffer_address, BLOCK_HASH_MAPPING_SLOT)

    def _get_target_commitment(self, hop_input: bytes) -> bytes:
        (block_number,) = self._decode(GET_INPUT_TYPES, hop_input)
        return self.chain.contract_at(self.buffer_address).parent_chain_block_hash(block_number)

    def verify_target_commitment(self, home_block_hash: bytes, hop_input: bytes) -> bytes:
        rlp_header, block_number, account_proof, storage_proof = self._decode(VERIFY_INPUT_TYPES, hop_input)
        return self._verify_home_slot(
            home_block_hash, rlp_header, self.buffer_address, block_hash_slot(block_number),
            account_proof, storage_proof,
        )

    @staticmethod
    def encode_get_input(block_number: int) -> bytes:
        return encode(GET_INPUT_TYPES, [block_number])

    @staticmethod
    def encode_verify_input(rlp_header: bytes, block_number: int, proof: StorageProof) -> bytes:
        """Build the verify input from a proof of ``block_hash_slot(block_number)`` in the buffer."""
        return encode(
            VERIFY_INPUT_TYPES,
            [rlp_header, block_number, proof.encoded_account_proof, proof.encoded_storage_proof],
        )
