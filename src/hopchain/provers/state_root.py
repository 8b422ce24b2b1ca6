"""Parent-to-child hop for rollups that post finalized state roots to the parent."""

import logging

from eth_abi import encode
from web3 import Web3

from ..encoding import ZERO_BYTES32, mapping_slot
from ..errors import TargetCommitmentNotFound
from ..models import StorageProof, StorageSlot
from ..mpt import verify_slot_against_state_root
from ..rollup import StateRootStore
from .base import HopProver

logger = logging.getLogger(__name__)

GET_INPUT_TYPES = ['uint256']
VERIFY_INPUT_TYPES = ['bytes', 'uint256', 'bytes', 'bytes']
STORAGE_SLOT_INPUT_TYPES = ['address', 'uint256', 'bytes', 'bytes']


class StateRootProver(HopProver):
    """
    Home: the parent chain. Target: a child whose finalized state roots are
    stored in a ``StateRootStore``.

    The home commitment is a block hash; the target commitment is a state
    root, so ``verify_storage_slot`` takes no header.
    """

    def __init__(self, home_chain_id: int, target_chain_id: int, store_address: str) -> None:
        super().__init__(home_chain_id, target_chain_id)
        self.store_address = Web3.to_checksum_address(store_address)

    def immutables(self) -> tuple:
        return super().immutables() + (self.store_address, StateRootStore.FINALIZED_STATE_ROOTS_SLOT)

    def state_root_slot(self, index: int) -> int:
        return mapping_slot('uint256', index, StateRootStore.FINALIZED_STATE_ROOTS_SLOT)

    def _get_target_commitment(self, hop_input: bytes) -> bytes:
        (index,) = self._decode(GET_INPUT_TYPES, hop_input)
        return self.chain.contract_at(self.store_address).finalized_state_roots(index)

    def verify_target_commitment(self, home_block_hash: bytes, hop_input: bytes) -> bytes:
        rlp_header, index, account_proof, storage_proof = self._decode(VERIFY_INPUT_TYPES, hop_input)
        return self._verify_home_slot(
            home_block_hash, rlp_header, self.store_address, self.state_root_slot(index),
            account_proof, storage_proof,
        )

    def verify_storage_slot(self, state_root: bytes, hop_input: bytes) -> StorageSlot:
        """
        Prove one slot directly against a finalized state root.

        Args:
            state_root: Commitment produced by this hop
            hop_input: ``abi(address account, uint256 slot, bytes accountProof, bytes storageProof)``
        """
        if state_root == ZERO_BYTES32:
            raise TargetCommitmentNotFound()
        account, slot, account_proof, storage_proof = self._decode(STORAGE_SLOT_INPUT_TYPES, hop_input)
        account = Web3.to_checksum_address(account)
        value = verify_slot_against_state_root(state_root, account, slot, account_proof, storage_proof)
        return StorageSlot(account=account, slot=slot, value=value)

    @staticmethod
    def encode_get_input(index: int) -> bytes:
        return encode(GET_INPUT_TYPES, [index])

    @staticmethod
    def encode_verify_input(rlp_header: bytes, index: int, proof: StorageProof) -> bytes:
        return encode(
            VERIFY_INPUT_TYPES,
            [rlp_header, index, proof.encoded_account_proof, proof.encoded_storage_proof],
        )

    @staticmethod
    def encode_storage_slot_input(proof: StorageProof) -> bytes:
        return encode(
            STORAGE_SLOT_INPUT_TYPES,
            [proof.address, proof.slot, proof.encoded_account_proof, proof.encoded_storage_proof],
        )
