"""Parent-to-child hop for Arbitrum-style rollups, via the outbox's send roots."""

import logging

from eth_abi import encode
from web3 import Web3

from ..encoding import mapping_slot
from ..models import StorageProof
from ..rollup import ArbitrumOutbox
from .base import BlockHashHopProver

logger = logging.getLogger(__name__)

GET_INPUT_TYPES = ['bytes32']
VERIFY_INPUT_TYPES = ['bytes', 'bytes32', 'bytes', 'bytes']


class ParentToChildProver(BlockHashHopProver):
    """
    Home: the parent chain. Target: an Arbitrum child chain.

    The outbox maps each confirmed send root to the child block hash it was
    produced at; that block hash is this hop's target commitment.
    """

    def __init__(self, home_chain_id: int, target_chain_id: int, outbox_address: str,
                 roots_slot: int = ArbitrumOutbox.ROOTS_SLOT) -> None:
        super().__init__(home_chain_id, target_chain_id)
        self.outbox_address = Web3.to_checksum_address(outbox_address)
        self.roots_slot = roots_slot

    def immutables(self) -> tuple:
        return super().immutables() + (self.outbox_address, self.roots_slot)

    def _get_target_commitment(self, hop_input: bytes) -> bytes:
        (send_root,) = self._decode(GET_INPUT_TYPES, hop_input)
        return self.chain.contract_at(self.outbox_address).roots(send_root)

    def verify_target_commitment(self, home_block_hash: bytes, hop_input: bytes) -> bytes:
        rlp_header, send_root, account_proof, storage_proof = self._decode(VERIFY_INPUT_TYPES, hop_input)
        return self._verify_home_slot(
            home_block_hash, rlp_header, self.outbox_address, self.send_root_slot(send_root),
            account_proof, storage_proof,
        )

    def send_root_slot(self, send_root: bytes) -> int:
        return mapping_slot('bytes32', send_root, self.roots_slot)

    @staticmethod
    def encode_get_input(send_root: bytes) -> bytes:
        return encode(GET_INPUT_TYPES, [send_root])

    @staticmethod
    def encode_verify_input(rlp_header: bytes, send_root: bytes, proof: StorageProof) -> bytes:
        return encode(
            VERIFY_INPUT_TYPES,
            [rlp_header, send_root, proof.encoded_account_proof, proof.encoded_storage_proof],
        )
