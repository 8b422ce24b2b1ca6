"""Child-to-parent hop for OP-stack chains, via the ``L1Block`` predeploy."""

from eth_abi import encode

from ..models import StorageProof
from ..rollup import L1_BLOCK_ADDRESS, L1Block
from .base import BlockHashHopProver

VERIFY_INPUT_TYPES = ['bytes', 'bytes', 'bytes']


class OptimismChildToParentProver(BlockHashHopProver):
    """
    Home: an OP-stack chain. Target: L1.

    Only the latest L1 block hash known to the child is available, so
    ``get_target_commitment`` takes no input.
    """

    def immutables(self) -> tuple:
        return super().immutables() + (L1_BLOCK_ADDRESS, L1Block.HASH_SLOT)

    def _get_target_commitment(self, hop_input: bytes) -> bytes:
        return self.chain.contract_at(L1_BLOCK_ADDRESS).hash()

    def verify_target_commitment(self, home_block_hash: bytes, hop_input: bytes) -> bytes:
        rlp_header, account_proof, storage_proof = self._decode(VERIFY_INPUT_TYPES, hop_input)
        return self._verify_home_slot(
            home_block_hash, rlp_header, L1_BLOCK_ADDRESS, L1Block.HASH_SLOT,
            account_proof, storage_proof,
        )

    @staticmethod
    def encode_verify_input(rlp_header: bytes, proof: StorageProof) -> bytes:
        return encode(
            VERIFY_INPUT_TYPES,
            [rlp_header, proof.encoded_account_proof, proof.encoded_storage_proof],
        )
