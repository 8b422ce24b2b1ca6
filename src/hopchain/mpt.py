"""Merkle-Patricia proofs over Ethereum state.

Builds secure (keccak-keyed) state and storage tries with py-trie and
verifies ``eth_getProof``-style account and storage proofs against a state
root or a block header. Verification fails closed: any malformed or
incomplete proof raises.
"""

import logging
from dataclasses import dataclass
from typing import Mapping

import rlp
from rlp.exceptions import DecodingError
from trie import HexaryTrie
from trie.exceptions import BadTrieProof, InvalidNode
from web3 import Web3

from .encoding import ZERO_BYTES32, BlockchainEncoder, keccak, to_bytes32, to_int
from .errors import HopChainError, InvalidAccountProof, InvalidStorageProof
from .models import BlockHeader

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AccountState:
    nonce: int
    balance: int
    storage_root: bytes
    code_hash: bytes

    def encode(self) -> bytes:
        return rlp.encode([self.nonce, self.balance, self.storage_root, self.code_hash])


def account_key(address: str) -> bytes:
    return keccak(Web3.to_bytes(hexstr=address))


def storage_key(slot: int) -> bytes:
    return keccak(to_bytes32(slot))


def build_storage_trie(storage: Mapping[int, bytes]) -> HexaryTrie:
    """Secure storage trie; values are RLP of the slot value with leading zeros stripped."""
    trie = HexaryTrie({})
    for slot, value in storage.items():
        trimmed = value.lstrip(b'\x00')
        if trimmed:
            trie[storage_key(slot)] = rlp.encode(trimmed)
    return trie


def build_state_trie(accounts: Mapping[str, AccountState]) -> HexaryTrie:
    trie = HexaryTrie({})
    for address, account in accounts.items():
        trie[account_key(address)] = account.encode()
    return trie


def _decode_proof(encoded_proof: bytes, error_cls: type[HopChainError]) -> list:
    """Unpack ``rlp([node, ...])`` into the decoded node list py-trie expects."""
    try:
        nodes = rlp.decode(encoded_proof)
        if isinstance(nodes, bytes):
            raise error_cls("proof must be an RLP list of nodes")
        decoded = []
        for node in nodes:
            if not isinstance(node, bytes):
                raise error_cls("proof node must be RLP-encoded bytes")
            decoded.append(rlp.decode(node))
        return decoded
    except DecodingError as e:
        raise error_cls(f"malformed proof: {e}") from e


def _get_from_proof(root: bytes, key: bytes, encoded_proof: bytes,
                    error_cls: type[HopChainError]) -> bytes:
    nodes = _decode_proof(encoded_proof, error_cls)
    try:
        return HexaryTrie.get_from_proof(root, key, nodes)
    except (BadTrieProof, InvalidNode, DecodingError) as e:
        raise error_cls(f"proof does not resolve against root {Web3.to_hex(root)}") from e


def verify_account(state_root: bytes, address: str, encoded_proof: bytes) -> AccountState:
    """
    Verify an account proof against a state root.

    Args:
        state_root: Trusted state root
        address: Account address
        encoded_proof: ``rlp([node, ...])`` account proof

    Returns:
        The proven account state

    Raises:
        InvalidAccountProof: If the proof is malformed or the account does not exist
    """
    value = _get_from_proof(state_root, account_key(address), encoded_proof, InvalidAccountProof)
    if not value:
        raise InvalidAccountProof(f"account {address} does not exist")

    try:
        fields = rlp.decode(value)
    except DecodingError as e:
        raise InvalidAccountProof(f"malformed account leaf: {e}") from e
    if isinstance(fields, bytes) or len(fields) != 4:
        raise InvalidAccountProof("account leaf must have 4 fields")

    nonce, balance, storage_root, code_hash = fields
    return AccountState(
        nonce=to_int(nonce),
        balance=to_int(balance),
        storage_root=storage_root,
        code_hash=code_hash,
    )


def verify_storage(storage_root: bytes, slot: int, encoded_proof: bytes) -> bytes:
    """
    Verify a storage proof against a storage root.

    An exclusion proof is valid and yields the zero word.

    Returns:
        32-byte slot value
    """
    value = _get_from_proof(storage_root, storage_key(slot), encoded_proof, InvalidStorageProof)
    if not value:
        return ZERO_BYTES32

    try:
        decoded = rlp.decode(value)
    except DecodingError as e:
        raise InvalidStorageProof(f"malformed storage leaf: {e}") from e
    if not isinstance(decoded, bytes) or len(decoded) > 32:
        raise InvalidStorageProof("storage value must be at most 32 bytes")
    return decoded.rjust(32, b'\x00')


def verify_slot_against_state_root(state_root: bytes, address: str, slot: int,
                                   account_proof: bytes, storage_proof: bytes) -> bytes:
    account = verify_account(state_root, address, account_proof)
    return verify_storage(account.storage_root, slot, storage_proof)


def verify_block_header(expected_hash: bytes, rlp_header: bytes,
                        error_cls: type[HopChainError]) -> BlockHeader:
    """
    Check ``keccak(rlp_header) == expected_hash`` and decode the header.

    Raises:
        error_cls: If the hash does not match or the header cannot be decoded
    """
    actual_hash = keccak(rlp_header)
    if actual_hash != expected_hash:
        raise error_cls(expected_hash, actual_hash)
    try:
        return BlockchainEncoder.decode_block_header(rlp_header)
    except ValueError as e:
        raise error_cls(expected_hash, str(e)) from e


def verify_slot_against_block_hash(block_hash: bytes, rlp_header: bytes, address: str, slot: int,
                                   account_proof: bytes, storage_proof: bytes,
                                   header_error: type[HopChainError]) -> bytes:
    """Prove ``address``'s ``slot`` in the state committed to by ``block_hash``."""
    header = verify_block_header(block_hash, rlp_header, header_error)
    logger.debug(f"Header {header.number} matches {Web3.to_hex(block_hash)}, walking proofs for slot {hex(slot)}")
    return verify_slot_against_state_root(header.state_root, address, slot, account_proof, storage_proof)
