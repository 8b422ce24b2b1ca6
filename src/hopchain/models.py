"""
Shared data models for hopchain.

This module contains the immutable value types passed between contracts,
provers and the off-chain pusher service.
"""

from dataclasses import dataclass
from typing import Any

import rlp
from web3 import Web3

# keccak(rlp([])) and keccak(rlp(b'')), the empty ommers list and empty trie roots
EMPTY_OMMERS_HASH = bytes.fromhex("1dcc4de8dec75d7aab85b567b6ccd41ad312451b948a7413f0a142fd40d49347")
BLANK_ROOT = bytes.fromhex("56e81f171bcc55a6ff8345e692c0f86e5b48e01b996cadc001622fb5e363b421")


@dataclass(frozen=True, slots=True)
class BlockHeader:
    """Execution-layer block header.

    Optional fields follow hardfork order (London, Shanghai, Cancun, Prague)
    and are only encoded when present.
    """
    parent_hash: bytes
    state_root: bytes
    number: int
    timestamp: int
    ommers_hash: bytes = EMPTY_OMMERS_HASH
    coinbase: bytes = bytes(20)
    transactions_root: bytes = BLANK_ROOT
    receipts_root: bytes = BLANK_ROOT
    logs_bloom: bytes = bytes(256)
    difficulty: int = 0
    gas_limit: int = 30_000_000
    gas_used: int = 0
    extra_data: bytes = b""
    mix_hash: bytes = bytes(32)
    nonce: bytes = bytes(8)
    base_fee_per_gas: int | None = None
    withdrawals_root: bytes | None = None
    blob_gas_used: int | None = None
    excess_blob_gas: int | None = None
    parent_beacon_block_root: bytes | None = None
    requests_hash: bytes | None = None

    def to_block_data(self) -> dict[str, Any]:
        """Return the header in web3 ``BlockData`` key format."""
        return {
            'parentHash': self.parent_hash,
            'sha3Uncles': self.ommers_hash,
            'miner': self.coinbase,
            'stateRoot': self.state_root,
            'transactionsRoot': self.transactions_root,
            'receiptsRoot': self.receipts_root,
            'logsBloom': self.logs_bloom,
            'difficulty': self.difficulty,
            'number': self.number,
            'gasLimit': self.gas_limit,
            'gasUsed': self.gas_used,
            'timestamp': self.timestamp,
            'extraData': self.extra_data,
            'mixHash': self.mix_hash,
            'nonce': self.nonce,
            'baseFeePerGas': self.base_fee_per_gas,
            'withdrawalsRoot': self.withdrawals_root,
            'blobGasUsed': self.blob_gas_used,
            'excessBlobGas': self.excess_blob_gas,
            'parentBeaconBlockRoot': self.parent_beacon_block_root,
            'requestsHash': self.requests_hash,
        }


@dataclass(frozen=True, slots=True)
class StorageProof:
    """Account and storage proof for a single slot, as returned by eth_getProof.

    Attributes:
        address: Account the slot belongs to
        slot: Storage slot key
        value: 32-byte slot value at ``block_number``
        block_number: Block whose state root the proof is against
        state_root: State root of that block
        account_proof: RLP-encoded trie nodes from state root to account
        storage_proof: RLP-encoded trie nodes from storage root to slot
    """
    address: str
    slot: int
    value: bytes
    block_number: int
    state_root: bytes
    account_proof: tuple[bytes, ...]
    storage_proof: tuple[bytes, ...]

    @property
    def encoded_account_proof(self) -> bytes:
        return rlp.encode(list(self.account_proof))

    @property
    def encoded_storage_proof(self) -> bytes:
        return rlp.encode(list(self.storage_proof))


@dataclass(frozen=True, slots=True)
class StorageSlot:
    """Result of a terminal storage-slot verification."""
    account: str
    slot: int
    value: bytes

    @property
    def as_int(self) -> int:
        return int.from_bytes(self.value, 'big')


@dataclass(frozen=True, slots=True)
class RemoteReadArgs:
    """Route through pointers plus the per-hop and terminal proof payloads.

    Attributes:
        route: Pointer addresses; ``route[0]`` lives on the executing chain and
            ``route[i]`` on the target chain of hop ``i - 1``
        hop_inputs: Prover input for each hop
        final_proof: Input for ``verify_storage_slot`` of the last hop's prover
    """
    route: tuple[str, ...]
    hop_inputs: tuple[bytes, ...]
    final_proof: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, 'route', tuple(Web3.to_checksum_address(a) for a in self.route))
        object.__setattr__(self, 'hop_inputs', tuple(self.hop_inputs))


@dataclass(frozen=True, slots=True)
class RouteResult:
    """Outcome of folding a route."""
    commitment: bytes
    prover: str
    route_id: bytes
    target_chain_id: int


@dataclass(frozen=True, slots=True)
class BlockHashesPushed:
    first_block_number: int
    last_block_number: int

    def __str__(self) -> str:
        return f"BlockHashesPushed(blocks {self.first_block_number}..{self.last_block_number})"


@dataclass(frozen=True, slots=True)
class MessageBroadcast:
    message: bytes
    publisher: str

    def __str__(self) -> str:
        return f"MessageBroadcast(message={Web3.to_hex(self.message)}, publisher={self.publisher})"


@dataclass(frozen=True, slots=True)
class PusherAddressSet:
    pusher_address: str


@dataclass(frozen=True, slots=True)
class OwnershipTransferred:
    previous_owner: str
    new_owner: str


@dataclass(frozen=True, slots=True)
class ProverCopyUpdated:
    pointer_id: bytes
    copy_address: str
    version: int


@dataclass(frozen=True, slots=True)
class LogEntry:
    """An event emitted by a contract, tagged with its block and emitter."""
    block_number: int
    emitter: str
    event: Any
