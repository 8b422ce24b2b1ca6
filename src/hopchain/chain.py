"""
In-process chain execution environment.

A ``Chain`` holds world state (accounts with code and storage), seals blocks
whose headers commit to that state through a real Merkle-Patricia state
root, keeps the block-hash history window, and records emitted events.
Contracts are Python objects deployed at an address; their persistent state
lives exclusively in chain storage so that any slot can be proven with
``get_proof``.

State-changing entry points are wrapped with ``external``: each call runs in
a frame that snapshots world state and restores it if the call raises.
"""

import functools
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable, ClassVar, Iterator, TypeVar

import rlp
from web3 import Web3

from .encoding import (
    ZERO_BYTES32,
    BlockchainEncoder,
    decode_call,
    keccak,
    to_bytes32,
    to_int,
)
from .errors import BlockHashUnavailable, CallToNonContract, UnknownSelector
from .models import BLANK_ROOT, BlockHeader, LogEntry, StorageProof
from .mpt import AccountState, account_key, build_state_trie, build_storage_trie, storage_key

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_WINDOW = 8191  # EIP-2935 serve window
DEFAULT_GENESIS_TIMESTAMP = 1_700_000_000

T = TypeVar('T', bound='Contract')


@dataclass
class Account:
    code: bytes = b""
    contract: 'Contract | None' = None
    storage: dict[int, bytes] = field(default_factory=dict)
    nonce: int = 1
    balance: int = 0

    def copy(self) -> 'Account':
        return replace(self, storage=dict(self.storage))


@dataclass(frozen=True, slots=True)
class CallFrame:
    sender: str
    value: int


def external(method: Callable) -> Callable:
    """Mark a contract method as a state-changing entry point.

    The wrapped method takes keyword-only ``sender`` (msg.sender) and
    ``value`` (msg.value) and executes atomically.
    """
    @functools.wraps(method)
    def wrapper(self: 'Contract', *args: Any, sender: str, value: int = 0, **kwargs: Any) -> Any:
        with self.chain.call(sender=sender, value=value):
            return method(self, *args, **kwargs)
    return wrapper


class Contract:
    """Base class for contracts deployed on a ``Chain``.

    A contract's code is derived from its class and its immutables only, so
    the same contract constructed with the same arguments has the same code
    hash on every chain.
    """

    # selector -> (method name, ABI argument types) for calls arriving as calldata
    ENTRYPOINTS: ClassVar[dict[bytes, tuple[str, list[str]]]] = {}

    chain: 'Chain'
    address: str

    def immutables(self) -> tuple:
        return ()

    def setup(self) -> None:
        """Constructor body; runs once when the contract is deployed."""

    def bytecode(self) -> bytes:
        cls = type(self)
        fields: list[Any] = [f"{cls.__module__}.{cls.__qualname__}".encode()]
        for value in self.immutables():
            if isinstance(value, str):
                fields.append(Web3.to_bytes(hexstr=value))
            else:
                fields.append(value)
        return rlp.encode(fields)

    @property
    def code_hash(self) -> bytes:
        return keccak(self.bytecode())

    @property
    def msg_sender(self) -> str:
        return self.chain.current_frame.sender

    @property
    def msg_value(self) -> int:
        return self.chain.current_frame.value

    def execute(self, calldata: bytes, *, sender: str, value: int = 0) -> Any:
        """Dispatch ABI calldata to the matching entry point."""
        selector = calldata[:4]
        if (entry := self.ENTRYPOINTS.get(selector)) is None:
            raise UnknownSelector(selector)
        name, types = entry
        args = decode_call(calldata, types)
        return getattr(self, name)(*args, sender=sender, value=value)

    # Storage helpers

    def _sload(self, slot: int) -> bytes:
        return self.chain.sload(self.address, slot)

    def _sload_int(self, slot: int) -> int:
        return to_int(self._sload(slot))

    def _sload_address(self, slot: int) -> str:
        return Web3.to_checksum_address(self._sload(slot)[-20:])

    def _sstore(self, slot: int, value: bytes) -> None:
        self.chain.sstore(self.address, slot, value)

    def _sstore_int(self, slot: int, value: int) -> None:
        self._sstore(slot, to_bytes32(value))

    def _sstore_address(self, slot: int, address: str) -> None:
        self._sstore(slot, Web3.to_bytes(hexstr=address).rjust(32, b'\x00'))

    def _emit(self, event: Any) -> None:
        self.chain.emit(self.address, event)

    def __repr__(self) -> str:
        where = f"{self.address}@{self.chain.chain_id}" if hasattr(self, 'chain') else "undeployed"
        return f"{type(self).__name__}({where})"


class Chain:
    """
    A single chain: world state, sealed headers and event log.

    The pending block has number ``block_number``; ``mine`` seals it.
    """

    def __init__(self, chain_id: int, name: str | None = None, block_time: int = 12,
                 history_window: int = DEFAULT_HISTORY_WINDOW,
                 genesis_timestamp: int = DEFAULT_GENESIS_TIMESTAMP) -> None:
        self.chain_id = chain_id
        self.name = name or f"chain-{chain_id}"
        self.block_time = block_time
        self.history_window = history_window
        self.genesis_timestamp = genesis_timestamp

        self._accounts: dict[str, Account] = {}
        self._frames: list[CallFrame] = []
        self._events: list[LogEntry] = []
        self._headers: list[BlockHeader] = []
        self._encoded_headers: list[bytes] = []
        self._hashes: list[bytes] = []
        self._block_states: list[dict[str, Account]] = []
        self._deploy_nonce = 0
        self._dirty = True
        self._state_root = BLANK_ROOT

        self.mine()
        logger.debug(f"{self.name} (chain id {chain_id}) genesis {Web3.to_hex(self._hashes[0])}")

    def __repr__(self) -> str:
        return f"Chain({self.name}, id={self.chain_id}, block={self.block_number})"

    # Block context

    @property
    def block_number(self) -> int:
        """Number of the pending block."""
        return len(self._headers)

    @property
    def timestamp(self) -> int:
        return self.genesis_timestamp + self.block_number * self.block_time

    @property
    def head(self) -> BlockHeader:
        return self._headers[-1]

    @property
    def current_frame(self) -> CallFrame:
        if not self._frames:
            raise RuntimeError("No call in progress")
        return self._frames[-1]

    # Accounts

    def deploy(self, contract: T, address: str | None = None) -> T:
        """Deploy ``contract`` at ``address`` (or a fresh address) and return it."""
        if address is None:
            self._deploy_nonce += 1
            address = keccak(rlp.encode([self.chain_id, self._deploy_nonce]))[-20:]
        address = Web3.to_checksum_address(address)
        if address in self._accounts and self._accounts[address].code:
            raise ValueError(f"Address {address} already has code on {self.name}")

        contract.chain = self
        contract.address = address
        account = self._accounts.setdefault(address, Account())
        account.code = contract.bytecode()
        account.contract = contract
        contract.setup()
        self._dirty = True
        logger.debug(f"Deployed {type(contract).__name__} at {address} on {self.name}")
        return contract

    def replace_code(self, address: str, contract: T) -> T:
        """Swap the code at ``address`` while keeping its storage."""
        address = Web3.to_checksum_address(address)
        account = self._accounts.get(address)
        if account is None or account.contract is None:
            raise CallToNonContract(address)
        contract.chain = self
        contract.address = address
        account.code = contract.bytecode()
        account.contract = contract
        self._dirty = True
        logger.debug(f"Replaced code at {address} on {self.name} with {type(contract).__name__}")
        return contract

    def contract_at(self, address: str) -> 'Contract':
        account = self._accounts.get(Web3.to_checksum_address(address))
        if account is None or account.contract is None:
            raise CallToNonContract(address)
        return account.contract

    def has_code(self, address: str) -> bool:
        account = self._accounts.get(Web3.to_checksum_address(address))
        return account is not None and bool(account.code)

    def code_hash(self, address: str) -> bytes:
        """EXTCODEHASH: zero for absent accounts."""
        account = self._accounts.get(Web3.to_checksum_address(address))
        if account is None:
            return ZERO_BYTES32
        return keccak(account.code)

    def sload(self, address: str, slot: int) -> bytes:
        account = self._accounts.get(address)
        if account is None:
            return ZERO_BYTES32
        return account.storage.get(slot, ZERO_BYTES32)

    def sstore(self, address: str, slot: int, value: bytes) -> None:
        if len(value) != 32:
            raise ValueError(f"Storage values must be 32 bytes, got {len(value)}")
        account = self._accounts.setdefault(address, Account())
        if value == ZERO_BYTES32:
            account.storage.pop(slot, None)
        else:
            account.storage[slot] = value
        self._dirty = True

    # Calls

    @contextmanager
    def call(self, sender: str, value: int = 0) -> Iterator[CallFrame]:
        """Run a call frame; world state and events roll back if it raises."""
        snapshot = ({address: account.copy() for address, account in self._accounts.items()},
                    len(self._events), self._deploy_nonce)
        frame = CallFrame(sender=Web3.to_checksum_address(sender), value=value)
        self._frames.append(frame)
        try:
            yield frame
        except Exception:
            accounts, event_count, deploy_nonce = snapshot
            self._accounts = accounts
            del self._events[event_count:]
            self._deploy_nonce = deploy_nonce
            self._dirty = True
            raise
        finally:
            self._frames.pop()

    def emit(self, emitter: str, event: Any) -> None:
        self._events.append(LogEntry(self.block_number, emitter, event))

    def events_of(self, event_type: type, emitter: str | None = None) -> list[Any]:
        return [
            entry.event for entry in self._events
            if isinstance(entry.event, event_type) and (emitter is None or entry.emitter == emitter)
        ]

    def logs(self, start: int = 0) -> list[LogEntry]:
        return self._events[start:]

    # Blocks

    def _account_states(self, accounts: dict[str, Account]) -> dict[str, AccountState]:
        return {
            address: AccountState(
                nonce=account.nonce,
                balance=account.balance,
                storage_root=build_storage_trie(account.storage).root_hash,
                code_hash=keccak(account.code),
            )
            for address, account in accounts.items()
        }

    def mine(self, count: int = 1) -> BlockHeader:
        """Seal ``count`` blocks and return the last header."""
        for _ in range(count):
            if self._dirty or not self._block_states:
                state = {address: account.copy() for address, account in self._accounts.items()}
                self._state_root = build_state_trie(self._account_states(state)).root_hash
                self._dirty = False
            else:
                state = self._block_states[-1]

            number = self.block_number
            header = BlockHeader(
                parent_hash=self._hashes[-1] if self._hashes else ZERO_BYTES32,
                state_root=self._state_root,
                number=number,
                timestamp=self.timestamp,
                extra_data=self.chain_id.to_bytes(8, 'big'),
                base_fee_per_gas=7,
                withdrawals_root=BLANK_ROOT,
                blob_gas_used=0,
                excess_blob_gas=0,
                parent_beacon_block_root=ZERO_BYTES32,
            )
            encoded = BlockchainEncoder.encode_block_header(header.to_block_data())
            self._headers.append(header)
            self._encoded_headers.append(encoded)
            self._hashes.append(keccak(encoded))
            self._block_states.append(state)
        return self.head

    def _require_sealed(self, block_number: int) -> None:
        if not 0 <= block_number < self.block_number:
            raise BlockHashUnavailable(block_number)

    def header(self, block_number: int) -> BlockHeader:
        self._require_sealed(block_number)
        return self._headers[block_number]

    def rlp_header(self, block_number: int) -> bytes:
        self._require_sealed(block_number)
        return self._encoded_headers[block_number]

    def block_hash(self, block_number: int) -> bytes:
        """Hash of a sealed block within the history window of the pending block."""
        self._require_sealed(block_number)
        if self.block_number - block_number > self.history_window:
            raise BlockHashUnavailable(block_number)
        return self._hashes[block_number]

    def get_proof(self, address: str, slot: int, block_number: int | None = None) -> StorageProof:
        """
        Produce an account + storage proof for one slot at a sealed block.

        Args:
            address: Account to prove
            slot: Storage slot to prove
            block_number: Sealed block (defaults to the latest)

        Returns:
            StorageProof whose nodes are RLP-encoded trie nodes
        """
        if block_number is None:
            block_number = self.block_number - 1
        self._require_sealed(block_number)
        address = Web3.to_checksum_address(address)

        state = self._block_states[block_number]
        state_trie = build_state_trie(self._account_states(state))
        if state_trie.root_hash != self._headers[block_number].state_root:
            raise RuntimeError(f"State root mismatch rebuilding block {block_number} on {self.name}")

        storage = state[address].storage if address in state else {}
        storage_trie = build_storage_trie(storage)

        return StorageProof(
            address=address,
            slot=slot,
            value=storage.get(slot, ZERO_BYTES32),
            block_number=block_number,
            state_root=state_trie.root_hash,
            account_proof=tuple(rlp.encode(node) for node in state_trie.get_proof(account_key(address))),
            storage_proof=tuple(rlp.encode(node) for node in storage_trie.get_proof(storage_key(slot))),
        )

