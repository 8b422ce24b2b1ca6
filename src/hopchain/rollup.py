"""
Rollup state sources read by the hop provers.

These are the minimal on-chain records each bridge keeps about its
counterpart chain: Arbitrum's outbox (send root -> L2 block hash), the
OP-stack ``L1Block`` predeploy (latest L1 block hash), and a store of
finalized child state roots.
"""

import logging
from typing import ClassVar

from web3 import Web3

from .chain import Contract, external
from .encoding import ZERO_BYTES32, mapping_slot
from .errors import InvalidHopInput, OwnableUnauthorizedAccount
from .ownable import Ownable

logger = logging.getLogger(__name__)

L1_BLOCK_ADDRESS = "0x4200000000000000000000000000000000000015"
L1_BLOCK_DEPOSITOR = "0xDeaDDEaDDeAdDeAdDEAdDEaddeAddEAdDEAd0001"


class ArbitrumOutbox(Ownable):
    """Outbox on the parent chain; the rollup (owner) records confirmed send roots."""

    ROOTS_SLOT: ClassVar[int] = 3

    def roots(self, send_root: bytes) -> bytes:
        return self._sload(mapping_slot('bytes32', send_root, self.ROOTS_SLOT))

    @external
    def update_send_root(self, send_root: bytes, l2_block_hash: bytes) -> None:
        self._check_owner()
        if l2_block_hash == ZERO_BYTES32:
            raise InvalidHopInput("L2 block hash must be non-zero")
        self._sstore(mapping_slot('bytes32', send_root, self.ROOTS_SLOT), l2_block_hash)
        logger.debug(f"Outbox {self.address}: send root {Web3.to_hex(send_root)} -> {Web3.to_hex(l2_block_hash)}")


class L1Block(Contract):
    """OP-stack predeploy holding the latest known L1 block attributes."""

    NUMBER_SLOT: ClassVar[int] = 0
    TIMESTAMP_SLOT: ClassVar[int] = 1
    HASH_SLOT: ClassVar[int] = 2

    def number(self) -> int:
        return self._sload_int(self.NUMBER_SLOT)

    def timestamp(self) -> int:
        return self._sload_int(self.TIMESTAMP_SLOT)

    def hash(self) -> bytes:
        return self._sload(self.HASH_SLOT)

    @external
    def set_l1_block_values(self, number: int, timestamp: int, block_hash: bytes) -> None:
        if self.msg_sender != L1_BLOCK_DEPOSITOR:
            raise OwnableUnauthorizedAccount(self.msg_sender)
        self._sstore_int(self.NUMBER_SLOT, number)
        self._sstore_int(self.TIMESTAMP_SLOT, timestamp)
        self._sstore(self.HASH_SLOT, block_hash)


class StateRootStore(Ownable):
    """Finalized child-chain state roots indexed by batch/block number."""

    FINALIZED_STATE_ROOTS_SLOT: ClassVar[int] = 1

    def finalized_state_roots(self, index: int) -> bytes:
        return self._sload(mapping_slot('uint256', index, self.FINALIZED_STATE_ROOTS_SLOT))

    @external
    def finalize_state_root(self, index: int, state_root: bytes) -> None:
        self._check_owner()
        if state_root == ZERO_BYTES32:
            raise InvalidHopInput("state root must be non-zero")
        self._sstore(mapping_slot('uint256', index, self.FINALIZED_STATE_ROOTS_SLOT), state_root)
        logger.debug(f"StateRootStore {self.address}: index {index} -> {Web3.to_hex(state_root)}")
