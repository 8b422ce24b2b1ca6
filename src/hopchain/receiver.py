"""
Receiver: folds a route of hop provers into one commitment and reads remote state.

The first hop is resolved through a pointer on the executing chain. Later
hops name pointers on remote chains; those cannot be called, so the
receiver keeps a registry of local prover copies, each admitted only after
proving that the remote pointer's code-hash slot matches the copy's code.

Copies are keyed by route identity: ``id_0 = 0``,
``id_{i+1} = keccak(abi.encode(id_i, route[i]))``. Two routes reaching the
same remote pointer through different intermediaries are different
identities.
"""

import logging
from typing import Sequence

from web3 import Web3

from .broadcaster import message_slot
from .chain import Contract, external
from .encoding import ZERO_ADDRESS, ZERO_BYTES32, accumulate_id, derived_slot, mapping_slot
from .errors import (
    CodeHashMismatch,
    InvalidImplementationAddress,
    InvalidRouteLength,
    MessageNotFound,
    NonIncreasingVersion,
    ProverCopyNotFound,
    RouteChainMismatch,
    WrongMessageSlot,
    WrongPointerSlot,
)
from .models import ProverCopyUpdated, RemoteReadArgs, RouteResult, StorageSlot
from .pointer import POINTER_SLOT, ProverPointer
from .provers.base import HopProver

logger = logging.getLogger(__name__)

PROVER_COPIES_SLOT = derived_slot("hopchain.receiver.proverCopies")
PROVER_COPY_CODE_HASHES_SLOT = derived_slot("hopchain.receiver.proverCopyCodeHashes")
PROVER_COPY_VERSIONS_SLOT = derived_slot("hopchain.receiver.proverCopyVersions")


class Receiver(Contract):
    """Route verifier and consumer of remote broadcasts."""

    def prover_copy(self, pointer_id: bytes) -> str:
        return self._sload_address(mapping_slot('bytes32', pointer_id, PROVER_COPIES_SLOT))

    def _as_prover(self, address: str) -> HopProver:
        if address == ZERO_ADDRESS or not self.chain.has_code(address):
            raise InvalidImplementationAddress(address)
        prover = self.chain.contract_at(address)
        if not isinstance(prover, HopProver):
            raise InvalidImplementationAddress(address)
        return prover

    def _local_prover(self, pointer_address: str) -> HopProver:
        if not self.chain.has_code(pointer_address):
            raise InvalidImplementationAddress(pointer_address)
        pointer = self.chain.contract_at(pointer_address)
        if not isinstance(pointer, ProverPointer):
            raise InvalidImplementationAddress(pointer_address)

        implementation = pointer.implementation_address()
        expected = pointer.implementation_code_hash()
        actual = self.chain.code_hash(implementation)
        if actual != expected:
            raise CodeHashMismatch(expected, actual)
        return self._as_prover(implementation)

    def _remote_prover(self, pointer_id: bytes) -> HopProver:
        copy = self.prover_copy(pointer_id)
        if copy == ZERO_ADDRESS:
            raise ProverCopyNotFound(pointer_id)

        expected = self._sload(mapping_slot('bytes32', pointer_id, PROVER_COPY_CODE_HASHES_SLOT))
        actual = self.chain.code_hash(copy)
        if actual != expected:
            raise CodeHashMismatch(expected, actual)
        return self._as_prover(copy)

    def verify_route(self, route: Sequence[str], hop_inputs: Sequence[bytes],
                     home_commitment: bytes | None = None) -> RouteResult:
        """
        Fold a route into the commitment of its final target chain.

        Hops run strictly left to right; any failure aborts the whole fold.

        Args:
            route: Pointer addresses, ``route[0]`` on this chain
            hop_inputs: One prover input per hop
            home_commitment: Trusted commitment of this chain for the first hop;
                when omitted the first hop reads its target commitment from local state

        Returns:
            RouteResult with the final commitment, the last hop's prover and the route identity

        Raises:
            InvalidRouteLength: If the route is empty or lengths differ
            RouteChainMismatch: If a hop's home chain is not the previous hop's target
            CodeHashMismatch: If a prover's code differs from what its pointer recorded
            ProverCopyNotFound: If no copy is registered for a remote pointer
        """
        if not route or len(route) != len(hop_inputs):
            raise InvalidRouteLength(len(route), len(hop_inputs))

        route_id = ZERO_BYTES32
        expected_home = self.chain.chain_id
        commitment = home_commitment

        for hop, (pointer_address, hop_input) in enumerate(zip(route, hop_inputs)):
            pointer_address = Web3.to_checksum_address(pointer_address)
            route_id = accumulate_id(route_id, pointer_address)
            prover = self._local_prover(pointer_address) if hop == 0 else self._remote_prover(route_id)

            if prover.home_chain_id != expected_home:
                raise RouteChainMismatch(hop, expected_home, prover.home_chain_id)

            if commitment is None:
                commitment = prover.get_target_commitment(hop_input)
            else:
                commitment = prover.verify_target_commitment(commitment, hop_input)

            logger.debug(f"Hop {hop} via {prover}: commitment {Web3.to_hex(commitment)}")
            expected_home = prover.target_chain_id

        return RouteResult(
            commitment=commitment,
            prover=prover.address,
            route_id=route_id,
            target_chain_id=prover.target_chain_id,
        )

    def read_remote_slot(self, args: RemoteReadArgs,
                         home_commitment: bytes | None = None) -> tuple[bytes, StorageSlot]:
        """
        Prove one storage slot on the route's final target chain.

        Args:
            args: Route, hop inputs and the final storage proof
            home_commitment: Passed to ``verify_route`` for the first hop

        Returns:
            ``(remote_account_id, slot)`` where the id accumulates the route and the proven account
        """
        result = self.verify_route(args.route, args.hop_inputs, home_commitment)
        prover = self.chain.contract_at(result.prover)
        proven = prover.verify_storage_slot(result.commitment, args.final_proof)
        return accumulate_id(result.route_id, proven.account), proven

    @external
    def update_prover_copy(self, pointer_proof: RemoteReadArgs, copy_address: str) -> bytes:
        """
        Register a local copy of the prover a remote pointer currently points at.

        Args:
            pointer_proof: Route to the remote pointer's chain, with a final proof
                of the pointer's code-hash slot
            copy_address: Local contract with the same code as the remote implementation

        Returns:
            The remote pointer's identity

        Raises:
            WrongPointerSlot: If the proven slot is not the pointer code-hash slot
            CodeHashMismatch: If the copy's code hash differs from the proven one
            NonIncreasingVersion: If the copy is not newer than the registered one
        """
        pointer_id, proven = self.read_remote_slot(pointer_proof)
        if proven.slot != POINTER_SLOT:
            raise WrongPointerSlot(proven.slot)

        copy_address = Web3.to_checksum_address(copy_address)
        actual = self.chain.code_hash(copy_address)
        if proven.value != actual:
            raise CodeHashMismatch(proven.value, actual)

        new_version = self._as_prover(copy_address).version()
        versions_slot = mapping_slot('bytes32', pointer_id, PROVER_COPY_VERSIONS_SLOT)
        if self.prover_copy(pointer_id) != ZERO_ADDRESS:
            old_version = self._sload_int(versions_slot)
            if new_version <= old_version:
                raise NonIncreasingVersion(old_version, new_version)

        self._sstore_address(mapping_slot('bytes32', pointer_id, PROVER_COPIES_SLOT), copy_address)
        self._sstore(mapping_slot('bytes32', pointer_id, PROVER_COPY_CODE_HASHES_SLOT), actual)
        self._sstore_int(versions_slot, new_version)
        self._emit(ProverCopyUpdated(pointer_id, copy_address, new_version))
        logger.info(f"Receiver {self.address}: prover copy for {Web3.to_hex(pointer_id)} -> "
                    f"{copy_address} (version {new_version})")
        return pointer_id

    def verify_broadcast_message(self, args: RemoteReadArgs, message: bytes,
                                 publisher: str) -> tuple[bytes, int]:
        """
        Prove that ``publisher`` broadcast ``message`` on the route's target chain.

        Returns:
            ``(broadcaster_id, timestamp)``

        Raises:
            WrongMessageSlot: If the final proof is for another slot
            MessageNotFound: If the slot is empty
        """
        broadcaster_id, proven = self.read_remote_slot(args)
        expected_slot = message_slot(message, publisher)
        if proven.slot != expected_slot:
            raise WrongMessageSlot(expected_slot, proven.slot)
        if proven.value == ZERO_BYTES32:
            raise MessageNotFound(message, publisher)

        logger.info(f"Verified broadcast {Web3.to_hex(message)} from {publisher} "
                    f"(broadcaster {Web3.to_hex(broadcaster_id)})")
        return broadcaster_id, proven.as_int
