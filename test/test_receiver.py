#!/usr/bin/env python3
"""Tests for route folding, prover copies and broadcast verification."""

from dataclasses import replace

import pytest

from hopchain.broadcaster import message_slot
from hopchain.buffer import block_hash_slot
from hopchain.encoding import ZERO_ADDRESS, ZERO_BYTES32, accumulate_id
from hopchain.errors import (
    CodeHashMismatch,
    InvalidImplementationAddress,
    InvalidRouteLength,
    InvalidStorageProof,
    MessageNotFound,
    NonIncreasingVersion,
    ProverCopyNotFound,
    RouteChainMismatch,
    TargetCommitmentNotFound,
    UnknownParentChainBlockHash,
    WrongMessageSlot,
    WrongPointerSlot,
)
from hopchain.models import ProverCopyUpdated, RemoteReadArgs, StorageProof
from hopchain.pointer import POINTER_SLOT, ProverPointer
from hopchain.provers import BlockHashHopProver, ChildToParentProver, ParentToChildProver

from conftest import ALICE, ARB_CHAIN_ID, L1_CHAIN_ID, MESSAGE, OTHER_CHAIN_ID, OWNER, PUBLISHER, SEND_ROOT


class ParentToChildProverV2(ParentToChildProver):
    VERSION = 2


class TamperedProver(ParentToChildProver):
    """Same interface, different code."""


def route_id(*pointers: str) -> bytes:
    acc = ZERO_BYTES32
    for pointer in pointers:
        acc = accumulate_id(acc, pointer)
    return acc


def corrupt_leaf(proof: StorageProof) -> StorageProof:
    """Flip the last byte of the storage proof's leaf node."""
    leaf = proof.storage_proof[-1]
    return replace(proof, storage_proof=proof.storage_proof[:-1] + (leaf[:-1] + bytes([leaf[-1] ^ 1]),))


class TestVerifyRoute:
    """Test folding routes into commitments."""

    def test_single_hop_reads_home_state(self, topology):
        """Test a one-hop route resolves the parent block hash from the buffer."""
        result = topology.receiver.verify_route([topology.p0.address], [topology.first_hop_input()])
        assert result.commitment == topology.l1.block_hash(topology.l1_block)
        assert result.prover == topology.c2p.address
        assert result.route_id == route_id(topology.p0.address)
        assert result.target_chain_id == L1_CHAIN_ID

    def test_single_hop_with_home_commitment(self, topology):
        """Test the first hop verifies a supplied home block hash instead of reading state."""
        arb = topology.arb
        n = arb.block_number - 1
        proof = arb.get_proof(topology.net.buffer.address, block_hash_slot(topology.l1_block), n)
        hop_input = ChildToParentProver.encode_verify_input(arb.rlp_header(n), topology.l1_block, proof)

        result = topology.receiver.verify_route([topology.p0.address], [hop_input],
                                                home_commitment=arb.block_hash(n))
        assert result.commitment == topology.l1.block_hash(topology.l1_block)

    @pytest.mark.parametrize("route_len,inputs_len", [(0, 0), (1, 2), (2, 1)])
    def test_length_mismatch(self, topology, route_len, inputs_len):
        """Test empty routes and mismatched inputs are rejected."""
        with pytest.raises(InvalidRouteLength):
            topology.receiver.verify_route([topology.p0.address] * route_len, [b""] * inputs_len)

    def test_unpushed_block(self, topology):
        """Test the first hop fails for a parent block the buffer does not hold."""
        with pytest.raises(UnknownParentChainBlockHash):
            topology.receiver.verify_route(
                [topology.p0.address], [ChildToParentProver.encode_get_input(topology.l1_block + 5)])

    def test_first_hop_must_be_pointer(self, topology):
        """Test route[0] must be a pointer contract."""
        with pytest.raises(InvalidImplementationAddress):
            topology.receiver.verify_route([topology.c2p.address], [topology.first_hop_input()])

    def test_first_hop_home_chain_mismatch(self, topology):
        """Test a local pointer to a prover for another home chain is rejected."""
        arb = topology.arb
        foreign = arb.deploy(ParentToChildProver(L1_CHAIN_ID, OTHER_CHAIN_ID, topology.outbox.address))
        pointer = arb.deploy(ProverPointer(OWNER))
        pointer.set_implementation_address(foreign.address, sender=OWNER)

        with pytest.raises(RouteChainMismatch) as exc_info:
            topology.receiver.verify_route([pointer.address], [b""])
        assert (exc_info.value.hop, exc_info.value.expected_chain_id, exc_info.value.home_chain_id) == \
            (0, ARB_CHAIN_ID, L1_CHAIN_ID)

    def test_local_code_substitution(self, topology):
        """Test replacing the pointed-at prover's code breaks the route."""
        topology.arb.replace_code(
            topology.c2p.address,
            ChildToParentProver(ARB_CHAIN_ID, L1_CHAIN_ID, ALICE),
        )
        with pytest.raises(CodeHashMismatch):
            topology.receiver.verify_route([topology.p0.address], [topology.first_hop_input()])

    def test_second_hop_needs_copy(self, topology):
        """Test a remote hop without a registered copy is rejected."""
        with pytest.raises(ProverCopyNotFound):
            topology.receiver.verify_route(
                [topology.p0.address, topology.p1.address],
                [topology.first_hop_input(), topology.second_hop_input()],
            )


class TestProverCopies:
    """Test registering local copies of remote provers."""

    def test_pointer_proof_reads_code_hash(self, topology):
        """Test the pointer slot on L1 proves the implementation's code hash."""
        account_id, slot = topology.receiver.read_remote_slot(topology.pointer_proof())
        assert account_id == route_id(topology.p0.address, topology.p1.address)
        assert slot.account == topology.p1.address
        assert slot.slot == POINTER_SLOT
        assert slot.value == topology.p2c.code_hash

    def test_pointer_proof_under_home_commitment(self, topology):
        """Test the remote read also works from a supplied home block hash."""
        arb = topology.arb
        n = arb.block_number - 1
        proof = arb.get_proof(topology.net.buffer.address, block_hash_slot(topology.l1_block), n)
        args = topology.pointer_proof()
        args = RemoteReadArgs(
            route=args.route,
            hop_inputs=(ChildToParentProver.encode_verify_input(arb.rlp_header(n), topology.l1_block, proof),),
            final_proof=args.final_proof,
        )

        _, slot = topology.receiver.read_remote_slot(args, home_commitment=arb.block_hash(n))
        assert slot.value == topology.p2c.code_hash

    def test_register_copy(self, topology):
        """Test a matching copy is registered under the remote pointer's identity."""
        copy = topology.register_copy()
        pointer_id = route_id(topology.p0.address, topology.p1.address)

        assert topology.receiver.prover_copy(pointer_id) == copy.address
        assert topology.arb.events_of(ProverCopyUpdated) == [ProverCopyUpdated(pointer_id, copy.address, 1)]

    def test_copy_with_other_code(self, topology):
        """Test a copy whose code differs from the proven hash is rejected."""
        wrong = topology.arb.deploy(ParentToChildProver(L1_CHAIN_ID, OTHER_CHAIN_ID, ALICE))
        with pytest.raises(CodeHashMismatch):
            topology.receiver.update_prover_copy(topology.pointer_proof(), wrong.address, sender=ALICE)
        assert topology.receiver.prover_copy(route_id(topology.p0.address, topology.p1.address)) == ZERO_ADDRESS

    def test_proof_of_wrong_slot(self, topology):
        """Test the final proof must be of the pointer slot."""
        l1, block = topology.l1, topology.l1_block
        args = RemoteReadArgs(
            route=(topology.p0.address,),
            hop_inputs=(topology.first_hop_input(),),
            final_proof=BlockHashHopProver.encode_storage_slot_input(
                l1.rlp_header(block), l1.get_proof(topology.p1.address, 0, block)),
        )
        copy = topology.arb.deploy(ParentToChildProver(L1_CHAIN_ID, OTHER_CHAIN_ID, topology.outbox.address))
        with pytest.raises(WrongPointerSlot):
            topology.receiver.update_prover_copy(args, copy.address, sender=ALICE)

    def test_same_version_rejected(self, topology):
        """Test re-registering without a version increase is rejected."""
        copy = topology.register_copy()
        with pytest.raises(NonIncreasingVersion):
            topology.receiver.update_prover_copy(topology.pointer_proof(), copy.address, sender=ALICE)

    def test_upgrade_and_stale_downgrade(self, topology):
        """Test following a pointer upgrade, and that an old proof cannot downgrade."""
        old_copy = topology.register_copy()
        old_proof = topology.pointer_proof()

        l1 = topology.l1
        v2 = l1.deploy(ParentToChildProverV2(L1_CHAIN_ID, OTHER_CHAIN_ID, topology.outbox.address))
        topology.p1.set_implementation_address(v2.address, sender=OWNER)
        l1.mine()
        topology.l1_block = l1.block_number - 1
        topology.net.push_and_deliver(topology.l1_block, 1)

        new_copy = topology.arb.deploy(
            ParentToChildProverV2(L1_CHAIN_ID, OTHER_CHAIN_ID, topology.outbox.address))
        pointer_id = topology.receiver.update_prover_copy(topology.pointer_proof(), new_copy.address, sender=ALICE)
        assert topology.receiver.prover_copy(pointer_id) == new_copy.address

        with pytest.raises(NonIncreasingVersion) as exc_info:
            topology.receiver.update_prover_copy(old_proof, old_copy.address, sender=ALICE)
        assert (exc_info.value.previous_version, exc_info.value.new_version) == (2, 1)
        assert topology.receiver.prover_copy(pointer_id) == new_copy.address

    def test_copy_code_substitution(self, topology):
        """Test a registered copy whose code later changes is refused."""
        copy = topology.register_copy()
        topology.arb.replace_code(
            copy.address, TamperedProver(L1_CHAIN_ID, OTHER_CHAIN_ID, topology.outbox.address))
        with pytest.raises(CodeHashMismatch):
            topology.receiver.verify_broadcast_message(topology.broadcast_args(), MESSAGE, PUBLISHER)


class TestVerifyBroadcastMessage:
    """End-to-end: a message broadcast on one rollup, verified on another via L1."""

    def test_verifies_broadcast(self, topology):
        """Test the broadcast is proven with its timestamp and broadcaster identity."""
        topology.register_copy()
        broadcaster_id, timestamp = topology.receiver.verify_broadcast_message(
            topology.broadcast_args(), MESSAGE, PUBLISHER)

        assert timestamp == topology.broadcast_timestamp
        assert broadcaster_id == route_id(
            topology.p0.address, topology.p1.address, topology.broadcaster.address)

    def test_unbroadcast_message(self, topology):
        """Test a message that was never broadcast is not found."""
        topology.register_copy()
        other_message = bytes.fromhex("bb" * 32)
        with pytest.raises(MessageNotFound):
            topology.receiver.verify_broadcast_message(
                topology.broadcast_args(message=other_message), other_message, PUBLISHER)

    def test_wrong_publisher(self, topology):
        """Test the same message from another publisher is not found."""
        topology.register_copy()
        with pytest.raises(MessageNotFound):
            topology.receiver.verify_broadcast_message(
                topology.broadcast_args(publisher=ALICE), MESSAGE, ALICE)

    def test_proof_of_other_slot(self, topology):
        """Test a final proof for a different slot is rejected."""
        topology.register_copy()
        args = topology.broadcast_args(slot=message_slot(MESSAGE, ALICE))
        with pytest.raises(WrongMessageSlot):
            topology.receiver.verify_broadcast_message(args, MESSAGE, PUBLISHER)

    def test_route_through_wrong_pointer(self, topology):
        """Test swapping the route order changes identities and fails."""
        topology.register_copy()
        args = topology.broadcast_args()
        swapped = RemoteReadArgs(
            route=(topology.p1.address, topology.p0.address),
            hop_inputs=args.hop_inputs,
            final_proof=args.final_proof,
        )
        with pytest.raises(InvalidImplementationAddress):
            topology.receiver.verify_broadcast_message(swapped, MESSAGE, PUBLISHER)


class TestCorruptedHops:
    """Test that a bad proof at any hop aborts the whole route."""

    def second_hop_proof(self, topology, send_root: bytes = SEND_ROOT) -> StorageProof:
        slot = topology.p2c.send_root_slot(send_root)
        return topology.l1.get_proof(topology.outbox.address, slot, topology.l1_block)

    def with_second_hop(self, topology, hop_input: bytes) -> RemoteReadArgs:
        args = topology.broadcast_args()
        return RemoteReadArgs(
            route=args.route,
            hop_inputs=(args.hop_inputs[0], hop_input),
            final_proof=args.final_proof,
        )

    def test_corrupted_second_hop(self, topology):
        """Test a tampered outbox proof in the second hop rejects the broadcast."""
        copy = topology.register_copy()
        pointer_id = route_id(topology.p0.address, topology.p1.address)
        logs = len(topology.arb.logs())

        hop_input = ParentToChildProver.encode_verify_input(
            topology.l1.rlp_header(topology.l1_block), SEND_ROOT, corrupt_leaf(self.second_hop_proof(topology)))
        with pytest.raises(InvalidStorageProof):
            topology.receiver.verify_broadcast_message(
                self.with_second_hop(topology, hop_input), MESSAGE, PUBLISHER)

        assert topology.receiver.prover_copy(pointer_id) == copy.address
        assert len(topology.arb.logs()) == logs

    def test_unknown_send_root(self, topology):
        """Test a send root the outbox never confirmed has no target commitment."""
        topology.register_copy()
        logs = len(topology.arb.logs())

        hop_input = topology.second_hop_input(b"\x01" * 32)
        with pytest.raises(TargetCommitmentNotFound):
            topology.receiver.verify_broadcast_message(
                self.with_second_hop(topology, hop_input), MESSAGE, PUBLISHER)
        assert len(topology.arb.logs()) == logs

    def test_corrupted_first_hop_under_home_commitment(self, topology):
        """Test a tampered buffer proof in the first hop rejects a two-hop route."""
        topology.register_copy()
        arb = topology.arb
        n = arb.block_number - 1
        proof = arb.get_proof(topology.net.buffer.address, block_hash_slot(topology.l1_block), n)
        route = [topology.p0.address, topology.p1.address]

        valid = ChildToParentProver.encode_verify_input(arb.rlp_header(n), topology.l1_block, proof)
        result = topology.receiver.verify_route(
            route, [valid, topology.second_hop_input()], home_commitment=arb.block_hash(n))
        assert result.commitment == topology.other.block_hash(topology.broadcast_block)

        corrupted = ChildToParentProver.encode_verify_input(
            arb.rlp_header(n), topology.l1_block, corrupt_leaf(proof))
        with pytest.raises(InvalidStorageProof):
            topology.receiver.verify_route(
                route, [corrupted, topology.second_hop_input()], home_commitment=arb.block_hash(n))

    def test_failed_copy_update_leaves_no_state(self, topology):
        """Test a pointer proof through an unpushed block registers nothing."""
        args = topology.pointer_proof()
        args = RemoteReadArgs(
            route=args.route,
            hop_inputs=(ChildToParentProver.encode_get_input(topology.l1_block + 5),),
            final_proof=args.final_proof,
        )
        copy = topology.arb.deploy(ParentToChildProver(L1_CHAIN_ID, OTHER_CHAIN_ID, topology.outbox.address))
        logs = len(topology.arb.logs())

        with pytest.raises(UnknownParentChainBlockHash):
            topology.receiver.update_prover_copy(args, copy.address, sender=ALICE)
        assert topology.receiver.prover_copy(route_id(topology.p0.address, topology.p1.address)) == ZERO_ADDRESS
        assert len(topology.arb.logs()) == logs
