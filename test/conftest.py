"""Shared fixtures: chains, a pushed buffer and a two-hop broadcast topology."""

from dataclasses import dataclass

import pytest

from hopchain.broadcaster import Broadcaster, message_slot
from hopchain.buffer import ARBITRUM_BUFFER_ADDRESS, ArbitrumBuffer
from hopchain.chain import Chain
from hopchain.messaging import ArbitrumChannel, ArbitrumInbox
from hopchain.models import RemoteReadArgs
from hopchain.pointer import POINTER_SLOT, ProverPointer
from hopchain.provers import BlockHashHopProver, ChildToParentProver, ParentToChildProver
from hopchain.pusher import ArbitrumPusher
from hopchain.receiver import Receiver
from hopchain.rollup import ArbitrumOutbox

OWNER = "0x5000000000000000000000000000000000000005"
ALICE = "0x1111111111111111111111111111111111111111"
PUBLISHER = "0x2222222222222222222222222222222222222222"

L1_CHAIN_ID = 1
ARB_CHAIN_ID = 42161
OTHER_CHAIN_ID = 4242

GAS_PRICE_BID = 100
GAS_LIMIT = 1_000
SUBMISSION_COST = 5_000

MESSAGE = bytes.fromhex("aa" * 32)
SEND_ROOT = bytes.fromhex("5e" * 32)


@pytest.fixture
def chain() -> Chain:
    """A fresh chain with only its genesis block sealed."""
    return Chain(L1_CHAIN_ID, name="l1")


@dataclass
class ArbitrumSetup:
    l1: Chain
    l2: Chain
    inbox: ArbitrumInbox
    pusher: ArbitrumPusher
    buffer: ArbitrumBuffer
    channel: ArbitrumChannel

    tx_data: bytes = ArbitrumPusher.encode_tx_data(GAS_PRICE_BID, GAS_LIMIT, SUBMISSION_COST)
    value: int = ArbitrumPusher.required_value(GAS_PRICE_BID, GAS_LIMIT, SUBMISSION_COST)

    def push(self, first: int, size: int) -> bytes:
        return self.pusher.push_hashes(self.buffer.address, first, size, self.tx_data,
                                       sender=OWNER, value=self.value)

    def push_and_deliver(self, first: int, size: int) -> None:
        self.push(first, size)
        self.channel.deliver_all()
        self.l2.mine()


def make_arbitrum(buffer_size: int = 16) -> ArbitrumSetup:
    l1 = Chain(L1_CHAIN_ID, name="l1")
    l2 = Chain(ARB_CHAIN_ID, name="arb")
    inbox = l1.deploy(ArbitrumInbox(ARB_CHAIN_ID))
    pusher = l1.deploy(ArbitrumPusher(inbox.address))
    buffer = l2.deploy(ArbitrumBuffer(OWNER, buffer_size), ARBITRUM_BUFFER_ADDRESS)
    buffer.set_pusher_address(pusher.address, sender=OWNER)
    l1.mine()
    l2.mine()
    return ArbitrumSetup(l1, l2, inbox, pusher, buffer, ArbitrumChannel(l1, inbox.address, l2))


@pytest.fixture
def arbitrum() -> ArbitrumSetup:
    """L1 pusher wired to a small Arbitrum buffer through the inbox."""
    return make_arbitrum()


@dataclass
class Topology:
    """
    Three chains: ``arb`` (child of ``l1``), ``l1`` and ``other`` (another child of ``l1``).

    ``other`` hosts a broadcaster that recorded MESSAGE from PUBLISHER.
    ``l1`` has an outbox binding SEND_ROOT to the ``other`` block that holds
    the record, a ParentToChildProver and pointer P1. ``arb`` holds a buffer
    with l1 block ``l1_block``, a ChildToParentProver behind pointer P0, and
    the receiver.
    """
    net: ArbitrumSetup
    other: Chain
    broadcaster: Broadcaster
    broadcast_block: int
    broadcast_timestamp: int
    outbox: ArbitrumOutbox
    p2c: ParentToChildProver
    p1: ProverPointer
    l1_block: int
    c2p: ChildToParentProver
    p0: ProverPointer
    receiver: Receiver

    @property
    def l1(self) -> Chain:
        return self.net.l1

    @property
    def arb(self) -> Chain:
        return self.net.l2

    def first_hop_input(self) -> bytes:
        return ChildToParentProver.encode_get_input(self.l1_block)

    def pointer_proof(self) -> RemoteReadArgs:
        proof = self.l1.get_proof(self.p1.address, POINTER_SLOT, self.l1_block)
        return RemoteReadArgs(
            route=(self.p0.address,),
            hop_inputs=(self.first_hop_input(),),
            final_proof=BlockHashHopProver.encode_storage_slot_input(self.l1.rlp_header(self.l1_block), proof),
        )

    def second_hop_input(self, send_root: bytes = SEND_ROOT) -> bytes:
        proof = self.l1.get_proof(self.outbox.address, self.p2c.send_root_slot(send_root), self.l1_block)
        return ParentToChildProver.encode_verify_input(self.l1.rlp_header(self.l1_block), send_root, proof)

    def message_proof(self, message: bytes = MESSAGE, publisher: str = PUBLISHER,
                      slot: int | None = None) -> bytes:
        if slot is None:
            slot = message_slot(message, publisher)
        proof = self.other.get_proof(self.broadcaster.address, slot, self.broadcast_block)
        return BlockHashHopProver.encode_storage_slot_input(self.other.rlp_header(self.broadcast_block), proof)

    def broadcast_args(self, message: bytes = MESSAGE, publisher: str = PUBLISHER,
                       slot: int | None = None) -> RemoteReadArgs:
        return RemoteReadArgs(
            route=(self.p0.address, self.p1.address),
            hop_inputs=(self.first_hop_input(), self.second_hop_input()),
            final_proof=self.message_proof(message, publisher, slot),
        )

    def register_copy(self) -> ParentToChildProver:
        copy = self.arb.deploy(ParentToChildProver(L1_CHAIN_ID, OTHER_CHAIN_ID, self.outbox.address))
        self.receiver.update_prover_copy(self.pointer_proof(), copy.address, sender=ALICE)
        return copy


@pytest.fixture
def topology() -> Topology:
    net = make_arbitrum()
    l1, arb = net.l1, net.l2
    other = Chain(OTHER_CHAIN_ID, name="other")

    broadcaster = other.deploy(Broadcaster())
    broadcast_timestamp = other.timestamp
    broadcaster.broadcast_message(MESSAGE, sender=PUBLISHER)
    other.mine()
    broadcast_block = other.block_number - 1

    outbox = l1.deploy(ArbitrumOutbox(OWNER))
    outbox.update_send_root(SEND_ROOT, other.block_hash(broadcast_block), sender=OWNER)
    p2c = l1.deploy(ParentToChildProver(L1_CHAIN_ID, OTHER_CHAIN_ID, outbox.address))
    p1 = l1.deploy(ProverPointer(OWNER))
    p1.set_implementation_address(p2c.address, sender=OWNER)
    l1.mine()
    l1_block = l1.block_number - 1

    net.push_and_deliver(l1_block, 1)

    c2p = arb.deploy(ChildToParentProver(ARB_CHAIN_ID, L1_CHAIN_ID, net.buffer.address))
    p0 = arb.deploy(ProverPointer(OWNER))
    p0.set_implementation_address(c2p.address, sender=OWNER)
    receiver = arb.deploy(Receiver())
    arb.mine()

    return Topology(
        net=net, other=other, broadcaster=broadcaster, broadcast_block=broadcast_block,
        broadcast_timestamp=broadcast_timestamp, outbox=outbox, p2c=p2c, p1=p1,
        l1_block=l1_block, c2p=c2p, p0=p0, receiver=receiver,
    )
