"""Multi-hop cross-chain state verification over storage proofs."""

from .broadcaster import Broadcaster
from .buffer import ArbitrumBuffer, OptimismBuffer
from .chain import Chain
from .pointer import POINTER_SLOT, ProverPointer
from .pusher import ArbitrumPusher, OptimismPusher
from .receiver import Receiver

__all__ = [
    'POINTER_SLOT',
    'ArbitrumBuffer',
    'ArbitrumPusher',
    'Broadcaster',
    'Chain',
    'OptimismBuffer',
    'OptimismPusher',
    'ProverPointer',
    'Receiver',
]
