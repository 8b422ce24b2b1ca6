from .base import BlockHashHopProver, HopProver
from .child_to_parent import ChildToParentProver
from .optimism import OptimismChildToParentProver
from .parent_to_child import ParentToChildProver
from .state_root import StateRootProver

__all__ = [
    'BlockHashHopProver',
    'ChildToParentProver',
    'HopProver',
    'OptimismChildToParentProver',
    'ParentToChildProver',
    'StateRootProver',
]
