"""
Prover pointer.

A pointer is a stable address that names "the current prover for this hop".
The owner may upgrade the implementation to a prover with a strictly greater
version. The implementation's code hash is written to ``POINTER_SLOT`` so it
can be proven from other chains; provers deployed elsewhere are accepted as
copies only if their code hash matches that proven value.
"""

import logging

from web3 import Web3

from .chain import external
from .encoding import ZERO_ADDRESS, derived_slot
from .errors import HopChainError, InvalidImplementationAddress, NonIncreasingVersion
from .ownable import Ownable

logger = logging.getLogger(__name__)

POINTER_SLOT = derived_slot("eip7888.pointer.slot")
IMPLEMENTATION_ADDRESS_SLOT = derived_slot("hopchain.pointer.implementation")

MAX_UINT256 = 2 ** 256 - 1


class ProverPointer(Ownable):
    """Owned, version-monotonic pointer to a HopProver implementation."""

    def implementation_address(self) -> str:
        return self._sload_address(IMPLEMENTATION_ADDRESS_SLOT)

    def implementation_code_hash(self) -> bytes:
        return self._sload(POINTER_SLOT)

    def _version_of(self, implementation: str) -> int:
        """Call ``version()`` on ``implementation``; it must return one uint256 word."""
        if implementation == ZERO_ADDRESS or not self.chain.has_code(implementation):
            raise InvalidImplementationAddress(implementation)

        contract = self.chain.contract_at(implementation)
        version_fn = getattr(contract, 'version', None)
        if not callable(version_fn):
            raise InvalidImplementationAddress(implementation)

        try:
            version = version_fn()
        except HopChainError as e:
            raise InvalidImplementationAddress(implementation) from e

        if not isinstance(version, int) or isinstance(version, bool) or not 0 <= version <= MAX_UINT256:
            raise InvalidImplementationAddress(implementation)
        return version

    @external
    def set_implementation_address(self, new_implementation: str) -> None:
        """
        Point at a new prover implementation.

        Args:
            new_implementation: Address of the prover on this chain

        Raises:
            OwnableUnauthorizedAccount: If the caller is not the owner
            InvalidImplementationAddress: If the address is zero or does not answer ``version()``
            NonIncreasingVersion: If the new version does not exceed the current one
        """
        self._check_owner()
        new_implementation = Web3.to_checksum_address(new_implementation)
        new_version = self._version_of(new_implementation)

        current = self.implementation_address()
        if current != ZERO_ADDRESS:
            old_version = self._version_of(current)
            if new_version <= old_version:
                raise NonIncreasingVersion(old_version, new_version)

        code_hash = self.chain.code_hash(new_implementation)
        self._sstore_address(IMPLEMENTATION_ADDRESS_SLOT, new_implementation)
        self._sstore(POINTER_SLOT, code_hash)
        logger.info(f"Pointer {self.address} on chain {self.chain.chain_id} -> {new_implementation} "
                    f"(version {new_version}, code hash {Web3.to_hex(code_hash)})")
