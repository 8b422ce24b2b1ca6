"""Single-owner access control."""

import logging
from typing import ClassVar

from web3 import Web3

from .chain import Contract, external
from .encoding import ZERO_ADDRESS
from .errors import OwnableInvalidOwner, OwnableUnauthorizedAccount
from .models import OwnershipTransferred

logger = logging.getLogger(__name__)


class Ownable(Contract):
    """Contract with an owner stored at slot 0."""

    OWNER_SLOT: ClassVar[int] = 0

    def __init__(self, initial_owner: str) -> None:
        self._initial_owner = Web3.to_checksum_address(initial_owner)

    def setup(self) -> None:
        self._transfer_ownership(self._initial_owner)

    def owner(self) -> str:
        return self._sload_address(self.OWNER_SLOT)

    def _check_owner(self) -> None:
        if self.msg_sender != self.owner():
            raise OwnableUnauthorizedAccount(self.msg_sender)

    def _transfer_ownership(self, new_owner: str) -> None:
        previous = self.owner()
        self._sstore_address(self.OWNER_SLOT, new_owner)
        self._emit(OwnershipTransferred(previous, Web3.to_checksum_address(new_owner)))

    @external
    def transfer_ownership(self, new_owner: str) -> None:
        self._check_owner()
        if Web3.to_checksum_address(new_owner) == ZERO_ADDRESS:
            raise OwnableInvalidOwner(ZERO_ADDRESS)
        self._transfer_ownership(new_owner)
        logger.info(f"{type(self).__name__} at {self.address} now owned by {new_owner}")
