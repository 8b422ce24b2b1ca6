"""Revert taxonomy for hopchain contracts.

Every failure raised by a deployed contract derives from ``HopChainError``
and falls into one of four categories:

* ``AuthorizationError`` - caller is not allowed to perform the call
* ``ConsistencyError`` - supplied data does not match committed state
* ``NotFoundError`` - the requested record does not exist (or was evicted)
* ``InputShapeError`` - arguments are malformed or out of range

Raising any of these inside a ``Chain.call`` frame rolls back every state
change made by that call.
"""

from web3 import Web3


def _format_arg(value: object) -> str:
    if isinstance(value, bytes):
        return Web3.to_hex(value)
    return repr(value) if isinstance(value, str) else str(value)


class HopChainError(Exception):
    """Base class for all contract reverts."""

    def __str__(self) -> str:
        return f"{type(self).__name__}({', '.join(_format_arg(a) for a in self.args)})"


class AuthorizationError(HopChainError):
    """Caller lacks permission."""


class ConsistencyError(HopChainError):
    """Supplied data is inconsistent with committed state."""


class NotFoundError(HopChainError):
    """Requested record is absent."""


class InputShapeError(HopChainError):
    """Arguments are malformed."""


# Authorization

class OwnableUnauthorizedAccount(AuthorizationError):
    def __init__(self, account: str) -> None:
        super().__init__(account)
        self.account = account


class NotPusher(AuthorizationError):
    def __init__(self, sender: str) -> None:
        super().__init__(sender)
        self.sender = sender


class CallNotOnHomeChain(AuthorizationError):
    def __init__(self, home_chain_id: int, chain_id: int) -> None:
        super().__init__(home_chain_id, chain_id)
        self.home_chain_id = home_chain_id
        self.chain_id = chain_id


class PusherAddressAlreadySet(AuthorizationError):
    pass


# Consistency

class InvalidHomeBlockHeader(ConsistencyError):
    pass


class InvalidTargetBlockHeader(ConsistencyError):
    pass


class InvalidAccountProof(ConsistencyError):
    pass


class InvalidStorageProof(ConsistencyError):
    pass


class CodeHashMismatch(ConsistencyError):
    def __init__(self, expected: bytes, actual: bytes) -> None:
        super().__init__(expected, actual)
        self.expected = expected
        self.actual = actual


class NonIncreasingVersion(ConsistencyError):
    def __init__(self, previous_version: int, new_version: int) -> None:
        super().__init__(previous_version, new_version)
        self.previous_version = previous_version
        self.new_version = new_version


class RouteChainMismatch(ConsistencyError):
    def __init__(self, hop: int, expected_chain_id: int, home_chain_id: int) -> None:
        super().__init__(hop, expected_chain_id, home_chain_id)
        self.hop = hop
        self.expected_chain_id = expected_chain_id
        self.home_chain_id = home_chain_id


class WrongMessageSlot(ConsistencyError):
    pass


class WrongPointerSlot(ConsistencyError):
    pass


class MessageAlreadyBroadcast(ConsistencyError):
    pass


class InsufficientValue(ConsistencyError):
    def __init__(self, expected: int, provided: int) -> None:
        super().__init__(expected, provided)
        self.expected = expected
        self.provided = provided


class IncorrectFee(ConsistencyError):
    def __init__(self, expected: int, provided: int) -> None:
        super().__init__(expected, provided)
        self.expected = expected
        self.provided = provided


# Not found

class TargetCommitmentNotFound(NotFoundError):
    pass


class UnknownParentChainBlockHash(NotFoundError):
    def __init__(self, block_number: int) -> None:
        super().__init__(block_number)
        self.block_number = block_number


class BlockHashUnavailable(NotFoundError):
    def __init__(self, block_number: int) -> None:
        super().__init__(block_number)
        self.block_number = block_number


class MessageNotFound(NotFoundError):
    pass


class ProverCopyNotFound(NotFoundError):
    pass


class CrossDomainSenderNotSet(NotFoundError):
    pass


class CallToNonContract(NotFoundError):
    def __init__(self, address: str) -> None:
        super().__init__(address)
        self.address = address


# Input shape

class InvalidImplementationAddress(InputShapeError):
    pass


class OwnableInvalidOwner(InputShapeError):
    pass


class InvalidPusherAddress(InputShapeError):
    pass


class InvalidBatch(InputShapeError):
    def __init__(self, first_block_number: int, batch_size: int) -> None:
        super().__init__(first_block_number, batch_size)
        self.first_block_number = first_block_number
        self.batch_size = batch_size


class InvalidRouteLength(InputShapeError):
    pass


class InvalidChainTxData(InputShapeError):
    pass


class InvalidHopInput(InputShapeError):
    pass


class UnknownSelector(InputShapeError):
    pass
