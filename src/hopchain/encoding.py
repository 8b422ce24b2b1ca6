"""
Encoding utilities for hopchain.

This module provides RLP encoding of block headers (all hardfork versions up
to Prague), ABI call encoding for cross-domain messages, and the storage-slot
derivations shared by contracts and provers.
"""

from typing import Any, Union

import rlp
from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError as AbiDecodingError
from hexbytes import HexBytes
from rlp.exceptions import DecodingError
from web3 import Web3
from web3.types import BlockData

from .errors import InvalidHopInput
from .models import BlockHeader

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_BYTES32 = bytes(32)

# Offset added to an L1 contract address when it calls into an Arbitrum chain
L1_TO_L2_ALIAS_OFFSET = 0x1111000000000000000000000000000000001111
ADDRESS_MODULUS = 2 ** 160


def keccak(data: bytes) -> bytes:
    return bytes(Web3.keccak(data))


def to_bytes32(value: int) -> bytes:
    return value.to_bytes(32, 'big')


def to_int(value: bytes) -> int:
    return int.from_bytes(value, 'big')


def derived_slot(label: str) -> int:
    """Collision-resistant storage key for a named field: ``keccak(label) - 1``."""
    return to_int(bytes(Web3.keccak(text=label))) - 1


def mapping_slot(key_type: str, key: Any, base_slot: int) -> int:
    """Solidity mapping slot: ``keccak(abi.encode(key, uint256 base_slot))``."""
    return to_int(keccak(encode([key_type, 'uint256'], [key, base_slot])))


def accumulate_id(accumulator: bytes, address: str) -> bytes:
    """Fold an address into a route identity: ``keccak(abi.encode(acc, addr))``."""
    return keccak(encode(['bytes32', 'address'], [accumulator, Web3.to_checksum_address(address)]))


def apply_l1_to_l2_alias(address: str) -> str:
    aliased = (int(address, 16) + L1_TO_L2_ALIAS_OFFSET) % ADDRESS_MODULUS
    return Web3.to_checksum_address(aliased.to_bytes(20, 'big'))


def function_selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature))[:4]


def encode_call(signature: str, types: list[str], args: list[Any]) -> bytes:
    """ABI-encode a call as ``selector || abi.encode(args)``."""
    return function_selector(signature) + encode(types, args)


def decode_input(types: list[str], data: bytes) -> tuple:
    """ABI-decode a hop input, failing with ``InvalidHopInput`` on malformed data."""
    try:
        return decode(types, data)
    except AbiDecodingError as e:
        raise InvalidHopInput(f"expected abi({', '.join(types)}): {e}") from e


def decode_call(calldata: bytes, types: list[str]) -> tuple:
    return decode_input(types, calldata[4:])


class BlockchainEncoder:
    """Utilities for encoding blockchain data structures."""

    @staticmethod
    def to_bytes_safe(value: Union[HexBytes, bytes, str]) -> bytes:
        """
        Safely convert value to bytes, handling HexBytes, bytes, and hex strings.

        Args:
            value: Value to convert (HexBytes, bytes, or hex string)

        Returns:
            Bytes representation
        """
        if isinstance(value, HexBytes):
            return bytes(value)
        elif isinstance(value, bytes):
            return value
        else:
            return Web3.to_bytes(hexstr=value)

    @staticmethod
    def encode_block_header_legacy(block: BlockData) -> list:
        """
        Encode legacy block header fields (pre-London).

        Args:
            block: Block data containing header fields

        Returns:
            List of encoded header fields (0-14)
        """
        return [
            BlockchainEncoder.to_bytes_safe(block['parentHash']),       # 0
            BlockchainEncoder.to_bytes_safe(block['sha3Uncles']),       # 1
            BlockchainEncoder.to_bytes_safe(block['miner']),            # 2
            BlockchainEncoder.to_bytes_safe(block['stateRoot']),        # 3
            BlockchainEncoder.to_bytes_safe(block['transactionsRoot']), # 4
            BlockchainEncoder.to_bytes_safe(block['receiptsRoot']),     # 5
            BlockchainEncoder.to_bytes_safe(block['logsBloom']),        # 6
            block['difficulty'],  # 7
            block['number'],      # 8
            block['gasLimit'],    # 9
            block['gasUsed'],     # 10
            block['timestamp'],   # 11
            BlockchainEncoder.to_bytes_safe(block['extraData']),        # 12
            BlockchainEncoder.to_bytes_safe(block['mixHash']),          # 13
            BlockchainEncoder.to_bytes_safe(block['nonce']),            # 14
        ]

    @staticmethod
    def add_hardfork_fields(header_fields: list, block: BlockData) -> None:
        """
        Append London, Shanghai, Cancun and Prague fields that are present.

        Args:
            header_fields: List to append fields to
            block: Block data containing header fields
        """
        # 15: baseFeePerGas (London, EIP-1559)
        if (base_fee := block.get('baseFeePerGas')) is not None:
            header_fields.append(base_fee)

        # 16: withdrawalsRoot (Shanghai, EIP-4895)
        if (withdrawals_root := block.get('withdrawalsRoot')) is not None:
            header_fields.append(BlockchainEncoder.to_bytes_safe(withdrawals_root))

        # 17-19: blobGasUsed, excessBlobGas (EIP-4844), parentBeaconBlockRoot (EIP-4788)
        if (blob_gas_used := block.get('blobGasUsed')) is not None:
            header_fields.append(blob_gas_used)
        if (excess_blob_gas := block.get('excessBlobGas')) is not None:
            header_fields.append(excess_blob_gas)
        if (beacon_root := block.get('parentBeaconBlockRoot')) is not None:
            header_fields.append(BlockchainEncoder.to_bytes_safe(beacon_root))

        # 20: requestsHash (Prague, EIP-7685)
        requests_field = block.get('requestsHash')
        if requests_field is not None:
            header_fields.append(BlockchainEncoder.to_bytes_safe(requests_field))

    @staticmethod
    def encode_block_header(block: BlockData) -> bytes:
        """
        Serialize block header to match Ethereum block encoding.

        Fields are added conditionally based on their presence in the block data.

        Args:
            block: Block data from Web3 (or ``BlockHeader.to_block_data()``)

        Returns:
            RLP-encoded block header
        """
        header_fields = BlockchainEncoder.encode_block_header_legacy(block)
        BlockchainEncoder.add_hardfork_fields(header_fields, block)
        return rlp.encode(header_fields)

    @staticmethod
    def decode_block_header(encoded: bytes) -> BlockHeader:
        """
        Decode an RLP block header.

        Args:
            encoded: RLP-encoded header

        Returns:
            Decoded BlockHeader

        Raises:
            ValueError: If the payload is not a header-shaped RLP list
        """
        try:
            fields = rlp.decode(encoded)
        except DecodingError as e:
            raise ValueError(f"Header is not valid RLP: {e}") from e

        if isinstance(fields, bytes) or len(fields) < 15:
            raise ValueError("Header must be an RLP list of at least 15 fields")
        if any(not isinstance(f, bytes) for f in fields):
            raise ValueError("Header fields must be byte strings")

        def optional_int(index: int) -> int | None:
            return to_int(fields[index]) if len(fields) > index else None

        def optional_bytes(index: int) -> bytes | None:
            return fields[index] if len(fields) > index else None

        return BlockHeader(
            parent_hash=fields[0],
            ommers_hash=fields[1],
            coinbase=fields[2],
            state_root=fields[3],
            transactions_root=fields[4],
            receipts_root=fields[5],
            logs_bloom=fields[6],
            difficulty=to_int(fields[7]),
            number=to_int(fields[8]),
            gas_limit=to_int(fields[9]),
            gas_used=to_int(fields[10]),
            timestamp=to_int(fields[11]),
            extra_data=fields[12],
            mix_hash=fields[13],
            nonce=fields[14],
            base_fee_per_gas=optional_int(15),
            withdrawals_root=optional_bytes(16),
            blob_gas_used=optional_int(17),
            excess_blob_gas=optional_int(18),
            parent_beacon_block_root=optional_bytes(19),
            requests_hash=optional_bytes(20),
        )

