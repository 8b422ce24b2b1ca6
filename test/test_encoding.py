#!/usr/bin/env python3
"""Unit tests for encoding helpers and block header RLP."""

import pytest
import rlp
from eth_abi import encode
from hexbytes import HexBytes
from web3 import Web3

from hopchain.encoding import (
    ZERO_BYTES32,
    BlockchainEncoder,
    accumulate_id,
    apply_l1_to_l2_alias,
    decode_call,
    decode_input,
    derived_slot,
    encode_call,
    function_selector,
    keccak,
    mapping_slot,
)
from hopchain.errors import InvalidHopInput
from hopchain.models import BLANK_ROOT, BlockHeader
from hopchain.pointer import POINTER_SLOT


@pytest.fixture
def header():
    """A Cancun-shaped header."""
    return BlockHeader(
        parent_hash=b"\x01" * 32,
        state_root=b"\x02" * 32,
        number=1234,
        timestamp=1_700_000_123,
        extra_data=b"hop",
        base_fee_per_gas=7,
        withdrawals_root=BLANK_ROOT,
        blob_gas_used=0,
        excess_blob_gas=0,
        parent_beacon_block_root=b"\x03" * 32,
    )


class TestSlotDerivation:
    """Test storage slot helpers."""

    def test_pointer_slot_matches_derivation(self):
        """Test the pointer slot is keccak of its label minus one."""
        expected = int.from_bytes(Web3.keccak(text="eip7888.pointer.slot"), 'big') - 1
        assert POINTER_SLOT == expected
        assert derived_slot("eip7888.pointer.slot") == expected

    def test_mapping_slot_is_solidity_layout(self):
        """Test mapping slots hash the key and the base slot."""
        expected = int.from_bytes(keccak(encode(['uint256', 'uint256'], [7, 51])), 'big')
        assert mapping_slot('uint256', 7, 51) == expected
        assert mapping_slot('uint256', 8, 51) != expected

    def test_accumulate_id(self):
        """Test route identities chain through abi.encode(bytes32, address)."""
        address = "0x5000000000000000000000000000000000000005"
        expected = keccak(encode(['bytes32', 'address'], [ZERO_BYTES32, address]))
        assert accumulate_id(ZERO_BYTES32, address) == expected
        assert accumulate_id(ZERO_BYTES32, address.lower()) == expected
        assert accumulate_id(expected, address) != expected


class TestAliasing:
    """Test L1-to-L2 address aliasing."""

    def test_alias_known_value(self):
        """Test the alias offset is added modulo 2^160."""
        assert apply_l1_to_l2_alias("0x0000000000000000000000000000000000000000") == \
            Web3.to_checksum_address("0x1111000000000000000000000000000000001111")

    def test_alias_wraps_around(self):
        """Test aliasing wraps at 2^160."""
        aliased = apply_l1_to_l2_alias("0xffffffffffffffffffffffffffffffffffffffff")
        assert aliased == Web3.to_checksum_address("0x1111000000000000000000000000000000001110")


class TestCallEncoding:
    """Test calldata and hop input decoding."""

    def test_encode_call_prefixes_selector(self):
        """Test encode_call is selector followed by ABI arguments."""
        calldata = encode_call("receiveHashes(uint256,bytes32[])", ['uint256', 'bytes32[]'], [5, [b"\x01" * 32]])
        assert calldata[:4] == function_selector("receiveHashes(uint256,bytes32[])")
        assert decode_call(calldata, ['uint256', 'bytes32[]']) == (5, (b"\x01" * 32,))

    def test_decode_input_rejects_garbage(self):
        """Test malformed hop input raises InvalidHopInput."""
        with pytest.raises(InvalidHopInput):
            decode_input(['bytes', 'uint256'], b"\x00" * 7)


class TestBlockchainEncoder:
    """Test block header encoding."""

    def test_to_bytes_safe_handles_all_types(self):
        """Test HexBytes, bytes and hex strings all convert."""
        assert BlockchainEncoder.to_bytes_safe(HexBytes("0x0102")) == b"\x01\x02"
        assert BlockchainEncoder.to_bytes_safe(b"\x01\x02") == b"\x01\x02"
        assert BlockchainEncoder.to_bytes_safe("0x0102") == b"\x01\x02"

    def test_legacy_header_has_15_fields(self, header):
        """Test a header without hardfork fields encodes 15 items."""
        legacy = BlockHeader(parent_hash=b"\x01" * 32, state_root=b"\x02" * 32, number=1, timestamp=2)
        encoded = BlockchainEncoder.encode_block_header(legacy.to_block_data())
        assert len(rlp.decode(encoded)) == 15

    def test_cancun_header_has_20_fields(self, header):
        """Test hardfork fields are appended in order."""
        fields = rlp.decode(BlockchainEncoder.encode_block_header(header.to_block_data()))
        assert len(fields) == 20
        assert fields[16] == BLANK_ROOT
        assert fields[19] == b"\x03" * 32

    def test_decode_roundtrip(self, header):
        """Test decoding recovers the header."""
        encoded = BlockchainEncoder.encode_block_header(header.to_block_data())
        assert BlockchainEncoder.decode_block_header(encoded) == header

    def test_decode_rejects_short_list(self):
        """Test a list of fewer than 15 fields is not a header."""
        with pytest.raises(ValueError, match="at least 15"):
            BlockchainEncoder.decode_block_header(rlp.encode([b"\x01"] * 10))

    def test_decode_rejects_non_rlp(self):
        """Test invalid RLP raises ValueError."""
        with pytest.raises(ValueError):
            BlockchainEncoder.decode_block_header(b"\xff\x00")

