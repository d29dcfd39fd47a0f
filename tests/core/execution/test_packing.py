"""
Tests for v0.7 fixed-width field packing.
"""

import pytest

from sicbo_wallet.core.execution.packing import (
    PAYMASTER_HEADER_BYTES,
    RangeError,
    hex_to_bytes,
    pack_paymaster_and_data,
    pack_uint128_pair,
    unpack_paymaster_and_data,
    unpack_uint128_pair,
)

from conftest import PAYMASTER


def test_pack_uint128_pair_puts_high_word_first() -> None:
    word = pack_uint128_pair(4_000_000, 6_000_000)

    assert len(word) == 32
    assert word[:16] == (4_000_000).to_bytes(16, "big")
    assert word[16:] == (6_000_000).to_bytes(16, "big")
    assert int.from_bytes(word, "big") == (4_000_000 << 128) | 6_000_000


def test_pack_uint128_pair_accepts_bounds() -> None:
    max_value = (1 << 128) - 1
    word = pack_uint128_pair(max_value, 0)

    assert word == b"\xff" * 16 + b"\x00" * 16
    assert unpack_uint128_pair(word) == (max_value, 0)


@pytest.mark.parametrize("high,low", [(1 << 128, 0), (0, 1 << 128), (-1, 0)])
def test_pack_uint128_pair_rejects_out_of_range(high, low) -> None:
    with pytest.raises(RangeError):
        pack_uint128_pair(high, low)


def test_unpack_uint128_pair_reads_hex_word() -> None:
    word = "0x" + (1_000_000_000).to_bytes(16, "big").hex() + (2_000_000_000).to_bytes(16, "big").hex()

    assert unpack_uint128_pair(word) == (1_000_000_000, 2_000_000_000)


def test_unpack_uint128_pair_rejects_short_word() -> None:
    with pytest.raises(RangeError):
        unpack_uint128_pair(b"\x00" * 31)


def test_paymaster_and_data_layout() -> None:
    blob = pack_paymaster_and_data(PAYMASTER, 200_000, 150_000)

    assert len(blob) == PAYMASTER_HEADER_BYTES == 52
    assert blob[:20] == hex_to_bytes(PAYMASTER)
    assert int.from_bytes(blob[20:36], "big") == 200_000
    assert int.from_bytes(blob[36:52], "big") == 150_000


def test_paymaster_and_data_keeps_extra_bytes() -> None:
    blob = pack_paymaster_and_data(PAYMASTER, 1, 2, extra="0xdeadbeef")
    parsed = unpack_paymaster_and_data(blob)

    assert len(blob) == 56
    assert parsed.paymaster == PAYMASTER
    assert parsed.verification_gas_limit == 1
    assert parsed.post_op_gas_limit == 2
    assert parsed.extra == bytes.fromhex("deadbeef")


def test_paymaster_and_data_rejects_bad_address() -> None:
    with pytest.raises(ValueError):
        pack_paymaster_and_data("0x1234", 1, 2)


def test_unpack_paymaster_and_data_rejects_short_blob() -> None:
    with pytest.raises(RangeError):
        unpack_paymaster_and_data(b"\x22" * 40)


def test_hex_to_bytes_rejects_odd_length() -> None:
    with pytest.raises(ValueError):
        hex_to_bytes("0xabc")
