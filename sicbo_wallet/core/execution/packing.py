"""
Fixed-width packing for EntryPoint v0.7 operation fields.

accountGasLimits and gasFees are single 32-byte words holding two uint128
values (high word first). paymasterAndData is
``address(20) || verificationGas(16) || postOpGas(16) || extra``.
"""

from __future__ import annotations

from typing import NamedTuple, Tuple, Union

UINT128_MAX = (1 << 128) - 1
ADDRESS_BYTES = 20
GAS_FIELD_BYTES = 16
PAYMASTER_HEADER_BYTES = ADDRESS_BYTES + 2 * GAS_FIELD_BYTES

HexOrBytes = Union[str, bytes]


class RangeError(ValueError):
    """Value does not fit the fixed-width field it is packed into."""
    pass


class PaymasterData(NamedTuple):
    paymaster: str
    verification_gas_limit: int
    post_op_gas_limit: int
    extra: bytes


def strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def to_hex(data: bytes) -> str:
    return "0x" + data.hex()


def hex_to_bytes(value: HexOrBytes) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    hex_data = strip_0x(value)
    if len(hex_data) % 2 != 0:
        raise ValueError("Byte data must have an even-length hex string")
    return bytes.fromhex(hex_data)


def _check_uint128(value: int, name: str) -> int:
    value = int(value)
    if value < 0 or value > UINT128_MAX:
        raise RangeError(f"{name} must fit in 128 bits, got {value}")
    return value


def pack_uint128_pair(high: int, low: int) -> bytes:
    """Pack two uint128 values into one big-endian 32-byte word."""
    hi = _check_uint128(high, "high")
    lo = _check_uint128(low, "low")
    return ((hi << 128) | lo).to_bytes(32, "big")


def unpack_uint128_pair(word: HexOrBytes) -> Tuple[int, int]:
    raw = hex_to_bytes(word)
    if len(raw) != 32:
        raise RangeError(f"Packed pair must be 32 bytes, got {len(raw)}")
    value = int.from_bytes(raw, "big")
    return value >> 128, value & UINT128_MAX


def pack_paymaster_and_data(
    paymaster: str,
    verification_gas_limit: int,
    post_op_gas_limit: int,
    extra: HexOrBytes = b"",
) -> bytes:
    address = hex_to_bytes(paymaster)
    if len(address) != ADDRESS_BYTES:
        raise ValueError(f"Invalid paymaster address length: {paymaster}")
    verification = _check_uint128(verification_gas_limit, "verification_gas_limit")
    post_op = _check_uint128(post_op_gas_limit, "post_op_gas_limit")
    return (
        address
        + verification.to_bytes(GAS_FIELD_BYTES, "big")
        + post_op.to_bytes(GAS_FIELD_BYTES, "big")
        + hex_to_bytes(extra)
    )


def unpack_paymaster_and_data(blob: HexOrBytes) -> PaymasterData:
    raw = hex_to_bytes(blob)
    if len(raw) < PAYMASTER_HEADER_BYTES:
        raise RangeError(
            f"paymasterAndData must be at least {PAYMASTER_HEADER_BYTES} bytes, got {len(raw)}"
        )
    gas_start = ADDRESS_BYTES
    post_op_start = gas_start + GAS_FIELD_BYTES
    return PaymasterData(
        paymaster=to_hex(raw[:ADDRESS_BYTES]),
        verification_gas_limit=int.from_bytes(raw[gas_start:post_op_start], "big"),
        post_op_gas_limit=int.from_bytes(raw[post_op_start:PAYMASTER_HEADER_BYTES], "big"),
        extra=raw[PAYMASTER_HEADER_BYTES:],
    )
