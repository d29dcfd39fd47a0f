"""
EntryPoint v0.7 packed UserOperation model and hashing.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Union

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from .packing import (
    PAYMASTER_HEADER_BYTES,
    hex_to_bytes,
    unpack_paymaster_and_data,
    unpack_uint128_pair,
)

PLACEHOLDER_SIGNATURE = "0x"
EMPTY_BYTES = "0x"

PACKED_USER_OPERATION_TYPE = "(address,uint256,bytes,bytes,bytes32,uint256,bytes32,bytes,bytes)"


def _parse_int(value: Union[int, str, None]) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.startswith(("0x", "0X")):
        return int(text, 16)
    return int(text)


@dataclass
class AbstractAccountOperation:
    """
    ERC-4337 v0.7 UserOperation in its packed on-chain form.

    Byte fields are 0x-prefixed hex strings; integer fields are raw units.
    The operation is treated as immutable once hashed; only ``signature``
    changes, through ``with_signature``.
    """
    sender: str
    nonce: int
    call_data: str
    account_gas_limits: str
    pre_verification_gas: int
    gas_fees: str
    init_code: str = EMPTY_BYTES
    paymaster_and_data: str = EMPTY_BYTES
    signature: str = PLACEHOLDER_SIGNATURE

    @property
    def verification_gas_limit(self) -> int:
        return unpack_uint128_pair(self.account_gas_limits)[0]

    @property
    def call_gas_limit(self) -> int:
        return unpack_uint128_pair(self.account_gas_limits)[1]

    @property
    def max_priority_fee_per_gas(self) -> int:
        return unpack_uint128_pair(self.gas_fees)[0]

    @property
    def max_fee_per_gas(self) -> int:
        return unpack_uint128_pair(self.gas_fees)[1]

    @property
    def is_signed(self) -> bool:
        return self.signature not in ("", PLACEHOLDER_SIGNATURE)

    def with_signature(self, signature: str) -> "AbstractAccountOperation":
        return replace(self, signature=signature)

    def to_abi_tuple(self) -> tuple:
        return (
            to_checksum_address(self.sender),
            self.nonce,
            hex_to_bytes(self.init_code),
            hex_to_bytes(self.call_data),
            hex_to_bytes(self.account_gas_limits),
            self.pre_verification_gas,
            hex_to_bytes(self.gas_fees),
            hex_to_bytes(self.paymaster_and_data),
            hex_to_bytes(self.signature),
        )

    def to_rpc_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "sender": self.sender,
            "nonce": hex(self.nonce),
            "initCode": self.init_code,
            "callData": self.call_data,
            "accountGasLimits": self.account_gas_limits,
            "preVerificationGas": hex(self.pre_verification_gas),
            "gasFees": self.gas_fees,
            "paymasterAndData": self.paymaster_and_data,
            "signature": self.signature,
        }
        if len(hex_to_bytes(self.paymaster_and_data)) >= PAYMASTER_HEADER_BYTES:
            paymaster = unpack_paymaster_and_data(self.paymaster_and_data)
            payload["paymasterVerificationGasLimit"] = hex(paymaster.verification_gas_limit)
            payload["paymasterPostOpGasLimit"] = hex(paymaster.post_op_gas_limit)
        return payload

    @classmethod
    def from_rpc_dict(cls, data: Dict[str, Any]) -> "AbstractAccountOperation":
        return cls(
            sender=data["sender"],
            nonce=_parse_int(data.get("nonce")),
            init_code=data.get("initCode") or EMPTY_BYTES,
            call_data=data.get("callData") or EMPTY_BYTES,
            account_gas_limits=data["accountGasLimits"],
            pre_verification_gas=_parse_int(data.get("preVerificationGas")),
            gas_fees=data["gasFees"],
            paymaster_and_data=data.get("paymasterAndData") or EMPTY_BYTES,
            signature=data.get("signature") or PLACEHOLDER_SIGNATURE,
        )


def compute_operation_hash(
    op: AbstractAccountOperation,
    entry_point: str,
    chain_id: int,
) -> bytes:
    """EntryPoint v0.7 ``getUserOpHash``, computed locally."""
    packed = encode(
        ["address", "uint256", "bytes32", "bytes32", "bytes32", "uint256", "bytes32", "bytes32"],
        [
            to_checksum_address(op.sender),
            op.nonce,
            keccak(hex_to_bytes(op.init_code)),
            keccak(hex_to_bytes(op.call_data)),
            hex_to_bytes(op.account_gas_limits),
            op.pre_verification_gas,
            hex_to_bytes(op.gas_fees),
            keccak(hex_to_bytes(op.paymaster_and_data)),
        ],
    )
    return keccak(
        encode(
            ["bytes32", "address", "uint256"],
            [keccak(packed), to_checksum_address(entry_point), chain_id],
        )
    )


@dataclass
class RelayReceipt:
    success: bool
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    is_revoked: Optional[bool] = None
    error: Optional[str] = None
