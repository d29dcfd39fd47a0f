"""
Tests for the packed operation model and its local v0.7 hash.
"""

from sicbo_wallet.config import ENTRYPOINT_V07
from sicbo_wallet.core.execution.operation_builder import OperationBuilder
from sicbo_wallet.core.execution.userop import AbstractAccountOperation, compute_operation_hash

from conftest import ACCOUNT, PAYMASTER


def _operation(**overrides) -> AbstractAccountOperation:
    op = OperationBuilder(paymaster_address=PAYMASTER).build(ACCOUNT, 5, "0x1234")
    for key, value in overrides.items():
        setattr(op, key, value)
    return op


def test_rpc_dict_uses_hex_quantities_and_paymaster_gas() -> None:
    payload = _operation().to_rpc_dict()

    assert payload["sender"] == ACCOUNT
    assert payload["nonce"] == "0x5"
    assert payload["preVerificationGas"] == hex(100_000)
    assert payload["callData"] == "0x1234"
    assert payload["signature"] == "0x"
    assert payload["paymasterVerificationGasLimit"] == hex(200_000)
    assert payload["paymasterPostOpGasLimit"] == hex(200_000)


def test_rpc_dict_omits_paymaster_gas_without_paymaster() -> None:
    payload = OperationBuilder().build(ACCOUNT, 0, "0x").to_rpc_dict()

    assert "paymasterVerificationGasLimit" not in payload


def test_from_rpc_dict_accepts_decimal_and_hex() -> None:
    source = _operation().to_rpc_dict()
    source["nonce"] = "5"
    source["preVerificationGas"] = 100_000

    op = AbstractAccountOperation.from_rpc_dict(source)

    assert op.nonce == 5
    assert op.pre_verification_gas == 100_000
    assert op.account_gas_limits == _operation().account_gas_limits


def test_with_signature_returns_copy() -> None:
    op = _operation()
    signed = op.with_signature("0x" + "01" * 65)

    assert signed.is_signed
    assert not op.is_signed
    assert signed.nonce == op.nonce


def test_hash_ignores_signature_but_binds_chain_and_nonce() -> None:
    op = _operation()
    base = compute_operation_hash(op, ENTRYPOINT_V07, 84532)

    assert len(base) == 32
    assert compute_operation_hash(op.with_signature("0x" + "01" * 162), ENTRYPOINT_V07, 84532) == base
    assert compute_operation_hash(op, ENTRYPOINT_V07, 1) != base
    assert compute_operation_hash(_operation(nonce=6), ENTRYPOINT_V07, 84532) != base
