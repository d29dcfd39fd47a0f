"""
Tests for operation assembly from call data and gas defaults.
"""

import pytest

from sicbo_wallet.config import ONE_GWEI, GasDefaults
from sicbo_wallet.core.execution.operation_builder import (
    AccountNotDeployedError,
    OperationBuildError,
    OperationBuilder,
)
from sicbo_wallet.core.execution.packing import unpack_paymaster_and_data
from sicbo_wallet.core.execution.userop_builder import compose_bet_settlement

from conftest import ACCOUNT, HOUSE, PAYMASTER, TOKEN


def _call_data() -> str:
    return compose_bet_settlement(TOKEN, HOUSE, 10, PAYMASTER, 3)


def test_build_applies_gas_defaults() -> None:
    builder = OperationBuilder(paymaster_address=PAYMASTER)
    op = builder.build(ACCOUNT, 5, _call_data())

    assert op.sender == ACCOUNT
    assert op.nonce == 5
    assert op.init_code == "0x"
    assert op.signature == "0x"
    assert not op.is_signed
    assert op.verification_gas_limit == 4_000_000
    assert op.call_gas_limit == 6_000_000
    assert op.pre_verification_gas == 100_000
    assert op.max_priority_fee_per_gas == ONE_GWEI
    assert op.max_fee_per_gas == ONE_GWEI

    paymaster = unpack_paymaster_and_data(op.paymaster_and_data)
    assert paymaster.paymaster == PAYMASTER
    assert paymaster.verification_gas_limit == 200_000
    assert paymaster.post_op_gas_limit == 200_000


def test_build_without_paymaster_leaves_field_empty() -> None:
    op = OperationBuilder().build(ACCOUNT, 0, _call_data())

    assert op.paymaster_and_data == "0x"


def test_build_uses_per_call_gas_override() -> None:
    gas = GasDefaults(verification_gas_limit=1, call_gas_limit=2, max_fee_per_gas=3 * ONE_GWEI)
    op = OperationBuilder().build(ACCOUNT, 0, _call_data(), gas=gas)

    assert (op.verification_gas_limit, op.call_gas_limit) == (1, 2)
    assert op.max_fee_per_gas == 3 * ONE_GWEI


def test_build_refuses_undeployed_sender() -> None:
    with pytest.raises(AccountNotDeployedError):
        OperationBuilder().build(ACCOUNT, 0, _call_data(), deployed=False)


def test_build_rejects_negative_nonce() -> None:
    with pytest.raises(OperationBuildError):
        OperationBuilder().build(ACCOUNT, -1, _call_data())


@pytest.mark.asyncio
async def test_prepare_reads_fresh_nonce(chain) -> None:
    chain.nonce = 42
    builder = OperationBuilder(paymaster_address=PAYMASTER, chain=chain)

    op = await builder.prepare(ACCOUNT, _call_data())

    assert op.nonce == 42
    assert chain.calls == ["get_code", "get_nonce"]


@pytest.mark.asyncio
async def test_prepare_stops_before_nonce_when_not_deployed(chain) -> None:
    chain.code = b""
    builder = OperationBuilder(chain=chain)

    with pytest.raises(AccountNotDeployedError):
        await builder.prepare(ACCOUNT, _call_data())
    assert "get_nonce" not in chain.calls


@pytest.mark.asyncio
async def test_prepare_needs_chain_reader() -> None:
    with pytest.raises(OperationBuildError):
        await OperationBuilder().prepare(ACCOUNT, _call_data())
