"""
Tests for owner and session signing over the operation hash.
"""

from dataclasses import replace

import pytest
from eth_account import Account

from sicbo_wallet.core.execution.operation_builder import OperationBuilder
from sicbo_wallet.core.execution.packing import hex_to_bytes
from sicbo_wallet.core.execution.signing import (
    COMPOSITE_SIGNATURE_BYTES,
    HashFetchError,
    SignerKind,
    SigningAttempt,
    SigningService,
    SigningState,
    build_composite_signature,
    recover_signer,
    sign_prefixed,
    split_composite_signature,
)
from sicbo_wallet.core.execution.userop_builder import compose_bet_settlement
from sicbo_wallet.core.wallet.models import SessionKey, SessionPermission
from sicbo_wallet.providers.base import HashOracle

from conftest import ACCOUNT, HOUSE, PAYMASTER, TOKEN


class BrokenOracle(HashOracle):
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error

    async def get_operation_hash(self, op):
        if self.error:
            raise self.error
        return self.result


def _operation():
    return OperationBuilder(paymaster_address=PAYMASTER).build(
        ACCOUNT, 5, compose_bet_settlement(TOKEN, HOUSE, 10, PAYMASTER, 3)
    )


def _session(owner) -> SessionKey:
    session_account = Account.create()
    draft = SessionKey(
        public_key=session_account.address,
        private_key="0x" + bytes(session_account.key).hex(),
        valid_after=1_700_000_000,
        valid_until=1_700_003_600,
        account_address=ACCOUNT,
        owner_consent_signature="0x",
        permissions=(SessionPermission(target=TOKEN, selector="0xa9059cbb"),),
        owner_address=owner.address,
    )
    consent = sign_prefixed(owner, draft.commitment)
    return replace(draft, owner_consent_signature="0x" + consent.hex())


@pytest.mark.asyncio
async def test_sign_as_owner_signs_oracle_hash(hash_oracle) -> None:
    owner = Account.create()
    op = _operation()

    signed = await SigningService(hash_oracle).sign_as_owner(op, owner)

    expected_hash = await hash_oracle.inner.get_operation_hash(op)
    assert signed.attempt.op_hash == expected_hash
    assert signed.attempt.kind == SignerKind.OWNER
    assert signed.attempt.history == [SigningState.HASH_PENDING, SigningState.SIGNING, SigningState.SIGNED]
    assert len(hex_to_bytes(signed.operation.signature)) == 65
    assert recover_signer(expected_hash, signed.operation.signature) == owner.address
    # the input operation is left unsigned
    assert op.signature == "0x"


@pytest.mark.asyncio
async def test_sign_as_session_produces_composite(hash_oracle) -> None:
    owner = Account.create()
    session = _session(owner)
    op = _operation()

    signed = await SigningService(hash_oracle).sign_as_session(op, session)

    raw = hex_to_bytes(signed.operation.signature)
    assert len(raw) == COMPOSITE_SIGNATURE_BYTES == 162
    parts = split_composite_signature(raw)
    assert parts.session_key == session.public_key
    assert parts.valid_after == session.valid_after
    assert parts.valid_until == session.valid_until
    assert recover_signer(signed.attempt.op_hash, parts.session_signature) == session.public_key
    assert recover_signer(session.commitment, parts.owner_signature) == owner.address


@pytest.mark.asyncio
async def test_hash_oracle_failure_is_terminal() -> None:
    service = SigningService(BrokenOracle(error=RuntimeError("rpc down")))

    with pytest.raises(HashFetchError) as excinfo:
        await service.sign_as_owner(_operation(), Account.create())

    attempt = excinfo.value.attempt
    assert attempt.state == SigningState.FAILED
    assert attempt.history == [SigningState.HASH_PENDING, SigningState.FAILED]
    assert "rpc down" in attempt.reason
    assert attempt.signature is None


@pytest.mark.asyncio
async def test_wrong_length_hash_is_rejected() -> None:
    service = SigningService(BrokenOracle(result=b"\x01" * 31))

    with pytest.raises(HashFetchError):
        await service.sign_as_owner(_operation(), Account.create())


def test_finished_attempt_cannot_advance() -> None:
    attempt = SigningAttempt(kind=SignerKind.SESSION)
    attempt.fail("nope")

    with pytest.raises(RuntimeError):
        attempt.advance(SigningState.SIGNING)


def test_composite_signature_layout() -> None:
    session_key = "0x" + "55" * 20
    raw = build_composite_signature(b"\x01" * 65, b"\x02" * 65, 10, 20, session_key)

    assert raw[:65] == b"\x01" * 65
    assert raw[65:130] == b"\x02" * 65
    assert raw[130:136] == (10).to_bytes(6, "big")
    assert raw[136:142] == (20).to_bytes(6, "big")
    assert raw[142:] == bytes.fromhex("55" * 20)


@pytest.mark.parametrize(
    "session_sig,owner_sig,valid_until",
    [(b"\x01" * 64, b"\x02" * 65, 20), (b"\x01" * 65, b"\x02" * 66, 20), (b"\x01" * 65, b"\x02" * 65, 1 << 48)],
)
def test_composite_signature_rejects_bad_parts(session_sig, owner_sig, valid_until) -> None:
    with pytest.raises(ValueError):
        build_composite_signature(session_sig, owner_sig, 0, valid_until, "0x" + "55" * 20)


def test_split_rejects_wrong_length() -> None:
    with pytest.raises(ValueError):
        split_composite_signature(b"\x00" * 161)


def test_sign_prefixed_requires_32_byte_digest() -> None:
    with pytest.raises(ValueError):
        sign_prefixed(Account.create(), b"\x00" * 31)


@pytest.mark.asyncio
async def test_signature_is_redacted_from_structured_logs(hash_oracle, structured_logs) -> None:
    signed = await SigningService(hash_oracle).sign_as_session(_operation(), _session(Account.create()))

    out = structured_logs.readouterr().out
    assert "operation_signed" in out
    assert signed.attempt.signature not in out
    assert "***" in out
