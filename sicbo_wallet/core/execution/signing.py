"""
Hash-then-sign for abstract-account operations.

Every signature produced here, owner or session, is an EIP-191 personal
message signature over the 32-byte operation hash. The verifying account
applies the same prefix, so the scheme must never vary between paths.

Composite (session) signature layout, tightly packed::

    sessionSig(65) || ownerConsentSig(65) || validAfter(6) || validUntil(6) || sessionKey(20)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, List, NamedTuple, Optional, Tuple, Union

import structlog
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from eth_utils import to_checksum_address

from .packing import hex_to_bytes, to_hex
from .userop import AbstractAccountOperation

if TYPE_CHECKING:
    from ...providers.base import HashOracle
    from ..wallet.models import SessionKey

logger = logging.getLogger(__name__)
_slog = structlog.stdlib.get_logger(__name__)

ECDSA_SIGNATURE_BYTES = 65
TIMESTAMP_BYTES = 6
COMPOSITE_SIGNATURE_BYTES = 2 * ECDSA_SIGNATURE_BYTES + 2 * TIMESTAMP_BYTES + 20
UINT48_MAX = (1 << 48) - 1

Signer = Union[LocalAccount, str, bytes]


class SignerKind(str, Enum):
    OWNER = "owner"
    SESSION = "session"


class SigningState(str, Enum):
    HASH_PENDING = "hash_pending"
    SIGNING = "signing"
    SIGNED = "signed"
    FAILED = "failed"


@dataclass
class SigningAttempt:
    """State record for a single authorization attempt."""
    kind: SignerKind
    state: SigningState = SigningState.HASH_PENDING
    history: List[SigningState] = field(default_factory=lambda: [SigningState.HASH_PENDING])
    op_hash: Optional[bytes] = None
    signature: Optional[str] = None
    reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (SigningState.SIGNED, SigningState.FAILED)

    def advance(self, state: SigningState) -> None:
        if self.is_terminal:
            raise RuntimeError(f"Signing attempt already finished in state {self.state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, reason: str) -> None:
        self.reason = reason
        self.advance(SigningState.FAILED)


class SigningServiceError(Exception):
    """Base error for a failed signing attempt."""

    def __init__(self, message: str, attempt: SigningAttempt):
        super().__init__(message)
        self.attempt = attempt


class HashFetchError(SigningServiceError):
    """The hash oracle did not return an operation hash."""
    pass


class SigningError(SigningServiceError):
    """The key could not sign the operation hash."""
    pass


@dataclass
class SignedOperation:
    operation: AbstractAccountOperation
    attempt: SigningAttempt


class CompositeSignature(NamedTuple):
    session_signature: bytes
    owner_signature: bytes
    valid_after: int
    valid_until: int
    session_key: str


def _as_account(signer: Signer) -> LocalAccount:
    if isinstance(signer, LocalAccount):
        return signer
    return Account.from_key(signer)


def sign_prefixed(signer: Signer, digest: bytes) -> bytes:
    """EIP-191 sign a 32-byte digest."""
    if len(digest) != 32:
        raise ValueError(f"Digest must be 32 bytes, got {len(digest)}")
    signed = _as_account(signer).sign_message(encode_defunct(primitive=digest))
    return bytes(signed.signature)


def recover_signer(digest: bytes, signature: Union[str, bytes]) -> str:
    return Account.recover_message(
        encode_defunct(primitive=digest), signature=hex_to_bytes(signature)
    )


def build_composite_signature(
    session_signature: bytes,
    owner_signature: bytes,
    valid_after: int,
    valid_until: int,
    session_key: str,
) -> bytes:
    if len(session_signature) != ECDSA_SIGNATURE_BYTES:
        raise ValueError("Session signature must be 65 bytes")
    if len(owner_signature) != ECDSA_SIGNATURE_BYTES:
        raise ValueError("Owner consent signature must be 65 bytes")
    for name, value in (("valid_after", valid_after), ("valid_until", valid_until)):
        if value < 0 or value > UINT48_MAX:
            raise ValueError(f"{name} must fit in 48 bits")
    key = hex_to_bytes(session_key)
    if len(key) != 20:
        raise ValueError(f"Invalid session key address: {session_key}")
    return (
        session_signature
        + owner_signature
        + valid_after.to_bytes(TIMESTAMP_BYTES, "big")
        + valid_until.to_bytes(TIMESTAMP_BYTES, "big")
        + key
    )


def split_composite_signature(signature: Union[str, bytes]) -> CompositeSignature:
    raw = hex_to_bytes(signature)
    if len(raw) != COMPOSITE_SIGNATURE_BYTES:
        raise ValueError(
            f"Composite signature must be {COMPOSITE_SIGNATURE_BYTES} bytes, got {len(raw)}"
        )
    offsets: Tuple[int, ...] = (0, 65, 130, 136, 142, 162)
    parts = [raw[offsets[i]:offsets[i + 1]] for i in range(len(offsets) - 1)]
    return CompositeSignature(
        session_signature=parts[0],
        owner_signature=parts[1],
        valid_after=int.from_bytes(parts[2], "big"),
        valid_until=int.from_bytes(parts[3], "big"),
        session_key=to_checksum_address(parts[4]),
    )


class SigningService:
    """
    Fetches the canonical hash from the oracle and signs it.

    No retries happen here; a failed attempt is terminal and the caller
    decides whether to start a new one.
    """

    def __init__(self, hash_oracle: "HashOracle") -> None:
        self.hash_oracle = hash_oracle

    async def sign_as_owner(
        self,
        op: AbstractAccountOperation,
        owner: Signer,
    ) -> SignedOperation:
        attempt = SigningAttempt(kind=SignerKind.OWNER)
        op_hash = await self._fetch_hash(op, attempt)

        attempt.advance(SigningState.SIGNING)
        try:
            signature = sign_prefixed(owner, op_hash)
        except Exception as exc:
            attempt.fail(f"owner signing failed: {exc}")
            raise SigningError(attempt.reason, attempt) from exc

        return self._finish(op, attempt, signature)

    async def sign_as_session(
        self,
        op: AbstractAccountOperation,
        session: "SessionKey",
    ) -> SignedOperation:
        attempt = SigningAttempt(kind=SignerKind.SESSION)
        op_hash = await self._fetch_hash(op, attempt)

        attempt.advance(SigningState.SIGNING)
        try:
            session_signature = sign_prefixed(session.private_key, op_hash)
            signature = build_composite_signature(
                session_signature,
                hex_to_bytes(session.owner_consent_signature),
                session.valid_after,
                session.valid_until,
                session.public_key,
            )
        except Exception as exc:
            attempt.fail(f"session signing failed: {exc}")
            raise SigningError(attempt.reason, attempt) from exc

        return self._finish(op, attempt, signature)

    async def _fetch_hash(self, op: AbstractAccountOperation, attempt: SigningAttempt) -> bytes:
        try:
            op_hash = await self.hash_oracle.get_operation_hash(op)
        except Exception as exc:
            attempt.fail(f"hash fetch failed: {exc}")
            raise HashFetchError(attempt.reason, attempt) from exc

        if len(op_hash) != 32:
            attempt.fail(f"hash oracle returned {len(op_hash)} bytes")
            raise HashFetchError(attempt.reason, attempt)

        attempt.op_hash = op_hash
        return op_hash

    @staticmethod
    def _finish(
        op: AbstractAccountOperation,
        attempt: SigningAttempt,
        signature: bytes,
    ) -> SignedOperation:
        attempt.signature = to_hex(signature)
        attempt.advance(SigningState.SIGNED)
        logger.info(
            f"Signed operation {to_hex(attempt.op_hash)[:18]}... "
            f"for {op.sender[:10]}... as {attempt.kind.value}"
        )
        _slog.debug(
            "operation_signed",
            account=op.sender,
            nonce=op.nonce,
            signer=attempt.kind.value,
            op_hash=to_hex(attempt.op_hash),
            signature=attempt.signature,
        )
        return SignedOperation(operation=op.with_signature(attempt.signature), attempt=attempt)
