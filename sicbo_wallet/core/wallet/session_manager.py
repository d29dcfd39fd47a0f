"""
Session key manager for delegated game actions.

Manages the lifecycle of a session key:
- Creation with an owner consent signature over the session commitment
- Loading and validity checks against wall-clock time
- Permission gating before any signing
- Owner-signed registration and session-signed revocation
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

import structlog
from eth_abi.exceptions import DecodingError
from eth_account import Account

from ..execution.packing import to_hex
from ..execution.signing import SignedOperation, Signer, recover_signer, sign_prefixed
from ..execution.userop import AbstractAccountOperation, RelayReceipt
from ..execution.userop_builder import (
    REMOVE_DELEGATOR_SELECTOR,
    TRANSFER_SELECTOR,
    Call,
    compose_batch,
    compose_bet_settlement,
    compose_delegation_grant,
    compose_delegation_revoke,
    decode_batch,
)
from .models import SessionKey, SessionPermission

if TYPE_CHECKING:
    from ...context import WalletContext

logger = logging.getLogger(__name__)
_slog = structlog.stdlib.get_logger(__name__)

Clock = Callable[[], int]


class SessionKeyError(Exception):
    """Base exception for session key errors."""
    pass


class SessionNotLoadedError(SessionKeyError):
    """No session key is loaded."""
    pass


class SessionExpiredError(SessionKeyError):
    """Session key is outside its validity window."""
    pass


class PermissionDeniedError(SessionKeyError):
    """Action not permitted by session key."""
    pass


@dataclass
class ActionResult:
    operation: AbstractAccountOperation
    signed: SignedOperation
    receipt: RelayReceipt


def default_game_permissions(
    token_address: str,
    delegator_address: Optional[str] = None,
    max_usage: Optional[int] = None,
) -> List[SessionPermission]:
    """Token transfers (stakes and fees) plus self-revocation."""
    permissions = [
        SessionPermission(target=token_address, selector=TRANSFER_SELECTOR, max_usage=max_usage),
    ]
    if delegator_address:
        permissions.append(
            SessionPermission(target=delegator_address, selector=REMOVE_DELEGATOR_SELECTOR, max_usage=1)
        )
    return permissions


def _wall_clock() -> int:
    return int(time.time())


class SessionKeyManager:
    """
    Owns at most one loaded session key for one abstract account.

    Expiry and permission checks run before any network call; a rejected
    action never reaches the hash oracle.
    """

    def __init__(self, context: "WalletContext", clock: Optional[Clock] = None):
        self.context = context
        self.clock = clock or _wall_clock
        self._session: Optional[SessionKey] = None
        self._usage: Dict[SessionPermission, int] = {}

    @property
    def session(self) -> Optional[SessionKey]:
        return self._session

    def create_session_key(
        self,
        owner_key: Signer,
        account_address: str,
        duration_seconds: Optional[int] = None,
        permissions: Optional[Iterable[SessionPermission]] = None,
    ) -> SessionKey:
        """
        Generate a fresh key pair and have the owner sign its commitment.

        The key is not registered on-chain here; see ``register_session``.
        """
        if duration_seconds is None:
            duration = self.context.settings.session_duration_seconds
        else:
            duration = duration_seconds
        if duration <= 0:
            raise ValueError("Session duration must be positive")

        if permissions is None:
            permissions = default_game_permissions(
                self.context.token_address,
                self.context.settings.delegator_address or None,
            )

        owner = owner_key if hasattr(owner_key, "address") else Account.from_key(owner_key)
        session_account = Account.create()
        now = self.clock()

        draft = SessionKey(
            public_key=session_account.address,
            private_key=to_hex(bytes(session_account.key)),
            valid_after=now,
            valid_until=now + duration,
            account_address=account_address,
            owner_consent_signature="0x",
            permissions=tuple(permissions),
            owner_address=owner.address,
        )
        consent = sign_prefixed(owner, draft.commitment)
        session = replace(draft, owner_consent_signature=to_hex(consent))

        logger.info(
            f"Created session key {session.public_key[:10]}... for {account_address[:10]}..., "
            f"valid until {session.valid_until}"
        )
        _slog.debug(
            "session_key_created",
            account=account_address,
            session=session.public_key,
            owner=session.owner_address,
            private_key=session.private_key,
            signature=session.owner_consent_signature,
        )
        return session

    def load_session(self, record: Union[SessionKey, Dict[str, Any]]) -> bool:
        """Load a session record; False if it is outside its window or malformed."""
        try:
            session = SessionKey.from_dict(record) if isinstance(record, dict) else record
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(f"Refusing malformed session record: {exc}")
            return False
        if not isinstance(session, SessionKey):
            logger.warning(f"Refusing session record of type {type(record).__name__}")
            return False

        now = self.clock()
        if not session.is_within_window(now):
            logger.warning(
                f"Refusing session {session.public_key[:10]}...: window "
                f"[{session.valid_after}, {session.valid_until}] excludes {now}"
            )
            return False

        if session.owner_address:
            try:
                consent_signer = recover_signer(session.commitment, session.owner_consent_signature)
            except Exception as exc:
                logger.warning(f"Owner consent for {session.public_key[:10]}... is unreadable: {exc}")
                return False
            if consent_signer.lower() != session.owner_address.lower():
                logger.warning(f"Owner consent for {session.public_key[:10]}... does not verify")
                return False

        if self._session is None or self._session.public_key != session.public_key:
            self._usage = {}
        self._session = session
        return True

    def is_valid(self) -> bool:
        return self._session is not None and self._session.is_within_window(self.clock())

    def remaining_seconds(self) -> int:
        if self._session is None:
            return 0
        return max(0, self._session.valid_until - self.clock())

    def clear(self) -> None:
        if self._session is not None:
            logger.info(f"Cleared session {self._session.public_key[:10]}...")
        self._session = None
        self._usage = {}

    def _require_session(self) -> SessionKey:
        if self._session is None:
            raise SessionNotLoadedError("No session key loaded")
        now = self.clock()
        if not self._session.is_within_window(now):
            raise SessionExpiredError(
                f"Session {self._session.public_key} valid "
                f"[{self._session.valid_after}, {self._session.valid_until}], now {now}"
            )
        return self._session

    def check_calls(self, session: SessionKey, calls: Sequence[Call]) -> List[SessionPermission]:
        """Match every call to a permission; returns the matched permissions."""
        matched: List[SessionPermission] = []
        pending: Dict[SessionPermission, int] = {}
        for call in calls:
            candidates = [p for p in session.permissions if p.matches(call.target, call.selector)]
            if not candidates:
                raise PermissionDeniedError(
                    f"Call to {call.target} selector {to_hex(call.selector)} not permitted"
                )

            permission = None
            for candidate in candidates:
                used = self._usage.get(candidate, 0) + pending.get(candidate, 0)
                if call.value > candidate.max_value:
                    continue
                if candidate.max_usage is not None and used >= candidate.max_usage:
                    continue
                permission = candidate
                break

            if permission is None:
                raise PermissionDeniedError(
                    f"Call to {call.target} exceeds value or usage limits of its permission"
                )
            pending[permission] = pending.get(permission, 0) + 1
            matched.append(permission)
        return matched

    async def authorize_action(self, operation: AbstractAccountOperation) -> SignedOperation:
        """
        Gate the operation's batched calls, then sign it with the session key.

        The returned operation carries the composite signature.
        """
        session = self._require_session()
        if operation.sender.lower() != session.account_address.lower():
            raise PermissionDeniedError(
                f"Session is scoped to {session.account_address}, not {operation.sender}"
            )
        try:
            calls = decode_batch(operation.call_data)
        except (DecodingError, ValueError) as exc:
            raise PermissionDeniedError(f"Call data is not a decodable batch: {exc}") from exc
        matched = self.check_calls(session, calls)

        signed = await self.context.signer.sign_as_session(operation, session)
        for permission in matched:
            self._usage[permission] = self._usage.get(permission, 0) + 1
        return signed

    async def execute_action(self, action_calls: Sequence[Call]) -> ActionResult:
        """Compose, build, authorize and relay a batch of calls."""
        session = self._require_session()
        self._pre_gate(session, action_calls)

        fee = await self.context.relayer_fee()
        call_data = compose_batch(
            action_calls, self.context.fee_recipient, fee, self.context.token_address
        )
        return await self._submit(session, call_data)

    async def settle_bet(self, house: str, stake: int) -> ActionResult:
        session = self._require_session()
        stake_call = Call(target=self.context.token_address, value=0, data=TRANSFER_SELECTOR)
        self._pre_gate(session, [stake_call])

        fee = await self.context.relayer_fee()
        call_data = compose_bet_settlement(
            self.context.token_address, house, stake, self.context.fee_recipient, fee
        )
        return await self._submit(session, call_data)

    def _pre_gate(self, session: SessionKey, action_calls: Sequence[Call]) -> None:
        # selector-only check before the fee amount is known
        fee_call = Call(target=self.context.token_address, value=0, data=TRANSFER_SELECTOR)
        self.check_calls(session, [*action_calls, fee_call])

    async def _submit(self, session: SessionKey, call_data: str) -> ActionResult:
        account = session.account_address
        locks = self.context.locks
        if locks.is_busy(account):
            logger.info(f"Waiting for in-flight operation on {account[:10]}...")
        async with locks.hold(account):
            operation = await self.context.builder.prepare(account, call_data)
            locks.check_fresh(account, operation.nonce)
            signed = await self.authorize_action(operation)
            receipt = await self.context.relay.submit(signed.operation, self.context.entry_point)
            locks.record_submitted(account, operation.nonce)

        logger.info(f"Action relayed for {account[:10]}...: tx {receipt.tx_hash}")
        return ActionResult(operation=operation, signed=signed, receipt=receipt)

    async def build_grant_operation(self, owner_key: Signer, session: SessionKey) -> SignedOperation:
        """Owner-signed delegation grant registering ``session`` on-chain."""
        delegator = self.context.settings.delegator_address
        if not delegator:
            raise SessionKeyError("Delegator address is not configured")

        fee = await self.context.relayer_fee()
        call_data = compose_delegation_grant(
            delegator,
            session.public_key,
            session.valid_until,
            self.context.token_address,
            self.context.fee_recipient,
            fee,
        )
        operation = await self.context.builder.prepare(session.account_address, call_data)
        return await self.context.signer.sign_as_owner(operation, owner_key)

    async def register_session(self, owner_key: Signer, session: SessionKey) -> RelayReceipt:
        account = session.account_address
        locks = self.context.locks
        async with locks.hold(account):
            signed = await self.build_grant_operation(owner_key, session)
            locks.check_fresh(account, signed.operation.nonce)
            receipt = await self.context.relay.submit(signed.operation, self.context.entry_point)
            locks.record_submitted(account, signed.operation.nonce)

        logger.info(f"Registered session {session.public_key[:10]}...: tx {receipt.tx_hash}")
        return receipt

    async def revoke(self) -> RelayReceipt:
        """
        Sign a delegation revoke with the session key and relay it.

        Local session state is cleared once the relay accepts the
        revocation, whether or not it reports ``isRevoked``.
        """
        session = self._require_session()
        delegator = self.context.settings.delegator_address
        if not delegator:
            raise SessionKeyError("Delegator address is not configured")

        revoke_call = Call(target=delegator, value=0, data=REMOVE_DELEGATOR_SELECTOR)
        self._pre_gate(session, [revoke_call])

        fee = await self.context.relayer_fee()
        call_data = compose_delegation_revoke(
            delegator,
            session.public_key,
            self.context.token_address,
            self.context.fee_recipient,
            fee,
        )

        account = session.account_address
        locks = self.context.locks
        async with locks.hold(account):
            operation = await self.context.builder.prepare(account, call_data)
            locks.check_fresh(account, operation.nonce)
            signed = await self.authorize_action(operation)
            receipt = await self.context.relay.revoke(signed.operation, self.context.entry_point)
            locks.record_submitted(account, operation.nonce)

        if not receipt.is_revoked:
            logger.warning(f"Relay accepted revocation for {account[:10]}... but reports not revoked")
        self.clear()
        return receipt
