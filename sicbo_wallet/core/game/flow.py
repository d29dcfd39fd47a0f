"""
Game session flow

Drives one player session end to end: provision a wallet, load a session
key, play rounds with on-chain stake settlement, and log out by revoking
the session key.

Rounds settle in two phases. The outcome is decided and announced to the
host first; the stake transfer is relayed afterwards. When settlement
fails the balance is re-read from the chain and the failure is reported
on the round instead of rolling the outcome back.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from eth_account import Account
from eth_account.signers.local import LocalAccount

from ...logging_config import bind_account, clear_log_context
from ...providers.entrypoint import ChainReadError
from ...providers.relay import RelayError
from ..bridge.models import RewardSentPayload
from ..bridge.protocol import BridgeProtocol
from ..execution.nonce_manager import StaleNonceError
from ..execution.operation_builder import OperationBuildError
from ..execution.signing import SigningServiceError
from ..execution.userop import RelayReceipt
from ..wallet.session_manager import SessionKeyError, SessionKeyManager
from .outcome import RoundOutcome, evaluate_round, roll_dice
from .provisioning import ProvisionedWallet, ProvisioningStrategy

if TYPE_CHECKING:
    from ...context import WalletContext

logger = logging.getLogger(__name__)

SETTLEMENT_ERRORS = (
    SessionKeyError,
    OperationBuildError,
    SigningServiceError,
    StaleNonceError,
    RelayError,
    ChainReadError,
)


class FlowState(str, Enum):
    """States of a player session."""

    IDLE = "idle"                   # Nothing provisioned yet
    PROVISIONING = "provisioning"   # Waiting for the host or URL to name an account
    READY = "ready"                 # Session key loaded, rounds may be played
    ROLLING = "rolling"             # A round is being evaluated and settled
    LOGGING_OUT = "logging_out"     # Revocation in flight
    LOGGED_OUT = "logged_out"       # Session key revoked and forgotten
    FAILED = "failed"               # Provisioning failed


class InvalidTransitionError(Exception):
    """Raised when an invalid flow transition is attempted."""

    def __init__(self, from_state: FlowState, to_state: FlowState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Cannot transition from {from_state.value} to {to_state.value}")


@dataclass
class RoundReport:
    outcome: RoundOutcome
    stake: int
    settled: bool
    receipt: Optional[RelayReceipt] = None
    error: Optional[str] = None
    balance: Optional[int] = None
    finished_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, object]:
        return {
            "isWin": self.outcome.is_win,
            "diceValues": list(self.outcome.dice_values),
            "total": self.outcome.total,
            "choice": self.outcome.choice,
            "winAmount": str(self.outcome.win_amount),
            "stake": self.stake,
            "settled": self.settled,
            "txHash": self.receipt.tx_hash if self.receipt else None,
            "error": self.error,
            "balance": self.balance,
            "finishedAt": self.finished_at.isoformat(),
        }


class GameSessionFlow:
    TRANSITIONS: Dict[FlowState, Set[FlowState]] = {
        FlowState.IDLE: {FlowState.PROVISIONING},
        FlowState.PROVISIONING: {FlowState.READY, FlowState.FAILED},
        FlowState.READY: {FlowState.ROLLING, FlowState.LOGGING_OUT},
        FlowState.ROLLING: {FlowState.READY},
        FlowState.LOGGING_OUT: {FlowState.LOGGED_OUT, FlowState.READY},
        FlowState.LOGGED_OUT: {FlowState.PROVISIONING},
        FlowState.FAILED: {FlowState.PROVISIONING},
    }

    def __init__(
        self,
        context: "WalletContext",
        bridge: BridgeProtocol,
        strategy: ProvisioningStrategy,
        manager: Optional[SessionKeyManager] = None,
        rng: Optional[random.Random] = None,
        register_on_chain: bool = False,
    ):
        self.context = context
        self.bridge = bridge
        self.strategy = strategy
        self.manager = manager or SessionKeyManager(context)
        self.rng = rng
        self.register_on_chain = register_on_chain

        self.state = FlowState.IDLE
        self.owner: Optional[LocalAccount] = None
        self.wallet: Optional[ProvisionedWallet] = None
        self.balance: Optional[int] = None
        self.rounds: List[RoundReport] = []

        self.bridge.on_reward(self._on_reward)

    def _transition(self, to_state: FlowState) -> None:
        if to_state not in self.TRANSITIONS.get(self.state, set()):
            raise InvalidTransitionError(self.state, to_state)
        logger.debug(f"Flow {self.state.value} -> {to_state.value}")
        self.state = to_state

    @property
    def balance_token(self) -> str:
        if self.wallet and self.wallet.token_address:
            return self.wallet.token_address
        return self.context.token_address

    async def start(self) -> ProvisionedWallet:
        """Provision a wallet and load a fresh session key for it."""
        self._transition(FlowState.PROVISIONING)
        self.bridge.start()
        try:
            self.owner = Account.create()
            wallet = await self.strategy.provision(self.owner.address)
            bind_account(wallet.account_address)

            if wallet.token_address and wallet.token_address.lower() != self.context.token_address.lower():
                logger.warning(
                    f"Host token {wallet.token_address} differs from configured "
                    f"{self.context.token_address}; stakes use the configured token"
                )

            session = self.manager.create_session_key(self.owner, wallet.account_address)
            if self.register_on_chain:
                await self.manager.register_session(self.owner, session)
            if not self.manager.load_session(session):
                raise SessionKeyError("Freshly created session key failed to load")
        except Exception:
            self._transition(FlowState.FAILED)
            logger.error(f"Provisioning via {self.strategy.name} failed", exc_info=True)
            raise

        self.wallet = wallet
        self._transition(FlowState.READY)
        logger.info(f"Wallet ready: {wallet.account_address[:10]}... via {self.strategy.name}")
        await self.refresh_balance()
        return wallet

    def _to_base_units(self, amount: Decimal) -> int:
        return int(Decimal(amount) * (Decimal(10) ** self.context.settings.token_decimals))

    async def play_round(self, amount: Decimal, choice: str) -> RoundReport:
        """Roll, announce, then settle the stake with the house."""
        outcome = evaluate_round(roll_dice(self.rng), choice, Decimal(amount))
        stake = self._to_base_units(Decimal(amount))
        self._transition(FlowState.ROLLING)
        try:
            await self.bridge.send_play_result(outcome.to_payload())
            report = await self._settle(outcome, stake)
        finally:
            self._transition(FlowState.READY)

        self.rounds.append(report)
        return report

    async def _settle(self, outcome: RoundOutcome, stake: int) -> RoundReport:
        house = self.bridge.house_address
        if not house:
            logger.error("No house address from host, round left unsettled")
            return RoundReport(
                outcome=outcome,
                stake=stake,
                settled=False,
                error="House address is not known",
                balance=await self._compensate(),
            )

        try:
            result = await self.manager.settle_bet(house, stake)
        except SETTLEMENT_ERRORS as e:
            logger.error(f"Settlement failed: {e}")
            return RoundReport(
                outcome=outcome,
                stake=stake,
                settled=False,
                error=str(e),
                balance=await self._compensate(),
            )

        logger.info(f"Round settled: tx {result.receipt.tx_hash}")
        return RoundReport(
            outcome=outcome,
            stake=stake,
            settled=True,
            receipt=result.receipt,
            balance=await self.refresh_balance(),
        )

    async def _compensate(self) -> Optional[int]:
        logger.info("Re-reading balance after failed settlement")
        return await self.refresh_balance()

    async def refresh_balance(self) -> Optional[int]:
        """Read the token balance; keeps the previous value on failure."""
        if self.wallet is None:
            return None
        try:
            self.balance = await self.context.chain.get_token_balance(
                self.balance_token, self.wallet.account_address
            )
        except ChainReadError as e:
            logger.warning(f"Balance refresh failed: {e}")
            return None
        return self.balance

    async def _on_reward(self, payload: RewardSentPayload) -> None:
        if payload.status != "success":
            logger.warning(f"Reward failed: {payload.error or 'Unknown error'}")
            return
        logger.info(f"Reward sent: tx {payload.tx_hash}")
        await self.refresh_balance()

    async def logout(self) -> RelayReceipt:
        """Revoke the session key, tell the host, and forget the wallet."""
        self._transition(FlowState.LOGGING_OUT)
        try:
            receipt = await self.manager.revoke()
        except Exception:
            self._transition(FlowState.READY)
            raise

        await self.bridge.send_logout()
        self.bridge.stop()
        if self.wallet is not None:
            self.context.locks.clear_state(self.wallet.account_address)
        self.owner = None
        self.wallet = None
        self.balance = None
        clear_log_context()
        self._transition(FlowState.LOGGED_OUT)
        logger.info("Logged out")
        return receipt
