"""Sic bo rounds and the player session flow."""

from .flow import FlowState, GameSessionFlow, InvalidTransitionError, RoundReport
from .outcome import RoundOutcome, evaluate_round, roll_dice
from .provisioning import (
    DemoProvisioning,
    MessageProvisioning,
    ProvisionedWallet,
    ProvisioningError,
    ProvisioningStrategy,
    UrlParameterProvisioning,
    strategy_from_settings,
)

__all__ = [
    "GameSessionFlow",
    "FlowState",
    "RoundReport",
    "InvalidTransitionError",
    "RoundOutcome",
    "evaluate_round",
    "roll_dice",
    # Provisioning
    "ProvisioningStrategy",
    "MessageProvisioning",
    "UrlParameterProvisioning",
    "DemoProvisioning",
    "ProvisionedWallet",
    "ProvisioningError",
    "strategy_from_settings",
]
