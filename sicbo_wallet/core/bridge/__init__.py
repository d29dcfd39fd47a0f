"""Message bridge between the sandboxed game and its host page."""

from .models import (
    BridgeError,
    BridgeMessage,
    GameMessageType,
    GamePlayResultPayload,
    HouseChangedPayload,
    InvalidMessageError,
    RewardSentPayload,
    WalletConfirmedPayload,
    WalletCreatedPayload,
)
from .protocol import (
    BridgeChannel,
    BridgeProtocol,
    ParentConfirmationFailure,
    ProvisioningTimeout,
    Subscription,
)

__all__ = [
    "BridgeChannel",
    "BridgeProtocol",
    "Subscription",
    "BridgeMessage",
    "GameMessageType",
    # Payloads
    "WalletCreatedPayload",
    "WalletConfirmedPayload",
    "GamePlayResultPayload",
    "RewardSentPayload",
    "HouseChangedPayload",
    # Errors
    "BridgeError",
    "InvalidMessageError",
    "ParentConfirmationFailure",
    "ProvisioningTimeout",
]
