"""Session-key wallet core for the sandboxed sic bo game."""

from .config import Settings, settings
from .context import WalletContext
from .core.bridge import (
    BridgeChannel,
    BridgeError,
    BridgeProtocol,
    InvalidMessageError,
    ParentConfirmationFailure,
    ProvisioningTimeout,
)
from .core.execution import (
    AccountNotDeployedError,
    HashFetchError,
    OperationBuildError,
    OperationBuilder,
    RangeError,
    SigningError,
    SigningService,
    SigningServiceError,
    StaleNonceError,
)
from .core.game import GameSessionFlow, InvalidTransitionError, ProvisioningError
from .core.wallet import (
    PermissionDeniedError,
    SessionExpiredError,
    SessionKey,
    SessionKeyError,
    SessionKeyManager,
    SessionNotLoadedError,
    SessionPermission,
)
from .providers import BalanceFetchError, ChainReadError, RelayError, RelaySubmissionError

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "settings",
    "WalletContext",
    "OperationBuilder",
    "SigningService",
    "SessionKeyManager",
    "SessionKey",
    "SessionPermission",
    "BridgeChannel",
    "BridgeProtocol",
    "GameSessionFlow",
    # Errors
    "RangeError",
    "OperationBuildError",
    "AccountNotDeployedError",
    "SigningServiceError",
    "HashFetchError",
    "SigningError",
    "StaleNonceError",
    "SessionKeyError",
    "SessionNotLoadedError",
    "SessionExpiredError",
    "PermissionDeniedError",
    "RelayError",
    "RelaySubmissionError",
    "ChainReadError",
    "BalanceFetchError",
    "BridgeError",
    "InvalidMessageError",
    "ParentConfirmationFailure",
    "ProvisioningTimeout",
    "ProvisioningError",
    "InvalidTransitionError",
]
