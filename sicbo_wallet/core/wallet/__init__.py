"""
Session Key Module

Owner-consented, time-boxed, permission-scoped keys that sign game
actions for an abstract account.
"""

from .models import SessionKey, SessionPermission, compute_session_commitment
from .session_manager import (
    ActionResult,
    PermissionDeniedError,
    SessionExpiredError,
    SessionKeyError,
    SessionKeyManager,
    SessionNotLoadedError,
    default_game_permissions,
)

__all__ = [
    "SessionKeyManager",
    "ActionResult",
    "default_game_permissions",
    # Models
    "SessionKey",
    "SessionPermission",
    "compute_session_commitment",
    # Errors
    "SessionKeyError",
    "SessionNotLoadedError",
    "SessionExpiredError",
    "PermissionDeniedError",
]
