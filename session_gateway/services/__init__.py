"""Service layer exports."""

from .login import LoginService
from .token_lifecycle import AuthState, GateResult, TokenLifecycleManager

__all__ = [
    "AuthState",
    "GateResult",
    "LoginService",
    "TokenLifecycleManager",
]
