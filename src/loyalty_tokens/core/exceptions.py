"""
Loyalty token exception hierarchy.

Provides typed exceptions for lifecycle and vesting operations so callers
can tell an authorization failure from a timing failure from a ledger
failure without parsing messages.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class LoyaltyTokenError(Exception):
    """Base exception for all loyalty token errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the same call may succeed if retried later
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    @property
    def kind(self) -> str:
        """Short error kind used for metrics labels and CLI output."""
        return type(self).__name__


# ==================== Authorization Errors ====================


class Unauthorized(LoyaltyTokenError):
    """Raised when the caller is not the administrator, owner, or approved."""
    pass


# ==================== Validation Errors ====================


class InvalidTarget(LoyaltyTokenError):
    """Raised when a target identity is empty or the zero address."""
    pass


class InvalidParameter(LoyaltyTokenError):
    """Raised when a numeric argument is out of range."""
    pass


# ==================== Lifecycle Errors ====================


class AlreadyBurnt(LoyaltyTokenError):
    """Raised when burning a token that is already burnt."""
    pass


class NotFound(LoyaltyTokenError):
    """Raised when a token that must exist was never minted or was removed."""
    pass


class TransfersDisabled(LoyaltyTokenError):
    """Raised by the registry transfer path while transferability is off."""
    pass


# ==================== Vesting Errors ====================


class ScheduleNotSet(LoyaltyTokenError):
    """Raised when releasing a token with no vesting deadline."""
    pass


class NotYetVested(LoyaltyTokenError):
    """Raised when releasing before the vesting deadline."""

    def __init__(self, message: str, deadline: Optional[int] = None, **kwargs: Any) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)
        self.deadline = deadline


class TransferFailed(LoyaltyTokenError):
    """Raised when the reward ledger does not complete a payout."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


# ==================== Configuration Errors ====================


class ConfigurationError(LoyaltyTokenError):
    """Raised when required configuration is missing or invalid."""
    pass
