"""Exception types for ucsf-vpn.

Every fatal condition is a ``VPNError``; the CLI turns it into an error
message and a non-zero exit code.
"""

from enum import Enum


class VPNError(Exception):
    """Base class for all ucsf-vpn errors."""
    exit_code = 1


class UserInputError(VPNError):
    """Bad option value or conflicting realm/token/backend combination."""


class VPNEnvironmentError(VPNError):
    """Missing external tool, missing directory or permission failure."""

    def __init__(self, message: str, hint: str = None):
        super().__init__(message if not hint else f"{message}. {hint}")
        self.hint = hint


class StateConflictError(VPNError):
    """Already connected when asked to connect (or vice versa)."""
    exit_code = 0


class FailureReason(Enum):
    """Best-effort classification of a failed login."""
    TOKEN_REJECTED = "Likely reason: 2FA token not accepted"
    CREDENTIALS_REJECTED = "Likely reason: Incorrect username or password"
    UNKNOWN = "Check your username, password, and token"


class AuthFailure(VPNError):
    """The backend did not establish a connection after login."""

    def __init__(self, message: str, reason: FailureReason = FailureReason.UNKNOWN):
        super().__init__(f"{message}. {reason.value}")
        self.reason = reason


class AutomationDesyncError(VPNError):
    """An expected GUI window or connection profile could not be found."""


class TransientNetworkError(VPNError):
    """No internet connection, or the identity lookup failed."""


class ConnectionStateError(VPNError):
    """The observed connection state contradicts the expected one."""
