"""Classification of one-time two-factor (2FA) tokens."""

import re
from enum import Enum
from typing import Optional

from ucsf_vpn.constants import TOKEN_DISABLED, TOKEN_PROMPT
from ucsf_vpn.errors import UserInputError


class TokenKind(Enum):
    """The shape of a token; the value is the human-readable label."""
    PUSH = "push"
    PHONE_CALL = "phone call"
    SMS = "SMS token"
    YUBIKEY = "YubiKey token"
    SIX_DIGIT = "six-digit token"
    SEVEN_DIGIT = "seven-digit token"
    DISABLED = "none"
    UNKNOWN = "unknown"


# Checked in order; every pattern must match the whole token.
_TOKEN_PATTERNS = (
    (re.compile(r"phone[1-9]*"), TokenKind.PHONE_CALL),
    (re.compile(r"push"), TokenKind.PUSH),
    (re.compile(r"(sms|text)[1-9]*"), TokenKind.SMS),
    (re.compile(re.escape(TOKEN_DISABLED)), TokenKind.DISABLED),
    (re.compile(r"[a-z]{44}"), TokenKind.YUBIKEY),
    (re.compile(r"[0-9]{6}"), TokenKind.SIX_DIGIT),
    (re.compile(r"[0-9]{7}"), TokenKind.SEVEN_DIGIT),
)

# Kinds that name an authentication method rather than carry a secret
METHOD_KINDS = frozenset({TokenKind.PUSH, TokenKind.PHONE_CALL, TokenKind.SMS})

TOKEN_HELP = "'push', 'phone', 'sms', 6 or 7 digits, or 44-letter YubiKey sequence"


def classify_token(token: Optional[str]) -> TokenKind:
    """Return the kind of a token. Never raises."""
    if token is None:
        return TokenKind.UNKNOWN
    for pattern, kind in _TOKEN_PATTERNS:
        if pattern.fullmatch(token):
            return kind
    return TokenKind.UNKNOWN


def is_token_enabled(token: Optional[str]) -> bool:
    return bool(token) and token != TOKEN_DISABLED


def describe_token(token: Optional[str]) -> str:
    """A representation of the token that is safe to print."""
    if not token:
        return "<missing>"
    if token == TOKEN_PROMPT:
        return "<prompt>"
    kind = classify_token(token)
    if kind in METHOD_KINDS or kind is TokenKind.DISABLED:
        return token
    return "<hidden>"


def normalize_token(token: Optional[str], dual_factor: bool, explicit: bool = False) -> str:
    """
    Validate a token against the realm and return its canonical form.

    Args:
        token: The requested token, or None if not given
        dual_factor: Whether the realm uses two-factor authentication
        explicit: Whether the token was given on the command line

    Raises:
        UserInputError: If the token is invalid or conflicts with the realm
    """
    if not dual_factor:
        if explicit and is_token_enabled(token):
            raise UserInputError(
                f"Passing a --token='{describe_token(token)}' with a single-factor realm does not make sense"
            )
        return TOKEN_DISABLED

    if token is None:
        return "push"
    if token == "true":  # Backward compatibility
        return TOKEN_PROMPT
    if token in (TOKEN_PROMPT, TOKEN_DISABLED):
        return token
    if classify_token(token) is TokenKind.UNKNOWN:
        raise UserInputError(f"The token (--token) must be one of {TOKEN_HELP}")
    return token
