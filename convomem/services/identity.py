"""
Identity gate separating durable (authenticated) users from guest sessions.

Authenticated users carry a canonical UUID; guests are addressed by their
session id. Only durable identities may have memory persisted.
"""

import re
from typing import Any

from ..utils.logging_config import get_logger

logger = get_logger(__name__)

_UUID_PATTERN = re.compile(r'[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}', re.IGNORECASE)


class MemoryManagementError(Exception):
    """Custom exception for memory management errors."""
    pass


class InvalidIdentityError(MemoryManagementError):
    """Raised when a mutating call receives a missing or non-string identity."""
    pass


def is_durable(identity: Any) -> bool:
    """Whether memory may be persisted for this identity.

    Args:
        identity: Caller-supplied identity (user id or session id)

    Returns:
        True only for strings in canonical 36-character UUID form
    """
    return isinstance(identity, str) and bool(_UUID_PATTERN.fullmatch(identity))


def require_identity(identity: Any, operation: str) -> str:
    """Validate an identity passed to a mutating call.

    Args:
        identity: Caller-supplied identity
        operation: Name of the calling operation, for the error message

    Returns:
        The identity unchanged

    Raises:
        InvalidIdentityError: If identity is None, not a string, or blank
    """
    if not isinstance(identity, str):
        raise InvalidIdentityError(f'{operation} requires a string identity, got {type(identity).__name__}')
    if not identity.strip():
        raise InvalidIdentityError(f'{operation} requires a non-empty identity')
    return identity
