"""
JSON helpers for values kept in the record store.
"""

import json
from typing import Any, Optional

from .logging_config import get_logger

logger = get_logger(__name__)


def dump_json(value: Any) -> str:
    """Serialize a value for the record store.

    Args:
        value: JSON-compatible value

    Returns:
        Compact JSON string (non-ASCII kept as-is)
    """
    return json.dumps(value, ensure_ascii=False, separators=(',', ':'))


def load_json(raw: Optional[str], key: str = '') -> Optional[Any]:
    """Parse a stored value, treating malformed payloads as missing.

    Args:
        raw: Raw string from the store (None when the key is absent)
        key: Store key, used only for logging

    Returns:
        Parsed value, or None if absent or not valid JSON
    """
    if raw is None or raw == '':
        return None

    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f'Malformed JSON under key {key!r}: {e}')
        return None
