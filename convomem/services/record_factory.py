"""
Record construction with normalized metadata and similarity fingerprints.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional, Union

from ..models.core import MemoryType, Priority, Record
from ..utils.timestamp_utils import ensure_utc, to_epoch_ms, utc_now
from .indexer import embed, fingerprint

_TYPE_ALIASES = {
    'preferences': MemoryType.PREFERENCE,
    'facts': MemoryType.FACT,
    'episodic': MemoryType.EPISODIC_SUMMARY,
    'summary': MemoryType.EPISODIC_SUMMARY,
}


def generate_record_id(now: Optional[datetime] = None) -> str:
    """Collision-resistant id that sorts by creation time."""
    millis = to_epoch_ms(now or utc_now())
    return f'mem_{millis:013d}_{uuid.uuid4().hex[:9]}'


def normalize_type(memory_type: Union[MemoryType, str]) -> MemoryType:
    if isinstance(memory_type, MemoryType):
        return memory_type
    value = str(memory_type).strip().lower()
    if value in _TYPE_ALIASES:
        return _TYPE_ALIASES[value]
    return MemoryType(value)


def normalize_priority(priority: Union[Priority, int, str]) -> Priority:
    if isinstance(priority, Priority):
        return priority
    if isinstance(priority, str) and not priority.strip().isdigit():
        return Priority[priority.strip().upper()]
    return Priority(int(priority))


def create_record(content: str,
                  memory_type: Union[MemoryType, str],
                  priority: Union[Priority, int, str] = Priority.MEDIUM,
                  metadata: Optional[Dict[str, Any]] = None,
                  user_id: str = '',
                  now: Optional[datetime] = None) -> Record:
    """Build a record; persisting it is the caller's job.

    Args:
        content: Free-text content
        memory_type: MemoryType member or its value/alias
        priority: Priority member, its int value, or its name
        metadata: Free-form context (session, role, source, ...)
        user_id: Owning identity
        now: Creation time (defaults to the current UTC time)

    Returns:
        New Record with fingerprint and embedding computed

    Raises:
        ValueError, KeyError: If memory_type or priority is not recognised
    """
    created = ensure_utc(now) if now else utc_now()
    content = content or ''
    return Record(id=generate_record_id(created),
                  user_id=user_id,
                  content=content,
                  type=normalize_type(memory_type),
                  priority=normalize_priority(priority),
                  created_at=created,
                  last_accessed=created,
                  fingerprint=fingerprint(content),
                  embedding=embed(content),
                  access_count=0,
                  metadata=dict(metadata or {}))
