"""
Core data models for the conversational memory engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, List

from ..utils.timestamp_utils import from_iso, to_iso


class MemoryType(str, Enum):
    """Kind of record kept for a user."""
    PREFERENCE = 'preference'
    FACT = 'fact'
    CONTEXT = 'context'
    EPISODIC_SUMMARY = 'episodic-summary'


class Priority(IntEnum):
    """Retention rank; drives decay horizons and breaks relevance ties."""
    LOW = 1
    MEDIUM = 2
    HIGH = 3


@dataclass
class Record:
    """Atomic unit of memory: a conversation turn, a fact or an episodic summary.

    Records belong to exactly one durable identity and are reachable from that
    identity's semantic index.
    """
    id: str  # Time-ordered: mem_{epoch_ms}_{random}
    user_id: str
    content: str
    type: MemoryType
    priority: Priority
    created_at: datetime
    last_accessed: datetime
    fingerprint: str  # Normalized signature for near-duplicate detection
    embedding: Dict[str, int]  # Sparse term -> frequency
    access_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    merged_from: List[str] = field(default_factory=list)

    def touch(self, now: datetime) -> None:
        """Record a retrieval hit."""
        self.access_count += 1
        self.last_accessed = now

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'content': self.content,
            'type': self.type.value,
            'priority': int(self.priority),
            'created_at': to_iso(self.created_at),
            'last_accessed': to_iso(self.last_accessed),
            'access_count': self.access_count,
            'fingerprint': self.fingerprint,
            'embedding': dict(self.embedding),
            'metadata': dict(self.metadata),
            'merged_from': list(self.merged_from),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Record':
        """Rebuild a record from its stored form.

        Raises:
            KeyError, TypeError, ValueError: If the payload is malformed
        """
        if not isinstance(data, dict):
            raise TypeError(f'Expected dict, got {type(data).__name__}')

        embedding = data.get('embedding') or {}
        if not isinstance(embedding, dict):
            raise TypeError('embedding must be a mapping')

        return cls(id=str(data['id']),
                   user_id=str(data.get('user_id', '')),
                   content=str(data['content']),
                   type=MemoryType(data['type']),
                   priority=Priority(int(data['priority'])),
                   created_at=from_iso(data['created_at']),
                   last_accessed=from_iso(data.get('last_accessed') or data['created_at']),
                   fingerprint=str(data.get('fingerprint', '')),
                   embedding={str(k): int(v) for k, v in embedding.items()},
                   access_count=int(data.get('access_count', 0)),
                   metadata=dict(data.get('metadata') or {}),
                   merged_from=list(data.get('merged_from') or []))


@dataclass
class UserProfile:
    """Per-identity profile: key facts, preferences and the memory opt-out flag."""
    key_facts: Dict[str, str] = field(default_factory=dict)
    preferences: Dict[str, Any] = field(default_factory=dict)
    opt_out_memory: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'key_facts': dict(self.key_facts),
            'preferences': dict(self.preferences),
            'opt_out_memory': self.opt_out_memory,
        }

    @classmethod
    def from_dict(cls, data: Any) -> 'UserProfile':
        """Lenient parse; anything unusable falls back to defaults."""
        if not isinstance(data, dict):
            return cls()
        key_facts = data.get('key_facts')
        preferences = data.get('preferences')
        return cls(key_facts=dict(key_facts) if isinstance(key_facts, dict) else {},
                   preferences=dict(preferences) if isinstance(preferences, dict) else {},
                   opt_out_memory=bool(data.get('opt_out_memory', False)))


@dataclass
class RecallResult:
    """Hybrid recall output: recent turns plus similar long-term records."""
    short_term: List[Dict[str, Any]] = field(default_factory=list)
    similar: List[Record] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'short_term': list(self.short_term),
            'similar': [record.to_dict() for record in self.similar],
        }
