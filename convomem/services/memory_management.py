"""
Memory Management Service: the per-user conversational memory engine.

Stores conversation turns, key facts and episodic summaries for durable
identities and answers hybrid recall queries (recent-turn window plus
records ranked by term-frequency cosine similarity).

Concurrency: every store interaction is a plain blocking call and there is
no cross-request locking. Semantic index updates are read-modify-write, so
two concurrent writers for the same identity can race and one append may be
lost. Memory here is best-effort context, not a ledger, and that loss is
accepted. Caches are per process; other instances may see data up to the
cache TTL stale.

Failures: store errors and malformed stored values degrade the affected key
to its default and are logged; they never propagate. The only error raised
to callers is InvalidIdentityError for a missing or non-string identity on a
mutating call.
"""

import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..models.core import MemoryType, Priority, RecallResult, Record, UserProfile
from ..utils.config import CacheConfig, MemoryConfig
from ..utils.json_utils import dump_json, load_json
from ..utils.logging_config import get_logger
from ..utils.record_store import RecordStore, create_record_store
from ..utils.timestamp_utils import SECONDS_PER_DAY, to_iso, utc_now
from . import lifecycle
from .cache import CacheLayer
from .fact_extraction import FactExtractionService
from .identity import InvalidIdentityError, MemoryManagementError, is_durable, require_identity
from .indexer import cosine_similarity, embed, normalize_text
from .record_factory import create_record
from .relevance import rank_with_clusters, recency_boost

logger = get_logger(__name__)

__all__ = ['MemoryManagementService', 'MemoryManagementError', 'InvalidIdentityError']


class MemoryManagementService:
    """Unified service for memory recording, recall, lifecycle and deletion."""

    def __init__(self,
                 store: Optional[RecordStore] = None,
                 memory_config: Optional[MemoryConfig] = None,
                 cache_config: Optional[CacheConfig] = None,
                 clock: Callable[[], float] = time.time):
        """Initialize the memory management service.

        Args:
            store: Record store adapter (built from configuration if None)
            memory_config: Recall and lifecycle settings (global config if None)
            cache_config: Cache bounds and TTLs (global config if None)
            clock: Wall-clock source in epoch seconds, shared with the caches
        """
        if memory_config is None or cache_config is None:
            from ..utils.config import config as default_config
            memory_config = memory_config or default_config.memory
            cache_config = cache_config or default_config.cache

        self.store = store if store is not None else create_record_store()
        self.settings = memory_config
        self.cache = CacheLayer(cache_config, clock=clock)
        self.fact_extraction = FactExtractionService()
        self._clock = clock

        self._record_ttl = int(memory_config.record_ttl_days * SECONDS_PER_DAY)
        self._session_ttl = int(memory_config.session_ttl_days * SECONDS_PER_DAY)
        self._horizons = lifecycle.retention_horizons(memory_config.decay_high_weeks,
                                                      memory_config.decay_medium_weeks,
                                                      memory_config.decay_low_weeks)

        logger.info(f'Initialized MemoryManagementService with store {type(self.store).__name__}')

    # ---- Key helpers ----
    @staticmethod
    def _session_key(session_id: str) -> str:
        return f'session-index:{session_id}'

    @staticmethod
    def _profile_key(user_id: str) -> str:
        return f'user-profile:{user_id}'

    @staticmethod
    def _index_key(user_id: str) -> str:
        return f'semantic-index:{user_id}'

    @staticmethod
    def _record_key(record_id: str) -> str:
        return f'semantic-record:{record_id}'

    @staticmethod
    def _owner_key(session_id: str) -> str:
        return f'session-owner:{session_id}'

    def _now(self) -> datetime:
        return utc_now(self._clock())

    # ---- Store access that degrades instead of raising ----
    def _fetch(self, key: str) -> Tuple[bool, Optional[str]]:
        """(reachable, raw value); reachable is False when the store failed."""
        try:
            return True, self.store.get(key)
        except Exception as e:
            logger.warning(f'Store read failed for {key}: {e}')
            return False, None

    def _store_get(self, key: str) -> Optional[str]:
        return self._fetch(key)[1]

    def _store_put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        try:
            self.store.put(key, value, ttl_seconds)
            return True
        except Exception as e:
            logger.warning(f'Store write failed for {key}: {e}')
            return False

    def _store_delete(self, key: str) -> bool:
        try:
            self.store.delete(key)
            return True
        except Exception as e:
            logger.warning(f'Store delete failed for {key}: {e}')
            return False

    def _load(self, key: str) -> Any:
        return load_json(self._store_get(key), key)

    # ---- Session <-> user linkage ----
    def link_session_to_user(self, session_id: str, user_id: str) -> bool:
        """Record which durable identity owns a session.

        Returns:
            True if the link was stored; False for guests or on store failure
        """
        require_identity(session_id, 'link_session_to_user')
        require_identity(user_id, 'link_session_to_user')
        if not is_durable(user_id):
            logger.debug('Skipping session link for guest user')
            return False
        return self._store_put(self._owner_key(session_id), user_id)

    def get_user_id_for_session(self, session_id: str) -> Optional[str]:
        if not isinstance(session_id, str) or not session_id.strip():
            return None
        return self._store_get(self._owner_key(session_id))

    # ---- User profile / facts ----
    def _fetch_profile(self, user_id: str) -> Optional[UserProfile]:
        """Cached or stored profile; None only when the store is unreachable."""
        cached = self.cache.profiles.get(user_id)
        if cached is None:
            key = self._profile_key(user_id)
            reachable, raw = self._fetch(key)
            if not reachable:
                return None
            cached = UserProfile.from_dict(load_json(raw, key))
            self.cache.profiles.put(user_id, cached)

        # Hand out a copy so callers cannot mutate the cached profile
        return UserProfile.from_dict(cached.to_dict())

    def get_user_profile(self, user_id: str) -> UserProfile:
        """Profile for a durable identity; guests always get the empty default."""
        if not is_durable(user_id):
            return UserProfile()
        return self._fetch_profile(user_id) or UserProfile()

    def _writable_profile(self, user_id: str) -> Optional[UserProfile]:
        """Profile to build a write on, or None if writing is not allowed.

        An unreachable store yields None rather than a default profile, so a
        transient outage cannot overwrite stored facts or clear an opt-out.
        """
        profile = self._fetch_profile(user_id)
        if profile is None:
            logger.warning(f'Profile unavailable for user {user_id}; skipping write')
            return None
        if profile.opt_out_memory:
            logger.debug(f'User {user_id} opted out of memory')
            return None
        return profile

    def save_user_profile(self, user_id: str, profile: UserProfile) -> bool:
        require_identity(user_id, 'save_user_profile')
        if not is_durable(user_id):
            logger.debug('Skipping profile save for guest user')
            return False

        if not self._store_put(self._profile_key(user_id), dump_json(profile.to_dict()), self._record_ttl):
            self.cache.profiles.invalidate(user_id)
            return False
        self.cache.profiles.put(user_id, UserProfile.from_dict(profile.to_dict()))
        return True

    def _save_profile_entry(self, user_id: str, memory_type: MemoryType, name: str, value: str,
                            priority: Union[Priority, int]) -> Optional[str]:
        profile = self._writable_profile(user_id)
        if profile is None:
            return None

        if memory_type is MemoryType.PREFERENCE:
            profile.preferences[name] = value
            metadata = {'kind': 'preference', 'preference': name, 'user_id': user_id}
        else:
            profile.key_facts[name] = value
            metadata = {'kind': 'fact', 'fact_type': name, 'user_id': user_id}
        self.save_user_profile(user_id, profile)

        record = create_record(f'{name}: {value}', memory_type, priority, metadata, user_id=user_id, now=self._now())
        return record.id if self._persist_record(record) else None

    def save_user_fact(self, user_id: str, fact_type: str, value: str,
                       priority: Union[Priority, int] = Priority.MEDIUM) -> Optional[str]:
        """Store a key fact in the profile and as a long-term record.

        Args:
            user_id: Durable identity
            fact_type: Fact name, e.g. 'name' or 'location' (last write wins)
            value: Fact value
            priority: Retention priority of the fact record

        Returns:
            New record id, or None for guests, opted-out users, duplicates
            and store failures

        Raises:
            InvalidIdentityError: If user_id is missing or not a string
        """
        require_identity(user_id, 'save_user_fact')
        if not is_durable(user_id):
            logger.debug('Skipping user fact save for guest user')
            return None
        return self._save_profile_entry(user_id, MemoryType.FACT, fact_type, value, priority)

    def save_user_preference(self, user_id: str, preference: str, value: str,
                             priority: Union[Priority, int] = Priority.MEDIUM) -> Optional[str]:
        """Store a preference (e.g. response_style) in the profile and as a preference record.

        Returns:
            New record id, or None for guests, opted-out users, duplicates
            and store failures
        """
        require_identity(user_id, 'save_user_preference')
        if not is_durable(user_id):
            logger.debug('Skipping preference save for guest user')
            return None
        return self._save_profile_entry(user_id, MemoryType.PREFERENCE, preference, value, priority)

    def set_opt_out(self, user_id: str, opt_out: bool) -> bool:
        """Set the memory opt-out flag; returns the stored flag (False for guests)."""
        require_identity(user_id, 'set_opt_out')
        if not is_durable(user_id):
            return False

        profile = self._fetch_profile(user_id)
        if profile is None:
            return False

        profile.opt_out_memory = bool(opt_out)
        if not self.save_user_profile(user_id, profile):
            return False
        return profile.opt_out_memory

    def capture_facts(self, user_id: str, message: str) -> Dict[str, str]:
        """Extract key facts and preferences from a user message and save them.

        Returns:
            Mapping of saved fact or preference name to value (empty for
            guests and opted-out users)
        """
        require_identity(user_id, 'capture_facts')
        if not is_durable(user_id) or self._writable_profile(user_id) is None:
            return {}

        saved = {}
        for fact in self.fact_extraction.extract_key_facts(message):
            self.save_user_fact(user_id, fact.type, fact.value, fact.priority)
            saved[fact.type] = fact.value
        for preference in self.fact_extraction.extract_preferences(message):
            self.save_user_preference(user_id, preference.type, preference.value, preference.priority)
            saved[preference.type] = preference.value

        if saved:
            logger.debug(f'Captured facts {sorted(saved)} for user {user_id}')
        return saved

    # ---- Semantic index ----
    def _fetch_semantic_index(self, user_id: str) -> Optional[List[str]]:
        """Record ids oldest first; None only when the store is unreachable."""
        if not is_durable(user_id):
            return []

        cached = self.cache.semantic_indexes.get(user_id)
        if cached is not None:
            return list(cached)

        key = self._index_key(user_id)
        reachable, raw = self._fetch(key)
        if not reachable:
            return None

        data = load_json(raw, key)
        if not isinstance(data, list):
            data = []
        ids = [item for item in data if isinstance(item, str)]
        self.cache.semantic_indexes.put(user_id, tuple(ids))
        return ids

    def _read_semantic_index(self, user_id: str) -> List[str]:
        return self._fetch_semantic_index(user_id) or []

    def _write_semantic_index(self, user_id: str, ids: Sequence[str]) -> bool:
        """Persist the index, trimmed from the front to the newest ids.

        List order is recency order: appends go to the end and trimming drops
        the oldest ids.
        """
        if not is_durable(user_id):
            return False

        trimmed = list(ids)[-self.settings.index_capacity:] if self.settings.index_capacity > 0 else []
        if not self._store_put(self._index_key(user_id), dump_json(trimmed), self._record_ttl):
            self.cache.semantic_indexes.invalidate(user_id)
            return False
        self.cache.semantic_indexes.put(user_id, tuple(trimmed))
        return True

    # ---- Records ----
    def _load_record(self, record_id: str) -> Optional[Record]:
        key = self._record_key(record_id)
        data = self._load(key)
        if data is None:
            return None
        try:
            return Record.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f'Malformed record under {key}: {e}')
            return None

    def _load_records(self, user_id: str) -> List[Record]:
        """Bodies for every indexed id; expired or unreadable ones are skipped."""
        records = []
        for record_id in self._read_semantic_index(user_id):
            record = self._load_record(record_id)
            if record is not None:
                records.append(record)
        return records

    def _save_record(self, record: Record) -> bool:
        return self._store_put(self._record_key(record.id), dump_json(record.to_dict()), self._record_ttl)

    def _persist_record(self, record: Record) -> bool:
        """Write a new record and append it to its owner's index.

        Content seen recently for the same identity is skipped.
        """
        user_id = record.user_id
        if self.cache.duplicates.contains(user_id, record.fingerprint):
            logger.debug(f'Skipping recent duplicate for user {user_id}')
            return False

        # Appending to an index that could not be read would overwrite it
        ids = self._fetch_semantic_index(user_id)
        if ids is None or not self._save_record(record):
            return False

        ids.append(record.id)
        if not self._write_semantic_index(user_id, ids):
            logger.warning(f'Record {record.id} stored but not indexed')

        self.cache.duplicates.remember(user_id, record.fingerprint)
        self.cache.invalidate_recalls(user_id)
        logger.debug(f'Stored {record.type.value} record {record.id}')
        return True

    # ---- Turns, sessions and episodic summaries ----
    def get_session_history(self, session_id: str) -> List[Dict[str, Any]]:
        """Stored recent turns of a session, oldest first."""
        return list(self._read_session(session_id).get('turns', []))

    def _read_session(self, session_id: str) -> Dict[str, Any]:
        data = self._load(self._session_key(session_id)) if session_id else None
        if not isinstance(data, dict) or not isinstance(data.get('turns'), list):
            return {'turns': [], 'turn_count': 0}
        data.setdefault('turn_count', len(data['turns']))
        return data

    def _append_session_turn(self, session_id: str, role: str, content: str) -> Dict[str, Any]:
        session = self._read_session(session_id)
        session['turns'].append({'role': role, 'content': content, 'timestamp': to_iso(self._now())})
        session['turns'] = session['turns'][-self.settings.session_history_limit:]
        session['turn_count'] = int(session.get('turn_count', 0)) + 1
        self._store_put(self._session_key(session_id), dump_json(session), self._session_ttl)
        return session

    def _drop_session_turn(self, session_id: str, role: Optional[str], content: str) -> bool:
        """Remove the newest matching turn so later checkpoints cannot restore it."""
        session = self._read_session(session_id)
        turns = session['turns']
        for position in range(len(turns) - 1, -1, -1):
            turn = turns[position]
            if turn.get('content') == content and turn.get('role') == role:
                del turns[position]
                session['turn_count'] = max(0, int(session.get('turn_count', 0)) - 1)
                return self._store_put(self._session_key(session_id), dump_json(session), self._session_ttl)
        return False

    def record_turn(self, user_id: str, session_id: str, role: str, content: str,
                    priority: Union[Priority, int] = Priority.MEDIUM) -> Optional[str]:
        """Record one conversation turn for a durable identity.

        The turn is appended to the session history and stored as a context
        record. Every checkpoint_threshold turns of a session an episodic
        summary is created automatically.

        Returns:
            New record id, or None for guests, opted-out users, empty content,
            duplicates and store failures

        Raises:
            InvalidIdentityError: If user_id is missing or not a string
        """
        require_identity(user_id, 'record_turn')
        if not is_durable(user_id):
            logger.debug('Skipping turn recording for guest user')
            return None

        if not content or not content.strip() or self._writable_profile(user_id) is None:
            return None

        session = self._append_session_turn(session_id, role, content) if session_id else None

        record = create_record(content,
                               MemoryType.CONTEXT,
                               priority,
                               {'kind': 'message', 'role': role, 'session_id': session_id, 'user_id': user_id},
                               user_id=user_id,
                               now=self._now())
        record_id = record.id if self._persist_record(record) else None

        threshold = self.settings.checkpoint_threshold
        if session is not None and threshold > 0 and session['turn_count'] % threshold == 0:
            self.create_checkpoint(user_id, session_id, session['turns'])

        return record_id

    def add_episodic_summary(self, user_id: str, session_id: str, summary_text: str) -> Optional[str]:
        """Store an episodic summary of a session; returns its id or None."""
        require_identity(user_id, 'add_episodic_summary')
        if not is_durable(user_id):
            logger.debug('Skipping episodic summary for guest user')
            return None

        if not summary_text or not summary_text.strip() or self._writable_profile(user_id) is None:
            return None

        record = create_record(summary_text,
                               MemoryType.EPISODIC_SUMMARY,
                               Priority.MEDIUM,
                               {'kind': 'episodic', 'session_id': session_id, 'episodic': True, 'user_id': user_id},
                               user_id=user_id,
                               now=self._now())
        return record.id if self._persist_record(record) else None

    def create_checkpoint(self, user_id: str, session_id: str, history: Sequence[Dict[str, Any]]) -> Optional[str]:
        """Summarize a long enough conversation and prune old summaries.

        Returns:
            Id of the new episodic summary, or None if nothing was stored
        """
        require_identity(user_id, 'create_checkpoint')
        if not is_durable(user_id):
            logger.debug('Skipping memory checkpoint for guest user')
            return None

        if len(history) < self.settings.checkpoint_threshold:
            return None

        summary = lifecycle.build_checkpoint_summary(history)
        summary_id = self.add_episodic_summary(user_id, session_id, summary)
        if summary_id:
            logger.info(f'Created checkpoint {summary_id} for session {session_id}')
            self._prune_summaries(user_id)
        return summary_id

    def _prune_summaries(self, user_id: str) -> int:
        doomed = lifecycle.select_summaries_to_prune(self._load_records(user_id), self.settings.summary_cap)
        if not doomed:
            return 0
        self._remove_records(user_id, [record.id for record in doomed])
        logger.info(f'Pruned {len(doomed)} old episodic summaries for user {user_id}')
        return len(doomed)

    def _remove_records(self, user_id: str, record_ids: Sequence[str]) -> None:
        doomed = set(record_ids)
        ids = self._fetch_semantic_index(user_id)
        if ids is None:
            return
        for record_id in doomed:
            self._store_delete(self._record_key(record_id))
        self._write_semantic_index(user_id, [record_id for record_id in ids if record_id not in doomed])
        self.cache.invalidate_recalls(user_id)

    # ---- Hybrid recall ----
    def recall(self,
               user_id: str,
               session_history: Optional[Sequence[Dict[str, Any]]],
               query: str,
               last_n: Optional[int] = None,
               top_k: Optional[int] = None) -> RecallResult:
        """Blend the recent-turn window with similar long-term records.

        Args:
            user_id: Caller identity; guests get no long-term recall
            session_history: Current conversation, oldest first
            query: Text to match against stored records
            last_n: Size of the short-term window (config default if None)
            top_k: Maximum number of similar records (config default if None)

        Returns:
            RecallResult(short_term, similar); never raises on store failures
        """
        last_n = self.settings.last_n_turns if last_n is None else last_n
        top_k = self.settings.top_k if top_k is None else top_k

        history = list(session_history or [])
        short_term = history[-last_n:] if last_n > 0 else []

        if not is_durable(user_id):
            return RecallResult(short_term=short_term, similar=[])

        cache_key = (user_id, normalize_text(query or ''), top_k)
        cached = self.cache.recalls.get(cache_key)
        if cached is not None:
            # Cache hits are retrievals too
            self._track_access(cached)
            return RecallResult(short_term=short_term, similar=list(cached))

        similar = self._rank_similar(user_id, query or '', top_k)
        self.cache.recalls.put(cache_key, tuple(similar))
        return RecallResult(short_term=short_term, similar=similar)

    def _rank_similar(self, user_id: str, query: str, top_k: int) -> List[Record]:
        query_vector = embed(query)
        if not query_vector or top_k <= 0:
            return []

        scored = []
        for record in self._load_records(user_id):
            score = cosine_similarity(query_vector, record.embedding or embed(record.content))
            if score > 0:
                scored.append((score, record))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        similar = [record for _, record in scored[:top_k]]
        self._track_access(similar)

        logger.debug(f'Recall matched {len(scored)} records for user {user_id}, returning {len(similar)}')
        return similar

    def _track_access(self, records: Sequence[Record]) -> None:
        now = self._now()
        for record in records:
            record.touch(now)
            self._save_record(record)

    def search_facts(self, user_id: str, query: str, limit: int = 5) -> List[Record]:
        """Facts and preferences ranked by tf-idf x priority x recency.

        Large candidate sets are first pruned to the clusters related to the
        query.
        """
        if not is_durable(user_id):
            return []

        candidates = [record for record in self._load_records(user_id)
                      if record.type in (MemoryType.FACT, MemoryType.PREFERENCE)]
        ranked = [record for record, score in rank_with_clusters(query, candidates, self._now(), limit) if score > 0]
        results = ranked[:limit]
        self._track_access(results)
        return results

    # ---- Forget ----
    def forget_last(self, user_id: str) -> bool:
        """Delete the most recently indexed record.

        Returns:
            True if a record was removed; False for guests or an empty index
        """
        require_identity(user_id, 'forget_last')
        if not is_durable(user_id):
            logger.debug('Skipping forget last for guest user')
            return False

        ids = self._fetch_semantic_index(user_id)
        if not ids:
            return False

        last_id = ids.pop()
        record = self._load_record(last_id)
        self._store_delete(self._record_key(last_id))
        self._write_semantic_index(user_id, ids)

        if record is not None:
            self.cache.duplicates.discard(user_id, record.fingerprint)
            if record.metadata.get('kind') == 'message' and record.metadata.get('session_id'):
                self._drop_session_turn(record.metadata['session_id'], record.metadata.get('role'), record.content)
        self.cache.invalidate_recalls(user_id)
        logger.info(f'Forgot record {last_id} for user {user_id}')
        return True

    def delete_all_user_memories(self, user_id: str) -> bool:
        """Remove every record, the index, the profile and the session histories of a user.

        Returns:
            True if every delete succeeded (always True for guests, who have
            nothing stored)
        """
        require_identity(user_id, 'delete_all_user_memories')
        if not is_durable(user_id):
            logger.debug('No memories to delete for guest user')
            return True

        # Session histories would otherwise feed deleted turns into the next checkpoint
        session_ids = {record.metadata.get('session_id') for record in self._load_records(user_id)}
        session_ids.discard(None)
        session_ids.discard('')

        ok = True
        for record_id in self._read_semantic_index(user_id):
            ok = self._store_delete(self._record_key(record_id)) and ok
        for session_id in sorted(session_ids):
            ok = self._store_delete(self._session_key(session_id)) and ok
            if self.get_user_id_for_session(session_id) == user_id:
                ok = self._store_delete(self._owner_key(session_id)) and ok
        ok = self._store_delete(self._index_key(user_id)) and ok
        ok = self._store_delete(self._profile_key(user_id)) and ok

        self.cache.invalidate_user(user_id)
        if ok:
            logger.info(f'All memories deleted for user {user_id}')
        else:
            logger.error(f'Some memories could not be deleted for user {user_id}')
        return ok

    # ---- Maintenance ----
    def apply_decay(self, user_id: str, now: Optional[datetime] = None, purge: bool = False) -> List[Record]:
        """Active records after priority-based decay.

        Args:
            user_id: Durable identity
            now: Reference time (current time if None)
            purge: Also delete decayed records and drop them from the index

        Returns:
            Records still inside their retention horizon
        """
        if purge:
            require_identity(user_id, 'apply_decay')
        if not is_durable(user_id):
            return []

        records = self._load_records(user_id)
        active = lifecycle.apply_decay(records, now or self._now(), self._horizons)

        if purge:
            active_ids = {record.id for record in active}
            decayed = [record.id for record in records if record.id not in active_ids]
            if decayed:
                self._remove_records(user_id, decayed)
                logger.info(f'Purged {len(decayed)} decayed records for user {user_id}')
        return active

    def consolidate_memories(self, user_id: str) -> int:
        """Merge near-duplicate records in storage.

        The most valuable record of each group (priority x recency boost)
        survives and absorbs the rest. Safe to re-run: a second pass finds
        nothing to merge.

        Returns:
            Number of records absorbed into others
        """
        require_identity(user_id, 'consolidate_memories')
        if not is_durable(user_id):
            return 0

        now = self._now()
        records = self._load_records(user_id)
        records.sort(key=lambda record: int(record.priority) * recency_boost(record.last_accessed, now), reverse=True)

        merged = lifecycle.consolidate(records, self.settings.consolidation_threshold)
        surviving_ids = {record.id for record in merged}
        absorbed = [record.id for record in records if record.id not in surviving_ids]
        if not absorbed:
            return 0

        originals = {record.id: record for record in records}
        for record in merged:
            if record.merged_from != originals[record.id].merged_from:
                self._save_record(record)

        self._remove_records(user_id, absorbed)
        logger.info(f'Consolidated {len(absorbed)} records for user {user_id}')
        return len(absorbed)
