"""
Memory lifecycle: priority-based decay, near-duplicate consolidation,
clustering of related records and checkpoint summaries.

These are pure functions over record lists. The engine exposes them as
explicit maintenance entry points; nothing schedules them automatically.
Every pass is idempotent: re-running it on its own output changes nothing.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..models.core import MemoryType, Priority, Record
from ..utils.logging_config import get_logger
from ..utils.timestamp_utils import ensure_utc, utc_now
from .indexer import tokenize

logger = get_logger(__name__)

CONSOLIDATION_THRESHOLD = 0.5


def retention_horizons(high_weeks: float = 4, medium_weeks: float = 2, low_weeks: float = 1) -> Dict[Priority, timedelta]:
    return {
        Priority.HIGH: timedelta(weeks=high_weeks),
        Priority.MEDIUM: timedelta(weeks=medium_weeks),
        Priority.LOW: timedelta(weeks=low_weeks),
    }


DEFAULT_HORIZONS = retention_horizons()


def apply_decay(records: Sequence[Record], now: Optional[datetime] = None,
                horizons: Optional[Mapping[Priority, timedelta]] = None) -> List[Record]:
    """Keep only records younger than their priority's retention horizon.

    Age is measured from created_at. The stored bytes are not touched; callers
    decide whether decayed records are purged.
    """
    now = ensure_utc(now) if now else utc_now()
    horizons = horizons or DEFAULT_HORIZONS

    kept = []
    for record in records:
        horizon = horizons.get(record.priority, horizons[Priority.LOW])
        if now - record.created_at < horizon:
            kept.append(record)
    return kept


def jaccard_similarity(a: str, b: str) -> float:
    """Token-set overlap of two texts."""
    words_a = set(tokenize(a))
    words_b = set(tokenize(b))
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def merge_records(group: Sequence[Record]) -> Record:
    """Fold a group of near-duplicates into its first record.

    Keeps the first record's id and content; takes the highest priority, the
    union of metadata (first value per key wins), the summed access count and
    the latest last_accessed; tracks provenance in merged_from.
    """
    primary = group[0]
    if len(group) == 1:
        return primary

    metadata: Dict[str, Any] = {}
    for record in group:
        for key, value in record.metadata.items():
            metadata.setdefault(key, value)

    merged_from: List[str] = []
    for record in group:
        for record_id in [record.id] + list(record.merged_from):
            if record_id not in merged_from:
                merged_from.append(record_id)

    return replace(primary,
                   priority=max(record.priority for record in group),
                   metadata=metadata,
                   access_count=sum(record.access_count for record in group),
                   last_accessed=max(record.last_accessed for record in group),
                   merged_from=merged_from)


def consolidate(records: Sequence[Record], threshold: float = CONSOLIDATION_THRESHOLD) -> List[Record]:
    """Merge near-duplicate records, preserving input order of survivors.

    Each not-yet-absorbed record absorbs every later record whose Jaccard
    similarity to it is above threshold. Any two survivors were compared and
    found below threshold, and survivors keep their content, so a second pass
    merges nothing.
    """
    absorbed = set()
    result = []

    for i, record in enumerate(records):
        if i in absorbed:
            continue

        group = [record]
        for j in range(i + 1, len(records)):
            if j in absorbed:
                continue
            if jaccard_similarity(record.content, records[j].content) > threshold:
                group.append(records[j])
                absorbed.add(j)

        if len(group) > 1:
            logger.debug(f'Merging {len(group)} records into {record.id}')
        result.append(merge_records(group))

    return result


def build_checkpoint_summary(history: Sequence[Mapping[str, Any]], per_role: int = 5) -> str:
    """Concatenate the latest user and assistant turns with role markers."""
    user_turns = [str(turn.get('content', '')) for turn in history if turn.get('role') == 'user'][-per_role:]
    assistant_turns = [str(turn.get('content', '')) for turn in history if turn.get('role') == 'assistant'][-per_role:]
    return f"User discussed: {'; '.join(user_turns)} | AI responded with: {'; '.join(assistant_turns)}"


def select_summaries_to_prune(records: Sequence[Record], cap: int) -> List[Record]:
    """Episodic summaries beyond the cap most recent, oldest last."""
    summaries = [record for record in records if record.type == MemoryType.EPISODIC_SUMMARY]
    summaries.sort(key=lambda record: (record.created_at, record.id), reverse=True)
    return summaries[max(0, cap):]


CLUSTER_THRESHOLD = 0.3
CLUSTER_RELEVANCE_THRESHOLD = 0.1


@dataclass
class RecordCluster:
    """Group of related records with a term-share centroid."""
    records: List[Record]
    centroid: Dict[str, float] = field(default_factory=dict)


def cluster_centroid(records: Sequence[Record]) -> Dict[str, float]:
    """Share of each term among all tokens of the records."""
    counts: Dict[str, int] = {}
    total = 0
    for record in records:
        for token in tokenize(record.content):
            counts[token] = counts.get(token, 0) + 1
            total += 1
    if not total:
        return {}
    return {term: count / total for term, count in counts.items()}


def cluster_records(records: Sequence[Record], threshold: float = CLUSTER_THRESHOLD) -> List[RecordCluster]:
    """Greedy single-pass clustering.

    Each unclustered record seeds a cluster and pulls in every later
    unclustered record whose Jaccard similarity to the seed is above
    threshold. Every record lands in exactly one cluster.
    """
    assigned = set()
    clusters = []

    for i, seed in enumerate(records):
        if i in assigned:
            continue
        assigned.add(i)

        members = [seed]
        for j in range(i + 1, len(records)):
            if j not in assigned and jaccard_similarity(seed.content, records[j].content) > threshold:
                members.append(records[j])
                assigned.add(j)

        clusters.append(RecordCluster(records=members, centroid=cluster_centroid(members)))

    return clusters


def relevant_clusters(clusters: Sequence[RecordCluster], query: str,
                      min_relevance: float = CLUSTER_RELEVANCE_THRESHOLD) -> List[Tuple[RecordCluster, float]]:
    """Clusters whose centroid mass on the query terms exceeds min_relevance, best first."""
    query_terms = set(tokenize(query))
    scored = []
    for cluster in clusters:
        relevance = sum(share for term, share in cluster.centroid.items() if term in query_terms)
        if relevance > min_relevance:
            scored.append((cluster, relevance))
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored
