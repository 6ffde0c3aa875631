"""
Priority-weighted TF-IDF retrieval over a pre-fetched candidate set.

Used for fact lookups and for ordering maintenance work. Whole-index recall
uses plain cosine similarity instead (see indexer.py).
"""

import math
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..models.core import Record
from ..utils.timestamp_utils import days_between, utc_now
from .indexer import tokenize
from .lifecycle import cluster_records, relevant_clusters

RECENCY_FLOOR = 0.5
RECENCY_CEILING = 1.5
RECENCY_WINDOW_DAYS = 30.0

# Candidate count from which ranking first prunes to related clusters
CLUSTERING_MIN_CANDIDATES = 10


def recency_boost(last_accessed: datetime, now: Optional[datetime] = None) -> float:
    """Multiplier in [0.5, 1.5] that shrinks as a record goes unused."""
    now = now or utc_now()
    days = max(0.0, days_between(last_accessed, now))
    return max(RECENCY_FLOOR, RECENCY_CEILING - days / RECENCY_WINDOW_DAYS)


def document_frequencies(token_lists: Iterable[Sequence[str]]) -> Dict[str, int]:
    """Number of candidates containing each term."""
    frequencies: Dict[str, int] = {}
    for tokens in token_lists:
        for term in set(tokens):
            frequencies[term] = frequencies.get(term, 0) + 1
    return frequencies


def tfidf_score(query_terms: Sequence[str], record_terms: Sequence[str], frequencies: Dict[str, int], total: int) -> float:
    """Sum of tf * idf over the query terms.

    idf is smoothed, ln((1 + N) / (1 + df)) + 1, so it stays positive even
    when every candidate contains the term.
    """
    if not query_terms or not record_terms:
        return 0.0

    length = len(record_terms)
    score = 0.0
    for term in query_terms:
        count = record_terms.count(term)
        if not count:
            continue
        idf = math.log((1 + total) / (1 + frequencies.get(term, 0))) + 1
        score += (count / length) * idf
    return score


def score_records(query: str, records: Sequence[Record], now: Optional[datetime] = None) -> List[Tuple[Record, float]]:
    """Score candidates by tf-idf x priority x recency boost.

    Args:
        query: Free-text query
        records: Candidate records
        now: Reference time for the recency boost

    Returns:
        (record, score) pairs, best first; ties go to higher priority, then
        to the more recently accessed record
    """
    if not records:
        return []

    now = now or utc_now()
    query_terms = tokenize(query)
    record_terms = [tokenize(record.content) for record in records]
    frequencies = document_frequencies(record_terms)
    total = len(records)

    scored = []
    for record, terms in zip(records, record_terms):
        base = tfidf_score(query_terms, terms, frequencies, total)
        score = base * int(record.priority) * recency_boost(record.last_accessed, now)
        scored.append((record, score))

    scored.sort(key=lambda pair: (pair[1], int(pair[0].priority), pair[0].last_accessed), reverse=True)
    return scored


def score_by_relevance(query: str, records: Sequence[Record], now: Optional[datetime] = None,
                       limit: Optional[int] = None) -> List[Record]:
    """Records ordered by combined relevance score."""
    ranked = [record for record, _ in score_records(query, records, now)]
    return ranked[:limit] if limit is not None else ranked


def rank_with_clusters(query: str, records: Sequence[Record], now: Optional[datetime] = None,
                       limit: int = 5, min_candidates: int = CLUSTERING_MIN_CANDIDATES) -> List[Tuple[Record, float]]:
    """Score candidates, pruning large sets to the clusters related to the query.

    Below min_candidates this is score_records. Otherwise records are
    clustered, each relevant cluster contributes its best ceil(limit / n)
    records scored within the cluster, and the pooled picks are ranked
    again. When no cluster is relevant the flat ranking is used.

    Returns:
        Up to limit (record, score) pairs, best first
    """
    if len(records) < min_candidates:
        return score_records(query, records, now)[:limit]

    clusters = relevant_clusters(cluster_records(records), query)
    if not clusters:
        return score_records(query, records, now)[:limit]

    per_cluster = math.ceil(limit / len(clusters))
    picks = []
    for cluster, _ in clusters:
        picks.extend(score_records(query, cluster.records, now)[:per_cluster])

    picks.sort(key=lambda pair: (pair[1], int(pair[0].priority), pair[0].last_accessed), reverse=True)
    return picks[:limit]
