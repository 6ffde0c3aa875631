"""
Term-frequency indexing, cosine similarity and content fingerprints.

Embeddings here are sparse bag-of-words counts, not learned vectors. Scoring
one pair is O(unique terms), which is cheap enough to scan a user's whole
index on every recall.
"""

import math
import re
from typing import Dict, List, Mapping

# \w is Unicode-aware, so Arabic, Devanagari, Bengali etc. tokenize as words.
# Underscore is folded into the separators so only letters and digits remain.
_TOKEN_SPLIT = re.compile(r'[\W_]+', re.UNICODE)
_WHITESPACE = re.compile(r'\s+')

FINGERPRINT_LENGTH = 512

_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193


def tokenize(text: str) -> List[str]:
    """Case-fold and split on non-alphanumeric boundaries."""
    if not text:
        return []
    return [token for token in _TOKEN_SPLIT.split(text.casefold()) if token]


def embed(text: str) -> Dict[str, int]:
    """Sparse term -> count vector for text."""
    vector: Dict[str, int] = {}
    for token in tokenize(text):
        vector[token] = vector.get(token, 0) + 1
    return vector


def cosine_similarity(a: Mapping[str, float], b: Mapping[str, float]) -> float:
    """Cosine similarity of two sparse vectors, in [0, 1].

    Returns 0.0 when either vector is empty.
    """
    if not a or not b:
        return 0.0

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for term in set(a) | set(b):
        va = a.get(term, 0)
        vb = b.get(term, 0)
        dot += va * vb
        norm_a += va * va
        norm_b += vb * vb

    if norm_a == 0 or norm_b == 0:
        return 0.0

    score = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    return max(0.0, min(1.0, score))


def normalize_text(text: str, limit: int = FINGERPRINT_LENGTH) -> str:
    """Lower-case, collapse whitespace and truncate."""
    return _WHITESPACE.sub(' ', (text or '').lower()).strip()[:limit]


def fnv1a_32(text: str) -> str:
    """32-bit FNV-1a hash as lowercase hex."""
    value = _FNV_OFFSET
    for byte in text.encode('utf-8'):
        value ^= byte
        value = (value * _FNV_PRIME) & 0xFFFFFFFF
    return format(value, 'x')


def fingerprint(text: str) -> str:
    """Order-independent signature of normalized content.

    Two texts that differ only in case, spacing or word order share a
    fingerprint.
    """
    words = sorted(normalize_text(text).split(' '))
    return fnv1a_32(' '.join(words))
