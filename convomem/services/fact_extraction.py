"""
Rule-based key-fact extraction from user messages.
"""

import re
from dataclasses import dataclass
from typing import List

from ..models.core import Priority
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

# Filler words (English and romanized Hindi/Urdu) that end a captured value
_STOP_WORDS = {
    'and', 'but', 'so', 'from', 'in', 'i', 'im', 'am', 'is', 'me', 'my', 'call', 'hello', 'hi',
    'hai', 'hain', 'ho', 'hun', 'hu', 'main', 'mera', 'mujhe', 'se', 'rehta', 'the', 'a', 'an',
}

_NAME_PATTERNS = [
    re.compile(r"\b(?:my name is|my name's|call me|mera naam|naam)\s+([^\W\d_][\w' -]*)", re.IGNORECASE),
    re.compile(r"\bname\s*:\s*([^\W\d_][\w' -]*)", re.IGNORECASE),
    # "I'm Sara." only when the word is capitalised, so "I'm tired" is not a name
    re.compile(r"\b(?:I am|I'm|i am|i'm)\s+([A-Z][\w'-]+)\s*(?:[.,!?]|$)"),
]

_LOCATION_PATTERNS = [
    re.compile(r"\b(?:i live in|i am from|i'm from|i stay in|i am living in)\s+([^\W\d_][^.!?\n]*)", re.IGNORECASE),
    re.compile(r"\b(?:location|city)\s*:\s*([^\W\d_][^.!?\n]*)", re.IGNORECASE),
]

# Checked in order; the first match wins
_RESPONSE_STYLE_PATTERNS = [
    ('detailed', re.compile(r'\b(?:detailed|in detail|explain more)\b', re.IGNORECASE)),
    ('brief', re.compile(r'\b(?:brief|briefly|short|concise)\b', re.IGNORECASE)),
]

_SCHOOL_PATTERN = re.compile(r'\b(hanafi|shafi|shafii|maliki|hanbali)\b', re.IGNORECASE)

MAX_NAME_LENGTH = 30
MAX_LOCATION_LENGTH = 50


@dataclass
class ExtractedFact:
    """A key fact found in a message."""
    type: str
    value: str
    priority: Priority


def _leading_words(value: str, max_words: int) -> str:
    words = []
    for word in value.strip().split():
        if word.lower().strip(",'") in _STOP_WORDS:
            break
        words.append(word.strip(','))
        if len(words) == max_words:
            break
    return ' '.join(words).strip()


def _extract_name(message: str) -> str:
    for pattern in _NAME_PATTERNS:
        match = pattern.search(message)
        if not match:
            continue
        name = _leading_words(match.group(1), max_words=3)
        if 1 < len(name) < MAX_NAME_LENGTH:
            return name
    return ''


def _extract_location(message: str) -> str:
    for pattern in _LOCATION_PATTERNS:
        match = pattern.search(message)
        if not match:
            continue
        location = re.sub(r'\b(?:main|hun|se|rehta)\b', '', match.group(1), flags=re.IGNORECASE)
        location = ' '.join(location.split()).strip(' ,')
        if 1 < len(location) < MAX_LOCATION_LENGTH:
            return location
    return ''


class FactExtractionService:
    """Extract durable user facts (name, location) from user messages."""

    def extract_key_facts(self, message: str) -> List[ExtractedFact]:
        """Find key facts stated in a single message.

        Args:
            message: User message text

        Returns:
            List of ExtractedFact, at most one per fact type
        """
        if not message or not message.strip():
            return []

        facts = []

        name = _extract_name(message)
        if name:
            facts.append(ExtractedFact(type='name', value=name, priority=Priority.HIGH))

        location = _extract_location(message)
        if location:
            facts.append(ExtractedFact(type='location', value=location, priority=Priority.MEDIUM))

        logger.debug(f'Extracted {len(facts)} key facts from message')
        return facts

    def extract_preferences(self, message: str) -> List[ExtractedFact]:
        """Find stated preferences: response style and school of jurisprudence.

        A message that asks for neither detail nor brevity yields no
        response_style, so an earlier stated style is not reset.
        """
        if not message or not message.strip():
            return []

        preferences = []

        for style, pattern in _RESPONSE_STYLE_PATTERNS:
            if pattern.search(message):
                preferences.append(ExtractedFact(type='response_style', value=style, priority=Priority.MEDIUM))
                break

        school = _SCHOOL_PATTERN.search(message)
        if school:
            value = school.group(1).lower()
            preferences.append(ExtractedFact(type='school', value='shafi' if value == 'shafii' else value,
                                             priority=Priority.MEDIUM))

        logger.debug(f'Extracted {len(preferences)} preferences from message')
        return preferences
