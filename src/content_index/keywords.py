"""Lexical normalization shared by chunk keyword extraction and query parsing.

Chunk keywords and query tokens must come from the same function, otherwise
keyword overlap scores stop being comparable.
"""

from __future__ import annotations

import re
from collections.abc import Iterator

_TOKEN_SPLIT = re.compile(r"[\W_]+", re.UNICODE)

MIN_TOKEN_LENGTH = 2

STOP_WORDS: frozenset[str] = frozenset(
    {
        "a", "about", "above", "after", "again", "all", "also", "am", "an", "and",
        "any", "are", "as", "at", "be", "because", "been", "before", "being", "below",
        "between", "both", "but", "by", "can", "could", "did", "do", "does", "doing",
        "down", "during", "each", "few", "for", "from", "further", "had", "has", "have",
        "having", "he", "her", "here", "hers", "him", "his", "how", "if", "in", "into",
        "is", "it", "its", "itself", "just", "me", "more", "most", "my", "no", "nor",
        "not", "now", "of", "off", "on", "once", "only", "or", "other", "our", "ours",
        "out", "over", "own", "same", "she", "should", "so", "some", "such", "than",
        "that", "the", "their", "theirs", "them", "then", "there", "these", "they",
        "this", "those", "through", "to", "too", "under", "until", "up", "us", "very",
        "was", "we", "were", "what", "when", "where", "which", "while", "who", "whom",
        "why", "will", "with", "would", "you", "your", "yours",
    }
)  # fmt: skip


def iter_terms(text: str) -> Iterator[str]:
    """Yield normalized terms in order, repeats included.

    Lowercases, splits on non-word characters, drops terms shorter than
    MIN_TOKEN_LENGTH and stop words.
    """
    for raw in _TOKEN_SPLIT.split(text.lower()):
        if len(raw) >= MIN_TOKEN_LENGTH and raw not in STOP_WORDS:
            yield raw


def tokenize(text: str) -> list[str]:
    """Split text into normalized, de-duplicated tokens (first-seen order).

    Example:
        >>> tokenize("The Model Context Protocol, and the context!")
        ['model', 'context', 'protocol']
    """
    return list(dict.fromkeys(iter_terms(text)))


def extract_keywords(text: str, title: str = "") -> list[str]:
    """Keywords for a chunk: title tokens first, then body tokens."""
    return tokenize(f"{title}\n{text}" if title else text)
