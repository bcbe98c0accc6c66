"""Lexical similarity for beliefs, questions and thoughts."""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable

_WORD = re.compile(r"\w+", re.UNICODE)

STOPWORDS = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "any", "can",
    "her", "was", "one", "our", "out", "has", "have", "had", "his", "how",
    "its", "may", "who", "why", "what", "when", "where", "which", "with",
    "that", "this", "these", "those", "from", "into", "than", "then",
    "there", "their", "they", "them", "does", "did", "doing", "been",
    "being", "were", "will", "would", "should", "could", "about", "itself",
})


def content_words(text: str) -> list[str]:
    """Lowercased words of three or more characters, stopwords removed, in order."""
    return [
        word for word in _WORD.findall((text or "").lower())
        if len(word) > 2 and word not in STOPWORDS
    ]


def tokenize(text: str) -> set[str]:
    return set(content_words(text))


def jaccard(a: set[str], b: set[str]) -> float:
    """Jaccard similarity of two token sets; 0.0 when both are empty."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def text_similarity(a: str, b: str) -> float:
    return jaccard(tokenize(a), tokenize(b))


def top_keywords(texts: Iterable[str], limit: int = 3) -> list[str]:
    """Most frequent content words across texts, counted once per text."""
    counts: Counter[str] = Counter()
    for text in texts:
        counts.update(dict.fromkeys(content_words(text), 1))
    return [word for word, _ in counts.most_common(limit)]
