"""Keyword extraction for the search index."""

from __future__ import annotations

import re
from collections import Counter

MAX_KEYWORDS = 10

_WORD_RE = re.compile(r"[a-z0-9]+")

# Common English words with no value for relevance scoring
STOP_WORDS = frozenset({
    "i", "me", "my", "we", "our", "you", "your", "he", "she", "it", "they", "them",
    "a", "an", "the", "this", "that", "these", "those",
    "is", "am", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "can", "may", "might", "must", "shall",
    "and", "or", "but", "if", "then", "else", "when", "where", "why", "how",
    "all", "each", "every", "both", "few", "more", "most", "some", "any", "no",
    "not", "only", "own", "same", "so", "than", "too", "very",
    "just", "also", "now", "here", "there", "about", "after", "before",
    "to", "from", "up", "down", "in", "out", "on", "off", "over", "under",
    "with", "without", "for", "of", "at", "by", "as", "into", "through",
    "like", "want", "use", "using", "used", "prefer", "always", "never",
})


def extract_keywords(text: str) -> list[str]:
    """Return up to 10 keywords from ``text``, most frequent first.

    Ties keep first-seen order.
    """
    words = [
        w for w in _WORD_RE.findall(text.lower())
        if len(w) > 2 and w not in STOP_WORDS
    ]
    freq = Counter(words)
    ranked = sorted(freq.items(), key=lambda item: item[1], reverse=True)
    return [word for word, _ in ranked[:MAX_KEYWORDS]]
