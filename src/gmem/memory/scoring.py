"""Deterministic relevance scoring.

Per query token:
    +5  per case-insensitive occurrence in the text
    +8  if a tag equals the token
    +6  if an extracted keyword equals the token
Then once per record a recency bonus of 0-5, decaying linearly over 150 days.

The recency bonus is added after the token loop, so any active record scores
above zero for a non-empty query as long as it was touched in the last 150
days, whether or not a token matched.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import datetime

from gmem.memory.record import MemoryRecord, SearchHit
from gmem.memory.timestamp import now, parse_iso

logger = logging.getLogger(__name__)

TEXT_HIT = 5.0
TAG_HIT = 8.0
KEYWORD_HIT = 6.0
RECENCY_MAX = 5.0
RECENCY_WINDOW_DAYS = 30.0

_SECONDS_PER_DAY = 86400.0


def recency_bonus(record: MemoryRecord, at: datetime | None = None) -> float:
    stamp = parse_iso(record.updated_at) or parse_iso(record.created_at)
    if stamp is None:
        logger.debug("Record %s has no parsable timestamp", record.id)
        return 0.0
    days = abs(((at or now()) - stamp).total_seconds()) / _SECONDS_PER_DAY
    return max(0.0, RECENCY_MAX - min(days / RECENCY_WINDOW_DAYS, RECENCY_MAX))


def score_record(record: MemoryRecord, query: str, at: datetime | None = None) -> float:
    """Relevance of ``record`` to ``query``; 0 for an empty query."""
    q = query.strip().lower()
    if not q:
        return 0.0

    text = record.text.lower()
    tags = [t.lower() for t in record.tags]
    score = 0.0

    for token in q.split():
        score += len(re.findall(re.escape(token), text, flags=re.IGNORECASE)) * TEXT_HIT
        if token in tags:
            score += TAG_HIT
        if token in record.keywords:
            score += KEYWORD_HIT

    score += recency_bonus(record, at)
    return score


def rank_records(
    records: Iterable[MemoryRecord],
    query: str,
    limit: int = 10,
    at: datetime | None = None,
) -> list[SearchHit]:
    """Score active records, drop non-positive scores, best first, cut to ``max(1, limit)``."""
    hits: list[SearchHit] = []
    for record in records:
        if record.is_deleted:
            continue
        score = score_record(record, query, at)
        if score <= 0:
            continue
        hits.append(SearchHit.from_record(record, score))

    hits.sort(key=lambda h: h.score, reverse=True)
    return hits[: max(1, limit)]
