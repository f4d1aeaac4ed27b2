"""Tests for relevance scoring and ranking."""

from datetime import datetime

import pytest

from gmem.memory.record import MemoryRecord
from gmem.memory.scoring import (
    KEYWORD_HIT,
    TAG_HIT,
    TEXT_HIT,
    rank_records,
    recency_bonus,
    score_record,
)
from gmem.memory.timestamp import SHANGHAI

# Reference "now" for deterministic recency
AT = datetime(2026, 1, 31, tzinfo=SHANGHAI)
THIRTY_DAYS_AGO = "2026-01-01T00:00:00.000+08:00"
LONG_AGO = "2024-01-01T00:00:00.000+08:00"


def _record(text, tags=(), keywords=(), updated_at=LONG_AGO, created_at=LONG_AGO, deleted_at=None, id="m_1"):
    return MemoryRecord(
        id=id,
        text=text,
        tags=list(tags),
        keywords=list(keywords),
        created_at=created_at,
        updated_at=updated_at,
        deleted_at=deleted_at,
    )


class TestRecency:
    def test_decays_linearly(self):
        assert recency_bonus(_record("x", updated_at=THIRTY_DAYS_AGO), AT) == pytest.approx(4.0)

    def test_floor_zero(self):
        assert recency_bonus(_record("x"), AT) == 0.0

    def test_fresh_record_gets_full_bonus(self):
        assert recency_bonus(_record("x", updated_at=AT.isoformat()), AT) == pytest.approx(5.0)

    def test_falls_back_to_created_at(self):
        rec = _record("x", updated_at="garbage", created_at=THIRTY_DAYS_AGO)
        assert recency_bonus(rec, AT) == pytest.approx(4.0)

    def test_unparsable_timestamps_score_zero(self):
        assert recency_bonus(_record("x", updated_at="", created_at="nope"), AT) == 0.0


class TestScoreRecord:
    def test_concrete_scenario(self):
        rec = _record(
            "rust memory store design",
            tags=["rust", "design"],
            keywords=["rust", "memory", "store", "design"],
            updated_at=THIRTY_DAYS_AGO,
        )
        score = score_record(rec, "rust", AT)
        assert score >= 19
        assert score == pytest.approx(TEXT_HIT + TAG_HIT + KEYWORD_HIT + 4.0)

    def test_empty_query(self):
        assert score_record(_record("anything", updated_at=AT.isoformat()), "   ", AT) == 0.0

    def test_counts_every_occurrence(self):
        assert score_record(_record("rust and Rust and RUST"), "rust", AT) == pytest.approx(3 * TEXT_HIT)

    def test_tokens_accumulate(self):
        assert score_record(_record("alpha beta"), "alpha beta", AT) == pytest.approx(2 * TEXT_HIT)

    def test_tag_match_case_insensitive(self):
        assert score_record(_record("nothing here", tags=["Docker"]), "DOCKER", AT) == pytest.approx(TAG_HIT)

    def test_regex_metacharacters_are_literal(self):
        assert score_record(_record("use a.b here"), "a.b", AT) == pytest.approx(TEXT_HIT)
        assert score_record(_record("use axb here"), "a.b", AT) == 0.0


class TestRankRecords:
    def test_sorted_best_first(self):
        records = [
            _record("rust", id="m_a"),
            _record("rust rust", id="m_b"),
            _record("python", id="m_c"),
        ]
        hits = rank_records(records, "rust", at=AT)
        assert [h.id for h in hits] == ["m_b", "m_a"]
        assert hits[0].score > hits[1].score

    def test_deleted_excluded(self):
        records = [_record("rust", deleted_at=THIRTY_DAYS_AGO)]
        assert rank_records(records, "rust", at=AT) == []

    def test_empty_query_returns_nothing(self):
        records = [_record("rust", updated_at=AT.isoformat())]
        assert rank_records(records, "", at=AT) == []

    def test_limit_at_least_one(self):
        records = [_record("rust", id=f"m_{i}") for i in range(3)]
        assert len(rank_records(records, "rust", limit=0, at=AT)) == 1
        assert len(rank_records(records, "rust", limit=2, at=AT)) == 2

    def test_recent_record_surfaces_without_token_match(self):
        # Recency is added after the token loop, so a recent record with no
        # matching token still scores above zero and is returned.
        recent = _record("completely unrelated", updated_at=THIRTY_DAYS_AGO, id="m_recent")
        stale = _record("completely unrelated", id="m_stale")
        hits = rank_records([recent, stale], "kubernetes", at=AT)
        assert [h.id for h in hits] == ["m_recent"]
        assert hits[0].score == pytest.approx(4.0)

    def test_hit_carries_record_fields(self):
        rec = _record("rust tips", tags=["rust"], keywords=["rust", "tips"])
        hit = rank_records([rec], "rust", at=AT)[0]
        assert hit.text == "rust tips"
        assert hit.tags == ["rust"]
        assert hit.keywords == ["rust", "tips"]
        assert hit.created_at == LONG_AGO
