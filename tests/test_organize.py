"""Tests for the category organizer."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gmem.config import LEGACY_FILENAME, GmemConfig, category_file
from gmem.memory.organize import infer_tags, load_all_records, organize, store_files
from gmem.memory.record import MemoryRecord
from gmem.errors import LockTimeoutError
from gmem.memory.lock import LockKind
from gmem.memory.store import MemoryStore, atomic_write


def _rec(id, text, tags=(), deleted_at=None):
    return MemoryRecord(id, text, list(tags), [], "2025-01-01T00:00:00.000+08:00",
                        "2025-01-01T00:00:00.000+08:00", deleted_at)


@pytest.fixture
def config(tmp_path: Path) -> GmemConfig:
    return GmemConfig(memory_path=str(tmp_path))


def _texts(path: Path) -> list[str]:
    return [r.text for r in MemoryStore(path).load()]


class TestInferTags:
    def test_adds_hint_tags(self):
        rec = infer_tags(_rec("m_1", "项目规则: Rust workflow", ["x"]))
        assert rec.tags == ["x", "rules", "rust", "workflow"]

    def test_does_not_duplicate_or_mutate(self):
        original = _rec("m_1", "rust notes", ["rust"])
        updated = infer_tags(original)
        assert updated.tags == ["rust"]
        assert updated is not original
        assert updated.updated_at == original.updated_at

    def test_refreshes_updated_at_when_tags_added(self):
        original = _rec("m_1", "团队规则")
        updated = infer_tags(original)
        assert updated.tags == ["rules"]
        assert updated.updated_at != original.updated_at
        assert updated.created_at == original.created_at


class TestLoadAll:
    def test_first_copy_wins_and_corrupt_skipped(self, tmp_path: Path):
        atomic_write(category_file(tmp_path, "git"), [_rec("m_1", "from category")])
        atomic_write(tmp_path / LEGACY_FILENAME, [_rec("m_1", "from legacy"), _rec("m_2", "only legacy")])
        category_file(tmp_path, "broken").write_text("{{{", encoding="utf-8")

        assert store_files(tmp_path)[-1].name == LEGACY_FILENAME
        records = load_all_records(tmp_path)
        assert [(r.id, r.text) for r in records] == [("m_1", "from category"), ("m_2", "only legacy")]


class TestOrganize:
    def test_groups_by_category(self, tmp_path: Path, config: GmemConfig):
        atomic_write(tmp_path / LEGACY_FILENAME, [
            _rec("m_1", "cargo build tips", ["rust"]),
            _rec("m_2", "rebase often", ["git"]),
            _rec("m_3", "团队规则 no force push"),
            _rec("m_4", "plain note"),
        ])
        counts = organize(config, tmp_path)

        assert counts == {"rust": 1, "git": 1, "rules": 1, "default": 1}
        assert _texts(category_file(tmp_path, "rust")) == ["cargo build tips"]
        assert _texts(category_file(tmp_path, "rules")) == ["团队规则 no force push"]
        assert MemoryStore(category_file(tmp_path, "rules")).load()[0].tags == ["rules"]
        assert _texts(category_file(tmp_path, "default")) == ["plain note"]

    def test_moves_records_and_empties_old_file(self, tmp_path: Path, config: GmemConfig):
        atomic_write(category_file(tmp_path, "default"), [_rec("m_1", "cargo tips", ["rust"])])
        counts = organize(config, tmp_path)

        assert counts == {"default": 0, "rust": 1}
        assert json.loads(category_file(tmp_path, "default").read_text(encoding="utf-8")) == []
        assert _texts(category_file(tmp_path, "rust")) == ["cargo tips"]

    def test_tombstones_stay_tombstoned(self, tmp_path: Path, config: GmemConfig):
        atomic_write(tmp_path / LEGACY_FILENAME, [
            _rec("m_1", "old rust trick", ["rust"], deleted_at="2025-02-01T00:00:00.000+08:00"),
        ])
        organize(config, tmp_path)
        records = MemoryStore(category_file(tmp_path, "rust")).load()
        assert len(records) == 1
        assert records[0].is_deleted
        assert records[0].tags == ["rust"]

    def test_idempotent(self, tmp_path: Path, config: GmemConfig):
        atomic_write(tmp_path / LEGACY_FILENAME, [_rec("m_1", "cargo tips", ["rust"])])
        first = organize(config, tmp_path)
        snapshot = category_file(tmp_path, "rust").read_bytes()
        assert organize(config, tmp_path) == first
        assert category_file(tmp_path, "rust").read_bytes() == snapshot

    def test_missing_directory(self, tmp_path: Path, config: GmemConfig):
        assert organize(config, tmp_path / "absent") == {}

    def test_no_locks_left_behind(self, tmp_path: Path, config: GmemConfig):
        atomic_write(tmp_path / LEGACY_FILENAME, [_rec("m_1", "note")])
        organize(config, tmp_path)
        assert list(tmp_path.glob("*.lock")) == []

    def test_corrupt_file_left_untouched(self, tmp_path: Path, config: GmemConfig):
        broken = category_file(tmp_path, "rust")
        broken.write_text("[{\"id\": \"m_9\", \"text\": \"half written", encoding="utf-8")
        before = broken.read_bytes()
        atomic_write(category_file(tmp_path, "default"), [_rec("m_1", "cargo tips", ["rust"])])

        counts = organize(config, tmp_path)

        assert broken.read_bytes() == before
        assert "rust" not in counts
        assert counts == {"default": 1}
        assert _texts(category_file(tmp_path, "default")) == ["cargo tips"]

    def test_legacy_file_is_drained(self, tmp_path: Path, config: GmemConfig):
        legacy = tmp_path / LEGACY_FILENAME
        atomic_write(legacy, [_rec("m_1", "cargo tips", ["rust"])])
        organize(config, tmp_path)
        assert MemoryStore(legacy).load() == []

        assert MemoryStore(category_file(tmp_path, "rust")).purge(id="m_1") == 1
        organize(config, tmp_path)

        assert load_all_records(tmp_path) == []

    def test_holds_cli_lock_while_writing(self, tmp_path: Path, config: GmemConfig, monkeypatch):
        atomic_write(category_file(tmp_path, "default"), [_rec("m_1", "plain note")])
        blocked: list[Exception] = []
        real_write = atomic_write

        def write_while_adding(path, records):
            try:
                MemoryStore(category_file(tmp_path, "default"), LockKind.CLI, lock_timeout_ms=50).add("racing add")
            except LockTimeoutError as e:
                blocked.append(e)
            real_write(path, records)

        monkeypatch.setattr("gmem.memory.organize.atomic_write", write_while_adding)
        organize(config, tmp_path)

        assert blocked
        assert _texts(category_file(tmp_path, "default")) == ["plain note"]
