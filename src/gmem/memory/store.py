"""JSON-file record store.

The store file is the source of truth: a single JSON array of records.
Every operation reads the whole file, and every mutation rewrites it through
a temp file + rename, so a reader sees either the old or the new file and a
crash mid-write never truncates the live one.

Mutations run under the lock for this store's ``LockKind``. Reads take no
lock; a read racing a write may miss that write.
"""

from __future__ import annotations

import json
import logging
import os
from collections import Counter
from collections.abc import Iterable
from pathlib import Path

from gmem.errors import DataCorruptionError, InvalidInputError
from gmem.memory.keywords import extract_keywords
from gmem.memory.lock import (
    DEFAULT_MAX_AGE_SECONDS,
    DEFAULT_TIMEOUT_MS,
    LockKind,
    lock_path_for,
    locked,
)
from gmem.memory.record import MemoryRecord, SearchHit, StoreStats
from gmem.memory.scoring import rank_records
from gmem.memory.timestamp import make_id, now_iso

logger = logging.getLogger(__name__)


class MemoryStore:
    """Read/write access to one store file."""

    def __init__(
        self,
        path: Path,
        lock_kind: LockKind = LockKind.CLI,
        lock_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        stale_lock_seconds: float = DEFAULT_MAX_AGE_SECONDS,
    ) -> None:
        self.path = Path(path).expanduser().absolute()
        self.lock_kind = lock_kind
        self.lock_path = lock_path_for(self.path, lock_kind)
        self.lock_timeout_ms = lock_timeout_ms
        self.stale_lock_seconds = stale_lock_seconds

    def __repr__(self) -> str:
        return f"MemoryStore({str(self.path)!r}, {self.lock_kind.value})"

    def _lock(self):
        return locked(self.lock_path, self.lock_timeout_ms, self.stale_lock_seconds)

    # ── Reads ─────────────────────────────────────────────────

    def load(self) -> list[MemoryRecord]:
        """All records in file order. Empty when the file is absent or blank.

        Raises ``DataCorruptionError`` when the file is not a record array.
        """
        if not self.path.exists():
            return []
        raw = read_utf8_text(self.path)
        if not raw.strip():
            return []
        return parse_records(raw, self.path)

    def search(self, query: str, limit: int = 10) -> list[SearchHit]:
        """Active records ranked by relevance to ``query``."""
        return rank_records(self.load(), query, limit)

    def compute_stats(self) -> StoreStats:
        records = self.load()
        tags: Counter[str] = Counter()
        deleted = 0
        for r in records:
            if r.is_deleted:
                deleted += 1
            tags.update(r.tags)
        return StoreStats(
            total=len(records),
            active=len(records) - deleted,
            deleted=deleted,
            tags=dict(tags),
        )

    def export_json(self) -> str:
        return dump_records(self.load())

    # ── Mutations ─────────────────────────────────────────────

    def add(self, text: str, tags: Iterable[str] | None = None) -> MemoryRecord:
        """Append a new record. Keywords are derived from ``text``."""
        with self._lock():
            records = self.load()
            record = _new_record(text, tags)
            records.append(record)
            atomic_write(self.path, records)
        logger.info("Added memory %s to %s", record.id, self.path.name)
        return record

    def add_direct(self, text: str, tags: Iterable[str] | None = None) -> MemoryRecord:
        """Append without taking the lock.

        Fallback for importers when ``add`` times out on a busy lock; the
        write itself is still atomic.
        """
        records = self.load()
        record = _new_record(text, tags)
        records.append(record)
        atomic_write(self.path, records)
        logger.warning("Added memory %s to %s without lock", record.id, self.path.name)
        return record

    def soft_delete(self, id: str) -> bool:
        """Tombstone the active record ``id``. False if absent or already deleted."""
        with self._lock():
            records = self.load()
            for r in records:
                if r.id == id and not r.is_deleted:
                    ts = now_iso()
                    r.deleted_at = ts
                    r.updated_at = ts
                    break
            else:
                return False
            atomic_write(self.path, records)
        logger.info("Soft-deleted memory %s", id)
        return True

    def purge(
        self,
        id: str | None = None,
        tag: str | None = None,
        match_text: str | None = None,
    ) -> int:
        """Permanently remove records matching ANY given criterion.

        ``tag`` is an exact match on stored (normalized) tags, ``match_text``
        a case-sensitive substring of the text. No criteria removes nothing.
        """
        def doomed(r: MemoryRecord) -> bool:
            return (
                (id is not None and r.id == id)
                or (tag is not None and tag in r.tags)
                or (match_text is not None and match_text in r.text)
            )

        with self._lock():
            records = self.load()
            kept = [r for r in records if not doomed(r)]
            purged = len(records) - len(kept)
            if purged:
                atomic_write(self.path, kept)
        if purged:
            logger.info("Purged %d memories from %s", purged, self.path.name)
        return purged

    def import_json(self, json_data: str) -> tuple[int, int, int]:
        """Merge a JSON record array into the store.

        Records whose id already exists are skipped; the rest get fresh
        timestamps. Returns ``(imported, skipped, failed)``; ``failed`` is
        always 0 since a malformed batch is rejected as a whole.
        """
        with self._lock():
            records = self.load()
            incoming = parse_records(json_data)
            existing = {r.id for r in records}
            imported = skipped = 0
            for rec in incoming:
                if rec.id in existing:
                    skipped += 1
                    continue
                ts = now_iso()
                rec.created_at = ts
                rec.updated_at = ts
                if not rec.keywords:
                    rec.keywords = extract_keywords(rec.text)
                records.append(rec)
                existing.add(rec.id)
                imported += 1
            atomic_write(self.path, records)
        logger.info("Imported %d memories (%d skipped) into %s", imported, skipped, self.path.name)
        return imported, skipped, 0


# ── Helpers ───────────────────────────────────────────────────


def _new_record(text: str, tags: Iterable[str] | None) -> MemoryRecord:
    t = text.strip()
    if not t:
        raise InvalidInputError("Cannot add an empty memory.")
    ts = now_iso()
    return MemoryRecord(
        id=make_id(),
        text=t,
        tags=normalize_tags(tags),
        keywords=extract_keywords(t),
        created_at=ts,
        updated_at=ts,
        deleted_at=None,
    )


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """Trim, lowercase, drop empties and duplicates; first occurrence keeps its place."""
    out: list[str] = []
    for t in tags or []:
        cleaned = t.strip().lower()
        if cleaned and cleaned not in out:
            out.append(cleaned)
    return out


def read_utf8_text(path: Path) -> str:
    """Read ``path`` as UTF-8. Undecodable bytes raise ``DataCorruptionError``."""
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise DataCorruptionError(f"Not valid UTF-8: {e}", path) from e


def parse_records(raw: str, path: Path | None = None) -> list[MemoryRecord]:
    """Decode a JSON record array. Raises ``DataCorruptionError``."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise DataCorruptionError(f"Invalid JSON: {e}", path) from e
    if not isinstance(data, list):
        raise DataCorruptionError("Expected a JSON array of memory records", path)
    try:
        return [MemoryRecord.from_dict(item) for item in data]
    except (KeyError, TypeError) as e:
        raise DataCorruptionError(f"Malformed memory record: {e}", path) from e


def dump_records(records: list[MemoryRecord]) -> str:
    return json.dumps([r.to_dict() for r in records], ensure_ascii=False, indent=2)


def atomic_write(path: Path, records: list[MemoryRecord]) -> None:
    """Write ``records`` to a pid-suffixed temp file, then rename over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp.{os.getpid()}.tmp")
    try:
        with tmp.open("w", encoding="utf-8") as f:
            f.write(dump_records(records))
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def load_or_empty(store: MemoryStore) -> list[MemoryRecord]:
    """``store.load()``, treating a corrupt file as an empty store."""
    try:
        return store.load()
    except DataCorruptionError as e:
        logger.warning("Treating corrupt store as empty: %s", e)
        return []
