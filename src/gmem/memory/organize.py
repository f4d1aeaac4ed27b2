"""Redistribute records into per-category store files.

Records are collected from every category file plus the legacy single file,
re-tagged from their content, and written back grouped by
``category_for_tags``. Tombstones are carried along unchanged; only purge
removes records.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

from gmem.config import (
    CATEGORY_FILE_SUFFIX,
    LEGACY_FILENAME,
    GmemConfig,
    category_file,
    category_for_tags,
    category_of_file,
    memory_dir as configured_memory_dir,
)
from gmem.errors import DataCorruptionError
from gmem.memory.lock import LockKind, lock_path_for, locked
from gmem.memory.record import MemoryRecord
from gmem.memory.store import MemoryStore, atomic_write
from gmem.memory.timestamp import now_iso

logger = logging.getLogger(__name__)

# tag -> substrings that imply it (matched against lowercased text)
TAG_HINTS: dict[str, tuple[str, ...]] = {
    "rules": ("规则", "规范", "rule"),
    "rust": ("rust",),
    "workflow": ("流程", "workflow"),
    "usage": ("使用", "usage"),
    "priority": ("优先级", "high", "medium"),
}


def store_files(directory: Path) -> list[Path]:
    """Category files in name order, then the legacy file if present."""
    files = sorted(directory.glob(f"*{CATEGORY_FILE_SUFFIX}"))
    legacy = directory / LEGACY_FILENAME
    if legacy.is_file():
        files.append(legacy)
    return files


def collect_records(directory: Path) -> tuple[list[tuple[MemoryRecord, Path]], set[Path]]:
    """Union of all readable store files, each record paired with its source.

    The first copy of an id wins. Files that fail to parse are returned in
    the second element and contribute no records.
    """
    seen: set[str] = set()
    entries: list[tuple[MemoryRecord, Path]] = []
    corrupt: set[Path] = set()
    for path in store_files(directory):
        try:
            records = MemoryStore(path).load()
        except DataCorruptionError as e:
            logger.warning("Skipping corrupt store file %s: %s", path.name, e)
            corrupt.add(path)
            continue
        for record in records:
            if record.id in seen:
                continue
            seen.add(record.id)
            entries.append((record, path))
    return entries, corrupt


def load_all_records(directory: Path) -> list[MemoryRecord]:
    """Union of all store files; the first copy of an id wins."""
    entries, _ = collect_records(directory)
    return [record for record, _ in entries]


def infer_tags(record: MemoryRecord) -> MemoryRecord:
    """Copy of ``record`` with content-derived tags appended.

    ``updated_at`` is refreshed only when a tag was added.
    """
    text = record.text.lower()
    tags = list(record.tags)
    for tag, hints in TAG_HINTS.items():
        if tag not in tags and any(h in text for h in hints):
            tags.append(tag)
    if tags == record.tags:
        return replace(record, tags=tags)
    return replace(record, tags=tags, updated_at=now_iso())


def organize(config: GmemConfig, directory: Path | None = None) -> dict[str, int]:
    """Rewrite the category files from the union of all records.

    Runs entirely under the directory's CLI lock, so one-shot CLI writes
    cannot interleave with it. Every readable store file is rewritten, even
    if it ends up empty, so a record never lives in two files; the legacy
    file is drained this way. Corrupt files are left untouched, and records
    bound for one stay in their source file. Returns counts per category.
    """
    directory = directory or configured_memory_dir(config)
    if not directory.is_dir():
        logger.warning("Memory directory %s does not exist", directory)
        return {}

    lock_path = lock_path_for(directory / LEGACY_FILENAME, LockKind.CLI)
    with locked(lock_path, config.lock.timeout_ms, config.lock.stale_seconds):
        entries, corrupt = collect_records(directory)

        targets: dict[Path, list[MemoryRecord]] = {
            path: [] for path in store_files(directory) if path not in corrupt
        }
        for record, source in entries:
            if not record.is_deleted:
                record = infer_tags(record)
            target = category_file(directory, category_for_tags(config, record.tags))
            if target in corrupt:
                logger.warning("Keeping %s in %s; %s is corrupt", record.id, source.name, target.name)
                target = source
            targets.setdefault(target, []).append(record)

        for path, members in targets.items():
            atomic_write(path, members)
            logger.info("Saved %d memories to %s", len(members), path.name)

    counts: dict[str, int] = {}
    for path, members in targets.items():
        category = category_of_file(path)
        if category:
            counts[category] = len(members)
        elif members:
            logger.warning("%d memories remain in %s", len(members), path.name)
    logger.info("Organized %d memories into %d categories", sum(counts.values()), len(counts))
    return counts
