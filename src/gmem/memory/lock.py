"""Cross-process write lock built on atomic create-only file creation.

Each store has one lock file per lock kind, named
``.copilot-memory.<kind>.lock`` beside the store file. Callers of the same
kind are serialized; callers of different kinds (interactive REPL, one-shot
CLI, MCP server) do not contend with each other. This is a known limitation
of the on-disk layout, kept for compatibility with existing lock files.
"""

from __future__ import annotations

import enum
import logging
import os
import random
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from gmem.errors import LockTimeoutError
from gmem.memory.timestamp import now_iso

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 2500
DEFAULT_MAX_AGE_SECONDS = 300
LOCK_BASENAME = ".copilot-memory"


class LockKind(enum.Enum):
    INTERACTIVE = "interactive"
    CLI = "cli"
    MCP = "mcp"


_LOCK_SUFFIXES: dict[LockKind, str] = {
    LockKind.INTERACTIVE: ".interactive.lock",
    LockKind.CLI: ".cli.lock",
    LockKind.MCP: ".mcp.lock",
}


def lock_suffix(kind: LockKind) -> str:
    return _LOCK_SUFFIXES[kind]


def lock_path_for(store_path: Path, kind: LockKind) -> Path:
    """Lock file guarding ``store_path`` for callers of ``kind``."""
    return store_path.parent / f"{LOCK_BASENAME}{lock_suffix(kind)}"


@dataclass(frozen=True)
class LockHandle:
    path: Path
    acquired_at: str


def acquire(lock_path: Path, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> LockHandle:
    """Create ``lock_path`` exclusively, retrying with 50-100ms jittered sleeps.

    Raises ``LockTimeoutError`` once ``timeout_ms`` has elapsed. The lock file
    holds ``"<pid> <timestamp>"`` as a breadcrumb for humans.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    deadline = time.monotonic() + timeout_ms / 1000
    while True:
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            if time.monotonic() > deadline:
                raise LockTimeoutError(lock_path, timeout_ms) from None
            time.sleep(random.uniform(0.05, 0.1))
            continue
        stamp = now_iso()
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(f"{os.getpid()} {stamp}\n")
        logger.debug("Acquired lock %s", lock_path)
        return LockHandle(path=lock_path, acquired_at=stamp)


def remove_if_stale(lock_path: Path, max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS) -> bool:
    """Delete ``lock_path`` if its mtime is older than ``max_age_seconds``."""
    try:
        age = time.time() - lock_path.stat().st_mtime
    except FileNotFoundError:
        return False
    if age <= max_age_seconds:
        return False
    lock_path.unlink(missing_ok=True)
    logger.warning("Removed stale lock %s (age %.0fs > %ss)", lock_path, age, max_age_seconds)
    return True


def acquire_with_cleanup(
    lock_path: Path,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
) -> LockHandle:
    """Like ``acquire`` but first clears a lock abandoned by a crashed process."""
    remove_if_stale(lock_path, max_age_seconds)
    return acquire(lock_path, timeout_ms)


def release(lock_path: Path) -> None:
    """Delete the lock file. Idempotent."""
    lock_path.unlink(missing_ok=True)
    logger.debug("Released lock %s", lock_path)


@contextmanager
def locked(
    lock_path: Path,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
) -> Iterator[LockHandle]:
    """Hold the lock for the duration of the ``with`` block."""
    handle = acquire_with_cleanup(lock_path, timeout_ms, max_age_seconds)
    try:
        yield handle
    finally:
        release(lock_path)


def cleanup_expired_locks(directory: Path, max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS) -> int:
    """Remove every stale ``*.lock`` file in ``directory``. Returns count removed.

    Per-file errors are logged and skipped so one bad entry does not abort the sweep.
    """
    if not directory.is_dir():
        return 0
    removed = 0
    for path in sorted(directory.glob("*.lock")):
        try:
            if remove_if_stale(path, max_age_seconds):
                removed += 1
        except OSError as e:
            logger.warning("Could not inspect lock %s: %s", path, e)
    return removed
