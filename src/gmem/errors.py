"""Error types raised by the memory store.

Filesystem failures are not wrapped: they surface as the builtin ``OSError``.
"""

from __future__ import annotations

from pathlib import Path


class GmemError(Exception):
    """Base class for gmem errors."""


class InvalidInputError(GmemError, ValueError):
    """Caller supplied unusable input (e.g. empty memory text)."""


class LockTimeoutError(GmemError, TimeoutError):
    """The store lock could not be acquired in time."""

    def __init__(self, lock_path: Path, timeout_ms: int) -> None:
        self.lock_path = lock_path
        self.timeout_ms = timeout_ms
        super().__init__(f"Timed out acquiring lock: {lock_path} ({timeout_ms}ms)")


class DataCorruptionError(GmemError, ValueError):
    """A store file or import batch is not a valid JSON record array."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        self.path = path
        super().__init__(f"{message} ({path})" if path else message)
