"""Shared fixtures."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from gmem.memory.store import MemoryStore

GMEM_ENV_VARS = ["GMEM_HOME", "GMEM_MEMORY_PATH", "GMEM_LOG_LEVEL", "GMEM_DEBUG", "GMEM_LOCK_TIMEOUT_MS"]


@pytest.fixture(autouse=True)
def _reset_gmem_logger():
    """Undo ``setup_logging`` so handlers bound to a captured stderr don't leak between tests."""
    yield
    root = logging.getLogger("gmem")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.propagate = True
    root.setLevel(logging.NOTSET)


@pytest.fixture
def clean_env(tmp_path: Path, monkeypatch):
    """Run from an empty directory with no gmem env vars and a throwaway HOME."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for key in GMEM_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    return tmp_path


@pytest.fixture
def store(tmp_path: Path) -> MemoryStore:
    return MemoryStore(tmp_path / "default-global-gmem-recoder.json", lock_timeout_ms=200)
