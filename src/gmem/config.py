"""Configuration loading from environment variables and gmem.toml."""

from __future__ import annotations

import logging
import os
import re
import sys
from collections.abc import Callable
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

logger = logging.getLogger(__name__)

_DEFAULT_MEMORY_DIR = Path.home() / ".gmem" / "memory"
_CONFIG_FILENAME = "gmem.toml"

CATEGORY_FILE_SUFFIX = "-global-gmem-recoder.json"
LEGACY_FILENAME = "global-memory-recorder.json"
DEFAULT_CATEGORY = "default"

_DEFAULT_CATEGORY_MAPPING = {
    "rust": "rust",
    "git": "git",
    "ide": "ide",
    "rules": "rules",
    "config": "config",
    "files": "files",
    "directory": "directory",
    "wsl": "wsl",
    "command-line": "command-line",
    "ai_worker": "ai_worker",
    "csdn": "blog",
    "blog": "blog",
    "workflow": "workflow",
    "usage": "usage",
    "high": "priority",
    "medium": "priority",
    "markdown": DEFAULT_CATEGORY,
    "file": DEFAULT_CATEGORY,
    "temp": DEFAULT_CATEGORY,
}

_VAR_RE = re.compile(r"%([^%]+)%|\$\{([^}]+)\}")


@dataclass
class LogConfig:
    """Log output configuration."""

    enabled: bool = False
    dir: Path = Path.home() / ".gmem" / "logs"
    max_size: int = 1_048_576
    backups: int = 5
    level: str = "INFO"
    debug: bool = False


@dataclass
class LockConfig:
    timeout_ms: int = 2500
    stale_seconds: int = 300


@dataclass
class SchedulerConfig:
    """Background timer configuration."""

    organize_interval_hours: float = 24.0
    lock_sweep_minutes: float = 5.0


@dataclass
class GmemConfig:
    """Top-level gmem configuration."""

    project_name: str = "global-memory-rule"
    memory_path: str = "${GMEM_HOME}|~/.gmem/memory"
    default_category: str = DEFAULT_CATEGORY
    category_mapping: dict[str, str] = field(
        default_factory=lambda: dict(_DEFAULT_CATEGORY_MAPPING)
    )
    logs: LogConfig = field(default_factory=LogConfig)
    lock: LockConfig = field(default_factory=LockConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    config_file: Path | None = None


def _truthy(value: str | bool) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _read_toml(path: Path) -> dict:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (tomllib.TOMLDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable config %s: %s", path, e)
        return {}


def find_config_file(config_path: Path | None = None) -> Path | None:
    if config_path is not None:
        return config_path if config_path.exists() else None
    for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".gmem" / _CONFIG_FILENAME]:
        if candidate.exists():
            return candidate
    return None


def load_config(config_path: Path | None = None) -> GmemConfig:
    """Load configuration from environment variables and optional gmem.toml.

    Priority: environment variables > gmem.toml > defaults.
    """
    found = find_config_file(config_path)
    file_data = _read_toml(found) if found else {}

    logs_data = file_data.get("logs", {})
    lock_data = file_data.get("lock", {})
    scheduler_data = file_data.get("scheduler", {})

    mapping = dict(_DEFAULT_CATEGORY_MAPPING)
    if "category_mapping" in file_data:
        mapping = {str(k): str(v) for k, v in file_data["category_mapping"].items()}

    defaults = LogConfig()
    config = GmemConfig(
        project_name=file_data.get("project_name", "global-memory-rule"),
        memory_path=os.getenv(
            "GMEM_MEMORY_PATH", file_data.get("memory_path", GmemConfig.memory_path)
        ),
        default_category=file_data.get("default_category", DEFAULT_CATEGORY),
        category_mapping=mapping,
        logs=LogConfig(
            enabled=_truthy(logs_data.get("enabled", False)),
            dir=Path(resolve_spec(str(logs_data.get("dir", defaults.dir))) or defaults.dir),
            max_size=int(logs_data.get("max_size", defaults.max_size)),
            backups=int(logs_data.get("backups", defaults.backups)),
            level=os.getenv("GMEM_LOG_LEVEL", logs_data.get("level", "INFO")),
            debug=_truthy(os.getenv("GMEM_DEBUG", logs_data.get("debug", False))),
        ),
        lock=LockConfig(
            timeout_ms=int(os.getenv("GMEM_LOCK_TIMEOUT_MS", lock_data.get("timeout_ms", 2500))),
            stale_seconds=int(lock_data.get("stale_seconds", 300)),
        ),
        scheduler=SchedulerConfig(
            organize_interval_hours=float(scheduler_data.get("organize_interval_hours", 24)),
            lock_sweep_minutes=float(scheduler_data.get("lock_sweep_minutes", 5)),
        ),
        config_file=found,
    )
    return config


# ── Path spec mini-language ───────────────────────────────────


def _expand(alternative: str, env_lookup: Callable[[str], str | None]) -> str | None:
    missing = False

    def sub(m: re.Match) -> str:
        nonlocal missing
        value = env_lookup(m.group(1) or m.group(2))
        if value is None:
            missing = True
            return ""
        return value

    expanded = _VAR_RE.sub(sub, alternative)
    if missing:
        return None
    if expanded.startswith("~"):
        expanded = os.path.expanduser(expanded)
    return expanded


def resolve_spec(
    raw: str, env_lookup: Callable[[str], str | None] = os.environ.get
) -> str | None:
    """Resolve ``"%VAR%|${OTHER}/x|literal"``-style specs.

    Alternatives are tried left to right; one that references an unset
    variable is skipped. Returns the first non-empty expansion, else None.
    """
    for alternative in raw.split("|"):
        expanded = _expand(alternative.strip(), env_lookup)
        if expanded:
            return expanded
    return None


def memory_dir(config: GmemConfig) -> Path:
    resolved = resolve_spec(config.memory_path)
    return Path(resolved) if resolved else _DEFAULT_MEMORY_DIR


def category_for_tags(config: GmemConfig, tags: list[str]) -> str:
    """First tag with a category mapping wins."""
    for tag in tags:
        category = config.category_mapping.get(tag)
        if category:
            return category
    return config.default_category


def category_file(directory: Path, category: str) -> Path:
    return directory / f"{category}{CATEGORY_FILE_SUFFIX}"


def category_of_file(path: Path) -> str | None:
    if path.name.endswith(CATEGORY_FILE_SUFFIX):
        return path.name[: -len(CATEGORY_FILE_SUFFIX)]
    return None
