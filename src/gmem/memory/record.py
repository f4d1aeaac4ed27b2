"""Record model and the transient result shapes derived from it.

On disk a store is a flat JSON array of records. Reads accept both
snake_case and camelCase timestamp keys; writes are always snake_case.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

_ALIASES = {
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "deleted_at": "deletedAt",
}


def _pick(data: dict[str, Any], key: str, default: Any = None) -> Any:
    if key in data:
        return data[key]
    alias = _ALIASES.get(key)
    if alias and alias in data:
        return data[alias]
    return default


def _str_list(value: Any) -> list[str]:
    """A JSON list of strings; a bare string is read as comma-separated."""
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if not isinstance(value, list):
        raise TypeError(f"expected a list of strings, got {type(value).__name__}")
    return [str(item) for item in value]


@dataclass
class MemoryRecord:
    """One stored note."""

    id: str
    text: str
    tags: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""
    deleted_at: str | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryRecord:
        """Build a record from a JSON object. Raises ``KeyError``/``TypeError`` on bad shape."""
        if not isinstance(data, dict):
            raise TypeError(f"expected a JSON object, got {type(data).__name__}")
        return cls(
            id=str(data["id"]),
            text=str(data["text"]),
            tags=_str_list(_pick(data, "tags")),
            keywords=_str_list(_pick(data, "keywords")),
            created_at=_pick(data, "created_at", "") or "",
            updated_at=_pick(data, "updated_at", "") or "",
            deleted_at=_pick(data, "deleted_at"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SearchHit:
    """Read-only projection of an active record plus its relevance score."""

    id: str
    text: str
    tags: list[str]
    keywords: list[str]
    created_at: str
    updated_at: str
    score: float

    @classmethod
    def from_record(cls, record: MemoryRecord, score: float) -> SearchHit:
        return cls(
            id=record.id,
            text=record.text,
            tags=list(record.tags),
            keywords=list(record.keywords),
            created_at=record.created_at,
            updated_at=record.updated_at,
            score=score,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CompressResult:
    """Budget-bounded markdown rendering of the top hits.

    ``included`` is the full ranked set considered, even when ``markdown``
    was cut short before listing all of them.
    """

    markdown: str
    included: list[SearchHit]
    budget: int
    used: int


@dataclass
class StoreStats:
    total: int
    active: int
    deleted: int
    tags: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
