"""MCP tools for memory store access.

These functions are designed to be exposed as tools to an AI agent,
allowing it to read and write the memory store. Each returns a
JSON-serializable dict.
"""

from __future__ import annotations

import math
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from gmem.errors import InvalidInputError
from gmem.memory.compress import compress

if TYPE_CHECKING:
    from gmem.memory.store import MemoryStore


def _split_tags(tags: str | list[str] | None) -> list[str]:
    if tags is None:
        return []
    if isinstance(tags, str):
        return [t.strip() for t in tags.split(",")]
    return [str(t) for t in tags]


def _require_str(name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise InvalidInputError(f"Missing or invalid {name} parameter")
    return value


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if isinstance(value, float) and not math.isfinite(value):
        return default
    return max(0, int(value))


def get_memory_tools(store: MemoryStore) -> dict[str, Callable[..., dict[str, Any]]]:
    """Return a dict of tool_name -> callable for memory operations.

    These can be registered as MCP tools or called directly.
    """

    def add_memory(text: str | None = None, tags: str | list[str] | None = None) -> dict[str, Any]:
        """Store a new memory. ``tags`` is a comma-separated string or a list."""
        record = store.add(_require_str("text", text), _split_tags(tags))
        return {"success": True, "id": record.id, "message": "Memory added successfully"}

    def search_memory(query: str | None = None, limit: Any = 10) -> dict[str, Any]:
        """Search memories, best match first."""
        hits = store.search(_require_str("query", query), _as_int(limit, 10))
        memories = [
            {
                "id": h.id,
                "text": h.text,
                "tags": h.tags,
                "score": h.score,
                "created_at": h.created_at,
            }
            for h in hits
        ]
        return {"memories": memories, "count": len(memories)}

    def compress_memory(
        query: str | None = None, budget: Any = 1000, limit: Any = 10
    ) -> dict[str, Any]:
        """Compress related memories into a budget-bounded markdown block."""
        result = compress(
            store.load(),
            _require_str("query", query),
            _as_int(budget, 1000),
            _as_int(limit, 10),
        )
        return {
            "compressed": result.markdown,
            "length": result.used,
            "budget": result.budget,
            "included": [h.id for h in result.included],
        }

    def delete_memory(id: str | None = None) -> dict[str, Any]:
        """Soft delete a memory by id."""
        memory_id = _require_str("id", id)
        if store.soft_delete(memory_id):
            return {"success": True, "message": "Memory deleted successfully"}
        return {"success": False, "message": f"Memory not found: {memory_id}"}

    def get_stats() -> dict[str, Any]:
        """Counts of total, active and deleted memories plus tag frequencies."""
        return store.compute_stats().to_dict()

    return {
        "add_memory": add_memory,
        "search_memory": search_memory,
        "compress_memory": compress_memory,
        "delete_memory": delete_memory,
        "get_stats": get_stats,
    }
