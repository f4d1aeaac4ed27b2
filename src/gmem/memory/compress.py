"""Deterministic compression of relevant memories into a markdown block.

No LLM involved: rank, render one bullet per hit, and cut whole lines once
the byte budget runs out.
"""

from __future__ import annotations

from collections.abc import Sequence

from gmem.memory.record import CompressResult, MemoryRecord, SearchHit
from gmem.memory.scoring import rank_records

MIN_BUDGET = 200
DEFAULT_LIMIT = 25

TITLE = "# Copilot Context (auto)"
SECTION = "## Relevant memory"


def _size(s: str) -> int:
    return len(s.encode("utf-8"))


def render_hit(hit: SearchHit) -> str:
    tag_str = f" [{', '.join(hit.tags)}]" if hit.tags else ""
    return f"- ({hit.id}){tag_str} {hit.text}"


def compress(
    records: Sequence[MemoryRecord],
    query: str,
    budget: int,
    limit: int = DEFAULT_LIMIT,
) -> CompressResult:
    """Render the top ``limit`` hits for ``query`` within ``budget`` bytes.

    ``budget`` is raised to at least 200. ``used`` is the UTF-8 length of the
    returned markdown and never exceeds ``budget``.
    """
    budget = max(budget, MIN_BUDGET)
    hits = rank_records(records, query, limit)

    lines = [TITLE, "", SECTION]
    lines.extend(render_hit(h) for h in hits)

    markdown = "\n".join(lines) + "\n"
    if _size(markdown) <= budget:
        return CompressResult(markdown=markdown, included=hits, budget=budget, used=_size(markdown))

    kept: list[str] = []
    size = 0
    for line in lines:
        line_size = _size(line) + 1
        if size + line_size > budget:
            break
        kept.append(line)
        size += line_size

    markdown = "\n".join(kept) + "\n"
    return CompressResult(markdown=markdown, included=hits, budget=budget, used=_size(markdown))
