"""Bulk import of notes from markdown, plain-text and JSON files.

Markdown and text files are split on ``#`` headings; each non-empty section
becomes one memory. Sections whose text already exists as an active memory
are skipped. When the store lock is busy the importer falls back to a
lock-free append rather than failing the whole file.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import frontmatter

from gmem.errors import LockTimeoutError
from gmem.memory.store import MemoryStore, load_or_empty, read_utf8_text

logger = logging.getLogger(__name__)

MARKDOWN_BASE_TAGS = ("md", "import", "gmem")
TEXT_BASE_TAGS = ("gmem", "txt", "import", "files")

# Heading words that become tags for markdown imports
MARKDOWN_TAG_VOCABULARY = (
    "rust", "development", "quality", "audit", "cross-platform",
    "reuse", "backup", "gmem", "memory", "libraries", "ci",
    "syntax", "format", "security", "performance", "logic",
    "readability", "extensibility", "clippy", "semver", "documentation",
    "unsafe", "fuzz", "workflow", "critical", "high", "medium", "low",
    "platform", "isolation", "compilation", "testing", "deployment",
    "path", "encoding", "text", "signal", "criteria", "function",
    "trait", "validation", "compatibility", "scope", "frequency",
    "storage", "recovery", "data-type", "metadata", "write", "read",
    "delete", "capacity", "concurrency", "persistence", "error",
    "monitoring", "selection", "serde", "tokio", "regex",
    "embedded", "dependencies", "version", "custom", "review",
    "rules",
)

# tag -> substrings of title or body that imply it
TEXT_TAG_HINTS: dict[str, tuple[str, ...]] = {
    "rules": ("规则", "rule"),
    "production": ("生产", "production"),
    "test": ("测试", "test"),
    "temp": ("临时",),
    "docs": ("说明",),
    "config": ("配置", "config"),
    "docker": ("容器", "docker"),
    "wsl": ("wsl",),
}


@dataclass
class Section:
    level: int
    title: str
    content: str = ""
    parent: int | None = None


@dataclass
class ImportReport:
    added: int = 0
    skipped: int = 0
    ids: list[str] = field(default_factory=list)


def _heading(line: str) -> tuple[int, str] | None:
    if not line.startswith("#"):
        return None
    level = len(line) - len(line.lstrip("#"))
    if not 1 <= level <= 6:
        return None
    return level, line[level:].strip()


# ── Parsing ───────────────────────────────────────────────────


def parse_markdown_sections(text: str) -> tuple[list[Section], list[str]]:
    """Split markdown into a heading tree. Returns ``(sections, frontmatter_tags)``.

    Body lines are trimmed and joined with single spaces. Text before the
    first heading is ignored.
    """
    post = frontmatter.loads(text)
    fm_tags = post.metadata.get("tags") or []
    if isinstance(fm_tags, str):
        fm_tags = fm_tags.split(",")

    sections: list[Section] = []
    stack: list[int] = []
    for raw in post.content.splitlines():
        line = raw.strip()
        heading = _heading(line)
        if heading:
            level, title = heading
            while stack and sections[stack[-1]].level >= level:
                stack.pop()
            sections.append(Section(level, title, parent=stack[-1] if stack else None))
            stack.append(len(sections) - 1)
        elif sections and line:
            current = sections[stack[-1]]
            current.content = f"{current.content} {line}" if current.content else line
    return sections, [str(t) for t in fm_tags]


def section_path(sections: list[Section], index: int) -> list[str]:
    """Titles from the root heading down to ``sections[index]``."""
    path: list[str] = []
    current: int | None = index
    while current is not None:
        path.append(sections[current].title)
        current = sections[current].parent
    return path[::-1]


def markdown_memory_text(sections: list[Section], index: int) -> str:
    return f"{' - '.join(section_path(sections, index))}: {sections[index].content.strip()}"


def markdown_tags(sections: list[Section], index: int) -> list[str]:
    heading = " ".join(section_path(sections, index)).lower()
    tags = list(MARKDOWN_BASE_TAGS)
    tags.extend(word for word in MARKDOWN_TAG_VOCABULARY if word in heading)
    return tags


def parse_text_sections(text: str) -> list[Section]:
    """Split plain text on ``#`` headings; text before the first heading is a level-0 section.

    Body lines keep their line breaks; blank lines are dropped.
    """
    sections: list[Section] = []
    current = Section(level=0, title="")
    for raw in text.splitlines():
        line = raw.strip()
        heading = _heading(line)
        if heading:
            if current.content:
                sections.append(current)
            current = Section(*heading)
        elif line:
            current.content = f"{current.content}\n{raw}" if current.content else raw
    if current.content:
        sections.append(current)
    return sections


def text_memory_text(section: Section) -> str:
    if section.level == 0:
        return section.content
    return f"{section.title} - {section.content}"


def text_tags(section: Section) -> list[str]:
    haystack = f"{section.title}\n{section.content}".lower()
    tags = list(TEXT_BASE_TAGS)
    for tag, hints in TEXT_TAG_HINTS.items():
        if any(h in haystack for h in hints):
            tags.append(tag)
    return tags


# ── Import ────────────────────────────────────────────────────


def _import_entries(store: MemoryStore, entries: Iterable[tuple[str, list[str]]]) -> ImportReport:
    report = ImportReport()
    existing = {r.text for r in load_or_empty(store) if not r.is_deleted}
    for text, tags in entries:
        text = text.strip()
        if not text or text in existing:
            report.skipped += 1
            continue
        try:
            record = store.add(text, tags)
        except LockTimeoutError as e:
            logger.warning("%s; writing without lock", e)
            record = store.add_direct(text, tags)
        existing.add(record.text)
        report.added += 1
        report.ids.append(record.id)
    return report


def import_markdown_file(
    store: MemoryStore, path: Path, extra_tags: Iterable[str] = ()
) -> ImportReport:
    """Import every non-empty markdown section of ``path`` as a memory."""
    sections, fm_tags = parse_markdown_sections(read_utf8_text(path))
    extra = [*fm_tags, *extra_tags]
    entries = [
        (markdown_memory_text(sections, i), markdown_tags(sections, i) + extra)
        for i, section in enumerate(sections)
        if section.content.strip()
    ]
    report = _import_entries(store, entries)
    logger.info("Imported %s: %d added, %d skipped", path.name, report.added, report.skipped)
    return report


def import_text_file(
    store: MemoryStore, path: Path, extra_tags: Iterable[str] = ()
) -> ImportReport:
    """Import every section of a plain-text rules file as a memory."""
    sections = parse_text_sections(read_utf8_text(path))
    extra = list(extra_tags)
    entries = [(text_memory_text(s), text_tags(s) + extra) for s in sections]
    report = _import_entries(store, entries)
    logger.info("Imported %s: %d added, %d skipped", path.name, report.added, report.skipped)
    return report


def import_json_file(store: MemoryStore, path: Path) -> tuple[int, int, int]:
    """Merge a JSON export file into ``store``. See ``MemoryStore.import_json``."""
    return store.import_json(read_utf8_text(path))
