"""Command-line interface: one-shot commands and an interactive REPL."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from gmem import __version__
from gmem.errors import GmemError
from gmem.memory.compress import compress
from gmem.memory.store import MemoryStore, read_utf8_text

logger = logging.getLogger(__name__)

DEFAULT_COMPRESS_BUDGET = 2000

HELP_TEXT = """\
Available commands:
  add [--tags a,b,c] <text>                    - Store a new memory
  search <query> [--limit N]                   - Search memories
  delete <id>                                  - Soft delete a memory
  purge [--id ID] [--tag TAG] [--text TEXT]    - Permanently delete memories
  compress <query> [--budget N] [--limit N]    - Compress memories into markdown
  stats                                        - Show memory statistics
  export                                       - Export all memories as JSON
  import <json_file>                           - Import memories from a JSON file
  whereiscfg                                   - Show config file path
  help                                         - Show this help
  exit                                         - Quit"""


@dataclass
class ParsedCommand:
    cmd: str
    args: list[str] = field(default_factory=list)
    opts: dict[str, str] = field(default_factory=dict)


def tokenize(line: str) -> list[str]:
    """Split on spaces/tabs; single or double quotes group words."""
    tokens: list[str] = []
    current = ""
    quote: str | None = None
    for c in line:
        if quote is None and c in "\"'":
            quote = c
        elif quote is not None and c == quote:
            quote = None
        elif quote is None and c in " \t":
            if current:
                tokens.append(current)
                current = ""
        else:
            current += c
    if current:
        tokens.append(current)
    return tokens


def parse(line: str) -> ParsedCommand | None:
    """Parse ``cmd arg... --key value --flag``. None for a blank line."""
    return parse_tokens(tokenize(line.strip()))


def parse_tokens(tokens: list[str]) -> ParsedCommand | None:
    if not tokens:
        return None

    parsed = ParsedCommand(cmd=tokens[0].lower())
    i = 1
    while i < len(tokens):
        token = tokens[i]
        if token.startswith("--"):
            key = token[2:]
            if i + 1 < len(tokens) and not tokens[i + 1].startswith("--"):
                parsed.opts[key] = tokens[i + 1]
                i += 2
            else:
                parsed.opts[key] = ""
                i += 1
        else:
            parsed.args.append(token)
            i += 1
    return parsed


def _int_opt(opts: dict[str, str], key: str, default: int) -> int:
    try:
        return int(opts[key])
    except (KeyError, ValueError):
        return default


def execute_command(
    store: MemoryStore,
    parsed: ParsedCommand,
    out: TextIO | None = None,
    config_file: Path | None = None,
) -> None:
    """Run one parsed command against ``store``, printing to ``out``.

    Store errors propagate to the caller.
    """
    out = out or sys.stdout

    def say(msg: str = "") -> None:
        print(msg, file=out)

    cmd = parsed.cmd
    if cmd == "add":
        tags = parsed.opts.get("tags")
        rec = store.add(" ".join(parsed.args), tags.split(",") if tags else None)
        say(f"✅ Added {rec.id}")

    elif cmd == "search":
        hits = store.search(" ".join(parsed.args), _int_opt(parsed.opts, "limit", 10))
        if not hits:
            say("No results found")
        for i, hit in enumerate(hits, 1):
            tag_str = f" [{', '.join(hit.tags)}]" if hit.tags else ""
            say(f"{i}. ({hit.id}) {hit.text}{tag_str} (score: {hit.score:.1f})")

    elif cmd == "delete":
        if not parsed.args:
            say("Usage: delete <id>")
            return
        memory_id = parsed.args[0]
        if store.soft_delete(memory_id):
            say(f"✅ Deleted {memory_id}")
        else:
            say(f"❌ Memory not found: {memory_id}")

    elif cmd == "purge":
        criteria = {k: parsed.opts.get(k) or None for k in ("id", "tag", "text")}
        if not any(criteria.values()):
            say("Usage: purge [--id ID] [--tag TAG] [--text TEXT] (at least one required)")
            return
        purged = store.purge(criteria["id"], criteria["tag"], criteria["text"])
        say(f"✅ Purged {purged} memories")

    elif cmd == "compress":
        result = compress(
            store.load(),
            " ".join(parsed.args),
            _int_opt(parsed.opts, "budget", DEFAULT_COMPRESS_BUDGET),
            _int_opt(parsed.opts, "limit", 25),
        )
        say(f"--- Compressed Output ({result.used} / {result.budget} chars) ---")
        say(result.markdown.rstrip("\n"))
        say("--- End ---")

    elif cmd == "stats":
        stats = store.compute_stats()
        say(f"Total: {stats.total}, Active: {stats.active}, Deleted: {stats.deleted}")
        if stats.tags:
            say()
            say("Tags:")
            top = sorted(stats.tags.items(), key=lambda kv: kv[1], reverse=True)[:10]
            for tag, count in top:
                say(f"  - {tag}: {count}")

    elif cmd == "export":
        say(store.export_json())

    elif cmd == "import":
        if not parsed.args:
            say("Usage: import <json_file>")
            return
        data = read_utf8_text(Path(parsed.args[0]))
        imported, skipped, failed = store.import_json(data)
        say(f"✅ Imported: {imported}, Skipped: {skipped}, Failed: {failed}")

    elif cmd == "whereiscfg":
        say(str(config_file) if config_file else "(no config file found, using defaults)")

    elif cmd == "help":
        say(HELP_TEXT)

    else:
        say(f"Unknown command: {cmd}. Type 'help' for available commands.")


class CLIConnector:
    """Interactive REPL. Reads commands from stdin, writes to stdout."""

    def __init__(
        self,
        store: MemoryStore,
        config_file: Path | None = None,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        self.store = store
        self.config_file = config_file
        self._in = stdin or sys.stdin
        self._out = stdout or sys.stdout

    def run(self) -> None:
        print(f"gmem memory store v{__version__}", file=self._out)
        print("Type 'help' for available commands, 'exit' to quit", file=self._out)
        print(f"Store: {self.store.path}", file=self._out)

        while True:
            line = self._read_input()
            if line is None:
                break
            text = line.strip()
            if not text:
                continue
            if text.lower() in ("exit", "quit"):
                break

            parsed = parse(text)
            if parsed is None:
                continue
            try:
                execute_command(self.store, parsed, self._out, self.config_file)
            except (GmemError, OSError) as e:
                logger.debug("Command %r failed", text, exc_info=True)
                print(f"Error: {e}", file=self._out)

        print("Goodbye!", file=self._out)

    def _read_input(self) -> str | None:
        self._out.write(" > ")
        self._out.flush()
        raw = self._in.readline()
        if not raw:
            return None
        return raw.rstrip("\n")
