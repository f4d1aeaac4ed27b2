"""gmem CLI: JSON-file memory store with search, compression and an MCP server.

Commands:
    gmem [repl]                 interactive REPL (default)
    gmem run COMMAND [ARGS...]  one-shot REPL command, e.g. ``gmem run add hello --tags a,b``
    gmem serve                  stdio MCP server
    gmem organize               redistribute records into category files
    gmem import-md FILE         import markdown sections as memories
    gmem import-txt FILE        import plain-text sections as memories
    gmem import-json FILE       merge a JSON export
    gmem clean-locks            remove stale lock files
    gmem timer                  periodic lock sweep + organize until SIGTERM
"""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

import click

from gmem.config import GmemConfig, category_file, load_config, memory_dir
from gmem.errors import GmemError
from gmem.logs import setup_logging
from gmem.memory.lock import LockKind, cleanup_expired_locks
from gmem.memory.store import MemoryStore

logger = logging.getLogger("gmem.main")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def open_store(config: GmemConfig, memory_file: Path | None, kind: LockKind) -> MemoryStore:
    """Store for ``memory_file``, or the default category file of the memory dir."""
    path = memory_file or category_file(memory_dir(config), config.default_category)
    return MemoryStore(
        path,
        kind,
        lock_timeout_ms=config.lock.timeout_ms,
        stale_lock_seconds=config.lock.stale_seconds,
    )


def _store(ctx: click.Context, kind: LockKind) -> MemoryStore:
    return open_store(ctx.obj["config"], ctx.obj["memory_file"], kind)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.version_option(package_name="gmem")
@click.option(
    "--config", "config_path", type=click.Path(path_type=Path), default=None,
    help="Path to gmem.toml",
)
@click.option(
    "--memory-file", type=click.Path(path_type=Path), default=None,
    help="Store file (default: <memory dir>/default-global-gmem-recoder.json)",
)
@click.option("--debug", is_flag=True, help="Verbose logging to stderr")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, memory_file: Path | None, debug: bool) -> None:
    """gmem: persistent memory store for AI coding assistants."""
    config = load_config(config_path)
    if debug:
        config.logs.debug = True
    setup_logging(config.logs)
    ctx.obj = {"config": config, "memory_file": memory_file}

    if ctx.invoked_subcommand is None:
        ctx.invoke(repl)


@cli.command()
@click.pass_context
def repl(ctx: click.Context) -> None:
    """Interactive REPL."""
    from gmem.connectors.cli import CLIConnector

    store = _store(ctx, LockKind.INTERACTIVE)
    try:
        CLIConnector(store, ctx.obj["config"].config_file).run()
    except KeyboardInterrupt:
        pass


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def run(ctx: click.Context, command: tuple[str, ...]) -> None:
    """Run a single REPL command and exit."""
    from gmem.connectors.cli import execute_command, parse_tokens

    parsed = parse_tokens(list(command))
    if parsed is None:
        raise click.UsageError("No command given")
    try:
        execute_command(_store(ctx, LockKind.CLI), parsed, config_file=ctx.obj["config"].config_file)
    except (GmemError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Start the stdio MCP server."""
    from gmem.mcp_server import serve as serve_stdio

    try:
        asyncio.run(serve_stdio(_store(ctx, LockKind.MCP)))
    except KeyboardInterrupt:
        pass


@cli.command()
@click.pass_context
def organize(ctx: click.Context) -> None:
    """Redistribute all records into per-category files."""
    from gmem.memory.organize import organize as organize_records

    try:
        counts = organize_records(ctx.obj["config"])
    except (GmemError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc
    if not counts:
        click.echo("Nothing to organize.")
        return
    for category, count in sorted(counts.items()):
        click.echo(f"  {category}: {count}")
    click.echo(f"Organized {sum(counts.values())} memories into {len(counts)} categories")


@cli.command("import-md")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--tags", default="", help="Extra comma-separated tags for every section")
@click.pass_context
def import_md(ctx: click.Context, file: Path, tags: str) -> None:
    """Import each markdown section as a memory."""
    from gmem.memory.importers import import_markdown_file

    extra = [t.strip() for t in tags.split(",") if t.strip()]
    try:
        report = import_markdown_file(_store(ctx, LockKind.CLI), file, extra)
    except (GmemError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Imported {report.added} memories, skipped {report.skipped}")


@cli.command("import-txt")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--tags", default="", help="Extra comma-separated tags for every section")
@click.pass_context
def import_txt(ctx: click.Context, file: Path, tags: str) -> None:
    """Import each section of a plain-text file as a memory."""
    from gmem.memory.importers import import_text_file

    extra = [t.strip() for t in tags.split(",") if t.strip()]
    try:
        report = import_text_file(_store(ctx, LockKind.CLI), file, extra)
    except (GmemError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Imported {report.added} memories, skipped {report.skipped}")


@cli.command("import-json")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_json(ctx: click.Context, file: Path) -> None:
    """Merge a JSON export; records whose id already exists are skipped."""
    from gmem.memory.importers import import_json_file

    try:
        imported, skipped, failed = import_json_file(_store(ctx, LockKind.CLI), file)
    except (GmemError, OSError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Imported: {imported}, Skipped: {skipped}, Failed: {failed}")


@cli.command("clean-locks")
@click.option("--max-age", default=None, type=int, help="Seconds before a lock counts as stale")
@click.pass_context
def clean_locks(ctx: click.Context, max_age: int | None) -> None:
    """Remove lock files older than --max-age next to the store."""
    config: GmemConfig = ctx.obj["config"]
    directory = _store(ctx, LockKind.CLI).path.parent
    age = config.lock.stale_seconds if max_age is None else max_age
    removed = cleanup_expired_locks(directory, age)
    click.echo(f"Removed {removed} stale lock file(s) from {directory}")


@cli.command()
@click.option("--once", is_flag=True, help="Run due jobs once and exit")
@click.pass_context
def timer(ctx: click.Context, once: bool) -> None:
    """Run periodic maintenance until SIGTERM/SIGINT."""
    from gmem.scheduler.jobs import Scheduler

    config: GmemConfig = ctx.obj["config"]
    memory_file: Path | None = ctx.obj["memory_file"]
    scheduler = Scheduler(config, memory_file.parent if memory_file else None)
    if once:
        scheduler.tick()
        return

    async def _main() -> None:
        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        def _handle_signal(sig: signal.Signals) -> None:
            logger.info("Received %s, shutting down...", sig.name)
            shutdown_event.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, _handle_signal, sig)
        await scheduler.start(shutdown_event)

    asyncio.run(_main())


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
