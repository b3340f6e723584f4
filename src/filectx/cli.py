"""CLI entry point using Click."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import click

from filectx import __version__
from filectx.config import FileContextConfig, load_config
from filectx.context.checkpoint_analyzer import CheckpointAnalyzer
from filectx.context.orphan_sweeper import OrphanSweeper
from filectx.errors import FileContextError
from filectx.logger import setup_logging
from filectx.persistence.store import JSONFileMetadataStore, SQLiteStateStore


@click.group()
@click.option("--data-dir", default=None, help="Directory holding task metadata and state db")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON")
@click.version_option(__version__, prog_name="filectx")
@click.pass_context
def main(ctx: click.Context, data_dir: str | None, debug: bool, json_logs: bool) -> None:
    """filectx - file and model context tracking maintenance."""
    cli_args: dict[str, Any] = {}
    if data_dir:
        cli_args["data_dir"] = data_dir
    if debug:
        cli_args["debug"] = True
    try:
        config = load_config(cli_args=cli_args)
    except FileContextError as e:
        raise click.ClickException(str(e)) from e
    setup_logging(debug=config.debug, json_output=json_logs)
    ctx.obj = config


@main.command()
@click.option("--keep", "keep", multiple=True, help="Additional task id to treat as existing")
@click.option("--dry-run", is_flag=True, help="List orphaned keys without deleting them")
@click.pass_obj
def sweep(config: FileContextConfig, keep: tuple[str, ...], dry_run: bool) -> None:
    """Delete pending warnings left behind by deleted tasks."""

    async def _run() -> list[str]:
        metadata_store = JSONFileMetadataStore(config.tasks_dir)
        existing = set(await metadata_store.list_task_ids()) | set(keep)
        state = SQLiteStateStore(config.state_db)
        await state.initialize()
        try:
            sweeper = OrphanSweeper(state)
            if dry_run:
                return sweeper.find_orphans(existing, await state.keys())
            return await sweeper.run(existing)
        finally:
            await state.close()

    keys = _run_async(_run())
    verb = "Would remove" if dry_run else "Removed"
    click.echo(f"{verb} {len(keys)} orphaned keys")
    for key in keys:
        click.echo(f"  {key}")


@main.command("inspect")
@click.argument("task_id")
@click.option("--as-json", is_flag=True, help="Print raw metadata JSON")
@click.pass_obj
def inspect_task(config: FileContextConfig, task_id: str, as_json: bool) -> None:
    """Show tracked files and model usage for a task."""
    metadata = _run_async(JSONFileMetadataStore(config.tasks_dir).load(task_id))
    if as_json:
        click.echo(json.dumps(metadata.to_dict(), indent=2))
        return

    click.echo(f"Task {task_id}: {len(metadata.files)} file records")
    for entry in metadata.files:
        marker = "*" if entry.is_active else " "
        click.echo(
            f" {marker} {entry.path}  source={entry.source}"
            f"  read={entry.agent_read_at} agent_edit={entry.agent_edit_at}"
            f" user_edit={entry.user_edit_at}"
        )
    if metadata.model_usage:
        click.echo("Model usage:")
        for usage in metadata.model_usage:
            click.echo(f"   {usage.timestamp}  {usage.provider_id}/{usage.model_id}  ({usage.mode})")


@main.command("changed-since")
@click.argument("task_id")
@click.argument("timestamp", type=int)
@click.option(
    "--messages",
    "messages_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON file with the messages being discarded",
)
@click.pass_obj
def changed_since(
    config: FileContextConfig,
    task_id: str,
    timestamp: int,
    messages_path: Path | None,
) -> None:
    """List files edited after TIMESTAMP (milliseconds since epoch)."""
    messages: list[Any] = []
    if messages_path is not None:
        try:
            loaded = json.loads(messages_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise click.ClickException(f"Invalid messages file: {e}") from e
        if not isinstance(loaded, list):
            raise click.ClickException("Messages file must contain a JSON array")
        messages = loaded

    analyzer = CheckpointAnalyzer(task_id, JSONFileMetadataStore(config.tasks_dir))
    changed = _run_async(analyzer.files_changed_since(timestamp, messages))
    for path in sorted(changed):
        click.echo(path)


def _run_async(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except FileContextError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
