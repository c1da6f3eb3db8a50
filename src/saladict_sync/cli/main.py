"""saladict-sync CLI main entry point."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer

from saladict_sync.storage.base import NOTEBOOK_AREA
from saladict_sync.storage.sqlite_store import SQLiteStorage
from saladict_sync.sync.helpers import SyncStateStore
from saladict_sync.sync.manager import SyncManager
from saladict_sync.sync.protocol import (
    DownloadOutcome,
    InitFailure,
    InvalidNotebookFile,
    NotebookFile,
    SyncConfig,
    SyncInitError,
    UploadOutcome,
)
from saladict_sync.sync.webdav import SERVICE_ID, WebDAVService
from saladict_sync.utils.config import get_config
from saladict_sync.utils.timeutils import format_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Main app
app = typer.Typer(
    name="saladict-sync",
    help="Saladict notebook sync - keep saved words in step with a WebDAV server",
    no_args_is_help=True,
)

config_app = typer.Typer(help="WebDAV sync configuration")
app.add_typer(config_app, name="config")

words_app = typer.Typer(help="Local notebook words")
app.add_typer(words_app, name="words")

DEFAULT_DURATION_MS = 15 * 60 * 1000

INIT_MESSAGES = {
    InitFailure.NETWORK: "Cannot reach the WebDAV server.",
    InitFailure.PARSE: "The server did not answer with a WebDAV directory listing.",
    InitFailure.DIR: "'Saladict' exists on the server but is not a directory.",
    InitFailure.MKCOL: "Cannot create the 'Saladict' directory on the server.",
    InitFailure.EXIST: "The local notebook is newer than the one on the server.",
}


def setup_logging(debug: bool) -> None:
    """Log to stderr; verbose only when debugging."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.callback()
def main_callback(
    debug: Annotated[
        bool, typer.Option("--debug", help="Verbose logging (or SALADICT_SYNC_DEBUG=1)")
    ] = False,
) -> None:
    """Saladict notebook sync."""
    setup_logging(debug or get_config().debug)


async def _with_manager(action: Callable[[SyncManager], Awaitable[T]]) -> T:
    """Open storage and transport, run an action, close both."""
    config = get_config()
    async with SQLiteStorage(config.resolved_db_path) as storage:
        async with WebDAVService(timeout=config.request_timeout) as service:
            manager = SyncManager(SyncStateStore(storage, storage), service)
            return await action(manager)


def _run(action: Callable[[SyncManager], Awaitable[T]]) -> T:
    return asyncio.run(_with_manager(action))


def _report_init_error(error: SyncInitError) -> None:
    typer.secho(f"Error: {INIT_MESSAGES[error.reason]}", fg=typer.colors.RED)
    typer.echo(f"  {error}")


async def _initialize(manager: SyncManager, config: SyncConfig, yes: bool) -> bool:
    """Initialize the remote side; on a newer local notebook, optionally upload.

    Returns False when initialization failed or the user declined.
    """
    try:
        await manager.initialize(config)
    except SyncInitError as e:
        if e.reason != InitFailure.EXIST:
            _report_init_error(e)
            return False

        typer.secho(INIT_MESSAGES[e.reason], fg=typer.colors.YELLOW)
        typer.echo(
            f"  local: {format_ms(e.details.get('local_timestamp'))}"
            f"  server: {format_ms(e.details.get('remote_timestamp'))}"
        )
        if not yes and not typer.confirm("Overwrite the server copy with the local notebook?"):
            return False

        await manager.state.set_sync_config(manager.service_id, config)
        outcome = await manager.upload_now()
        typer.echo(f"Upload: {outcome.value}")
        return outcome == UploadOutcome.UPLOADED

    return True


# ── config ──────────────────────────────────────────────────────────


@config_app.command("set")
def config_set(
    url: Annotated[str, typer.Option("--url", help="WebDAV server address")],
    user: Annotated[str, typer.Option("--user", "-u", help="WebDAV user name")],
    passwd: Annotated[
        str,
        typer.Option("--passwd", "-p", prompt=True, hide_input=True, help="WebDAV password"),
    ],
    duration: Annotated[
        int, typer.Option("--duration", "-d", min=1, help="Sync interval in milliseconds")
    ] = DEFAULT_DURATION_MS,
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Overwrite the server copy without asking")
    ] = False,
) -> None:
    """Check the server, then save the WebDAV config.

    Examples:
        saladict-sync config set --url https://dav.example.com/ --user me
    """
    config = SyncConfig.from_dict({"url": url, "user": user, "passwd": passwd, "duration": duration})

    async def _set(manager: SyncManager) -> bool:
        if not await _initialize(manager, config, yes):
            return False
        await manager.state.set_sync_config(manager.service_id, config)
        return True

    if not _run(_set):
        raise typer.Exit(1)
    typer.secho(f"Saved {SERVICE_ID} config for {config.url}", fg=typer.colors.GREEN)


@config_app.command("show")
def config_show(
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """Show the stored config and the last sync meta."""

    async def _show(manager: SyncManager) -> dict[str, Any]:
        config = await manager.state.get_sync_config(manager.service_id)
        meta = await manager.state.get_meta(manager.service_id)
        return {
            "service": manager.service_id,
            "config": {**config.to_dict(), "passwd": "***"} if config else None,
            "meta": meta.to_dict() if meta else None,
        }

    data = _run(_show)
    if json_output:
        typer.echo(json.dumps(data, indent=2))
        return

    if data["config"] is None:
        typer.echo(f"No {SERVICE_ID} config.")
        return
    config = data["config"]
    meta = data["meta"] or {}
    typer.echo(f"url:       {config['url']}")
    typer.echo(f"user:      {config['user']}")
    typer.echo(f"duration:  {config['duration']} ms")
    typer.echo(f"last sync: {format_ms(meta.get('timestamp'))}")
    typer.echo(f"etag:      {meta.get('etag') or '-'}")


@config_app.command("clear")
def config_clear() -> None:
    """Remove the stored WebDAV config. Sync stops; local words are kept."""

    async def _clear(manager: SyncManager) -> None:
        await manager.state.remove_sync_config(manager.service_id)

    _run(_clear)
    typer.echo(f"Removed {SERVICE_ID} config.")


# ── sync ────────────────────────────────────────────────────────────


@app.command()
def init(
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Overwrite the server copy without asking")
    ] = False,
) -> None:
    """Create the Saladict directory on the server if needed."""

    async def _init(manager: SyncManager) -> bool:
        config = await manager.state.get_sync_config(manager.service_id)
        if config is None:
            typer.secho("No config. Run 'saladict-sync config set' first.", fg=typer.colors.RED)
            return False
        return await _initialize(manager, config, yes)

    if not _run(_init):
        raise typer.Exit(1)
    typer.secho("Server ready.", fg=typer.colors.GREEN)


@app.command()
def upload() -> None:
    """Download newer remote words, then upload the local notebook."""
    outcome = _run(lambda manager: manager.upload_now())
    typer.echo(f"Upload: {outcome.value}")
    if outcome in (UploadOutcome.NETWORK_FAILED, UploadOutcome.SERIALIZE_FAILED):
        raise typer.Exit(1)


@app.command()
def download() -> None:
    """Apply the remote notebook if it is newer than the last sync."""
    outcome = _run(lambda manager: manager.download_now())
    typer.echo(f"Download: {outcome.value}")
    if outcome == DownloadOutcome.FAILED:
        raise typer.Exit(1)


@app.command()
def watch() -> None:
    """Keep downloading on the configured interval until interrupted."""
    typer.echo("Watching sync config. Press Ctrl+C to stop.")
    try:
        _run(lambda manager: manager.run_periodic())
    except KeyboardInterrupt:
        typer.echo("Stopped.")


# ── words ───────────────────────────────────────────────────────────


@words_app.command("list")
def words_list(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Max words to show")] = 20,
    json_output: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
) -> None:
    """List saved words, newest first."""

    async def _list(manager: SyncManager) -> list[dict[str, Any]]:
        return await manager.state.get_notebook()

    words = _run(_list)
    if json_output:
        typer.echo(json.dumps(words[:limit], indent=2, ensure_ascii=False))
        return

    typer.echo(f"{len(words)} words")
    for word in words[:limit]:
        typer.echo(f"  {format_ms(word.get('date'))}  {word.get('text', '')}")


@words_app.command("import")
def words_import(
    path: Annotated[Path, typer.Argument(exists=True, dir_okay=False, help="JSON file")],
) -> None:
    """Import words from a notebook.json file or a JSON array of words."""
    text = path.read_text(encoding="utf-8")
    try:
        words = NotebookFile.from_json(text).words
    except InvalidNotebookFile:
        try:
            words = NotebookFile.from_json(json.dumps({"words": json.loads(text)})).words
        except (InvalidNotebookFile, json.JSONDecodeError) as e:
            typer.secho(f"Error: {path} is not a notebook file: {e}", fg=typer.colors.RED)
            raise typer.Exit(1) from e

    async def _import(manager: SyncManager) -> None:
        await manager.state.notebook.save_words(NOTEBOOK_AREA, words)

    _run(_import)
    typer.secho(f"Imported {len(words)} words", fg=typer.colors.GREEN)


@app.command()
def version() -> None:
    """Show version information."""
    from saladict_sync import __version__

    typer.echo(f"saladict-sync v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
