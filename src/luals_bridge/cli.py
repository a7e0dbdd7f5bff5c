from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional

import typer
from pydantic import ValidationError

from luals_bridge.config import EXECUTABLE_PATH_KEY, PARAMETERS_KEY, ConfigurationStore
from luals_bridge.exceptions import ConfigurationError
from luals_bridge.extension import (
    BridgeContext,
    activate,
    deactivate,
    open_existing_documents,
)
from luals_bridge.host import Document, HeadlessHost
from luals_bridge.protocol import LOCAL_CONFIG_COMMAND
from luals_bridge.resolve import resolve_server_command, server_arguments

app = typer.Typer(add_completion=False)

_LOG_LEVEL_OPTION = typer.Option("WARNING", "--log-level", help="Logging level for stderr.")


def _configure_logging(level: str) -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise typer.BadParameter(f"Unknown log level: {level}")
    logging.basicConfig(
        level=numeric,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _default_extension_root() -> Path:
    return Path.cwd()


def build_host(root: Path, *, echo: Callable[[str], None] | None = None) -> HeadlessHost:
    root = root.resolve()
    store = ConfigurationStore.from_workspace(root)
    return HeadlessHost(configuration=store, folders=[root], echo=echo)


@app.command("resolve")
def resolve(
    root: Path = typer.Option(Path("."), "--root", help="Workspace root holding luals-bridge.toml."),
    extension_root: Optional[Path] = typer.Option(
        None, "--extension-root", help="Directory containing the bundled server/ tree."
    ),
    log_level: str = _LOG_LEVEL_OPTION,
) -> None:
    """Print the language server command line the bridge would run."""
    _configure_logging(log_level)
    host = build_host(root)
    scope = root.resolve().as_uri()
    try:
        command = resolve_server_command(
            host.get_configuration(EXECUTABLE_PATH_KEY, scope),
            extension_root or _default_extension_root(),
        )
        args = server_arguments(host.get_configuration(PARAMETERS_KEY, scope))
    except ConfigurationError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc
    typer.echo(" ".join([command, *args]))


async def _run_headless(
    ctx: BridgeContext, host: HeadlessHost, files: list[Path], linger: float
) -> None:
    activate(ctx)
    try:
        await open_existing_documents(ctx)
        for path in files:
            await host.open_document(Document.from_path(path))
        if ctx.session is not None and ctx.session.running:
            await asyncio.sleep(linger)
    finally:
        await deactivate(ctx)


@app.command("open")
def open_files(
    files: List[Path] = typer.Argument(..., help="Lua source files to open."),
    root: Path = typer.Option(Path("."), "--root"),
    extension_root: Optional[Path] = typer.Option(None, "--extension-root"),
    linger: float = typer.Option(5.0, "--linger", help="Seconds to keep the session alive."),
    log_level: str = _LOG_LEVEL_OPTION,
) -> None:
    """Run a headless bridge session over FILES and echo status updates."""
    _configure_logging(log_level)
    host = build_host(root, echo=typer.echo)
    ctx = BridgeContext(host=host, extension_root=extension_root or _default_extension_root())
    asyncio.run(_run_headless(ctx, host, list(files), linger))
    if host.errors:
        raise typer.Exit(code=1)


@app.command("config")
def config(
    changes_path: Path = typer.Argument(..., help="JSON file with a list of change descriptors; '-' reads stdin."),
    root: Path = typer.Option(Path("."), "--root"),
    log_level: str = _LOG_LEVEL_OPTION,
) -> None:
    """Apply a local configuration batch and print the resulting values."""
    _configure_logging(log_level)
    raw = sys.stdin.read() if str(changes_path) == "-" else changes_path.read_text(encoding="utf-8")
    try:
        changes = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"Invalid JSON payload: {exc}") from exc
    if not isinstance(changes, list):
        raise typer.BadParameter("Configuration changes must be a JSON list.")
    host = build_host(root)
    ctx = BridgeContext(host=host, extension_root=_default_extension_root())
    activate(ctx)
    try:
        host.execute_command(LOCAL_CONFIG_COMMAND, changes)
    except (ValidationError, ConfigurationError) as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc
    result = {
        str(change.get("key")): host.get_configuration(str(change.get("key")), change.get("uri"))
        for change in changes
    }
    typer.echo(json.dumps(result, indent=2, sort_keys=True))


if __name__ == "__main__":  # pragma: no cover
    app()
