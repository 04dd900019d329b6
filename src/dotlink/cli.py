"""Command-line interface for dotlink."""

from __future__ import annotations

import io
import logging
import sys
from pathlib import Path
from typing import Iterable

import tomli_w
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import DEFAULT_CONFIG_FILENAME, ConfigError, load_config
from .errors import DotlinkError
from .manager import DotlinkManager
from .models import Availability, Component, InstallState, ReconcileIssue

app = typer.Typer(help="Link managed dotfiles into place for the applications installed here")
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only report errors"),
) -> None:
    """Link managed dotfiles into place."""

    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    _configure_logging(level)


def _configure_logging(level: int) -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    handler = RichHandler(console=Console(stderr=True), show_time=False, show_path=False)
    root.addHandler(handler)
    root.setLevel(level)


def _load_manager(config: Path | None) -> DotlinkManager:
    config_obj = load_config(config)
    return DotlinkManager(config_obj)


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Re-run the command with elevated privileges.")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{message}[/red]")
        if "does not exist" in message and DEFAULT_CONFIG_FILENAME in message:
            console.print("[yellow]Use 'dotlink init --config <path>' to create a configuration file.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, DotlinkError):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    raise exc


def _is_elevated() -> bool:
    if sys.platform != "win32":
        return True
    import ctypes

    try:
        return bool(ctypes.windll.shell32.IsUserAnAdmin())  # type: ignore[attr-defined]
    except (AttributeError, OSError):
        return False


_AVAILABILITY_STYLES = {
    Availability.AVAILABLE: "green",
    Availability.ALWAYS_INSTALL: "green",
    Availability.UNAVAILABLE: "yellow",
    Availability.IGNORED: "dim",
    Availability.NEVER_INSTALL: "dim",
    Availability.NO_LOGIC: "dim",
    Availability.DETECTION_FAILURE: "red",
}

_STATE_STYLES = {
    InstallState.INSTALLED: "green",
    InstallState.NOT_INSTALLED: "yellow",
    InstallState.PARTIAL_INSTALL: "red",
    InstallState.UNKNOWN: "magenta",
    InstallState.NOT_EVALUATED: "dim",
}


def _format_components(components: Iterable[Component]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Component")
    table.add_column("Name")
    table.add_column("Availability")
    table.add_column("State")
    table.add_column("Install path", overflow="fold")

    for component in components:
        availability_style = _AVAILABILITY_STYLES.get(component.availability, "white")
        state_style = _STATE_STYLES.get(component.state, "white")
        table.add_row(
            component.name,
            component.friendly_name or "",
            f"[{availability_style}]{component.availability.value}[/{availability_style}]",
            f"[{state_style}]{component.state.value}[/{state_style}]",
            str(component.install_path) if component.install_path else "",
        )

    console.print(table)


def _format_issues(issues: Iterable[ReconcileIssue]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Component")
    table.add_column("Issue")
    table.add_column("Source", overflow="fold")
    table.add_column("Target", overflow="fold")
    table.add_column("Details", overflow="fold")

    for issue in issues:
        style = "red" if issue.kind.is_error else "yellow"
        table.add_row(
            issue.component,
            f"[{style}]{issue.kind.value}[/{style}]",
            str(issue.source),
            str(issue.target) if issue.target else "",
            issue.message,
        )

    console.print(table)


def _render_init_config(*, dotfiles_path: str, autodetect: bool, global_metadata_path: str | None) -> str:
    settings: dict[str, object] = {
        "dotfiles_path": dotfiles_path,
        "autodetect": autodetect,
    }
    if global_metadata_path:
        settings["global_metadata_path"] = global_metadata_path

    buffer = io.StringIO()
    buffer.write("# dotlink configuration\n\n")
    buffer.write(tomli_w.dumps({"settings": settings}))
    return buffer.getvalue()


@app.command()
def init(
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILENAME),
        "--config",
        "-c",
        help="Path to write the configuration file",
        dir_okay=False,
        writable=True,
    ),
    dotfiles_path: str = typer.Option(
        "~/dotfiles",
        "--dotfiles-path",
        help="Directory holding one subdirectory per component",
    ),
    autodetect: bool = typer.Option(
        False,
        "--autodetect/--no-autodetect",
        help="Detect components without metadata by matching installed software",
    ),
    global_metadata_path: str | None = typer.Option(
        None,
        "--global-metadata",
        help="Directory with shared <component>.toml metadata documents",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config if present"),
) -> None:
    """Create a starter dotlink configuration file."""

    config_path = config
    if config_path.exists() and not force:
        console.print(f"[red]Configuration '{config_path}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1)

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_text = _render_init_config(
        dotfiles_path=dotfiles_path,
        autodetect=autodetect,
        global_metadata_path=global_metadata_path,
    )
    config_path.write_text(config_text)
    console.print(f"[green]Created '{config_path}'.[/green]")


@app.command()
def discover(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
    component: list[str] = typer.Option(None, "--component", "-n", help="Limit to specific component(s)"),
) -> None:
    """Detect components and show whether their files are linked."""

    try:
        manager = _load_manager(config)
        components = manager.discover(component or None)
        _format_components(components)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


def _run_reconcile(
    config: Path | None,
    names: list[str] | None,
    *,
    removal: bool,
    simulate: bool,
    yes: bool,
    force: bool,
) -> None:
    try:
        if not simulate and not force and not _is_elevated():
            raise DotlinkError("Creating symlinks requires administrator rights. Re-run elevated or use --simulate.")

        manager = _load_manager(config)
        if not simulate and not yes:
            targets = ", ".join(names) if names else "all installable components"
            verb = "Remove links for" if removal else "Link"
            typer.confirm(f"{verb} {targets}?", abort=True)

        if removal:
            components = manager.remove(names, simulate=simulate)
        else:
            components = manager.install(names, simulate=simulate)
        _format_components(components)

        issues = manager.pull_issues()
        if issues:
            _format_issues(issues)
        if simulate:
            console.print("[yellow]Simulation only; no links were changed.[/yellow]")
        if any(issue.kind.is_error for issue in issues):
            console.print("[red]Some entries could not be reconciled. Resolve the conflicts above and re-run.[/red]")
            raise typer.Exit(code=1)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def install(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
    component: list[str] = typer.Option(None, "--component", "-n", help="Limit to specific component(s)"),
    simulate: bool = typer.Option(False, "--simulate", help="Report what would be linked without changing anything"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    force: bool = typer.Option(False, "--force", help="Skip the administrator preflight check"),
) -> None:
    """Symlink the files of every available component into place."""

    _run_reconcile(config, component or None, removal=False, simulate=simulate, yes=yes, force=force)


@app.command()
def remove(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
    component: list[str] = typer.Option(None, "--component", "-n", help="Limit to specific component(s)"),
    simulate: bool = typer.Option(False, "--simulate", help="Report what would be removed without changing anything"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    force: bool = typer.Option(False, "--force", help="Skip the administrator preflight check"),
) -> None:
    """Remove the symlinks dotlink created for every available component."""

    _run_reconcile(config, component or None, removal=True, simulate=simulate, yes=yes, force=force)


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
