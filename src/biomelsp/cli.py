"""Command-line interface for biomelsp."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

from rich.console import Console
from rich.table import Table

from biomelsp import __version__
from biomelsp.config import Config, ConfigWatcher, load_config
from biomelsp.host.local import create_local_host
from biomelsp.host.protocol import TextDocument
from biomelsp.locator import BinaryLocator
from biomelsp.logging import get_logger, setup_logging
from biomelsp.orchestrator import Orchestrator
from biomelsp.registry import ProjectRegistry

console = Console()
log = get_logger("cli")


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="biomelsp",
        description="Run and inspect Biome language server sessions for a set of folders",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=None,
        help="Increase verbosity (can be repeated)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Additional config file, applied over system and user config",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    run_parser = subparsers.add_parser(
        "run",
        help="Keep one Biome session per project running until interrupted",
    )
    run_parser.add_argument("folders", nargs="*", type=Path, help="Workspace folders")
    run_parser.add_argument(
        "--open",
        dest="documents",
        action="append",
        type=Path,
        default=[],
        help="Open a file, as if focused in an editor (repeatable)",
    )
    run_parser.add_argument(
        "--untitled",
        action="store_true",
        help="Open an unsaved document, which starts the global session",
    )

    projects_parser = subparsers.add_parser(
        "projects",
        help="List the projects discovered in the given folders",
    )
    projects_parser.add_argument("folders", nargs="*", type=Path, help="Workspace folders")

    locate_parser = subparsers.add_parser(
        "locate",
        help="Show which Biome binary each project would use",
    )
    locate_parser.add_argument("folders", nargs="*", type=Path, help="Workspace folders")
    locate_parser.add_argument(
        "--global",
        dest="include_global",
        action="store_true",
        help="Also resolve the binary of the global session",
    )

    return parser


def _load(parsed: argparse.Namespace) -> Config:
    config = load_config(extra_file=parsed.config)
    if parsed.verbose is not None:
        config = replace(config, logging=replace(config.logging, verbose=parsed.verbose))
    setup_logging(config.logging)
    return config


async def run(config: Config, parsed: argparse.Namespace) -> int:
    host, settings, workspace = create_local_host(parsed.folders, config, config_file=parsed.config)
    for path in parsed.documents:
        workspace.open_document(TextDocument.from_path(path))
    if parsed.untitled:
        workspace.open_document(TextDocument.from_uri("untitled:Untitled-1"), activate=False)

    orchestrator = Orchestrator(host, config)
    watcher = ConfigWatcher(settings.reload, paths=settings.watched_paths)

    await orchestrator.activate()
    print_sessions(orchestrator)
    watcher.start()
    try:
        await asyncio.Event().wait()
    finally:
        watcher.stop()
        await orchestrator.deactivate()
        host.watchers.close()
    return 0


def print_sessions(orchestrator: Orchestrator) -> None:
    table = Table(title="Sessions")
    table.add_column("Session", style="bold")
    table.add_column("State")
    table.add_column("Binary")

    for session in [*orchestrator.sessions.values(), orchestrator.global_session]:
        if session is None:
            continue
        state = session.state.value
        if session.error is not None:
            state = f"[red]{state}[/red]: {session.error}"
        table.add_row(session.name, state, str(session.binary_path or "-"))

    console.print(table)


def show_projects(config: Config, parsed: argparse.Namespace) -> int:
    host, _, _ = create_local_host(parsed.folders, config, config_file=parsed.config)
    projects = ProjectRegistry(host).discover_projects()
    if not projects:
        console.print("[yellow]No projects found[/yellow]")
        return 1

    table = Table(title="Projects")
    table.add_column("Project", style="bold")
    table.add_column("Directory")
    table.add_column("Config file")
    for project in projects:
        table.add_row(project.name, str(project.uri), str(project.config_file or "-"))
    console.print(table)
    return 0


async def locate(config: Config, parsed: argparse.Namespace) -> int:
    host, _, _ = create_local_host(parsed.folders, config, config_file=parsed.config)
    locator = BinaryLocator(host, probe_timeout=config.session.probe_timeout)
    targets = list(ProjectRegistry(host).discover_projects())
    if parsed.include_global:
        targets.append(None)

    table = Table(title=f"Biome binaries ({locator.platform.identifier})")
    table.add_column("Project", style="bold")
    table.add_column("Binary")
    table.add_column("Found by")

    missing = 0
    for project in targets:
        located = await locator.resolve(project)
        name = project.name if project is not None else "global"
        if located is None:
            missing += 1
            table.add_row(name, "[red]not found[/red]", "-")
        else:
            table.add_row(name, str(located.path), located.kind.value)
    console.print(table)
    return 1 if missing else 0


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return 1

    config = _load(parsed)

    if parsed.command == "run":
        try:
            return asyncio.run(run(config, parsed))
        except KeyboardInterrupt:
            log.info("Interrupted")
            return 0
    elif parsed.command == "projects":
        return show_projects(config, parsed)
    elif parsed.command == "locate":
        return asyncio.run(locate(config, parsed))
    else:
        parser.print_help()
        return 1


def main(argv: Sequence[str] | None = None) -> int:
    return run_cli(sys.argv[1:] if argv is None else argv)
