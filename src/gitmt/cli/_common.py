"""Shared utilities for the CLI command modules.

Provides the Rich console instance, runtime construction with
interactive prompts, and the error reporting every command uses.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from .. import GITMT_HOME
from ..errors import CorruptConfig, IOFailure, StepFailed
from ..models import GitScope, Registry
from ..runtime import GitmtRuntime

console = Console()

HOME_HELP = "gitmt home directory (holds config.json and config.yaml)."


def confirm(message: str, default: bool) -> bool:
    """Interactive yes/no prompt backed by click."""
    return click.confirm(message, default=default)


def scope_for(local: bool) -> GitScope:
    return GitScope.LOCAL if local else GitScope.GLOBAL


def open_runtime(home: str) -> tuple[GitmtRuntime, Registry]:
    """Build the runtime and load the registry, exiting 1 if it cannot be read.

    Args:
        home: gitmt home directory from ``--home``.

    Returns:
        tuple: The runtime and the loaded registry.
    """
    runtime = GitmtRuntime(home=Path(home).expanduser(), confirm=confirm, cwd=Path.cwd())
    try:
        registry = runtime.load_registry()
    except (CorruptConfig, IOFailure) as exc:
        console.print(f"\n  [red]Error:[/] {escape(str(exc))}\n")
        sys.exit(1)
    return runtime, registry


def report_step_failure(exc: StepFailed) -> None:
    """Print which steps completed before ``exc`` and exit 1."""
    console.print(f"\n  [red]Error:[/] {escape(str(exc))}")
    if exc.report is not None:
        if exc.report.completed:
            console.print(f"  Completed: {', '.join(exc.report.completed)}")
        if exc.report.skipped:
            console.print(f"  [dim]Not run: {', '.join(exc.report.skipped)}[/]")
    console.print()
    sys.exit(1)


