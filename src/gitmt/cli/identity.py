"""Identity mutation commands: add, change, remove."""

from __future__ import annotations

import sys

import click
from rich.markup import escape

from ..errors import AliasInUse, NotFound, StepFailed
from ..models import alias_from_name
from ._common import GITMT_HOME, HOME_HELP, console, open_runtime, report_step_failure, scope_for


def register_identity_commands(main: click.Group) -> None:
    """Register add, change, and remove."""

    @main.command("add")
    @click.option("-n", "--name", required=True, help="Git user name.")
    @click.option("-e", "--email", required=True, help="Git user email.")
    @click.option("-a", "--alias", default=None,
                  help="SSH host alias suffix (github.com-<alias>). Defaults to the name.")
    @click.option("-l", "--local", is_flag=True, help="Set as local git config.")
    @click.option("--home", default=GITMT_HOME, type=click.Path(), help=HOME_HELP)
    def add(name, email, alias, local, home):
        """Add a new git user."""
        runtime, registry = open_runtime(home)
        alias = alias or alias_from_name(name)

        try:
            result = runtime.engine.add(registry, name, email, alias, scope_for(local))
        except AliasInUse as exc:
            console.print(f"\n  [yellow]{exc}.[/] Pick another with --alias.\n")
            return
        except ValueError as exc:
            console.print(f"\n  [red]Error:[/] {escape(str(exc))}\n")
            sys.exit(1)
        except StepFailed as exc:
            report_step_failure(exc)

        identity = result.identity
        if identity.ssh_key_path.exists():
            console.print(f"  SSH key: [dim]{identity.ssh_key_path}[/]")
        console.print(f"  SSH host: [cyan]{runtime.aliases.host_alias(identity.alias)}[/]")
        if result.registry.active_user == identity.id:
            console.print(f"  [green]Active[/] ({scope_for(local).value} git config)")
        console.print(f"Added user {identity.name} (ID: {identity.id})")

    @main.command("change")
    @click.argument("user_id", metavar="ID", type=int)
    @click.option("-l", "--local", is_flag=True, help="Set as local git config.")
    @click.option("--home", default=GITMT_HOME, type=click.Path(), help=HOME_HELP)
    def change(user_id, local, home):
        """Switch to a different git user."""
        runtime, registry = open_runtime(home)

        try:
            result = runtime.engine.change(registry, user_id, scope_for(local))
        except NotFound as exc:
            console.print(str(exc))
            return
        except StepFailed as exc:
            report_step_failure(exc)

        console.print(f"Switched to user: {result.identity.label()}")

    @main.command("remove")
    @click.argument("user_id", metavar="ID", type=int)
    @click.option("--home", default=GITMT_HOME, type=click.Path(), help=HOME_HELP)
    def remove(user_id, home):
        """Remove a git user."""
        runtime, registry = open_runtime(home)

        try:
            result = runtime.engine.remove(registry, user_id)
        except NotFound as exc:
            console.print(str(exc))
            return
        except StepFailed as exc:
            report_step_failure(exc)

        for failure in result.report.failures:
            console.print(f"  [red]Error during {failure.name}:[/] {escape(str(failure.error))}")
        console.print(f"Removed user {result.identity.name} (ID: {user_id})")
