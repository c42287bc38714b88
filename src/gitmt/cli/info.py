"""Read-only commands: current, list, global, key.

None of these write to the registry, the SSH config, or git.
"""

from __future__ import annotations

import json

import click
from rich.table import Table

from ..errors import NotFound
from ._common import GITMT_HOME, HOME_HELP, console, open_runtime


def register_info_commands(main: click.Group) -> None:
    """Register current, list, global, and key."""

    @main.command("current")
    @click.option("--home", default=GITMT_HOME, type=click.Path(), help=HOME_HELP)
    def current(home):
        """Show current active git user."""
        runtime, registry = open_runtime(home)

        user = runtime.engine.current(registry)
        if user is None:
            console.print("No active git user")
            return
        console.print(f"Current active user: {user.label()} (ID: {user.id})")

    @main.command("list")
    @click.option("--home", default=GITMT_HOME, type=click.Path(), help=HOME_HELP)
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def list_users(home, json_out):
        """List all git users."""
        runtime, registry = open_runtime(home)
        users = runtime.engine.list_identities(registry)

        if json_out:
            click.echo(json.dumps(registry.model_dump(mode="json", by_alias=True), indent=2))
            return

        if not users:
            console.print("No users configured")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2),
                      title="Configured git users")
        table.add_column("ID", justify="right")
        table.add_column("Name", style="cyan")
        table.add_column("Email")
        table.add_column("Alias", style="dim")
        table.add_column("Key")
        table.add_column("")

        for user in users:
            has_key = "[green]yes[/]" if user.public_key_path.exists() else "[yellow]no[/]"
            marker = "[bold green](active)[/]" if user.id == registry.active_user else ""
            table.add_row(str(user.id), user.name, user.email, user.alias, has_key, marker)

        console.print(table)

    @main.command("global")
    @click.option("--home", default=GITMT_HOME, type=click.Path(), help=HOME_HELP)
    def show_global(home):
        """Show saved global git config."""
        runtime, registry = open_runtime(home)

        saved = runtime.engine.saved_global(registry)
        if saved is None:
            console.print("No saved global git config")
            return
        console.print("Saved global git config:")
        console.print(f"Name: {saved.name or '(unset)'}")
        console.print(f"Email: {saved.email or '(unset)'}")

    @main.command("key")
    @click.argument("user_id", metavar="ID", type=int)
    @click.option("--home", default=GITMT_HOME, type=click.Path(), help=HOME_HELP)
    def key(user_id, home):
        """Show public SSH key for a user."""
        runtime, registry = open_runtime(home)

        try:
            public_key = runtime.engine.public_key(registry, user_id)
        except NotFound as exc:
            console.print(str(exc))
            return

        name = registry.find_by_id(user_id).name
        if public_key is None:
            console.print(f"No SSH key found for user {name}")
            return
        console.print(f"Public SSH key for {name}:")
        click.echo(public_key.rstrip("\n"))
