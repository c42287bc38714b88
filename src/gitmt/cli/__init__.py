"""
gitmt CLI: switch between git identities.

Commands live in modular files and are registered onto the main Click
group through register functions.

Entry point: gitmt.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="gitmt")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
def main(verbose: bool):
    """CLI tool to manage multiple git accounts."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )


from .identity import register_identity_commands
from .info import register_info_commands

register_identity_commands(main)
register_info_commands(main)
