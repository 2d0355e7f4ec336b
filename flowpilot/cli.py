"""
FlowPilot CLI - Plan features one stage at a time, enforced by git.

Commands:
- Setup: init, new, list
- Flow: lint, next, restore
- Guidance: status, verify, stuck, unstuck
"""

import logging
import os

import click

from flowpilot import __version__
from flowpilot.cli_commands import register_all


@click.group()
@click.version_option(version=__version__)
@click.option("-p", "--project", "project", default=None, type=click.Path(file_okay=False),
              help="Repository root (defaults to the current directory).")
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
@click.pass_context
def cli(ctx: click.Context, project: str, verbose: bool):
    """FlowPilot - Git-aware feature planning.

    Walks a plan through references, system analysis, key decisions,
    phase analysis, phase details and phase implementation, refusing to
    advance when the plan breaks its branch and review boundaries.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["root"] = os.path.abspath(project or os.getcwd())


register_all(cli)


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
