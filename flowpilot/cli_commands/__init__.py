"""
FlowPilot CLI Commands - Modular command structure.

Structure:
    cli_commands/
    ├── __init__.py      # This file - registration
    ├── common.py        # plan resolution, shared error reporting
    ├── setup.py         # init, new, list
    ├── flow.py          # lint, next, restore
    └── guidance.py      # status, verify, stuck, unstuck

Usage:
    from flowpilot.cli_commands import register_all

    @click.group()
    def cli():
        pass

    register_all(cli)
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_all(cli: "click.Group") -> None:
    """Register all command modules with the CLI group.

    Args:
        cli: The Click group to register commands with
    """
    from . import setup
    from . import flow
    from . import guidance

    setup.register(cli)
    flow.register(cli)
    guidance.register(cli)
