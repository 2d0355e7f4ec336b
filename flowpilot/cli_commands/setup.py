"""
Setup Commands - Installation and plan creation.

Commands:
- init: Install FlowPilot into the repository (optionally create a plan)
- new: Create a plan
- list: List plans
"""

import sys

import click

from flowpilot.cli_commands.common import fail, get_manager
from flowpilot.plan import AGENT_FILE, PlanManager


def _create_plan(manager: PlanManager, plan_name: str) -> None:
    click.echo(f"Creating FlowPilot plan: {plan_name}")
    try:
        manager.initialize_plan(plan_name)
    except ValueError as e:
        fail(str(e))

    click.echo(f"✓ Plan '{plan_name}' created successfully")
    click.echo()
    click.echo("Next steps:")
    click.echo(f"1. Update .flowpilot/plans/{plan_name}/meta/goal.md with your feature requirements")
    click.echo("2. Commit this change to your repository")
    click.echo(f"3. Run 'flowpilot next {plan_name}' to continue")


def register(cli):
    """Register setup commands with CLI."""

    @cli.command()
    @click.argument("plan_name", required=False)
    @click.pass_context
    def init(ctx, plan_name: str):
        """Install FlowPilot into the repository.

        Writes .flowpilot/config.json, the stage templates under
        .flowpilot/template/ and agent instructions under .github/agents/.

        PLAN_NAME: Also create this plan
        """
        manager = get_manager(ctx)

        if manager.is_installed():
            if not plan_name:
                click.echo("⚠️  FlowPilot appears to already be installed in this repository.")
                click.echo("To reinstall, delete .flowpilot/config.json and "
                           f"{AGENT_FILE} and run init again.")
                sys.exit(1)
        else:
            click.echo("Installing FlowPilot into repository...")
            written = manager.install()
            click.echo("✓ FlowPilot installed successfully!")
            click.echo()
            click.echo("Files installed:")
            for path in written:
                click.echo(f"  • {path}")
            click.echo()
            if not plan_name:
                click.echo("Next steps:")
                click.echo("  1. Commit these files to your repository")
                click.echo("  2. Run 'flowpilot new <plan-name>' to create your first plan")
                return

        _create_plan(manager, plan_name)

    @cli.command()
    @click.argument("plan_name")
    @click.pass_context
    def new(ctx, plan_name: str):
        """Create a new plan.

        PLAN_NAME: Name of the plan (letters, digits, '.', '_', '-')
        """
        _create_plan(get_manager(ctx), plan_name)

    @cli.command("list")
    @click.pass_context
    def list_cmd(ctx):
        """List plans."""
        plans = get_manager(ctx).list_plans()
        if not plans:
            click.echo("No plans. Create one with: flowpilot new <plan-name>")
            return
        for name in plans:
            click.echo(name)
