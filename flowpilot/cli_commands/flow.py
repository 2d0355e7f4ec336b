"""
Flow Commands - Lint and advance a plan.

Commands:
- lint: Check a plan against the FlowPilot rules
- next: Lint, then advance the plan by one stage
- restore: Reset state.md to its committed content
"""

import logging
import sys

import click

from flowpilot.cli_commands.common import (
    echo_lint_errors,
    fail,
    get_manager,
    lint_plan,
    open_repository,
    resolve_plan,
)
from flowpilot.git_ops import GitError
from flowpilot.transitions import TransitionError, advance


logger = logging.getLogger(__name__)


def register(cli):
    """Register flow commands with CLI."""

    @cli.command()
    @click.argument("plan_name", required=False)
    @click.pass_context
    def lint(ctx, plan_name: str):
        """Check that a plan follows the FlowPilot rules.

        PLAN_NAME: Plan to check (optional when only one plan exists)
        """
        manager = get_manager(ctx)
        name = resolve_plan(manager, plan_name)

        _, errors = lint_plan(manager, name)
        if errors:
            echo_lint_errors(errors)
            sys.exit(1)

        click.echo("✓ Lint passed - plan follows FlowPilot rules")

    @cli.command("next")
    @click.argument("plan_name", required=False)
    @click.option("--stage", "stage_state", is_flag=True,
                  help="Stage state.md with git after advancing.")
    @click.pass_context
    def next_cmd(ctx, plan_name: str, stage_state: bool):
        """Advance a plan to its next stage.

        Runs lint first and refuses to advance while any rule is broken.

        PLAN_NAME: Plan to advance (optional when only one plan exists)
        """
        manager = get_manager(ctx)
        name = resolve_plan(manager, plan_name)

        context, errors = lint_plan(manager, name)
        if errors:
            echo_lint_errors(errors)
            click.echo()
            click.echo("❌ Cannot proceed - lint check failed. Fix the issues above first.")
            sys.exit(1)

        try:
            result = advance(context)
        except TransitionError as e:
            fail(str(e))

        for message in result.messages:
            click.echo(message)

        if stage_state and not result.finished:
            try:
                context.repo.stage_file(context.state_file_relpath())
            except GitError as e:
                fail(str(e))
            logger.debug(f"Staged {context.state_file_relpath()}")

    @cli.command()
    @click.argument("plan_name", required=False)
    @click.pass_context
    def restore(ctx, plan_name: str):
        """Reset state.md to its committed content.

        Use this when `flowpilot next` reports a merge boundary because
        state.md was edited by hand.

        PLAN_NAME: Plan to restore (optional when only one plan exists)
        """
        manager = get_manager(ctx)
        name = resolve_plan(manager, plan_name)

        repo = open_repository(manager.root)
        try:
            path = repo.relative_path(manager.state_file_path(name))
            repo.reset_file(path)
        except GitError as e:
            fail(str(e))

        click.echo(f"✓ Restored {path}")
