"""
Shared helpers for CLI commands: plan resolution and repository access.
"""

import sys
from typing import List, NoReturn, Optional, Tuple

import click

from flowpilot.config import load_config
from flowpilot.git_ops import GitError, GitRepository
from flowpilot.lint import run_lint
from flowpilot.plan import PlanContext, PlanManager
from flowpilot.urls import UrlChecker


def fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def get_manager(ctx: click.Context) -> PlanManager:
    return PlanManager(ctx.obj["root"])


def resolve_plan(manager: PlanManager, plan_name: Optional[str]) -> str:
    """Pick the plan a command works on.

    An explicit name must exist. Without one, the only plan is used.
    No plans at all is a successful no-op (exit 0); several plans
    without a name is an error (exit 1).
    """
    if plan_name:
        if not manager.plan_exists(plan_name):
            fail(f"Plan '{plan_name}' not found")
        return plan_name

    plans = manager.list_plans()
    if not plans:
        click.echo("No current plans. Successful exit.")
        sys.exit(0)
    if len(plans) > 1:
        click.echo("Error: Multiple plans exist. Please specify a plan name.", err=True)
        click.echo(f"Available plans: {', '.join(plans)}", err=True)
        sys.exit(1)

    click.echo(f"Using default plan: {plans[0]}")
    return plans[0]


def open_repository(root: str) -> GitRepository:
    """GitRepository rooted at the top of the working tree containing root."""
    try:
        top = GitRepository(root).root()
    except GitError as e:
        fail(str(e))
    return GitRepository(top)


def lint_plan(manager: PlanManager, plan_name: str) -> Tuple[PlanContext, List[str]]:
    """Build the plan context and run every lint rule against it."""
    repo = open_repository(manager.root)
    config = load_config(manager.root)
    checker = UrlChecker(timeout=config.url_timeout, max_workers=config.url_check_workers)

    try:
        context = manager.build_context(plan_name, repo=repo, config=config, url_checker=checker)
        errors = run_lint(context)
    except GitError as e:
        fail(str(e))
    return context, errors


def echo_lint_errors(errors: List[str]) -> None:
    click.echo("❌ Lint failed with the following errors:")
    click.echo()
    for error in errors:
        click.echo(f"  • {error}")
    click.echo()
    click.echo("Fix these issues and try again.")
