"""
Guidance Commands - Read-only views of a plan.

Commands:
- status: Checklist progress and the next stage
- verify: Verification requirements of the current phase
- stuck: Prompt for analysing a blocked phase
- unstuck: Prompt for resuming after an option was chosen
"""

import sys

import click

from flowpilot.cli_commands.common import fail, get_manager, resolve_plan
from flowpilot.guidance import (
    extract_verification_section,
    stuck_phase,
    stuck_prompt,
    unstuck_prompt,
    verification_phase,
)
from flowpilot.models import PlanState
from flowpilot.state_parser import parse_checklist
from flowpilot.transitions import current_stage


def _load_initialized_state(manager, name: str) -> PlanState:
    state = manager.get_current_state(name)
    if not state.is_initialized:
        fail(f"Plan '{name}' is not initialized. Run 'flowpilot new {name}' first")
    return state


def _exit_without_phases(state: PlanState) -> None:
    if not state.has_phase_details:
        click.echo("No phases defined yet. Complete the planning stages first.")
        sys.exit(0)
    fail("No phases found in the plan.")


def register(cli):
    """Register guidance commands with CLI."""

    @cli.command()
    @click.argument("plan_name", required=False)
    @click.pass_context
    def status(ctx, plan_name: str):
        """Show checklist progress for a plan."""
        manager = get_manager(ctx)
        name = resolve_plan(manager, plan_name)
        state = manager.get_current_state(name)

        click.echo(f"Plan: {name}")
        click.echo()
        for item in parse_checklist(manager.fs.read_text(manager.state_file_path(name))):
            mark = "x" if item.is_checked else " "
            indent = "    " if item.is_phase else "  "
            suffix = ""
            if item.is_phase:
                phase = state.get_phase(item.phase_number)
                if phase is not None and phase.is_pull_request_boundary:
                    suffix = " (PR boundary)"
            click.echo(f"{indent}[{mark}] {item.identifier}: {item.description}{suffix}")
        click.echo()

        stage = current_stage(state)
        if not state.is_initialized:
            click.echo(f"Next: run 'flowpilot new {name}' to initialize the plan")
        elif stage is None:
            click.echo("✓ All phases complete! Plan finished.")
        else:
            click.echo(f"Next stage: {stage.value}")

    @cli.command()
    @click.argument("plan_name", required=False)
    @click.pass_context
    def verify(ctx, plan_name: str):
        """Show verification requirements for the current phase."""
        manager = get_manager(ctx)
        name = resolve_plan(manager, plan_name)
        state = _load_initialized_state(manager, name)

        phase = verification_phase(state)
        if phase is None:
            _exit_without_phases(state)
        if state.all_phases_complete():
            click.echo("All phases are complete. Checking verification for the last phase.")

        details_path = manager.phase_details_path(name, phase.phase_number)
        if not manager.fs.exists(details_path):
            click.echo(f"Phase {phase.phase_number} details file not found: {manager.relative(details_path)}")
            click.echo("No verification requirements defined for this phase.")
            return

        section = extract_verification_section(manager.fs.read_text(details_path))
        if section is None:
            click.echo(f"Phase {phase.phase_number} has no verification section defined.")
            click.echo("No verification requirements for this phase.")
            return

        click.echo(f"Verification requirements for phase {phase.phase_number} ({phase.phase_name}):")
        click.echo()
        click.echo("Please run all verification actions listed below and fix any errors found:")
        click.echo()
        for line in section:
            click.echo(line)

    @cli.command()
    @click.argument("plan_name", required=False)
    @click.pass_context
    def stuck(ctx, plan_name: str):
        """Analyse a phase that cannot be completed as planned."""
        manager = get_manager(ctx)
        name = resolve_plan(manager, plan_name)
        state = _load_initialized_state(manager, name)

        phase = stuck_phase(state)
        if phase is None:
            _exit_without_phases(state)
        for line in stuck_prompt(name, phase.phase_number):
            click.echo(line)

    @cli.command()
    @click.argument("plan_name", required=False)
    @click.pass_context
    def unstuck(ctx, plan_name: str):
        """Resume a stuck phase once an option has been chosen."""
        manager = get_manager(ctx)
        name = resolve_plan(manager, plan_name)
        state = _load_initialized_state(manager, name)

        phase = stuck_phase(state)
        if phase is None:
            _exit_without_phases(state)
        for line in unstuck_prompt(name, phase.phase_number):
            click.echo(line)
