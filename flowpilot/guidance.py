"""
Phase guidance: verification requirements and stuck/unstuck prompts.

These never change the plan. They pick the relevant phase from the
plan state and turn its documents into text for the operator.
"""

from typing import List, Optional

from flowpilot.models import PhaseState, PlanState


VERIFICATION_HEADER = "### verification"


def verification_phase(state: PlanState) -> Optional[PhaseState]:
    """First incomplete phase, or the last one once all are complete."""
    phase = state.next_incomplete_phase()
    if phase is None and state.phases:
        return state.phases[-1]
    return phase


def stuck_phase(state: PlanState) -> Optional[PhaseState]:
    """The phase being worked on: the last checked one, else the last one."""
    checked = [p for p in state.phases if p.is_complete]
    if checked:
        return checked[-1]
    return state.phases[-1] if state.phases else None


def extract_verification_section(content: str) -> Optional[List[str]]:
    """Non-blank lines under `### Verification`, up to the next ### header.

    Returns None when the document has no verification section.
    """
    lines = content.replace("\r\n", "\n").split("\n")
    start = None
    for i, line in enumerate(lines):
        if line.strip().lower().startswith(VERIFICATION_HEADER):
            start = i + 1
            break
    if start is None:
        return None

    section = []
    for line in lines[start:]:
        if line.startswith("###"):
            break
        if line.strip():
            section.append(line)
    return section


def stuck_prompt(plan_name: str, phase_number: int) -> List[str]:
    analysis = f".flowpilot/plans/{plan_name}/meta/phase-{phase_number}-stuck-analysis.md"
    return [
        f"It looks like you're stuck on phase {phase_number} and unable to carry out "
        "the plan successfully as described.",
        "The user has requested some analysis to help you both understand the challenges "
        "and refine the plan together.",
        "Based on your understanding of the challenges, present a series of options in the "
        f".flowpilot/template/key-decisions.md format saved to {analysis} "
        "and report them to the user for guidance.",
    ]


def unstuck_prompt(plan_name: str, phase_number: int) -> List[str]:
    plan_root = f".flowpilot/plans/{plan_name}"
    return [
        f"It looks like you're stuck on phase {phase_number} and unable to carry out "
        "the plan successfully as described.",
        "The user has approved the selected option in "
        f"{plan_root}/meta/phase-{phase_number}-stuck-analysis.md as the way forward.",
        f"Update {plan_root}/meta/phase-analysis.md and "
        f"{plan_root}/plan/phase-{phase_number}-details.md to reflect this.",
        "Afterwards, please proceed to carry out the updated plan now that you are unstuck.",
    ]
