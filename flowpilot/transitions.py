"""
Stage transitions for `flowpilot next`.

The plan moves through a fixed sequence of stages:

    references -> system-analysis -> key-decisions -> phase-analysis
        -> phase-details -> phase implementation (one per phase)

current_stage() picks the single stage the plan is about to enter and
advance() runs that stage's handler. Handlers compute every document
they write before the first write, so a failed transition leaves the
plan untouched.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from flowpilot.models import (
    KEY_DECISIONS_IDENTIFIER,
    PHASE_ANALYSIS_IDENTIFIER,
    PHASE_DETAILS_IDENTIFIER,
    PlanState,
    REFERENCES_IDENTIFIER,
    SYSTEM_ANALYSIS_IDENTIFIER,
    phase_identifier,
)
from flowpilot.phase_analysis import load_phases
from flowpilot.plan import PlanContext, phase_details_filename
from flowpilot.state_parser import add_phase_checklist_items, update_checklist_item


logger = logging.getLogger(__name__)


class TransitionError(Exception):
    """The plan cannot advance. Raised before anything is written."""


class Stage(Enum):
    REFERENCES = "references"
    SYSTEM_ANALYSIS = "system-analysis"
    KEY_DECISIONS = "key-decisions"
    PHASE_ANALYSIS = "phase-analysis"
    PHASE_DETAILS = "phase-n-details"
    PHASE_IMPLEMENTATION = "phase-implementation"


@dataclass
class Transition:
    """One stage: when it applies and what it does."""
    stage: Stage
    can_transition: Callable[[PlanState], bool]
    execute: Callable[[PlanContext], List[str]]


@dataclass
class TransitionResult:
    stage: Optional[Stage]
    messages: List[str] = field(default_factory=list)
    finished: bool = False


def _write_all(context: PlanContext, documents: Dict[str, str]) -> None:
    for path, content in documents.items():
        context.fs.write_text(path, content)


def _meta_relpath(context: PlanContext, filename: str) -> str:
    return f".flowpilot/plans/{context.plan_name}/meta/{filename}"


def _start_global_stage(context: PlanContext, identifier: str, document: str) -> None:
    """Copy a stage template into meta/ and check its checklist item."""
    state_content = context.fs.read_text(context.state_file_path)
    documents = {
        context.meta_path(document): context.templates.read_template(document),
        context.state_file_path: update_checklist_item(state_content, identifier, True),
    }
    _write_all(context, documents)
    logger.debug(f"Checked [{identifier}] for plan {context.plan_name}")


# ============================================================================
# Stage handlers
# ============================================================================

def _advance_to_references(context: PlanContext) -> List[str]:
    _start_global_stage(context, REFERENCES_IDENTIFIER, "references.md")
    return [
        "✓ Advanced to [references] phase",
        "",
        "Instructions:",
        f"Update {_meta_relpath(context, 'references.md')}",
        "Use web search and any available documentation sources to research the goal",
        "stated in goal.md. Document your findings in references.md to aid the",
        "implementation plan.",
    ]


def _advance_to_system_analysis(context: PlanContext) -> List[str]:
    _start_global_stage(context, SYSTEM_ANALYSIS_IDENTIFIER, "system-analysis.md")
    return [
        "✓ Advanced to [system-analysis] phase",
        "",
        "Instructions:",
        f"Update {_meta_relpath(context, 'system-analysis.md')}",
        "Analyze the current parts of the system that are relevant to the goal",
        "stated in goal.md and record them in system-analysis.md.",
    ]


def _advance_to_key_decisions(context: PlanContext) -> List[str]:
    _start_global_stage(context, KEY_DECISIONS_IDENTIFIER, "key-decisions.md")
    return [
        "✓ Advanced to [key-decisions] phase",
        "",
        "Instructions:",
        f"Update {_meta_relpath(context, 'key-decisions.md')}",
        "Document any decisions that need to be made based on the contents of",
        "goal.md, references.md, and system-analysis.md.",
        "",
        "⚠️  Note: A new branch is required to proceed past key-decisions.",
        "After committing, merge this branch before continuing with phase-analysis.",
    ]


def _advance_to_phase_analysis(context: PlanContext) -> List[str]:
    _start_global_stage(context, PHASE_ANALYSIS_IDENTIFIER, "phase-analysis.md")
    return [
        "✓ Advanced to [phase-analysis] phase",
        "",
        "Instructions:",
        f"Update {_meta_relpath(context, 'phase-analysis.md')}",
        "Based on the contents of goal.md, system-analysis.md, and key-decisions.md,",
        "define the high-level phases for this plan.",
        "",
        "⚠️  Note: A new branch is required to proceed past phase-analysis.",
        "After committing, merge this branch before continuing with phase-details.",
    ]


def _advance_to_phase_details(context: PlanContext) -> List[str]:
    """Write one details document per phase and add the phase rows.

    Raises:
        TransitionError: phase-analysis.md defines no phases
    """
    phases = load_phases(context.fs, context.meta_path("phase-analysis.md"))
    if not phases:
        raise TransitionError("No phases found in phase-analysis.md")

    template = context.templates.read_template("phase-n-details.md")
    documents = {}
    for phase in phases:
        path = context.phase_details_path(phase.phase_number)
        documents[path] = template.replace("phase_n", phase_identifier(phase.phase_number))

    state_content = context.fs.read_text(context.state_file_path)
    state_content = update_checklist_item(state_content, PHASE_DETAILS_IDENTIFIER, True)
    documents[context.state_file_path] = add_phase_checklist_items(state_content, phases)

    _write_all(context, documents)
    logger.debug(f"Created {len(phases)} phase detail files for plan {context.plan_name}")

    return [
        "✓ Advanced to [phase-n-details] phase",
        f"✓ Created {len(phases)} phase detail files",
        "",
        "Instructions:",
        f"Update each phase-*-details.md file in .flowpilot/plans/{context.plan_name}/plan/",
        "based on the contents of goal.md, references.md, system-analysis.md,",
        "and phase-analysis.md.",
        "",
        "⚠️  Note: A new branch is required to proceed to implementation.",
        "After committing, merge this branch before starting phase implementations.",
    ]


def _advance_to_next_phase(context: PlanContext) -> List[str]:
    phase = context.state.next_incomplete_phase()
    if phase is None:
        raise TransitionError("No incomplete phase left to advance to")

    state_content = context.fs.read_text(context.state_file_path)
    identifier = phase_identifier(phase.phase_number)
    _write_all(context, {
        context.state_file_path: update_checklist_item(state_content, identifier, True),
    })
    logger.debug(f"Checked [{identifier}] for plan {context.plan_name}")

    return [
        f"✓ Advanced to phase {phase.phase_number}: {phase.phase_name}",
        "",
        "Instructions:",
        f"Implement phase {phase.phase_number} as described in:",
        f".flowpilot/plans/{context.plan_name}/plan/{phase_details_filename(phase.phase_number)}",
        "",
        "When phase verification criteria is met, run 'flowpilot next' again.",
    ]


# Evaluated in order; the first applicable transition is the active stage
TRANSITIONS: List[Transition] = [
    Transition(Stage.REFERENCES, lambda s: not s.has_references, _advance_to_references),
    Transition(Stage.SYSTEM_ANALYSIS, lambda s: not s.has_system_analysis, _advance_to_system_analysis),
    Transition(Stage.KEY_DECISIONS, lambda s: not s.has_key_decisions, _advance_to_key_decisions),
    Transition(Stage.PHASE_ANALYSIS, lambda s: not s.has_phase_analysis, _advance_to_phase_analysis),
    Transition(Stage.PHASE_DETAILS, lambda s: not s.has_phase_details, _advance_to_phase_details),
    Transition(
        Stage.PHASE_IMPLEMENTATION,
        lambda s: s.next_incomplete_phase() is not None,
        _advance_to_next_phase,
    ),
]

TRANSITIONS_BY_STAGE: Dict[Stage, Transition] = {t.stage: t for t in TRANSITIONS}


def current_stage(state: PlanState) -> Optional[Stage]:
    """The stage the plan enters on the next advance, None when finished."""
    for transition in TRANSITIONS:
        if transition.can_transition(state):
            return transition.stage
    return None


def is_finished(state: PlanState) -> bool:
    return state.has_phase_details and state.all_phases_complete()


def advance(context: PlanContext) -> TransitionResult:
    """Advance the plan by exactly one stage.

    Raises:
        TransitionError: Plan not initialized, no phases defined, or a
            state that matches no stage
    """
    state = context.state
    if not state.is_initialized:
        raise TransitionError(
            f"Plan '{context.plan_name}' is not initialized. "
            f"Run 'flowpilot new {context.plan_name}' first."
        )

    stage = current_stage(state)
    if stage is None:
        if is_finished(state):
            return TransitionResult(stage=None, messages=["✓ All phases complete! Plan finished."], finished=True)
        raise TransitionError("Plan state does not correspond to any known stage")

    logger.info(f"Advancing plan {context.plan_name} to {stage.value}")
    messages = TRANSITIONS_BY_STAGE[stage].execute(context)
    return TransitionResult(stage=stage, messages=messages)
