"""
Parser for state.md checklists.

Line grammar:
    - [ ] [identifier] free text
    - [x] [identifier] free text

Identifiers of the form phase_N are phase items. Rewrites are targeted
single-line substitutions so the diff of a checkbox flip is exactly one
deletion and one addition.
"""

import re
from typing import Iterable, List, Union

from flowpilot.models import (
    KEY_DECISIONS_IDENTIFIER,
    PHASE_ANALYSIS_IDENTIFIER,
    PHASE_DETAILS_IDENTIFIER,
    PHASE_IDENTIFIER_PREFIX,
    PhaseInfo,
    PhaseState,
    PlanState,
    REFERENCES_IDENTIFIER,
    STATE_IDENTIFIER,
    SYSTEM_ANALYSIS_IDENTIFIER,
    StateChecklistItem,
    phase_identifier,
)


CHECKLIST_ITEM_RE = re.compile(r"^- \[([ x])\] \[(.+?)\] (.+?)\r?$", re.MULTILINE)
PHASE_NUMBER_RE = re.compile(rf"^{PHASE_IDENTIFIER_PREFIX}(\d+)$")

# identifier -> PlanState attribute
STAGE_FLAGS = {
    STATE_IDENTIFIER: "is_initialized",
    REFERENCES_IDENTIFIER: "has_references",
    SYSTEM_ANALYSIS_IDENTIFIER: "has_system_analysis",
    KEY_DECISIONS_IDENTIFIER: "has_key_decisions",
    PHASE_ANALYSIS_IDENTIFIER: "has_phase_analysis",
    PHASE_DETAILS_IDENTIFIER: "has_phase_details",
}


def parse_checklist(content: str) -> List[StateChecklistItem]:
    """Parse all checklist lines of a state.md document, in order."""
    items = []
    for match in CHECKLIST_ITEM_RE.finditer(content):
        identifier = match.group(2)
        phase_number = None
        phase_match = PHASE_NUMBER_RE.match(identifier)
        if phase_match:
            phase_number = int(phase_match.group(1))

        items.append(StateChecklistItem(
            identifier=identifier,
            description=match.group(3),
            is_checked=match.group(1) == "x",
            phase_number=phase_number,
        ))
    return items


def update_checklist_item(content: str, identifier: str, is_checked: bool) -> str:
    """Set the checkbox of one identifier, leaving every other byte untouched.

    Idempotent: setting an item to the state it already has returns the
    content unchanged.
    """
    pattern = re.compile(rf"^- \[[ x]\] \[{re.escape(identifier)}\] ", re.MULTILINE)
    mark = "x" if is_checked else " "
    return pattern.sub(lambda _: f"- [{mark}] [{identifier}] ", content)


def add_phase_checklist_items(
    content: str,
    phases: Iterable[Union[PhaseInfo, str]],
    anchor: str = PHASE_DETAILS_IDENTIFIER,
) -> str:
    """Insert unchecked phase rows right after the anchor item.

    Args:
        content: state.md content
        phases: PhaseInfo records, or bare names (numbered from 1)
        anchor: Identifier of the line to insert after

    Returns:
        Updated content, or the original content if the anchor is missing
    """
    lines = content.split("\n")
    marker = f"[{anchor}]"

    anchor_index = next((i for i, line in enumerate(lines) if marker in line), -1)
    if anchor_index == -1:
        return content

    # Match the anchor line's ending so CRLF documents stay consistent
    line_end = "\r" if lines[anchor_index].endswith("\r") else ""

    rows = []
    for i, phase in enumerate(phases):
        if isinstance(phase, PhaseInfo):
            number, name = phase.phase_number, phase.phase_name
        else:
            number, name = i + 1, phase
        rows.append(f"- [ ] [{phase_identifier(number)}] {name}{line_end}")

    lines[anchor_index + 1:anchor_index + 1] = rows
    return "\n".join(lines)


def build_plan_state(items: Iterable[StateChecklistItem]) -> PlanState:
    """Fold parsed checklist items into a PlanState.

    Unknown identifiers are ignored. PR boundary flags are left False;
    the plan manager back-fills them from phase-analysis.md.
    """
    state = PlanState()
    for item in items:
        flag = STAGE_FLAGS.get(item.identifier)
        if flag:
            setattr(state, flag, item.is_checked)
        elif item.phase_number is not None:
            state.phases.append(PhaseState(
                phase_number=item.phase_number,
                phase_name=item.description,
                is_complete=item.is_checked,
            ))
    return state


def parse_plan_state(content: str) -> PlanState:
    """Parse state.md content straight into a PlanState."""
    return build_plan_state(parse_checklist(content))
