"""
Plan state models.

state.md is the source of truth (human-editable). Everything here is
rebuilt from it on every invocation and never cached between runs.

Models:
- StateChecklistItem: one parsed checklist line
- PhaseState: progress of one implementation phase
- PhaseInfo: phase metadata from phase-analysis.md
- PlanState: aggregated stage flags + ordered phases
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# Checklist identifiers for the global stages, in document order
STATE_IDENTIFIER = "state"
REFERENCES_IDENTIFIER = "references"
SYSTEM_ANALYSIS_IDENTIFIER = "system-analysis"
KEY_DECISIONS_IDENTIFIER = "key-decisions"
PHASE_ANALYSIS_IDENTIFIER = "phase-analysis"
PHASE_DETAILS_IDENTIFIER = "phase-n-details"

PHASE_IDENTIFIER_PREFIX = "phase_"


def phase_identifier(phase_number: int) -> str:
    """Checklist identifier for a phase row, e.g. phase_3."""
    return f"{PHASE_IDENTIFIER_PREFIX}{phase_number}"


@dataclass(frozen=True)
class StateChecklistItem:
    """One `- [ ] [identifier] description` line of state.md."""
    identifier: str
    description: str
    is_checked: bool = False
    phase_number: Optional[int] = None  # Only set for phase_N items

    @property
    def is_phase(self) -> bool:
        return self.phase_number is not None


@dataclass
class PhaseState:
    """Progress of a single implementation phase."""
    phase_number: int
    phase_name: str = ""
    is_complete: bool = False
    is_pull_request_boundary: bool = False  # Back-filled from phase-analysis.md

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase_number": self.phase_number,
            "phase_name": self.phase_name,
            "is_complete": self.is_complete,
            "is_pull_request_boundary": self.is_pull_request_boundary,
        }


@dataclass
class PhaseInfo:
    """Phase metadata extracted from phase-analysis.md."""
    phase_number: int
    phase_name: str
    is_pull_request_boundary: bool = False


@dataclass
class PlanState:
    """Canonical progress of a plan.

    Flags must progress monotonically (no later stage set while an
    earlier one is not). That is checked by the lint rules, not here,
    because state.md can be edited by hand.
    """
    is_initialized: bool = False
    has_references: bool = False
    has_system_analysis: bool = False
    has_key_decisions: bool = False
    has_phase_analysis: bool = False
    has_phase_details: bool = False
    phases: List[PhaseState] = field(default_factory=list)

    def next_incomplete_phase(self) -> Optional[PhaseState]:
        """First phase (in document order) that is not complete."""
        for phase in self.phases:
            if not phase.is_complete:
                return phase
        return None

    def all_phases_complete(self) -> bool:
        return self.next_incomplete_phase() is None

    def get_phase(self, phase_number: int) -> Optional[PhaseState]:
        for phase in self.phases:
            if phase.phase_number == phase_number:
                return phase
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_initialized": self.is_initialized,
            "has_references": self.has_references,
            "has_system_analysis": self.has_system_analysis,
            "has_key_decisions": self.has_key_decisions,
            "has_phase_analysis": self.has_phase_analysis,
            "has_phase_details": self.has_phase_details,
            "phases": [p.to_dict() for p in self.phases],
        }
