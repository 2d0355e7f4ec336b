"""
FlowPilot - Git-aware orchestration for multi-stage feature planning.

A lean CLI tool that:
- Walks an operator through references, system analysis, key decisions,
  phase analysis, phase details and per-phase implementation
- Keeps progress in a single checklist document (state.md)
- Uses git itself to enforce discipline: one step per commit,
  one phase per branch, mandatory pull request boundaries

No hosting, no PR creation. FlowPilot only reads git state and
refuses to advance when the rules are broken.
"""

__version__ = "0.1.0"

from flowpilot.models import (
    PhaseInfo,
    PhaseState,
    PlanState,
    StateChecklistItem,
)

__all__ = [
    "PhaseInfo",
    "PhaseState",
    "PlanState",
    "StateChecklistItem",
]
