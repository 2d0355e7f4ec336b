"""
Phase-analysis parser.

Extracts phases from phase-analysis.md:

    ### phase_1: Database schema

    **Goal**: ...

    **PR Boundary**: yes

The header text after "### " is the phase name. A PR Boundary marker
applies to the most recent phase header; without one the phase is not
a boundary.
"""

import logging
import re
from typing import List, Optional

from flowpilot.fs import FileSystem
from flowpilot.models import PhaseInfo


logger = logging.getLogger(__name__)

PHASE_HEADER_PREFIX = "### phase_"
PR_BOUNDARY_MARKER = "**pr boundary**:"
PHASE_NUMBER_RE = re.compile(r"phase_(\d+)")


def parse_phase_analysis(content: str) -> List[PhaseInfo]:
    """Parse phases from phase-analysis.md content, in document order."""
    phases: List[PhaseInfo] = []
    current: Optional[PhaseInfo] = None

    for line in content.split("\n"):
        stripped = line.strip()

        if stripped.startswith(PHASE_HEADER_PREFIX):
            if current is not None:
                phases.append(current)
                current = None

            name = stripped[4:].strip()
            match = PHASE_NUMBER_RE.match(name)
            if match:
                current = PhaseInfo(phase_number=int(match.group(1)), phase_name=name)
            else:
                logger.debug(f"Ignoring malformed phase header: {stripped}")

        elif current is not None and stripped.lower().startswith(PR_BOUNDARY_MARKER):
            value = stripped[len(PR_BOUNDARY_MARKER):].strip().lower()
            current.is_pull_request_boundary = value in ("yes", "true")

    if current is not None:
        phases.append(current)

    return phases


def load_phases(fs: FileSystem, path: str) -> List[PhaseInfo]:
    """Parse phases from a phase-analysis.md file; empty if it is missing."""
    if not fs.exists(path):
        return []
    return parse_phase_analysis(fs.read_text(path))
