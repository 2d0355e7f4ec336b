"""
FlowPilot Templates - Boilerplate documents for each planning stage.

Templates are bundled with the package and addressed by logical name only.
A repository can override any of them by placing a file with the same
name under .flowpilot/template/ (written by `flowpilot init`).

Available Templates:
- state.md: the checklist that tracks plan progress
- goal.md, references.md, system-analysis.md, key-decisions.md,
  phase-analysis.md: one per global stage (copied into meta/)
- phase-n-details.md: per-phase detail document (copied into plan/)

Usage:
    from flowpilot.templates import TemplateStore

    store = TemplateStore(fs, override_dir)
    body = store.read_template("goal.md")
"""

import os
from importlib import resources
from typing import Optional, Tuple

from flowpilot.fs import FileSystem


TEMPLATE_NAMES: Tuple[str, ...] = (
    "state.md",
    "goal.md",
    "references.md",
    "system-analysis.md",
    "key-decisions.md",
    "phase-analysis.md",
    "phase-n-details.md",
)

# Installed into .github/agents/ by `flowpilot init`; not a stage document
AGENT_TEMPLATE = "agent.md"


def read_bundled_template(name: str) -> str:
    """Read a template shipped inside the package.

    Raises:
        KeyError: If the name is not a known template
    """
    if name not in TEMPLATE_NAMES and name != AGENT_TEMPLATE:
        raise KeyError(f"Unknown template: {name}")
    return resources.files(__name__).joinpath(name).read_text(encoding="utf-8")


class TemplateStore:
    """Resolves template bodies, preferring repository overrides."""

    def __init__(self, fs: Optional[FileSystem] = None, override_dir: Optional[str] = None):
        self.fs = fs or FileSystem()
        self.override_dir = override_dir

    def read_template(self, name: str) -> str:
        if name not in TEMPLATE_NAMES:
            raise KeyError(f"Unknown template: {name}")

        if self.override_dir:
            override = os.path.join(self.override_dir, name)
            if self.fs.exists(override):
                return self.fs.read_text(override)

        return read_bundled_template(name)
