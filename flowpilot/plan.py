"""
Plan management for FlowPilot.

Layout under the repository root:

    .flowpilot/
    ├── config.json
    ├── template/              # optional template overrides
    └── plans/<plan>/
        ├── meta/              # state.md + global stage documents
        └── plan/              # phase-<N>-details.md

PlanManager owns paths and all document writes. PlanContext is the
per-invocation working set handed to lint rules and transitions.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

from flowpilot.config import FLOWPILOT_DIR, FlowPilotConfig, config_exists, save_config
from flowpilot.fs import FileSystem
from flowpilot.git_ops import find_merge_base
from flowpilot.models import PlanState, STATE_IDENTIFIER
from flowpilot.phase_analysis import load_phases
from flowpilot.state_parser import parse_plan_state, update_checklist_item
from flowpilot.templates import AGENT_TEMPLATE, TEMPLATE_NAMES, TemplateStore, read_bundled_template
from flowpilot.urls import UrlChecker


logger = logging.getLogger(__name__)

STATE_FILENAME = "state.md"
PHASE_ANALYSIS_FILENAME = "phase-analysis.md"
AGENT_FILE = ".github/agents/flowpilot.agent.md"

PLAN_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def phase_details_filename(phase_number: int) -> str:
    return f"phase-{phase_number}-details.md"


def validate_plan_name(name: str) -> None:
    """Raises ValueError for names that are not a single safe path segment."""
    if not name or not PLAN_NAME_RE.match(name):
        raise ValueError(
            f"Invalid plan name '{name}'. Use letters, digits, '.', '_' or '-'."
        )


@dataclass
class PlanContext:
    """Working set for one lint/next run. Discarded afterwards."""
    plan_name: str
    state: PlanState
    plan_directory: str
    meta_directory: str
    plan_sub_directory: str
    state_file_path: str
    fs: FileSystem
    templates: TemplateStore
    repo: Any = None  # GitRepository or a stand-in with the same verbs
    config: FlowPilotConfig = field(default_factory=FlowPilotConfig)
    url_checker: Optional[UrlChecker] = None
    current_branch: str = ""
    repository_root: str = ""
    lint_errors: List[str] = field(default_factory=list)

    _merge_base: Optional[str] = field(default=None, repr=False)
    _base_state_loaded: bool = field(default=False, repr=False)
    _base_state: Optional[PlanState] = field(default=None, repr=False)

    def meta_path(self, filename: str) -> str:
        return os.path.join(self.meta_directory, filename)

    def phase_details_path(self, phase_number: int) -> str:
        return os.path.join(self.plan_sub_directory, phase_details_filename(phase_number))

    def state_file_relpath(self) -> str:
        """state.md relative to the repository root, forward slashes."""
        root = self.repository_root or os.getcwd()
        rel = os.path.relpath(os.path.realpath(self.state_file_path), os.path.realpath(root))
        return rel.replace(os.sep, "/")

    def merge_base(self) -> str:
        """Merge-base SHA against the configured base branches, resolved once.

        Raises:
            GitError: No base branch could be resolved, or a fetch failed
        """
        if self._merge_base is None:
            sha, ref = find_merge_base(
                self.repo,
                self.config.base_branches,
                fetch_missing=self.config.fetch_missing_base,
            )
            logger.debug(f"Using merge-base {sha} ({ref})")
            self._merge_base = sha
        return self._merge_base

    def base_state(self) -> Optional[PlanState]:
        """Plan state recorded in state.md at the merge-base, None if absent there."""
        if not self._base_state_loaded:
            content = self.repo.show_file(self.merge_base(), self.state_file_relpath())
            self._base_state = parse_plan_state(content) if content is not None else None
            self._base_state_loaded = True
        return self._base_state


class PlanManager:
    """Manages FlowPilot plans under one repository root."""

    def __init__(
        self,
        root: str,
        fs: Optional[FileSystem] = None,
        templates: Optional[TemplateStore] = None,
    ):
        self.root = os.path.abspath(root)
        self.fs = fs or FileSystem()
        self.templates = templates or TemplateStore(self.fs, self.template_directory)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    @property
    def flowpilot_directory(self) -> str:
        return os.path.join(self.root, FLOWPILOT_DIR)

    @property
    def template_directory(self) -> str:
        return os.path.join(self.flowpilot_directory, "template")

    @property
    def plans_directory(self) -> str:
        return os.path.join(self.flowpilot_directory, "plans")

    def plan_directory(self, plan_name: str) -> str:
        return os.path.join(self.plans_directory, plan_name)

    def meta_directory(self, plan_name: str) -> str:
        return os.path.join(self.plan_directory(plan_name), "meta")

    def plan_sub_directory(self, plan_name: str) -> str:
        return os.path.join(self.plan_directory(plan_name), "plan")

    def state_file_path(self, plan_name: str) -> str:
        return os.path.join(self.meta_directory(plan_name), STATE_FILENAME)

    def phase_details_path(self, plan_name: str, phase_number: int) -> str:
        return os.path.join(self.plan_sub_directory(plan_name), phase_details_filename(phase_number))

    def relative(self, path: str) -> str:
        """Path relative to the repository root, for display."""
        return os.path.relpath(path, self.root).replace(os.sep, "/")

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def plan_exists(self, plan_name: str) -> bool:
        return self.fs.exists(self.state_file_path(plan_name))

    def list_plans(self) -> List[str]:
        """Names of plans that have a state.md, sorted."""
        names = []
        for directory in self.fs.list_directories(self.plans_directory):
            name = os.path.basename(directory.rstrip("/\\"))
            if self.plan_exists(name):
                names.append(name)
        return sorted(names)

    def is_installed(self) -> bool:
        return config_exists(self.root) or self.fs.exists(os.path.join(self.root, AGENT_FILE))

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def get_current_state(self, plan_name: str) -> PlanState:
        """Rebuild the plan state from disk.

        PR boundary flags live only in phase-analysis.md, so they are
        re-derived here on every call.
        """
        state_path = self.state_file_path(plan_name)
        if not self.fs.exists(state_path):
            return PlanState()

        state = parse_plan_state(self.fs.read_text(state_path))

        if state.phases:
            analysis_path = os.path.join(self.meta_directory(plan_name), PHASE_ANALYSIS_FILENAME)
            boundaries = {
                info.phase_number: info.is_pull_request_boundary
                for info in load_phases(self.fs, analysis_path)
            }
            for phase in state.phases:
                phase.is_pull_request_boundary = boundaries.get(phase.phase_number, False)

        return state

    def build_context(
        self,
        plan_name: str,
        repo: Any = None,
        config: Optional[FlowPilotConfig] = None,
        url_checker: Optional[UrlChecker] = None,
    ) -> PlanContext:
        """Assemble the working set for one command run."""
        repository_root = repo.root() if repo is not None else self.root
        current_branch = repo.current_branch() if repo is not None else ""

        return PlanContext(
            plan_name=plan_name,
            state=self.get_current_state(plan_name),
            plan_directory=self.plan_directory(plan_name),
            meta_directory=self.meta_directory(plan_name),
            plan_sub_directory=self.plan_sub_directory(plan_name),
            state_file_path=self.state_file_path(plan_name),
            fs=self.fs,
            templates=self.templates,
            repo=repo,
            config=config or FlowPilotConfig(),
            url_checker=url_checker,
            current_branch=current_branch,
            repository_root=repository_root,
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def install(self, config: Optional[FlowPilotConfig] = None) -> List[str]:
        """Install FlowPilot into the repository.

        Writes the config, copies every template into .flowpilot/template/
        and the agent instructions into .github/agents/. Existing files
        are left alone.

        Returns:
            Repository-relative paths that were written
        """
        written = []

        if not config_exists(self.root):
            save_config(self.root, config or FlowPilotConfig())
            written.append(self.relative(os.path.join(self.flowpilot_directory, "config.json")))

        for name in TEMPLATE_NAMES:
            target = os.path.join(self.template_directory, name)
            if not self.fs.exists(target):
                self.fs.write_text(target, read_bundled_template(name))
                written.append(self.relative(target))

        agent_path = os.path.join(self.root, AGENT_FILE)
        if not self.fs.exists(agent_path):
            self.fs.write_text(agent_path, read_bundled_template(AGENT_TEMPLATE))
            written.append(self.relative(agent_path))

        logger.debug(f"Installed {len(written)} files")
        return written

    def initialize_plan(self, plan_name: str) -> None:
        """Create state.md (with [state] checked) and goal.md for a new plan.

        Raises:
            ValueError: Invalid name or the plan already exists
        """
        validate_plan_name(plan_name)
        if self.plan_exists(plan_name):
            raise ValueError(f"Plan '{plan_name}' already exists")

        state = update_checklist_item(self.templates.read_template("state.md"), STATE_IDENTIFIER, True)
        goal = self.templates.read_template("goal.md")

        self.fs.make_dirs(self.meta_directory(plan_name))
        self.fs.write_text(self.state_file_path(plan_name), state)
        self.fs.write_text(os.path.join(self.meta_directory(plan_name), "goal.md"), goal)
        logger.debug(f"Initialized plan {plan_name}")
