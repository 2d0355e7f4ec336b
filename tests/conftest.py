"""
Shared fixtures: in-memory filesystem, fake repository and a plan builder.
"""

import fnmatch
import os
from typing import Dict, List, Optional, Sequence

import pytest

from flowpilot.config import FlowPilotConfig
from flowpilot.git_ops import RemoteRefNotFoundError
from flowpilot.plan import PlanManager
from flowpilot.state_parser import add_phase_checklist_items, update_checklist_item
from flowpilot.templates import TemplateStore


REPO_ROOT = "/repo"


class FakeFileSystem:
    """Dict-backed FileSystem."""

    def __init__(self):
        self.files: Dict[str, str] = {}
        self.dirs = set()
        self.writes: List[str] = []

    @staticmethod
    def _norm(path: str) -> str:
        return os.path.normpath(path)

    def exists(self, path: str) -> bool:
        path = self._norm(path)
        return path in self.files or self.is_dir(path)

    def is_dir(self, path: str) -> bool:
        path = self._norm(path)
        if path in self.dirs:
            return True
        prefix = path.rstrip(os.sep) + os.sep
        return any(f.startswith(prefix) for f in self.files)

    def read_text(self, path: str) -> str:
        path = self._norm(path)
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    def write_text(self, path: str, content: str) -> None:
        path = self._norm(path)
        self.files[path] = content
        self.writes.append(path)

    def copy(self, src: str, dst: str) -> None:
        self.write_text(dst, self.read_text(src))

    def make_dirs(self, path: str) -> None:
        self.dirs.add(self._norm(path))

    def _children(self, path: str) -> List[str]:
        prefix = self._norm(path).rstrip(os.sep) + os.sep
        names = set()
        for entry in list(self.files) + list(self.dirs):
            if entry.startswith(prefix):
                names.add(entry[len(prefix):].split(os.sep)[0])
        return sorted(names)

    def list_directories(self, path: str) -> List[str]:
        return [
            os.path.join(self._norm(path), name)
            for name in self._children(path)
            if self.is_dir(os.path.join(self._norm(path), name))
        ]

    def list_files(self, path: str, pattern: str = "*") -> List[str]:
        return [
            os.path.join(self._norm(path), name)
            for name in self._children(path)
            if os.path.join(self._norm(path), name) in self.files and fnmatch.fnmatch(name, pattern)
        ]


class FakeRepository:
    """Stand-in for GitRepository with scripted answers."""

    def __init__(
        self,
        root: str = REPO_ROOT,
        branch: str = "main",
        changed: Optional[List[str]] = None,
        merge_bases: Optional[Dict[str, str]] = None,
        head: Optional[str] = "head-sha",
        committed_modifications: int = 0,
        staged_modifications: int = 0,
        base_files: Optional[Dict[str, str]] = None,
        remotes: Sequence[str] = ("origin",),
        fetchable: Optional[Dict[str, str]] = None,
        fetch_error: Optional[Exception] = None,
    ):
        self._root = root
        self.branch = branch
        self.changed = changed or []
        self.merge_bases = {"origin/main": "base-sha"} if merge_bases is None else dict(merge_bases)
        self.head = head
        self.committed_modifications = committed_modifications
        self.staged_modifications = staged_modifications
        self.base_files = base_files or {}
        self._remotes = list(remotes)
        self.fetchable = fetchable or {}
        self.fetch_error = fetch_error
        self.fetched: List[str] = []
        self.staged: List[str] = []
        self.reset: List[str] = []

    def root(self) -> str:
        return self._root

    def current_branch(self) -> str:
        return self.branch

    def changed_files(self) -> List[str]:
        return list(self.changed)

    def head_sha(self) -> Optional[str]:
        return self.head

    def remotes(self) -> List[str]:
        return list(self._remotes)

    def merge_base_sha(self, ref: str) -> Optional[str]:
        return self.merge_bases.get(ref)

    def fetch_remote_branch(self, remote: str, branch: str) -> None:
        ref = f"{remote}/{branch}"
        self.fetched.append(ref)
        if self.fetch_error is not None:
            raise self.fetch_error
        if ref not in self.fetchable:
            raise RemoteRefNotFoundError(f"Remote '{remote}' has no branch '{branch}'")
        self.merge_bases[ref] = self.fetchable[ref]

    def show_file(self, sha: str, path: str) -> Optional[str]:
        return self.base_files.get(path)

    def count_modified_lines(self, path: str, old_sha: Optional[str], new_sha: Optional[str]) -> int:
        return self.committed_modifications

    def count_staged_modified_lines(self, path: str) -> int:
        return self.staged_modifications

    def stage_file(self, path: str) -> None:
        self.staged.append(path)

    def reset_file(self, path: str) -> None:
        self.reset.append(path)


class FakeResponse:
    def __init__(self, status_code):
        self.status_code = status_code


class FakeSession:
    """requests.Session stand-in keyed by URL."""

    def __init__(self, answers):
        self.answers = answers
        self.requested = []

    def head(self, url, timeout=None, allow_redirects=False):
        self.requested.append(url)
        answer = self.answers[url]
        if isinstance(answer, Exception):
            raise answer
        return FakeResponse(answer)


GLOBAL_STAGES = [
    ("references", "references.md"),
    ("system-analysis", "system-analysis.md"),
    ("key-decisions", "key-decisions.md"),
    ("phase-analysis", "phase-analysis.md"),
    ("phase-n-details", None),
]


def phase_analysis_document(phases: Sequence[str], pr_boundaries: Sequence[int] = ()) -> str:
    lines = ["# Phase Analysis", ""]
    for i, name in enumerate(phases, start=1):
        lines.append(f"### phase_{i}: {name}")
        lines.append("")
        lines.append(f"**Goal**: Deliver {name.lower()}.")
        lines.append("")
        lines.append(f"**PR Boundary**: {'yes' if i in pr_boundaries else 'no'}")
        lines.append("")
    return "\n".join(lines)


class PlanBuilder:
    """Creates plans at a given stage with every document filled in."""

    def __init__(self, manager: PlanManager):
        self.manager = manager
        self.fs = manager.fs

    def write_meta(self, plan: str, filename: str, content: str) -> None:
        self.fs.write_text(os.path.join(self.manager.meta_directory(plan), filename), content)

    def set_checked(self, plan: str, identifier: str, checked: bool = True) -> None:
        path = self.manager.state_file_path(plan)
        self.fs.write_text(path, update_checklist_item(self.fs.read_text(path), identifier, checked))

    def create(
        self,
        plan: str = "feature",
        through: Optional[str] = None,
        phases: Sequence[str] = ("Database schema", "API endpoints"),
        completed_phases: int = 0,
        pr_boundaries: Sequence[int] = (),
    ) -> str:
        self.manager.initialize_plan(plan)
        self.write_meta(plan, "goal.md", "# Goal\n\nLet users export reports as CSV.\n")
        if through is None:
            return plan

        for identifier, document in GLOBAL_STAGES:
            if identifier == "phase-analysis":
                self.write_meta(plan, document, phase_analysis_document(phases, pr_boundaries))
                self.set_checked(plan, identifier)
            elif identifier == "phase-n-details":
                self._write_phase_details(plan, phases, completed_phases)
            else:
                self.write_meta(plan, document, f"# {identifier}\n\nNotes for {identifier}.\n")
                self.set_checked(plan, identifier)
            if identifier == through:
                break
        return plan

    def _write_phase_details(self, plan: str, phases: Sequence[str], completed: int) -> None:
        for i, _ in enumerate(phases, start=1):
            self.fs.write_text(
                self.manager.phase_details_path(plan, i),
                f"# phase_{i} Details\n\n### Tasks\n\n- Build it\n\n### Verification\n\n- Run pytest\n",
            )
        self.set_checked(plan, "phase-n-details")

        path = self.manager.state_file_path(plan)
        content = add_phase_checklist_items(self.fs.read_text(path), list(phases))
        self.fs.write_text(path, content)
        for i in range(1, completed + 1):
            self.set_checked(plan, f"phase_{i}")


@pytest.fixture
def fs():
    return FakeFileSystem()


@pytest.fixture
def manager(fs):
    return PlanManager(REPO_ROOT, fs=fs, templates=TemplateStore(fs, None))


@pytest.fixture
def builder(manager):
    return PlanBuilder(manager)


@pytest.fixture
def repo():
    return FakeRepository()


@pytest.fixture
def offline_config():
    return FlowPilotConfig(check_reference_urls=False)
