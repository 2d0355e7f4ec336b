"""
Git operations for FlowPilot.

Answers three questions about the repository:
- what changed (working tree and index)
- where did this branch fork from the base branch (merge-base)
- how many lines of a file were modified, not merely added

Every call runs a fresh git subprocess. No repository object is kept
between operations, so concurrent git activity outside FlowPilot is
seen on the next read.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence, Tuple


logger = logging.getLogger(__name__)


class GitError(Exception):
    """Raised when git cannot answer: not a repository, missing base, failed fetch."""
    def __init__(self, message: str, stderr: str = ""):
        self.message = message
        self.stderr = stderr.strip()
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.stderr:
            return f"{self.message}: {self.stderr}"
        return self.message


class RemoteRefNotFoundError(GitError):
    """The remote exists but does not have the requested branch."""


class BaseBranchNotFoundError(GitError):
    """None of the candidate base branches could be resolved."""


def run_git(args: List[str], cwd: Optional[Path] = None) -> Tuple[int, str, str]:
    """Run a git command.

    Returns:
        Tuple of (return_code, stdout, stderr)
    """
    cmd = ["git"] + args
    logger.debug(f"git {' '.join(args)}")
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd or Path.cwd(),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError as e:
        raise GitError("git executable not found", str(e))
    return result.returncode, result.stdout, result.stderr


def count_modified_lines_in_patch(patch: str) -> int:
    """Count in-place modifications in a unified diff.

    Only deletion lines inside hunks are counted, then doubled: a
    checkbox flip is one deletion plus one addition (2), while rows
    appended without touching existing lines count 0. A pure deletion
    is undercounted; the quota gate is calibrated against that.
    """
    deletions = 0
    in_hunk = False
    for line in patch.splitlines():
        if line.startswith("diff --git"):
            in_hunk = False
        elif line.startswith("@@"):
            in_hunk = True
        elif in_hunk and line.startswith("-"):
            deletions += 1
    return deletions * 2


def _parse_status_path(entry: str) -> str:
    path = entry[3:]
    if " -> " in path:
        # Renames report "old -> new"
        path = path.split(" -> ", 1)[1]
    if len(path) >= 2 and path.startswith('"') and path.endswith('"'):
        path = path[1:-1]
    return path


class GitRepository:
    """Narrow view of one working tree.

    Args:
        path: Any directory inside the working tree
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def _git(self, args: List[str]) -> Tuple[int, str, str]:
        return run_git(args, cwd=self.path)

    def root(self) -> str:
        """Absolute path of the working tree root.

        Raises:
            GitError: If the path is not inside a git repository
        """
        if not self.path.exists():
            raise GitError("Not a git repository", f"{self.path} does not exist")
        code, out, err = self._git(["rev-parse", "--show-toplevel"])
        if code != 0:
            raise GitError("Not a git repository", err)
        return out.strip()

    def relative_path(self, path: str) -> str:
        """Repository-relative path with forward slashes."""
        rel = os.path.relpath(os.path.realpath(path), os.path.realpath(self.root()))
        return rel.replace(os.sep, "/")

    def changed_files(self) -> List[str]:
        """Paths with any index or working tree change, untracked included."""
        code, out, err = self._git(["status", "--porcelain", "--untracked-files=all"])
        if code != 0:
            raise GitError("Failed to read repository status", err)
        return [_parse_status_path(line) for line in out.splitlines() if len(line) > 3]

    def head_sha(self) -> Optional[str]:
        code, out, _ = self._git(["rev-parse", "--verify", "--quiet", "HEAD^{commit}"])
        return out.strip() if code == 0 and out.strip() else None

    def current_branch(self) -> str:
        """Short name of the checked out branch, empty when detached."""
        code, out, _ = self._git(["symbolic-ref", "--short", "-q", "HEAD"])
        return out.strip() if code == 0 else ""

    def has_ref(self, ref: str) -> bool:
        code, _, _ = self._git(["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"])
        return code == 0

    def remotes(self) -> List[str]:
        code, out, _ = self._git(["remote"])
        if code != 0:
            return []
        return [r.strip() for r in out.splitlines() if r.strip()]

    def merge_base_sha(self, ref: str) -> Optional[str]:
        """Common ancestor of HEAD and ref, or None if ref is not available locally."""
        if self.head_sha() is None or not self.has_ref(ref):
            return None
        code, out, _ = self._git(["merge-base", "HEAD", ref])
        if code != 0:
            # Unrelated histories
            return None
        return out.strip() or None

    def fetch_remote_branch(self, remote: str, branch: str) -> None:
        """Fetch one branch into refs/remotes/<remote>/<branch>.

        Raises:
            RemoteRefNotFoundError: The remote has no such branch
            GitError: Any other fetch failure (no retry)
        """
        refspec = f"+refs/heads/{branch}:refs/remotes/{remote}/{branch}"
        code, _, err = self._git(["fetch", "--quiet", "--no-tags", remote, refspec])
        if code == 0:
            return
        if "couldn't find remote ref" in err.lower():
            raise RemoteRefNotFoundError(f"Remote '{remote}' has no branch '{branch}'", err)
        raise GitError(f"Failed to fetch {remote}/{branch}", err)

    def show_file(self, sha: str, path: str) -> Optional[str]:
        """Content of a repository-relative path at a commit, or None."""
        code, out, _ = self._git(["show", f"{sha}:{path}"])
        return out if code == 0 else None

    def count_modified_lines(self, path: str, old_sha: Optional[str], new_sha: Optional[str]) -> int:
        """Modified (not added) lines of one file between two commits."""
        if not old_sha or not new_sha:
            return 0
        code, out, err = self._git([
            "diff", "--no-color", "--no-ext-diff", "--unified=0",
            old_sha, new_sha, "--", path,
        ])
        if code != 0:
            raise GitError(f"Failed to diff {path}", err)
        return count_modified_lines_in_patch(out)

    def count_staged_modified_lines(self, path: str) -> int:
        """Modified (not added) lines of one file in the index compared to HEAD."""
        code, out, err = self._git([
            "diff", "--cached", "--no-color", "--no-ext-diff", "--unified=0", "--", path,
        ])
        if code != 0:
            raise GitError(f"Failed to diff staged {path}", err)
        return count_modified_lines_in_patch(out)

    def is_in_head(self, path: str) -> bool:
        code, _, _ = self._git(["cat-file", "-e", f"HEAD:{path}"])
        return code == 0

    def stage_file(self, path: str) -> None:
        code, _, err = self._git(["add", "--", path])
        if code != 0:
            raise GitError(f"Failed to stage {path}", err)

    def reset_file(self, path: str) -> None:
        """Restore one file to HEAD, or unstage and delete it if HEAD lacks it."""
        if self.is_in_head(path):
            code, _, err = self._git(["checkout", "HEAD", "--", path])
            if code != 0:
                raise GitError(f"Failed to restore {path}", err)
            return

        code, _, err = self._git(["rm", "--cached", "--quiet", "--ignore-unmatch", "--", path])
        if code != 0:
            raise GitError(f"Failed to unstage {path}", err)
        code, _, err = self._git(["clean", "--force", "--quiet", "--", path])
        if code != 0:
            raise GitError(f"Failed to remove {path}", err)


def split_remote_ref(ref: str, remotes: Sequence[str]) -> Optional[Tuple[str, str]]:
    """Split "origin/main" into ("origin", "main") if origin is a known remote."""
    for remote in sorted(remotes, key=len, reverse=True):
        prefix = remote + "/"
        if ref.startswith(prefix) and len(ref) > len(prefix):
            return remote, ref[len(prefix):]
    return None


def find_merge_base(repo, candidates: Sequence[str], fetch_missing: bool = True) -> Tuple[str, str]:
    """Resolve the merge-base against the first usable candidate base branch.

    Tries every candidate locally first. If none resolve and fetching is
    enabled, fetches each remote candidate once and retries it.

    Args:
        repo: GitRepository (or anything with the same verbs)
        candidates: Ordered refs, e.g. ["origin/main", "main"]
        fetch_missing: Fetch remote candidates that are missing locally

    Returns:
        Tuple of (merge_base_sha, base_ref)

    Raises:
        BaseBranchNotFoundError: No candidate resolved
        GitError: A fetch failed
    """
    for ref in candidates:
        sha = repo.merge_base_sha(ref)
        if sha:
            logger.debug(f"Merge-base with {ref}: {sha}")
            return sha, ref

    if fetch_missing:
        remotes = repo.remotes()
        for ref in candidates:
            split = split_remote_ref(ref, remotes)
            if split is None:
                continue
            remote, branch = split
            logger.info(f"Base branch {ref} not found locally, fetching")
            try:
                repo.fetch_remote_branch(remote, branch)
            except RemoteRefNotFoundError as e:
                logger.debug(str(e))
                continue
            sha = repo.merge_base_sha(ref)
            if sha:
                logger.debug(f"Merge-base with {ref} after fetch: {sha}")
                return sha, ref

    raise BaseBranchNotFoundError(
        "Could not find a merge-base with any base branch "
        f"({', '.join(candidates)}). Check out or fetch the base branch and try again."
    )
