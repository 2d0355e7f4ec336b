"""
Filesystem access for FlowPilot.

Everything that reads or writes plan documents goes through a
FileSystem instance so the plan manager, lint rules and transitions
can be exercised against an in-memory implementation in tests.
"""

import fnmatch
import os
import shutil
from typing import List


class FileSystem:
    """Local disk implementation."""

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def is_dir(self, path: str) -> bool:
        return os.path.isdir(path)

    def read_text(self, path: str) -> str:
        # newline="" keeps CRLF intact so rewrites stay byte-identical;
        # undecodable bytes become U+FFFD instead of aborting a lint run
        with open(path, "r", encoding="utf-8", errors="replace", newline="") as f:
            return f.read()

    def write_text(self, path: str, content: str) -> None:
        """Write a file, creating parent directories as needed."""
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(content)

    def copy(self, src: str, dst: str) -> None:
        parent = os.path.dirname(dst)
        if parent:
            os.makedirs(parent, exist_ok=True)
        shutil.copyfile(src, dst)

    def make_dirs(self, path: str) -> None:
        os.makedirs(path, exist_ok=True)

    def list_directories(self, path: str) -> List[str]:
        """Full paths of immediate subdirectories, sorted by name."""
        if not os.path.isdir(path):
            return []
        return sorted(
            os.path.join(path, name)
            for name in os.listdir(path)
            if os.path.isdir(os.path.join(path, name))
        )

    def list_files(self, path: str, pattern: str = "*") -> List[str]:
        """Full paths of files directly under path matching a glob pattern."""
        if not os.path.isdir(path):
            return []
        return sorted(
            os.path.join(path, name)
            for name in os.listdir(path)
            if os.path.isfile(os.path.join(path, name)) and fnmatch.fnmatch(name, pattern)
        )
