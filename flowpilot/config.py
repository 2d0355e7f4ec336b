"""
FlowPilot Repository Configuration.

Per-repository settings stored in .flowpilot/config.json.

Settings:
- base_branches: candidate refs used to find the merge-base, in order
- fetch_missing_base: fetch remote candidates once when none resolve locally
- check_reference_urls: HEAD-request links found in references.md
- url_timeout: per-request timeout in seconds
- url_check_workers: concurrent URL checks
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List


FLOWPILOT_DIR = ".flowpilot"
CONFIG_FILENAME = "config.json"

DEFAULT_BASE_BRANCHES = ["origin/main", "origin/master", "main", "master"]

# One checkbox flip shows up as one deletion + one addition in a diff.
# Not configurable: the modified-line counting is calibrated against it.
MAX_STATE_MODIFICATIONS = 2


@dataclass
class FlowPilotConfig:
    """Repository-level configuration."""
    base_branches: List[str] = field(default_factory=lambda: list(DEFAULT_BASE_BRANCHES))
    fetch_missing_base: bool = True
    check_reference_urls: bool = True
    url_timeout: float = 10.0
    url_check_workers: int = 4

    def to_dict(self) -> dict:
        return {
            "base_branches": list(self.base_branches),
            "fetch_missing_base": self.fetch_missing_base,
            "check_reference_urls": self.check_reference_urls,
            "url_timeout": self.url_timeout,
            "url_check_workers": self.url_check_workers,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FlowPilotConfig":
        base_branches = data.get("base_branches") or list(DEFAULT_BASE_BRANCHES)
        return cls(
            base_branches=[str(b) for b in base_branches],
            fetch_missing_base=bool(data.get("fetch_missing_base", True)),
            check_reference_urls=bool(data.get("check_reference_urls", True)),
            url_timeout=float(data.get("url_timeout", 10.0)),
            url_check_workers=max(1, int(data.get("url_check_workers", 4))),
        )


def get_config_path(root: str) -> Path:
    """Get the config file path for a repository."""
    return Path(root) / FLOWPILOT_DIR / CONFIG_FILENAME


def config_exists(root: str) -> bool:
    return get_config_path(root).exists()


def load_config(root: str) -> FlowPilotConfig:
    """Load repository configuration. Returns defaults if not found."""
    config_file = get_config_path(root)

    if not config_file.exists():
        return FlowPilotConfig()

    try:
        with open(config_file) as f:
            data = json.load(f)
        return FlowPilotConfig.from_dict(data)
    except (json.JSONDecodeError, AttributeError, TypeError, ValueError):
        return FlowPilotConfig()


def save_config(root: str, config: FlowPilotConfig) -> None:
    """Save repository configuration."""
    config_file = get_config_path(root)

    # Ensure .flowpilot directory exists
    config_file.parent.mkdir(parents=True, exist_ok=True)

    with open(config_file, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
        f.write("\n")
