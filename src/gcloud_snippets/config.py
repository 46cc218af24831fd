"""TOML configuration loading and config file discovery."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

CONFIG_FILENAME = "gcloud_snippets.toml"


@dataclass(frozen=True)
class ProjectConfig:
    """GCP project configuration."""

    id: str
    default_region: str
    default_zone: str | None = None


@dataclass(frozen=True)
class WorkflowsConfig:
    """Defaults for Workflows deployments and executions."""

    location: str | None = None
    timeout: float = 600.0
    poll_interval: float = 1.0


@dataclass(frozen=True)
class SnippetConfig:
    """Top-level configuration parsed from ``gcloud_snippets.toml``."""

    project: ProjectConfig
    workflows: WorkflowsConfig = field(default_factory=WorkflowsConfig)

    @property
    def workflow_location(self) -> str:
        """Workflows location, falling back to the project's default region."""
        return self.workflows.location or self.project.default_region


def load_config(path: Path) -> SnippetConfig:
    """Read and parse a ``gcloud_snippets.toml`` file.

    Args:
        path: Absolute or relative path to the TOML config file.

    Returns:
        Parsed ``SnippetConfig``.

    Raises:
        FileNotFoundError: If *path* does not exist.
        KeyError: If required keys are missing from the TOML.
        ValueError: If a timeout or interval is not positive.
    """
    with path.open("rb") as fh:
        raw = tomllib.load(fh)

    project_raw = raw["project"]
    project = ProjectConfig(
        id=project_raw["id"],
        default_region=project_raw["default_region"],
        default_zone=project_raw.get("default_zone"),
    )

    workflows_raw = raw.get("workflows", {})
    workflows = WorkflowsConfig(
        location=workflows_raw.get("location"),
        timeout=float(workflows_raw.get("timeout", 600.0)),
        poll_interval=float(workflows_raw.get("poll_interval", 1.0)),
    )
    if workflows.timeout <= 0 or workflows.poll_interval <= 0:
        msg = f"workflows.timeout and workflows.poll_interval must be positive in {path}"
        raise ValueError(msg)

    return SnippetConfig(project=project, workflows=workflows)


def discover_config(start: Path | None = None) -> Path:
    """Walk from *start* upward looking for ``gcloud_snippets.toml``.

    Args:
        start: Directory to begin the search.  Defaults to the current
            working directory.

    Returns:
        Absolute path to the discovered config file.

    Raises:
        FileNotFoundError: If no ``gcloud_snippets.toml`` is found between
            *start* and the filesystem root.
    """
    current = (start or Path.cwd()).resolve()

    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate

        parent = current.parent
        if parent == current:
            break
        current = parent

    msg = f"{CONFIG_FILENAME} not found (searched from {start or Path.cwd()})"
    raise FileNotFoundError(msg)
