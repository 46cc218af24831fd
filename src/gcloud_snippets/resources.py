"""Shared dataclasses for the cloud resources the snippets print."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class AccessEntryInfo:
    """One entry of a BigQuery dataset's access list."""

    role: str | None
    entity_type: str
    entity_id: Any

    @classmethod
    def from_entry(cls, entry: Any) -> AccessEntryInfo:
        """Build from a ``google.cloud.bigquery.AccessEntry``."""
        return cls(role=entry.role, entity_type=entry.entity_type, entity_id=entry.entity_id)


@dataclass(frozen=True)
class PolicyBinding:
    """A role-to-principals binding of a table or view IAM policy."""

    role: str
    members: tuple[str, ...]

    @classmethod
    def from_binding(cls, binding: dict[str, Any]) -> PolicyBinding:
        """Build from one element of ``google.api_core.iam.Policy.bindings``."""
        return cls(role=binding["role"], members=tuple(sorted(binding["members"])))


@dataclass(frozen=True)
class ExecutionInfo:
    """Final state of a Workflows execution."""

    name: str
    state: str
    result: str
    error: str = ""
