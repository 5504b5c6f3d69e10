"""
Data model for drift reconciliation.

All records are created fresh for each reconciliation run. They are frozen so a
completed batch of results can be handed to callers without anyone mutating
entries underneath them, and every record serializes to plain JSON data with
explicit nulls.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Severity(str, Enum):
    """Drift severity tiers, lowest first."""
    HEALTHY = "healthy"
    ACCEPTABLE = "acceptable"
    WARNING = "warning"
    ALMOST_DANGER = "almostDanger"
    DANGER = "danger"
    UNKNOWN = "unknown"


class DriftMode(str, Enum):
    """Which metric drives severity."""
    SINCE_DEPLOYED = "since_deployed"
    BEHIND_BASELINE = "behind_baseline"


class ReferencePolicy(str, Enum):
    """What to do when a module URL carries no commit reference."""
    STRICT = "strict"    # raise ReferenceNotFound
    LENIENT = "lenient"  # record a null reference


@dataclass(frozen=True)
class Environment:
    """A deployment target, e.g. development or production."""
    name: str
    base_url: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "base_url": self.base_url}


@dataclass(frozen=True)
class ResourceReference:
    """A manifest entry with the commit reference parsed out of its URL."""
    full_url: str
    commit_reference: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"full_url": self.full_url, "commit_reference": self.commit_reference}


@dataclass(frozen=True)
class CommitMetadata:
    """What the source-control host reports for a single commit."""
    sha: str
    committer_date: Optional[datetime]
    canonical_url: Optional[str]
    raw: Dict[str, Any]


@dataclass(frozen=True)
class CommitDetail:
    """A ResourceReference enriched with the resolved commit timestamp."""
    full_url: str
    commit_reference: Optional[str]
    committed_at: Optional[datetime]
    raw_metadata: Optional[Dict[str, Any]] = None
    error: Optional[str] = None  # set when the remote lookup failed

    @classmethod
    def unresolved(cls, reference: ResourceReference, error: Optional[str] = None) -> "CommitDetail":
        return cls(
            full_url=reference.full_url,
            commit_reference=reference.commit_reference,
            committed_at=None,
            raw_metadata=None,
            error=error,
        )

    @classmethod
    def from_metadata(cls, reference: ResourceReference, metadata: CommitMetadata) -> "CommitDetail":
        return cls(
            full_url=reference.full_url,
            commit_reference=reference.commit_reference,
            committed_at=metadata.committer_date,
            raw_metadata={
                "sha": metadata.sha,
                "canonical_url": metadata.canonical_url,
                "committer_date": format_timestamp(metadata.committer_date),
            },
        )

    @property
    def resolved(self) -> bool:
        return self.committed_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "full_url": self.full_url,
            "commit_reference": self.commit_reference,
            "committed_at": format_timestamp(self.committed_at),
            "raw_metadata": self.raw_metadata,
            "error": self.error,
        }


@dataclass(frozen=True)
class DriftReport:
    """Drift signals for one module in one environment."""
    days_since_deployed: Optional[int]
    days_behind_baseline: Optional[int]
    severity: Severity
    in_sync_with_baseline: bool
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "days_since_deployed": self.days_since_deployed,
            "days_behind_baseline": self.days_behind_baseline,
            "severity": self.severity.value,
            "in_sync_with_baseline": self.in_sync_with_baseline,
            "message": self.message,
        }


# module name -> versioned resource URL
Manifest = Dict[str, str]

# module name -> environment name -> entry
ModuleEnvironmentTable = Dict[str, Dict[str, Optional[ResourceReference]]]
DetailedModuleEnvironmentTable = Dict[str, Dict[str, Optional[CommitDetail]]]
DriftTable = Dict[str, Dict[str, Optional[DriftReport]]]


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp from a source-control API into an aware UTC datetime.

    Accepts the trailing ``Z`` form GitHub returns. Naive values are taken as UTC.
    Returns None for empty input.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def table_to_dict(table: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Serialize a per-module, per-environment table, keeping null cells."""
    return {
        module: {
            env: (cell.to_dict() if cell is not None else None)
            for env, cell in row.items()
        }
        for module, row in table.items()
    }
