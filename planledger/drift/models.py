"""Drift report models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from ..planning.models import utcnow


class DriftType(str, Enum):
    """Which pair of sources diverged."""

    SPEC = "spec"  # spec vs locked intent
    PLAN = "plan"  # plan vs spec
    CODE = "code"  # code vs execution state
    POLICY = "policy"  # policy vs execution state


class DriftCategory(str, Enum):
    """Kind of divergence."""

    MISSING = "MISSING"
    ORPHAN = "ORPHAN"
    MISMATCH = "MISMATCH"
    VIOLATION = "VIOLATION"
    IMPLEMENTATION = "IMPLEMENTATION"


class Severity(str, Enum):
    """Issue severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return ["low", "medium", "high", "critical"].index(self.value)


class Issue(BaseModel):
    """Single detected discrepancy."""

    id: str = Field(description="Deterministic issue ID")
    type: DriftType
    category: DriftCategory
    severity: Severity
    component_id: str = Field(default="", description="Feature, requirement or task ID")
    message: str
    path: str = Field(default="")
    hint: str = Field(default="", description="Suggested resolution")


class Report(BaseModel):
    """Issues found by one detection run. Derived, never authoritative."""

    id: str
    created_at: datetime = Field(default_factory=utcnow)
    issues: list[Issue] = Field(default_factory=list)

    def has_critical(self) -> bool:
        return any(i.severity == Severity.CRITICAL for i in self.issues)

    def issue_ids(self) -> set[str]:
        return {i.id for i in self.issues}

    def by_severity(self) -> list[Issue]:
        """Issues sorted most severe first (stable within a severity)."""
        return sorted(self.issues, key=lambda i: -i.severity.rank)

    def summary(self) -> dict[str, int]:
        """Count issues per severity."""
        counts = {s.value: 0 for s in Severity}
        for issue in self.issues:
            counts[issue.severity.value] += 1
        return counts
