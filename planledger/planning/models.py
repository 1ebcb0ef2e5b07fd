"""Plan, task and execution state models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """Current UTC time."""
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"
    VERIFIED = "verified"

    @classmethod
    def parse(cls, value: "str | TaskStatus") -> "TaskStatus":
        """Parse a status string; empty means pending.

        Raises:
            ValueError: If value is not a known status
        """
        if isinstance(value, cls):
            return value
        if not value:
            return cls.PENDING
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"invalid task status: {value}") from None

    def is_complete(self) -> bool:
        """Done or verified."""
        return self in (TaskStatus.DONE, TaskStatus.VERIFIED)

    def is_final(self) -> bool:
        return self == TaskStatus.VERIFIED

    def valid_events(self) -> list[str]:
        """Events accepted from this status."""
        from .machine import TRANSITIONS

        return sorted(event for (state, event) in TRANSITIONS if state == self)

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class ApprovalStatus(str, Enum):
    """Plan approval status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def parse(cls, value: "str | ApprovalStatus") -> "ApprovalStatus":
        if isinstance(value, cls):
            return value
        if not value:
            return cls.PENDING
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"invalid approval status: {value}") from None

    def can_transition_to(self, target: "ApprovalStatus") -> bool:
        """Check approval transition.

        Pending may become approved or rejected; both return to pending.
        """
        if self == ApprovalStatus.PENDING:
            return target in (ApprovalStatus.APPROVED, ApprovalStatus.REJECTED)
        return target == ApprovalStatus.PENDING


class TaskPriority(str, Enum):
    """Task priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: "str | TaskPriority") -> "TaskPriority":
        if isinstance(value, cls):
            return value
        if not value:
            return cls.MEDIUM
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"invalid task priority: {value}") from None

    @property
    def order(self) -> int:
        return {"low": 1, "medium": 2, "high": 3}[self.value]


class Task(BaseModel):
    """Unit of work in a plan."""

    id: str = Field(default="", description="Task identifier, unique within a plan")
    title: str = Field(default="")
    description: str = Field(default="")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
    estimate: str = Field(default="", description="Free-form estimate, e.g. 4h or 2d")
    depends_on: list[str] = Field(default_factory=list, description="IDs of prerequisite tasks")
    feature_id: str = Field(default="", description="Feature this task implements")

    @field_validator("priority", mode="before")
    @classmethod
    def _parse_priority(cls, value):
        return TaskPriority.parse(value or "")

    @field_validator("depends_on", mode="before")
    @classmethod
    def _normalize_depends_on(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    def is_well_formed(self) -> bool:
        """A task needs both an ID and a title."""
        return bool(self.id) and bool(self.title)


class Plan(BaseModel):
    """Current task DAG derived from a spec."""

    id: str = Field(description="Plan identifier")
    spec_id: str = Field(default="", description="Spec this plan implements")
    tasks: list[Task] = Field(default_factory=list)
    approval_status: ApprovalStatus = Field(default=ApprovalStatus.PENDING)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("approval_status", mode="before")
    @classmethod
    def _parse_approval(cls, value):
        return ApprovalStatus.parse(value or "")

    def task(self, task_id: str) -> Optional[Task]:
        """Find task by ID."""
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def task_ids(self) -> list[str]:
        return [t.id for t in self.tasks]

    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED


class TaskResult(BaseModel):
    """Observed execution facts for one task."""

    status: TaskStatus = Field(default=TaskStatus.PENDING)
    path: str = Field(default="", description="Evidence file path")
    owner: str = Field(default="")
    evidence: list[str] = Field(default_factory=list, description="Free-form proof strings")

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value):
        return TaskStatus.parse(value or "")


class ExecutionState(BaseModel):
    """Observed reality of plan execution."""

    project_id: str = Field(default="unknown")
    task_states: dict[str, TaskResult] = Field(default_factory=dict)
    updated_at: datetime = Field(default_factory=utcnow)

    def status_of(self, task_id: str) -> TaskStatus:
        """Status of a task; tasks without an entry are pending."""
        result = self.task_states.get(task_id)
        return result.status if result else TaskStatus.PENDING

    def result(self, task_id: str) -> TaskResult:
        """Get or create the result entry for a task."""
        if task_id not in self.task_states:
            self.task_states[task_id] = TaskResult()
        return self.task_states[task_id]

    def set_status(self, task_id: str, status: TaskStatus) -> None:
        self.result(task_id).status = status
        self.updated_at = utcnow()

    def set_owner(self, task_id: str, owner: str) -> None:
        self.result(task_id).owner = owner
        self.updated_at = utcnow()

    def set_path(self, task_id: str, path: str) -> None:
        self.result(task_id).path = path
        self.updated_at = utcnow()

    def add_evidence(self, task_id: str, evidence: str) -> None:
        """Append evidence; existing entries are never overwritten."""
        self.result(task_id).evidence.append(evidence)
        self.updated_at = utcnow()

    def prune(self, keep_ids: set[str]) -> list[str]:
        """Drop history for task IDs not in keep_ids.

        Args:
            keep_ids: Task IDs whose entries survive

        Returns:
            Sorted list of removed task IDs
        """
        removed = sorted(tid for tid in self.task_states if tid not in keep_ids)
        for task_id in removed:
            del self.task_states[task_id]
        if removed:
            self.updated_at = utcnow()
        return removed
