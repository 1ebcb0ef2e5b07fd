"""Policy rules evaluated against a plan and execution state."""

import logging
from enum import Enum
from typing import Optional, Protocol

from pydantic import BaseModel, Field

from ..planning.models import ExecutionState, Plan, TaskStatus

logger = logging.getLogger(__name__)


class ViolationLevel(str, Enum):
    """Violation severity level."""

    WARNING = "warning"
    ERROR = "error"


class Violation(BaseModel):
    """Breach of a policy rule."""

    rule_id: str
    message: str
    level: ViolationLevel = Field(default=ViolationLevel.ERROR)


class PolicyConfig(BaseModel):
    """Policy settings (policy.yaml)."""

    max_wip: int = Field(default=3, description="Max tasks in progress (<=0 disables)")


class Rule(Protocol):
    """Constraint validated against a plan and state."""

    id: str

    def validate(self, plan: Optional[Plan], state: Optional[ExecutionState]) -> list[Violation]: ...


class MaxWIPRule:
    """Limit the number of plan tasks in progress."""

    id = "max-wip"

    def __init__(self, limit: int):
        self.limit = limit

    def validate(self, plan: Optional[Plan], state: Optional[ExecutionState]) -> list[Violation]:
        if plan is None or state is None or self.limit <= 0:
            return []

        in_progress = sum(
            1 for task in plan.tasks if state.status_of(task.id) == TaskStatus.IN_PROGRESS
        )
        if in_progress > self.limit:
            return [
                Violation(
                    rule_id=self.id,
                    level=ViolationLevel.WARNING,
                    message=(
                        f"WIP Limit Exceeded: {in_progress} tasks in progress "
                        f"(limit: {self.limit})."
                    ),
                )
            ]
        return []


class DependencyRule:
    """In-progress tasks must not have unfinished dependencies."""

    id = "dependency-check"

    def validate(self, plan: Optional[Plan], state: Optional[ExecutionState]) -> list[Violation]:
        if plan is None or state is None:
            return []

        violations = []
        for task in plan.tasks:
            if state.status_of(task.id) != TaskStatus.IN_PROGRESS:
                continue
            for dep in task.depends_on:
                if not state.status_of(dep).is_complete():
                    violations.append(
                        Violation(
                            rule_id=self.id,
                            level=ViolationLevel.ERROR,
                            message=(
                                f"Task '{task.id}' is in progress but depends on "
                                f"'{dep}' which is not done."
                            ),
                        )
                    )
        return violations


class PolicySet:
    """Collection of rules enabled for a project."""

    def __init__(self, rules: list[Rule]):
        self.rules = rules

    @classmethod
    def from_config(cls, config: Optional[PolicyConfig]) -> "PolicySet":
        """Build the default rule set.

        Args:
            config: Policy configuration (None means no WIP rule)

        Returns:
            PolicySet with WIP rule (when configured) and dependency rule
        """
        rules: list[Rule] = []
        if config is not None:
            rules.append(MaxWIPRule(config.max_wip))
        rules.append(DependencyRule())
        return cls(rules)

    def validate(self, plan: Optional[Plan], state: Optional[ExecutionState]) -> list[Violation]:
        violations: list[Violation] = []
        for rule in self.rules:
            violations.extend(rule.validate(plan, state))
        if violations:
            logger.debug(f"Policy evaluation found {len(violations)} violation(s)")
        return violations


def check_transition(
    plan: Optional[Plan],
    state: ExecutionState,
    config: Optional[PolicyConfig],
    task_id: str,
    event: str,
) -> Optional[str]:
    """Check whether policy allows a task transition.

    Args:
        plan: Current plan
        state: Execution state
        config: Policy configuration
        task_id: Task being transitioned
        event: Transition event

    Returns:
        Denial reason, or None when allowed
    """
    if event == "verify":
        if not state.status_of(task_id).is_complete():
            return f"task '{task_id}' must be done before it can be verified"
        return None

    if event != "start":
        return None

    if config is not None and config.max_wip > 0:
        in_progress = sum(
            1
            for tid, result in state.task_states.items()
            if tid != task_id and result.status == TaskStatus.IN_PROGRESS
        )
        if in_progress >= config.max_wip:
            return (
                f"WIP limit reached (current limit: {config.max_wip}). Complete or "
                "stop an existing task before starting a new one"
            )

    if plan is None:
        return None
    task = plan.task(task_id)
    if task is None:
        return None
    for dep in task.depends_on:
        dep_status = state.status_of(dep)
        if not dep_status.is_complete():
            return f"dependency '{dep}' is not complete (status: {dep_status.value})"
    return None
