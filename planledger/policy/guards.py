"""Transition guards composed from approval and policy checks."""

import logging
from typing import Optional

from ..planning.models import ExecutionState, Plan
from .rules import PolicyConfig, check_transition

logger = logging.getLogger(__name__)


class ApprovalGuard:
    """Starting work requires an approved plan."""

    GUARDED_EVENTS = ("start",)

    def __init__(self, plan: Optional[Plan]):
        self.plan = plan
        self.last_reason: Optional[str] = None

    def allows(self, task_id: str, event: str) -> bool:
        self.last_reason = None
        if event not in self.GUARDED_EVENTS:
            return True
        if self.plan is None:
            self.last_reason = "no plan found"
        elif not self.plan.is_approved():
            self.last_reason = (
                "the plan is not approved. Approve the plan with "
                "'planledger plan approve' before starting work"
            )
        return self.last_reason is None


class PolicyGuard:
    """Start and verify must pass policy evaluation."""

    GUARDED_EVENTS = ("start", "verify")

    def __init__(
        self,
        plan: Optional[Plan],
        state: ExecutionState,
        config: Optional[PolicyConfig] = None,
    ):
        self.plan = plan
        self.state = state
        self.config = config
        self.last_reason: Optional[str] = None

    def allows(self, task_id: str, event: str) -> bool:
        self.last_reason = None
        if event not in self.GUARDED_EVENTS:
            return True
        self.last_reason = check_transition(self.plan, self.state, self.config, task_id, event)
        return self.last_reason is None


class CompositeGuard:
    """All guards must allow; the first denial's reason is kept.

    Guards are consulted in order, so put the most specific check (approval)
    first.
    """

    def __init__(self, *guards):
        self.guards = guards
        self.last_reason: Optional[str] = None

    def allows(self, task_id: str, event: str) -> bool:
        self.last_reason = None
        for guard in self.guards:
            allowed = guard.allows(task_id, event) if hasattr(guard, "allows") else guard(task_id, event)
            if not allowed:
                self.last_reason = getattr(guard, "last_reason", None) or "denied by guard"
                logger.info(f"Transition '{event}' denied for {task_id}: {self.last_reason}")
                return False
        return True


def build_guard(
    plan: Optional[Plan],
    state: ExecutionState,
    config: Optional[PolicyConfig] = None,
) -> CompositeGuard:
    """Compose the standard approval + policy guard."""
    return CompositeGuard(ApprovalGuard(plan), PolicyGuard(plan, state, config))
