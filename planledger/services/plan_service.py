"""Plan use cases: generate, reconcile, approve, reject, prune."""

import logging
from typing import Optional

from ..observability.events import EventBus
from ..planning.models import ApprovalStatus, Plan, Task, TaskPriority, utcnow
from ..planning.reconciler import PlanReconciler
from ..spec.models import ProductSpec, requirement_task_id
from ..state.persistence import WorkspaceRepository

logger = logging.getLogger(__name__)


class WorkspaceError(Exception):
    """Workspace is missing something an operation needs."""

    pass


def heuristic_tasks(spec: ProductSpec) -> list[Task]:
    """Derive one task per requirement.

    A feature without requirements yields a single feature-level task.

    Args:
        spec: Product specification

    Returns:
        Proposed tasks with stable IDs
    """
    tasks = []
    for feature in spec.features:
        if not feature.requirements:
            tasks.append(
                Task(
                    id=f"task-{feature.id}",
                    title=f"Implement {feature.title}",
                    description=f"Implement the feature: {feature.title}. {feature.description}".strip(),
                    feature_id=feature.id,
                )
            )
            continue

        for req in feature.requirements:
            try:
                priority = TaskPriority.parse(req.priority)
            except ValueError:
                logger.warning(f"Requirement {req.id} has unknown priority '{req.priority}'")
                priority = TaskPriority.MEDIUM
            tasks.append(
                Task(
                    id=requirement_task_id(req.id),
                    title=f"{req.title} ({feature.title})",
                    description=req.description,
                    priority=priority,
                    estimate=req.estimate,
                    feature_id=feature.id,
                    depends_on=[requirement_task_id(dep) for dep in req.depends_on],
                )
            )
    return tasks


class PlanService:
    """Plan lifecycle on top of the workspace repository."""

    def __init__(
        self,
        repo: WorkspaceRepository,
        bus: Optional[EventBus] = None,
        reconciler: Optional[PlanReconciler] = None,
    ):
        self.repo = repo
        self.bus = bus or EventBus()
        self.reconciler = reconciler or PlanReconciler()

    def generate_plan(self, actor: str = "cli") -> Plan:
        """Regenerate the plan from the spec using the default heuristic."""
        spec = self.repo.load_spec()
        return self.reconcile_plan(heuristic_tasks(spec), actor=actor)

    def update_plan(self, tasks: list[Task], actor: str = "ai") -> Plan:
        """Reconcile an externally generated task list."""
        return self.reconcile_plan(tasks, actor=actor)

    def reconcile_plan(self, proposed: list[Task], actor: str = "cli") -> Plan:
        """Merge proposed tasks into the plan and persist.

        The spec is locked at the same time so later intent drift is measured
        against this generation.

        Raises:
            CycleError: If the merged plan has a dependency cycle
            PersistenceError: If loading or saving fails
        """
        spec = self.repo.load_spec()
        existing = self.repo.load_plan()

        plan = self.reconciler.reconcile(existing, proposed, spec_id=spec.id)

        self.repo.save_plan(plan)
        self.repo.save_spec_lock(spec)
        self.bus.emit(
            "plan.reconciled",
            actor=actor,
            plan_id=plan.id,
            spec_id=plan.spec_id,
            task_count=len(plan.tasks),
        )
        return plan

    def get_plan(self) -> Optional[Plan]:
        return self.repo.load_plan()

    def _require_plan(self) -> Plan:
        plan = self.repo.load_plan()
        if plan is None:
            raise WorkspaceError("no plan found")
        return plan

    def _set_approval(self, target: ApprovalStatus, actor: str) -> Plan:
        plan = self._require_plan()
        if plan.approval_status == target:
            return plan
        if not plan.approval_status.can_transition_to(target):
            raise WorkspaceError(
                f"cannot change plan approval from {plan.approval_status.value} to {target.value}"
            )
        plan.approval_status = target
        plan.updated_at = utcnow()
        self.repo.save_plan(plan)
        self.bus.emit(f"plan.{target.value}", actor=actor, plan_id=plan.id, spec_id=plan.spec_id)
        return plan

    def approve_plan(self, actor: str = "cli") -> Plan:
        """Approve the plan so work can start.

        A rejected plan must be regenerated (back to pending) first.
        """
        return self._set_approval(ApprovalStatus.APPROVED, actor)

    def reject_plan(self, actor: str = "cli") -> Plan:
        return self._set_approval(ApprovalStatus.REJECTED, actor)

    def prune_plan(self, actor: str = "cli", prune_state: bool = False) -> list[str]:
        """Remove tasks that map to no requirement and no current feature.

        Args:
            actor: Who requested the prune
            prune_state: Also drop execution history of removed tasks

        Returns:
            IDs of removed tasks
        """
        spec = self.repo.load_spec()
        plan = self._require_plan()

        kept = self.reconciler.filter_valid_tasks(
            plan.tasks, spec.requirement_task_ids(), spec.feature_ids()
        )
        kept_ids = {t.id for t in kept}
        removed = [t.id for t in plan.tasks if t.id not in kept_ids]

        plan.tasks = kept
        plan.updated_at = utcnow()
        self.repo.save_plan(plan)

        if prune_state and removed:
            state = self.repo.load_state()
            state.prune(kept_ids)
            self.repo.save_state(state)

        self.bus.emit("plan.pruned", actor=actor, plan_id=plan.id, removed=len(removed))
        return removed
