"""Plan reconciliation: merge proposed tasks into the existing plan."""

import logging
import time
from collections.abc import Iterable
from datetime import datetime
from typing import Optional

from .dag import dangling_dependencies, validate_dag
from .models import ApprovalStatus, Plan, Task, utcnow

logger = logging.getLogger(__name__)


def new_plan_id(spec_id: str) -> str:
    """Generate a plan ID.

    Returns:
        ID of the form plan-<spec_id>-<unix seconds>
    """
    return f"plan-{spec_id}-{int(time.time())}"


class PlanReconciler:
    """Merge a proposed task list with the existing plan.

    Execution state is never touched: only the structural task list and the
    approval flag change.
    """

    def reconcile(
        self,
        existing: Optional[Plan],
        proposed_tasks: Iterable[Task],
        spec_id: str = "",
        plan_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Plan:
        """Reconcile proposed tasks with the existing plan.

        Args:
            existing: Current plan, or None on first generation
            proposed_tasks: Tasks from a heuristic or external generator
            spec_id: Spec the plan implements (kept from existing plan if empty)
            plan_id: Explicit plan ID override
            created_at: Explicit creation time override

        Returns:
            New plan with approval reset to pending (not persisted)

        Raises:
            CycleError: If the merged task graph has a cycle
        """
        remaining: dict[str, Task] = {}
        if existing is not None:
            identity = existing.id
            created = existing.created_at
            spec_id = spec_id or existing.spec_id
            for task in existing.tasks:
                remaining.setdefault(task.id, task)
        else:
            identity = new_plan_id(spec_id)
            created = utcnow()

        if plan_id:
            identity = plan_id
        if created_at is not None:
            created = created_at

        merged: list[Task] = []
        accepted: set[str] = set()
        dropped = 0
        for proposed in proposed_tasks:
            if not proposed.is_well_formed():
                dropped += 1
                continue
            if proposed.id in accepted:
                logger.warning(f"Duplicate proposed task {proposed.id}; keeping first")
                continue
            accepted.add(proposed.id)
            remaining.pop(proposed.id, None)
            merged.append(proposed.model_copy(deep=True))

        orphans = 0
        for orphan in remaining.values():
            if not orphan.is_well_formed():
                dropped += 1
                continue
            merged.append(orphan.model_copy(deep=True))
            orphans += 1

        if dropped:
            logger.info(f"Dropped {dropped} malformed task(s) during reconciliation")

        validate_dag(merged)

        dangling = dangling_dependencies(merged)
        if dangling:
            logger.warning(
                "Plan has dependencies on unknown tasks: "
                + ", ".join(f"{t} -> {d}" for t, d in dangling[:10])
            )

        plan = Plan(
            id=identity,
            spec_id=spec_id,
            tasks=merged,
            approval_status=ApprovalStatus.PENDING,
            created_at=created,
            updated_at=utcnow(),
        )
        logger.info(
            f"Reconciled plan {plan.id}: {len(merged)} tasks ({orphans} preserved orphans)"
        )
        return plan

    def filter_valid_tasks(
        self,
        tasks: Iterable[Task],
        valid_task_ids: set[str],
        valid_feature_ids: set[str],
    ) -> list[Task]:
        """Keep tasks that match a requirement task ID or a current feature ID.

        Args:
            tasks: Tasks to filter
            valid_task_ids: Task IDs derived from spec requirements
            valid_feature_ids: Feature IDs in the spec

        Returns:
            Filtered task list, original order
        """
        return [
            t for t in tasks if t.id in valid_task_ids or t.feature_id in valid_feature_ids
        ]


def reconcile(existing: Optional[Plan], proposed_tasks: Iterable[Task], spec_id: str = "") -> Plan:
    """Reconcile with a default ``PlanReconciler``."""
    return PlanReconciler().reconcile(existing, proposed_tasks, spec_id=spec_id)
