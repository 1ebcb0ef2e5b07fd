"""Task transition use case."""

import logging
from typing import Optional

from ..observability.events import EventBus
from ..planning.dag import ready_tasks
from ..planning.machine import TaskStateMachine
from ..planning.models import Task, TaskResult, TaskStatus
from ..policy.guards import build_guard
from ..state.persistence import WorkspaceRepository
from .plan_service import WorkspaceError

logger = logging.getLogger(__name__)


class TaskService:
    """Apply lifecycle events to tasks and record ownership and evidence."""

    def __init__(self, repo: WorkspaceRepository, bus: Optional[EventBus] = None):
        self.repo = repo
        self.bus = bus or EventBus()

    def transition(
        self,
        task_id: str,
        event: str,
        actor: str = "",
        evidence: str = "",
        path: str = "",
    ) -> TaskResult:
        """Apply one event to a task.

        Args:
            task_id: Task to transition
            event: Lifecycle event
            actor: Who is acting; becomes the owner on start
            evidence: Proof string appended to the task's evidence
            path: Implementation file to record for drift checks

        Returns:
            Updated task result

        Raises:
            WorkspaceError: If there is no plan or the task is not in it
            TransitionError: If the event is invalid or denied
            PersistenceError: If loading or saving fails
        """
        plan = self.repo.load_plan()
        if plan is None:
            raise WorkspaceError("no plan found")
        if plan.task(task_id) is None:
            raise WorkspaceError(f"task not found in plan: {task_id}")

        state = self.repo.load_state()
        policy = self.repo.load_policy()

        machine = TaskStateMachine(
            state.status_of(task_id),
            task_id,
            guard=build_guard(plan, state, policy),
        )
        before = machine.current
        after = machine.transition(event)

        state.set_status(task_id, after)
        if event == "start" and actor:
            state.set_owner(task_id, actor)
        if evidence:
            state.add_evidence(task_id, evidence)
        if path:
            state.set_path(task_id, path)

        self.repo.save_state(state)
        self.bus.emit(
            "task.transitioned",
            actor=actor or "cli",
            task_id=task_id,
            event=event,
            status=after.value,
            previous=before.value,
        )
        return state.task_states[task_id]

    def start(self, task_id: str, actor: str) -> TaskResult:
        return self.transition(task_id, "start", actor=actor)

    def complete(self, task_id: str, evidence: str = "", path: str = "") -> TaskResult:
        return self.transition(task_id, "complete", evidence=evidence, path=path)

    def ready(self) -> list[Task]:
        """Tasks whose dependencies are complete and that have not started."""
        plan = self.repo.load_plan()
        if plan is None:
            return []
        return ready_tasks(plan, self.repo.load_state())

    def summary(self) -> dict[str, int]:
        """Count plan tasks per status."""
        plan = self.repo.load_plan()
        counts = {s.value: 0 for s in TaskStatus}
        if plan is None:
            return counts
        state = self.repo.load_state()
        for task in plan.tasks:
            counts[state.status_of(task.id).value] += 1
        return counts
