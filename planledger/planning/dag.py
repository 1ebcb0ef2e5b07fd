"""Dependency graph validation for task plans."""

import logging
from collections.abc import Sequence

from .models import ExecutionState, Plan, Task, TaskStatus

logger = logging.getLogger(__name__)


class PlanValidationError(Exception):
    """Plan failed structural validation."""

    pass


class CycleError(PlanValidationError):
    """Circular dependency among plan tasks."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"cycle detected involving task: {task_id}")


def validate_dag(tasks: Sequence[Task]) -> None:
    """Check that task dependencies form a DAG.

    Iterative depth-first search over an index of task positions. Edges to
    task IDs absent from ``tasks`` are not followed and are not reported
    here; use ``dangling_dependencies`` for that. Repeated IDs are treated
    as one task carrying the union of their dependencies.

    Args:
        tasks: Task list of a candidate plan

    Raises:
        CycleError: If a dependency cycle exists (names one task on it)
    """
    index: dict[str, int] = {}
    for task in tasks:
        index.setdefault(task.id, len(index))

    ids = list(index)
    # Tasks sharing an ID share one node; their edges are merged
    adjacency: list[list[int]] = [[] for _ in ids]
    for task in tasks:
        edges = adjacency[index[task.id]]
        for dep in task.depends_on:
            if dep in index and index[dep] not in edges:
                edges.append(index[dep])

    visited = [False] * len(ids)
    on_stack = [False] * len(ids)

    for root in range(len(ids)):
        if visited[root]:
            continue
        visited[root] = True
        on_stack[root] = True
        stack: list[tuple[int, int]] = [(root, 0)]

        while stack:
            node, cursor = stack[-1]
            deps = adjacency[node]
            if cursor < len(deps):
                stack[-1] = (node, cursor + 1)
                dep = deps[cursor]
                if on_stack[dep]:
                    logger.debug(f"Back edge {ids[node]} -> {ids[dep]}")
                    raise CycleError(ids[dep])
                if not visited[dep]:
                    visited[dep] = True
                    on_stack[dep] = True
                    stack.append((dep, 0))
            else:
                on_stack[node] = False
                stack.pop()


def dangling_dependencies(tasks: Sequence[Task]) -> list[tuple[str, str]]:
    """List dependency edges that point at task IDs not in the plan.

    Args:
        tasks: Task list

    Returns:
        Sorted (task_id, missing_dependency_id) pairs
    """
    known = {t.id for t in tasks}
    dangling = {
        (task.id, dep) for task in tasks for dep in task.depends_on if dep not in known
    }
    return sorted(dangling)


def ready_tasks(plan: Plan, state: ExecutionState) -> list[Task]:
    """Compute tasks ready to start.

    A task is ready if it is pending and all its dependencies are done or
    verified. Order follows the plan.

    Args:
        plan: Current plan
        state: Execution state

    Returns:
        List of ready tasks
    """
    ready = []
    for task in plan.tasks:
        if state.status_of(task.id) != TaskStatus.PENDING:
            continue
        if all(state.status_of(dep).is_complete() for dep in task.depends_on):
            ready.append(task)
    return ready
