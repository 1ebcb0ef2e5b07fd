"""Unit tests for plan dependency graph validation."""

import pytest

from planledger.planning.dag import (
    CycleError,
    PlanValidationError,
    dangling_dependencies,
    ready_tasks,
    validate_dag,
)
from planledger.planning.models import ExecutionState, Plan, Task, TaskStatus


def make_task(task_id, depends_on=None):
    return Task(id=task_id, title=f"Task {task_id}", depends_on=depends_on or [])


def test_self_loop_is_a_cycle():
    """Test a task depending on itself is rejected and named."""
    with pytest.raises(CycleError) as exc_info:
        validate_dag([make_task("t1", ["t1"])])

    assert exc_info.value.task_id == "t1"
    assert "t1" in str(exc_info.value)


def test_acyclic_chain_passes():
    """Test a simple dependency chain validates."""
    validate_dag([make_task("t1"), make_task("t2", ["t1"])])


def test_empty_plan_passes():
    """Test an empty task list validates."""
    validate_dag([])


def test_two_node_cycle():
    """Test a mutual dependency is rejected."""
    with pytest.raises(CycleError) as exc_info:
        validate_dag([make_task("a", ["b"]), make_task("b", ["a"])])

    assert exc_info.value.task_id in ("a", "b")


def test_long_cycle_reports_task_on_cycle():
    """Test the named task lies on the cycle, not on the lead-in path."""
    tasks = [
        make_task("entry", ["x1"]),
        make_task("x1", ["x2"]),
        make_task("x2", ["x3"]),
        make_task("x3", ["x1"]),
    ]
    with pytest.raises(CycleError) as exc_info:
        validate_dag(tasks)

    assert exc_info.value.task_id in ("x1", "x2", "x3")


def test_cycle_error_is_plan_validation_error():
    """Test CycleError can be caught as a PlanValidationError."""
    with pytest.raises(PlanValidationError):
        validate_dag([make_task("t1", ["t1"])])


def test_diamond_is_not_a_cycle():
    """Test shared dependencies do not count as cycles."""
    tasks = [
        make_task("base"),
        make_task("left", ["base"]),
        make_task("right", ["base"]),
        make_task("top", ["left", "right"]),
    ]
    validate_dag(tasks)


def test_deep_chain_does_not_hit_recursion_limit():
    """Test a very long chain validates without recursion."""
    tasks = [make_task("t0")]
    for i in range(1, 5000):
        tasks.append(make_task(f"t{i}", [f"t{i - 1}"]))

    validate_dag(tasks)


def test_dangling_dependency_is_tolerated():
    """Test edges to unknown task IDs are ignored by cycle detection.

    This is deliberate: referential integrity is reported separately by
    dangling_dependencies, not by validate_dag.
    """
    validate_dag([make_task("t1", ["ghost"])])


def test_dangling_dependencies_listed():
    """Test dangling edges are reported in sorted order."""
    tasks = [
        make_task("t2", ["ghost-b"]),
        make_task("t1", ["ghost-a", "t2"]),
    ]

    assert dangling_dependencies(tasks) == [("t1", "ghost-a"), ("t2", "ghost-b")]


def test_dangling_dependencies_empty_for_closed_plan():
    """Test no dangling edges when every dependency is a plan task."""
    assert dangling_dependencies([make_task("t1"), make_task("t2", ["t1"])]) == []


def test_ready_tasks_requires_complete_dependencies():
    """Test only pending tasks with done or verified dependencies are ready."""
    plan = Plan(
        id="p1",
        tasks=[
            make_task("t1"),
            make_task("t2", ["t1"]),
            make_task("t3", ["t2"]),
            make_task("t4"),
        ],
    )
    state = ExecutionState()
    state.set_status("t1", TaskStatus.VERIFIED)
    state.set_status("t4", TaskStatus.IN_PROGRESS)

    ready = ready_tasks(plan, state)

    assert [t.id for t in ready] == ["t2"]


def test_ready_tasks_with_unknown_dependency():
    """Test a dependency with no state entry counts as pending."""
    plan = Plan(id="p1", tasks=[make_task("t1", ["ghost"])])

    assert ready_tasks(plan, ExecutionState()) == []


def test_duplicate_ids_merge_dependencies():
    """Test edges of a repeated task ID are not lost."""
    with pytest.raises(CycleError) as exc_info:
        validate_dag([make_task("a"), make_task("a", ["a"])])

    assert exc_info.value.task_id == "a"


def test_duplicate_ids_cycle_through_later_copy():
    """Test a cycle formed only by the second copy of an ID is caught."""
    tasks = [make_task("a"), make_task("b", ["a"]), make_task("a", ["b"])]

    with pytest.raises(CycleError):
        validate_dag(tasks)


def test_duplicate_ids_without_cycle_pass():
    """Test repeated IDs with compatible edges validate."""
    validate_dag([make_task("base"), make_task("a", ["base"]), make_task("a", ["base"])])
