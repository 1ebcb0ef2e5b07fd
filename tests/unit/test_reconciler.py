"""Unit tests for plan reconciliation."""

import logging
from datetime import datetime, timezone

import pytest

from planledger.planning.dag import CycleError
from planledger.planning.models import ApprovalStatus, ExecutionState, Plan, Task, TaskStatus
from planledger.planning.reconciler import PlanReconciler, new_plan_id, reconcile


def make_task(task_id, title=None, depends_on=None, feature_id=""):
    return Task(
        id=task_id,
        title=title if title is not None else f"Task {task_id}",
        depends_on=depends_on or [],
        feature_id=feature_id,
    )


def test_first_generation_creates_plan():
    """Test reconciling against no plan creates one."""
    plan = reconcile(None, [make_task("t1"), make_task("t2", depends_on=["t1"])], spec_id="shop")

    assert plan.id.startswith("plan-shop-")
    assert plan.spec_id == "shop"
    assert plan.task_ids() == ["t1", "t2"]
    assert plan.approval_status == ApprovalStatus.PENDING


def test_new_plan_id_format():
    """Test generated plan IDs embed the spec ID."""
    plan_id = new_plan_id("shop")
    prefix, _, seconds = plan_id.rpartition("-")
    assert prefix == "plan-shop"
    assert seconds.isdigit()


def test_orphans_preserved_and_state_untouched():
    """Test existing tasks missing from the proposal survive reconciliation."""
    existing = Plan(id="p1", spec_id="s", tasks=[make_task("t1")])
    state = ExecutionState()
    state.set_status("t1", TaskStatus.DONE)
    before = state.model_dump()

    plan = reconcile(existing, [make_task("t2", title="New")])

    assert set(plan.task_ids()) == {"t1", "t2"}
    assert state.model_dump() == before


def test_identity_preserved():
    """Test plan ID and creation time are kept from the existing plan."""
    created = datetime(2024, 1, 1, tzinfo=timezone.utc)
    existing = Plan(id="p1", spec_id="s", tasks=[make_task("t1")], created_at=created)

    plan = reconcile(existing, [make_task("t1")])

    assert plan.id == "p1"
    assert plan.created_at == created
    assert plan.spec_id == "s"


def test_approval_reset_to_pending():
    """Test any reconciliation invalidates approval."""
    existing = Plan(id="p1", tasks=[make_task("t1")], approval_status=ApprovalStatus.APPROVED)

    plan = reconcile(existing, [make_task("t1")])

    assert plan.approval_status == ApprovalStatus.PENDING


def test_proposed_overwrites_existing_content():
    """Test a proposed task replaces the existing task with the same ID."""
    existing = Plan(id="p1", tasks=[make_task("t1", title="Old")])

    plan = reconcile(existing, [make_task("t1", title="New")])

    assert len(plan.tasks) == 1
    assert plan.tasks[0].title == "New"


def test_proposed_order_then_orphans():
    """Test proposed tasks come first in proposal order, then orphans."""
    existing = Plan(id="p1", tasks=[make_task("o1"), make_task("t2"), make_task("o2")])

    plan = reconcile(existing, [make_task("t3"), make_task("t2")])

    assert plan.task_ids() == ["t3", "t2", "o1", "o2"]


def test_malformed_tasks_dropped(caplog):
    """Test tasks without ID or title are silently dropped."""
    caplog.set_level(logging.INFO)
    proposed = [make_task("", title="No id"), make_task("t2", title=""), make_task("t3")]

    plan = reconcile(None, proposed)

    assert plan.task_ids() == ["t3"]
    assert "Dropped 2 malformed" in caplog.text


def test_duplicate_proposed_keeps_first(caplog):
    """Test a repeated proposed ID keeps the first occurrence."""
    plan = reconcile(None, [make_task("t1", title="First"), make_task("t1", title="Second")])

    assert len(plan.tasks) == 1
    assert plan.tasks[0].title == "First"
    assert "Duplicate proposed task t1" in caplog.text


def test_idempotent():
    """Test reconciling the same proposal twice yields the same task IDs."""
    proposed = [make_task("t1"), make_task("t2", depends_on=["t1"])]
    first = reconcile(None, proposed)

    second = reconcile(first, proposed)

    assert set(second.task_ids()) == set(first.task_ids())
    assert second.id == first.id


def test_cycle_rejected():
    """Test a cyclic proposal raises CycleError."""
    with pytest.raises(CycleError):
        reconcile(None, [make_task("a", depends_on=["b"]), make_task("b", depends_on=["a"])])


def test_cycle_through_orphan_rejected():
    """Test cycles formed together with preserved orphans are caught."""
    existing = Plan(id="p1", tasks=[make_task("old", depends_on=["new"])])

    with pytest.raises(CycleError):
        reconcile(existing, [make_task("new", depends_on=["old"])])


def test_dangling_dependency_warns(caplog):
    """Test dependencies on unknown tasks are kept but logged."""
    plan = reconcile(None, [make_task("t1", depends_on=["ghost"])])

    assert plan.tasks[0].depends_on == ["ghost"]
    assert "t1 -> ghost" in caplog.text


def test_tasks_are_copies():
    """Test mutating the proposal after reconcile does not change the plan."""
    proposed = make_task("t1", depends_on=["t0"])
    plan = reconcile(None, [make_task("t0"), proposed])

    proposed.depends_on.append("t9")

    assert plan.task("t1").depends_on == ["t0"]


def test_explicit_overrides():
    """Test plan ID and creation time overrides."""
    created = datetime(2023, 5, 1, tzinfo=timezone.utc)
    plan = PlanReconciler().reconcile(None, [make_task("t1")], plan_id="fixed", created_at=created)

    assert plan.id == "fixed"
    assert plan.created_at == created


def test_filter_valid_tasks():
    """Test filtering keeps requirement tasks and tasks of current features."""
    tasks = [
        make_task("task-r1"),
        make_task("custom", feature_id="f1"),
        make_task("stale", feature_id="gone"),
    ]

    kept = PlanReconciler().filter_valid_tasks(tasks, {"task-r1"}, {"f1"})

    assert [t.id for t in kept] == ["task-r1", "custom"]
