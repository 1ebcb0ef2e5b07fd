"""Unit tests for the domain event bus."""

import logging

import pytest

from planledger.observability.events import DomainEvent, EventBus, log_event


def test_emit_reaches_typed_subscriber():
    """Test subscribers receive only their event type."""
    bus = EventBus()
    received = []
    bus.subscribe("task.transitioned", received.append)

    bus.emit("task.transitioned", actor="alice", task_id="t1")
    bus.emit("plan.approved")

    assert len(received) == 1
    assert received[0].actor == "alice"
    assert received[0].data == {"task_id": "t1"}


def test_wildcard_subscriber():
    """Test a None event type receives everything."""
    bus = EventBus()
    received = []
    bus.subscribe(None, received.append)

    bus.emit("a")
    bus.emit("b")

    assert [e.type for e in received] == ["a", "b"]


def test_unsubscribe():
    """Test unsubscribed callbacks stop receiving events."""
    bus = EventBus()
    received = []
    token = bus.subscribe(None, received.append)

    assert bus.unsubscribe(token)
    assert not bus.unsubscribe(token)
    bus.emit("a")

    assert received == []


def test_failing_subscriber_is_isolated(caplog):
    """Test a raising subscriber neither breaks publish nor other subscribers."""
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(None, broken)
    bus.subscribe(None, received.append)

    bus.emit("plan.reconciled")

    assert len(received) == 1
    assert "Subscriber failed for plan.reconciled: boom" in caplog.text


def test_replay_buffer_is_bounded():
    """Test replay keeps only the newest events."""
    bus = EventBus(buffer_size=2)
    for name in ("a", "b", "c"):
        bus.emit(name)

    assert [e.type for e in bus.replay()] == ["b", "c"]
    assert [e.type for e in bus.replay("c")] == ["c"]


def test_invalid_arguments():
    """Test bad buffer size and non-callable subscribers are rejected."""
    with pytest.raises(ValueError):
        EventBus(buffer_size=0)
    with pytest.raises(ValueError):
        EventBus().subscribe(None, "not callable")


def test_log_event(caplog):
    """Test the log subscriber writes event type, actor and data."""
    caplog.set_level(logging.INFO, logger="planledger.observability.events")

    log_event(DomainEvent(type="plan.approved", actor="alice", data={"plan_id": "p1"}))

    assert "[plan.approved] actor=alice plan_id=p1" in caplog.text
