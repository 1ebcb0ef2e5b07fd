"""Task lifecycle state machine."""

import logging
from collections.abc import Callable
from typing import Optional, Protocol, Union, runtime_checkable

from .models import TaskStatus

logger = logging.getLogger(__name__)


# (from_state, event) -> (target_state, guarded)
TRANSITIONS: dict[tuple[TaskStatus, str], tuple[TaskStatus, bool]] = {
    (TaskStatus.PENDING, "start"): (TaskStatus.IN_PROGRESS, True),
    (TaskStatus.PENDING, "block"): (TaskStatus.BLOCKED, False),
    (TaskStatus.IN_PROGRESS, "complete"): (TaskStatus.DONE, False),
    (TaskStatus.IN_PROGRESS, "block"): (TaskStatus.BLOCKED, False),
    (TaskStatus.IN_PROGRESS, "stop"): (TaskStatus.PENDING, False),
    (TaskStatus.BLOCKED, "unblock"): (TaskStatus.PENDING, False),
    (TaskStatus.DONE, "reopen"): (TaskStatus.PENDING, False),
    (TaskStatus.DONE, "verify"): (TaskStatus.VERIFIED, True),
    (TaskStatus.VERIFIED, "reopen"): (TaskStatus.PENDING, False),
}

EVENTS = sorted({event for (_, event) in TRANSITIONS})


@runtime_checkable
class TransitionGuard(Protocol):
    """Predicate consulted before a guarded transition commits."""

    def allows(self, task_id: str, event: str) -> bool: ...


GuardLike = Union[TransitionGuard, Callable[[str, str], bool]]


class MachineBuildError(Exception):
    """Transition table or initial state is invalid."""

    pass


class TransitionError(Exception):
    """Event not allowed for the current state, or denied by the guard."""

    def __init__(
        self,
        event: str,
        state: TaskStatus,
        task_id: str = "",
        reason: Optional[str] = None,
    ):
        self.event = event
        self.state = state
        self.task_id = task_id
        self.reason = reason
        message = (
            f"the action '{event}' is not allowed while the task is in the "
            f"'{state.value}' state"
        )
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


def _build_table(
    transitions: dict[tuple[TaskStatus, str], tuple[TaskStatus, bool]],
) -> dict[TaskStatus, dict[str, tuple[TaskStatus, bool]]]:
    table: dict[TaskStatus, dict[str, tuple[TaskStatus, bool]]] = {
        status: {} for status in TaskStatus
    }
    for (source, event), (target, guarded) in transitions.items():
        if not isinstance(source, TaskStatus) or not isinstance(target, TaskStatus):
            raise MachineBuildError(f"invalid transition {source!r} --{event}--> {target!r}")
        if not event:
            raise MachineBuildError(f"empty event name for state {source.value}")
        table[source][event] = (target, bool(guarded))
    return table


def _allow_all(task_id: str, event: str) -> bool:
    return True


class TaskStateMachine:
    """State machine for a single task.

    Transitions are looked up in ``TRANSITIONS``. Guarded transitions consult
    the injected guard before committing; a denial leaves the state
    unchanged.
    """

    def __init__(
        self,
        initial_state: Union[str, TaskStatus],
        task_id: str,
        guard: Optional[GuardLike] = None,
        transitions: Optional[dict[tuple[TaskStatus, str], tuple[TaskStatus, bool]]] = None,
    ):
        """Initialize state machine.

        Args:
            initial_state: Starting status (empty string means pending)
            task_id: Task identifier passed to the guard
            guard: Guard object or ``(task_id, event) -> bool`` callable
            transitions: Transition table override

        Raises:
            MachineBuildError: If the table or initial state is invalid
        """
        self._table = _build_table(TRANSITIONS if transitions is None else transitions)
        try:
            self._state = TaskStatus.parse(initial_state)
        except ValueError as e:
            raise MachineBuildError(str(e)) from e
        self.task_id = task_id
        self.guard = guard if guard is not None else _allow_all

    @property
    def current(self) -> TaskStatus:
        """Current state."""
        return self._state

    def can_transition(self, event: str) -> bool:
        """Check whether the event is defined for the current state (guard not consulted)."""
        return event in self._table[self._state]

    def valid_events(self) -> list[str]:
        return sorted(self._table[self._state])

    def is_complete(self) -> bool:
        return self._state.is_complete()

    def is_final(self) -> bool:
        return self._state.is_final()

    def _guard_allows(self, event: str) -> bool:
        if isinstance(self.guard, TransitionGuard):
            return self.guard.allows(self.task_id, event)
        return self.guard(self.task_id, event)

    def transition(self, event: str) -> TaskStatus:
        """Apply one event.

        Args:
            event: Event name (start, block, complete, stop, unblock, reopen, verify)

        Returns:
            New status

        Raises:
            TransitionError: If the event is invalid here or the guard denies it
        """
        entry = self._table[self._state].get(event)
        if entry is None:
            raise TransitionError(event, self._state, self.task_id)

        target, guarded = entry
        if guarded and not self._guard_allows(event):
            reason = getattr(self.guard, "last_reason", None)
            logger.debug(f"Guard denied {event} for {self.task_id} in {self._state.value}")
            raise TransitionError(event, self._state, self.task_id, reason=reason)

        logger.debug(f"Task {self.task_id}: {self._state.value} -> {target.value} ({event})")
        self._state = target
        return target
