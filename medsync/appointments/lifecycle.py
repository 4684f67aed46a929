"""Appointment lifecycle: statuses, legal transitions and who may do what.

No Django imports here. The write API validates every mutation with these
rules and the client layer uses them to decide which actions a viewer is
offered. Only the server-side check is authoritative; the client check is a
UX gate.

Status flow::

    pending -> accepted | rejected | cancelled
    accepted | scheduled | rescheduled -> scheduled | rescheduled (update)
                                       -> completed | cancelled
    completed, cancelled, rejected: terminal

``reschedule_requested`` is a flag orthogonal to the status. It can only be
raised on an accepted/scheduled/rescheduled appointment and resolves either
to ``rescheduled`` (approved) or back to the status it was raised on
(rejected).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from enum import StrEnum
from typing import Protocol

MODIFICATION_WINDOW = timedelta(hours=24)

# Shown instead of the status while a change request awaits the doctor.
RESCHEDULE_REQUESTED = "reschedule_requested"


class Status(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Role(StrEnum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    PHARMACIST = "pharmacist"
    ADMIN = "admin"


class Action(StrEnum):
    ACCEPT = "accept"
    REJECT = "reject"
    UPDATE = "update"
    COMPLETE = "complete"
    CANCEL = "cancel"
    RESCHEDULE = "reschedule"
    CONFIRM = "confirm"
    APPROVE_RESCHEDULE = "approve_reschedule"
    REJECT_RESCHEDULE = "reject_reschedule"


ACTIVE_STATUSES = frozenset({Status.ACCEPTED, Status.SCHEDULED, Status.RESCHEDULED})
TERMINAL_STATUSES = frozenset({Status.REJECTED, Status.COMPLETED, Status.CANCELLED})
TIME_GATED_ACTIONS = frozenset({Action.CANCEL, Action.RESCHEDULE})

_PATIENT_ACTIVE = frozenset({Action.RESCHEDULE, Action.CANCEL})
_DOCTOR_ACTIVE = frozenset({Action.UPDATE, Action.COMPLETE, Action.CANCEL})

_ROLE_ACTIONS: dict[Role, dict[Status, frozenset[Action]]] = {
    Role.PATIENT: {
        Status.PENDING: frozenset({Action.CANCEL}),
        Status.ACCEPTED: _PATIENT_ACTIVE,
        Status.SCHEDULED: _PATIENT_ACTIVE,
        Status.RESCHEDULED: _PATIENT_ACTIVE,
        Status.COMPLETED: frozenset({Action.CONFIRM}),
    },
    Role.DOCTOR: {
        Status.PENDING: frozenset({Action.ACCEPT, Action.REJECT}),
        Status.ACCEPTED: _DOCTOR_ACTIVE,
        Status.SCHEDULED: _DOCTOR_ACTIVE,
        Status.RESCHEDULED: _DOCTOR_ACTIVE,
    },
}

_RESCHEDULE_DECISIONS: dict[Role, frozenset[Action]] = {
    Role.DOCTOR: frozenset({Action.APPROVE_RESCHEDULE, Action.REJECT_RESCHEDULE}),
}

_SIMPLE_TRANSITIONS: dict[tuple[Status, Action], Status] = {
    (Status.PENDING, Action.ACCEPT): Status.ACCEPTED,
    (Status.PENDING, Action.REJECT): Status.REJECTED,
    (Status.PENDING, Action.CANCEL): Status.CANCELLED,
    (Status.COMPLETED, Action.CONFIRM): Status.COMPLETED,
}
for _status in ACTIVE_STATUSES:
    _SIMPLE_TRANSITIONS[(_status, Action.COMPLETE)] = Status.COMPLETED
    _SIMPLE_TRANSITIONS[(_status, Action.CANCEL)] = Status.CANCELLED


class InvalidTransition(ValueError):  # noqa: N818
    """Raised when an action has no defined move from the current state."""


class AppointmentLike(Protocol):
    status: str
    date: date | None
    time: time | None
    reschedule_requested: bool


@dataclass(frozen=True)
class LifecycleState:
    status: Status
    reschedule_requested: bool = False

    @classmethod
    def of(cls, appointment: AppointmentLike) -> LifecycleState:
        return cls(
            status=Status(appointment.status),
            reschedule_requested=bool(appointment.reschedule_requested),
        )

    @property
    def display_status(self) -> str:
        if self.reschedule_requested:
            return RESCHEDULE_REQUESTED
        return str(self.status)


def starts_at(appointment: AppointmentLike) -> datetime | None:
    """Concrete start of the visit, or None while the date or time is TBD."""
    if appointment.date is None or appointment.time is None:
        return None
    return datetime.combine(appointment.date, appointment.time)


def is_modifiable(
    appointment: AppointmentLike,
    now: datetime,
    window: timedelta = MODIFICATION_WINDOW,
) -> bool:
    """True when the visit starts at least ``window`` after ``now``.

    A naive start is read in ``now``'s time zone. An appointment without a
    concrete date and time never qualifies.
    """
    start = starts_at(appointment)
    if start is None:
        return False
    if start.tzinfo is None and now.tzinfo is not None:
        start = start.replace(tzinfo=now.tzinfo)
    elif start.tzinfo is not None and now.tzinfo is None:
        now = now.replace(tzinfo=start.tzinfo)
    return start - now >= window


def allowed_actions(
    appointment: AppointmentLike,
    role: str,
    now: datetime,
    *,
    window: timedelta = MODIFICATION_WINDOW,
) -> frozenset[Action]:
    try:
        role = Role(role)
        status = Status(appointment.status)
    except ValueError:
        return frozenset()

    if appointment.reschedule_requested:
        if status not in ACTIVE_STATUSES:
            return frozenset()
        return _RESCHEDULE_DECISIONS.get(role, frozenset())

    actions = _ROLE_ACTIONS.get(role, {}).get(status, frozenset())
    if actions & TIME_GATED_ACTIONS and not is_modifiable(appointment, now, window):
        actions = actions - TIME_GATED_ACTIONS
    return actions


def is_action_allowed(
    appointment: AppointmentLike,
    role: str,
    action: str,
    now: datetime,
    *,
    window: timedelta = MODIFICATION_WINDOW,
) -> bool:
    try:
        action = Action(action)
    except ValueError:
        return False
    return action in allowed_actions(appointment, role, now, window=window)


def transition(
    state: LifecycleState,
    action: str,
    *,
    schedule_changed: bool = False,
) -> LifecycleState:
    """Return the state reached by applying ``action`` to ``state``.

    ``schedule_changed`` tells an ``update`` whether the date or time moved,
    which turns an already scheduled visit into a rescheduled one.
    """
    action = Action(action)
    status = state.status

    if state.reschedule_requested:
        if action is Action.APPROVE_RESCHEDULE:
            return LifecycleState(Status.RESCHEDULED)
        if action is Action.REJECT_RESCHEDULE:
            return LifecycleState(status)
        msg = f"'{action}' is not possible while a reschedule request is pending"
        raise InvalidTransition(msg)

    if status in ACTIVE_STATUSES:
        if action is Action.RESCHEDULE:
            return LifecycleState(status, reschedule_requested=True)
        if action is Action.UPDATE:
            if status is Status.ACCEPTED:
                return LifecycleState(Status.SCHEDULED)
            return LifecycleState(Status.RESCHEDULED if schedule_changed else status)

    try:
        return LifecycleState(_SIMPLE_TRANSITIONS[(status, action)])
    except KeyError:
        msg = f"Cannot '{action}' an appointment that is '{status}'"
        raise InvalidTransition(msg) from None
