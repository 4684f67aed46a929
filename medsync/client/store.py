"""Client-side projection of the viewer's appointment list."""

from __future__ import annotations

import logging
from collections.abc import Callable
from collections.abc import Iterable
from datetime import UTC
from datetime import datetime

from .api import Appointment

logger = logging.getLogger(__name__)

Subscriber = Callable[["AppointmentStore"], object]


class AppointmentStore:
    """Holds the last list read from the server.

    Written by the reconciliation dispatcher (wholesale replace) and by
    optimistic post-write updates. Subscribers are called after every change.
    """

    def __init__(self) -> None:
        self._appointments: dict[str, Appointment] = {}
        self._subscribers: list[Subscriber] = []
        self.error: Exception | None = None
        self.last_synced_at: datetime | None = None
        self.version = 0

    def __len__(self) -> int:
        return len(self._appointments)

    def __contains__(self, appointment_id: object) -> bool:
        return str(appointment_id) in self._appointments

    @property
    def appointments(self) -> tuple[Appointment, ...]:
        return tuple(self._appointments.values())

    @property
    def loaded(self) -> bool:
        return self.last_synced_at is not None

    def get(self, appointment_id: str) -> Appointment | None:
        return self._appointments.get(str(appointment_id))

    def replace(self, appointments: Iterable[Appointment]) -> None:
        self._appointments = {a.id: a for a in appointments}
        self.error = None
        self.last_synced_at = datetime.now(UTC)
        self._changed()

    def apply_local(self, appointment: Appointment) -> None:
        self._appointments[appointment.id] = appointment
        self._changed()

    def discard_local(self, appointment_id: str) -> None:
        if self._appointments.pop(str(appointment_id), None) is not None:
            self._changed()

    def set_error(self, error: Exception) -> None:
        self.error = error
        self._changed()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _changed(self) -> None:
        self.version += 1
        for callback in list(self._subscribers):
            try:
                callback(self)
            except Exception:
                logger.exception("Appointment store subscriber failed")
