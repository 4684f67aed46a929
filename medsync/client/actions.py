"""Viewer-side appointment actions.

Each action is offered only when the lifecycle rules allow it for the viewer's
role at this moment; the server re-checks every write regardless. A successful
write is put into the store straight away and the broadcast that follows
brings the authoritative list.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta

from medsync.appointments import lifecycle
from medsync.appointments.lifecycle import Action

from .api import Appointment
from .api import AppointmentsClient
from .channel import PushChannelManager
from .exceptions import ActionNotAllowed
from .store import AppointmentStore

logger = logging.getLogger(__name__)


def local_now() -> datetime:
    return datetime.now().astimezone()


class AppointmentActions:
    def __init__(
        self,
        client: AppointmentsClient,
        store: AppointmentStore,
        role: str,
        *,
        channels: PushChannelManager | None = None,
        clock: Callable[[], datetime] = local_now,
        window: timedelta = lifecycle.MODIFICATION_WINDOW,
    ) -> None:
        self._client = client
        self._store = store
        self._role = role
        self._channels = channels
        self._clock = clock
        self._window = window

    def allowed(self, appointment: Appointment) -> frozenset[Action]:
        return lifecycle.allowed_actions(
            appointment, self._role, self._clock(), window=self._window
        )

    def can(self, appointment: Appointment, action: str) -> bool:
        return lifecycle.is_action_allowed(
            appointment, self._role, action, self._clock(), window=self._window
        )

    def _require(self, appointment: Appointment, action: Action) -> None:
        if not self.can(appointment, action):
            raise ActionNotAllowed(action, appointment.id, self._role)

    def _socket_id(self) -> str | None:
        if self._channels is None:
            return None
        channel = self._channels.channel
        if channel is None or not channel.connected:
            return None
        return channel.sid

    def _applied(self, appointment: Appointment) -> Appointment:
        self._store.apply_local(appointment)
        return appointment

    async def request(
        self,
        doctor_id: str,
        *,
        day: date | None = None,
        at: time | None = None,
        reason: str = "",
    ) -> Appointment:
        created = await self._client.create(
            doctor_id, day=day, at=at, reason=reason, socket_id=self._socket_id()
        )
        logger.info("Requested appointment %s", created.id)
        return self._applied(created)

    async def _change_status(self, appointment: Appointment, action: Action) -> Appointment:
        self._require(appointment, action)
        updated = await self._client.change_status(
            appointment.id, action, socket_id=self._socket_id()
        )
        return self._applied(updated)

    async def accept(self, appointment: Appointment) -> Appointment:
        return await self._change_status(appointment, Action.ACCEPT)

    async def reject(self, appointment: Appointment) -> Appointment:
        return await self._change_status(appointment, Action.REJECT)

    async def complete(self, appointment: Appointment) -> Appointment:
        return await self._change_status(appointment, Action.COMPLETE)

    async def cancel(self, appointment: Appointment) -> Appointment:
        return await self._change_status(appointment, Action.CANCEL)

    async def confirm(self, appointment: Appointment) -> Appointment:
        return await self._change_status(appointment, Action.CONFIRM)

    async def update(
        self,
        appointment: Appointment,
        *,
        day: date | None = None,
        at: time | None = None,
        notes: str | None = None,
    ) -> Appointment:
        self._require(appointment, Action.UPDATE)
        updated = await self._client.update(
            appointment.id, day=day, at=at, notes=notes, socket_id=self._socket_id()
        )
        return self._applied(updated)

    async def request_reschedule(
        self,
        appointment: Appointment,
        *,
        day: date,
        at: time,
        reason: str,
    ) -> Appointment:
        self._require(appointment, Action.RESCHEDULE)
        updated = await self._client.request_reschedule(
            appointment.id, day=day, at=at, reason=reason, socket_id=self._socket_id()
        )
        return self._applied(updated)

    async def respond_to_reschedule(
        self, appointment: Appointment, *, approve: bool
    ) -> Appointment:
        action = Action.APPROVE_RESCHEDULE if approve else Action.REJECT_RESCHEDULE
        self._require(appointment, action)
        updated = await self._client.respond_to_reschedule(
            appointment.id, approve=approve, socket_id=self._socket_id()
        )
        return self._applied(updated)

    async def withdraw(self, appointment: Appointment) -> None:
        """Delete a request that is still pending."""
        await self._client.delete(appointment.id, socket_id=self._socket_id())
        self._store.discard_local(appointment.id)
