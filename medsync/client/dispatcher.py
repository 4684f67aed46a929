"""Turns push events into debounced re-reads of the authoritative list.

Event payloads are never merged into the store. Any appointment event only
means "something changed"; the dispatcher waits for the burst to settle,
reads the full list for the viewer's role and replaces the store with it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from typing import Protocol

from .api import Appointment
from .exceptions import MedsyncClientError
from .registry import EventListenerRegistry
from .store import AppointmentStore

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = 0.1


class AppointmentReader(Protocol):
    async def list_appointments(self, role: str) -> list[Appointment]: ...


class ReconciliationDispatcher:
    def __init__(
        self,
        registry: EventListenerRegistry,
        client: AppointmentReader,
        store: AppointmentStore,
        role: str,
        *,
        debounce: float = DEFAULT_DEBOUNCE,
    ) -> None:
        self._registry = registry
        self._client = client
        self._store = store
        self._role = role
        self._debounce = debounce
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task] = set()
        self._issued = 0
        self._applied = 0
        self._started = False
        self.reads = 0

    @property
    def pending(self) -> bool:
        return self._timer is not None or bool(self._tasks)

    def start(self) -> None:
        """Refetch after every event, and after every (re)connection."""
        if self._started:
            return
        for name in self._registry.event_names:
            self._registry.on(name, self._on_event)
        self._registry.add_attach_listener(self.schedule)
        self._started = True

    def stop(self) -> None:
        if not self._started:
            return
        for name in self._registry.event_names:
            self._registry.off(name, self._on_event)
        self._registry.remove_attach_listener(self.schedule)
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._started = False

    def _on_event(self, payload: Any) -> None:
        self.schedule()

    def schedule(self) -> None:
        """(Re)arm the debounce timer."""
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce, self._fire)

    def _fire(self) -> None:
        self._timer = None
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Appointment refetch crashed", exc_info=task.exception())

    async def refresh(self) -> None:
        """Read the list now and apply it unless a newer read already landed."""
        self._issued += 1
        sequence = self._issued
        self.reads += 1
        try:
            appointments = await self._client.list_appointments(self._role)
        except MedsyncClientError as exc:
            logger.error("Refetch of %s appointments failed: %s", self._role, exc)
            if sequence > self._applied:
                self._store.set_error(exc)
            return

        if sequence < self._applied:
            logger.debug("Discarding stale appointment read #%s", sequence)
            return
        self._applied = sequence
        self._store.replace(appointments)
        logger.debug(
            "Store replaced with %s appointments (read #%s)", len(appointments), sequence
        )

    async def settle(self) -> None:
        """Wait until no refetch is scheduled or running."""
        while self.pending:
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)
            else:
                await asyncio.sleep(self._debounce)
