"""In-memory stand-ins for the Socket.IO client and the appointments API."""

from __future__ import annotations

import asyncio
from typing import Any

from socketio import exceptions as sio_exceptions

from medsync.client.api import Appointment

LIFECYCLE_EVENTS = ("connect", "disconnect", "connect_error")


class FakeServer:
    """Scripts handshake outcomes for every client the factory builds.

    Outcomes: ``ok``, ``unauthorized``, ``jwt_expired``, ``refused``, ``hang``.
    Once the script runs out every handshake succeeds.
    """

    def __init__(self, outcomes: list[str] | None = None) -> None:
        self.outcomes = list(outcomes or [])
        self.clients: list[FakeSocketClient] = []
        self.handshakes: list[dict[str, Any]] = []
        self.call_answers: dict[str, Any] = {}
        self._next_sid = 0

    def factory(self) -> FakeSocketClient:
        client = FakeSocketClient(self)
        self.clients.append(client)
        return client

    @property
    def current(self) -> FakeSocketClient:
        return self.clients[-1]

    def new_sid(self) -> str:
        self._next_sid += 1
        return f"sid-{self._next_sid}"


class FakeSocketClient:
    def __init__(self, server: FakeServer) -> None:
        self.server = server
        self.handlers: dict[str, Any] = {}
        self.connected = False
        # Engine.IO session id; the server routes by the namespace sid instead.
        self.sid: str | None = None
        self.namespaces: dict[str, str] = {}
        self.emitted: list[tuple[str, Any]] = []
        self._ended = asyncio.Event()
        self._read_loop_cancelled = False

    def on(self, event, handler=None, namespace=None):
        self.handlers[event] = handler

    async def _trigger(self, event: str, *args: Any) -> None:
        handler = self.handlers.get(event)
        if handler is not None:
            await handler(*args)
        elif event not in LIFECYCLE_EVENTS and "*" in self.handlers:
            await self.handlers["*"](event, *args)

    async def connect(self, url, auth=None, socketio_path="socket.io", **kwargs):
        self.server.handshakes.append(
            {"url": url, "auth": auth, "socketio_path": socketio_path}
        )
        outcome = self.server.outcomes.pop(0) if self.server.outcomes else "ok"
        if outcome == "hang":
            await asyncio.Event().wait()
        if outcome == "refused":
            msg = "Connection refused by the server"
            raise sio_exceptions.ConnectionError(msg)
        if outcome != "ok":
            await self._trigger("connect_error", {"message": outcome})
            msg = "One or more namespaces failed to connect"
            raise sio_exceptions.ConnectionError(msg)
        namespace_sid = self.server.new_sid()
        self.sid = namespace_sid.replace("sid-", "eio-")
        self.namespaces["/"] = namespace_sid
        self.connected = True
        await self._trigger("connect")

    def get_sid(self, namespace=None):
        return self.namespaces.get(namespace or "/")

    async def wait(self):
        # Like Engine.IO, waiting shares the read loop task: cancelling the
        # wait cancels the loop, and a later disconnect() re-raises it.
        try:
            await self._ended.wait()
        except asyncio.CancelledError:
            self._read_loop_cancelled = True
            raise

    async def disconnect(self):
        if self._read_loop_cancelled and self.connected:
            raise asyncio.CancelledError
        await self.drop("client disconnect")
        self._ended.set()

    async def drop(self, reason: str = "transport close") -> None:
        """The server side lost the connection."""
        if self.connected:
            self.connected = False
            self.namespaces.clear()
            await self._trigger("disconnect", reason)
        self._ended.set()

    async def push(self, event: str, data: Any = None) -> None:
        """The server emitted ``event`` to this socket."""
        await self._trigger(event, data)

    async def emit(self, event, data=None, namespace=None, callback=None):
        self.emitted.append((event, data))

    async def call(self, event, data=None, namespace=None, timeout=60):
        self.emitted.append((event, data))
        answer = self.server.call_answers.get(event)
        if answer is None:
            raise sio_exceptions.TimeoutError
        return answer(data) if callable(answer) else answer


def appointment_row(appointment_id: int | str, status: str = "pending", **extra) -> dict:
    return {
        "id": appointment_id,
        "patient": 1,
        "doctor": 2,
        "status": status,
        "display_status": extra.pop("display_status", status),
        "date": None,
        "time": None,
        **extra,
    }


class FakeAPI:
    """Answers ``list_appointments`` from a queue of results.

    A queued exception is raised; a queued ``asyncio.Future`` is awaited, so a
    test can hold a read open while a later one completes.
    """

    def __init__(self, *results: Any) -> None:
        self.results = list(results)
        self.calls: list[str] = []
        self.default: list[Appointment] = []

    async def list_appointments(self, role: str) -> list[Appointment]:
        self.calls.append(role)
        result = self.results.pop(0) if self.results else self.default
        if isinstance(result, asyncio.Future):
            result = await result
        if isinstance(result, Exception):
            raise result
        return [
            row if isinstance(row, Appointment) else Appointment.from_payload(row)
            for row in result
        ]


async def eventually(predicate, timeout: float = 2.0, interval: float = 0.005) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            msg = "condition not reached in time"
            raise AssertionError(msg)
        await asyncio.sleep(interval)
