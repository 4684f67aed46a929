"""Push channel: one Socket.IO connection per viewer, kept alive by a supervisor.

The Socket.IO client's own reconnection is switched off. The manager runs the
reconnect loop itself so every attempt re-reads the session token and an
authentication rejection can be told apart from a network failure.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC
from datetime import datetime
from enum import StrEnum
from typing import Any
from urllib.parse import urlencode

import socketio
from socketio import exceptions as sio_exceptions

from .events import AUTH_REJECTION_REASONS
from .events import TEST_CONNECTION
from .session import SessionTokenProvider

logger = logging.getLogger(__name__)

CONNECT = "connect"
DISCONNECT = "disconnect"

Listener = Callable[..., Any]


class ChannelState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class ReconnectPolicy:
    """Exponential backoff: ``initial`` seconds, doubling, capped at ``maximum``."""

    initial: float = 1.0
    maximum: float = 5.0

    def delay_for(self, attempt: int) -> float:
        exponent = max(attempt, 1) - 1
        return min(self.initial * 2**exponent, self.maximum)


def default_client_factory() -> socketio.AsyncClient:
    return socketio.AsyncClient(
        reconnection=False,
        logger=False,
        engineio_logger=False,
    )


class Channel:
    """A live (or reconnecting) connection plus its event listeners.

    Listeners are kept here rather than on the underlying Socket.IO client, so
    they survive the fresh client that each connection attempt builds.
    ``connect`` and ``disconnect`` are delivered to listeners like any other
    event.
    """

    def __init__(self, client_factory: Callable[[], Any]) -> None:
        self._client_factory = client_factory
        self._client: Any = None
        self._listeners: dict[str, list[Listener]] = {}
        self.state = ChannelState.DISCONNECTED
        self.sid: str | None = None
        self.reconnect_attempts = 0
        self.auth_rejected = False
        self.last_error: str | None = None
        self.closed = False

    def __repr__(self) -> str:
        return f"<Channel state={self.state} sid={self.sid}>"

    @property
    def connected(self) -> bool:
        return self.state is ChannelState.CONNECTED

    def on(self, event: str, callback: Listener) -> None:
        callbacks = self._listeners.setdefault(event, [])
        if callback not in callbacks:
            callbacks.append(callback)

    def off(self, event: str, callback: Listener) -> None:
        callbacks = self._listeners.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    # Connection ------------------------------------------------------------

    def _new_client(self) -> Any:
        client = self._client_factory()
        client.on("connect", self._handle_connect)
        client.on("disconnect", self._handle_disconnect)
        client.on("connect_error", self._handle_connect_error)
        client.on("*", self._handle_event)
        self._client = client
        return client

    async def open(
        self,
        url: str,
        token: str,
        *,
        socketio_path: str,
        timeout: float,
    ) -> None:
        """Run one handshake; raises on refusal, transport failure or timeout."""
        client = self._new_client()
        self.state = ChannelState.CONNECTING
        self.last_error = None
        query = urlencode({"token": token})
        try:
            await asyncio.wait_for(
                client.connect(
                    f"{url}?{query}",
                    auth={"token": token},
                    socketio_path=socketio_path,
                    wait_timeout=timeout,
                ),
                timeout=timeout,
            )
        except Exception:
            if self.state is ChannelState.CONNECTING:
                self.state = ChannelState.DISCONNECTED
            self._client = None
            await client.disconnect()
            raise

    async def wait(self) -> None:
        """Block until the current connection ends."""
        if self._client is not None:
            await self._client.wait()

    async def close(self) -> None:
        self.closed = True
        client, self._client = self._client, None
        if client is not None:
            await client.disconnect()
        if self.state is not ChannelState.DISCONNECTED:
            await self._handle_disconnect("client disconnect")

    # Socket.IO handlers ------------------------------------------------------

    async def _handle_connect(self) -> None:
        self.state = ChannelState.CONNECTED
        # The namespace sid, which the server routes by; ``client.sid`` is the
        # Engine.IO session id.
        self.sid = self._client.get_sid("/") if self._client is not None else None
        self.reconnect_attempts = 0
        self.auth_rejected = False
        self.last_error = None
        logger.info("Push channel connected sid=%s", self.sid)
        await self._dispatch(CONNECT)

    async def _handle_disconnect(self, *args: Any) -> None:
        reason = args[0] if args else None
        was_connected = self.state is ChannelState.CONNECTED
        self.state = ChannelState.DISCONNECTED
        self.sid = None
        if was_connected:
            logger.info("Push channel disconnected reason=%s", reason)
            await self._dispatch(DISCONNECT, reason)

    async def _handle_connect_error(self, data: Any = None) -> None:
        message = data.get("message") if isinstance(data, dict) else data
        self.last_error = str(message) if message else "connect_error"
        if self.last_error in AUTH_REJECTION_REASONS:
            self.auth_rejected = True
            logger.error(
                "Push channel handshake rejected the session (%s)", self.last_error
            )
        else:
            logger.warning("Push channel connect error: %s", self.last_error)

    async def _handle_event(self, event: str, *args: Any) -> None:
        await self._dispatch(event, *args)

    async def _dispatch(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners.get(event, ())):
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Push channel listener for %s failed", event)

    # Outbound --------------------------------------------------------------

    async def emit(self, event: str, data: Any = None) -> bool:
        if not self.connected or self._client is None:
            logger.warning("Dropping %s: push channel is not connected", event)
            return False
        await self._client.emit(event, data)
        return True

    async def call(self, event: str, data: Any = None, *, timeout: float = 5.0) -> Any:
        """Emit and wait for the server's callback answer; None if none came."""
        if not self.connected or self._client is None:
            logger.warning("Cannot call %s: push channel is not connected", event)
            return None
        try:
            return await self._client.call(event, data, timeout=timeout)
        except sio_exceptions.TimeoutError:
            logger.warning("No answer to %s within %ss", event, timeout)
            return None

    async def emit_test_ping(self) -> bool:
        return await self.emit(
            TEST_CONNECTION,
            {"timestamp": datetime.now(UTC).isoformat()},
        )


class PushChannelManager:
    """Owns at most one :class:`Channel` and the task that keeps it connected.

    Construct one per viewer (tab, process). ``get_channel()`` is safe to call
    from anywhere on the event loop; ``teardown()`` ends everything.
    """

    def __init__(
        self,
        url: str,
        token_provider: SessionTokenProvider,
        *,
        socketio_path: str = "ws/socket.io",
        client_factory: Callable[[], Any] = default_client_factory,
        policy: ReconnectPolicy | None = None,
        handshake_timeout: float = 20.0,
        on_auth_rejected: Callable[[Channel], Any] | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._token_provider = token_provider
        self._socketio_path = socketio_path
        self._client_factory = client_factory
        self._policy = policy or ReconnectPolicy()
        self._handshake_timeout = handshake_timeout
        self._on_auth_rejected = on_auth_rejected
        self._channel: Channel | None = None
        self._supervisor: asyncio.Task | None = None
        self._holding = False

    @property
    def channel(self) -> Channel | None:
        return self._channel

    def get_channel(self) -> Channel | None:
        """Return the live channel, creating it on first use.

        Returns None instead of raising when there is no session token or no
        running event loop to drive the connection.
        """
        if self._channel is not None and not self._channel.closed:
            return self._channel
        if not self._token_provider.get_token():
            logger.warning("No session token; push channel not opened")
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Push channel requested outside a running event loop")
            return None

        channel = Channel(self._client_factory)
        self._channel = channel
        self._supervisor = loop.create_task(
            self._supervise(channel),
            name="medsync-push-channel",
        )
        return channel

    async def _supervise(self, channel: Channel) -> None:
        while not channel.closed:
            token = self._token_provider.get_token()
            if not token:
                logger.warning("Session token gone; closing the push channel")
                break
            rejected = False
            try:
                await channel.open(
                    self._url,
                    token,
                    socketio_path=self._socketio_path,
                    timeout=self._handshake_timeout,
                )
            except TimeoutError:
                logger.warning(
                    "Push channel handshake timed out after %ss",
                    self._handshake_timeout,
                )
            except (sio_exceptions.ConnectionError, OSError) as exc:
                rejected = channel.last_error in AUTH_REJECTION_REASONS
                if rejected:
                    await self._notify_auth_rejected(channel)
                else:
                    logger.warning("Push channel connect failed: %s", exc)
            else:
                self._holding = True
                try:
                    await channel.wait()
                finally:
                    self._holding = False

            if channel.closed:
                break
            channel.reconnect_attempts += 1
            delay = (
                self._policy.maximum
                if rejected
                else self._policy.delay_for(channel.reconnect_attempts)
            )
            logger.info(
                "Push channel reconnect attempt %s in %.1fs",
                channel.reconnect_attempts,
                delay,
            )
            await asyncio.sleep(delay)

        await channel.close()

    async def _notify_auth_rejected(self, channel: Channel) -> None:
        if self._on_auth_rejected is None:
            return
        try:
            result = self._on_auth_rejected(channel)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("on_auth_rejected callback failed")

    async def teardown(self) -> None:
        """Close the channel and stop reconnecting. Safe to call repeatedly."""
        channel, self._channel = self._channel, None
        supervisor, self._supervisor = self._supervisor, None
        if channel is None:
            return
        channel.closed = True
        if supervisor is not None and not supervisor.done():
            if self._holding:
                # Cancelling channel.wait() would also cancel the Engine.IO
                # read loop that disconnect() awaits. Closing ends the wait
                # and the supervisor leaves its loop on ``closed``.
                await channel.close()
                await supervisor
            else:
                supervisor.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await supervisor
        await channel.close()
        logger.info("Push channel torn down")
