"""Per-subsystem listener registration on the push channel.

Each registry installs one forwarder per event name on the channel, at most
once per live connection, and fans each event out to its own subscribers.
Subscribers receive the typed payload from :func:`medsync.client.events.parse_payload`.
"""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Callable
from collections.abc import Iterable
from typing import Any

from .channel import CONNECT
from .channel import DISCONNECT
from .channel import Channel
from .events import ACK_EVENTS
from .events import APPOINTMENT_EVENTS
from .events import PRESENCE_EVENTS
from .events import parse_payload

logger = logging.getLogger(__name__)

Callback = Callable[[Any], Any]


class EventListenerRegistry:
    def __init__(self, subsystem: str, event_names: Iterable[str]) -> None:
        self.subsystem = subsystem
        self.event_names = tuple(event_names)
        self._callbacks: dict[str, list[Callback]] = {
            name: [] for name in self.event_names
        }
        self._forwarders = {
            name: functools.partial(self._notify, name) for name in self.event_names
        }
        self._attach_listeners: list[Callable[[], Any]] = []
        self._attached = False
        self._channel: Channel | None = None

    def __repr__(self) -> str:
        return f"<EventListenerRegistry {self.subsystem} attached={self._attached}>"

    @property
    def attached(self) -> bool:
        return self._attached

    # Channel wiring ----------------------------------------------------------

    def bind(self, channel: Channel) -> None:
        """Follow ``channel``: attach on every connect, detach on disconnect."""
        if self._channel is channel:
            return
        if self._channel is not None:
            self.unbind()
        self._channel = channel
        channel.on(CONNECT, self._on_connect)
        channel.on(DISCONNECT, self._on_disconnect)
        if channel.connected:
            self.attach(channel)

    def unbind(self) -> None:
        channel, self._channel = self._channel, None
        if channel is None:
            return
        channel.off(CONNECT, self._on_connect)
        channel.off(DISCONNECT, self._on_disconnect)
        self.detach(channel)

    def _on_connect(self) -> None:
        if self._channel is not None:
            self.attach(self._channel)

    def _on_disconnect(self, reason: Any = None) -> None:
        if self._channel is not None:
            self.detach(self._channel)

    def attach(self, channel: Channel) -> bool:
        """Install the forwarders. Returns False if already attached."""
        if self._attached:
            logger.debug("%s listeners already attached", self.subsystem)
            return False
        for name, forwarder in self._forwarders.items():
            channel.on(name, forwarder)
        self._attached = True
        logger.debug("%s listeners attached", self.subsystem)
        for listener in list(self._attach_listeners):
            listener()
        return True

    def detach(self, channel: Channel) -> None:
        if not self._attached:
            return
        for name, forwarder in self._forwarders.items():
            channel.off(name, forwarder)
        self._attached = False
        logger.debug("%s listeners detached", self.subsystem)

    def add_attach_listener(self, listener: Callable[[], Any]) -> None:
        """Call ``listener`` each time the forwarders are (re)attached."""
        if listener not in self._attach_listeners:
            self._attach_listeners.append(listener)

    def remove_attach_listener(self, listener: Callable[[], Any]) -> None:
        if listener in self._attach_listeners:
            self._attach_listeners.remove(listener)

    # Subscribers -------------------------------------------------------------

    def on(self, event: str, callback: Callback) -> None:
        if event not in self._callbacks:
            msg = f"{self.subsystem} registry does not carry '{event}'"
            raise ValueError(msg)
        callbacks = self._callbacks[event]
        if callback not in callbacks:
            callbacks.append(callback)

    def off(self, event: str, callback: Callback) -> None:
        callbacks = self._callbacks.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    async def _notify(self, event: str, data: Any = None) -> None:
        payload = parse_payload(event, data)
        logger.debug("%s event %s", self.subsystem, event)
        for callback in list(self._callbacks.get(event, ())):
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("%s callback for %s failed", self.subsystem, event)


def appointment_registry() -> EventListenerRegistry:
    return EventListenerRegistry("appointments", APPOINTMENT_EVENTS + ACK_EVENTS)


def presence_registry() -> EventListenerRegistry:
    return EventListenerRegistry("presence", PRESENCE_EVENTS)
