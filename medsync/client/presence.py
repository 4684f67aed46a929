"""Whether the other side of the open conversation is online right now.

Advisory only: the value follows ``user_presence`` pushes and a
``get_online_status`` query whenever the viewer switches conversation or
the viewer's own channel reattaches after a reconnect.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from collections.abc import Iterable
from dataclasses import dataclass

from .channel import PushChannelManager
from .events import GET_ONLINE_STATUS
from .events import USER_PRESENCE
from .events import PresenceEvent
from .registry import EventListenerRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationRef:
    id: str
    participant_ids: tuple[str, ...]

    @classmethod
    def of(cls, conversation_id: object, participant_ids: Iterable[object]) -> ConversationRef:
        return cls(str(conversation_id), tuple(str(p) for p in participant_ids))

    def others(self, viewer_id: object) -> tuple[str, ...]:
        return tuple(p for p in self.participant_ids if p != str(viewer_id))


class PresenceTracker:
    def __init__(
        self,
        registry: EventListenerRegistry,
        channels: PushChannelManager,
        viewer_id: object,
    ) -> None:
        self._registry = registry
        self._channels = channels
        self.viewer_id = str(viewer_id)
        self.conversation: ConversationRef | None = None
        self._online: dict[str, bool] = {}
        self._subscribers: list[Callable[[bool], object]] = []
        self._tasks: set[asyncio.Task] = set()

    def start(self) -> None:
        self._registry.on(USER_PRESENCE, self._on_presence)
        self._registry.add_attach_listener(self._on_attach)

    def stop(self) -> None:
        self._registry.off(USER_PRESENCE, self._on_presence)
        self._registry.remove_attach_listener(self._on_attach)
        for task in list(self._tasks):
            task.cancel()

    def subscribe(self, callback: Callable[[bool], object]) -> None:
        """``callback(online)`` runs whenever the open conversation's value may change."""
        self._subscribers.append(callback)

    def is_other_participant_online(
        self,
        conversation: ConversationRef | None = None,
        viewer_id: object | None = None,
    ) -> bool:
        conversation = conversation or self.conversation
        if conversation is None:
            return False
        viewer = self.viewer_id if viewer_id is None else viewer_id
        return any(self._online.get(p, False) for p in conversation.others(viewer))

    async def set_conversation(self, conversation: ConversationRef | None) -> bool:
        self.conversation = conversation
        if conversation is not None:
            await self._query(conversation.others(self.viewer_id))
        online = self.is_other_participant_online()
        self._notify(online)
        return online

    async def refresh(self) -> bool:
        """Re-query the open conversation, e.g. after missing pushes while offline."""
        return await self.set_conversation(self.conversation)

    def _on_attach(self) -> None:
        if self.conversation is None:
            return
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _query(self, user_ids: tuple[str, ...]) -> None:
        channel = self._channels.get_channel()
        if channel is None or not user_ids:
            return
        answer = await channel.call(GET_ONLINE_STATUS, {"userIds": list(user_ids)})
        if not isinstance(answer, dict) or not answer.get("success"):
            logger.debug("Online status query got no usable answer: %s", answer)
            return
        for user_id, online in (answer.get("onlineStatus") or {}).items():
            self._online[str(user_id)] = bool(online)

    def _on_presence(self, event: PresenceEvent) -> None:
        self._online[event.user_id] = event.is_online
        if self.conversation and event.user_id in self.conversation.others(
            self.viewer_id
        ):
            self._notify(self.is_other_participant_online())

    def _notify(self, online: bool) -> None:
        for callback in list(self._subscribers):
            try:
                callback(online)
            except Exception:
                logger.exception("Presence subscriber failed")
