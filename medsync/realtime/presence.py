"""Which users currently hold at least one live socket.

A user with several tabs open has several sockets; they only go offline when
the last one disconnects.
"""

from __future__ import annotations

from collections.abc import Iterable


class PresenceRegistry:
    # TODO: back this with Redis once the socket server runs on more than one
    # worker process; today each process only sees its own sockets.

    def __init__(self) -> None:
        self._sids_by_user: dict[int, set[str]] = {}
        self._user_by_sid: dict[str, int] = {}

    def add(self, user_id: int, sid: str) -> bool:
        """Register a socket. Returns True if the user just came online."""
        user_id = int(user_id)
        sids = self._sids_by_user.setdefault(user_id, set())
        came_online = not sids
        sids.add(sid)
        self._user_by_sid[sid] = user_id
        return came_online

    def remove(self, sid: str) -> tuple[int | None, bool]:
        """Forget a socket. Returns ``(user_id, went_offline)``."""
        user_id = self._user_by_sid.pop(sid, None)
        if user_id is None:
            return None, False
        sids = self._sids_by_user.get(user_id, set())
        sids.discard(sid)
        if sids:
            return user_id, False
        self._sids_by_user.pop(user_id, None)
        return user_id, True

    def is_online(self, user_id: int) -> bool:
        return bool(self._sids_by_user.get(int(user_id)))

    def online_status(self, user_ids: Iterable[int | str]) -> dict[str, bool]:
        status: dict[str, bool] = {}
        for raw in user_ids:
            try:
                status[str(raw)] = self.is_online(int(raw))
            except (TypeError, ValueError):
                status[str(raw)] = False
        return status

    @property
    def online_count(self) -> int:
        return len(self._sids_by_user)

    def clear(self) -> None:
        self._sids_by_user.clear()
        self._user_by_sid.clear()


presence = PresenceRegistry()
