from __future__ import annotations

from dataclasses import dataclass

import environ


@dataclass(frozen=True)
class ClientSettings:
    """Connection settings for running the client layer outside a browser."""

    server_url: str = "http://localhost:8000"
    socketio_path: str = "ws/socket.io"
    handshake_timeout: float = 20.0
    refetch_debounce: float = 0.1

    @classmethod
    def from_env(cls, env: environ.Env | None = None) -> ClientSettings:
        env = env or environ.Env()
        return cls(
            server_url=env("MEDSYNC_SERVER_URL", default=cls.server_url),
            socketio_path=env("MEDSYNC_SOCKETIO_PATH", default=cls.socketio_path),
            handshake_timeout=env.float(
                "MEDSYNC_HANDSHAKE_TIMEOUT", default=cls.handshake_timeout
            ),
            refetch_debounce=env.float(
                "MEDSYNC_REFETCH_DEBOUNCE", default=cls.refetch_debounce
            ),
        )
