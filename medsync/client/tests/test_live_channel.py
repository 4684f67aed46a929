"""The client layer against a real Socket.IO server served by uvicorn."""

import asyncio

import pytest
import pytest_asyncio
import socketio
import uvicorn
from socketio import exceptions as sio_exceptions

from medsync.client.channel import ChannelState
from medsync.client.channel import PushChannelManager
from medsync.client.channel import ReconnectPolicy
from medsync.client.events import APPOINTMENT_NEW
from medsync.client.events import STATUS_UPDATE_ACK
from medsync.client.events import AppointmentAck
from medsync.client.registry import appointment_registry
from medsync.client.session import StaticTokenProvider
from medsync.client.tests.fakes import eventually

SOCKETIO_PATH = "ws/socket.io"
VALID_TOKEN = "valid-token"  # noqa: S105
# The real client sleeps a second after its read loop ends before wait() returns.
RECONNECT_TIMEOUT = 10.0


class PushServer:
    def __init__(self) -> None:
        self.sio = socketio.AsyncServer(async_mode="asgi", logger=False)
        self.connected: list[str] = []
        self.disconnected: list[str] = []
        self.sio.on("connect", self._connect)
        self.sio.on("disconnect", self._disconnect)
        self.app = socketio.ASGIApp(self.sio, socketio_path=SOCKETIO_PATH)
        self.url = ""
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None

    async def _connect(self, sid, environ, auth):
        if not auth or auth.get("token") != VALID_TOKEN:
            msg = "unauthorized"
            raise sio_exceptions.ConnectionRefusedError(msg)
        self.connected.append(sid)

    async def _disconnect(self, sid, *args):
        self.disconnected.append(sid)

    @property
    def live_sids(self) -> list[str]:
        return [sid for sid in self.connected if sid not in self.disconnected]

    async def start(self) -> None:
        config = uvicorn.Config(
            self.app, host="127.0.0.1", port=0, log_level="warning", lifespan="off"
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve())
        await eventually(lambda: self._server.started, timeout=5.0)
        port = self._server.servers[0].sockets[0].getsockname()[1]
        self.url = f"http://127.0.0.1:{port}"

    async def stop(self) -> None:
        self._server.should_exit = True
        await self._task


@pytest_asyncio.fixture
async def push_server():
    server = PushServer()
    await server.start()
    yield server
    await server.stop()


def manager_for(server, token=VALID_TOKEN, **kwargs):
    return PushChannelManager(
        server.url,
        StaticTokenProvider(token),
        socketio_path=SOCKETIO_PATH,
        policy=ReconnectPolicy(initial=0.05, maximum=0.2),
        handshake_timeout=5.0,
        **kwargs,
    )


@pytest.mark.asyncio
class TestLiveChannel:
    async def test_ack_reaches_the_socket_id_the_client_reports(self, push_server):
        manager = manager_for(push_server)
        channel = manager.get_channel()
        registry = appointment_registry()
        registry.bind(channel)
        acks = []
        registry.on(STATUS_UPDATE_ACK, acks.append)
        await eventually(lambda: channel.connected, timeout=5.0)

        assert push_server.live_sids == [channel.sid]
        await push_server.sio.emit(
            STATUS_UPDATE_ACK,
            {"success": True, "appointmentId": "12"},
            to=channel.sid,
        )
        await eventually(lambda: acks, timeout=5.0)
        assert acks == [AppointmentAck(STATUS_UPDATE_ACK, "12", success=True)]
        await manager.teardown()

    async def test_teardown_of_connected_channel(self, push_server):
        manager = manager_for(push_server)
        channel = manager.get_channel()
        await eventually(lambda: channel.connected, timeout=5.0)
        sid = channel.sid

        await manager.teardown()
        await manager.teardown()
        assert channel.closed
        assert channel.state is ChannelState.DISCONNECTED
        await eventually(lambda: sid in push_server.disconnected, timeout=5.0)

    async def test_dropped_connection_reattaches_once(self, push_server):
        manager = manager_for(push_server)
        channel = manager.get_channel()
        registry = appointment_registry()
        registry.bind(channel)
        received = []
        registry.on(APPOINTMENT_NEW, received.append)
        await eventually(lambda: channel.connected, timeout=5.0)
        first_sid = channel.sid

        await push_server.sio.disconnect(first_sid)
        await eventually(lambda: not registry.attached, timeout=5.0)
        await eventually(
            lambda: channel.connected and channel.sid != first_sid,
            timeout=RECONNECT_TIMEOUT,
        )
        assert registry.attached
        assert channel.listener_count(APPOINTMENT_NEW) == 1

        await push_server.sio.emit(
            APPOINTMENT_NEW, {"appointmentId": "7", "status": "pending"}, to=channel.sid
        )
        await eventually(lambda: received, timeout=5.0)
        await asyncio.sleep(0.1)
        assert [event.appointment_id for event in received] == ["7"]
        await manager.teardown()

    async def test_rejected_token_is_flagged(self, push_server):
        rejected = []
        manager = manager_for(push_server, token="stale", on_auth_rejected=rejected.append)
        channel = manager.get_channel()
        await eventually(lambda: rejected, timeout=5.0)

        assert channel.auth_rejected
        assert channel.last_error == "unauthorized"
        assert not channel.connected
        await manager.teardown()
