from unittest import mock

import pytest
from rest_framework_simplejwt.exceptions import TokenError

from medsync.realtime import socketio as rt
from medsync.realtime.presence import presence


class TestExtractToken:
    def test_auth_payload_wins(self):
        environ = {"query_string": b"token=from-query"}
        assert rt._extract_token(environ, {"token": "from-auth"}) == "from-auth"

    def test_query_string_fallback(self):
        assert rt._extract_token({"QUERY_STRING": "token=abc&x=1"}, None) == "abc"

    def test_nested_asgi_scope(self):
        environ = {"asgi.scope": {"query_string": b"token=nested"}}
        assert rt._extract_token(environ, {}) == "nested"

    def test_missing_token(self):
        assert rt._extract_token({}, {"token": ""}) is None


@pytest.fixture
def fake_sio():
    with (
        mock.patch.object(rt.sio, "save_session", new=mock.AsyncMock()),
        mock.patch.object(rt.sio, "enter_room", new=mock.AsyncMock()),
        mock.patch.object(rt.sio, "emit", new=mock.AsyncMock()) as emit,
    ):
        yield emit


def user_context(user_id=5, role="patient"):
    return mock.patch.object(
        rt,
        "_get_user_context_from_access_token",
        new=mock.AsyncMock(return_value=rt.UserRealtimeContext(user_id, role)),
    )


@pytest.mark.asyncio
class TestConnectHandlers:
    async def test_connect_without_token_is_refused(self, fake_sio):
        with pytest.raises(ConnectionRefusedError, match="unauthorized"):
            await rt.connect("sid1", {}, None)

    async def test_expired_token_is_reported_as_such(self, fake_sio):
        failing = mock.AsyncMock(side_effect=TokenError("Token is expired"))
        with (
            mock.patch.object(rt, "_get_user_context_from_access_token", new=failing),
            pytest.raises(ConnectionRefusedError, match="jwt_expired"),
        ):
            await rt.connect("sid1", {}, {"token": "t"})

    async def test_connect_joins_user_room_and_broadcasts_presence(self, fake_sio):
        with (
            user_context(),
            mock.patch.object(rt, "_partner_ids", new=mock.AsyncMock(return_value={9})),
        ):
            await rt.connect("sid1", {}, {"token": "t"})

        rt.sio.enter_room.assert_awaited_once_with("sid1", "user_5")
        assert presence.is_online(5)
        fake_sio.assert_awaited_once_with(
            "user_presence", {"userId": "5", "isOnline": True}, room="user_9"
        )

    async def test_second_tab_does_not_rebroadcast(self, fake_sio):
        partners = mock.AsyncMock(return_value={9})
        with user_context(), mock.patch.object(rt, "_partner_ids", new=partners):
            await rt.connect("sid1", {}, {"token": "t"})
            await rt.connect("sid2", {}, {"token": "t"})
            await rt.disconnect("sid1", "transport close")
        assert fake_sio.await_count == 1
        assert presence.is_online(5)

    async def test_last_disconnect_goes_offline(self, fake_sio):
        with (
            user_context(),
            mock.patch.object(rt, "_partner_ids", new=mock.AsyncMock(return_value={9})),
        ):
            await rt.connect("sid1", {}, {"token": "t"})
            await rt.disconnect("sid1")
        fake_sio.assert_awaited_with(
            "user_presence", {"userId": "5", "isOnline": False}, room="user_9"
        )

    async def test_get_online_status(self):
        presence.add(3, "x")
        answer = await rt.get_online_status("sid", {"userIds": ["3", "4"]})
        assert answer == {"success": True, "onlineStatus": {"3": True, "4": False}}

    async def test_get_online_status_needs_a_list(self):
        answer = await rt.get_online_status("sid", {"userIds": "3"})
        assert answer["success"] is False

    async def test_connection_test_answers_sender_only(self, fake_sio):
        with mock.patch.object(
            rt.sio, "get_session", new=mock.AsyncMock(return_value={"user_id": 5})
        ):
            await rt.test_connection("sid1", {"ping": 1})
        fake_sio.assert_awaited_once_with(
            "test:response",
            {"sid": "sid1", "userId": 5, "echo": {"ping": 1}},
            to="sid1",
        )
