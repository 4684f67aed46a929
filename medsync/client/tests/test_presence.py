import asyncio

import pytest
import pytest_asyncio

from medsync.client.channel import PushChannelManager
from medsync.client.channel import ReconnectPolicy
from medsync.client.events import GET_ONLINE_STATUS
from medsync.client.events import USER_PRESENCE
from medsync.client.presence import ConversationRef
from medsync.client.presence import PresenceTracker
from medsync.client.registry import presence_registry
from medsync.client.session import StaticTokenProvider
from medsync.client.tests.fakes import FakeServer
from medsync.client.tests.fakes import eventually

CONSULT = ConversationRef.of(10, [1, 2])
REFILL = ConversationRef.of(11, [1, 3])


@pytest_asyncio.fixture
async def wired():
    server = FakeServer()
    server.call_answers[GET_ONLINE_STATUS] = lambda data: {
        "success": True,
        "onlineStatus": {uid: uid == "2" for uid in data["userIds"]},
    }
    manager = PushChannelManager(
        "http://clinic.test",
        StaticTokenProvider("tok"),
        client_factory=server.factory,
        policy=ReconnectPolicy(initial=0.01, maximum=0.02),
    )
    channel = manager.get_channel()
    await eventually(lambda: channel.connected)
    registry = presence_registry()
    registry.bind(channel)
    tracker = PresenceTracker(registry, manager, viewer_id=1)
    tracker.start()
    yield server, tracker
    await manager.teardown()


@pytest.mark.asyncio
class TestPresenceTracker:
    async def test_switching_conversation_queries_status(self, wired):
        server, tracker = wired
        assert await tracker.set_conversation(CONSULT) is True
        assert (GET_ONLINE_STATUS, {"userIds": ["2"]}) in server.current.emitted
        assert await tracker.set_conversation(REFILL) is False

    async def test_presence_push_updates_value(self, wired):
        server, tracker = wired
        changes = []
        tracker.subscribe(changes.append)
        await tracker.set_conversation(REFILL)
        await server.current.push(USER_PRESENCE, {"userId": "3", "isOnline": True})
        assert tracker.is_other_participant_online()
        await server.current.push(USER_PRESENCE, {"userId": "3", "isOnline": False})
        assert changes == [False, True, False]

    async def test_unrelated_users_do_not_notify(self, wired):
        server, tracker = wired
        changes = []
        await tracker.set_conversation(CONSULT)
        tracker.subscribe(changes.append)
        await server.current.push(USER_PRESENCE, {"userId": "99", "isOnline": True})
        assert changes == []

    async def test_viewer_is_never_the_other_participant(self, wired):
        server, tracker = wired
        await server.current.push(USER_PRESENCE, {"userId": "1", "isOnline": True})
        solo = ConversationRef.of(12, [1])
        assert not tracker.is_other_participant_online(solo)

    async def test_no_conversation_means_offline(self, wired):
        _server, tracker = wired
        assert tracker.is_other_participant_online() is False

    async def test_reconnect_requeries_open_conversation(self, wired):
        server, tracker = wired
        changes = []
        await tracker.set_conversation(REFILL)
        tracker.subscribe(changes.append)
        assert not tracker.is_other_participant_online()

        # User 3 came online while the viewer's channel was down.
        server.call_answers[GET_ONLINE_STATUS] = lambda data: {
            "success": True,
            "onlineStatus": {uid: True for uid in data["userIds"]},
        }
        await server.current.drop()
        await eventually(tracker.is_other_participant_online)

        assert len(server.clients) == 2
        assert (GET_ONLINE_STATUS, {"userIds": ["3"]}) in server.current.emitted
        assert changes[-1] is True

    async def test_stopped_tracker_ignores_reattach(self, wired):
        server, tracker = wired
        await tracker.set_conversation(REFILL)
        tracker.stop()
        await server.current.drop()
        await eventually(lambda: len(server.clients) == 2 and server.current.connected)
        await asyncio.sleep(0.02)
        assert server.current.emitted == []
