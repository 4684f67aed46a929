from unittest import mock

import pytest
from rest_framework.test import APIClient

from medsync.conftest import make_user
from medsync.notifications.models import Notification
from medsync.users.models import User

BASE = "/api/v1/notifications/"


@pytest.mark.django_db
class TestNotificationAPI:
    def setup_method(self):
        self.client = APIClient()
        self.user = make_user("p1", User.Role.PATIENT)
        self.other = make_user("p2", User.Role.PATIENT)
        self.mine = Notification.objects.create(
            recipient=self.user, title="Hello", message="First"
        )
        self.second = Notification.objects.create(
            recipient=self.user, title="Again", message="Second"
        )
        self.theirs = Notification.objects.create(
            recipient=self.other, title="Private", message="Not yours"
        )
        self.client.force_authenticate(user=self.user)

    def test_list_only_own(self):
        res = self.client.get(BASE)
        assert res.status_code == 200
        assert {row["id"] for row in res.data} == {self.mine.id, self.second.id}
        assert all(row["unread"] for row in res.data)

    def test_mark_read(self):
        res = self.client.post(f"{BASE}{self.mine.id}/mark-read/")
        assert res.status_code == 204
        self.mine.refresh_from_db()
        assert self.mine.is_read

    def test_mark_all_read_leaves_others_alone(self):
        res = self.client.post(f"{BASE}mark-all-read/")
        assert res.status_code == 204
        assert not Notification.objects.filter(recipient=self.user, is_read=False)
        self.theirs.refresh_from_db()
        assert not self.theirs.is_read

    def test_cannot_delete_someone_elses(self):
        res = self.client.delete(f"{BASE}{self.theirs.id}/")
        assert res.status_code == 404

    def test_delete_own(self):
        res = self.client.delete(f"{BASE}{self.mine.id}/")
        assert res.status_code == 204


@pytest.mark.django_db
def test_new_notification_is_pushed_after_commit(django_capture_on_commit_callbacks):
    user = make_user("p1", User.Role.PATIENT)
    with (
        mock.patch(
            "medsync.realtime.events.notifications.emit_event_to_user"
        ) as emit,
        django_capture_on_commit_callbacks(execute=True),
    ):
        note = Notification.objects.create(
            recipient=user,
            title="Appointment Accepted",
            message="See you soon",
            priority=Notification.Priority.HIGH,
        )
    user_id, event, payload = emit.call_args.args
    assert (user_id, event) == (user.id, "notification")
    assert payload["id"] == note.id
    assert payload["priority"] == "high"
    assert payload["unreadCount"] == 1


@pytest.mark.django_db
def test_unread_count_covers_earlier_notifications(django_capture_on_commit_callbacks):
    user = make_user("p1", User.Role.PATIENT)
    Notification.objects.create(recipient=user, title="Old", message="Unread")
    Notification.objects.create(recipient=user, title="Seen", message="x", is_read=True)
    with (
        mock.patch(
            "medsync.realtime.events.notifications.emit_event_to_user"
        ) as emit,
        django_capture_on_commit_callbacks(execute=True),
    ):
        Notification.objects.create(recipient=user, title="New", message="Fresh")
    payload = emit.call_args.args[2]
    assert payload["unreadCount"] == 2


@pytest.mark.django_db
def test_read_or_deleted_before_commit_is_not_pushed(django_capture_on_commit_callbacks):
    user = make_user("p1", User.Role.PATIENT)
    with (
        mock.patch(
            "medsync.realtime.events.notifications.emit_event_to_user"
        ) as emit,
        django_capture_on_commit_callbacks(execute=True),
    ):
        Notification.objects.create(recipient=user, title="Seen", message="x", is_read=True)
        gone = Notification.objects.create(recipient=user, title="Gone", message="y")
        gone.delete()
    emit.assert_not_called()
