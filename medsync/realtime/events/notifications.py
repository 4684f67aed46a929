from __future__ import annotations

from typing import TYPE_CHECKING
from typing import Any

from medsync.realtime.socketio import emit_event_to_user

if TYPE_CHECKING:  # import for type checking only
    from medsync.notifications.models import Notification

NOTIFICATION = "notification"


def build_notification_payload(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "title": notification.title,
        "message": notification.message,
        "type": notification.notification_type,
        "priority": notification.priority,
        "link": notification.related_link,
        "createdAt": notification.created_at.isoformat(),
    }


def publish_notification_created(
    notification: Notification, *, unread_count: int | None = None
) -> None:
    """Push a newly created Notification to every tab of its recipient.

    ``unreadCount`` lets the badge update without another request.
    """

    payload = build_notification_payload(notification)
    if unread_count is not None:
        payload["unreadCount"] = unread_count
    emit_event_to_user(notification.recipient_id, NOTIFICATION, payload)
