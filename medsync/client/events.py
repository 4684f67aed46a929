"""Event names the push server emits and the typed payloads built from them.

Kept free of Django imports; the names mirror
``medsync.realtime.events.appointments`` on the server side.
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from typing import Any

APPOINTMENT_NEW = "appointment:new"
APPOINTMENT_STATUS_CHANGED = "appointment:status_changed"
APPOINTMENT_UPDATED = "appointment:updated"
APPOINTMENT_RESCHEDULE_REQUESTED = "appointment:reschedule_requested"
APPOINTMENT_DELETED = "appointment:deleted"

CREATED_ACK = "appointment:created_ack"
UPDATED_ACK = "appointment:updated_ack"
STATUS_UPDATE_ACK = "appointment:status_update_ack"
RESCHEDULE_REQUEST_ACK = "appointment:reschedule_request_ack"

USER_PRESENCE = "user_presence"
NOTIFICATION = "notification"

TEST_CONNECTION = "test:connection"
TEST_RESPONSE = "test:response"
GET_ONLINE_STATUS = "get_online_status"

APPOINTMENT_EVENTS = (
    APPOINTMENT_NEW,
    APPOINTMENT_STATUS_CHANGED,
    APPOINTMENT_UPDATED,
    APPOINTMENT_RESCHEDULE_REQUESTED,
    APPOINTMENT_DELETED,
)
ACK_EVENTS = (
    CREATED_ACK,
    UPDATED_ACK,
    STATUS_UPDATE_ACK,
    RESCHEDULE_REQUEST_ACK,
)
PRESENCE_EVENTS = (USER_PRESENCE,)

# Server reasons for refusing a handshake because of the token.
AUTH_REJECTION_REASONS = frozenset({"unauthorized", "jwt_expired"})


@dataclass(frozen=True)
class AppointmentEvent:
    name: str
    appointment_id: str | None
    status: str | None = None
    message: str = ""
    previous_status: str | None = None
    data: dict[str, Any] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class AppointmentAck:
    name: str
    appointment_id: str | None
    success: bool = True


@dataclass(frozen=True)
class PresenceEvent:
    user_id: str
    is_online: bool


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def parse_payload(event: str, data: Any) -> Any:
    """Turn a raw Socket.IO payload into the typed event for ``event``.

    Unknown events are passed through untouched.
    """
    payload = data if isinstance(data, dict) else {}
    if event in APPOINTMENT_EVENTS:
        return AppointmentEvent(
            name=event,
            appointment_id=_optional_str(payload.get("appointmentId")),
            status=_optional_str(payload.get("status")),
            message=str(payload.get("message") or ""),
            previous_status=_optional_str(payload.get("previousStatus")),
            data=payload,
        )
    if event in ACK_EVENTS:
        return AppointmentAck(
            name=event,
            appointment_id=_optional_str(payload.get("appointmentId")),
            success=bool(payload.get("success", True)),
        )
    if event == USER_PRESENCE:
        return PresenceEvent(
            user_id=str(payload.get("userId", "")),
            is_online=bool(payload.get("isOnline")),
        )
    return data
