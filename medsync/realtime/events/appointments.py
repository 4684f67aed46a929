"""Appointment broadcasts.

Every committed mutation is pushed to both participants' user rooms, which
covers the actor's own other tabs too. Receivers treat any of these events as
"something changed" and re-read the authoritative list, so payloads only need
to identify the appointment; the serialized appointment is included for
consumers that want to show a toast.

Acknowledgements go to the single socket that issued the HTTP write
(``X-Socket-Id``) and are never broadcast.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any

from medsync.realtime.socketio import emit_event_to_sid
from medsync.realtime.socketio import emit_event_to_user

if TYPE_CHECKING:  # import for type checking only
    from medsync.appointments.models import Appointment

logger = logging.getLogger(__name__)

APPOINTMENT_NEW = "appointment:new"
APPOINTMENT_STATUS_CHANGED = "appointment:status_changed"
APPOINTMENT_UPDATED = "appointment:updated"
APPOINTMENT_RESCHEDULE_REQUESTED = "appointment:reschedule_requested"
APPOINTMENT_DELETED = "appointment:deleted"

CREATED_ACK = "appointment:created_ack"
UPDATED_ACK = "appointment:updated_ack"
STATUS_UPDATE_ACK = "appointment:status_update_ack"
RESCHEDULE_REQUEST_ACK = "appointment:reschedule_request_ack"


def build_appointment_payload(
    appointment: Appointment,
    message: str,
    **extra: Any,
) -> dict[str, Any]:
    from medsync.appointments.api.serializers import (  # noqa: PLC0415
        AppointmentSerializer,
    )

    return {
        "appointmentId": str(appointment.pk),
        "status": appointment.display_status,
        "message": message,
        "appointment": AppointmentSerializer(appointment).data,
        **extra,
    }


def _emit_to_participants(
    appointment: Appointment,
    event: str,
    payload: dict[str, Any],
) -> None:
    for user_id in {appointment.patient_id, appointment.doctor_id}:
        emit_event_to_user(user_id, event, payload)
    logger.debug("Published %s for appointment %s", event, appointment.pk)


def publish_appointment_created(appointment: Appointment) -> None:
    payload = build_appointment_payload(appointment, "New appointment request")
    _emit_to_participants(appointment, APPOINTMENT_NEW, payload)


def publish_status_changed(appointment: Appointment, previous_status: str) -> None:
    payload = build_appointment_payload(
        appointment,
        f"Appointment status updated to: {appointment.display_status}",
        previousStatus=previous_status,
    )
    _emit_to_participants(appointment, APPOINTMENT_STATUS_CHANGED, payload)


def publish_appointment_updated(appointment: Appointment) -> None:
    payload = build_appointment_payload(
        appointment,
        "Appointment has been updated",
        updateType="updated",
    )
    _emit_to_participants(appointment, APPOINTMENT_UPDATED, payload)


def publish_reschedule_requested(appointment: Appointment) -> None:
    payload = build_appointment_payload(
        appointment,
        "Reschedule requested",
        rescheduleRequest={
            "date": appointment.requested_date and appointment.requested_date.isoformat(),
            "time": appointment.requested_time and appointment.requested_time.isoformat(),
            "reason": appointment.reschedule_reason,
        },
    )
    _emit_to_participants(appointment, APPOINTMENT_RESCHEDULE_REQUESTED, payload)


def publish_appointment_deleted(
    appointment_id: int,
    patient_id: int,
    doctor_id: int,
) -> None:
    payload = {
        "appointmentId": str(appointment_id),
        "message": "Appointment has been deleted",
    }
    for user_id in {patient_id, doctor_id}:
        emit_event_to_user(user_id, APPOINTMENT_DELETED, payload)


def publish_ack(sid: str, event: str, appointment: Appointment) -> None:
    emit_event_to_sid(
        sid,
        event,
        {"success": True, "appointmentId": str(appointment.pk)},
    )
