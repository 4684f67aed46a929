"""Appointments API: the authoritative read and write endpoints.

Writes are the only way appointment state changes. Each write is checked
against the lifecycle rules with the server clock, committed, and then
broadcast by the model signals. When the request carries ``X-Socket-Id`` the
originating socket also receives the matching ``*_ack`` event.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from django.conf import settings
from django.db.models import Q
from django.db.transaction import on_commit
from django.utils import timezone
from drf_spectacular.utils import extend_schema
from rest_framework import mixins
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.exceptions import APIException
from rest_framework.exceptions import PermissionDenied
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from medsync.appointments import lifecycle
from medsync.appointments.lifecycle import Action
from medsync.appointments.lifecycle import Role
from medsync.appointments.models import Appointment
from medsync.realtime.events import appointments as events
from medsync.users.api.permissions import IsAppointmentParticipant
from medsync.users.api.permissions import IsPatient
from medsync.users.api.permissions import is_clinic_admin

from .serializers import AppointmentCreateSerializer
from .serializers import AppointmentSerializer
from .serializers import AppointmentUpdateSerializer
from .serializers import RescheduleRequestSerializer
from .serializers import RescheduleResponseSerializer
from .serializers import StatusChangeSerializer

logger = logging.getLogger(__name__)

SOCKET_ID_HEADER = "X-Socket-Id"
BLOCKING_STATUSES = (
    Appointment.Status.PENDING,
    Appointment.Status.ACCEPTED,
    Appointment.Status.SCHEDULED,
    Appointment.Status.RESCHEDULED,
)


class SlotUnavailable(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = (
        "The doctor is unavailable at the selected date and time. "
        "Please choose a different slot."
    )
    default_code = "slot_unavailable"


def modification_window() -> timedelta:
    return timedelta(hours=settings.APPOINTMENT_MODIFICATION_WINDOW_HOURS)


def participant_role(user, appointment: Appointment) -> Role | None:
    """The role ``user`` plays on this particular appointment."""
    if appointment.doctor_id == user.pk:
        return Role.DOCTOR
    if appointment.patient_id == user.pk:
        return Role.PATIENT
    return None


def ensure_doctor_available(doctor_id, day, at, *, exclude_pk=None) -> None:
    clash = Appointment.objects.filter(
        doctor_id=doctor_id,
        date=day,
        time=at,
        status__in=BLOCKING_STATUSES,
    )
    if exclude_pk is not None:
        clash = clash.exclude(pk=exclude_pk)
    if clash.exists():
        raise SlotUnavailable


@extend_schema(tags=["Appointments"])
class AppointmentViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    mixins.DestroyModelMixin,
    GenericViewSet,
):
    """Appointments visible to the authenticated user.

    - list: ``?role=patient|doctor|admin`` (defaults to the user's role)
    - create: patients request an appointment (status ``pending``)
    - partial_update: doctor confirms or moves the slot
    - status: accept / reject / complete / cancel / confirm
    - reschedule_request / reschedule_response: the change-request sub-flow
    - destroy: admins, or the patient while the request is still pending
    """

    permission_classes = [IsAuthenticated, IsAppointmentParticipant]
    serializer_class = AppointmentSerializer

    def get_permissions(self):
        if self.action == "create":
            return [IsAuthenticated(), IsPatient()]
        return [p() for p in self.permission_classes]

    def get_serializer_class(self):
        if self.action == "create":
            return AppointmentCreateSerializer
        return AppointmentSerializer

    def get_queryset(self):
        user = self.request.user
        qs = Appointment.objects.select_related("patient", "doctor")
        if self.action == "list":
            return self._list_queryset(qs)
        if is_clinic_admin(user):
            return qs
        return qs.filter(Q(patient=user) | Q(doctor=user))

    def _list_queryset(self, qs):
        user = self.request.user
        raw_role = self.request.query_params.get("role") or user.role
        try:
            role = Role(raw_role)
        except ValueError as exc:
            raise ValidationError({"role": f"Unknown role '{raw_role}'."}) from exc
        if role != user.role and not is_clinic_admin(user):
            msg = "You cannot list appointments for another role."
            raise PermissionDenied(msg)

        if role is Role.PATIENT:
            return qs.filter(patient=user)
        if role is Role.DOCTOR:
            return qs.filter(doctor=user)
        if role is Role.ADMIN:
            return qs
        return qs.none()

    # Helpers --------------------------------------------------------------

    def _socket_id(self) -> str | None:
        sid = self.request.headers.get(SOCKET_ID_HEADER, "").strip()
        return sid or None

    def _ack(self, event: str, appointment: Appointment) -> None:
        sid = self._socket_id()
        if sid:
            on_commit(lambda: events.publish_ack(sid, event, appointment))

    def _require_allowed(self, appointment: Appointment, act: Action) -> Role:
        role = participant_role(self.request.user, appointment)
        if role is None or not lifecycle.is_action_allowed(
            appointment,
            role,
            act,
            timezone.localtime(),
            window=modification_window(),
        ):
            msg = (
                f"Cannot '{act}' an appointment that is "
                f"'{appointment.display_status}'"
            )
            if act in lifecycle.TIME_GATED_ACTIONS:
                msg += (
                    f" or starts within {settings.APPOINTMENT_MODIFICATION_WINDOW_HOURS}"
                    " hours"
                )
            raise ValidationError({"detail": msg})
        return role

    def _save(self, appointment: Appointment, ack_event: str | None) -> Response:
        appointment._actor_id = self.request.user.pk  # noqa: SLF001
        appointment.save()
        if ack_event:
            self._ack(ack_event, appointment)
        return Response(AppointmentSerializer(appointment).data)

    # Endpoints ------------------------------------------------------------

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        if data.get("date") is not None:
            ensure_doctor_available(data["doctor"].pk, data["date"], data["time"])

        appointment = Appointment(
            patient=request.user,
            doctor=data["doctor"],
            date=data.get("date"),
            time=data.get("time"),
            reason=data.get("reason", ""),
            status=Appointment.Status.PENDING,
        )
        appointment._actor_id = request.user.pk  # noqa: SLF001
        appointment.save()
        logger.info(
            "Appointment %s requested by %s", appointment.pk, request.user.pk
        )
        self._ack(events.CREATED_ACK, appointment)
        return Response(
            AppointmentSerializer(appointment).data,
            status=status.HTTP_201_CREATED,
        )

    def partial_update(self, request, *args, **kwargs):
        appointment = self.get_object()
        serializer = AppointmentUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        self._require_allowed(appointment, Action.UPDATE)

        new_date = data.get("date", appointment.date)
        new_time = data.get("time", appointment.time)
        if new_date is None or new_time is None:
            raise ValidationError(
                {"detail": "A date and time are required to schedule the visit."}
            )
        schedule_changed = (new_date, new_time) != (appointment.date, appointment.time)
        if schedule_changed:
            ensure_doctor_available(
                appointment.doctor_id, new_date, new_time, exclude_pk=appointment.pk
            )

        state = lifecycle.transition(
            appointment.lifecycle_state,
            Action.UPDATE,
            schedule_changed=schedule_changed,
        )
        appointment.date, appointment.time = new_date, new_time
        appointment.status = state.status
        if "notes" in data:
            appointment.notes = data["notes"]
        return self._save(appointment, events.UPDATED_ACK)

    @action(detail=True, methods=["post"], url_path="status")
    def change_status(self, request, pk=None):
        appointment = self.get_object()
        serializer = StatusChangeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        act = Action(serializer.validated_data["action"])
        self._require_allowed(appointment, act)

        state = lifecycle.transition(appointment.lifecycle_state, act)
        appointment.status = state.status
        if act is Action.CONFIRM:
            appointment.patient_confirmed = True
        return self._save(appointment, events.STATUS_UPDATE_ACK)

    @action(detail=True, methods=["post"], url_path="reschedule-request")
    def reschedule_request(self, request, pk=None):
        appointment = self.get_object()
        serializer = RescheduleRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        self._require_allowed(appointment, Action.RESCHEDULE)
        ensure_doctor_available(
            appointment.doctor_id, data["date"], data["time"], exclude_pk=appointment.pk
        )

        state = lifecycle.transition(appointment.lifecycle_state, Action.RESCHEDULE)
        appointment.reschedule_requested = state.reschedule_requested
        appointment.requested_date = data["date"]
        appointment.requested_time = data["time"]
        appointment.reschedule_reason = data["reason"]
        return self._save(appointment, events.RESCHEDULE_REQUEST_ACK)

    @action(detail=True, methods=["post"], url_path="reschedule-response")
    def reschedule_response(self, request, pk=None):
        appointment = self.get_object()
        serializer = RescheduleResponseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        approve = serializer.validated_data["approve"]
        act = Action.APPROVE_RESCHEDULE if approve else Action.REJECT_RESCHEDULE
        self._require_allowed(appointment, act)

        if approve:
            ensure_doctor_available(
                appointment.doctor_id,
                appointment.requested_date,
                appointment.requested_time,
                exclude_pk=appointment.pk,
            )
            appointment.date = appointment.requested_date
            appointment.time = appointment.requested_time

        state = lifecycle.transition(appointment.lifecycle_state, act)
        appointment.status = state.status
        appointment.reschedule_requested = state.reschedule_requested
        appointment.requested_date = None
        appointment.requested_time = None
        appointment.reschedule_reason = ""
        return self._save(appointment, events.STATUS_UPDATE_ACK)

    def perform_destroy(self, instance):
        user = self.request.user
        pending_owner = (
            instance.patient_id == user.pk
            and instance.status == Appointment.Status.PENDING
        )
        if not (is_clinic_admin(user) or pending_owner):
            msg = "Only pending requests can be withdrawn by the patient."
            raise PermissionDenied(msg)
        logger.info("Appointment %s deleted by %s", instance.pk, user.pk)
        instance.delete()
