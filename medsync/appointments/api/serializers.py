from __future__ import annotations

from datetime import datetime
from typing import Any

from django.contrib.auth import get_user_model
from django.utils import timezone
from django.utils.translation import gettext_lazy as _
from rest_framework import serializers

from medsync.appointments.lifecycle import Action
from medsync.appointments.models import Appointment

User = get_user_model()

STATUS_ACTIONS = (
    Action.ACCEPT,
    Action.REJECT,
    Action.COMPLETE,
    Action.CANCEL,
    Action.CONFIRM,
)


def _validate_slot(attrs: dict[str, Any], date_key: str, time_key: str) -> None:
    day, at = attrs.get(date_key), attrs.get(time_key)
    if (day is None) != (at is None):
        msg = _("Date and time must be provided together.")
        raise serializers.ValidationError(msg)
    if day is None:
        return
    start = timezone.make_aware(datetime.combine(day, at))
    if start <= timezone.now():
        msg = _("Appointment date and time must be in the future.")
        raise serializers.ValidationError(msg)


class AppointmentSerializer(serializers.ModelSerializer):
    """Read serializer; the shape every client caches."""

    patient_name = serializers.CharField(source="patient.display_name", read_only=True)
    doctor_name = serializers.CharField(source="doctor.display_name", read_only=True)
    display_status = serializers.CharField(read_only=True)

    class Meta:
        model = Appointment
        fields = (
            "id",
            "patient",
            "patient_name",
            "doctor",
            "doctor_name",
            "date",
            "time",
            "status",
            "display_status",
            "reason",
            "notes",
            "reschedule_requested",
            "requested_date",
            "requested_time",
            "reschedule_reason",
            "patient_confirmed",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class AppointmentCreateSerializer(serializers.ModelSerializer):
    doctor = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.filter(role=User.Role.DOCTOR, is_active=True),
    )
    date = serializers.DateField(required=False, allow_null=True)
    time = serializers.TimeField(required=False, allow_null=True)

    class Meta:
        model = Appointment
        fields = ("doctor", "date", "time", "reason")

    def validate(self, attrs):
        _validate_slot(attrs, "date", "time")
        return attrs


class AppointmentUpdateSerializer(serializers.Serializer):
    """Doctor-side edit: confirm or move the slot, add notes."""

    date = serializers.DateField(required=False)
    time = serializers.TimeField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            msg = _("No details provided for update.")
            raise serializers.ValidationError(msg)
        if ("date" in attrs) != ("time" in attrs):
            msg = _("Date and time must be provided together.")
            raise serializers.ValidationError(msg)
        _validate_slot(attrs, "date", "time")
        return attrs


class StatusChangeSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=[a.value for a in STATUS_ACTIONS])


class RescheduleRequestSerializer(serializers.Serializer):
    date = serializers.DateField()
    time = serializers.TimeField()
    reason = serializers.CharField()

    def validate(self, attrs):
        _validate_slot(attrs, "date", "time")
        return attrs


class RescheduleResponseSerializer(serializers.Serializer):
    approve = serializers.BooleanField()
