from __future__ import annotations

from datetime import timedelta

import pytest
from django.utils import timezone

from medsync.appointments.models import Appointment
from medsync.realtime.presence import presence
from medsync.users.models import User


def make_user(username: str, role: str, **extra) -> User:
    return User.objects.create_user(
        username=username,
        email=f"{username}@clinic.test",
        password="x",  # noqa: S106
        role=role,
        **extra,
    )


def make_appointment(patient, doctor, *, hours_ahead: float | None = 72, **fields):
    """Appointment starting ``hours_ahead`` from now (local time); None for TBD."""
    if hours_ahead is not None:
        start = timezone.localtime() + timedelta(hours=hours_ahead)
        fields.setdefault("date", start.date())
        fields.setdefault("time", start.time().replace(microsecond=0))
    return Appointment.objects.create(patient=patient, doctor=doctor, **fields)


@pytest.fixture
def patient(db):
    return make_user("patient", User.Role.PATIENT, first_name="Pat", last_name="Ient")


@pytest.fixture
def doctor(db):
    return make_user("doctor", User.Role.DOCTOR, first_name="Doc", last_name="Tor")


@pytest.fixture
def other_patient(db):
    return make_user("other", User.Role.PATIENT)


@pytest.fixture
def admin_user(db):
    return make_user("clinicadmin", User.Role.ADMIN)


@pytest.fixture(autouse=True)
def _reset_presence():
    presence.clear()
    yield
    presence.clear()
