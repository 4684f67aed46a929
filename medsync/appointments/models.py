from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils.translation import gettext_lazy as _

from medsync.appointments import lifecycle


class Appointment(models.Model):
    class Status(models.TextChoices):
        PENDING = lifecycle.Status.PENDING.value, _("Pending")
        ACCEPTED = lifecycle.Status.ACCEPTED.value, _("Accepted")
        REJECTED = lifecycle.Status.REJECTED.value, _("Rejected")
        SCHEDULED = lifecycle.Status.SCHEDULED.value, _("Scheduled")
        RESCHEDULED = lifecycle.Status.RESCHEDULED.value, _("Rescheduled")
        COMPLETED = lifecycle.Status.COMPLETED.value, _("Completed")
        CANCELLED = lifecycle.Status.CANCELLED.value, _("Cancelled")

    patient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="patient_appointments",
    )
    doctor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="doctor_appointments",
    )
    # Both stay empty while the visit is still "to be determined".
    date = models.DateField(null=True, blank=True)
    time = models.TimeField(null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
    )
    reason = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")

    reschedule_requested = models.BooleanField(
        default=False,
        help_text=_("A change of date/time awaits the doctor's decision"),
    )
    requested_date = models.DateField(null=True, blank=True)
    requested_time = models.TimeField(null=True, blank=True)
    reschedule_reason = models.TextField(blank=True, default="")
    patient_confirmed = models.BooleanField(
        default=False,
        help_text=_("Patient confirmed that the visit took place"),
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["date", "time", "id"]
        indexes = [
            models.Index(
                fields=["doctor", "date", "time"],
                name="appointment_doctor_slot_idx",
            ),
        ]

    def __str__(self):
        when = f"{self.date} {self.time}" if self.date else "TBD"
        return f"Appointment #{self.pk} ({self.status}, {when})"

    @property
    def lifecycle_state(self) -> lifecycle.LifecycleState:
        return lifecycle.LifecycleState.of(self)

    @property
    def display_status(self) -> str:
        return self.lifecycle_state.display_status

    def clean(self):
        active = lifecycle.ACTIVE_STATUSES
        if self.reschedule_requested and self.status not in active:
            raise ValidationError(
                _("Only accepted or scheduled appointments can be rescheduled."),
            )
        if (self.date is None) != (self.time is None):
            raise ValidationError(_("Date and time must be set together."))
