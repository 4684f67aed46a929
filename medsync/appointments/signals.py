"""Turn committed appointment writes into broadcasts and notifications.

Views may set ``_actor_id`` on the instance before saving so notifications
skip the person who made the change.
"""

import logging

from django.db.models.signals import post_delete
from django.db.models.signals import post_save
from django.db.models.signals import pre_save
from django.db.transaction import on_commit
from django.dispatch import receiver

from medsync.appointments.lifecycle import RESCHEDULE_REQUESTED
from medsync.appointments.lifecycle import Status
from medsync.notifications.models import Notification
from medsync.realtime.events import appointments as events

from .models import Appointment

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=Appointment)
def store_previous_state(sender, instance, **kwargs):
    instance._previous_display_status = None  # noqa: SLF001
    if instance.pk:
        orig = Appointment.objects.filter(pk=instance.pk).first()
        if orig is not None:
            instance._previous_display_status = orig.display_status  # noqa: SLF001


def _notify(instance, recipients, title, message, notification_type, *, high=False):
    actor_id = getattr(instance, "_actor_id", None)
    for recipient_id in recipients:
        if recipient_id == actor_id:
            continue
        Notification.objects.create(
            recipient_id=recipient_id,
            title=title,
            message=message,
            notification_type=notification_type,
            priority=(
                Notification.Priority.HIGH if high else Notification.Priority.NORMAL
            ),
            related_link=f"/appointments/{instance.pk}/",
        )


@receiver(post_save, sender=Appointment)
def appointment_broadcasts(sender, instance, created, **kwargs):
    participants = (instance.patient_id, instance.doctor_id)

    if created:
        _notify(
            instance,
            (instance.doctor_id,),
            "New Appointment Request",
            f"{instance.patient.display_name} requested an appointment.",
            Notification.Type.APPOINTMENT_REQUEST,
        )
        on_commit(lambda: events.publish_appointment_created(instance))
        return

    previous = getattr(instance, "_previous_display_status", None)
    current = instance.display_status
    if previous == current:
        on_commit(lambda: events.publish_appointment_updated(instance))
        return

    if current == RESCHEDULE_REQUESTED:
        _notify(
            instance,
            (instance.doctor_id,),
            "Reschedule Requested",
            f"{instance.patient.display_name} asked to move their appointment.",
            Notification.Type.RESCHEDULE_REQUEST,
        )
        on_commit(lambda: events.publish_reschedule_requested(instance))
        return

    logger.info(
        "Appointment %s status %s -> %s", instance.pk, previous, current
    )
    _notify(
        instance,
        participants,
        f"Appointment {current.replace('_', ' ').title()}",
        f"Appointment status updated to: {current}",
        Notification.Type.APPOINTMENT_STATUS,
        high=current == Status.CANCELLED,
    )
    on_commit(lambda: events.publish_status_changed(instance, previous))


@receiver(post_delete, sender=Appointment)
def appointment_deleted(sender, instance, **kwargs):
    appointment_id = instance.pk
    patient_id, doctor_id = instance.patient_id, instance.doctor_id
    on_commit(
        lambda: events.publish_appointment_deleted(
            appointment_id, patient_id, doctor_id
        )
    )
