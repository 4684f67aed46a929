"""Push new notifications to the recipient's open tabs once they are committed."""

import logging

from django.db.models.signals import post_save
from django.db.transaction import on_commit
from django.dispatch import receiver

from medsync.realtime.events.notifications import publish_notification_created

from .models import Notification

logger = logging.getLogger(__name__)


def push_unread_notification(notification_id: int) -> None:
    notification = Notification.objects.filter(
        pk=notification_id, is_read=False
    ).first()
    if notification is None:
        # Read or deleted before the transaction committed.
        logger.debug("Notification %s no longer unread; not pushed", notification_id)
        return
    unread = Notification.objects.filter(
        recipient_id=notification.recipient_id, is_read=False
    ).count()
    publish_notification_created(notification, unread_count=unread)


@receiver(post_save, sender=Notification, dispatch_uid="medsync_notification_push")
def push_new_notification(sender, instance, created, raw=False, **kwargs):
    if not created or raw or instance.is_read:
        return
    notification_id = instance.pk
    on_commit(lambda: push_unread_notification(notification_id))
