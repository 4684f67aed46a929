from django.conf import settings
from django.db import models


class Conversation(models.Model):
    """A chat thread between a patient and a care provider.

    Messages are stored elsewhere; this app only knows who talks to whom,
    which is what presence fan-out needs.
    """

    participants = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        related_name="conversations",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    last_message_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-last_message_at", "-created_at"]

    def __str__(self):
        return f"Conversation #{self.pk}"
