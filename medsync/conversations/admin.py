from django.contrib import admin

from medsync.conversations import models


@admin.register(models.Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ["id", "created_at", "last_message_at"]
    filter_horizontal = ["participants"]
