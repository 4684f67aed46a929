from rest_framework import serializers

from medsync.conversations.models import Conversation


class ConversationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Conversation
        fields = ("id", "participants", "created_at", "last_message_at")
        read_only_fields = fields
