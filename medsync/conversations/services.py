from __future__ import annotations

from medsync.conversations.models import Conversation


def partner_ids(user_id: int) -> set[int]:
    """Ids of everyone sharing at least one conversation with ``user_id``."""
    ids = set(
        Conversation.participants.through.objects.filter(
            conversation__participants__id=user_id,
        ).values_list("user_id", flat=True),
    )
    ids.discard(int(user_id))
    return ids
