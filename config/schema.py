"""Custom OpenAPI schema hooks for drf-spectacular.

Groups every endpoint under one feature tag so the Swagger UI reads by area
(appointments, conversations, notifications, auth) instead of by URL.
"""

from __future__ import annotations

from typing import Any

# Method names that contain operations in the OpenAPI path item
_HTTP_METHODS = {"get", "post", "put", "patch", "delete", "options", "head"}


PATTERN_TAGS = [
    ("/api/v1/appointments", "Appointments"),
    ("/api/v1/conversations", "Conversations"),
    ("/api/v1/notifications", "Notifications"),
    ("/api/v1/auth/jwt", "Authentication"),
]

ALL_TAGS = [t for _, t in PATTERN_TAGS]


def assign_group_tag(path: str) -> str | None:
    """Return the first matching tag name for a given path."""
    for prefix, tag in PATTERN_TAGS:
        if path.startswith(prefix):
            return tag
    return None


def group_tags(result: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
    """Post-processing hook that gives each operation exactly one group tag."""
    for path, path_item in result.get("paths", {}).items():
        tag = assign_group_tag(path)
        if not tag:
            continue
        for method, op_obj in path_item.items():
            if method.lower() in _HTTP_METHODS and isinstance(op_obj, dict):
                op_obj["tags"] = [tag]

    existing = {t.get("name") for t in result.get("tags", [])}
    tag_list = result.setdefault("tags", [])
    tag_list.extend({"name": tag} for tag in ALL_TAGS if tag not in existing)
    return result
