from __future__ import annotations

from typing import Any


class MedsyncClientError(Exception):
    """Base class for errors raised by the client layer."""


class ClinicAPIError(MedsyncClientError):
    """The appointments API answered with an error status."""

    def __init__(self, status_code: int, detail: Any = None) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"API error {status_code}: {detail}")


class ClinicUnreachable(MedsyncClientError):
    """The appointments API could not be reached at all."""


class ActionNotAllowed(MedsyncClientError):
    """The lifecycle rules do not offer this action to the viewer right now."""

    def __init__(self, action: str, appointment_id: str, role: str) -> None:
        self.action = action
        self.appointment_id = appointment_id
        self.role = role
        super().__init__(
            f"'{action}' is not available to a {role} on appointment {appointment_id}"
        )
