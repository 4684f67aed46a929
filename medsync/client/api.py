"""Async HTTP client for the authoritative appointments API."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from datetime import datetime
from datetime import time
from typing import Any

import httpx

from .exceptions import ClinicAPIError
from .exceptions import ClinicUnreachable
from .session import SessionTokenProvider

logger = logging.getLogger(__name__)

APPOINTMENTS_PATH = "/api/v1/appointments/"
SOCKET_ID_HEADER = "X-Socket-Id"


def _parse_date(value: Any) -> date | None:
    return date.fromisoformat(value) if value else None


def _parse_time(value: Any) -> time | None:
    return time.fromisoformat(value) if value else None


def _parse_datetime(value: Any) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class Appointment:
    """Read-only projection of one appointment as the API returned it."""

    id: str
    patient_id: str
    doctor_id: str
    status: str
    date: date | None = None
    time: time | None = None
    display_status: str = ""
    reason: str = ""
    notes: str = ""
    patient_name: str = ""
    doctor_name: str = ""
    reschedule_requested: bool = False
    requested_date: date | None = None
    requested_time: time | None = None
    reschedule_reason: str = ""
    patient_confirmed: bool = False
    updated_at: datetime | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Appointment:
        return cls(
            id=str(data["id"]),
            patient_id=str(data["patient"]),
            doctor_id=str(data["doctor"]),
            status=data["status"],
            date=_parse_date(data.get("date")),
            time=_parse_time(data.get("time")),
            display_status=data.get("display_status") or data["status"],
            reason=data.get("reason") or "",
            notes=data.get("notes") or "",
            patient_name=data.get("patient_name") or "",
            doctor_name=data.get("doctor_name") or "",
            reschedule_requested=bool(data.get("reschedule_requested")),
            requested_date=_parse_date(data.get("requested_date")),
            requested_time=_parse_time(data.get("requested_time")),
            reschedule_reason=data.get("reschedule_reason") or "",
            patient_confirmed=bool(data.get("patient_confirmed")),
            updated_at=_parse_datetime(data.get("updated_at")),
        )


def _parse_list(data: Any) -> list[Appointment]:
    # Paginated responses carry the rows under "results".
    rows = data.get("results", []) if isinstance(data, dict) else data or []
    return [Appointment.from_payload(row) for row in rows]


def _error_detail(response: httpx.Response) -> Any:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and set(body) == {"detail"}:
        return body["detail"]
    return body


class AppointmentsClient:
    """Thin wrapper over ``httpx.AsyncClient`` for ``/api/v1/appointments/``.

    Every write accepts ``socket_id``; when given it is sent as
    ``X-Socket-Id`` so the server acknowledges the write on that socket.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: SessionTokenProvider,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token_provider = token_provider
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> AppointmentsClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        socket_id: str | None = None,
        parse: Callable[[Any], Any] | None = None,
    ) -> Any:
        """Send one request; ``parse`` turns the decoded body into the result.

        A body that is not JSON, or that ``parse`` rejects, raises
        :class:`ClinicAPIError` with the response's status code.
        """
        headers = {"Accept": "application/json"}
        token = self._token_provider.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if socket_id:
            headers[SOCKET_ID_HEADER] = socket_id

        try:
            response = await self._http.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ClinicUnreachable(str(exc)) from exc

        if response.is_error:
            raise ClinicAPIError(response.status_code, _error_detail(response))
        try:
            data = response.json() if response.content else None
            return parse(data) if parse is not None else data
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("%s %s returned an unusable body: %r", method, path, exc)
            detail = f"Unusable response body: {exc!r}"
            raise ClinicAPIError(response.status_code, detail) from exc

    @staticmethod
    def _detail_path(appointment_id: str, suffix: str = "") -> str:
        return f"{APPOINTMENTS_PATH}{appointment_id}/{suffix}"

    # Reads -------------------------------------------------------------------

    async def list_appointments(self, role: str) -> list[Appointment]:
        return await self._request(
            "GET", APPOINTMENTS_PATH, params={"role": role}, parse=_parse_list
        )

    async def get(self, appointment_id: str) -> Appointment:
        return await self._request(
            "GET", self._detail_path(appointment_id), parse=Appointment.from_payload
        )

    # Writes ------------------------------------------------------------------

    async def create(
        self,
        doctor_id: str,
        *,
        day: date | None = None,
        at: time | None = None,
        reason: str = "",
        socket_id: str | None = None,
    ) -> Appointment:
        body: dict[str, Any] = {"doctor": doctor_id, "reason": reason}
        if day is not None and at is not None:
            body["date"] = day.isoformat()
            body["time"] = at.isoformat()
        return await self._request(
            "POST",
            APPOINTMENTS_PATH,
            json=body,
            socket_id=socket_id,
            parse=Appointment.from_payload,
        )

    async def update(
        self,
        appointment_id: str,
        *,
        day: date | None = None,
        at: time | None = None,
        notes: str | None = None,
        socket_id: str | None = None,
    ) -> Appointment:
        body: dict[str, Any] = {}
        if day is not None:
            body["date"] = day.isoformat()
        if at is not None:
            body["time"] = at.isoformat()
        if notes is not None:
            body["notes"] = notes
        return await self._request(
            "PATCH",
            self._detail_path(appointment_id),
            json=body,
            socket_id=socket_id,
            parse=Appointment.from_payload,
        )

    async def change_status(
        self,
        appointment_id: str,
        action: str,
        *,
        socket_id: str | None = None,
    ) -> Appointment:
        return await self._request(
            "POST",
            self._detail_path(appointment_id, "status/"),
            json={"action": str(action)},
            socket_id=socket_id,
            parse=Appointment.from_payload,
        )

    async def request_reschedule(
        self,
        appointment_id: str,
        *,
        day: date,
        at: time,
        reason: str,
        socket_id: str | None = None,
    ) -> Appointment:
        return await self._request(
            "POST",
            self._detail_path(appointment_id, "reschedule-request/"),
            json={"date": day.isoformat(), "time": at.isoformat(), "reason": reason},
            socket_id=socket_id,
            parse=Appointment.from_payload,
        )

    async def respond_to_reschedule(
        self,
        appointment_id: str,
        *,
        approve: bool,
        socket_id: str | None = None,
    ) -> Appointment:
        return await self._request(
            "POST",
            self._detail_path(appointment_id, "reschedule-response/"),
            json={"approve": approve},
            socket_id=socket_id,
            parse=Appointment.from_payload,
        )

    async def delete(self, appointment_id: str, *, socket_id: str | None = None) -> None:
        await self._request(
            "DELETE", self._detail_path(appointment_id), socket_id=socket_id
        )
