import json
from datetime import date
from datetime import time

import httpx
import pytest

from medsync.client.api import AppointmentsClient
from medsync.client.exceptions import ClinicAPIError
from medsync.client.exceptions import ClinicUnreachable
from medsync.client.session import StaticTokenProvider
from medsync.client.tests.fakes import appointment_row


def client_with(handler, token="tok"):
    return AppointmentsClient(
        "http://clinic.test/",
        StaticTokenProvider(token),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
class TestAppointmentsClient:
    async def test_list_sends_role_and_bearer(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            row = appointment_row(
                7, "scheduled", date="2026-05-01", time="09:30:00", patient_name="Pat"
            )
            return httpx.Response(200, json=[row])

        async with client_with(handler) as api:
            rows = await api.list_appointments("patient")

        assert seen["url"] == "http://clinic.test/api/v1/appointments/?role=patient"
        assert seen["auth"] == "Bearer tok"
        assert rows[0].id == "7"
        assert rows[0].date == date(2026, 5, 1)
        assert rows[0].time == time(9, 30)
        assert rows[0].patient_name == "Pat"

    async def test_paginated_list(self):
        def handler(request):
            return httpx.Response(200, json={"results": [appointment_row(1)]})

        async with client_with(handler) as api:
            rows = await api.list_appointments("doctor")
        assert [r.id for r in rows] == ["1"]

    async def test_writes_carry_socket_id(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["socket"] = request.headers.get("X-Socket-Id")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=appointment_row(3, "accepted"))

        async with client_with(handler) as api:
            result = await api.change_status("3", "accept", socket_id="sid-9")

        assert seen == {
            "path": "/api/v1/appointments/3/status/",
            "socket": "sid-9",
            "body": {"action": "accept"},
        }
        assert result.status == "accepted"

    async def test_reschedule_request_body(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=appointment_row(3, "scheduled"))

        async with client_with(handler) as api:
            await api.request_reschedule(
                "3", day=date(2026, 6, 1), at=time(14, 0), reason="Travel"
            )
        assert seen["body"] == {
            "date": "2026-06-01",
            "time": "14:00:00",
            "reason": "Travel",
        }

    async def test_error_status_raises_with_detail(self):
        def handler(request):
            return httpx.Response(400, json={"detail": ["Cannot 'cancel'"]})

        async with client_with(handler) as api:
            with pytest.raises(ClinicAPIError) as excinfo:
                await api.change_status("3", "cancel")
        assert excinfo.value.status_code == 400
        assert excinfo.value.detail == ["Cannot 'cancel'"]

    async def test_delete_returns_none(self):
        def handler(request):
            assert request.method == "DELETE"
            return httpx.Response(204)

        async with client_with(handler) as api:
            assert await api.delete("3") is None

    async def test_transport_failure(self):
        def handler(request):
            msg = "connection refused"
            raise httpx.ConnectError(msg, request=request)

        async with client_with(handler) as api:
            with pytest.raises(ClinicUnreachable):
                await api.list_appointments("patient")

    async def test_no_token_no_header(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(401, json={"detail": "Not authenticated"})

        async with client_with(handler, token=None) as api:
            with pytest.raises(ClinicAPIError) as excinfo:
                await api.list_appointments("patient")
        assert seen["auth"] is None
        assert excinfo.value.detail == "Not authenticated"

    async def test_body_that_is_not_json(self):
        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        async with client_with(handler) as api:
            with pytest.raises(ClinicAPIError) as excinfo:
                await api.list_appointments("patient")
        assert excinfo.value.status_code == 200
        assert "Unusable response body" in str(excinfo.value.detail)

    async def test_row_missing_fields(self):
        def handler(request):
            return httpx.Response(200, json=[{"id": 1, "status": "pending"}])

        async with client_with(handler) as api:
            with pytest.raises(ClinicAPIError):
                await api.list_appointments("doctor")

    async def test_write_with_empty_body_is_unusable(self):
        def handler(request):
            return httpx.Response(200)

        async with client_with(handler) as api:
            with pytest.raises(ClinicAPIError):
                await api.change_status("3", "accept")
