"""Service facade contract tests against a mocked Glynac API."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
import respx

from glynac.api import ConnectionService, GlynacApi, LogoUpload
from glynac.keys import AUTH_ME, DASHBOARD_STATS, EMPLOYEES_LIST
from glynac.services.storage import USER_DATA_KEY

from tests.conftest import BASE_URL

USER = {
    "id": "user-1",
    "email": "admin123@glynac.ai",
    "name": "Demo User",
    "isFirstTimeUser": True,
    "setupCompleted": False,
}
TOKEN = "mock-jwt-token-1700000000000"

NEW_EMPLOYEE = {
    "name": "Jane Doe",
    "email": "jane@glynac.ai",
    "department": "Engineering",
    "position": "Engineer",
    "location": "Remote",
}

ORGANIZATION = {
    "name": "Glynac",
    "country": "US",
    "state": "CA",
    "industry": "Technology",
    "size": "50-200",
}


@pytest.fixture
def api(client) -> GlynacApi:
    return GlynacApi(client)


@pytest.fixture
def signed_in(api) -> GlynacApi:
    api.client.auth.set_session(TOKEN, USER)
    return api


@pytest.mark.asyncio
async def test_login_then_verify_round_trip(api, store) -> None:
    with respx.mock(assert_all_called=True) as router:
        login = router.post(f"{BASE_URL}/auth/login").respond(
            200,
            json={
                "success": True,
                "data": {"user": USER, "token": TOKEN},
                "message": "Login successful",
            },
        )
        verify = router.get(f"{BASE_URL}/auth/verify").respond(
            200, json={"success": True, "data": USER}
        )

        response = await api.auth.login("admin123@glynac.ai", "admin123")
        verified = await api.auth.verify()

    assert response.success
    assert response.message == "Login successful"
    assert response.data.token.startswith("mock-jwt-token-")
    assert json.loads(login.calls[0].request.content) == {
        "email": "admin123@glynac.ai",
        "password": "admin123",
    }
    assert api.client.auth.token == TOKEN
    assert json.loads(store.get(USER_DATA_KEY))["email"] == "admin123@glynac.ai"

    assert verified.success
    assert verified.data.email == "admin123@glynac.ai"
    assert verified.data.is_first_time_user is True
    assert verify.calls[0].request.headers["Authorization"] == f"Bearer {TOKEN}"


@pytest.mark.asyncio
async def test_get_me_is_served_from_login_cache(api) -> None:
    with respx.mock(assert_all_called=False) as router:
        router.post(f"{BASE_URL}/auth/login").respond(
            200, json={"success": True, "data": {"user": USER, "token": TOKEN}}
        )
        verify = router.get(f"{BASE_URL}/auth/verify").respond(
            200, json={"success": True, "data": USER}
        )

        await api.auth.login("admin123@glynac.ai", "admin123")
        me = await api.auth.get_me()

    assert me.success
    assert me.data.id == "user-1"
    assert not verify.called


@pytest.mark.asyncio
async def test_login_requires_credentials(api) -> None:
    with respx.mock(assert_all_called=False) as router:
        route = router.post(f"{BASE_URL}/auth/login").respond(200, json={})
        response = await api.auth.login("", "")

    assert not response.success
    assert response.status == 400
    assert response.code == "validation_error"
    assert set(response.details) == {"email", "password"}
    assert not route.called


@pytest.mark.asyncio
async def test_failed_login_returns_envelope(api) -> None:
    with respx.mock() as router:
        router.post(f"{BASE_URL}/auth/login").respond(
            401, json={"success": False, "error": "Invalid email or password"}
        )
        response = await api.auth.login("admin123@glynac.ai", "wrong")

    assert not response.success
    assert response.status == 401
    assert response.error == "Invalid email or password"
    assert not api.client.auth.is_authenticated


@pytest.mark.asyncio
async def test_verify_without_session_skips_network(api) -> None:
    with respx.mock(assert_all_called=False) as router:
        route = router.get(f"{BASE_URL}/auth/verify").respond(200, json={})
        response = await api.auth.verify()

    assert not response.success
    assert response.status == 401
    assert not route.called


@pytest.mark.asyncio
async def test_logout_clears_local_state_even_on_failure(signed_in) -> None:
    signed_in.client.cache.write(EMPLOYEES_LIST, {"success": True, "data": []})

    with respx.mock() as router:
        route = router.post(f"{BASE_URL}/auth/logout").respond(500)
        response = await signed_in.auth.logout()

    assert not response.success
    assert route.call_count == 1
    assert not signed_in.client.auth.is_authenticated
    assert signed_in.client.cache.read(EMPLOYEES_LIST) is None


@pytest.mark.asyncio
async def test_refresh_token_operation(signed_in) -> None:
    with respx.mock() as router:
        router.post(f"{BASE_URL}/auth/refresh").respond(
            200, json={"success": True, "data": {"token": "mock-jwt-token-2"}}
        )
        response = await signed_in.auth.refresh_token()

    assert response.success
    assert response.data == {"token": "mock-jwt-token-2"}


@pytest.mark.asyncio
async def test_create_employee_applies_defaults_and_invalidates_list(signed_in) -> None:
    created = {"id": "emp-9", **NEW_EMPLOYEE}

    with respx.mock(assert_all_called=True) as router:
        listing = router.get(f"{BASE_URL}/employees").respond(
            200, json={"success": True, "data": []}
        )
        create = router.post(f"{BASE_URL}/employees").respond(
            201, json={"success": True, "data": created}
        )

        before = await signed_in.employees.get_employees()
        cached = await signed_in.employees.get_employees()
        response = await signed_in.employees.create_employee(NEW_EMPLOYEE)
        after = await signed_in.employees.get_employees()

    assert before.data == [] and cached.data == []
    assert response.success
    employee = response.data
    assert employee.status == "included"
    assert employee.email_count == 0
    assert employee.chat_count == 0
    assert employee.meeting_count == 0
    assert employee.file_access_count == 0
    assert json.loads(create.calls[0].request.content)["email"] == "jane@glynac.ai"
    assert listing.call_count == 2
    assert after.success


@pytest.mark.asyncio
async def test_create_employee_rejects_bad_email(signed_in) -> None:
    with respx.mock(assert_all_called=False) as router:
        route = router.post(f"{BASE_URL}/employees").respond(201, json={})
        response = await signed_in.employees.create_employee(
            {**NEW_EMPLOYEE, "email": "not-an-email"}
        )

    assert not response.success
    assert "email" in response.details
    assert not route.called


@pytest.mark.asyncio
async def test_update_employee_sends_camel_case_patch(signed_in) -> None:
    with respx.mock() as router:
        route = router.patch(f"{BASE_URL}/employees/emp-1").respond(
            200, json={"success": True, "data": {"id": "emp-1", "workModel": "hybrid"}}
        )
        response = await signed_in.employees.update_employee("emp-1", work_model="hybrid")

    assert response.success
    assert json.loads(route.calls[0].request.content) == {"workModel": "hybrid"}


@pytest.mark.asyncio
async def test_update_employee_rejects_unknown_fields(signed_in) -> None:
    response = await signed_in.employees.update_employee("emp-1", salary=1)
    assert not response.success
    assert response.details == {"salary": "Unknown field"}


@pytest.mark.asyncio
async def test_discover_employees_invalidates_dashboard(signed_in) -> None:
    signed_in.client.cache.write(DASHBOARD_STATS, {"success": True, "data": {}})

    with respx.mock() as router:
        router.post(f"{BASE_URL}/employees/discover").respond(
            200, json={"success": True, "data": {"count": 42}}
        )
        response = await signed_in.employees.discover_employees()

    assert response.data.count == 42
    assert not signed_in.client.cache.is_fresh(DASHBOARD_STATS)


@pytest.mark.asyncio
async def test_oversized_logo_is_rejected_before_upload(signed_in) -> None:
    logo = LogoUpload("logo.png", b"\0" * (6 * 1024 * 1024), "image/png")

    with respx.mock(assert_all_called=False) as router:
        route = router.post(f"{BASE_URL}/organization").respond(201, json={})
        response = await signed_in.organization.create_organization(
            **ORGANIZATION, logo=logo
        )

    assert not response.success
    assert response.code == "validation_error"
    assert "5MB" in response.error
    assert not route.called


@pytest.mark.asyncio
async def test_unsupported_logo_type_is_rejected(signed_in) -> None:
    logo = LogoUpload("logo.bmp", b"BM", "image/bmp")
    response = await signed_in.organization.create_organization(**ORGANIZATION, logo=logo)

    assert not response.success
    assert "logo" in response.details


@pytest.mark.asyncio
async def test_missing_organization_fields(signed_in) -> None:
    response = await signed_in.organization.create_organization(
        **{**ORGANIZATION, "name": " ", "industry": ""}
    )

    assert not response.success
    assert response.details == {
        "name": "Organization name is required",
        "industry": "Industry is required",
    }


@pytest.mark.asyncio
async def test_create_organization_posts_multipart(signed_in) -> None:
    logo = LogoUpload("logo.png", b"\x89PNG", "image/png")
    signed_in.client.cache.write(AUTH_ME, {"success": True, "data": USER})

    with respx.mock() as router:
        route = router.post(f"{BASE_URL}/organization").respond(
            201, json={"success": True, "data": {"id": "org-1", **ORGANIZATION}}
        )
        response = await signed_in.organization.create_organization(
            **ORGANIZATION, logo=logo, zip_code="94105"
        )

    assert response.success
    assert response.data.id == "org-1"
    request = route.calls[0].request
    assert request.headers["Content-Type"].startswith("multipart/form-data")
    assert b'name="zipCode"' in request.read()
    assert not signed_in.client.cache.is_fresh(AUTH_ME)


@pytest.mark.asyncio
async def test_envelope_failure_becomes_failed_response(signed_in) -> None:
    with respx.mock() as router:
        router.get(f"{BASE_URL}/organization").respond(
            200, json={"success": False, "error": "Organization not found"}
        )
        response = await signed_in.organization.get_organization()

    assert not response.success
    assert response.error == "Organization not found"


@pytest.mark.asyncio
async def test_unexpected_payload_is_reported(signed_in) -> None:
    with respx.mock() as router:
        router.get(f"{BASE_URL}/dashboard/stats").respond(
            200, json={"success": True, "data": {"totalEmployees": "many"}}
        )
        response = await signed_in.dashboard.get_stats()

    assert not response.success
    assert response.code == "invalid_response"


@pytest.mark.asyncio
async def test_dashboard_stats(signed_in) -> None:
    stats = {
        "totalEmployees": 120,
        "departments": 8,
        "locations": 4,
        "remoteWorkers": 30,
        "dataCollection": {"emails": 1000, "meetings": 50, "chatMessages": 700},
    }
    with respx.mock() as router:
        router.get(f"{BASE_URL}/dashboard/stats").respond(
            200, json={"success": True, "data": stats}
        )
        response = await signed_in.dashboard.get_stats()

    assert response.data.total_employees == 120
    assert response.data.data_collection.chat_messages == 700
    assert response.data.data_collection.file_accesses == 0


@pytest.mark.asyncio
async def test_server_error_is_retried_then_reported(signed_in, fake_sleep) -> None:
    with respx.mock() as router:
        route = router.get(f"{BASE_URL}/data-quality/issues").respond(503)
        response = await signed_in.data_quality.get_issues()

    assert not response.success
    assert response.status == 503
    assert route.call_count == 4
    assert fake_sleep.delays == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_resolve_issue_and_collection(signed_in) -> None:
    issue = {
        "id": "iss-1",
        "type": "email_alias",
        "employeeId": "emp-1",
        "employeeName": "Jane Doe",
        "description": "Alias detected",
        "severity": "low",
    }
    with respx.mock(assert_all_called=True) as router:
        issues = router.get(f"{BASE_URL}/data-quality/issues").respond(
            200, json={"success": True, "data": [issue]}
        )
        router.post(f"{BASE_URL}/data-quality/issues/iss-1/resolve").respond(
            200, json={"success": True, "data": {"resolved": True}}
        )
        router.post(f"{BASE_URL}/data-quality/collect").respond(
            200, json={"success": True, "data": {"processedCount": 12}}
        )

        open_issues = await signed_in.data_quality.get_open_issues()
        resolved = await signed_in.data_quality.resolve_issue("iss-1", {"action": "merge"})
        await signed_in.data_quality.get_issues()
        collected = await signed_in.data_quality.run_collection()

    assert [i.id for i in open_issues.data] == ["iss-1"]
    assert resolved.data.resolved is True
    assert issues.call_count == 2
    assert collected.data.processed_count == 12


@pytest.mark.asyncio
async def test_anonymization_and_setup_completion(signed_in) -> None:
    completed_user = {**USER, "isFirstTimeUser": False, "setupCompleted": True}
    with respx.mock() as router:
        router.post(f"{BASE_URL}/anonymization/run").respond(
            200, json={"success": True, "data": {"processedCount": 120}}
        )
        router.post(f"{BASE_URL}/setup/complete").respond(
            200, json={"success": True, "data": completed_user}
        )

        anonymized = await signed_in.anonymization.run_anonymization()
        completed = await signed_in.setup.complete_setup()
        me = await signed_in.auth.get_me()

    assert anonymized.data.processed_count == 120
    assert completed.data.setup_completed is True
    assert signed_in.client.auth.user["setupCompleted"] is True
    assert me.data.setup_completed is True


@pytest.mark.asyncio
async def test_create_connection_validates_required_fields(signed_in) -> None:
    with respx.mock(assert_all_called=False) as router:
        route = router.post(f"{BASE_URL}/connections/slack").respond(200, json={})
        response = await signed_in.connections.create_connection(
            ConnectionService.SLACK, {"workspace_id": "T1", "client_id": "abc"}
        )

    assert not response.success
    assert set(response.details) == {"client_secret", "redirect_uri"}
    assert not route.called


@pytest.mark.asyncio
async def test_create_connection_rejects_unknown_service(signed_in) -> None:
    response = await signed_in.connections.create_connection("myspace", {})
    assert not response.success
    assert response.details == {"service": "Unsupported service"}


@pytest.mark.asyncio
async def test_create_connection_posts_config(signed_in) -> None:
    config = {
        "tenant_id": "tenant",
        "client_id": "client",
        "client_secret": "s3cret",
        "redirect_uri": "http://localhost/callback",
    }
    with respx.mock() as router:
        route = router.post(f"{BASE_URL}/connections/microsoft365").respond(
            200, json={"connection_id": "conn-1", "status": "pending"}
        )
        response = await signed_in.connections.create_connection("Microsoft365", config)

    assert response.success
    assert response.data.connection_id == "conn-1"
    assert json.loads(route.calls[0].request.content) == config


@pytest.mark.asyncio
async def test_connection_stats_are_cached(signed_in) -> None:
    with respx.mock() as router:
        route = router.post(f"{BASE_URL}/connections/stats").respond(
            200, json={"connection_id": "conn-1", "status": "connected"}
        )
        assert await signed_in.connections.is_connection_active("conn-1") is True
        assert await signed_in.connections.is_connection_active("conn-1") is True

    assert route.call_count == 1
    assert json.loads(route.calls[0].request.content) == {"connection_id": "conn-1"}


@pytest.mark.asyncio
async def test_connect_invalidates_connection_stats(signed_in) -> None:
    with respx.mock() as router:
        stats = router.post(f"{BASE_URL}/connections/stats").respond(
            200, json={"connection_id": "conn-1", "status": "pending"}
        )
        router.post(f"{BASE_URL}/connections/connect").respond(
            200, json={"connection_id": "conn-1", "status": "connected"}
        )

        assert await signed_in.connections.is_connection_active("conn-1") is False
        connected = await signed_in.connections.connect("conn-1")
        await signed_in.connections.get_connection_stats("conn-1")

    assert connected.data.status == "connected"
    assert stats.call_count == 2


@pytest.mark.asyncio
async def test_inactive_when_stats_fail(signed_in) -> None:
    with respx.mock() as router:
        router.post(f"{BASE_URL}/connections/stats").respond(404, json={"message": "gone"})
        assert await signed_in.connections.is_connection_active("conn-x") is False


@pytest.mark.asyncio
async def test_rejected_envelope_is_not_cached(signed_in) -> None:
    with respx.mock() as router:
        route = router.get(f"{BASE_URL}/employees").mock(
            side_effect=[
                httpx.Response(200, json={"success": False, "error": "backend hiccup"}),
                httpx.Response(200, json={"success": True, "data": []}),
            ]
        )
        first = await signed_in.employees.get_employees()
        second = await signed_in.employees.get_employees()

    assert not first.success
    assert first.error == "backend hiccup"
    assert second.success
    assert second.data == []
    assert route.call_count == 2


@pytest.mark.asyncio
async def test_concurrent_employee_reads_share_one_request(signed_in) -> None:
    with respx.mock() as router:
        route = router.get(f"{BASE_URL}/employees").respond(
            200, json={"success": True, "data": []}
        )
        first, second = await asyncio.gather(
            signed_in.employees.get_employees(),
            signed_in.employees.get_employees(),
        )

    assert first.success and second.success
    assert route.call_count == 1


@pytest.mark.asyncio
async def test_failed_update_rolls_back_cached_list(signed_in) -> None:
    listing = {
        "success": True,
        "data": [{"id": "emp-1", "name": "Jane Doe", "workModel": "remote"}],
    }
    signed_in.client.cache.write(EMPLOYEES_LIST, listing)
    seen_during_request = []

    def reject(request: httpx.Request) -> httpx.Response:
        seen_during_request.append(signed_in.client.cache.read(EMPLOYEES_LIST))
        return httpx.Response(400, json={"message": "Locked"})

    with respx.mock() as router:
        router.patch(f"{BASE_URL}/employees/emp-1").mock(side_effect=reject)
        response = await signed_in.employees.update_employee("emp-1", work_model="hybrid")

    assert not response.success
    assert seen_during_request[0]["data"][0]["workModel"] == "hybrid"
    assert signed_in.client.cache.read(EMPLOYEES_LIST) == listing
    assert signed_in.client.cache.is_fresh(EMPLOYEES_LIST)


@pytest.mark.asyncio
async def test_prefetch_warms_cache_and_tolerates_failure(signed_in, fake_sleep) -> None:
    client = signed_in.client

    with respx.mock() as router:
        router.get(f"{BASE_URL}/dashboard/stats").respond(503)
        await client.prefetch(DASHBOARD_STATS, "/dashboard/stats")
    assert client.cache.read(DASHBOARD_STATS) is None

    with respx.mock() as router:
        route = router.get(f"{BASE_URL}/employees").respond(
            200, json={"success": True, "data": []}
        )
        await client.prefetch(EMPLOYEES_LIST, "/employees")
        response = await signed_in.employees.get_employees()

    assert response.success
    assert route.call_count == 1
