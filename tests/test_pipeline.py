"""Request pipeline end to end: headers, limits, schema init, guard, errors."""

import json

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import FakePool
from core.config import Settings
from core.db import PoolProvider
from main import create_app


async def test_root_is_live(client):
    res = await client.get("/")
    assert res.status_code == 200
    assert res.json() == {"success": True, "message": "Backend is live on Vercel!"}


async def test_root_carries_security_headers(client):
    res = await client.get("/")
    assert res.headers["x-content-type-options"] == "nosniff"
    assert res.headers["x-frame-options"] == "SAMEORIGIN"
    assert "strict-transport-security" in res.headers
    assert "server" not in res.headers


async def test_test_db_returns_time(client, fake_pool):
    res = await client.get("/test-db")
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["time"].startswith("2024-05-01")
    assert fake_pool.acquired == fake_pool.released == 1


async def test_test_db_reports_database_error(settings, user_lookup):
    async def unreachable(**kwargs):
        raise ConnectionRefusedError("connection refused")

    app = create_app(settings, pool_provider=PoolProvider(settings, factory=unreachable), user_lookup=user_lookup)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        res = await c.get("/test-db")
    assert res.status_code == 500
    assert res.json() == {"success": False, "error": "Database error"}


async def test_test_db_retries_when_configured(user_lookup):
    settings = Settings(database_url="postgresql://localhost/test", jwt_secret="x", test_db_retries=2)
    attempts = []

    async def flaky(**kwargs):
        attempts.append(kwargs)
        if len(attempts) < 3:
            raise OSError("not yet")
        return FakePool()

    app = create_app(settings, pool_provider=PoolProvider(settings, factory=flaky), user_lookup=user_lookup)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        res = await c.get("/test-db")
    assert res.status_code == 200
    assert len(attempts) == 3


async def test_guarded_route_without_token_is_401_and_handler_not_called(client, spies):
    res = await client.post("/api/jobs", json={"title": "Engineer"})
    assert res.status_code == 401
    body = res.json()
    assert body["success"] is False
    assert body["error"]
    assert spies["jobs"].calls == []


async def test_malformed_authorization_header_is_401(client, spies):
    res = await client.get("/api/jobs", headers={"Authorization": "Token abc"})
    assert res.status_code == 401
    assert spies["jobs"].calls == []


@pytest.mark.parametrize(
    "method, path",
    [("post", "/api/jobs"), ("put", "/api/jobs/1"), ("post", "/api/auth/logout")],
)
async def test_unauthenticated_malformed_body_is_401(client, spies, method, path):
    res = await client.request(method, path, content=b"{not json", headers={"Content-Type": "application/json"})
    assert res.status_code == 401
    assert res.json()["success"] is False
    assert spies["jobs"].calls == []


async def test_authenticated_malformed_body_is_400(client, spies, auth_header):
    headers = {**auth_header(3), "Content-Type": "application/json"}
    res = await client.post("/api/jobs", content=b"{not json", headers=headers)
    assert res.status_code == 400
    assert res.json() == {"success": False, "error": "Request body must be valid JSON."}

    res = await client.put("/api/jobs/1", json=["title"], headers=auth_header(3))
    assert res.status_code == 400
    assert res.json()["error"] == "Request body must be a JSON object."
    assert spies["jobs"].calls == []


async def test_invalid_signature_is_401(client, spies, settings, users):
    from auth import security

    other = Settings(jwt_secret="another-secret")
    token = security.build_access_token(other, user_id=1, email="a@b.c", role="admin")
    res = await client.get("/api/jobs", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401
    assert spies["jobs"].calls == []


async def test_expired_token_is_401(client, spies, token_for):
    token = token_for(3, expires_in_s=-60)
    res = await client.get("/api/jobs", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401
    assert "expired" in res.json()["error"].lower()


async def test_inactive_user_is_403(client, spies, auth_header):
    res = await client.get("/api/jobs", headers=auth_header(5))
    assert res.status_code == 403
    assert spies["jobs"].calls == []


async def test_role_outside_allowed_set_is_403(client, spies, auth_header):
    res = await client.get("/api/organizations/123", headers=auth_header(4))
    assert res.status_code == 403
    assert res.json()["success"] is False
    assert spies["organizations"].calls == []


async def test_allowed_role_reaches_handler(client, spies, auth_header):
    res = await client.get("/api/organizations/123", headers=auth_header(2))
    assert res.status_code == 200
    assert res.json() == {"success": True, "data": {"id": 123}}
    name, context, item_id = spies["organizations"].calls[0]
    assert name == "get"
    assert context.user_id == 2
    assert item_id == 123


async def test_route_without_role_restriction_accepts_any_authenticated_user(client, spies, auth_header):
    res = await client.get("/api/jobs", headers=auth_header(4))
    assert res.status_code == 200
    assert res.json()["count"] == 1


async def test_write_policy_differs_from_read_policy(client, spies, auth_header):
    res = await client.post("/api/jobs", json={"title": "Engineer"}, headers=auth_header(4))
    assert res.status_code == 403

    res = await client.post("/api/jobs", json={"title": "Engineer"}, headers=auth_header(3))
    assert res.status_code == 201
    assert spies["jobs"].calls[-1][0] == "create"


async def test_unknown_api_path_is_uniform_404(client):
    res = await client.get("/api/does-not-exist")
    assert res.status_code == 404
    assert res.json() == {"success": False, "error": "Not Found"}


async def test_unknown_path_outside_api_is_uniform_404(client):
    res = await client.get("/nothing-here")
    assert res.status_code == 404
    assert res.json() == {"success": False, "error": "Not Found"}


async def test_unsupported_method_on_users_is_405(client, auth_header):
    res = await client.post("/api/users", json={"email": "x@y.z"}, headers=auth_header(1))
    assert res.status_code == 405
    assert res.json()["success"] is False


async def test_oversized_payload_rejected_before_handler(client, spies, auth_header):
    res = await client.post(
        "/api/jobs",
        json={"title": "x" * 5000},
        headers=auth_header(3),
    )
    assert res.status_code == 413
    assert res.json()["success"] is False
    assert spies["jobs"].calls == []


async def test_oversized_chunked_payload_rejected_before_handler(client, spies, auth_header):
    async def body():
        for _ in range(10):
            yield b"x" * 500

    headers = {**auth_header(3), "Content-Type": "application/json"}
    res = await client.post("/api/jobs", content=body(), headers=headers)
    assert res.status_code == 413
    assert spies["jobs"].calls == []


async def test_body_is_sanitized_before_handler(client, spies, auth_header):
    payload = {
        "title": "  <b>Senior</b> Engineer \x00 ",
        "openings": "3",
        "salary_min": "1000.50",
        "start_date": "2024-06-01T00:00:00Z",
        "unknown_field": "dropped",
        "__proto__": {"admin": True},
    }
    res = await client.post("/api/jobs", json=payload, headers=auth_header(3))
    assert res.status_code == 201
    _, _, received = spies["jobs"].calls[-1]
    assert received == {
        "title": "Senior Engineer",
        "openings": 3,
        "salary_min": 1000.5,
        "start_date": "2024-06-01",
    }


async def test_query_string_is_sanitized(client, spies, auth_header):
    res = await client.get("/api/jobs?limit=%205%20&offset=2", headers=auth_header(3))
    assert res.status_code == 200
    _, _, limit, offset = spies["jobs"].calls[-1]
    assert (limit, offset) == (5, 2)


async def test_invalid_query_is_400_validation_error(client, auth_header):
    res = await client.get("/api/jobs?limit=0", headers=auth_header(3))
    assert res.status_code == 400
    body = res.json()
    assert body["success"] is False
    assert body["details"][0]["field"] == "query.limit"


async def test_schema_initializers_run_once_per_process(client, spies, auth_header, app):
    for _ in range(3):
        await client.get("/api/jobs", headers=auth_header(3))
    assert spies["jobs"].schema_runs == 1
    assert spies["organizations"].schema_runs == 0
    assert {"auth", "offices", "teams", "jobs"} <= app.state.schema_registry.confirmed


async def test_schema_not_touched_outside_api(client, app, fake_pool):
    await client.get("/")
    assert app.state.schema_registry.confirmed == frozenset()
    assert fake_pool.statements == []


async def test_cors_preflight_allows_configured_methods(client):
    res = await client.options(
        "/api/jobs",
        headers={
            "Origin": "http://example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Authorization, Content-Type",
        },
    )
    assert res.status_code == 200
    allowed = res.headers["access-control-allow-methods"]
    for method in ("GET", "POST", "PUT", "DELETE", "OPTIONS"):
        assert method in allowed
    assert "PATCH" not in allowed


async def test_cors_production_rejects_unknown_origin(pool_provider, user_lookup):
    settings = Settings(
        environment="production",
        database_url="postgresql://localhost/test",
        jwt_secret="x",
        allowed_origins=("https://partner.example.com",),
    )
    app = create_app(settings, pool_provider=pool_provider, user_lookup=user_lookup)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        allowed = await c.get("/", headers={"Origin": "https://partner.example.com"})
        denied = await c.get("/", headers={"Origin": "https://evil.example.com"})
    assert allowed.headers["access-control-allow-origin"] == "https://partner.example.com"
    assert "access-control-allow-origin" not in denied.headers


async def test_auth_routes_are_not_guarded(client, monkeypatch):
    from auth import repository

    async def no_user(db, email):
        return None

    monkeypatch.setattr(repository, "get_user_by_email", no_user)
    res = await client.post("/api/auth/login", json={"email": "nobody@example.com", "password": "secret"})
    # Reaches the handler: rejected for bad credentials, not for a missing header.
    assert res.status_code == 401
    assert res.json()["error"] == "Invalid email or password."


async def test_database_unreachable_degrades_but_serves_static_routes(user_lookup, auth_header):
    settings = Settings(database_url="postgresql://localhost/test", jwt_secret="test-secret-for-the-suite")

    async def unreachable(**kwargs):
        raise ConnectionRefusedError("connection refused")

    app = create_app(settings, pool_provider=PoolProvider(settings, factory=unreachable), user_lookup=user_lookup)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        failed = await c.get("/api/jobs", headers=auth_header(3))
        live = await c.get("/")

    assert failed.status_code == 500
    assert failed.json() == {"success": False, "error": "Database error"}
    assert live.status_code == 200
    assert app.state.schema_registry.confirmed == frozenset()


async def test_fail_fast_schema_policy_rejects_request(user_lookup, auth_header, spies):
    settings = Settings(
        database_url="postgresql://localhost/test",
        jwt_secret="test-secret-for-the-suite",
        schema_init_policy="fail_fast",
    )

    async def unreachable(**kwargs):
        raise ConnectionRefusedError("connection refused")

    app = create_app(
        settings,
        pool_provider=PoolProvider(settings, factory=unreachable),
        user_lookup=user_lookup,
        controllers=spies,
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        res = await c.get("/api/jobs", headers=auth_header(3))
    assert res.status_code == 500
    assert res.json()["success"] is False
    assert spies["jobs"].calls == []


@pytest.mark.parametrize("path", ["/", "/test-db"])
async def test_static_routes_ignore_bad_credentials(client, path):
    res = await client.get(path, headers={"Authorization": "Bearer garbage"})
    assert res.status_code == 200


async def test_large_responses_are_gzipped(client, spies, auth_header, monkeypatch):
    rows = [{"id": i, "title": "Engineer " * 5} for i in range(100)]

    async def many(context, *, limit=50, offset=0):
        return rows

    monkeypatch.setattr(spies["jobs"], "list", many)
    res = await client.get("/api/jobs", headers={**auth_header(3), "Accept-Encoding": "gzip"})
    assert res.status_code == 200
    assert res.headers["content-encoding"] == "gzip"
    assert json.loads(res.content)["count"] == 100
