from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI, status
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

import app.main as main_module
from app.main import app


def _preflight(path: str, origin: str = "http://localhost:3000", request_headers: str | None = None):
    headers = {"Origin": origin, "Access-Control-Request-Method": "POST"}
    if request_headers is not None:
        headers["Access-Control-Request-Headers"] = request_headers
    return TestClient(app).options(path, headers=headers)


@pytest.mark.parametrize(
    "path",
    ["/admin/auth/login", "/admin/auth/logout", "/admin/join-requests/x/approve"],
)
def test_cors_preflight_allowed_origin(path: str) -> None:
    response = _preflight(path, request_headers="content-type")

    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert "POST" in response.headers["access-control-allow-methods"]
    assert response.headers["access-control-allow-credentials"] == "true"
    assert response.headers["vary"] == "Origin"


def test_cors_preflight_exposes_rate_limit_headers() -> None:
    response = _preflight("/admin/auth/login")

    assert "X-RateLimit-Remaining" in response.headers["access-control-expose-headers"]


def test_cors_preflight_with_disallowed_origin() -> None:
    response = _preflight("/admin/auth/login", origin="http://evil.com")

    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert "access-control-allow-origin" not in response.headers


def test_cors_preflight_with_trailing_slash() -> None:
    response = _preflight("/admin/auth/login", origin="http://localhost:3000/")

    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert "access-control-allow-origin" not in response.headers


def test_cors_preflight_echoes_request_headers() -> None:
    response = _preflight("/admin/auth/login", request_headers="authorization, content-type, x-request-id")

    assert response.headers["access-control-allow-headers"] == "authorization, content-type, x-request-id"


def test_cors_preflight_without_request_headers_uses_allowlist() -> None:
    response = _preflight("/admin/auth/login")

    assert response.headers["access-control-allow-headers"] == "authorization, content-type"


def test_healthcheck_ok(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(main_module, "check_database_connection", AsyncMock(return_value=None))

    response = TestClient(app).get("/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "ok"}


def test_healthcheck_reports_database_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    failing_check = AsyncMock(side_effect=OperationalError("SELECT 1", {}, Exception("down")))
    monkeypatch.setattr(main_module, "check_database_connection", failing_check)

    response = TestClient(app).get("/health")

    assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
    assert response.json() == {"status": "error"}


def test_admin_routes_without_services_fail_closed() -> None:
    # No lifespan has run, so app.state carries no admin services
    response = TestClient(app, raise_server_exceptions=False).post(
        "/admin/auth/login", headers={"Authorization": "Bearer token"}
    )

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json()["error"]["code"] == "INTERNAL_ERROR"


@pytest.mark.anyio
async def test_failed_startup_releases_connections(monkeypatch: pytest.MonkeyPatch) -> None:
    close_redis = AsyncMock()
    dispose = AsyncMock()
    monkeypatch.setattr(main_module, "build_admin_services", MagicMock(side_effect=ValueError("bad config")))
    monkeypatch.setattr(main_module, "close_redis", close_redis)
    monkeypatch.setattr(main_module, "engine", MagicMock(dispose=dispose))

    with pytest.raises(ValueError, match="bad config"):
        async with main_module.lifespan(FastAPI()):
            pass

    close_redis.assert_awaited_once()
    dispose.assert_awaited_once()


@pytest.mark.anyio
async def test_failed_service_start_releases_connections(monkeypatch: pytest.MonkeyPatch) -> None:
    services = MagicMock()
    services.start = AsyncMock(side_effect=RuntimeError("sweeper failed"))
    close_redis = AsyncMock()
    dispose = AsyncMock()
    monkeypatch.setattr(main_module, "build_admin_services", MagicMock(return_value=services))
    monkeypatch.setattr(main_module, "close_redis", close_redis)
    monkeypatch.setattr(main_module, "engine", MagicMock(dispose=dispose))

    with pytest.raises(RuntimeError, match="sweeper failed"):
        async with main_module.lifespan(FastAPI()):
            pass

    close_redis.assert_awaited_once()
    dispose.assert_awaited_once()
    services.shutdown.assert_not_called()
