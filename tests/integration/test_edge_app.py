"""
Integration tests for the edge application.

Covers service mounting, the health endpoint and the edge middleware.
"""

import asyncio
import logging
import uuid

import pytest
from fastapi import APIRouter
from fastapi.testclient import TestClient
from starlette.requests import Request
from starlette.responses import PlainTextResponse

from bluestack.core.config_manager import BluestackConfig
from bluestack.core.logging_config import request_id
from bluestack.core.runtime import build_registry, create_app
from bluestack.core.service import BluestackService, ServiceRegistry
from bluestack.gateway.middleware import REQUEST_ID_HEADER, EdgeMiddleware, client_address


class RecordingService(BluestackService):
    """Service that records lifecycle calls and exposes a ping route."""

    def __init__(self, name: str = "echo"):
        self._name = name
        self.events = []

    @property
    def name(self) -> str:
        return self._name

    def create_router(self) -> APIRouter:
        router = APIRouter()

        @router.get("/ping")
        async def ping():
            return {"pong": self._name}

        return router

    async def startup(self) -> None:
        self.events.append("startup")

    async def shutdown(self) -> None:
        self.events.append("shutdown")


@pytest.fixture
def config(tmp_path):
    return BluestackConfig(data_dir=str(tmp_path))


@pytest.fixture
def client(config):
    with TestClient(create_app(config)) as client:
        yield client


def _request(headers=None, client=("10.0.0.1", 5000)) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/slow",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


async def _noop_app(scope, receive, send):
    pass


class TestEdgeApp:
    """Test the assembled edge application."""

    def test_health(self, client, tmp_path):
        response = client.get("/health")
        assert response.status_code == 200

        body = response.json()
        assert body["status"] == "healthy"
        assert body["service"] == "bluestack"
        assert body["services"]["blob"]["status"] == "healthy"
        assert body["services"]["blob"]["data_dir"] == str(tmp_path)

    def test_blob_routes_mounted(self, client, tmp_path):
        assert client.put("/blob/acct/c1/f.txt", content=b"hello").status_code == 201
        assert client.get("/blob/acct/c1/f.txt").content == b"hello"
        assert (tmp_path / "blob" / "acct" / "c1" / "f.txt").is_file()

    def test_disabled_service_not_mounted(self, tmp_path):
        config = BluestackConfig(data_dir=str(tmp_path), enabled_services=["queue"])
        with TestClient(create_app(config)) as client:
            assert client.put("/blob/acct/c1").status_code == 404
            assert client.get("/health").json()["services"] == {}

    def test_build_registry(self, config):
        registry = build_registry(config)
        assert registry.names() == ["blob"]

    def test_build_registry_skips_disabled_services(self, tmp_path):
        """Test a disabled service is never constructed."""
        config = BluestackConfig(data_dir=str(tmp_path / "data"), enabled_services=["queue"])

        registry = build_registry(config)

        assert len(registry) == 0
        assert not (tmp_path / "data").exists()

    def test_custom_registry_lifecycle(self, tmp_path):
        service = RecordingService()
        config = BluestackConfig(data_dir=str(tmp_path), enabled_services=["echo"])

        with TestClient(create_app(config, ServiceRegistry([service]))) as client:
            assert client.get("/echo/ping").json() == {"pong": "echo"}
            assert service.events == ["startup"]

        assert service.events == ["startup", "shutdown"]


class TestRequestId:
    """Test request ID propagation."""

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={REQUEST_ID_HEADER: "req-42"})
        assert response.headers[REQUEST_ID_HEADER] == "req-42"

    def test_request_id_generated(self, client):
        response = client.get("/health")
        assert uuid.UUID(response.headers[REQUEST_ID_HEADER])

    def test_request_id_on_errors(self, client):
        response = client.get("/blob/acct/missing/f.txt")
        assert response.status_code == 404
        assert REQUEST_ID_HEADER in response.headers


class TestEdgeMiddleware:
    """Test timeout and recovery handling."""

    @pytest.mark.asyncio
    async def test_timeout_returns_504(self):
        middleware = EdgeMiddleware(_noop_app, request_timeout=0.01)

        async def slow(request):
            await asyncio.sleep(1)
            return PlainTextResponse("late")

        response = await middleware.dispatch(_request(), slow)
        assert response.status_code == 504
        assert b"OperationTimedOut" in response.body
        assert response.headers[REQUEST_ID_HEADER]

    @pytest.mark.asyncio
    async def test_exception_returns_500(self):
        middleware = EdgeMiddleware(_noop_app)

        async def broken(request):
            raise RuntimeError("boom")

        response = await middleware.dispatch(_request({REQUEST_ID_HEADER: "req-1"}), broken)
        assert response.status_code == 500
        assert b"InternalError" in response.body
        assert b"boom" not in response.body
        assert response.headers[REQUEST_ID_HEADER] == "req-1"

    @pytest.mark.asyncio
    async def test_fast_request_passes_through(self):
        middleware = EdgeMiddleware(_noop_app, request_timeout=5)

        async def fast(request):
            return PlainTextResponse("ok", status_code=201)

        response = await middleware.dispatch(_request(), fast)
        assert response.status_code == 201

    @pytest.mark.asyncio
    async def test_request_id_bound_only_during_dispatch(self, caplog):
        """Test handler logs carry the request ID and it is unbound afterwards."""
        middleware = EdgeMiddleware(_noop_app)
        seen = []

        async def handler(request):
            seen.append(request_id.get())
            return PlainTextResponse("ok")

        with caplog.at_level(logging.INFO, logger="bluestack.gateway.middleware"):
            await middleware.dispatch(_request({REQUEST_ID_HEADER: "req-9"}), handler)

        assert seen == ["req-9"]
        assert request_id.get() is None
        [record] = [r for r in caplog.records if r.getMessage() == "request completed"]
        assert record.context["status"] == 200
        assert record.context["remote_addr"] == "10.0.0.1"

    def test_client_address(self):
        assert client_address(_request()) == "10.0.0.1"
        assert client_address(_request({"X-Real-IP": "10.0.0.2"})) == "10.0.0.2"
        assert client_address(_request({"X-Forwarded-For": "10.0.0.3, 10.0.0.4"})) == "10.0.0.3"
        assert client_address(_request(client=None)) == ""
