"""Pytest configuration."""

import json
import os

# Ensure test environment
os.environ.setdefault("INHOUSE_DATABASE_URL", "sqlite://")
os.environ.setdefault("INHOUSE_SERVER_URL", "https://api.test")
os.environ.setdefault("INHOUSE_DEBUG", "true")

import httpx
import pytest

from tracking_sdk.models.schemas import SDKConfig
from tracking_sdk.platform.ports import DeviceInfo
from tracking_sdk.platform.providers import PlatformTier, StaticDeviceInfo, select_platform
from tracking_sdk.storage import StorageManager


class FakeBackend:
    """In-process stand-in for the collection backend (httpx.MockTransport)."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, tuple] = {}

    def respond(self, path: str, status: int = 200, body=None, error: type[Exception] | None = None):
        self.routes[path] = (status, body, error)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body, error = self.routes.get(request.url.path, (200, '{"status":"ok"}', None))
        if error is not None:
            raise error("connection refused", request=request)
        if isinstance(body, str):
            return httpx.Response(status, text=body)
        return httpx.Response(status, json=body if body is not None else {})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def events(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests_to("/api/clicks/register_event")]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def storage():
    return StorageManager(database_url="sqlite://")


@pytest.fixture
def device_info():
    return DeviceInfo(
        model="iPhone15,2",
        name="Test iPhone",
        os_version="17.4",
        cpu_architecture="arm64",
        app_version="2.3.0",
        build_number="230",
        bundle_identifier="com.example.app",
        screen_width=393,
        screen_height=852,
        screen_scale=3.0,
        locale="en_US",
        language="en",
        timezone="America/New_York",
        battery_level=0.8,
        orientation="portrait",
        uptime_seconds=12.5,
        has_cellular=True,
    )


@pytest.fixture
def providers(device_info):
    return select_platform(PlatformTier.NONE, device=StaticDeviceInfo(device_info))


@pytest.fixture
def config():
    return SDKConfig(
        project_id="proj-1",
        project_token="tok-1",
        short_link_domain="tryinhouse.com",
        server_url="https://api.test",
    )
