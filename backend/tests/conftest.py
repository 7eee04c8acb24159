"""Shared fixtures: settings, in-memory store and a fake upstream push service."""
import json

import httpx
import pytest

from pushrelay.config import Settings
from pushrelay.schemas.device import Device
from pushrelay.services.upstream_client import UpstreamPushClient
from pushrelay.storage.memory import MemoryCredentialStore

SECRET_32 = "0123456789abcdef0123456789ABCDEF"
IV_16 = "abcdef0123456789"


class FakeUpstream:
    """Records calls and answers like the upstream push service."""

    def __init__(self):
        self.pushes = []
        self.registrations = []
        self.push_codes = {}  # device key -> envelope code
        self.http_errors = set()  # device keys answered with HTTP 500
        self.register_empty_key = False
        self.register_http_error = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/ping":
            return httpx.Response(200, json={"code": 200, "message": "pong", "timestamp": 1})

        if path == "/register":
            token = request.url.params.get("devicetoken")
            self.registrations.append((token, request.url.params.get("key")))
            if self.register_http_error:
                return httpx.Response(500)
            key = "" if self.register_empty_key else f"key-{token}"
            return httpx.Response(200, json={
                "code": 200,
                "message": "success",
                "timestamp": 1,
                "data": {"key": key, "device_key": key, "device_token": token},
            })

        key = path.lstrip("/")
        self.pushes.append((key, json.loads(request.content), request.headers.get("API-TOKEN")))
        if key in self.http_errors:
            return httpx.Response(500)
        code = self.push_codes.get(key, 200)
        message = "success" if code == 200 else "failed to push: device unregistered"
        return httpx.Response(200, json={"code": code, "message": message, "timestamp": 1})

    def client(self) -> UpstreamPushClient:
        return UpstreamPushClient(
            "http://upstream.test",
            token="upstream-token",
            transport=httpx.MockTransport(self.handler),
        )


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        storage_backend="memory",
        upstream_base_url="http://upstream.test",
        upstream_token="upstream-token",
    )


@pytest.fixture
def store():
    return MemoryCredentialStore()


@pytest.fixture
def fake_upstream():
    return FakeUpstream()


@pytest.fixture
def upstream(fake_upstream):
    return fake_upstream.client()


def make_device(token: str, key: str = "", **overrides) -> Device:
    """Encryption-ready ACTIVE device."""
    fields = {
        "token": token,
        "key": key or f"key-{token}",
        "name": f"Device {token}",
        "secret": SECRET_32,
        "iv": IV_16,
        "status": "ACTIVE",
    }
    fields.update(overrides)
    return Device(**fields)
