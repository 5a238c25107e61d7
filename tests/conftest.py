"""Pytest configuration for eurekaclient tests."""

import threading

import pytest

from eureka_errors import TransportError
from models import ClientConfig


class FakeTransport:
    """Scripted transport: each call pops the next response (body, status) or raises it."""

    def __init__(self, responses=None, default=(b"", 200)):
        self.responses = list(responses or [])
        self.default = default
        self.calls = []
        self._lock = threading.Lock()

    def perform(self, method, url, headers, body=None, username=None, password=None):
        with self._lock:
            self.calls.append({
                "method": method,
                "url": url,
                "headers": dict(headers),
                "body": body,
                "username": username,
                "password": password,
            })
            response = self.responses.pop(0) if self.responses else self.default

        if isinstance(response, Exception):
            raise response
        return response

    def calls_for(self, method):
        return [call for call in self.calls if call["method"] == method]


class ScriptedTransport(FakeTransport):
    """Answers by HTTP method, so heartbeats and registrations can be scripted separately."""

    def __init__(self, by_method=None, default=(b"", 200)):
        super().__init__(default=default)
        self.by_method = {method: list(responses) for method, responses in (by_method or {}).items()}

    def perform(self, method, url, headers, body=None, username=None, password=None):
        queue = self.by_method.get(method)
        if queue:
            self.responses = [queue.pop(0)]
        return super().perform(method, url, headers, body=body, username=username, password=password)


def connection_refused(url="http://a/apps/ORDERS"):
    return TransportError("connection refused", url=url)


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def client_config():
    return ClientConfig(
        appName="orders",
        instanceId="orders-1",
        serviceUrls=["http://a", "http://b"],
        port=8080,
        hostName="orders.local",
        ipAddr="10.0.0.5",
    )
