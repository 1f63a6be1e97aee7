import sys
from threading import Lock

import httpx
import pytest


# Ensure project root is importable (so `import cli` and `import fanout` work without installing)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it was asked to send."""

    def __init__(self, handler):
        self.requests: list[httpx.Request] = []
        self._lock = Lock()

        def _record(request: httpx.Request) -> httpx.Response:
            with self._lock:
                self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    @property
    def hosts(self) -> list[str]:
        return [r.url.host for r in self.requests]


def route_by_host(routes: dict):
    """Build a handler answering per URL host.

    A route value is either an httpx.Response factory or an exception class
    raised as a transport failure.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        route = routes[request.url.host]
        if isinstance(route, type) and issubclass(route, Exception):
            raise route(f"{request.url.host} unreachable", request=request)
        return route(request)

    return handler


@pytest.fixture
def transport_for():
    def _make(routes: dict) -> RecordingTransport:
        return RecordingTransport(route_by_host(routes))

    return _make
