"""
Pytest configuration shared by every module's tests.

HTTP traffic goes through ``httpx.MockTransport`` driven by a small
scripted router; nothing leaves the process.
"""
import json
from decimal import Decimal
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest
import pytest_asyncio

from restropos.core.api_client import ApiClient
from restropos.core.config import Settings
from restropos.core.notifications import Notification, NotificationBus
from restropos.core.session import MemoryStorage, SessionContext

API_PREFIX = "/api"

Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response]]


class ScriptedRouter:
    """Answers requests from responses registered per (method, path)"""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Responder]] = {}
        self.requests: List[httpx.Request] = []

    def add(
        self,
        method: str,
        path: str,
        status_code: int = 200,
        json_body: Any = None,
        content: bytes = None,
        headers: Dict[str, str] = None,
        handler: Callable[[httpx.Request], httpx.Response] = None,
    ) -> None:
        """
        Register a response. Several registrations for the same route are
        served in order; the last one keeps answering.
        """
        if handler is None:
            def handler(request, status_code=status_code, json_body=json_body,
                        content=content, headers=headers):
                if content is not None:
                    return httpx.Response(status_code, content=content, headers=headers)
                if json_body is None:
                    return httpx.Response(status_code, headers=headers)
                return httpx.Response(status_code, json=json_body, headers=headers)
        self.routes.setdefault((method.upper(), path), []).append(handler)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith(API_PREFIX):
            path = path[len(API_PREFIX):]
        handlers = self.routes.get((request.method, path))
        if not handlers:
            return httpx.Response(599, json={"message": f"No route for {request.method} {path}"})
        handler = handlers.pop(0) if len(handlers) > 1 else handlers[0]
        return handler(request)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method.upper() and r.url.path == API_PREFIX + path
        ]


def request_json(request: httpx.Request) -> Any:
    return json.loads(request.content) if request.content else None


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        api_url="http://pos.test/api",
        seller_state_code="29",
        default_gst_rate_percent=Decimal("5"),
    )


@pytest.fixture
def session():
    context = SessionContext(MemoryStorage())
    context.login("test-token", "ADMIN")
    return context


@pytest.fixture
def router():
    return ScriptedRouter()


@pytest_asyncio.fixture
async def api(session, test_settings, router):
    client = ApiClient(session, test_settings, transport=httpx.MockTransport(router))
    yield client
    await client.close()


@pytest.fixture
def notifications():
    return NotificationBus()


@pytest.fixture
def notices(notifications) -> List[Notification]:
    """Every notification published on the shared bus"""
    received: List[Notification] = []
    notifications.subscribe(received.append)
    return received
