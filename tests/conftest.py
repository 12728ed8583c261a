"""Shared fixtures: a scripted Freebox served through httpx.MockTransport."""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest
from websockets.exceptions import ConnectionClosedOK

from mcp_freebox.freebox_client import FreeboxClient

ENDPOINT = "http://fbx.test"
APP_ID = "fr.freebox.mcp.test"
PRIVATE_TOKEN = "dyNYgfK0Ya6FWGqq83sBHa7TwzWo+pg4fDFUJHShcjVYzTfaRrZzm93p7OTAfH/0"
CHALLENGE = "9Va31tSgQWM853j0kSCtBUyzYNhPN7IY"
SESSION_TOKEN = "35JYdQSvkcBYK84IFMU7H86clfhS75OzwlQrKlQN1gBch/Dd62RGzDpgC7YB9jB2"

Reply = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


def ok(result: Any = None, status: int = 200) -> httpx.Response:
    """Build a successful envelope response."""
    body: Dict[str, Any] = {"success": True}
    if result is not None:
        body["result"] = result
    return httpx.Response(status, json=body)


def fail(error_code: str, msg: str = "error", status: int = 403) -> httpx.Response:
    """Build a failed envelope response."""
    return httpx.Response(status, json={
        "success": False,
        "error_code": error_code,
        "msg": msg,
        "uid": "23b86ec8091013d668829fe12791fdab",
    })


def api_path(path: str) -> str:
    """Get the URL path of an API resource."""
    return f"/api/v8/{path}"


class FakeFreebox:
    """Scripted Freebox. Each route answers its replies in order, the last one repeats."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.routes: Dict[Tuple[str, str], List[Reply]] = {}

    def route(self, method: str, path: str, *replies: Reply) -> None:
        """Script the replies to ``method`` on an API path."""
        self.routes[(method, api_path(path))] = list(replies)

    def route_raw(self, method: str, url_path: str, *replies: Reply) -> None:
        """Script the replies to ``method`` on a URL path outside /api/v8."""
        self.routes[(method, url_path)] = list(replies)

    def expect_login(self, *session_tokens: str) -> None:
        """Script the login handshake, one session token per login."""
        self.route("GET", "login", ok({
            "logged_in": False,
            "challenge": CHALLENGE,
            "password_salt": "PJJ4TtnJSUBvmU1FUcuzRD9Jra5zFLJJ",
            "password_set": True,
        }))
        self.route("POST", "login/session", *[
            ok({
                "session_token": token,
                "challenge": CHALLENGE,
                "permissions": {"settings": True, "vm": True},
            })
            for token in (session_tokens or (SESSION_TOKEN,))
        ])

    def handle(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        replies = self.routes.get((request.method, request.url.path))
        if not replies:
            return httpx.Response(404, text="404 page not found")
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        return reply

    def paths(self) -> List[str]:
        """Get ``METHOD path`` for every request received, API prefix stripped."""
        return [
            f"{r.method} {r.url.path.replace(api_path(''), '', 1)}"
            for r in self.requests
        ]

    def last(self, method: str, path: str) -> httpx.Request:
        """Get the last request received on an API path."""
        for request in reversed(self.requests):
            if request.method == method and request.url.path == api_path(path):
                return request
        raise AssertionError(f"no {method} {path} request received")

    @staticmethod
    def json_body(request: httpx.Request) -> Any:
        return json.loads(request.content)


class FakeWebSocket:
    """In-memory websocket connection replaying scripted messages."""

    def __init__(self, messages: Optional[List[Any]] = None) -> None:
        self.incoming = list(messages or [])
        self.sent: List[Union[str, bytes]] = []
        self.closed = False

    def send(self, message: Union[str, bytes]) -> None:
        self.sent.append(message)

    def recv(self, timeout: Optional[float] = None) -> Union[str, bytes]:
        if not self.incoming:
            raise ConnectionClosedOK(None, None)
        item = self.incoming.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, (str, bytes)):
            return item
        return json.dumps(item)

    def close(self) -> None:
        self.closed = True

    def sent_actions(self) -> List[Dict[str, Any]]:
        """Get the JSON actions sent, binary frames excluded."""
        return [json.loads(m) for m in self.sent if isinstance(m, str)]


class FakeConnector:
    """Websocket factory handing out scripted connections."""

    def __init__(self, *connections: Union[FakeWebSocket, Exception]) -> None:
        self.connections = list(connections)
        self.calls: List[Tuple[str, Dict[str, str]]] = []

    def __call__(self, url: str, additional_headers: Optional[Dict[str, str]] = None, **kwargs: Any) -> FakeWebSocket:
        self.calls.append((url, dict(additional_headers or {})))
        connection = self.connections.pop(0)
        if isinstance(connection, Exception):
            raise connection
        return connection


@pytest.fixture
def fake() -> FakeFreebox:
    """A fake Freebox with no route scripted."""
    return FakeFreebox()


def make_client(fake: FakeFreebox, **kwargs: Any) -> FreeboxClient:
    """Build a client talking to ``fake``."""
    options: Dict[str, Any] = {"app_id": APP_ID, "private_token": PRIVATE_TOKEN}
    options.update(kwargs)
    return FreeboxClient(
        ENDPOINT,
        "v8",
        http_client=httpx.Client(transport=httpx.MockTransport(fake.handle)),
        **options,
    )


@pytest.fixture
def client(fake: FakeFreebox) -> FreeboxClient:
    """A configured client talking to the fake Freebox."""
    return make_client(fake)


@pytest.fixture
def logged_in(fake: FakeFreebox, client: FreeboxClient) -> FreeboxClient:
    """A client with the login handshake scripted."""
    fake.expect_login()
    return client
