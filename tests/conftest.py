"""Pytest configuration and shared fixtures"""

import json
import os
import tempfile

import httpx
import pytest
import pytest_asyncio

# Keep config and credential files out of the user's home
os.environ["CHATWIRE_CONFIG_DIR"] = tempfile.mkdtemp()


def sse_bytes(events, done: bool = False) -> bytes:
    """Frame dicts (as JSON) or raw strings as server-sent events"""
    out = []
    for event in events:
        data = event if isinstance(event, str) else json.dumps(event)
        out.append(f"data: {data}\n\n")
    if done:
        out.append("data: [DONE]\n\n")
    return "".join(out).encode()


class MockUpstream:
    """Fake upstream behind an httpx.MockTransport.

    Routes match on method and URL prefix in registration order. Each route
    holds a queue of responders; the last one repeats once the queue drains.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._routes: list[tuple[str, str, list]] = []
        self._client: httpx.AsyncClient | None = None

    def _add(self, method: str, prefix: str, responder):
        for m, p, queue in self._routes:
            if m == method and p == prefix:
                queue.append(responder)
                return self
        self._routes.append((method, prefix, [responder]))
        return self

    def json(self, method: str, prefix: str, data, status: int = 200):
        return self._add(method, prefix, lambda request: httpx.Response(status, json=data))

    def text(self, method: str, prefix: str, body: str, status: int = 200):
        return self._add(method, prefix, lambda request: httpx.Response(status, text=body))

    def sse(self, prefix: str, events, done: bool = False, status: int = 200):
        body = sse_bytes(events, done)
        return self._add(
            "POST",
            prefix,
            lambda request: httpx.Response(status, content=body, headers={"content-type": "text/event-stream"}),
        )

    def chunks(self, prefix: str, chunks: list[bytes], error: Exception | None = None, method: str = "POST"):
        """Deliver the body as separate network reads, optionally failing after them"""
        async def body():
            for chunk in chunks:
                yield chunk
            if error is not None:
                raise error

        return self._add(method, prefix, lambda request: httpx.Response(200, content=body()))

    def fail(self, method: str, prefix: str, error: Exception):
        def raise_error(request):
            raise error
        return self._add(method, prefix, raise_error)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        for method, prefix, queue in self._routes:
            if request.method == method and url.startswith(prefix):
                responder = queue.pop(0) if len(queue) > 1 else queue[0]
                return responder(request)
        return httpx.Response(404, text=f"no route for {request.method} {url}")

    @property
    def client(self) -> httpx.AsyncClient:
        """One client per upstream, closed when the test ends"""
        if self._client is None:
            self._client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()

    def body(self, index: int = -1) -> dict:
        """JSON body of a recorded request"""
        return json.loads(self.requests[index].content)


@pytest_asyncio.fixture
async def upstream():
    """A fresh fake upstream per test"""
    mock = MockUpstream()
    yield mock
    await mock.aclose()


@pytest.fixture
def messages():
    from chatwire.provider.base import ChatMessage

    return [
        ChatMessage(role="system", content="Be brief."),
        ChatMessage(role="user", content="Hello"),
        ChatMessage(role="assistant", content="Hi!"),
        ChatMessage(role="user", content="How are you?"),
    ]


async def drain(events) -> list:
    """Collect every event from an async iterator"""
    return [event async for event in events]


@pytest.fixture
def collect():
    return drain
