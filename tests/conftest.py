"""Pytest fixtures for GoalPilot tests."""

import asyncio
import json
import os

import httpx
import pytest

# Ensure no real credentials or pacing leak into tests
os.environ["GOALPILOT_API_TOKEN"] = ""
os.environ["GOALPILOT_MESSAGE_DELAY"] = "0"

from goalpilot import config
from goalpilot.client import BackendClient
from goalpilot.orchestrator import Orchestrator


class FakeBackend:
    """Scripted reasoning backend served through httpx.MockTransport.

    Responses are queued per route and consumed in order. Every request
    is recorded as (path, payload, headers).
    """

    def __init__(self):
        self._queues: dict[str, list] = {}
        self.requests: list[tuple[str, object, httpx.Headers]] = []

    def queue(self, route: str, responder):
        self._queues.setdefault(config.ROUTES[route], []).append(responder)

    def queue_json(self, route: str, body, status: int = 200):
        self.queue(route, lambda request: httpx.Response(status, json=body))

    def queue_stream(
        self,
        route: str,
        chunks,
        status: int = 200,
        error: Exception = None,
        delay: float = 0,
    ):
        """Queue a streamed body.

        An asyncio.Event among the chunks holds the stream open until it is set.
        """
        raw_chunks = [c.encode("utf-8") if isinstance(c, str) else c for c in chunks]

        async def body():
            for chunk in raw_chunks:
                if isinstance(chunk, asyncio.Event):
                    await chunk.wait()
                    continue
                if delay:
                    await asyncio.sleep(delay)
                yield chunk
            if error is not None:
                raise error

        self.queue(route, lambda request: httpx.Response(status, content=body()))

    def queue_error(self, route: str, status: int, text: str = "error"):
        self.queue(route, lambda request: httpx.Response(status, text=text))

    def queue_exception(self, route: str, exc_type=httpx.ConnectError):
        def raise_exc(request):
            raise exc_type("backend unreachable", request=request)

        self.queue(route, raise_exc)

    def payloads(self, route: str) -> list:
        path = config.ROUTES[route]
        return [payload for p, payload, _ in self.requests if p == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.headers.get("content-type", "").startswith("application/json"):
            payload = json.loads(request.content)
        else:
            payload = request.content
        self.requests.append((path, payload, request.headers))

        queue = self._queues.get(path)
        if not queue:
            return httpx.Response(404, text=f"nothing queued for {path}")
        return queue.pop(0)(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def make_client(backend):
    def _make(**kwargs):
        kwargs.setdefault("base_url", "http://backend.test")
        kwargs.setdefault("flush_threshold", 1)
        return BackendClient(transport=backend.transport, **kwargs)

    return _make


@pytest.fixture
def orchestrator(make_client):
    return Orchestrator(client=make_client())
