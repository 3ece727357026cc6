"""Tests for the backend client."""

import asyncio

import httpx
import pytest

from goalpilot.client import BackendClient
from goalpilot.errors import DecodeError, TransportError
from goalpilot.models import Analysis, StartResponse


@pytest.mark.asyncio
class TestPostJson:
    """Tests for single-shot calls."""

    async def test_decodes_response(self, backend, make_client):
        """Should decode the JSON body into the response model."""
        backend.queue_json("start", {"run_id": "r1", "newTasks": ["a", "b"]})
        client = make_client()

        result = await client.post_json("start", {"goal": "g"}, StartResponse)

        assert result.run_id == "r1"
        assert result.new_tasks == ["a", "b"]
        assert backend.payloads("start") == [{"goal": "g"}]

    async def test_non_success_status_is_transport_error(self, backend, make_client):
        """A 5xx status should raise TransportError carrying the status."""
        backend.queue_error("analyze", 500, "boom")
        client = make_client()

        with pytest.raises(TransportError) as exc_info:
            await client.post_json("analyze", {}, Analysis)

        assert exc_info.value.status_code == 500

    async def test_rejected_credential_is_transport_error(self, backend, make_client):
        """An auth rejection is surfaced as a plain TransportError."""
        backend.queue_error("analyze", 401, "unauthorized")
        client = make_client()

        with pytest.raises(TransportError) as exc_info:
            await client.post_json("analyze", {}, Analysis)

        assert exc_info.value.status_code == 401

    async def test_network_failure_is_transport_error(self, backend, make_client):
        """Connection failures should raise TransportError without a status."""
        backend.queue_exception("start", httpx.ConnectError)
        client = make_client()

        with pytest.raises(TransportError) as exc_info:
            await client.post_json("start", {}, StartResponse)

        assert exc_info.value.status_code is None

    async def test_timeout_is_transport_error(self, backend, make_client):
        """An httpx timeout should raise TransportError."""
        backend.queue_exception("start", httpx.ReadTimeout)
        client = make_client()

        with pytest.raises(TransportError):
            await client.post_json("start", {}, StartResponse)

    async def test_slow_response_exceeds_request_timeout(self, backend, make_client):
        """The request timeout should bound the whole call, not each read."""
        async def slow(request):
            await asyncio.sleep(0.5)
            return httpx.Response(200, json={"run_id": "r1", "newTasks": []})

        backend.queue("start", slow)
        client = make_client(request_timeout=0.1)

        with pytest.raises(TransportError) as exc_info:
            await client.post_json("start", {}, StartResponse)

        assert "timed out" in str(exc_info.value)

    async def test_wrong_shape_is_decode_error(self, backend, make_client):
        """A body missing required fields should raise DecodeError."""
        backend.queue_json("analyze", {"reasoning": "no action field"})
        client = make_client()

        with pytest.raises(DecodeError):
            await client.post_json("analyze", {}, Analysis)

    async def test_non_json_is_decode_error(self, backend, make_client):
        """A non-JSON body should raise DecodeError."""
        backend.queue("start", lambda request: httpx.Response(200, text="<html>"))
        client = make_client()

        with pytest.raises(DecodeError):
            await client.post_json("start", {}, StartResponse)


@pytest.mark.asyncio
class TestAuthorization:
    """Tests for the bearer credential."""

    async def test_placeholder_token_when_none_stored(self, backend, make_client):
        """Should fall back to the placeholder token when none is configured."""
        backend.queue_json("start", {"run_id": "r1", "newTasks": []})
        client = make_client()

        await client.post_json("start", {}, StartResponse)

        headers = backend.requests[0][2]
        assert headers["Authorization"] == "Bearer test-token-abc123"

    async def test_token_read_per_request(self, backend, make_client):
        """Each request should look the token up again."""
        tokens = iter(["first", "second"])
        backend.queue_json("start", {"run_id": "r1", "newTasks": []})
        backend.queue_stream("chat", ["hi"])
        client = make_client(token_provider=lambda: next(tokens))

        await client.post_json("start", {}, StartResponse)
        await client.stream_text("chat", {}, lambda chunk: None)

        assert backend.requests[0][2]["Authorization"] == "Bearer first"
        assert backend.requests[1][2]["Authorization"] == "Bearer second"


@pytest.mark.asyncio
class TestStreamText:
    """Tests for streamed calls."""

    async def test_delivers_chunks_in_order(self, backend, make_client):
        """Chunks should reach the sink in arrival order."""
        backend.queue_stream("execute", ["Mon: ", "kickoff\n", "Fri: ", "review"])
        client = make_client(flush_threshold=1)
        received = []

        await client.stream_text("execute", {}, received.append)

        assert received == ["Mon: ", "kickoff\n", "Fri: ", "review"]

    async def test_buffers_until_threshold(self, backend, make_client):
        """Text should be held back until the flush threshold is reached."""
        backend.queue_stream("execute", ["ab", "cd", "efg", "h"])
        client = make_client(flush_threshold=5)
        received = []

        await client.stream_text("execute", {}, received.append)

        assert received == ["abcdefg", "h"]

    async def test_flushes_remainder_once_at_end(self, backend, make_client):
        """A short stream should be flushed exactly once when it ends."""
        backend.queue_stream("summarize", ["short"])
        client = make_client(flush_threshold=50)
        received = []

        await client.stream_text("summarize", {}, received.append)

        assert received == ["short"]

    async def test_empty_stream_delivers_nothing(self, backend, make_client):
        """An empty body should never call the sink."""
        backend.queue_stream("chat", [])
        client = make_client()
        received = []

        await client.stream_text("chat", {}, received.append)

        assert received == []

    async def test_multibyte_character_split_across_reads(self, backend, make_client):
        """Characters split across reads should be reassembled, not replaced."""
        euro = "€".encode("utf-8")
        backend.queue_stream("execute", [b"caf\xc3", b"\xa9 ", euro[:1], euro[1:2], euro[2:] + b"5"])
        client = make_client(flush_threshold=1)
        received = []

        await client.stream_text("execute", {}, received.append)

        assert "".join(received) == "café €5"
        assert "�" not in "".join(received)

    async def test_error_status_is_transport_error(self, backend, make_client):
        """A non-success status should fail before any chunk is delivered."""
        backend.queue_error("execute", 503, "unavailable")
        client = make_client()
        received = []

        with pytest.raises(TransportError) as exc_info:
            await client.stream_text("execute", {}, received.append)

        assert exc_info.value.status_code == 503
        assert received == []

    async def test_connection_failure_is_transport_error(self, backend, make_client):
        """A connection failure should raise TransportError."""
        backend.queue_exception("execute", httpx.ConnectError)
        client = make_client()

        with pytest.raises(TransportError):
            await client.stream_text("execute", {}, lambda chunk: None)

    async def test_failure_mid_stream_is_transport_error(self, backend, make_client):
        """A reset mid-stream should raise after the chunks already delivered."""
        backend.queue_stream("execute", ["partial "], error=httpx.ReadError("reset"))
        client = make_client(flush_threshold=1)
        received = []

        with pytest.raises(TransportError):
            await client.stream_text("execute", {}, received.append)

        assert received == ["partial "]

    async def test_slow_stream_exceeds_stream_timeout(self, backend, make_client):
        """A trickling stream should time out once the whole call runs too long."""
        backend.queue_stream("execute", [b"x"] * 10, delay=0.05)
        client = make_client(stream_timeout=0.2, flush_threshold=1)
        received = []
        loop = asyncio.get_running_loop()
        started = loop.time()

        with pytest.raises(TransportError) as exc_info:
            await client.stream_text("execute", {}, received.append)

        assert "timed out" in str(exc_info.value)
        assert loop.time() - started < 0.45
        assert len(received) < 10

    async def test_stream_within_timeout_completes(self, backend, make_client):
        """A stream finishing inside the limit should deliver everything."""
        backend.queue_stream("execute", ["a", "b", "c"], delay=0.01)
        client = make_client(stream_timeout=1, flush_threshold=1)
        received = []

        await client.stream_text("execute", {}, received.append)

        assert received == ["a", "b", "c"]


class TestConstruction:
    """Tests for client configuration."""

    def test_rejects_non_positive_threshold(self):
        """A zero flush threshold should be rejected."""
        with pytest.raises(ValueError):
            BackendClient(flush_threshold=0)
