"""HTTP client for the reasoning backend.

Supports two call shapes:
1. Single-shot: POST a JSON payload, decode one JSON response
2. Streamed: POST a JSON payload, deliver decoded text chunks to a sink
   until the backend closes the connection
"""

import asyncio
import codecs
import logging
from typing import Any, Callable, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel

from . import config
from .errors import DecodeError, TransportError

logger = logging.getLogger(__name__)

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)
ChunkSink = Callable[[str], Any]


class BearerAuth(httpx.Auth):
    """Attach a bearer credential, looked up fresh for every request."""

    def __init__(self, token_provider: Callable[[], str] = config.get_api_token):
        self.token_provider = token_provider

    def auth_flow(self, request: httpx.Request):
        request.headers["Authorization"] = f"Bearer {self.token_provider()}"
        yield request


class BackendClient:
    """Reasoning backend client - single-shot and streamed calls."""

    def __init__(
        self,
        base_url: str = config.API_URL,
        token_provider: Callable[[], str] = config.get_api_token,
        request_timeout: float = config.REQUEST_TIMEOUT,
        stream_timeout: float = config.STREAM_TIMEOUT,
        flush_threshold: int = config.FLUSH_THRESHOLD,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if flush_threshold < 1:
            raise ValueError("flush_threshold must be positive")
        self.request_timeout = request_timeout
        self.stream_timeout = stream_timeout
        self.flush_threshold = flush_threshold
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=BearerAuth(token_provider),
            transport=transport,
        )

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def post_json(
        self,
        route: str,
        payload: dict[str, Any],
        response_model: Type[ResponseModel],
    ) -> ResponseModel:
        """POST a JSON payload and decode the response into response_model.

        Raises:
            TransportError: on network failure, timeout or non-2xx status
            DecodeError: if the body is not JSON of the expected shape
        """
        response = await self._send(
            "POST", config.ROUTES[route], json=payload, timeout=self.request_timeout
        )
        return self._decode(route, response, response_model)

    async def upload(
        self,
        route: str,
        field: str,
        filename: str,
        data: bytes,
        content_type: str,
        response_model: Type[ResponseModel],
    ) -> ResponseModel:
        """POST a single file as multipart form data."""
        response = await self._send(
            "POST",
            config.ROUTES[route],
            files={field: (filename, data, content_type)},
            timeout=self.request_timeout,
        )
        return self._decode(route, response, response_model)

    async def stream_text(
        self,
        route: str,
        payload: dict[str, Any],
        on_chunk: ChunkSink,
    ) -> None:
        """POST a JSON payload and stream the decoded response body to on_chunk.

        Bytes are decoded incrementally so a multi-byte character split
        across reads is held back until its remaining bytes arrive. Text is
        flushed to on_chunk whenever at least flush_threshold characters are
        buffered, and once more at end of stream if anything is left.

        Raises:
            TransportError: on network failure, timeout or non-2xx status
        """
        path = config.ROUTES[route]
        logger.debug(f"Streaming {route} from {path}")

        # httpx timeouts bound each read; wait_for bounds the whole stream
        try:
            await asyncio.wait_for(
                self._read_stream(route, path, payload, on_chunk),
                timeout=self.stream_timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"{route} stream timed out after {self.stream_timeout}s"
            ) from e

    async def _read_stream(
        self,
        route: str,
        path: str,
        payload: dict[str, Any],
        on_chunk: ChunkSink,
    ) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        buffer = ""

        try:
            async with self._client.stream(
                "POST", path, json=payload, timeout=self.stream_timeout
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise TransportError(
                        f"{route} returned {response.status_code}: {response.text[:200]}",
                        status_code=response.status_code,
                    )

                async for raw in response.aiter_bytes():
                    buffer += decoder.decode(raw)
                    if len(buffer) >= self.flush_threshold:
                        on_chunk(buffer)
                        buffer = ""
        except httpx.HTTPError as e:
            raise TransportError(f"{route} stream failed: {e}") from e

        buffer += decoder.decode(b"", final=True)
        if buffer:
            on_chunk(buffer)

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        logger.debug(f"{method} {path}")
        timeout = kwargs.get("timeout", self.request_timeout)
        try:
            response = await asyncio.wait_for(
                self._client.request(method, path, **kwargs),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportError(f"{path} timed out after {timeout}s") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{path} request failed: {e}") from e

        if not response.is_success:
            raise TransportError(
                f"{path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _decode(
        route: str,
        response: httpx.Response,
        response_model: Type[ResponseModel],
    ) -> ResponseModel:
        try:
            return response_model.model_validate(response.json())
        except ValueError as e:
            # json.JSONDecodeError and pydantic.ValidationError are both ValueErrors
            raise DecodeError(f"{route} returned an unexpected payload: {e}") from e
