"""
Client-side transport to the analyst HTTP API.

``FrameParser`` reassembles ``data: {json}`` frames from arbitrary network
chunks; ``HttpTransport`` drives the three endpoints over ``httpx``.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Protocol

import httpx

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "


class TransportError(Exception):
    """Raised when the server cannot be reached or answers with an HTTP error."""
    pass


class FrameParser:
    """
    Incremental parser for server-sent event frames.

    Feed it decoded text chunks as they arrive; it returns the complete
    events seen so far and keeps a partial trailing line for the next chunk.
    Lines without the ``data: `` prefix and frames that are not JSON objects
    are skipped.
    """

    def __init__(self):
        self._buffer = ""

    def feed(self, chunk: str) -> List[Dict[str, Any]]:
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return list(self._parse_lines(lines))

    def flush(self) -> List[Dict[str, Any]]:
        """Parse whatever is left once the stream has ended."""
        rest, self._buffer = self._buffer, ""
        return list(self._parse_lines([rest]))

    @staticmethod
    def _parse_lines(lines: Iterable[str]):
        for line in lines:
            line = line.rstrip("\r")
            if not line.startswith(DATA_PREFIX):
                continue
            payload = line[len(DATA_PREFIX):].strip()
            if not payload:
                continue
            try:
                event = json.loads(payload)
            except json.JSONDecodeError:
                logger.debug(f"Skipping malformed frame: {payload[:100]}")
                continue
            if isinstance(event, dict):
                yield event


class Transport(Protocol):
    """What ``ConversationSession`` needs from the server."""

    def stream_chat(self, payload: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        ...

    async def execute(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def preview(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...


class HttpTransport:
    """``Transport`` over ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: Optional[httpx.Timeout] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or httpx.Timeout(connect=10.0, read=180.0, write=30.0, pool=None),
        )

    async def stream_chat(self, payload: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        parser = FrameParser()
        try:
            async with self._client.stream("POST", "/api/chat", json=payload) as response:
                if response.status_code != 200:
                    await response.aread()
                    raise TransportError(f"HTTP {response.status_code}: {response.text[:200]}")
                async for chunk in response.aiter_text():
                    for event in parser.feed(chunk):
                        yield event
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

        for event in parser.flush():
            yield event

    async def _post_json(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e
        try:
            data = response.json()
        except ValueError:
            raise TransportError(f"HTTP {response.status_code}: invalid JSON response")
        if response.status_code >= 400 and "success" not in data:
            message = data.get("error") or data.get("detail") or response.reason_phrase
            raise TransportError(f"HTTP {response.status_code}: {message}")
        return data

    async def execute(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post_json("/api/chat/execute", payload)

    async def preview(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post_json("/api/chat/preview", payload)

    async def create_session(self) -> str:
        data = await self._post_json("/api/session", {})
        return data["session_id"]

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False
