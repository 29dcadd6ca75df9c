"""
Change-stream transports.

A transport opens one filtered subscription and hands back an async
iterator of raw payload dicts. Reconnection, if any, is the transport's
business; the listener never asks for missed events.
"""
import json
from contextlib import AsyncExitStack
from typing import Any, AsyncIterator, Dict, FrozenSet, Optional

import httpx
import structlog

from ..config import settings
from ..errors import TransportError
from .hub import ChangeHub, HubSubscription


logger = structlog.get_logger(__name__)


class Subscription:
    def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        return self.payloads()

    def payloads(self) -> AsyncIterator[Dict[str, Any]]:
        raise NotImplementedError

    async def aclose(self) -> None:
        raise NotImplementedError


class ChangeTransport:
    async def connect(self, channel: str, project_id: str, tables: FrozenSet[str]) -> Subscription:
        """Open a subscription; raise TransportError if it cannot be established."""
        raise NotImplementedError


class HubTransport(ChangeTransport):
    """Subscribes to an in-process ChangeHub (used with the SQL backend)."""

    def __init__(self, hub: ChangeHub) -> None:
        self.hub = hub

    async def connect(self, channel: str, project_id: str, tables: FrozenSet[str]) -> Subscription:
        sub = await self.hub.connect(channel, project_id, tables)
        return _HubSubscription(self.hub, channel, sub)


class _HubSubscription(Subscription):
    def __init__(self, hub: ChangeHub, channel: str, sub: HubSubscription) -> None:
        self._hub = hub
        self._channel = channel
        self._sub = sub
        self._closed = False

    async def payloads(self) -> AsyncIterator[Dict[str, Any]]:
        while not self._closed:
            payload = await self._sub.queue.get()
            if payload is None:
                return
            yield payload

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._hub.disconnect(self._channel, self._sub)


class HttpStreamTransport(ChangeTransport):
    """Reads newline-delimited JSON change payloads from a streaming endpoint.

    ``GET {base_url}/channels/{channel}?project_id=eq.<id>&tables=a,b``
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = (base_url or settings.realtime_url or "").rstrip("/")
        self.api_key = api_key or settings.backend_api_key
        if not self.base_url and client is None:
            raise ValueError("A realtime URL is required")
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/x-ndjson"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def connect(self, channel: str, project_id: str, tables: FrozenSet[str]) -> Subscription:
        stack = AsyncExitStack()
        client = self._client
        if client is None:
            # no read timeout: the stream stays open between events
            client = await stack.enter_async_context(httpx.AsyncClient(timeout=httpx.Timeout(30.0, read=None)))
        try:
            response = await stack.enter_async_context(
                client.stream(
                    "GET",
                    f"{self.base_url}/channels/{channel}",
                    params={"project_id": f"eq.{project_id}", "tables": ",".join(sorted(tables))},
                    headers=self._headers(),
                )
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            await stack.aclose()
            raise TransportError(f"Could not subscribe to {channel}: {e}", project_id=project_id) from e
        return _HttpSubscription(stack, response, project_id)


class _HttpSubscription(Subscription):
    def __init__(self, stack: AsyncExitStack, response: httpx.Response, project_id: str) -> None:
        self._stack = stack
        self._response = response
        self._project_id = project_id

    async def payloads(self) -> AsyncIterator[Dict[str, Any]]:
        try:
            async for line in self._response.aiter_lines():
                line = line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("realtime.bad_payload", project_id=self._project_id, line=line[:200])
                    continue
                if isinstance(payload, dict):
                    yield payload
        except httpx.HTTPError as e:
            raise TransportError(f"Change stream closed unexpectedly: {e}", project_id=self._project_id) from e

    async def aclose(self) -> None:
        await self._stack.aclose()
