"""Serve an :class:`~rpcbridge.api.Api` from any ASGI server.

The request body is streamed from ``receive`` straight into the capped
reader, so oversized uploads are rejected before they are fully read.
Unmatched requests go to ``fallback`` when one is given, else 404.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from .api import Api
from .errors import ApiError, RouteNotFound
from .http import Request, Response

Scope = Dict[str, object]
Receive = Callable[[], Awaitable[Dict[str, object]]]
Send = Callable[[Dict[str, object]], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

_LOGGER = logging.getLogger(__name__)


async def _stream_body(receive: Receive) -> AsyncIterator[bytes]:
    while True:
        message = await receive()
        if message["type"] == "http.disconnect":
            return
        chunk = message.get("body", b"")
        if chunk:
            yield bytes(chunk)  # type: ignore[arg-type]
        if not message.get("more_body", False):
            return


def _headers(scope: Scope) -> Dict[str, str]:
    raw = scope.get("headers") or []
    return {
        k.decode("latin-1"): v.decode("latin-1")
        for k, v in raw  # type: ignore[union-attr]
    }


class ASGIAdapter:
    """ASGI application wrapping an :class:`Api`."""

    def __init__(self, api: Api, fallback: Optional[ASGIApp] = None) -> None:
        self.api = api
        self.fallback = fallback

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Dispatch ASGI *scope* to the API."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(receive, send)
        elif scope["type"] == "http":
            await self._handle_http(scope, receive, send)
        else:
            raise NotImplementedError(f"Unsupported scope type {scope['type']}")

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        await receive()  # lifespan.startup
        self.api.seal()
        await send({"type": "lifespan.startup.complete"})
        await receive()  # lifespan.shutdown
        await send({"type": "lifespan.shutdown.complete"})

    async def _handle_http(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(
            method=str(scope.get("method", "GET")),
            path=str(scope.get("path", "/")),
            headers=_headers(scope),
            body=_stream_body(receive),
        )
        try:
            response = await self.api.handle(request)
        except RouteNotFound:
            if self.fallback is not None:
                await self.fallback(scope, receive, send)
                return
            response = ApiError.path_not_found().to_response()
        except ApiError as exc:
            if exc.code >= 500:
                _LOGGER.error("%s %s: %s", request.method, request.path, exc.internal_message)
            response = exc.to_response()
        await _send_response(send, response)


async def _send_response(send: Send, response: Response) -> None:
    headers: List[Tuple[bytes, bytes]] = [
        (k.encode("latin-1"), v.encode("latin-1")) for k, v in response.headers.items()
    ]
    headers.append((b"content-length", str(len(response.body)).encode()))
    await send(
        {"type": "http.response.start", "status": response.status_code, "headers": headers}
    )
    await send({"type": "http.response.body", "body": response.body})


__all__ = ["ASGIAdapter"]
