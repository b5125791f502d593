"""Simple in-memory HTTP client for an :class:`~rpcbridge.api.Api`."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, AsyncIterable, Mapping

from .api import Api
from .errors import ApiError, RouteNotFound
from .http import Request


@dataclass
class Response:
    """Container for HTTP response data."""

    status_code: int
    headers: Mapping[str, str]
    content: bytes

    @property
    def text(self) -> str:
        return self.content.decode()

    def json(self) -> Any:
        """Return the body parsed as JSON."""
        return json.loads(self.text)


class TestClient:
    """Execute requests against an ``Api`` without a server.

    Route misses come back as 404 and :class:`ApiError` failures are rendered
    the way a transport would render them.
    """

    __test__ = False  # prevent Pytest from treating this as a test case

    def __init__(self, api: Api) -> None:
        self.api = api

    async def arequest(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        body: bytes | AsyncIterable[bytes] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        if body is not None and json_body is not None:
            raise ValueError("provide either json_body or body")
        all_headers = {k.lower(): v for k, v in (headers or {}).items()}
        if json_body is not None:
            body = json.dumps(json_body).encode()
            all_headers.setdefault("content-type", "application/json")
        request = Request(method, path, all_headers, body if body is not None else b"")
        try:
            response = await self.api.handle(request)
        except RouteNotFound:
            response = ApiError.path_not_found().to_response()
        except ApiError as exc:
            response = exc.to_response()
        return Response(response.status_code, response.headers, response.body)

    def request(self, method: str, path: str, **kwargs: Any) -> Response:
        """Send a request and return the response."""
        return asyncio.run(self.arequest(method, path, **kwargs))

    def get(self, path: str, **kwargs: Any) -> Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> Response:
        return self.request("POST", path, **kwargs)


__all__ = ["Response", "TestClient"]
