"""Minimal HTTP primitives exchanged with the surrounding transport."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, AsyncIterable, Dict, Mapping, Union

BodySource = Union[bytes, AsyncIterable[bytes]]


class RequestHead:
    """Method, path and headers of a request; everything but the body."""

    def __init__(
        self,
        method: str = "GET",
        path: str = "/",
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.method = method.upper()
        self.path = path
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.state: SimpleNamespace = SimpleNamespace()

    @property
    def content_type(self) -> str:
        """Return the media type without parameters such as ``charset``."""
        raw = self.headers.get("content-type", "")
        return raw.split(";", 1)[0].strip().lower()

    def __repr__(self) -> str:
        return f"RequestHead(method={self.method!r}, path={self.path!r})"


class Request:
    """Represent an incoming request whose body may still be streaming."""

    def __init__(
        self,
        method: str = "GET",
        path: str = "/",
        headers: Mapping[str, str] | None = None,
        body: BodySource = b"",
    ) -> None:
        self.head = RequestHead(method, path, headers)
        self.body = body

    @property
    def method(self) -> str:
        return self.head.method

    @property
    def path(self) -> str:
        return self.head.path

    @property
    def headers(self) -> Dict[str, str]:
        return self.head.headers

    def __repr__(self) -> str:
        return f"Request(method={self.method!r}, path={self.path!r})"


@dataclass
class Response:
    """Status, headers and encoded body of a handled request."""

    status_code: int = 200
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def media_type(self) -> str | None:
        return self.headers.get("content-type")

    def json(self) -> Any:
        """Return the body parsed as JSON."""
        return json.loads(self.body)


__all__ = ["BodySource", "Request", "RequestHead", "Response"]
