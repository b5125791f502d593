"""Units that pull typed values out of a request for a handler.

Parameter extractors see only the :class:`~rpcbridge.http.RequestHead`. At
most one body extractor may follow them; it consumes the streamed body.
"""

from __future__ import annotations

import inspect
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar, cast

from .body import check_schema
from .codec import DecodeError, from_json_value
from .errors import ApiError, to_api_error
from .http import RequestHead
from .schema import Null, SchemaNode, String
from .stream import BodyTooLarge, CappedReader

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

JSON_MEDIA_TYPE = "application/json"
NO_BODY = SchemaNode(Null(), "No request body is expected")
BINARY = SchemaNode(String(), "Binary data")


class RequestParam(ABC):
    """Base class for values read from request metadata.

    Subclasses implement :meth:`from_request`. Raising any exception fails
    the request; classified exceptions keep their code and messages. Use an
    ``Optional[...]`` annotation to receive ``None`` instead, or
    ``Union[..., ApiError]`` to receive the error itself.
    """

    @classmethod
    @abstractmethod
    async def from_request(cls, head: RequestHead) -> Any:
        raise NotImplementedError


class Depends:
    """Wrapper marking a callable as a parameter dependency.

    The callable receives the :class:`RequestHead` and may be async.
    """

    def __init__(self, dependency: Callable[[RequestHead], Any]) -> None:
        self.dependency = dependency

    def __repr__(self) -> str:
        return f"Depends({getattr(self.dependency, '__qualname__', self.dependency)!r})"


class ParamExtractor(ABC):
    """A resolved parameter extractor bound to one handler argument."""

    name: str

    @abstractmethod
    async def extract(self, head: RequestHead) -> Any:
        """Return the argument value or raise :class:`ApiError`."""


class HeadExtractor(ParamExtractor):
    def __init__(self, name: str) -> None:
        self.name = name

    async def extract(self, head: RequestHead) -> Any:
        return head


class CustomParamExtractor(ParamExtractor):
    def __init__(self, name: str, param: type[RequestParam]) -> None:
        self.name = name
        self.param = param

    async def extract(self, head: RequestHead) -> Any:
        try:
            return await self.param.from_request(head)
        except ApiError:
            raise
        except Exception as exc:
            raise to_api_error(exc) from exc


class DependsExtractor(ParamExtractor):
    def __init__(self, name: str, depends: Depends) -> None:
        self.name = name
        self.dependency = depends.dependency

    async def extract(self, head: RequestHead) -> Any:
        try:
            result = self.dependency(head)
            if inspect.isawaitable(result):
                result = await cast(Awaitable[Any], result)
        except ApiError:
            raise
        except Exception as exc:
            raise to_api_error(exc) from exc
        return result


class OutcomeExtractor(ParamExtractor):
    """Hand the wrapped extractor's failure to the handler as a value."""

    def __init__(self, inner: ParamExtractor) -> None:
        self.name = inner.name
        self.inner = inner

    async def extract(self, head: RequestHead) -> Any:
        try:
            return await self.inner.extract(head)
        except ApiError as exc:
            return exc


class OptionalExtractor(ParamExtractor):
    """Turn any failure of the wrapped extractor into ``None``."""

    def __init__(self, inner: ParamExtractor) -> None:
        self.name = inner.name
        self.inner = inner

    async def extract(self, head: RequestHead) -> Any:
        try:
            return await self.inner.extract(head)
        except ApiError as exc:
            _LOGGER.debug("Optional parameter %s not available: %s", self.name, exc)
            return None


# ---------------------------------------------------------------------------
# Bodies
# ---------------------------------------------------------------------------


class RequestBody(ABC):
    """Base class for custom request bodies.

    ``method`` is the HTTP method a route taking this body answers to.
    """

    method = "POST"

    @classmethod
    @abstractmethod
    def schema(cls) -> SchemaNode:
        raise NotImplementedError

    @classmethod
    @abstractmethod
    async def from_body(cls, head: RequestHead, reader: CappedReader) -> Any:
        raise NotImplementedError


@dataclass
class Json(Generic[T]):
    """A JSON request body decoded as ``T``."""

    value: T


@dataclass
class Binary:
    """Raw request body bytes."""

    data: bytes


class BodyExtractor(ABC):
    name: str
    method: str = "POST"

    @property
    @abstractmethod
    def schema(self) -> SchemaNode:
        """Schema of the expected request body."""

    @abstractmethod
    async def extract(self, head: RequestHead, reader: CappedReader) -> Any:
        """Consume the body and return the handler argument."""


async def read_body(reader: CappedReader) -> bytes:
    try:
        return await reader.read()
    except BodyTooLarge as exc:
        raise ApiError(
            413,
            f"Request body exceeded {exc.limit} bytes",
            "Request body too large",
        ) from exc


class JsonBodyExtractor(BodyExtractor):
    """Decode a JSON body; ``wrap`` packs the result in :class:`Json`."""

    def __init__(self, name: str, value_type: Any, *, wrap: bool = True) -> None:
        self.name = name
        self.value_type = value_type
        self.wrap = wrap
        self._schema = check_schema(value_type)

    @property
    def schema(self) -> SchemaNode:
        return self._schema

    async def extract(self, head: RequestHead, reader: CappedReader) -> Any:
        if head.content_type != JSON_MEDIA_TYPE:
            got = head.headers.get("content-type", "")
            raise ApiError(
                415,
                f"Expected content-type {JSON_MEDIA_TYPE}, got {got!r}",
                f"Content-Type must be {JSON_MEDIA_TYPE}",
            )
        raw = await read_body(reader)
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ApiError(400, str(exc), str(exc)) from exc
        try:
            value = from_json_value(data, self.value_type)
        except DecodeError as exc:
            raise ApiError(400, str(exc), str(exc)) from exc
        return Json(value) if self.wrap else value


class BinaryBodyExtractor(BodyExtractor):
    def __init__(self, name: str) -> None:
        self.name = name

    @property
    def schema(self) -> SchemaNode:
        return BINARY

    async def extract(self, head: RequestHead, reader: CappedReader) -> Any:
        return Binary(await read_body(reader))


class CustomBodyExtractor(BodyExtractor):
    def __init__(self, name: str, body: type[RequestBody]) -> None:
        self.name = name
        self.body = body
        self.method = body.method.upper()
        self._schema = body.schema()

    @property
    def schema(self) -> SchemaNode:
        return self._schema

    async def extract(self, head: RequestHead, reader: CappedReader) -> Any:
        try:
            return await self.body.from_body(head, reader)
        except BodyTooLarge as exc:
            raise ApiError(
                413,
                f"Request body exceeded {exc.limit} bytes",
                "Request body too large",
            ) from exc
        except ApiError:
            raise
        except Exception as exc:
            raise to_api_error(exc) from exc


__all__ = [
    "BINARY",
    "Binary",
    "BinaryBodyExtractor",
    "BodyExtractor",
    "CustomBodyExtractor",
    "CustomParamExtractor",
    "Depends",
    "DependsExtractor",
    "HeadExtractor",
    "JSON_MEDIA_TYPE",
    "Json",
    "JsonBodyExtractor",
    "NO_BODY",
    "OptionalExtractor",
    "OutcomeExtractor",
    "ParamExtractor",
    "RequestBody",
    "RequestParam",
]
