"""Typed JSON-over-HTTP RPC endpoints with derived schemas."""

__version__ = "0.1.0"

from .api import Api, RouteBuilder, RouteEntry, RouteInfo
from .asgi import ASGIAdapter
from .body import ApiUnion, api_body, api_field, schema_of, unit, wraps
from .codec import DecodeError, dumps, from_json_value, loads, to_json_value
from .config import Settings, configure_logging, load_settings, validate_settings
from .errors import (
    ApiError,
    ApiErrorUnion,
    RouteNotFound,
    SchemaError,
    api_error,
    to_api_error,
    variant,
)
from .extractors import Binary, Depends, Json, RequestBody, RequestParam
from .handler import ResolvedHandler, resolve_handler
from .http import Request, RequestHead, Response
from .schema import SchemaNode, validate
from .stream import BodyTooLarge, CappedReader
from .testclient import Response as TestResponse
from .testclient import TestClient

__all__ = [
    "__version__",
    "ASGIAdapter",
    "Api",
    "ApiError",
    "ApiErrorUnion",
    "ApiUnion",
    "Binary",
    "BodyTooLarge",
    "CappedReader",
    "DecodeError",
    "Depends",
    "Json",
    "Request",
    "RequestBody",
    "RequestHead",
    "RequestParam",
    "ResolvedHandler",
    "Response",
    "RouteBuilder",
    "RouteEntry",
    "RouteInfo",
    "RouteNotFound",
    "SchemaError",
    "SchemaNode",
    "Settings",
    "TestClient",
    "TestResponse",
    "api_body",
    "api_error",
    "api_field",
    "configure_logging",
    "dumps",
    "from_json_value",
    "load_settings",
    "loads",
    "resolve_handler",
    "schema_of",
    "to_api_error",
    "to_json_value",
    "unit",
    "validate",
    "validate_settings",
    "variant",
    "wraps",
]
