"""Tests for handler resolution and the extraction pipeline."""

import asyncio
import json
from dataclasses import dataclass
from typing import List, Optional

import pytest

from rpcbridge import (
    ApiError,
    Binary,
    Depends,
    Json,
    Request,
    RequestBody,
    RequestHead,
    RequestParam,
    SchemaError,
    api_error,
    resolve_handler,
)
from rpcbridge.schema import ArrayOf, Null, Number, SchemaNode, String

JSON_HEADERS = {"Content-Type": "application/json"}

calls: dict = {}


@api_error(external=True, code=403)
class Forbidden(Exception):
    pass


class Session(RequestParam):
    @classmethod
    async def from_request(cls, head: RequestHead) -> "Session":
        calls["session"] = calls.get("session", 0) + 1
        if "authorization" not in head.headers:
            raise Forbidden("missing credentials")
        return cls()


class TraceId(RequestParam):
    def __init__(self, value: str) -> None:
        self.value = value

    @classmethod
    async def from_request(cls, head: RequestHead) -> "TraceId":
        calls["trace"] = calls.get("trace", 0) + 1
        return cls(head.headers.get("x-trace-id", "none"))


@dataclass
class Numbers:
    values: List[int]


class Upper(RequestBody):
    method = "PUT"

    @classmethod
    def schema(cls) -> SchemaNode:
        return SchemaNode(String(), "Text to shout")

    @classmethod
    async def from_body(cls, head, reader) -> str:
        return (await reader.read()).decode().upper()


def run(handler, method="GET", path="/", headers=None, body=b""):
    return asyncio.run(handler(Request(method, path, headers, body)))


@pytest.fixture(autouse=True)
def reset_calls():
    calls.clear()


def test_no_body_means_get() -> None:
    def ping() -> str:
        return "pong"

    handler = resolve_handler(ping)
    assert handler.method == "GET"
    assert handler.request_type == SchemaNode(Null(), "No request body is expected")
    assert handler.response_type == SchemaNode(String())
    response = run(handler)
    assert response.headers["content-type"] == "application/json"
    assert response.json() == "pong"


def test_json_body_means_post() -> None:
    async def total(body: Json[List[int]]) -> int:
        return sum(body.value)

    handler = resolve_handler(total)
    assert handler.method == "POST"
    assert handler.request_type == SchemaNode(ArrayOf(SchemaNode(Number())))
    assert run(handler, "POST", headers=JSON_HEADERS, body=b"[1, 2, 3]").json() == 6


def test_record_annotation_is_implicit_json_body() -> None:
    def total(numbers: Numbers) -> int:
        return sum(numbers.values)

    response = run(resolve_handler(total), "POST", headers=JSON_HEADERS, body=b'{"values": [4, 5]}')
    assert response.json() == 9


def test_extractors_run_in_order_and_short_circuit() -> None:
    invoked = []

    def secret(session: Session, trace: TraceId) -> str:
        invoked.append(trace.value)
        return "ok"

    handler = resolve_handler(secret)
    with pytest.raises(ApiError) as info:
        run(handler)
    assert info.value.code == 403
    assert info.value.external_message == "missing credentials"
    assert calls == {"session": 1}
    assert invoked == []

    run(handler, headers={"Authorization": "x", "X-Trace-Id": "t1"})
    assert invoked == ["t1"]


def test_failed_extractor_skips_body() -> None:
    seen = []

    def guarded(session: Session, body: Json[int]) -> int:
        seen.append(body)
        return body.value

    async def never():
        raise AssertionError("body must not be read")
        yield b""

    handler = resolve_handler(guarded)
    with pytest.raises(ApiError):
        run(handler, "POST", headers=JSON_HEADERS, body=never())
    assert seen == []


def test_optional_param_yields_none_on_failure() -> None:
    def maybe(session: Optional[Session]) -> bool:
        return session is not None

    handler = resolve_handler(maybe)
    assert run(handler).json() is False
    assert run(handler, headers={"Authorization": "x"}).json() is True


def test_depends_and_head() -> None:
    async def user_agent(head: RequestHead) -> str:
        return head.headers.get("user-agent", "?")

    def describe(head: RequestHead, agent: str = Depends(user_agent)) -> str:
        return f"{head.method} {agent}"

    assert run(resolve_handler(describe), headers={"User-Agent": "pytest"}).json() == "GET pytest"


def test_optional_return_none_is_not_found() -> None:
    def lookup() -> Optional[int]:
        return None

    handler = resolve_handler(lookup)
    assert handler.response_type == SchemaNode(Number())
    with pytest.raises(ApiError) as info:
        run(handler)
    assert info.value == ApiError.path_not_found()


def test_error_outcome_param_reaches_handler() -> None:
    def whoami(session: Session | ApiError, trace: TraceId) -> str:
        if isinstance(session, ApiError):
            return f"anonymous ({session.code}) {trace.value}"
        return f"user {trace.value}"

    handler = resolve_handler(whoami)
    assert run(handler, headers={"X-Trace-Id": "t1"}).json() == "anonymous (403) t1"
    assert run(handler, headers={"Authorization": "x"}).json() == "user none"
    assert calls["trace"] == 2


def test_api_errors_are_not_chained_to_themselves() -> None:
    def lookup() -> Optional[int]:
        return None

    def guarded(session: Session) -> int:
        return 1

    for handler in (resolve_handler(lookup), resolve_handler(guarded)):
        with pytest.raises(ApiError) as info:
            run(handler)
        assert info.value.__cause__ is not info.value


def test_bytes_response_and_binary_body() -> None:
    def echo(body: Binary) -> bytes:
        return body.data[::-1]

    handler = resolve_handler(echo)
    assert handler.method == "POST"
    assert handler.request_type == SchemaNode(String(), "Binary data")
    response = run(handler, "POST", body=b"abc")
    assert response.body == b"cba"
    assert response.headers["content-type"] == "application/octet-stream"


def test_custom_body_declares_method() -> None:
    def shout(text: Upper) -> str:
        return text

    handler = resolve_handler(shout)
    assert handler.method == "PUT"
    assert handler.request_type.description == "Text to shout"
    assert run(handler, "PUT", body=b"hey").json() == "HEY"


def test_json_body_errors() -> None:
    def take(body: Json[int]) -> int:
        return body.value

    handler = resolve_handler(take, max_body_size=4)
    with pytest.raises(ApiError) as info:
        run(handler, "POST", headers={"Content-Type": "text/plain"}, body=b"1")
    assert info.value.code == 415
    with pytest.raises(ApiError) as info:
        run(handler, "POST", headers=JSON_HEADERS, body=b"{no")
    assert info.value.code == 400
    assert info.value.external_message == info.value.internal_message
    with pytest.raises(ApiError) as info:
        run(handler, "POST", headers=JSON_HEADERS, body=b'"x"')
    assert info.value.code == 400
    with pytest.raises(ApiError) as info:
        run(handler, "POST", headers=JSON_HEADERS, body=b"123456")
    assert info.value.code == 413


def test_content_type_parameters_are_accepted() -> None:
    def take(body: Json[int]) -> int:
        return body.value

    headers = {"Content-Type": "application/json; charset=utf-8"}
    assert run(resolve_handler(take), "POST", headers=headers, body=b"7").json() == 7


def test_handler_exceptions_are_classified() -> None:
    def forbidden() -> int:
        raise Forbidden("no")

    def broken() -> int:
        raise KeyError("missing")

    with pytest.raises(ApiError) as info:
        run(resolve_handler(forbidden))
    assert info.value == ApiError(403, "no", "no")
    with pytest.raises(ApiError) as info:
        run(resolve_handler(broken))
    assert info.value.code == 500
    assert info.value.external_message == "Internal server error"


def test_invalid_signatures_rejected() -> None:
    def body_not_last(body: Json[int], session: Session) -> int:
        return 0

    def two_bodies(a: Json[int], b: Json[int]) -> int:
        return 0

    def no_return(session: Session):
        return 0

    def variadic(*args: int) -> int:
        return 0

    def unannotated(thing) -> int:
        return 0

    def unsupported(count: int) -> int:
        return count

    for func in (body_not_last, two_bodies, no_return, variadic, unannotated, unsupported):
        with pytest.raises(SchemaError):
            resolve_handler(func)


def test_response_encodes_records() -> None:
    def numbers() -> Numbers:
        return Numbers([1, 2])

    response = run(resolve_handler(numbers))
    assert json.loads(response.body) == {"values": [1, 2]}
