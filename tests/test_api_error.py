"""Tests for classifying exceptions into ApiError records."""

import json
from dataclasses import dataclass

import pytest

from rpcbridge import ApiError, ApiErrorUnion, SchemaError, api_error, to_api_error, variant


@api_error(external=True)
class Bar(Exception):
    def __str__(self) -> str:
        return "bar"


class Foo(ApiErrorUnion, internal=True):
    class A:
        pass

    @variant(external_message="Hidden", code=404)
    class B:
        pass

    @variant(external=True)
    class C:
        pass

    @variant(inner=True)
    @dataclass
    class Delegated:
        inner: Bar


@api_error(internal=True, code=401)
class BadToken(Exception):
    pass


@api_error(external=True, code=422)
class Rejected(Exception):
    pass


@api_error(external_message="Try later", code=503)
class Busy(Exception):
    pass


@api_error
@dataclass
class Wrapper(Exception):
    cause: Rejected


def test_internal_error_hides_message() -> None:
    assert to_api_error(BadToken("bad")) == ApiError(401, "bad", "Internal server error")


def test_external_error_exposes_rendering() -> None:
    assert to_api_error(Rejected("nope")) == ApiError(422, "nope", "nope")


def test_external_message_overrides() -> None:
    assert to_api_error(Busy("db down")) == ApiError(503, "db down", "Try later")


def test_struct_delegates_to_single_field() -> None:
    assert to_api_error(Wrapper(Rejected("inner"))) == ApiError(422, "inner", "inner")


def test_union_variant_inherits_parent() -> None:
    assert to_api_error(Foo.A("a")) == ApiError(500, "a", "Internal server error")


def test_union_variant_overrides_parent() -> None:
    assert to_api_error(Foo.B("Custom")) == ApiError(404, "Custom", "Hidden")
    assert to_api_error(Foo.C("c")) == ApiError(500, "c", "c")


def test_union_variant_delegates_with_inner() -> None:
    assert to_api_error(Foo.Delegated(Bar())) == ApiError(500, "bar", "bar")


def test_variants_are_family_subclasses() -> None:
    assert issubclass(Foo.A, Foo)
    with pytest.raises(Foo):
        raise Foo.C("c")


def test_unclassified_exception_is_server_error(caplog: pytest.LogCaptureFixture) -> None:
    error = to_api_error(RuntimeError("boom"))
    assert error == ApiError(500, "boom", "Internal server error")
    assert "boom" in caplog.text


def test_helpers() -> None:
    assert ApiError.server_error("x") == ApiError(500, "x", "Internal server error")
    assert ApiError.path_not_found() == ApiError(404, "Not found", "Not found")
    assert ApiError.not_authorized("no token") == ApiError(
        403, "Not Authorized: no token", "Not Authorized: no token"
    )


def test_response_never_contains_internal_message() -> None:
    error = ApiError(401, "secret detail", "Internal server error", value={"retry": False})
    response = error.to_response()
    assert response.status_code == 401
    assert response.headers["content-type"] == "application/json"
    assert json.loads(response.body) == {
        "error": "Internal server error",
        "value": {"retry": False},
    }
    assert b"secret" not in response.body


def test_conflicting_attributes_rejected() -> None:
    with pytest.raises(SchemaError):
        api_error(external=True, external_message="x")
    with pytest.raises(SchemaError):
        api_error(internal=True, external=True)
    with pytest.raises(SchemaError):
        api_error(inner=True, code=400)


def test_delegation_requires_single_field() -> None:
    with pytest.raises(SchemaError):

        @api_error
        class Vague(Exception):
            pass

    with pytest.raises(SchemaError):

        @api_error
        @dataclass
        class TwoFields(Exception):
            first: Bar
            second: Bar


def test_family_rules_rejected() -> None:
    with pytest.raises(SchemaError):

        class NoVariants(ApiErrorUnion, external=True):
            pass

    with pytest.raises(SchemaError):

        class InnerFamily(ApiErrorUnion, inner=True):
            class Only:
                pass
