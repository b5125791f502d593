"""Error records and the rules classifying exceptions into them.

Every failure inside a matched route converges on :class:`ApiError`. Its
``internal_message`` is for logs only; ``external_message`` (plus ``code``
and the optional ``value``) is what API consumers get to see.

Exception classes opt into classification with :func:`api_error`::

    @api_error(internal=True, code=401)
    class BadToken(Exception):
        pass

    ApiError.from_exception(BadToken("bad"))
    # ApiError(code=401, internal_message='bad',
    #          external_message='Internal server error')

Families of errors derive from :class:`ApiErrorUnion`; every nested class
becomes a variant that inherits the family defaults unless it sets its own.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional

from .http import Response

if TYPE_CHECKING:  # pragma: no cover
    from .http import Request

_LOGGER = logging.getLogger(__name__)

SERVER_ERROR = "Internal server error"


class SchemaError(TypeError):
    """A type, error or route declaration cannot be turned into an API."""


class RouteNotFound(LookupError):
    """No route matched; carries the untouched request for fall-through."""

    def __init__(self, request: "Request") -> None:
        super().__init__(f"No route for {request.method} {request.path}")
        self.request = request


@dataclass
class ApiError(Exception):
    """Normalized error produced by a failed request."""

    code: int
    internal_message: str
    external_message: str
    value: Any = None

    def __post_init__(self) -> None:
        super().__init__(self.internal_message)

    def __str__(self) -> str:
        return f"{self.code}: {self.internal_message}"

    @classmethod
    def server_error(cls, msg: str) -> "ApiError":
        return cls(500, msg, SERVER_ERROR)

    @classmethod
    def path_not_found(cls) -> "ApiError":
        return cls(404, "Not found", "Not found")

    @classmethod
    def not_authorized(cls, reason: str) -> "ApiError":
        msg = f"Not Authorized: {reason}"
        return cls(403, msg, msg)

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ApiError":
        return to_api_error(exc)

    def to_json(self) -> dict[str, Any]:
        """Return the client-facing payload. Never includes the internal message."""
        payload: dict[str, Any] = {"error": self.external_message}
        if self.value is not None:
            payload["value"] = self.value
        return payload

    def to_response(self) -> Response:
        return Response(
            self.code,
            {"content-type": "application/json"},
            json.dumps(self.to_json()).encode(),
        )


@dataclass(frozen=True)
class ErrorSpec:
    """Classification attributes declared on an error type or variant."""

    internal: bool = False
    external: bool = False
    external_message: Optional[str] = None
    code: Optional[int] = None
    inner: bool = False

    def __post_init__(self) -> None:
        if self.inner and (
            self.internal
            or self.external
            or self.external_message is not None
            or self.code is not None
        ):
            raise SchemaError("'inner' does not make sense alongside any other attributes")
        if self.internal and self.external:
            raise SchemaError("'internal' and 'external' can't be declared together")
        if self.external and self.external_message is not None:
            raise SchemaError(
                "'external' and 'external_message' can't be declared together"
            )
        if self.code is not None and not 100 <= self.code <= 599:
            raise SchemaError(f"Invalid HTTP status code {self.code}")

    @property
    def chooses_exposure(self) -> bool:
        return self.internal or self.external or self.external_message is not None

    def with_parent(self, parent: "ErrorSpec") -> "ErrorSpec":
        """Fill attributes left unset from the enclosing error family."""
        if parent.inner:
            raise SchemaError("'inner' is only allowed on variants, not on the family")
        if self.inner:
            return self
        exposure = self if self.chooses_exposure else parent
        return ErrorSpec(
            internal=exposure.internal,
            external=exposure.external,
            external_message=exposure.external_message,
            code=self.code if self.code is not None else parent.code,
        )


@dataclass(frozen=True)
class Classification:
    """Resolved recipe turning one exception type into an :class:`ApiError`."""

    code: int = 500
    external_message: Optional[str] = None
    expose: bool = False
    delegate_to: Optional[str] = None

    def __call__(self, exc: BaseException) -> ApiError:
        if self.delegate_to is not None:
            return to_api_error(getattr(exc, self.delegate_to))
        rendered = str(exc)
        if self.expose:
            return ApiError(self.code, rendered, rendered)
        return ApiError(self.code, rendered, self.external_message or SERVER_ERROR)


def _single_field(cls: type) -> str:
    if dataclasses.is_dataclass(cls):
        names = [f.name for f in dataclasses.fields(cls)]
        if len(names) == 1:
            return names[0]
    raise SchemaError(
        f"{cls.__qualname__}: one of internal, external or external_message is "
        "required unless the error wraps exactly one inner error"
    )


def classify(spec: ErrorSpec, cls: type) -> Classification:
    """Resolve *spec* for *cls*, raising :class:`SchemaError` if it is ambiguous."""

    if spec.inner or not spec.chooses_exposure:
        return Classification(delegate_to=_single_field(cls))
    code = spec.code if spec.code is not None else 500
    if spec.internal or spec.external_message is not None:
        return Classification(code, spec.external_message or SERVER_ERROR)
    return Classification(code, expose=True)


def api_error(
    cls: Optional[type] = None,
    *,
    internal: bool = False,
    external: bool = False,
    external_message: Optional[str] = None,
    code: Optional[int] = None,
    inner: bool = False,
) -> Any:
    """Class decorator declaring how an exception type maps to an ApiError."""

    spec = ErrorSpec(internal, external, external_message, code, inner)

    def wrap(target: type) -> type:
        target.__api_error__ = classify(spec, target)
        return target

    if cls is not None:
        return wrap(cls)
    return wrap


def variant(
    cls: Optional[type] = None,
    *,
    internal: bool = False,
    external: bool = False,
    external_message: Optional[str] = None,
    code: Optional[int] = None,
    inner: bool = False,
) -> Any:
    """Attach classification attributes to a variant of an :class:`ApiErrorUnion`."""

    spec = ErrorSpec(internal, external, external_message, code, inner)

    def wrap(target: type) -> type:
        target.__api_error_spec__ = spec
        return target

    if cls is not None:
        return wrap(cls)
    return wrap


class ApiErrorUnion(Exception):
    """Base class for a family of errors declared as nested variant classes."""

    __api_error__: Optional[Callable[[BaseException], ApiError]] = None

    def __init_subclass__(
        cls,
        *,
        internal: bool = False,
        external: bool = False,
        external_message: Optional[str] = None,
        code: Optional[int] = None,
        inner: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init_subclass__(**kwargs)
        if "__api_error_family__" in cls.__dict__:
            return
        parent = ErrorSpec(internal, external, external_message, code, inner)
        if parent.inner:
            raise SchemaError(
                f"{cls.__qualname__}: 'inner' is only allowed on variants"
            )
        prefix = cls.__qualname__ + "."
        variants = []
        for name, member in list(cls.__dict__.items()):
            if not isinstance(member, type) or member.__qualname__ != prefix + name:
                continue
            own = member.__dict__.get("__api_error_spec__", ErrorSpec())
            namespace = {
                "__api_error_family__": cls,
                "__qualname__": member.__qualname__,
                "__module__": cls.__module__,
                "__doc__": member.__doc__,
            }
            built = type(name, (member, cls), namespace)
            built.__api_error__ = classify(own.with_parent(parent), built)
            setattr(cls, name, built)
            variants.append(built)
        if not variants:
            raise SchemaError(f"{cls.__qualname__}: error families need at least one variant")
        cls.__api_error_variants__ = tuple(variants)


def to_api_error(exc: BaseException) -> ApiError:
    """Convert anything raised while serving a request into an :class:`ApiError`."""

    if isinstance(exc, ApiError):
        return exc
    classification = getattr(type(exc), "__api_error__", None)
    if classification is not None:
        return classification(exc)
    _LOGGER.error(
        "Unclassified %s while handling request: %s",
        type(exc).__name__,
        exc,
        exc_info=exc,
    )
    return ApiError.server_error(str(exc))


__all__ = [
    "ApiError",
    "ApiErrorUnion",
    "Classification",
    "ErrorSpec",
    "RouteNotFound",
    "SERVER_ERROR",
    "SchemaError",
    "api_error",
    "classify",
    "to_api_error",
    "variant",
]
