"""Resolve a handler function into a single request-to-response callable.

Resolution inspects the signature once, when the route is registered::

    async def add_user(auth: Session, user: Json[NewUser]) -> Optional[User]:
        ...

becomes a pipeline that runs the ``Session`` extractor, decodes the JSON
body, invokes ``add_user`` and encodes the result. Any problem with the
signature raises :class:`~rpcbridge.errors.SchemaError` immediately.
"""

from __future__ import annotations

import inspect
import logging
import types
import typing
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union, cast

from .body import (
    check_schema,
    is_model,
    is_record,
    is_union,
    optional_inner,
    strip_annotated,
    variant_of,
)
from .codec import dumps
from .errors import ApiError, SchemaError, to_api_error
from .extractors import (
    BINARY,
    NO_BODY,
    Binary,
    BinaryBodyExtractor,
    BodyExtractor,
    CustomBodyExtractor,
    CustomParamExtractor,
    Depends,
    DependsExtractor,
    HeadExtractor,
    Json,
    JsonBodyExtractor,
    OptionalExtractor,
    OutcomeExtractor,
    ParamExtractor,
    RequestBody,
    RequestParam,
)
from .http import Request, RequestHead, Response
from .schema import SchemaNode
from .stream import MAX_BODY_SIZE, CappedReader

_LOGGER = logging.getLogger(__name__)

Responder = Callable[[Any], Response]


@dataclass
class ResolvedHandler:
    """The normalized handler of one route."""

    name: str
    method: str
    request_type: SchemaNode
    response_type: SchemaNode
    func: Callable[..., Any]
    params: Tuple[Tuple[ParamExtractor, bool], ...]
    body: Optional[Tuple[BodyExtractor, bool]]
    respond: Responder
    max_body_size: int = MAX_BODY_SIZE

    async def __call__(self, request: Request) -> Response:
        head = request.head
        args: List[Any] = []
        kwargs: dict[str, Any] = {}
        for extractor, positional in self.params:
            value = await extractor.extract(head)
            if positional:
                args.append(value)
            else:
                kwargs[extractor.name] = value
        if self.body is not None:
            extractor, positional = self.body
            reader = CappedReader(request.body, self.max_body_size)
            value = await extractor.extract(head, reader)
            if positional:
                args.append(value)
            else:
                kwargs[extractor.name] = value
        try:
            result = self.func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await cast(Awaitable[Any], result)
            return self.respond(result)
        except ApiError:
            raise
        except Exception as exc:
            raise to_api_error(exc) from exc


def _outcome_inner(annotation: Any) -> Any:
    if typing.get_origin(annotation) not in (Union, types.UnionType):
        return None
    rest = [arg for arg in typing.get_args(annotation) if arg is not ApiError]
    if len(rest) != 1 or len(typing.get_args(annotation)) != 2:
        return None
    return rest[0]


def _param_extractor(name: str, annotation: Any) -> Optional[ParamExtractor]:
    annotation = strip_annotated(annotation)
    if annotation is RequestHead:
        return HeadExtractor(name)
    if isinstance(annotation, type) and issubclass(annotation, RequestParam):
        return CustomParamExtractor(name, annotation)
    outcome = _outcome_inner(annotation)
    if outcome is not None:
        wrapped = _param_extractor(name, outcome)
        if wrapped is not None:
            return OutcomeExtractor(wrapped)
    inner = optional_inner(annotation) if typing.get_origin(annotation) else None
    if inner is not None:
        wrapped = _param_extractor(name, inner)
        if wrapped is not None:
            return OptionalExtractor(wrapped)
    return None


def _body_extractor(name: str, annotation: Any) -> Optional[BodyExtractor]:
    annotation = strip_annotated(annotation)
    if annotation is Json:
        return JsonBodyExtractor(name, Any)
    if typing.get_origin(annotation) is Json:
        return JsonBodyExtractor(name, typing.get_args(annotation)[0])
    if annotation is Binary:
        return BinaryBodyExtractor(name)
    if isinstance(annotation, type) and issubclass(annotation, RequestBody):
        return CustomBodyExtractor(name, annotation)
    if (
        is_record(annotation)
        or is_model(annotation)
        or is_union(annotation)
        or variant_of(annotation) is not None
    ):
        return JsonBodyExtractor(name, annotation, wrap=False)
    return None


def _json_responder(tp: Any) -> Tuple[Responder, SchemaNode]:
    if strip_annotated(tp) is bytes:
        def respond_bytes(result: Any) -> Response:
            return Response(200, {"content-type": "application/octet-stream"}, bytes(result))

        return respond_bytes, BINARY

    schema = check_schema(tp)

    def respond(result: Any) -> Response:
        return Response(200, {"content-type": "application/json"}, dumps(result, tp))

    return respond, schema


def _responder(return_hint: Any) -> Tuple[Responder, SchemaNode]:
    hint = strip_annotated(return_hint)
    inner = optional_inner(hint) if typing.get_origin(hint) else None
    if inner is None:
        return _json_responder(hint)
    convert, schema = _json_responder(inner)

    def respond(result: Any) -> Response:
        if result is None:
            raise ApiError.path_not_found()
        return convert(result)

    return respond, schema


def resolve_handler(
    func: Callable[..., Any], *, max_body_size: int = MAX_BODY_SIZE
) -> ResolvedHandler:
    """Build the normalized handler for *func*."""

    name = getattr(func, "__qualname__", repr(func))
    try:
        hints = typing.get_type_hints(func, include_extras=True)
    except NameError as exc:
        raise SchemaError(f"{name}: cannot resolve annotation ({exc})") from exc
    if "return" not in hints:
        raise SchemaError(f"{name}: handlers need a return annotation")

    params: List[Tuple[ParamExtractor, bool]] = []
    body: Optional[Tuple[BodyExtractor, bool]] = None
    for param in inspect.signature(func).parameters.values():
        if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
            raise SchemaError(f"{name}: variadic parameter {param.name!r} is not supported")
        positional = param.kind is not param.KEYWORD_ONLY
        annotation = hints.get(param.name, inspect.Parameter.empty)
        if body is not None:
            if annotation is not inspect.Parameter.empty and _body_extractor(param.name, annotation):
                raise SchemaError(f"{name}: only one request body parameter is allowed")
            raise SchemaError(f"{name}: the request body must be the last parameter")
        if isinstance(param.default, Depends):
            params.append((DependsExtractor(param.name, param.default), positional))
            continue
        if annotation is inspect.Parameter.empty:
            raise SchemaError(f"{name}: parameter {param.name!r} needs an annotation")
        extractor = _param_extractor(param.name, annotation)
        if extractor is not None:
            params.append((extractor, positional))
            continue
        found = _body_extractor(param.name, annotation)
        if found is None:
            raise SchemaError(f"{name}: cannot extract parameter {param.name!r} of type {annotation!r}")
        body = (found, positional)

    respond, response_type = _responder(hints["return"])
    if body is None:
        method, request_type = "GET", NO_BODY
    else:
        method, request_type = body[0].method.upper(), body[0].schema
    _LOGGER.debug(
        "Resolved handler %s: %s with %d parameter extractor(s)%s",
        name,
        method,
        len(params),
        " and a body" if body is not None else "",
    )
    return ResolvedHandler(
        name=name,
        method=method,
        request_type=request_type,
        response_type=response_type,
        func=func,
        params=tuple(params),
        body=body,
        respond=respond,
        max_body_size=max_body_size,
    )


__all__ = ["ResolvedHandler", "resolve_handler"]
