"""Derive :class:`~rpcbridge.schema.SchemaNode` descriptions from Python types.

Records are dataclasses, optionally declared with :func:`api_body`. Unions
derive from :class:`ApiUnion`; each nested class, :func:`unit` or
:func:`wraps` attribute becomes a variant::

    class Shape(ApiUnion, tag="kind"):
        \"\"\"Something to draw.\"\"\"

        class Circle:
            radius: float

        Point = unit("A single point")
        Square = wraps(SquareSpec)

The derived schema always describes the exact wire form produced by
:mod:`rpcbridge.codec`.
"""

from __future__ import annotations

import dataclasses
import datetime
import enum
import inspect
import logging
import types
import typing
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel

from .errors import SchemaError
from .schema import (
    AnyValue,
    ArrayOf,
    Boolean,
    Null,
    Number,
    Object,
    ObjectOf,
    OneOf,
    OptionalOf,
    SchemaNode,
    String,
    StringLiteral,
    TupleOf,
)

_LOGGER = logging.getLogger(__name__)

DEFAULT_TAG = "kind"
VARIANT_TAG_DESCRIPTION = "Variant tag"

_DESCRIPTION = "rpcbridge.description"
_FLATTEN = "rpcbridge.flatten"

_LEAF_SCHEMAS: Dict[Any, SchemaNode] = {
    str: SchemaNode(String()),
    bool: SchemaNode(Boolean()),
    int: SchemaNode(Number()),
    float: SchemaNode(Number()),
    type(None): SchemaNode(Null()),
    uuid.UUID: SchemaNode(String(), "A UUID"),
    datetime.datetime: SchemaNode(String(), "A Datetime"),
    datetime.date: SchemaNode(String(), "A Date"),
    bytes: SchemaNode(String(), "Binary data"),
}


def own_doc(cls: type) -> str:
    """Return the docstring written on *cls* itself, normalized.

    Docstrings synthesized by :mod:`dataclasses` or :mod:`enum` do not count.
    """

    doc = cls.__dict__.get("__doc__")
    if not doc or not isinstance(doc, str):
        return ""
    if doc.startswith(f"{cls.__name__}(") or doc == "An enumeration.":
        return ""
    return "\n".join(line.lstrip() for line in inspect.cleandoc(doc).splitlines())


def api_field(
    *,
    description: str = "",
    flatten: bool = False,
    **kwargs: Any,
) -> Any:
    """Declare a record field with a description or as flattened into its parent."""

    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[_DESCRIPTION] = description
    metadata[_FLATTEN] = flatten
    return dataclasses.field(metadata=metadata, **kwargs)


@dataclass(frozen=True)
class RecordOptions:
    positional: bool = False


def api_body(cls: Optional[type] = None, *, positional: bool = False) -> Any:
    """Mark a class as an API record, turning it into a dataclass if needed.

    With ``positional=True`` the fields are unnamed: a single field makes the
    record transparent, several fields encode as a fixed length array.
    """

    def wrap(target: type) -> type:
        if not dataclasses.is_dataclass(target):
            target = dataclass(target)
        if not dataclasses.fields(target):
            raise SchemaError(
                f"{target.__qualname__}: records need at least one field"
            )
        target.__api_record__ = RecordOptions(positional=positional)
        return target

    if cls is not None:
        return wrap(cls)
    return wrap


@dataclass(frozen=True)
class FieldInfo:
    """A record field resolved against its type hints."""

    name: str
    hint: Any
    description: str
    flatten: bool
    required: bool


@lru_cache(maxsize=None)
def record_fields(cls: type) -> Tuple[FieldInfo, ...]:
    """Return the fields of dataclass *cls* with resolved type hints."""

    try:
        hints = typing.get_type_hints(cls)
    except NameError as exc:
        raise SchemaError(f"{cls.__qualname__}: cannot resolve field type ({exc})") from exc
    resolved = []
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        required = (
            f.default is dataclasses.MISSING
            and f.default_factory is dataclasses.MISSING
        )
        resolved.append(
            FieldInfo(
                name=f.name,
                hint=hints.get(f.name, Any),
                description=f.metadata.get(_DESCRIPTION, ""),
                flatten=bool(f.metadata.get(_FLATTEN, False)),
                required=required,
            )
        )
    return tuple(resolved)


def is_positional(cls: type) -> bool:
    options = getattr(cls, "__api_record__", None)
    return bool(options and options.positional)


# ---------------------------------------------------------------------------
# Unions
# ---------------------------------------------------------------------------


class VariantKind(enum.Enum):
    UNIT = "unit"
    WRAPPED = "wrapped"
    NAMED = "named"


@dataclass(frozen=True)
class VariantInfo:
    name: str
    kind: VariantKind
    union: type
    description: str = ""
    wrapped: Any = None
    cls: Any = None


@dataclass(frozen=True)
class _UnitMarker:
    description: str = ""


@dataclass(frozen=True)
class _WrapsMarker:
    inner: Any
    description: str = ""


def unit(description: str = "") -> Any:
    """Declare a variant without payload; it encodes as its own name."""
    return _UnitMarker(description)


def wraps(inner: Any, description: str = "") -> Any:
    """Declare a variant holding a single record, available as ``.value``."""
    return _WrapsMarker(inner, description)


class ApiUnion:
    """Base class for tagged unions of named variants.

    The discriminant key defaults to ``"kind"`` and can be changed with the
    ``tag`` class keyword. Mixing unit and non-unit variants is rejected.
    """

    __api_tag__ = DEFAULT_TAG
    __api_variants__ = ()

    def __init_subclass__(cls, tag: Optional[str] = None, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "__api_variant__" in cls.__dict__:
            return
        if tag is not None:
            cls.__api_tag__ = tag
        prefix = cls.__qualname__ + "."
        variants: List[VariantInfo] = []
        for name, member in list(cls.__dict__.items()):
            if isinstance(member, _UnitMarker):
                variants.append(_build_unit(cls, name, member))
            elif isinstance(member, _WrapsMarker):
                variants.append(_build_wrapped(cls, name, member))
            elif isinstance(member, type) and member.__qualname__ == prefix + name:
                variants.append(_build_named(cls, name, member))
        if not variants:
            raise SchemaError(f"{cls.__qualname__}: unions need at least one variant")
        units = [v for v in variants if v.kind is VariantKind.UNIT]
        if units and len(units) != len(variants):
            raise SchemaError(
                f"{cls.__qualname__}: unit and non-unit variants cannot be mixed"
            )
        cls.__api_variants__ = tuple(variants)
        _LOGGER.debug("Declared union %s with %d variants", cls.__qualname__, len(variants))

    @classmethod
    def variant_named(cls, name: str) -> Optional[VariantInfo]:
        for info in cls.__api_variants__:
            if info.name == name:
                return info
        return None


def _variant_namespace(union: type, name: str, info: VariantInfo) -> Dict[str, Any]:
    return {
        "__api_variant__": info,
        "__qualname__": f"{union.__qualname__}.{name}",
        "__module__": union.__module__,
    }


def _finish_variant(union: type, name: str, built: type, info: VariantInfo) -> VariantInfo:
    info = dataclasses.replace(info, cls=built)
    built.__api_variant__ = info
    built.__module__ = union.__module__
    built.__qualname__ = f"{union.__qualname__}.{name}"
    return info


def _build_unit(union: type, name: str, marker: _UnitMarker) -> VariantInfo:
    info = VariantInfo(name, VariantKind.UNIT, union, marker.description)
    namespace = _variant_namespace(union, name, info)
    namespace["__repr__"] = lambda self: f"{union.__name__}.{name}"
    namespace["__doc__"] = marker.description or None
    built = type(name, (union,), namespace)
    info = _finish_variant(union, name, built, info)
    setattr(union, name, built())
    return info


def _build_wrapped(union: type, name: str, marker: _WrapsMarker) -> VariantInfo:
    info = VariantInfo(
        name, VariantKind.WRAPPED, union, marker.description, wrapped=marker.inner
    )
    built = dataclasses.make_dataclass(
        name,
        [("value", marker.inner)],
        bases=(union,),
        namespace=_variant_namespace(union, name, info),
    )
    info = _finish_variant(union, name, built, info)
    setattr(union, name, built)
    return info


def _build_named(union: type, name: str, member: type) -> VariantInfo:
    description = own_doc(member)
    template = member if dataclasses.is_dataclass(member) else dataclass(member)
    specs = []
    for f in dataclasses.fields(template):
        copied = dataclasses.field(
            default=f.default,
            default_factory=f.default_factory,
            metadata=f.metadata,
        )
        specs.append((f.name, f.type, copied))
    info = VariantInfo(name, VariantKind.NAMED, union, description)
    namespace = _variant_namespace(union, name, info)
    namespace["__doc__"] = description or None
    built = dataclasses.make_dataclass(name, specs, bases=(union,), namespace=namespace)
    info = _finish_variant(union, name, built, info)
    setattr(union, name, built)
    return info


def is_union(tp: Any) -> bool:
    return (
        isinstance(tp, type)
        and issubclass(tp, ApiUnion)
        and tp is not ApiUnion
        and "__api_variant__" not in tp.__dict__
    )


def variant_of(tp: Any) -> Optional[VariantInfo]:
    if isinstance(tp, type):
        return tp.__dict__.get("__api_variant__")
    return None


# ---------------------------------------------------------------------------
# Derivation
# ---------------------------------------------------------------------------


def strip_annotated(tp: Any) -> Any:
    while typing.get_origin(tp) is typing.Annotated:
        tp = typing.get_args(tp)[0]
    return tp


def optional_inner(tp: Any) -> Any:
    """Return ``T`` for ``Optional[T]``, or ``None`` if *tp* is not optional."""

    if typing.get_origin(tp) not in (Union, types.UnionType):
        return None
    args = typing.get_args(tp)
    rest = [arg for arg in args if arg is not type(None)]
    if len(rest) == len(args):
        return None
    if len(rest) != 1:
        raise SchemaError(f"Untagged unions are not supported: {tp!r}")
    return rest[0]


def is_model(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, BaseModel)


def is_record(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


_CACHE: Dict[Any, SchemaNode] = {}


def schema_of(tp: Any) -> SchemaNode:
    """Return the schema describing how values of *tp* look on the wire."""

    try:
        return _CACHE[tp]
    except (KeyError, TypeError):
        pass
    node = _derive(tp)
    try:
        _CACHE[tp] = node
    except TypeError:
        pass
    return node


def _derive(tp: Any) -> SchemaNode:
    tp = strip_annotated(tp)
    if tp is Any or tp is object:
        return SchemaNode(AnyValue())
    if tp is None:
        tp = type(None)
    if tp in _LEAF_SCHEMAS:
        return _LEAF_SCHEMAS[tp]
    inner = optional_inner(tp)
    if inner is not None:
        node = schema_of(inner)
        return SchemaNode(OptionalOf(node))
    origin = typing.get_origin(tp)
    args = typing.get_args(tp)
    if origin in (list, set, frozenset) or tp in (list, set, frozenset):
        return SchemaNode(ArrayOf(schema_of(args[0] if args else Any)))
    if origin is tuple or tp is tuple:
        if not args or (len(args) == 2 and args[1] is Ellipsis):
            return SchemaNode(ArrayOf(schema_of(args[0] if args else Any)))
        return SchemaNode(TupleOf(tuple(schema_of(arg) for arg in args)))
    if origin is dict or tp is dict:
        key, value = args if args else (str, Any)
        if strip_annotated(key) is not str:
            raise SchemaError(f"Map keys must be strings, got {key!r}")
        return SchemaNode(ObjectOf(schema_of(value)))
    if origin is not None:
        raise SchemaError(f"Type {tp!r} has no API schema")
    if isinstance(tp, type) and issubclass(tp, enum.Enum):
        return _enum_schema(tp)
    if is_union(tp):
        return _union_schema(tp)
    info = variant_of(tp)
    if info is not None:
        return _variant_schema(info.union, info)
    if is_model(tp):
        return _model_schema(tp)
    if is_record(tp):
        return _record_schema(tp)
    raise SchemaError(f"Type {tp!r} has no API schema")


def _field_node(info: FieldInfo) -> SchemaNode:
    node = schema_of(info.hint)
    if info.description:
        node = node.with_description(info.description)
    return node


def _insert_key(keys: Dict[str, SchemaNode], name: str, node: SchemaNode, owner: type) -> None:
    if name in keys:
        raise SchemaError(f"{owner.__qualname__}: duplicate key {name!r}")
    keys[name] = node


def _record_keys(cls: type) -> Dict[str, SchemaNode]:
    keys: Dict[str, SchemaNode] = {}
    for info in record_fields(cls):
        node = _field_node(info)
        if not info.flatten:
            _insert_key(keys, info.name, node, cls)
            continue
        if not isinstance(node.shape, Object):
            raise SchemaError(
                f"{cls.__qualname__}.{info.name}: only records with named fields can be flattened"
            )
        for name, child in node.shape.keys.items():
            _insert_key(keys, name, child, cls)
    return keys


def _record_schema(cls: type) -> SchemaNode:
    fields = record_fields(cls)
    if not fields:
        raise SchemaError(f"{cls.__qualname__}: records need at least one field")
    description = own_doc(cls)
    if is_positional(cls):
        if any(info.flatten for info in fields):
            raise SchemaError(f"{cls.__qualname__}: positional fields cannot be flattened")
        if len(fields) == 1:
            inner = _field_node(fields[0])
            return inner.with_description(description) if description else inner
        return SchemaNode(TupleOf(tuple(_field_node(i) for i in fields)), description)
    return SchemaNode(Object(_record_keys(cls)), description)


def _enum_schema(cls: type) -> SchemaNode:
    members = [SchemaNode(StringLiteral(name)) for name in cls.__members__]
    if not members:
        raise SchemaError(f"{cls.__qualname__}: unions need at least one variant")
    return SchemaNode(OneOf(tuple(members)), own_doc(cls))


def _model_schema(cls: type) -> SchemaNode:
    keys: Dict[str, SchemaNode] = {}
    for name, info in cls.model_fields.items():
        node = schema_of(info.annotation)
        if info.description:
            node = node.with_description(info.description)
        _insert_key(keys, info.alias or name, node, cls)
    if not keys:
        raise SchemaError(f"{cls.__qualname__}: records need at least one field")
    return SchemaNode(Object(keys), own_doc(cls))


def _tag_node(name: str) -> SchemaNode:
    return SchemaNode(StringLiteral(name), VARIANT_TAG_DESCRIPTION)


def _variant_schema(union: type, info: VariantInfo) -> SchemaNode:
    tag = union.__api_tag__
    if info.kind is VariantKind.UNIT:
        return SchemaNode(StringLiteral(info.name), info.description)
    keys: Dict[str, SchemaNode] = {tag: _tag_node(info.name)}
    if info.kind is VariantKind.WRAPPED:
        inner = schema_of(info.wrapped)
        if not isinstance(inner.shape, Object):
            raise SchemaError(
                f"{info.cls.__qualname__}: wrapped variants must hold a record with named fields"
            )
        for name, child in inner.shape.keys.items():
            _insert_key(keys, name, child, info.cls)
        return SchemaNode(Object(keys), info.description or inner.description)
    for name, child in _record_keys(info.cls).items():
        _insert_key(keys, name, child, info.cls)
    return SchemaNode(Object(keys), info.description)


def _union_schema(cls: type) -> SchemaNode:
    nodes = tuple(_variant_schema(cls, info) for info in cls.__api_variants__)
    return SchemaNode(OneOf(nodes), own_doc(cls))


def check_schema(tp: Any) -> SchemaNode:
    """Derive the schema for *tp*, reporting any declaration problem eagerly."""

    node = schema_of(tp)
    _LOGGER.debug("Derived schema for %r", tp)
    return node


__all__ = [
    "ApiUnion",
    "DEFAULT_TAG",
    "FieldInfo",
    "VariantInfo",
    "VariantKind",
    "api_body",
    "api_field",
    "check_schema",
    "is_model",
    "is_record",
    "is_union",
    "optional_inner",
    "own_doc",
    "record_fields",
    "schema_of",
    "strip_annotated",
    "unit",
    "variant_of",
    "wraps",
]
