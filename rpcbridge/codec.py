"""Encode and decode values in the exact wire form their schemas describe."""

from __future__ import annotations

import base64
import binascii
import dataclasses
import datetime
import enum
import json
import typing
import uuid
from typing import Any, Dict, List, Sequence, Tuple

from pydantic import TypeAdapter, ValidationError

from .body import (
    VariantKind,
    is_model,
    is_positional,
    is_record,
    is_union,
    optional_inner,
    record_fields,
    strip_annotated,
    variant_of,
)

Loc = Tuple[Any, ...]

_LAX_LEAVES = (uuid.UUID, datetime.datetime, datetime.date)
_ADAPTERS: Dict[Any, TypeAdapter] = {}


class DecodeError(ValueError):
    """Raised when wire data does not match the expected type."""

    def __init__(self, loc: Sequence[Any], msg: str) -> None:
        self.loc = tuple(loc)
        self.msg = msg
        where = ".".join(str(part) for part in self.loc) or "body"
        super().__init__(f"{where}: {msg}")


def _adapter(tp: Any) -> TypeAdapter:
    adapter = _ADAPTERS.get(tp)
    if adapter is None:
        adapter = _ADAPTERS[tp] = TypeAdapter(tp)
    return adapter


def _union_of(tp: Any) -> Any:
    info = variant_of(tp)
    return info.union if info is not None else tp


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------


def to_json_value(value: Any, tp: Any = None) -> Any:
    """Return the JSON-compatible representation of *value*.

    *tp* is the declared type; when omitted the runtime type of *value* is used.
    """

    if tp is None:
        tp = type(value)
    tp = strip_annotated(tp)
    if tp is Any or tp is object:
        return _encode_untyped(value)
    if value is None:
        return None
    inner = optional_inner(tp)
    if inner is not None:
        return to_json_value(value, inner)
    origin = typing.get_origin(tp) or tp
    args = typing.get_args(tp)
    if origin in (list, set, frozenset):
        item = args[0] if args else Any
        return [to_json_value(v, item) for v in value]
    if origin is tuple:
        if not args or (len(args) == 2 and args[1] is Ellipsis):
            item = args[0] if args else Any
            return [to_json_value(v, item) for v in value]
        return [to_json_value(v, a) for v, a in zip(value, args)]
    if origin is dict:
        item = args[1] if args else Any
        return {str(k): to_json_value(v, item) for k, v in value.items()}
    if tp is bytes:
        return base64.b64encode(value).decode("ascii")
    if isinstance(tp, type) and issubclass(tp, enum.Enum):
        return value.name
    if is_union(_union_of(tp)):
        return _encode_variant(value)
    if is_model(tp):
        return value.model_dump(mode="json", by_alias=True)
    if is_record(tp):
        return _encode_record(value, type(value))
    return _adapter(tp).dump_python(value, mode="json")


def _encode_untyped(value: Any) -> Any:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, dict):
        return {str(k): _encode_untyped(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode_untyped(v) for v in value]
    return to_json_value(value, type(value))


def _encode_fields(value: Any, cls: type) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for info in record_fields(cls):
        encoded = to_json_value(getattr(value, info.name), info.hint)
        if info.flatten:
            out.update(encoded)
        else:
            out[info.name] = encoded
    return out


def _encode_record(value: Any, cls: type) -> Any:
    if is_positional(cls):
        fields = record_fields(cls)
        if len(fields) == 1:
            return to_json_value(getattr(value, fields[0].name), fields[0].hint)
        return [to_json_value(getattr(value, f.name), f.hint) for f in fields]
    return _encode_fields(value, cls)


def _encode_variant(value: Any) -> Any:
    info = variant_of(type(value))
    if info is None:
        raise TypeError(f"{value!r} is not a variant of a union")
    if info.kind is VariantKind.UNIT:
        return info.name
    out: Dict[str, Any] = {info.union.__api_tag__: info.name}
    if info.kind is VariantKind.WRAPPED:
        out.update(to_json_value(value.value, info.wrapped))
    else:
        out.update(_encode_fields(value, info.cls))
    return out


def dumps(value: Any, tp: Any = None) -> bytes:
    """Serialize *value* to JSON bytes."""
    return json.dumps(to_json_value(value, tp)).encode()


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def from_json_value(data: Any, tp: Any, loc: Loc = ()) -> Any:
    """Build a value of type *tp* from decoded JSON *data*."""

    tp = strip_annotated(tp)
    if tp is Any or tp is object:
        return data
    if tp is None or tp is type(None):
        if data is not None:
            raise DecodeError(loc, "expected null")
        return None
    inner = optional_inner(tp)
    if inner is not None:
        return None if data is None else from_json_value(data, inner, loc)
    origin = typing.get_origin(tp) or tp
    args = typing.get_args(tp)
    if origin in (list, set, frozenset):
        items = _expect_list(data, loc)
        item = args[0] if args else Any
        decoded = [from_json_value(v, item, loc + (i,)) for i, v in enumerate(items)]
        return decoded if origin is list else origin(decoded)
    if origin is tuple:
        items = _expect_list(data, loc)
        if not args or (len(args) == 2 and args[1] is Ellipsis):
            item = args[0] if args else Any
            return tuple(from_json_value(v, item, loc + (i,)) for i, v in enumerate(items))
        if len(items) != len(args):
            raise DecodeError(loc, f"expected {len(args)} items, got {len(items)}")
        return tuple(
            from_json_value(v, a, loc + (i,)) for i, (v, a) in enumerate(zip(items, args))
        )
    if origin is dict:
        mapping = _expect_dict(data, loc)
        item = args[1] if args else Any
        return {k: from_json_value(v, item, loc + (k,)) for k, v in mapping.items()}
    if tp is bytes:
        return _decode_bytes(data, loc)
    if isinstance(tp, type) and issubclass(tp, enum.Enum):
        if not isinstance(data, str) or data not in tp.__members__:
            raise DecodeError(loc, f"expected one of {', '.join(tp.__members__)}")
        return tp.__members__[data]
    if is_union(tp):
        return _decode_union(data, tp, loc)
    info = variant_of(tp)
    if info is not None:
        value = _decode_union(data, info.union, loc)
        if not isinstance(value, tp):
            raise DecodeError(loc, f"expected variant {info.name}")
        return value
    if is_model(tp):
        try:
            return tp.model_validate(_expect_dict(data, loc))
        except ValidationError as exc:
            raise DecodeError(loc, _first_error(exc)) from exc
    if is_record(tp):
        return _decode_record(data, tp, loc)
    try:
        return _adapter(tp).validate_python(data, strict=tp not in _LAX_LEAVES)
    except ValidationError as exc:
        raise DecodeError(loc, _first_error(exc)) from exc


def _decode_bytes(data: Any, loc: Loc) -> bytes:
    if not isinstance(data, str):
        raise DecodeError(loc, "expected base64 string")
    try:
        return base64.b64decode(data, validate=True)
    except binascii.Error as exc:
        raise DecodeError(loc, f"invalid base64: {exc}") from exc


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    where = ".".join(str(part) for part in first.get("loc", ()))
    msg = first.get("msg", "invalid value")
    return f"{where}: {msg}" if where else msg


def _expect_list(data: Any, loc: Loc) -> List[Any]:
    if not isinstance(data, list):
        raise DecodeError(loc, "expected an array")
    return data


def _expect_dict(data: Any, loc: Loc) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise DecodeError(loc, "expected an object")
    return data


def _decode_fields(data: Any, cls: type, loc: Loc) -> Dict[str, Any]:
    mapping = _expect_dict(data, loc)
    kwargs: Dict[str, Any] = {}
    for info in record_fields(cls):
        if info.flatten:
            kwargs[info.name] = from_json_value(mapping, info.hint, loc)
        elif info.name in mapping:
            kwargs[info.name] = from_json_value(
                mapping[info.name], info.hint, loc + (info.name,)
            )
        elif not info.required:
            continue
        elif optional_inner(strip_annotated(info.hint)) is not None:
            kwargs[info.name] = None
        else:
            raise DecodeError(loc + (info.name,), "field required")
    return kwargs


def _decode_record(data: Any, cls: type, loc: Loc) -> Any:
    if is_positional(cls):
        fields = record_fields(cls)
        if len(fields) == 1:
            return cls(from_json_value(data, fields[0].hint, loc))
        items = _expect_list(data, loc)
        if len(items) != len(fields):
            raise DecodeError(loc, f"expected {len(fields)} items, got {len(items)}")
        return cls(
            *(
                from_json_value(v, f.hint, loc + (i,))
                for i, (v, f) in enumerate(zip(items, fields))
            )
        )
    return cls(**_decode_fields(data, cls, loc))


def _decode_union(data: Any, union: type, loc: Loc) -> Any:
    variants = union.__api_variants__
    if variants[0].kind is VariantKind.UNIT:
        if not isinstance(data, str) or union.variant_named(data) is None:
            names = ", ".join(v.name for v in variants)
            raise DecodeError(loc, f"expected one of {names}")
        return getattr(union, data)
    mapping = _expect_dict(data, loc)
    tag = union.__api_tag__
    name = mapping.get(tag)
    info = union.variant_named(name) if isinstance(name, str) else None
    if info is None:
        raise DecodeError(loc + (tag,), f"unknown variant {name!r}")
    if info.kind is VariantKind.WRAPPED:
        return info.cls(from_json_value(mapping, info.wrapped, loc))
    return info.cls(**_decode_fields(mapping, info.cls, loc))


def loads(raw: bytes | str, tp: Any) -> Any:
    """Parse JSON text and decode it as *tp*.

    Malformed JSON raises :class:`json.JSONDecodeError`; a shape mismatch
    raises :class:`DecodeError`.
    """

    return from_json_value(json.loads(raw), tp)


__all__ = ["DecodeError", "dumps", "from_json_value", "loads", "to_json_value"]
