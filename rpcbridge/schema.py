"""Structural schema model describing the JSON shape of API bodies.

A :class:`SchemaNode` pairs a human readable description with a
:class:`Shape`. The set of shapes is closed; client generators can map each
one directly onto a static type (``string``, ``number``, ``Foo[]`` ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple


class Shape:
    """Base class for the closed set of schema shapes."""

    type_name = ""

    def to_json(self) -> Dict[str, Any]:
        return {"type": self.type_name}


@dataclass(frozen=True)
class String(Shape):
    type_name = "String"


@dataclass(frozen=True)
class Number(Shape):
    type_name = "Number"


@dataclass(frozen=True)
class Boolean(Shape):
    type_name = "Boolean"


@dataclass(frozen=True)
class Null(Shape):
    type_name = "Null"


@dataclass(frozen=True)
class AnyValue(Shape):
    """A value whose shape cannot be determined statically."""

    type_name = "Any"


@dataclass(frozen=True)
class ArrayOf(Shape):
    value: "SchemaNode"
    type_name = "ArrayOf"

    def to_json(self) -> Dict[str, Any]:
        return {"type": self.type_name, "value": self.value.to_json()}


@dataclass(frozen=True)
class TupleOf(Shape):
    """A fixed length array of possibly mixed values."""

    values: Tuple["SchemaNode", ...]
    type_name = "TupleOf"

    def to_json(self) -> Dict[str, Any]:
        return {
            "type": self.type_name,
            "values": [node.to_json() for node in self.values],
        }


@dataclass(frozen=True)
class ObjectOf(Shape):
    """A map from string keys to values of one type."""

    value: "SchemaNode"
    type_name = "ObjectOf"

    def to_json(self) -> Dict[str, Any]:
        return {"type": self.type_name, "value": self.value.to_json()}


@dataclass(frozen=True)
class Object(Shape):
    """An object with a fixed set of named keys."""

    keys: Dict[str, "SchemaNode"] = field(hash=False)
    type_name = "Object"

    def to_json(self) -> Dict[str, Any]:
        return {
            "type": self.type_name,
            "keys": {name: node.to_json() for name, node in self.keys.items()},
        }


@dataclass(frozen=True)
class OneOf(Shape):
    """One of several discriminated alternatives."""

    values: Tuple["SchemaNode", ...]
    type_name = "OneOf"

    def to_json(self) -> Dict[str, Any]:
        return {
            "type": self.type_name,
            "values": [node.to_json() for node in self.values],
        }


@dataclass(frozen=True)
class StringLiteral(Shape):
    literal: str
    type_name = "StringLiteral"

    def to_json(self) -> Dict[str, Any]:
        return {"type": self.type_name, "literal": self.literal}


@dataclass(frozen=True)
class OptionalOf(Shape):
    """A value that may be ``null``."""

    value: "SchemaNode"
    type_name = "Optional"

    def to_json(self) -> Dict[str, Any]:
        return {"type": self.type_name, "value": self.value.to_json()}


@dataclass(frozen=True)
class SchemaNode:
    """Shape of a value together with its description."""

    shape: Shape
    description: str = ""

    def to_json(self) -> Dict[str, Any]:
        """Return the wire representation consumed by client generators."""
        return {"description": self.description, "shape": self.shape.to_json()}

    def with_description(self, description: str) -> "SchemaNode":
        return SchemaNode(self.shape, description)


def validate(value: Any, node: SchemaNode) -> bool:
    """Return ``True`` if decoded JSON *value* conforms to *node*."""

    shape = node.shape
    if isinstance(shape, AnyValue):
        return True
    if isinstance(shape, String):
        return isinstance(value, str)
    if isinstance(shape, Number):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if isinstance(shape, Boolean):
        return isinstance(value, bool)
    if isinstance(shape, Null):
        return value is None
    if isinstance(shape, StringLiteral):
        return value == shape.literal
    if isinstance(shape, OptionalOf):
        return value is None or validate(value, shape.value)
    if isinstance(shape, ArrayOf):
        return isinstance(value, list) and all(
            validate(item, shape.value) for item in value
        )
    if isinstance(shape, TupleOf):
        return (
            isinstance(value, list)
            and len(value) == len(shape.values)
            and all(validate(v, n) for v, n in zip(value, shape.values))
        )
    if isinstance(shape, ObjectOf):
        return isinstance(value, dict) and all(
            isinstance(k, str) and validate(v, shape.value) for k, v in value.items()
        )
    if isinstance(shape, Object):
        if not isinstance(value, dict):
            return False
        for name, child in shape.keys.items():
            if name not in value:
                if isinstance(child.shape, OptionalOf):
                    continue
                return False
            if not validate(value[name], child):
                return False
        return True
    if isinstance(shape, OneOf):
        return any(validate(value, alt) for alt in shape.values)
    raise TypeError(f"Unknown shape {shape!r}")


__all__ = [
    "AnyValue",
    "ArrayOf",
    "Boolean",
    "Null",
    "Number",
    "Object",
    "ObjectOf",
    "OneOf",
    "OptionalOf",
    "SchemaNode",
    "Shape",
    "String",
    "StringLiteral",
    "TupleOf",
    "validate",
]
