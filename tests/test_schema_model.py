"""Tests for the schema model and structural validation."""

from rpcbridge.schema import (
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
    validate,
)


def test_wire_format_uses_type_discriminant() -> None:
    node = SchemaNode(
        Object(
            {
                "id": SchemaNode(Number(), "Identifier"),
                "tags": SchemaNode(ArrayOf(SchemaNode(String()))),
                "extra": SchemaNode(OptionalOf(SchemaNode(AnyValue()))),
            }
        ),
        "A thing",
    )
    assert node.to_json() == {
        "description": "A thing",
        "shape": {
            "type": "Object",
            "keys": {
                "id": {"description": "Identifier", "shape": {"type": "Number"}},
                "tags": {
                    "description": "",
                    "shape": {
                        "type": "ArrayOf",
                        "value": {"description": "", "shape": {"type": "String"}},
                    },
                },
                "extra": {
                    "description": "",
                    "shape": {
                        "type": "Optional",
                        "value": {"description": "", "shape": {"type": "Any"}},
                    },
                },
            },
        },
    }


def test_wire_format_of_remaining_shapes() -> None:
    assert SchemaNode(StringLiteral("A")).to_json()["shape"] == {
        "type": "StringLiteral",
        "literal": "A",
    }
    tup = SchemaNode(TupleOf((SchemaNode(Boolean()), SchemaNode(Null()))))
    assert tup.to_json()["shape"]["type"] == "TupleOf"
    assert [v["shape"]["type"] for v in tup.to_json()["shape"]["values"]] == [
        "Boolean",
        "Null",
    ]
    assert SchemaNode(ObjectOf(SchemaNode(Number()))).to_json()["shape"]["type"] == "ObjectOf"
    one = SchemaNode(OneOf((SchemaNode(StringLiteral("x")),)))
    assert one.to_json()["shape"]["values"][0]["shape"]["literal"] == "x"


def test_nodes_compare_structurally() -> None:
    a = SchemaNode(Object({"x": SchemaNode(Number())}), "d")
    b = SchemaNode(Object({"x": SchemaNode(Number())}), "d")
    assert a == b
    assert a != a.with_description("other")


def test_validate_primitives() -> None:
    assert validate("s", SchemaNode(String()))
    assert validate(1.5, SchemaNode(Number()))
    assert not validate(True, SchemaNode(Number()))
    assert validate(False, SchemaNode(Boolean()))
    assert validate(None, SchemaNode(Null()))
    assert validate({"anything": [1]}, SchemaNode(AnyValue()))
    assert not validate(1, SchemaNode(String()))


def test_validate_containers() -> None:
    tup = SchemaNode(TupleOf((SchemaNode(String()), SchemaNode(Number()))))
    assert validate(["a", 1], tup)
    assert not validate(["a"], tup)
    assert validate({"a": 1, "b": 2}, SchemaNode(ObjectOf(SchemaNode(Number()))))
    assert not validate([1, "x"], SchemaNode(ArrayOf(SchemaNode(Number()))))


def test_validate_object_and_one_of() -> None:
    obj = SchemaNode(
        Object(
            {
                "kind": SchemaNode(StringLiteral("Lark")),
                "hello": SchemaNode(String()),
                "note": SchemaNode(OptionalOf(SchemaNode(String()))),
            }
        )
    )
    assert validate({"kind": "Lark", "hello": "hi"}, obj)
    assert validate({"kind": "Lark", "hello": "hi", "note": None, "extra": 1}, obj)
    assert not validate({"kind": "Owl", "hello": "hi"}, obj)
    assert not validate({"kind": "Lark"}, obj)
    either = SchemaNode(OneOf((SchemaNode(StringLiteral("A")), SchemaNode(StringLiteral("B")))))
    assert validate("B", either)
    assert not validate("C", either)
