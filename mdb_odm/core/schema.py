"""
Schema declarations for MDB_ODM.

A Schema is a pure, immutable description of one collection: its fields,
indexes, cascade targets and the flags that disable operation categories.
Field types form a closed tagged union (Primitive | TypedArray | Embedded)
so validation can dispatch on them exhaustively.

Declaration shorthand is accepted and normalized on construction:

    FooSchema = Schema(
        model="Foo",
        collection="foos",
        timestamps=True,
        fields={
            "aString": FieldDescriptor(str, required=True),
            "aNumber": {"type": int, "required": True},
            "aBar": FieldDescriptor(ObjectId, ref="Bar", required=True),
            "tags": FieldDescriptor([str]),
            "address": FieldDescriptor({"city": FieldDescriptor(str)}),
        },
        indexes=[IndexSpec({"aString": 1}, {"unique": True})],
    )
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Union

from bson import ObjectId

from ..constants import ID_FIELD, TIMESTAMP_FIELDS
from ..exceptions import SchemaDefinitionError


class FieldKind(str, Enum):
    """Primitive kinds a field value can have."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    OBJECT_ID = "objectId"
    ARRAY = "array"


@dataclass(frozen=True)
class Primitive:
    """A single primitive value."""

    kind: FieldKind


@dataclass(frozen=True)
class TypedArray:
    """
    An array whose elements all share one type.

    Exactly one element type must be declared; anything else is a
    schema-definition error raised when the type is used.
    """

    item_types: tuple

    @property
    def item_type(self) -> "FieldType":
        _check_typed_array(self.item_types)
        return self.item_types[0]


def _check_typed_array(item_types: tuple) -> None:
    if len(item_types) != 1:
        raise SchemaDefinitionError(
            "Incorrect definition of a typed array type: when specifying a type as "
            "an array of another type, wrap the type with [], hence a one-element array",
            context={"item_types": len(item_types)},
        )


@dataclass(frozen=True)
class Embedded:
    """An embedded document with its own field descriptors."""

    fields: Mapping[str, "FieldDescriptor"]

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "fields",
            MappingProxyType({k: as_field_descriptor(v) for k, v in self.fields.items()}),
        )


FieldType = Union[Primitive, TypedArray, Embedded]

_PYTHON_TYPES: dict[Any, FieldKind] = {
    bool: FieldKind.BOOLEAN,
    str: FieldKind.STRING,
    int: FieldKind.NUMBER,
    float: FieldKind.NUMBER,
    datetime: FieldKind.DATE,
    ObjectId: FieldKind.OBJECT_ID,
    list: FieldKind.ARRAY,
}


def as_field_type(value: Any) -> FieldType:
    """
    Normalize a type declaration into the FieldType union.

    Raises:
        SchemaDefinitionError: If the declaration is not a supported type
    """
    if isinstance(value, (Primitive, TypedArray, Embedded)):
        return value
    if isinstance(value, FieldKind):
        return Primitive(value)
    if isinstance(value, type) and value in _PYTHON_TYPES:
        return Primitive(_PYTHON_TYPES[value])
    if isinstance(value, (list, tuple)):
        item_types = tuple(as_field_type(v) for v in value)
        _check_typed_array(item_types)
        return TypedArray(item_types)
    if isinstance(value, Mapping):
        return Embedded(value)
    raise SchemaDefinitionError(f"Unsupported field type declaration: {value!r}")


@dataclass(frozen=True)
class FieldDescriptor:
    """
    Describes one field of a schema.

    Attributes:
        type: The field type (any declaration accepted by as_field_type)
        ref: Name of the model this field's ObjectId points to
        required: Whether the field must be present at strict validation time
        encrypted: Whether the value is replaced by a one-way hash on write
    """

    type: Any
    ref: str | None = None
    required: bool = False
    encrypted: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", as_field_type(self.type))


def as_field_descriptor(value: Any) -> FieldDescriptor:
    """Accept a FieldDescriptor or its dict form ({"type": ..., "required": ...})."""
    if isinstance(value, FieldDescriptor):
        return value
    if isinstance(value, Mapping) and "type" in value:
        return FieldDescriptor(**value)
    raise SchemaDefinitionError(f"Invalid field descriptor: {value!r}")


@dataclass(frozen=True)
class IndexSpec:
    """A secondary index, passed through to create_index()."""

    spec: Mapping[str, Any]
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Schema:
    """
    Describes one collection/model.

    Flags default to everything enabled except upserts.
    """

    model: str
    collection: str
    fields: Mapping[str, FieldDescriptor]
    timestamps: bool = False
    indexes: tuple = ()
    cascade: tuple = ()
    allow_upserts: bool = False
    no_inserts: bool = False
    no_insert_many: bool = False
    no_updates: bool = False
    no_update_many: bool = False
    no_deletes: bool = False
    no_delete_many: bool = False

    def __post_init__(self) -> None:
        if not self.model:
            raise SchemaDefinitionError("Schema model name is required")
        if not self.collection:
            raise SchemaDefinitionError("Schema collection name is required", model=self.model)

        object.__setattr__(
            self,
            "fields",
            MappingProxyType({k: as_field_descriptor(v) for k, v in self.fields.items()}),
        )
        object.__setattr__(
            self,
            "indexes",
            tuple(i if isinstance(i, IndexSpec) else IndexSpec(**i) for i in self.indexes),
        )
        object.__setattr__(self, "cascade", tuple(self.cascade))

    @property
    def timestamp_fields(self) -> tuple[str, ...]:
        """Timestamp fields managed for this schema (empty when disabled)."""
        return TIMESTAMP_FIELDS if self.timestamps else ()

    def is_reserved_key(self, key: str) -> bool:
        """Check if a key is `_id` or an enabled timestamp field."""
        return key == ID_FIELD or key in self.timestamp_fields

    def __str__(self) -> str:
        return f"Schema({self.model})"
