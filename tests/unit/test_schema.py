"""
Unit tests for schema declarations.

Tests field type normalization, descriptor shorthand and schema flags.
"""

from datetime import datetime
from types import MappingProxyType

import pytest
from bson import ObjectId

from mdb_odm.core.schema import (
    Embedded,
    FieldDescriptor,
    FieldKind,
    IndexSpec,
    Primitive,
    Schema,
    TypedArray,
    as_field_descriptor,
    as_field_type,
)
from mdb_odm.exceptions import SchemaDefinitionError


class TestFieldTypeNormalization:
    """Test as_field_type() shorthand handling."""

    @pytest.mark.parametrize(
        "declaration,kind",
        [
            (str, FieldKind.STRING),
            (int, FieldKind.NUMBER),
            (float, FieldKind.NUMBER),
            (bool, FieldKind.BOOLEAN),
            (datetime, FieldKind.DATE),
            (ObjectId, FieldKind.OBJECT_ID),
            (list, FieldKind.ARRAY),
            (FieldKind.STRING, FieldKind.STRING),
        ],
    )
    def test_primitive_declarations(self, declaration, kind):
        """Test Python types and kinds normalize to primitives."""
        assert as_field_type(declaration) == Primitive(kind)

    def test_typed_array_declaration(self):
        """Test a one-element list declares a typed array."""
        field_type = as_field_type([ObjectId])
        assert isinstance(field_type, TypedArray)
        assert field_type.item_type == Primitive(FieldKind.OBJECT_ID)

    @pytest.mark.parametrize("declaration", [[], [str, int]])
    def test_typed_array_requires_one_element(self, declaration):
        """Test typed arrays must declare exactly one element type."""
        with pytest.raises(SchemaDefinitionError) as exc_info:
            as_field_type(declaration)
        assert "one-element array" in str(exc_info.value)

    def test_typed_array_item_type_checks_arity(self):
        """Test a hand-built malformed typed array fails when used."""
        field_type = TypedArray(())
        with pytest.raises(SchemaDefinitionError):
            field_type.item_type

    def test_embedded_declaration(self):
        """Test a mapping declares an embedded document."""
        field_type = as_field_type({"city": {"type": str, "required": True}})
        assert isinstance(field_type, Embedded)
        assert isinstance(field_type.fields, MappingProxyType)
        assert field_type.fields["city"] == FieldDescriptor(str, required=True)

    def test_unsupported_declaration(self):
        """Test unsupported declarations raise."""
        with pytest.raises(SchemaDefinitionError):
            as_field_type(complex)


class TestFieldDescriptor:
    """Test FieldDescriptor normalization."""

    def test_defaults(self):
        """Test descriptor flag defaults."""
        descriptor = FieldDescriptor(str)
        assert descriptor.type == Primitive(FieldKind.STRING)
        assert descriptor.ref is None
        assert descriptor.required is False
        assert descriptor.encrypted is False

    def test_dict_form(self):
        """Test the dict shorthand is accepted."""
        descriptor = as_field_descriptor({"type": ObjectId, "ref": "Bar", "required": True})
        assert descriptor == FieldDescriptor(ObjectId, ref="Bar", required=True)

    def test_invalid_descriptor(self):
        """Test a value without a type is rejected."""
        with pytest.raises(SchemaDefinitionError):
            as_field_descriptor({"required": True})

    def test_descriptor_is_frozen(self):
        """Test descriptors are immutable."""
        descriptor = FieldDescriptor(str)
        with pytest.raises(AttributeError):
            descriptor.required = True


class TestSchema:
    """Test Schema construction and helpers."""

    def test_fields_are_normalized(self, foo_schema):
        """Test dict descriptors and indexes are normalized."""
        schema = Schema(
            model="Qux",
            collection="quxs",
            fields={"aString": {"type": str}},
            indexes=[{"spec": {"aString": 1}, "options": {"unique": True}}],
            cascade=["Foo"],
        )
        assert schema.fields["aString"] == FieldDescriptor(str)
        assert schema.indexes == (IndexSpec({"aString": 1}, {"unique": True}),)
        assert schema.cascade == ("Foo",)

    def test_field_order_is_preserved(self, foo_schema):
        """Test fields keep their declaration order."""
        assert list(foo_schema.fields) == ["aString", "aNumber", "aBar", "aFoo", "anObject"]

    def test_flag_defaults(self, baz_schema):
        """Test every operation is enabled except those set."""
        assert baz_schema.allow_upserts is True
        assert baz_schema.no_inserts is False
        assert baz_schema.no_delete_many is False
        assert baz_schema.timestamps is False

    def test_missing_names(self):
        """Test model and collection names are required."""
        with pytest.raises(SchemaDefinitionError):
            Schema(model="", collection="quxs", fields={})
        with pytest.raises(SchemaDefinitionError):
            Schema(model="Qux", collection="", fields={})

    def test_reserved_keys(self, foo_schema, bar_schema):
        """Test _id is always reserved and timestamps only when enabled."""
        assert foo_schema.is_reserved_key("_id")
        assert foo_schema.is_reserved_key("createdAt")
        assert foo_schema.is_reserved_key("updatedAt")
        assert bar_schema.is_reserved_key("_id")
        assert not bar_schema.is_reserved_key("updatedAt")
        assert not foo_schema.is_reserved_key("aString")

    def test_str(self, foo_schema):
        assert str(foo_schema) == "Schema(Foo)"
