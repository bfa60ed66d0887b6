"""
Unit tests for the aggregation stage factories.
"""

import pytest
from bson import ObjectId

from mdb_odm.aggregation.stages import (
    group_stage_factory,
    lookup_stage_factory,
    match_stage_factory,
    project_stage_factory,
    sort_stage_factory,
)
from mdb_odm.exceptions import (
    InvalidFilterError,
    MissingReferenceError,
    ModelNotFoundError,
    PipelineSpecError,
)


class TestMatchStage:
    """Test match_stage_factory()."""

    def test_object_id(self, foo_schema):
        object_id = ObjectId()
        assert match_stage_factory(foo_schema, object_id) == [{"$match": {"_id": object_id}}]

    def test_object_id_string(self, foo_schema):
        object_id = ObjectId()
        assert match_stage_factory(foo_schema, str(object_id)) == [
            {"$match": {"_id": object_id}}
        ]

    def test_filter_is_kept_verbatim(self, foo_schema):
        """Test operators and unknown keys survive the non-strict filter."""
        query = {"aString": "x", "$or": [{"aNumber": 1}], "garbage": 1}
        assert match_stage_factory(foo_schema, query) == [{"$match": query}]

    def test_prefix(self, foo_schema):
        assert match_stage_factory(foo_schema, {"aString": "x"}, prefix="foo") == [
            {"$match": {"foo.aString": "x"}}
        ]
        assert match_stage_factory(foo_schema, {"aString": "x"}, prefix="foo.") == [
            {"$match": {"foo.aString": "x"}}
        ]

    def test_invalid_spec(self, foo_schema):
        with pytest.raises(InvalidFilterError):
            match_stage_factory(foo_schema, "garbage")


class TestLookupStage:
    """Test lookup_stage_factory()."""

    def test_shallow_lookup(self, foo_schema, registry):
        assert lookup_stage_factory(foo_schema, {"aBar": True}, registry) == [
            {
                "$lookup": {
                    "from": "bars",
                    "localField": "aBar",
                    "foreignField": "_id",
                    "as": "aBar",
                }
            },
            {"$unwind": {"path": "$aBar", "preserveNullAndEmptyArrays": True}},
        ]

    def test_prefixes(self, foo_schema, registry):
        """Test from/to prefixes apply to the local and output fields."""
        stages = lookup_stage_factory(
            foo_schema, {"aBar": True}, registry, from_prefix="foo.", to_prefix="bar."
        )
        assert stages == [
            {
                "$lookup": {
                    "from": "bars",
                    "localField": "foo.aBar",
                    "foreignField": "_id",
                    "as": "bar.aBar",
                }
            },
            {"$unwind": {"path": "$bar.aBar", "preserveNullAndEmptyArrays": True}},
        ]

    def test_deep_lookup(self, foo_schema, registry):
        """Test a nested spec looks up the referenced model's references too."""
        stages = lookup_stage_factory(foo_schema, {"aBar": {"aBar": True}}, registry)
        assert stages == [
            {
                "$lookup": {
                    "from": "bars",
                    "localField": "aBar",
                    "foreignField": "_id",
                    "as": "aBar",
                }
            },
            {"$unwind": {"path": "$aBar", "preserveNullAndEmptyArrays": True}},
            {
                "$lookup": {
                    "from": "bars",
                    "localField": "aBar.aBar",
                    "foreignField": "_id",
                    "as": "aBar.aBar",
                }
            },
            {"$unwind": {"path": "$aBar.aBar", "preserveNullAndEmptyArrays": True}},
        ]

    def test_deep_lookup_with_prefixes(self, foo_schema, registry):
        """Test nested lookups continue from the prefixed output field."""
        stages = lookup_stage_factory(
            foo_schema, {"aBar": {"aBar": True}}, registry, from_prefix="foo.", to_prefix="bar."
        )
        assert stages == [
            {
                "$lookup": {
                    "from": "bars",
                    "localField": "foo.aBar",
                    "foreignField": "_id",
                    "as": "bar.aBar",
                }
            },
            {"$unwind": {"path": "$bar.aBar", "preserveNullAndEmptyArrays": True}},
            {
                "$lookup": {
                    "from": "bars",
                    "localField": "bar.aBar.aBar",
                    "foreignField": "_id",
                    "as": "bar.aBar.aBar",
                }
            },
            {"$unwind": {"path": "$bar.aBar.aBar", "preserveNullAndEmptyArrays": True}},
        ]

    def test_multiple_fields_in_spec_order(self, foo_schema, registry):
        stages = lookup_stage_factory(foo_schema, {"aFoo": True, "aBar": True}, registry)
        assert [stage["$lookup"]["as"] for stage in stages[::2]] == ["aFoo", "aBar"]
        assert stages[0]["$lookup"]["from"] == "foos"

    def test_false_skips_field(self, foo_schema, registry):
        assert lookup_stage_factory(foo_schema, {"aBar": False}, registry) == []

    def test_field_without_reference(self, foo_schema, registry):
        with pytest.raises(MissingReferenceError):
            lookup_stage_factory(foo_schema, {"aString": True}, registry)

    def test_undeclared_field(self, foo_schema, registry):
        with pytest.raises(MissingReferenceError):
            lookup_stage_factory(foo_schema, {"garbage": True}, registry)

    def test_invalid_spec_value(self, foo_schema, registry):
        with pytest.raises(PipelineSpecError):
            lookup_stage_factory(foo_schema, {"aBar": 1}, registry)

    def test_unregistered_reference(self, foo_schema, bar_schema):
        from mdb_odm.core.registry import SchemaRegistry

        with pytest.raises(ModelNotFoundError):
            lookup_stage_factory(foo_schema, {"aBar": True}, SchemaRegistry([foo_schema]))


class TestGroupAndSortStages:
    """Test group_stage_factory() and sort_stage_factory()."""

    def test_group_by_field(self, foo_schema):
        assert group_stage_factory(foo_schema, "aString") == [{"$group": {"_id": "$aString"}}]

    def test_group_body(self, foo_schema):
        body = {"_id": "$aString", "total": {"$sum": "$aNumber"}}
        assert group_stage_factory(foo_schema, body) == [{"$group": body}]

    def test_sort(self, foo_schema):
        assert sort_stage_factory(foo_schema, {"aString": 1, "aNumber": -1}) == [
            {"$sort": {"aString": 1, "aNumber": -1}}
        ]


class TestProjectStage:
    """Test project_stage_factory()."""

    def test_all_fields_and_timestamps(self, foo_schema, registry):
        assert project_stage_factory(foo_schema, registry) == [
            {
                "$project": {
                    "_id": "$_id",
                    "aString": "$aString",
                    "aNumber": "$aNumber",
                    "aBar": "$aBar",
                    "aFoo": "$aFoo",
                    "anObject": "$anObject",
                    "updatedAt": "$updatedAt",
                    "createdAt": "$createdAt",
                }
            }
        ]

    def test_prefixes(self, baz_schema, registry):
        stage = project_stage_factory(baz_schema, registry, to_prefix="baz", from_prefix="b.")
        assert stage[0]["$project"]["_id"] == "$b._id"
        assert stage[0]["$project"]["baz.aString"] == "$b.aString"
        assert "updatedAt" not in stage[0]["$project"]

    def test_exclude(self, foo_schema, registry):
        stage = project_stage_factory(foo_schema, registry, exclude=["aFoo", "createdAt"])
        assert "aFoo" not in stage[0]["$project"]
        assert "createdAt" not in stage[0]["$project"]
        assert stage[0]["$project"]["updatedAt"] == "$updatedAt"

    def test_populate(self, foo_schema, bar_schema, registry):
        """Test populated references project the referenced schema's fields."""
        stage = project_stage_factory(foo_schema, registry, populate={"aBar": True})
        populated = stage[0]["$project"]["aBar"]
        assert populated["_id"] == "$_id"
        assert list(populated)[1:] == list(bar_schema.fields)

    def test_populate_false_excludes(self, foo_schema, registry):
        stage = project_stage_factory(foo_schema, registry, populate={"aBar": False})
        assert "aBar" not in stage[0]["$project"]

    def test_nested_populate(self, foo_schema, registry):
        """Test a populate mapping is applied to the referenced schema."""
        stage = project_stage_factory(
            foo_schema,
            registry,
            populate={"aBar": {"aBar": True, "anEncryptedString": False}},
        )
        populated = stage[0]["$project"]["aBar"]

        assert populated["aString"] == "$aString"
        assert "anEncryptedString" not in populated
        assert populated["aBar"]["_id"] == "$_id"
        assert populated["aBar"]["anEncryptedString"] == "$anEncryptedString"
