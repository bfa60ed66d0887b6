"""
Aggregation pipeline stage factories.

Each factory is a pure function building one kind of stage ($match,
$lookup + $unwind, $group, $sort, $project) from a schema and a
stage-specific spec, and returns a list of stage descriptors (single-key
dicts). Factories that follow `ref` edges take the SchemaRegistry
explicitly.

Recursion in the lookup and project factories follows the mapping passed in,
not the schema graph, so it terminates with that (finite) mapping even when
schemas reference each other.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from ..constants import CREATED_AT_FIELD, ID_FIELD, UPDATED_AT_FIELD
from ..core.registry import SchemaRegistry
from ..core.schema import Schema
from ..documents.fields import field_path, prefixed
from ..documents.sanitize import sanitize_filter
from ..exceptions import MissingReferenceError, PipelineSpecError

logger = logging.getLogger(__name__)

PipelineStage = dict[str, Any]
Pipeline = list[PipelineStage]


def match_stage_factory(schema: Schema, spec: Any, prefix: str = "") -> Pipeline:
    """
    Generate the `$match` stage.

    Args:
        schema: The collection schema
        spec: A filter mapping, an ObjectId or its hex string
        prefix: Prefix prepended (dot-joined) to every key of the filter

    Returns:
        A single `$match` stage

    Example:
        # [{"$match": {"_id": ObjectId("5927f337c5178b9665b56b1e")}}]
        match_stage_factory(schema, "5927f337c5178b9665b56b1e")

        # [{"$match": {"foo.aString": "x"}}]
        match_stage_factory(schema, {"aString": "x"}, prefix="foo")
    """
    sanitized = sanitize_filter(schema, spec, strict=False)
    return [{"$match": {prefixed(key, prefix): value for key, value in sanitized.items()}}]


def lookup_stage_factory(
    schema: Schema,
    spec: Mapping[str, Any],
    registry: SchemaRegistry,
    from_prefix: str = "",
    to_prefix: str = "",
) -> Pipeline:
    """
    Generate `$lookup` + `$unwind` stages for reference fields.

    Keys of `spec` are reference fields of the schema. A value of True
    looks up the immediate reference only; a nested mapping also looks up
    the referenced model's own reference fields; False skips the key. Each
    `$lookup` is immediately followed by an `$unwind` that preserves null
    and empty arrays, so a missing reference does not drop the parent
    document.

    Args:
        schema: The collection schema
        spec: Lookup spec (see above)
        registry: Registry used to resolve referenced models
        from_prefix: Prefix of the local fields to look up
        to_prefix: Prefix of the fields the looked up documents are saved to

    Example:
        # [{"$lookup": {"from": "bars", "localField": "foo.aBar", "foreignField": "_id",
        #               "as": "bar.aBar"}},
        #  {"$unwind": {"path": "$bar.aBar", "preserveNullAndEmptyArrays": True}}]
        lookup_stage_factory(schema, {"aBar": True}, registry, from_prefix="foo.",
                             to_prefix="bar.")

    Raises:
        PipelineSpecError: A spec value is neither a boolean nor a mapping
        MissingReferenceError: The field has no `ref` in the schema
        ModelNotFoundError: The referenced model is not registered
    """
    pipe: Pipeline = []

    for key, value in spec.items():
        is_shallow = isinstance(value, bool)
        is_deep = isinstance(value, Mapping)

        if not is_shallow and not is_deep:
            raise PipelineSpecError(
                f"[{schema.model}] Invalid lookup spec for field '{key}': expected a boolean "
                f"or a mapping, got {type(value).__name__}",
                context={"model": schema.model, "field": key},
            )
        if value is False:
            continue

        descriptor = schema.fields.get(key)
        if descriptor is None or not descriptor.ref:
            raise MissingReferenceError(
                f"[{schema.model}] The field to populate does not have a reference model "
                f"specified in the schema",
                model=schema.model,
                field=key,
            )

        target_schema = registry.get_schema(descriptor.ref)
        local_field = prefixed(key, from_prefix)
        output_field = prefixed(key, to_prefix)

        pipe.append(
            {
                "$lookup": {
                    "from": target_schema.collection,
                    "localField": local_field,
                    "foreignField": ID_FIELD,
                    "as": output_field,
                }
            }
        )
        pipe.append(
            {
                "$unwind": {
                    "path": field_path(key, to_prefix),
                    "preserveNullAndEmptyArrays": True,
                }
            }
        )

        if is_deep:
            pipe.extend(
                lookup_stage_factory(
                    target_schema,
                    value,
                    registry,
                    from_prefix=output_field,
                    to_prefix=output_field,
                )
            )

    return pipe


def group_stage_factory(schema: Schema, spec: str | Mapping[str, Any]) -> Pipeline:
    """
    Generate the `$group` stage.

    A string groups by that field; a mapping is used verbatim as the
    `$group` body.

    Example:
        group_stage_factory(schema, "foo")  # [{"$group": {"_id": "$foo"}}]
    """
    if isinstance(spec, str):
        return [{"$group": {ID_FIELD: f"${spec}"}}]
    return [{"$group": dict(spec)}]


def sort_stage_factory(schema: Schema, spec: Mapping[str, Any]) -> Pipeline:
    """Generate the `$sort` stage, spec used verbatim."""
    return [{"$sort": dict(spec)}]


def project_stage_factory(
    schema: Schema,
    registry: SchemaRegistry,
    to_prefix: str = "",
    from_prefix: str = "",
    populate: Mapping[str, Any] | None = None,
    exclude: Sequence[str] | None = None,
) -> Pipeline:
    """
    Generate the `$project` stage for every field of a schema.

    `_id` is always projected. A field listed in `exclude`, or whose
    `populate` value is False, is left out. A reference field whose
    `populate` value is True or a nested mapping is projected as the
    `$project` body of the referenced schema (recursing with the nested
    mapping and no prefixes); every other field is a plain rename.
    Timestamps are projected when the schema enables them.

    Args:
        schema: The collection schema
        registry: Registry used to resolve referenced models
        to_prefix: Prefix of the projected keys
        from_prefix: Prefix of the source field paths
        populate: Reference fields to project as nested documents
        exclude: Fields to leave out

    Raises:
        ModelNotFoundError: A populated reference model is not registered
    """
    populate = populate or {}
    exclude = exclude or ()

    out: dict[str, Any] = {prefixed(ID_FIELD, to_prefix): field_path(ID_FIELD, from_prefix)}

    for key, descriptor in schema.fields.items():
        if key in exclude:
            continue

        populate_opts = populate.get(key)
        if populate_opts is False:
            continue

        if populate_opts is not None and descriptor.ref:
            target_schema = registry.get_schema(descriptor.ref)
            nested = project_stage_factory(
                target_schema,
                registry,
                populate=None if populate_opts is True else populate_opts,
            )
            out[prefixed(key, to_prefix)] = nested[0]["$project"]
        else:
            out[prefixed(key, to_prefix)] = field_path(key, from_prefix)

    if schema.timestamps:
        for key in (UPDATED_AT_FIELD, CREATED_AT_FIELD):
            if key not in exclude:
                out[prefixed(key, to_prefix)] = field_path(key, from_prefix)

    return [{"$project": out}]
