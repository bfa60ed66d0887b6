"""
Pipeline factory.

Combines the stage factories into one ordered aggregation pipeline. `$match`
and `$lookup` stages are prepended to the pipeline being built, `$prune`,
`$group` and `$sort` stages are appended to it, so calls can be nested to
wrap outer filtering and joins around an inner pipeline fragment.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from ..constants import PIPELINE_OPERATORS
from ..core.registry import SchemaRegistry
from ..core.schema import Schema
from .stages import (
    Pipeline,
    group_stage_factory,
    lookup_stage_factory,
    match_stage_factory,
    sort_stage_factory,
)


def is_pipeline_operators(value: Any) -> bool:
    """Check if a value is a non-empty mapping of pipeline factory operators only."""
    if not isinstance(value, Mapping) or not value:
        return False
    return all(key in PIPELINE_OPERATORS for key in value)


def is_pipeline(value: Any) -> bool:
    """Check if a value is an aggregation pipeline (a list of stages)."""
    return isinstance(value, list)


def pipeline_factory(
    schema: Schema,
    registry: SchemaRegistry,
    operators: Mapping[str, Any] | None = None,
    prefix: str = "",
    pipeline: Sequence[Mapping[str, Any]] | None = None,
) -> Pipeline:
    """
    Generate a full aggregation pipeline from an operator bag.

    Args:
        schema: The collection schema
        registry: Registry used to resolve referenced models
        operators: Mapping with any of `$lookup`, `$match`, `$prune`,
            `$group`, `$sort`
        prefix: Prefix applied to the `$match` and `$lookup` stages
        pipeline: Pipeline to build around (not mutated)

    Returns:
        `$match` stage, `$lookup`/`$unwind` stages, the given pipeline,
        then the `$prune`, `$group` and `$sort` stages

    Example:
        pipeline_factory(schema, registry, {"$match": some_id, "$lookup": {"aBar": True}})
    """
    operators = operators or {}
    out: Pipeline = [dict(stage) for stage in (pipeline or [])]

    if operators.get("$lookup") is not None:
        out = (
            lookup_stage_factory(
                schema, operators["$lookup"], registry, from_prefix=prefix, to_prefix=prefix
            )
            + out
        )

    if operators.get("$match") is not None:
        out = match_stage_factory(schema, operators["$match"], prefix=prefix) + out

    if operators.get("$prune") is not None:
        out = out + match_stage_factory(schema, operators["$prune"])

    if operators.get("$group") is not None:
        out = out + group_stage_factory(schema, operators["$group"])

    if operators.get("$sort") is not None:
        out = out + sort_stage_factory(schema, operators["$sort"])

    return out
