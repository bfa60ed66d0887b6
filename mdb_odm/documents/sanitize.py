"""
Document sanitization.

Sanitization is silently lossy: keys that are not `_id`, enabled timestamps
or declared fields are dropped, as are keys whose value is None. Nothing
here raises for extraneous input; filters are built "strict" by simply
discarding what the schema does not declare.
"""

import copy
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId

from ..constants import ID_FIELD, SANITIZED_UPDATE_OPERATORS, UPDATED_AT_FIELD
from ..core.schema import Schema
from ..exceptions import InvalidFilterError
from .fields import resolve_field


def is_object_id(value: Any) -> bool:
    """Check if a value is a valid ObjectId instance."""
    return isinstance(value, ObjectId) and ObjectId.is_valid(value)


def is_object_id_convertible(value: Any) -> bool:
    """
    Check if a value can be converted to an ObjectId without loss.

    Only ObjectId instances and 24-character hex strings qualify; 12-byte
    strings, which bson also accepts, do not.
    """
    if value is None:
        return False
    if isinstance(value, ObjectId):
        return True
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        return False
    return str(ObjectId(value)) == value.lower()


def is_update_descriptor(value: Any) -> bool:
    """Check if a value is a mapping keyed by update operators."""
    return isinstance(value, Mapping) and any(str(k).startswith("$") for k in value)


def is_plain_document(value: Any) -> bool:
    """Check if a value is a mapping without any operator keys."""
    return isinstance(value, Mapping) and not any(str(k).startswith("$") for k in value)


def sanitize_document(
    schema: Schema,
    doc: Mapping[str, Any],
    account_for_dot_notation: bool = False,
) -> dict[str, Any]:
    """
    Remove all extraneous fields from a (partial) document.

    Args:
        schema: The collection schema
        doc: The document fragment to sanitize
        account_for_dot_notation: Accept dot-notated keys that resolve to
            fields of embedded documents (e.g. "anObject.aString")

    Returns:
        A new dict with only the surviving keys. Values are copied verbatim.

    Example:
        # Returns {"a": "b"}
        sanitize_document(schema, {"a": "b", "garbage": "garbage", "c": None})
    """
    out: dict[str, Any] = {}

    for key, value in doc.items():
        if value is None:
            continue

        if not schema.is_reserved_key(key):
            if account_for_dot_notation:
                if resolve_field(schema.fields, key) is None:
                    continue
            elif key not in schema.fields:
                continue

        out[key] = value

    return out


def sanitize_filter(schema: Schema, query: Any, strict: bool = True) -> dict[str, Any]:
    """
    Transform any supported value into a query filter.

    1. Wraps an ObjectId (or its hex string) into {"_id": ObjectId(...)}.
    2. In strict mode, strips every field the schema does not declare
       (dot notation is accounted for). Otherwise the mapping is returned
       as a shallow copy, operators included.

    No data validation happens here.

    Raises:
        InvalidFilterError: If the value is neither an identifier nor a mapping
    """
    if isinstance(query, ObjectId):
        return {ID_FIELD: query}

    if isinstance(query, str):
        if not is_object_id_convertible(query):
            raise InvalidFilterError(
                f"[{schema.model}] The string filter '{query}' is not a valid ObjectId",
                context={"model": schema.model},
            )
        return {ID_FIELD: ObjectId(query)}

    if not isinstance(query, Mapping):
        raise InvalidFilterError(
            f"[{schema.model}] Filter must be an ObjectId, its hex string or a mapping, "
            f"got {type(query).__name__}",
            context={"model": schema.model},
        )

    if strict:
        return sanitize_document(schema, query, account_for_dot_notation=True)

    return dict(query)


def sanitize_update(
    schema: Schema,
    update: Mapping[str, Any],
    ignore_timestamps: bool = False,
) -> dict[str, Any]:
    """
    Transform an update descriptor into an update document for the driver.

    A plain fragment is treated as `$set`. Keys of `$set` whose value is
    None are moved to `$unset`. `updatedAt` is stamped when the schema has
    timestamps (unless a datetime is already provided or `ignore_timestamps`).
    `$set`, `$setOnInsert`, `$addToSet` and `$push` are sanitized against
    the schema, and operators left empty are dropped.

    The input is never mutated.
    """
    if is_update_descriptor(update):
        out: dict[str, Any] = copy.deepcopy(dict(update))
    else:
        out = {"$set": copy.deepcopy(dict(update))}

    set_operator: dict[str, Any] = out.get("$set") or {}
    unset_fields = [
        key
        for key, value in set_operator.items()
        if value is None
        and (key in schema.timestamp_fields or resolve_field(schema.fields, key) is not None)
    ]

    if (
        schema.timestamps
        and not ignore_timestamps
        and not isinstance(set_operator.get(UPDATED_AT_FIELD), datetime)
    ):
        set_operator[UPDATED_AT_FIELD] = datetime.now(timezone.utc)

    out["$set"] = sanitize_document(schema, set_operator, account_for_dot_notation=True)

    unset_operator: dict[str, Any] = dict(out.get("$unset") or {})
    for key in unset_fields:
        unset_operator[key] = ""
    out["$unset"] = unset_operator

    for operator in SANITIZED_UPDATE_OPERATORS:
        if out.get(operator):
            out[operator] = sanitize_document(schema, out[operator], account_for_dot_notation=True)

    return {operator: value for operator, value in out.items() if value not in (None, {}, [])}
