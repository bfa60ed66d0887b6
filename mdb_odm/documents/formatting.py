"""
Document formatting.

Applies the model's per-field format functions, then replaces encrypted
fields with a bcrypt hash of their string value. Formatting assumes the
fragment was already sanitized against the schema.
"""

import copy
import inspect
import logging
from collections.abc import Callable, Mapping
from typing import Any

import bcrypt

from ..constants import DEFAULT_BCRYPT_ROUNDS
from ..core.schema import Schema
from ..exceptions import SchemaDefinitionError
from .fields import resolve_field

logger = logging.getLogger(__name__)

FieldFormatter = Callable[[Any], Any]


def hash_value(value: Any, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Return a bcrypt hash of the string representation of a value."""
    return bcrypt.hashpw(str(value).encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode(
        "utf-8"
    )


async def format_document(
    schema: Schema,
    doc: Mapping[str, Any],
    formatters: Mapping[str, FieldFormatter] | None = None,
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
) -> dict[str, Any]:
    """
    Format a document fragment according to the schema and the model's formatters.

    The input is deep-copied and never mutated. Per top-level field the
    formatter runs first (awaited if it returns an awaitable), then the
    value is hashed if the field is `encrypted`. `_id`, enabled timestamps
    and dot-notated keys of embedded fields pass through unchanged.

    Args:
        schema: The collection schema
        doc: The sanitized document fragment
        formatters: Mapping of field name to format function
        bcrypt_rounds: Cost factor for encrypted fields

    Returns:
        The formatted copy of the fragment

    Raises:
        SchemaDefinitionError: A key is not declared in the schema
    """
    formatters = formatters or {}
    formatted = copy.deepcopy(dict(doc))

    for key in list(formatted):
        descriptor = schema.fields.get(key)

        if descriptor is None:
            if schema.is_reserved_key(key) or resolve_field(schema.fields, key) is not None:
                continue
            raise SchemaDefinitionError(
                f"[{schema.model}] Field {key} not found in schema", model=schema.model, field=key
            )

        formatter = formatters.get(key)
        if callable(formatter):
            value = formatter(formatted[key])
            if inspect.isawaitable(value):
                value = await value
            formatted[key] = value

        if descriptor.encrypted:
            formatted[key] = hash_value(formatted[key], rounds=bcrypt_rounds)
            logger.debug(f"[{schema.model}] Encrypted field '{key}'")

    return formatted
