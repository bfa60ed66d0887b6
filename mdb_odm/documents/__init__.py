"""
Document pipeline: field resolution, sanitization, formatting and validation.
"""

from .fields import field_path, prefixed, resolve_field
from .formatting import FieldFormatter, format_document, hash_value
from .sanitize import (
    is_object_id,
    is_object_id_convertible,
    is_plain_document,
    is_update_descriptor,
    sanitize_document,
    sanitize_filter,
    sanitize_update,
)
from .validation import FieldValidationStrategy, validate_field_value

__all__ = [
    # Fields
    "resolve_field",
    "prefixed",
    "field_path",
    # Sanitization
    "sanitize_document",
    "sanitize_filter",
    "sanitize_update",
    "is_object_id",
    "is_object_id_convertible",
    "is_plain_document",
    "is_update_descriptor",
    # Formatting
    "FieldFormatter",
    "format_document",
    "hash_value",
    # Validation
    "FieldValidationStrategy",
    "validate_field_value",
]
