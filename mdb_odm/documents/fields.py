"""
Field resolution against a (possibly nested) field descriptor tree.
"""

from collections.abc import Mapping

from ..core.schema import Embedded, FieldDescriptor


def resolve_field(fields: Mapping[str, FieldDescriptor], key: str) -> FieldDescriptor | None:
    """
    Find the descriptor of a field by its key.

    The key can be in dot notation to reach fields of embedded documents,
    e.g. "address.city". Every segment but the last must name an embedded
    document field.

    Args:
        fields: The field descriptor tree (usually `schema.fields`)
        key: Field key, optionally dot-notated

    Returns:
        The descriptor of the terminal segment, or None if the key does not
        resolve.
    """
    head, _, rest = key.partition(".")
    descriptor = fields.get(head)
    if descriptor is None:
        return None
    if not rest:
        return descriptor
    if not isinstance(descriptor.type, Embedded):
        return None
    return resolve_field(descriptor.type.fields, rest)


def prefixed(field: str, prefix: str = "") -> str:
    """
    Prepend a prefix to a field, dot-joined.

    Empty segments are dropped so "foo" and "foo." behave the same.

    Example:
        prefixed("aBar", "foo.")  # "foo.aBar"
        prefixed("aBar")          # "aBar"
    """
    return ".".join(part for part in f"{prefix}.{field}".split(".") if part)


def field_path(field: str, prefix: str = "") -> str:
    """
    Return the `$`-path of a field for use in aggregation expressions.

    Example:
        field_path("aBar", "bar.")  # "$bar.aBar"
    """
    return "$" + prefixed(field, prefix).lstrip("$")
