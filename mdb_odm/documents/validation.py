"""
Field value validation.

Checks a value against its field descriptor and an optional validation
strategy supplied by the model. The strategy can be one of:

1. A compiled regex: the (string) value must match it.
2. A number: a string's length, or a number's value, must be <= it.
3. A list/tuple/set: the value must be one of its elements.
4. A callable: called with the value, it must return True. An async
   function is not awaited here: its pending check is returned to the
   caller, which must await it.

Which kinds are legal depends on the field type; an illegal combination
raises UnsupportedStrategyError. A callable strategy is always applied last,
on top of the required and type checks.
"""

import dataclasses
import inspect
import re
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from typing import Any, Union

from ..core.schema import Embedded, FieldDescriptor, FieldKind, Primitive, TypedArray
from ..exceptions import (
    FieldTypeError,
    RequiredFieldError,
    SchemaDefinitionError,
    StrategyFailedError,
    UnsupportedStrategyError,
)
from .sanitize import is_object_id

FieldValidationStrategy = Union[re.Pattern, int, float, list, tuple, set, frozenset, Callable]

_REGEX = "RegExp"
_NUMBER = "number"
_COLLECTION = "array"
_FUNCTION = "function"

_ALLOWED_STRATEGIES: dict[FieldKind, frozenset] = {
    FieldKind.STRING: frozenset({_REGEX, _NUMBER, _COLLECTION, _FUNCTION}),
    FieldKind.NUMBER: frozenset({_NUMBER, _COLLECTION, _FUNCTION}),
    FieldKind.BOOLEAN: frozenset({_COLLECTION, _FUNCTION}),
    FieldKind.DATE: frozenset({_FUNCTION}),
    FieldKind.OBJECT_ID: frozenset({_FUNCTION}),
    FieldKind.ARRAY: frozenset({_FUNCTION}),
}
_FUNCTION_ONLY = frozenset({_FUNCTION})


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


_KIND_CHECKS: dict[FieldKind, Callable[[Any], bool]] = {
    FieldKind.STRING: lambda v: isinstance(v, str),
    FieldKind.NUMBER: _is_number,
    FieldKind.BOOLEAN: lambda v: isinstance(v, bool),
    FieldKind.DATE: lambda v: isinstance(v, datetime),
    FieldKind.OBJECT_ID: is_object_id,
    FieldKind.ARRAY: lambda v: isinstance(v, (list, tuple)),
}


def _strategy_kind(strategy: Any) -> str:
    if isinstance(strategy, re.Pattern):
        return _REGEX
    if _is_number(strategy):
        return _NUMBER
    if isinstance(strategy, (list, tuple, set, frozenset)):
        return _COLLECTION
    if callable(strategy):
        return _FUNCTION
    raise UnsupportedStrategyError(
        f"Unknown validation strategy {strategy!r}", context={"strategy": type(strategy).__name__}
    )


def _check_strategy_allowed(
    strategy: Any, allowed: frozenset, type_label: str, field: str | None
) -> str | None:
    if strategy is None:
        return None
    kind = _strategy_kind(strategy)
    if kind not in allowed:
        raise UnsupportedStrategyError(
            f"The {kind} validation method is not supported for {type_label} values",
            field=field,
        )
    return kind


def _type_error(value: Any, expected: str, field: str | None) -> FieldTypeError:
    return FieldTypeError(
        f"The value {value!r} is expected to be a(n) {expected} but instead it is a(n) "
        f"{type(value).__name__}",
        field=field,
        value=value,
    )


def _validate_primitive(value: Any, kind: FieldKind, strategy: Any, field: str | None) -> None:
    if not _KIND_CHECKS[kind](value):
        raise _type_error(value, kind.value, field)

    strategy_kind = _check_strategy_allowed(strategy, _ALLOWED_STRATEGIES[kind], kind.value, field)

    if strategy_kind == _REGEX:
        if not strategy.search(value):
            raise StrategyFailedError(
                f"The string value does not conform to the RegExp validator: {strategy.pattern}",
                field=field,
                value=value,
            )
    elif strategy_kind == _NUMBER:
        measured = len(value) if kind == FieldKind.STRING else value
        if measured > strategy:
            subject = "length of the string value" if kind == FieldKind.STRING else "number value"
            raise StrategyFailedError(
                f"The {subject} {value!r} must be less than or equal to {strategy}",
                field=field,
                value=value,
            )
    elif strategy_kind == _COLLECTION:
        if value not in strategy:
            raise StrategyFailedError(
                f"The {kind.value} value {value!r} is not an element of {list(strategy)!r}",
                field=field,
                value=value,
            )


def validate_field_value(
    value: Any,
    descriptor: FieldDescriptor,
    strategy: FieldValidationStrategy | None = None,
    field: str | None = None,
) -> Awaitable[None] | None:
    """
    Check a value against a field descriptor.

    Args:
        value: The value to check
        descriptor: The field descriptor from the schema
        strategy: Optional validation strategy (see module docstring)
        field: Field name, used in error messages only

    Returns:
        None, or the pending check of an async validation function. Awaiting
        it raises StrategyFailedError when the function returns a falsy value.

    Raises:
        RequiredFieldError: Value is None but the field is required
        FieldTypeError: Value is not of the declared type
        StrategyFailedError: Value does not pass the strategy
        UnsupportedStrategyError: Strategy kind is illegal for the field type
        SchemaDefinitionError: The typed array declaration is malformed
    """
    if value is None:
        if descriptor.required:
            raise RequiredFieldError(
                "The value is marked as required but it is None", field=field, value=value
            )
        return

    field_type = descriptor.type

    if isinstance(field_type, Primitive):
        _validate_primitive(value, field_type.kind, strategy, field)

    elif isinstance(field_type, TypedArray):
        item_type = field_type.item_type
        if not isinstance(value, (list, tuple)):
            raise _type_error(value, "typed array", field)
        _check_strategy_allowed(strategy, _FUNCTION_ONLY, "typed array", field)

        item_descriptor = dataclasses.replace(descriptor, type=item_type)
        for index, item in enumerate(value):
            validate_field_value(item, item_descriptor, field=_child(field, str(index)))

    elif isinstance(field_type, Embedded):
        if not isinstance(value, Mapping):
            raise _type_error(value, "object", field)
        _check_strategy_allowed(strategy, _FUNCTION_ONLY, "object", field)

        for sub_field, sub_descriptor in field_type.fields.items():
            validate_field_value(
                value.get(sub_field), sub_descriptor, field=_child(field, sub_field)
            )

    else:
        raise SchemaDefinitionError(f"Unsupported field type {field_type!r}", field=field)

    if strategy is not None and _strategy_kind(strategy) == _FUNCTION:
        result = strategy(value)
        if inspect.isawaitable(result):
            return _check_pending_result(result, value, field)
        _check_function_result(result, value, field)

    return None


def _check_function_result(result: Any, value: Any, field: str | None) -> None:
    if not result:
        raise StrategyFailedError(
            f"The value {value!r} failed to pass custom validation function",
            field=field,
            value=value,
        )


async def _check_pending_result(pending: Awaitable, value: Any, field: str | None) -> None:
    _check_function_result(await pending, value, field)


def _child(parent: str | None, name: str) -> str:
    return f"{parent}.{name}" if parent else name
