"""
Schema registry.

An immutable mapping from model name to Schema, built once at configuration
time and passed explicitly to everything that resolves cross-model
references (lookup/project stage factories, cascade deletes).
"""

import logging
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any

from ..exceptions import ModelNotFoundError, SchemaDefinitionError
from .schema import Schema

logger = logging.getLogger(__name__)


class SchemaRegistry(Mapping):
    """
    Read-only registry of schemas keyed by model name.

    Example:
        registry = SchemaRegistry([FooSchema, BarSchema])
        registry.get_schema("Bar")    # by model name
        registry.get_schema("bars")   # or by collection name
    """

    def __init__(self, schemas: Iterable[Schema] = ()) -> None:
        entries: dict[str, Schema] = {}
        for schema in schemas:
            if schema.model in entries:
                raise SchemaDefinitionError(
                    f"Model '{schema.model}' is registered more than once",
                    model=schema.model,
                )
            entries[schema.model] = schema
        self._schemas = MappingProxyType(entries)
        logger.debug(f"Schema registry built with models: {list(entries)}")

    @classmethod
    def from_models(cls, models: Iterable[Any]) -> "SchemaRegistry":
        """Build a registry from objects exposing a `schema` attribute."""
        return cls(model.schema for model in models)

    def __getitem__(self, name: str) -> Schema:
        return self._schemas[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._schemas)

    def __len__(self) -> int:
        return len(self._schemas)

    def get_schema(self, name: str) -> Schema:
        """
        Resolve a schema by model name, falling back to collection name.

        Raises:
            ModelNotFoundError: If nothing is registered under that name
        """
        schema = self._schemas.get(name)
        if schema is not None:
            return schema

        for candidate in self._schemas.values():
            if candidate.collection == name:
                return candidate

        raise ModelNotFoundError(
            "No model found for given model/collection name, is the model registered?",
            name=name,
        )

    def __repr__(self) -> str:
        return f"SchemaRegistry({list(self._schemas)})"
