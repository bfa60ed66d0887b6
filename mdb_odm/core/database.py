"""
Database binding for MDB_ODM.

A Database ties a ConnectionManager to a set of models: it builds the
SchemaRegistry, attaches every model, and hands out collections with the
schema indexes ensured once per collection.
"""

import logging
import time
from collections.abc import Iterable

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import ConnectionFailure, OperationFailure, ServerSelectionTimeoutError

from ..config import OdmConfig
from ..constants import DEFAULT_BCRYPT_ROUNDS
from ..exceptions import IndexCreationError, ModelNotFoundError
from ..observability import record_operation
from .connection import ConnectionManager
from .model import Model
from .registry import SchemaRegistry
from .schema import Schema

logger = logging.getLogger(__name__)


class Database:
    """
    Owns the models of one MongoDB database.

    Example:
        database = Database(ConnectionManager(uri, "my_db"), [foo, bar, baz])
        await database.initialize()

        foo = database.get_model("Foo")
        await foo.insert_one_strict({"aString": "x"})
    """

    def __init__(
        self,
        connection: ConnectionManager,
        models: Iterable[Model] = (),
        bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS,
    ) -> None:
        """
        Initialize the database.

        Args:
            connection: Connection manager (initialized lazily if needed)
            models: Models to register and attach
            bcrypt_rounds: Cost factor for encrypted fields

        Raises:
            SchemaDefinitionError: Two models share the same name
        """
        self.connection = connection
        self.bcrypt_rounds = bcrypt_rounds
        self._models: tuple[Model, ...] = tuple(models)
        self.registry = SchemaRegistry.from_models(self._models)
        self._indexed_collections: set[str] = set()

        for model in self._models:
            model.attach(self)

    @classmethod
    def from_config(cls, config: OdmConfig, models: Iterable[Model] = ()) -> "Database":
        return cls(
            ConnectionManager.from_config(config),
            models,
            bcrypt_rounds=config.bcrypt_rounds,
        )

    @property
    def models(self) -> tuple[Model, ...]:
        return self._models

    async def initialize(self) -> None:
        await self.connection.initialize()

    async def shutdown(self) -> None:
        await self.connection.shutdown()

    def get_model(self, name: str) -> Model:
        """
        Get a registered model by model name or collection name.

        Raises:
            ModelNotFoundError: If no model is registered under that name
        """
        schema = self.registry.get_schema(name)
        for model in self._models:
            if model.schema is schema:
                return model

        raise ModelNotFoundError(
            "No model found for given model/collection name, is the model registered?",
            name=name,
        )

    async def get_collection(self, name: str) -> AsyncIOMotorCollection:
        """
        Get the collection of a registered model, ensuring its indexes first.

        Args:
            name: Model name or collection name

        Raises:
            ModelNotFoundError: If no model is registered under that name
            IndexCreationError: If an index of the schema cannot be created
        """
        schema = self.registry.get_schema(name)
        collection = await self.connection.get_collection(schema.collection)

        if schema.collection not in self._indexed_collections:
            await self.ensure_indexes(schema, collection)
            self._indexed_collections.add(schema.collection)

        return collection

    async def ensure_indexes(self, schema: Schema, collection: AsyncIOMotorCollection) -> None:
        """
        Create the schema's indexes on its collection.

        Indexes are built in the background unless the index options say
        otherwise.
        """
        for index in schema.indexes:
            start_time = time.time()
            options = {"background": True, **index.options}

            try:
                name = await collection.create_index(list(index.spec.items()), **options)
                duration_ms = (time.time() - start_time) * 1000
                record_operation(
                    "database.create_index", duration_ms, success=True, model=schema.model
                )
                logger.info(f"[{schema.model}] Ensured index '{name}' on {schema.collection}")
            except (OperationFailure, ConnectionFailure, ServerSelectionTimeoutError) as e:
                duration_ms = (time.time() - start_time) * 1000
                record_operation(
                    "database.create_index", duration_ms, success=False, model=schema.model
                )
                logger.exception(
                    f"[{schema.model}] Error creating index {dict(index.spec)} "
                    f"on {schema.collection}"
                )
                raise IndexCreationError(
                    f"Failed to create index {dict(index.spec)} for model {schema.model}",
                    collection=schema.collection,
                    context={"model": schema.model, "error_type": type(e).__name__},
                ) from e
