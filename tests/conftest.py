"""
Pytest configuration and shared fixtures for MDB_ODM tests.

This module provides:
- The Foo/Bar/Baz test schemas and a registry built from them
- Mock motor collection and connection fixtures
- A Database with the three models attached
- Real MongoDB fixtures (testcontainers) for integration tests
"""

import uuid
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection

from mdb_odm.core import (
    ConnectionManager,
    Database,
    FieldDescriptor,
    IndexSpec,
    Model,
    Schema,
    SchemaRegistry,
)
from mdb_odm.observability import get_metrics_collector

# ============================================================================
# TEST SCHEMAS
# ============================================================================

FOO_SCHEMA = Schema(
    model="Foo",
    collection="foos",
    timestamps=True,
    fields={
        "aString": FieldDescriptor(str, required=True),
        "aNumber": FieldDescriptor(int, required=True),
        "aBar": FieldDescriptor(ObjectId, ref="Bar", required=True),
        "aFoo": FieldDescriptor(ObjectId, ref="Foo"),
        "anObject": FieldDescriptor(
            {
                "foo": FieldDescriptor(
                    {"aString": FieldDescriptor(str), "aNumber": FieldDescriptor(int)}
                ),
                "bar": FieldDescriptor(
                    {"aString": FieldDescriptor(str), "aNumber": FieldDescriptor(int)}
                ),
            }
        ),
    },
    indexes=[IndexSpec({"aString": 1}, {"unique": True})],
)

BAR_SCHEMA = Schema(
    model="Bar",
    collection="bars",
    cascade=["Foo"],
    allow_upserts=True,
    fields={
        "aBar": FieldDescriptor(ObjectId, ref="Bar"),
        "aString": FieldDescriptor(str, required=True),
        "aDate": FieldDescriptor(datetime, required=True),
        "anObject": FieldDescriptor(
            {
                "anObjectIdArray": FieldDescriptor([ObjectId]),
                "aString": FieldDescriptor(str),
                "aNumber": FieldDescriptor(int),
                "aBoolean": FieldDescriptor(bool),
            }
        ),
        "aNumber": FieldDescriptor(int, required=True),
        "aBoolean": FieldDescriptor(bool),
        "aFormattedString": FieldDescriptor(str),
        "anEncryptedString": FieldDescriptor(str, encrypted=True),
    },
    indexes=[IndexSpec({"aString": 1})],
)

BAZ_SCHEMA = Schema(
    model="Baz",
    collection="bazs",
    allow_upserts=True,
    fields={
        "aString": FieldDescriptor(str, required=True),
        "aNumber": FieldDescriptor(int),
        "aBoolean": FieldDescriptor(bool),
        "anObject": FieldDescriptor({"a": FieldDescriptor(str), "b": FieldDescriptor(str)}),
        "aFormattedString": FieldDescriptor(str),
        "anEncryptedString": FieldDescriptor(str, encrypted=True),
    },
    indexes=[IndexSpec({"aString": 1})],
)


@pytest.fixture
def foo_schema() -> Schema:
    return FOO_SCHEMA


@pytest.fixture
def bar_schema() -> Schema:
    return BAR_SCHEMA


@pytest.fixture
def baz_schema() -> Schema:
    return BAZ_SCHEMA


@pytest.fixture
def registry() -> SchemaRegistry:
    """Registry with the Foo, Bar and Baz schemas."""
    return SchemaRegistry([FOO_SCHEMA, BAR_SCHEMA, BAZ_SCHEMA])


# ============================================================================
# MOCK MONGODB FIXTURES
# ============================================================================


def make_cursor(docs: List[Dict[str, Any]]) -> MagicMock:
    """Create a mock aggregation cursor returning the given documents."""
    return MagicMock(to_list=AsyncMock(return_value=list(docs)))


def make_mock_collection(name: str) -> MagicMock:
    """
    Create a mock motor collection.

    aggregate() is synchronous in motor and returns a cursor, so it is a
    MagicMock; every other method is an AsyncMock. Tests queue aggregation
    results with `collection.aggregate.side_effect = [make_cursor(...), ...]`.
    """
    collection = MagicMock(spec=AsyncIOMotorCollection)
    collection.name = name
    collection.aggregate = MagicMock(return_value=make_cursor([]))
    collection.insert_one = AsyncMock(
        return_value=MagicMock(acknowledged=True, inserted_id=ObjectId())
    )
    collection.insert_many = AsyncMock(
        return_value=MagicMock(acknowledged=True, inserted_ids=[ObjectId(), ObjectId()])
    )
    collection.update_one = AsyncMock(
        return_value=MagicMock(acknowledged=True, modified_count=1, upserted_id=None)
    )
    collection.update_many = AsyncMock(
        return_value=MagicMock(acknowledged=True, modified_count=2, upserted_id=None)
    )
    collection.replace_one = AsyncMock(
        return_value=MagicMock(acknowledged=True, modified_count=1, upserted_id=None)
    )
    collection.delete_one = AsyncMock(return_value=MagicMock(acknowledged=True, deleted_count=1))
    collection.delete_many = AsyncMock(return_value=MagicMock(acknowledged=True, deleted_count=2))
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.find_one_and_replace = AsyncMock(return_value=None)
    collection.find_one_and_delete = AsyncMock(return_value=None)
    collection.create_index = AsyncMock(return_value="aString_1")
    return collection


@pytest.fixture
def mock_collection() -> MagicMock:
    """Create a mock collection for the Foo schema."""
    return make_mock_collection("foos")


@pytest.fixture
def mock_collections() -> Dict[str, MagicMock]:
    """Mock collections keyed by collection name."""
    return {name: make_mock_collection(name) for name in ("foos", "bars", "bazs")}


@pytest.fixture
def mock_connection(mock_collections: Dict[str, MagicMock]) -> MagicMock:
    """Create a mock ConnectionManager handing out the mock collections."""
    connection = MagicMock(spec=ConnectionManager)
    connection.get_collection = AsyncMock(side_effect=lambda name: mock_collections[name])
    connection.initialize = AsyncMock()
    connection.shutdown = AsyncMock()
    return connection


# ============================================================================
# MODEL FIXTURES
# ============================================================================


@pytest.fixture
def models() -> List[Model]:
    """Fresh Foo, Bar and Baz models, not yet attached to a Database."""
    foo = Model(
        FOO_SCHEMA,
        random_props={"aNumber": lambda: 42},
        default_props={"aNumber": 100},
        format_props={"aString": lambda value: value.strip()},
        validate_props={"aNumber": lambda value: 0 <= value <= 1000},
    )
    bar = Model(
        BAR_SCHEMA,
        random_props={"aString": lambda: "random", "aNumber": lambda: 7},
        default_props={
            "aDate": lambda: datetime(2020, 1, 1, tzinfo=timezone.utc),
            "aNumber": 100,
            "aBoolean": False,
        },
        format_props={"aFormattedString": lambda value: value.upper()},
        validate_props={"aString": 100, "aNumber": lambda value: 0 <= value <= 1000},
    )
    baz = Model(
        BAZ_SCHEMA,
        random_props={"aString": lambda: "random"},
        default_props={"aNumber": lambda: 5, "aBoolean": True},
        format_props={"aFormattedString": lambda value: value.upper()},
    )
    return [foo, bar, baz]


@pytest.fixture
def database(mock_connection: MagicMock, models: List[Model]) -> Database:
    """Database with the Foo, Bar and Baz models attached."""
    return Database(mock_connection, models, bcrypt_rounds=4)


@pytest.fixture
def foo(database: Database) -> Model:
    return database.get_model("Foo")


@pytest.fixture
def bar(database: Database) -> Model:
    return database.get_model("Bar")


@pytest.fixture
def baz(database: Database) -> Model:
    return database.get_model("Baz")


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with an empty metrics collector."""
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()


@pytest.fixture
def collection_factory():
    """Return the mock collection factory."""
    return make_mock_collection


@pytest.fixture
def queue_aggregate():
    """Return a helper queuing one aggregation result per aggregate() call."""

    def queue(collection: MagicMock, *results: List[Dict[str, Any]]) -> None:
        collection.aggregate.side_effect = [make_cursor(docs) for docs in results]

    return queue


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: tests that need a real MongoDB server")


# ============================================================================
# TESTCONTAINERS FIXTURES (Real MongoDB for Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def mongodb_container():
    """
    Start a MongoDB container for integration tests.

    Session-scoped: the container starts once and is reused for all
    integration tests.
    """
    mongodb = pytest.importorskip(
        "testcontainers.mongodb",
        reason="testcontainers not installed. Install with: pip install -e '.[test]'",
    )
    with mongodb.MongoDbContainer(image="mongo:7.0") as container:
        yield container


@pytest.fixture
def mongodb_connection_string(mongodb_container) -> str:
    return mongodb_container.get_connection_url()


@pytest_asyncio.fixture
async def real_database(
    mongodb_connection_string: str, models: List[Model]
) -> AsyncGenerator[Database, None]:
    """
    Database with the Foo, Bar and Baz models on a real MongoDB.

    Uses a unique database name per test and drops it afterwards.
    """
    connection = ConnectionManager(
        mongodb_connection_string,
        f"mdb_odm_test_{uuid.uuid4().hex}",
        max_pool_size=5,
        min_pool_size=1,
    )
    database = Database(connection, models, bcrypt_rounds=4)
    await database.initialize()

    yield database

    await connection.mongo_client.drop_database(connection.db_name)
    await database.shutdown()
