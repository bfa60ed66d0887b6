"""
Driver-facing CRUD primitives for one schema-bound collection.

SchemaRepository wraps a motor collection and exposes the operations the
Model orchestrates. Every read goes through the aggregation pipeline,
operation flags are enforced before any I/O, and missing documents raise
DocumentNotFoundError instead of returning None.

The repository does not format, validate or run hooks; that is the
Model's job.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from bson import ObjectId
from pymongo import ReturnDocument

from ..aggregation.stages import Pipeline, match_stage_factory
from ..constants import ID_FIELD
from ..documents.sanitize import sanitize_filter
from ..exceptions import DocumentNotFoundError, DocumentWriteError, OperationDisabledError
from .schema import Schema

logger = logging.getLogger(__name__)

_DISABLING_FLAGS: dict[str, tuple[str, ...]] = {
    "insert_one": ("no_inserts",),
    "insert_many": ("no_inserts", "no_insert_many"),
    "update_one": ("no_updates",),
    "update_many": ("no_updates", "no_update_many"),
    "replace_one": ("no_updates",),
    "delete_one": ("no_deletes",),
    "delete_many": ("no_deletes", "no_delete_many"),
}


def check_operation_allowed(schema: Schema, operation: str, upsert: bool = False) -> None:
    """
    Check an operation against the schema flags.

    Args:
        schema: The collection schema
        operation: One of insert_one, insert_many, update_one, update_many,
            replace_one, delete_one, delete_many
        upsert: Whether the operation may upsert

    Raises:
        OperationDisabledError: The operation (or upserting) is disabled
    """
    for flag in _DISABLING_FLAGS.get(operation, ()):
        if getattr(schema, flag):
            raise OperationDisabledError(
                f"[{schema.model}] {operation} operations are disabled",
                model=schema.model,
                operation=operation,
                context={"flag": flag},
            )

    if upsert and not schema.allow_upserts:
        raise OperationDisabledError(
            f"[{schema.model}] Attempting to upsert a document while upserting is "
            f"disallowed in the schema",
            model=schema.model,
            operation="upsert",
        )


class SchemaRepository:
    """
    CRUD primitives over a motor collection, constrained by a Schema.

    Example:
        repo = SchemaRepository(db["foos"], FooSchema)

        doc = await repo.find_one("5927f337c5178b9665b56b1e")
        docs = await repo.find_many({"aString": "x"})
        old, new = await repo.find_one_and_update(doc["_id"], {"$set": {"aNumber": 2}})
    """

    def __init__(self, collection: Any, schema: Schema):
        """
        Initialize the repository.

        Args:
            collection: AsyncIOMotorCollection for the schema's collection
            schema: The collection schema
        """
        self._collection = collection
        self.schema = schema

    @property
    def collection(self) -> Any:
        return self._collection

    def ensure_allowed(self, operation: str, upsert: bool = False) -> None:
        check_operation_allowed(self.schema, operation, upsert=upsert)

    def _filter(self, query: Any) -> dict[str, Any]:
        return sanitize_filter(self.schema, query, strict=False)

    def _read_pipeline(self, query: Any) -> Pipeline:
        if isinstance(query, list):
            return [dict(stage) for stage in query]
        if query is None:
            return []
        return match_stage_factory(self.schema, query)

    # Reads

    async def aggregate(self, pipeline: Sequence[Mapping[str, Any]], **options: Any) -> list:
        """
        Run an aggregation pipeline.

        Args:
            pipeline: MongoDB aggregation pipeline
            **options: Passed through to the driver (e.g. allowDiskUse)

        Returns:
            List of result documents
        """
        cursor = self._collection.aggregate(list(pipeline), **options)
        return await cursor.to_list(length=None)

    async def find_one(self, query: Any, **options: Any) -> dict[str, Any]:
        """
        Find the first document matching a filter, an id or a pipeline.

        Raises:
            DocumentNotFoundError: No document matches
        """
        docs = await self.aggregate(self._read_pipeline(query) + [{"$limit": 1}], **options)
        if not docs:
            raise DocumentNotFoundError(
                f"[{self.schema.model}] No document found with the provided query",
                context={"model": self.schema.model},
            )
        return docs[0]

    async def find_one_random(self, **options: Any) -> dict[str, Any]:
        """
        Find one random document of the collection.

        Raises:
            DocumentNotFoundError: The collection is empty
        """
        docs = await self.aggregate([{"$sample": {"size": 1}}], **options)
        if not docs:
            raise DocumentNotFoundError(
                f"[{self.schema.model}] No document found in collection {self.schema.collection}",
                context={"model": self.schema.model},
            )
        return docs[0]

    async def find_many(self, query: Any = None, **options: Any) -> list[dict[str, Any]]:
        """Find all documents matching a filter, an id or a pipeline."""
        return await self.aggregate(self._read_pipeline(query), **options)

    async def find_all(self, **options: Any) -> list[dict[str, Any]]:
        return await self.aggregate([], **options)

    async def identify_one(self, query: Any, **options: Any) -> ObjectId:
        """Return the id of the first matching document."""
        docs = await self.aggregate(
            self._read_pipeline(query) + [{"$limit": 1}, {"$project": {ID_FIELD: 1}}],
            **options,
        )
        if not docs:
            raise DocumentNotFoundError(
                f"[{self.schema.model}] No document found with the provided query",
                context={"model": self.schema.model},
            )
        return docs[0][ID_FIELD]

    async def identify_many(self, query: Any = None, **options: Any) -> list[ObjectId]:
        """Return the ids of all matching documents, grouped server side."""
        pipeline = self._read_pipeline(query) + [
            {"$group": {ID_FIELD: None, "ids": {"$addToSet": f"${ID_FIELD}"}}}
        ]
        docs = await self.aggregate(pipeline, **options)
        return docs[0]["ids"] if docs else []

    async def identify_all(self, **options: Any) -> list[ObjectId]:
        return await self.identify_many(None, **options)

    async def count(self, query: Any = None, **options: Any) -> int:
        """Count the documents matching a filter, an id or a pipeline."""
        docs = await self.aggregate(
            self._read_pipeline(query) + [{"$count": "count"}], **options
        )
        return docs[0]["count"] if docs else 0

    # Inserts

    async def insert_one(self, doc: Mapping[str, Any], **options: Any) -> dict[str, Any]:
        """
        Insert a document and return it as stored.

        Raises:
            OperationDisabledError: Inserts are disabled
            DocumentWriteError: The write was not acknowledged
        """
        self.ensure_allowed("insert_one")

        result = await self._collection.insert_one(dict(doc), **options)
        if not result.acknowledged or result.inserted_id is None:
            raise DocumentWriteError(
                f"[{self.schema.model}] Unable to insert document",
                context={"model": self.schema.model},
            )

        logger.debug(f"[{self.schema.model}] Inserted document _id={result.inserted_id}")
        return await self.find_one(result.inserted_id)

    async def insert_many(
        self, docs: Sequence[Mapping[str, Any]], **options: Any
    ) -> list[dict[str, Any]]:
        """Insert several documents and return them as stored."""
        self.ensure_allowed("insert_many")

        result = await self._collection.insert_many([dict(doc) for doc in docs], **options)
        if not result.acknowledged or len(result.inserted_ids) != len(docs):
            raise DocumentWriteError(
                f"[{self.schema.model}] Unable to insert documents",
                context={"model": self.schema.model, "expected": len(docs)},
            )

        logger.debug(f"[{self.schema.model}] Inserted {len(result.inserted_ids)} documents")
        return await self.find_many({ID_FIELD: {"$in": list(result.inserted_ids)}})

    # Updates

    async def update_one(
        self, query: Any, update: Mapping[str, Any], upsert: bool = False, **options: Any
    ) -> bool:
        """Update the first matching document. Returns whether a document changed."""
        self.ensure_allowed("update_one", upsert=upsert)

        result = await self._collection.update_one(
            self._filter(query), dict(update), upsert=upsert, **options
        )
        return result.modified_count > 0 or result.upserted_id is not None

    async def find_one_and_update(
        self, query: Any, update: Mapping[str, Any], upsert: bool = False, **options: Any
    ) -> tuple[dict[str, Any] | None, dict[str, Any]]:
        """
        Update the first matching document and return it before and after.

        The old document is None when the update upserted a new one.

        Raises:
            DocumentNotFoundError: Nothing matched and nothing was upserted
        """
        self.ensure_allowed("update_one", upsert=upsert)

        query_filter = self._filter(query)
        old_doc = await self._collection.find_one_and_update(
            query_filter,
            dict(update),
            upsert=upsert,
            return_document=ReturnDocument.BEFORE,
            **options,
        )

        if old_doc is None:
            if not upsert:
                raise DocumentNotFoundError(
                    f"[{self.schema.model}] Unable to return the old document before the update",
                    context={"model": self.schema.model},
                )
            return None, await self.find_one(query_filter)

        return old_doc, await self.find_one(old_doc[ID_FIELD])

    async def update_many(
        self, query: Any, update: Mapping[str, Any], upsert: bool = False, **options: Any
    ) -> int:
        """Update all matching documents. Returns the number of modified documents."""
        self.ensure_allowed("update_many", upsert=upsert)

        result = await self._collection.update_many(
            self._filter(query), dict(update), upsert=upsert, **options
        )
        return result.modified_count + (1 if result.upserted_id is not None else 0)

    async def find_many_and_update(
        self, query: Any, update: Mapping[str, Any], **options: Any
    ) -> list[tuple[dict[str, Any], dict[str, Any]]]:
        """
        Update every matching document one by one.

        Documents are updated sequentially, not atomically as a whole. A
        document removed after the ids were read is skipped.

        Returns:
            (old, new) pairs, one per updated document
        """
        self.ensure_allowed("update_many")

        results = []
        for doc_id in await self.identify_many(query):
            old_doc = await self._collection.find_one_and_update(
                {ID_FIELD: doc_id},
                dict(update),
                return_document=ReturnDocument.BEFORE,
                **options,
            )
            if old_doc is not None:
                results.append((old_doc, await self.find_one(doc_id)))
        return results

    async def replace_one(
        self, query: Any, replacement: Mapping[str, Any], upsert: bool = False, **options: Any
    ) -> bool:
        self.ensure_allowed("replace_one", upsert=upsert)

        result = await self._collection.replace_one(
            self._filter(query), dict(replacement), upsert=upsert, **options
        )
        return result.modified_count > 0 or result.upserted_id is not None

    async def find_one_and_replace(
        self, query: Any, replacement: Mapping[str, Any], upsert: bool = False, **options: Any
    ) -> tuple[dict[str, Any] | None, dict[str, Any]]:
        """
        Replace the first matching document and return it before and after.

        Raises:
            DocumentNotFoundError: Nothing matched and nothing was upserted
        """
        self.ensure_allowed("replace_one", upsert=upsert)

        old_doc = await self._collection.find_one_and_replace(
            self._filter(query),
            dict(replacement),
            upsert=upsert,
            return_document=ReturnDocument.BEFORE,
            **options,
        )

        if old_doc is None:
            if not upsert:
                raise DocumentNotFoundError(
                    f"[{self.schema.model}] Unable to return the old document before the "
                    f"replacement",
                    context={"model": self.schema.model},
                )
            return None, await self.find_one(self._filter(replacement))

        return old_doc, await self.find_one(old_doc[ID_FIELD])

    # Deletes

    async def delete_one(self, query: Any, **options: Any) -> bool:
        self.ensure_allowed("delete_one")

        result = await self._collection.delete_one(self._filter(query), **options)
        return result.deleted_count > 0

    async def find_one_and_delete(self, query: Any, **options: Any) -> dict[str, Any]:
        """
        Delete the first matching document and return it.

        Raises:
            DocumentNotFoundError: No document matches
        """
        self.ensure_allowed("delete_one")

        doc = await self._collection.find_one_and_delete(self._filter(query), **options)
        if doc is None:
            raise DocumentNotFoundError(
                f"[{self.schema.model}] Unable to find the document to delete",
                context={"model": self.schema.model},
            )
        return doc

    async def delete_many(self, query: Any, **options: Any) -> int:
        """Delete all matching documents. Returns the number of deleted documents."""
        self.ensure_allowed("delete_many")

        result = await self._collection.delete_many(self._filter(query), **options)
        return result.deleted_count

    async def find_many_and_delete(self, query: Any, **options: Any) -> list[dict[str, Any]]:
        """
        Delete every matching document one by one and return the deleted documents.

        A document removed after the ids were read is skipped.
        """
        self.ensure_allowed("delete_many")

        deleted = []
        for doc_id in await self.identify_many(query):
            doc = await self._collection.find_one_and_delete({ID_FIELD: doc_id}, **options)
            if doc is not None:
                deleted.append(doc)
        return deleted
