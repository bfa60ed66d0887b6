"""
Per-collection model.

A Model holds one Schema plus the optional per-field providers (random,
default, format, validate) and exposes the CRUD operations with their
lifecycle hooks. No subclassing is required: hooks can be passed as
plain callables, or overridden in a subclass.

    foo = Model(
        FooSchema,
        default_props={"aBoolean": True},
        validate_props={"aString": re.compile(r"^[a-z]+$")},
        hooks={"did_insert_document": notify},
    )
    database = Database(connection, [foo, bar])

    doc = await foo.insert_one_strict({"aString": "abc", "aBar": bar_id})
    docs = await foo.find_many({"$match": {"aNumber": 1}, "$lookup": {"aBar": True}})

Every mutating operation comes in a `*_strict` form that raises, and a
soft form that logs the failure and returns None or False.
"""

import functools
import inspect
import logging
from collections.abc import Callable, Mapping, Sequence
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from bson import ObjectId
from pymongo.errors import PyMongoError

from ..aggregation.pipeline import is_pipeline, is_pipeline_operators, pipeline_factory
from ..aggregation.stages import Pipeline, match_stage_factory
from ..constants import CREATED_AT_FIELD, DEFAULT_BCRYPT_ROUNDS, ID_FIELD, UPDATED_AT_FIELD
from ..documents.fields import resolve_field
from ..documents.formatting import FieldFormatter, format_document
from ..documents.sanitize import (
    is_object_id,
    is_plain_document,
    sanitize_document,
    sanitize_filter,
    sanitize_update,
)
from ..documents.validation import FieldValidationStrategy, validate_field_value
from ..exceptions import (
    CascadeError,
    DocumentNotFoundError,
    DuplicateDocumentError,
    FieldValidationError,
    ModelNotFoundError,
    ODMError,
    RequiredFieldError,
    SchemaDefinitionError,
)
from ..observability import get_logger as get_contextual_logger
from ..observability import log_operation, model_context, timed_operation
from .registry import SchemaRegistry
from .repository import SchemaRepository, check_operation_allowed
from .schema import Embedded, FieldDescriptor, Schema

if TYPE_CHECKING:
    from .database import Database

logger = logging.getLogger(__name__)
contextual_logger = get_contextual_logger(__name__)

HOOK_NAMES = (
    "will_insert_document",
    "did_insert_document",
    "will_update_document",
    "did_update_document",
    "will_delete_document",
    "did_delete_document",
)

# Errors converted to a neutral result by the soft forms
_SOFT_ERRORS = (ODMError, PyMongoError)


def _model_operation(operation: str, timed: bool = True) -> Callable:
    """
    Run a Model coroutine method inside the model's logging context.

    Timed operations are also recorded as `model.<operation>` metrics.
    """

    def decorator(func: Callable) -> Callable:
        inner = timed_operation(f"model.{operation}")(func) if timed else func

        @functools.wraps(func)
        async def wrapper(self: "Model", *args: Any, **kwargs: Any) -> Any:
            with model_context(
                self.schema.model, collection_name=self.schema.collection, operation=operation
            ):
                return await inner(self, *args, **kwargs)

        return wrapper

    return decorator


class Model:
    """
    CRUD namespace for one collection.

    Attributes:
        schema: The collection schema
        random_props: Field name -> function generating a random value
        default_props: Field name -> default value, or function returning one
        format_props: Field name -> format function (may be async)
        validate_props: Field name -> validation strategy
    """

    def __init__(
        self,
        schema: Schema,
        random_props: Mapping[str, Callable[[], Any]] | None = None,
        default_props: Mapping[str, Any] | None = None,
        format_props: Mapping[str, FieldFormatter] | None = None,
        validate_props: Mapping[str, FieldValidationStrategy] | None = None,
        hooks: Mapping[str, Callable] | None = None,
    ):
        self.schema = schema
        self.random_props = dict(random_props or {})
        self.default_props = dict(default_props or {})
        self.format_props = dict(format_props or {})
        self.validate_props = dict(validate_props or {})
        self._database: "Database | None" = None

        for name, hook in (hooks or {}).items():
            if name not in HOOK_NAMES:
                raise SchemaDefinitionError(
                    f"[{schema.model}] Unknown hook '{name}'",
                    model=schema.model,
                    context={"hooks": list(HOOK_NAMES)},
                )
            if not callable(hook):
                raise SchemaDefinitionError(
                    f"[{schema.model}] Hook '{name}' must be callable", model=schema.model
                )
            setattr(self, name, hook)

    def __repr__(self) -> str:
        return f"Model({self.schema.model})"

    # Binding

    def attach(self, database: "Database") -> None:
        """Bind this model to the Database that owns its collection and registry."""
        self._database = database

    @property
    def database(self) -> "Database":
        """
        Get the bound database.

        Raises:
            RuntimeError: If the model is not attached to a Database
        """
        if self._database is None:
            raise RuntimeError(
                f"Model {self.schema.model} is not attached to a Database. "
                f"Pass it to Database(connection, models) first."
            )
        return self._database

    @property
    def registry(self) -> SchemaRegistry:
        return self.database.registry

    @property
    def bcrypt_rounds(self) -> int:
        if self._database is None:
            return DEFAULT_BCRYPT_ROUNDS
        return self._database.bcrypt_rounds

    async def get_repository(self) -> SchemaRepository:
        collection = await self.database.get_collection(self.schema.collection)
        return SchemaRepository(collection, self.schema)

    # Hooks

    async def will_insert_document(self, doc: dict[str, Any]) -> dict[str, Any]:
        """
        Called before a document is inserted (or upserted).

        Returns:
            The document to insert
        """
        return doc

    async def did_insert_document(self, doc: dict[str, Any]) -> None:
        """Called after a document is inserted."""

    async def will_update_document(
        self, query: Mapping[str, Any], update: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Called before an update.

        Returns:
            The update descriptor to apply
        """
        return update

    async def did_update_document(
        self,
        old_doc: dict[str, Any] | list | None = None,
        new_doc: dict[str, Any] | list | None = None,
    ) -> None:
        """
        Called after an update.

        Documents are only passed when they were requested back
        (`return_doc` / `return_docs`).
        """

    async def will_delete_document(self, query: Mapping[str, Any]) -> None:
        """Called before a deletion."""

    async def did_delete_document(self, docs: dict[str, Any] | list | None = None) -> None:
        """Called after a deletion with the deleted document(s), if available."""

    async def _call_hook(self, name: str, *args: Any) -> Any:
        result = getattr(self, name)(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    # Helpers

    async def random_fields(
        self, fixed_fields: Mapping[str, Any] | None = None, include_optionals: bool = False
    ) -> dict[str, Any]:
        """
        Generate random values for the fields that have a random provider.

        Args:
            fixed_fields: Values that override the generated ones
            include_optionals: Also generate values for non-required fields

        Raises:
            SchemaDefinitionError: A random provider is not callable
        """
        out: dict[str, Any] = {}

        for key, provider in self.random_props.items():
            descriptor = self.schema.fields.get(key)
            if descriptor is None:
                continue
            if not include_optionals and not descriptor.required:
                continue
            if not callable(provider):
                raise SchemaDefinitionError(
                    f"[{self.schema.model}] Property '{key}' in random_props must be a function",
                    model=self.schema.model,
                    field=key,
                )

            value = provider()
            if inspect.isawaitable(value):
                value = await value
            out[key] = value

        out.update(fixed_fields or {})
        return out

    def build_pipeline(self, query: Any) -> Pipeline:
        """
        Turn any accepted read query into an aggregation pipeline.

        A pipeline operator bag goes through the pipeline factory, a list is
        used as a raw pipeline, anything else (an id, a filter mapping) is
        wrapped in a `$match` stage.
        """
        if is_pipeline_operators(query):
            return pipeline_factory(self.schema, self.registry, query)
        if is_pipeline(query):
            return [dict(stage) for stage in query]
        return match_stage_factory(self.schema, query)

    async def format_document(self, doc: Mapping[str, Any]) -> dict[str, Any]:
        """Apply the model's format functions, then hash the encrypted fields."""
        return await format_document(
            self.schema, doc, formatters=self.format_props, bcrypt_rounds=self.bcrypt_rounds
        )

    async def validate_document(
        self,
        doc: Mapping[str, Any],
        strict: bool = False,
        ignore_unique_index: bool = False,
        account_for_dot_notation: bool = False,
    ) -> None:
        """
        Validate a document fragment against the schema.

        Args:
            doc: The fragment to validate
            strict: Also enforce the presence of required fields
            ignore_unique_index: Skip the unique index lookups
            account_for_dot_notation: Accept dot-notated keys of embedded fields

        Raises:
            FieldValidationError: The fragment is empty or a key is undeclared
            DuplicateDocumentError: Another document holds the same unique values
            RequiredFieldError: A required field is missing (strict only)
        """
        if not doc:
            raise FieldValidationError(f"[{self.schema.model}] Empty objects are not permitted")

        for key, value in doc.items():
            if self.schema.is_reserved_key(key):
                continue

            if account_for_dot_notation:
                descriptor = resolve_field(self.schema.fields, key)
            else:
                descriptor = self.schema.fields.get(key)

            if descriptor is None:
                raise FieldValidationError(
                    f"[{self.schema.model}] The field '{key}' is not defined in the schema",
                    field=key,
                    value=value,
                    context={"model": self.schema.model},
                )

            try:
                pending = validate_field_value(
                    value, descriptor, self.validate_props.get(key), field=key
                )
                if pending is not None:
                    await pending
            except FieldValidationError as e:
                logger.debug(f"[{self.schema.model}] Validating value {value!r} for {key}: {e}")
                raise

        if not ignore_unique_index:
            for index in self.schema.indexes:
                if not index.options.get("unique"):
                    continue
                if not index.spec or not all(key in doc for key in index.spec):
                    continue

                query = {key: doc[key] for key in index.spec}
                if await self.find_one(query) is not None:
                    raise DuplicateDocumentError(
                        f"[{self.schema.model}] Another document already exists with {query}",
                        context={"model": self.schema.model, "index": list(index.spec)},
                    )

        if strict:
            self._validate_required_fields(doc, self.schema.fields)

    def _validate_required_fields(
        self,
        doc: Mapping[str, Any],
        fields: Mapping[str, FieldDescriptor],
        parent: str | None = None,
    ) -> None:
        for key, descriptor in fields.items():
            if not descriptor.required:
                continue
            if parent is None and key in self.default_props:
                continue

            path = f"{parent}.{key}" if parent else key
            if key not in doc:
                raise RequiredFieldError(
                    f'[{self.schema.model}] Missing required field "{path}"',
                    field=path,
                    context={"model": self.schema.model},
                )

            if isinstance(descriptor.type, Embedded) and isinstance(doc[key], Mapping):
                self._validate_required_fields(doc[key], descriptor.type.fields, path)

    # Reads

    @_model_operation("identify_one", timed=False)
    async def identify_one_strict(self, query: Any) -> ObjectId:
        repo = await self.get_repository()
        return await repo.identify_one(self.build_pipeline(query))

    @_model_operation("identify_one", timed=False)
    async def identify_one(self, query: Any) -> ObjectId | None:
        try:
            return await self.identify_one_strict(query)
        except _SOFT_ERRORS as e:
            self._log_soft_failure("identify_one", e)
            return None

    @_model_operation("identify_many", timed=False)
    async def identify_many(self, query: Any = None) -> list[ObjectId]:
        """Return the ids of all matching documents (every document without a query)."""
        repo = await self.get_repository()
        if query is None:
            return await repo.identify_all()
        return await repo.identify_many(self.build_pipeline(query))

    @_model_operation("find_one")
    async def find_one_strict(self, query: Any = None, **options: Any) -> dict[str, Any]:
        """
        Find one document.

        Args:
            query: An id, a filter, a raw pipeline or a pipeline operator
                bag. Without a query a random document is returned.
            **options: Passed through to the driver's aggregate()

        Raises:
            DocumentNotFoundError: No document matches
        """
        repo = await self.get_repository()
        if query is None:
            return await repo.find_one_random(**options)
        return await repo.find_one(self.build_pipeline(query), **options)

    @_model_operation("find_one", timed=False)
    async def find_one(self, query: Any = None, **options: Any) -> dict[str, Any] | None:
        try:
            return await self.find_one_strict(query, **options)
        except _SOFT_ERRORS as e:
            self._log_soft_failure("find_one", e)
            return None

    @_model_operation("find_many")
    async def find_many(self, query: Any = None, **options: Any) -> list[dict[str, Any]]:
        """Find all matching documents (every document without a query)."""
        repo = await self.get_repository()
        if query is None:
            return await repo.find_all(**options)
        return await repo.find_many(self.build_pipeline(query), **options)

    @_model_operation("exists", timed=False)
    async def exists(self, query: Any) -> bool:
        return await self.identify_one(query) is not None

    @_model_operation("count", timed=False)
    async def count(self, query: Any = None, **options: Any) -> int:
        repo = await self.get_repository()
        pipeline = None if query is None else self.build_pipeline(query)
        return await repo.count(pipeline, **options)

    # Inserts

    @_model_operation("insert_one")
    async def insert_one_strict(
        self,
        doc: Mapping[str, Any] | None = None,
        ignore_timestamps: bool = False,
        **options: Any,
    ) -> dict[str, Any]:
        """
        Insert one document.

        Without a document, one is generated from the random providers.

        Returns:
            The inserted document

        Raises:
            OperationDisabledError: Inserts are disabled for this model
            FieldValidationError: The document is invalid
        """
        check_operation_allowed(self.schema, "insert_one")

        if doc is None:
            doc = await self.random_fields()

        doc_to_insert = await self._before_insert(
            doc, strict=True, ignore_timestamps=ignore_timestamps
        )
        repo = await self.get_repository()
        inserted = await repo.insert_one(doc_to_insert, **options)

        await self._call_hook("did_insert_document", inserted)
        return inserted

    @_model_operation("insert_one", timed=False)
    async def insert_one(
        self, doc: Mapping[str, Any] | None = None, **options: Any
    ) -> dict[str, Any] | None:
        try:
            return await self.insert_one_strict(doc, **options)
        except _SOFT_ERRORS as e:
            self._log_soft_failure("insert_one", e)
            return None

    @_model_operation("insert_many")
    async def insert_many_strict(
        self,
        docs: Sequence[Mapping[str, Any]],
        ignore_timestamps: bool = False,
        **options: Any,
    ) -> list[dict[str, Any]]:
        """Insert several documents; each one goes through the full insert path."""
        check_operation_allowed(self.schema, "insert_many")

        docs_to_insert = [
            await self._before_insert(doc, strict=True, ignore_timestamps=ignore_timestamps)
            for doc in docs
        ]
        repo = await self.get_repository()
        inserted_docs = await repo.insert_many(docs_to_insert, **options)

        logger.debug(f"[{self.schema.model}] Inserted {len(inserted_docs)} documents")

        for inserted in inserted_docs:
            await self._call_hook("did_insert_document", inserted)

        return inserted_docs

    @_model_operation("insert_many", timed=False)
    async def insert_many(
        self, docs: Sequence[Mapping[str, Any]], **options: Any
    ) -> list[dict[str, Any]] | None:
        try:
            return await self.insert_many_strict(docs, **options)
        except _SOFT_ERRORS as e:
            self._log_soft_failure("insert_many", e)
            return None

    # Updates

    @_model_operation("update_one")
    async def update_one_strict(
        self,
        query: Any,
        update: Mapping[str, Any],
        upsert: bool = False,
        return_doc: bool = False,
        ignore_timestamps: bool = False,
        **options: Any,
    ) -> bool | dict[str, Any]:
        """
        Update one document.

        Args:
            query: An id or a filter (undeclared fields are dropped)
            update: An update descriptor or a plain fragment to `$set`
            upsert: Insert the document if nothing matches
            return_doc: Return the updated document instead of a bool
            ignore_timestamps: Do not stamp `updatedAt`

        Raises:
            OperationDisabledError: Updates (or upserts) are disabled
            DocumentNotFoundError: `return_doc` is set and nothing matched
        """
        check_operation_allowed(self.schema, "update_one", upsert=upsert)

        query_filter = sanitize_filter(self.schema, query)
        update_doc = await self._before_update(
            query_filter,
            sanitize_update(self.schema, update, ignore_timestamps=ignore_timestamps),
            upsert=upsert,
            ignore_timestamps=ignore_timestamps,
        )
        repo = await self.get_repository()

        if return_doc:
            old_doc, new_doc = await repo.find_one_and_update(
                query_filter, update_doc, upsert=upsert, **options
            )
            await self._call_hook("did_update_document", old_doc, new_doc)
            return new_doc

        result = await repo.update_one(query_filter, update_doc, upsert=upsert, **options)
        await self._call_hook("did_update_document")
        return result

    @_model_operation("update_one", timed=False)
    async def update_one(
        self, query: Any, update: Mapping[str, Any], return_doc: bool = False, **options: Any
    ) -> bool | dict[str, Any] | None:
        try:
            return await self.update_one_strict(query, update, return_doc=return_doc, **options)
        except _SOFT_ERRORS as e:
            self._log_soft_failure("update_one", e)
            return None if return_doc else False

    @_model_operation("update_many")
    async def update_many_strict(
        self,
        query: Any,
        update: Mapping[str, Any],
        upsert: bool = False,
        return_docs: bool = False,
        ignore_timestamps: bool = False,
        **options: Any,
    ) -> bool | list[dict[str, Any]]:
        """
        Update every matching document.

        With `return_docs` the documents are updated one by one and the
        updated documents are returned; otherwise a single update_many is
        issued and whether anything changed is returned.
        """
        check_operation_allowed(self.schema, "update_many", upsert=upsert)

        query_filter = sanitize_filter(self.schema, query)
        update_doc = await self._before_update(
            query_filter,
            sanitize_update(self.schema, update, ignore_timestamps=ignore_timestamps),
            upsert=upsert,
            ignore_timestamps=ignore_timestamps,
        )
        repo = await self.get_repository()

        if return_docs:
            pairs = await repo.find_many_and_update(query_filter, update_doc, **options)
            old_docs = [old for old, _ in pairs]
            new_docs = [new for _, new in pairs]
            await self._call_hook("did_update_document", old_docs, new_docs)
            return new_docs

        modified = await repo.update_many(query_filter, update_doc, upsert=upsert, **options)
        await self._call_hook("did_update_document")
        return modified > 0

    @_model_operation("update_many", timed=False)
    async def update_many(
        self, query: Any, update: Mapping[str, Any], return_docs: bool = False, **options: Any
    ) -> bool | list[dict[str, Any]] | None:
        try:
            return await self.update_many_strict(
                query, update, return_docs=return_docs, **options
            )
        except _SOFT_ERRORS as e:
            self._log_soft_failure("update_many", e)
            return None if return_docs else False

    # Deletes

    @_model_operation("delete_one")
    async def delete_one_strict(
        self, query: Any, return_doc: bool = False, **options: Any
    ) -> bool | dict[str, Any]:
        """
        Delete one document, then cascade the deletion.

        The deleted document is always fetched when the schema declares
        cascade targets, since its id drives the cascade.

        Returns:
            Whether a document was deleted, or the deleted document with
            `return_doc`

        Raises:
            OperationDisabledError: Deletes are disabled for this model
            DocumentNotFoundError: `return_doc` is set and nothing matched
        """
        check_operation_allowed(self.schema, "delete_one")

        query_filter = sanitize_filter(self.schema, query)
        await self._call_hook("will_delete_document", query_filter)
        repo = await self.get_repository()

        if return_doc or self.schema.cascade:
            try:
                deleted = await repo.find_one_and_delete(query_filter, **options)
            except DocumentNotFoundError:
                if return_doc:
                    raise
                deleted = None
            await self._after_delete(deleted)
            return deleted if return_doc else deleted is not None

        result = await repo.delete_one(query_filter, **options)
        await self._after_delete()
        return result

    @_model_operation("delete_one", timed=False)
    async def delete_one(
        self, query: Any, return_doc: bool = False, **options: Any
    ) -> bool | dict[str, Any] | None:
        try:
            return await self.delete_one_strict(query, return_doc=return_doc, **options)
        except _SOFT_ERRORS as e:
            self._log_soft_failure("delete_one", e)
            return None if return_doc else False

    @_model_operation("delete_many")
    async def delete_many_strict(
        self, query: Any, return_docs: bool = False, **options: Any
    ) -> bool | list[dict[str, Any]]:
        """
        Delete every matching document, then cascade the deletions.

        Returns:
            Whether anything was deleted, or the deleted documents with
            `return_docs`
        """
        check_operation_allowed(self.schema, "delete_many")

        query_filter = sanitize_filter(self.schema, query)
        await self._call_hook("will_delete_document", query_filter)
        repo = await self.get_repository()

        if return_docs or self.schema.cascade:
            deleted_docs = await repo.find_many_and_delete(query_filter, **options)
            await self._after_delete(deleted_docs)
            return deleted_docs if return_docs else bool(deleted_docs)

        deleted_count = await repo.delete_many(query_filter, **options)
        await self._after_delete()
        return deleted_count > 0

    @_model_operation("delete_many", timed=False)
    async def delete_many(
        self, query: Any, return_docs: bool = False, **options: Any
    ) -> bool | list[dict[str, Any]] | None:
        try:
            return await self.delete_many_strict(query, return_docs=return_docs, **options)
        except _SOFT_ERRORS as e:
            self._log_soft_failure("delete_many", e)
            return None if return_docs else False

    # Replace

    @_model_operation("find_and_replace_one")
    async def find_and_replace_one_strict(
        self,
        query: Any,
        replacement: Mapping[str, Any] | None = None,
        upsert: bool = False,
        return_before: bool = False,
        **options: Any,
    ) -> dict[str, Any]:
        """
        Replace one document, treating it as a deletion followed by an insertion.

        The replacement goes through the insert path; the replaced document
        goes through the delete path (cascade included) and the new one
        through `did_insert_document`.

        Returns:
            The new document, or the old one with `return_before`
        """
        check_operation_allowed(self.schema, "replace_one", upsert=upsert)

        query_filter = sanitize_filter(self.schema, query)
        if replacement is None:
            replacement = await self.random_fields()

        doc_to_insert = await self._before_insert(replacement, strict=True)
        repo = await self.get_repository()
        old_doc, new_doc = await repo.find_one_and_replace(
            query_filter, doc_to_insert, upsert=upsert, **options
        )

        await self._after_delete(old_doc)
        await self._call_hook("did_insert_document", new_doc)

        return old_doc if return_before else new_doc

    @_model_operation("find_and_replace_one", timed=False)
    async def find_and_replace_one(
        self, query: Any, replacement: Mapping[str, Any] | None = None, **options: Any
    ) -> dict[str, Any] | None:
        try:
            return await self.find_and_replace_one_strict(query, replacement, **options)
        except _SOFT_ERRORS as e:
            self._log_soft_failure("find_and_replace_one", e)
            return None

    # Lifecycle

    async def _before_insert(
        self, doc: Mapping[str, Any], strict: bool = True, ignore_timestamps: bool = False
    ) -> dict[str, Any]:
        """Sanitize, run the insert hook, then fill timestamps and defaults, format and validate."""
        modified = await self._call_hook(
            "will_insert_document", sanitize_document(self.schema, doc)
        )
        sanitized = sanitize_document(self.schema, modified)

        if self.schema.timestamps and not ignore_timestamps:
            now = datetime.now(timezone.utc)
            for key in (CREATED_AT_FIELD, UPDATED_AT_FIELD):
                if not isinstance(sanitized.get(key), datetime):
                    sanitized[key] = now

        for key in self.schema.fields:
            if key in sanitized or key not in self.default_props:
                continue
            default = self.default_props[key]
            sanitized[key] = default() if callable(default) else default

        formatted = await self.format_document(sanitized)

        # The database enforces unique indexes on insert
        await self.validate_document(formatted, strict=strict, ignore_unique_index=True)
        return formatted

    async def _before_update(
        self,
        query: Mapping[str, Any],
        update: dict[str, Any],
        upsert: bool = False,
        ignore_timestamps: bool = False,
    ) -> dict[str, Any]:
        """
        Prepare an update: run the hook and re-sanitize its result, format `$set`,
        add the upsert pre-image, then validate `$set`.
        """
        modified = await self._call_hook("will_update_document", query, update)
        update_doc = sanitize_update(self.schema, modified, ignore_timestamps=ignore_timestamps)

        if update_doc.get("$set"):
            update_doc["$set"] = await self.format_document(update_doc["$set"])

        # An upserted document is built from the filter as if it was inserted
        if upsert and is_plain_document(query):
            doc_if_upsert = await self._before_insert(
                query, strict=False, ignore_timestamps=ignore_timestamps
            )
            taken = set(update_doc.get("$set") or {}) | set(update_doc.get("$unset") or {})
            set_on_insert = dict(update_doc.get("$setOnInsert") or {})
            set_on_insert.update(doc_if_upsert)
            set_on_insert = {k: v for k, v in set_on_insert.items() if k not in taken}
            if set_on_insert:
                update_doc["$setOnInsert"] = set_on_insert

        if update_doc.get("$set"):
            await self.validate_document(
                update_doc["$set"], ignore_unique_index=True, account_for_dot_notation=True
            )

        return update_doc

    async def _after_delete(self, docs: dict[str, Any] | list | None = None) -> None:
        if docs:
            for doc in docs if isinstance(docs, list) else [docs]:
                if is_object_id(doc.get(ID_FIELD)):
                    await self.cascade_delete(doc[ID_FIELD])

        await self._call_hook("did_delete_document", docs)

    @_model_operation("cascade_delete", timed=False)
    async def cascade_delete(self, doc_id: ObjectId) -> None:
        """
        Delete the documents of the cascade models that reference a deleted document.

        For each model listed in the schema's `cascade`, every document whose
        reference field to this model equals `doc_id` is deleted. Models are
        processed sequentially and nothing is rolled back on failure.

        Raises:
            CascadeError: A cascade model is not registered
        """
        for model_name in self.schema.cascade:
            try:
                target = self.database.get_model(model_name)
            except ModelNotFoundError as e:
                raise CascadeError(
                    f"[{self.schema.model}] Trying to cascade delete from model {model_name} "
                    f"but model is not found",
                    context={"model": self.schema.model, "cascade_model": model_name},
                ) from e

            for key, descriptor in target.schema.fields.items():
                if descriptor.ref != self.schema.model:
                    continue

                await target.delete_many_strict({key: doc_id})
                contextual_logger.debug(
                    f"Cascade deleting all {model_name} documents whose <{key}> field is "
                    f"<{doc_id}>... OK"
                )

    def _log_soft_failure(self, operation: str, error: Exception) -> None:
        log_operation(
            contextual_logger,
            f"model.{operation}",
            level=logging.WARNING,
            success=False,
            model=self.schema.model,
            error_type=type(error).__name__,
            error=str(error),
        )
