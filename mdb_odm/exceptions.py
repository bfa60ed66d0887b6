"""
Custom exceptions for MDB_ODM.

These exceptions provide specific error types for schema definition,
document validation, pipeline synthesis and CRUD orchestration failures,
while maintaining compatibility with RuntimeError.
"""

from typing import Any, Dict, Optional


class ODMError(RuntimeError):
    """
    Base exception for MDB_ODM errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (model,
                 field, collection_name, etc.)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: Error message
            context: Optional dictionary with additional context information
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class ConfigurationError(ODMError):
    """
    Raised when configuration is invalid or missing.

    Attributes:
        message: Error message
        config_key: Configuration key that caused the error (if available)
        config_value: Configuration value that caused the error (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value


class InitializationError(ODMError):
    """
    Raised when the MongoDB connection cannot be initialized.

    Attributes:
        message: Error message
        mongo_uri: MongoDB connection URI (if available)
        db_name: Database name (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        mongo_uri: Optional[str] = None,
        db_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if mongo_uri:
            context["mongo_uri"] = mongo_uri
        if db_name:
            context["db_name"] = db_name
        super().__init__(message, context=context)
        self.mongo_uri = mongo_uri
        self.db_name = db_name


class SchemaDefinitionError(ODMError):
    """
    Raised when a schema (or a model built on it) is defined incorrectly.

    These are programmer errors: they are never retried and indicate the
    schema itself must be fixed.

    Attributes:
        message: Error message
        model: Name of the model whose schema is wrong (if available)
        field: Offending field (if available)
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if model:
            context["model"] = model
        if field:
            context["field"] = field
        super().__init__(message, context=context)
        self.model = model
        self.field = field


class MissingReferenceError(SchemaDefinitionError):
    """Raised when a field requested for population has no `ref` in the schema."""


class ModelNotFoundError(ODMError):
    """
    Raised when a model or collection name is not registered.

    Attributes:
        message: Error message
        name: The model or collection name that was looked up
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if name:
            context["name"] = name
        super().__init__(message, context=context)
        self.name = name


class PipelineSpecError(ODMError):
    """Raised when a pipeline stage spec has an unsupported shape."""


class InvalidFilterError(ODMError):
    """Raised when a value cannot be turned into a query filter."""


class FieldValidationError(ODMError):
    """
    Base class for data errors raised by the field validator.

    Attributes:
        message: Error message
        field: Field being validated (if known)
        value: The rejected value
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if field:
            context["field"] = field
        super().__init__(message, context=context)
        self.field = field
        self.value = value


class RequiredFieldError(FieldValidationError):
    """Raised when a required value is missing or None."""


class FieldTypeError(FieldValidationError):
    """Raised when a value is not of the kind declared in the schema."""


class StrategyFailedError(FieldValidationError):
    """Raised when a value does not pass its validation strategy."""


class UnsupportedStrategyError(FieldValidationError):
    """Raised when a validation strategy kind is not legal for the field type."""


class OperationDisabledError(ODMError):
    """
    Raised when an operation is disabled by the schema flags.

    Raised before any I/O takes place.

    Attributes:
        message: Error message
        model: Name of the model
        operation: The disabled operation (e.g. "insert_many")
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if model:
            context["model"] = model
        if operation:
            context["operation"] = operation
        super().__init__(message, context=context)
        self.model = model
        self.operation = operation


class DocumentNotFoundError(ODMError):
    """Raised when no document matches the provided filter."""


class DocumentWriteError(ODMError):
    """Raised when the driver does not acknowledge a write or returns no document."""


class DuplicateDocumentError(FieldValidationError):
    """Raised when a document would violate a unique index of its schema."""


class CascadeError(ODMError):
    """
    Raised when a cascade delete cannot be carried out.

    Deletions committed before the failure are not rolled back.
    """


class IndexCreationError(ODMError):
    """
    Raised when a schema index cannot be created.

    Attributes:
        message: Error message
        collection: Collection the index belongs to
        context: Additional context information
    """

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if collection:
            context["collection"] = collection
        super().__init__(message, context=context)
        self.collection = collection
