"""
MDB_ODM - MongoDB Object-Document Mapper

Schema-driven sanitization, validation, formatting and aggregation
pipeline synthesis over motor, with per-model CRUD and lifecycle hooks.
"""

from .config import OdmConfig
from .core import (
    ConnectionManager,
    Database,
    Embedded,
    FieldDescriptor,
    FieldKind,
    IndexSpec,
    Model,
    Primitive,
    Schema,
    SchemaRegistry,
    SchemaRepository,
    TypedArray,
)
from .aggregation import pipeline_factory
from .exceptions import (
    CascadeError,
    ConfigurationError,
    DocumentNotFoundError,
    DocumentWriteError,
    DuplicateDocumentError,
    FieldTypeError,
    FieldValidationError,
    IndexCreationError,
    InitializationError,
    InvalidFilterError,
    MissingReferenceError,
    ModelNotFoundError,
    ODMError,
    OperationDisabledError,
    PipelineSpecError,
    RequiredFieldError,
    SchemaDefinitionError,
    StrategyFailedError,
    UnsupportedStrategyError,
)

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "OdmConfig",
    # Schema
    "Schema",
    "FieldDescriptor",
    "FieldKind",
    "Primitive",
    "TypedArray",
    "Embedded",
    "IndexSpec",
    "SchemaRegistry",
    # CRUD
    "ConnectionManager",
    "Database",
    "Model",
    "SchemaRepository",
    "pipeline_factory",
    # Exceptions
    "ODMError",
    "ConfigurationError",
    "InitializationError",
    "SchemaDefinitionError",
    "MissingReferenceError",
    "ModelNotFoundError",
    "PipelineSpecError",
    "InvalidFilterError",
    "FieldValidationError",
    "RequiredFieldError",
    "FieldTypeError",
    "StrategyFailedError",
    "UnsupportedStrategyError",
    "DuplicateDocumentError",
    "OperationDisabledError",
    "DocumentNotFoundError",
    "DocumentWriteError",
    "CascadeError",
    "IndexCreationError",
]
