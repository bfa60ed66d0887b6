"""
Core MDB_ODM components.

Schemas and their registry, the connection manager, the driver-facing
repository, and the Model/Database orchestration layer.
"""

# Schema declarations must load before the modules that resolve references
from .schema import (
    Embedded,
    FieldDescriptor,
    FieldKind,
    FieldType,
    IndexSpec,
    Primitive,
    Schema,
    TypedArray,
    as_field_descriptor,
    as_field_type,
)
from .registry import SchemaRegistry
from .connection import ConnectionManager
from .repository import SchemaRepository, check_operation_allowed
from .model import HOOK_NAMES, Model
from .database import Database

__all__ = [
    # Schema
    "FieldKind",
    "Primitive",
    "TypedArray",
    "Embedded",
    "FieldType",
    "FieldDescriptor",
    "IndexSpec",
    "Schema",
    "as_field_type",
    "as_field_descriptor",
    "SchemaRegistry",
    # Connection
    "ConnectionManager",
    # CRUD
    "SchemaRepository",
    "check_operation_allowed",
    "Model",
    "HOOK_NAMES",
    "Database",
]
