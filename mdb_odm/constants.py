"""
Constants for MDB_ODM.

This module contains all shared constants used across the codebase to avoid
magic numbers and strings scattered through the document pipeline.
"""

from typing import Final

# ============================================================================
# DOCUMENT CONSTANTS
# ============================================================================

ID_FIELD: Final[str] = "_id"
"""Name of the identifier field of every document."""

CREATED_AT_FIELD: Final[str] = "createdAt"
"""Timestamp field stamped on insert when a schema enables timestamps."""

UPDATED_AT_FIELD: Final[str] = "updatedAt"
"""Timestamp field stamped on insert and update when a schema enables timestamps."""

TIMESTAMP_FIELDS: Final[tuple[str, ...]] = (CREATED_AT_FIELD, UPDATED_AT_FIELD)
"""Automatically managed timestamp fields."""

# ============================================================================
# AGGREGATION CONSTANTS
# ============================================================================

PIPELINE_OPERATORS: Final[tuple[str, ...]] = (
    "$lookup",
    "$match",
    "$prune",
    "$group",
    "$sort",
)
"""Operator keys understood by the pipeline factory."""

SANITIZED_UPDATE_OPERATORS: Final[tuple[str, ...]] = (
    "$setOnInsert",
    "$addToSet",
    "$push",
)
"""Update operators whose fields are sanitized against the schema (besides $set)."""

# ============================================================================
# FORMATTING CONSTANTS
# ============================================================================

DEFAULT_BCRYPT_ROUNDS: Final[int] = 10
"""Default bcrypt cost factor used for encrypted fields."""

# ============================================================================
# DATABASE CONSTANTS
# ============================================================================

DEFAULT_MAX_POOL_SIZE: Final[int] = 50
"""Default maximum MongoDB connection pool size."""

DEFAULT_MIN_POOL_SIZE: Final[int] = 10
"""Default minimum MongoDB connection pool size."""

DEFAULT_SERVER_SELECTION_TIMEOUT_MS: Final[int] = 5000
"""Default server selection timeout in milliseconds."""

DEFAULT_MAX_IDLE_TIME_MS: Final[int] = 45000
"""Default maximum idle time before closing connections (milliseconds)."""

APP_NAME: Final[str] = "MDB_ODM"
"""Application name reported to the MongoDB server."""
