# src/dynamic_query/__init__.py

"""
Dynamic Query Library Initialization.

This package builds immutable, backend-neutral predicate trees from
optional filter inputs, plus ordering and pagination hints, and ships an
in-memory and an SQLite backend that evaluate them.

It initializes a logger with a NullHandler and makes the builder, the
condition model, the predicate constructors and the backends available at
the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# the "dynamic_query" logger.
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False

# --------------------------------------------------------------------------
# Condition Model and Errors
# --------------------------------------------------------------------------
from .base.conditions import (
    Condition,
    ConditionType,
    JoinGroup,
    JoinType,
    OrderSpec,
    PageRequest,
    PageSpec,
    SortDirection,
)
from .base.exceptions import (
    ConditionTypeError,
    ConditionValidationError,
    DateParseError,
    InvalidPathError,
    KeyAlreadyExistsException,
    ObjectNotFoundException,
    ValidationError,
)

# --------------------------------------------------------------------------
# Predicate Tree and Collaborators
# --------------------------------------------------------------------------
from .base import predicate
from .base.predicate import TRUE, FieldPath, Predicate
from .base.converter import DefaultTypeConverter, TypeConverter
from .base.dates import DateParser, default_parser
from .base.diagnostics import (
    CollectingDiagnostics,
    Diagnostic,
    DiagnosticsSink,
    LoggingDiagnostics,
    NullDiagnostics,
)
from .base.schema import (
    FieldResolver,
    JoinScope,
    PermissiveFieldResolver,
    StrictFieldResolver,
)

# --------------------------------------------------------------------------
# Query Building Exports
# --------------------------------------------------------------------------
from .base.query import QueryBuilder, QueryOptions

# --------------------------------------------------------------------------
# Repository Implementation Exports
# --------------------------------------------------------------------------
from .base.interfaces import QueryRepository
from .memory.base import MemoryRepository
from .sqlite.base import RelationMapping, SqliteRepository

__all__ = [
    # Conditions
    "Condition",
    "ConditionType",
    "JoinGroup",
    "JoinType",
    "OrderSpec",
    "PageRequest",
    "PageSpec",
    "SortDirection",
    # Exceptions
    "ConditionValidationError",
    "ConditionTypeError",
    "ValidationError",
    "InvalidPathError",
    "DateParseError",
    "ObjectNotFoundException",
    "KeyAlreadyExistsException",
    # Predicates
    "predicate",
    "Predicate",
    "FieldPath",
    "TRUE",
    # Collaborators
    "TypeConverter",
    "DefaultTypeConverter",
    "DateParser",
    "default_parser",
    "Diagnostic",
    "DiagnosticsSink",
    "NullDiagnostics",
    "LoggingDiagnostics",
    "CollectingDiagnostics",
    "FieldResolver",
    "StrictFieldResolver",
    "PermissiveFieldResolver",
    "JoinScope",
    # Query
    "QueryBuilder",
    "QueryOptions",
    # Implementations
    "QueryRepository",
    "MemoryRepository",
    "SqliteRepository",
    "RelationMapping",
    # Logging
    "logger",
]
