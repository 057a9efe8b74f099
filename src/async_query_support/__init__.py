# src/async_query_support/__init__.py

"""
Async Query Support Library Initialization.

This package composes dynamic search filters from optional conditions and
executes paginated queries (content plus total count) against several
database backends.

It initializes a logger with a NullHandler and makes the predicate helpers,
the paginator, query/update builders, exceptions and backend executors
available at the top level.
"""

import logging

# --------------------------------------------------------------------------
# Logging Setup
# --------------------------------------------------------------------------
# Library logs are discarded unless the consuming application configures
# logging for this package.
logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())
logger.propagate = False  # Prevent log messages from propagating to the root logger

# --------------------------------------------------------------------------
# Core Interface and Exception Exports
# --------------------------------------------------------------------------
from .base.interfaces import QueryExecutor, UnitOfWork
from .base.exceptions import (
    InvalidPageRequestException,
    ObjectNotFoundException,
    QueryExecutionException,
)

# --------------------------------------------------------------------------
# Predicate Composition Exports
# --------------------------------------------------------------------------
from .base.predicates import (
    BooleanBuilder,
    SearchCondition,
    and_all,
    between,
    compose,
    has_text,
    or_any,
)

# --------------------------------------------------------------------------
# Pagination Exports
# --------------------------------------------------------------------------
from .base.pagination import Direction, Order, Page, PageRequest
from .base.paginator import CountPolicy, Paginator, get_page

# --------------------------------------------------------------------------
# Query and Update Building Exports
# --------------------------------------------------------------------------
# Table/Field describe columns, QueryFactory starts a QueryBuilder and
# QueryOptions is the built, backend-agnostic query.
from .base.query import (
    Field,
    QueryBuilder,
    QueryFactory,
    QueryOperator,
    QueryOptions,
    Table,
)
from .base.update import Update

# --------------------------------------------------------------------------
# Executor Implementation Exports
# --------------------------------------------------------------------------
# Users can import them like: from async_query_support import SqliteQueryExecutor
from .memory.base import MemoryQueryExecutor, MemoryUnitOfWork
from .db_implementations.sql_compiler import Dialect, SqlCompiler
from .db_implementations.sqlite_executor import SqliteQueryExecutor, SqliteUnitOfWork
from .db_implementations.postgresql_executor import (
    PostgresQueryExecutor,
    PostgresUnitOfWork,
)
from .db_implementations.mysql_executor import MySQLQueryExecutor, MySQLUnitOfWork

# --------------------------------------------------------------------------
# __all__ Definition
# --------------------------------------------------------------------------
__all__ = [
    # Core
    "QueryExecutor",
    "UnitOfWork",
    # Exceptions
    "InvalidPageRequestException",
    "ObjectNotFoundException",
    "QueryExecutionException",
    # Predicates
    "BooleanBuilder",
    "SearchCondition",
    "and_all",
    "between",
    "compose",
    "has_text",
    "or_any",
    # Pagination
    "CountPolicy",
    "Direction",
    "Order",
    "Page",
    "PageRequest",
    "Paginator",
    "get_page",
    # Query
    "Field",
    "QueryBuilder",
    "QueryFactory",
    "QueryOperator",
    "QueryOptions",
    "Table",
    # Update
    "Update",
    # Implementations
    "Dialect",
    "SqlCompiler",
    "MemoryQueryExecutor",
    "MemoryUnitOfWork",
    "SqliteQueryExecutor",
    "SqliteUnitOfWork",
    "PostgresQueryExecutor",
    "PostgresUnitOfWork",
    "MySQLQueryExecutor",
    "MySQLUnitOfWork",
    # Logging
    "logger",
]

__version__ = "0.1.0"
