# src/async_query_support/base/interfaces.py

from abc import ABC, abstractmethod
from logging import LoggerAdapter
from typing import Any, List, Optional

from async_query_support.base.exceptions import ObjectNotFoundException
from async_query_support.base.pagination import PageRequest
from async_query_support.base.query import (QueryDescriptor, QueryFactory,
                                            QueryOptions, as_options)
from async_query_support.base.update import Update


class QueryExecutor(ABC):
    """
    Runs query descriptors against a store.

    Implementations translate `QueryOptions` into their backend's query
    language. The executor does not manage transactions; it works on the
    connection (or data) it was given, typically by a `UnitOfWork`.
    """

    def __init__(self, default_timeout: Optional[float] = None):
        """
        Args:
            default_timeout: Timeout in seconds used when neither the call nor
                             the descriptor specifies one.
        """
        self._default_timeout = default_timeout
        self._factory = QueryFactory()

    @property
    def factory(self) -> QueryFactory:
        """The query-building context handed to content/count builders."""
        return self._factory

    def _effective_timeout(
        self, options: QueryOptions, timeout: Optional[float]
    ) -> Optional[float]:
        if timeout is not None:
            return timeout
        if options.timeout is not None:
            return options.timeout
        return self._default_timeout

    # --- Pagination primitive ---

    def apply_pagination(
        self, descriptor: QueryDescriptor, page_request: PageRequest
    ) -> QueryOptions:
        """
        Returns a copy of the descriptor restricted to one page.

        Offset and limit come from the page request. When the page request
        carries sort directives they replace any sort on the descriptor;
        otherwise the descriptor's own sort is kept.

        Args:
            descriptor: The content query.
            page_request: The page to fetch.

        Returns:
            A new QueryOptions; the input descriptor is not modified.
        """
        options = as_options(descriptor).copy()
        options.offset = page_request.offset
        options.limit = page_request.size
        if page_request.sort:
            options.sort = tuple(page_request.sort)
        return options

    # --- Reads ---

    @abstractmethod
    async def execute(
        self,
        descriptor: QueryDescriptor,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> List[Any]:
        """
        Execute a select query.

        Args:
            descriptor: QueryBuilder or QueryOptions to run.
            logger: Logger adapter for recording operations.
            timeout: Optional timeout override in seconds.

        Returns:
            Result rows in query order: ``mapper(row)`` when the descriptor
            has a mapper, bare values for a single projection, otherwise
            dicts keyed by projection name.

        Raises:
            QueryExecutionException: If the backend fails.
        """
        pass

    @abstractmethod
    async def count(
        self,
        descriptor: QueryDescriptor,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> int:
        """
        Count the rows a descriptor selects, ignoring its sort, limit and
        offset but keeping its joins and filter.

        Args:
            descriptor: QueryBuilder or QueryOptions to count.
            logger: Logger adapter for recording operations.
            timeout: Optional timeout override in seconds.

        Returns:
            The number of matching rows.
        """
        pass

    async def fetch_first(
        self,
        descriptor: QueryDescriptor,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> Optional[Any]:
        """Returns the first result row, or None if there is none."""
        options = as_options(descriptor).copy()
        options.limit = 1
        rows = await self.execute(options, logger, timeout)
        return rows[0] if rows else None

    async def fetch_one(
        self,
        descriptor: QueryDescriptor,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Returns the first result row.

        Raises:
            ObjectNotFoundException: If the query returns no rows.
        """
        options = as_options(descriptor).copy()
        options.limit = 1
        rows = await self.execute(options, logger, timeout)
        if not rows:
            raise ObjectNotFoundException(
                f"No row in '{options.table}' matches the provided criteria."
            )
        return rows[0]

    # --- Bulk writes ---

    @abstractmethod
    async def update_many(
        self,
        descriptor: QueryDescriptor,
        update: Update,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> int:
        """
        Apply an update to every row of the descriptor's table that matches
        its filter. Joins are not allowed.

        Returns:
            The number of rows updated; 0 for an empty update.

        Raises:
            ValueError: If the descriptor has joins or no filter.
        """
        pass

    @abstractmethod
    async def delete_many(
        self,
        descriptor: QueryDescriptor,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> int:
        """
        Delete every row of the descriptor's table that matches its filter.
        Joins are not allowed and a filter is required.

        Returns:
            The number of rows deleted.
        """
        pass

    # --- Helper Methods ---

    @staticmethod
    def _check_bulk_options(options: QueryOptions, operation: str) -> None:
        if options.joins:
            raise ValueError(f"Bulk {operation} does not support joins.")
        if options.expression is None:
            raise ValueError(
                f"Bulk {operation} requires a filter expression (safety check)."
            )


class UnitOfWork(ABC):
    """
    Transactional scope around one or more executor calls.

    Used as an async context manager that yields a `QueryExecutor`; the work
    is committed on normal exit, rolled back when the block raises, and the
    underlying connection is released on every path::

        async with SqliteUnitOfWork("app.db") as executor:
            page = await Paginator(executor).paginate(...)
    """

    @abstractmethod
    async def begin(self) -> QueryExecutor:
        """Acquire a connection, start a transaction and return its executor."""
        pass

    @abstractmethod
    async def commit(self) -> None:
        pass

    @abstractmethod
    async def rollback(self) -> None:
        pass

    @abstractmethod
    async def release(self) -> None:
        """Give the connection back. Must be safe to call after a failure."""
        pass

    async def __aenter__(self) -> QueryExecutor:
        return await self.begin()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                await self.commit()
            else:
                await self.rollback()
        finally:
            await self.release()
