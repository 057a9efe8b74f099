# src/async_query_support/db_implementations/sql_base.py

import logging
from abc import abstractmethod
from logging import LoggerAdapter
from typing import Any, Dict, List, NoReturn, Optional, Tuple, Type

from async_query_support.base.exceptions import QueryExecutionException
from async_query_support.base.interfaces import QueryExecutor
from async_query_support.base.query import QueryDescriptor, QueryOptions, as_options
from async_query_support.base.update import Update
from async_query_support.db_implementations.sql_compiler import (Dialect,
                                                                 SqlCompiler)


class SqlQueryExecutor(QueryExecutor):
    """
    Shared behaviour of the SQL backends.

    Subclasses set ``dialect`` and ``driver_errors`` and implement the two
    driver primitives: ``_fetch_all`` (rows as dicts) and ``_execute``
    (affected row count). Everything else (compiling, logging, shaping result
    rows and mapping driver errors) happens here.
    """

    dialect: Dialect
    driver_errors: Tuple[Type[BaseException], ...] = ()

    def __init__(self, default_timeout: Optional[float] = None):
        super().__init__(default_timeout)
        self._compiler = SqlCompiler(self.dialect)
        self._logger = logging.getLogger(
            f"{type(self).__module__}.{type(self).__name__}"
        )

    @property
    def compiler(self) -> SqlCompiler:
        return self._compiler

    # --- Driver primitives ---

    @abstractmethod
    async def _fetch_all(
        self, sql: str, params: List[Any], timeout: Optional[float]
    ) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def _execute(
        self, sql: str, params: List[Any], timeout: Optional[float]
    ) -> int:
        pass

    # --- QueryExecutor ---

    async def execute(
        self,
        descriptor: QueryDescriptor,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> List[Any]:
        options = as_options(descriptor)
        compiled = self._compiler.compile_select(options)
        logger.debug(
            f"Executing select: SQL='{compiled.sql}', Params={compiled.params}"
        )
        try:
            records = await self._fetch_all(
                compiled.sql, compiled.params, self._effective_timeout(options, timeout)
            )
        except self.driver_errors as e:
            self._handle_db_error(e, f"selecting from '{options.table}'", logger)
        logger.debug(f"Fetched {len(records)} row(s) from '{options.table}'")
        return self._shape_rows(options, records)

    async def count(
        self,
        descriptor: QueryDescriptor,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> int:
        options = as_options(descriptor)
        compiled = self._compiler.compile_count(options)
        logger.debug(
            f"Executing count: SQL='{compiled.sql}', Params={compiled.params}"
        )
        try:
            records = await self._fetch_all(
                compiled.sql, compiled.params, self._effective_timeout(options, timeout)
            )
        except self.driver_errors as e:
            self._handle_db_error(e, f"counting rows of '{options.table}'", logger)
        total = int(records[0]["total"]) if records else 0
        logger.debug(f"Counted {total} row(s) in '{options.table}'")
        return total

    async def update_many(
        self,
        descriptor: QueryDescriptor,
        update: Update,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> int:
        options = as_options(descriptor)
        self._check_bulk_options(options, "update")
        if not update:
            logger.warning("update_many called with empty update operations. Returning 0.")
            return 0
        self._warn_ignored_options(options, "update_many", logger)
        compiled = self._compiler.compile_update(options, update)
        logger.debug(
            f"Executing update_many: SQL='{compiled.sql}', Params={compiled.params}"
        )
        try:
            affected = await self._execute(
                compiled.sql, compiled.params, self._effective_timeout(options, timeout)
            )
        except self.driver_errors as e:
            self._handle_db_error(e, f"updating rows of '{options.table}'", logger)
        logger.info(
            f"Updated {affected} row(s) of '{options.table}' matching filter: "
            f"{options.expression!r}. (Commit handled externally)"
        )
        return affected

    async def delete_many(
        self,
        descriptor: QueryDescriptor,
        logger: LoggerAdapter,
        timeout: Optional[float] = None,
    ) -> int:
        options = as_options(descriptor)
        self._check_bulk_options(options, "delete")
        self._warn_ignored_options(options, "delete_many", logger)
        compiled = self._compiler.compile_delete(options)
        logger.debug(
            f"Executing delete_many: SQL='{compiled.sql}', Params={compiled.params}"
        )
        try:
            affected = await self._execute(
                compiled.sql, compiled.params, self._effective_timeout(options, timeout)
            )
        except self.driver_errors as e:
            self._handle_db_error(e, f"deleting rows of '{options.table}'", logger)
        logger.info(
            f"Deleted {affected} row(s) of '{options.table}' matching filter: "
            f"{options.expression!r}. (Commit handled externally)"
        )
        return affected

    # --- Helper Methods ---

    @staticmethod
    def _shape_rows(options: QueryOptions, records: List[Dict[str, Any]]) -> List[Any]:
        if options.mapper is not None:
            return [options.mapper(record) for record in records]
        if options.is_scalar:
            name = options.projections[0].name
            return [record[name] for record in records]
        return records

    @staticmethod
    def _warn_ignored_options(
        options: QueryOptions, operation: str, logger: LoggerAdapter
    ) -> None:
        if options.limit is not None:
            logger.warning(f"QueryOptions 'limit' is ignored for {operation}.")
        if options.offset:
            logger.warning(f"QueryOptions 'offset' is ignored for {operation}.")
        if options.sort:
            logger.warning(f"QueryOptions 'sort' is ignored for {operation}.")

    def _handle_db_error(
        self, error: BaseException, context: str, logger: LoggerAdapter
    ) -> NoReturn:
        """Logs a driver error with its traceback and raises it as a QueryExecutionException."""
        logger.error(f"Error during {context}: {error}", exc_info=True)
        raise QueryExecutionException(
            f"Database error during {context}: {error}"
        ) from error
