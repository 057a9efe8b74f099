# src/async_query_support/db_implementations/sqlite_executor.py

import asyncio
import os
from typing import Any, Dict, List, Optional, Union

import aiosqlite

from async_query_support.base.interfaces import UnitOfWork
from async_query_support.db_implementations.sql_base import SqlQueryExecutor
from async_query_support.db_implementations.sql_compiler import Dialect


class SqliteQueryExecutor(SqlQueryExecutor):
    """
    SQLite executor using aiosqlite.

    This executor expects an active `aiosqlite.Connection`, typically managed
    by a `SqliteUnitOfWork` or service layer that handles transaction
    boundaries (commit/rollback).

    aiosqlite has no per-statement timeout, so timeouts are enforced with
    ``asyncio.wait_for`` around each statement.
    """

    dialect = Dialect.SQLITE
    driver_errors = (aiosqlite.Error,)

    def __init__(
        self,
        db_connection: aiosqlite.Connection,
        default_timeout: Optional[float] = None,
    ):
        """
        Args:
            db_connection: An active aiosqlite.Connection managed externally.
            default_timeout: Timeout in seconds used when no other is given.
        """
        if not isinstance(db_connection, aiosqlite.Connection):
            raise TypeError("db_connection must be an instance of aiosqlite.Connection")
        super().__init__(default_timeout)
        self._conn = db_connection
        # Rows come back as aiosqlite.Row so they can be turned into dicts
        self._conn.row_factory = aiosqlite.Row
        self._logger.debug("Executor created for aiosqlite connection.")

    async def _fetch_all(
        self, sql: str, params: List[Any], timeout: Optional[float]
    ) -> List[Dict[str, Any]]:
        async def run() -> List[Dict[str, Any]]:
            async with self._conn.execute(sql, tuple(params)) as cursor:
                return [dict(record) for record in await cursor.fetchall()]

        return await asyncio.wait_for(run(), timeout)

    async def _execute(
        self, sql: str, params: List[Any], timeout: Optional[float]
    ) -> int:
        async def run() -> int:
            cursor = await self._conn.execute(sql, tuple(params))
            try:
                return cursor.rowcount
            finally:
                await cursor.close()

        return await asyncio.wait_for(run(), timeout)


class SqliteUnitOfWork(UnitOfWork):
    """
    Opens a connection to a SQLite database for one transaction::

        async with SqliteUnitOfWork("app.db") as executor:
            await executor.delete_many(...)

    The connection is closed when the block ends.
    """

    def __init__(
        self,
        database: Union[str, "os.PathLike[str]"],
        default_timeout: Optional[float] = None,
    ):
        self._database = database
        self._default_timeout = default_timeout
        self._conn: Optional[aiosqlite.Connection] = None

    async def begin(self) -> SqliteQueryExecutor:
        if self._conn is not None:
            raise RuntimeError("Unit of work is already active.")
        self._conn = await aiosqlite.connect(self._database)
        try:
            # Without this, sqlite3 only opens a transaction before DML
            await self._conn.execute("BEGIN")
            return SqliteQueryExecutor(self._conn, self._default_timeout)
        except BaseException:
            await self.release()
            raise

    async def commit(self) -> None:
        await self._conn.commit()

    async def rollback(self) -> None:
        await self._conn.rollback()

    async def release(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await conn.close()
