# src/async_query_support/db_implementations/mysql_executor.py

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional, Union

import aiomysql

from async_query_support.base.interfaces import UnitOfWork
from async_query_support.db_implementations.sql_base import SqlQueryExecutor
from async_query_support.db_implementations.sql_compiler import Dialect


class MySQLQueryExecutor(SqlQueryExecutor):
    """
    MySQL executor using aiomysql.

    With a pool, every statement runs on its own pooled connection and is
    committed right away. With a single connection (as handed out by a
    `MySQLUnitOfWork`) statements join the caller's transaction and nothing is
    committed here.

    aiomysql has no per-statement timeout, so timeouts are enforced with
    ``asyncio.wait_for``.
    """

    dialect = Dialect.MYSQL
    driver_errors = (aiomysql.Error,)

    def __init__(
        self,
        db: Union[aiomysql.Pool, aiomysql.Connection],
        default_timeout: Optional[float] = None,
    ):
        if not isinstance(db, (aiomysql.Pool, aiomysql.Connection)):
            raise TypeError("db must be an aiomysql Pool or Connection")
        super().__init__(default_timeout)
        self._db = db
        self._logger.debug(f"Executor created for aiomysql {type(db).__name__}.")

    # --- Connection/Session Management ---
    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[aiomysql.DictCursor, None]:
        """
        Yields a DictCursor on the executor's connection, or on a connection
        acquired from the pool that is committed and released afterwards.
        """
        if isinstance(self._db, aiomysql.Connection):
            async with self._db.cursor(aiomysql.DictCursor) as cursor:
                yield cursor
            return

        conn = await self._db.acquire()
        try:
            async with conn.cursor(aiomysql.DictCursor) as cursor:
                yield cursor
            await conn.commit()
        finally:
            self._db.release(conn)

    async def _fetch_all(
        self, sql: str, params: List[Any], timeout: Optional[float]
    ) -> List[Dict[str, Any]]:
        async def run() -> List[Dict[str, Any]]:
            async with self._get_session() as cursor:
                await cursor.execute(sql, params)
                return list(await cursor.fetchall())

        return await asyncio.wait_for(run(), timeout)

    async def _execute(
        self, sql: str, params: List[Any], timeout: Optional[float]
    ) -> int:
        async def run() -> int:
            async with self._get_session() as cursor:
                await cursor.execute(sql, params)
                return cursor.rowcount

        return await asyncio.wait_for(run(), timeout)


class MySQLUnitOfWork(UnitOfWork):
    """Acquires a pooled connection and runs one transaction on it."""

    def __init__(self, pool: aiomysql.Pool, default_timeout: Optional[float] = None):
        self._pool = pool
        self._default_timeout = default_timeout
        self._conn: Optional[aiomysql.Connection] = None

    async def begin(self) -> MySQLQueryExecutor:
        if self._conn is not None:
            raise RuntimeError("Unit of work is already active.")
        self._conn = await self._pool.acquire()
        try:
            await self._conn.begin()
            return MySQLQueryExecutor(self._conn, self._default_timeout)
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
            self._pool.release(conn)
