# src/async_query_support/db_implementations/postgresql_executor.py

import re
from typing import Any, Dict, List, Optional, Union

import asyncpg
from asyncpg.pool import Pool, PoolConnectionProxy

from async_query_support.base.interfaces import UnitOfWork
from async_query_support.db_implementations.sql_base import SqlQueryExecutor
from async_query_support.db_implementations.sql_compiler import Dialect

_STATUS_COUNT_RE = re.compile(r"^(?:UPDATE|DELETE)\s+(\d+)$")


class PostgresQueryExecutor(SqlQueryExecutor):
    """
    PostgreSQL executor using asyncpg.

    Accepts either a pool (each statement runs on a pooled connection, in
    autocommit mode) or a single connection, typically one handed out by a
    `PostgresUnitOfWork` inside a transaction. Timeouts are passed to asyncpg.
    """

    dialect = Dialect.POSTGRESQL
    driver_errors = (asyncpg.PostgresError, asyncpg.InterfaceError)

    def __init__(
        self,
        db: Union[Pool, asyncpg.Connection, PoolConnectionProxy],
        default_timeout: Optional[float] = None,
    ):
        if not isinstance(db, (Pool, asyncpg.Connection, PoolConnectionProxy)):
            raise TypeError("db must be an asyncpg Pool or Connection")
        super().__init__(default_timeout)
        self._db = db
        self._logger.debug(f"Executor created for asyncpg {type(db).__name__}.")

    async def _fetch_all(
        self, sql: str, params: List[Any], timeout: Optional[float]
    ) -> List[Dict[str, Any]]:
        records = await self._db.fetch(sql, *params, timeout=timeout)
        return [dict(record) for record in records]

    async def _execute(
        self, sql: str, params: List[Any], timeout: Optional[float]
    ) -> int:
        status = await self._db.execute(sql, *params, timeout=timeout)
        # Parse status string like 'UPDATE 3'
        match = _STATUS_COUNT_RE.match(status or "")
        return int(match.group(1)) if match else 0


class PostgresUnitOfWork(UnitOfWork):
    """Acquires a pooled connection and runs one transaction on it."""

    def __init__(self, pool: Pool, default_timeout: Optional[float] = None):
        self._pool = pool
        self._default_timeout = default_timeout
        self._conn: Optional[PoolConnectionProxy] = None
        self._transaction = None

    async def begin(self) -> PostgresQueryExecutor:
        if self._conn is not None:
            raise RuntimeError("Unit of work is already active.")
        self._conn = await self._pool.acquire()
        try:
            self._transaction = self._conn.transaction()
            await self._transaction.start()
            return PostgresQueryExecutor(self._conn, self._default_timeout)
        except BaseException:
            await self.release()
            raise

    async def commit(self) -> None:
        await self._transaction.commit()

    async def rollback(self) -> None:
        await self._transaction.rollback()

    async def release(self) -> None:
        self._transaction = None
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await self._pool.release(conn)
