# tests/conftest.py
import logging
import os
import shutil
import subprocess
import uuid
from typing import Any, Dict, List

import aiomysql
import aiosqlite
import asyncpg
import pytest
import pytest_asyncio

from async_query_support.base.interfaces import QueryExecutor
from async_query_support.db_implementations.mysql_executor import MySQLQueryExecutor
from async_query_support.db_implementations.postgresql_executor import (
    PostgresQueryExecutor,
)
from async_query_support.db_implementations.sqlite_executor import SqliteQueryExecutor
from async_query_support.memory.base import MemoryQueryExecutor

# Silence verbose loggers
logging.getLogger("aiomysql").setLevel(logging.WARNING)
logging.getLogger("asyncpg").setLevel(logging.WARNING)


# --- Constants ---
# MySQL connection details
MYSQL_HOST = os.getenv("TEST_MYSQL_HOST", "localhost")
MYSQL_PORT = int(os.getenv("TEST_MYSQL_PORT", "3306"))
MYSQL_USER = os.getenv("TEST_MYSQL_USER", "testuser")
MYSQL_PASSWORD = os.getenv("TEST_MYSQL_PASSWORD", "password")

# --- Seed data: four members in two teams ---
TEAMS: List[Dict[str, Any]] = [
    {"id": 1, "name": "teamA"},
    {"id": 2, "name": "teamB"},
]
MEMBERS: List[Dict[str, Any]] = [
    {"id": 1, "username": "member1", "age": 10, "team_id": 1},
    {"id": 2, "username": "member2", "age": 20, "team_id": 1},
    {"id": 3, "username": "member3", "age": 30, "team_id": 2},
    {"id": 4, "username": "member4", "age": 40, "team_id": 2},
]

SQL_SCHEMA = [
    "CREATE TABLE team (id INTEGER PRIMARY KEY, name VARCHAR(64) NOT NULL)",
    "CREATE TABLE member ("
    "id INTEGER PRIMARY KEY, username VARCHAR(64) NOT NULL, "
    "age INTEGER, team_id INTEGER)",
]


def seed_tables() -> Dict[str, List[Dict[str, Any]]]:
    """Fresh copies of the seed rows, keyed by table name."""
    return {
        "team": [dict(row) for row in TEAMS],
        "member": [dict(row) for row in MEMBERS],
    }


def insert_statements(placeholder: str):
    for table, rows in seed_tables().items():
        for row in rows:
            columns = ", ".join(row)
            values = ", ".join(placeholder.format(i + 1) for i in range(len(row)))
            yield f"INSERT INTO {table} ({columns}) VALUES ({values})", list(row.values())


# --- Availability Checks ---
def is_postgres_available():
    return shutil.which("pg_ctl") is not None


def is_mysql_available():
    """Check if MySQL is available."""
    try:
        # Use the mysql command-line client to check availability
        cmd = ["mysql", "-h", MYSQL_HOST, "-P", str(MYSQL_PORT), "-u", MYSQL_USER]
        if MYSQL_PASSWORD:
            cmd.extend([f"-p{MYSQL_PASSWORD}"])
        cmd.extend(["--execute", "SELECT 1"])

        result = subprocess.run(
            cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=5
        )
        if result.returncode == 0:
            logging.info(f"MySQL found and responsive at {MYSQL_HOST}:{MYSQL_PORT}")
            return True
        logging.warning(
            f"MySQL check failed at {MYSQL_HOST}:{MYSQL_PORT}: "
            f"{result.stderr.decode('utf-8')}"
        )
        return False
    except (OSError, subprocess.SubprocessError) as e:
        logging.warning(
            f"MySQL not found or not responsive at {MYSQL_HOST}:{MYSQL_PORT}: {e}. "
            "Skipping MySQL tests."
        )
        return False


# --- List of available implementation keys ---
AVAILABLE_IMPLEMENTATIONS = ["memory", "sqlite"]  # Always available
if is_postgres_available():
    AVAILABLE_IMPLEMENTATIONS.append("postgresql")
if is_mysql_available():
    AVAILABLE_IMPLEMENTATIONS.append("mysql")


# --- Logger Fixture ---
@pytest.fixture(scope="session")
def logger():
    """Create a test logger."""
    _logger = logging.getLogger("test_query_logger")
    if not _logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        handler.setLevel(logging.DEBUG)
        _logger.addHandler(handler)
        _logger.setLevel(logging.DEBUG)
        _logger.propagate = False
    return logging.LoggerAdapter(_logger, {})


# --- Connection Fixtures (Function Scoped) ---
@pytest.fixture
def memory_tables() -> Dict[str, List[Dict[str, Any]]]:
    return seed_tables()


@pytest_asyncio.fixture(scope="function")
async def sqlite_memory_db_conn():
    """Provides a seeded in-memory aiosqlite database connection."""
    conn = await aiosqlite.connect(":memory:")
    try:
        for statement in SQL_SCHEMA:
            await conn.execute(statement)
        for sql, params in insert_statements("?"):
            await conn.execute(sql, params)
        await conn.commit()
        yield conn
    finally:
        await conn.close()


@pytest_asyncio.fixture
async def postgres_pool(request):
    """
    Creates a seeded PostgreSQL connection pool with a unique temporary
    database for each test.
    """
    postgresql_proc = request.getfixturevalue("postgresql_proc")
    temp_db_name = f"test_db_{uuid.uuid4().hex}"
    base_dsn = (
        f"postgresql://{postgresql_proc.user}:{postgresql_proc.password or ''}"
        f"@{postgresql_proc.host}:{postgresql_proc.port}"
    )
    admin_conn = await asyncpg.connect(f"{base_dsn}/postgres")
    try:
        await admin_conn.execute(f'CREATE DATABASE "{temp_db_name}"')
        pool = await asyncpg.create_pool(f"{base_dsn}/{temp_db_name}")
        try:
            async with pool.acquire() as conn:
                for statement in SQL_SCHEMA:
                    await conn.execute(statement)
                for sql, params in insert_statements("${}"):
                    await conn.execute(sql, *params)
            yield pool
        finally:
            await pool.close()
            await admin_conn.execute(f'DROP DATABASE "{temp_db_name}"')
    finally:
        await admin_conn.close()


@pytest_asyncio.fixture
async def mysql_pool():
    """
    Creates a seeded MySQL connection pool with a temporary database for each
    test.
    """
    temp_db_name = f"test_db_{uuid.uuid4().hex}"
    admin_conn = await aiomysql.connect(
        host=MYSQL_HOST,
        port=MYSQL_PORT,
        user=MYSQL_USER,
        password=MYSQL_PASSWORD,
        autocommit=True,
    )
    try:
        async with admin_conn.cursor() as cursor:
            await cursor.execute(f"CREATE DATABASE `{temp_db_name}`")
        pool = await aiomysql.create_pool(
            host=MYSQL_HOST,
            port=MYSQL_PORT,
            user=MYSQL_USER,
            password=MYSQL_PASSWORD,
            db=temp_db_name,
            autocommit=True,
        )
        try:
            async with pool.acquire() as conn:
                async with conn.cursor() as cursor:
                    for statement in SQL_SCHEMA:
                        await cursor.execute(statement)
                    for sql, params in insert_statements("%s"):
                        await cursor.execute(sql, params)
            yield pool
        finally:
            pool.close()
            await pool.wait_closed()
            async with admin_conn.cursor() as cursor:
                await cursor.execute(f"DROP DATABASE `{temp_db_name}`")
    finally:
        admin_conn.close()


# --- Parametrized Executor ---
@pytest.fixture(params=AVAILABLE_IMPLEMENTATIONS)
def executor(request) -> QueryExecutor:
    """Parametrized fixture returning an executor over the seeded member/team tables."""
    impl_key = request.param
    if impl_key == "memory":
        return MemoryQueryExecutor(request.getfixturevalue("memory_tables"))
    elif impl_key == "sqlite":
        return SqliteQueryExecutor(request.getfixturevalue("sqlite_memory_db_conn"))
    elif impl_key == "postgresql":
        return PostgresQueryExecutor(request.getfixturevalue("postgres_pool"))
    elif impl_key == "mysql":
        return MySQLQueryExecutor(request.getfixturevalue("mysql_pool"))
    raise ValueError(f"Unknown executor implementation key: {impl_key}")
