# tests/database_implementations/test_bulk_operations.py

from logging import LoggerAdapter

import pytest

from async_query_support.base.interfaces import QueryExecutor
from async_query_support.base.update import Update
from tests.members import member, team


async def ages(executor: QueryExecutor, logger: LoggerAdapter):
    query = executor.factory.select(member.age).from_(member).order_by(member.id)
    return await executor.execute(query, logger)


async def test_update_many_increment(executor: QueryExecutor, logger: LoggerAdapter):
    affected = await executor.update_many(
        executor.factory.select_from(member).where(member.team_id == 1),
        Update().increment(member.age, 5),
        logger,
    )
    assert affected == 2
    assert await ages(executor, logger) == [15, 25, 30, 40]


async def test_update_many_set_and_unset(executor: QueryExecutor, logger: LoggerAdapter):
    affected = await executor.update_many(
        executor.factory.select_from(member).where(member.username == "member4"),
        Update().set(member.username, "renamed").unset(member.team_id),
        logger,
    )
    assert affected == 1
    rows = await executor.execute(
        executor.factory.select_from(member).where(member.id == 4), logger
    )
    assert rows[0]["username"] == "renamed"
    assert rows[0]["team_id"] is None

    orphans = executor.factory.select(member.id).from_(member).where(member.team_id.is_null())
    assert await executor.execute(orphans, logger) == [4]


async def test_left_join_keeps_member_without_team(executor: QueryExecutor, logger: LoggerAdapter):
    await executor.update_many(
        executor.factory.select_from(member).where(member.id == 4),
        Update().unset(member.team_id),
        logger,
    )
    query = (
        executor.factory.select(member.id, team.name.as_("team_name"))
        .from_(member)
        .left_join(team, member.team_id == team.id)
        .where(member.age >= 30)
        .order_by(member.id)
    )
    assert await executor.execute(query, logger) == [
        {"id": 3, "team_name": "teamB"},
        {"id": 4, "team_name": None},
    ]
    inner = (
        executor.factory.select(member.id)
        .from_(member)
        .join(team, member.team_id == team.id)
        .where(member.age >= 30)
    )
    assert await executor.count(inner, logger) == 1


async def test_update_many_multiply(executor: QueryExecutor, logger: LoggerAdapter):
    affected = await executor.update_many(
        executor.factory.select_from(member).where(member.age <= 20),
        Update().mul(member.age, 3),
        logger,
    )
    assert affected == 2
    assert await ages(executor, logger) == [30, 60, 30, 40]


async def test_update_many_no_match(executor: QueryExecutor, logger: LoggerAdapter):
    affected = await executor.update_many(
        executor.factory.select_from(member).where(member.age > 100),
        Update().increment(member.age),
        logger,
    )
    assert affected == 0


async def test_empty_update_changes_nothing(executor: QueryExecutor, logger: LoggerAdapter):
    affected = await executor.update_many(
        executor.factory.select_from(member).where(member.id == 1), Update(), logger
    )
    assert affected == 0
    assert await ages(executor, logger) == [10, 20, 30, 40]


async def test_delete_many(executor: QueryExecutor, logger: LoggerAdapter):
    affected = await executor.delete_many(
        executor.factory.select_from(member).where(member.age > 25), logger
    )
    assert affected == 2
    assert await ages(executor, logger) == [10, 20]
    assert await executor.count(executor.factory.select_from(member), logger) == 2


async def test_bulk_rejects_joins(executor: QueryExecutor, logger: LoggerAdapter):
    joined = (
        executor.factory.select_from(member)
        .join(team, member.team_id == team.id)
        .where(team.name == "teamA")
    )
    with pytest.raises(ValueError, match="joins"):
        await executor.delete_many(joined, logger)
    with pytest.raises(ValueError, match="joins"):
        await executor.update_many(joined, Update().increment(member.age), logger)


async def test_bulk_requires_filter(executor: QueryExecutor, logger: LoggerAdapter):
    with pytest.raises(ValueError, match="filter"):
        await executor.delete_many(executor.factory.select_from(member), logger)
    with pytest.raises(ValueError, match="filter"):
        await executor.update_many(
            executor.factory.select_from(member), Update().increment(member.age), logger
        )
    assert await ages(executor, logger) == [10, 20, 30, 40]
