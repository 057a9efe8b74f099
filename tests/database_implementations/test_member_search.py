# tests/database_implementations/test_member_search.py

from logging import LoggerAdapter

import pytest

from async_query_support.base.exceptions import ObjectNotFoundException
from async_query_support.base.interfaces import QueryExecutor
from async_query_support.base.pagination import Order, PageRequest
from async_query_support.base.paginator import CountPolicy, Paginator
from tests.members import (MemberRepository, MemberSearchCondition,
                           MemberTeamDto, member, team)


async def test_search_by_age_range_and_team(executor: QueryExecutor, logger: LoggerAdapter):
    repo = MemberRepository(executor)
    condition = MemberSearchCondition(age_goe=35, age_loe=40, team_name="teamB")

    result = await repo.search(condition, logger)

    assert [dto.username for dto in result] == ["member4"]
    assert result[0] == MemberTeamDto(
        member_id=4, username="member4", age=40, team_id=2, team_name="teamB"
    )


async def test_empty_condition_matches_every_row(executor: QueryExecutor, logger: LoggerAdapter):
    repo = MemberRepository(executor)
    result = await repo.search(MemberSearchCondition(), logger)
    assert [dto.username for dto in result] == ["member1", "member2", "member3", "member4"]


async def test_blank_text_is_ignored(executor: QueryExecutor, logger: LoggerAdapter):
    repo = MemberRepository(executor)
    result = await repo.search(MemberSearchCondition(username="   ", age_goe=30), logger)
    assert [dto.age for dto in result] == [30, 40]


async def test_builder_and_where_list_agree(executor: QueryExecutor, logger: LoggerAdapter):
    repo = MemberRepository(executor)
    conditions = [
        MemberSearchCondition(),
        MemberSearchCondition(team_name="teamA"),
        MemberSearchCondition(age_goe=20, age_loe=30),
        MemberSearchCondition(username="member3", team_name="teamB"),
        MemberSearchCondition(username="nobody"),
    ]
    for condition in conditions:
        assert await repo.search(condition, logger) == await repo.search_with_builder(
            condition, logger
        )


async def test_first_page_sorted_by_age(executor: QueryExecutor, logger: LoggerAdapter):
    repo = MemberRepository(executor)
    page = await repo.search_page_simple(
        MemberSearchCondition(), PageRequest.of(0, 3, Order.asc("age")), logger
    )
    assert [dto.age for dto in page.content] == [10, 20, 30]
    assert page.total == 4
    assert page.total_pages == 2
    assert page.has_next


async def test_second_page_sorted_by_qualified_path(executor: QueryExecutor, logger: LoggerAdapter):
    repo = MemberRepository(executor)
    page = await repo.search_page_complex(
        MemberSearchCondition(), PageRequest.of(1, 3, Order.desc("m.age")), logger
    )
    assert [dto.age for dto in page.content] == [10]
    assert page.total == 4
    assert page.is_last


@pytest.mark.parametrize("policy", list(CountPolicy))
async def test_single_match_with_either_policy(
    executor: QueryExecutor, logger: LoggerAdapter, policy: CountPolicy
):
    repo = MemberRepository(executor, policy)
    condition = MemberSearchCondition(team_name="teamA", username="member1")

    simple = await repo.search_page_simple(condition, PageRequest(0, 3), logger)
    complex_ = await repo.search_page_complex(condition, PageRequest(0, 3), logger)

    for page in (simple, complex_):
        assert [dto.username for dto in page.content] == ["member1"]
        assert page.total == 1


async def test_derived_and_dedicated_counts_agree(executor: QueryExecutor, logger: LoggerAdapter):
    repo = MemberRepository(executor, CountPolicy.ALWAYS)
    for condition in (
        MemberSearchCondition(),
        MemberSearchCondition(team_name="teamB"),
        MemberSearchCondition(age_loe=25),
    ):
        request = PageRequest.of(0, 1, Order.asc("username"))
        simple = await repo.search_page_simple(condition, request, logger)
        complex_ = await repo.search_page_complex(condition, request, logger)
        assert simple.total == complex_.total
        assert simple.content == complex_.content


async def test_page_past_the_end_counts(executor: QueryExecutor, logger: LoggerAdapter):
    repo = MemberRepository(executor)
    page = await repo.search_page_simple(MemberSearchCondition(), PageRequest(5, 3), logger)
    assert page.content == []
    assert page.total == 4
    assert not page.has_next


async def test_scalar_projection_and_count(executor: QueryExecutor, logger: LoggerAdapter):
    query = (
        executor.factory.select(member.username)
        .from_(member)
        .where(member.age > 15)
        .order_by(member.username.desc())
    )
    assert await executor.execute(query, logger) == ["member4", "member3", "member2"]
    assert await executor.count(query, logger) == 3


async def test_inner_join_and_text_operators(executor: QueryExecutor, logger: LoggerAdapter):
    query = (
        executor.factory.select(member.username, team.name.as_("team_name"))
        .from_(member)
        .join(team, member.team_id == team.id)
        .where(team.name.startswith("team"), member.username.endswith("2"))
    )
    assert await executor.execute(query, logger) == [
        {"username": "member2", "team_name": "teamA"}
    ]


async def test_select_all_columns(executor: QueryExecutor, logger: LoggerAdapter):
    rows = await executor.execute(
        executor.factory.select_from(member).where(member.id == 3), logger
    )
    assert rows == [{"id": 3, "username": "member3", "age": 30, "team_id": 2}]


async def test_in_filter(executor: QueryExecutor, logger: LoggerAdapter):
    query = (
        executor.factory.select(member.id)
        .from_(member)
        .where(member.age.in_([10, 40]))
        .order_by(member.id)
    )
    assert await executor.execute(query, logger) == [1, 4]
    empty = executor.factory.select(member.id).from_(member).where(member.age.in_([]))
    assert await executor.execute(empty, logger) == []


async def test_find_by_username(executor: QueryExecutor, logger: LoggerAdapter):
    repo = MemberRepository(executor)
    found = await repo.find_by_username("member2", logger)
    assert found.team_name == "teamA"
    with pytest.raises(ObjectNotFoundException):
        await repo.find_by_username("nobody", logger)


async def test_fetch_first(executor: QueryExecutor, logger: LoggerAdapter):
    query = executor.factory.select(member.age).from_(member).order_by(member.age.desc())
    assert await executor.fetch_first(query, logger) == 40
    missing = executor.factory.select(member.age).from_(member).where(member.age > 100)
    assert await executor.fetch_first(missing, logger) is None


@pytest.mark.parametrize("policy", list(CountPolicy))
@pytest.mark.parametrize("size", [2, 3])
async def test_walking_pages_rebuilds_unpaged_result(
    executor: QueryExecutor, logger: LoggerAdapter, policy: CountPolicy, size: int
):
    def usernames(qf):
        return qf.select(member.username).from_(member).where(member.age >= 10)

    unpaged_query = usernames(executor.factory).order_by(member.username.asc())
    unpaged = await executor.execute(unpaged_query, logger)
    unpaged_total = await executor.count(usernames(executor.factory), logger)

    paginator = Paginator(executor, policy)
    request = PageRequest.of(0, size, Order.asc("username"))
    walked = []
    while True:
        page = await paginator.paginate(request, usernames, logger=logger)
        assert page.total == unpaged_total
        walked.extend(page.content)
        if not page.has_next:
            break
        request = request.next()

    assert walked == unpaged
    assert page.number == page.total_pages - 1
