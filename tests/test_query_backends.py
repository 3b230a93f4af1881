# tests/test_query_backends.py
"""
Evaluates built queries against every repository implementation.

Each test runs once per backend through the parametrized ``repository``
fixture, which is pre-filled with the four sample projects (p1..p4).
"""

from datetime import date, timedelta, timezone
from typing import List

import pytest

from dynamic_query.base import predicate as P
from dynamic_query.base.conditions import Condition, JoinGroup, JoinType
from dynamic_query.base.dates import default_parser
from dynamic_query.base.exceptions import ObjectNotFoundException
from dynamic_query.base.predicate import FieldPath
from dynamic_query.base.query import QueryBuilder, QueryOptions

from tests.models import Project, Status


async def list_ids(repository, logger, options: QueryOptions) -> List[str]:
    return [item.id async for item in repository.list(logger, options)]


def qb() -> QueryBuilder[Project]:
    return QueryBuilder.create(Project)


async def test_list_without_options_returns_everything(repository, logger):
    ids = [item.id async for item in repository.list(logger)]
    assert sorted(ids) == ["p1", "p2", "p3", "p4"]
    assert await repository.count(logger) == 4


async def test_vacuous_query_returns_everything(repository, logger):
    options = qb().equal("email", None).like("bio", "").in_("status", []).build()
    assert sorted(await list_ids(repository, logger, options)) == ["p1", "p2", "p3", "p4"]


async def test_results_are_entities(repository, logger):
    options = qb().equal("name", "Alpha").build()
    found = [item async for item in repository.list(logger, options)]
    assert len(found) == 1
    assert isinstance(found[0], Project)
    assert found[0].status is Status.ACTIVE
    assert found[0].owner.id == "o1"


@pytest.mark.parametrize(
    "build, expected",
    [
        (lambda b: b.equal("email", "alpha@example.com"), ["p1"]),
        (lambda b: b.not_equal("name", "Alpha"), ["p2", "p3", "p4"]),
        (lambda b: b.like_ignore_case("name", "ALP"), ["p1"]),
        (lambda b: b.like_ignore_case("name", "DEL"), ["p4"]),
        (lambda b: b.like("bio", "core"), ["p4"]),
        (lambda b: b.not_like("bio", "core"), ["p1", "p3"]),
        (lambda b: b.like_start("name", "Ga"), ["p3"]),
        (lambda b: b.like_end("email", "example.com"), ["p1", "p2", "p4"]),
        (lambda b: b.greater_than("score", "15"), ["p2", "p3", "p4"]),
        (lambda b: b.greater_equal("score", 20), ["p2", "p3", "p4"]),
        (lambda b: b.less_than("score", 20.9), ["p1"]),
        (lambda b: b.less_equal("budget", 1000), ["p1", "p3"]),
        (lambda b: b.between("score", 15, 35), ["p2", "p3"]),
        (lambda b: b.between("score", 35, 15), []),
        (lambda b: b.in_("status", [Status.ACTIVE, Status.PENDING]), ["p1", "p2", "p3"]),
        (lambda b: b.not_in("status", [Status.ACTIVE, Status.PENDING]), ["p4"]),
        (lambda b: b.equal_enum("status", Status.ARCHIVED), ["p4"]),
        (lambda b: b.is_null("email"), ["p3"]),
        (lambda b: b.is_not_null("budget"), ["p1", "p3", "p4"]),
        (lambda b: b.greater_than("created_at", date(2025, 9, 15)), ["p2", "p3", "p4"]),
        (lambda b: b.equal_join_id("owner", "id", "o1"), ["p1", "p4"]),
    ],
    ids=[
        "equal",
        "not_equal",
        "like_ignore_case",
        "like_ignore_case_lower_data",
        "like_case_sensitive",
        "not_like",
        "like_start",
        "like_end",
        "greater_than_coerced",
        "greater_equal",
        "less_than_truncates_float",
        "less_equal_nullable",
        "between",
        "between_reversed",
        "in",
        "not_in",
        "equal_enum",
        "is_null",
        "is_not_null",
        "date_promoted_to_timestamp",
        "equal_join_id",
    ],
)
async def test_single_filter(repository, logger, build, expected):
    options = build(qb()).build()
    assert sorted(await list_ids(repository, logger, options)) == expected
    assert await repository.count(logger, options) == len(expected)


@pytest.mark.parametrize(
    "field, start, end, expected",
    [
        ("created_at", "2025-09-01", "2025-09-30", ["p1", "p2", "p3"]),
        ("created_at", "2025-10-01", None, ["p4"]),
        ("created_at", None, "2025-09-01", ["p1"]),
        ("due_date", "2025-09-20", "2025-10-01", ["p1", "p3"]),
        ("created_at", "2025-09-01", "not a date", ["p1", "p2", "p3", "p4"]),
    ],
    ids=["inclusive_end", "start_only", "end_only", "date_field", "parse_failure_matches_all"],
)
async def test_date_range_between(repository, logger, field, start, end, expected):
    options = qb().date_range_between(field, start, end).build()
    assert sorted(await list_ids(repository, logger, options)) == expected


async def test_date_range_in_a_non_utc_zone(repository, logger):
    # 2025-10-01 at +09:00 spans 2025-09-30T15:00Z to 2025-10-01T15:00Z
    plus_nine = default_parser(timezone(timedelta(hours=9)))
    options = qb().date_range_between("created_at", "2025-10-01", "2025-10-01", plus_nine).build()
    assert sorted(await list_ids(repository, logger, options)) == ["p3", "p4"]


@pytest.mark.parametrize(
    "field, values, expected",
    [
        ("score", range(10, 25, 10), ["p1", "p2"]),
        ("name", {"Alpha": 1, "Beta": 2}.keys(), ["p1", "p2"]),
        ("score", frozenset({30}), ["p3"]),
    ],
    ids=["range", "dict_keys", "frozenset"],
)
async def test_in_accepts_any_collection(repository, logger, field, values, expected):
    options = qb().in_(field, values).build()
    assert sorted(await list_ids(repository, logger, options)) == expected


# --- NULL semantics under negation ---
@pytest.mark.parametrize(
    "expression, expected",
    [
        (~P.equal(FieldPath("email"), "alpha@example.com"), ["p2", "p4"]),
        (~P.in_(FieldPath("email"), ["alpha@example.com"]), ["p2", "p4"]),
        (~P.like(FieldPath("bio"), "%core%"), ["p1", "p3"]),
        (~P.between(FieldPath("budget"), 600, 2000), ["p3", "p4"]),
        (
            ~P.or_(
                P.equal(FieldPath("email"), "alpha@example.com"),
                P.greater_than(FieldPath("score"), 35),
            ),
            ["p2"],
        ),
        (P.not_in(FieldPath("name"), ["Alpha", None]), []),
    ],
    ids=["not_equal", "not_in", "not_like", "not_between", "not_or", "not_in_with_null"],
)
async def test_negation_never_matches_null(repository, logger, expression, expected):
    options = QueryOptions(expression=expression)
    assert sorted(await list_ids(repository, logger, options)) == expected
    assert await repository.count(logger, options) == len(expected)


# --- Joins ---
async def test_join_on_members(repository, logger):
    options = qb().join_with_conditions("members", [Condition.equal("user_id", "u1")]).build()
    assert options.distinct
    assert sorted(await list_ids(repository, logger, options)) == ["p1", "p2"]
    assert await repository.count(logger, options) == 2


async def test_join_never_duplicates_roots(repository, logger):
    options = qb().join_with_conditions("members", [Condition.like("name", "")]).build()
    assert not options.distinct
    options = qb().join_with_conditions("members", [Condition.is_not_null("user_id")]).build()
    ids = await list_ids(repository, logger, options)
    assert sorted(ids) == ["p1", "p2", "p4"]
    assert await repository.count(logger, options) == 3


async def test_join_with_several_conditions(repository, logger):
    options = qb().join_with_conditions(
        "members",
        [Condition.is_null("deleted_at"), Condition.equal("role", "admin")],
    ).build()
    assert sorted(await list_ids(repository, logger, options)) == ["p1", "p4"]


async def test_conditions_apply_to_the_same_member(repository, logger):
    # Lee (u2) was deleted, Kim (u1) was not: no single member matches both
    options = qb().join_with_conditions(
        "members",
        [Condition.equal("user_id", "u2"), Condition.is_null("deleted_at")],
    ).build()
    assert await list_ids(repository, logger, options) == []


async def test_left_join_keeps_roots_without_members(repository, logger):
    options = qb().join_with_conditions("members", [Condition.is_null("user_id")]).build()
    assert await list_ids(repository, logger, options) == ["p3"]


async def test_inner_join_drops_roots_without_members(repository, logger):
    options = qb().join_with_conditions(
        "members", [Condition.is_null("user_id")], JoinType.INNER
    ).build()
    assert await list_ids(repository, logger, options) == []


async def test_join_combined_with_root_filters(repository, logger):
    options = (
        qb()
        .equal("status", Status.ACTIVE)
        .join_with_conditions("members", [Condition.equal("role", "admin")], JoinType.INNER)
        .build()
    )
    assert await list_ids(repository, logger, options) == ["p1"]


async def test_join_with_date_coercion(repository, logger):
    options = qb().join_with_conditions(
        "members", [Condition.greater_equal("joined_at", date(2025, 9, 16))]
    ).build()
    assert sorted(await list_ids(repository, logger, options)) == ["p2", "p4"]


# --- Nesting ---
async def test_nested_or_of_ands(repository, logger):
    options = qb().or_(
        lambda o: o.and_(
            lambda a: a.equal("status", Status.PENDING).greater_than("score", 5)
        ).and_(lambda a: a.equal("name", "Gamma").is_null("email"))
    ).build()
    assert sorted(await list_ids(repository, logger, options)) == ["p2", "p3"]


async def test_or_list_with_join_group(repository, logger):
    options = qb().or_(
        [
            Condition.is_null("owner"),
            JoinGroup("members", [Condition.equal("user_id", "u3")]),
        ]
    ).build()
    assert sorted(await list_ids(repository, logger, options)) == ["p3", "p4"]


async def test_or_with_vacuous_members_only_filters_by_the_rest(repository, logger):
    options = (
        qb()
        .greater_than("score", 15)
        .or_(lambda o: o.equal("name", None).like("bio", " "))
        .build()
    )
    assert sorted(await list_ids(repository, logger, options)) == ["p2", "p3", "p4"]


# --- Ordering and pagination ---
async def test_order_by_desc_with_page(repository, logger):
    options = qb().order_by("score", "DESC").page(1, 2).build()
    assert await list_ids(repository, logger, options) == ["p2", "p1"]


async def test_order_by_puts_nulls_first_ascending(repository, logger):
    options = qb().order_by("budget").build()
    assert await list_ids(repository, logger, options) == ["p2", "p3", "p1", "p4"]


async def test_order_by_several_keys(repository, logger):
    options = qb().order_by("status").order_by("score", "DESC").build()
    assert await list_ids(repository, logger, options) == ["p3", "p1", "p4", "p2"]


async def test_offset_without_limit(repository, logger):
    options = qb().order_by("id").offset(3).build()
    assert await list_ids(repository, logger, options) == ["p4"]


async def test_limit_without_offset(repository, logger):
    options = qb().order_by("id").limit(2).build()
    assert await list_ids(repository, logger, options) == ["p1", "p2"]


async def test_count_ignores_pagination(repository, logger):
    options = qb().greater_than("score", 0).order_by("id").page(0, 1).build()
    assert await list_ids(repository, logger, options) == ["p1"]
    assert await repository.count(logger, options) == 4


async def test_paged_join_query(repository, logger):
    options = (
        qb()
        .join_with_conditions("members", [Condition.is_not_null("user_id")])
        .order_by("score", "DESC")
        .limit(2)
        .build()
    )
    assert await list_ids(repository, logger, options) == ["p4", "p2"]


# --- find_one ---
async def test_find_one(repository, logger):
    options = qb().like_ignore_case("bio", "core").order_by("score").build()
    found = await repository.find_one(logger, options)
    assert found.id == "p1"


async def test_find_one_not_found(repository, logger):
    options = qb().equal("name", "Omega").build()
    with pytest.raises(ObjectNotFoundException):
        await repository.find_one(logger, options)
