# tests/base/test_schema.py

from datetime import date, datetime
from typing import Any, Dict, Optional, Union

import pytest
from pydantic import NaiveDatetime

from dynamic_query.base.exceptions import InvalidPathError
from dynamic_query.base.predicate import FieldPath
from dynamic_query.base.schema import (
    JoinScope,
    PermissiveFieldResolver,
    StrictFieldResolver,
    resolver_for,
)

from tests.models import Article, Member, Owner, Project, Status, Tag, Ticket


class Loose:
    anything: Any
    mapping: Dict[str, Any]
    by_id: Dict[int, str]


# --- Strict resolution ---
@pytest.fixture
def strict() -> StrictFieldResolver:
    return StrictFieldResolver(Project)


@pytest.mark.parametrize(
    "field, expected_type",
    [
        ("name", str),
        ("email", Optional[str]),
        ("status", Status),
        ("created_at", datetime),
        ("due_date", Optional[date]),
        ("owner.id", str),
        ("members.role", str),
    ],
)
def test_strict_resolves_declared_types(strict, field, expected_type):
    assert strict.resolve(field) == FieldPath(field, None, expected_type)


def test_strict_unknown_field_fails(strict):
    with pytest.raises(InvalidPathError, match="Field 'nickname' does not exist in type Project"):
        strict.resolve("nickname")


def test_strict_unknown_nested_field_fails(strict):
    with pytest.raises(InvalidPathError, match="Path: 'owner.email'"):
        strict.resolve("owner.email")


def test_strict_cannot_step_into_scalar(strict):
    with pytest.raises(InvalidPathError):
        strict.resolve("name.first")


def test_strict_ignores_model_config(strict):
    with pytest.raises(InvalidPathError):
        strict.resolve("model_config")


def test_strict_requires_class():
    with pytest.raises(TypeError, match="model_cls must be a class"):
        StrictFieldResolver(Project(id="p", name="n", created_at=datetime(2025, 1, 1)))


def test_strict_resolves_relation_to_item_type(strict):
    scope = strict.resolve_relation("members", "members")
    assert scope == JoinScope("members", "members", Member)
    assert strict.resolve("user_id", scope) == FieldPath("user_id", "members", str)


def test_strict_single_valued_relation(strict):
    assert strict.resolve_relation("owner", "o").item_type is Owner


def test_strict_unknown_relation_fails(strict):
    with pytest.raises(InvalidPathError):
        strict.resolve_relation("watchers", "watchers")


def test_strict_unknown_field_in_scope_fails(strict):
    scope = strict.resolve_relation("members", "members")
    with pytest.raises(InvalidPathError, match="does not exist in type Member"):
        strict.resolve("nickname", scope)


def test_strict_scope_without_item_type_fails(strict):
    with pytest.raises(InvalidPathError, match="has no known item type"):
        strict.resolve("x", JoinScope("things", "things", None))


def test_strict_resolves_pydantic_alias():
    resolver = StrictFieldResolver(Ticket)
    assert resolver.resolve("ticketCode").python_type is str
    assert resolver.resolve("code").python_type is str


def test_strict_union_and_naive_types():
    resolver = StrictFieldResolver(Ticket)
    assert resolver.resolve("priority").python_type == Union[int, str]
    assert resolver.resolve("logged_at").python_type == Optional[NaiveDatetime]


def test_strict_dict_with_string_keys():
    resolver = StrictFieldResolver(Ticket)
    assert resolver.resolve("labels.team").python_type is str


def test_strict_dataclass_models():
    resolver = StrictFieldResolver(Article)
    scope = resolver.resolve_relation("tags", "tags")
    assert scope.item_type is Tag
    assert resolver.resolve("weight", scope).python_type is float


def test_any_stops_traversal():
    resolver = StrictFieldResolver(Loose)
    assert resolver.resolve("anything.deep.path").python_type is Any
    assert resolver.resolve("mapping.key").python_type is Any


def test_non_string_dict_keys_fail():
    with pytest.raises(InvalidPathError, match="non-string keys"):
        StrictFieldResolver(Loose).resolve("by_id.1")


# --- Permissive resolution ---
def test_permissive_without_model_trusts_names():
    resolver = PermissiveFieldResolver()
    assert resolver.resolve("whatever") == FieldPath("whatever")
    scope = resolver.resolve_relation("things", "t")
    assert scope == JoinScope("things", "t", None)
    assert resolver.resolve("x", scope) == FieldPath("x", "t", None)


def test_permissive_with_model_reports_known_types():
    resolver = PermissiveFieldResolver(Project)
    assert resolver.resolve("score").python_type is int
    assert resolver.resolve("nickname") == FieldPath("nickname")


def test_permissive_relation_item_type():
    resolver = PermissiveFieldResolver(Project)
    scope = resolver.resolve_relation("members", "m")
    assert scope.item_type is Member
    assert resolver.resolve("joined_at", scope).python_type == Optional[datetime]
    assert resolver.resolve_relation("watchers", "w").item_type is None


def test_permissive_any_is_unknown():
    assert PermissiveFieldResolver(Loose).resolve("anything").python_type is None


# --- Choosing a resolver ---
def test_resolver_for():
    assert isinstance(resolver_for(Project, strict=True), StrictFieldResolver)
    assert isinstance(resolver_for(Project, strict=False), PermissiveFieldResolver)
    assert isinstance(resolver_for(None, strict=True), PermissiveFieldResolver)
    assert resolver_for(Project).strict is True
    assert resolver_for(None).strict is False
