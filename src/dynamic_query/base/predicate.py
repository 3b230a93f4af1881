# src/dynamic_query/base/predicate.py
"""
Backend-neutral predicate tree.

Every node is a frozen dataclass, so a finished tree is an immutable value
that can be compared, logged and handed to any backend. The module-level
constructors (``equal``, ``and_``, ``or_``, ...) are the only place where the
vacuous-true identity rules live; the algebra and the builder go through them.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Tuple

from .conditions import JoinType, OrderSpec

log = logging.getLogger(__name__)


# --- Operators ---
class Operator(Enum):
    """Primitive comparison operators understood by every backend."""

    EQ = "="
    NE = "!="
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="
    IN = "IN"
    NOT_IN = "NOT IN"
    BETWEEN = "BETWEEN"
    IS_NULL = "IS NULL"
    IS_NOT_NULL = "IS NOT NULL"


# --- Field Paths ---
@dataclass(frozen=True)
class FieldPath:
    """
    A resolved field reference.

    ``alias`` is None for fields of the root entity and the join alias for
    fields of a joined relation. ``python_type`` is the declared type when the
    resolver knows it.
    """

    name: str
    alias: Optional[str] = None
    python_type: Optional[Any] = None

    def __str__(self) -> str:
        return f"{self.alias}.{self.name}" if self.alias else self.name


# --- Predicate Nodes ---
class Predicate:
    """Base class for predicate tree nodes."""

    def __and__(self, other: "Predicate") -> "Predicate":
        return and_(self, other)

    def __or__(self, other: "Predicate") -> "Predicate":
        return or_(self, other)

    def __invert__(self) -> "Predicate":
        return not_(self)

    @property
    def is_vacuous(self) -> bool:
        return False


@dataclass(frozen=True)
class Conjunction(Predicate):
    """The vacuous-true predicate: matches everything, identity for AND."""

    @property
    def is_vacuous(self) -> bool:
        return True

    def __str__(self) -> str:
        return "TRUE"


TRUE = Conjunction()


@dataclass(frozen=True)
class Comparison(Predicate):
    """``path <operator> value [second_value]``."""

    path: FieldPath
    operator: Operator
    value: Any = None
    second_value: Any = None
    ignore_case: bool = False

    def __str__(self) -> str:
        field = f"lower({self.path})" if self.ignore_case else str(self.path)
        if self.operator in (Operator.IS_NULL, Operator.IS_NOT_NULL):
            return f"{field} {self.operator.value}"
        if self.operator is Operator.BETWEEN:
            return f"{field} BETWEEN {self.value!r} AND {self.second_value!r}"
        if self.operator in (Operator.IN, Operator.NOT_IN):
            values = ", ".join(repr(v) for v in self.value)
            return f"{field} {self.operator.value} ({values})"
        return f"{field} {self.operator.value} {self.value!r}"


@dataclass(frozen=True)
class Logical(Predicate):
    """AND/OR over two or more non-vacuous members."""

    operator: str
    conditions: Tuple[Predicate, ...]

    def __post_init__(self):
        if self.operator not in ("and", "or"):
            raise ValueError("operator must be 'and' or 'or'")

    def __str__(self) -> str:
        joiner = f" {self.operator.upper()} "
        return joiner.join(
            f"({member})" if isinstance(member, Logical) else str(member)
            for member in self.conditions
        )


@dataclass(frozen=True)
class Negation(Predicate):
    predicate: Predicate

    def __str__(self) -> str:
        return f"NOT ({self.predicate})"


@dataclass(frozen=True)
class Join(Predicate):
    """
    A traversal of ``relation`` under ``alias`` with ``predicate`` evaluated
    against the joined fields. Its presence makes a query duplicate-suppressing.
    """

    relation: str
    alias: str
    join_type: JoinType
    predicate: Predicate

    def __str__(self) -> str:
        return f"{self.join_type.name} JOIN {self.relation} AS {self.alias} ON ({self.predicate})"


# --- Primitive Constructors ---
def conjunction() -> Predicate:
    return TRUE


def equal(path: FieldPath, value: Any) -> Predicate:
    return Comparison(path, Operator.EQ, value)


def not_equal(path: FieldPath, value: Any) -> Predicate:
    return Comparison(path, Operator.NE, value)


def like(path: FieldPath, pattern: str, ignore_case: bool = False) -> Predicate:
    return Comparison(path, Operator.LIKE, pattern, ignore_case=ignore_case)


def not_like(path: FieldPath, pattern: str) -> Predicate:
    return Comparison(path, Operator.NOT_LIKE, pattern)


def greater_than(path: FieldPath, value: Any) -> Predicate:
    return Comparison(path, Operator.GT, value)


def greater_equal(path: FieldPath, value: Any) -> Predicate:
    return Comparison(path, Operator.GE, value)


def less_than(path: FieldPath, value: Any) -> Predicate:
    return Comparison(path, Operator.LT, value)


def less_equal(path: FieldPath, value: Any) -> Predicate:
    return Comparison(path, Operator.LE, value)


def between(path: FieldPath, start: Any, end: Any) -> Predicate:
    return Comparison(path, Operator.BETWEEN, start, end)


def in_(path: FieldPath, values: Iterable[Any]) -> Predicate:
    return Comparison(path, Operator.IN, tuple(values))


def not_in(path: FieldPath, values: Iterable[Any]) -> Predicate:
    return Comparison(path, Operator.NOT_IN, tuple(values))


def is_null(path: FieldPath) -> Predicate:
    return Comparison(path, Operator.IS_NULL)


def is_not_null(path: FieldPath) -> Predicate:
    return Comparison(path, Operator.IS_NOT_NULL)


def _fold(operator: str, predicates: Iterable[Predicate]) -> Predicate:
    members = []
    for predicate in predicates:
        if not isinstance(predicate, Predicate):
            raise TypeError(
                f"{operator}_() requires Predicate objects, got {type(predicate).__name__}"
            )
        if predicate.is_vacuous:
            continue
        # Flatten nested nodes of the same operator
        if isinstance(predicate, Logical) and predicate.operator == operator:
            members.extend(predicate.conditions)
        else:
            members.append(predicate)

    if not members:
        return TRUE
    if len(members) == 1:
        return members[0]
    return Logical(operator, tuple(members))


def and_(*predicates: Predicate) -> Predicate:
    """AND of the non-vacuous members; TRUE when there are none."""
    return _fold("and", predicates)


def or_(*predicates: Predicate) -> Predicate:
    """
    OR of the non-vacuous members; TRUE when there are none.

    Vacuous members are dropped rather than absorbing the disjunction.
    """
    return _fold("or", predicates)


def not_(predicate: Predicate) -> Predicate:
    """Negation. A vacuous predicate stays vacuous."""
    if predicate.is_vacuous:
        return TRUE
    if isinstance(predicate, Negation):
        return predicate.predicate
    return Negation(predicate)


def join(
    relation: str, alias: str, join_type: JoinType, predicate: Predicate
) -> Predicate:
    if predicate.is_vacuous:
        return TRUE
    return Join(relation, alias, join_type, predicate)


def asc(field: str) -> OrderSpec:
    return OrderSpec(field, True)


def desc(field: str) -> OrderSpec:
    return OrderSpec(field, False)


def contains_join(predicate: Predicate) -> bool:
    """True if a Join node appears anywhere in the tree."""
    if isinstance(predicate, Join):
        return True
    if isinstance(predicate, Logical):
        return any(contains_join(member) for member in predicate.conditions)
    if isinstance(predicate, Negation):
        return contains_join(predicate.predicate)
    return False


def iter_joins(predicate: Predicate):
    """Yields every Join node in the tree, outermost first."""
    if isinstance(predicate, Join):
        yield predicate
        yield from iter_joins(predicate.predicate)
    elif isinstance(predicate, Logical):
        for member in predicate.conditions:
            yield from iter_joins(member)
    elif isinstance(predicate, Negation):
        yield from iter_joins(predicate.predicate)


__all__ = [
    "Operator",
    "FieldPath",
    "Predicate",
    "Conjunction",
    "TRUE",
    "Comparison",
    "Logical",
    "Negation",
    "Join",
    "conjunction",
    "equal",
    "not_equal",
    "like",
    "not_like",
    "greater_than",
    "greater_equal",
    "less_than",
    "less_equal",
    "between",
    "in_",
    "not_in",
    "is_null",
    "is_not_null",
    "and_",
    "or_",
    "not_",
    "join",
    "asc",
    "desc",
    "contains_join",
    "iter_joins",
]
