# src/dynamic_query/base/algebra.py
"""
Predicate composition algebra.

Turns the units a builder accumulates (root filters, ``Condition`` objects,
``JoinGroup`` objects, date ranges, nested groups and raw predicates) into a
single predicate tree. Absent input and failed coercions never raise here;
they become ``TRUE`` and, for coercion and resolution misses, a diagnostic.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, Optional

from . import predicate as P
from .conditions import (
    NULL_CHECK_TYPES,
    Condition,
    ConditionType,
    JoinGroup,
)
from .converter import (
    DefaultTypeConverter,
    TypeConverter,
    declared_types,
    is_comparable,
    is_instance_of,
)
from .dates import DateParser, default_parser
from .diagnostics import Diagnostic, DiagnosticsSink, NullDiagnostics
from .exceptions import InvalidPathError
from .predicate import TRUE, FieldPath, Predicate
from .schema import FieldResolver, JoinScope, PermissiveFieldResolver
from .utils import is_absent, is_blank, is_collection

log = logging.getLogger(__name__)

# Sentinel for a value that failed the ordered-type check
_REJECTED = object()


# --- Translation Context ---
@dataclass
class TranslationContext:
    """
    Collaborators and state shared by one translation pass.

    ``scope`` is None at root level and the current join scope inside a
    JoinGroup. ``alias_counts`` is shared between a context and every scoped
    copy made from it, so join aliases stay unique across the whole tree.
    """

    resolver: FieldResolver = field(default_factory=PermissiveFieldResolver)
    converter: TypeConverter = field(default_factory=DefaultTypeConverter)
    diagnostics: DiagnosticsSink = field(default_factory=NullDiagnostics)
    scope: Optional[JoinScope] = None
    alias_counts: Dict[str, int] = field(default_factory=dict)

    def within(self, scope: JoinScope) -> "TranslationContext":
        return replace(self, scope=scope)

    def resolve(self, field_name: str) -> FieldPath:
        return self.resolver.resolve(field_name, self.scope)

    def next_alias(self, relation: str) -> str:
        count = self.alias_counts.get(relation, 0)
        return relation if count == 0 else f"{relation}_{count}"

    def claim_alias(self, relation: str) -> None:
        self.alias_counts[relation] = self.alias_counts.get(relation, 0) + 1

    def degrade(
        self,
        field_name: str,
        reason: str,
        condition_type: Optional[ConditionType] = None,
        value: Any = None,
    ) -> Predicate:
        """Reports a skipped condition and returns the vacuous predicate."""
        diagnostic = Diagnostic(field_name, reason, condition_type, value)
        log.warning(str(diagnostic))
        self.diagnostics.emit(diagnostic)
        return TRUE


# --- Builder Units ---
@dataclass(frozen=True)
class FieldFilter:
    """
    A root-level filter recorded by a builder method.

    Unlike ``Condition`` it is not validated on construction: absent values
    are expected here and simply translate to ``TRUE``.
    """

    field: str
    type: ConditionType
    value: Any = None
    second_value: Any = None

    def to_predicate(self, ctx: TranslationContext) -> Predicate:
        return translate_condition(self, ctx)


@dataclass(frozen=True)
class JoinIdFilter:
    """``relation.id_field = value`` on a single-valued relation of the root."""

    relation: str
    id_field: str
    value: Any = None

    def to_predicate(self, ctx: TranslationContext) -> Predicate:
        dotted = f"{self.relation}.{self.id_field}"
        if self.value is None:
            log.debug(f"Skipping join id condition for '{dotted}', value is None")
            return TRUE
        try:
            path = ctx.resolve(dotted)
        except InvalidPathError as e:
            return ctx.degrade(dotted, f"Invalid join id path: {e}", ConditionType.EQUAL, self.value)
        return P.equal(path, self.value)


@dataclass(frozen=True)
class DateRange:
    """Half-open calendar range ``[start, end + 1 day)`` over a timestamp or date field."""

    field: str
    start: Optional[str] = None
    end: Optional[str] = None
    parser: Optional[DateParser] = None

    def to_predicate(self, ctx: TranslationContext) -> Predicate:
        return translate_date_range(self, ctx)


@dataclass(frozen=True)
class Group:
    """Units folded together with AND or OR, as produced by a nested builder."""

    operator: str
    units: tuple = ()

    def to_predicate(self, ctx: TranslationContext) -> Predicate:
        return translate_all(self.units, ctx, self.operator)


# --- Ordered-type Check ---
def coerce_ordered(ctx: TranslationContext, path: FieldPath, value: Any) -> Any:
    """
    Converts ``value`` to the declared type of ``path`` for an ordering comparison.

    With an unknown declared type the value's own type is used. Each
    candidate of a union is tried in order. Returns ``_REJECTED`` when no
    candidate yields a comparable instance.
    """
    candidates = declared_types(path.python_type) or (type(value),)
    for target in candidates:
        converted = ctx.converter.convert(value, target)
        if converted is None:
            continue
        if is_instance_of(converted, target) and is_comparable(converted):
            return converted
    return _REJECTED


def _type_name(t: Any) -> str:
    return getattr(t, "__name__", None) or str(t)


def _mismatch(ctx, path, condition_type, value) -> Predicate:
    expected = ", ".join(_type_name(t) for t in declared_types(path.python_type)) or "comparable"
    return ctx.degrade(
        str(path),
        f"Type mismatch: expected {expected}, got {type(value).__name__} {value!r}",
        condition_type,
        value,
    )


# --- Per-type Handlers ---
_LIKE_PATTERNS = {
    ConditionType.LIKE: "%{}%",
    ConditionType.NOT_LIKE: "%{}%",
    ConditionType.LIKE_START: "{}%",
    ConditionType.LIKE_END: "%{}",
}

_ORDERING_CONSTRUCTORS = {
    ConditionType.GREATER_THAN: P.greater_than,
    ConditionType.GREATER_EQUAL: P.greater_equal,
    ConditionType.LESS_THAN: P.less_than,
    ConditionType.LESS_EQUAL: P.less_equal,
}


def _equality(ctx, path, condition_type, value, second_value):
    if condition_type is ConditionType.EQUAL:
        return P.equal(path, value)
    return P.not_equal(path, value)


def _pattern(ctx, path, condition_type, value, second_value):
    if not isinstance(value, str):
        return ctx.degrade(
            str(path), "Pattern value must be a string", condition_type, value
        )
    if condition_type is ConditionType.LIKE_IGNORE_CASE:
        text = value.strip().lower()
        return P.like(path, f"%{text}%", ignore_case=True)
    pattern = _LIKE_PATTERNS[condition_type].format(value)
    if condition_type is ConditionType.NOT_LIKE:
        return P.not_like(path, pattern)
    return P.like(path, pattern)


def _ordering(ctx, path, condition_type, value, second_value):
    converted = coerce_ordered(ctx, path, value)
    if converted is _REJECTED:
        return _mismatch(ctx, path, condition_type, value)
    return _ORDERING_CONSTRUCTORS[condition_type](path, converted)


def _between(ctx, path, condition_type, value, second_value):
    start = coerce_ordered(ctx, path, value)
    if start is _REJECTED:
        return _mismatch(ctx, path, condition_type, value)
    end = coerce_ordered(ctx, path, second_value)
    if end is _REJECTED:
        return _mismatch(ctx, path, condition_type, second_value)
    return P.between(path, start, end)


def _membership(ctx, path, condition_type, value, second_value):
    values = tuple(value) if is_collection(value) else (value,)
    if condition_type is ConditionType.IN:
        return P.in_(path, values)
    return P.not_in(path, values)


def _null_check(ctx, path, condition_type, value, second_value):
    if condition_type is ConditionType.IS_NULL:
        return P.is_null(path)
    return P.is_not_null(path)


_Handler = Callable[[TranslationContext, FieldPath, ConditionType, Any, Any], Predicate]

HANDLERS: Dict[ConditionType, _Handler] = {
    ConditionType.EQUAL: _equality,
    ConditionType.NOT_EQUAL: _equality,
    ConditionType.LIKE: _pattern,
    ConditionType.NOT_LIKE: _pattern,
    ConditionType.LIKE_IGNORE_CASE: _pattern,
    ConditionType.LIKE_START: _pattern,
    ConditionType.LIKE_END: _pattern,
    ConditionType.GREATER_THAN: _ordering,
    ConditionType.GREATER_EQUAL: _ordering,
    ConditionType.LESS_THAN: _ordering,
    ConditionType.LESS_EQUAL: _ordering,
    ConditionType.IN: _membership,
    ConditionType.NOT_IN: _membership,
    ConditionType.IS_NULL: _null_check,
    ConditionType.IS_NOT_NULL: _null_check,
    ConditionType.BETWEEN: _between,
}


def is_skippable(condition: Any) -> bool:
    """True if the condition's input is absent and it translates to ``TRUE``."""
    if condition.type in NULL_CHECK_TYPES:
        return False
    if condition.type is ConditionType.BETWEEN:
        return is_absent(condition.value) or is_absent(condition.second_value)
    return is_absent(condition.value)


# --- Translation ---
def translate_condition(condition: Any, ctx: TranslationContext) -> Predicate:
    """
    Translates a ``Condition`` or ``FieldFilter`` in the context's scope.

    Raises:
        InvalidPathError: If the resolver rejects the field.
    """
    if is_skippable(condition):
        log.debug(
            f"Skipping {condition.type.name} condition for field: {condition.field}, value is absent"
        )
        return TRUE
    path = ctx.resolve(condition.field)
    handler = HANDLERS[condition.type]
    return handler(ctx, path, condition.type, condition.value, condition.second_value)


def translate_join_group(group: JoinGroup, ctx: TranslationContext) -> Predicate:
    """
    Translates a JoinGroup into a ``Join`` node, or ``TRUE`` when nothing applies.

    Resolution failures for the relation or any of its fields degrade the
    whole group with a diagnostic.
    """
    surviving = [c for c in group.conditions if not is_skippable(c)]
    if not surviving:
        log.debug(f"No valid conditions for join on relation: {group.relation}, skipping join")
        return TRUE

    alias = ctx.next_alias(group.relation)
    try:
        scope = ctx.resolver.resolve_relation(group.relation, alias, ctx.scope)
    except InvalidPathError as e:
        return ctx.degrade(group.relation, f"Invalid join relation: {e}")

    inner = ctx.within(scope)
    members = []
    for condition in surviving:
        try:
            members.append(translate_condition(condition, inner))
        except InvalidPathError as e:
            return ctx.degrade(
                f"{group.relation}.{condition.field}",
                f"Invalid join field: {e}",
                condition.type,
                condition.value,
            )

    combined = P.and_(*members)
    if combined.is_vacuous:
        log.debug(f"All conditions on relation {group.relation} were vacuous, skipping join")
        return TRUE
    ctx.claim_alias(group.relation)
    return P.join(group.relation, alias, group.join_type, combined)


def translate_date_range(date_range: DateRange, ctx: TranslationContext) -> Predicate:
    start_text, end_text = date_range.start, date_range.end
    has_start = start_text is not None and not is_blank(start_text)
    has_end = end_text is not None and not is_blank(end_text)
    if not has_start and not has_end:
        log.debug(f"Skipping date range for field: {date_range.field}, both bounds are blank")
        return TRUE

    parser = date_range.parser or default_parser()
    try:
        start = parser(start_text) if has_start else None
        end = parser(end_text) + timedelta(days=1) if has_end else None
    except ValueError as e:
        # Custom parsers may raise a plain ValueError without the offending text
        bad_text = getattr(e, "text", None)
        if bad_text is None:
            reason = f"Invalid date format: {e}"
        else:
            reason = f"Invalid date format: {bad_text!r}"
        return ctx.degrade(
            date_range.field,
            reason,
            ConditionType.BETWEEN,
            (start_text, end_text),
        )

    path = ctx.resolve(date_range.field)
    bounds = []
    if start is not None:
        lower = coerce_ordered(ctx, path, start)
        if lower is _REJECTED:
            return _mismatch(ctx, path, ConditionType.GREATER_EQUAL, start)
        bounds.append(P.greater_equal(path, lower))
    if end is not None:
        upper = coerce_ordered(ctx, path, end)
        if upper is _REJECTED:
            return _mismatch(ctx, path, ConditionType.LESS_THAN, end)
        bounds.append(P.less_than(path, upper))
    return P.and_(*bounds)


def translate(unit: Any, ctx: TranslationContext) -> Predicate:
    """
    Translates one builder unit into a predicate.

    Accepts ``Condition``, ``JoinGroup``, ``Predicate`` and any object with a
    ``to_predicate(ctx)`` method.
    """
    if isinstance(unit, Predicate):
        return unit
    if isinstance(unit, Condition):
        return translate_condition(unit, ctx)
    if isinstance(unit, JoinGroup):
        return translate_join_group(unit, ctx)
    to_predicate = getattr(unit, "to_predicate", None)
    if callable(to_predicate):
        return to_predicate(ctx)
    raise TypeError(f"Cannot translate {type(unit).__name__} into a predicate")


def translate_all(units: Iterable[Any], ctx: TranslationContext, operator: str = "and") -> Predicate:
    members = [translate(unit, ctx) for unit in units]
    return P.or_(*members) if operator == "or" else P.and_(*members)


__all__ = [
    "TranslationContext",
    "FieldFilter",
    "JoinIdFilter",
    "DateRange",
    "Group",
    "HANDLERS",
    "coerce_ordered",
    "is_skippable",
    "translate",
    "translate_all",
    "translate_condition",
    "translate_join_group",
    "translate_date_range",
]
