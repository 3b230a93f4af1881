# src/dynamic_query/base/query.py
import logging
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Callable,
    Generic,
    Iterable,
    List,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
)

from .algebra import (
    DateRange,
    FieldFilter,
    Group,
    JoinIdFilter,
    TranslationContext,
    translate_all,
)
from .conditions import (
    Condition,
    ConditionType,
    JoinGroup,
    JoinType,
    OrderSpec,
    PageRequest,
    PageSpec,
    SortDirection,
    validate_field_name,
    validate_membership_value,
)
from .converter import DefaultTypeConverter, TypeConverter
from .dates import DateParser, default_parser
from .diagnostics import DiagnosticsSink, NullDiagnostics
from .predicate import TRUE, Predicate, contains_join
from .schema import FieldResolver, resolver_for
from .utils import is_blank

# --- Setup Logging ---
log = logging.getLogger(__name__)

M = TypeVar("M")

# Units a builder accepts through where() and or_([...])
Unit = Union[Condition, JoinGroup, Predicate]


# --- Query Options ---
@dataclass(frozen=True)
class QueryOptions:
    """
    The output of ``QueryBuilder.build()``: a predicate tree plus ordering
    and pagination hints.

    ``limit`` and ``offset`` are advisory. Backends apply them; the predicate
    itself never truncates results. ``distinct`` is set whenever the
    expression traverses a relation.
    """

    expression: Predicate = TRUE
    order_by: Tuple[OrderSpec, ...] = ()
    limit: Optional[int] = None
    offset: Optional[int] = None
    distinct: bool = False

    def __repr__(self) -> str:
        parts = [f"expression={str(self.expression)!r}"]
        if self.order_by:
            order = ", ".join(f"{o.field} {o.direction.value}" for o in self.order_by)
            parts.append(f"order_by={order!r}")
        if self.limit is not None:
            parts.append(f"limit={self.limit!r}")
        if self.offset is not None:
            parts.append(f"offset={self.offset!r}")
        if self.distinct:
            parts.append("distinct=True")
        return f"QueryOptions({', '.join(parts)})"

    @property
    def has_filter(self) -> bool:
        return not self.expression.is_vacuous

    def has_pagination(self) -> bool:
        return self.limit is not None or self.offset is not None

    def has_order_by(self) -> bool:
        return bool(self.order_by)

    @property
    def page_spec(self) -> PageSpec:
        return PageSpec(self.limit, self.offset)

    def page_request(self) -> Optional[PageRequest]:
        return self.page_spec.to_page_request()


# --- Query Builder ---
class QueryBuilder(Generic[M]):
    """
    Accumulates filter conditions fluently and folds them into a single
    predicate tree on ``build()``.

    Every filter method skips absent input (None, blank strings, empty
    collections) so callers can pass optional request parameters straight
    through. Comparison values are coerced to the declared field type; a
    value that cannot be coerced is skipped and reported to the diagnostics
    sink.

    Passing a model class turns on strict resolution by default: an unknown
    root-level field raises ``InvalidPathError`` from ``build()``. Pass
    ``strict=False`` to trust field names instead. Unknown names inside a
    join group are always soft and only reported to the diagnostics sink.

    Example:
        options = (
            QueryBuilder.create(User)
            .equal("email", email)
            .like_ignore_case("name", name)
            .date_range_between("created_at", start, end)
            .order_by("created_at", "DESC")
            .page(0, 20)
            .build()
        )
    """

    model_cls: Optional[Type[M]]
    _units: List[Any]
    _order_by: List[OrderSpec]
    _limit: Optional[int]
    _offset: Optional[int]

    def __init__(
        self,
        model_cls: Optional[Type[M]] = None,
        *,
        strict: bool = True,
        resolver: Optional[FieldResolver] = None,
        converter: Optional[TypeConverter] = None,
        diagnostics: Optional[DiagnosticsSink] = None,
        date_parser: Optional[DateParser] = None,
    ):
        self._logger = log
        self.model_cls = model_cls
        self._resolver = resolver or resolver_for(model_cls, strict)
        self._converter = converter or DefaultTypeConverter()
        self._diagnostics = diagnostics if diagnostics is not None else NullDiagnostics()
        self._date_parser = date_parser or default_parser()
        self._units = []
        self._order_by = []
        self._limit = None
        self._offset = None
        self._log_query = False

        model_name = model_cls.__name__ if model_cls else "Generic"
        mode = "strict" if self._resolver.strict else "permissive"
        self._logger.debug(f"Initializing QueryBuilder for {model_name} ({mode} resolution)")

    @classmethod
    def create(
        cls,
        model_cls: Optional[Type[M]] = None,
        *,
        strict: bool = True,
        resolver: Optional[FieldResolver] = None,
        converter: Optional[TypeConverter] = None,
        diagnostics: Optional[DiagnosticsSink] = None,
        date_parser: Optional[DateParser] = None,
    ) -> "QueryBuilder[M]":
        return cls(
            model_cls,
            strict=strict,
            resolver=resolver,
            converter=converter,
            diagnostics=diagnostics,
            date_parser=date_parser,
        )

    def _child(self) -> "QueryBuilder[M]":
        """A fresh builder sharing this builder's collaborators."""
        return QueryBuilder(
            self.model_cls,
            resolver=self._resolver,
            converter=self._converter,
            diagnostics=self._diagnostics,
            date_parser=self._date_parser,
        )

    def _add(
        self,
        field: str,
        condition_type: ConditionType,
        value: Any = None,
        second_value: Any = None,
    ) -> "QueryBuilder[M]":
        unit = FieldFilter(validate_field_name(field), condition_type, value, second_value)
        self._logger.debug(f"Adding {condition_type.name} filter on '{unit.field}'")
        self._units.append(unit)
        return self

    # --- Equality ---
    def equal(self, field: str, value: Any) -> "QueryBuilder[M]":
        return self._add(field, ConditionType.EQUAL, value)

    def not_equal(self, field: str, value: Any) -> "QueryBuilder[M]":
        return self._add(field, ConditionType.NOT_EQUAL, value)

    def equal_enum(self, field: str, member: Optional[Enum]) -> "QueryBuilder[M]":
        """Compares the field with the member's name."""
        if member is not None and not isinstance(member, Enum):
            raise TypeError(f"equal_enum() requires an Enum member, got {type(member).__name__}")
        return self._add(field, ConditionType.EQUAL, member.name if member is not None else None)

    def equal_join_id(self, relation: str, id_field: str, value: Any) -> "QueryBuilder[M]":
        """
        Compares ``relation.id_field`` with ``value`` on a single-valued relation.

        Unlike root filters, an unknown relation or id field is skipped with a
        diagnostic instead of raising.
        """
        self._units.append(
            JoinIdFilter(validate_field_name(relation), validate_field_name(id_field), value)
        )
        return self

    # --- Pattern matching ---
    def like(self, field: str, value: Optional[str]) -> "QueryBuilder[M]":
        """``field LIKE %value%``"""
        return self._add(field, ConditionType.LIKE, value)

    def not_like(self, field: str, value: Optional[str]) -> "QueryBuilder[M]":
        return self._add(field, ConditionType.NOT_LIKE, value)

    def like_ignore_case(self, field: str, value: Optional[str]) -> "QueryBuilder[M]":
        return self._add(field, ConditionType.LIKE_IGNORE_CASE, value)

    def like_start(self, field: str, value: Optional[str]) -> "QueryBuilder[M]":
        """``field LIKE value%``"""
        return self._add(field, ConditionType.LIKE_START, value)

    def like_end(self, field: str, value: Optional[str]) -> "QueryBuilder[M]":
        """``field LIKE %value``"""
        return self._add(field, ConditionType.LIKE_END, value)

    # --- Ordering comparisons ---
    def greater_than(self, field: str, value: Any) -> "QueryBuilder[M]":
        return self._add(field, ConditionType.GREATER_THAN, value)

    def greater_equal(self, field: str, value: Any) -> "QueryBuilder[M]":
        return self._add(field, ConditionType.GREATER_EQUAL, value)

    def less_than(self, field: str, value: Any) -> "QueryBuilder[M]":
        return self._add(field, ConditionType.LESS_THAN, value)

    def less_equal(self, field: str, value: Any) -> "QueryBuilder[M]":
        return self._add(field, ConditionType.LESS_EQUAL, value)

    def between(self, field: str, start: Any, end: Any) -> "QueryBuilder[M]":
        """Inclusive range. Skipped when either bound is absent."""
        return self._add(field, ConditionType.BETWEEN, start, end)

    def date_range_between(
        self,
        field: str,
        start: Optional[str],
        end: Optional[str],
        parser: Optional[DateParser] = None,
    ) -> "QueryBuilder[M]":
        """
        Filters ``field`` to the calendar range ``[start, end]``.

        Both bounds are ``YYYY-MM-DD`` strings (or whatever ``parser`` accepts)
        and either may be blank for a one-sided range. The end day is
        inclusive: the upper bound is the start of the following day.
        """
        self._units.append(
            DateRange(validate_field_name(field), start, end, parser or self._date_parser)
        )
        return self

    # --- Membership ---
    def in_(self, field: str, values: Any) -> "QueryBuilder[M]":
        """
        Accepts any collection (list, tuple, set, range, key view) or a scalar.

        Raises:
            ConditionTypeError: If ``values`` is a generator or other one-shot iterator.
        """
        validate_membership_value(ConditionType.IN, values)
        return self._add(field, ConditionType.IN, values)

    def not_in(self, field: str, values: Any) -> "QueryBuilder[M]":
        validate_membership_value(ConditionType.NOT_IN, values)
        return self._add(field, ConditionType.NOT_IN, values)

    # --- Null checks ---
    def is_null(self, field: str) -> "QueryBuilder[M]":
        return self._add(field, ConditionType.IS_NULL)

    def is_not_null(self, field: str) -> "QueryBuilder[M]":
        return self._add(field, ConditionType.IS_NOT_NULL)

    # --- Joins and composition ---
    def join_with_conditions(
        self,
        relation: str,
        conditions: Optional[Iterable[Condition]],
        join_type: Optional[JoinType] = None,
    ) -> "QueryBuilder[M]":
        """
        Applies ``conditions`` to the related entities reached via ``relation``.

        The join defaults to LEFT. Conditions with absent values are dropped;
        if none remain, no join is performed.
        """
        group = JoinGroup(relation, conditions, join_type)
        if not group.conditions:
            self._logger.debug(
                f"No conditions provided for join on relation: {group.relation}, skipping join"
            )
            return self
        self._units.append(group)
        return self

    def where(self, unit: Unit) -> "QueryBuilder[M]":
        """Adds a prebuilt Condition, JoinGroup or Predicate."""
        if not isinstance(unit, (Condition, JoinGroup, Predicate)):
            raise TypeError(
                f"where() requires a Condition, JoinGroup or Predicate, got {type(unit).__name__}"
            )
        self._units.append(unit)
        return self

    def and_(self, fn: Callable[["QueryBuilder[M]"], Any]) -> "QueryBuilder[M]":
        """
        Runs ``fn`` on a fresh sub-builder and ANDs its conditions into this one.

        Ordering and pagination set on the sub-builder are ignored.
        """
        return self._nest("and", fn)

    def or_(
        self, fn_or_units: Union[Callable[["QueryBuilder[M]"], Any], Iterable[Unit], None]
    ) -> "QueryBuilder[M]":
        """
        ORs a group of conditions into this builder.

        Accepts either a function receiving a sub-builder, whose conditions
        are ORed together, or a list of Condition, JoinGroup and Predicate
        members. Vacuous members are ignored; a group with no effective
        member matches everything.
        """
        if callable(fn_or_units):
            return self._nest("or", fn_or_units)
        if fn_or_units is None:
            self._logger.debug("Skipping OR group, no conditions provided")
            return self
        members = tuple(fn_or_units)
        if not members:
            self._logger.debug("Skipping OR group, no conditions provided")
            return self
        for member in members:
            if not isinstance(member, (Condition, JoinGroup, Predicate)):
                raise TypeError(
                    f"or_() accepts Condition, JoinGroup or Predicate members, "
                    f"got {type(member).__name__}"
                )
        self._units.append(Group("or", members))
        return self

    def _nest(self, operator: str, fn: Callable[["QueryBuilder[M]"], Any]) -> "QueryBuilder[M]":
        child = self._child()
        fn(child)
        if not child._units:
            self._logger.debug(f"Skipping nested {operator.upper()} group, no conditions added")
            return self
        self._units.append(Group(operator, tuple(child._units)))
        return self

    # --- Ordering and pagination ---
    def order_by(
        self, field: Optional[str], direction: Union[str, SortDirection, None] = "ASC"
    ) -> "QueryBuilder[M]":
        """Appends a sort key. ``direction`` is 'ASC' or 'DESC' in any case."""
        if field is None or is_blank(field):
            self._logger.debug("Skipping ORDER BY condition, field is blank")
            return self
        field = field.strip()
        if self._resolver.strict:
            # Raises InvalidPathError for unknown fields
            self._resolver.resolve(field)
        spec = OrderSpec(field, SortDirection.parse(direction) is SortDirection.ASC)
        self._order_by.append(spec)
        self._logger.debug(f"Added ORDER BY condition: {field} {spec.direction.value}")
        return self

    def limit(self, num: Optional[int]) -> "QueryBuilder[M]":
        if num is not None and num > 0:
            self._limit = num
            self._logger.debug(f"Added LIMIT condition: {num}")
        else:
            self._logger.debug(f"Skipping LIMIT condition, limit is None or <= 0: {num}")
        return self

    def offset(self, num: Optional[int]) -> "QueryBuilder[M]":
        if num is not None and num >= 0:
            self._offset = num
            self._logger.debug(f"Added OFFSET condition: {num}")
        else:
            self._logger.debug(f"Skipping OFFSET condition, offset is None or < 0: {num}")
        return self

    def page(self, page_number: int, page_size: int) -> "QueryBuilder[M]":
        """Zero-based page: offset ``page_number * page_size``, limit ``page_size``."""
        if page_number is not None and page_size is not None and page_number >= 0 and page_size > 0:
            self._offset = page_number * page_size
            self._limit = page_size
            self._logger.debug(
                f"Added pagination: page={page_number}, size={page_size}, offset={self._offset}"
            )
        else:
            self._logger.debug(
                f"Skipping pagination, invalid page_number: {page_number} or page_size: {page_size}"
            )
        return self

    def log_query(self) -> "QueryBuilder[M]":
        """Logs a summary of the query at INFO level on every build()."""
        self._log_query = True
        self._logger.debug("Enabled query logging")
        return self

    def has_pagination(self) -> bool:
        return self._limit is not None or self._offset is not None

    def has_order_by(self) -> bool:
        return bool(self._order_by)

    def page_request(self) -> Optional[PageRequest]:
        """Page view of the limit/offset, or None when no limit is set."""
        return PageSpec(self._limit, self._offset).to_page_request()

    # --- Build ---
    def build(self) -> QueryOptions:
        """
        Folds all accumulated units into a QueryOptions.

        Building has no side effects on the builder and may be repeated.

        Raises:
            InvalidPathError: If a strict resolver rejects a root-level field.
        """
        if self._log_query:
            self._logger.info(
                f"Building query with {len(self._units)} conditions, "
                f"{len(self._order_by)} order by clauses, "
                f"limit: {self._limit}, offset: {self._offset}"
            )
        ctx = TranslationContext(
            resolver=self._resolver,
            converter=self._converter,
            diagnostics=self._diagnostics,
        )
        expression = translate_all(self._units, ctx)
        options = QueryOptions(
            expression=expression,
            order_by=tuple(self._order_by),
            limit=self._limit,
            offset=self._offset,
            distinct=contains_join(expression),
        )
        if self._log_query:
            self._logger.info(f"Built query: {options!r}")
        else:
            self._logger.debug(f"Built query: {options!r}")
        return options


__all__ = ["QueryBuilder", "QueryOptions"]
