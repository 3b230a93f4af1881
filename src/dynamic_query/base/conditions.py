# src/dynamic_query/base/conditions.py
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Tuple, Union

from .converter import is_comparable
from .exceptions import ConditionTypeError, ConditionValidationError
from .utils import is_collection, is_one_shot_iterable

log = logging.getLogger(__name__)


# --- Condition Type Enum ---
class ConditionType(Enum):
    """Enumeration of the supported comparison kinds."""

    # Equality
    EQUAL = "equal"
    NOT_EQUAL = "not_equal"
    # Pattern matching
    LIKE = "like"
    NOT_LIKE = "not_like"
    LIKE_IGNORE_CASE = "like_ignore_case"
    LIKE_START = "like_start"
    LIKE_END = "like_end"
    # Ordering
    GREATER_THAN = "greater_than"
    GREATER_EQUAL = "greater_equal"
    LESS_THAN = "less_than"
    LESS_EQUAL = "less_equal"
    # Membership
    IN = "in"
    NOT_IN = "not_in"
    # Null checks
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    # Range
    BETWEEN = "between"


LIKE_TYPES = frozenset(
    {
        ConditionType.LIKE,
        ConditionType.NOT_LIKE,
        ConditionType.LIKE_IGNORE_CASE,
        ConditionType.LIKE_START,
        ConditionType.LIKE_END,
    }
)
ORDERING_TYPES = frozenset(
    {
        ConditionType.GREATER_THAN,
        ConditionType.GREATER_EQUAL,
        ConditionType.LESS_THAN,
        ConditionType.LESS_EQUAL,
        ConditionType.BETWEEN,
    }
)
NULL_CHECK_TYPES = frozenset({ConditionType.IS_NULL, ConditionType.IS_NOT_NULL})
MEMBERSHIP_TYPES = frozenset({ConditionType.IN, ConditionType.NOT_IN})


def validate_field_name(field_name: Any) -> str:
    """Returns the trimmed field name, raising if it is missing or blank."""
    if not isinstance(field_name, str) or not field_name.strip():
        raise ConditionValidationError(
            f"Field name cannot be blank, got {field_name!r}"
        )
    return field_name.strip()


def validate_membership_value(condition_type: ConditionType, value: Any) -> None:
    if is_one_shot_iterable(value):
        raise ConditionTypeError(
            f"Condition {condition_type.name} requires a collection, "
            f"got {type(value).__name__}; materialize it into a list or tuple first"
        )


def validate_like_value(condition_type: ConditionType, value: Any) -> None:
    if value is not None and not isinstance(value, str):
        raise ConditionTypeError(
            f"Condition {condition_type.name} requires a string value, "
            f"got {type(value).__name__}"
        )


# --- Condition ---
@dataclass(frozen=True)
class Condition:
    """
    A single validated filter rule: ``field <type> value [second_value]``.

    Instances are immutable. Every invariant is checked at construction, so a
    Condition is either fully valid or never exists. Use the named constructors
    (``Condition.equal(...)``, ``Condition.between(...)``, ...).
    """

    field: str
    type: ConditionType
    value: Any = None
    second_value: Any = None

    def __post_init__(self):
        object.__setattr__(self, "field", validate_field_name(self.field))
        if not isinstance(self.type, ConditionType):
            raise ConditionValidationError(
                f"Condition type cannot be {self.type!r}"
            )
        self._validate_values()

    def _validate_values(self) -> None:
        condition_type = self.type
        value = self.value
        second_value = self.second_value

        if condition_type is ConditionType.BETWEEN:
            if value is None or second_value is None:
                raise ConditionValidationError(
                    "BETWEEN condition requires both start and end values"
                )
            if is_comparable(value) and is_comparable(second_value):
                if type(value) is not type(second_value):
                    raise ConditionValidationError(
                        f"BETWEEN values must be of the same type, got "
                        f"{type(value).__name__} and {type(second_value).__name__}"
                    )
            return

        if second_value is not None:
            raise ConditionValidationError(
                f"Condition {condition_type.name} does not accept a second value"
            )

        if condition_type in MEMBERSHIP_TYPES:
            validate_membership_value(condition_type, value)
            if is_collection(value) and len(value) == 0:
                raise ConditionValidationError(
                    f"{condition_type.name} condition cannot have an empty collection"
                )
            return

        if condition_type in NULL_CHECK_TYPES:
            if value is not None:
                raise ConditionValidationError(
                    f"Condition {condition_type.name} does not accept a value"
                )
            return

        if value is None:
            raise ConditionValidationError(
                f"Condition {condition_type.name} requires a non-null value"
            )
        if condition_type in LIKE_TYPES:
            validate_like_value(condition_type, value)

    def __repr__(self) -> str:
        parts = [f"{self.field!r}", self.type.name]
        if self.type not in NULL_CHECK_TYPES:
            parts.append(f"{self.value!r}")
        if self.type is ConditionType.BETWEEN:
            parts.append(f"{self.second_value!r}")
        return f"Condition({', '.join(parts)})"

    # --- Named constructors ---
    @classmethod
    def equal(cls, field: str, value: Any) -> "Condition":
        return cls(field, ConditionType.EQUAL, value)

    @classmethod
    def not_equal(cls, field: str, value: Any) -> "Condition":
        return cls(field, ConditionType.NOT_EQUAL, value)

    @classmethod
    def like(cls, field: str, value: str) -> "Condition":
        """``field LIKE %value%``"""
        return cls(field, ConditionType.LIKE, value)

    @classmethod
    def not_like(cls, field: str, value: str) -> "Condition":
        """``field NOT LIKE %value%``"""
        return cls(field, ConditionType.NOT_LIKE, value)

    @classmethod
    def like_ignore_case(cls, field: str, value: str) -> "Condition":
        """Case-insensitive ``%value%`` match."""
        return cls(field, ConditionType.LIKE_IGNORE_CASE, value)

    @classmethod
    def like_start(cls, field: str, value: str) -> "Condition":
        """``field LIKE value%``"""
        return cls(field, ConditionType.LIKE_START, value)

    @classmethod
    def like_end(cls, field: str, value: str) -> "Condition":
        """``field LIKE %value``"""
        return cls(field, ConditionType.LIKE_END, value)

    @classmethod
    def greater_than(cls, field: str, value: Any) -> "Condition":
        return cls(field, ConditionType.GREATER_THAN, value)

    @classmethod
    def greater_equal(cls, field: str, value: Any) -> "Condition":
        return cls(field, ConditionType.GREATER_EQUAL, value)

    @classmethod
    def less_than(cls, field: str, value: Any) -> "Condition":
        return cls(field, ConditionType.LESS_THAN, value)

    @classmethod
    def less_equal(cls, field: str, value: Any) -> "Condition":
        return cls(field, ConditionType.LESS_EQUAL, value)

    @classmethod
    def in_(cls, field: str, values: Any) -> "Condition":
        return cls(field, ConditionType.IN, values)

    @classmethod
    def not_in(cls, field: str, values: Any) -> "Condition":
        return cls(field, ConditionType.NOT_IN, values)

    @classmethod
    def is_null(cls, field: str) -> "Condition":
        return cls(field, ConditionType.IS_NULL)

    @classmethod
    def is_not_null(cls, field: str) -> "Condition":
        return cls(field, ConditionType.IS_NOT_NULL)

    @classmethod
    def between(cls, field: str, start: Any, end: Any) -> "Condition":
        """Inclusive range ``start <= field <= end``. No ordering check on the bounds."""
        return cls(field, ConditionType.BETWEEN, start, end)


# --- Join Group ---
class JoinType(Enum):
    INNER = "inner"
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class JoinGroup:
    """Conditions applied to the fields of a related entity reached via ``relation``."""

    relation: str
    conditions: Tuple[Condition, ...] = ()
    join_type: JoinType = JoinType.LEFT

    def __init__(
        self,
        relation: str,
        conditions: Optional[Iterable[Condition]] = None,
        join_type: Optional[JoinType] = None,
    ):
        object.__setattr__(self, "relation", validate_field_name(relation))
        conditions = tuple(conditions or ())
        for condition in conditions:
            if not isinstance(condition, Condition):
                raise ConditionTypeError(
                    f"JoinGroup accepts Condition objects only, got {type(condition).__name__}"
                )
        object.__setattr__(self, "conditions", conditions)
        object.__setattr__(self, "join_type", join_type or JoinType.LEFT)


# --- Ordering and Pagination ---
class SortDirection(Enum):
    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, direction: Union[str, "SortDirection", None]) -> "SortDirection":
        """Parses 'asc'/'desc' in any case. None and unknown strings mean ASC."""
        if isinstance(direction, SortDirection):
            return direction
        if isinstance(direction, str) and direction.strip().upper() == "DESC":
            return cls.DESC
        return cls.ASC


@dataclass(frozen=True)
class OrderSpec:
    field: str
    ascending: bool = True

    @property
    def direction(self) -> SortDirection:
        return SortDirection.ASC if self.ascending else SortDirection.DESC


@dataclass(frozen=True)
class PageRequest:
    """Page-oriented view of a limit/offset pair."""

    page_number: int
    page_size: int


@dataclass(frozen=True)
class PageSpec:
    """Advisory pagination metadata. Backends are responsible for enforcing it."""

    limit: Optional[int] = None
    offset: Optional[int] = None

    def to_page_request(self) -> Optional[PageRequest]:
        if self.limit is not None and self.offset is not None:
            return PageRequest(self.offset // self.limit, self.limit)
        if self.limit is not None:
            return PageRequest(0, self.limit)
        return None


__all__ = [
    "ConditionType",
    "Condition",
    "JoinType",
    "JoinGroup",
    "SortDirection",
    "OrderSpec",
    "PageSpec",
    "PageRequest",
    "LIKE_TYPES",
    "ORDERING_TYPES",
    "NULL_CHECK_TYPES",
    "MEMBERSHIP_TYPES",
    "validate_field_name",
    "validate_like_value",
]
