# src/dynamic_query/base/converter.py
import logging
import numbers
import types
from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Optional, Tuple, Type, TypeVar, Union, get_args, get_origin
from uuid import UUID

from pydantic import AwareDatetime, NaiveDatetime

log = logging.getLogger(__name__)

_ORDERED_TYPES = (
    numbers.Real,
    Decimal,
    str,
    bytes,
    date,
    time,
    timedelta,
    UUID,
)


def is_comparable(value: Any) -> bool:
    """True if the value supports strict ordering comparisons."""
    if value is None:
        return False
    return isinstance(value, _ORDERED_TYPES)


def is_instance_of(value: Any, target: Any) -> bool:
    """
    Checks a value against a declared field type.

    Unlike isinstance, an aware datetime only matches ``datetime``, a naive one
    only matches ``NaiveDatetime``, a datetime never matches ``date`` and a
    bool never matches a numeric type.
    """
    if value is None or target is None:
        return False
    if target is datetime or target is AwareDatetime:
        return isinstance(value, datetime) and value.tzinfo is not None
    if target is NaiveDatetime:
        return isinstance(value, datetime) and value.tzinfo is None
    if target is date:
        return isinstance(value, date) and not isinstance(value, datetime)
    if isinstance(value, bool) and target is not bool:
        return False
    if isinstance(target, type):
        return isinstance(value, target)
    return False


def _is_none_type(t: Any) -> bool:
    return t is type(None)


def declared_types(field_type: Any) -> Tuple[Any, ...]:
    """
    Normalises a resolved type hint into the candidate runtime types.

    Optional and Annotated wrappers are removed, unions expand to their
    members and Any/TypeVars yield an empty tuple (unknown type).
    """
    if field_type is None or field_type is Any or isinstance(field_type, TypeVar):
        return ()
    origin = get_origin(field_type)
    if origin is Annotated:
        return declared_types(get_args(field_type)[0])
    if origin is Union or origin is types.UnionType:
        result: Tuple[Any, ...] = ()
        for arg in get_args(field_type):
            if not _is_none_type(arg):
                result += declared_types(arg)
        return result
    if field_type is AwareDatetime:
        return (datetime,)
    if origin is not None:
        return (origin,)
    return (field_type,)


class TypeConverter(ABC):
    """Coerces an input value to the runtime type a field declares."""

    @abstractmethod
    def convert(self, value: Any, target_type: Optional[Type]) -> Optional[Any]:
        """
        Converts ``value`` to ``target_type``.

        Returns:
            The converted value, or None when no conversion applies. Never raises
            for unconvertible input.
        """


class DefaultTypeConverter(TypeConverter):
    """Default converter covering the date/time and numeric families."""

    def convert(self, value: Any, target_type: Optional[Type]) -> Optional[Any]:
        if value is None or target_type is None:
            return None
        if is_instance_of(value, target_type):
            return value

        try:
            if isinstance(value, datetime):
                return self._from_datetime(value, target_type)
            if isinstance(value, date):
                return self._from_date(value, target_type)
            if isinstance(value, (numbers.Real, Decimal)) and not isinstance(value, bool):
                return self._from_number(value, target_type)
            if isinstance(value, str) and value.strip():
                return self._from_string(value, target_type)
        except (ValueError, TypeError, OverflowError, ArithmeticError) as e:
            log.debug(
                f"Conversion of {value!r} to {getattr(target_type, '__name__', target_type)} failed: {e}"
            )
            return None

        return None

    def _from_datetime(self, value: datetime, target_type: Any) -> Optional[Any]:
        if value.tzinfo is not None:
            if target_type is date:
                return value.date()
            if target_type is NaiveDatetime:
                return value.replace(tzinfo=None)
            return None
        if target_type is date:
            return value.date()
        if target_type in (datetime, AwareDatetime):
            return value.replace(tzinfo=timezone.utc)
        return None

    def _from_date(self, value: date, target_type: Any) -> Optional[Any]:
        if target_type in (datetime, AwareDatetime):
            return datetime.combine(value, time.min, tzinfo=timezone.utc)
        if target_type is NaiveDatetime:
            return datetime.combine(value, time.min)
        return None

    def _from_number(self, value: Any, target_type: Any) -> Optional[Any]:
        if target_type is int:
            return int(value)
        if target_type is float:
            return float(value)
        if target_type is Decimal:
            return value if isinstance(value, Decimal) else Decimal(str(value))
        return None

    def _from_string(self, value: str, target_type: Any) -> Optional[Any]:
        if target_type is int:
            return int(value)
        if target_type is float:
            return float(value)
        if target_type is Decimal:
            try:
                return Decimal(value.strip())
            except InvalidOperation:
                return None
        return None
