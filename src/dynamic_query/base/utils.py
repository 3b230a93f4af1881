import logging
from collections.abc import Collection, Iterable, Mapping
from dataclasses import is_dataclass, asdict
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

logger = logging.getLogger(__name__)

# Strings, bytes and mappings are scalars here, never membership collections
SCALAR_TYPES = (str, bytes, bytearray, Mapping)


def is_collection(value: Any) -> bool:
    """True for sized, re-iterable containers such as lists, sets, ranges and key views."""
    return isinstance(value, Collection) and not isinstance(value, SCALAR_TYPES)


def is_one_shot_iterable(value: Any) -> bool:
    """True for iterables that are not collections, e.g. generators and iterators."""
    return (
        isinstance(value, Iterable)
        and not isinstance(value, SCALAR_TYPES)
        and not isinstance(value, Collection)
    )


def is_blank(value: Any) -> bool:
    return isinstance(value, str) and not value.strip()


def is_absent(value: Any) -> bool:
    """
    Checks whether a filter input counts as "not provided".

    None, blank strings and empty collections are absent. Zero, False and
    other falsy scalars are real values.
    """
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if is_collection(value):
        return len(value) == 0
    return False


def prepare_for_storage(data: Any) -> Any:
    """
    Recursively convert Pydantic models, dataclasses, and special types to storage-compatible formats.

    It handles:
    - Pydantic BaseModel instances (dumped by alias)
    - Python dataclasses
    - Enums (stored by value)
    - datetime/date/time values (ISO-8601 strings; aware datetimes in UTC)
    - Decimal and UUID values
    - Dictionaries, lists, tuples and sets (processed recursively)

    Args:
        data: The data to convert

    Returns:
        The converted data, ready for storage or use as a query parameter
    """
    if data is None:
        return None

    if is_dataclass(data) and not isinstance(data, type):
        return prepare_for_storage(asdict(data))

    if hasattr(data, "model_dump") and callable(getattr(data, "model_dump")):
        return prepare_for_storage(data.model_dump(by_alias=True))

    if isinstance(data, dict):
        return {k: prepare_for_storage(v) for k, v in data.items()}

    if isinstance(data, list):
        return [prepare_for_storage(item) for item in data]

    if isinstance(data, tuple):
        return tuple(prepare_for_storage(item) for item in data)

    if isinstance(data, (set, frozenset)):
        return [prepare_for_storage(item) for item in data]

    if isinstance(data, Enum):
        return data.value

    # datetime first: it is also a date
    if isinstance(data, datetime):
        # Aware values are stored at UTC offset
        if data.tzinfo is not None and data.utcoffset() is not None:
            data = data.astimezone(timezone.utc)
        return data.isoformat()
    if isinstance(data, (date, time)):
        return data.isoformat()

    if isinstance(data, Decimal):
        return float(data)

    if isinstance(data, UUID):
        return str(data)

    if isinstance(data, bool):
        return 1 if data else 0

    return data
