# src/dynamic_query/base/dates.py
import logging
from datetime import datetime, timezone, tzinfo
from typing import Callable, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .exceptions import DateParseError

log = logging.getLogger(__name__)

DEFAULT_ZONE = "UTC"
DATE_FORMAT = "%Y-%m-%d"

# A date parser turns a date string into an aware datetime and raises
# DateParseError when it cannot.
DateParser = Callable[[str], datetime]


def _resolve_zone(zone: Union[str, tzinfo, None]) -> tzinfo:
    if zone is None:
        raise ValueError("zone cannot be None")
    if isinstance(zone, tzinfo):
        return zone
    if zone.strip().upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(zone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown time zone: {zone!r}") from e


def default_parser(zone: Union[str, tzinfo] = DEFAULT_ZONE) -> DateParser:
    """
    Returns a parser for ``YYYY-MM-DD`` strings.

    The parsed date is placed at midnight in ``zone`` (UTC by default).

    Raises:
        ValueError: If the zone is None or unknown.
    """
    resolved = _resolve_zone(zone)

    def parse(text: str) -> datetime:
        if text is None or (isinstance(text, str) and not text.strip()):
            raise DateParseError("Date string cannot be null or empty", text or "")
        if not isinstance(text, str):
            raise DateParseError(
                f"Date must be a string, got {type(text).__name__}", str(text)
            )
        try:
            parsed = datetime.strptime(text.strip(), DATE_FORMAT)
        except ValueError as e:
            raise DateParseError(
                f"Date {text!r} does not match {DATE_FORMAT}", text
            ) from e
        return parsed.replace(tzinfo=resolved)

    return parse
