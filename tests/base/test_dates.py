# tests/base/test_dates.py

from datetime import date, datetime, timedelta, timezone

import pytest

from dynamic_query.base.dates import default_parser
from dynamic_query.base.exceptions import DateParseError


def test_default_parser_is_utc_midnight():
    parse = default_parser()
    assert parse("2025-09-01") == datetime(2025, 9, 1, tzinfo=timezone.utc)


def test_surrounding_whitespace_is_ignored():
    assert default_parser()(" 2025-09-01 ") == datetime(2025, 9, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize("zone", ["UTC", "utc"])
def test_utc_name_in_any_case(zone):
    assert default_parser(zone)("2025-01-01").utcoffset() == timedelta(0)


def test_explicit_tzinfo():
    plus_two = timezone(timedelta(hours=2))
    parsed = default_parser(plus_two)("2025-09-01")
    assert parsed.tzinfo is plus_two
    assert parsed.astimezone(timezone.utc) == datetime(2025, 8, 31, 22, tzinfo=timezone.utc)


def test_none_zone_fails():
    with pytest.raises(ValueError, match="zone cannot be None"):
        default_parser(None)


def test_unknown_zone_fails():
    with pytest.raises(ValueError, match="Unknown time zone"):
        default_parser("Not/AZone")


@pytest.mark.parametrize("text", ["", "   ", None])
def test_blank_input_fails(text):
    with pytest.raises(DateParseError, match="cannot be null or empty"):
        default_parser()(text)


@pytest.mark.parametrize("text", ["2025-13-01", "01/09/2025", "2025-09-01T10:00", "yesterday"])
def test_malformed_input_fails(text):
    with pytest.raises(DateParseError) as exc_info:
        default_parser()(text)
    assert exc_info.value.text == text


def test_date_parse_error_is_value_error():
    assert issubclass(DateParseError, ValueError)


@pytest.mark.parametrize("value", [5, 20250901, date(2025, 9, 1)])
def test_non_string_input_fails(value):
    with pytest.raises(DateParseError, match="must be a string") as exc_info:
        default_parser()(value)
    assert exc_info.value.text == str(value)
