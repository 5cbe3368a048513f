"""Tests for shared aggregator parsing utilities."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from integrations.parsing_utils import parse_iso_date, parse_iso_datetime, to_decimal


class TestParseIsoDatetime:
    """Tests for parse_iso_datetime."""

    def test_none_and_empty_return_none(self):
        assert parse_iso_datetime(None) is None
        assert parse_iso_datetime("") is None

    def test_z_suffix(self):
        result = parse_iso_datetime("2024-01-15T10:30:00Z")
        assert result == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_offset_converted_to_utc(self):
        result = parse_iso_datetime("2024-06-28T18:42:46+02:00")
        assert result == datetime(2024, 6, 28, 16, 42, 46, tzinfo=timezone.utc)
        assert result.tzinfo == timezone.utc

    def test_naive_string_assumed_utc(self):
        result = parse_iso_datetime("2024-06-28T12:00:00")
        assert result.tzinfo == timezone.utc

    def test_date_only_string(self):
        assert parse_iso_datetime("2024-06-28") == datetime(2024, 6, 28, tzinfo=timezone.utc)

    def test_naive_datetime_gets_utc(self):
        result = parse_iso_datetime(datetime(2024, 6, 28, 12, 0))
        assert result == datetime(2024, 6, 28, 12, 0, tzinfo=timezone.utc)

    def test_aware_datetime_normalized(self):
        tz_minus5 = timezone(timedelta(hours=-5))
        result = parse_iso_datetime(datetime(2024, 6, 28, 12, 0, tzinfo=tz_minus5))
        assert result == datetime(2024, 6, 28, 17, 0, tzinfo=timezone.utc)

    def test_garbage_returns_none(self):
        assert parse_iso_datetime("not a date") is None


class TestParseIsoDate:
    def test_plain_date(self):
        assert parse_iso_date("2024-01-15") == date(2024, 1, 15)

    def test_timestamp_truncated_to_date(self):
        assert parse_iso_date("2024-01-15T23:59:59Z") == date(2024, 1, 15)

    def test_datetime_object(self):
        assert parse_iso_date(datetime(2024, 1, 15, 8, 0)) == date(2024, 1, 15)

    def test_invalid_returns_none(self):
        assert parse_iso_date(None) is None
        assert parse_iso_date("15/01/2024") is None


class TestToDecimal:
    def test_float_goes_through_str(self):
        assert to_decimal(12.3) == Decimal("12.3")

    def test_numeric_string(self):
        assert to_decimal("-1523.45") == Decimal("-1523.45")

    def test_int(self):
        assert to_decimal(100) == Decimal("100")

    def test_none_bool_and_garbage(self):
        assert to_decimal(None) is None
        assert to_decimal(True) is None
        assert to_decimal("abc") is None
