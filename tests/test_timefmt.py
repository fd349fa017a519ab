"""Tests for timestamp parsing and fixed-zone display."""
from datetime import datetime, timedelta, timezone

import pytz

from volunteerhub.messaging.timefmt import format_display_time, parse_utc


class TestParseUtc:
    def test_zone_less_string_is_utc(self):
        parsed = parse_utc("2024-05-01T10:00:00")
        assert parsed == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

    def test_zulu_suffix(self):
        assert parse_utc("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

    def test_explicit_offset_is_kept(self):
        parsed = parse_utc("2024-05-01T10:00:00+06:00")
        assert parsed.utcoffset() == timedelta(hours=6)
        assert parsed == datetime(2024, 5, 1, 4, 0, tzinfo=timezone.utc)

    def test_negative_offset(self):
        assert parse_utc("2024-05-01T10:00:00-05:00") == datetime(2024, 5, 1, 15, 0, tzinfo=timezone.utc)

    def test_offset_without_colon(self):
        assert parse_utc("2024-05-01T10:00:00-0530") == datetime(2024, 5, 1, 15, 30, tzinfo=timezone.utc)

    def test_hour_only_offset(self):
        parsed = parse_utc("2024-05-01 16:00:00+06")
        assert parsed.utcoffset() == timedelta(hours=6)
        assert parsed == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)

    def test_fractional_seconds_with_short_offset(self):
        parsed = parse_utc("2024-05-01T10:00:00.250000+00")
        assert parsed == datetime(2024, 5, 1, 10, 0, 0, 250000, tzinfo=timezone.utc)

    def test_date_only_is_utc_midnight(self):
        assert parse_utc("2024-05-01") == datetime(2024, 5, 1, tzinfo=timezone.utc)

    def test_fractional_seconds(self):
        parsed = parse_utc("2024-05-01T10:00:00.123456")
        assert parsed.microsecond == 123456
        assert parsed.tzinfo is not None

    def test_naive_datetime_is_utc(self):
        assert parse_utc(datetime(2024, 5, 1, 10, 0)).utcoffset() == timedelta(0)

    def test_missing_means_now(self):
        before = datetime.now(pytz.utc)
        parsed = parse_utc(None)
        assert parsed.tzinfo is not None
        assert parsed >= before


class TestFormatDisplayTime:
    def test_zone_less_timestamp_is_read_as_utc(self):
        # Asia/Dhaka is UTC+6 with no daylight saving
        assert format_display_time("2024-05-01T10:00:00", "Asia/Dhaka") == "04:00 PM"

    def test_default_zone_is_dhaka(self):
        assert format_display_time("2024-05-01T10:00:00") == "04:00 PM"

    def test_same_instant_with_offset(self):
        assert format_display_time("2024-05-01T16:00:00+06:00", "Asia/Dhaka") == "04:00 PM"

    def test_other_zone(self):
        assert format_display_time("2024-05-01T10:00:00", "UTC") == "10:00 AM"

    def test_datetime_from_store(self):
        assert format_display_time(datetime(2024, 5, 1, 18, 30), "Asia/Dhaka") == "12:30 AM"
