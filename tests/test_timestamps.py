from datetime import date, datetime, timedelta, timezone

import pytest

from avatarwatch.timestamps import parse_ts, to_iso


class TestParseTs:
    def test_z_suffix_is_utc(self):
        assert parse_ts("2025-03-10T15:45:18Z") == datetime(2025, 3, 10, 15, 45, 18, tzinfo=timezone.utc)

    def test_offset_is_converted_to_utc(self):
        assert to_iso("2025-03-10T17:45:18+02:00") == "2025-03-10T15:45:18+00:00"

    def test_naive_is_assumed_utc(self):
        assert to_iso("2025-03-10T15:45:18") == "2025-03-10T15:45:18+00:00"

    def test_microseconds_dropped(self):
        assert to_iso("2025-03-10T15:45:18.123456Z") == "2025-03-10T15:45:18+00:00"

    def test_epoch_seconds_and_millis(self):
        assert to_iso(1741621518) == "2025-03-10T15:45:18+00:00"
        assert to_iso(1741621518000) == "2025-03-10T15:45:18+00:00"
        assert to_iso("1741621518") == "2025-03-10T15:45:18+00:00"

    def test_date_is_midnight(self):
        assert to_iso(date(2025, 3, 10)) == "2025-03-10T00:00:00+00:00"

    def test_aware_datetime(self):
        tz = timezone(timedelta(hours=-5))
        assert to_iso(datetime(2025, 3, 10, 10, 0, tzinfo=tz)) == "2025-03-10T15:00:00+00:00"

    def test_empty_values(self):
        assert parse_ts(None) is None
        assert parse_ts("") is None
        assert to_iso(None) is None

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_ts("not a date")
        with pytest.raises(ValueError):
            parse_ts(["2025"])
