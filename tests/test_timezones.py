"""Tests for UTC <-> plant-local conversion."""

from datetime import datetime, time, timezone

import pytest

from pressplan.timezones import (
    at_local_time,
    ensure_utc,
    format_instant,
    from_local,
    get_zone,
    local_date,
    parse_instant,
    to_local,
)
from tests.conftest import MONDAY, utc

SAST = "Africa/Johannesburg"  # UTC+2, no DST


class TestLocalConversion:
    """Tests for the to_local/from_local pair."""

    def test_to_local_applies_offset_once(self) -> None:
        local = to_local(utc(MONDAY, 6), SAST)
        assert local.hour == 8
        assert local.utcoffset() is not None
        assert local.utcoffset().total_seconds() == 2 * 3600

    def test_from_local_naive_is_plant_time(self) -> None:
        instant = from_local(datetime(2025, 1, 6, 8, 0), SAST)  # noqa: DTZ001
        assert instant == utc(MONDAY, 6)
        assert instant.tzinfo == timezone.utc

    def test_round_trip(self) -> None:
        """Local -> UTC -> local returns the same wall clock time."""
        wall = datetime(2025, 1, 6, 16, 30)  # noqa: DTZ001
        back = to_local(from_local(wall, SAST), SAST)
        assert back.replace(tzinfo=None) == wall

    def test_round_trip_from_utc(self) -> None:
        instant = utc(MONDAY, 13, 45)
        assert from_local(to_local(instant, SAST), SAST) == instant

    def test_from_local_does_not_shift_aware_values_twice(self) -> None:
        """Converting an already converted value must not apply the offset again."""
        local = to_local(utc(MONDAY, 6), SAST)
        assert from_local(local, SAST) == utc(MONDAY, 6)
        assert from_local(from_local(local, SAST), SAST) == utc(MONDAY, 6)

    def test_to_local_refuses_naive(self) -> None:
        with pytest.raises(ValueError, match="naive"):
            to_local(datetime(2025, 1, 6, 8, 0), SAST)  # noqa: DTZ001

    def test_local_date_crosses_midnight(self) -> None:
        # 23:00 UTC Monday is 01:00 Tuesday in Johannesburg
        assert local_date(utc(MONDAY, 23), SAST).isoformat() == "2025-01-07"
        assert local_date(utc(MONDAY, 23), "UTC") == MONDAY

    def test_at_local_time(self) -> None:
        assert at_local_time(MONDAY, time(8, 0), SAST) == utc(MONDAY, 6)
        assert at_local_time(MONDAY, time(8, 0), "UTC") == utc(MONDAY, 8)

    def test_unknown_zone(self) -> None:
        with pytest.raises(ValueError, match="Unknown timezone"):
            get_zone("Mars/Olympus_Mons")


class TestInstantParsing:
    """Tests for ISO-8601 parsing and formatting."""

    def test_parse_z_suffix(self) -> None:
        assert parse_instant("2025-01-06T08:00:00Z") == utc(MONDAY, 8)

    def test_parse_offset_normalizes_to_utc(self) -> None:
        instant = parse_instant("2025-01-06T10:00:00+02:00")
        assert instant == utc(MONDAY, 8)
        assert instant.tzinfo == timezone.utc

    def test_parse_naive_is_utc(self) -> None:
        assert parse_instant("2025-01-06T08:00") == utc(MONDAY, 8)

    def test_parse_invalid(self) -> None:
        with pytest.raises(ValueError):
            parse_instant("next tuesday")

    def test_parse_datetime_passthrough(self) -> None:
        assert parse_instant(utc(MONDAY, 8)) == utc(MONDAY, 8)

    def test_format_uses_z(self) -> None:
        assert format_instant(utc(MONDAY, 8, 30)) == "2025-01-06T08:30:00Z"

    def test_format_none(self) -> None:
        assert format_instant(None) is None

    def test_ensure_utc(self) -> None:
        assert ensure_utc(datetime(2025, 1, 6, 8, 0)) == utc(MONDAY, 8)  # noqa: DTZ001
        assert ensure_utc(to_local(utc(MONDAY, 8), SAST)).hour == 8
