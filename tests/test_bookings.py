"""Tests for per-resource booking tracking."""

from pressplan.scheduler import ResourceBookings
from tests.conftest import MONDAY, utc


def test_existing_periods_are_merged() -> None:
    bookings = ResourceBookings(
        [
            (utc(MONDAY, 10), utc(MONDAY, 11)),
            (utc(MONDAY, 8), utc(MONDAY, 9)),
            (utc(MONDAY, 9), utc(MONDAY, 9, 30)),  # touches the first booking
        ],
        resource_id="press",
    )
    assert bookings.busy_periods == [
        (utc(MONDAY, 8), utc(MONDAY, 9, 30)),
        (utc(MONDAY, 10), utc(MONDAY, 11)),
    ]


def test_add_busy_period_merges_neighbours() -> None:
    bookings = ResourceBookings(
        [(utc(MONDAY, 8), utc(MONDAY, 9)), (utc(MONDAY, 10), utc(MONDAY, 11))]
    )
    bookings.add_busy_period(utc(MONDAY, 9), utc(MONDAY, 10))
    assert bookings.busy_periods == [(utc(MONDAY, 8), utc(MONDAY, 11))]


def test_add_busy_period_keeps_order() -> None:
    bookings = ResourceBookings()
    bookings.add_busy_period(utc(MONDAY, 14), utc(MONDAY, 15))
    bookings.add_busy_period(utc(MONDAY, 8), utc(MONDAY, 9))
    bookings.add_busy_period(utc(MONDAY, 11), utc(MONDAY, 12))
    assert [start.hour for start, _ in bookings.busy_periods] == [8, 11, 14]


def test_empty_period_is_ignored() -> None:
    bookings = ResourceBookings()
    bookings.add_busy_period(utc(MONDAY, 9), utc(MONDAY, 9))
    assert bookings.busy_periods == []


def test_is_available() -> None:
    bookings = ResourceBookings([(utc(MONDAY, 10), utc(MONDAY, 11))])
    assert bookings.is_available(utc(MONDAY, 8), utc(MONDAY, 10))
    assert bookings.is_available(utc(MONDAY, 11), utc(MONDAY, 12))
    assert not bookings.is_available(utc(MONDAY, 9, 30), utc(MONDAY, 10, 30))
    assert not bookings.is_available(utc(MONDAY, 10, 15), utc(MONDAY, 10, 45))


def test_next_available_time() -> None:
    bookings = ResourceBookings([(utc(MONDAY, 10), utc(MONDAY, 11))])
    assert bookings.next_available_time(utc(MONDAY, 9)) == utc(MONDAY, 9)
    assert bookings.next_available_time(utc(MONDAY, 10)) == utc(MONDAY, 11)
    assert bookings.next_available_time(utc(MONDAY, 10, 30)) == utc(MONDAY, 11)
    assert bookings.next_available_time(utc(MONDAY, 11)) == utc(MONDAY, 11)


def test_next_busy_start() -> None:
    bookings = ResourceBookings(
        [(utc(MONDAY, 10), utc(MONDAY, 11)), (utc(MONDAY, 13), utc(MONDAY, 14))]
    )
    assert bookings.next_busy_start(utc(MONDAY, 8)) == utc(MONDAY, 10)
    assert bookings.next_busy_start(utc(MONDAY, 11)) == utc(MONDAY, 13)
    assert bookings.next_busy_start(utc(MONDAY, 10, 30)) == utc(MONDAY, 13)
    assert bookings.next_busy_start(utc(MONDAY, 14)) is None


def test_copy_is_independent() -> None:
    bookings = ResourceBookings([(utc(MONDAY, 10), utc(MONDAY, 11))], resource_id="press")
    snapshot = bookings.copy()
    bookings.add_busy_period(utc(MONDAY, 12), utc(MONDAY, 13))
    assert snapshot.busy_periods == [(utc(MONDAY, 10), utc(MONDAY, 11))]
    assert snapshot.resource_id == "press"


def test_remove_busy_period_trims_and_splits() -> None:
    bookings = ResourceBookings(
        [(utc(MONDAY, 8), utc(MONDAY, 12)), (utc(MONDAY, 13), utc(MONDAY, 14))]
    )
    bookings.remove_busy_period(utc(MONDAY, 9), utc(MONDAY, 10))
    assert bookings.busy_periods == [
        (utc(MONDAY, 8), utc(MONDAY, 9)),
        (utc(MONDAY, 10), utc(MONDAY, 12)),
        (utc(MONDAY, 13), utc(MONDAY, 14)),
    ]

    bookings.remove_busy_period(utc(MONDAY, 11), utc(MONDAY, 13, 30))
    assert bookings.busy_periods == [
        (utc(MONDAY, 8), utc(MONDAY, 9)),
        (utc(MONDAY, 10), utc(MONDAY, 11)),
        (utc(MONDAY, 13, 30), utc(MONDAY, 14)),
    ]


def test_remove_whole_booking() -> None:
    bookings = ResourceBookings([(utc(MONDAY, 8), utc(MONDAY, 9))])
    bookings.remove_busy_period(utc(MONDAY, 8), utc(MONDAY, 9))
    assert bookings.busy_periods == []
    assert bookings.next_available_time(utc(MONDAY, 8)) == utc(MONDAY, 8)
