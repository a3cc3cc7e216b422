from datetime import datetime, timezone

import pytest

from couchkit.utils.periodic_month import PeriodicMonth, pick_month, pick_periodic_month

pytestmark = pytest.mark.unit


def utc(year: int, month: int, day: int = 1) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


JANUARY = [
    ("month", "2021-01", utc(2021, 1)),
    ("quarter", "2021-q1", utc(2021, 1)),
    ("half-year", "2021-h1", utc(2021, 1)),
    ("year", "2021", utc(2021, 1)),
]


@pytest.mark.parametrize(("period", "name", "date"), JANUARY)
def test_rounds_up_from_christmas_to_january(period, name, date):
    assert pick_periodic_month(utc(2020, 12, 25), period, round_up=True) == (date, name)


@pytest.mark.parametrize(("period", "name", "date"), JANUARY)
def test_stays_in_january_when_rounding_down(period, name, date):
    assert pick_periodic_month(utc(2021, 1, 1), period, round_up=False) == (date, name)


@pytest.mark.parametrize(
    ("period", "name", "date"),
    [
        ("month", "2021-02", utc(2021, 2)),
        ("quarter", "2021-q2", utc(2021, 4)),
        ("half-year", "2021-h2", utc(2021, 7)),
        ("year", "2022", utc(2022, 1)),
    ],
)
def test_rounds_up_from_january_to_next_boundary(period, name, date):
    assert pick_periodic_month(utc(2021, 1, 1), period, round_up=True) == (date, name)


@pytest.mark.parametrize(
    ("period", "name", "date"),
    [
        ("month", "2020-12", utc(2020, 12)),
        ("quarter", "2020-q4", utc(2020, 10)),
        ("half-year", "2020-h2", utc(2020, 7)),
        ("year", "2020", utc(2020, 1)),
    ],
)
def test_rounds_down_from_christmas(period, name, date):
    assert pick_periodic_month(utc(2020, 12, 25), period, round_up=False) == (date, name)


def test_naive_datetimes_are_utc():
    assert pick_month(datetime(2021, 5, 17, 12), 1, round_up=False) == utc(2021, 5)


def test_period_enum_months():
    assert [p.months for p in PeriodicMonth] == [1, 3, 6, 12]
    assert PeriodicMonth("half-year") is PeriodicMonth.HALF_YEAR
