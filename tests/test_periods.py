from datetime import date

import pytest

from periods import (
    OPEN_END,
    Period,
    add_months,
    end_index,
    from_month_index,
    month_end,
    month_index,
    previous_month,
    ranges_overlap,
    resolve_period,
)


def test_month_index_round_trips_december():
    assert month_index(2024, 12) == 2024 * 12 + 12
    assert from_month_index(month_index(2024, 12)) == (2024, 12)
    assert from_month_index(month_index(2025, 1)) == (2025, 1)


def test_add_months_crosses_year_boundaries():
    assert add_months(2024, 11, 3) == (2025, 2)
    assert add_months(2024, 2, -14) == (2022, 12)
    assert previous_month(2024, 1) == (2023, 12)


def test_end_index_treats_missing_end_as_open():
    assert end_index(None, None) == OPEN_END
    assert end_index(2024, None) == OPEN_END
    assert end_index(2024, 3) == month_index(2024, 3)


def test_ranges_overlap_inclusive_bounds():
    jan = month_index(2024, 1)
    jun = month_index(2024, 6)
    jul = month_index(2024, 7)
    assert ranges_overlap(jan, jun, jun, None)
    assert not ranges_overlap(jan, jun, jul, None)
    assert ranges_overlap(jan, None, month_index(2030, 1), month_index(2030, 2))


def test_month_end_handles_leap_february():
    assert month_end(2024, 2) == date(2024, 2, 29)
    assert month_end(2023, 12) == date(2023, 12, 31)
    period = Period(2023, 2)
    assert period.start == date(2023, 2, 1)
    assert period.end == date(2023, 2, 28)


def test_resolve_period_defaults_to_today():
    assert resolve_period(None, None, today=date(2024, 5, 17)) == Period(2024, 5)
    assert resolve_period(2023, 11, today=date(2024, 5, 17)) == Period(2023, 11)


@pytest.mark.parametrize(
    "year,month",
    [(2024, None), (None, 3), (2024, 0), (2024, 13), (1969, 5), (3001, 1)],
)
def test_resolve_period_rejects_bad_input(year, month):
    with pytest.raises(ValueError):
        resolve_period(year, month, today=date(2024, 5, 17))
