from dataclasses import dataclass
from datetime import date
from typing import Optional

# Stand-in for an open-ended range end; larger than any real month index.
OPEN_END = 10**9


def month_index(year: int, month: int) -> int:
    return year * 12 + month


def from_month_index(index: int) -> tuple[int, int]:
    year, month = divmod(index, 12)
    if month == 0:
        return year - 1, 12
    return year, month


def add_months(year: int, month: int, count: int) -> tuple[int, int]:
    return from_month_index(month_index(year, month) + count)


def previous_month(year: int, month: int) -> tuple[int, int]:
    return add_months(year, month, -1)


def next_month(year: int, month: int) -> tuple[int, int]:
    return add_months(year, month, 1)


def end_index(end_year: Optional[int], end_month: Optional[int]) -> int:
    if end_year is None or end_month is None:
        return OPEN_END
    return month_index(end_year, end_month)


def ranges_overlap(
    a_start: int, a_end: Optional[int], b_start: int, b_end: Optional[int]
) -> bool:
    """Inclusive month-index ranges; ``None`` ends are open."""
    a_stop = OPEN_END if a_end is None else a_end
    b_stop = OPEN_END if b_end is None else b_end
    return a_start <= b_stop and b_start <= a_stop


def month_start(year: int, month: int) -> date:
    return date(year, month, 1)


def month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


@dataclass(frozen=True)
class Period:
    year: int
    month: int

    @property
    def index(self) -> int:
        return month_index(self.year, self.month)

    @property
    def start(self) -> date:
        return month_start(self.year, self.month)

    @property
    def end(self) -> date:
        return month_end(self.year, self.month)


def resolve_period(
    year: Optional[int],
    month: Optional[int],
    *,
    today: date,
) -> Period:
    if year is None and month is None:
        return Period(today.year, today.month)
    if year is None or month is None:
        raise ValueError("Year and month must be given together")
    if not 1 <= month <= 12:
        raise ValueError("Month must be between 1 and 12")
    if not 1970 <= year <= 3000:
        raise ValueError("Year must be between 1970 and 3000")
    return Period(year, month)


def clamped_day(year: int, month: int, day: int) -> date:
    """``day`` of the month, pulled back to the last day for short months."""
    return date(year, month, min(day, month_end(year, month).day))
