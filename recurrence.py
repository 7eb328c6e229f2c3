import logging
from datetime import date, datetime
from typing import Iterable, Optional, Protocol, TypeVar
from zoneinfo import ZoneInfo

from config import get_settings
from models import Frequency
from periods import end_index, from_month_index, month_index, next_month


logger = logging.getLogger(__name__)

FREQUENCY_INTERVALS: dict[Frequency, int] = {
    Frequency.monthly: 1,
    Frequency.quarterly: 3,
    Frequency.semi_annually: 6,
    Frequency.annually: 12,
}

# Forward scan bound for next_occurrence, in months.
MAX_LOOKAHEAD_MONTHS = 24


class ScheduleLike(Protocol):
    start_year: int
    start_month: int
    end_year: Optional[int]
    end_month: Optional[int]
    frequency: Frequency


S = TypeVar("S", bound=ScheduleLike)


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def interval_for(frequency: Frequency) -> int:
    return FREQUENCY_INTERVALS[Frequency(frequency)]


def is_active_for_month(entry: ScheduleLike, year: int, month: int) -> bool:
    target = month_index(year, month)
    start = month_index(entry.start_year, entry.start_month)
    end = end_index(entry.end_year, entry.end_month)
    return start <= target <= end


def resolve_active_entry(entries: Iterable[S], year: int, month: int) -> Optional[S]:
    """Pick the entry governing ``year``/``month``.

    The most recently started active entry wins. Entries sharing a start
    month are ordered by insertion: the highest ``id`` wins, and entries not
    yet flushed fall back to their position in ``entries``.
    """
    best: Optional[S] = None
    best_key: Optional[tuple[int, int, int]] = None
    for position, entry in enumerate(entries):
        if not is_active_for_month(entry, year, month):
            continue
        entry_id = getattr(entry, "id", None)
        key = (
            month_index(entry.start_year, entry.start_month),
            entry_id if entry_id is not None else -1,
            position,
        )
        if best_key is None or key > best_key:
            best, best_key = entry, key
    return best


def should_fire_in_month(entry: ScheduleLike, year: int, month: int) -> bool:
    if not is_active_for_month(entry, year, month):
        return False
    interval = interval_for(entry.frequency)
    if interval == 1:
        return True
    offset = month_index(year, month) - month_index(entry.start_year, entry.start_month)
    return offset % interval == 0


def amount_for_month(entries: Iterable[ScheduleLike], year: int, month: int) -> int:
    """Resolved amount in cents, or 0 when nothing applies that month."""
    entry = resolve_active_entry(list(entries), year, month)
    if entry is None or not should_fire_in_month(entry, year, month):
        return 0
    return int(getattr(entry, "amount_cents", 0) or 0)


def next_occurrence(
    today: date, anchor_year: int, anchor_month: int, interval: int
) -> tuple[int, int]:
    anchor = month_index(anchor_year, anchor_month)
    current = month_index(today.year, today.month)
    for step in range(MAX_LOOKAHEAD_MONTHS + 1):
        candidate = current + step
        if (candidate - anchor) % interval == 0:
            return from_month_index(candidate)
    logger.warning(
        f"next_occurrence_fallback: anchor={anchor_year}-{anchor_month:02d} "
        f"interval={interval}"
    )
    return today.year + 1, anchor_month


def next_due_month(entry: ScheduleLike, today: date) -> Optional[tuple[int, int]]:
    start = month_index(entry.start_year, entry.start_month)
    current = month_index(today.year, today.month)
    if end_index(entry.end_year, entry.end_month) < current:
        return None
    if start > current:
        return entry.start_year, entry.start_month
    interval = interval_for(entry.frequency)
    if interval == 1:
        return next_month(today.year, today.month)
    due = next_occurrence(today, entry.start_year, entry.start_month, interval)
    if month_index(*due) > end_index(entry.end_year, entry.end_month):
        return None
    return due


def monthly_equivalent_cents(amount_cents: int, frequency: Frequency) -> int:
    return int(amount_cents / interval_for(frequency))


def annual_amount_cents(amount_cents: int, frequency: Frequency) -> int:
    return amount_cents * (12 // interval_for(frequency))


def latest_entry(entries: Iterable[S]) -> Optional[S]:
    """Most recently started entry regardless of the month being viewed."""
    ordered = sorted(
        entries,
        key=lambda e: (
            month_index(e.start_year, e.start_month),
            getattr(e, "id", None) or 0,
        ),
    )
    return ordered[-1] if ordered else None
