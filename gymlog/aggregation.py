"""Daily aggregation of workout entries."""
from typing import Iterable

from .models import DailySummary, WorkoutEntry


def total_volume(entries: Iterable[WorkoutEntry]):
    """Sum of weight * reps, unrounded."""
    return sum(e.volume for e in entries)


def group_by_date(entries: Iterable[WorkoutEntry]) -> list[DailySummary]:
    """Group entries into per-day summaries, most recent date first.

    Dates are compared as plain strings, which orders correctly for the fixed
    ``YYYY-MM-DD`` format. Members keep their input order within a day. No
    ownership filtering happens here; callers pass one user's entries.
    """
    groups: dict[str, list[WorkoutEntry]] = {}
    for entry in entries:
        groups.setdefault(entry.date, []).append(entry)
    summaries = [
        DailySummary(date=day, total_volume=total_volume(sets), sets=sets)
        for day, sets in groups.items()
    ]
    summaries.sort(key=lambda s: s.date, reverse=True)
    return summaries


def volume_series(summaries: list[DailySummary]) -> tuple[list[str], list]:
    """Chart series (dates, volumes), oldest date first."""
    ordered = sorted(summaries, key=lambda s: s.date)
    return [s.date for s in ordered], [s.total_volume for s in ordered]
