"""Progress service: workout streaks, month/week counts and the progress calendar.

Every computation takes the reference instant and timezone explicitly, so the
same history always buckets into the same calendar days regardless of the host
locale. Timestamps without tzinfo are treated as UTC, which is what the store
writes.
"""
from __future__ import annotations

import calendar
import logging
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from exercita.models.workout_history import WorkoutCompletion

logger = logging.getLogger(__name__)


class DayClass(str, Enum):
    COMPLETED_TODAY = "completed-today"
    COMPLETED = "completed-other-day"
    TODAY_INCOMPLETE = "today-incomplete"
    INCOMPLETE = "incomplete"
    OTHER_MONTH = "other-month"
    FUTURE = "future"


@dataclass(frozen=True)
class CompletionRecord:
    id: Any
    completed_at: datetime
    workout_id: Any
    user_id: Any = None

    @classmethod
    def from_raw(cls, raw: Any) -> CompletionRecord | None:
        """Build a record from an ORM row, a mapping or another record.

        Returns ``None`` when ``completed_at`` cannot be read as a timestamp or
        ``workout_id`` is missing.
        """
        if isinstance(raw, CompletionRecord):
            return raw
        if isinstance(raw, Mapping):
            fields = raw
        else:
            fields = {
                key: getattr(raw, key, None)
                for key in ("id", "completed_at", "workout_id", "user_id")
            }

        completed_at = _parse_timestamp(fields.get("completed_at"))
        workout_id = fields.get("workout_id")
        if completed_at is None or workout_id is None:
            return None
        return cls(
            id=fields.get("id"),
            completed_at=completed_at,
            workout_id=workout_id,
            user_id=fields.get("user_id"),
        )


@dataclass(frozen=True)
class ProgressStats:
    completed_dates: frozenset[date]
    current_streak: int
    total_this_month: int
    this_week_count: int
    skipped_records: int = 0


@dataclass(frozen=True)
class CalendarDay:
    day: date
    day_class: DayClass


@dataclass(frozen=True)
class MonthCalendar:
    year: int
    month: int
    # Blank cells before day 1 in a Sunday-first grid.
    leading_blank_days: int
    days: tuple[CalendarDay, ...]


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def _to_local(moment: datetime, tz: tzinfo) -> datetime:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz)


def _reference_local(reference_now: datetime, tz: tzinfo) -> datetime:
    if not isinstance(reference_now, datetime):
        raise TypeError(f"reference_now must be a datetime, got {type(reference_now).__name__}")
    return _to_local(reference_now, tz)


def week_start(reference_now: datetime, tz: tzinfo) -> datetime:
    """Local midnight of the most recent Sunday at or before ``reference_now``."""
    now_local = _reference_local(reference_now, tz)
    days_since_sunday = (now_local.weekday() + 1) % 7
    sunday = now_local.date() - timedelta(days=days_since_sunday)
    return datetime.combine(sunday, time.min, tzinfo=tz)


def normalize_completions(completions: Iterable[Any]) -> tuple[list[CompletionRecord], int]:
    records: list[CompletionRecord] = []
    skipped = 0
    for raw in completions:
        record = CompletionRecord.from_raw(raw)
        if record is None:
            skipped += 1
            continue
        records.append(record)
    return records, skipped


def compute_stats(completions: Iterable[Any], reference_now: datetime, tz: tzinfo) -> ProgressStats:
    now_local = _reference_local(reference_now, tz)
    today = now_local.date()

    records, skipped = normalize_completions(completions)
    if skipped:
        logger.warning("Skipped %s workout completion(s) with malformed completed_at", skipped)

    local_times = [_to_local(record.completed_at, tz) for record in records]
    completed_dates = frozenset(moment.date() for moment in local_times)

    current_streak = 0
    cursor = today
    while cursor in completed_dates:
        current_streak += 1
        cursor -= timedelta(days=1)

    total_this_month = sum(
        1 for moment in local_times if moment.year == today.year and moment.month == today.month
    )

    start_of_week = week_start(reference_now, tz)
    this_week_count = sum(1 for moment in local_times if moment > start_of_week)

    return ProgressStats(
        completed_dates=completed_dates,
        current_streak=current_streak,
        total_this_month=total_this_month,
        this_week_count=this_week_count,
        skipped_records=skipped,
    )


def classify_day(day: date | datetime, stats: ProgressStats, reference_now: datetime, tz: tzinfo) -> DayClass:
    today = _reference_local(reference_now, tz).date()
    if isinstance(day, datetime):
        day = _to_local(day, tz).date()

    if day.year != today.year or day.month != today.month:
        return DayClass.OTHER_MONTH

    has_workout = day in stats.completed_dates
    is_today = day == today
    if has_workout and is_today:
        return DayClass.COMPLETED_TODAY
    if has_workout:
        return DayClass.COMPLETED
    if is_today:
        return DayClass.TODAY_INCOMPLETE
    if day > today:
        return DayClass.FUTURE
    return DayClass.INCOMPLETE


def build_month_calendar(stats: ProgressStats, reference_now: datetime, tz: tzinfo) -> MonthCalendar:
    today = _reference_local(reference_now, tz).date()
    first_day = today.replace(day=1)
    _, days_in_month = calendar.monthrange(today.year, today.month)

    days = tuple(
        CalendarDay(day=current, day_class=classify_day(current, stats, reference_now, tz))
        for current in (first_day + timedelta(days=offset) for offset in range(days_in_month))
    )
    return MonthCalendar(
        year=today.year,
        month=today.month,
        leading_blank_days=(first_day.weekday() + 1) % 7,
        days=days,
    )


async def load_completions(user_id: uuid.UUID, db: AsyncSession) -> list[WorkoutCompletion]:
    """Fetch a user's workout history, newest first."""
    result = await db.execute(
        select(WorkoutCompletion)
        .where(WorkoutCompletion.user_id == user_id)
        .order_by(WorkoutCompletion.completed_at.desc())
    )
    return list(result.scalars().all())


async def get_user_progress(
    user_id: uuid.UUID,
    db: AsyncSession,
    *,
    tz: tzinfo,
    reference_now: datetime | None = None,
) -> tuple[ProgressStats, MonthCalendar]:
    reference_now = reference_now or datetime.now(tz)
    completions = await load_completions(user_id, db)
    stats = compute_stats(completions, reference_now, tz)
    return stats, build_month_calendar(stats, reference_now, tz)
