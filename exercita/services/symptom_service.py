"""Symptom service: daily pain/stiffness/fatigue check-ins and their period summary.

A patient has at most one check-in per local day; recording again on the same
day overwrites it. Summaries average each level over the period and compare the
latest check-in with the one before it.
"""
from __future__ import annotations

import math
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from enum import Enum

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from exercita.models.symptom import DailySymptom

SYMPTOM_FIELDS: tuple[str, ...] = ("pain_level", "stiffness_level", "fatigue_level")


class Trend(str, Enum):
    IMPROVING = "improving"
    WORSENING = "worsening"
    STABLE = "stable"


@dataclass(frozen=True)
class SymptomSummary:
    entry_count: int
    averages: dict[str, int]
    # None until there are two check-ins to compare.
    trends: dict[str, Trend] | None
    latest: DailySymptom | None = None


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def trend(latest: int, previous: int) -> Trend:
    # Lower is better for every tracked symptom.
    if latest < previous:
        return Trend.IMPROVING
    if latest > previous:
        return Trend.WORSENING
    return Trend.STABLE


def summarize(entries: Sequence[DailySymptom]) -> SymptomSummary:
    """Summarize check-ins ordered newest first."""
    if not entries:
        return SymptomSummary(entry_count=0, averages={field: 0 for field in SYMPTOM_FIELDS}, trends=None)

    averages = {
        field: _round_half_up(sum(getattr(entry, field) for entry in entries) / len(entries))
        for field in SYMPTOM_FIELDS
    }
    trends = None
    if len(entries) >= 2:
        latest, previous = entries[0], entries[1]
        trends = {field: trend(getattr(latest, field), getattr(previous, field)) for field in SYMPTOM_FIELDS}
    return SymptomSummary(entry_count=len(entries), averages=averages, trends=trends, latest=entries[0])


def period_start(reference_now: datetime, tz: tzinfo, period_days: int) -> date:
    """First local day included in a period of ``period_days`` ending today."""
    return reference_now.astimezone(tz).date() - timedelta(days=period_days)


async def load_symptoms(user_id: uuid.UUID, db: AsyncSession, *, since: date | None = None) -> list[DailySymptom]:
    stmt = select(DailySymptom).where(DailySymptom.user_id == user_id).order_by(DailySymptom.day.desc())
    if since is not None:
        stmt = stmt.where(DailySymptom.day >= since)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def record_today(
    user_id: uuid.UUID,
    db: AsyncSession,
    *,
    tz: tzinfo,
    pain_level: int,
    stiffness_level: int,
    fatigue_level: int,
    notes: str | None = None,
    reference_now: datetime | None = None,
) -> tuple[DailySymptom, bool]:
    """Create or overwrite today's check-in; returns the row and whether it was new."""
    today = (reference_now or datetime.now(tz)).astimezone(tz).date()
    result = await db.execute(
        select(DailySymptom).where(DailySymptom.user_id == user_id, DailySymptom.day == today)
    )
    entry = result.scalar_one_or_none()
    created = entry is None
    if created:
        entry = DailySymptom(user_id=user_id, day=today)
        db.add(entry)

    entry.pain_level = pain_level
    entry.stiffness_level = stiffness_level
    entry.fatigue_level = fatigue_level
    entry.notes = notes
    await db.commit()
    return entry, created
