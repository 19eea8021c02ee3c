from __future__ import annotations
from datetime import date, datetime, time, timedelta, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from ..core.config import get_settings
from ..models import CheckinEvent
from ..schemas import Rejection, RejectReason, Stage

settings = get_settings()

def day_window(now: datetime) -> tuple[date, datetime]:
    """UTC calendar day of `now` and the instant the daily caps reset."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    day = now.astimezone(timezone.utc).date()
    resets_at = datetime.combine(day + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return day, resets_at

async def count_for_day(db: AsyncSession, user_id: str, day: date) -> int:
    return (await db.execute(
        select(func.count(CheckinEvent.id)).where(CheckinEvent.user_id == user_id, CheckinEvent.day == day)
    )).scalar_one()

async def find_for_day(db: AsyncSession, user_id: str, business_id: str, day: date) -> CheckinEvent | None:
    return (await db.execute(
        select(CheckinEvent).where(
            CheckinEvent.user_id == user_id,
            CheckinEvent.business_id == business_id,
            CheckinEvent.day == day,
        )
    )).scalar_one_or_none()

def already_checked_in(business_id: str, resets_at: datetime, stage: Stage) -> Rejection:
    return Rejection(
        reason=RejectReason.ALREADY_CHECKED_IN_TODAY,
        message="You already checked in to this business today!",
        stage=stage,
        context={"limit": "per_business", "business_id": business_id, "max": 1, "resets_at": resets_at.isoformat()},
    )

def daily_limit_reached(count: int, resets_at: datetime, stage: Stage) -> Rejection:
    cap = settings.max_checkins_per_day
    return Rejection(
        reason=RejectReason.DAILY_LIMIT_REACHED,
        message=f"You've reached the daily check-in limit of {cap}. Try again tomorrow!",
        stage=stage,
        context={"limit": "global", "count": count, "max": cap, "resets_at": resets_at.isoformat()},
    )

async def check_limits(db: AsyncSession, *, user_id: str, business_id: str, now: datetime) -> Rejection | None:
    """
    Read-only pre-check used by the verifier to fail fast with a useful message.
    It can race with concurrent requests; the issuer's constrained insert is
    what actually enforces both caps.
    """
    day, resets_at = day_window(now)
    if await find_for_day(db, user_id, business_id, day) is not None:
        return already_checked_in(business_id, resets_at, Stage.RATE_CHECKED)
    count = await count_for_day(db, user_id, day)
    if count >= settings.max_checkins_per_day:
        return daily_limit_reached(count, resets_at, Stage.RATE_CHECKED)
    return None
