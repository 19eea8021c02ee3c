from __future__ import annotations
import logging
import uuid
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from ..core.config import get_settings
from ..models import CheckinEvent
from ..schemas import AcceptedCheckIn, Rejection, Stage
from .points import ensure_account, credit
from .rate_limit import day_window, count_for_day, find_for_day, already_checked_in, daily_limit_reached

logger = logging.getLogger(__name__)
settings = get_settings()

USER_REASON = "checkin_visit"
BUSINESS_REASON = "checkin_host"

async def issue(
    db: AsyncSession,
    accepted: AcceptedCheckIn,
    now: datetime | None = None,
) -> CheckinEvent | Rejection:
    """
    Persist the check-in event and credit both parties in one transaction.

    The event insert is the rate-limit commit point: the unique keys on
    (user, business, day) and (user, day, slot) make concurrent duplicates
    fail at the database, and the credits only run after that insert
    succeeded. A failure anywhere rolls back the event and both credits.
    """
    now = now or datetime.now(timezone.utc)
    day, resets_at = day_window(now)
    cap = settings.max_checkins_per_day

    await ensure_account(db, accepted.user_id)
    await ensure_account(db, accepted.business_id)

    # each retry means another business took the slot we counted, so the count grows
    for _ in range(cap + 1):
        count = await count_for_day(db, accepted.user_id, day)
        if count >= cap:
            if await find_for_day(db, accepted.user_id, accepted.business_id, day) is not None:
                return already_checked_in(accepted.business_id, resets_at, Stage.ISSUED)
            return daily_limit_reached(count, resets_at, Stage.ISSUED)

        event = CheckinEvent(
            id=uuid.uuid4(),
            user_id=accepted.user_id,
            business_id=accepted.business_id,
            business_name=accepted.business_name,
            method=accepted.method,
            checked_at=now,
            day=day,
            daily_slot=count + 1,
            latitude=accepted.latitude,
            longitude=accepted.longitude,
            accuracy_m=accepted.accuracy_m,
            distance_m=accepted.distance_m,
            user_points=accepted.user_points,
            business_points=accepted.business_points,
            verified=True,
        )
        db.add(event)
        try:
            await db.flush()
            await credit(db, account_id=accepted.user_id, amount=accepted.user_points,
                         reason=USER_REASON, checkin_id=event.id)
            await credit(db, account_id=accepted.business_id, amount=accepted.business_points,
                         reason=BUSINESS_REASON, checkin_id=event.id)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            if await find_for_day(db, accepted.user_id, accepted.business_id, day) is not None:
                logger.info(f"Duplicate check-in lost the race: user={accepted.user_id} business={accepted.business_id}")
                return already_checked_in(accepted.business_id, resets_at, Stage.ISSUED)
            continue
        except Exception:
            await db.rollback()
            raise

        logger.info(
            f"Check-in {event.id} issued: user={event.user_id} business={event.business_id} "
            f"method={event.method.value} +{event.user_points}/+{event.business_points}"
        )
        return event

    raise RuntimeError(f"could not allocate a daily check-in slot for user {accepted.user_id}")
