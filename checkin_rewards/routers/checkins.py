from __future__ import annotations
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ..deps import get_db, get_claims, allow_actor_for_business
from ..schemas import CheckinRequest, CheckinRead, Rejection, VerifyResponse
from ..models import CheckinEvent
from ..services.verifier import verify
from ..services.issuer import issue
from ..core.redis import allow_request
from ..core.nats import publish_checkin

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/checkin", tags=["checkin"])

def _rejection_error(rej: Rejection) -> HTTPException:
    status_code = 409 if rej.is_rate_limited else 422
    return HTTPException(status_code=status_code, detail=rej.model_dump(mode="json"))

async def _throttle(request: Request, route_key: str):
    ip = request.client.host if request.client else "unknown"
    if not await allow_request(ip, route_key):
        raise HTTPException(status_code=429, detail="Too many requests")

# --- 1) Verify + issue. Safe to retry: a repeat after success gets ALREADY_CHECKED_IN_TODAY.
@router.post("", response_model=CheckinRead, status_code=201)
async def check_in(
    payload: CheckinRequest,
    request: Request,
    claims: dict = Depends(get_claims),
    db: AsyncSession = Depends(get_db),
):
    await _throttle(request, "checkin.create")
    user_id = str(claims["sub"])

    decision = await verify(db, user_id=user_id, request=payload)
    if isinstance(decision, Rejection):
        raise _rejection_error(decision)

    result = await issue(db, decision)
    if isinstance(result, Rejection):
        raise _rejection_error(result)

    try:
        await publish_checkin({
            "checkin_id": str(result.id),
            "user_id": result.user_id,
            "business_id": result.business_id,
            "method": result.method.value,
            "user_points": result.user_points,
            "business_points": result.business_points,
            "checked_at": result.checked_at.isoformat(),
            "idempotency_key": f"{result.user_id}:{result.business_id}:{result.day.isoformat()}",
        })
    except Exception as e:
        # the check-in and credits are already committed
        logger.warning(f"Failed to publish check-in {result.id}: {e}")

    return CheckinRead.model_validate(result)

# --- 2) Dry run for the UI: same checks, no writes
@router.post("/verify", response_model=VerifyResponse)
async def verify_only(
    payload: CheckinRequest,
    request: Request,
    claims: dict = Depends(get_claims),
    db: AsyncSession = Depends(get_db),
):
    await _throttle(request, "checkin.verify")
    decision = await verify(db, user_id=str(claims["sub"]), request=payload)
    if isinstance(decision, Rejection):
        return VerifyResponse(accepted=False, rejection=decision)
    return VerifyResponse(accepted=True, checkin=decision)

# --- 3) Visitor history
@router.get("/users/me", response_model=list[CheckinRead])
async def my_checkins(claims: dict = Depends(get_claims), db: AsyncSession = Depends(get_db)):
    uid = str(claims["sub"])
    rows = (await db.execute(
        select(CheckinEvent).where(CheckinEvent.user_id == uid).order_by(CheckinEvent.checked_at.desc())
    )).scalars().all()
    return [CheckinRead.model_validate(r) for r in rows]

# --- 4) Business view: most recent check-ins
@router.get("/businesses/{business_id}", response_model=list[CheckinRead])
async def business_checkins(
    business_id: str,
    limit: int = Query(50, ge=1, le=500),
    claims: dict = Depends(get_claims),
    db: AsyncSession = Depends(get_db),
):
    if not allow_actor_for_business(claims, business_id):
        raise HTTPException(status_code=403, detail="Business owner or service role required")
    rows = (await db.execute(
        select(CheckinEvent).where(CheckinEvent.business_id == business_id)
        .order_by(CheckinEvent.checked_at.desc()).limit(limit)
    )).scalars().all()
    return [CheckinRead.model_validate(r) for r in rows]
