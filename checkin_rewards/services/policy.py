from __future__ import annotations
from dataclasses import dataclass
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from ..core.config import get_settings
from ..models import VerificationPolicy, BusinessLocation, AcceptedMethods, CheckinMethod, VISIT_CHECKIN

settings = get_settings()

_ALLOWED = {
    AcceptedMethods.GPS_ONLY: {CheckinMethod.GPS},
    AcceptedMethods.QR_ONLY: {CheckinMethod.QR_SCAN},
    AcceptedMethods.BOTH: {CheckinMethod.GPS, CheckinMethod.QR_SCAN},
}

@dataclass(frozen=True)
class ResolvedPolicy:
    business_id: str
    mission_type: str
    accepted_methods: AcceptedMethods
    radius_m: float
    configured: bool

    def allows(self, method: CheckinMethod) -> bool:
        return method in _ALLOWED[self.accepted_methods]

def effective_radius(radius_m: float, accuracy_m: float | None) -> float:
    """Halve the radius for low-confidence fixes (accuracy strictly above the threshold)."""
    if accuracy_m is not None and accuracy_m > settings.low_accuracy_threshold_m:
        return radius_m / 2
    return radius_m

async def resolve_policy(db: AsyncSession, business_id: str, mission_type: str = VISIT_CHECKIN) -> ResolvedPolicy:
    row = (await db.execute(
        select(VerificationPolicy).where(
            VerificationPolicy.business_id == business_id,
            VerificationPolicy.mission_type == mission_type,
        )
    )).scalar_one_or_none()
    if row is None:
        return ResolvedPolicy(
            business_id=business_id, mission_type=mission_type,
            accepted_methods=AcceptedMethods.BOTH, radius_m=settings.default_radius_m, configured=False,
        )
    return ResolvedPolicy(
        business_id=business_id,
        mission_type=mission_type,
        accepted_methods=row.accepted_methods,
        radius_m=row.radius_m or settings.default_radius_m,
        configured=True,
    )

async def get_location(db: AsyncSession, business_id: str) -> BusinessLocation | None:
    return (await db.execute(
        select(BusinessLocation).where(BusinessLocation.business_id == business_id)
    )).scalar_one_or_none()

# --- writes below are the business-configuration surface, not used by the verifier

async def upsert_policy(
    db: AsyncSession, *, business_id: str, mission_type: str, accepted_methods: AcceptedMethods, radius_m: float | None
) -> VerificationPolicy:
    row = (await db.execute(
        select(VerificationPolicy).where(
            VerificationPolicy.business_id == business_id,
            VerificationPolicy.mission_type == mission_type,
        )
    )).scalar_one_or_none()
    if row is None:
        row = VerificationPolicy(business_id=business_id, mission_type=mission_type)
        db.add(row)
    row.accepted_methods = accepted_methods
    row.radius_m = radius_m
    await db.commit(); await db.refresh(row)
    return row

async def upsert_location(
    db: AsyncSession, *, business_id: str, name: str, latitude: float | None, longitude: float | None
) -> BusinessLocation:
    row = await get_location(db, business_id)
    if row is None:
        row = BusinessLocation(business_id=business_id)
        db.add(row)
    row.name = name
    row.latitude = latitude
    row.longitude = longitude
    await db.commit(); await db.refresh(row)
    return row
