from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, get_claims, allow_actor_for_business
from ..models import AcceptedMethods
from ..schemas import LocationUpsert, LocationRead, PolicyUpsert, PolicyRead, QRRead
from ..services.policy import resolve_policy, get_location, upsert_policy, upsert_location
from ..core.qr import encode_payload, render_png

router = APIRouter(prefix="/businesses/{business_id}", tags=["businesses"])

def _require_actor(claims: dict, business_id: str):
    if not allow_actor_for_business(claims, business_id):
        raise HTTPException(status_code=403, detail="Business owner or service role required")

@router.put("/location", response_model=LocationRead)
async def put_location(business_id: str, payload: LocationUpsert, claims: dict = Depends(get_claims), db: AsyncSession = Depends(get_db)):
    _require_actor(claims, business_id)
    row = await upsert_location(db, business_id=business_id, name=payload.name, latitude=payload.latitude, longitude=payload.longitude)
    return LocationRead(business_id=row.business_id, name=row.name, latitude=row.latitude, longitude=row.longitude)

@router.get("/policies/{mission_type}", response_model=PolicyRead)
async def get_policy(business_id: str, mission_type: str, claims: dict = Depends(get_claims), db: AsyncSession = Depends(get_db)):
    # any signed-in user may read it; the app uses it to pick the scan or GPS button
    p = await resolve_policy(db, business_id, mission_type)
    return PolicyRead(business_id=p.business_id, mission_type=p.mission_type, accepted_methods=p.accepted_methods, radius_m=p.radius_m, configured=p.configured)

@router.put("/policies/{mission_type}", response_model=PolicyRead)
async def put_policy(business_id: str, mission_type: str, payload: PolicyUpsert, claims: dict = Depends(get_claims), db: AsyncSession = Depends(get_db)):
    _require_actor(claims, business_id)
    await upsert_policy(db, business_id=business_id, mission_type=mission_type,
                        accepted_methods=AcceptedMethods(payload.accepted_methods), radius_m=payload.radius_m)
    p = await resolve_policy(db, business_id, mission_type)
    return PolicyRead(business_id=p.business_id, mission_type=p.mission_type, accepted_methods=p.accepted_methods, radius_m=p.radius_m, configured=p.configured)

# --- "show my QR": a fresh payload each call, the timestamp is informational
@router.get("/qr", response_model=QRRead)
async def get_qr(business_id: str, claims: dict = Depends(get_claims), db: AsyncSession = Depends(get_db)):
    _require_actor(claims, business_id)
    loc = await get_location(db, business_id)
    name = loc.name if loc else ""
    return QRRead(business_id=business_id, business_name=name, payload=encode_payload(business_id, name))

@router.get("/qr.png")
async def get_qr_png(business_id: str, claims: dict = Depends(get_claims), db: AsyncSession = Depends(get_db)):
    _require_actor(claims, business_id)
    loc = await get_location(db, business_id)
    png = render_png(encode_payload(business_id, loc.name if loc else ""))
    return Response(content=png, media_type="image/png")
