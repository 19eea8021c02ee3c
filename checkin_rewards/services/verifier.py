from __future__ import annotations
import logging
import math
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.geo import haversine_m
from ..core.qr import decode_payload, QRPayloadError
from ..models import CheckinMethod
from ..schemas import AcceptedCheckIn, CheckinRequest, Rejection, RejectReason, Stage
from .policy import resolve_policy, get_location, effective_radius
from .rate_limit import check_limits

logger = logging.getLogger(__name__)
settings = get_settings()

def _reject(reason: RejectReason, message: str, stage: Stage, **context) -> Rejection:
    logger.info(f"Check-in rejected: {reason.value} at {stage.value}")
    return Rejection(reason=reason, message=message, stage=stage, context=context)

async def verify(
    db: AsyncSession,
    *,
    user_id: str,
    request: CheckinRequest,
    now: datetime | None = None,
) -> AcceptedCheckIn | Rejection:
    """
    Decide whether a check-in claim is acceptable. Read-only.

    Stages run in a fixed order and the first failure wins:
    policy lookup, method gate, GPS proximity or QR decode, daily caps.
    The method gate runs before any distance math or payload parsing.
    """
    now = now or datetime.now(timezone.utc)
    method = request.method
    business_id = request.business_id

    policy = await resolve_policy(db, business_id, request.mission_type)

    if not policy.allows(method):
        if method == CheckinMethod.GPS:
            msg = "This business requires QR code scanning to check in. Please scan the QR code displayed at their location."
        else:
            msg = "This business requires GPS verification to check in. Please enable location services."
        return _reject(
            RejectReason.METHOD_NOT_ALLOWED, msg, Stage.POLICY_RESOLVED,
            method=method.value, accepted_methods=policy.accepted_methods.value,
        )

    location = await get_location(db, business_id)
    business_name = location.name if location is not None else ""
    fields: dict = {}

    if method == CheckinMethod.GPS:
        gps = request.gps
        if location is None or location.latitude is None or location.longitude is None:
            return _reject(
                RejectReason.BUSINESS_LOCATION_UNAVAILABLE,
                "This business has not set its location yet.",
                Stage.METHOD_VALIDATED,
                business_id=business_id,
            )
        distance = haversine_m(gps.latitude, gps.longitude, location.latitude, location.longitude)
        radius = effective_radius(policy.radius_m, gps.accuracy_m)
        if not math.isfinite(distance):
            return _reject(
                RejectReason.OUT_OF_RANGE, "Your location could not be verified.", Stage.METHOD_VALIDATED,
                distance_m=None, radius_m=policy.radius_m, effective_radius_m=radius, accuracy_m=gps.accuracy_m,
            )
        if distance > radius:
            return _reject(
                RejectReason.OUT_OF_RANGE,
                f"You must be within {radius:g}m of the business. You are {round(distance)}m away.",
                Stage.METHOD_VALIDATED,
                distance_m=distance, radius_m=policy.radius_m, effective_radius_m=radius, accuracy_m=gps.accuracy_m,
            )
        fields = dict(
            latitude=gps.latitude, longitude=gps.longitude, accuracy_m=gps.accuracy_m,
            distance_m=distance, effective_radius_m=radius,
        )
    else:
        try:
            payload = decode_payload(request.qr_payload)
        except QRPayloadError as e:
            msg = "This is not a check-in code" if e.reason == RejectReason.WRONG_PAYLOAD_TYPE.value else "Invalid QR code"
            return _reject(RejectReason(e.reason), msg, Stage.METHOD_VALIDATED, detail=e.detail)
        if payload.business_id != business_id:
            return _reject(
                RejectReason.BUSINESS_MISMATCH,
                "This QR code belongs to a different business.",
                Stage.METHOD_VALIDATED,
                expected_business_id=business_id, scanned_business_id=payload.business_id,
            )
        business_name = business_name or payload.business_name

    limited = await check_limits(db, user_id=user_id, business_id=business_id, now=now)
    if limited is not None:
        return limited

    return AcceptedCheckIn(
        user_id=user_id,
        business_id=business_id,
        business_name=business_name,
        mission_type=request.mission_type,
        method=method,
        user_points=settings.user_checkin_points,
        business_points=settings.business_checkin_points,
        **fields,
    )
