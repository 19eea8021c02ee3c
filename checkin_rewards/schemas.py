from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Annotated, Any, Literal
from uuid import UUID
from datetime import date, datetime
from enum import Enum

from .models import CheckinMethod, AcceptedMethods, VISIT_CHECKIN

Id128      = Annotated[str, Field(min_length=1, max_length=128)]
Name255    = Annotated[str, Field(max_length=255)]
Latitude   = Annotated[float, Field(ge=-90, le=90)]
Longitude  = Annotated[float, Field(ge=-180, le=180)]

class RejectReason(str, Enum):
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    BUSINESS_LOCATION_UNAVAILABLE = "BUSINESS_LOCATION_UNAVAILABLE"
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
    WRONG_PAYLOAD_TYPE = "WRONG_PAYLOAD_TYPE"
    BUSINESS_MISMATCH = "BUSINESS_MISMATCH"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    ALREADY_CHECKED_IN_TODAY = "ALREADY_CHECKED_IN_TODAY"
    DAILY_LIMIT_REACHED = "DAILY_LIMIT_REACHED"

# rate-limit class; everything else is a configuration or input problem
RATE_LIMIT_REASONS = {RejectReason.ALREADY_CHECKED_IN_TODAY, RejectReason.DAILY_LIMIT_REACHED}

class Stage(str, Enum):
    RECEIVED = "RECEIVED"
    POLICY_RESOLVED = "POLICY_RESOLVED"
    METHOD_VALIDATED = "METHOD_VALIDATED"
    RATE_CHECKED = "RATE_CHECKED"
    ISSUED = "ISSUED"

# --- check-in input
class GpsReading(BaseModel):
    latitude: Latitude
    longitude: Longitude
    accuracy_m: float = Field(default=0.0, ge=0)

class CheckinRequest(BaseModel):
    business_id: Id128
    mission_type: str = Field(default=VISIT_CHECKIN, min_length=1, max_length=64)
    gps: GpsReading | None = None
    qr_payload: str | None = Field(default=None, max_length=4096)  # raw scanner text

    @model_validator(mode="after")
    def _one_method(self):
        if (self.gps is None) == (self.qr_payload is None):
            raise ValueError("provide exactly one of gps or qr_payload")
        return self

    @property
    def method(self) -> CheckinMethod:
        return CheckinMethod.GPS if self.gps is not None else CheckinMethod.QR_SCAN

# --- verification outcome
class AcceptedCheckIn(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    business_id: str
    business_name: str = ""
    mission_type: str = VISIT_CHECKIN
    method: CheckinMethod
    latitude: float | None = None
    longitude: float | None = None
    accuracy_m: float | None = None
    distance_m: float | None = None
    effective_radius_m: float | None = None
    user_points: int
    business_points: int

class Rejection(BaseModel):
    reason: RejectReason
    message: str
    stage: Stage
    context: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_rate_limited(self) -> bool:
        return self.reason in RATE_LIMIT_REASONS

class VerifyResponse(BaseModel):
    accepted: bool
    checkin: AcceptedCheckIn | None = None
    rejection: Rejection | None = None

class CheckinRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: str
    business_id: str
    business_name: str
    method: CheckinMethod
    checked_at: datetime
    day: date
    latitude: float | None = None
    longitude: float | None = None
    accuracy_m: float | None = None
    distance_m: float | None = None
    user_points: int
    business_points: int
    verified: bool

# --- business configuration
class LocationUpsert(BaseModel):
    name: Name255 = ""
    latitude: Latitude | None = None
    longitude: Longitude | None = None

    @model_validator(mode="after")
    def _both_or_neither(self):
        if (self.latitude is None) != (self.longitude is None):
            raise ValueError("latitude and longitude must be set together")
        return self

class LocationRead(BaseModel):
    business_id: str
    name: str
    latitude: float | None
    longitude: float | None

class PolicyUpsert(BaseModel):
    accepted_methods: Literal["GPS_ONLY", "QR_ONLY", "BOTH"] = "BOTH"
    radius_m: float | None = Field(default=None, gt=0, le=10_000)

class PolicyRead(BaseModel):
    business_id: str
    mission_type: str
    accepted_methods: AcceptedMethods
    radius_m: float
    configured: bool  # False when the defaults were applied

# --- QR display
class QRRead(BaseModel):
    business_id: str
    business_name: str
    payload: str

# --- points
class BalanceRead(BaseModel):
    account_id: str
    balance: int
    updated_at: datetime | None = None
