from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import Enum

from sqlalchemy import (
    UniqueConstraint, Index, CheckConstraint, String, Integer, Float, Boolean, Date, Enum as SqlEnum
)
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy.types import DateTime

Base = declarative_base()

VISIT_CHECKIN = "VISIT_CHECKIN"

def utcnow():
    return datetime.now(timezone.utc)

class CheckinMethod(str, Enum):
    QR_SCAN = "QR_SCAN"
    GPS = "GPS"

class AcceptedMethods(str, Enum):
    GPS_ONLY = "GPS_ONLY"
    QR_ONLY = "QR_ONLY"
    BOTH = "BOTH"

class CheckinEvent(Base):
    """Append-only. One row per accepted check-in, never updated."""
    __tablename__ = "checkin_events"
    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    business_id: Mapped[str] = mapped_column(String(128), nullable=False)
    business_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    method: Mapped[CheckinMethod] = mapped_column(SqlEnum(CheckinMethod), nullable=False)
    checked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)  # UTC day of checked_at
    daily_slot: Mapped[int] = mapped_column(Integer, nullable=False)

    # GPS only
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    accuracy_m: Mapped[float | None] = mapped_column(Float)
    distance_m: Mapped[float | None] = mapped_column(Float)

    user_points: Mapped[int] = mapped_column(Integer, nullable=False)
    business_points: Mapped[int] = mapped_column(Integer, nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "business_id", "day", name="uq_checkin_user_business_day"),
        UniqueConstraint("user_id", "day", "daily_slot", name="uq_checkin_user_day_slot"),
        CheckConstraint("daily_slot >= 1", name="ck_checkin_slot"),
        Index("ix_checkins_user_day", "user_id", "day"),
        Index("ix_checkins_business_time", "business_id", "checked_at"),
    )

class VerificationPolicy(Base):
    __tablename__ = "verification_policies"
    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    business_id: Mapped[str] = mapped_column(String(128), nullable=False)
    mission_type: Mapped[str] = mapped_column(String(64), default=VISIT_CHECKIN, nullable=False)
    accepted_methods: Mapped[AcceptedMethods] = mapped_column(SqlEnum(AcceptedMethods), default=AcceptedMethods.BOTH, nullable=False)
    radius_m: Mapped[float | None] = mapped_column(Float)  # null = service default
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("business_id", "mission_type", name="uq_policy_business_mission"),
        CheckConstraint("radius_m IS NULL OR radius_m > 0", name="ck_policy_radius"),
    )

class BusinessLocation(Base):
    __tablename__ = "business_locations"
    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    business_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class PointBalance(Base):
    """Shared with other credit/debit writers; only ever changed by relative increments."""
    __tablename__ = "point_balances"
    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    account_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    balance: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

class PointsLedger(Base):
    __tablename__ = "points_ledger"
    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    account_id: Mapped[str] = mapped_column(String(128), nullable=False)
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(64), nullable=False)
    checkin_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("checkin_id", "account_id", "reason", name="uq_ledger_checkin_account_reason"),
        Index("ix_ledger_account", "account_id"),
    )
