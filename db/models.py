from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    Text,
    Enum as SAEnum,
    Boolean,
    Float,
    Integer,
    Index,
    Numeric,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy import DateTime as SADateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from db.session import engine, Session


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------- Enums ----------
class CallStatus(str, PyEnum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    quoted = "quoted"
    confirmed_quote = "confirmed_quote"


# A VIN with a call in one of these states already has a dealer conversation going.
ACTIVE_CALL_STATUSES = (CallStatus.pending, CallStatus.completed, CallStatus.quoted)


# ---------- Models ----------
class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (UniqueConstraint("signature", name="uq_payments_signature"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    signature: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 9), nullable=False)  # SOL
    merchant_address: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(SADateTime(timezone=True), default=utcnow)


class Call(Base):
    __tablename__ = "calls"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # vendor identifiers
    call_sid: Mapped[Optional[str]] = mapped_column(Text)
    conversation_id: Mapped[Optional[str]] = mapped_column(Text)

    # listing snapshot at call time
    vin: Mapped[Optional[str]] = mapped_column(Text)
    year: Mapped[int] = mapped_column(Integer)
    make: Mapped[str] = mapped_column(Text)
    model: Mapped[str] = mapped_column(Text)
    zipcode: Mapped[Optional[str]] = mapped_column(Text)
    dealer_name: Mapped[str] = mapped_column(Text)
    msrp: Mapped[Optional[float]] = mapped_column(Float)
    listing_price: Mapped[Optional[float]] = mapped_column(Float)
    stock_number: Mapped[Optional[str]] = mapped_column(Text)
    phone_number: Mapped[str] = mapped_column(Text)
    voice_id: Mapped[Optional[str]] = mapped_column(Text)
    payment_signature: Mapped[Optional[str]] = mapped_column(Text)

    # outcome
    status: Mapped[CallStatus] = mapped_column(
        SAEnum(CallStatus, name="call_status", create_constraint=False),
        default=CallStatus.pending,
    )
    transcript_summary: Mapped[Optional[str]] = mapped_column(Text)
    call_successful: Mapped[Optional[bool]] = mapped_column(Boolean)
    confirmed_price: Mapped[Optional[float]] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(SADateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(SADateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Video(Base):
    __tablename__ = "videos"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    storage_id: Mapped[str] = mapped_column(Text, nullable=False)
    vin: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(SADateTime(timezone=True), default=utcnow)


Index("ix_calls_conversation_id", Call.conversation_id)
Index("ix_calls_vin_created_at", Call.vin, Call.created_at)
Index("ix_calls_make_model", Call.make, Call.model)
Index("ix_videos_vin", Video.vin)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = [
    "engine",
    "Session",
    "Base",
    "Payment",
    "Call",
    "Video",
    "CallStatus",
    "ACTIVE_CALL_STATUSES",
    "utcnow",
    "init_db",
]
