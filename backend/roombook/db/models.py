from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from roombook.config import DEFAULT_TIMEZONE
from roombook.db.base import Base


STATUS_PENDING_REVIEW = "pending_review"
STATUS_APPROVED = "approved"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"

BOOKING_STATUSES = (
    STATUS_PENDING_REVIEW,
    STATUS_APPROVED,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
)
# Only these statuses occupy the room.
ACTIVE_BOOKING_STATUSES = frozenset({STATUS_PENDING_REVIEW, STATUS_APPROVED})


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    hourly_rate: Mapped[int] = mapped_column(Integer, nullable=False, server_default="10000")
    additional_hour_rate: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="5000"
    )
    addon_hourly_rate: Mapped[int] = mapped_column(Integer, nullable=False, server_default="2000")
    timezone: Mapped[str] = mapped_column(
        String(64), nullable=False, default=DEFAULT_TIMEZONE, server_default=DEFAULT_TIMEZONE
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )
    sync_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    external_calendar_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_sync_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_bookings_start_before_end"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    room_id: Mapped[str] = mapped_column(
        ForeignKey("rooms.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_email: Mapped[str] = mapped_column(String(255), nullable=False)
    client_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    add_ons_json: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB, nullable=False, server_default=text("'[]'::jsonb"), default=list
    )
    coupon_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discount_amount: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0", default=0)
    total_price: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, index=True, default=STATUS_PENDING_REVIEW
    )
    external_event_ref: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
