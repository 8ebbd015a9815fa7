"""SQLAlchemy models for the hospital tables the chatbot reads and writes."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import Boolean, Date, ForeignKey, Index, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from db.base import Base

ACTIVE_BOOKING_STATUSES = ("scheduled", "confirmed")
UPCOMING_APPOINTMENT_STATUSES = ("scheduled", "confirmed", "pending")
ACTIVE_QUEUE_STATUSES = ("waiting", "in-progress")

_ACTIVE_SLOT_PREDICATE = "status IN ('scheduled', 'confirmed')"


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Doctor(Base):
    __tablename__ = "doctors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255))
    specialty: Mapped[str] = mapped_column(String(128))
    rating: Mapped[float] = mapped_column(Numeric(2, 1, asdecimal=False), default=4.5)
    available_slots: Mapped[int] = mapped_column(default=5)
    next_available: Mapped[str] = mapped_column(String(32), default="10:00 AM")
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str | None] = mapped_column(String(36), index=True)
    first_name: Mapped[str] = mapped_column(String(128))
    last_name: Mapped[str] = mapped_column(String(128))
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)


class Appointment(Base):
    """A booked visit. At most one active booking may hold a doctor's slot."""

    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            "uq_appointments_active_slot",
            "doctor_id",
            "scheduled_date",
            "scheduled_time",
            unique=True,
            sqlite_where=text(_ACTIVE_SLOT_PREDICATE),
            postgresql_where=text(_ACTIVE_SLOT_PREDICATE),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    patient_id: Mapped[str] = mapped_column(
        ForeignKey("patients.id", ondelete="CASCADE"), index=True
    )
    doctor_id: Mapped[str] = mapped_column(
        ForeignKey("doctors.id", ondelete="CASCADE"), index=True
    )
    scheduled_date: Mapped[date] = mapped_column(Date())
    scheduled_time: Mapped[str] = mapped_column(String(16))
    status: Mapped[str] = mapped_column(String(16), default="pending")
    symptoms: Mapped[str | None] = mapped_column(Text())
    notes: Mapped[str | None] = mapped_column(Text())
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=_utcnow, onupdate=_utcnow)

    doctor: Mapped[Doctor] = relationship(lazy="joined")


class QueueToken(Base):
    __tablename__ = "queue_tokens"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    token_number: Mapped[str] = mapped_column(String(32))
    patient_id: Mapped[str] = mapped_column(
        ForeignKey("patients.id", ondelete="CASCADE"), index=True
    )
    doctor_id: Mapped[str | None] = mapped_column(ForeignKey("doctors.id", ondelete="CASCADE"))
    department: Mapped[str] = mapped_column(String(128))
    status: Mapped[str] = mapped_column(String(16), default="waiting")
    estimated_wait_minutes: Mapped[int] = mapped_column(default=30)
    position: Mapped[int | None] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)

    doctor: Mapped[Doctor | None] = relationship(lazy="joined")


class ChatConversation(Base):
    """Conversation session metadata for the chatbot history."""

    __tablename__ = "chat_conversations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    patient_id: Mapped[str | None] = mapped_column(
        ForeignKey("patients.id", ondelete="SET NULL")
    )
    title: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=_utcnow)

    messages: Mapped[list[ChatMessage]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="ChatMessage.id",
    )


class ChatMessage(Base):
    """Individual user or assistant message."""

    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    conversation_id: Mapped[str] = mapped_column(
        ForeignKey("chat_conversations.id", ondelete="CASCADE"), index=True
    )
    role: Mapped[str] = mapped_column(String(16))
    content: Mapped[str] = mapped_column(Text())
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)

    conversation: Mapped[ChatConversation] = relationship(back_populates="messages")
