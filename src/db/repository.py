"""Repository utilities for hospital context lookups and chat history."""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import desc, select
from sqlalchemy.exc import IntegrityError, NoResultFound
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.base import AsyncSessionFactory
from db.models import (
    ACTIVE_BOOKING_STATUSES,
    ACTIVE_QUEUE_STATUSES,
    UPCOMING_APPOINTMENT_STATUSES,
    Appointment,
    ChatConversation,
    ChatMessage,
    Doctor,
    Patient,
    QueueToken,
)

DAILY_TIME_SLOTS: tuple[str, ...] = (
    "09:00 AM",
    "09:30 AM",
    "10:00 AM",
    "10:30 AM",
    "11:00 AM",
    "11:30 AM",
    "12:00 PM",
    "02:00 PM",
    "02:30 PM",
    "03:00 PM",
    "03:30 PM",
    "04:00 PM",
    "04:30 PM",
    "05:00 PM",
)

TITLE_MAX_LENGTH = 50


class SlotTakenError(Exception):
    """Raised when an active appointment already holds the requested slot."""


class ConversationNotFoundError(LookupError):
    pass


def conversation_title(first_message: str | None) -> str | None:
    if not first_message:
        return None
    text = first_message.strip()
    if len(text) <= TITLE_MAX_LENGTH:
        return text
    return text[:TITLE_MAX_LENGTH] + "..."


def _slot_order(label: str) -> int:
    try:
        return DAILY_TIME_SLOTS.index(label)
    except ValueError:
        return len(DAILY_TIME_SLOTS)


class HospitalRepository:
    """Async read access to doctors, queue and appointments plus booking inserts."""

    def __init__(self, session_factory: async_sessionmaker | None = None) -> None:
        self._session_factory = session_factory or AsyncSessionFactory

    async def list_available_doctors(self) -> list[Doctor]:
        async with self._session_factory() as session:
            query = select(Doctor).where(Doctor.is_available.is_(True)).order_by(Doctor.name)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_doctor(self, doctor_id: str) -> Doctor | None:
        async with self._session_factory() as session:
            return await session.get(Doctor, doctor_id)

    async def get_patient(self, patient_id: str) -> Patient | None:
        async with self._session_factory() as session:
            return await session.get(Patient, patient_id)

    async def list_active_queue_tokens(self, patient_id: str) -> list[QueueToken]:
        async with self._session_factory() as session:
            query = (
                select(QueueToken)
                .where(QueueToken.patient_id == patient_id)
                .where(QueueToken.status.in_(ACTIVE_QUEUE_STATUSES))
                .order_by(desc(QueueToken.created_at))
            )
            result = await session.execute(query)
            return list(result.scalars().all())

    async def list_upcoming_appointments(self, patient_id: str) -> list[Appointment]:
        async with self._session_factory() as session:
            query = (
                select(Appointment)
                .where(Appointment.patient_id == patient_id)
                .where(Appointment.status.in_(UPCOMING_APPOINTMENT_STATUSES))
                .order_by(Appointment.scheduled_date)
            )
            result = await session.execute(query)
            appointments = list(result.scalars().all())
        return sorted(
            appointments,
            key=lambda apt: (apt.scheduled_date, _slot_order(apt.scheduled_time)),
        )

    async def booked_times(self, doctor_id: str, day: date) -> set[str]:
        async with self._session_factory() as session:
            query = (
                select(Appointment.scheduled_time)
                .where(Appointment.doctor_id == doctor_id)
                .where(Appointment.scheduled_date == day)
                .where(Appointment.status.in_(ACTIVE_BOOKING_STATUSES))
            )
            result = await session.execute(query)
            return set(result.scalars().all())

    async def create_appointment(
        self,
        *,
        patient_id: str,
        doctor_id: str,
        scheduled_date: date,
        scheduled_time: str,
        symptoms: str | None = None,
        status: str = "scheduled",
    ) -> Appointment:
        async with self._session_factory() as session:
            appointment = Appointment(
                patient_id=patient_id,
                doctor_id=doctor_id,
                scheduled_date=scheduled_date,
                scheduled_time=scheduled_time,
                symptoms=symptoms,
                status=status,
            )
            session.add(appointment)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                # Only a competing active booking is a lost race; other violations propagate.
                if scheduled_time not in await self.booked_times(doctor_id, scheduled_date):
                    raise
                raise SlotTakenError(
                    f"{scheduled_time} on {scheduled_date.isoformat()} is already booked"
                ) from exc
            await session.refresh(appointment)
            return appointment


class ConversationRepository:
    """Async repository encapsulating chat history storage."""

    def __init__(self, session_factory: async_sessionmaker | None = None) -> None:
        self._session_factory = session_factory or AsyncSessionFactory

    async def create_conversation(
        self,
        user_id: str,
        *,
        patient_id: str | None = None,
        first_message: str | None = None,
    ) -> ChatConversation:
        async with self._session_factory() as session:
            conversation = ChatConversation(
                user_id=user_id,
                patient_id=patient_id,
                title=conversation_title(first_message),
            )
            session.add(conversation)
            await session.commit()
            await session.refresh(conversation)
            return conversation

    async def _get_conversation(
        self, session: AsyncSession, conversation_id: str
    ) -> ChatConversation:
        query = select(ChatConversation).where(ChatConversation.id == conversation_id)
        result = await session.execute(query)
        try:
            return result.scalar_one()
        except NoResultFound as exc:
            raise ConversationNotFoundError(conversation_id) from exc

    async def get_conversation(self, conversation_id: str) -> ChatConversation:
        async with self._session_factory() as session:
            return await self._get_conversation(session, conversation_id)

    async def list_conversations(self, user_id: str) -> list[ChatConversation]:
        async with self._session_factory() as session:
            query = (
                select(ChatConversation)
                .where(ChatConversation.user_id == user_id)
                .order_by(desc(ChatConversation.updated_at), desc(ChatConversation.created_at))
            )
            result = await session.execute(query)
            return list(result.scalars().all())

    async def add_message(self, conversation_id: str, *, role: str, content: str) -> ChatMessage:
        async with self._session_factory() as session:
            conversation = await self._get_conversation(session, conversation_id)
            message = ChatMessage(conversation_id=conversation.id, role=role, content=content)
            conversation.updated_at = datetime.now(timezone.utc)
            session.add(message)
            await session.commit()
            await session.refresh(message)
            return message

    async def list_messages(self, conversation_id: str) -> list[ChatMessage]:
        async with self._session_factory() as session:
            conversation = await self._get_conversation(session, conversation_id)
            query = (
                select(ChatMessage)
                .where(ChatMessage.conversation_id == conversation.id)
                .order_by(ChatMessage.id)
            )
            result = await session.execute(query)
            return list(result.scalars().all())
