"""Per-request hospital context injected into the system prompt."""

from __future__ import annotations

import logging

from db.repository import HospitalRepository
from relay.schemas import ContextSnapshot, DoctorSummary, QueueEntry, UpcomingAppointment

LOGGER = logging.getLogger(__name__)


class ContextBuilder:
    """Queries the store for a fresh ContextSnapshot on every call."""

    def __init__(self, repository: HospitalRepository) -> None:
        self._repo = repository

    async def snapshot(self, patient_id: str | None = None) -> ContextSnapshot:
        doctors = await self._repo.list_available_doctors()
        snapshot = ContextSnapshot(
            doctors=[
                DoctorSummary(
                    id=doc.id,
                    name=doc.name,
                    specialty=doc.specialty,
                    available_slots=doc.available_slots,
                    next_available=doc.next_available,
                )
                for doc in doctors
            ]
        )
        if not patient_id:
            return snapshot

        tokens = await self._repo.list_active_queue_tokens(patient_id)
        snapshot.queue = [
            QueueEntry(
                token_number=token.token_number,
                department=token.department,
                position=token.position,
                status=token.status,
                estimated_wait_minutes=token.estimated_wait_minutes,
                doctor_name=token.doctor.name if token.doctor else None,
            )
            for token in tokens
        ]

        appointments = await self._repo.list_upcoming_appointments(patient_id)
        snapshot.appointments = [
            UpcomingAppointment(
                scheduled_date=apt.scheduled_date,
                scheduled_time=apt.scheduled_time,
                status=apt.status,
                symptoms=apt.symptoms,
                doctor_name=apt.doctor.name if apt.doctor else None,
                doctor_specialty=apt.doctor.specialty if apt.doctor else None,
            )
            for apt in appointments
        ]
        LOGGER.debug(
            "Context for patient %s: %d doctors, %d queue tokens, %d appointments",
            patient_id,
            len(snapshot.doctors),
            len(snapshot.queue),
            len(snapshot.appointments),
        )
        return snapshot


def render_context(snapshot: ContextSnapshot) -> str:
    """Render the snapshot as the plain-text sections the prompt expects."""

    sections: list[str] = []
    if snapshot.doctors:
        lines = ["AVAILABLE DOCTORS:"]
        for doc in snapshot.doctors:
            lines.append(
                f"- Dr. {doc.name} ({doc.specialty}) [id: {doc.id}]: "
                f"{doc.available_slots} slots, next available {doc.next_available}"
            )
        sections.append("\n".join(lines))

    if snapshot.queue:
        lines = ["PATIENT'S CURRENT QUEUE STATUS:"]
        for token in snapshot.queue:
            lines.append(
                f"- Token {token.token_number}: {token.department}, "
                f"Position #{token.position}, Status: {token.status}, "
                f"Wait: ~{token.estimated_wait_minutes} min"
            )
        sections.append("\n".join(lines))

    if snapshot.appointments:
        lines = ["PATIENT'S UPCOMING APPOINTMENTS:"]
        for apt in snapshot.appointments:
            lines.append(
                f"- {apt.scheduled_date.isoformat()} at {apt.scheduled_time} with "
                f"Dr. {apt.doctor_name} ({apt.doctor_specialty}): {apt.status}"
            )
        sections.append("\n".join(lines))

    if not sections:
        return ""
    return "\n\n" + "\n\n".join(sections) + "\n"
