from __future__ import annotations

import asyncio
from datetime import date

from fakes import add_rows, make_appointment, make_doctor, make_patient, make_queue_token
from relay.context import ContextBuilder, render_context
from relay.schemas import ContextSnapshot, DoctorSummary


def test_render_context_is_empty_without_data():
    assert render_context(ContextSnapshot()) == ""


def test_render_context_lists_doctors_with_ids():
    snapshot = ContextSnapshot(
        doctors=[
            DoctorSummary(
                id="d-1",
                name="Sarah Johnson",
                specialty="Cardiology",
                available_slots=4,
                next_available="11:30 AM",
            )
        ]
    )

    assert render_context(snapshot) == (
        "\n\nAVAILABLE DOCTORS:\n"
        "- Dr. Sarah Johnson (Cardiology) [id: d-1]: 4 slots, next available 11:30 AM\n"
    )


def test_snapshot_without_patient_only_reads_available_doctors(hospital_repo, session_factory):
    asyncio.run(
        add_rows(
            session_factory,
            make_doctor(name="Sarah Johnson"),
            make_doctor(name="Michael Chen", specialty="Neurology"),
            make_doctor(name="Off Duty", is_available=False),
        )
    )

    snapshot = asyncio.run(ContextBuilder(hospital_repo).snapshot(None))

    assert [doc.name for doc in snapshot.doctors] == ["Michael Chen", "Sarah Johnson"]
    assert snapshot.queue == []
    assert snapshot.appointments == []


def test_snapshot_filters_patient_queue_and_appointments(hospital_repo, session_factory):
    doctor = make_doctor()
    patient = make_patient()
    other = make_patient(first_name="Sam")
    asyncio.run(
        add_rows(
            session_factory,
            doctor,
            patient,
            other,
            make_queue_token(patient, token_number="A-1", status="in-progress"),
            make_queue_token(patient, token_number="A-0", status="completed"),
            make_queue_token(other, token_number="B-7"),
            make_appointment(patient, doctor, scheduled_date=date(2025, 2, 1), scheduled_time="09:00 AM"),
            make_appointment(patient, doctor, scheduled_date=date(2025, 1, 20), scheduled_time="02:00 PM"),
            make_appointment(patient, doctor, scheduled_date=date(2025, 1, 20), scheduled_time="11:00 AM", status="pending"),
            make_appointment(patient, doctor, scheduled_date=date(2025, 1, 18), status="cancelled"),
        )
    )

    snapshot = asyncio.run(ContextBuilder(hospital_repo).snapshot(patient.id))

    assert [token.token_number for token in snapshot.queue] == ["A-1"]
    assert [(apt.scheduled_date, apt.scheduled_time) for apt in snapshot.appointments] == [
        (date(2025, 1, 20), "11:00 AM"),
        (date(2025, 1, 20), "02:00 PM"),
        (date(2025, 2, 1), "09:00 AM"),
    ]
    assert snapshot.appointments[0].doctor_name == "Sarah Johnson"

    rendered = render_context(snapshot)
    assert rendered.index("AVAILABLE DOCTORS:") < rendered.index("PATIENT'S CURRENT QUEUE STATUS:")
    assert rendered.index("PATIENT'S CURRENT QUEUE STATUS:") < rendered.index(
        "PATIENT'S UPCOMING APPOINTMENTS:"
    )
    assert "- Token A-1: Cardiology, Position #3, Status: in-progress, Wait: ~25 min" in rendered
