"""Tools the model may call during a relay exchange."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from db.repository import DAILY_TIME_SLOTS, HospitalRepository, SlotTakenError
from llm.base import ToolCall
from relay.errors import DatabaseOperationError

LOGGER = logging.getLogger(__name__)

BOOK_APPOINTMENT = "book_appointment"
GET_AVAILABLE_SLOTS = "get_available_slots"

PATIENT_NOT_REGISTERED = (
    "Patient not registered. Please register as a patient first to book appointments."
)

TOOL_SCHEMAS: list[dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": BOOK_APPOINTMENT,
            "description": (
                "Book an appointment for the current patient with a doctor. "
                "Only call after the patient confirmed doctor, date and time."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "doctor_id": {"type": "string", "description": "The doctor's id."},
                    "scheduled_date": {
                        "type": "string",
                        "description": "Appointment date in YYYY-MM-DD format.",
                    },
                    "scheduled_time": {
                        "type": "string",
                        "description": "Time slot label, e.g. '10:30 AM'.",
                    },
                    "symptoms": {
                        "type": "string",
                        "description": "Short description of the patient's symptoms.",
                    },
                },
                "required": ["doctor_id", "scheduled_date", "scheduled_time"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": GET_AVAILABLE_SLOTS,
            "description": "List the free appointment slots of a doctor on a given date.",
            "parameters": {
                "type": "object",
                "properties": {
                    "doctor_id": {"type": "string", "description": "The doctor's id."},
                    "date": {"type": "string", "description": "Date in YYYY-MM-DD format."},
                },
                "required": ["doctor_id", "date"],
            },
        },
    },
]


@dataclass
class ToolResult:
    call: ToolCall
    payload: dict[str, Any]

    @property
    def success(self) -> bool:
        return bool(self.payload.get("success"))

    def as_message(self) -> dict[str, Any]:
        return {
            "role": "tool",
            "tool_call_id": self.call.id,
            "content": json.dumps(self.payload),
        }


def _failure(error: str) -> dict[str, Any]:
    return {"success": False, "error": error}


def normalize_slot(value: str) -> str | None:
    """Map loose inputs such as '9:00 am' onto a DAILY_TIME_SLOTS label."""

    label = " ".join(value.strip().upper().split())
    if label.endswith(("AM", "PM")) and not label[:-2].endswith(" "):
        label = f"{label[:-2]} {label[-2:]}"
    if ":" in label and len(label.split(":", 1)[0]) == 1:
        label = "0" + label
    return label if label in DAILY_TIME_SLOTS else None


def _parse_date(value: Any) -> date | None:
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        return None


class ToolExecutor:
    """Dispatches model tool calls against the hospital store for one request."""

    def __init__(self, repository: HospitalRepository, patient_id: str | None) -> None:
        self._repo = repository
        self._patient_id = patient_id
        self._handlers = {
            BOOK_APPOINTMENT: self.book_appointment,
            GET_AVAILABLE_SLOTS: self.get_available_slots,
        }

    async def execute_all(self, calls: Iterable[ToolCall]) -> list[ToolResult]:
        # Sequential, in the order the model emitted them.
        results = []
        for call in calls:
            results.append(ToolResult(call=call, payload=await self.execute(call)))
        return results

    async def execute(self, call: ToolCall) -> dict[str, Any]:
        handler = self._handlers.get(call.name)
        if handler is None:
            LOGGER.warning("Model requested unknown tool %s", call.name)
            return _failure(f"Unknown tool: {call.name}")

        try:
            arguments = json.loads(call.arguments or "{}")
        except json.JSONDecodeError:
            LOGGER.warning("Tool %s called with invalid JSON arguments: %s", call.name, call.arguments)
            return _failure("Invalid tool arguments: expected a JSON object.")
        if not isinstance(arguments, dict):
            return _failure("Invalid tool arguments: expected a JSON object.")

        LOGGER.info("Executing tool %s with %s", call.name, arguments)
        try:
            return await handler(arguments)
        except SQLAlchemyError as exc:
            LOGGER.exception("Tool %s failed against the store: %s", call.name, exc)
            raise DatabaseOperationError() from exc

    async def book_appointment(self, arguments: dict[str, Any]) -> dict[str, Any]:
        if not self._patient_id:
            return _failure(PATIENT_NOT_REGISTERED)

        missing = [
            name
            for name in ("doctor_id", "scheduled_date", "scheduled_time")
            if not arguments.get(name)
        ]
        if missing:
            return _failure(f"Missing required argument(s): {', '.join(missing)}")

        if await self._repo.get_patient(self._patient_id) is None:
            return _failure(PATIENT_NOT_REGISTERED)

        doctor = await self._repo.get_doctor(str(arguments["doctor_id"]))
        if doctor is None:
            return _failure("Doctor not found")

        day = _parse_date(arguments["scheduled_date"])
        if day is None:
            return _failure("Invalid date. Use the YYYY-MM-DD format.")
        slot = normalize_slot(str(arguments["scheduled_time"]))
        if slot is None:
            return _failure(
                f"Invalid time slot. Choose one of: {', '.join(DAILY_TIME_SLOTS)}"
            )

        booked = await self._repo.booked_times(doctor.id, day)
        if slot in booked:
            return _failure(f"That time slot is already booked: {slot} on {day.isoformat()}")

        try:
            appointment = await self._repo.create_appointment(
                patient_id=self._patient_id,
                doctor_id=doctor.id,
                scheduled_date=day,
                scheduled_time=slot,
                symptoms=arguments.get("symptoms") or None,
            )
        except SlotTakenError as exc:
            LOGGER.info("Booking lost a race for %s: %s", doctor.id, exc)
            return _failure(f"That time slot is already booked: {slot} on {day.isoformat()}")

        LOGGER.info("Booked appointment %s with doctor %s", appointment.id, doctor.id)
        return {
            "success": True,
            "message": (
                f"Appointment booked successfully with Dr. {doctor.name} "
                f"on {day.isoformat()} at {slot}"
            ),
            "appointment": {
                "id": appointment.id,
                "doctor_name": doctor.name,
                "specialty": doctor.specialty,
                "date": day.isoformat(),
                "time": slot,
                "status": appointment.status,
            },
        }

    async def get_available_slots(self, arguments: dict[str, Any]) -> dict[str, Any]:
        if not arguments.get("doctor_id") or not arguments.get("date"):
            return _failure("Missing required argument(s): doctor_id, date")

        doctor = await self._repo.get_doctor(str(arguments["doctor_id"]))
        if doctor is None:
            return _failure("Doctor not found")
        day = _parse_date(arguments["date"])
        if day is None:
            return _failure("Invalid date. Use the YYYY-MM-DD format.")

        booked = await self._repo.booked_times(doctor.id, day)
        available = [slot for slot in DAILY_TIME_SLOTS if slot not in booked]
        return {
            "success": True,
            "doctor_id": doctor.id,
            "doctor_name": doctor.name,
            "date": day.isoformat(),
            "available_slots": available,
            "total_slots": len(DAILY_TIME_SLOTS),
            "booked_count": len(DAILY_TIME_SLOTS) - len(available),
            "available_count": len(available),
        }
