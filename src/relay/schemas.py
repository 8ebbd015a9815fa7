"""Pydantic schemas for relay exchange."""

from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "assistant"]


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageURL(BaseModel):
    url: str


class ImagePart(BaseModel):
    type: Literal["image_url"] = "image_url"
    image_url: ImageURL


ContentPart = Annotated[TextPart | ImagePart, Field(discriminator="type")]


class ChatTurn(BaseModel):
    """One prior message as sent by the caller.

    `content` is plain text, or a list of text/image parts when an image is attached.
    """

    role: Role
    content: str | list[ContentPart]

    def as_gateway_message(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class DoctorSummary(BaseModel):
    id: str
    name: str
    specialty: str
    available_slots: int | None = None
    next_available: str | None = None


class QueueEntry(BaseModel):
    token_number: str
    department: str
    position: int | None = None
    status: str
    estimated_wait_minutes: int | None = None
    doctor_name: str | None = None


class UpcomingAppointment(BaseModel):
    scheduled_date: date
    scheduled_time: str
    status: str
    symptoms: str | None = None
    doctor_name: str | None = None
    doctor_specialty: str | None = None


class ContextSnapshot(BaseModel):
    """Read-only facts injected into the system prompt for a single request."""

    doctors: list[DoctorSummary] = Field(default_factory=list)
    queue: list[QueueEntry] = Field(default_factory=list)
    appointments: list[UpcomingAppointment] = Field(default_factory=list)


class DoctorRecommendation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    doctor_name: str = Field(alias="doctorName")
    specialty: str
    match_score: int = Field(alias="matchScore", ge=0, le=100)
    reason: str


class SymptomAnalysis(BaseModel):
    recommendations: list[DoctorRecommendation] = Field(default_factory=list)
