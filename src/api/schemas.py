"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from relay.schemas import ChatTurn, Role


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatTurn] = Field(min_length=1)
    patient_id: str | None = Field(default=None, alias="patientId")
    user_id: str | None = Field(default=None, alias="userId")
    has_image: bool = Field(default=False, alias="hasImage")


class SymptomAnalysisRequest(BaseModel):
    symptoms: str = ""


class CreateConversationRequest(BaseModel):
    user_id: str
    patient_id: str | None = None
    first_message: str | None = Field(
        default=None, description="First user message; its start becomes the title."
    )


class ConversationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    patient_id: str | None
    title: str | None
    created_at: datetime
    updated_at: datetime


class AddMessageRequest(BaseModel):
    role: Role
    content: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: str
    role: str
    content: str
    created_at: datetime
