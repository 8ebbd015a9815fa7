"""Chat history endpoints for signed-in callers."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_conversation_repository
from api.schemas import (
    AddMessageRequest,
    ConversationResponse,
    CreateConversationRequest,
    MessageResponse,
)
from db.repository import ConversationNotFoundError, ConversationRepository

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.post("", response_model=ConversationResponse)
async def create_conversation(
    request: CreateConversationRequest,
    repo: ConversationRepository = Depends(get_conversation_repository),
) -> ConversationResponse:
    conversation = await repo.create_conversation(
        request.user_id,
        patient_id=request.patient_id,
        first_message=request.first_message,
    )
    LOGGER.info("Created conversation %s for user %s", conversation.id, request.user_id)
    return ConversationResponse.model_validate(conversation)


@router.get("", response_model=list[ConversationResponse])
async def list_conversations(
    user_id: str,
    repo: ConversationRepository = Depends(get_conversation_repository),
) -> list[ConversationResponse]:
    conversations = await repo.list_conversations(user_id)
    return [ConversationResponse.model_validate(item) for item in conversations]


@router.post("/{conversation_id}/messages", response_model=MessageResponse)
async def add_message(
    conversation_id: str,
    request: AddMessageRequest,
    repo: ConversationRepository = Depends(get_conversation_repository),
) -> MessageResponse:
    try:
        message = await repo.add_message(
            conversation_id, role=request.role, content=request.content
        )
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Conversation not found") from exc
    return MessageResponse.model_validate(message)


@router.get("/{conversation_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    conversation_id: str,
    repo: ConversationRepository = Depends(get_conversation_repository),
) -> list[MessageResponse]:
    try:
        messages = await repo.list_messages(conversation_id)
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Conversation not found") from exc
    return [MessageResponse.model_validate(item) for item in messages]
