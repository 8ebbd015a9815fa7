"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from functools import lru_cache

from config.settings import get_settings
from db.repository import ConversationRepository, HospitalRepository
from llm.base import BaseLLMClient
from llm.factory import build_llm_client
from relay.service import RelayService
from relay.triage import SymptomAnalyzer


@lru_cache(maxsize=1)
def _llm_factory() -> BaseLLMClient:
    # Raises GatewayNotConfiguredError without a credential; failures are not cached.
    return build_llm_client(get_settings())


@lru_cache(maxsize=1)
def _relay_factory() -> RelayService:
    settings = get_settings()
    return RelayService(
        _llm_factory(),
        HospitalRepository(),
        tools_enabled=settings.chatbot_tools_enabled,
        native_tool_streaming=settings.chatbot_native_tool_streaming,
    )


def get_relay() -> RelayService:
    return _relay_factory()


def get_symptom_analyzer() -> SymptomAnalyzer:
    return SymptomAnalyzer(_llm_factory(), HospitalRepository())


def get_conversation_repository() -> ConversationRepository:
    return ConversationRepository()
