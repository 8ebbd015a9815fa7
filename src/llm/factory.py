"""Factory returning configured gateway client implementation."""

from __future__ import annotations

from config.settings import Settings, get_settings
from llm.base import BaseLLMClient
from llm.gateway_client import GatewayClient
from relay.errors import GatewayNotConfiguredError


def build_llm_client(settings: Settings | None = None) -> BaseLLMClient:
    """Instantiate the configured gateway connector.

    Raises GatewayNotConfiguredError when no credential is set, before any
    network activity happens.
    """

    settings = settings or get_settings()
    if not settings.llm_api_key:
        raise GatewayNotConfiguredError()

    if settings.llm_provider == "gateway":
        return GatewayClient(
            endpoint=settings.llm_endpoint,
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            timeout=settings.llm_timeout_seconds,
        )
    if settings.llm_provider == "openai":
        from llm.openai_client import OpenAIClient

        return OpenAIClient(
            api_key=settings.llm_api_key,
            model=settings.llm_model,
            endpoint=settings.llm_endpoint,
            timeout=settings.llm_timeout_seconds,
        )
    raise ValueError(f"Unsupported llm_provider: {settings.llm_provider}")
