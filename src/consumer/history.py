"""HTTP client for the relay's conversation history endpoints."""

from __future__ import annotations

import logging
from typing import Any

import httpx

LOGGER = logging.getLogger(__name__)


class ConversationHistoryClient:
    """Thin wrapper around /api/conversations."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        *,
        api_key: str | None = None,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._http.request(
            method,
            f"{self._base_url}/conversations{path}",
            headers=self._headers(),
            **kwargs,
        )
        try:
            response.raise_for_status()
        except httpx.HTTPError as exc:
            LOGGER.error("Conversation history request failed: %s", exc)
            raise
        return response.json()

    async def create_conversation(
        self,
        user_id: str,
        *,
        patient_id: str | None = None,
        first_message: str | None = None,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "",
            json={
                "user_id": user_id,
                "patient_id": patient_id,
                "first_message": first_message,
            },
        )

    async def list_conversations(self, user_id: str) -> list[dict[str, Any]]:
        return await self._request("GET", "", params={"user_id": user_id})

    async def add_message(self, conversation_id: str, role: str, content: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/{conversation_id}/messages",
            json={"role": role, "content": content},
        )

    async def list_messages(self, conversation_id: str) -> list[dict[str, Any]]:
        return await self._request("GET", f"/{conversation_id}/messages")
