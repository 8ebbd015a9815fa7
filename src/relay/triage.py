"""Symptom triage: ask the model which available specialists fit a complaint."""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from db.repository import HospitalRepository
from llm.base import BaseLLMClient
from prompts.loader import render_prompt
from relay.errors import InvalidModelOutputError
from relay.schemas import SymptomAnalysis

LOGGER = logging.getLogger(__name__)


def _strip_code_fence(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


class SymptomAnalyzer:
    def __init__(self, llm_client: BaseLLMClient, repository: HospitalRepository) -> None:
        self._llm = llm_client
        self._repo = repository

    async def analyze(self, symptoms: str) -> SymptomAnalysis:
        doctors = await self._repo.list_available_doctors()
        doctor_lines = "\n".join(f"- Dr. {doc.name}: {doc.specialty}" for doc in doctors)
        messages = [
            {
                "role": "system",
                "content": render_prompt(
                    "symptom_triage.txt",
                    doctors=doctor_lines or "- (no doctors currently available)",
                ),
            },
            {
                "role": "user",
                "content": (
                    f"Patient symptoms: {symptoms}\n\n"
                    "Analyze these symptoms and recommend the most appropriate doctors "
                    "from the available list."
                ),
            },
        ]
        LOGGER.info("Analyzing symptoms: %s", symptoms)
        reply = await self._llm.chat_completion(messages)

        try:
            payload = json.loads(_strip_code_fence(reply.content))
            analysis = SymptomAnalysis.model_validate(payload)
        except (json.JSONDecodeError, ValidationError) as exc:
            LOGGER.error("Triage returned invalid JSON: %s", reply.content)
            raise InvalidModelOutputError() from exc

        analysis.recommendations.sort(key=lambda rec: rec.match_score, reverse=True)
        return analysis
