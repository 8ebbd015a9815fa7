"""FastAPI routes exposing the chatbot relay."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from api.dependencies import get_relay, get_symptom_analyzer
from api.schemas import ChatRequest, SymptomAnalysisRequest
from relay.schemas import SymptomAnalysis
from relay.service import RelayService
from relay.triage import SymptomAnalyzer

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.post("/chat")
async def chat(
    request: ChatRequest,
    relay: RelayService = Depends(get_relay),
) -> StreamingResponse:
    # RelayError raised before streaming starts is rendered by the app-level handler.
    body = await relay.handle_chat_request(
        request.messages,
        patient_id=request.patient_id,
        user_id=request.user_id,
    )
    return StreamingResponse(
        body,
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.post(
    "/symptoms/analyze",
    response_model=SymptomAnalysis,
    response_model_by_alias=True,
)
async def analyze_symptoms(
    request: SymptomAnalysisRequest,
    analyzer: SymptomAnalyzer = Depends(get_symptom_analyzer),
) -> SymptomAnalysis:
    if not request.symptoms.strip():
        raise HTTPException(status_code=400, detail="Symptoms are required")
    return await analyzer.analyze(request.symptoms.strip())
