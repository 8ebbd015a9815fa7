from __future__ import annotations

import asyncio
import json

import pytest

from fakes import ScriptedLLM, add_rows, make_doctor
from llm.base import ChatReply
from relay.triage import SymptomAnalyzer

RECOMMENDATIONS = {
    "recommendations": [
        {
            "doctorName": "Michael Chen",
            "specialty": "Neurology",
            "matchScore": 70,
            "reason": "Headaches can be neurological.",
        },
        {
            "doctorName": "Sarah Johnson",
            "specialty": "Cardiology",
            "matchScore": 92,
            "reason": "Chest pain with exertion.",
        },
    ]
}


@pytest.fixture()
def use_analyzer(app, hospital_repo):
    import api.dependencies as deps

    def _install(llm: ScriptedLLM) -> SymptomAnalyzer:
        analyzer = SymptomAnalyzer(llm, hospital_repo)
        app.dependency_overrides[deps.get_symptom_analyzer] = lambda: analyzer
        return analyzer

    return _install


def test_analysis_returns_sorted_recommendations(client, use_analyzer, session_factory):
    asyncio.run(
        add_rows(
            session_factory,
            make_doctor(name="Sarah Johnson"),
            make_doctor(name="Michael Chen", specialty="Neurology"),
        )
    )
    fenced = "```json\n" + json.dumps(RECOMMENDATIONS) + "\n```"
    llm = ScriptedLLM(replies=[ChatReply(content=fenced)])
    use_analyzer(llm)

    response = client.post("/api/symptoms/analyze", json={"symptoms": "  chest pain  "})

    assert response.status_code == 200
    recommendations = response.json()["recommendations"]
    assert [rec["doctorName"] for rec in recommendations] == ["Sarah Johnson", "Michael Chen"]
    assert recommendations[0]["matchScore"] == 92

    messages, tools = llm.completion_calls[0]
    assert tools is None
    assert "- Dr. Michael Chen: Neurology" in messages[0]["content"]
    assert messages[1]["content"].startswith("Patient symptoms: chest pain\n")


def test_empty_symptoms_are_rejected(client, use_analyzer):
    llm = ScriptedLLM()
    use_analyzer(llm)

    response = client.post("/api/symptoms/analyze", json={"symptoms": "   "})

    assert response.status_code == 400
    assert response.json()["detail"] == "Symptoms are required"
    assert llm.completion_calls == []


@pytest.mark.parametrize(
    "content",
    [
        "I think you should see a cardiologist.",
        json.dumps({"recommendations": [{"doctorName": "X", "specialty": "Y", "matchScore": 140, "reason": "z"}]}),
    ],
)
def test_uninterpretable_model_output_is_reported(client, use_analyzer, content):
    use_analyzer(ScriptedLLM(replies=[ChatReply(content=content)]))

    response = client.post("/api/symptoms/analyze", json={"symptoms": "cough"})

    assert response.status_code == 502
    assert response.json() == {"error": "AI response could not be interpreted."}
