import pytest

from liveroom.ai.assistant import FALLBACK_QUESTIONS, FALLBACK_TECHNICAL_HELP, InterviewAssistant, _extract_json
from liveroom.ai.providers import ProviderError
from liveroom.system_metrics import get_metrics_snapshot


def test_extract_json_handles_fences_and_prose():
    assert _extract_json('{"score": 7}') == {"score": 7}
    assert _extract_json('Sure!\n```json\n{"score": 8}\n```') == {"score": 8}
    assert _extract_json('Here you go: [{"question": "Q"}] thanks') == [{"question": "Q"}]
    assert _extract_json("no json here") is None
    assert _extract_json("") is None


@pytest.mark.asyncio
async def test_failing_provider_degrades_to_neutral_assistance(make_provider):
    before = get_metrics_snapshot()
    assistant = InterviewAssistant(providers={"gemini": make_provider("gemini", error=ProviderError("boom"))})

    result = await assistant.provide_assistance("Why Python?", "It is readable")

    assert result["score"] == 5
    assert result["confidence"] == 0.5
    assert result["suggestion"] == "Unable to generate suggestion at this time."
    after = get_metrics_snapshot()
    assert after["ai_fallbacks_total"] == before["ai_fallbacks_total"] + 1
    assert after["ai_provider_failures"] == before["ai_provider_failures"] + 1


@pytest.mark.asyncio
async def test_next_provider_used_after_unparseable_output(make_provider):
    gemini = make_provider("gemini", replies=["I cannot answer that"])
    openai = make_provider(
        "openai",
        replies=['```json\n{"suggestion": "Use examples", "keyPoints": ["STAR"], "confidence": 3, "score": 8}\n```'],
    )
    assistant = InterviewAssistant(providers={"gemini": gemini, "openai": openai})

    result = await assistant.provide_assistance("Tell me about a conflict", "We argued")

    assert result["suggestion"] == "Use examples"
    assert result["keyPoints"] == ["STAR"]
    assert result["confidence"] == 1.0
    assert len(gemini.prompts) == 1 and len(openai.prompts) == 1


@pytest.mark.asyncio
async def test_generate_questions_normalizes_and_falls_back(make_provider):
    reply = '[{"question": "Design a cache", "category": "Technical", "difficulty": "impossible"}, {"category": "general"}]'
    assistant = InterviewAssistant(providers={"openai": make_provider("openai", replies=[reply])})
    questions = await assistant.generate_questions("Build caches", count=3)
    assert questions == [
        {"question": "Design a cache", "category": "technical", "difficulty": "medium", "expectedPoints": []}
    ]

    offline = InterviewAssistant(providers={})
    fallback = await offline.generate_questions(None, count=3)
    assert [item["question"] for item in fallback] == [item["question"] for item in FALLBACK_QUESTIONS[:3]]


@pytest.mark.asyncio
async def test_analysis_unknown_verdict_becomes_consider(make_provider):
    reply = '{"assessment": "ok", "strengths": ["clear"], "weaknesses": [], "score": 0, "recommendation": "hire!!"}'
    assistant = InterviewAssistant(providers={"openai": make_provider("openai", replies=[reply])})

    analysis = await assistant.analyze_performance([{"question": "Q1", "candidateResponse": "A1"}])

    assert analysis["recommendation"] == "consider"
    assert analysis["score"] == 1
    assert analysis["strengths"] == ["clear"]


@pytest.mark.asyncio
async def test_offline_analysis_fallback():
    analysis = await InterviewAssistant(providers={}).analyze_performance([])
    assert analysis["score"] == 5
    assert analysis["recommendation"] == "consider"
    assert analysis["weaknesses"] == ["Unable to analyze"]


@pytest.mark.asyncio
async def test_offline_question_fallback_covers_default_count():
    questions = await InterviewAssistant(providers={}).generate_questions("Build APIs", count=10)
    assert len(questions) == 10
    assert len({item["question"] for item in questions}) == 10


@pytest.mark.asyncio
async def test_technical_help_prefers_gemini_then_falls_back(make_provider):
    gemini = make_provider("gemini", replies=['{"answer": "A mutex guards shared state."}'])
    assistant = InterviewAssistant(providers={"gemini": gemini})
    assert await assistant.technical_help("What is a mutex?", "Concurrency round") == "A mutex guards shared state."
    assert "Concurrency round" in gemini.prompts[0]

    failing = InterviewAssistant(providers={"gemini": make_provider("gemini", error=ProviderError("down"))})
    assert await failing.technical_help("What is a mutex?") == FALLBACK_TECHNICAL_HELP
