from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping, Sequence

from liveroom.ai.prompts import ASSISTANCE_PROMPT, PERFORMANCE_PROMPT, QUESTIONS_PROMPT, TECHNICAL_HELP_PROMPT
from liveroom.ai.providers import CompletionProvider, build_default_providers
from liveroom.core.logger import log_event
from liveroom.system_metrics import increment_metric

logger = logging.getLogger("ai.assistant")

ASSISTANCE_ORDER = ("gemini", "openai", "anthropic")
QUESTIONS_ORDER = ("openai", "gemini", "anthropic")
ANALYSIS_ORDER = ("openai", "gemini", "anthropic")
TECHNICAL_HELP_ORDER = ("gemini", "openai", "anthropic")

VERDICTS = ("pass", "fail", "consider", "strong_pass")

FALLBACK_ASSISTANCE = {
    "suggestion": "Unable to generate suggestion at this time.",
    "keyPoints": [],
    "confidence": 0.5,
    "improvements": ["Consider providing more specific examples"],
    "score": 5,
}

FALLBACK_QUESTIONS = [
    {
        "question": "Tell me about yourself and your experience.",
        "category": "general",
        "difficulty": "easy",
        "expectedPoints": ["Background", "Relevant experience", "Career goals"],
    },
    {
        "question": "Describe a challenging project you worked on and how you handled it.",
        "category": "behavioral",
        "difficulty": "medium",
        "expectedPoints": ["Problem description", "Actions taken", "Outcome"],
    },
    {
        "question": "How do you keep your technical skills up to date?",
        "category": "technical",
        "difficulty": "easy",
        "expectedPoints": ["Learning habits", "Recent examples"],
    },
    {
        "question": "Walk me through how you would design a system for this role's core problem.",
        "category": "technical",
        "difficulty": "hard",
        "expectedPoints": ["Requirements", "Trade-offs", "Scaling"],
    },
    {
        "question": "Tell me about a time you disagreed with a teammate.",
        "category": "behavioral",
        "difficulty": "medium",
        "expectedPoints": ["Situation", "Communication", "Resolution"],
    },
    {
        "question": "How do you approach debugging a problem you have never seen before?",
        "category": "technical",
        "difficulty": "medium",
        "expectedPoints": ["Reproduction", "Narrowing scope", "Verification"],
    },
    {
        "question": "Describe a time you had to learn something new quickly.",
        "category": "behavioral",
        "difficulty": "easy",
        "expectedPoints": ["Context", "Learning approach", "Result"],
    },
    {
        "question": "What trade-offs do you consider when choosing between two technical approaches?",
        "category": "technical",
        "difficulty": "medium",
        "expectedPoints": ["Criteria", "Examples", "Decision process"],
    },
    {
        "question": "Tell me about a mistake you made and what you learned from it.",
        "category": "behavioral",
        "difficulty": "medium",
        "expectedPoints": ["Ownership", "Impact", "Lessons learned"],
    },
    {
        "question": "Why are you interested in this role?",
        "category": "general",
        "difficulty": "easy",
        "expectedPoints": ["Motivation", "Fit with the role", "Goals"],
    },
]

FALLBACK_TECHNICAL_HELP = "Sorry, I could not process your request at the moment. Please try again."

FALLBACK_ANALYSIS = {
    "assessment": "Unable to complete automated analysis.",
    "strengths": [],
    "weaknesses": ["Unable to analyze"],
    "score": 5,
    "recommendation": "consider",
    "detailedFeedback": "Analysis unavailable",
}


def _extract_json(text: str) -> Any:
    text = (text or "").strip()
    if not text:
        return None

    try:
        return json.loads(text)
    except ValueError:
        pass

    fenced = re.search(r"```(?:json)?\s*([\[{][\s\S]*?[\]}])\s*```", text, re.IGNORECASE)
    if fenced:
        try:
            return json.loads(fenced.group(1))
        except ValueError:
            pass

    # try whichever container opens first in the text
    spans = sorted((text.find(opener), closer) for opener, closer in (("{", "}"), ("[", "]")) if opener in text)
    for start, closer in spans:
        end = text.rfind(closer)
        if end > start:
            try:
                return json.loads(text[start:end + 1])
            except ValueError:
                continue
    return None


def _clamp(value, low: float, high: float, default: float) -> float:
    try:
        return max(low, min(high, float(value)))
    except (TypeError, ValueError):
        return default


def _string_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if str(item or "").strip()]


def _normalize_assistance(data: dict) -> dict:
    return {
        "suggestion": str(data.get("suggestion") or FALLBACK_ASSISTANCE["suggestion"]),
        "keyPoints": _string_list(data.get("keyPoints")),
        "confidence": _clamp(data.get("confidence"), 0.0, 1.0, 0.5),
        "improvements": _string_list(data.get("improvements")),
        "score": _clamp(data.get("score"), 0, 10, 5),
    }


def _normalize_questions(data: list, count: int) -> list[dict]:
    questions = []
    for item in data:
        if not isinstance(item, dict) or not str(item.get("question") or "").strip():
            continue
        category = str(item.get("category") or "general").lower()
        difficulty = str(item.get("difficulty") or "medium").lower()
        questions.append(
            {
                "question": str(item["question"]).strip(),
                "category": category if category in {"technical", "behavioral", "general"} else "general",
                "difficulty": difficulty if difficulty in {"easy", "medium", "hard"} else "medium",
                "expectedPoints": _string_list(item.get("expectedPoints")),
            }
        )
    return questions[:count]


def _normalize_analysis(data: dict) -> dict:
    recommendation = str(data.get("recommendation") or "").strip().lower()
    return {
        "assessment": str(data.get("assessment") or FALLBACK_ANALYSIS["assessment"]),
        "strengths": _string_list(data.get("strengths")),
        "weaknesses": _string_list(data.get("weaknesses")),
        "score": _clamp(data.get("score"), 1, 10, 5),
        "recommendation": recommendation if recommendation in VERDICTS else "consider",
        "detailedFeedback": str(data.get("detailedFeedback") or FALLBACK_ANALYSIS["detailedFeedback"]),
    }


class InterviewAssistant:
    """AI helpers for live interviews.

    Each capability walks its provider order and falls back to a static payload,
    so callers always receive a well-formed result.
    """

    def __init__(self, providers: Mapping[str, CompletionProvider] | None = None):
        self.providers = dict(build_default_providers() if providers is None else providers)

    async def _first_parsed(self, capability: str, order: Sequence[str], prompt: str, accept) -> Any:
        for name in order:
            provider = self.providers.get(name)
            if provider is None:
                continue
            try:
                raw = await provider.complete(prompt)
            except Exception as exc:
                increment_metric("ai_provider_failures")
                logger.warning("AI provider failed | capability=%s provider=%s err=%s", capability, name, exc)
                continue

            parsed = _extract_json(raw)
            if accept(parsed):
                log_event("ai", "provider_success", "", capability=capability, provider=name)
                return parsed
            increment_metric("ai_provider_failures")
            logger.warning("AI provider returned unparseable output | capability=%s provider=%s", capability, name)

        increment_metric("ai_fallbacks_total")
        log_event("ai", "fallback_used", "", capability=capability)
        return None

    async def provide_assistance(self, question: str, candidate_answer: str, job_description: str | None = None) -> dict:
        prompt = ASSISTANCE_PROMPT.format(
            question=question,
            candidate_answer=candidate_answer or "",
            job_description=job_description or "Not provided",
        )
        parsed = await self._first_parsed("assistance", ASSISTANCE_ORDER, prompt, lambda value: isinstance(value, dict))
        if parsed is None:
            return dict(FALLBACK_ASSISTANCE, keyPoints=[], improvements=list(FALLBACK_ASSISTANCE["improvements"]))
        return _normalize_assistance(parsed)

    async def generate_questions(
        self,
        job_description: str | None,
        interview_type: str = "mixed",
        resume: str | None = None,
        count: int = 5,
    ) -> list[dict]:
        count = max(1, min(20, int(count)))
        prompt = QUESTIONS_PROMPT.format(
            count=count,
            interview_type=interview_type,
            job_description=job_description or "Not provided",
            resume=resume or "Not provided",
        )
        parsed = await self._first_parsed(
            "questions",
            QUESTIONS_ORDER,
            prompt,
            lambda value: isinstance(value, list) and bool(_normalize_questions(value, count)),
        )
        if parsed is None:
            # offline results are capped at len(FALLBACK_QUESTIONS)
            return [dict(item) for item in FALLBACK_QUESTIONS[:count]]
        return _normalize_questions(parsed, count)

    async def technical_help(self, question: str, context: str | None = None) -> str:
        """Free-form answer to a technical question raised during an interview."""
        prompt = TECHNICAL_HELP_PROMPT.format(question=question, context=context or "Not provided")
        parsed = await self._first_parsed(
            "technical_help",
            TECHNICAL_HELP_ORDER,
            prompt,
            lambda value: isinstance(value, dict) and bool(str(value.get("answer") or "").strip()),
        )
        if parsed is None:
            return FALLBACK_TECHNICAL_HELP
        return str(parsed["answer"]).strip()

    async def analyze_performance(self, questions: Sequence[Mapping[str, Any]], job_description: str | None = None) -> dict:
        transcript = "\n\n".join(
            f"Q{index}: {item.get('question', '')}\nA{index}: {item.get('candidateResponse') or 'No response'}"
            for index, item in enumerate(questions, start=1)
        )
        prompt = PERFORMANCE_PROMPT.format(
            transcript=transcript or "No questions were asked.",
            job_description=job_description or "Not provided",
        )
        parsed = await self._first_parsed("analysis", ANALYSIS_ORDER, prompt, lambda value: isinstance(value, dict))
        if parsed is None:
            return dict(FALLBACK_ANALYSIS, strengths=[], weaknesses=list(FALLBACK_ANALYSIS["weaknesses"]))
        return _normalize_analysis(parsed)
