

# squat_coach/llm_agent.py   advice collaborator backed by an LLM

import json
import logging
from typing import Dict, Optional

from langchain_groq import ChatGroq
from langchain_core.messages import SystemMessage, HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from squat_coach.models import AdviceRequest, AdviceResponse
from squat_coach.settings import CoachSettings

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "groq": "llama-3.3-70b-versatile",
    "google": "gemini-2.5-flash-lite",
}

SYSTEM_PROMPT = (
    "You are **Flex**, an energetic fitness coach watching the user do {exercise}s.\n\n"
    "Your job: give super short, clear voice encouragement that feels like a "
    "professional trainer talking directly to the user.\n\n"
    "Important style rules:\n"
    "- Sound confident, supportive and high-energy, but not cringe.\n"
    "- Talk directly to the user as \"you\".\n"
    "- Keep the message VERY short: about 5 words, never more than 8.\n"
    "- No emojis, no hashtags, no extra punctuation.\n"
    "- Never mention JSON, fields, data, or that you are an AI.\n"
    "- Celebrate the rep count when it feels natural.\n\n"
    "You receive the exercise and the number of reps completed so far.\n"
    "You MUST respond with a SINGLE JSON object ONLY, no commentary, no markdown.\n\n"
    "JSON format:\n"
    "{\n"
    '  \"exercise\": string,   // exercise name\n'
    '  \"message\": string     // short spoken encouragement\n'
    "}\n"
)


def system_prompt(exercise: str) -> str:
    # str.replace, the JSON example in the prompt is full of braces
    return SYSTEM_PROMPT.replace("{exercise}", exercise)


def _parse_llm_json(raw: str) -> Optional[Dict]:
    """Extract JSON from raw LLM output."""
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:].strip()
    try:
        return json.loads(text)
    except ValueError:
        pass
    try:
        s = text.index("{")
        e = text.rindex("}") + 1
        return json.loads(text[s:e])
    except ValueError:
        return None


def build_chat_model(settings: CoachSettings):
    provider = settings.llm_provider
    model = settings.llm_model or DEFAULT_MODELS.get(provider)
    if provider == "groq":
        return ChatGroq(
            api_key=settings.groq_api_key,
            model=model,
            temperature=0.2,
            max_retries=1,
            timeout=settings.llm_timeout_s,
        )
    if provider == "google":
        return ChatGoogleGenerativeAI(
            api_key=settings.google_api_key,
            model=model,
            temperature=0.2,
            max_retries=1,
            timeout=settings.llm_timeout_s,
        )
    raise ValueError(f"Unknown LLM provider: {provider!r}")


class LLMAdvisor:
    """
    Callable advice collaborator: `advisor(rep_count) -> str`.

    Returns None when the model answers with something that is not usable;
    transport errors and timeouts propagate so the caller can fall back.
    """

    def __init__(self, settings: CoachSettings, llm=None, exercise: str = "squat"):
        self.exercise = exercise
        self._llm = llm if llm is not None else build_chat_model(settings)

    def __call__(self, rep_count: int) -> Optional[str]:
        request = AdviceRequest(rep_count=rep_count, exercise=self.exercise)
        messages = [
            SystemMessage(content=system_prompt(request.exercise)),
            HumanMessage(
                content=(
                    f"Exercise: {request.exercise}\n"
                    f"Reps completed: {request.rep_count}\n"
                    f"Request JSON: {request.model_dump_json()}"
                )
            ),
        ]

        resp = self._llm.invoke(messages)
        raw = resp.content if hasattr(resp, "content") else str(resp)
        parsed = _parse_llm_json(raw)
        if not parsed:
            logger.warning("Could not parse LLM JSON. Raw: %r", raw)
            return None

        try:
            advice = AdviceResponse(**parsed)
        except (TypeError, ValueError) as e:
            logger.warning("LLM JSON did not match schema: %s", e)
            return None
        return advice.message.strip() or None


def make_advisor(settings: CoachSettings, exercise: str = "squat") -> Optional[LLMAdvisor]:
    """Return an advisor when the configured provider has credentials, else None."""
    if not settings.advice_enabled:
        logger.info("AI advice disabled (provider=%s, no API key)", settings.llm_provider)
        return None
    return LLMAdvisor(settings, exercise=exercise)
