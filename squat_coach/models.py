# squat_coach/models.py
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class FeedbackSource(str, Enum):
    MILESTONE = "milestone"
    AI_COACH = "ai-coach"
    CANNED = "canned"
    FALLBACK = "fallback"
    DEPTH = "depth"


class RepEvent(BaseModel):
    """One completed Down -> Up cycle."""
    model_config = ConfigDict(frozen=True)

    sequence: int
    timestamp: float


class FeedbackMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    source: FeedbackSource
    rep_sequence: Optional[int] = None  # None for depth cues


class AdviceRequest(BaseModel):
    rep_count: int
    exercise: str = "squat"


class AdviceResponse(BaseModel):
    exercise: str = "squat"
    message: str
