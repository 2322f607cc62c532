# squat_coach/settings.py

import os
import logging
from dataclasses import dataclass
from typing import Optional

import dotenv

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r, expected a number", name, raw)
        return default


@dataclass(frozen=True)
class CoachSettings:
    llm_provider: str = "groq"              # "groq", "google" or "none"
    llm_model: Optional[str] = None
    groq_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    llm_timeout_s: float = 1.5
    tts_rate: int = 165
    update_interval_s: float = 3.0
    log_level: str = "INFO"

    @property
    def advice_enabled(self) -> bool:
        if self.llm_provider == "groq":
            return bool(self.groq_api_key)
        if self.llm_provider == "google":
            return bool(self.google_api_key)
        return False


def load_settings(env_file: Optional[str] = None) -> CoachSettings:
    """Read coach settings from the environment, after loading a .env file."""
    dotenv.load_dotenv(env_file)
    return CoachSettings(
        llm_provider=os.getenv("COACH_LLM_PROVIDER", "groq").strip().lower(),
        llm_model=os.getenv("COACH_LLM_MODEL") or None,
        groq_api_key=os.getenv("GROQ_API_KEY") or None,
        google_api_key=os.getenv("GOOGLE_API_KEY") or None,
        llm_timeout_s=_env_float("COACH_LLM_TIMEOUT", 1.5),
        tts_rate=int(_env_float("COACH_TTS_RATE", 165)),
        update_interval_s=_env_float("COACH_UPDATE_INTERVAL", 3.0),
        log_level=os.getenv("COACH_LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
