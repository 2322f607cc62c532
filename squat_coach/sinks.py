# squat_coach/sinks.py

import logging
import threading
from threading import Thread
from typing import List, Protocol, runtime_checkable

import pyttsx3

from squat_coach.models import FeedbackMessage

logger = logging.getLogger(__name__)


@runtime_checkable
class CoachingSink(Protocol):
    """Anything that can take a FeedbackMessage: speech, a voice assistant, a UI label."""

    def accept(self, message: FeedbackMessage) -> None:
        ...


@runtime_checkable
class RealtimeCoach(Protocol):
    """
    A live voice assistant that is fed state updates instead of canned cues.

    `is_active` is True while the call is up. `push_update` may raise; the
    session then treats the coach as obstructed.
    """

    @property
    def is_active(self) -> bool:
        ...

    def push_update(self, text: str) -> None:
        ...


# ---------- TTS helper (per-message thread) ----------

def speak_message(text: str, rate: int = 165):
    """
    Create a fresh pyttsx3 engine for THIS message only.
    Runs in its own thread so the frame loop never blocks.
    """
    if not text:
        return
    try:
        engine = pyttsx3.init()
        engine.setProperty("rate", rate)
        engine.say(text)
        engine.runAndWait()
        engine.stop()
    except Exception as e:
        logger.warning("TTS error: %s", e)


class SpeechSink:
    def __init__(self, rate: int = 165):
        self.rate = rate

    def accept(self, message: FeedbackMessage) -> None:
        Thread(
            target=speak_message,
            args=(message.text, self.rate),
            daemon=True,
        ).start()


class LoggingSink:
    def accept(self, message: FeedbackMessage) -> None:
        logger.info("[%s] %s", message.source.value, message.text)


class RecordingSink:
    """Keeps every message it receives; safe to call from the advice worker."""

    def __init__(self):
        self._lock = threading.Lock()
        self._messages: List[FeedbackMessage] = []

    def accept(self, message: FeedbackMessage) -> None:
        with self._lock:
            self._messages.append(message)

    @property
    def messages(self) -> List[FeedbackMessage]:
        with self._lock:
            return list(self._messages)

    @property
    def last_text(self) -> str:
        with self._lock:
            return self._messages[-1].text if self._messages else ""


class MultiSink:
    """Fan a message out to several sinks; one failing sink does not stop the rest."""

    def __init__(self, *sinks: CoachingSink):
        self.sinks = list(sinks)

    def accept(self, message: FeedbackMessage) -> None:
        for sink in self.sinks:
            try:
                sink.accept(message)
            except Exception:
                logger.exception("Sink %s failed on %r", type(sink).__name__, message.text)
