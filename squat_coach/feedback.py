# squat_coach/feedback.py

import random
import logging
import threading
from queue import Queue
from threading import Thread
from typing import Callable, Optional, Sequence

from squat_coach.models import FeedbackMessage, FeedbackSource, RepEvent
from squat_coach.sinks import CoachingSink

logger = logging.getLogger(__name__)

Advisor = Callable[[int], Optional[str]]

CANNED_PHRASES = ("Nice!", "Strong!", "Keep it up!", "Power!", "Great!")
DEPTH_PHRASE = "Good depth! Push up!"
MILESTONE_EVERY = 5
ADVICE_EVERY = 3


def milestone_text(count: int) -> str:
    return f"{count} reps! Awesome milestone, keep going!"


class RepCounter:
    """Session rep total. Only ever moves forward."""

    def __init__(self):
        self.count = 0

    def record(self, event: RepEvent) -> int:
        self.count += 1
        if event.sequence != self.count:
            logger.warning(
                "Rep event #%d arrived while counter is at %d", event.sequence, self.count
            )
        return self.count

    def reset(self):
        self.count = 0


# ---------- Background advice worker ----------

class AdviceWorker:
    """
    Runs advice requests on a background thread.

    Each queued item is the RepEvent that asked for advice, so the answer is
    always delivered tagged with that rep. A failed, empty or timed-out
    request is replaced by one canned phrase. After close(), answers that are
    still in flight are dropped.
    """

    def __init__(
        self,
        advisor: Advisor,
        sink: CoachingSink,
        phrases: Sequence[str] = CANNED_PHRASES,
        rng: Optional[random.Random] = None,
    ):
        self.advisor = advisor
        self.sink = sink
        self.phrases = tuple(phrases)
        self._rng = rng or random.Random()
        self._queue: Queue = Queue()
        self._closed = threading.Event()
        self._deliver_lock = threading.Lock()
        self._thread: Optional[Thread] = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def submit(self, event: RepEvent) -> bool:
        if self.closed:
            logger.info("Advice worker closed, rep #%d not submitted", event.sequence)
            return False
        if self._thread is None:
            self._thread = Thread(target=self._run, name="advice-worker", daemon=True)
            self._thread.start()
        self._queue.put(event)   # returns instantly
        return True

    def _run(self):
        while True:
            event = self._queue.get()
            try:
                if event is None:
                    return
                self._handle(event)
            finally:
                self._queue.task_done()

    def _handle(self, event: RepEvent):
        if self.closed:
            logger.info("Session stopped, skipping advice for rep #%d", event.sequence)
            return

        text = None
        try:
            text = self.advisor(event.sequence)
        except Exception as e:
            logger.warning("Advice request for rep #%d failed: %s", event.sequence, e)

        if text and text.strip():
            message = FeedbackMessage(
                text=text.strip(), source=FeedbackSource.AI_COACH, rep_sequence=event.sequence
            )
        else:
            message = FeedbackMessage(
                text=self._rng.choice(self.phrases),
                source=FeedbackSource.FALLBACK,
                rep_sequence=event.sequence,
            )
        # close() takes the same lock, so nothing is delivered once it returns
        with self._deliver_lock:
            if self.closed:
                logger.info("Session stopped, discarding advice for rep #%d", event.sequence)
                return
            try:
                self.sink.accept(message)
            except Exception:
                logger.exception("Sink failed on advice for rep #%d", event.sequence)

    def join(self):
        """Block until every submitted request has been handled."""
        self._queue.join()

    def close(self):
        with self._deliver_lock:
            if self.closed:
                return
            self._closed.set()
        if self._thread is not None:
            self._queue.put(None)


class FeedbackSelector:
    """
    Picks the feedback for each rep.

    Priority, first match wins:
      1. every 5th rep -> milestone message naming the count
      2. advice worker present and every 3rd rep -> handed to the worker,
         nothing is returned now
      3. a random canned phrase
    """

    def __init__(
        self,
        worker: Optional[AdviceWorker] = None,
        phrases: Sequence[str] = CANNED_PHRASES,
        rng: Optional[random.Random] = None,
    ):
        self.worker = worker
        self.phrases = tuple(phrases)
        self._rng = rng or random.Random()

    @property
    def advice_enabled(self) -> bool:
        return self.worker is not None and not self.worker.closed

    def on_rep(self, event: RepEvent, count: int) -> Optional[FeedbackMessage]:
        if count > 0 and count % MILESTONE_EVERY == 0:
            return FeedbackMessage(
                text=milestone_text(count),
                source=FeedbackSource.MILESTONE,
                rep_sequence=event.sequence,
            )

        if self.advice_enabled and count % ADVICE_EVERY == 0:
            if self.worker.submit(event):
                return None

        return FeedbackMessage(
            text=self._rng.choice(self.phrases),
            source=FeedbackSource.CANNED,
            rep_sequence=event.sequence,
        )

    def on_depth(self, realtime_coach_available: bool = False) -> Optional[FeedbackMessage]:
        if realtime_coach_available:
            return None
        return FeedbackMessage(text=DEPTH_PHRASE, source=FeedbackSource.DEPTH)

    def close(self):
        if self.worker is not None:
            self.worker.close()
