# squat_coach/session.py

import random
import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional

from squat_coach.feedback import AdviceWorker, Advisor, FeedbackSelector, RepCounter
from squat_coach.models import FeedbackMessage, FeedbackSource, RepEvent
from squat_coach.pose_utils import Frame, average_joint_angle, check_visibility, finite_number
from squat_coach.rep_logic import (
    AngleSmoother,
    SquatConfig,
    SquatMachineState,
    SquatState,
    Transition,
    transition_diagnostic,
    update_squat_state,
)
from squat_coach.sinks import CoachingSink, LoggingSink, RealtimeCoach

logger = logging.getLogger(__name__)

PAUSED_MESSAGE = "Workout paused."
STARTED_MESSAGE = "Workout started"


@dataclass
class FrameResult:
    timestamp: float
    visible: bool
    diagnostic: str
    state: SquatState
    rep_count: int
    angle: Optional[float] = None
    transition: Optional[Transition] = None
    rep_event: Optional[RepEvent] = None
    messages: List[FeedbackMessage] = field(default_factory=list)


class SquatSession:
    """
    One workout: owns the detector state, the rep counter and the feedback
    wiring for a single subject.

    Frames go through the visibility gate, the angle calculation, the
    (optional) smoother and the state machine. Rep and depth feedback goes to
    `sink`. If `advisor` is given, every third rep (that is not a milestone)
    asks it for a line in the background. If `realtime_coach` is given and
    active, it receives state updates and the local depth cue is skipped.

    process_frame() may be called from overlapping host callbacks; detector
    updates are serialized by a lock.
    """

    def __init__(
        self,
        config: Optional[SquatConfig] = None,
        sink: Optional[CoachingSink] = None,
        advisor: Optional[Advisor] = None,
        realtime_coach: Optional[RealtimeCoach] = None,
        update_interval_s: float = 3.0,
        rng: Optional[random.Random] = None,
        exercise: str = "squat",
    ):
        self.config = config or SquatConfig()
        self.sink = sink or LoggingSink()
        self.advisor = advisor
        self.realtime_coach = realtime_coach
        self.update_interval_s = update_interval_s
        self.exercise = exercise
        self._rng = rng or random.Random()

        self.machine = SquatMachineState()
        self.counter = RepCounter()
        self.smoother = AngleSmoother(self.config.smoothing_alpha)
        self.selector = FeedbackSelector(rng=self._rng)

        self.active = False
        self._coach_obstructed = False
        self._last_update_time: Optional[float] = None
        self._lock = threading.Lock()

    # ---------- lifecycle ----------

    def start(self):
        with self._lock:
            # answers still owed to a previous workout must never reach this one
            self.selector.close()
            self.machine = SquatMachineState()
            self.counter.reset()
            self.smoother.reset()
            self._coach_obstructed = False
            self._last_update_time = None

            worker = None
            if self.advisor is not None:
                worker = AdviceWorker(self.advisor, self.sink, rng=self._rng)
            self.selector = FeedbackSelector(worker=worker, rng=self._rng)
            self.active = True

        logger.info("Session started (advice=%s)", self.selector.advice_enabled)
        if not self._coach_available():
            self._deliver(FeedbackMessage(text=STARTED_MESSAGE, source=FeedbackSource.CANNED))

    def stop(self):
        with self._lock:
            if not self.active:
                return
            self.active = False
            self.selector.close()
        logger.info("Session stopped after %d reps", self.counter.count)
        self._deliver(FeedbackMessage(text=PAUSED_MESSAGE, source=FeedbackSource.CANNED))

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    def wait_for_advice(self):
        """Block until outstanding advice requests have been answered."""
        worker = self.selector.worker
        if worker is not None:
            worker.join()

    @property
    def rep_count(self) -> int:
        return self.counter.count

    @property
    def state(self) -> SquatState:
        return self.machine.state

    # ---------- realtime coach ----------

    def _coach_available(self) -> bool:
        if self.realtime_coach is None or self._coach_obstructed:
            return False
        try:
            return bool(self.realtime_coach.is_active)
        except Exception as e:
            logger.warning("Realtime coach status check failed: %s", e)
            self._coach_obstructed = True
            return False

    def _push_update(self, text: str):
        try:
            self.realtime_coach.push_update(text)
        except Exception as e:
            logger.warning("Realtime coach unavailable, using local cues: %s", e)
            self._coach_obstructed = True

    def _maybe_push_status(self, timestamp: float):
        if not finite_number(timestamp):
            return
        if self._last_update_time is None:
            self._last_update_time = timestamp
            return
        if timestamp - self._last_update_time < self.update_interval_s:
            return
        self._last_update_time = timestamp
        if self.counter.count > 0 and self._coach_available():
            self._push_update(
                f"Update: User has completed {self.counter.count} reps. "
                f"Current state: {self.machine.state.value}. "
                f"Give brief encouragement if appropriate."
            )

    # ---------- frames ----------

    def _deliver(self, message: FeedbackMessage):
        try:
            self.sink.accept(message)
        except Exception:
            logger.exception("Sink failed on %r", message.text)

    def process_frame(self, frame: Frame) -> FrameResult:
        with self._lock:
            result = self._process(frame)
        for message in result.messages:
            self._deliver(message)
        return result

    def _process(self, frame: Frame) -> FrameResult:
        if not self.active:
            return FrameResult(
                timestamp=frame.timestamp,
                visible=False,
                diagnostic=PAUSED_MESSAGE,
                state=self.machine.state,
                rep_count=self.counter.count,
            )

        cfg = self.config
        gate = check_visibility(frame, cfg.required_joints, cfg.min_visibility)
        if not gate.visible:
            self._maybe_push_status(frame.timestamp)
            return FrameResult(
                timestamp=frame.timestamp,
                visible=False,
                diagnostic=gate.diagnostic,
                state=self.machine.state,
                rep_count=self.counter.count,
            )

        raw = average_joint_angle(frame, cfg.angle_triplets)
        angle = self.smoother.update(raw)
        step = update_squat_state(self.machine, angle, frame.timestamp, cfg)
        self.machine = step.state
        logger.debug("t=%.3f angle=%.1f state=%s", frame.timestamp, angle, step.state.state.value)

        messages: List[FeedbackMessage] = []
        coach = self._coach_available()

        if step.transition == Transition.DEPTH_REACHED:
            if coach:
                self._push_update(f"User reached good {self.exercise} depth")
            message = self.selector.on_depth(coach and not self._coach_obstructed)
            if message is not None:
                messages.append(message)

        elif step.transition == Transition.REP_COMPLETED:
            count = self.counter.record(step.rep_event)
            message = self.selector.on_rep(step.rep_event, count)
            if message is not None:
                messages.append(message)
            if coach:
                self._push_update(f"User completed rep {count}! Give encouragement.")

        self._maybe_push_status(frame.timestamp)

        diagnostic = f"Angle: {round(angle)}° | State: {self.machine.state.value}"
        hint = transition_diagnostic(self.machine)
        if hint:
            diagnostic += f" ({hint})"

        return FrameResult(
            timestamp=frame.timestamp,
            visible=True,
            diagnostic=diagnostic,
            state=self.machine.state,
            rep_count=self.counter.count,
            angle=angle,
            transition=step.transition,
            rep_event=step.rep_event,
            messages=messages,
        )

    def run(self, frames: Iterable[Frame]) -> Iterator[FrameResult]:
        for frame in frames:
            yield self.process_frame(frame)
