# squat_coach/rep_logic.py

import logging
from dataclasses import dataclass, field, asdict, replace
from enum import Enum
from typing import Optional, Dict, Any, Tuple

from squat_coach.models import RepEvent
from squat_coach.pose_utils import (
    SQUAT_JOINTS,
    KNEE_TRIPLETS,
    ELBOW_TRIPLETS,
    LEFT_SHOULDER, RIGHT_SHOULDER,
    LEFT_ELBOW, RIGHT_ELBOW,
    LEFT_WRIST, RIGHT_WRIST,
)

logger = logging.getLogger(__name__)


class SquatState(str, Enum):
    UP = "up"
    DOWN = "down"
    TRANSITIONING = "middle"


class Transition(str, Enum):
    DEPTH_REACHED = "depth_reached"      # UP -> DOWN
    REP_COMPLETED = "rep_completed"      # DOWN -> UP


# ----------------- Per-exercise configuration -----------------
EXERCISE_CONFIG: Dict[str, Dict[str, Any]] = {
    "squat": {
        "required_joints": SQUAT_JOINTS,
        "angle_triplets": KNEE_TRIPLETS,
        "down_threshold": 110.0,    # at or below = enough depth
        "up_threshold": 150.0,      # at or above = fully stood
        "debounce_s": 1.0,
        "min_visibility": 0.5,
        "smoothing_alpha": 1.0,     # 1.0 = raw angle
    },
    "pushup": {
        "required_joints": (
            LEFT_SHOULDER, RIGHT_SHOULDER,
            LEFT_ELBOW, RIGHT_ELBOW,
            LEFT_WRIST, RIGHT_WRIST,
        ),
        "angle_triplets": ELBOW_TRIPLETS,
        "down_threshold": 90.0,
        "up_threshold": 150.0,
        "debounce_s": 0.8,
        "min_visibility": 0.5,
        "smoothing_alpha": 1.0,
    },
}

DEFAULT_CONFIG = EXERCISE_CONFIG["squat"]


def get_exercise_config(exercise_name: Optional[str]) -> Dict[str, Any]:
    if exercise_name and exercise_name in EXERCISE_CONFIG:
        return EXERCISE_CONFIG[exercise_name]
    return DEFAULT_CONFIG


@dataclass(frozen=True)
class SquatConfig:
    required_joints: Tuple[int, ...] = SQUAT_JOINTS
    angle_triplets: Tuple[Tuple[int, int, int], ...] = KNEE_TRIPLETS
    down_threshold: float = 110.0
    up_threshold: float = 150.0
    debounce_s: float = 1.0
    min_visibility: float = 0.5
    smoothing_alpha: float = 1.0

    def __post_init__(self):
        if self.down_threshold >= self.up_threshold:
            raise ValueError(
                f"down_threshold ({self.down_threshold}) must be below "
                f"up_threshold ({self.up_threshold})"
            )
        if self.debounce_s < 0:
            raise ValueError("debounce_s must be >= 0")
        if not 0.0 < self.smoothing_alpha <= 1.0:
            raise ValueError("smoothing_alpha must be in (0, 1]")

    @classmethod
    def from_exercise(cls, exercise_name: Optional[str] = "squat", **overrides) -> "SquatConfig":
        cfg = dict(get_exercise_config(exercise_name))
        cfg.update(overrides)
        cfg["required_joints"] = tuple(cfg["required_joints"])
        cfg["angle_triplets"] = tuple(tuple(t) for t in cfg["angle_triplets"])
        return cls(**cfg)


@dataclass(frozen=True)
class SquatMachineState:
    """
    Everything the detector remembers between frames.

    `phase` is the committed half of the cycle (UP or DOWN) and is what the
    transition rules look at. `state` is the displayed state, which reads
    TRANSITIONING while the angle sits between the thresholds.
    """
    state: SquatState = SquatState.UP
    phase: SquatState = SquatState.UP
    last_down_time: Optional[float] = None
    last_rep_time: Optional[float] = None
    rep_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        data["phase"] = self.phase.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SquatMachineState":
        return cls(
            state=SquatState(data.get("state", SquatState.UP.value)),
            phase=SquatState(data.get("phase", SquatState.UP.value)),
            last_down_time=data.get("last_down_time"),
            last_rep_time=data.get("last_rep_time"),
            rep_count=int(data.get("rep_count", 0)),
        )


@dataclass(frozen=True)
class StepResult:
    state: SquatMachineState
    transition: Optional[Transition] = None
    rep_event: Optional[RepEvent] = None


def _elapsed(now: float, since: Optional[float], interval: float) -> bool:
    return since is None or now - since > interval


# -------------------------------------------------------------
# Main update function
# -------------------------------------------------------------

def update_squat_state(
    machine: SquatMachineState,
    angle: float,
    timestamp: float,
    cfg: SquatConfig = SquatConfig(),
) -> StepResult:
    """
    Advance the squat detector by one frame.

    Rules, first match wins:
      1. UP -> DOWN when angle <= down_threshold and more than debounce_s
         passed since the previous UP -> DOWN.
      2. DOWN -> UP when angle >= up_threshold and more than debounce_s
         passed since the previous rep. Emits a RepEvent.
      3. Strictly between the thresholds the displayed state is
         TRANSITIONING; the committed phase and timers are untouched.

    Both threshold comparisons are inclusive. Only timestamp deltas are used,
    so the result does not depend on frame rate.
    """
    if (angle <= cfg.down_threshold
            and machine.phase == SquatState.UP
            and _elapsed(timestamp, machine.last_down_time, cfg.debounce_s)):
        new_state = replace(
            machine,
            state=SquatState.DOWN,
            phase=SquatState.DOWN,
            last_down_time=timestamp,
        )
        logger.info("Depth reached at %.3fs (angle=%.1f)", timestamp, angle)
        return StepResult(new_state, Transition.DEPTH_REACHED)

    if (angle >= cfg.up_threshold
            and machine.phase == SquatState.DOWN
            and _elapsed(timestamp, machine.last_rep_time, cfg.debounce_s)):
        count = machine.rep_count + 1
        new_state = replace(
            machine,
            state=SquatState.UP,
            phase=SquatState.UP,
            last_rep_time=timestamp,
            rep_count=count,
        )
        logger.info("Rep #%d completed at %.3fs (angle=%.1f)", count, timestamp, angle)
        return StepResult(
            new_state,
            Transition.REP_COMPLETED,
            RepEvent(sequence=count, timestamp=timestamp),
        )

    if cfg.down_threshold < angle < cfg.up_threshold:
        shown = SquatState.TRANSITIONING
    else:
        shown = machine.phase
    if shown != machine.state:
        machine = replace(machine, state=shown)
    return StepResult(machine)


def transition_diagnostic(machine: SquatMachineState) -> Optional[str]:
    """'bending' on the way down, 'extending' on the way up, else None."""
    if machine.state != SquatState.TRANSITIONING:
        return None
    return "bending" if machine.phase == SquatState.UP else "extending"


@dataclass
class AngleSmoother:
    """Exponential moving average over the per-frame knee angle."""
    alpha: float = 1.0
    value: Optional[float] = field(default=None)

    def update(self, angle: float) -> float:
        if self.value is None or self.alpha >= 1.0:
            self.value = angle
        else:
            self.value = self.alpha * angle + (1.0 - self.alpha) * self.value
        return self.value

    def reset(self):
        self.value = None
