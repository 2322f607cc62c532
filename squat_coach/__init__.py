from squat_coach.models import FeedbackMessage, FeedbackSource, RepEvent
from squat_coach.pose_utils import Frame, Landmark, angle_between, check_visibility
from squat_coach.rep_logic import SquatConfig, SquatMachineState, SquatState, update_squat_state
from squat_coach.session import FrameResult, SquatSession
from squat_coach.sinks import CoachingSink, RealtimeCoach

__all__ = [
    "Frame",
    "Landmark",
    "angle_between",
    "check_visibility",
    "SquatConfig",
    "SquatMachineState",
    "SquatState",
    "update_squat_state",
    "RepEvent",
    "FeedbackMessage",
    "FeedbackSource",
    "SquatSession",
    "FrameResult",
    "CoachingSink",
    "RealtimeCoach",
]
