"""End-to-end tests for SquatSession: gate -> angle -> state machine -> feedback."""

import math
import random
import threading

import pytest

from squat_coach.feedback import CANNED_PHRASES, DEPTH_PHRASE
from squat_coach.models import FeedbackSource
from squat_coach.pose_utils import (
    BAD_TIMESTAMP_MESSAGE,
    LEFT_ANKLE,
    Frame,
    NO_POSE_MESSAGE,
    NOT_VISIBLE_MESSAGE,
)
from squat_coach.rep_logic import SquatConfig, SquatState, Transition
from squat_coach.session import PAUSED_MESSAGE, STARTED_MESSAGE, SquatSession
from squat_coach.sinks import RecordingSink

from conftest import sine_squat_angles, squat_frame


class FakeCoach:
    def __init__(self, active=True, fail=False):
        self.active = active
        self.fail = fail
        self.updates = []

    @property
    def is_active(self):
        return self.active

    def push_update(self, text):
        if self.fail:
            raise ConnectionError("call dropped")
        self.updates.append(text)


def _session(**kwargs):
    kwargs.setdefault("sink", RecordingSink())
    kwargs.setdefault("rng", random.Random(3))
    session = SquatSession(**kwargs)
    session.start()
    return session


def _rep_messages(sink):
    return [m for m in sink.messages if m.rep_sequence is not None]


def _squat_cycles(fps, cycles):
    return [squat_frame(t, angle) for t, angle in sine_squat_angles(fps, cycles)]


# ============================================================================
# Lifecycle
# ============================================================================

def test_start_and_stop_announce_through_sink():
    sink = RecordingSink()
    session = _session(sink=sink)
    session.stop()
    assert [m.text for m in sink.messages] == [STARTED_MESSAGE, PAUSED_MESSAGE]


def test_frames_before_start_are_ignored():
    session = SquatSession(sink=RecordingSink())
    result = session.process_frame(squat_frame(0.0, 90.0))
    assert result.diagnostic == PAUSED_MESSAGE
    assert session.machine.last_down_time is None


def test_restart_resets_count():
    session = _session()
    list(session.run(_squat_cycles(10, 2)))
    assert session.rep_count == 2
    session.stop()
    session.start()
    assert session.rep_count == 0
    assert session.state == SquatState.UP


def test_context_manager_starts_and_stops():
    sink = RecordingSink()
    with SquatSession(sink=sink) as session:
        assert session.active
    assert not session.active
    assert sink.last_text == PAUSED_MESSAGE


# ============================================================================
# Counting
# ============================================================================

def test_one_cycle_one_rep():
    sink = RecordingSink()
    session = _session(sink=sink)
    results = [
        session.process_frame(squat_frame(0.0, 180.0)),
        session.process_frame(squat_frame(1.5, 90.0)),
        session.process_frame(squat_frame(3.0, 180.0)),
    ]
    assert results[1].transition == Transition.DEPTH_REACHED
    assert results[2].rep_event.sequence == 1
    assert results[2].rep_count == 1

    texts = [m.text for m in sink.messages]
    assert DEPTH_PHRASE in texts
    rep_msgs = _rep_messages(sink)
    assert len(rep_msgs) == 1
    assert rep_msgs[0].source == FeedbackSource.CANNED
    assert rep_msgs[0].text in CANNED_PHRASES


@pytest.mark.parametrize("fps", [10, 60])
def test_count_is_frame_rate_independent(fps):
    session = _session()
    events = [r.rep_event for r in session.run(_squat_cycles(fps, 7)) if r.rep_event]
    assert [e.sequence for e in events] == list(range(1, 8))
    assert session.rep_count == 7


def test_diagnostic_reports_angle_and_state():
    session = _session()
    result = session.process_frame(squat_frame(0.0, 140.0))
    assert result.visible
    assert result.angle == pytest.approx(140.0)
    assert result.diagnostic == "Angle: 140° | State: middle (bending)"


def test_smoothing_config_is_applied():
    session = _session(config=SquatConfig(smoothing_alpha=0.5))
    session.process_frame(squat_frame(0.0, 180.0))
    result = session.process_frame(squat_frame(0.1, 100.0))
    assert result.angle == pytest.approx(140.0)
    assert result.transition is None


def test_fifth_rep_is_a_milestone():
    sink = RecordingSink()
    session = _session(sink=sink)
    list(session.run(_squat_cycles(10, 5)))
    last = _rep_messages(sink)[-1]
    assert last.rep_sequence == 5
    assert last.source == FeedbackSource.MILESTONE
    assert "5" in last.text


# ============================================================================
# Visibility gate inside the session
# ============================================================================

def test_no_pose_frame():
    session = _session()
    result = session.process_frame(Frame(timestamp=0.0))
    assert not result.visible
    assert result.diagnostic == NO_POSE_MESSAGE
    assert result.angle is None


def test_occlusion_at_the_bottom_delays_the_rep():
    session = _session()
    session.process_frame(squat_frame(0.0, 180.0))
    session.process_frame(squat_frame(0.5, 130.0))
    down = session.process_frame(squat_frame(1.0, 90.0))
    assert down.transition == Transition.DEPTH_REACHED

    # three blocked frames that would otherwise complete the rep
    blocked = [
        session.process_frame(squat_frame(1.1, 175.0, drop=(LEFT_ANKLE,))),
        session.process_frame(squat_frame(1.2, 175.0, visibility=0.1)),
        session.process_frame(Frame(timestamp=1.3)),
    ]
    for result in blocked:
        assert not result.visible
        assert result.rep_event is None
        assert result.state == SquatState.DOWN
    assert blocked[0].diagnostic == NOT_VISIBLE_MESSAGE
    assert session.machine.last_down_time == 1.0
    assert session.rep_count == 0

    back = session.process_frame(squat_frame(1.4, 175.0))
    assert back.rep_event.sequence == 1


def test_invalid_timestamp_frame_leaves_detector_untouched():
    session = _session()
    result = session.process_frame(squat_frame(float("nan"), 90.0))
    assert not result.visible
    assert result.diagnostic == BAD_TIMESTAMP_MESSAGE
    assert session.machine.last_down_time is None

    list(session.run(_squat_cycles(10, 5)))
    assert session.rep_count == 5
    assert math.isfinite(session.machine.last_down_time)


def test_malformed_frame_is_skipped_not_raised():
    session = _session()
    frame = squat_frame(0.0, 90.0)
    lms = list(frame.landmarks)
    knee = lms[25]
    lms[25] = type(knee)(knee.index, float("inf"), knee.y, visibility=0.9)
    result = session.process_frame(Frame(0.0, tuple(lms)))
    assert not result.visible
    assert session.machine.phase == SquatState.UP


# ============================================================================
# Advice collaborator
# ============================================================================

def test_advisor_claims_every_third_rep():
    sink = RecordingSink()
    calls = []

    def advisor(n):
        calls.append(n)
        return f"Rep {n}, looking sharp"

    session = _session(sink=sink, advisor=advisor)
    list(session.run(_squat_cycles(10, 7)))
    session.wait_for_advice()
    session.stop()

    assert calls == [3, 6]
    by_rep = {}
    for m in _rep_messages(sink):
        by_rep.setdefault(m.rep_sequence, []).append(m)
    assert sorted(by_rep) == [1, 2, 3, 4, 5, 6, 7]
    assert all(len(msgs) == 1 for msgs in by_rep.values())
    assert by_rep[3][0].source == FeedbackSource.AI_COACH
    assert by_rep[6][0].text == "Rep 6, looking sharp"
    assert by_rep[5][0].source == FeedbackSource.MILESTONE
    assert by_rep[7][0].source == FeedbackSource.CANNED


def test_advisor_failure_never_touches_the_count():
    sink = RecordingSink()

    def advisor(n):
        raise TimeoutError("no answer")

    session = _session(sink=sink, advisor=advisor)
    list(session.run(_squat_cycles(10, 3)))
    session.wait_for_advice()

    assert session.rep_count == 3
    third = [m for m in _rep_messages(sink) if m.rep_sequence == 3]
    assert len(third) == 1
    assert third[0].source == FeedbackSource.FALLBACK


def test_frames_keep_flowing_while_advice_is_pending():
    sink = RecordingSink()
    release = threading.Event()

    def slow_advisor(n):
        release.wait(timeout=5)
        return "finally"

    session = _session(sink=sink, advisor=slow_advisor)
    list(session.run(_squat_cycles(10, 4)))
    assert session.rep_count == 4

    release.set()
    session.wait_for_advice()
    ai = [m for m in sink.messages if m.source == FeedbackSource.AI_COACH]
    assert [m.rep_sequence for m in ai] == [3]


def test_stop_discards_pending_advice():
    sink = RecordingSink()
    started = threading.Event()
    release = threading.Event()

    def slow_advisor(n):
        started.set()
        release.wait(timeout=5)
        return "stale"

    session = _session(sink=sink, advisor=slow_advisor)
    list(session.run(_squat_cycles(10, 3)))
    assert started.wait(timeout=5)
    worker = session.selector.worker

    session.stop()
    release.set()
    worker.join()

    assert not any(m.text == "stale" for m in sink.messages)
    assert sink.last_text == PAUSED_MESSAGE


def test_restart_without_stop_drops_previous_advice():
    sink = RecordingSink()
    started = threading.Event()
    release = threading.Event()

    def slow_advisor(n):
        started.set()
        release.wait(timeout=5)
        return "stale"

    session = _session(sink=sink, advisor=slow_advisor)
    list(session.run(_squat_cycles(10, 3)))
    assert started.wait(timeout=5)
    old_worker = session.selector.worker

    session.start()
    assert old_worker.closed
    assert session.selector.worker is not old_worker
    release.set()
    old_worker.join()

    assert not any(m.text == "stale" for m in sink.messages)
    assert session.rep_count == 0


# ============================================================================
# Realtime coach
# ============================================================================

def test_realtime_coach_replaces_depth_cue():
    sink = RecordingSink()
    coach = FakeCoach()
    session = _session(sink=sink, realtime_coach=coach)
    list(session.run(_squat_cycles(10, 1)))

    texts = [m.text for m in sink.messages]
    assert DEPTH_PHRASE not in texts
    assert STARTED_MESSAGE not in texts
    assert "User reached good squat depth" in coach.updates
    assert "User completed rep 1! Give encouragement." in coach.updates
    # rep feedback policy still runs
    assert len(_rep_messages(sink)) == 1


def test_inactive_coach_keeps_local_cues():
    sink = RecordingSink()
    coach = FakeCoach(active=False)
    session = _session(sink=sink, realtime_coach=coach)
    list(session.run(_squat_cycles(10, 1)))
    assert DEPTH_PHRASE in [m.text for m in sink.messages]
    assert coach.updates == []


def test_failing_coach_is_marked_obstructed():
    sink = RecordingSink()
    coach = FakeCoach(fail=True)
    session = _session(sink=sink, realtime_coach=coach)
    list(session.run(_squat_cycles(10, 2)))
    depth_cues = [m for m in sink.messages if m.text == DEPTH_PHRASE]
    assert len(depth_cues) == 2


def test_periodic_status_updates():
    coach = FakeCoach()
    session = _session(realtime_coach=coach, update_interval_s=3.0)
    list(session.run(_squat_cycles(10, 2)))

    status = [u for u in coach.updates if u.startswith("Update:")]
    # clock starts at t=0; reps land at t=2.5 and t=5.5; updates at t=3 and t=6
    assert status == [
        "Update: User has completed 1 reps. Current state: up. "
        "Give brief encouragement if appropriate.",
        "Update: User has completed 2 reps. Current state: up. "
        "Give brief encouragement if appropriate.",
    ]


def test_no_status_update_before_first_rep():
    coach = FakeCoach()
    session = _session(realtime_coach=coach, update_interval_s=1.0)
    for i in range(30):
        session.process_frame(squat_frame(i * 0.1, 175.0))
    assert coach.updates == []


def test_realtime_updates_name_the_exercise():
    coach = FakeCoach()
    session = _session(realtime_coach=coach, exercise="pushup")
    list(session.run(_squat_cycles(10, 1)))
    assert "User reached good pushup depth" in coach.updates
    assert not any("squat" in text for text in coach.updates)
