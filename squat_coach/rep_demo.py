# squat_coach/rep_demo.py

import time
import logging

import cv2

from squat_coach.llm_agent import make_advisor
from squat_coach.pose_estimator import PoseEstimator
from squat_coach.rep_logic import SquatConfig
from squat_coach.session import SquatSession
from squat_coach.settings import configure_logging, load_settings
from squat_coach.sinks import LoggingSink, MultiSink, SpeechSink

logger = logging.getLogger(__name__)

# ---------- Exercise options ----------
EXERCISE_OPTIONS = {
    "1": "squat",
    "2": "pushup",
}


def choose_exercise():
    print("Select exercise to track:")
    print("  1. Squat")
    print("  2. Pushup")
    choice = input("Enter 1 or 2: ").strip()
    exercise = EXERCISE_OPTIONS.get(choice, "squat")
    print(f"\nYou selected: {exercise}\n")
    return exercise


def main():
    settings = load_settings()
    configure_logging(settings.log_level)

    # 1) Choose exercise
    current_exercise = choose_exercise()

    # 2) Start camera
    cap = cv2.VideoCapture(0)
    if not cap.isOpened():
        logger.error("Could not open camera.")
        return

    # 3) Init pose estimator & session
    pose_estimator = PoseEstimator()
    session = SquatSession(
        config=SquatConfig.from_exercise(current_exercise),
        sink=MultiSink(LoggingSink(), SpeechSink(rate=settings.tts_rate)),
        advisor=make_advisor(settings, exercise=current_exercise),
        update_interval_s=settings.update_interval_s,
        exercise=current_exercise,
    )

    # 4) 5-second countdown before tracking
    countdown_seconds = 5
    logger.info("Get into position... starting in %d seconds.", countdown_seconds)
    time.sleep(countdown_seconds)
    logger.info("Go! Tracking reps now. Press Ctrl+C to stop.")

    last_diagnostic = ""
    session.start()
    try:
        while True:
            ret, frame = cap.read()
            if not ret:
                break

            result = session.process_frame(pose_estimator.process(frame, time.monotonic()))
            if result.rep_event is not None:
                logger.info("=== REP COMPLETED (total=%d) ===", result.rep_count)
            if result.diagnostic != last_diagnostic:
                logger.debug(result.diagnostic)
                last_diagnostic = result.diagnostic
    except KeyboardInterrupt:
        pass
    finally:
        session.stop()
        cap.release()
        pose_estimator.close()


if __name__ == "__main__":
    main()
