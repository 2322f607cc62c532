import cv2
import os
os.environ['TF_CPP_MIN_LOG_LEVEL'] = '3'

import mediapipe as mp

from squat_coach.pose_utils import Frame, Landmark

mp_pose = mp.solutions.pose


class PoseEstimator:
    def __init__(self, min_detection_confidence=0.5, min_tracking_confidence=0.5):
        self.pose = mp_pose.Pose(
            static_image_mode=False,
            model_complexity=1,
            enable_segmentation=False,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )

    def process(self, frame_bgr, timestamp: float) -> Frame:
        """
        Input: BGR frame from OpenCV and its capture time in seconds.
        Output: a Frame with normalized landmarks, empty when no pose was found.
        """
        rgb = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
        results = self.pose.process(rgb)

        if not results.pose_landmarks:
            return Frame(timestamp=timestamp)

        landmarks = tuple(
            Landmark(idx, p.x, p.y, z=p.z, visibility=p.visibility)
            for idx, p in enumerate(results.pose_landmarks.landmark)
        )
        return Frame(timestamp=timestamp, landmarks=landmarks)

    def close(self):
        self.pose.close()
