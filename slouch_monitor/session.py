# Posture Session - Routes detector callbacks to calibration or monitoring (Procedural steps)
from typing import Any, Dict, Optional, Sequence, Union
from slouch_monitor import logger
from slouch_monitor.calibration import PostureCalibrator, ReferenceCheck
from slouch_monitor.metrics import calculate_posture_metrics, check_lighting_quality, extract_landmarks
from slouch_monitor.models import DetectionStrategy, LandmarkSet, PoseKind
from slouch_monitor.monitor import PostureMonitor


class PostureSession:
    """One user's calibrator and monitor, fed one detector frame at a time"""

    def __init__(self, calibrator: PostureCalibrator, monitor: PostureMonitor):
        self.calibrator = calibrator
        self.monitor = monitor
        self.reference_check: Optional[ReferenceCheck] = None
        self.frames_received = 0

    def start_calibration(self, pose_kind: Union[PoseKind, str]):
        self.calibrator.begin(pose_kind)

    def start_reference_check(self) -> ReferenceCheck:
        """Begin a quick check that the saved calibration still fits"""
        self.reference_check = ReferenceCheck(self.calibrator)
        logger.log_calibration("Reference Check Started", {
            "frames_required": self.reference_check.required_frames
        })
        return self.reference_check

    def start_monitoring(self, strategy: Union[DetectionStrategy, str, None] = None) -> bool:
        return self.monitor.start(strategy)

    def stop(self):
        self.monitor.stop()

    def process_pose_results(self, pose_landmarks: Optional[Sequence[Any]],
                             timestamp_ms: Optional[float] = None) -> Dict:
        """Entry point for a raw 33-point MediaPipe landmark list"""
        return self.process_incoming_frame(extract_landmarks(pose_landmarks), timestamp_ms)

    def process_incoming_frame(self, landmarks: Optional[LandmarkSet],
                               timestamp_ms: Optional[float] = None) -> Dict:
        """
        Main function to process a single detector frame

        Args:
            landmarks: Key points, or None when no person was detected
            timestamp_ms: Capture time (defaults to now)

        Returns:
            Dict with the frame's routing status and results
        """
        self.frames_received += 1

        # Step 1: No person detected -> skip without touching state
        if landmarks is None:
            return {"success": False, "status": "no_person"}

        # Step 2: Derive metrics (degenerate geometry -> skip)
        metrics = calculate_posture_metrics(landmarks, timestamp_ms)
        if metrics is None:
            return {"success": False, "status": "degenerate"}

        # Step 3: Guided calibration takes priority over monitoring
        if self.calibrator.is_calibrating:
            progress = self.calibrator.add_frame(metrics)
            return {
                "success": True,
                "status": "calibrating",
                "progress": progress,
                "lighting": check_lighting_quality(landmarks)
            }

        # Step 4: Session-start reference check
        if self.reference_check is not None and not self.reference_check.is_done:
            progress = self.reference_check.add_frame(metrics)
            return {
                "success": True,
                "status": "reference_check",
                "progress": progress,
                "result": self.reference_check.result
            }

        # Step 5: Monitoring
        verdict = self.monitor.process_frame(metrics)
        if verdict is None:
            return {"success": False, "status": "idle"}

        return {
            "success": True,
            "status": "monitored",
            "verdict": verdict,
            "state": self.monitor.state
        }
