# Calibration Store - Guided good/slouched baselines, persistence and drift checks
import math
from typing import List, Optional, Union
from pydantic import ValidationError
from slouch_monitor import config
from slouch_monitor import logger
from slouch_monitor.models import CalibrationProfile, CalibrationProgress, DriftReport, PoseKind, PostureMetrics
from slouch_monitor.utils import now_ms


class CalibrationError(RuntimeError):
    """Calibration lifecycle misuse (e.g. finalizing with no frames)."""


def average_metrics(frames: List[PostureMetrics]) -> PostureMetrics:
    """
    Arithmetic mean of every feature across frames

    Args:
        frames: Collected metrics, at least one

    Returns:
        Averaged PostureMetrics stamped with the last frame's timestamp
    """
    frame_count = len(frames)
    if frame_count == 0:
        raise CalibrationError("Cannot average zero calibration frames")

    averaged = {
        feature: math.fsum(getattr(frame, feature) for frame in frames) / frame_count
        for feature in config.AVERAGED_FEATURES
    }
    return PostureMetrics(timestamp_ms=frames[-1].timestamp_ms, **averaged)


def relative_deviation(sample: float, baseline: float) -> float:
    if baseline == 0:
        return 0.0 if sample == baseline else math.inf
    return abs((sample - baseline) / baseline)


class PostureCalibrator:
    """Collects guided poses into a CalibrationProfile and persists it"""

    def __init__(self, storage=None, identity: str = "default",
                 required_frames: Optional[int] = None):
        self.storage = storage
        self.identity = identity
        self.required_frames = required_frames or config.CALIBRATION_FRAMES
        self.calibration_data: Optional[CalibrationProfile] = None
        self.is_calibrating = False
        self.calibration_frames: List[PostureMetrics] = []
        self.current_pose_kind: Optional[PoseKind] = None

    def begin(self, pose_kind: Union[PoseKind, str] = PoseKind.GOOD):
        """Start (or restart) collecting frames for one pose"""
        self.current_pose_kind = PoseKind(pose_kind)
        self.calibration_frames = []
        self.is_calibrating = True

        logger.log_calibration(f"{self.current_pose_kind.value.capitalize()} Posture Calibration Started", {
            "frames_required": self.required_frames,
            "identity": self.identity
        })

    def progress(self) -> Optional[CalibrationProgress]:
        if self.current_pose_kind is None:
            return None

        collected = len(self.calibration_frames)
        return CalibrationProgress(
            pose_kind=self.current_pose_kind,
            progress=min(100.0, (collected / self.required_frames) * 100),
            frames_collected=collected,
            frames_required=self.required_frames,
            complete=not self.is_calibrating and self._baseline_for(self.current_pose_kind) is not None
        )

    def add_frame(self, metrics: Optional[PostureMetrics]) -> Optional[CalibrationProgress]:
        """
        Add one frame to the active calibration

        Returns:
            Progress, or None when not calibrating or metrics are absent
        """
        if not self.is_calibrating or metrics is None:
            return None

        self.calibration_frames.append(metrics)

        if len(self.calibration_frames) >= self.required_frames:
            self.complete_calibration()

        return self.progress()

    def complete_calibration(self) -> PostureMetrics:
        """Average the collected frames into the active pose's baseline"""
        if not self.calibration_frames:
            raise CalibrationError("No calibration frames collected")

        avg_metrics = average_metrics(self.calibration_frames)

        if self.calibration_data is None:
            self.calibration_data = CalibrationProfile(
                calibrated_at=now_ms(),
                user_id=self.identity
            )

        if self.current_pose_kind == PoseKind.SLOUCHED:
            self.calibration_data.slouched_posture = avg_metrics
        else:
            self.calibration_data.good_posture = avg_metrics

        self.is_calibrating = False

        logger.log_calibration(f"{self.current_pose_kind.value.capitalize()} Posture Calibration Complete", {
            "frames": len(self.calibration_frames),
            "head_shoulder_ratio": f"{avg_metrics.head_shoulder_ratio:.3f}",
            "torso_angle": f"{avg_metrics.torso_angle:.1f}",
            "profile_complete": self.is_complete()
        })

        return avg_metrics

    def _baseline_for(self, pose_kind: PoseKind) -> Optional[PostureMetrics]:
        if self.calibration_data is None:
            return None
        if pose_kind == PoseKind.SLOUCHED:
            return self.calibration_data.slouched_posture
        return self.calibration_data.good_posture

    def is_complete(self) -> bool:
        return self.calibration_data is not None and self.calibration_data.is_complete()

    def get_calibration_data(self) -> Optional[CalibrationProfile]:
        return self.calibration_data

    def check_drift(self, sample_metrics: Optional[PostureMetrics],
                    tolerance: float = config.RECALIBRATION_TOLERANCE) -> DriftReport:
        """
        Judge whether the stored good-posture baseline still fits a fresh sample

        Args:
            sample_metrics: Reference sample (usually averaged)
            tolerance: Max relative deviation per feature (0.15 = 15%)

        Returns:
            DriftReport naming the first offending feature, if any
        """
        good_posture = self._baseline_for(PoseKind.GOOD)
        if good_posture is None:
            return DriftReport(needs_recalibration=True, reason="No calibration data found")

        if sample_metrics is None:
            return DriftReport(needs_recalibration=True, reason="No reference sample")

        for feature in config.POSTURE_FEATURES:
            deviation = relative_deviation(getattr(sample_metrics, feature), getattr(good_posture, feature))

            if deviation > tolerance:
                return DriftReport(
                    needs_recalibration=True,
                    reason=f"{feature} deviation: {deviation * 100:.1f}%",
                    feature=feature,
                    deviation_percent=round(deviation * 100, 1)
                )

        return DriftReport(needs_recalibration=False, reason="Within acceptable range")

    def save(self) -> bool:
        """Persist the profile under the well-known key"""
        if self.calibration_data is None:
            logger.log_warning("No Calibration Data To Save", {"identity": self.identity})
            return False

        if self.storage is None:
            logger.log_warning("No Calibration Storage Configured", {"identity": self.identity})
            return False

        self.calibration_data.user_id = self.identity
        self.calibration_data.saved_at = now_ms()

        saved = self.storage.set(config.CALIBRATION_STORAGE_KEY, self.calibration_data.model_dump_json())
        if saved:
            logger.log_db("Calibration Profile Saved", {
                "identity": self.identity,
                "complete": self.is_complete()
            })
        return saved

    def load(self, identity: Optional[str] = None) -> bool:
        """
        Restore a saved profile for an identity

        Returns:
            True if a readable profile for this identity was found
        """
        identity = identity or self.identity

        if self.storage is None:
            logger.log_warning("No Calibration Storage Configured", {"identity": identity})
            return False

        saved = self.storage.get(config.CALIBRATION_STORAGE_KEY)
        if not saved:
            logger.log_calibration("No Saved Calibration Found", {"identity": identity})
            return False

        try:
            profile = CalibrationProfile.model_validate_json(saved)
        except ValidationError as e:
            logger.log_warning("Saved Calibration Unreadable", {"identity": identity, "error": str(e)})
            return False

        if profile.user_id != identity:
            logger.log_calibration("Calibration Belongs To Different User", {
                "requested": identity,
                "stored": profile.user_id
            })
            return False

        self.identity = identity
        self.calibration_data = profile
        logger.log_calibration("Calibration Loaded", {
            "identity": identity,
            "complete": self.is_complete()
        })
        return True

    def clear(self):
        """Erase the in-memory and persisted profile"""
        self.calibration_data = None
        self.is_calibrating = False
        self.calibration_frames = []

        if self.storage is not None:
            self.storage.remove(config.CALIBRATION_STORAGE_KEY)

        logger.log_calibration("Calibration Cleared", {"identity": self.identity})


class ReferenceCheck:
    """Quick session-start sample checked against the stored good posture"""

    def __init__(self, calibrator: PostureCalibrator,
                 required_frames: int = config.REFERENCE_CHECK_FRAMES,
                 tolerance: float = config.RECALIBRATION_TOLERANCE):
        self.calibrator = calibrator
        self.required_frames = required_frames
        self.tolerance = tolerance
        self.frames: List[PostureMetrics] = []
        self.reference_metrics: Optional[PostureMetrics] = None
        self.result: Optional[DriftReport] = None

    @property
    def is_done(self) -> bool:
        return self.result is not None

    @property
    def adjusted_baseline(self) -> Optional[PostureMetrics]:
        if self.result is None or self.result.needs_recalibration:
            return None
        return self.reference_metrics

    def add_frame(self, metrics: Optional[PostureMetrics]) -> Optional[CalibrationProgress]:
        if metrics is None or self.is_done:
            return None

        self.frames.append(metrics)

        if len(self.frames) >= self.required_frames:
            self.reference_metrics = average_metrics(self.frames)
            self.result = self.calibrator.check_drift(self.reference_metrics, self.tolerance)
            if self.result.needs_recalibration:
                logger.log_drift("Reference Check Needs Recalibration", {"reason": self.result.reason})
            else:
                logger.log_success("Reference Check Passed", {"reason": self.result.reason})

        return CalibrationProgress(
            pose_kind=PoseKind.GOOD,
            progress=min(100.0, (len(self.frames) / self.required_frames) * 100),
            frames_collected=len(self.frames),
            frames_required=self.required_frames,
            complete=self.is_done
        )
