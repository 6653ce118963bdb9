from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class PoseKind(str, Enum):
    GOOD = "good"
    SLOUCHED = "slouched"


class DetectionStrategy(str, Enum):
    CALIBRATED = "calibrated"  # compare to personal calibration
    DRIFT = "drift"            # compare to session start
    BOTH = "both"


class PostureState(str, Enum):
    GOOD = "GOOD"
    SLOUCHED = "SLOUCHED"


class Severity(str, Enum):
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


# Detector Input Models
class Landmark(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    z: float = 0.0
    visibility: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class LandmarkSet(BaseModel):
    """Key body points for one frame. A missing point stays None."""
    model_config = ConfigDict(frozen=True)

    nose: Optional[Landmark] = None
    left_shoulder: Optional[Landmark] = None
    right_shoulder: Optional[Landmark] = None
    left_hip: Optional[Landmark] = None
    right_hip: Optional[Landmark] = None
    left_ear: Optional[Landmark] = None
    right_ear: Optional[Landmark] = None


# Posture Feature Models
class PostureMetrics(BaseModel):
    head_shoulder_ratio: float = Field(ge=0.0)   # Primary slouch indicator
    shoulder_asymmetry: float = Field(ge=0.0)    # Side lean indicator
    torso_angle: float = Field(ge=0.0)           # Spine alignment (degrees)
    neck_angle: float = Field(ge=0.0)            # Head position (degrees)
    forward_lean: float = Field(ge=0.0)          # Depth-axis lean
    shoulder_width: float = Field(ge=0.0)        # Reference measurement
    timestamp_ms: float = 0.0


class CalibrationProfile(BaseModel):
    good_posture: Optional[PostureMetrics] = None
    slouched_posture: Optional[PostureMetrics] = None
    calibrated_at: float
    user_id: str = "default"
    saved_at: Optional[float] = None

    def is_complete(self) -> bool:
        return self.good_posture is not None and self.slouched_posture is not None


class CalibrationProgress(BaseModel):
    pose_kind: PoseKind
    progress: float  # percent
    frames_collected: int
    frames_required: int
    complete: bool = False


class DriftReport(BaseModel):
    needs_recalibration: bool
    reason: str
    feature: Optional[str] = None
    deviation_percent: Optional[float] = None


# Classifier Output Models
class PostureVerdict(BaseModel):
    is_slouching: bool
    issues: List[str] = Field(default_factory=list)
    reason: Optional[str] = None
    severity: Severity = Severity.MILD
    total_deviation: float = 0.0
    detection_method: DetectionStrategy
    deviations: Dict[str, float] = Field(default_factory=dict)


# Monitor Event Models
class SlouchEvent(BaseModel):
    reason: Optional[str]
    severity: Severity
    duration_seconds: float
    deviation: float
    detection_method: DetectionStrategy
    timestamp_ms: float


class DriftCheckEvent(BaseModel):
    timestamp_ms: float
    is_drifting: bool
    reason: Optional[str] = None
    severity: Severity = Severity.MILD
    deviation: float = 0.0
    drift_percentages: Dict[str, float] = Field(default_factory=dict)
    recalibration: Optional[DriftReport] = None


class SessionStats(BaseModel):
    session_duration_min: int
    posture_quality: float  # percent, one decimal
    total_alerts: int
    current_state: PostureState
    total_frames: int
    slouch_frames: int
    good_frames: int
    drift_checks: int = 0
