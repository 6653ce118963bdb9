# Metrics Extractor - Landmarks to scale/camera-invariant posture features (Procedural)
import math
from typing import Any, Dict, Optional, Sequence
from pydantic import ValidationError
from slouch_monitor import config
from slouch_monitor import logger
from slouch_monitor.models import Landmark, LandmarkSet, PostureMetrics
from slouch_monitor.utils import now_ms

REQUIRED_POINTS = [
    "nose",
    "left_shoulder",
    "right_shoulder",
    "left_hip",
    "right_hip",
    "left_ear",
    "right_ear",
]


class DegenerateLandmarksError(ValueError):
    """Landmark set is present but geometrically unusable."""


def _is_finite_point(point: Landmark) -> bool:
    return math.isfinite(point.x) and math.isfinite(point.y) and math.isfinite(point.z)


def get_midpoint(point1: Landmark, point2: Landmark) -> Landmark:
    return Landmark(
        x=(point1.x + point2.x) / 2,
        y=(point1.y + point2.y) / 2,
        z=(point1.z + point2.z) / 2
    )


def calculate_distance(point1: Landmark, point2: Landmark) -> float:
    dx = point1.x - point2.x
    dy = point1.y - point2.y
    dz = point1.z - point2.z
    return math.sqrt(dx * dx + dy * dy + dz * dz)


def calculate_angle(point1: Landmark, point2: Landmark, point3: Landmark) -> float:
    """
    Angle at point2 between point1 and point3, in degrees within [0, 180]

    Uses the image-plane (x, y) coordinates only.
    """
    radians = (math.atan2(point3.y - point2.y, point3.x - point2.x) -
               math.atan2(point1.y - point2.y, point1.x - point2.x))
    angle = abs(math.degrees(radians))

    if angle > 180.0:
        angle = 360.0 - angle

    return angle


def compute_posture_metrics(landmarks: Optional[LandmarkSet],
                            timestamp_ms: Optional[float] = None) -> PostureMetrics:
    """
    Derive the posture feature vector from one frame's landmarks

    Args:
        landmarks: Key body points from the detector
        timestamp_ms: Capture time (defaults to now)

    Returns:
        PostureMetrics record

    Raises:
        DegenerateLandmarksError: missing or non-finite points, zero-length shoulder
            segment, or features that cannot be represented
    """
    if landmarks is None:
        raise DegenerateLandmarksError("No landmarks")

    missing = [name for name in REQUIRED_POINTS if getattr(landmarks, name) is None]
    if missing:
        raise DegenerateLandmarksError(f"Missing landmarks: {', '.join(missing)}")

    non_finite = [name for name in REQUIRED_POINTS if not _is_finite_point(getattr(landmarks, name))]
    if non_finite:
        raise DegenerateLandmarksError(f"Non-finite landmarks: {', '.join(non_finite)}")

    shoulder_width = calculate_distance(landmarks.left_shoulder, landmarks.right_shoulder)
    # NaN compares False, so test for the good range
    if not (config.SHOULDER_WIDTH_EPSILON <= shoulder_width < math.inf):
        raise DegenerateLandmarksError(f"Degenerate shoulder width: {shoulder_width}")

    shoulder_midpoint = get_midpoint(landmarks.left_shoulder, landmarks.right_shoulder)
    hip_midpoint = get_midpoint(landmarks.left_hip, landmarks.right_hip)
    ear_midpoint = get_midpoint(landmarks.left_ear, landmarks.right_ear)

    # Head drifts forward relative to shoulders when slouching
    head_shoulder_ratio = calculate_distance(ear_midpoint, shoulder_midpoint) / shoulder_width

    shoulder_asymmetry = abs(landmarks.left_shoulder.y - landmarks.right_shoulder.y) / shoulder_width

    # Reference point straight below the hip (image y grows downwards)
    below_hip = Landmark(x=hip_midpoint.x, y=hip_midpoint.y + 0.1, z=hip_midpoint.z)
    torso_angle = calculate_angle(shoulder_midpoint, hip_midpoint, below_hip)

    neck_angle = calculate_angle(shoulder_midpoint, ear_midpoint, landmarks.nose)

    forward_lean = abs(shoulder_midpoint.z - hip_midpoint.z)

    features = {
        "head_shoulder_ratio": head_shoulder_ratio,
        "shoulder_asymmetry": shoulder_asymmetry,
        "torso_angle": torso_angle,
        "neck_angle": neck_angle,
        "forward_lean": forward_lean,
        "shoulder_width": shoulder_width,
    }

    # Huge finite coordinates can still overflow a feature
    overflowed = [name for name, value in features.items() if not math.isfinite(value)]
    if overflowed:
        raise DegenerateLandmarksError(f"Non-finite features: {', '.join(overflowed)}")

    return PostureMetrics(
        **features,
        timestamp_ms=timestamp_ms if timestamp_ms is not None else now_ms()
    )


def calculate_posture_metrics(landmarks: Optional[LandmarkSet],
                              timestamp_ms: Optional[float] = None) -> Optional[PostureMetrics]:
    """Hot-path variant: returns None instead of raising for unusable frames"""
    try:
        return compute_posture_metrics(landmarks, timestamp_ms)
    except (DegenerateLandmarksError, ValidationError) as e:
        logger.log_debug("Frame Skipped", {"reason": str(e)})
        return None


def _clamp_visibility(visibility: Any) -> Optional[float]:
    if visibility is None:
        return None
    visibility = float(visibility)
    if not math.isfinite(visibility):
        return None
    # Detectors can report a hair above 1.0
    return min(1.0, max(0.0, visibility))


def _coerce_landmark(point: Any) -> Optional[Landmark]:
    """
    Returns:
        Landmark, or None when the point cannot be read
    """
    if isinstance(point, Landmark):
        return point

    try:
        if isinstance(point, dict):
            x, y = point["x"], point["y"]
            z = point.get("z") or 0.0
            visibility = point.get("visibility")
        else:
            # MediaPipe NormalizedLandmark style objects
            x, y = point.x, point.y
            z = getattr(point, "z", 0.0) or 0.0
            visibility = getattr(point, "visibility", None)

        return Landmark(x=x, y=y, z=z, visibility=_clamp_visibility(visibility))
    except (KeyError, AttributeError, TypeError, ValueError, ValidationError) as e:
        logger.log_debug("Landmark Unreadable", {"error": str(e)})
        return None


def extract_landmarks(pose_landmarks: Optional[Sequence[Any]]) -> Optional[LandmarkSet]:
    """
    Pick the key points out of a full MediaPipe Pose landmark list

    Args:
        pose_landmarks: 33-point list of landmarks (objects or dicts), or None

    Returns:
        LandmarkSet, or None when no person was detected. Unreadable points
        are left as None, so the frame later counts as degenerate.
    """
    if not pose_landmarks:
        return None

    points: Dict[str, Optional[Landmark]] = {}
    for name, index in config.MEDIAPIPE_LANDMARK_INDICES.items():
        if index < len(pose_landmarks) and pose_landmarks[index] is not None:
            points[name] = _coerce_landmark(pose_landmarks[index])
        else:
            points[name] = None

    return LandmarkSet(**points)


def check_lighting_quality(landmarks: Optional[LandmarkSet]) -> Dict[str, str]:
    """Grade mean landmark visibility (useful during calibration)"""
    if landmarks is None:
        return {"quality": "poor", "message": "No pose detected"}

    points = [getattr(landmarks, name) for name in REQUIRED_POINTS]
    points = [p for p in points if p is not None]
    if not points:
        return {"quality": "poor", "message": "No pose detected"}

    avg_visibility = sum((p.visibility or 0.0) for p in points) / len(points)

    if avg_visibility > config.LIGHTING_THRESHOLDS["good"]:
        return {"quality": "good", "message": "Lighting is good"}
    elif avg_visibility > config.LIGHTING_THRESHOLDS["medium"]:
        return {"quality": "medium", "message": "Lighting could be better"}
    return {"quality": "poor", "message": "Poor lighting detected"}
