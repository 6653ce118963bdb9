# Configuration Module - Procedural approach with module-level variables
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Database Configuration (calibration profiles only)
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///slouch_monitor.db")
CALIBRATION_STORAGE_KEY = "posture_calibration"  # Well-known key, identity lives inside the value

# Logging Configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Frame Processing Configuration
ASSUMED_FPS = 10  # Frames per second delivered by the landmark detector
SHOULDER_WIDTH_EPSILON = 1e-6  # Below this the shoulder segment is degenerate

# Calibration Configuration
CALIBRATION_FRAMES = int(os.getenv("CALIBRATION_FRAMES", "60"))  # ~2s at 30fps, 6s at 10fps
REFERENCE_CHECK_FRAMES = 50  # ~5s quick reference at session start
RECALIBRATION_TOLERANCE = 0.15  # 15% relative deviation allowed

# Features compared against baselines (shoulder_width is a scale reference only)
POSTURE_FEATURES = [
    "head_shoulder_ratio",
    "shoulder_asymmetry",
    "torso_angle",
    "neck_angle",
    "forward_lean",
]
AVERAGED_FEATURES = POSTURE_FEATURES + ["shoulder_width"]

# MediaPipe Pose landmark indices
MEDIAPIPE_LANDMARK_INDICES = {
    "nose": 0,
    "left_ear": 7,
    "right_ear": 8,
    "left_shoulder": 11,
    "right_shoulder": 12,
    "left_hip": 23,
    "right_hip": 24,
}

# Mean landmark visibility bands
LIGHTING_THRESHOLDS = {
    "good": 0.8,
    "medium": 0.6,
}

# Calibrated-comparison rules (strategy A)
# mode: relative -> tolerance is a fraction of the baseline value
#       slack    -> current value must stay below baseline + tolerance
#       absolute -> tolerance is in the feature's own unit (degrees)
# smoothing is added to the tolerance before dividing the deviation
CALIBRATED_RULES = {
    "head_shoulder_ratio": {
        "label": "forward head posture",
        "mode": "relative",
        "tolerance": 0.20,
        "weight": 30,
        "smoothing": 0.0
    },
    "shoulder_asymmetry": {
        "label": "uneven shoulders",
        "mode": "slack",
        "tolerance": 0.05,
        "weight": 20,
        "smoothing": 0.01
    },
    "torso_angle": {
        "label": "hunched spine",
        "mode": "absolute",
        "tolerance": 18.0,
        "weight": 25,
        "smoothing": 0.0
    },
    "neck_angle": {
        "label": "head tilted down",
        "mode": "absolute",
        "tolerance": 20.0,
        "weight": 20,
        "smoothing": 0.0
    },
    "forward_lean": {
        "label": "leaning into screen",
        "mode": "relative",
        "tolerance": 0.30,
        "weight": 15,
        "smoothing": 0.01
    }
}

CALIBRATED_VERDICT = {
    "min_issues": 2,
    "deviation_threshold": 35,
    "combine": "any",  # issues OR deviation
    "severity": {"severe": 60, "moderate": 40}
}

# Baseline-drift profiles (strategy B)
# mode: percent -> percentage change from baseline (baseline + smoothing as divisor)
#       degrees -> absolute difference in degrees
# direction: increase -> only growth counts, both -> absolute change counts
# scale multiplies the change before it is added to the total deviation
DRIFT_PROFILES = {
    "standard": {
        "rules": {
            "head_shoulder_ratio": {
                "label": "head position drifted",
                "mode": "percent",
                "direction": "both",
                "threshold": 20,
                "smoothing": 0.0,
                "scale": 1.0
            },
            "shoulder_asymmetry": {
                "label": "shoulders became uneven",
                "mode": "percent",
                "direction": "increase",
                "threshold": 25,
                "smoothing": 0.01,
                "scale": 1.0
            },
            "forward_lean": {
                "label": "increased forward lean",
                "mode": "percent",
                "direction": "increase",
                "threshold": 25,
                "smoothing": 0.01,
                "scale": 1.0
            }
        },
        "min_issues": 1,
        "deviation_threshold": None,
        "combine": "all",
        "severity": {"severe": 80, "moderate": 60}
    },
    "relaxed": {
        "rules": {
            "head_shoulder_ratio": {
                "label": "head forward",
                "mode": "percent",
                "direction": "increase",
                "threshold": 25,
                "smoothing": 0.0,
                "scale": 1.0
            },
            "shoulder_asymmetry": {
                "label": "leaning heavily to one side",
                "mode": "percent",
                "direction": "increase",
                "threshold": 40,
                "smoothing": 0.01,
                "scale": 0.5
            },
            "torso_angle": {
                "label": "hunched over",
                "mode": "degrees",
                "direction": "both",
                "threshold": 20,
                "smoothing": 0.0,
                "scale": 1.0
            },
            "forward_lean": {
                "label": "leaning into screen",
                "mode": "percent",
                "direction": "increase",
                "threshold": 35,
                "smoothing": 0.01,
                "scale": 1.0
            },
            "neck_angle": {
                "label": "head tilted down",
                "mode": "degrees",
                "direction": "both",
                "threshold": 25,
                "smoothing": 0.0,
                "scale": 1.0
            }
        },
        "min_issues": 2,
        "deviation_threshold": 40,
        "combine": "all",  # issues AND deviation
        "severity": {"severe": 80, "moderate": 60}
    }
}
DEFAULT_DRIFT_PROFILE = "relaxed"

# Debounce presets (frames at ASSUMED_FPS)
SENSITIVITY_PRESETS = {
    "strict": {"slouch_frames": 60, "good_frames": 12},     # 6s to alert
    "balanced": {"slouch_frames": 100, "good_frames": 10},  # 10s to alert, 1s to dismiss
    "relaxed": {"slouch_frames": 150, "good_frames": 25},   # 15s to alert
}
MONITOR_SENSITIVITY = os.getenv("MONITOR_SENSITIVITY", "balanced")

# Periodic drift re-evaluation
DRIFT_CHECK_INTERVAL_SECONDS = int(os.getenv("DRIFT_CHECK_INTERVAL_SECONDS", "180"))  # 3 minutes
DRIFT_HISTORY_SIZE = 10  # Keep only the last N drift checks

# Degenerate divisor floor for deviation ratios
DEVIATION_FLOOR = 1e-6
