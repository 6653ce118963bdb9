# Structured Logging Module - Procedural Approach
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from slouch_monitor import config

RESET = '\033[0m'
BOLD = '\033[1m'
DETAIL_COLOR = '\033[97m'
HINT_COLOR = '\033[93m'

# Step -> (emoji, ANSI colour)
STEP_STYLES = {
    "CALIBRATION": ("🎯", '\033[95m'),
    "MONITOR": ("👁️", '\033[96m'),
    "DRIFT": ("🔍", '\033[94m'),
    "DB": ("💾", '\033[97m'),
    "DEBUG": ("🐞", '\033[97m'),
    "ERROR": ("❌", '\033[91m'),
    "SUCCESS": ("✅", '\033[92m'),
    "WARNING": ("⚠️", '\033[93m'),
}

# Next Step Suggestions, keyed by "STEP:WORD" from the action text
NEXT_STEPS = {
    "CALIBRATION:STARTED": "Feed frames with add_frame() until progress reaches 100%",
    "CALIBRATION:COMPLETE": "Calibrate the other pose, then call save()",
    "CALIBRATION:LOADED": "Run a ReferenceCheck or start monitoring",
    "MONITOR:STARTED": "Deliver frames with process_frame(), one at a time",
    "MONITOR:SLOUCH": "Waiting for sustained good posture to clear the alert",
    "DRIFT:RECALIBRATION": "Call begin('good') to recalibrate",
    "DB:SAVED": "Calibration persisted, load(identity) restores it",
}

MAX_VALUE_LENGTH = 100


def get_timestamp() -> str:
    return datetime.now().strftime("%H:%M:%S.%f")[:-3]


def format_value(value: Any) -> str:
    """Render one detail value: metric floats to 3 decimals, enums by value"""
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, float):
        return f"{value:.3f}"

    text = str(value)
    if len(text) > MAX_VALUE_LENGTH:
        text = text[:MAX_VALUE_LENGTH - 3] + "..."
    return text


def next_step_hint(step: str, action: str) -> Optional[str]:
    """Look the hint up by the action's last word, then its first"""
    words = action.split()
    for word in words[-1:] + words[:1]:
        hint = NEXT_STEPS.get(f"{step}:{word.upper()}")
        if hint:
            return hint
    return None


def log_step(step: str, action: str, data: Optional[Dict[str, Any]] = None, banner: bool = False):
    """
    Log one pipeline step

    Args:
        step: Step category (CALIBRATION, MONITOR, DRIFT, DB, etc.)
        action: Description of the action
        data: Optional details, one line each
        banner: Frame the entry with separators (session start/stop)
    """
    emoji, color = STEP_STYLES.get(step, ("🔹", DETAIL_COLOR))
    separator = f"{BOLD}{color}{'=' * 80}{RESET}"

    if banner:
        print(f"\n{separator}")
    print(f"{color}{BOLD}[{get_timestamp()}] {emoji} [{step}]{RESET} {action}")

    for key, value in (data or {}).items():
        print(f"   {DETAIL_COLOR}├─ {key}: {format_value(value)}{RESET}")

    hint = next_step_hint(step, action)
    if hint:
        print(f"   {HINT_COLOR}└─ >>> Next: {hint}{RESET}")
    if banner:
        print(separator)
    print()


def log_calibration(action: str, data: Optional[Dict[str, Any]] = None):
    log_step("CALIBRATION", action, data)


def log_monitor(action: str, data: Optional[Dict[str, Any]] = None, banner: bool = False):
    log_step("MONITOR", action, data, banner)


def log_drift(action: str, data: Optional[Dict[str, Any]] = None):
    log_step("DRIFT", action, data)


def log_db(action: str, data: Optional[Dict[str, Any]] = None):
    log_step("DB", action, data)


def log_debug(action: str, data: Optional[Dict[str, Any]] = None):
    """Per-frame trace, only printed when LOG_LEVEL=DEBUG"""
    if config.LOG_LEVEL == "DEBUG":
        log_step("DEBUG", action, data)


def log_error(action: str, error: Exception, data: Optional[Dict[str, Any]] = None):
    """Log a handled error with its type and message"""
    details = dict(data or {})
    details["error"] = f"{type(error).__name__}: {error}"
    log_step("ERROR", action, details)


def log_success(action: str, data: Optional[Dict[str, Any]] = None):
    log_step("SUCCESS", action, data)


def log_warning(action: str, data: Optional[Dict[str, Any]] = None):
    log_step("WARNING", action, data)
