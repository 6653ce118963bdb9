# Helper utilities
import time


def now_ms() -> float:
    return time.time() * 1000


def ms_to_minutes(ms: float) -> float:
    return ms / 1000 / 60
