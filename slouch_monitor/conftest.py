"""Shared fixtures: canonical metrics, in-memory store, controllable clock"""
import pytest
from slouch_monitor.calibration import PostureCalibrator
from slouch_monitor.database import KeyValueStore
from slouch_monitor.models import PoseKind, PostureMetrics

GOOD_VALUES = {
    "head_shoulder_ratio": 0.30,
    "shoulder_asymmetry": 0.02,
    "torso_angle": 5.0,
    "neck_angle": 10.0,
    "forward_lean": 0.10,
    "shoulder_width": 0.25,
}

SLOUCHED_VALUES = dict(GOOD_VALUES, head_shoulder_ratio=0.45, torso_angle=25.0)


class FakeClock:
    """Millisecond clock advanced by hand"""

    def __init__(self, start_ms: float = 1_000_000.0):
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float):
        self.now += ms


@pytest.fixture
def make_metrics():
    def _make(**overrides) -> PostureMetrics:
        values = dict(GOOD_VALUES, timestamp_ms=0.0)
        values.update(overrides)
        return PostureMetrics(**values)
    return _make


@pytest.fixture
def good_metrics(make_metrics):
    return make_metrics()


@pytest.fixture
def slouched_metrics(make_metrics):
    return make_metrics(**SLOUCHED_VALUES)


@pytest.fixture
def store():
    return KeyValueStore("sqlite://")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def calibrator(store):
    return PostureCalibrator(storage=store, identity="alice")


@pytest.fixture
def calibrated(calibrator, good_metrics, slouched_metrics):
    """Calibrator with both baselines collected from identical frames"""
    calibrator.begin(PoseKind.GOOD)
    for _ in range(calibrator.required_frames):
        calibrator.add_frame(good_metrics)

    calibrator.begin(PoseKind.SLOUCHED)
    for _ in range(calibrator.required_frames):
        calibrator.add_frame(slouched_metrics)

    return calibrator
