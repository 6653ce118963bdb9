"""Classifier strategies: calibrated comparison, session drift and their combination"""
import pytest
from slouch_monitor import classifier, config
from slouch_monitor.models import DetectionStrategy, Severity


# ============================================================================
# CALIBRATED COMPARISON
# ============================================================================

def test_matching_posture_is_good(good_metrics):
    verdict = classifier.analyze_vs_calibration(good_metrics, good_metrics)

    assert verdict.is_slouching is False
    assert verdict.issues == []
    assert verdict.reason is None
    assert verdict.total_deviation == 0.0
    assert verdict.severity == Severity.MILD
    assert verdict.detection_method == DetectionStrategy.CALIBRATED


def test_slouched_baseline_scenario(good_metrics, slouched_metrics):
    verdict = classifier.analyze_vs_calibration(slouched_metrics, good_metrics)

    # head: 0.15 / 0.06 * 30 = 75, torso: 20 / 18 * 25 = 27.8
    assert verdict.is_slouching is True
    assert verdict.issues == ["forward head posture", "hunched spine"]
    assert verdict.reason == "forward head posture, hunched spine"
    assert verdict.total_deviation == pytest.approx(102.8, abs=0.05)
    assert verdict.severity == Severity.SEVERE


def test_single_issue_below_deviation_threshold(good_metrics, make_metrics):
    verdict = classifier.analyze_vs_calibration(make_metrics(head_shoulder_ratio=0.365), good_metrics)

    assert verdict.issues == ["forward head posture"]
    assert verdict.total_deviation == pytest.approx(32.5, abs=0.05)
    assert verdict.is_slouching is False


def test_single_issue_above_deviation_threshold(good_metrics, make_metrics):
    verdict = classifier.analyze_vs_calibration(make_metrics(head_shoulder_ratio=0.39), good_metrics)

    assert verdict.total_deviation == pytest.approx(45.0, abs=0.05)
    assert verdict.is_slouching is True
    assert verdict.severity == Severity.MODERATE


def test_two_small_issues_are_enough(good_metrics, make_metrics):
    current = make_metrics(shoulder_asymmetry=0.08, forward_lean=0.14)
    verdict = classifier.analyze_vs_calibration(current, good_metrics)

    # asymmetry: 0.06 / (0.07 + 0.01) * 20 = 15, lean: 0.04 / (0.03 + 0.01) * 15 = 15
    assert verdict.issues == ["uneven shoulders", "leaning into screen"]
    assert verdict.total_deviation == pytest.approx(30.0, abs=0.05)
    assert verdict.is_slouching is True
    assert verdict.severity == Severity.MILD


def test_shoulder_asymmetry_uses_fixed_slack(good_metrics, make_metrics):
    within = classifier.analyze_vs_calibration(make_metrics(shoulder_asymmetry=0.069), good_metrics)
    beyond = classifier.analyze_vs_calibration(make_metrics(shoulder_asymmetry=0.071), good_metrics)

    assert "uneven shoulders" not in within.issues
    assert "uneven shoulders" in beyond.issues


def test_angle_tolerances_are_in_degrees(good_metrics, make_metrics):
    verdict = classifier.analyze_vs_calibration(make_metrics(torso_angle=22.0, neck_angle=29.0), good_metrics)
    assert verdict.issues == []

    verdict = classifier.analyze_vs_calibration(make_metrics(torso_angle=24.0, neck_angle=31.0), good_metrics)
    assert verdict.issues == ["hunched spine", "head tilted down"]
    assert verdict.is_slouching is True


def test_zero_baseline_does_not_raise(good_metrics, make_metrics):
    baseline = make_metrics(forward_lean=0.0, head_shoulder_ratio=0.0)
    verdict = classifier.analyze_vs_calibration(good_metrics, baseline)

    assert "leaning into screen" in verdict.issues
    assert "forward head posture" in verdict.issues
    assert verdict.is_slouching is True


# ============================================================================
# SESSION DRIFT
# ============================================================================

def test_relaxed_drift_needs_two_issues(good_metrics, make_metrics):
    verdict = classifier.analyze_drift(make_metrics(head_shoulder_ratio=0.60), good_metrics, "relaxed")

    assert verdict.issues == ["head forward"]
    assert verdict.is_slouching is False


def test_relaxed_drift_flags_sustained_slouch(good_metrics, make_metrics):
    current = make_metrics(head_shoulder_ratio=0.45, torso_angle=28.0)
    verdict = classifier.analyze_drift(current, good_metrics, "relaxed")

    # head +50%, torso 23 degrees
    assert verdict.issues == ["head forward", "hunched over"]
    assert verdict.total_deviation == pytest.approx(73.0, abs=0.05)
    assert verdict.is_slouching is True
    assert verdict.severity == Severity.MODERATE
    assert verdict.detection_method == DetectionStrategy.DRIFT
    assert verdict.deviations["head_shoulder_ratio"] == pytest.approx(50.0)


def test_relaxed_drift_ignores_head_moving_back(good_metrics, make_metrics):
    verdict = classifier.analyze_drift(make_metrics(head_shoulder_ratio=0.20), good_metrics, "relaxed")
    assert verdict.issues == []


def test_standard_drift_flags_single_indicator(good_metrics, make_metrics):
    verdict = classifier.analyze_drift(make_metrics(head_shoulder_ratio=0.21), good_metrics, "standard")

    assert verdict.is_slouching is True
    assert verdict.reason == "head position drifted -30.0%"


def test_drift_profile_requires_total_deviation(good_metrics, make_metrics):
    profile = dict(config.DRIFT_PROFILES["relaxed"], deviation_threshold=100)
    current = make_metrics(head_shoulder_ratio=0.45, torso_angle=28.0)

    verdict = classifier.analyze_drift(current, good_metrics, profile)
    assert len(verdict.issues) == 2
    assert verdict.is_slouching is False


def test_drift_against_itself_is_good(good_metrics):
    verdict = classifier.analyze_drift(good_metrics, good_metrics)
    assert verdict.is_slouching is False
    assert verdict.total_deviation == 0.0


# ============================================================================
# STRATEGY SELECTION
# ============================================================================

def test_both_prefers_calibrated_severity(good_metrics, slouched_metrics):
    verdict = classifier.classify(
        slouched_metrics, DetectionStrategy.BOTH,
        good_posture=good_metrics, session_baseline=slouched_metrics
    )

    assert verdict.is_slouching is True
    assert verdict.detection_method == DetectionStrategy.BOTH
    assert verdict.reason == "forward head posture, hunched spine"
    assert verdict.severity == Severity.SEVERE


def test_both_fires_on_drift_alone(good_metrics, make_metrics):
    session_baseline = make_metrics(head_shoulder_ratio=0.20, torso_angle=30.0)
    verdict = classifier.classify(
        good_metrics, "both",
        good_posture=good_metrics, session_baseline=session_baseline
    )

    # head +50%, torso 25 degrees against the session start
    assert verdict.is_slouching is True
    assert verdict.reason == "head forward, hunched over"
    assert verdict.total_deviation == pytest.approx(75.0, abs=0.05)
    assert verdict.severity == Severity.MODERATE


def test_both_concatenates_reasons(good_metrics, slouched_metrics, make_metrics):
    session_baseline = make_metrics(head_shoulder_ratio=0.30, torso_angle=0.0)
    verdict = classifier.classify(
        make_metrics(head_shoulder_ratio=0.45, torso_angle=25.0), "both",
        good_posture=good_metrics, session_baseline=session_baseline
    )

    assert verdict.reason == "forward head posture, hunched spine, head forward, hunched over"
    assert verdict.severity == Severity.SEVERE


def test_classify_without_required_baseline(good_metrics):
    assert classifier.classify(good_metrics, "calibrated") is None
    assert classifier.classify(good_metrics, "drift") is None
    assert classifier.classify(good_metrics, "both", good_posture=good_metrics) is None
    assert classifier.classify(None, "drift", session_baseline=good_metrics) is None


def test_classify_is_repeatable(good_metrics, slouched_metrics):
    first = classifier.classify(slouched_metrics, "calibrated", good_posture=good_metrics)
    second = classifier.classify(slouched_metrics, "calibrated", good_posture=good_metrics)
    assert first == second
