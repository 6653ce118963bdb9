# Posture Classifier - Calibrated comparison and baseline drift (Procedural, pure functions)
from typing import Dict, List, Optional, Tuple, Union
from slouch_monitor import config
from slouch_monitor.models import DetectionStrategy, PostureMetrics, PostureVerdict, Severity


def _safe_divisor(value: float) -> float:
    return value if value > config.DEVIATION_FLOOR else config.DEVIATION_FLOOR


def severity_for(total_deviation: float, cutoffs: Dict[str, float]) -> Severity:
    """Map a summed deviation score to a severity label"""
    if total_deviation > cutoffs["severe"]:
        return Severity.SEVERE
    elif total_deviation > cutoffs["moderate"]:
        return Severity.MODERATE
    return Severity.MILD


def is_slouching_verdict(issue_count: int, total_deviation: float, verdict_rules: Dict) -> bool:
    enough_issues = issue_count >= verdict_rules["min_issues"]
    threshold = verdict_rules.get("deviation_threshold")
    if threshold is None:
        return enough_issues

    enough_deviation = total_deviation > threshold
    if verdict_rules.get("combine", "any") == "all":
        return enough_issues and enough_deviation
    return enough_issues or enough_deviation


def _calibrated_feature_check(current: float, baseline: float, rule: Dict) -> Tuple[bool, float, float]:
    """
    Returns:
        (exceeded, deviation, tolerance) for one feature
    """
    deviation = abs(current - baseline)
    mode = rule["mode"]

    if mode == "relative":
        tolerance = baseline * rule["tolerance"]
        exceeded = deviation > tolerance
    elif mode == "slack":
        tolerance = baseline + rule["tolerance"]
        exceeded = current > tolerance
    else:
        tolerance = rule["tolerance"]
        exceeded = deviation > tolerance

    return exceeded, deviation, tolerance


def analyze_vs_calibration(current: PostureMetrics, good_posture: PostureMetrics,
                           rules: Optional[Dict] = None,
                           verdict_rules: Optional[Dict] = None) -> PostureVerdict:
    """
    Strategy A: compare the current frame to the calibrated good posture

    Each exceeded tolerance adds a named issue and a weighted score
    (deviation / tolerance) * weight.

    Args:
        current: Metrics of the current frame
        good_posture: Calibrated good-posture baseline
        rules: Per-feature tolerance table (default config.CALIBRATED_RULES)
        verdict_rules: Issue/deviation thresholds and severity cutoffs

    Returns:
        PostureVerdict with issues, severity and total deviation
    """
    rules = rules or config.CALIBRATED_RULES
    verdict_rules = verdict_rules or config.CALIBRATED_VERDICT

    issues: List[str] = []
    deviations: Dict[str, float] = {}
    total_deviation = 0.0

    for feature, rule in rules.items():
        exceeded, deviation, tolerance = _calibrated_feature_check(
            getattr(current, feature), getattr(good_posture, feature), rule
        )
        deviations[feature] = deviation

        if exceeded:
            issues.append(rule["label"])
            total_deviation += (deviation / _safe_divisor(tolerance + rule["smoothing"])) * rule["weight"]

    is_slouching = is_slouching_verdict(len(issues), total_deviation, verdict_rules)

    return PostureVerdict(
        is_slouching=is_slouching,
        issues=issues,
        reason=", ".join(issues) if is_slouching else None,
        severity=severity_for(total_deviation, verdict_rules["severity"]),
        total_deviation=round(total_deviation, 1),
        detection_method=DetectionStrategy.CALIBRATED,
        deviations=deviations
    )


def feature_change(current: float, baseline: float, rule: Dict) -> float:
    """Signed change from baseline: percent or degrees depending on the rule"""
    if rule["mode"] == "degrees":
        return current - baseline
    return ((current - baseline) / _safe_divisor(baseline + rule["smoothing"])) * 100


def analyze_drift(current: PostureMetrics, baseline: PostureMetrics,
                  profile: Union[str, Dict, None] = None) -> PostureVerdict:
    """
    Strategy B: compare the current frame to the session-start baseline

    Args:
        current: Metrics of the current frame
        baseline: Session baseline (first valid frame)
        profile: Name in config.DRIFT_PROFILES or a profile dict

    Returns:
        PostureVerdict; deviations hold the per-feature change values
    """
    if profile is None:
        profile = config.DEFAULT_DRIFT_PROFILE
    if isinstance(profile, str):
        profile = config.DRIFT_PROFILES[profile]

    issues: List[str] = []
    changes: Dict[str, float] = {}
    total_deviation = 0.0

    for feature, rule in profile["rules"].items():
        change = feature_change(getattr(current, feature), getattr(baseline, feature), rule)
        changes[feature] = round(change, 1)

        magnitude = change if rule["direction"] == "increase" else abs(change)
        if magnitude > rule["threshold"]:
            label = rule["label"]
            if feature == "head_shoulder_ratio" and rule["direction"] == "both":
                label = f"{label} {change:.1f}%"
            issues.append(label)
            total_deviation += magnitude * rule["scale"]

    is_slouching = is_slouching_verdict(len(issues), total_deviation, profile)

    return PostureVerdict(
        is_slouching=is_slouching,
        issues=issues,
        reason=", ".join(issues) if is_slouching else None,
        severity=severity_for(total_deviation, profile["severity"]),
        total_deviation=round(total_deviation, 1),
        detection_method=DetectionStrategy.DRIFT,
        deviations=changes
    )


def combine_verdicts(calibrated: PostureVerdict, drift: PostureVerdict) -> PostureVerdict:
    """
    "both" strategy: slouching if either strategy fires

    The calibrated verdict supplies severity and deviation when it fires.
    """
    is_slouching = calibrated.is_slouching or drift.is_slouching

    reasons = [v.reason for v in (calibrated, drift) if v.is_slouching and v.reason]
    lead = calibrated if calibrated.is_slouching or not drift.is_slouching else drift

    deviations = {f"calibrated.{k}": v for k, v in calibrated.deviations.items()}
    deviations.update({f"drift.{k}": v for k, v in drift.deviations.items()})

    return PostureVerdict(
        is_slouching=is_slouching,
        issues=calibrated.issues + drift.issues,
        reason=", ".join(reasons) if reasons else None,
        severity=lead.severity,
        total_deviation=lead.total_deviation,
        detection_method=DetectionStrategy.BOTH,
        deviations=deviations
    )


def classify(current: Optional[PostureMetrics],
             strategy: Union[DetectionStrategy, str],
             good_posture: Optional[PostureMetrics] = None,
             session_baseline: Optional[PostureMetrics] = None,
             drift_profile: Union[str, Dict, None] = None) -> Optional[PostureVerdict]:
    """
    Run the selected strategy

    Returns:
        PostureVerdict, or None when a required baseline is missing
    """
    if current is None:
        return None

    strategy = DetectionStrategy(strategy)

    if strategy == DetectionStrategy.CALIBRATED:
        if good_posture is None:
            return None
        return analyze_vs_calibration(current, good_posture)

    if strategy == DetectionStrategy.DRIFT:
        if session_baseline is None:
            return None
        return analyze_drift(current, session_baseline, drift_profile)

    if good_posture is None or session_baseline is None:
        return None
    return combine_verdicts(
        analyze_vs_calibration(current, good_posture),
        analyze_drift(current, session_baseline, drift_profile)
    )
