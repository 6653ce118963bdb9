# Session Monitor - Temporal debouncing of classifier verdicts into slouch/correction events
from collections import deque
from typing import Callable, Deque, Dict, List, Optional, Union
from slouch_monitor import config
from slouch_monitor import logger
from slouch_monitor import classifier
from slouch_monitor.calibration import PostureCalibrator
from slouch_monitor.models import (
    DetectionStrategy,
    DriftCheckEvent,
    PostureMetrics,
    PostureState,
    PostureVerdict,
    SessionStats,
    SlouchEvent,
)
from slouch_monitor.utils import now_ms, ms_to_minutes

SlouchListener = Callable[[SlouchEvent], None]
CorrectionListener = Callable[[], None]
DriftListener = Callable[[DriftCheckEvent], None]


def new_stats(session_start_ms: Optional[float] = None) -> Dict:
    return {
        "total_frames": 0,
        "slouch_frames": 0,
        "good_frames": 0,
        "alerts": 0,
        "drift_checks": 0,
        "session_start_ms": session_start_ms
    }


class PostureMonitor:
    """
    Debounces per-frame verdicts with frame-count hysteresis

    GOOD -> SLOUCHED after required_slouch_frames consecutive slouch verdicts,
    SLOUCHED -> GOOD after required_good_frames consecutive good verdicts.
    Listeners are called synchronously on the frame-processing thread.
    """

    def __init__(self, calibrator: Optional[PostureCalibrator] = None,
                 strategy: Union[DetectionStrategy, str] = DetectionStrategy.CALIBRATED,
                 sensitivity: Optional[str] = None,
                 drift_profile: Optional[str] = None,
                 required_slouch_frames: Optional[int] = None,
                 required_good_frames: Optional[int] = None,
                 drift_check_interval_ms: Optional[float] = None,
                 clock: Callable[[], float] = now_ms):
        sensitivity = sensitivity or config.MONITOR_SENSITIVITY
        if sensitivity not in config.SENSITIVITY_PRESETS:
            raise ValueError(
                f"Unknown sensitivity '{sensitivity}', expected one of: {', '.join(config.SENSITIVITY_PRESETS)}"
            )
        preset = config.SENSITIVITY_PRESETS[sensitivity]

        drift_profile = drift_profile or config.DEFAULT_DRIFT_PROFILE
        if drift_profile not in config.DRIFT_PROFILES:
            raise ValueError(
                f"Unknown drift profile '{drift_profile}', expected one of: {', '.join(config.DRIFT_PROFILES)}"
            )

        self.calibrator = calibrator
        self.strategy = DetectionStrategy(strategy)
        self.drift_profile = drift_profile
        self.required_slouch_frames = required_slouch_frames or preset["slouch_frames"]
        self.required_good_frames = required_good_frames or preset["good_frames"]
        self.drift_check_interval_ms = (drift_check_interval_ms if drift_check_interval_ms is not None
                                        else config.DRIFT_CHECK_INTERVAL_SECONDS * 1000)
        self.clock = clock

        self.is_monitoring = False
        self.session_baseline: Optional[PostureMetrics] = None
        self.last_drift_check_ms: Optional[float] = None
        self.drift_history: Deque[DriftCheckEvent] = deque(maxlen=config.DRIFT_HISTORY_SIZE)

        self.slouch_streak = 0
        self.good_streak = 0
        self.state = PostureState.GOOD
        self.stats = new_stats()

        self._slouch_listeners: List[SlouchListener] = []
        self._correction_listeners: List[CorrectionListener] = []
        self._drift_listeners: List[DriftListener] = []

    # ------------------------------------------------------------------
    # Listener registration
    # ------------------------------------------------------------------

    def on_slouch(self, callback: SlouchListener):
        self._slouch_listeners.append(callback)

    def on_correction(self, callback: CorrectionListener):
        self._correction_listeners.append(callback)

    def on_drift_check(self, callback: DriftListener):
        self._drift_listeners.append(callback)

    def _notify(self, listeners: List[Callable], *args):
        # A failing listener must not stop frame processing
        for listener in listeners:
            try:
                listener(*args)
            except Exception as e:
                logger.log_error("Listener Failed", e, {"listener": getattr(listener, "__name__", repr(listener))})

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _needs_calibration(self, strategy: DetectionStrategy) -> bool:
        return strategy in (DetectionStrategy.CALIBRATED, DetectionStrategy.BOTH)

    def _good_posture(self) -> Optional[PostureMetrics]:
        if self.calibrator is None or self.calibrator.calibration_data is None:
            return None
        return self.calibrator.calibration_data.good_posture

    def start(self, strategy: Union[DetectionStrategy, str, None] = None) -> bool:
        """
        Start a monitoring session

        Returns:
            False (nothing changed) if the strategy needs a calibration that is missing
        """
        strategy = DetectionStrategy(strategy) if strategy is not None else self.strategy

        if self._needs_calibration(strategy) and (self.calibrator is None or not self.calibrator.is_complete()):
            logger.log_error("Cannot Start Monitoring", RuntimeError("No calibration data"), {
                "strategy": strategy.value
            })
            return False

        now = self.clock()
        self.strategy = strategy
        self.is_monitoring = True
        self.session_baseline = None
        self.last_drift_check_ms = now
        self.drift_history.clear()
        self.slouch_streak = 0
        self.good_streak = 0
        self.state = PostureState.GOOD
        self.stats = new_stats(now)

        logger.log_monitor("Monitoring Started", {
            "strategy": strategy.value,
            "required_slouch_frames": self.required_slouch_frames,
            "required_good_frames": self.required_good_frames,
            "drift_profile": self.drift_profile
        }, banner=True)
        return True

    def stop(self):
        """Halt frame processing; safe to call at any time"""
        was_monitoring = self.is_monitoring
        self.is_monitoring = False

        if was_monitoring:
            stats = self.get_stats()
            logger.log_monitor("Monitoring Stopped", {
                "duration_min": stats.session_duration_min,
                "posture_quality": f"{stats.posture_quality}%",
                "alerts": stats.total_alerts
            }, banner=True)

    def reset_session(self):
        """Clear streaks and alert state (no correction event); re-baseline on next frame"""
        self.session_baseline = None
        self.last_drift_check_ms = self.clock()
        self.slouch_streak = 0
        self.good_streak = 0
        self.state = PostureState.GOOD
        logger.log_monitor("Session Reset", {"strategy": self.strategy.value})

    # ------------------------------------------------------------------
    # Frame processing
    # ------------------------------------------------------------------

    def process_frame(self, metrics: Optional[PostureMetrics]) -> Optional[PostureVerdict]:
        """
        Classify one frame and advance the debounce state machine

        Returns:
            The frame's verdict, or None if the frame was skipped
        """
        if not self.is_monitoring or metrics is None:
            return None

        # Set session baseline on first frame
        if self.session_baseline is None:
            self.session_baseline = metrics
            logger.log_monitor("Session Baseline Set", {
                "head_shoulder_ratio": f"{metrics.head_shoulder_ratio:.3f}",
                "torso_angle": f"{metrics.torso_angle:.1f}"
            })

        verdict = classifier.classify(
            metrics,
            self.strategy,
            good_posture=self._good_posture(),
            session_baseline=self.session_baseline,
            drift_profile=self.drift_profile
        )
        if verdict is None:
            return None

        self.stats["total_frames"] += 1

        if verdict.is_slouching:
            self._record_slouch(verdict)
        else:
            self._record_good()

        logger.log_debug("Frame Classified", {
            "slouching": verdict.is_slouching,
            "slouch_streak": self.slouch_streak,
            "good_streak": self.good_streak,
            "state": self.state.value
        })

        # Periodic drift check
        now = self.clock()
        if now - self.last_drift_check_ms >= self.drift_check_interval_ms:
            self.perform_drift_check(metrics, now)
            self.last_drift_check_ms = now

        return verdict

    def _record_slouch(self, verdict: PostureVerdict):
        self.slouch_streak += 1
        self.good_streak = 0
        self.stats["slouch_frames"] += 1

        if self.slouch_streak >= self.required_slouch_frames and self.state == PostureState.GOOD:
            self.state = PostureState.SLOUCHED
            self.stats["alerts"] += 1

            event = SlouchEvent(
                reason=verdict.reason,
                severity=verdict.severity,
                duration_seconds=self.slouch_streak / config.ASSUMED_FPS,
                deviation=verdict.total_deviation,
                detection_method=verdict.detection_method,
                timestamp_ms=self.clock()
            )
            logger.log_monitor("Sustained Slouch", {
                "reason": event.reason,
                "severity": event.severity.value,
                "duration_s": event.duration_seconds,
                "deviation": event.deviation
            })

            self._notify(self._slouch_listeners, event)

    def _record_good(self):
        self.good_streak += 1
        self.slouch_streak = 0
        self.stats["good_frames"] += 1

        if self.good_streak >= self.required_good_frames and self.state == PostureState.SLOUCHED:
            self.state = PostureState.GOOD
            logger.log_monitor("Posture Corrected", {
                "good_streak_s": self.good_streak / config.ASSUMED_FPS
            })

            self._notify(self._correction_listeners)

    def perform_drift_check(self, metrics: PostureMetrics, timestamp_ms: Optional[float] = None) -> DriftCheckEvent:
        """Diagnostic re-evaluation; never changes GOOD/SLOUCHED state"""
        timestamp_ms = timestamp_ms if timestamp_ms is not None else self.clock()
        baseline = self.session_baseline or metrics
        drift = classifier.analyze_drift(metrics, baseline, self.drift_profile)

        recalibration = None
        if self._good_posture() is not None:
            recalibration = self.calibrator.check_drift(metrics)

        event = DriftCheckEvent(
            timestamp_ms=timestamp_ms,
            is_drifting=drift.is_slouching,
            reason=drift.reason,
            severity=drift.severity,
            deviation=drift.total_deviation,
            drift_percentages=drift.deviations,
            recalibration=recalibration
        )

        self.drift_history.append(event)
        self.stats["drift_checks"] += 1

        logger.log_drift("Periodic Drift Check", {
            "drifting": event.is_drifting,
            "severity": event.severity.value,
            "deviation": f"{event.deviation:.1f}",
            "recalibration": recalibration.reason if recalibration else "n/a"
        })

        self._notify(self._drift_listeners, event)

        return event

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self) -> SessionStats:
        session_start_ms = self.stats["session_start_ms"]
        session_duration = int(ms_to_minutes(self.clock() - session_start_ms)) if session_start_ms is not None else 0

        total_frames = self.stats["total_frames"]
        posture_quality = round((self.stats["good_frames"] / total_frames) * 100, 1) if total_frames > 0 else 0.0

        return SessionStats(
            session_duration_min=session_duration,
            posture_quality=posture_quality,
            total_alerts=self.stats["alerts"],
            current_state=self.state,
            total_frames=total_frames,
            slouch_frames=self.stats["slouch_frames"],
            good_frames=self.stats["good_frames"],
            drift_checks=self.stats["drift_checks"]
        )
