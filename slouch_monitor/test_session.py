"""End-to-end routing: simulated detector frames through calibration and monitoring"""
import math
import pytest
from slouch_monitor.calibration import PostureCalibrator
from slouch_monitor.models import Landmark, PoseKind, PostureState
from slouch_monitor.monitor import PostureMonitor
from slouch_monitor.session import PostureSession
from slouch_monitor.simulator import GOOD_POSTURE, SLOUCHED_POSTURE, PostureSimulator, build_landmarks


@pytest.fixture
def session(store, clock):
    calibrator = PostureCalibrator(storage=store, identity="alice")
    monitor = PostureMonitor(calibrator=calibrator, sensitivity="balanced", clock=clock)
    return PostureSession(calibrator, monitor)


def calibrate(session, jitter=0.0):
    for pose_kind, posture, seed in ((PoseKind.GOOD, GOOD_POSTURE, 1), (PoseKind.SLOUCHED, SLOUCHED_POSTURE, 2)):
        session.start_calibration(pose_kind)
        sim = PostureSimulator(posture, jitter=jitter, seed=seed)
        for landmarks in sim.frames(session.calibrator.required_frames):
            result = session.process_incoming_frame(landmarks)
            assert result["status"] == "calibrating"
        assert result["progress"].complete is True


def test_no_person_and_degenerate_frames(session):
    assert session.process_incoming_frame(None)["status"] == "no_person"
    assert session.process_pose_results([])["status"] == "no_person"

    broken = build_landmarks(GOOD_POSTURE).model_copy(update={"nose": None})
    assert session.process_incoming_frame(broken)["status"] == "degenerate"
    assert session.frames_received == 3


def test_idle_before_monitoring(session):
    result = session.process_incoming_frame(build_landmarks(GOOD_POSTURE))
    assert result == {"success": False, "status": "idle"}


def test_calibration_reports_lighting(session):
    session.start_calibration("good")
    result = session.process_incoming_frame(build_landmarks(GOOD_POSTURE, visibility=0.95))

    assert result["success"] is True
    assert result["progress"].frames_collected == 1
    assert result["lighting"]["quality"] == "good"


def test_calibrate_then_detect_sustained_slouch(session):
    calibrate(session, jitter=0.2)
    assert session.calibrator.is_complete()
    assert session.calibrator.save() is True

    slouches, corrections = [], []
    session.monitor.on_slouch(slouches.append)
    session.monitor.on_correction(lambda: corrections.append(True))
    assert session.start_monitoring() is True

    good = PostureSimulator(GOOD_POSTURE, jitter=0.2, seed=3)
    for landmarks in good.frames(20):
        result = session.process_incoming_frame(landmarks)
        assert result["status"] == "monitored"
        assert result["verdict"].is_slouching is False

    slouched = PostureSimulator(SLOUCHED_POSTURE, jitter=0.2, seed=4)
    for landmarks in slouched.frames(100):
        result = session.process_incoming_frame(landmarks)
    assert result["state"] == PostureState.SLOUCHED
    assert len(slouches) == 1
    assert "hunched spine" in slouches[0].reason

    for landmarks in good.frames(10):
        result = session.process_incoming_frame(landmarks)
    assert result["state"] == PostureState.GOOD
    assert corrections == [True]

    session.stop()
    assert session.process_incoming_frame(good.next_frame())["status"] == "idle"


def test_reference_check_before_monitoring(session):
    calibrate(session)
    check = session.start_reference_check()
    session.start_monitoring()

    sim = PostureSimulator(GOOD_POSTURE)
    for landmarks in sim.frames(check.required_frames):
        result = session.process_incoming_frame(landmarks)
        assert result["status"] == "reference_check"

    assert result["progress"].complete is True
    assert result["result"].needs_recalibration is False
    assert session.process_incoming_frame(sim.next_frame())["status"] == "monitored"


def test_process_pose_results_maps_mediapipe_list(session):
    session.start_calibration("good")
    landmarks = build_landmarks(GOOD_POSTURE)
    pose = [Landmark(x=0.0, y=0.0, visibility=0.1)] * 33
    pose[0] = landmarks.nose
    pose[7], pose[8] = landmarks.left_ear, landmarks.right_ear
    pose[11], pose[12] = landmarks.left_shoulder, landmarks.right_shoulder
    pose[23], pose[24] = landmarks.left_hip, landmarks.right_hip

    result = session.process_pose_results(pose, timestamp_ms=5.0)
    assert result["status"] == "calibrating"
    assert session.calibrator.calibration_frames[0].timestamp_ms == 5.0


def test_malformed_detector_frames_leave_monitoring_untouched(session):
    calibrate(session)
    assert session.start_monitoring() is True
    assert session.process_incoming_frame(build_landmarks(GOOD_POSTURE))["status"] == "monitored"
    before = session.monitor.get_stats()

    upright = build_landmarks(GOOD_POSTURE)
    malformed = [
        upright.model_copy(update={"left_ear": Landmark(x=math.nan, y=0.3)}),
        upright.model_copy(update={"nose": Landmark(x=math.inf, y=0.5)}),
        upright.model_copy(update={"right_hip": Landmark(x=0.59, y=-math.inf)}),
        upright.model_copy(update={"left_ear": Landmark(x=1e200, y=1e200)}),
    ]
    for landmarks in malformed:
        assert session.process_incoming_frame(landmarks)["status"] == "degenerate"

    pose = [{"x": 0.5, "y": 0.5, "z": 0.0, "visibility": 0.9} for _ in range(33)]
    del pose[12]["x"]
    assert session.process_pose_results(pose)["status"] == "degenerate"
    assert session.process_pose_results([None] * 33)["status"] == "degenerate"
    assert session.process_pose_results(None)["status"] == "no_person"

    assert session.monitor.get_stats() == before
    assert session.monitor.state == PostureState.GOOD


def test_detector_visibility_above_one_is_accepted(session):
    session.start_calibration("good")
    landmarks = build_landmarks(GOOD_POSTURE)
    pose = [Landmark(x=0.0, y=0.0, visibility=0.1)] * 33
    for name, index in (("nose", 0), ("left_ear", 7), ("right_ear", 8), ("left_shoulder", 11),
                        ("right_shoulder", 12), ("left_hip", 23), ("right_hip", 24)):
        point = getattr(landmarks, name)
        pose[index] = {"x": point.x, "y": point.y, "z": point.z, "visibility": 1.0000001}

    result = session.process_pose_results(pose)
    assert result["status"] == "calibrating"
    assert result["lighting"]["quality"] == "good"
