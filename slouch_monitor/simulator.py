"""
Synthetic landmark stream

Builds geometrically consistent LandmarkSets for a parameterised seated
posture, with an optional bounded random walk on every parameter so a stream
looks like a person who keeps moving a little.

Usage:
    sim = PostureSimulator(SLOUCHED_POSTURE, jitter=0.2, seed=7)
    for landmarks in sim.frames(150):
        session.process_incoming_frame(landmarks)
"""

import math
import random
from typing import Dict, Iterator, Optional
from slouch_monitor.models import Landmark, LandmarkSet

# Fixed body proportions (normalized image units, y grows downwards)
HIP_MIDPOINT = (0.5, 0.80, 0.0)
TORSO_LENGTH = 0.32
NECK_LENGTH = 0.14
SHOULDER_WIDTH = 0.24
HIP_WIDTH = 0.18
EAR_SPACING = 0.10
NOSE_DISTANCE = 0.06

# Posture parameters
GOOD_POSTURE = {
    "torso_lean_deg": 0.0,   # Spine tilt from vertical
    "head_drop": 0.0,        # Neck shortening as the head sinks
    "head_forward": 0.0,     # Horizontal head offset from the shoulders
    "depth_lean": 0.05,      # Shoulders towards camera relative to hips
    "shoulder_tilt": 0.0,    # Left/right shoulder height difference
    "head_tilt_deg": 10.0    # Nose direction from straight up
}

SLOUCHED_POSTURE = {
    "torso_lean_deg": 22.0,
    "head_drop": 0.05,
    "head_forward": 0.04,
    "depth_lean": 0.12,
    "shoulder_tilt": 0.03,
    "head_tilt_deg": 40.0
}

# Random walk: max change per frame, per unit of jitter
PARAMETER_STEP_MAX = {
    "torso_lean_deg": 1.0,
    "head_drop": 0.002,
    "head_forward": 0.002,
    "depth_lean": 0.002,
    "shoulder_tilt": 0.001,
    "head_tilt_deg": 1.0
}
WALK_SPREAD = 3  # Wander at most this many max-steps away from the target


def build_landmarks(params: Dict[str, float], visibility: float = 0.95) -> LandmarkSet:
    """Place the seven key points for one set of posture parameters"""
    hx, hy, hz = HIP_MIDPOINT
    lean = math.radians(params["torso_lean_deg"])

    sx = hx + TORSO_LENGTH * math.sin(lean)
    sy = hy - TORSO_LENGTH * math.cos(lean)
    sz = hz - params["depth_lean"]

    tilt = params["shoulder_tilt"]
    left_shoulder = Landmark(x=sx - SHOULDER_WIDTH / 2, y=sy + tilt / 2, z=sz, visibility=visibility)
    right_shoulder = Landmark(x=sx + SHOULDER_WIDTH / 2, y=sy - tilt / 2, z=sz, visibility=visibility)

    left_hip = Landmark(x=hx - HIP_WIDTH / 2, y=hy, z=hz, visibility=visibility)
    right_hip = Landmark(x=hx + HIP_WIDTH / 2, y=hy, z=hz, visibility=visibility)

    ex = sx + params["head_forward"]
    ey = sy - (NECK_LENGTH - params["head_drop"])
    ez = sz - params["head_forward"]
    left_ear = Landmark(x=ex - EAR_SPACING / 2, y=ey, z=ez, visibility=visibility)
    right_ear = Landmark(x=ex + EAR_SPACING / 2, y=ey, z=ez, visibility=visibility)

    head_tilt = math.radians(params["head_tilt_deg"])
    nose = Landmark(
        x=ex + NOSE_DISTANCE * math.sin(head_tilt),
        y=ey - NOSE_DISTANCE * math.cos(head_tilt),
        z=ez,
        visibility=visibility
    )

    return LandmarkSet(
        nose=nose,
        left_shoulder=left_shoulder,
        right_shoulder=right_shoulder,
        left_hip=left_hip,
        right_hip=right_hip,
        left_ear=left_ear,
        right_ear=right_ear
    )


class PostureSimulator:
    """Tracks current posture parameters with a bounded random walk"""

    def __init__(self, posture: Dict[str, float], jitter: float = 0.0,
                 seed: Optional[int] = None, visibility: float = 0.95):
        self.target = dict(posture)
        self.current = dict(posture)
        self.jitter = jitter
        self.visibility = visibility
        self.rng = random.Random(seed)

    def set_posture(self, posture: Dict[str, float]):
        """Move the walk's target (the current values jump there)"""
        self.target = dict(posture)
        self.current = dict(posture)

    def next_params(self) -> Dict[str, float]:
        """Generate next set of parameters using random walk"""
        if self.jitter <= 0:
            return dict(self.current)

        for name, target in self.target.items():
            step = PARAMETER_STEP_MAX[name] * self.jitter
            delta = self.rng.uniform(-step, step)
            new_value = self.current[name] + delta

            # Clamp to a band around the target posture
            spread = step * WALK_SPREAD
            new_value = max(target - spread, min(target + spread, new_value))

            self.current[name] = new_value

        return dict(self.current)

    def next_frame(self) -> LandmarkSet:
        return build_landmarks(self.next_params(), self.visibility)

    def frames(self, count: int) -> Iterator[LandmarkSet]:
        for _ in range(count):
            yield self.next_frame()
