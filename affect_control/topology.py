"""
Named landmark anchors for the supported detector topologies.

Geometry code never indexes landmarks with numeric literals; it asks a
LandmarkTopology for the anchor it needs. Substituting a detector with a
different numbering means adding a topology here, not editing formulas.
"""

from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class LandmarkTopology:
    """Anchor indices into a detector's landmark array.

    Eye tuples follow the six-point EAR convention:
    (corner_a, top_a, top_b, corner_b, bottom_b, bottom_a), so that
    EAR = (|p1 - p5| + |p2 - p4|) / (2 * |p0 - p3|).
    """

    name: str
    num_points: int

    # Brows
    left_inner_brow: int
    right_inner_brow: int
    nose_bridge: int

    # Eyes
    left_eye: Tuple[int, int, int, int, int, int]
    right_eye: Tuple[int, int, int, int, int, int]

    # Mouth
    mouth_left: int
    mouth_right: int
    outer_lip_top: int
    outer_lip_bottom: int
    inner_lip_top: int
    inner_lip_bottom: int

    def max_index(self) -> int:
        return max(
            self.left_inner_brow,
            self.right_inner_brow,
            self.nose_bridge,
            *self.left_eye,
            *self.right_eye,
            self.mouth_left,
            self.mouth_right,
            self.outer_lip_top,
            self.outer_lip_bottom,
            self.inner_lip_top,
            self.inner_lip_bottom,
        )


# 68-point iBUG / dlib / face-api.js convention
IBUG_68 = LandmarkTopology(
    name="ibug68",
    num_points=68,
    left_inner_brow=21,
    right_inner_brow=22,
    nose_bridge=27,
    left_eye=(36, 37, 38, 39, 40, 41),
    right_eye=(42, 43, 44, 45, 46, 47),
    mouth_left=48,
    mouth_right=54,
    outer_lip_top=51,
    outer_lip_bottom=57,
    inner_lip_top=62,
    inner_lip_bottom=66,
)

# MediaPipe Face Mesh / Face Landmarker (468 + 10 iris points)
MEDIAPIPE_478 = LandmarkTopology(
    name="mediapipe478",
    num_points=478,
    left_inner_brow=107,
    right_inner_brow=336,
    nose_bridge=168,
    left_eye=(33, 160, 158, 133, 153, 144),
    right_eye=(362, 385, 387, 263, 373, 380),
    mouth_left=61,
    mouth_right=291,
    outer_lip_top=0,
    outer_lip_bottom=17,
    inner_lip_top=13,
    inner_lip_bottom=14,
)

TOPOLOGIES: Dict[str, LandmarkTopology] = {
    IBUG_68.name: IBUG_68,
    MEDIAPIPE_478.name: MEDIAPIPE_478,
}


def get_topology(name: str) -> LandmarkTopology:
    """Look up a topology by name.

    Raises:
        ValueError: If the name is unknown.
    """
    try:
        return TOPOLOGIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown landmark topology '{name}'. Available: {sorted(TOPOLOGIES)}"
        ) from None
