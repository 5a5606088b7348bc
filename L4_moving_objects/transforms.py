# =============================================================================
# L4 Moving Objects - Coordinate Transforms
# =============================================================================
# Poses, polar/Cartesian helpers and the transform provider interface the
# bank uses to express objects in the map, fixed and base frames.
# =============================================================================

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from .errors import TransformUnavailable


def polar_to_cartesian(distance: float, angle: float) -> np.ndarray:
    """
    Converts a range and bearing in the sensor plane to a 3D point.

    Reference coordinate system (relation to the sensor):
      x: forward, y: left, z: up
    """
    return np.array([distance * np.cos(angle), distance * np.sin(angle), 0.0])


def law_of_cosines_width(range_a: float, range_b: float, covered_angle: float) -> float:
    """
    Distance between two points seen at ranges range_a and range_b,
    covered_angle apart.
    """
    squared = range_a * range_a + range_b * range_b \
        - 2.0 * range_a * range_b * np.cos(covered_angle)
    return float(np.sqrt(max(squared, 0.0)))


@dataclass(frozen=True)
class Pose:
    """
    Rigid transform from a source frame into a target frame.

    Attributes:
        translation: Origin of the source frame in the target frame [x, y, z]
        rotation: Orientation quaternion [x, y, z, w]
    """
    translation: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)
    _rotation: Rotation = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_rotation", Rotation.from_quat(self.rotation))

    @classmethod
    def identity(cls) -> "Pose":
        return cls()

    @classmethod
    def from_xy_yaw(cls, x: float, y: float, yaw: float, z: float = 0.0) -> "Pose":
        """Planar pose: position in the target frame and heading in radians."""
        quat = Rotation.from_euler("z", yaw).as_quat()
        return cls(translation=(x, y, z), rotation=tuple(quat))

    def apply(self, point: np.ndarray) -> np.ndarray:
        """
        Transforms a point from the source frame to the target frame.

        Args:
            point: Position in source frame [x, y, z]

        Returns:
            Position in target frame [x, y, z]
        """
        return self._rotation.apply(np.asarray(point, dtype=float)) + np.asarray(self.translation)

    def inverse(self) -> "Pose":
        inv = self._rotation.inv()
        translation = -inv.apply(np.asarray(self.translation, dtype=float))
        return Pose(translation=tuple(translation), rotation=tuple(inv.as_quat()))

    def compose(self, other: "Pose") -> "Pose":
        """self * other: apply other first, then self."""
        rotation = self._rotation * other._rotation
        translation = self.apply(np.asarray(other.translation, dtype=float))
        return Pose(translation=tuple(translation), rotation=tuple(rotation.as_quat()))


# =============================================================================
# Transform Provider
# =============================================================================

class TransformProvider(ABC):
    """
    Source of frame transforms, injected into the bank.

    Implementations may block up to `timeout` seconds and must raise
    TransformUnavailable when no transform can be produced in time.
    """

    @abstractmethod
    def lookup(self, target_frame: str, source_frame: str,
               stamp: float, timeout: float) -> Pose:
        """Pose of source_frame expressed in target_frame at time stamp."""


class StaticTransformProvider(TransformProvider):
    """
    Transform provider with one fixed pose per (target, source) pair.

    Lookups of pairs that were never registered raise TransformUnavailable.
    The pose of a frame relative to itself is always the identity.
    """

    def __init__(self, poses: Dict[Tuple[str, str], Pose] = None):
        self.poses: Dict[Tuple[str, str], Pose] = dict(poses or {})

    def set_transform(self, target_frame: str, source_frame: str, pose: Pose):
        self.poses[(target_frame, source_frame)] = pose

    def lookup(self, target_frame: str, source_frame: str,
               stamp: float, timeout: float) -> Pose:
        if target_frame == source_frame:
            return Pose.identity()
        try:
            return self.poses[(target_frame, source_frame)]
        except KeyError:
            raise TransformUnavailable(target_frame, source_frame, stamp,
                                       "frame pair not registered") from None


class NullTransformProvider(TransformProvider):
    """Provider without any transform data; every lookup fails."""

    def lookup(self, target_frame: str, source_frame: str,
               stamp: float, timeout: float) -> Pose:
        raise TransformUnavailable(target_frame, source_frame, stamp, "no transform data")
