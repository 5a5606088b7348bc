# =============================================================================
# L4 Moving Objects - Types and Data Structures
# =============================================================================
# Sensor messages consumed by the bank, intermediate results of the
# segmentation and tracking stages, and the objects handed to the sinks.
# =============================================================================

import numpy as np
from dataclasses import dataclass, field
from typing import Dict, List, Tuple, Union


# =============================================================================
# Sensor Messages
# =============================================================================

@dataclass
class LaserScan:
    """A 2D range scan that already has one range per angular index."""
    stamp: float                # Acquisition time (seconds)
    frame_id: str               # Sensor frame
    angle_min: float            # Angle of the first range (radians)
    angle_max: float            # Angle of the last range (radians)
    angle_increment: float      # Angular distance between ranges (radians)
    range_min: float            # Smallest valid range (meters)
    range_max: float            # Largest valid range (meters)
    ranges: np.ndarray          # Range per angular index (meters)
    time_increment: float = 0.0
    scan_time: float = 0.0


@dataclass(frozen=True)
class PointField:
    """One entry of a point cloud field catalog."""
    name: str
    offset: int                 # Byte offset inside a point record
    datatype: int               # Datatype code, see pointcloud.py
    count: int = 1


@dataclass
class PointCloud:
    """A point cloud as fixed-stride binary records plus a field catalog."""
    stamp: float
    frame_id: str
    height: int                 # Number of rows
    width: int                  # Points per row
    fields: List[PointField]
    is_bigendian: bool
    point_step: int             # Bytes per point record
    row_step: int               # Bytes per row
    data: bytes
    is_dense: bool = True


# =============================================================================
# Segmentation and Tracking
# =============================================================================

@dataclass(frozen=True)
class Segment:
    """A contiguous angular run of ranges that passed the edge-continuity rule."""
    index_min: int
    index_max: int
    range_sum: float
    range_at_min: float         # Range at index_min
    range_at_max: float         # Range at index_max
    closest_index: int          # Index of the smallest range
    closest_range: float

    @property
    def index_mean(self) -> int:
        return (self.index_min + self.index_max) // 2

    @property
    def width(self) -> int:
        """Width in points."""
        return self.index_max - self.index_min + 1

    @property
    def mean_range(self) -> float:
        return self.range_sum / self.width


@dataclass(frozen=True)
class TrackFound:
    """An object was followed through the whole bank."""
    segment: Segment            # Last matched segment (oldest slot reached)
    slot: int                   # Bank slot holding that segment
    stamp: float                # Timestamp of that slot
    misses: int = 0             # Consecutive misses at the end of the walk


@dataclass(frozen=True)
class TrackNotFound:
    """Tracking gave up after too many consecutive misses."""
    slot: int                   # Slot at which the walk aborted
    levels_searched: int        # Slots visited before aborting
    misses: int

    # Kept for callers that reason in terms of the "-1" index sentinel
    index_mean: int = -1


TrackResult = Union[TrackFound, TrackNotFound]


# =============================================================================
# Kinematics
# =============================================================================

@dataclass(frozen=True)
class TransformStatus:
    """Success flags of the six transform lookups of one object."""
    map_old: bool = False
    map_new: bool = False
    fixed_old: bool = False
    fixed_new: bool = False
    base_old: bool = False
    base_new: bool = False

    def as_tuple(self) -> Tuple[bool, ...]:
        return (self.map_old, self.map_new,
                self.fixed_old, self.fixed_new,
                self.base_old, self.base_new)

    @property
    def success_count(self) -> int:
        return sum(self.as_tuple())


@dataclass
class FrameKinematics:
    """Position and motion of an object expressed in one frame."""
    frame_id: str
    old_position: np.ndarray    # Position at the matched (old) time
    position: np.ndarray        # Position at the newest time
    closest_point: np.ndarray   # Closest object point at the newest time
    velocity: np.ndarray
    speed: float
    velocity_normalized: np.ndarray
    transformed: bool           # False if sensor coordinates were used as fallback

    @property
    def delta_position(self) -> np.ndarray:
        return self.position - self.old_position


# =============================================================================
# Moving Object
# =============================================================================

@dataclass
class MovingObject:
    """
    Moving object found in the newest scan and tracked through the bank.

    This is the main data structure handed to the output sinks. Sensor-frame
    quantities are available both directly and in frames['sensor'].
    """
    stamp: float                        # Timestamp of the newest scan
    seq: int                            # Index of the object within its cycle
    sensor_frame: str
    map_frame: str
    fixed_frame: str
    base_frame: str

    segment: Segment                    # Segment in the newest scan
    old_segment: Segment                # Matched segment in the old scan
    old_stamp: float                    # Timestamp of the matched scan
    dt: float

    angle_begin: float
    angle_end: float
    distance_at_angle_begin: float
    distance_at_angle_end: float
    distance: float                     # Mean range
    seen_width: float                   # Width in meters (law of cosines)
    seen_width_old: float
    angle_for_closest_distance: float
    closest_distance: float

    frames: Dict[str, FrameKinematics] = field(default_factory=dict)
    transform_status: TransformStatus = field(default_factory=TransformStatus)
    confidence: float = 0.0

    @property
    def angle_mean(self) -> float:
        return (self.angle_begin + self.angle_end) / 2.0

    @property
    def position(self) -> np.ndarray:
        return self.frames["sensor"].position

    @property
    def velocity(self) -> np.ndarray:
        return self.frames["sensor"].velocity

    @property
    def speed(self) -> float:
        return self.frames["sensor"].speed

    @property
    def velocity_normalized(self) -> np.ndarray:
        return self.frames["sensor"].velocity_normalized

    @property
    def closest_point(self) -> np.ndarray:
        return self.frames["sensor"].closest_point

    def in_frame(self, frame_key: str) -> FrameKinematics:
        """Kinematics in 'sensor', 'map', 'fixed' or 'base'."""
        return self.frames[frame_key]

    def max_speed(self) -> float:
        return max(k.speed for k in self.frames.values())

    def to_record(self) -> dict:
        """Flat dictionary of the object, one column per scalar."""
        record = {
            "stamp": self.stamp,
            "seq": self.seq,
            "angle_begin": self.angle_begin,
            "angle_end": self.angle_end,
            "distance": self.distance,
            "seen_width": self.seen_width,
            "closest_distance": self.closest_distance,
            "angle_for_closest_distance": self.angle_for_closest_distance,
            "dt": self.dt,
            "confidence": self.confidence,
        }
        for key, kin in self.frames.items():
            record[f"{key}_x"] = float(kin.position[0])
            record[f"{key}_y"] = float(kin.position[1])
            record[f"{key}_z"] = float(kin.position[2])
            record[f"{key}_vx"] = float(kin.velocity[0])
            record[f"{key}_vy"] = float(kin.velocity[1])
            record[f"{key}_vz"] = float(kin.velocity[2])
            record[f"{key}_speed"] = kin.speed
            record[f"{key}_transformed"] = kin.transformed
        return record


@dataclass
class MovingObjectArray:
    """All objects reported by one cycle."""
    seq: int
    stamp: float
    origin: str
    objects: List[MovingObject] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.objects)

    def __iter__(self):
        return iter(self.objects)


# =============================================================================
# Visualization Output
# =============================================================================

@dataclass
class ScanProfile:
    """An angular range profile (EMA debug profile or closest-point profile)."""
    seq: int
    stamp: float
    frame_id: str
    angle_min: float
    angle_max: float
    angle_increment: float
    range_min: float
    range_max: float
    ranges: np.ndarray
    intensities: np.ndarray


@dataclass
class Marker:
    """A velocity arrow or a delta-position line for one object."""
    id: int
    ns: str
    frame_id: str
    kind: str                                   # 'arrow' or 'line_strip'
    points: List[np.ndarray]                    # Start and end point
    color: Tuple[float, float, float, float]    # RGBA
    scale: Tuple[float, float, float]
    seq: int = 0
    stamp: float = 0.0
    lifetime: float = 0.0
    frame_locked: bool = True
