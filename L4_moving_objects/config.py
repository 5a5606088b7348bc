# =============================================================================
# L4 Moving Objects - Configuration
# =============================================================================
# All configurable parameters for the scan bank, plus the validated
# BankConfig that carries them through the layer.
# =============================================================================

import math
from dataclasses import dataclass, fields, replace

from .errors import ConfigurationError

# =============================================================================
# BANK CONFIGURATION
# =============================================================================
# EMA weighting of a new scan against the newest smoothed scan, in [0, 1].
# 1.0 disables smoothing.
BANK_EMA_ALPHA = 1.0

# Number of scans kept in the bank (at least 2 to derive a velocity)
BANK_NR_SCANS = 11

# Angular resolution of a point cloud flattened into the bank
BANK_POINTS_PER_SCAN = 360

# Angular span covered by the bank (radians)
BANK_ANGLE_MIN = -math.pi
BANK_ANGLE_MAX = math.pi

# =============================================================================
# OBJECT THRESHOLDS
# =============================================================================
# Maximum range jump between neighbouring points of one object (meters)
OBJECT_EDGE_MAX_DELTA_RANGE = 0.15

# Minimum number of points for a valid object
OBJECT_MIN_NR_POINTS = 5

# Objects farther away than this are ignored (meters)
OBJECT_MAX_DISTANCE = 6.5

# Minimum speed in at least one frame to report an object (m/s)
OBJECT_MIN_SPEED = 0.03

# Maximum width change between two tracked scans (points)
OBJECT_MAX_DELTA_WIDTH_IN_POINTS = 5

# Minimum confidence to report an object
OBJECT_MIN_CONFIDENCE = 0.67

# Maximum change of the mean range between two tracked scans (meters)
TRACKING_MAX_DELTA_DISTANCE = 0.2

# Scans in a row in which an object may be lost before tracking gives up.
# 0 means that any single mismatch aborts the track.
TRACKING_MAX_CONSECUTIVE_MISSES = 0

# =============================================================================
# CONFIDENCE CONFIGURATION
# =============================================================================
# Starting point of the default confidence score
CONFIDENCE_BASE = 0.3

# Weight of the old/new seen-width agreement
CONFIDENCE_WIDTH_WEIGHT = 0.3

# Weight of a positive time span between the tracked scans
CONFIDENCE_TIMING_WEIGHT = 0.2

# Weight of the fraction of successful transform lookups
CONFIDENCE_TRANSFORM_WEIGHT = 0.2

# =============================================================================
# FRAMES AND TRANSFORMS
# =============================================================================
MAP_FRAME = "map"
FIXED_FRAME = "odom"
BASE_FRAME = "base_link"

# Keys used for per-frame results. 'sensor' is the frame of the scans.
FRAME_SENSOR = "sensor"
FRAME_MAP = "map"
FRAME_FIXED = "fixed"
FRAME_BASE = "base"
FRAME_KEYS = (FRAME_SENSOR, FRAME_MAP, FRAME_FIXED, FRAME_BASE)

# Timeout of a single transform lookup (seconds)
TRANSFORM_TIMEOUT = 1.0

# Threads used for the transform lookups of a cycle (1 = sequential)
TRANSFORM_LOOKUP_WORKERS = 1

# =============================================================================
# OUTPUT CONFIGURATION
# =============================================================================
PUBLISH_OBJECTS = True
PUBLISH_EMA = False
PUBLISH_CLOSEST_POINT_MARKERS = False
PUBLISH_VELOCITY_ARROWS = False
PUBLISH_DELTA_POSITION_LINES = False

VELOCITY_ARROW_NS = "velocity_arrow_ns"
DELTA_POSITION_LINE_NS = "delta_position_line_ns"

# Intensity written into the EMA profile at indices covered by an object
EMA_OBJECT_INTENSITY = 300.0

# Intensity written into the closest-point profile at an object's closest point
CLOSEST_POINT_INTENSITY = 1000.0

# Added to range_max to mark "no closest point here"
CLOSEST_POINT_NEUTRAL_MARGIN = 10.0

# Marker geometry and lifetime
MARKER_LIFETIME = 0.4
ARROW_SHAFT_DIAMETER = 0.05
ARROW_HEAD_DIAMETER = 0.1
LINE_DIAMETER = 0.05

# =============================================================================
# POINT CLOUD CONFIGURATION
# =============================================================================
PC2_X_FIELD = "x"
PC2_Y_FIELD = "y"
PC2_Z_FIELD = "z"

# Physical width of a point when projected into angular bins (meters)
PC2_VOXEL_LEAF_SIZE = 0.02

# Only points within this height band are binned (meters)
PC2_Z_MIN = 0.1
PC2_Z_MAX = 1.0

# Bins without a point hold OBJECT_MAX_DISTANCE plus this margin
PC2_EMPTY_BIN_MARGIN = 10.0

# Sensor range limits assumed for point clouds
PC2_RANGE_MIN = 0.01


@dataclass(frozen=True)
class BankConfig:
    """
    Validated, immutable set of bank parameters.

    Construction validates every value and raises ConfigurationError on the
    first invalid one. Use with_sensor_geometry() to attach the geometry of
    the sensor that opens the bank; it returns a new, validated copy.
    """
    # Bank
    ema_alpha: float = BANK_EMA_ALPHA
    nr_scans_in_bank: int = BANK_NR_SCANS
    points_per_scan: int = BANK_POINTS_PER_SCAN
    angle_min: float = BANK_ANGLE_MIN
    angle_max: float = BANK_ANGLE_MAX

    # Object thresholds
    edge_max_delta_range: float = OBJECT_EDGE_MAX_DELTA_RANGE
    min_points: int = OBJECT_MIN_NR_POINTS
    max_distance: float = OBJECT_MAX_DISTANCE
    min_speed: float = OBJECT_MIN_SPEED
    max_delta_width_points: int = OBJECT_MAX_DELTA_WIDTH_IN_POINTS
    min_confidence: float = OBJECT_MIN_CONFIDENCE
    tracking_max_delta_distance: float = TRACKING_MAX_DELTA_DISTANCE
    tracking_max_consecutive_misses: int = TRACKING_MAX_CONSECUTIVE_MISSES
    base_confidence: float = CONFIDENCE_BASE

    # Frames
    map_frame: str = MAP_FRAME
    fixed_frame: str = FIXED_FRAME
    base_frame: str = BASE_FRAME
    sensor_frame: str = ""
    transform_timeout: float = TRANSFORM_TIMEOUT
    transform_lookup_workers: int = TRANSFORM_LOOKUP_WORKERS

    # Output
    publish_objects: bool = PUBLISH_OBJECTS
    publish_ema: bool = PUBLISH_EMA
    publish_closest_point_markers: bool = PUBLISH_CLOSEST_POINT_MARKERS
    publish_velocity_arrows: bool = PUBLISH_VELOCITY_ARROWS
    publish_delta_position_lines: bool = PUBLISH_DELTA_POSITION_LINES
    velocity_arrows_frame: str = FRAME_MAP
    delta_position_lines_frame: str = FRAME_MAP
    velocity_arrows_use_full_gray_scale: bool = False
    velocity_arrow_ns: str = VELOCITY_ARROW_NS
    delta_position_line_ns: str = DELTA_POSITION_LINE_NS

    # Point cloud
    pc2_x_field: str = PC2_X_FIELD
    pc2_y_field: str = PC2_Y_FIELD
    pc2_z_field: str = PC2_Z_FIELD
    pc2_voxel_leaf_size: float = PC2_VOXEL_LEAF_SIZE
    pc2_z_min: float = PC2_Z_MIN
    pc2_z_max: float = PC2_Z_MAX

    # Sensor geometry, filled in from the first message
    angle_increment: float = 0.0
    time_increment: float = 0.0
    scan_time: float = 0.0
    range_min: float = 0.0
    range_max: float = math.inf

    def __post_init__(self):
        self.validate()

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self):
        """Check all bank parameters. Raises ConfigurationError."""
        _require(0.0 <= self.ema_alpha <= 1.0,
                 "The EMA weighting decrease coefficient must be a value in [0,1].")
        _require(self.nr_scans_in_bank >= 2,
                 "There must be at least 2 scans in the bank. "
                 "Otherwise, velocities cannot be calculated.")
        _require(self.points_per_scan >= 1,
                 "There must be at least 1 point per scan.")
        _require(-math.pi <= self.angle_min <= self.angle_max,
                 "Please specify a valid angle_min in the range [-PI,angle_max].")
        _require(self.angle_max <= math.pi,
                 "Please specify a valid angle_max in the range [angle_min,PI].")
        _require(self.edge_max_delta_range >= 0.0,
                 "edge_max_delta_range cannot be negative.")
        _require(self.min_points >= 1,
                 "An object must consist of at least 1 point.")
        _require(self.max_distance >= 0.0, "max_distance cannot be negative.")
        _require(self.min_speed >= 0.0, "min_speed cannot be negative.")
        _require(self.max_delta_width_points >= 0,
                 "max_delta_width_points cannot be negative.")
        _require(0.0 <= self.min_confidence <= 1.0,
                 "min_confidence must be a value in [0,1].")
        _require(self.tracking_max_delta_distance >= 0.0,
                 "tracking_max_delta_distance cannot be negative.")
        _require(self.tracking_max_consecutive_misses >= 0,
                 "tracking_max_consecutive_misses cannot be negative.")

        _require(self.map_frame != "", "Please specify map frame.")
        _require(self.fixed_frame != "", "Please specify fixed frame.")
        _require(self.base_frame != "", "Please specify base frame.")
        _require(self.transform_timeout > 0.0,
                 "transform_timeout must be positive.")
        _require(self.transform_lookup_workers >= 1,
                 "transform_lookup_workers must be at least 1.")

        _require(self.velocity_arrows_frame in FRAME_KEYS,
                 f"velocity_arrows_frame must be one of {FRAME_KEYS}.")
        _require(self.delta_position_lines_frame in FRAME_KEYS,
                 f"delta_position_lines_frame must be one of {FRAME_KEYS}.")
        _require(not self.publish_velocity_arrows or self.velocity_arrow_ns != "",
                 "If publishing velocity arrows, then a name space for them must be given.")
        _require(not self.publish_delta_position_lines or self.delta_position_line_ns != "",
                 "If publishing delta position lines, then a name space for them must be given.")

        _require(self.angle_increment >= 0.0, "angle_increment cannot be negative.")
        _require(self.range_min <= self.range_max,
                 "range_min cannot be larger than range_max.")

    def validate_point_cloud(self):
        """Check the point-cloud specific parameters. Raises ConfigurationError."""
        _require(self.pc2_x_field != "",
                 "Please specify a field name for x coordinates.")
        _require(self.pc2_y_field != "",
                 "Please specify a field name for y coordinates.")
        _require(self.pc2_z_field != "",
                 "Please specify a field name for z coordinates.")
        _require(self.pc2_voxel_leaf_size >= 0.0,
                 "pc2_voxel_leaf_size cannot be negative.")
        _require(self.pc2_z_min <= self.pc2_z_max,
                 "Invalid z thresholds: pc2_z_min must not exceed pc2_z_max.")

    # =========================================================================
    # Derived values
    # =========================================================================

    @property
    def tracking_range_max(self) -> float:
        """Largest range considered part of an object."""
        return min(self.range_max, self.max_distance)

    @property
    def empty_bin_range(self) -> float:
        """Range written into point-cloud bins that received no point."""
        return self.max_distance + PC2_EMPTY_BIN_MARGIN

    def frame_name(self, frame_key: str) -> str:
        """Map a frame key ('sensor', 'map', 'fixed', 'base') to the frame id."""
        return {
            FRAME_SENSOR: self.sensor_frame,
            FRAME_MAP: self.map_frame,
            FRAME_FIXED: self.fixed_frame,
            FRAME_BASE: self.base_frame,
        }[frame_key]

    def index_to_angle(self, index: float) -> float:
        return self.angle_min + index * self.angle_increment

    def with_sensor_geometry(self, **geometry) -> "BankConfig":
        """Return a validated copy with sensor geometry (and frame) filled in."""
        return replace(self, **geometry)

    @classmethod
    def from_dict(cls, values: dict) -> "BankConfig":
        """Build a configuration from a plain dictionary, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration options: {', '.join(unknown)}")
        return cls(**values)


def _require(condition: bool, message: str):
    if not condition:
        raise ConfigurationError(message)
