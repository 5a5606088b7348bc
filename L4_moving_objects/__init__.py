# =============================================================================
# L4 Moving Objects Package
# =============================================================================
# Moving-object detection on a bank of recent range scans.
#
# Responsibilities:
# - Ingestion of 2D scans and binary point clouds
# - EMA smoothing into a fixed-depth circular scan bank
# - Segmentation of the newest scan and tracking through the whole bank
# - Velocities in sensor, map, fixed and base frames, confidence scoring
#
# Usage:
#   from L4_moving_objects import MovingObjectDetector, BankConfig
#   detector = MovingObjectDetector(BankConfig(ema_alpha=0.8), provider, sink)
#   detector.add_laser_scan(scan)
#   objects = detector.find_and_report_moving_objects()
# =============================================================================

# Types
from .types import (
    LaserScan,
    PointField,
    PointCloud,
    Segment,
    TrackFound,
    TrackNotFound,
    TransformStatus,
    FrameKinematics,
    MovingObject,
    MovingObjectArray,
    ScanProfile,
    Marker,
)

# Configuration and errors
from .config import BankConfig
from .errors import (
    MovingObjectsError,
    ConfigurationError,
    IngestionError,
    FieldResolutionError,
    UnsupportedCoordinateWidth,
    NoPointsIngested,
    ScanShapeError,
    TransformUnavailable,
)

# Core components
from .transforms import (
    Pose,
    TransformProvider,
    StaticTransformProvider,
    NullTransformProvider,
    polar_to_cartesian,
)
from .smoothing import ema_blend
from .bank import ScanBank
from .pointcloud import encode_points, pack_field_catalog, unpack_field_catalog
from .ingestion import LaserScanAdapter, PointCloudAdapter
from .segmentation import ScanSegmenter, expand_segment
from .tracker import CrossTimeTracker
from .kinematics import FrameResolver, KinematicsEstimator
from .confidence import default_confidence, clamp_confidence
from .output import ReportSink, CollectingSink, ReportAssembler
from .detector import MovingObjectDetector

__all__ = [
    # Types
    'LaserScan',
    'PointField',
    'PointCloud',
    'Segment',
    'TrackFound',
    'TrackNotFound',
    'TransformStatus',
    'FrameKinematics',
    'MovingObject',
    'MovingObjectArray',
    'ScanProfile',
    'Marker',

    # Configuration and errors
    'BankConfig',
    'MovingObjectsError',
    'ConfigurationError',
    'IngestionError',
    'FieldResolutionError',
    'UnsupportedCoordinateWidth',
    'NoPointsIngested',
    'ScanShapeError',
    'TransformUnavailable',

    # Transforms
    'Pose',
    'TransformProvider',
    'StaticTransformProvider',
    'NullTransformProvider',
    'polar_to_cartesian',

    # Components
    'ema_blend',
    'ScanBank',
    'encode_points',
    'pack_field_catalog',
    'unpack_field_catalog',
    'LaserScanAdapter',
    'PointCloudAdapter',
    'ScanSegmenter',
    'expand_segment',
    'CrossTimeTracker',
    'FrameResolver',
    'KinematicsEstimator',
    'default_confidence',
    'clamp_confidence',
    'ReportSink',
    'CollectingSink',
    'ReportAssembler',

    # Complete layer
    'MovingObjectDetector',
]

__version__ = '2.0.0'
