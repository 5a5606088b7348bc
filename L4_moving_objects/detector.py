# =============================================================================
# L4 Moving Objects - Detector
# =============================================================================
# Main entry point of the layer. Owns one scan bank per sensor stream and
# runs a reporting cycle on request:
#   segmentation -> tracking -> kinematics -> confidence -> output
# =============================================================================

import sys
import math
import logging
from typing import List, Optional

from .config import BankConfig, PC2_RANGE_MIN
from .types import LaserScan, PointCloud, MovingObject, MovingObjectArray, TrackFound
from .bank import ScanBank
from .ingestion import LaserScanAdapter, PointCloudAdapter
from .segmentation import ScanSegmenter
from .tracker import CrossTimeTracker
from .kinematics import FrameResolver, KinematicsEstimator
from .confidence import ConfidenceScorer, default_confidence, score
from .output import ReportAssembler, ReportSink
from .transforms import TransformProvider, NullTransformProvider
from .errors import IngestionError, NoPointsIngested, ScanShapeError

logger = logging.getLogger(__name__)

INPUT_LASER_SCAN = "laser_scan"
INPUT_POINT_CLOUD = "point_cloud"


class MovingObjectDetector:
    """
    Finds moving objects in a stream of range scans or point clouds.

    The first message opens the bank: the sensor frame and geometry are
    taken from it. A detector accepts one kind of input for its lifetime.

    Not thread safe. Use one detector per sensor; detectors share no state.

    Usage:
        detector = MovingObjectDetector(BankConfig(), transform_provider, sink)
        for scan in scans:
            detector.add_laser_scan(scan)
            if detector.is_filled:
                detector.find_and_report_moving_objects()
    """

    def __init__(self, config: BankConfig = None,
                 transform_provider: TransformProvider = None,
                 sink: ReportSink = None,
                 scorer: ConfidenceScorer = default_confidence,
                 host_byteorder: str = sys.byteorder):
        """
        Initialize the detector.

        Args:
            config: Bank parameters (sensor geometry is filled in later)
            transform_provider: Source of map/fixed/base transforms
            sink: Receiver of the reported objects and visualization output
            scorer: Confidence scoring function
            host_byteorder: Byte order point cloud coordinates are read in
        """
        self.base_config = config if config is not None else BankConfig()
        self.transform_provider = transform_provider or NullTransformProvider()
        self.sink = sink if sink is not None else ReportSink()
        self.scorer = scorer
        self.host_byteorder = host_byteorder

        self.config: Optional[BankConfig] = None
        self.input_kind: Optional[str] = None
        self.bank: Optional[ScanBank] = None
        self.adapter = None
        self.segmenter: Optional[ScanSegmenter] = None
        self.tracker: Optional[CrossTimeTracker] = None
        self.estimator: Optional[KinematicsEstimator] = None
        self.assembler: Optional[ReportAssembler] = None

        self._reset_statistics()

    def _reset_statistics(self):
        self.stats = {
            "messages_received": 0,
            "messages_rejected": 0,
            "cycles": 0,
            "segments_found": 0,
            "tracks_lost": 0,
            "objects_too_slow": 0,
            "objects_low_confidence": 0,
            "objects_reported": 0,
            "transform_failures": 0,
        }

    # =========================================================================
    # Bank Setup
    # =========================================================================

    def _open(self, config: BankConfig, kind: str, adapter):
        self.config = config
        self.input_kind = kind
        self.adapter = adapter
        self.bank = ScanBank(config.nr_scans_in_bank, config.points_per_scan, config.ema_alpha)
        self.segmenter = ScanSegmenter(config)
        self.tracker = CrossTimeTracker(config)
        self.estimator = KinematicsEstimator(config)
        self.assembler = ReportAssembler(config, self.sink)
        logger.info("Bank opened for %s from '%s': %d scans of %d points, "
                    "angles [%.3f, %.3f]", kind, config.sensor_frame,
                    config.nr_scans_in_bank, config.points_per_scan,
                    config.angle_min, config.angle_max)

    def _open_for_scan(self, scan: LaserScan):
        config = self.base_config.with_sensor_geometry(
            sensor_frame=scan.frame_id,
            points_per_scan=len(scan.ranges),
            # float32 angles of a full circle overshoot pi
            angle_min=max(scan.angle_min, -math.pi),
            angle_max=min(scan.angle_max, math.pi),
            angle_increment=scan.angle_increment,
            time_increment=scan.time_increment,
            scan_time=scan.scan_time,
            range_min=scan.range_min,
            range_max=scan.range_max,
        )
        self._open(config, INPUT_LASER_SCAN, LaserScanAdapter(config))

    def _open_for_cloud(self, cloud: PointCloud):
        base = self.base_config
        n = base.points_per_scan
        angle_increment = 0.0 if n <= 1 else (base.angle_max - base.angle_min) / (n - 1)
        config = base.with_sensor_geometry(
            sensor_frame=cloud.frame_id,
            angle_increment=angle_increment,
            time_increment=0.0,
            scan_time=0.0,
            range_min=PC2_RANGE_MIN,
            range_max=base.max_distance,
        )
        self._open(config, INPUT_POINT_CLOUD, PointCloudAdapter(config, self.host_byteorder))

    def _check_kind(self, kind: str):
        if self.input_kind is not None and self.input_kind != kind:
            raise IngestionError(
                f"Bank was opened for {self.input_kind} input, cannot add {kind}")

    # =========================================================================
    # Ingestion
    # =========================================================================

    def add_laser_scan(self, scan: LaserScan) -> bool:
        """
        Write a scan into the bank.

        Returns:
            True if the scan was stored, False if it was rejected
        """
        self._check_kind(INPUT_LASER_SCAN)
        if self.bank is None:
            self._open_for_scan(scan)
        self.stats["messages_received"] += 1

        try:
            ranges = self.adapter.to_ranges(scan)
        except ScanShapeError as e:
            self.stats["messages_rejected"] += 1
            logger.warning("Discarding scan at %.6f: %s", scan.stamp, e)
            return False

        self.bank.write(scan.stamp, ranges)
        return True

    def add_point_cloud(self, cloud: PointCloud) -> bool:
        """
        Flatten a point cloud and write it into the bank.

        Returns:
            True if the cloud was stored, False if no point passed the z band

        Raises:
            FieldResolutionError, UnsupportedCoordinateWidth: the cloud
            cannot be decoded with the configured field names
        """
        self._check_kind(INPUT_POINT_CLOUD)
        if self.bank is None:
            self._open_for_cloud(cloud)
        self.stats["messages_received"] += 1

        try:
            ranges = self.adapter.to_ranges(cloud)
        except NoPointsIngested as e:
            self.stats["messages_rejected"] += 1
            logger.warning("%s", e)
            return False

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Bank points (put slot %d): %s", self.bank.index_put,
                         " ".join(f"{r:.3f}" for r in ranges))
        self.bank.write(cloud.stamp, ranges)
        return True

    @property
    def is_filled(self) -> bool:
        return self.bank is not None and self.bank.filled

    # =========================================================================
    # Reporting
    # =========================================================================

    def find_and_report_moving_objects(self) -> Optional[MovingObjectArray]:
        """
        Run one reporting cycle on the current bank content.

        Returns:
            The MovingObjectArray of the cycle, or None if the bank is not
            filled yet
        """
        if not self.is_filled:
            logger.warning("Bank is not filled yet, cannot report objects")
            return None

        cfg = self.config
        bank = self.bank
        stamp = bank.newest_stamp
        ranges = bank.newest

        segments = self.segmenter.find_segments(ranges)
        tracked = []
        for seq, segment in enumerate(segments, start=1):
            result = self.tracker.track(bank, segment)
            if isinstance(result, TrackFound):
                tracked.append((seq, segment, result))
            else:
                self.stats["tracks_lost"] += 1

        resolver = FrameResolver(self.transform_provider, cfg)
        if tracked:
            resolver.prefetch([stamp] + [track.stamp for _, _, track in tracked])

        objects: List[MovingObject] = []
        for seq, segment, track in tracked:
            obj = self.estimator.estimate(segment, track, stamp, seq, resolver)
            if obj is None:
                continue
            if not self.estimator.is_moving(obj):
                self.stats["objects_too_slow"] += 1
                continue
            obj.confidence = score(self.scorer, obj, cfg, obj.seen_width_old,
                                   obj.transform_status)
            if obj.confidence < cfg.min_confidence:
                self.stats["objects_low_confidence"] += 1
                logger.debug("Object %d below confidence threshold (%.2f)",
                             seq, obj.confidence)
                continue
            objects.append(obj)

        array = self.assembler.assemble(stamp, objects, ranges)

        self.stats["cycles"] += 1
        self.stats["segments_found"] += len(segments)
        self.stats["objects_reported"] += len(objects)
        self.stats["transform_failures"] += resolver.nr_failures
        return array

    # =========================================================================
    # State
    # =========================================================================

    def reset(self):
        """Close the bank; the next message opens a new one."""
        self.config = None
        self.input_kind = None
        self.bank = None
        self.adapter = None
        self.segmenter = None
        self.tracker = None
        self.estimator = None
        self.assembler = None
        self._reset_statistics()

    def get_statistics(self) -> dict:
        stats = dict(self.stats)
        stats["input_kind"] = self.input_kind
        stats["bank_filled"] = self.is_filled
        stats["scans_written"] = self.bank.nr_writes if self.bank is not None else 0
        stats["report_seq"] = self.assembler.seq if self.assembler is not None else 0
        return stats
