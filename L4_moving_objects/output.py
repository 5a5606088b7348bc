# =============================================================================
# L4 Moving Objects - Output Assembly
# =============================================================================
# Packages the objects of a reporting cycle for an injected sink, together
# with optional visualization output:
# - EMA debug profile (object indices highlighted)
# - Closest-point profile (reset to neutral after every cycle)
# - Velocity arrows and delta-position lines, one marker per object
# =============================================================================

import logging
import numpy as np
from dataclasses import replace
from typing import List

from .config import (
    BankConfig,
    EMA_OBJECT_INTENSITY,
    CLOSEST_POINT_INTENSITY,
    CLOSEST_POINT_NEUTRAL_MARGIN,
    MARKER_LIFETIME,
    ARROW_SHAFT_DIAMETER,
    ARROW_HEAD_DIAMETER,
    LINE_DIAMETER,
)
from .types import Marker, MovingObject, MovingObjectArray, ScanProfile

logger = logging.getLogger(__name__)

DEFAULT_ORIGIN = "moving_object_detector"
LINE_COLOR = (0.0, 0.0, 1.0, 1.0)


class ReportSink:
    """
    Receiver of the output of a bank. Every method is a no-op here;
    override the ones of interest.
    """

    def publish_objects(self, array: MovingObjectArray):
        pass

    def publish_ema(self, profile: ScanProfile):
        pass

    def publish_closest_points(self, profile: ScanProfile):
        pass

    def publish_velocity_arrows(self, markers: List[Marker]):
        pass

    def publish_delta_position_lines(self, markers: List[Marker]):
        pass


class CollectingSink(ReportSink):
    """Keeps everything it receives. Used by the simulation and the tests."""

    def __init__(self):
        self.object_arrays: List[MovingObjectArray] = []
        self.ema_profiles: List[ScanProfile] = []
        self.closest_point_profiles: List[ScanProfile] = []
        self.velocity_arrows: List[List[Marker]] = []
        self.delta_position_lines: List[List[Marker]] = []

    def publish_objects(self, array):
        self.object_arrays.append(array)

    def publish_ema(self, profile):
        self.ema_profiles.append(profile)

    def publish_closest_points(self, profile):
        # The assembler reuses its buffers, so keep copies
        self.closest_point_profiles.append(replace(
            profile, ranges=profile.ranges.copy(), intensities=profile.intensities.copy()))

    def publish_velocity_arrows(self, markers):
        self.velocity_arrows.append(list(markers))

    def publish_delta_position_lines(self, markers):
        self.delta_position_lines.append(list(markers))

    def clear(self):
        for received in (self.object_arrays, self.ema_profiles, self.closest_point_profiles,
                         self.velocity_arrows, self.delta_position_lines):
            received.clear()

    @property
    def objects(self) -> List[MovingObject]:
        """All objects of all published arrays, in order."""
        return [obj for array in self.object_arrays for obj in array]


class ReportAssembler:
    """
    Builds the per-cycle output and hands it to the sink.

    The sequence number is incremented every cycle, also when no object
    was found. The object array itself is only published when non-empty.
    """

    def __init__(self, config: BankConfig, sink: ReportSink = None,
                 origin: str = DEFAULT_ORIGIN):
        self.config = config
        self.sink = sink if sink is not None else ReportSink()
        self.origin = origin
        self.seq = 0

        n = config.points_per_scan
        self.closest_neutral_range = config.range_max + CLOSEST_POINT_NEUTRAL_MARGIN
        self._closest_ranges = np.full(n, self.closest_neutral_range)
        self._closest_intensities = np.zeros(n)

    def _profile(self, stamp: float, ranges: np.ndarray,
                 intensities: np.ndarray) -> ScanProfile:
        cfg = self.config
        return ScanProfile(
            seq=self.seq, stamp=stamp, frame_id=cfg.sensor_frame,
            angle_min=cfg.angle_min, angle_max=cfg.angle_max,
            angle_increment=cfg.angle_increment,
            range_min=cfg.range_min, range_max=cfg.range_max,
            ranges=ranges, intensities=intensities,
        )

    # =========================================================================
    # Markers
    # =========================================================================

    def arrow_gray(self, confidence: float) -> float:
        """Gray level of a velocity arrow, optionally stretched over [min_confidence, 1]."""
        cfg = self.config
        if cfg.velocity_arrows_use_full_gray_scale and cfg.min_confidence < 1.0:
            return (confidence - cfg.min_confidence) / (1.0 - cfg.min_confidence)
        return confidence

    def velocity_arrow(self, index: int, obj: MovingObject, stamp: float) -> Marker:
        cfg = self.config
        kin = obj.in_frame(cfg.velocity_arrows_frame)
        gray = self.arrow_gray(obj.confidence)
        return Marker(
            id=index, ns=cfg.velocity_arrow_ns, frame_id=kin.frame_id,
            kind="arrow",
            points=[kin.position.copy(), kin.position + kin.velocity],
            color=(gray, gray, gray, 1.0),
            scale=(ARROW_SHAFT_DIAMETER, ARROW_HEAD_DIAMETER, 0.0),
            seq=self.seq, stamp=stamp, lifetime=MARKER_LIFETIME,
        )

    def delta_position_line(self, index: int, obj: MovingObject, stamp: float) -> Marker:
        cfg = self.config
        kin = obj.in_frame(cfg.delta_position_lines_frame)
        return Marker(
            id=index, ns=cfg.delta_position_line_ns, frame_id=kin.frame_id,
            kind="line_strip",
            points=[kin.old_position.copy(), kin.position.copy()],
            color=LINE_COLOR,
            scale=(LINE_DIAMETER, 0.0, 0.0),
            seq=self.seq, stamp=stamp, lifetime=MARKER_LIFETIME,
        )

    # =========================================================================
    # Cycle
    # =========================================================================

    def assemble(self, stamp: float, objects: List[MovingObject],
                 newest_ranges: np.ndarray) -> MovingObjectArray:
        """
        Package one reporting cycle.

        Args:
            stamp: Timestamp of the newest scan
            objects: Accepted objects in scan order
            newest_ranges: Smoothed ranges of the newest slot

        Returns:
            The MovingObjectArray of this cycle (also when empty)
        """
        cfg = self.config
        self.seq += 1
        array = MovingObjectArray(seq=self.seq, stamp=stamp, origin=self.origin,
                                  objects=list(objects))

        if cfg.publish_objects and len(array) > 0:
            self.sink.publish_objects(array)

        if cfg.publish_ema:
            intensities = np.zeros(cfg.points_per_scan)
            for obj in objects:
                intensities[obj.segment.index_min:obj.segment.index_max + 1] = EMA_OBJECT_INTENSITY
            self.sink.publish_ema(self._profile(stamp, np.array(newest_ranges), intensities))

        if cfg.publish_closest_point_markers:
            for obj in objects:
                self._closest_ranges[obj.segment.closest_index] = obj.closest_distance
                self._closest_intensities[obj.segment.closest_index] = CLOSEST_POINT_INTENSITY
            self.sink.publish_closest_points(
                self._profile(stamp, self._closest_ranges, self._closest_intensities))
            self.reset_closest_points(objects)

        if cfg.publish_velocity_arrows:
            self.sink.publish_velocity_arrows(
                [self.velocity_arrow(i, obj, stamp) for i, obj in enumerate(objects)])

        if cfg.publish_delta_position_lines:
            self.sink.publish_delta_position_lines(
                [self.delta_position_line(i, obj, stamp) for i, obj in enumerate(objects)])

        logger.debug("Cycle %d: %d moving objects", self.seq, len(array))
        return array

    def reset_closest_points(self, objects: List[MovingObject]):
        for obj in objects:
            self._closest_ranges[obj.segment.closest_index] = self.closest_neutral_range
            self._closest_intensities[obj.segment.closest_index] = 0.0

    @property
    def closest_point_ranges(self) -> np.ndarray:
        return self._closest_ranges.copy()
