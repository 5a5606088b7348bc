# =============================================================================
# L4 Moving Objects - Kinematics
# =============================================================================
# Positions, velocities and speeds of a tracked object in four frames:
# - sensor: the frame of the scans (always available)
# - map, fixed, base: via the injected TransformProvider, falling back to
#   sensor coordinates per frame when a lookup fails
# =============================================================================

import logging
import threading
import numpy as np
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, Optional, Tuple

from .config import BankConfig, FRAME_SENSOR, FRAME_MAP, FRAME_FIXED, FRAME_BASE
from .types import FrameKinematics, MovingObject, Segment, TrackFound, TransformStatus
from .transforms import Pose, TransformProvider, polar_to_cartesian
from .segmentation import seen_width
from .errors import TransformUnavailable

logger = logging.getLogger(__name__)

TRANSFORMED_FRAMES = (FRAME_MAP, FRAME_FIXED, FRAME_BASE)


def velocity_from_positions(old_position: np.ndarray, new_position: np.ndarray,
                            dt: float) -> Tuple[np.ndarray, float, np.ndarray]:
    """
    Velocity, speed and normalized direction from two positions.

    The direction is the zero vector when the speed is exactly zero.
    """
    velocity = (np.asarray(new_position) - np.asarray(old_position)) / dt
    speed = float(np.linalg.norm(velocity))
    if speed > 0.0:
        direction = velocity / speed
    else:
        direction = np.zeros(3)
    return velocity, speed, direction


class FrameResolver:
    """
    Transform lookups of one reporting cycle.

    Results are memoized per (target frame, stamp), so objects sharing the
    same pair of timestamps cost at most six lookups per cycle. Failed
    lookups are memoized as None.
    """

    def __init__(self, provider: TransformProvider, config: BankConfig):
        self.provider = provider
        self.config = config
        self._poses: Dict[Tuple[str, float], Optional[Pose]] = {}
        self.nr_lookups = 0
        self.nr_failures = 0
        self._lock = threading.Lock()

    def _lookup(self, target_frame: str, stamp: float) -> Optional[Pose]:
        with self._lock:
            self.nr_lookups += 1
        try:
            return self.provider.lookup(target_frame, self.config.sensor_frame,
                                        stamp, self.config.transform_timeout)
        except TransformUnavailable as e:
            with self._lock:
                self.nr_failures += 1
            logger.warning("%s", e)
            return None

    def prefetch(self, stamps: Iterable[float]):
        """Look up every transformed frame at every stamp not seen yet."""
        pending = [(self.config.frame_name(key), stamp)
                   for stamp in stamps for key in TRANSFORMED_FRAMES]
        pending = [p for p in dict.fromkeys(pending) if p not in self._poses]
        if not pending:
            return

        workers = self.config.transform_lookup_workers
        if workers > 1 and len(pending) > 1:
            with ThreadPoolExecutor(max_workers=min(workers, len(pending))) as executor:
                poses = list(executor.map(lambda p: self._lookup(*p), pending))
        else:
            poses = [self._lookup(*p) for p in pending]
        self._poses.update(zip(pending, poses))

    def pose(self, frame_key: str, stamp: float) -> Optional[Pose]:
        key = (self.config.frame_name(frame_key), stamp)
        if key not in self._poses:
            self._poses[key] = self._lookup(*key)
        return self._poses[key]


class KinematicsEstimator:
    """
    Turns a newest-slot segment and its tracked counterpart into a MovingObject.
    """

    def __init__(self, config: BankConfig):
        self.config = config

    def _frame(self, frame_key: str, resolver: FrameResolver,
               old_stamp: float, new_stamp: float,
               old_point: np.ndarray, new_point: np.ndarray, closest: np.ndarray,
               dt: float) -> Tuple[FrameKinematics, bool, bool]:
        pose_old = resolver.pose(frame_key, old_stamp)
        pose_new = resolver.pose(frame_key, new_stamp)
        transformed = pose_old is not None and pose_new is not None
        if transformed:
            old_point = pose_old.apply(old_point)
            new_point = pose_new.apply(new_point)
            closest = pose_new.apply(closest)

        velocity, speed, direction = velocity_from_positions(old_point, new_point, dt)
        kin = FrameKinematics(
            frame_id=self.config.frame_name(frame_key) if transformed else self.config.sensor_frame,
            old_position=old_point,
            position=new_point,
            closest_point=closest,
            velocity=velocity,
            speed=speed,
            velocity_normalized=direction,
            transformed=transformed,
        )
        return kin, pose_old is not None, pose_new is not None

    def estimate(self, segment: Segment, track: TrackFound, new_stamp: float,
                 seq: int, resolver: FrameResolver) -> Optional[MovingObject]:
        """
        Build the object with kinematics in all frames.

        Args:
            segment: Segment in the newest slot
            track: Result of the tracker
            new_stamp: Timestamp of the newest slot
            seq: Index of the object within the cycle
            resolver: Transform lookups of this cycle

        Returns:
            The object, or None if the tracked scans are not separated in time
        """
        cfg = self.config
        old = track.segment
        dt = new_stamp - track.stamp
        if dt <= 0.0:
            logger.warning("Dropping object at index %d: non-positive time span %.6f s "
                           "between tracked scans", segment.index_mean, dt)
            return None

        angle_begin = cfg.index_to_angle(segment.index_min)
        angle_end = cfg.index_to_angle(segment.index_max)
        angle_mean = (angle_begin + angle_end) / 2.0
        angle_closest = cfg.index_to_angle(segment.closest_index)

        new_point = polar_to_cartesian(segment.mean_range, angle_mean)
        old_point = polar_to_cartesian(old.mean_range, cfg.index_to_angle(old.index_mean))
        closest = polar_to_cartesian(segment.closest_range, angle_closest)

        sensor_velocity, sensor_speed, sensor_direction = \
            velocity_from_positions(old_point, new_point, dt)
        frames = {
            FRAME_SENSOR: FrameKinematics(
                frame_id=cfg.sensor_frame,
                old_position=old_point,
                position=new_point,
                closest_point=closest,
                velocity=sensor_velocity,
                speed=sensor_speed,
                velocity_normalized=sensor_direction,
                transformed=True,
            )
        }

        success = {}
        for key in TRANSFORMED_FRAMES:
            frames[key], success[f"{key}_old"], success[f"{key}_new"] = self._frame(
                key, resolver, track.stamp, new_stamp, old_point, new_point, closest, dt)

        obj = MovingObject(
            stamp=new_stamp,
            seq=seq,
            sensor_frame=cfg.sensor_frame,
            map_frame=cfg.map_frame,
            fixed_frame=cfg.fixed_frame,
            base_frame=cfg.base_frame,
            segment=segment,
            old_segment=old,
            old_stamp=track.stamp,
            dt=dt,
            angle_begin=angle_begin,
            angle_end=angle_end,
            distance_at_angle_begin=segment.range_at_min,
            distance_at_angle_end=segment.range_at_max,
            distance=segment.mean_range,
            seen_width=seen_width(segment, cfg.angle_increment),
            seen_width_old=seen_width(old, cfg.angle_increment),
            angle_for_closest_distance=angle_closest,
            closest_distance=segment.closest_range,
            frames=frames,
            transform_status=TransformStatus(**success),
        )

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Object %d: distance=%.3f angle=%.3f dt=%.3f speeds=%s",
                         seq, obj.distance, obj.angle_mean, dt,
                         {k: round(f.speed, 3) for k, f in frames.items()})
        return obj

    def is_moving(self, obj: MovingObject) -> bool:
        """True if the speed in at least one frame reaches min_speed."""
        return obj.max_speed() >= self.config.min_speed
