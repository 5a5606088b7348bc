# =============================================================================
# L3 Sensor World - LiDAR Simulator
# =============================================================================

import numpy as np
from typing import List

from L4_moving_objects.types import LaserScan

from .config import (
    LIDAR_ANGLE_MIN,
    LIDAR_ANGLE_MAX,
    LIDAR_NUM_RAYS,
    LIDAR_MIN_RANGE,
    LIDAR_MAX_RANGE,
    LIDAR_NOISE_STD,
    SENSOR_FRAME
)


class LidarSimulator:
    """
    2D LiDAR simulator casting rays against circular obstacles.
    Rays that hit nothing return the maximum range.
    """

    def __init__(self, angle_min: float = LIDAR_ANGLE_MIN, angle_max: float = LIDAR_ANGLE_MAX,
                 numrays: int = LIDAR_NUM_RAYS, minrange: float = LIDAR_MIN_RANGE,
                 maxrange: float = LIDAR_MAX_RANGE, noisestd: float = LIDAR_NOISE_STD,
                 frame_id: str = SENSOR_FRAME, rng: np.random.Generator = None):
        """
        Initialize the LiDAR simulator.

        Args:
            angle_min: Angle of the first ray (radians, sensor frame)
            angle_max: Angle of the last ray (radians, sensor frame)
            numrays: Number of laser rays
            minrange: Minimum range in meters
            maxrange: Maximum range in meters
            noisestd: Noise standard deviation
            frame_id: Sensor frame written into the scans
            rng: Random generator for the noise
        """
        self.angle_min = angle_min
        self.angle_max = angle_max
        self.numrays = numrays
        self.minrange = minrange
        self.maxrange = maxrange
        self.noisestd = noisestd
        self.frame_id = frame_id
        self.rng = rng if rng is not None else np.random.default_rng()
        self.angles = np.linspace(angle_min, angle_max, numrays)
        self.angle_increment = 0.0 if numrays <= 1 else (angle_max - angle_min) / (numrays - 1)

    def cast(self, obstacles: List[dict], sensor_pos: np.ndarray,
             sensor_heading: float) -> np.ndarray:
        """
        Noise-free distance along every ray to the nearest obstacle.

        Args:
            obstacles: List of obstacles with 'center' and 'radius'
            sensor_pos: Sensor position [x, y] in the world
            sensor_heading: Sensor heading in radians

        Returns:
            Range per ray (maxrange where nothing is hit)
        """
        ranges = np.full(self.numrays, self.maxrange)
        if not obstacles:
            return ranges

        absolute = sensor_heading + self.angles
        raydirs = np.stack([np.cos(absolute), np.sin(absolute)], axis=1)         # (rays, 2)
        centers = np.array([obs['center'] for obs in obstacles]) - sensor_pos    # (obs, 2)
        radii = np.array([obs.get('radius', 0.3) for obs in obstacles])

        proj = raydirs @ centers.T                                               # (rays, obs)
        center_sq = np.sum(centers * centers, axis=1)
        perp_sq = center_sq[None, :] - proj ** 2
        hit = (proj > 0) & (perp_sq <= radii[None, :] ** 2)

        dist = np.where(hit, proj - np.sqrt(np.maximum(radii[None, :] ** 2 - perp_sq, 0.0)),
                        np.inf)
        dist = np.where(dist > 0, dist, np.inf)
        nearest = dist.min(axis=1)
        return np.where(nearest < self.maxrange, nearest, self.maxrange)

    def scan(self, obstacles: List[dict], sensor_pos: np.ndarray,
             sensor_heading: float, stamp: float, scan_time: float = 0.0) -> LaserScan:
        """Perform a noisy scan and package it as a LaserScan."""
        ranges = self.cast(obstacles, sensor_pos, sensor_heading)
        hits = ranges < self.maxrange
        ranges[hits] += self.rng.normal(0, self.noisestd, int(np.count_nonzero(hits)))
        ranges = np.clip(ranges, self.minrange, self.maxrange)
        return LaserScan(
            stamp=stamp,
            frame_id=self.frame_id,
            angle_min=self.angle_min,
            angle_max=self.angle_max,
            angle_increment=self.angle_increment,
            range_min=self.minrange,
            range_max=self.maxrange,
            ranges=ranges,
            time_increment=scan_time / self.numrays if self.numrays else 0.0,
            scan_time=scan_time,
        )
