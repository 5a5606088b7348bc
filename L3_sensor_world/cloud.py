# =============================================================================
# L3 Sensor World - Point Cloud Simulator
# =============================================================================
# Samples obstacle surfaces at several heights along the LiDAR rays and
# encodes the points as a binary PointCloud message.
# =============================================================================

import numpy as np
from typing import List, Sequence

from L4_moving_objects.types import PointCloud
from L4_moving_objects.pointcloud import FLOAT32, FLOAT64, encode_points

from .lidar import LidarSimulator
from .config import (
    CLOUD_LAYER_HEIGHTS,
    CLOUD_FLOOR_HEIGHT,
    CLOUD_IS_BIGENDIAN,
    CLOUD_USE_FLOAT64
)


class PointCloudSimulator:
    """
    3D sensor built on top of a 2D ray caster.

    Every ray that hits an obstacle yields one point per layer height.
    Every ray also yields a floor point halfway to the maximum range.
    """

    def __init__(self, lidar: LidarSimulator,
                 layer_heights: Sequence[float] = CLOUD_LAYER_HEIGHTS,
                 floor_height: float = CLOUD_FLOOR_HEIGHT,
                 is_bigendian: bool = CLOUD_IS_BIGENDIAN,
                 use_float64: bool = CLOUD_USE_FLOAT64):
        """
        Initialize the point cloud simulator.

        Args:
            lidar: Ray caster providing angles, ranges and noise
            layer_heights: z of the sampled obstacle layers (sensor frame)
            floor_height: z of the floor points
            is_bigendian: Byte order of the generated payload
            use_float64: Encode coordinates as float64 instead of float32
        """
        self.lidar = lidar
        self.layer_heights = tuple(layer_heights)
        self.floor_height = floor_height
        self.is_bigendian = is_bigendian
        self.datatype = FLOAT64 if use_float64 else FLOAT32

    def points(self, obstacles: List[dict], sensor_pos: np.ndarray,
               sensor_heading: float) -> np.ndarray:
        """Points in the sensor frame, shape (n, 3)."""
        lidar = self.lidar
        ranges = lidar.cast(obstacles, sensor_pos, sensor_heading)
        hits = ranges < lidar.maxrange
        ranges = ranges[hits] + lidar.rng.normal(0, lidar.noisestd, int(np.count_nonzero(hits)))
        angles = lidar.angles[hits]

        layers = [
            np.stack([ranges * np.cos(angles), ranges * np.sin(angles),
                      np.full(ranges.shape, z)], axis=1)
            for z in self.layer_heights
        ]

        floor_range = lidar.maxrange / 2.0
        layers.append(np.stack([floor_range * np.cos(lidar.angles),
                                floor_range * np.sin(lidar.angles),
                                np.full(lidar.angles.shape, self.floor_height)], axis=1))
        return np.concatenate(layers, axis=0)

    def generate(self, obstacles: List[dict], sensor_pos: np.ndarray,
                 sensor_heading: float, stamp: float) -> PointCloud:
        """Sample and encode one point cloud."""
        return encode_points(
            self.points(obstacles, sensor_pos, sensor_heading),
            is_bigendian=self.is_bigendian,
            datatype=self.datatype,
            stamp=stamp,
            frame_id=self.lidar.frame_id,
        )
