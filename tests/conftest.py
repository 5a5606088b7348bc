"""
Shared fixtures for the moving-objects tests
"""

import numpy as np
import pytest

from L4_moving_objects import (
    BankConfig,
    LaserScan,
    Pose,
    ScanBank,
    StaticTransformProvider,
    FrameResolver,
    KinematicsEstimator,
    TrackFound,
)
from L4_moving_objects.segmentation import make_segment

NR_POINTS = 40
ANGLE_INCREMENT = 0.01
BACKGROUND = 8.0


def object_ranges(index_min, width, distance, nr_points=NR_POINTS, background=BACKGROUND):
    ranges = np.full(nr_points, background)
    ranges[index_min:index_min + width] = distance
    return ranges


@pytest.fixture
def small_config():
    """Bank of 3 scans of 40 points, geometry already attached"""
    return BankConfig(
        nr_scans_in_bank=3,
        points_per_scan=NR_POINTS,
        angle_min=0.0,
        angle_max=(NR_POINTS - 1) * ANGLE_INCREMENT,
        angle_increment=ANGLE_INCREMENT,
        range_min=0.05,
        range_max=BACKGROUND,
        min_points=3,
        sensor_frame="laser",
    )


@pytest.fixture
def make_ranges():
    """Factory for a background profile with one flat object"""
    return object_ranges


@pytest.fixture
def make_scan():
    """Factory for LaserScan messages of the small geometry"""
    def _make(stamp, ranges, frame_id="laser"):
        ranges = np.asarray(ranges, dtype=float)
        return LaserScan(
            stamp=stamp,
            frame_id=frame_id,
            angle_min=0.0,
            angle_max=(len(ranges) - 1) * ANGLE_INCREMENT,
            angle_increment=ANGLE_INCREMENT,
            range_min=0.05,
            range_max=BACKGROUND,
            ranges=ranges,
        )
    return _make


@pytest.fixture
def make_bank(small_config):
    """Factory for a bank filled with the given profiles, 0.1 s apart"""
    def _make(profiles, alpha=1.0):
        bank = ScanBank(small_config.nr_scans_in_bank, small_config.points_per_scan, alpha)
        for i, ranges in enumerate(profiles):
            bank.write(0.1 * i, np.asarray(ranges, dtype=float))
        return bank
    return _make


@pytest.fixture
def map_provider():
    """Provider knowing only map <- laser (pure translation)"""
    return StaticTransformProvider({
        ("map", "laser"): Pose(translation=(1.0, 0.0, 0.0)),
    })


@pytest.fixture
def make_object(small_config, map_provider):
    """Factory for a MovingObject receding from 1.8 m to 2.0 m in 0.5 s"""
    def _make(config=None, provider=None, old_distance=1.8, new_distance=2.0,
              old_stamp=0.0, new_stamp=0.5):
        config = config or small_config
        provider = provider or map_provider
        segment = make_segment(object_ranges(10, 5, new_distance), 10, 14)
        old = make_segment(object_ranges(10, 5, old_distance), 10, 14)
        track = TrackFound(segment=old, slot=0, stamp=old_stamp)
        resolver = FrameResolver(provider, config)
        obj = KinematicsEstimator(config).estimate(segment, track, new_stamp, 1, resolver)
        return obj, resolver
    return _make
