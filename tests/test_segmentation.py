"""
Unit tests for segmentation and cross-time tracking
"""

import math

import numpy as np
import pytest

from L4_moving_objects import (
    BankConfig,
    CrossTimeTracker,
    ScanBank,
    ScanSegmenter,
    TrackFound,
    TrackNotFound,
    expand_segment,
)
from L4_moving_objects.segmentation import make_segment, seen_width


def filled_bank(profiles):
    bank = ScanBank(len(profiles), len(profiles[0]))
    for i, ranges in enumerate(profiles):
        bank.write(0.1 * i, ranges)
    return bank


@pytest.fixture
def edge_config():
    return BankConfig(points_per_scan=4, min_points=1, edge_max_delta_range=0.1,
                      range_min=0.0, range_max=10.0, max_distance=10.0)


class TestSegmentation:
    """Test the left-to-right segmentation"""

    def test_range_jump_splits_segments(self, edge_config):
        """Test that a jump above the edge tolerance starts a new segment"""
        segments = ScanSegmenter(edge_config).find_segments(np.array([2.0, 2.0, 5.0, 5.0]))
        assert [(s.index_min, s.index_max) for s in segments] == [(0, 1), (2, 3)]
        assert segments[0].mean_range == pytest.approx(2.0)
        assert segments[1].mean_range == pytest.approx(5.0)

    def test_min_points_filters_narrow_segments(self, edge_config):
        """Test that segments narrower than min_points are dropped"""
        config = edge_config.with_sensor_geometry(min_points=3)
        segmenter = ScanSegmenter(config)
        ranges = np.array([2.0, 2.0, 5.0, 5.0])
        assert len(segmenter.candidates(ranges)) == 2
        assert segmenter.find_segments(ranges) == []

    def test_out_of_bounds_ranges_separate_segments(self, edge_config):
        """Test that ranges beyond the tracking limit are never part of an object"""
        segments = ScanSegmenter(edge_config).find_segments(np.array([2.0, 20.0, 2.0, 2.05]))
        assert [(s.index_min, s.index_max) for s in segments] == [(0, 0), (2, 3)]

    def test_tracking_range_uses_max_distance(self):
        """Test that max_distance caps the sensor range_max"""
        config = BankConfig(points_per_scan=4, min_points=1, range_max=8.0, max_distance=3.0)
        segments = ScanSegmenter(config).find_segments(np.array([2.0, 2.0, 4.0, 4.0]))
        assert [(s.index_min, s.index_max) for s in segments] == [(0, 1)]

    def test_make_segment_closest_point(self):
        """Test the segment summary"""
        segment = make_segment(np.array([9.0, 2.2, 2.1, 2.3, 9.0]), 1, 3)
        assert segment.width == 3
        assert segment.index_mean == 2
        assert segment.range_at_min == 2.2
        assert segment.range_at_max == 2.3
        assert segment.closest_index == 2
        assert segment.closest_range == 2.1
        assert segment.range_sum == pytest.approx(6.6)

    def test_expand_segment(self):
        """Test growing a segment from its center"""
        ranges = np.array([8.0, 2.0, 2.05, 2.1, 2.15, 8.0])
        segment = expand_segment(ranges, 3, 0.0, 6.5, 0.1)
        assert (segment.index_min, segment.index_max) == (1, 4)

    def test_expand_segment_invalid_center(self):
        """Test that an unusable center yields no segment"""
        ranges = np.array([2.0, 8.0, 2.0])
        assert expand_segment(ranges, 1, 0.0, 6.5, 0.1) is None
        assert expand_segment(ranges, 3, 0.0, 6.5, 0.1) is None
        assert expand_segment(ranges, -1, 0.0, 6.5, 0.1) is None

    def test_seen_width(self):
        """Test the law of cosines width over the covered angle"""
        segment = make_segment(np.array([1.0, 1.0]), 0, 1)
        assert seen_width(segment, math.pi / 6) == pytest.approx(1.0)


class TestCrossTimeTracker:
    """Test the backward walk through the bank"""

    def test_track_to_oldest_scan(self, small_config, make_bank, make_ranges):
        """Test that an object is followed into the oldest slot"""
        bank = make_bank([make_ranges(5, 5, 2.0), make_ranges(6, 5, 2.0), make_ranges(7, 5, 2.0)])
        segments = ScanSegmenter(small_config).find_segments(bank.newest)
        assert [(s.index_min, s.index_max) for s in segments] == [(7, 11)]

        result = CrossTimeTracker(small_config).track(bank, segments[0])
        assert isinstance(result, TrackFound)
        assert (result.segment.index_min, result.segment.index_max) == (5, 9)
        assert result.slot == bank.oldest_index == 0
        assert result.stamp == pytest.approx(0.0)

    def test_abort_without_tolerance(self, small_config, make_bank, make_ranges):
        """Test that one miss aborts when no misses are tolerated"""
        bank = make_bank([make_ranges(5, 5, 2.0), make_ranges(0, 0, 2.0), make_ranges(7, 5, 2.0)])
        segment = ScanSegmenter(small_config).find_segments(bank.newest)[0]
        result = CrossTimeTracker(small_config).track(bank, segment)
        assert isinstance(result, TrackNotFound)
        assert result.slot == 1
        assert result.levels_searched == 1
        assert result.misses == 1
        assert result.index_mean == -1

    def test_abort_at_oldest_slot(self, small_config, make_ranges):
        """Test that a width change in the last step still aborts the track"""
        config = small_config.with_sensor_geometry(nr_scans_in_bank=4, max_delta_width_points=2)
        bank = filled_bank([make_ranges(2, 12, 2.0), make_ranges(7, 5, 2.0),
                            make_ranges(7, 5, 2.0), make_ranges(7, 5, 2.0)])
        segment = ScanSegmenter(config).find_segments(bank.newest)[0]
        result = CrossTimeTracker(config).track(bank, segment)
        assert isinstance(result, TrackNotFound)
        assert result.slot == bank.oldest_index == 0
        assert result.levels_searched == 3
        assert result.misses == 1

    def test_abort_at_middle_slot(self, small_config, make_ranges):
        """Test that a distance jump halfway aborts although older slots would match"""
        config = small_config.with_sensor_geometry(nr_scans_in_bank=5)
        bank = filled_bank([make_ranges(7, 5, 2.0), make_ranges(7, 5, 2.0),
                            make_ranges(7, 5, 2.6), make_ranges(7, 5, 2.0),
                            make_ranges(7, 5, 2.0)])
        segment = ScanSegmenter(config).find_segments(bank.newest)[0]
        result = CrossTimeTracker(config).track(bank, segment)
        assert isinstance(result, TrackNotFound)
        assert result.slot == 2
        assert result.levels_searched == 2
        assert result.misses == 1

    def test_tolerated_miss_keeps_reference(self, small_config, make_bank, make_ranges):
        """Test that the walk continues from the last accepted segment after a miss"""
        config = small_config.with_sensor_geometry(tracking_max_consecutive_misses=1)
        bank = make_bank([make_ranges(6, 5, 2.0), make_ranges(0, 0, 2.0), make_ranges(7, 5, 2.0)])
        segment = ScanSegmenter(config).find_segments(bank.newest)[0]
        result = CrossTimeTracker(config).track(bank, segment)
        assert isinstance(result, TrackFound)
        assert result.slot == 0
        assert (result.segment.index_min, result.segment.index_max) == (6, 10)
        assert result.misses == 0

    def test_only_tolerated_misses(self, small_config, make_bank, make_ranges):
        """Test that an object never seen before is not found"""
        config = small_config.with_sensor_geometry(tracking_max_consecutive_misses=5)
        bank = make_bank([make_ranges(0, 0, 2.0), make_ranges(0, 0, 2.0), make_ranges(7, 5, 2.0)])
        segment = ScanSegmenter(config).find_segments(bank.newest)[0]
        result = CrossTimeTracker(config).track(bank, segment)
        assert isinstance(result, TrackNotFound)
        assert result.levels_searched == 2
        assert result.misses == 2

    def test_width_change_rejected(self, small_config, make_bank, make_ranges):
        """Test that a much wider segment is not a continuation"""
        config = small_config.with_sensor_geometry(max_delta_width_points=2)
        bank = make_bank([make_ranges(2, 12, 2.0), make_ranges(2, 12, 2.0), make_ranges(7, 5, 2.0)])
        segment = ScanSegmenter(config).find_segments(bank.newest)[0]
        assert isinstance(CrossTimeTracker(config).track(bank, segment), TrackNotFound)

    def test_distance_jump_rejected(self, small_config, make_bank, make_ranges):
        """Test that a segment at a very different range is not a continuation"""
        bank = make_bank([make_ranges(7, 5, 3.0), make_ranges(7, 5, 2.5), make_ranges(7, 5, 2.0)])
        segment = ScanSegmenter(small_config).find_segments(bank.newest)[0]
        assert isinstance(CrossTimeTracker(small_config).track(bank, segment), TrackNotFound)
