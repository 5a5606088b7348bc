"""
Unit tests for output assembly
"""

import numpy as np
import pytest

from L4_moving_objects import CollectingSink, ReportAssembler
from L4_moving_objects.config import CLOSEST_POINT_INTENSITY, EMA_OBJECT_INTENSITY
from L4_moving_objects.output import LINE_COLOR


@pytest.fixture
def publishing_config(small_config):
    return small_config.with_sensor_geometry(
        publish_ema=True,
        publish_closest_point_markers=True,
        publish_velocity_arrows=True,
        publish_delta_position_lines=True,
    )


@pytest.fixture
def moving_object(make_object, publishing_config):
    obj, _ = make_object(config=publishing_config)
    obj.confidence = 0.8
    return obj


class TestReportAssembler:
    """Test one reporting cycle of output"""

    def test_seq_increments_every_cycle(self, publishing_config, moving_object):
        """Test that empty cycles also advance the sequence number"""
        assembler = ReportAssembler(publishing_config, CollectingSink())
        ranges = np.full(publishing_config.points_per_scan, 8.0)
        assert assembler.assemble(0.1, [], ranges).seq == 1
        assert assembler.assemble(0.2, [], ranges).seq == 2
        array = assembler.assemble(0.3, [moving_object], ranges)
        assert array.seq == 3
        assert len(array) == 1

    def test_empty_array_not_published(self, publishing_config):
        """Test that only non-empty object arrays reach the sink"""
        sink = CollectingSink()
        assembler = ReportAssembler(publishing_config, sink)
        array = assembler.assemble(0.1, [], np.full(publishing_config.points_per_scan, 8.0))
        assert len(array) == 0
        assert sink.object_arrays == []
        assert len(sink.ema_profiles) == 1

    def test_objects_published(self, publishing_config, moving_object):
        """Test that accepted objects are published in order"""
        sink = CollectingSink()
        ReportAssembler(publishing_config, sink).assemble(
            0.5, [moving_object], np.full(publishing_config.points_per_scan, 8.0))
        assert len(sink.objects) == 1
        assert sink.objects[0] is moving_object
        assert sink.object_arrays[0].origin == "moving_object_detector"

    def test_ema_profile_marks_objects(self, publishing_config, moving_object):
        """Test that the EMA profile highlights object indices"""
        sink = CollectingSink()
        ranges = np.full(publishing_config.points_per_scan, 8.0)
        ReportAssembler(publishing_config, sink).assemble(0.5, [moving_object], ranges)
        profile = sink.ema_profiles[0]
        np.testing.assert_array_equal(profile.ranges, ranges)
        assert np.all(profile.intensities[10:15] == EMA_OBJECT_INTENSITY)
        assert np.count_nonzero(profile.intensities) == 5
        assert profile.frame_id == "laser"

    def test_closest_points_reset(self, publishing_config, moving_object):
        """Test that closest-point entries are neutral again after publishing"""
        sink = CollectingSink()
        assembler = ReportAssembler(publishing_config, sink)
        assembler.assemble(0.5, [moving_object], np.full(publishing_config.points_per_scan, 8.0))

        published = sink.closest_point_profiles[0]
        index = moving_object.segment.closest_index
        assert published.ranges[index] == pytest.approx(moving_object.closest_distance)
        assert published.intensities[index] == CLOSEST_POINT_INTENSITY

        neutral = publishing_config.range_max + 10
        np.testing.assert_allclose(assembler.closest_point_ranges, neutral)

    def test_velocity_arrows(self, publishing_config, moving_object):
        """Test arrow geometry and gray level"""
        sink = CollectingSink()
        ReportAssembler(publishing_config, sink).assemble(
            0.5, [moving_object], np.full(publishing_config.points_per_scan, 8.0))
        (arrow,) = sink.velocity_arrows[0]
        kin = moving_object.in_frame("map")
        assert arrow.frame_id == "map"
        assert arrow.kind == "arrow"
        np.testing.assert_allclose(arrow.points[0], kin.position)
        np.testing.assert_allclose(arrow.points[1], kin.position + kin.velocity)
        assert arrow.color == (0.8, 0.8, 0.8, 1.0)
        assert arrow.scale == (0.05, 0.1, 0.0)
        assert arrow.lifetime == pytest.approx(0.4)

    def test_full_gray_scale(self, publishing_config):
        """Test stretching the gray level over [min_confidence, 1]"""
        config = publishing_config.with_sensor_geometry(
            velocity_arrows_use_full_gray_scale=True, min_confidence=0.6)
        assembler = ReportAssembler(config)
        assert assembler.arrow_gray(0.8) == pytest.approx(0.5)
        assert assembler.arrow_gray(1.0) == pytest.approx(1.0)

    def test_delta_position_lines(self, publishing_config, moving_object):
        """Test that lines join the old and the new position"""
        sink = CollectingSink()
        ReportAssembler(publishing_config, sink).assemble(
            0.5, [moving_object], np.full(publishing_config.points_per_scan, 8.0))
        (line,) = sink.delta_position_lines[0]
        kin = moving_object.in_frame("map")
        assert line.kind == "line_strip"
        assert line.color == LINE_COLOR
        np.testing.assert_allclose(line.points[0], kin.old_position)
        np.testing.assert_allclose(line.points[1], kin.position)

    def test_disabled_outputs(self, small_config, moving_object):
        """Test that disabled outputs are not produced"""
        config = small_config.with_sensor_geometry(
            publish_ema=False, publish_closest_point_markers=False,
            publish_velocity_arrows=False, publish_delta_position_lines=False)
        sink = CollectingSink()
        ReportAssembler(config, sink).assemble(
            0.5, [moving_object], np.full(config.points_per_scan, 8.0))
        assert len(sink.object_arrays) == 1
        assert sink.ema_profiles == []
        assert sink.closest_point_profiles == []
        assert sink.velocity_arrows == []
        assert sink.delta_position_lines == []
