"""
Unit tests for kinematics, transform lookups and confidence scoring
"""

import math

import numpy as np
import pytest

from L4_moving_objects import (
    FrameResolver,
    NullTransformProvider,
    Pose,
    StaticTransformProvider,
    TransformStatus,
    TransformUnavailable,
    clamp_confidence,
    default_confidence,
)
from L4_moving_objects.confidence import score, width_similarity
from L4_moving_objects.kinematics import KinematicsEstimator, velocity_from_positions


class TestVelocity:
    """Test velocity from two positions"""

    def test_velocity_and_speed(self):
        """Test the finite difference"""
        velocity, speed, direction = velocity_from_positions(
            np.array([0.0, 0.0, 0.0]), np.array([0.3, 0.4, 0.0]), 0.5)
        np.testing.assert_allclose(velocity, [0.6, 0.8, 0.0])
        assert speed == pytest.approx(1.0)
        np.testing.assert_allclose(direction, [0.6, 0.8, 0.0])

    def test_zero_speed_direction(self):
        """Test that a standing object has a zero direction vector"""
        point = np.array([1.0, 2.0, 0.0])
        _, speed, direction = velocity_from_positions(point, point, 0.2)
        assert speed == 0.0
        np.testing.assert_array_equal(direction, np.zeros(3))
        assert not np.any(np.isnan(direction))


class TestTransforms:
    """Test poses and transform providers"""

    def test_pose_compose_and_inverse(self):
        """Test that a pose composed with its inverse is the identity"""
        pose = Pose.from_xy_yaw(1.0, -2.0, 0.7, z=0.3)
        point = np.array([0.5, 0.25, 0.0])
        np.testing.assert_allclose(pose.inverse().apply(pose.apply(point)), point, atol=1e-12)
        np.testing.assert_allclose(pose.compose(pose.inverse()).apply(point), point, atol=1e-12)

    def test_pose_rotation(self):
        """Test a quarter turn about z"""
        pose = Pose.from_xy_yaw(0.0, 0.0, math.pi / 2)
        np.testing.assert_allclose(pose.apply([1.0, 0.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-12)

    def test_static_provider(self, map_provider):
        """Test registered, identical and unknown frame pairs"""
        assert map_provider.lookup("map", "laser", 0.0, 1.0).translation == (1.0, 0.0, 0.0)
        np.testing.assert_allclose(
            map_provider.lookup("laser", "laser", 0.0, 1.0).apply([1.0, 2.0, 3.0]),
            [1.0, 2.0, 3.0])
        with pytest.raises(TransformUnavailable):
            map_provider.lookup("odom", "laser", 0.0, 1.0)


class TestKinematicsEstimator:
    """Test building moving objects in all frames"""

    def test_sensor_frame(self, make_object):
        """Test position, distance and speed in the sensor frame"""
        obj, _ = make_object()
        angle = 0.12
        np.testing.assert_allclose(obj.position, [2.0 * math.cos(angle), 2.0 * math.sin(angle), 0.0])
        assert obj.distance == pytest.approx(2.0)
        assert obj.dt == pytest.approx(0.5)
        assert obj.speed == pytest.approx(0.4)
        assert obj.angle_begin == pytest.approx(0.10)
        assert obj.angle_end == pytest.approx(0.14)
        assert obj.in_frame("sensor").transformed

    def test_partial_transforms_fall_back(self, make_object):
        """Test that frames without transforms use sensor coordinates"""
        obj, resolver = make_object()
        map_kin = obj.in_frame("map")
        assert map_kin.transformed
        assert map_kin.frame_id == "map"
        np.testing.assert_allclose(map_kin.position, obj.position + [1.0, 0.0, 0.0])
        assert map_kin.speed == pytest.approx(obj.speed)

        for key in ("fixed", "base"):
            kin = obj.in_frame(key)
            assert not kin.transformed
            assert kin.frame_id == "laser"
            np.testing.assert_allclose(kin.position, obj.position)

        assert obj.transform_status == TransformStatus(map_old=True, map_new=True)
        assert resolver.nr_failures == 4

    def test_no_transforms(self, make_object):
        """Test that a provider without data still yields an object"""
        obj, resolver = make_object(provider=NullTransformProvider())
        assert obj.transform_status.success_count == 0
        assert all(obj.in_frame(k).speed == pytest.approx(0.4) for k in ("map", "fixed", "base"))
        assert resolver.nr_lookups == 6

    def test_non_positive_time_span(self, make_object):
        """Test that scans at the same time give no object"""
        obj, _ = make_object(old_stamp=1.0, new_stamp=1.0)
        assert obj is None

    def test_speed_threshold(self, make_object, small_config):
        """Test the min_speed gate on the fastest frame"""
        obj, _ = make_object()
        assert KinematicsEstimator(small_config).is_moving(obj)
        strict = small_config.with_sensor_geometry(min_speed=0.5)
        assert not KinematicsEstimator(strict).is_moving(obj)

    def test_record_columns(self, make_object):
        """Test the flat record used for CSV export"""
        obj, _ = make_object()
        record = obj.to_record()
        assert record["distance"] == pytest.approx(2.0)
        assert record["map_speed"] == pytest.approx(0.4)
        assert "sensor_x" in record


class TestFrameResolver:
    """Test memoized transform lookups"""

    def test_lookups_memoized(self, small_config, map_provider):
        """Test that each frame and stamp is looked up once"""
        resolver = FrameResolver(map_provider, small_config)
        assert resolver.pose("map", 0.0) is not None
        assert resolver.pose("map", 0.0) is not None
        assert resolver.pose("fixed", 0.0) is None
        assert resolver.pose("fixed", 0.0) is None
        assert resolver.nr_lookups == 2
        assert resolver.nr_failures == 1

    @pytest.mark.parametrize("workers", [1, 3])
    def test_prefetch(self, small_config, map_provider, workers):
        """Test that prefetching covers every frame at every stamp"""
        config = small_config.with_sensor_geometry(transform_lookup_workers=workers)
        resolver = FrameResolver(map_provider, config)
        resolver.prefetch([0.0, 0.5, 0.5])
        assert resolver.nr_lookups == 6
        assert resolver.nr_failures == 4
        resolver.pose("map", 0.5)
        resolver.pose("base", 0.0)
        assert resolver.nr_lookups == 6


class TestConfidence:
    """Test confidence scoring"""

    def test_width_similarity(self):
        """Test the width agreement term"""
        assert width_similarity(0.5, 1.0) == pytest.approx(0.5)
        assert width_similarity(1.0, 0.5) == pytest.approx(0.5)
        assert width_similarity(0.0, 0.0) == 1.0

    def test_default_confidence(self, make_object, small_config):
        """Test the default heuristic with two of six transforms"""
        obj, _ = make_object()
        value = default_confidence(obj, small_config, obj.dt, obj.seen_width_old,
                                   obj.transform_status)
        expected = 0.3 + 0.3 * width_similarity(obj.seen_width, obj.seen_width_old) \
            + 0.2 + 0.2 * 2 / 6
        assert value == pytest.approx(expected)

    def test_full_confidence(self, make_object, small_config):
        """Test equal widths, positive dt and all transforms"""
        obj, _ = make_object(old_distance=2.0)
        status = TransformStatus(True, True, True, True, True, True)
        assert default_confidence(obj, small_config, 0.5, obj.seen_width, status) == \
            pytest.approx(1.0)

    @pytest.mark.parametrize("raw, clamped", [
        (1.7, 1.0),
        (-0.3, 0.0),
        (0.42, 0.42),
        (float("nan"), 0.0),
    ])
    def test_clamp(self, raw, clamped):
        """Test clamping to [0, 1]"""
        assert clamp_confidence(raw) == pytest.approx(clamped)

    def test_injected_scorer_clamped(self, make_object, small_config):
        """Test that scorer output is clamped and receives dt"""
        obj, _ = make_object()
        seen = {}

        def scorer(o, config, dt, seen_width_old, status):
            seen["dt"] = dt
            return 1.7

        assert score(scorer, obj, small_config, obj.seen_width_old,
                     obj.transform_status) == 1.0
        assert seen["dt"] == pytest.approx(0.5)
        assert score(lambda *args: -0.3, obj, small_config, 0.0, TransformStatus()) == 0.0
