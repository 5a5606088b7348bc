"""
Unit tests for the bank configuration
"""

import math

import pytest

from L4_moving_objects import BankConfig, ConfigurationError


class TestBankConfig:
    """Test parameter validation and derived values"""

    def test_defaults(self):
        """Test the default parameter set"""
        config = BankConfig()
        assert config.ema_alpha == 1.0
        assert config.nr_scans_in_bank == 11
        assert config.min_points == 5
        assert config.max_distance == 6.5
        assert config.min_confidence == pytest.approx(0.67)
        assert config.tracking_max_consecutive_misses == 0

    @pytest.mark.parametrize("options, message", [
        ({"nr_scans_in_bank": 1}, "at least 2 scans"),
        ({"ema_alpha": 1.5}, "EMA"),
        ({"ema_alpha": -0.1}, "EMA"),
        ({"angle_min": 1.0, "angle_max": 0.5}, "angle_min"),
        ({"angle_max": 4.0}, "angle_max"),
        ({"min_points": 0}, "at least 1 point"),
        ({"min_confidence": 1.2}, "min_confidence"),
        ({"map_frame": ""}, "map frame"),
        ({"velocity_arrows_frame": "world"}, "velocity_arrows_frame"),
        ({"publish_velocity_arrows": True, "velocity_arrow_ns": ""}, "name space"),
        ({"range_min": 2.0, "range_max": 1.0}, "range_min"),
        ({"transform_lookup_workers": 0}, "workers"),
    ])
    def test_invalid_values(self, options, message):
        """Test that invalid values are refused with a readable message"""
        with pytest.raises(ConfigurationError, match=message):
            BankConfig(**options)

    def test_configuration_error_is_value_error(self):
        """Test that callers can catch ValueError"""
        with pytest.raises(ValueError):
            BankConfig(nr_scans_in_bank=0)

    def test_sensor_geometry_validated(self):
        """Test that attaching sensor geometry re-validates"""
        config = BankConfig()
        with pytest.raises(ConfigurationError):
            config.with_sensor_geometry(angle_increment=-0.1)
        attached = config.with_sensor_geometry(sensor_frame="laser", range_max=5.0)
        assert attached.sensor_frame == "laser"
        assert config.sensor_frame == ""

    def test_point_cloud_validation(self):
        """Test the point-cloud only checks"""
        BankConfig().validate_point_cloud()
        with pytest.raises(ConfigurationError, match="z thresholds"):
            BankConfig(pc2_z_min=2.0, pc2_z_max=1.0).validate_point_cloud()
        with pytest.raises(ConfigurationError, match="x coordinates"):
            BankConfig(pc2_x_field="").validate_point_cloud()

    def test_from_dict(self):
        """Test building from a plain dictionary"""
        config = BankConfig.from_dict({"ema_alpha": 0.5, "nr_scans_in_bank": 4})
        assert config.ema_alpha == 0.5
        assert config.nr_scans_in_bank == 4

    def test_from_dict_unknown_key(self):
        """Test that typos in option names are reported"""
        with pytest.raises(ConfigurationError, match="nr_scans"):
            BankConfig.from_dict({"nr_scans": 4})

    def test_derived_values(self):
        """Test tracking range, empty-bin range and frame names"""
        config = BankConfig(range_max=5.0, max_distance=6.5, sensor_frame="laser")
        assert config.tracking_range_max == 5.0
        assert config.empty_bin_range == pytest.approx(16.5)
        assert config.frame_name("sensor") == "laser"
        assert config.frame_name("fixed") == "odom"
        assert config.frame_name("base") == "base_link"
        assert BankConfig().tracking_range_max == 6.5
        assert BankConfig().range_max == math.inf

    def test_index_to_angle(self):
        """Test index to angle conversion"""
        config = BankConfig(angle_min=-1.0, angle_increment=0.01)
        assert config.index_to_angle(50) == pytest.approx(-0.5)
