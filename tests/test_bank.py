"""
Unit tests for the scan bank and the EMA smoothing
"""

import logging

import numpy as np
import pytest

from L4_moving_objects import ScanBank, ScanShapeError, ema_blend
from L4_moving_objects.smoothing import ScanSmoother


class TestEmaBlend:
    """Test the scan-wide exponential moving average"""

    def test_alpha_one_returns_raw_copy(self):
        """Test that alpha 1 disables smoothing"""
        raw = np.array([1.0, 2.0, 3.0])
        result = ema_blend(raw, np.zeros(3), 1.0)
        np.testing.assert_array_equal(result, raw)
        assert result is not raw

    def test_blend_weights(self):
        """Test S = alpha * x + (1 - alpha) * S_prev"""
        result = ema_blend(np.array([4.0, 0.0]), np.array([2.0, 2.0]), 0.25)
        np.testing.assert_allclose(result, [2.5, 1.5])

    def test_idempotent_on_constant_input(self):
        """Test that blending a profile with itself leaves it unchanged"""
        profile = np.array([0.5, 1.5, 6.0])
        for alpha in (0.0, 0.3, 0.9):
            np.testing.assert_allclose(ema_blend(profile, profile, alpha), profile)

    @pytest.mark.parametrize("alpha", [0.0, 0.6, 1.0])
    def test_result_stays_between_inputs(self, alpha):
        """Test that every smoothed value lies between raw and previous"""
        rng = np.random.default_rng(3)
        raw = rng.uniform(0, 10, 50)
        previous = rng.uniform(0, 10, 50)
        raw[::7] = np.inf
        previous[3::11] = np.inf
        result = ema_blend(raw, previous, alpha)
        assert not np.any(np.isnan(result))
        assert np.all(result >= np.minimum(raw, previous) - 1e-12)
        assert np.all(result <= np.maximum(raw, previous) + 1e-12)

    def test_alpha_zero_keeps_previous(self):
        """Test that alpha 0 ignores new data, including missing returns"""
        result = ema_blend(np.array([np.inf, 1.0]), np.array([2.0, 3.0]), 0.0)
        np.testing.assert_array_equal(result, [2.0, 3.0])

    def test_smoother_passes_first_scan(self):
        """Test that a scan without predecessor is copied"""
        smoother = ScanSmoother(0.5)
        raw = np.array([1.0, 2.0])
        assert smoother.enabled
        np.testing.assert_array_equal(smoother.smooth(raw), raw)
        assert not ScanSmoother(1.0).enabled


class TestScanBank:
    """Test the circular scan bank"""

    def test_initial_state(self):
        """Test an empty bank"""
        bank = ScanBank(3, 4)
        assert bank.index_put == -1
        assert bank.index_newest == -1
        assert not bank.initialized
        assert not bank.filled

    def test_first_write_initializes_indices(self):
        """Test put=1 and newest=0 after the first scan"""
        bank = ScanBank(3, 4)
        bank.write(1.0, np.ones(4))
        assert bank.initialized
        assert bank.index_put == 1
        assert bank.index_newest == 0
        assert bank.newest_stamp == 1.0

    def test_filled_after_depth_writes(self):
        """Test that the bank fills after exactly nr_scans writes"""
        bank = ScanBank(3, 4)
        bank.write(0.0, np.ones(4))
        bank.write(0.1, np.ones(4))
        assert not bank.filled
        bank.write(0.2, np.ones(4))
        assert bank.filled
        assert bank.index_newest == 2
        assert bank.oldest_index == bank.index_put == 0
        assert bank.oldest_stamp == 0.0

    def test_filled_logged_once(self, caplog):
        """Test that filling is logged only on the first wrap"""
        bank = ScanBank(2, 4)
        with caplog.at_level(logging.INFO, logger="L4_moving_objects.bank"):
            for i in range(6):
                bank.write(0.1 * i, np.ones(4))
        filled_messages = [r for r in caplog.records if "Bank filled" in r.getMessage()]
        assert len(filled_messages) == 1
        assert bank.filled

    def test_cursors_wrap(self):
        """Test that newest and put advance modulo the depth"""
        bank = ScanBank(3, 2)
        for i in range(5):
            bank.write(float(i), np.full(2, float(i)))
        assert bank.index_newest == 1
        assert bank.index_put == 2
        np.testing.assert_array_equal(bank.newest, [4.0, 4.0])
        assert bank.oldest_stamp == 2.0
        assert bank.previous_index(0) == 2

    def test_smoothing_against_newest(self):
        """Test that a new scan is blended with the newest slot"""
        bank = ScanBank(3, 2, alpha=0.5)
        bank.write(0.0, np.array([2.0, 2.0]))
        bank.write(0.1, np.array([4.0, 6.0]))
        np.testing.assert_allclose(bank.newest, [3.0, 4.0])

    def test_slots_are_read_only(self):
        """Test that readers cannot modify the bank"""
        bank = ScanBank(2, 3)
        bank.write(0.0, np.ones(3))
        view = bank.slot(0)
        with pytest.raises(ValueError):
            view[0] = 5.0
        bank.write(0.1, np.full(3, 2.0))
        np.testing.assert_array_equal(bank.slot(1), [2.0, 2.0, 2.0])

    def test_wrong_shape_rejected(self):
        """Test that a scan of the wrong length is refused"""
        bank = ScanBank(2, 3)
        with pytest.raises(ScanShapeError):
            bank.write(0.0, np.ones(4))
        assert not bank.initialized

    def test_reset(self):
        """Test that reset forgets every scan"""
        bank = ScanBank(2, 3)
        for i in range(3):
            bank.write(float(i), np.ones(3))
        bank.reset()
        assert not bank.filled
        assert bank.nr_writes == 0
        assert bank.index_newest == -1
