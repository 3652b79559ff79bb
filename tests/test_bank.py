"""
Tests for bank module
"""

import numpy as np
import pytest

from find_moving_objects import (
    BankConfiguration,
    BankNotInitializedError,
    ConfigurationError,
    IngestionError,
    ScanBank
)


def make_bank(capacity=3, points=4, alpha=1.0, **kwargs):
    bank = ScanBank()
    bank.initialize(BankConfiguration(nr_scans_in_bank=capacity,
                                      points_per_scan=points,
                                      ema_alpha=alpha, **kwargs))
    return bank


class TestInitialization:
    """Test bank setup"""

    def test_uninitialized_bank(self):
        """Test that an uninitialized bank refuses insertions"""
        bank = ScanBank()
        assert not bank.initialized
        assert not bank.filled
        with pytest.raises(BankNotInitializedError):
            bank.insert(np.ones(4), 0.0)

    def test_invalid_configuration(self):
        """Test that initialize validates the configuration"""
        bank = ScanBank()
        with pytest.raises(ConfigurationError):
            bank.initialize(BankConfiguration(nr_scans_in_bank=1))
        assert not bank.initialized

    def test_initialize_once(self):
        """Test that a second initialize keeps the first configuration"""
        bank = make_bank(capacity=3)
        bank.initialize(BankConfiguration(nr_scans_in_bank=7))
        assert bank.capacity == 3

    def test_first_insertion(self):
        """Test the cursors after the first scan"""
        bank = make_bank()
        assert bank.empty

        bank.insert(np.full(4, 2.0), 1.0)

        assert not bank.empty
        assert bank.put_index == 1
        assert bank.newest_index == 0
        assert not bank.filled
        assert np.allclose(bank.newest(), 2.0)
        assert bank.stamp(0) == 1.0


class TestSmoothing:
    """Test exponential moving average insertion"""

    @pytest.mark.parametrize("alpha", [0.0, 0.3, 0.5, 1.0])
    def test_constant_input_is_fixed_point(self, alpha):
        """Test that a constant scan stays constant for any alpha"""
        bank = make_bank(capacity=4, alpha=alpha)
        for k in range(10):
            bank.insert(np.full(4, 3.0), float(k))
        for age in range(4):
            assert np.allclose(bank.slot(age), 3.0)

    def test_ema_weights(self):
        """Test alpha * new + (1 - alpha) * newest"""
        bank = make_bank(alpha=0.5)
        bank.insert(np.full(4, 2.0), 0.0)
        bank.insert(np.full(4, 4.0), 1.0)
        assert np.allclose(bank.newest(), 3.0)

        bank.insert(np.full(4, 4.0), 2.0)
        assert np.allclose(bank.newest(), 3.5)
        assert np.allclose(bank.slot(1), 3.0)
        assert np.allclose(bank.slot(2), 2.0)

    def test_alpha_zero_keeps_first_scan(self):
        """Test that alpha 0 ignores every scan after the first"""
        bank = make_bank(alpha=0.0)
        bank.insert(np.full(4, 1.0), 0.0)
        bank.insert(np.full(4, 9.0), 1.0)
        assert np.allclose(bank.newest(), 1.0)

    @pytest.mark.parametrize("missing", [np.inf, np.nan])
    def test_missing_return_does_not_stick_without_smoothing(self, missing):
        """Test that alpha 1 stores every scan as it is"""
        bank = make_bank(points=3, alpha=1.0)
        bank.insert([1.0, missing, 1.0], 0.0)
        bank.insert([1.0, missing, 1.0], 1.0)
        bank.insert([1.0, 2.0, 1.0], 2.0)

        assert np.array_equal(bank.newest(), [1.0, 2.0, 1.0])

    @pytest.mark.parametrize("missing", [np.inf, np.nan])
    def test_missing_return_with_partial_smoothing(self, missing):
        """Test that a bin with a missing reading takes the incoming value"""
        bank = make_bank(points=3, alpha=0.5)
        bank.insert([2.0, 2.0, 2.0], 0.0)
        bank.insert([4.0, missing, 4.0], 1.0)
        assert np.allclose(bank.newest()[[0, 2]], 3.0)
        assert not np.isfinite(bank.newest()[1])

        bank.insert([4.0, 2.0, 4.0], 2.0)
        assert np.allclose(bank.newest(), [3.5, 2.0, 3.5])

    @pytest.mark.parametrize("missing", [np.inf, np.nan])
    def test_missing_return_ignored_without_update(self, missing):
        """Test that alpha 0 keeps the first scan even against missing readings"""
        bank = make_bank(points=3, alpha=0.0)
        bank.insert([1.0, 2.0, 1.0], 0.0)
        bank.insert([missing, missing, missing], 1.0)
        assert np.array_equal(bank.newest(), [1.0, 2.0, 1.0])


class TestRing:
    """Test ring buffer cursors"""

    def test_filled_after_capacity_insertions(self):
        """Test that filled turns true after exactly capacity scans and stays"""
        bank = make_bank(capacity=4)
        for k in range(3):
            bank.insert(np.ones(4), float(k))
            assert not bank.filled

        for k in range(3, 12):
            bank.insert(np.ones(4), float(k))
            assert bank.filled

    def test_cursor_invariant(self):
        """Test newest == (put - 1) mod capacity after every insertion"""
        bank = make_bank(capacity=3)
        for k in range(10):
            bank.insert(np.ones(4), float(k))
            assert bank.newest_index == (bank.put_index - 1) % 3
            assert 0 <= bank.put_index < 3

    def test_slots_by_age(self):
        """Test that ages count back from the newest scan"""
        bank = make_bank(capacity=3)
        for k in range(1, 6):
            bank.insert(np.full(4, float(k)), float(k))

        assert np.allclose(bank.slot(0), 5.0)
        assert np.allclose(bank.slot(1), 4.0)
        assert np.allclose(bank.slot(2), 3.0)
        assert np.allclose(bank.oldest(), 3.0)
        assert bank.stamp(2) == 3.0

    def test_age_out_of_range(self):
        """Test that ages beyond the capacity are rejected"""
        bank = make_bank(capacity=3)
        bank.insert(np.ones(4), 0.0)
        with pytest.raises(IndexError):
            bank.slot(3)
        with pytest.raises(IndexError):
            bank.slot(-1)

    def test_empty_bank_has_no_slots(self):
        """Test reading from an empty bank"""
        bank = make_bank()
        with pytest.raises(IndexError):
            bank.newest()

    def test_slots_are_read_only(self):
        """Test that slot views cannot modify the bank"""
        bank = make_bank()
        bank.insert(np.ones(4), 0.0)
        view = bank.newest()
        with pytest.raises(ValueError):
            view[0] = 5.0

    def test_insert_copies_input(self):
        """Test that later changes to the input array do not leak in"""
        bank = make_bank()
        ranges = np.ones(4)
        bank.insert(ranges, 0.0)
        ranges[:] = 7.0
        assert np.allclose(bank.newest(), 1.0)

    def test_wrong_width_leaves_bank_unchanged(self):
        """Test that a scan with the wrong size is rejected without side effects"""
        bank = make_bank(capacity=3)
        bank.insert(np.full(4, 1.0), 0.0)
        bank.insert(np.full(4, 2.0), 1.0)

        with pytest.raises(IngestionError):
            bank.insert(np.ones(5), 2.0)

        assert bank.put_index == 2
        assert bank.newest_index == 1
        assert bank.nr_insertions == 2
        assert np.allclose(bank.newest(), 2.0)

    def test_reset(self):
        """Test that reset empties the bank and keeps the configuration"""
        bank = make_bank(capacity=2)
        for k in range(3):
            bank.insert(np.ones(4), float(k))
        assert bank.filled

        bank.reset()

        assert bank.initialized
        assert bank.empty
        assert not bank.filled
        assert bank.nr_insertions == 0


class TestPointCloudInsertion:
    """Test point clouds entering the bank"""

    def test_cloud_is_projected(self, make_cloud):
        """Test that a cloud becomes one smoothed scan"""
        config = BankConfiguration(nr_scans_in_bank=2, points_per_scan=9,
                                   angle_min=-np.pi / 2, angle_max=np.pi / 2,
                                   max_distance=5.0)
        cloud = make_cloud([(2.0, 0.0, 0.5)], stamp=3.0)
        bank = ScanBank()
        bank.initialize(config.for_point_cloud(cloud))

        added = bank.insert_point_cloud(cloud)

        assert added == 1
        assert bank.stamp(0) == 3.0
        assert bank.newest()[4] == pytest.approx(np.sqrt(4.25))
        assert bank.newest()[0] == pytest.approx(15.0)

    def test_cloud_without_usable_points(self, make_cloud):
        """Test that a cloud outside the height band leaves the bank unchanged"""
        config = BankConfiguration(nr_scans_in_bank=2, points_per_scan=9,
                                   angle_min=-np.pi / 2, angle_max=np.pi / 2)
        bank = ScanBank()
        bank.initialize(config)

        with pytest.raises(IngestionError):
            bank.insert_point_cloud(make_cloud([(2.0, 0.0, 5.0)]))

        assert bank.empty
        assert bank.nr_insertions == 0
