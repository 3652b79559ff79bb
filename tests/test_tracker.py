"""
Tests for tracker module
"""

import numpy as np
import pytest

from find_moving_objects import (
    BankConfiguration,
    CrossScanTracker,
    ScanBank,
    ScanSegmenter,
    extend_segment
)

FAR = 9.0


def bank_with(scans, **kwargs):
    """Bank holding `scans`, oldest first, one second apart."""
    values = dict(nr_scans_in_bank=len(scans), points_per_scan=len(scans[0]),
                  ema_alpha=1.0, min_nr_points=2, edge_max_delta_range=0.5,
                  max_delta_width_in_points=1, bank_tracking_max_delta_distance=0.2,
                  angle_increment=0.1, range_min=0.1, range_max=5.0)
    values.update(kwargs)
    bank = ScanBank()
    bank.initialize(BankConfiguration(**values))
    for stamp, scan in enumerate(scans):
        bank.insert(np.array(scan, dtype=float), float(stamp))
    return bank


def newest_candidate(bank):
    candidates = ScanSegmenter(bank.config).segment(bank.newest())
    assert len(candidates) == 1
    return candidates[0]


class TestExtendSegment:
    """Test growing a segment around a seed"""

    def test_grows_both_ways(self):
        """Test that the segment stops at range jumps on both sides"""
        ranges = np.array([FAR, 1.0, 1.1, 1.2, FAR])
        segment = extend_segment(ranges, 2, 0.1, 5.0, 0.5)

        assert (segment.index_min, segment.index_max) == (1, 3)
        assert segment.width == 3
        assert segment.range_sum == pytest.approx(3.3)
        assert segment.range_at_index_min == 1.0
        assert segment.range_at_index_max == 1.2

    def test_seed_out_of_range(self):
        """Test that a seed outside the range gate gives no segment"""
        ranges = np.array([1.0, 1.0, FAR, 1.0, 1.0])
        assert extend_segment(ranges, 2, 0.1, 5.0, 0.5) is None

    def test_reaches_array_bounds(self):
        """Test a segment covering the whole array"""
        ranges = np.full(6, 2.0)
        segment = extend_segment(ranges, 0, 0.1, 5.0, 0.5)
        assert (segment.index_min, segment.index_max) == (0, 5)

    def test_single_point(self):
        """Test a seed without valid neighbours"""
        ranges = np.array([FAR, 1.0, FAR])
        segment = extend_segment(ranges, 1, 0.1, 5.0, 0.5)
        assert segment.width == 1
        assert segment.index_mean == 1


class TestCrossScanTracker:
    """Test following candidates through the bank"""

    def test_static_object_reaches_oldest_scan(self):
        """Test that an unchanged object is found in the oldest slot"""
        scan = [FAR, 1.0, 1.0, FAR, FAR, FAR]
        bank = bank_with([scan, scan, scan])
        tracker = CrossScanTracker(bank)

        old = tracker.track(newest_candidate(bank), 0.1, 5.0)

        assert old is not None
        assert old.age == 2
        assert old.misses == 0
        assert (old.index_min, old.index_max) == (1, 2)
        assert bank.stamp(old.age) == 0.0

    def test_shifted_object(self):
        """Test following an object moving one index per scan"""
        bank = bank_with([
            [FAR, 1.0, 1.0, FAR, FAR, FAR],
            [FAR, FAR, 1.0, 1.0, FAR, FAR],
            [FAR, FAR, FAR, 1.0, 1.0, FAR],
        ])
        old = CrossScanTracker(bank).track(newest_candidate(bank), 0.1, 5.0)

        assert (old.index_min, old.index_max) == (1, 2)

    def test_lost_when_seed_leaves_object(self):
        """Test that a jump past the old segment loses the object"""
        bank = bank_with([
            [FAR, FAR, FAR, 1.0, 1.0, FAR],
            [FAR, FAR, FAR, 1.0, 1.0, FAR],
            [1.0, 1.0, FAR, FAR, FAR, FAR],
        ])
        assert CrossScanTracker(bank).track(newest_candidate(bank), 0.1, 5.0) is None

    def test_distance_gate(self):
        """Test that a large change of the mean range fails the match"""
        bank = bank_with([
            [FAR, 2.0, 2.0, FAR, FAR, FAR],
            [FAR, 2.0, 2.0, FAR, FAR, FAR],
            [FAR, 1.0, 1.0, FAR, FAR, FAR],
        ])
        assert CrossScanTracker(bank).track(newest_candidate(bank), 0.1, 5.0) is None

    def test_width_gate(self):
        """Test that a large change of width fails the match"""
        bank = bank_with([
            [FAR, 1.0, 1.0, 1.0, 1.0, 1.0, FAR, FAR, FAR, FAR],
            [FAR, 1.0, 1.0, 1.0, 1.0, 1.0, FAR, FAR, FAR, FAR],
            [FAR, 1.0, 1.0, FAR, FAR, FAR, FAR, FAR, FAR, FAR],
        ])
        assert CrossScanTracker(bank).track(newest_candidate(bank), 0.1, 5.0) is None

    def test_miss_tolerance(self):
        """Test that max_tracking_misses lets the search continue past a mismatch"""
        scans = [
            [FAR, 1.0, 1.0, 1.0, 1.0, 1.0, FAR, FAR, FAR, FAR],
            [FAR, 1.0, 1.0, 1.0, 1.0, 1.0, FAR, FAR, FAR, FAR],
            [FAR, 1.0, 1.0, FAR, FAR, FAR, FAR, FAR, FAR, FAR],
        ]
        bank = bank_with(scans, max_tracking_misses=1)
        old = CrossScanTracker(bank).track(newest_candidate(bank), 0.1, 5.0)

        assert old is not None
        assert old.age == 2
        assert old.misses == 1
        assert (old.index_min, old.index_max) == (1, 5)

    def test_misses_accumulate(self):
        """Test that misses are counted over the whole search"""
        # Widths 8, 5, 7, 2 from oldest to newest: every level differs by more
        # than one point from the level before
        scans = [
            [FAR, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, FAR],
            [FAR, 1.0, 1.0, 1.0, 1.0, 1.0, FAR, FAR, FAR, FAR],
            [FAR, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, FAR, FAR],
            [FAR, 1.0, 1.0, FAR, FAR, FAR, FAR, FAR, FAR, FAR],
        ]
        bank = bank_with(scans, max_tracking_misses=2)
        assert CrossScanTracker(bank).track(newest_candidate(bank), 0.1, 5.0) is None

        bank = bank_with(scans, max_tracking_misses=3)
        old = CrossScanTracker(bank).track(newest_candidate(bank), 0.1, 5.0)
        assert old.misses == 3

    def test_range_gate_clips_far_objects(self):
        """Test that the tracker ignores objects past its range bound"""
        scan = [FAR, 4.0, 4.0, FAR, FAR, FAR]
        bank = bank_with([scan, scan, scan])
        tracker = CrossScanTracker(bank)
        assert tracker.track(newest_candidate(bank), 0.1, 3.0) is None

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_search_depth_is_bounded(self, seed):
        """Test that no search visits more than capacity - 1 older scans"""
        rng = np.random.default_rng(seed)
        capacity = 6
        scans = [np.repeat(rng.uniform(0.5, 3.0, 10), 3) for _ in range(capacity)]
        bank = bank_with(scans, max_tracking_misses=10, max_delta_width_in_points=30,
                         bank_tracking_max_delta_distance=10.0)
        tracker = CrossScanTracker(bank)

        for candidate in ScanSegmenter(bank.config).segment(bank.newest()):
            old = tracker.track(candidate, 0.1, 5.0)
            assert tracker.last_search_depth <= capacity - 1
            if old is not None:
                assert 1 <= old.age <= capacity - 1
