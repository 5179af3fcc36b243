"""
Unit tests for the ratiometric dataset module.
"""

import pytest
import numpy as np

from ratiometric.dataset import (
    RatiometricDataset, FormatError, compute_baseline, calculate_dff, DEFAULT_FRAME_PERIOD
)


def interleave(reference, signal):
    """Build a raw frame matrix from per-ROI reference and signal columns."""
    reference = np.asarray(reference, dtype=float)
    signal = np.asarray(signal, dtype=float)
    frames = np.empty((2 * reference.shape[0], reference.shape[1]))
    frames[0::2] = reference
    frames[1::2] = signal
    return frames


class TestRatiometricDataset:
    """Test cases for RatiometricDataset."""

    @pytest.fixture
    def dataset(self):
        """Two ROIs, six ratio frames, frame period of 1 s."""
        # ROI 0 ratios: 1..6, ROI 1 ratios: 2, 2, 2, 4, 4, 4
        reference = np.column_stack([np.full(6, 2.0), np.full(6, 5.0)])
        signal = np.column_stack([
            2.0 * np.arange(1, 7),
            [10.0, 10.0, 10.0, 20.0, 20.0, 20.0]
        ])
        return RatiometricDataset(interleave(reference, signal), frame_period=1.0)

    def test_two_ratio_frame_scenario(self):
        """4 frames, 1 ROI: ratios [2, 4] and ΔF/F [0, 100]."""
        ds = RatiometricDataset([[1], [2], [1], [4]], frame_period=1.0)

        np.testing.assert_array_equal(ds.get_ratio_all(0), [2.0, 4.0])
        assert ds.baseline_index1 == 0
        assert ds.baseline_index2 == 1
        np.testing.assert_array_equal(ds.get_dff_sweep(0, 0), [0.0, 100.0])

    def test_defaults(self):
        ds = RatiometricDataset([[1.0, 2.0], [3.0, 4.0]])

        assert ds.frame_period == DEFAULT_FRAME_PERIOD
        assert ds.sweep_count == 1
        assert ds.baseline_time1 == 0.0
        assert ds.baseline_time2 == 1.0
        assert ds.baseline_index2 == 14  # floor(1 / 0.067)
        assert ds.channels_per_ratio == 2
        assert ds.roi_names == ['ROI 1', 'ROI 2']
        assert ds.filename is None

    def test_dimensions(self, dataset):
        assert dataset.frame_count == 12
        assert dataset.roi_count == 2
        assert dataset.ratio_frame_count == 6
        assert dataset.frames_per_sweep == 6

    def test_values_read_only(self, dataset):
        with pytest.raises(ValueError):
            dataset.values[0, 0] = 99.0
        with pytest.raises(AttributeError):
            dataset.frame_period = 2.0

    def test_get_frame_value(self, dataset):
        assert dataset.get_frame_value(0, 0) == 2.0
        assert dataset.get_frame_value(1, 1) == 10.0

        with pytest.raises(IndexError):
            dataset.get_frame_value(12, 0)
        with pytest.raises(IndexError):
            dataset.get_frame_value(-1, 0)
        with pytest.raises(IndexError):
            dataset.get_frame_value(0, 2)

    def test_ratio_value_matches_frames(self, dataset):
        for roi in range(dataset.roi_count):
            for i in range(dataset.ratio_frame_count):
                expected = dataset.values[2 * i + 1, roi] / dataset.values[2 * i, roi]
                assert dataset.get_ratio_value(i, roi) == expected

    def test_ratio_value_out_of_range(self, dataset):
        with pytest.raises(IndexError):
            dataset.get_ratio_value(6, 0)
        with pytest.raises(IndexError):
            dataset.get_ratio_value(0, -1)

    def test_ratio_all(self, dataset):
        np.testing.assert_array_equal(dataset.get_ratio_all(0), [1, 2, 3, 4, 5, 6])
        np.testing.assert_array_equal(dataset.get_ratio_all(1), [2, 2, 2, 4, 4, 4])

        with pytest.raises(IndexError):
            dataset.get_ratio_all(2)

    def test_odd_frame_count_truncates(self):
        ds = RatiometricDataset([[1], [2], [1], [3], [7]], frame_period=1.0)

        assert ds.frame_count == 5
        assert ds.ratio_frame_count == 2
        assert len(ds.get_ratio_all(0)) == 2
        with pytest.raises(IndexError):
            ds.get_ratio_value(2, 0)

    def test_ratio_sweep(self, dataset):
        dataset.sweep_count = 2

        assert dataset.frames_per_sweep == 3
        np.testing.assert_array_equal(dataset.get_ratio_sweep(0, 0), [1, 2, 3])
        np.testing.assert_array_equal(dataset.get_ratio_sweep(0, 1), [4, 5, 6])

    def test_sweeps_concatenate_to_ratio_series(self, dataset):
        for sweep_count in (1, 2, 3, 4, 5, 6):
            dataset.sweep_count = sweep_count
            n = sweep_count * dataset.frames_per_sweep
            joined = np.concatenate([
                dataset.get_ratio_sweep(0, s) for s in range(sweep_count)
            ])
            np.testing.assert_array_equal(joined, dataset.get_ratio_all(0)[:n])

    def test_sweep_remainder_dropped(self, dataset):
        dataset.sweep_count = 4

        assert dataset.frames_per_sweep == 1
        chart = dataset.get_dff_chart(0)
        assert chart.shape == (1, 4)

    def test_sweep_index_bounds(self, dataset):
        dataset.sweep_count = 4

        # Past sweep_count but still inside the ratio series
        np.testing.assert_array_equal(dataset.get_ratio_sweep(0, 5), [6])

        with pytest.raises(IndexError):
            dataset.get_ratio_sweep(0, 6)
        with pytest.raises(IndexError):
            dataset.get_ratio_sweep(0, -1)

    def test_dff_mean_baseline(self, dataset):
        dataset.sweep_count = 2
        dataset.baseline_time1 = 0.0
        dataset.baseline_time2 = 2.0

        assert dataset.get_baseline(0, 0) == pytest.approx(1.5)
        assert dataset.get_baseline(0, 1) == pytest.approx(4.5)

        np.testing.assert_allclose(
            dataset.get_dff_sweep(0, 0), [-100 / 3, 100 / 3, 100.0]
        )
        np.testing.assert_allclose(
            dataset.get_dff_sweep(0, 1), [-100 / 9, 100 / 9, 100 / 3]
        )

    def test_dff_single_value_baseline(self, dataset):
        dataset.sweep_count = 2
        dataset.baseline_time1 = 1.0
        dataset.baseline_time2 = 1.0

        assert dataset.get_baseline(0, 0) == 2.0
        np.testing.assert_array_equal(dataset.get_dff_sweep(0, 0), [-50.0, 0.0, 50.0])

    def test_dff_reversed_window_uses_second_index(self, dataset):
        dataset.sweep_count = 2
        dataset.baseline_time1 = 2.0
        dataset.baseline_time2 = 1.0

        assert dataset.get_baseline(0, 1) == 5.0

    def test_dff_formula(self, dataset):
        dataset.sweep_count = 3
        dataset.baseline_time2 = 2.0

        for sweep in range(dataset.sweep_count):
            ratio = dataset.get_ratio_sweep(1, sweep)
            baseline = np.mean(ratio[0:2])
            expected = (ratio - baseline) / baseline * 100
            np.testing.assert_allclose(dataset.get_dff_sweep(1, sweep), expected)

    def test_baseline_out_of_range(self, dataset):
        dataset.sweep_count = 2
        dataset.baseline_time2 = 10.0
        with pytest.raises(IndexError):
            dataset.get_dff_sweep(0, 0)

        dataset.baseline_time1 = 3.0
        dataset.baseline_time2 = 3.0
        with pytest.raises(IndexError):
            dataset.get_dff_sweep(0, 0)

    def test_dff_chart(self, dataset):
        dataset.sweep_count = 2
        chart = dataset.get_dff_chart(1)

        assert chart.shape == (3, 2)
        for sweep in range(2):
            np.testing.assert_array_equal(chart[:, sweep], dataset.get_dff_sweep(1, sweep))

    def test_configuration_is_reread(self, dataset):
        assert dataset.get_dff_chart(0).shape == (6, 1)

        dataset.sweep_count = 3
        assert dataset.get_dff_chart(0).shape == (2, 3)

        dataset.baseline_time1 = dataset.baseline_time2 = 0.0
        np.testing.assert_array_equal(dataset.get_dff_sweep(0, 0), [0.0, 100.0])

    def test_time_vector(self, dataset):
        dataset.sweep_count = 2
        np.testing.assert_array_equal(dataset.get_time_vector(), [0.0, 1.0, 2.0])

    def test_zero_reference_propagates(self):
        ds = RatiometricDataset([[0], [1], [0], [0], [1], [2]], frame_period=1.0)

        ratio = ds.get_ratio_all(0)
        assert np.isposinf(ratio[0])
        assert np.isnan(ratio[1])
        assert ratio[2] == 2.0
        assert np.isposinf(ds.get_ratio_value(0, 0))

        ds.baseline_time1 = ds.baseline_time2 = 2.0
        dff = ds.get_dff_sweep(0, 0)
        assert not np.isfinite(dff[0])
        assert np.isnan(dff[1])
        assert dff[2] == 0.0

    def test_zero_baseline_propagates(self):
        ds = RatiometricDataset([[1], [0], [1], [2]], frame_period=1.0)

        dff = ds.get_dff_sweep(0, 0)
        assert np.isnan(dff[0])
        assert np.isposinf(dff[1])

    def test_summary(self, dataset):
        dataset.sweep_count = 4
        summary = dataset.summary()

        assert summary['frame_count'] == 12
        assert summary['unpaired_frames'] == 0
        assert summary['frames_per_sweep'] == 1
        assert summary['dropped_ratio_frames'] == 2
        assert summary['baseline_indices'] == (0, 1)


class TestConstruction:
    """Test cases for building a dataset from rows."""

    def test_ragged_rows(self):
        with pytest.raises(FormatError):
            RatiometricDataset([[1.0, 2.0], [3.0]])

    @pytest.mark.parametrize('cell', ['abc', '1.5', None, True, False, np.bool_(True)])
    def test_non_numeric_cell(self, cell):
        with pytest.raises(FormatError):
            RatiometricDataset([[1.0, 2.0], [3.0, cell]])

    def test_numeric_cell_types(self):
        ds = RatiometricDataset([[1, np.float32(2.0)], [np.int64(3), float('nan')]])

        assert ds.get_frame_value(1, 0) == 3.0
        assert np.isnan(ds.get_frame_value(1, 1))

    def test_empty_table(self):
        with pytest.raises(FormatError):
            RatiometricDataset([])
        with pytest.raises(FormatError):
            RatiometricDataset([[], []])

    def test_one_dimensional_input(self):
        with pytest.raises(FormatError):
            RatiometricDataset([1.0, 2.0, 3.0])

    def test_format_error_is_value_error(self):
        assert issubclass(FormatError, ValueError)

    def test_roi_names(self):
        ds = RatiometricDataset([[1, 2], [3, 4]], roi_names=['cell A', 'cell B'],
                                file_path='/data/Results.csv')
        assert ds.roi_names == ['cell A', 'cell B']
        assert ds.filename == 'Results.csv'

        with pytest.raises(ValueError):
            RatiometricDataset([[1, 2], [3, 4]], roi_names=['only one'])

    def test_source_rows_not_aliased(self):
        rows = np.array([[1.0], [2.0]])
        ds = RatiometricDataset(rows)
        rows[0, 0] = 50.0
        assert ds.get_frame_value(0, 0) == 1.0


class TestBaselineHelpers:
    """Test cases for module-level baseline helpers."""

    def test_compute_baseline_mean(self):
        series = np.array([1.0, 2.0, 3.0, 10.0])
        assert compute_baseline(series, 0, 3) == pytest.approx(2.0)

    def test_compute_baseline_single(self):
        series = np.array([1.0, 2.0, 3.0])
        assert compute_baseline(series, 2, 2) == 3.0
        assert compute_baseline(series, 2, 0) == 1.0

    def test_compute_baseline_bounds(self):
        series = np.array([1.0, 2.0, 3.0])
        with pytest.raises(IndexError):
            compute_baseline(series, 0, 4)
        with pytest.raises(IndexError):
            compute_baseline(series, -1, 2)
        with pytest.raises(IndexError):
            compute_baseline(series, 3, 3)

    def test_calculate_dff(self):
        np.testing.assert_allclose(
            calculate_dff(np.array([1.0, 2.0, 4.0]), 2.0), [-50.0, 0.0, 100.0]
        )
