"""
Core data model for ratiometric imaging measurements.

Maps raw per-frame/per-ROI intensities into ratio values, sweep-partitioned
series, and baseline-normalized ΔF/F traces.
"""

import math
import numbers
import warnings
from pathlib import Path
from typing import Optional, Sequence, List

import numpy as np


CHANNELS_PER_RATIO = 2
DEFAULT_FRAME_PERIOD = 0.067


class FormatError(ValueError):
    """Raised when a measurement table is malformed."""


def compute_baseline(series: np.ndarray, index1: int, index2: int) -> float:
    """
    Baseline level of a ratio series.

    If index1 >= index2 the baseline is the single value at index2,
    otherwise the mean over the half-open range [index1, index2).
    Indices outside the series raise IndexError.
    """
    n = len(series)
    if index1 >= index2:
        if not 0 <= index2 < n:
            raise IndexError(f"Baseline index {index2} out of range for sweep of length {n}")
        return series[index2]

    if index1 < 0 or index2 > n:
        raise IndexError(
            f"Baseline range [{index1}, {index2}) out of range for sweep of length {n}"
        )
    return np.mean(series[index1:index2])


def calculate_dff(series: np.ndarray, baseline: float) -> np.ndarray:
    """Percent change of each value relative to baseline."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        return (series - baseline) / baseline * 100.0


class RatiometricDataset:
    """Raw frame × ROI intensity matrix with derived ratio and ΔF/F views."""

    channels_per_ratio = CHANNELS_PER_RATIO

    def __init__(
        self,
        rows: Sequence[Sequence[float]],
        frame_period: float = DEFAULT_FRAME_PERIOD,
        sweep_count: int = 1,
        baseline_time1: float = 0.0,
        baseline_time2: float = 1.0,
        file_path: Optional[str] = None,
        roi_names: Optional[List[str]] = None
    ):
        self._values = self._to_matrix(rows)
        self._frame_period = frame_period

        self.sweep_count = sweep_count
        self.baseline_time1 = baseline_time1
        self.baseline_time2 = baseline_time2

        self.file_path = Path(file_path) if file_path is not None else None

        if roi_names is None:
            roi_names = [f"ROI {i + 1}" for i in range(self.roi_count)]
        elif len(roi_names) != self.roi_count:
            raise ValueError(
                f"Got {len(roi_names)} ROI names for {self.roi_count} ROI columns"
            )
        self.roi_names = list(roi_names)

    @staticmethod
    def _to_matrix(rows) -> np.ndarray:
        if isinstance(rows, np.ndarray):
            rows = rows.tolist()

        try:
            rows = [list(row) for row in rows]
        except TypeError as e:
            raise FormatError("Measurement table must be two-dimensional") from e
        if not rows:
            raise FormatError("Measurement table has no data rows")

        width = len(rows[0])
        for i, row in enumerate(rows):
            if len(row) != width:
                raise FormatError(
                    f"Row {i} has {len(row)} values, expected {width}"
                )
        if width == 0:
            raise FormatError("Measurement table has no ROI columns")

        for i, row in enumerate(rows):
            for j, cell in enumerate(row):
                if isinstance(cell, (bool, np.bool_)) or not isinstance(cell, numbers.Real):
                    raise FormatError(
                        f"Non-numeric value {cell!r} at row {i}, column {j}"
                    )

        values = np.array(rows, dtype=float)
        values.flags.writeable = False
        return values

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def frame_count(self) -> int:
        """Total number of frames across all channels/sections/times/series."""
        return self._values.shape[0]

    @property
    def roi_count(self) -> int:
        return self._values.shape[1]

    @property
    def ratio_frame_count(self) -> int:
        """Number of frames assuming every frame has a paired reference and signal."""
        return self.frame_count // self.channels_per_ratio

    @property
    def frames_per_sweep(self) -> int:
        return self.ratio_frame_count // self.sweep_count

    @property
    def frame_period(self) -> float:
        return self._frame_period

    @property
    def baseline_index1(self) -> int:
        return math.floor(self.baseline_time1 / self.frame_period)

    @property
    def baseline_index2(self) -> int:
        return math.floor(self.baseline_time2 / self.frame_period)

    @property
    def filename(self) -> Optional[str]:
        return self.file_path.name if self.file_path is not None else None

    def _check_roi(self, roi: int) -> None:
        if not 0 <= roi < self.roi_count:
            raise IndexError(f"ROI {roi} out of range (0-{self.roi_count - 1})")

    def get_frame_value(self, frame: int, roi: int) -> float:
        self._check_roi(roi)
        if not 0 <= frame < self.frame_count:
            raise IndexError(f"Frame {frame} out of range (0-{self.frame_count - 1})")
        return self._values[frame, roi]

    def get_ratio_value(self, ratio_frame: int, roi: int) -> float:
        """Signal / reference for one channel pair."""
        self._check_roi(roi)
        if not 0 <= ratio_frame < self.ratio_frame_count:
            raise IndexError(
                f"Ratio frame {ratio_frame} out of range (0-{self.ratio_frame_count - 1})"
            )
        reference = self._values[ratio_frame * 2, roi]
        signal = self._values[ratio_frame * 2 + 1, roi]
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            return signal / reference

    def get_ratio_all(self, roi: int) -> np.ndarray:
        self._check_roi(roi)
        n = self.ratio_frame_count
        reference = self._values[0:2 * n:2, roi]
        signal = self._values[1:2 * n:2, roi]
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            return signal / reference

    def get_ratio_sweep(self, roi: int, sweep: int) -> np.ndarray:
        """
        Ratio series of one sweep.

        Frame i of the sweep maps to global ratio frame i + sweep * frames_per_sweep.
        Raises IndexError only when those frames fall outside the ratio series.
        """
        ratios = self.get_ratio_all(roi)
        n = self.frames_per_sweep
        start = sweep * n
        if n > 0 and (start < 0 or start + n > len(ratios)):
            raise IndexError(
                f"Sweep {sweep} covers ratio frames {start}-{start + n - 1}, "
                f"only {len(ratios)} available"
            )
        return ratios[start:start + n]

    def get_baseline(self, roi: int, sweep: int) -> float:
        return compute_baseline(
            self.get_ratio_sweep(roi, sweep), self.baseline_index1, self.baseline_index2
        )

    def get_dff_sweep(self, roi: int, sweep: int) -> np.ndarray:
        """ΔF/F (percent) of one sweep relative to its baseline window."""
        ratios = self.get_ratio_sweep(roi, sweep)
        baseline = compute_baseline(ratios, self.baseline_index1, self.baseline_index2)
        return calculate_dff(ratios, baseline)

    def get_dff_chart(self, roi: int) -> np.ndarray:
        """ΔF/F of every sweep, one column per sweep, rows aligned by frame offset."""
        chart = np.empty((self.frames_per_sweep, self.sweep_count))
        for sweep in range(self.sweep_count):
            chart[:, sweep] = self.get_dff_sweep(roi, sweep)
        return chart

    def get_time_vector(self) -> np.ndarray:
        """Elapsed time of each chart row from the start of its sweep."""
        return np.arange(self.frames_per_sweep) * self.frame_period

    def summary(self) -> dict:
        return {
            'file_path': str(self.file_path) if self.file_path is not None else None,
            'frame_count': self.frame_count,
            'roi_count': self.roi_count,
            'ratio_frame_count': self.ratio_frame_count,
            'unpaired_frames': self.frame_count % self.channels_per_ratio,
            'sweep_count': self.sweep_count,
            'frames_per_sweep': self.frames_per_sweep,
            'dropped_ratio_frames': self.ratio_frame_count - self.frames_per_sweep * self.sweep_count,
            'frame_period': self.frame_period,
            'baseline_times': (self.baseline_time1, self.baseline_time2),
            'baseline_indices': (self.baseline_index1, self.baseline_index2),
        }
