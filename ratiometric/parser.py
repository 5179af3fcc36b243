"""
CSV parser for ImageJ multi-measure exports.

Handles a delimited table whose first line is a header and whose rows hold
a frame label followed by one intensity value per ROI.
"""

import warnings
from pathlib import Path
from typing import Dict, Any, List, Tuple, Optional

import pandas as pd
import numpy as np

from .dataset import RatiometricDataset, FormatError, CHANNELS_PER_RATIO, DEFAULT_FRAME_PERIOD


class MultiMeasureParser:
    """Parser for per-frame, per-ROI intensity tables."""

    def __init__(self, filepath: str, delimiter: str = ','):
        self.filepath = Path(filepath)
        self.delimiter = delimiter
        self.metadata: Dict[str, Any] = {}
        self.measurements: Optional[pd.DataFrame] = None

    def parse(self) -> Tuple[Dict[str, Any], pd.DataFrame]:
        """
        Parse the CSV file into metadata and a frame × ROI measurement table.

        Returns:
            Tuple of (metadata_dict, measurements_df)

        Raises:
            FormatError: if the table is empty, ragged, or has non-numeric cells
        """
        header = self._read_header()
        self._read_measurements()
        self._assign_roi_names(header)
        self._validate_data()

        return self.metadata, self.measurements

    def _read_header(self) -> List[str]:
        """Read the column names from the first line."""
        with open(self.filepath, 'r', encoding='utf-8-sig') as f:
            first_line = f.readline().rstrip('\r\n')

        if not first_line:
            raise FormatError(f"{self.filepath} has an empty header line")

        return [name.strip() for name in first_line.split(self.delimiter)]

    def _read_measurements(self) -> None:
        """Read data rows as text, then convert every ROI column to floats."""
        try:
            raw = pd.read_csv(
                self.filepath,
                sep=self.delimiter,
                skiprows=1,
                header=None,
                dtype=str,
                keep_default_na=False,
                na_values=[''],
                skip_blank_lines=True,
                encoding='utf-8-sig'
            )
        except pd.errors.EmptyDataError as e:
            raise FormatError(f"{self.filepath} has no data rows") from e
        except pd.errors.ParserError as e:
            raise FormatError(f"Inconsistent column count in {self.filepath}: {e}") from e

        if raw.shape[1] < 2:
            raise FormatError(f"{self.filepath} has no ROI columns")

        labels = raw.iloc[:, 0].fillna('').str.strip()
        cells = raw.iloc[:, 1:]

        # Short rows are padded with NaN by pandas; empty fields are not numbers either.
        # A literal "NaN" cell is kept as text and parsed to a float NaN below.
        incomplete = cells.isna().any(axis=1)
        if incomplete.any():
            line = int(np.flatnonzero(incomplete.values)[0]) + 2
            raise FormatError(
                f"Missing or empty value on line {line} of {self.filepath}"
            )

        try:
            numeric = cells.apply(lambda col: pd.to_numeric(col.str.strip()))
        except ValueError as e:
            raise FormatError(f"Non-numeric value in {self.filepath}: {e}") from e

        numeric.index = pd.Index(labels, name='frame')
        self.measurements = numeric.astype(float)
        self.metadata['frame_labels'] = labels.tolist()

    def _assign_roi_names(self, header: List[str]) -> None:
        """Use header names for ROI columns when they line up with the data."""
        roi_count = self.measurements.shape[1]
        header_names = header[1:]

        if len(header_names) == roi_count and all(header_names):
            roi_names = header_names
        else:
            warnings.warn(
                f"Header has {len(header_names)} ROI names for {roi_count} data columns, "
                "using generated names"
            )
            roi_names = [f"ROI {i + 1}" for i in range(roi_count)]

        self.measurements.columns = roi_names
        self.metadata['roi_names'] = roi_names

    def _validate_data(self) -> None:
        """Check the table for conditions the ratio analysis silently tolerates."""
        frame_count, roi_count = self.measurements.shape

        self.metadata['file_path'] = str(self.filepath)
        self.metadata['frame_count'] = frame_count
        self.metadata['roi_count'] = roi_count

        if frame_count % CHANNELS_PER_RATIO != 0:
            warnings.warn(
                f"Odd frame count ({frame_count}): the last unpaired frame will be ignored"
            )

        for col in self.measurements.columns:
            if (self.measurements[col] == 0).any():
                warnings.warn(f"Zero intensity in {col}: ratios may be non-finite")

    def to_dataset(self, frame_period: float = DEFAULT_FRAME_PERIOD, **kwargs) -> RatiometricDataset:
        """Build a RatiometricDataset from the parsed table."""
        if self.measurements is None:
            self.parse()

        return RatiometricDataset(
            self.measurements.to_numpy(),
            frame_period=frame_period,
            file_path=str(self.filepath),
            roi_names=list(self.measurements.columns),
            **kwargs
        )

    def summary(self) -> Dict[str, Any]:
        """Return a summary of the parsed data."""
        frame_count = self.metadata.get('frame_count', 0)

        summary = {
            'file_path': str(self.filepath),
            'n_frames': frame_count,
            'n_ratio_frames': frame_count // CHANNELS_PER_RATIO,
            'n_rois': self.metadata.get('roi_count', 0),
            'roi_names': self.metadata.get('roi_names', []),
        }

        return summary


def load_dataset(
    filepath: str,
    frame_period: float = DEFAULT_FRAME_PERIOD,
    delimiter: str = ',',
    **kwargs
) -> RatiometricDataset:
    """Parse a multi-measure CSV file straight into a RatiometricDataset."""
    parser = MultiMeasureParser(filepath, delimiter=delimiter)
    parser.parse()
    return parser.to_dataset(frame_period=frame_period, **kwargs)
