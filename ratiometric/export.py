"""
Tabular export of ratio and ΔF/F views.

Turns the numeric arrays produced by RatiometricDataset into labeled
pandas tables and writes them to disk.
"""

import json
from pathlib import Path
from typing import Dict, Any, List, Optional

import numpy as np
import pandas as pd

from .dataset import RatiometricDataset


def dff_table(dataset: RatiometricDataset, roi: int) -> pd.DataFrame:
    """ΔF/F chart of one ROI with a Time column and one column per sweep."""
    chart = dataset.get_dff_chart(roi)

    table = pd.DataFrame(
        chart,
        columns=[f'Sweep {sweep + 1}' for sweep in range(chart.shape[1])]
    )
    table.insert(0, 'Time', dataset.get_time_vector())

    return table


def ratio_table(dataset: RatiometricDataset) -> pd.DataFrame:
    """Full ratio series of every ROI, one column per ROI."""
    data = {'Time': np.arange(dataset.ratio_frame_count) * dataset.frame_period}
    for roi, name in enumerate(dataset.roi_names):
        data[name] = dataset.get_ratio_all(roi)

    return pd.DataFrame(data)


def roi_file_stem(dataset: RatiometricDataset, roi: int) -> str:
    """File-name-safe label for one ROI."""
    name = dataset.roi_names[roi]
    safe = ''.join(c if c.isalnum() or c in '-_' else '_' for c in name).strip('_')
    return f'roi{roi + 1}_{safe}' if safe else f'roi{roi + 1}'


def save_results(
    output_dir: Path,
    dataset: RatiometricDataset,
    rois: List[int],
    metadata: Dict[str, Any],
    processing_log: Optional[Dict[str, Any]] = None
) -> List[Path]:
    """Save ratio and per-ROI ΔF/F tables plus metadata. Returns written paths."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []

    # Save metadata
    path = output_dir / 'metadata.json'
    with open(path, 'w') as f:
        json.dump(metadata, f, indent=2, default=str)
    written.append(path)

    # Save ratio series of all ROIs
    path = output_dir / 'ratio.csv'
    ratio_table(dataset).to_csv(path, index=False)
    written.append(path)

    # Save ΔF/F chart per ROI
    for roi in rois:
        path = output_dir / f'dff_{roi_file_stem(dataset, roi)}.csv'
        dff_table(dataset, roi).to_csv(path, index=False)
        written.append(path)

    if processing_log is not None:
        path = output_dir / 'processing_log.json'
        with open(path, 'w') as f:
            json.dump(processing_log, f, indent=2, default=str)
        written.append(path)

    return written
