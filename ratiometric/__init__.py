"""
Ratiometric Imaging Analysis Pipeline

Derives signal/reference ratio traces and per-sweep ΔF/F from ImageJ
multi-measure CSV exports of paired-channel imaging frames.
"""

__version__ = "0.1.0"

from .dataset import RatiometricDataset, FormatError, compute_baseline, calculate_dff
from .parser import MultiMeasureParser, load_dataset
from .export import dff_table, ratio_table, save_results

__all__ = [
    'RatiometricDataset',
    'FormatError',
    'compute_baseline',
    'calculate_dff',
    'MultiMeasureParser',
    'load_dataset',
    'dff_table',
    'ratio_table',
    'save_results'
]
