"""
Command-line interface for the ratiometric ΔF/F pipeline.

Provides a CLI with configuration file support and progress tracking
for batch export of every ROI in a multi-measure CSV file.
"""

import copy
import sys
import warnings
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import click
import yaml
import numpy as np
import pandas as pd
import matplotlib
import matplotlib.pyplot as plt
from tqdm import tqdm

from .dataset import RatiometricDataset, DEFAULT_FRAME_PERIOD
from .parser import MultiMeasureParser
from .export import save_results, roi_file_stem


DEFAULT_CONFIG: Dict[str, Any] = {
    'frame_period': DEFAULT_FRAME_PERIOD,
    'sweeps': 1,
    'baseline': {'time1': 0.0, 'time2': 1.0},
    'rois': [],
    'delimiter': ',',
    'visualization': {
        'figure_format': ['png', 'svg'],
        'dpi': 300,
        'style': 'seaborn-v0_8'
    }
}

EXAMPLE_CONFIG = """# Ratiometric Imaging Analysis Configuration

# Acquisition
frame_period: 0.067     # Seconds per raw frame

# Sweeps
sweeps: 1               # Equal-length repeats the ratio series is split into

# Baseline window within each sweep (seconds from sweep start)
baseline:
  time1: 0.0
  time2: 1.0            # time1 == time2 uses the single frame at that time

# ROIs to export (zero-based column indices, empty = all)
rois: []

# Input table
delimiter: ","

# Visualization parameters
visualization:
  figure_format: ["png", "svg"]
  dpi: 300
  style: "seaborn-v0_8"
"""


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str) -> Dict[str, Any]:
    """Load configuration from YAML file, filling in defaults."""
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}
    if not isinstance(config, dict):
        raise ValueError(f"Config file {config_path} must contain a mapping")
    return _merge(DEFAULT_CONFIG, config)


def validate_config(config: Dict[str, Any]) -> None:
    """Raise ValueError for settings the analysis cannot use."""
    if config['frame_period'] <= 0:
        raise ValueError(f"frame_period must be positive, got {config['frame_period']}")

    sweeps = config['sweeps']
    if not isinstance(sweeps, int) or isinstance(sweeps, bool) or sweeps < 1:
        raise ValueError(f"sweeps must be an integer >= 1, got {sweeps!r}")

    for key in ('time1', 'time2'):
        if config['baseline'][key] < 0:
            raise ValueError(f"baseline {key} must be non-negative, got {config['baseline'][key]}")


def write_example_config(path: str = 'example_config.yaml') -> Path:
    """Create an example configuration file."""
    path = Path(path)
    with open(path, 'w') as f:
        f.write(EXAMPLE_CONFIG)
    return path


def analyze_rois(
    dataset: RatiometricDataset,
    rois: List[int],
    verbose: bool = False
) -> Tuple[Dict[int, np.ndarray], Dict[str, Any]]:
    """Compute the ΔF/F chart of each ROI and tally non-finite values."""
    charts = {}
    non_finite = {}

    for roi in tqdm(rois, desc="Computing ΔF/F", disable=not verbose):
        chart = dataset.get_dff_chart(roi)
        charts[roi] = chart

        n_bad = int(np.sum(~np.isfinite(chart)))
        non_finite[dataset.roi_names[roi]] = n_bad
        if n_bad > 0:
            warnings.warn(
                f"{dataset.roi_names[roi]}: {n_bad} non-finite ΔF/F values "
                "(zero reference or zero baseline)"
            )

    return charts, {'non_finite_dff': non_finite}


def create_report(
    output_dir: Path,
    dataset: RatiometricDataset,
    processing_log: Dict[str, Any],
    config: Dict[str, Any],
    files: List[Path]
) -> str:
    """Create markdown analysis report."""
    summary = dataset.summary()

    report_lines = [
        "# Ratiometric Imaging Analysis Report",
        "",
        f"**Analysis Date:** {pd.Timestamp.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Input File:** {dataset.filename}",
        f"**Output Directory:** {output_dir}",
        "",
        "## Data Summary",
        "",
        f"- **Frames:** {summary['frame_count']}",
        f"- **ROIs:** {summary['roi_count']}",
        f"- **Ratio Frames:** {summary['ratio_frame_count']}",
        f"- **Frame Period:** {summary['frame_period']} s",
    ]

    if summary['unpaired_frames']:
        report_lines.append(f"- **Unpaired Frames Ignored:** {summary['unpaired_frames']}")

    report_lines.extend([
        "",
        "## Sweeps",
        "",
        f"- **Sweep Count:** {summary['sweep_count']}",
        f"- **Ratio Frames per Sweep:** {summary['frames_per_sweep']}",
    ])

    if summary['dropped_ratio_frames']:
        report_lines.append(
            f"- **Trailing Ratio Frames Dropped:** {summary['dropped_ratio_frames']}"
        )

    report_lines.extend([
        "",
        "## Baseline",
        "",
        f"- **Window:** {dataset.baseline_time1} - {dataset.baseline_time2} s",
        f"- **Frame Indices:** {dataset.baseline_index1} - {dataset.baseline_index2}",
        "",
        "## ROIs",
        "",
        "| ROI | Non-finite ΔF/F values |",
        "|-----|------------------------|",
    ])

    for name, n_bad in processing_log.get('non_finite_dff', {}).items():
        report_lines.append(f"| {name} | {n_bad} |")

    report_lines.extend([
        "",
        "## Analysis Parameters",
        "",
        f"- Sweeps: {config['sweeps']}",
        f"- Baseline time1: {config['baseline']['time1']} s",
        f"- Baseline time2: {config['baseline']['time2']} s",
        f"- Delimiter: {config['delimiter']!r}",
        "",
        "## Files Generated",
        "",
    ])

    for path in files:
        report_lines.append(f"- `{Path(path).name}`")

    report_lines.extend([
        "",
        "---",
        "",
        "*Generated with ratiometric analysis pipeline*"
    ])

    report_content = "\n".join(report_lines)

    with open(output_dir / 'REPORT.md', 'w') as f:
        f.write(report_content)

    return report_content


def generate_figures(
    output_path: Path,
    dataset: RatiometricDataset,
    charts: Dict[int, np.ndarray],
    config: Dict[str, Any],
    verbose: bool = False
) -> List[Path]:
    """Render ratio, sweep overlay and heatmap figures for each ROI."""
    from .visualization import Visualizer

    vis_config = config.get('visualization', {})
    visualizer = Visualizer(
        style=vis_config.get('style', 'seaborn-v0_8'),
        dpi=vis_config.get('dpi', 300),
        formats=vis_config.get('figure_format', ['png'])
    )

    time_vec = dataset.get_time_vector()
    ratio_time = np.arange(dataset.ratio_frame_count) * dataset.frame_period
    baseline_window = (dataset.baseline_time1, dataset.baseline_time2)
    written = []

    for roi, chart in tqdm(charts.items(), desc="Creating figures", disable=not verbose):
        name = dataset.roi_names[roi]
        stem = roi_file_stem(dataset, roi)

        fig = visualizer.plot_ratio_trace(
            ratio_time, dataset.get_ratio_all(roi),
            sweep_length=dataset.frames_per_sweep if dataset.sweep_count > 1 else None,
            title=f"Ratio: {name}",
            save_path=str(output_path / f'ratio_{stem}')
        )
        plt.close(fig)

        fig = visualizer.plot_dff_sweeps(
            time_vec, chart, baseline_window=baseline_window,
            title=f"ΔF/F per Sweep: {name}",
            save_path=str(output_path / f'dff_sweeps_{stem}')
        )
        plt.close(fig)

        fig = visualizer.plot_dff_heatmap(
            time_vec, chart,
            title=f"ΔF/F Heatmap: {name}",
            save_path=str(output_path / f'dff_heatmap_{stem}')
        )
        plt.close(fig)

        for prefix in ('ratio', 'dff_sweeps', 'dff_heatmap'):
            written.extend(
                output_path / f'{prefix}_{stem}.{fmt}' for fmt in visualizer.formats
            )

    return written


@click.command()
@click.option('--input', '-i', 'input_file',
              help='Path to input multi-measure CSV file')
@click.option('--output', '-o', 'output_dir', default='output',
              help='Output directory for results')
@click.option('--config', '-c', 'config_file', default='config.yaml',
              help='Path to configuration file')
@click.option('--frame-period', type=float, help='Override seconds per raw frame')
@click.option('--sweeps', type=int, help='Number of sweeps to split the ratio series into')
@click.option('--baseline', nargs=2, type=float, help='Baseline window (time1 time2) in seconds')
@click.option('--roi', 'rois', multiple=True, type=int, help='Zero-based ROI index to export')
@click.option('--delimiter', help='Field delimiter of the input table')
@click.option('--no-figures', is_flag=True, help='Skip figure generation')
@click.option('--create-config', is_flag=True, help='Write example_config.yaml and exit')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
def main(
    input_file: Optional[str],
    output_dir: str,
    config_file: str,
    frame_period: Optional[float],
    sweeps: Optional[int],
    baseline: Optional[Tuple[float, float]],
    rois: Tuple[int, ...],
    delimiter: Optional[str],
    no_figures: bool,
    create_config: bool,
    verbose: bool
):
    """
    Compute ratio and ΔF/F traces per sweep from an ImageJ multi-measure
    CSV export of paired reference/signal frames.

    Examples:

        # All ROIs, default config
        analyze-ratio -i Results.csv

        # Ten sweeps, baseline over the first 2 seconds of each sweep
        analyze-ratio -i Results.csv --sweeps 10 --baseline 0 2

        # Only the first two ROIs, no figures
        analyze-ratio -i Results.csv --roi 0 --roi 1 --no-figures
    """
    if create_config:
        path = write_example_config()
        click.echo(f"Created {path} - customize this file for your analysis!")
        return

    if not input_file:
        raise click.UsageError("Input file is required (use --input or -i)")

    # Load configuration
    config_path = Path(config_file)
    if not config_path.exists():
        if verbose:
            click.echo(f"Warning: Config file {config_file} not found, using defaults")
        config = copy.deepcopy(DEFAULT_CONFIG)
    else:
        config = load_config(config_file)

    # Override config with command line arguments
    if frame_period is not None:
        config['frame_period'] = frame_period
    if sweeps is not None:
        config['sweeps'] = sweeps
    if baseline is not None:
        config['baseline']['time1'], config['baseline']['time2'] = baseline
    if rois:
        config['rois'] = list(rois)
    if delimiter is not None:
        config['delimiter'] = delimiter

    output_path = Path(output_dir)

    if verbose:
        click.echo("Starting ratiometric analysis...")
        click.echo(f"Input: {input_file}")
        click.echo(f"Output: {output_path}")

    try:
        validate_config(config)

        # 1. Parse data
        if verbose:
            click.echo("1. Parsing CSV data...")

        parser = MultiMeasureParser(input_file, delimiter=config['delimiter'])
        metadata, _ = parser.parse()
        dataset = parser.to_dataset(
            frame_period=config['frame_period'],
            sweep_count=config['sweeps'],
            baseline_time1=config['baseline']['time1'],
            baseline_time2=config['baseline']['time2']
        )

        summary = dataset.summary()
        if verbose:
            click.echo(f"   Frames: {summary['frame_count']}")
            click.echo(f"   ROIs: {summary['roi_count']}")
            click.echo(f"   Ratio frames: {summary['ratio_frame_count']}")

        if summary['dropped_ratio_frames']:
            warnings.warn(
                f"{summary['ratio_frame_count']} ratio frames do not divide into "
                f"{summary['sweep_count']} sweeps: last {summary['dropped_ratio_frames']} dropped"
            )

        # 2. ΔF/F per ROI
        if verbose:
            click.echo("2. Calculating ΔF/F per sweep...")
            click.echo(f"   Baseline frames: {dataset.baseline_index1} - {dataset.baseline_index2}")

        selected = config['rois'] or list(range(dataset.roi_count))
        charts, roi_log = analyze_rois(dataset, selected, verbose=verbose)

        processing_log = {**summary, **roi_log, 'rois': [dataset.roi_names[r] for r in selected]}

        # 3. Save results
        if verbose:
            click.echo("3. Saving results...")

        files = save_results(output_path, dataset, selected, metadata, processing_log)

        # 4. Generate figures
        if not no_figures:
            if verbose:
                click.echo("4. Generating figures...")
            matplotlib.use('Agg')
            files.extend(generate_figures(output_path, dataset, charts, config, verbose=verbose))

        # 5. Create analysis report
        if verbose:
            click.echo("5. Creating analysis report...")

        create_report(output_path, dataset, processing_log, config, files)

        if verbose:
            click.echo("Analysis completed successfully!")
            click.echo(f"Results saved to: {output_path}")
            click.echo(f"Report available at: {output_path / 'REPORT.md'}")

    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
