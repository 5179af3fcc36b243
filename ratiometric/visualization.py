"""
Visualization module for ratiometric imaging results.

Creates figures for raw ratio traces, per-sweep ΔF/F overlays, and
sweep × time ΔF/F heatmaps.
"""

import warnings
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns


class Visualizer:
    """Figures for ratio and ΔF/F traces."""

    def __init__(
        self,
        style: str = "seaborn-v0_8",
        dpi: int = 300,
        formats: Optional[List[str]] = None
    ):
        self.style = style
        self.dpi = dpi
        self.formats = formats or ['png', 'svg']
        self._setup_style()

    def _safe_legend(self, ax):
        """Add legend only if there are labeled artists."""
        handles, labels = ax.get_legend_handles_labels()
        if handles and labels:
            ax.legend()

    def _setup_style(self):
        """Setup matplotlib style."""
        try:
            plt.style.use(self.style)
        except OSError:
            warnings.warn(f"Style '{self.style}' not found, using default")
            plt.style.use('default')

        plt.rcParams.update({
            'figure.dpi': self.dpi,
            'savefig.dpi': self.dpi,
            'font.size': 10,
            'axes.labelsize': 12,
            'axes.titlesize': 14,
            'legend.fontsize': 10,
            'lines.linewidth': 1.5,
            'axes.spines.top': False,
            'axes.spines.right': False,
        })

    def plot_ratio_trace(
        self,
        time_vec: np.ndarray,
        ratio: np.ndarray,
        sweep_length: Optional[int] = None,
        title: str = "Signal / Reference Ratio",
        save_path: Optional[str] = None
    ) -> plt.Figure:
        """
        Plot the full ratio series of one ROI.

        Args:
            time_vec: Time of each ratio frame
            ratio: Ratio values
            sweep_length: Ratio frames per sweep; sweep boundaries are marked if given
            title: Plot title
            save_path: Path to save figure (without extension)

        Returns:
            Matplotlib figure object
        """
        fig, ax = plt.subplots(figsize=(12, 4))

        ax.plot(time_vec, ratio, color='green', alpha=0.8)

        if sweep_length:
            for boundary in range(sweep_length, len(time_vec), sweep_length):
                ax.axvline(x=time_vec[boundary], color='gray', linestyle='--', alpha=0.5)

        ax.set_xlabel('Time (s)')
        ax.set_ylabel('Ratio (signal / reference)')
        ax.set_title(title)
        ax.grid(True, alpha=0.3)

        plt.tight_layout()

        if save_path:
            self._save_figure(fig, save_path)

        return fig

    def plot_dff_sweeps(
        self,
        time_vec: np.ndarray,
        chart: np.ndarray,
        baseline_window: Optional[Tuple[float, float]] = None,
        title: str = "ΔF/F per Sweep",
        save_path: Optional[str] = None
    ) -> plt.Figure:
        """
        Overlay the ΔF/F trace of every sweep with their mean.

        Args:
            time_vec: Time from sweep start for each chart row
            chart: ΔF/F array of shape (frames_per_sweep, sweep_count)
            baseline_window: (start, end) of the baseline window to shade
            title: Plot title
            save_path: Path to save figure (without extension)
        """
        fig, ax = plt.subplots(figsize=(10, 6))

        palette = sns.color_palette('viridis', chart.shape[1])
        for sweep in range(chart.shape[1]):
            ax.plot(time_vec, chart[:, sweep], color=palette[sweep], alpha=0.5,
                    linewidth=1, label=f'Sweep {sweep + 1}')

        if chart.shape[1] > 1:
            finite = np.where(np.isfinite(chart), chart, np.nan)
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", RuntimeWarning)
                mean_trace = np.nanmean(finite, axis=1)
            ax.plot(time_vec, mean_trace, color='black', linewidth=2, label='Mean')

        if baseline_window is not None:
            ax.axvspan(baseline_window[0], baseline_window[1], color='gray', alpha=0.2,
                       label='Baseline')

        ax.axhline(y=0, color='black', linestyle='-', alpha=0.5)
        ax.set_xlabel('Time from sweep start (s)')
        ax.set_ylabel('ΔF/F (%)')
        ax.set_title(title)
        self._safe_legend(ax)
        ax.grid(True, alpha=0.3)

        plt.tight_layout()

        if save_path:
            self._save_figure(fig, save_path)

        return fig

    def plot_dff_heatmap(
        self,
        time_vec: np.ndarray,
        chart: np.ndarray,
        title: str = "ΔF/F Heatmap",
        save_path: Optional[str] = None
    ) -> plt.Figure:
        """Plot sweeps as rows of a ΔF/F heatmap."""
        fig, ax = plt.subplots(figsize=(12, max(3, 0.4 * chart.shape[1] + 2)))

        ax.set_title(title)

        data = np.where(np.isfinite(chart), chart, np.nan).T
        if data.size == 0 or np.all(np.isnan(data)):
            warnings.warn("No finite ΔF/F values to plot")
            if save_path:
                self._save_figure(fig, save_path)
            return fig

        vmin = np.nanpercentile(data, 5)
        vmax = np.nanpercentile(data, 95)

        sns.heatmap(
            data, ax=ax, cmap='RdBu_r', center=0, vmin=vmin, vmax=vmax,
            cbar_kws={'label': 'ΔF/F (%)'},
            yticklabels=[f'{sweep + 1}' for sweep in range(data.shape[0])],
            xticklabels=False
        )

        if len(time_vec) > 1:
            tick_positions = np.linspace(0, len(time_vec) - 1, min(len(time_vec), 6))
            ax.set_xticks(tick_positions + 0.5)
            ax.set_xticklabels([f'{time_vec[int(i)]:.1f}' for i in tick_positions])

        ax.set_xlabel('Time from sweep start (s)')
        ax.set_ylabel('Sweep')

        plt.tight_layout()

        if save_path:
            self._save_figure(fig, save_path)

        return fig

    def _save_figure(self, fig: plt.Figure, save_path: str):
        """Save figure in every configured format."""
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)

        for fmt in self.formats:
            output_path = save_path.with_suffix(f'.{fmt}')
            fig.savefig(output_path, format=fmt, dpi=self.dpi, bbox_inches='tight')
