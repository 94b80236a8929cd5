"""Trajectory figures from the population-load artifact.

Every function:
  - Accepts an artifact path (or a DataFrame read from one)
  - Returns a matplotlib Figure
  - Has an optional ``save_path`` parameter (saves PNG when given)

matplotlib backend is forced to Agg (no display) on import.
"""

from __future__ import annotations

import matplotlib
matplotlib.use('Agg')

from pathlib import Path
from typing import Optional, Union, TYPE_CHECKING

import matplotlib.pyplot as plt
import pandas as pd

if TYPE_CHECKING:
    from loadsim.schedule import DemographicSchedule


LOAD_COLORS = {
    'totalLoad':    '#2c3e50',
    'realizedLoad': '#e74c3c',
    'maskedLoad':   '#3498db',
}
SIZE_COLORS = {
    'N':        '#2c3e50',
    'targetNe': '#27ae60',
    'softK':    '#f39c12',
}
PHASE_COLOR = '#bdc3c7'


def read_population_artifact(path: Union[str, Path]) -> pd.DataFrame:
    """Load a ``*_popLoad.txt`` artifact as a DataFrame."""
    return pd.read_csv(path, sep='\t')


def _shade_bottleneck(ax, schedule: 'DemographicSchedule') -> None:
    ax.axvspan(schedule.ramp_start, schedule.plateau_end,
               color=PHASE_COLOR, alpha=0.3, lw=0, label='bottleneck')
    ax.axvline(schedule.burn_in_end, color=PHASE_COLOR, ls='--', lw=1)


def plot_load_trajectory(
    source: Union[str, Path, pd.DataFrame],
    schedule: Optional['DemographicSchedule'] = None,
    save_path: Optional[Union[str, Path]] = None,
    start: Optional[int] = None,
) -> plt.Figure:
    """Census size vs target/soft capacity (top) and load components (bottom).

    Args:
        source: Population artifact path or its DataFrame.
        schedule: Optional schedule; shades the bottleneck window.
        save_path: Optional PNG path.
        start: First generation to draw (defaults to burn-in end when a
            schedule is given, otherwise the first row).

    Returns:
        matplotlib Figure.
    """
    df = source if isinstance(source, pd.DataFrame) else read_population_artifact(source)
    if start is None and schedule is not None:
        start = schedule.burn_in_end
    if start is not None:
        df = df[df['generation'] >= start]

    fig, (ax_n, ax_load) = plt.subplots(2, 1, figsize=(9, 7), sharex=True)

    for col, color in SIZE_COLORS.items():
        ax_n.plot(df['generation'], df[col], color=color, lw=1.5, label=col)
    ax_n.set_ylabel('Individuals')
    ax_n.set_title('Population size')

    for col, color in LOAD_COLORS.items():
        ax_load.plot(df['generation'], df[col], color=color, lw=1.5, label=col)
    ax_load.set_ylabel('Load')
    ax_load.set_xlabel('Generation')
    ax_load.set_title('Genetic load')

    for ax in (ax_n, ax_load):
        if schedule is not None:
            _shade_bottleneck(ax, schedule)
        ax.grid(alpha=0.3)
        ax.legend(loc='best', fontsize=8)

    fig.tight_layout()
    if save_path is not None:
        fig.savefig(save_path, dpi=150)
    return fig
