"""
Diagnostic plots for the streamflow regression pipeline
"""

from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import structlog

from ..models.evaluation import get_metric

logger = structlog.get_logger()


def _save(fig: plt.Figure, save_path: Optional[str], what: str):
    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info("Figure saved", figure=what, path=str(save_path))


def plot_histograms(
    df: pd.DataFrame,
    columns: Optional[Sequence[str]] = None,
    bins: int = 30,
    ncols: int = 3,
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Histogram per column

    Parameters
    ----------
    df : pd.DataFrame
        Numeric table
    columns : sequence of str, optional
        Columns to draw; every numeric column when None
    """
    if columns is None:
        columns = [c for c in df.columns if pd.api.types.is_numeric_dtype(df[c])]
    columns = list(columns)
    if not columns:
        raise ValueError("No columns to plot")

    nrows = int(np.ceil(len(columns) / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(4 * ncols, 3 * nrows), squeeze=False)
    axes = axes.flatten()

    for ax, col in zip(axes, columns):
        ax.hist(df[col].dropna(), bins=bins, color='steelblue', edgecolor='white')
        ax.set_title(col, fontsize=10)
        ax.set_ylabel('Count')

    for ax in axes[len(columns):]:
        ax.set_visible(False)

    fig.tight_layout()
    _save(fig, save_path, 'histograms')
    return fig


def plot_model_comparison(
    comparison: pd.DataFrame,
    id_column: str = 'wflow_id',
    save_path: Optional[str] = None
) -> plt.Figure:
    """Mean metric with one standard error per workflow, one panel per metric"""
    metrics = list(dict.fromkeys(comparison['metric']))
    fig, axes = plt.subplots(1, len(metrics), figsize=(4 * len(metrics), 4), squeeze=False)

    for ax, metric in zip(axes[0], metrics):
        rows = comparison[comparison['metric'] == metric]
        x = np.arange(len(rows))
        ax.errorbar(x, rows['mean'], yerr=rows['std_err'], fmt='o', capsize=4)
        ax.set_xticks(x)
        ax.set_xticklabels(rows[id_column], rotation=30, ha='right')
        ax.set_title(metric)

    fig.suptitle('Cross-validated model comparison', fontweight='bold')
    fig.tight_layout()
    _save(fig, save_path, 'model_comparison')
    return fig


def plot_tuning_results(
    summary: pd.DataFrame,
    params: Sequence[str],
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Mean metric against each tuned parameter

    ``summary`` is the aggregated tuning table (``collect_metrics``); one
    row of panels per metric, one column per parameter.
    """
    metrics = list(dict.fromkeys(summary['metric']))
    params = list(params)
    fig, axes = plt.subplots(
        len(metrics), len(params),
        figsize=(4 * len(params), 3 * len(metrics)),
        squeeze=False
    )

    for i, metric in enumerate(metrics):
        rows = summary[summary['metric'] == metric]
        best = get_metric(metric).direction
        for j, param in enumerate(params):
            ax = axes[i][j]
            ax.scatter(rows[param], rows['mean'], alpha=0.7)
            ax.set_xlabel(param)
            ax.set_ylabel(f"{metric} ({best})")

    fig.suptitle('Grid search results', fontweight='bold')
    fig.tight_layout()
    _save(fig, save_path, 'tuning_results')
    return fig


def plot_predicted_vs_actual(
    predictions: pd.DataFrame,
    title: str = 'Predicted vs actual',
    figsize: Tuple[int, int] = (6, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """Scatter of ``predicted`` against ``actual`` with the 1:1 line"""
    actual = predictions['actual'].to_numpy(dtype=float)
    predicted = predictions['predicted'].to_numpy(dtype=float)

    fig, ax = plt.subplots(figsize=figsize)
    ax.scatter(actual, predicted, alpha=0.6, s=20)

    low = min(actual.min(), predicted.min())
    high = max(actual.max(), predicted.max())
    ax.plot([low, high], [low, high], 'r--', linewidth=1.5, label='1:1')

    rsq = get_metric('rsq')(actual, predicted)
    rmse = get_metric('rmse')(actual, predicted)
    ax.set_xlabel('Actual')
    ax.set_ylabel('Predicted')
    ax.set_title(f"{title}\nR²={rsq:.3f}, RMSE={rmse:.3f}", fontsize=10)
    ax.legend(loc='upper left')

    fig.tight_layout()
    _save(fig, save_path, 'predicted_vs_actual')
    return fig
