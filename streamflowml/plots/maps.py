"""
Spatial maps of predictions and residuals
"""

from typing import Optional, Tuple

import pandas as pd
import matplotlib.pyplot as plt
import structlog

from ..exceptions import ConfigurationMismatchError

logger = structlog.get_logger()


def residual_map_frame(
    predictions: pd.DataFrame,
    coordinates: pd.DataFrame,
    id_column: str = 'gauge_id',
    lon: str = 'gauge_lon',
    lat: str = 'gauge_lat'
) -> pd.DataFrame:
    """
    Join predictions to gauge coordinates

    Parameters
    ----------
    predictions : pd.DataFrame
        Prediction table (``id_column``, ``predicted``, ``actual``)
    coordinates : pd.DataFrame
        Table holding ``lon`` and ``lat``, indexed by gauge id or with an
        ``id_column`` column

    Returns
    -------
    pd.DataFrame
        ``id_column``, ``lon``, ``lat``, ``predicted``, ``actual`` and
        ``residual`` (squared error)
    """
    coords = coordinates
    if id_column not in coords.columns:
        coords = coords.rename_axis(id_column).reset_index()

    missing = [c for c in (id_column, lon, lat) if c not in coords.columns]
    if missing:
        raise ConfigurationMismatchError(f"Coordinate columns not found: {missing}")
    if id_column not in predictions.columns:
        raise ConfigurationMismatchError(f"Prediction table has no '{id_column}' column")

    frame = predictions.merge(coords[[id_column, lon, lat]], on=id_column, how='inner')
    if len(frame) < len(predictions):
        logger.warning("Predictions without coordinates dropped", count=len(predictions) - len(frame))

    frame['residual'] = (frame['predicted'] - frame['actual']) ** 2
    return frame[[id_column, lon, lat, 'predicted', 'actual', 'residual']]


def plot_residual_map(
    frame: pd.DataFrame,
    lon: str = 'gauge_lon',
    lat: str = 'gauge_lat',
    figsize: Tuple[int, int] = (14, 5),
    cmap: str = 'viridis',
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Two side-by-side gauge maps: predicted value and squared residual
    """
    fig, axes = plt.subplots(1, 2, figsize=figsize, sharex=True, sharey=True)
    layers = [('predicted', 'Predicted mean flow'), ('residual', 'Squared residual')]

    for ax, (column, title) in zip(axes, layers):
        points = ax.scatter(frame[lon], frame[lat], c=frame[column], cmap=cmap, s=12)
        fig.colorbar(points, ax=ax, shrink=0.8, label=column)
        ax.set_title(title)
        ax.set_xlabel('Longitude')
        ax.set_aspect('equal', adjustable='datalim')
    axes[0].set_ylabel('Latitude')

    fig.tight_layout()
    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info("Figure saved", figure='residual_map', path=str(save_path))
    return fig
