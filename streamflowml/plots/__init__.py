"""
Figures for streamflowml
"""

from .diagnostics import (
    plot_histograms,
    plot_model_comparison,
    plot_tuning_results,
    plot_predicted_vs_actual,
)
from .maps import residual_map_frame, plot_residual_map

__all__ = [
    "plot_histograms",
    "plot_model_comparison",
    "plot_tuning_results",
    "plot_predicted_vs_actual",
    "residual_map_frame",
    "plot_residual_map",
]
