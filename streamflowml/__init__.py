"""
streamflowml - Mean streamflow regression from gauge attributes

Loads CAMELS-style gauge attribute tables, compares regression models under
cross-validation, tunes a random forest by grid search and maps its errors.
"""

__version__ = "0.1.0"
__author__ = "streamflowml Contributors"

from .analysis.pipeline import StreamflowAnalysis, AnalysisResult
from .data.loader import GaugeDataLoader
from .data.validation import DataValidator
from .data.recipe import Recipe, fit_recipe, apply_recipe
from .models.tuning import tune_random_forest, select_best
from .exceptions import ConfigurationMismatchError, DegenerateDataError

# Main API exports
__all__ = [
    "StreamflowAnalysis",
    "AnalysisResult",
    "GaugeDataLoader",
    "DataValidator",
    "Recipe",
    "fit_recipe",
    "apply_recipe",
    "tune_random_forest",
    "select_best",
    "ConfigurationMismatchError",
    "DegenerateDataError",
]
