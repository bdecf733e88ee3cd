"""
Data loading, cleaning, splitting and preprocessing for streamflowml
"""

from .loader import GaugeDataLoader
from .validation import DataValidator
from .split import Split, Fold, Resamples, initial_split, vfold_cv, make_rng, draw_seed
from .recipe import Recipe, FittedRecipe, fit_recipe, apply_recipe, recipe_inputs

__all__ = [
    "GaugeDataLoader",
    "DataValidator",
    "Split",
    "Fold",
    "Resamples",
    "initial_split",
    "vfold_cv",
    "make_rng",
    "draw_seed",
    "Recipe",
    "FittedRecipe",
    "fit_recipe",
    "apply_recipe",
    "recipe_inputs",
]
