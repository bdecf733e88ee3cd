"""
Fit-once preprocessing recipes

A recipe is handled in three stages:

1. ``Recipe`` - the unfit specification (columns to drop, normalize, encode)
2. ``fit_recipe(recipe, train)`` - learns category levels, means and scales
   from the training rows only, held in a fitted ``ColumnTransformer``
3. ``apply_recipe(fitted, data)`` - transforms any table with those frozen
   parameters

Category levels are passed to the encoder explicitly, so a transformer
cloned from a fitted recipe and refit on a subset of the rows (a
cross-validation fold) still produces the same predictor columns.
"""

from dataclasses import dataclass
from typing import Dict, List, Tuple

import pandas as pd
from sklearn.base import clone
from sklearn.compose import ColumnTransformer
from sklearn.preprocessing import OneHotEncoder, StandardScaler
import structlog

from ..exceptions import ConfigurationMismatchError

logger = structlog.get_logger()


@dataclass(frozen=True)
class Recipe:
    """
    Unfit preprocessing specification

    Parameters
    ----------
    outcome : str
        Outcome column; never transformed
    drop : tuple of str
        Columns removed before anything else (e.g. coordinates kept for maps)
    normalize : bool
        Center and scale numeric predictors
    encode : bool
        One-hot encode non-numeric predictors (first level is the reference)
    """
    outcome: str
    drop: Tuple[str, ...] = ()
    normalize: bool = True
    encode: bool = True

    def __post_init__(self):
        object.__setattr__(self, 'drop', tuple(self.drop))


@dataclass(frozen=True, eq=False)
class FittedRecipe:
    """Recipe together with the transformer fitted on training data"""
    recipe: Recipe
    input_columns: Tuple[str, ...]
    categorical_columns: Tuple[str, ...]
    levels: Dict[str, Tuple[str, ...]]
    transformer: ColumnTransformer
    predictors: Tuple[str, ...]

    @property
    def outcome(self) -> str:
        return self.recipe.outcome

    @property
    def n_predictors(self) -> int:
        return len(self.predictors)

    def _scaler(self):
        scaler = self.transformer.named_transformers_.get('numeric')
        return scaler if isinstance(scaler, StandardScaler) else None

    @property
    def means(self) -> Dict[str, float]:
        scaler = self._scaler()
        if scaler is None:
            return {}
        return {c: float(m) for c, m in zip(scaler.feature_names_in_, scaler.mean_)}

    @property
    def scales(self) -> Dict[str, float]:
        scaler = self._scaler()
        if scaler is None:
            return {}
        return {c: float(s) for c, s in zip(scaler.feature_names_in_, scaler.scale_)}

    def unfitted_transformer(self) -> ColumnTransformer:
        """Unfitted copy with the same columns and frozen category levels"""
        return clone(self.transformer)


def _check_columns(data: pd.DataFrame, columns, what: str):
    missing = [c for c in columns if c not in data.columns]
    if missing:
        raise ConfigurationMismatchError(f"{what} not found in data: {missing}")


def _as_inputs(data: pd.DataFrame, columns, categorical) -> pd.DataFrame:
    inputs = data[list(columns)].copy()
    for col in categorical:
        inputs[col] = inputs[col].astype(str)
    return inputs


def recipe_inputs(fitted: FittedRecipe, data: pd.DataFrame) -> pd.DataFrame:
    """
    Select the recipe's input columns from ``data`` in fit order

    Categorical columns are cast to text so they match the learned levels.
    """
    _check_columns(data, fitted.input_columns, "Recipe predictors")
    return _as_inputs(data, fitted.input_columns, fitted.categorical_columns)


def _build_transformer(
    recipe: Recipe,
    numeric: List[str],
    categorical: List[str],
    levels: Dict[str, Tuple[str, ...]]
) -> ColumnTransformer:
    steps = []
    if numeric:
        steps.append(('numeric', StandardScaler() if recipe.normalize else 'passthrough', numeric))
    if categorical:
        if recipe.encode:
            encoder = OneHotEncoder(
                categories=[list(levels[c]) for c in categorical],
                drop='first',
                handle_unknown='ignore',
                sparse_output=False
            )
        else:
            encoder = 'passthrough'
        steps.append(('categorical', encoder, categorical))
    return ColumnTransformer(steps, remainder='drop', verbose_feature_names_out=False)


def fit_recipe(recipe: Recipe, train: pd.DataFrame) -> FittedRecipe:
    """
    Learn the recipe's parameters from the training rows

    Numeric predictors come first in the output, followed by one indicator
    per non-reference category level.

    Raises
    ------
    ConfigurationMismatchError
        If the outcome or a column listed in ``drop`` is absent
    """
    _check_columns(train, [recipe.outcome], "Outcome column")
    _check_columns(train, recipe.drop, "Columns to drop")
    if train.empty:
        raise ValueError("Cannot fit a recipe on an empty table")

    inputs = [c for c in train.columns if c != recipe.outcome and c not in recipe.drop]
    if not inputs:
        raise ValueError("Recipe leaves no predictor columns")

    numeric = [c for c in inputs if pd.api.types.is_numeric_dtype(train[c])]
    categorical = [c for c in inputs if c not in numeric]
    levels = {
        c: tuple(sorted(train[c].dropna().astype(str).unique())) for c in categorical
    }

    transformer = _build_transformer(recipe, numeric, categorical, levels)
    transformer.fit(_as_inputs(train, inputs, categorical))

    fitted = FittedRecipe(
        recipe=recipe,
        input_columns=tuple(inputs),
        categorical_columns=tuple(categorical),
        levels=levels,
        transformer=transformer,
        predictors=tuple(transformer.get_feature_names_out())
    )

    scaler = fitted._scaler()
    if scaler is not None:
        constant = [c for c, v in zip(scaler.feature_names_in_, scaler.var_) if v == 0]
        if constant:
            logger.warning("Zero variance predictors are centered only", columns=constant)

    logger.debug(
        "Fitted recipe",
        inputs=len(inputs),
        predictors=fitted.n_predictors,
        encoded=categorical
    )
    return fitted


def apply_recipe(fitted: FittedRecipe, data: pd.DataFrame) -> pd.DataFrame:
    """
    Transform ``data`` with the frozen parameters of ``fitted``

    The outcome is passed through when present, so the same call serves
    labelled training/test tables and unlabelled prediction tables.
    """
    values = fitted.transformer.transform(recipe_inputs(fitted, data))
    out = pd.DataFrame(values, columns=list(fitted.predictors), index=data.index)
    if fitted.outcome in data.columns:
        out[fitted.outcome] = data[fitted.outcome]
    return out
