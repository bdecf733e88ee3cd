"""
Model specifications and fitting

A ``ModelSpec`` names a model family and its hyperparameters. Values may be
the ``TUNE`` placeholder until a grid search fixes them with
``finalize_model``. Fitting maps the spec onto a scikit-learn estimator.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from sklearn.ensemble import GradientBoostingRegressor, RandomForestRegressor
from sklearn.linear_model import LinearRegression
import structlog

logger = structlog.get_logger()


class _TuneMarker:
    """Placeholder for a hyperparameter chosen later by grid search"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "tune()"

    def __reduce__(self):
        return (_TuneMarker, ())


TUNE = _TuneMarker()

MODEL_FAMILIES = ('linear_reg', 'rand_forest', 'boost_tree')


@dataclass(frozen=True)
class ModelSpec:
    """
    Model family plus hyperparameters

    ``params`` are the tunable, family-level arguments (``mtry``, ``min_n``,
    ``trees`` ...). ``engine_args`` go straight to the estimator
    (``random_state``, ``n_jobs``).
    """
    family: str
    params: Dict[str, Any] = field(default_factory=dict)
    engine_args: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.family not in MODEL_FAMILIES:
            raise ValueError(f"Unknown model family: {self.family}")

    def tunable(self) -> List[str]:
        """Names of parameters still set to ``TUNE``"""
        return [name for name, value in self.params.items() if value is TUNE]

    @property
    def is_final(self) -> bool:
        return not self.tunable()


def linear_reg() -> ModelSpec:
    """Ordinary least squares"""
    return ModelSpec('linear_reg')


def rand_forest(
    mtry: Any = None,
    min_n: Any = 2,
    trees: int = 500,
    random_state: Optional[int] = None,
    n_jobs: Optional[int] = None
) -> ModelSpec:
    """
    Random forest regression

    Parameters
    ----------
    mtry : int or TUNE, optional
        Predictors sampled at each split; all predictors when None
    min_n : int or TUNE, optional
        Minimum node size required to attempt a split
    trees : int, optional
        Number of trees (not tuned)
    """
    return ModelSpec(
        'rand_forest',
        params={'mtry': mtry, 'min_n': min_n, 'trees': trees},
        engine_args={'random_state': random_state, 'n_jobs': n_jobs}
    )


def boost_tree(
    trees: Any = 500,
    tree_depth: Any = 3,
    learn_rate: Any = 0.05,
    min_n: Any = 2,
    random_state: Optional[int] = None
) -> ModelSpec:
    """Gradient-boosted regression trees"""
    return ModelSpec(
        'boost_tree',
        params={
            'trees': trees,
            'tree_depth': tree_depth,
            'learn_rate': learn_rate,
            'min_n': min_n,
        },
        engine_args={'random_state': random_state}
    )


def finalize_model(spec: ModelSpec, params: Dict[str, Any]) -> ModelSpec:
    """
    Replace ``TUNE`` placeholders with concrete values

    Keys in ``params`` that the spec does not declare are ignored so a row
    of a tuning results table can be passed as-is.

    Raises
    ------
    ValueError
        If a tunable parameter has no value in ``params``
    """
    values = dict(spec.params)
    for name in spec.tunable():
        if name not in params:
            raise ValueError(f"No value for tuned parameter '{name}'")
        value = params[name]
        if isinstance(value, (np.integer,)):
            value = int(value)
        elif isinstance(value, (np.floating,)):
            value = float(value)
        values[name] = value

    return ModelSpec(spec.family, params=values, engine_args=dict(spec.engine_args))


ESTIMATORS = {
    'linear_reg': LinearRegression,
    'rand_forest': RandomForestRegressor,
    'boost_tree': GradientBoostingRegressor,
}

# family parameter -> (estimator argument, type)
ENGINE_PARAMS = {
    'linear_reg': {},
    'rand_forest': {
        'mtry': ('max_features', int),
        'min_n': ('min_samples_split', int),
        'trees': ('n_estimators', int),
    },
    'boost_tree': {
        'trees': ('n_estimators', int),
        'tree_depth': ('max_depth', int),
        'learn_rate': ('learning_rate', float),
        'min_n': ('min_samples_split', int),
    },
}


def engine_params(family: str, params: Dict[str, Any]) -> Dict[str, Any]:
    """Translate family-level parameter values into estimator arguments"""
    mapping = ENGINE_PARAMS[family]
    translated = {}
    for name, value in params.items():
        if name not in mapping:
            raise ValueError(f"'{name}' is not a parameter of {family}")
        arg, kind = mapping[name]
        translated[arg] = kind(value)
    return translated


def _check_mtry(mtry, n_features: int) -> int:
    mtry = int(mtry)
    if mtry < 1:
        raise ValueError(f"mtry must be at least 1, got {mtry}")
    if mtry > n_features:
        logger.warning("mtry exceeds the number of predictors, using all", mtry=mtry, predictors=n_features)
        mtry = n_features
    return mtry


def build_estimator(spec: ModelSpec, n_features: int):
    """
    scikit-learn estimator for ``spec``

    Parameters still set to ``TUNE`` are left at their estimator defaults so
    the result can serve as the template of a grid search. An ``mtry`` above
    ``n_features`` is lowered to ``n_features``.
    """
    values = {k: v for k, v in spec.params.items() if v is not TUNE and v is not None}
    if 'mtry' in values:
        values['mtry'] = _check_mtry(values['mtry'], n_features)

    kwargs = engine_params(spec.family, values)
    if spec.family == 'rand_forest':
        kwargs.setdefault('max_features', 1.0)
    kwargs.update({k: v for k, v in spec.engine_args.items() if v is not None})
    return ESTIMATORS[spec.family](**kwargs)


def fit_model(spec: ModelSpec, X: pd.DataFrame, y: pd.Series):
    """
    Fit the estimator described by ``spec``

    Estimator errors propagate unchanged.
    """
    if not spec.is_final:
        raise ValueError(
            f"Model has unset tuning parameters {spec.tunable()}; call finalize_model first"
        )
    if X.empty:
        raise ValueError("Input data is empty")

    estimator = build_estimator(spec, n_features=X.shape[1])
    estimator.fit(X.to_numpy(dtype=float), np.asarray(y, dtype=float))
    return estimator


def predict_model(estimator, X: pd.DataFrame) -> np.ndarray:
    return estimator.predict(X.to_numpy(dtype=float))
