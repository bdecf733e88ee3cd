"""
Hyperparameter grid search and model selection

The search for a random forest runs in this order:

1. fit the recipe on the training rows to learn how many predictors the
   model will see (one-hot encoding changes the count), which bounds ``mtry``
2. draw a Latin hypercube grid over the bounded ``mtry`` x ``min_n`` domain
3. split the training rows into v folds
4. fit and score every grid point on every fold
5. average each metric over the folds
6. pick the grid point with the best mean metric
7. fix the model's hyperparameters to that grid point
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.stats import qmc
from sklearn.model_selection import GridSearchCV
import structlog

from ..data.recipe import Recipe, FittedRecipe, fit_recipe
from ..data.split import Resamples, draw_seed, make_rng, vfold_cv
from .evaluation import Metric, get_metric, metric_set, scoring, MINIMIZE
from .resampling import collect_metrics, resampling_inputs
from .specs import ModelSpec, TUNE, engine_params, rand_forest
from .workflow import Workflow, finalize_workflow, workflow_pipeline

logger = structlog.get_logger()


@dataclass(frozen=True)
class ParamRange:
    """Inclusive integer domain of one hyperparameter"""
    name: str
    low: int
    high: int

    def __post_init__(self):
        if self.low > self.high:
            raise ValueError(f"Empty range for {self.name}: [{self.low}, {self.high}]")

    @property
    def n_values(self) -> int:
        return self.high - self.low + 1


@dataclass(frozen=True)
class SearchSpace:
    params: Tuple[ParamRange, ...]

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.params]

    def __getitem__(self, name: str) -> ParamRange:
        for p in self.params:
            if p.name == name:
                return p
        raise KeyError(name)

    def __len__(self) -> int:
        return len(self.params)


def search_space(
    spec: ModelSpec,
    fitted_recipe: FittedRecipe,
    min_n: Tuple[int, int] = (2, 40)
) -> SearchSpace:
    """
    Bound every tunable parameter of ``spec``

    ``mtry`` runs from 1 to the number of predictors produced by the fitted
    recipe; ``min_n`` uses the given range.
    """
    ranges = []
    for name in spec.tunable():
        if name == 'mtry':
            if fitted_recipe.n_predictors < 1:
                raise ValueError("Recipe produces no predictors to sample")
            ranges.append(ParamRange('mtry', 1, fitted_recipe.n_predictors))
        elif name == 'min_n':
            low, high = min_n
            if low < 2:
                raise ValueError(f"min_n must be at least 2, got {low}")
            ranges.append(ParamRange('min_n', int(low), int(high)))
        else:
            raise ValueError(f"No search range defined for parameter '{name}'")

    if not ranges:
        raise ValueError("Model has no tunable parameters")
    return SearchSpace(tuple(ranges))


def _config_ids(n: int) -> List[str]:
    width = max(2, len(str(n)))
    return [f"Model{i:0{width}d}" for i in range(1, n + 1)]


def grid_latin_hypercube(
    space: SearchSpace,
    size: int,
    rng: Optional[np.random.Generator] = None
) -> pd.DataFrame:
    """
    Space-filling grid of ``size`` points

    A Latin hypercube sample puts exactly one point in each of ``size``
    equal strata of every dimension, so marginal coverage is even regardless
    of how dimensions are paired. Points are then mapped onto the integer
    ranges. Grid order is generation order; it is also the tie-break order
    used by ``select_best``.

    Returns
    -------
    pd.DataFrame
        ``config`` column (``Model01`` ...) followed by one column per parameter
    """
    if size < 1:
        raise ValueError(f"Grid size must be at least 1, got {size}")
    rng = rng if rng is not None else make_rng()

    unit = qmc.LatinHypercube(d=len(space), rng=rng).random(size)

    grid = {'config': _config_ids(size)}
    for j, param in enumerate(space.params):
        values = param.low + np.floor(unit[:, j] * param.n_values).astype(int)
        grid[param.name] = np.minimum(values, param.high)

    return pd.DataFrame(grid)


@dataclass(frozen=True, eq=False)
class TuneResults:
    """Fold-level scores of every grid point"""
    grid: pd.DataFrame
    fold_metrics: pd.DataFrame
    metrics: Tuple[str, ...]
    cv_results: Optional[Dict[str, Any]] = None

    @property
    def param_names(self) -> List[str]:
        return [c for c in self.grid.columns if c != 'config']

    def collect_metrics(self) -> pd.DataFrame:
        """
        Mean of each metric per grid point

        Columns: ``config``, parameter columns, ``metric``, ``mean``, ``n``,
        ``std_err``; rows follow grid order.
        """
        summary = collect_metrics(self.fold_metrics, by=['config'])
        merged = self.grid.merge(summary, on='config', how='inner')
        return merged[['config'] + self.param_names + ['metric', 'mean', 'n', 'std_err']]


def _check_grid(grid: pd.DataFrame, tunable: List[str], n_predictors: int):
    missing = [name for name in tunable if name not in grid.columns]
    if missing:
        raise ValueError(f"Grid has no values for tuned parameters {missing}")
    if grid.empty:
        raise ValueError("Grid is empty")
    if 'mtry' in tunable:
        outside = grid.loc[(grid['mtry'] < 1) | (grid['mtry'] > n_predictors), 'mtry']
        if not outside.empty:
            raise ValueError(
                f"mtry must be in [1, {n_predictors}], got {sorted(outside.unique().tolist())}"
            )


def _fold_table(cv_results: Dict[str, Any], configs, resamples: Resamples, metrics) -> pd.DataFrame:
    rows = []
    for i, config in enumerate(configs):
        for k, fold in enumerate(resamples):
            for m in metrics:
                estimate = m.from_score(cv_results[f"split{k}_test_{m.name}"][i])
                rows.append({'config': config, 'fold': fold.id, 'metric': m.name, 'estimate': estimate})
    return pd.DataFrame(rows, columns=['config', 'fold', 'metric', 'estimate'])


def tune_grid(
    workflow: Workflow,
    data: pd.DataFrame,
    resamples: Resamples,
    grid: pd.DataFrame,
    metrics: Optional[Sequence[Metric]] = None,
    n_jobs: int = 1
) -> TuneResults:
    """
    Fit and score every grid point on every fold

    Runs ``GridSearchCV`` with one candidate per grid row and the given folds
    as ``cv``. The recipe statistics are refit on each analysis set while
    category levels stay those of ``data``. Any fitting error aborts the
    whole run; no grid point is skipped.
    """
    metrics = metrics or metric_set()
    tunable = workflow.model.tunable()
    fitted_recipe, X, y = resampling_inputs(workflow, data, resamples)
    _check_grid(grid, tunable, fitted_recipe.n_predictors)

    grid = grid.reset_index(drop=True)
    if 'config' not in grid.columns:
        grid.insert(0, 'config', _config_ids(len(grid)))

    family = workflow.model.family
    param_grid = [
        {
            f"model__{arg}": [value]
            for arg, value in engine_params(family, {name: row[name] for name in tunable}).items()
        }
        for row in grid.to_dict(orient='records')
    ]

    logger.info(
        "Starting grid search",
        grid_points=len(grid),
        folds=len(resamples),
        fits=len(grid) * len(resamples),
        params=tunable
    )

    search = GridSearchCV(
        workflow_pipeline(workflow, fitted_recipe),
        param_grid=param_grid,
        scoring=scoring(metrics),
        cv=resamples.splits(),
        refit=False,
        n_jobs=n_jobs,
        error_score='raise'
    )
    search.fit(X, y)

    fold_metrics = _fold_table(search.cv_results_, grid['config'], resamples, metrics)

    logger.info("Grid search complete", fits=len(grid) * len(resamples))
    return TuneResults(
        grid=grid,
        fold_metrics=fold_metrics,
        metrics=tuple(m.name for m in metrics),
        cv_results=search.cv_results_
    )


def _metric_rows(results: Union[TuneResults, pd.DataFrame], metric: str) -> pd.DataFrame:
    summary = results.collect_metrics() if isinstance(results, TuneResults) else results
    rows = summary[summary['metric'] == metric].reset_index(drop=True)
    if rows.empty:
        raise ValueError(f"Metric '{metric}' not present in results")
    return rows


def show_best(results: Union[TuneResults, pd.DataFrame], metric: str, n: int = 5) -> pd.DataFrame:
    """Top ``n`` grid points for ``metric``, best first"""
    direction = get_metric(metric).direction
    rows = _metric_rows(results, metric)
    return rows.sort_values('mean', ascending=direction == MINIMIZE, kind='stable').head(n)


def select_best(results: Union[TuneResults, pd.DataFrame], metric: str) -> pd.Series:
    """
    Grid point with the best mean ``metric``

    Error metrics are minimized and ``rsq`` is maximized. Among equal means
    the grid point that comes first wins.

    Parameters
    ----------
    results : TuneResults or pd.DataFrame
        Tuning results, or an aggregated table with ``metric`` and ``mean``
    metric : str
        Selection metric

    Returns
    -------
    pd.Series
        The selected row (``config``, parameter values, ``mean`` ...)
    """
    direction = get_metric(metric).direction
    rows = _metric_rows(results, metric)
    idx = rows['mean'].idxmin() if direction == MINIMIZE else rows['mean'].idxmax()
    return rows.loc[idx]


@dataclass(frozen=True, eq=False)
class TuningOutcome:
    space: SearchSpace
    results: TuneResults
    best: pd.Series
    workflow: Workflow

    @property
    def best_params(self) -> Dict[str, Any]:
        return {name: self.workflow.model.params[name] for name in self.space.names}


def tune_random_forest(
    train: pd.DataFrame,
    recipe: Recipe,
    v: int = 10,
    grid_size: int = 25,
    metric: str = 'mae',
    rng: Optional[np.random.Generator] = None,
    trees: int = 500,
    min_n: Tuple[int, int] = (2, 40),
    metrics: Optional[Sequence[str]] = None,
    random_state: Optional[int] = None,
    n_jobs: int = 1
) -> TuningOutcome:
    """
    Tune ``mtry`` and ``min_n`` of a random forest by cross-validated grid search

    Parameters
    ----------
    train : pd.DataFrame
        Training rows (outcome and predictors)
    recipe : Recipe
        Unfit preprocessing
    v : int, optional
        Number of folds (at least 2)
    grid_size : int, optional
        Number of grid points (at least 1)
    metric : str, optional
        Selection metric: 'mae', 'rmse' or 'rsq'
    rng : np.random.Generator, optional
        Drives the grid, the folds and the forest seed
    trees : int, optional
        Fixed number of trees
    min_n : tuple of int, optional
        Inclusive ``min_n`` range
    metrics : sequence of str, optional
        Metrics computed per fold; ``metric`` is always included
    random_state : int, optional
        Forest seed; drawn from ``rng`` when omitted

    Returns
    -------
    TuningOutcome
        Search space, all results, the selected row and the finalized workflow
    """
    if grid_size < 1:
        raise ValueError(f"Grid size must be at least 1, got {grid_size}")
    if v < 2:
        raise ValueError(f"v-fold cross-validation needs at least 2 folds, got {v}")

    metric_names = list(metrics or ('mae', 'rmse', 'rsq'))
    if metric not in metric_names:
        metric_names.append(metric)
    metric_objs = metric_set(*metric_names)
    rng = rng if rng is not None else make_rng()

    fitted_recipe = fit_recipe(recipe, train)

    if random_state is None:
        random_state = draw_seed(rng)
    spec = rand_forest(mtry=TUNE, min_n=TUNE, trees=trees, random_state=random_state)
    workflow = Workflow(recipe=recipe, model=spec)

    space = search_space(spec, fitted_recipe, min_n=min_n)
    grid = grid_latin_hypercube(space, grid_size, rng)
    resamples = vfold_cv(train, v, rng)

    results = tune_grid(workflow, train, resamples, grid, metric_objs, n_jobs=n_jobs)
    best = select_best(results, metric)
    final = finalize_workflow(workflow, best.to_dict())

    logger.info(
        "Selected hyperparameters",
        metric=metric,
        config=best['config'],
        value=round(float(best['mean']), 4),
        **{name: final.model.params[name] for name in space.names}
    )
    return TuningOutcome(space=space, results=results, best=best, workflow=final)
