"""
Cross-validated evaluation and comparison of workflows
"""

from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import cross_validate
import structlog

from ..data.recipe import FittedRecipe, fit_recipe, recipe_inputs
from ..data.split import Resamples
from .evaluation import Metric, get_metric, metric_set, scoring, MINIMIZE
from .workflow import Workflow, workflow_pipeline

logger = structlog.get_logger()


def resampling_inputs(
    workflow: Workflow,
    data: pd.DataFrame,
    resamples: Resamples
) -> Tuple[FittedRecipe, pd.DataFrame, np.ndarray]:
    """
    Fit the workflow's recipe on ``data`` and select predictors and outcome

    The fitted recipe fixes the category levels and the predictor count that
    every fold fit will share.
    """
    if resamples.n_rows != len(data):
        raise ValueError(
            f"Resamples were built for {resamples.n_rows} rows, data has {len(data)}"
        )
    fitted_recipe = fit_recipe(workflow.recipe, data)
    X = recipe_inputs(fitted_recipe, data)
    y = data[fitted_recipe.outcome].to_numpy(dtype=float)
    return fitted_recipe, X, y


def fit_resamples(
    workflow: Workflow,
    data: pd.DataFrame,
    resamples: Resamples,
    metrics: Optional[Sequence[Metric]] = None,
    n_jobs: int = 1
) -> pd.DataFrame:
    """
    Evaluate a finalized workflow on every fold

    Each analysis set gets its own recipe fit; any fitting error aborts.

    Returns
    -------
    pd.DataFrame
        Fold-level table with columns ``fold``, ``metric``, ``estimate``
    """
    if not workflow.model.is_final:
        raise ValueError(
            f"Model has unset tuning parameters {workflow.model.tunable()}; call finalize_model first"
        )
    metrics = metrics or metric_set()
    fitted_recipe, X, y = resampling_inputs(workflow, data, resamples)

    scores = cross_validate(
        workflow_pipeline(workflow, fitted_recipe),
        X,
        y,
        cv=resamples.splits(),
        scoring=scoring(metrics),
        n_jobs=n_jobs,
        error_score='raise'
    )

    rows = [
        {'fold': fold.id, 'metric': m.name, 'estimate': m.from_score(scores[f"test_{m.name}"][k])}
        for k, fold in enumerate(resamples)
        for m in metrics
    ]
    return pd.DataFrame(rows, columns=['fold', 'metric', 'estimate'])

def collect_metrics(fold_table: pd.DataFrame, by: Sequence[str] = ()) -> pd.DataFrame:
    """
    Average fold-level estimates

    Returns one row per group and metric with ``mean``, ``n`` (number of
    folds) and ``std_err``. Groups keep their first-appearance order.
    """
    keys = list(by) + ['metric']
    grouped = fold_table.groupby(keys, sort=False)['estimate']
    summary = grouped.agg(mean='mean', n='count', std='std').reset_index()
    summary['std_err'] = summary['std'].fillna(0.0) / np.sqrt(summary['n'])
    return summary.drop(columns=['std'])


def rank_results(summary: pd.DataFrame, id_column: str, rank_metric: str) -> pd.DataFrame:
    """
    Attach a per-id ``rank`` by the mean of ``rank_metric`` (1 is best)

    Ties share the better rank in order of appearance.
    """
    metric = get_metric(rank_metric)
    target = summary[summary['metric'] == rank_metric]
    if target.empty:
        raise ValueError(f"Metric '{rank_metric}' not present in results")

    ascending = metric.direction == MINIMIZE
    ranks = target.set_index(id_column)['mean'].rank(method='first', ascending=ascending)
    ranked = summary.assign(rank=summary[id_column].map(ranks).astype(int))
    return ranked.sort_values(['rank', 'metric'], kind='stable').reset_index(drop=True)


def compare_models(
    workflows: Dict[str, Workflow],
    data: pd.DataFrame,
    resamples: Resamples,
    metrics: Optional[Sequence[Metric]] = None,
    rank_metric: str = 'rsq',
    n_jobs: int = 1
) -> pd.DataFrame:
    """
    Cross-validate several workflows on the same folds and rank them

    Returns
    -------
    pd.DataFrame
        Columns ``wflow_id``, ``metric``, ``mean``, ``n``, ``std_err``, ``rank``
    """
    if not workflows:
        raise ValueError("No workflows to compare")
    metrics = metrics or metric_set()

    tables = []
    for wflow_id, workflow in workflows.items():
        logger.info("Resampling workflow", wflow_id=wflow_id, folds=len(resamples))
        fold_table = fit_resamples(workflow, data, resamples, metrics, n_jobs=n_jobs)
        tables.append(fold_table.assign(wflow_id=wflow_id))

    summary = collect_metrics(pd.concat(tables, ignore_index=True), by=['wflow_id'])
    ranked = rank_results(summary, 'wflow_id', rank_metric)

    best = ranked.iloc[0]['wflow_id']
    logger.info("Model comparison complete", best=best, rank_metric=rank_metric)
    return ranked
