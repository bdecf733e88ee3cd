"""
Model specifications, resampling and tuning for streamflowml
"""

from .specs import (
    ModelSpec, TUNE, linear_reg, rand_forest, boost_tree, finalize_model,
    build_estimator, engine_params
)
from .workflow import Workflow, FittedWorkflow, fit_workflow, finalize_workflow, last_fit, workflow_pipeline
from .evaluation import ModelEvaluator, get_metric, metric_set, score, scoring
from .resampling import fit_resamples, collect_metrics, compare_models
from .tuning import (
    ParamRange,
    SearchSpace,
    search_space,
    grid_latin_hypercube,
    tune_grid,
    select_best,
    show_best,
    tune_random_forest,
)

__all__ = [
    "ModelSpec",
    "TUNE",
    "linear_reg",
    "rand_forest",
    "boost_tree",
    "finalize_model",
    "build_estimator",
    "engine_params",
    "Workflow",
    "FittedWorkflow",
    "fit_workflow",
    "finalize_workflow",
    "last_fit",
    "workflow_pipeline",
    "ModelEvaluator",
    "get_metric",
    "metric_set",
    "score",
    "scoring",
    "fit_resamples",
    "collect_metrics",
    "compare_models",
    "ParamRange",
    "SearchSpace",
    "search_space",
    "grid_latin_hypercube",
    "tune_grid",
    "select_best",
    "show_best",
    "tune_random_forest",
]
