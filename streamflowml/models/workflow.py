"""
Workflows: a recipe composed with a model specification
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

import joblib
import numpy as np
import pandas as pd
from sklearn.pipeline import Pipeline
import structlog

from ..data.recipe import Recipe, FittedRecipe, fit_recipe, apply_recipe
from ..data.split import Split
from .specs import ModelSpec, build_estimator, finalize_model, fit_model, predict_model
from .evaluation import Metric, metric_set

logger = structlog.get_logger()


@dataclass(frozen=True)
class Workflow:
    recipe: Recipe
    model: ModelSpec


@dataclass(frozen=True, eq=False)
class FittedWorkflow:
    """Fitted recipe plus the estimator trained on its output"""
    workflow: Workflow
    fitted_recipe: FittedRecipe
    estimator: Any

    def predict(self, data: pd.DataFrame) -> np.ndarray:
        baked = apply_recipe(self.fitted_recipe, data)
        return predict_model(self.estimator, baked[list(self.fitted_recipe.predictors)])

    @property
    def feature_names(self):
        return list(self.fitted_recipe.predictors)

    def get_feature_importance(self) -> Optional[pd.Series]:
        """Impurity importance for tree models, None otherwise"""
        if not hasattr(self.estimator, 'feature_importances_'):
            return None
        return pd.Series(
            self.estimator.feature_importances_,
            index=self.feature_names,
            name='importance'
        ).sort_values(ascending=False)

    def save(self, filepath: str):
        """
        Save the fitted recipe and estimator to disk

        Parameters
        ----------
        filepath : str
            Path to save the workflow
        """
        model_data = {
            'workflow': self.workflow,
            'fitted_recipe': self.fitted_recipe,
            'estimator': self.estimator,
            'feature_names': self.feature_names,
        }
        joblib.dump(model_data, filepath)
        logger.info("Workflow saved", path=str(filepath), model=self.workflow.model.family)

    @classmethod
    def load(cls, filepath: str) -> 'FittedWorkflow':
        """Load a workflow written by ``save``"""
        model_data = joblib.load(filepath)
        instance = cls(
            workflow=model_data['workflow'],
            fitted_recipe=model_data['fitted_recipe'],
            estimator=model_data['estimator']
        )
        logger.info("Workflow loaded", path=str(filepath))
        return instance


@dataclass(frozen=True, eq=False)
class LastFitResult:
    fitted: FittedWorkflow
    predictions: pd.DataFrame
    metrics: pd.DataFrame


def fit_workflow(workflow: Workflow, data: pd.DataFrame) -> FittedWorkflow:
    """Fit the recipe on ``data``, then the model on the transformed rows"""
    fitted_recipe = fit_recipe(workflow.recipe, data)
    baked = apply_recipe(fitted_recipe, data)
    X = baked[list(fitted_recipe.predictors)]
    y = baked[fitted_recipe.outcome]
    estimator = fit_model(workflow.model, X, y)
    return FittedWorkflow(workflow=workflow, fitted_recipe=fitted_recipe, estimator=estimator)


def finalize_workflow(workflow: Workflow, params: Dict[str, Any]) -> Workflow:
    return Workflow(recipe=workflow.recipe, model=finalize_model(workflow.model, params))


def workflow_pipeline(workflow: Workflow, fitted_recipe: FittedRecipe) -> Pipeline:
    """
    Unfitted scikit-learn pipeline for resampling

    The recipe step is refit on every analysis set it sees, keeping the
    category levels of ``fitted_recipe`` so every fold yields the same
    predictor columns. Its steps are named ``recipe`` and ``model``.
    """
    return Pipeline([
        ('recipe', fitted_recipe.unfitted_transformer()),
        ('model', build_estimator(workflow.model, fitted_recipe.n_predictors)),
    ])


def prediction_table(fitted: FittedWorkflow, data: pd.DataFrame) -> pd.DataFrame:
    """
    Predictions next to actual outcomes

    Columns are the row identifier (the index name, ``row`` if unnamed),
    ``predicted`` and ``actual``.
    """
    id_column = data.index.name or 'row'
    return pd.DataFrame({
        id_column: data.index.to_numpy(),
        'predicted': fitted.predict(data),
        'actual': data[fitted.fitted_recipe.outcome].to_numpy(dtype=float),
    })


def last_fit(
    workflow: Workflow,
    split: Split,
    metrics: Optional[Sequence[Metric]] = None
) -> LastFitResult:
    """Fit on the training rows once and evaluate on the held-out rows"""
    metrics = metrics or metric_set()
    fitted = fit_workflow(workflow, split.train)
    predictions = prediction_table(fitted, split.test)

    scores = pd.DataFrame([
        {'metric': m.name, 'estimate': m(predictions['actual'], predictions['predicted'])}
        for m in metrics
    ])
    logger.info(
        "Final fit evaluated on test split",
        model=workflow.model.family,
        test_rows=len(predictions),
        **dict(zip(scores['metric'], scores['estimate'].round(4)))
    )
    return LastFitResult(fitted=fitted, predictions=predictions, metrics=scores)
