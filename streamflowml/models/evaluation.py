"""
Regression metrics and evaluation reports for streamflowml
"""

from dataclasses import dataclass
from typing import Callable, Dict, Any, List, Sequence

import numpy as np
from sklearn.metrics import make_scorer, mean_absolute_error, mean_squared_error, r2_score
import structlog

logger = structlog.get_logger()

MINIMIZE = 'minimize'
MAXIMIZE = 'maximize'


@dataclass(frozen=True)
class Metric:
    """A named scoring function and whether smaller or larger is better"""
    name: str
    func: Callable[[np.ndarray, np.ndarray], float]
    direction: str

    def __call__(self, y_true, y_pred) -> float:
        return float(self.func(np.asarray(y_true, dtype=float), np.asarray(y_pred, dtype=float)))

    def better(self, a: float, b: float) -> bool:
        """True if ``a`` is strictly better than ``b``"""
        return a < b if self.direction == MINIMIZE else a > b

    @property
    def scorer(self):
        """scikit-learn scorer; error metrics come back negated"""
        return make_scorer(self.func, greater_is_better=self.direction == MAXIMIZE)

    def from_score(self, value) -> float:
        """Undo the sign scikit-learn puts on minimized metrics"""
        return float(value) if self.direction == MAXIMIZE else -float(value)


def _rmse(y_true, y_pred):
    return np.sqrt(mean_squared_error(y_true, y_pred))


METRICS: Dict[str, Metric] = {
    'mae': Metric('mae', mean_absolute_error, MINIMIZE),
    'rmse': Metric('rmse', _rmse, MINIMIZE),
    'rsq': Metric('rsq', r2_score, MAXIMIZE),
}


def get_metric(name: str) -> Metric:
    if name not in METRICS:
        raise ValueError(f"Unknown metric: {name}. Available: {sorted(METRICS)}")
    return METRICS[name]


def metric_set(*names: str) -> List[Metric]:
    """Resolve metric names; defaults to mae, rmse and rsq"""
    names = names or ('mae', 'rmse', 'rsq')
    return [get_metric(n) for n in names]


def scoring(metrics: Sequence[Metric]) -> Dict[str, Any]:
    """Multi-metric ``scoring`` argument for cross_validate and GridSearchCV"""
    return {m.name: m.scorer for m in metrics}


def score(predictions, actuals, metric: str) -> float:
    """Score predictions against actual values with the named metric"""
    return get_metric(metric)(actuals, predictions)


class ModelEvaluator:
    """
    Evaluation reports for fitted regression models

    Collects the metrics of a prediction set plus residual statistics
    relevant to streamflow (bias, largest misses).
    """

    def __init__(self, metrics: Sequence[str] = ('mae', 'rmse', 'rsq')):
        self.metrics = metric_set(*metrics)
        self.results = {}

    def evaluate_regression(self, y_true: np.ndarray, y_pred: np.ndarray) -> Dict[str, float]:
        """Compute every configured metric"""
        y_true = np.asarray(y_true, dtype=float)
        y_pred = np.asarray(y_pred, dtype=float)
        if y_true.shape != y_pred.shape:
            raise ValueError(f"Shape mismatch: {y_true.shape} vs {y_pred.shape}")
        return {m.name: m(y_true, y_pred) for m in self.metrics}

    def generate_evaluation_report(
        self,
        y_true: np.ndarray,
        y_pred: np.ndarray,
        model_name: str = "StreamflowModel"
    ) -> Dict[str, Any]:
        """
        Generate evaluation report
        """
        y_true = np.asarray(y_true, dtype=float)
        y_pred = np.asarray(y_pred, dtype=float)
        residuals = y_pred - y_true

        report = {
            'model_name': model_name,
            'dataset_stats': {
                'total_samples': int(len(y_true)),
                'outcome_mean': float(np.mean(y_true)),
                'outcome_std': float(np.std(y_true)),
            },
            'metrics': self.evaluate_regression(y_true, y_pred),
            'residuals': {
                'mean_error': float(np.mean(residuals)),
                'max_abs_error': float(np.max(np.abs(residuals))),
                'sum_squared_error': float(np.sum(residuals ** 2)),
            }
        }
        self.results[model_name] = report
        return report

    def print_evaluation_summary(self, report: Dict[str, Any]):
        print(f"Evaluation Report: {report['model_name']}")
        print("=" * 50)
        stats = report['dataset_stats']
        print("Dataset Statistics:")
        print(f"   Total samples: {stats['total_samples']:,}")
        print(f"   Outcome mean: {stats['outcome_mean']:.3f} (sd {stats['outcome_std']:.3f})")
        print("\nPerformance Metrics:")
        for name, value in report['metrics'].items():
            print(f"   {name.upper()}: {value:.3f}")
        res = report['residuals']
        print("\nResiduals:")
        print(f"   Mean error (bias): {res['mean_error']:.3f}")
        print(f"   Largest miss: {res['max_abs_error']:.3f}")
