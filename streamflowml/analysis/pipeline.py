"""
StreamflowAnalysis - high-level API running the full regression analysis
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import matplotlib.pyplot as plt
import pandas as pd
import structlog

from ..data.loader import GaugeDataLoader
from ..data.recipe import Recipe
from ..data.split import Split, initial_split, make_rng, vfold_cv
from ..data.validation import DataValidator
from ..exceptions import ConfigurationMismatchError
from ..models.evaluation import ModelEvaluator, metric_set
from ..models.resampling import compare_models
from ..models.specs import boost_tree, linear_reg, rand_forest
from ..models.tuning import TuningOutcome, tune_random_forest
from ..models.workflow import LastFitResult, Workflow, fit_workflow, last_fit, prediction_table
from ..plots.diagnostics import (
    plot_histograms, plot_model_comparison, plot_predicted_vs_actual, plot_tuning_results
)
from ..plots.maps import plot_residual_map, residual_map_frame
from ..utils.config import Config, get_config

logger = structlog.get_logger()


@dataclass(eq=False)
class AnalysisResult:
    """Every table produced by ``StreamflowAnalysis.run``"""
    data: pd.DataFrame
    split: Split
    comparison: pd.DataFrame
    tuning: TuningOutcome
    final: LastFitResult
    map_frame: pd.DataFrame
    report: Dict = field(default_factory=dict)
    figures: Dict[str, Path] = field(default_factory=dict)

    @property
    def tuning_metrics(self) -> pd.DataFrame:
        return self.tuning.results.collect_metrics()

    def write_tables(self, output_dir) -> Dict[str, Path]:
        """Write the metrics and prediction tables as CSV files into an existing directory"""
        output_dir = Path(output_dir)
        tables = {
            'model_comparison': self.comparison,
            'tuning_metrics': self.tuning_metrics,
            'test_metrics': self.final.metrics,
            'test_predictions': self.final.predictions,
            'prediction_map': self.map_frame,
        }
        paths = {}
        for name, table in tables.items():
            path = output_dir / f"{name}.csv"
            table.to_csv(path, index=False)
            paths[name] = path
        logger.info("Tables written", output_dir=str(output_dir), tables=list(paths))
        return paths


class StreamflowAnalysis:
    """
    Mean streamflow regression over gauge attributes

    Loads and cleans the attribute tables, splits them, compares model
    families under cross-validation, tunes a random forest, evaluates it on
    the held-out rows and maps its predictions.
    """

    def __init__(self, config: Optional[Config] = None, data_dir: Optional[str] = None):
        """
        Parameters
        ----------
        config : Config, optional
            Settings; the global configuration when omitted
        data_dir : str, optional
            Overrides ``data.data_dir``
        """
        self.config = config or get_config()
        if data_dir is not None:
            self.config.set('data.data_dir', str(data_dir))

        self.seed = self.config.get('seed')
        self.rng = make_rng(self.seed)
        self.n_jobs = int(self.config.get('n_jobs', 1))
        self.key_column = self.config.get('data.key_column', 'gauge_id')
        self.outcome = self.config.get('data.outcome', 'q_mean')
        self.coordinate_columns = list(self.config.get('data.coordinate_columns', []))
        if len(self.coordinate_columns) != 2:
            raise ValueError(
                f"data.coordinate_columns must name longitude and latitude, got {self.coordinate_columns}"
            )
        self.metrics = metric_set('mae', 'rmse', 'rsq')

        self.validator = DataValidator(
            missing_threshold=self.config.get('data.missing_threshold', 0.3),
            expected_predictors=self.config.get('data.expected_predictors', []),
            strict=self.config.get('data.strict_predictors', True)
        )

        logger.info(
            "Initialized StreamflowAnalysis",
            data_dir=self.config.get('data.data_dir'),
            outcome=self.outcome,
            seed=self.seed
        )

    def load_data(self) -> pd.DataFrame:
        loader = GaugeDataLoader(
            self.config.get('data.data_dir'),
            key_column=self.key_column,
            pattern=self.config.get('data.pattern', '*.txt'),
            sep=self.config.get('data.delimiter')
        )
        return loader.load()

    def clean_data(self, raw: pd.DataFrame) -> pd.DataFrame:
        """Clean the joined table; the coordinate columns have to survive for the map"""
        data = self.validator.clean(raw, key_column=self.key_column, outcome=self.outcome)
        missing = [c for c in self.coordinate_columns if c not in data.columns]
        if missing:
            raise ConfigurationMismatchError(
                f"Coordinate columns missing after cleaning: {missing}"
            )
        return data

    def split_data(self, data: pd.DataFrame) -> Split:
        return initial_split(data, prop=self.config.get('split.prop', 0.8), rng=self.rng)

    def build_recipe(self) -> Recipe:
        """Recipe dropping the coordinate columns, which are kept only for the map"""
        return Recipe(outcome=self.outcome, drop=tuple(self.coordinate_columns))

    def candidate_workflows(self, recipe: Recipe) -> Dict[str, Workflow]:
        trees = int(self.config.get('tuning.trees', 500))
        return {
            'linear_reg': Workflow(recipe, linear_reg()),
            'rand_forest': Workflow(recipe, rand_forest(trees=trees, random_state=self.seed)),
            'boost_tree': Workflow(recipe, boost_tree(random_state=self.seed)),
        }

    def compare_models(self, train: pd.DataFrame, recipe: Recipe) -> pd.DataFrame:
        """Cross-validate every candidate model family on the same folds"""
        resamples = vfold_cv(train, int(self.config.get('resampling.folds', 10)), rng=self.rng)
        return compare_models(
            self.candidate_workflows(recipe),
            train,
            resamples,
            self.metrics,
            rank_metric='rsq',
            n_jobs=self.n_jobs
        )

    def tune(self, train: pd.DataFrame, recipe: Recipe) -> TuningOutcome:
        min_n = self.config.get('tuning.min_n', [2, 40])
        return tune_random_forest(
            train,
            recipe,
            v=int(self.config.get('tuning.folds', 10)),
            grid_size=int(self.config.get('tuning.grid_size', 25)),
            metric=self.config.get('tuning.metric', 'mae'),
            rng=self.rng,
            trees=int(self.config.get('tuning.trees', 500)),
            min_n=(int(min_n[0]), int(min_n[1])),
            random_state=self.seed,
            n_jobs=self.n_jobs
        )

    def map_predictions(self, workflow: Workflow, data: pd.DataFrame) -> pd.DataFrame:
        """Fit on every row and join predictions and squared residuals to coordinates"""
        fitted = fit_workflow(workflow, data)
        predictions = prediction_table(fitted, data)
        lon, lat = self.coordinate_columns
        return residual_map_frame(predictions, data, id_column=self.key_column, lon=lon, lat=lat)

    def run(self, save_figures: Optional[bool] = None) -> AnalysisResult:
        """
        Run every stage in order

        Parameters
        ----------
        save_figures : bool, optional
            Write figures to ``output.output_dir``; follows the configuration when None
        """
        if save_figures is None:
            save_figures = self.config.get('output.save_figures', True)

        raw = self.load_data()
        data = self.clean_data(raw)
        split = self.split_data(data)
        recipe = self.build_recipe()

        comparison = self.compare_models(split.train, recipe)
        tuning = self.tune(split.train, recipe)
        final = last_fit(tuning.workflow, split, self.metrics)
        map_frame = self.map_predictions(tuning.workflow, data)

        report = ModelEvaluator().generate_evaluation_report(
            final.predictions['actual'],
            final.predictions['predicted'],
            model_name='rand_forest_tuned'
        )

        result = AnalysisResult(
            data=data,
            split=split,
            comparison=comparison,
            tuning=tuning,
            final=final,
            map_frame=map_frame,
            report=report
        )

        if save_figures:
            self.config.create_directories()
            result.figures = self.save_figures(result, self.config.get('output.output_dir'))

        logger.info(
            "Analysis complete",
            gauges=len(data),
            best_config=tuning.best['config'],
            **report['metrics']
        )
        return result

    def save_figures(self, result: AnalysisResult, output_dir) -> Dict[str, Path]:
        """Draw every figure into ``output_dir`` (which must exist) and close it"""
        output_dir = Path(output_dir)
        lon, lat = self.coordinate_columns
        expected = self.config.get('data.expected_predictors', [])
        histogram_columns = [self.outcome] + [c for c in expected if c in result.data.columns][:5]

        figures = {
            'histograms': lambda path: plot_histograms(
                result.data, histogram_columns, save_path=path),
            'model_comparison': lambda path: plot_model_comparison(result.comparison, save_path=path),
            'tuning_results': lambda path: plot_tuning_results(
                result.tuning_metrics, result.tuning.space.names, save_path=path),
            'predicted_vs_actual': lambda path: plot_predicted_vs_actual(
                result.final.predictions, title='Tuned random forest, test split', save_path=path),
            'residual_map': lambda path: plot_residual_map(
                result.map_frame, lon=lon, lat=lat, save_path=path),
        }

        paths = {}
        for name, draw in figures.items():
            path = output_dir / f"{name}.png"
            fig = draw(path)
            plt.close(fig)
            paths[name] = path
        return paths
