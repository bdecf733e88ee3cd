"""
Tests for hyperparameter grid search and selection
"""

import numpy as np
import pandas as pd
import pytest

from streamflowml.data.recipe import Recipe, fit_recipe
from streamflowml.data.split import vfold_cv, make_rng
from streamflowml.exceptions import ConfigurationMismatchError
from streamflowml.models.specs import TUNE, rand_forest, linear_reg
from streamflowml.models.tuning import (
    ParamRange, SearchSpace, grid_latin_hypercube, search_space,
    select_best, show_best, tune_grid, tune_random_forest
)
from streamflowml.models.workflow import Workflow

from conftest import make_linear_data


def _with_category(df):
    df = df.copy()
    df['region'] = np.resize(['east', 'north', 'west'], len(df))
    return df


class TestSearchSpace:
    """Test hyperparameter domains"""

    def test_mtry_bound_counts_encoded_predictors(self, linear_data):
        """Upper mtry bound follows the recipe output, not the raw columns"""
        data = _with_category(linear_data)
        fitted = fit_recipe(Recipe('q_mean'), data)
        spec = rand_forest(mtry=TUNE, min_n=TUNE)

        space = search_space(spec, fitted, min_n=(2, 10))

        assert data.shape[1] - 1 == 6
        assert space['mtry'] == ParamRange('mtry', 1, 7)
        assert space['min_n'] == ParamRange('min_n', 2, 10)
        assert space.names == ['mtry', 'min_n']

    def test_mtry_bound_after_dropping_columns(self, linear_data):
        fitted = fit_recipe(Recipe('q_mean', drop=('x1', 'x2')), linear_data)
        space = search_space(rand_forest(mtry=TUNE, min_n=TUNE), fitted)

        assert space['mtry'].high == 3

    def test_untunable_model(self, linear_data):
        fitted = fit_recipe(Recipe('q_mean'), linear_data)
        with pytest.raises(ValueError):
            search_space(linear_reg(), fitted)

    def test_invalid_min_n(self, linear_data):
        fitted = fit_recipe(Recipe('q_mean'), linear_data)
        with pytest.raises(ValueError):
            search_space(rand_forest(mtry=TUNE, min_n=TUNE), fitted, min_n=(1, 10))

    def test_empty_range(self):
        with pytest.raises(ValueError):
            ParamRange('min_n', 5, 2)


class TestLatinHypercubeGrid:
    """Test grid construction"""

    def _space(self):
        return SearchSpace((ParamRange('mtry', 1, 5), ParamRange('min_n', 2, 10)))

    def test_grid_size_and_bounds(self):
        grid = grid_latin_hypercube(self._space(), 25, rng=make_rng(1))

        assert len(grid) == 25
        assert list(grid.columns) == ['config', 'mtry', 'min_n']
        assert grid['config'].iloc[0] == 'Model01'
        assert grid['config'].iloc[-1] == 'Model25'
        assert grid['mtry'].between(1, 5).all()
        assert grid['min_n'].between(2, 10).all()

    def test_grid_covers_each_level_evenly(self):
        """Every mtry value appears equally often when the size allows it"""
        grid = grid_latin_hypercube(self._space(), 25, rng=make_rng(2))

        counts = grid['mtry'].value_counts()
        assert sorted(counts.index) == [1, 2, 3, 4, 5]
        assert (counts == 5).all()
        assert grid['min_n'].nunique() == 9

    def test_grid_reproducible(self):
        first = grid_latin_hypercube(self._space(), 25, rng=make_rng(123))
        second = grid_latin_hypercube(self._space(), 25, rng=make_rng(123))
        other = grid_latin_hypercube(self._space(), 25, rng=make_rng(124))

        pd.testing.assert_frame_equal(first, second)
        assert not first.equals(other)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            grid_latin_hypercube(self._space(), 0)


class TestSelectBest:
    """Test model selection"""

    def _table(self):
        return pd.DataFrame({
            'config': ['Model01', 'Model02', 'Model03'] * 2,
            'mtry': [1, 2, 3] * 2,
            'metric': ['mae'] * 3 + ['rsq'] * 3,
            'mean': [3.0, 1.0, 2.0, 0.5, 0.9, 0.7],
            'n': [5] * 6,
            'std_err': [0.1] * 6,
        })

    def test_minimizes_error_metric(self):
        best = select_best(self._table(), 'mae')
        assert best['config'] == 'Model02'
        assert best['mean'] == 1.0

    def test_maximizes_rsq(self):
        best = select_best(self._table(), 'rsq')
        assert best['config'] == 'Model02'
        assert best['mean'] == 0.9

    def test_tie_goes_to_first_grid_point(self):
        table = self._table()
        table.loc[2, 'mean'] = 1.0
        table.loc[0, 'mean'] = 1.0

        assert select_best(table, 'mae')['config'] == 'Model01'

    def test_unique_optimum_in_random_tables(self):
        rng = np.random.default_rng(0)
        for _ in range(20):
            means = rng.permutation(50).astype(float)
            table = pd.DataFrame({
                'config': [f"Model{i:02d}" for i in range(1, 51)],
                'metric': 'rmse',
                'mean': means,
            })
            assert select_best(table, 'rmse')['config'] == f"Model{int(np.argmin(means)) + 1:02d}"

    def test_metric_not_in_results(self):
        with pytest.raises(ValueError, match="rmse"):
            select_best(self._table(), 'rmse')

    def test_show_best_orders(self):
        top = show_best(self._table(), 'mae', n=2)
        assert list(top['config']) == ['Model02', 'Model03']


class TestTuneGrid:
    """Test grid evaluation"""

    def test_25_point_grid_over_5_folds(self):
        """Every grid point gets one aggregated row per metric over all folds"""
        data = make_linear_data(n_rows=100, seed=5)
        space = SearchSpace((ParamRange('mtry', 1, 5), ParamRange('min_n', 2, 10)))
        grid = grid_latin_hypercube(space, 25, rng=make_rng(10))
        resamples = vfold_cv(data, v=5, rng=make_rng(11))
        workflow = Workflow(Recipe('q_mean'), rand_forest(mtry=TUNE, min_n=TUNE, trees=10, random_state=1))

        results = tune_grid(workflow, data, resamples, grid)
        summary = results.collect_metrics()

        assert len(results.fold_metrics) == 25 * 5 * 3
        for metric in ['mae', 'rmse', 'rsq']:
            rows = summary[summary['metric'] == metric]
            assert len(rows) == 25
            assert (rows['n'] == 5).all()
        assert list(summary[summary['metric'] == 'mae']['config']) == list(grid['config'])

        fold_mae = results.fold_metrics[
            (results.fold_metrics['config'] == 'Model07') & (results.fold_metrics['metric'] == 'mae')
        ]['estimate']
        mean_mae = summary[(summary['config'] == 'Model07') & (summary['metric'] == 'mae')]['mean'].iloc[0]
        assert mean_mae == pytest.approx(fold_mae.mean())

    def test_grid_without_config_column(self, linear_data):
        grid = pd.DataFrame({'mtry': [1, 3], 'min_n': [2, 5]})
        resamples = vfold_cv(linear_data, v=3, rng=make_rng(1))
        workflow = Workflow(Recipe('q_mean'), rand_forest(mtry=TUNE, min_n=TUNE, trees=5, random_state=1))

        results = tune_grid(workflow, linear_data, resamples, grid)

        assert list(results.grid['config']) == ['Model01', 'Model02']
        assert 'config' not in grid.columns

    def test_grid_missing_parameter(self, linear_data):
        resamples = vfold_cv(linear_data, v=3, rng=make_rng(1))
        workflow = Workflow(Recipe('q_mean'), rand_forest(mtry=TUNE, min_n=TUNE, trees=5))

        with pytest.raises(ValueError, match="min_n"):
            tune_grid(workflow, linear_data, resamples, pd.DataFrame({'mtry': [1, 2]}))

    def test_grid_outside_search_space_rejected(self, linear_data):
        """A grid point with more predictors than the recipe yields stops the run"""
        resamples = vfold_cv(linear_data, v=3, rng=make_rng(1))
        workflow = Workflow(Recipe('q_mean'), rand_forest(mtry=TUNE, min_n=TUNE, trees=5))
        grid = pd.DataFrame({'mtry': [2, 9], 'min_n': [2, 2]})

        with pytest.raises(ValueError, match="mtry"):
            tune_grid(workflow, linear_data, resamples, grid)

    def test_fit_error_propagates(self, linear_data):
        """An estimator error aborts the search instead of skipping the point"""
        resamples = vfold_cv(linear_data, v=3, rng=make_rng(1))
        workflow = Workflow(Recipe('q_mean'), rand_forest(mtry=TUNE, min_n=TUNE, trees=5))
        grid = pd.DataFrame({'mtry': [2, 3], 'min_n': [2, 1]})

        with pytest.raises(ValueError, match="min_samples_split"):
            tune_grid(workflow, linear_data, resamples, grid)

    def test_search_results_kept(self, linear_data):
        resamples = vfold_cv(linear_data, v=3, rng=make_rng(1))
        workflow = Workflow(Recipe('q_mean'), rand_forest(mtry=TUNE, min_n=TUNE, trees=5, random_state=1))
        grid = pd.DataFrame({'mtry': [1, 4], 'min_n': [2, 6]})

        results = tune_grid(workflow, linear_data, resamples, grid)

        assert list(results.cv_results['param_model__max_features']) == [1, 4]
        assert list(results.cv_results['param_model__min_samples_split']) == [2, 6]
        mae = results.collect_metrics().query("metric == 'mae'")['mean']
        assert list(mae) == pytest.approx(list(-results.cv_results['mean_test_mae']))


class TestTuneRandomForest:
    """Test the full tuning procedure"""

    def _tune(self, data, seed=21, **kwargs):
        params = dict(v=3, grid_size=4, metric='mae', trees=10, min_n=(2, 10))
        params.update(kwargs)
        return tune_random_forest(data, Recipe('q_mean'), rng=make_rng(seed), **params)

    def test_returns_finalized_workflow(self):
        data = _with_category(make_linear_data(n_rows=60, seed=3))
        outcome = self._tune(data)

        assert outcome.workflow.model.is_final
        assert outcome.space['mtry'].high == 7
        assert 1 <= outcome.best_params['mtry'] <= 7
        assert 2 <= outcome.best_params['min_n'] <= 10
        assert outcome.workflow.model.params['trees'] == 10

        summary = outcome.results.collect_metrics()
        mae = summary[summary['metric'] == 'mae']
        assert outcome.best['mean'] == mae['mean'].min()
        assert outcome.best['config'] == mae.loc[mae['mean'].idxmin(), 'config']

    def test_rare_category_level_absent_from_folds(self):
        """A level seen in a single gauge keeps its indicator column in every fold"""
        data = make_linear_data(n_rows=60, seed=3)
        data['region'] = 'east'
        data.iloc[0, data.columns.get_loc('region')] = 'north'

        outcome = tune_random_forest(
            data, Recipe('q_mean'), v=3, grid_size=10, trees=5, min_n=(2, 10), rng=make_rng(1)
        )

        assert outcome.space['mtry'].high == 6
        assert len(outcome.results.grid) == 10
        assert outcome.results.grid['mtry'].max() <= 6
        assert outcome.workflow.model.is_final

    def test_deterministic_given_seed(self):
        data = make_linear_data(n_rows=60, seed=3)
        first = self._tune(data, seed=5)
        second = self._tune(data, seed=5)

        pd.testing.assert_frame_equal(first.results.grid, second.results.grid)
        pd.testing.assert_frame_equal(
            first.results.collect_metrics(), second.results.collect_metrics()
        )
        assert first.best_params == second.best_params

    def test_parallel_matches_sequential(self):
        data = make_linear_data(n_rows=45, seed=4)
        sequential = self._tune(data, seed=9, grid_size=2)
        parallel = self._tune(data, seed=9, grid_size=2, n_jobs=2)

        pd.testing.assert_frame_equal(
            sequential.results.collect_metrics(), parallel.results.collect_metrics()
        )

    def test_rsq_selection_maximizes(self):
        outcome = self._tune(make_linear_data(n_rows=60, seed=3), metric='rsq')
        summary = outcome.results.collect_metrics()

        assert outcome.best['mean'] == summary[summary['metric'] == 'rsq']['mean'].max()

    def test_recipe_mismatch_aborts_before_grid(self, linear_data):
        with pytest.raises(ConfigurationMismatchError):
            tune_random_forest(
                linear_data, Recipe('q_mean', drop=('gauge_lat',)), v=3, grid_size=2, trees=5
            )

    def test_invalid_grid_size_and_folds(self, linear_data):
        with pytest.raises(ValueError):
            tune_random_forest(linear_data, Recipe('q_mean'), grid_size=0)
        with pytest.raises(ValueError):
            tune_random_forest(linear_data, Recipe('q_mean'), v=1)


if __name__ == "__main__":
    pytest.main([__file__])
