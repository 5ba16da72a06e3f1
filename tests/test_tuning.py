"""
Tests for resampling, grid search, selection and the final fit.

Grid searches here use a small grid, 3 folds and a single worker.
"""

import numpy as np
import pandas as pd
import pytest

from src.data import initial_split, vfold_cv
from src.models import build_workflow, finalize_workflow, tunable_parameters, in_search_space
from src.tuning_utils import (
    TuneResults,
    fit_resamples,
    grid_random,
    tune_grid,
    collect_tuning_metrics,
    show_best,
    select_best,
    last_fit,
    get_optuna_storage_url,
)


@pytest.fixture
def split(credit_Xy):
    X, y = credit_Xy
    return initial_split(X, y)


@pytest.fixture
def tuned(split):
    X_train, _, y_train, _ = split
    grid = grid_random(size=3)
    return tune_grid(X_train, y_train, vfold_cv(n_splits=3), grid, n_jobs=1)


class TestFitResamples:
    """Tests for fit_resamples function."""

    def test_fold_table(self, split):
        """One estimate per fold and metric."""
        X_train, _, y_train, _ = split
        folds = fit_resamples(build_workflow(), X_train, y_train, vfold_cv(n_splits=3), n_jobs=1)

        assert list(folds.columns) == ['id', '.metric', '.estimate']
        assert len(folds) == 9
        assert folds['.estimate'].notna().all()

    def test_metric_ranges(self, split):
        """AUC, accuracy and Brier score lie in [0, 1]."""
        X_train, _, y_train, _ = split
        folds = fit_resamples(build_workflow(), X_train, y_train, vfold_cv(n_splits=3), n_jobs=1)
        assert folds['.estimate'].between(0, 1).all()


class TestGridRandom:
    """Tests for grid_random function."""

    def test_shape_and_labels(self):
        """One row per candidate, labeled Config01.."""
        grid = grid_random(size=4)
        assert list(grid.columns) == ['.config', *tunable_parameters()]
        assert list(grid['.config']) == ['Config01', 'Config02', 'Config03', 'Config04']

    def test_values_in_space(self):
        """Every candidate lies within the search space."""
        grid = grid_random(size=10)
        for _, row in grid.iterrows():
            assert in_search_space(row.to_dict())

    def test_reproducible(self):
        """Same seed gives the same grid; another seed does not."""
        pd.testing.assert_frame_equal(grid_random(size=5, seed=1), grid_random(size=5, seed=1))
        assert not grid_random(size=5, seed=1).equals(grid_random(size=5, seed=2))

    def test_invalid_size(self):
        """Empty grids are rejected."""
        with pytest.raises(ValueError, match="Grid size"):
            grid_random(size=0)


class TestTuneGrid:
    """Tests for tune_grid function."""

    def test_results_structure(self, tuned):
        """Every candidate is scored on every fold for every metric."""
        assert isinstance(tuned, TuneResults)
        assert tuned.n_successful == 3
        assert tuned.failures.empty
        assert list(tuned.fold_metrics.columns) == [
            '.config', *tunable_parameters(), 'id', '.metric', '.estimate'
        ]
        assert len(tuned.fold_metrics) == 3 * 3 * 3

    def test_grid_values_used(self, tuned):
        """Scored parameters are exactly the grid's."""
        scored = tuned.fold_metrics.drop_duplicates('.config').set_index('.config')
        grid = tuned.grid.set_index('.config')
        for config in grid.index:
            assert scored.loc[config, 'tree_depth'] == grid.loc[config, 'tree_depth']
            assert scored.loc[config, 'cost_complexity'] == pytest.approx(grid.loc[config, 'cost_complexity'])

    def test_missing_grid_columns(self, split):
        """Grids must have every tunable column."""
        X_train, _, y_train, _ = split
        with pytest.raises(ValueError, match="missing parameter columns"):
            tune_grid(X_train, y_train, vfold_cv(n_splits=3), pd.DataFrame({'tree_depth': [3]}), n_jobs=1)

    def test_failed_candidate_recorded(self, split):
        """A candidate that cannot be fit is reported as a failure, not raised."""
        X_train, _, y_train, _ = split
        grid = pd.DataFrame({
            'cost_complexity': [1e-3, 1e-3],
            'tree_depth': [3, 3],
            'min_n': [5, 5],
            'under_ratio': [1.0, -1.0],
        })
        results = tune_grid(X_train, y_train, vfold_cv(n_splits=3), grid, n_jobs=1)

        assert results.n_successful == 1
        assert list(results.failures['.config']) == ['Config02']
        assert 'under_ratio' in results.failures['reason'].iloc[0]

    def test_sqlite_storage(self, split, tmp_path):
        """Study can be persisted and rerun under the same name."""
        X_train, _, y_train, _ = split
        storage = get_optuna_storage_url(tmp_path / 'studies.db')
        grid = grid_random(size=2)

        tune_grid(X_train, y_train, vfold_cv(n_splits=3), grid, n_jobs=1, storage=storage, study_name='t')
        results = tune_grid(X_train, y_train, vfold_cv(n_splits=3), grid, n_jobs=1, storage=storage, study_name='t')
        assert len(results.study.trials) == 2


class TestSelection:
    """Tests for collect_tuning_metrics, show_best and select_best."""

    def test_summary(self, tuned):
        """One summary row per candidate and metric."""
        summary = collect_tuning_metrics(tuned)
        assert len(summary) == 3 * 3
        assert (summary['n'] == 3).all()

    def test_show_best_sorted(self, tuned):
        """Candidates are ranked best first."""
        best = show_best(tuned, metric='roc_auc')
        assert best['mean'].is_monotonic_decreasing
        assert len(best) == 3

        brier = show_best(tuned, metric='brier_class')
        assert brier['mean'].is_monotonic_increasing

    def test_show_best_n(self, tuned):
        """n limits the number of rows."""
        assert len(show_best(tuned, n=1)) == 1

    def test_select_best(self, tuned):
        """Selected parameters match the top show_best row."""
        best = select_best(tuned)
        top = show_best(tuned, n=1).iloc[0]

        assert best['.config'] == top['.config']
        assert best['tree_depth'] == int(top['tree_depth'])
        assert set(best) == {'.config', *tunable_parameters()}

    def test_select_best_all_failed(self):
        """No successful candidate raises RuntimeError."""
        empty = TuneResults(
            grid=pd.DataFrame(),
            fold_metrics=pd.DataFrame(columns=['.config', *tunable_parameters(), 'id', '.metric', '.estimate']),
            failures=pd.DataFrame({'.config': ['Config01'], 'reason': ['boom']}),
        )
        with pytest.raises(RuntimeError, match="No successful candidates"):
            select_best(empty)


class TestLastFit:
    """Tests for last_fit function."""

    def test_last_fit(self, split, tuned):
        """Finalized workflow is evaluated once on the test split."""
        X_train, X_test, y_train, y_test = split
        workflow = finalize_workflow(build_workflow(), select_best(tuned))
        result = last_fit(workflow, X_train, y_train, X_test, y_test)

        assert set(result.metrics) == {'roc_auc', 'accuracy', 'brier_class'}
        assert len(result.predictions) == len(X_test)
        assert list(result.predictions.columns) == ['.pred_bad', '.pred_good', '.pred_class', 'status']
        np.testing.assert_allclose(
            result.predictions['.pred_bad'] + result.predictions['.pred_good'], 1.0
        )
        assert set(result.predictions['.pred_class']) <= {'bad', 'good'}

    def test_workflow_not_mutated(self, split):
        """The input workflow stays unfitted."""
        X_train, X_test, y_train, y_test = split
        workflow = build_workflow()
        result = last_fit(workflow, X_train, y_train, X_test, y_test)

        assert result.workflow is not workflow
        assert not hasattr(workflow.named_steps['classifier'], 'tree_')
