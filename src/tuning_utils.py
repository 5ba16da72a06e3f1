"""
Resampling, grid search and final-fit utilities for the credit workflow.

Grid search runs every candidate of a pre-drawn random grid through the
same cross-validation folds. Candidates are evaluated as trials of an
Optuna study (the grid is enqueued, so Optuna does not pick values), which
keeps per-candidate fold metrics, failure reasons and optional SQLite
persistence in one place.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import numpy as np
import optuna
import pandas as pd
from numpy.typing import ArrayLike
from optuna.samplers import RandomSampler
from sklearn.base import BaseEstimator, clone
from sklearn.exceptions import UndefinedMetricWarning
from sklearn.model_selection import BaseCrossValidator, cross_validate

from .config import (
    RANDOM_STATE, GRID_SIZE, N_JOBS, SELECTION_METRIC, MINIMIZE_METRICS,
    SHOW_BEST_N, OPTUNA_STUDY_NAME, OPTUNA_STORAGE_PATH, POSITIVE_CLASS,
    NEGATIVE_CLASS, TARGET_COLUMN, LOGGER_NAME,
)
from .evaluation import SCORERS, compute_metrics, cv_results_to_frame, collect_metrics
from .models import build_workflow, suggest_params, tunable_parameters, INT_PARAMS

logger = logging.getLogger(LOGGER_NAME)

# Folds where a class is absent make roc_auc undefined; those folds are
# reported as NaN and excluded from the mean, the warning adds nothing.
warnings.filterwarnings('ignore', category=UndefinedMetricWarning)
optuna.logging.set_verbosity(optuna.logging.WARNING)


@dataclass
class TuneResults:
    """Outcome of tune_grid()."""
    grid: pd.DataFrame
    fold_metrics: pd.DataFrame
    failures: pd.DataFrame
    metric: str = SELECTION_METRIC
    study: Any = field(default=None, repr=False)

    @property
    def n_successful(self) -> int:
        if self.fold_metrics.empty:
            return 0
        return int(self.fold_metrics['.config'].nunique())


@dataclass
class LastFitResult:
    """Workflow refit on the training split and evaluated on the test split."""
    workflow: BaseEstimator
    metrics: dict[str, float]
    predictions: pd.DataFrame


def _config_label(index: int) -> str:
    return f"Config{index + 1:02d}"


def _clean_params(params: dict[str, Any]) -> dict[str, Any]:
    """Python scalars with integer parameters as int (for Optuna/JSON storage)."""
    return {
        name: int(value) if name in INT_PARAMS else float(value)
        for name, value in params.items()
        if name in tunable_parameters()
    }


def fit_resamples(
    workflow: BaseEstimator,
    X: pd.DataFrame,
    y: ArrayLike,
    cv: BaseCrossValidator,
    n_jobs: int = N_JOBS
) -> pd.DataFrame:
    """
    Cross-validate a fixed workflow.

    Folds run in parallel through joblib. A fold that fails to fit is
    reported with NaN metrics rather than aborting the run.

    Returns:
        Long table: id, .metric, .estimate (one row per fold and metric)
    """
    cv_results = cross_validate(
        workflow, X, y, cv=cv, scoring=SCORERS, n_jobs=n_jobs, error_score=np.nan
    )
    folds = cv_results_to_frame(cv_results)

    n_failed = int(folds['.estimate'].isna().sum())
    if n_failed:
        logger.warning(f"fit_resamples: {n_failed} fold metrics are NaN")

    summary = collect_metrics(folds)
    logger.info("Resampled metrics: " + ", ".join(
        f"{row['.metric']}={row['mean']:.4f}" for _, row in summary.iterrows()))
    return folds


def grid_random(size: int = GRID_SIZE, seed: int = RANDOM_STATE) -> pd.DataFrame:
    """
    Draw a random grid of candidate parameter sets.

    Each parameter is sampled independently from SEARCH_SPACES.

    Returns:
        DataFrame with '.config' and one column per tunable parameter

    Raises:
        ValueError: If size < 1
    """
    if size < 1:
        raise ValueError(f"Grid size must be >= 1, got {size}")

    study = optuna.create_study(direction='maximize', sampler=RandomSampler(seed=seed))
    rows = []
    for i in range(size):
        trial = study.ask()
        rows.append({'.config': _config_label(i), **suggest_params(trial)})
        study.tell(trial, state=optuna.trial.TrialState.PRUNED)

    grid = pd.DataFrame(rows, columns=['.config', *tunable_parameters()])
    logger.debug(f"Random grid:\n{grid.to_string(index=False)}")
    return grid


def get_optuna_storage_url(path: Path = OPTUNA_STORAGE_PATH) -> str:
    """SQLite connection string for Optuna storage."""
    return f"sqlite:///{path}"


def delete_study(study_name: str, storage: str) -> bool:
    """
    Delete an existing Optuna study.

    Returns:
        True if deleted, False if the study didn't exist
    """
    try:
        optuna.delete_study(study_name=study_name, storage=storage)
        logger.info(f"Deleted study: {study_name}")
        return True
    except KeyError:
        return False


def create_objective(
    X: pd.DataFrame,
    y: ArrayLike,
    cv: BaseCrossValidator,
    metric: str = SELECTION_METRIC,
    n_jobs: int = N_JOBS
) -> Callable[[optuna.Trial], float]:
    """
    Create the Optuna objective that scores one candidate by cross-validation.

    The objective returns the mean of `metric` over folds and stores the
    full per-fold table in the trial's user attributes ('fold_metrics').
    Failed candidates are pruned with a 'failure_reason' attribute.

    Raises:
        optuna.TrialPruned: When a fold cannot be fit or the metric is undefined
    """
    def objective(trial: optuna.Trial) -> float:
        params = suggest_params(trial)
        workflow = build_workflow(params)

        try:
            cv_results = cross_validate(
                workflow, X, y, cv=cv, scoring=SCORERS, n_jobs=n_jobs, error_score='raise'
            )
        except ValueError as e:
            logger.warning(f"CV failed for {trial.user_attrs.get('config')}: {type(e).__name__}: {e}")
            trial.set_user_attr('failed', True)
            trial.set_user_attr('failure_reason', f'{type(e).__name__}: {str(e)[:80]}')
            raise optuna.TrialPruned(f"CV failed: {type(e).__name__}")

        folds = cv_results_to_frame(cv_results)
        score = folds.loc[folds['.metric'] == metric, '.estimate'].mean()

        if pd.isna(score):
            trial.set_user_attr('failed', True)
            trial.set_user_attr('failure_reason', f'{metric} undefined on every fold')
            raise optuna.TrialPruned(f"{metric} undefined")

        trial.set_user_attr('fold_metrics', folds.to_dict(orient='list'))
        trial.set_user_attr('failed', False)
        return float(score)

    return objective


def tune_grid(
    X: pd.DataFrame,
    y: ArrayLike,
    cv: BaseCrossValidator,
    grid: pd.DataFrame,
    metric: str = SELECTION_METRIC,
    n_jobs: int = N_JOBS,
    storage: str | None = None,
    study_name: str = OPTUNA_STUDY_NAME,
) -> TuneResults:
    """
    Evaluate every grid candidate on every fold.

    Args:
        X: Training predictors
        y: Training labels
        cv: Splitter (the same folds are used for every candidate)
        grid: Output of grid_random() or any frame with the tunable columns
        metric: Metric optimized by the study (for bookkeeping; all
                CLASSIFICATION_METRICS are recorded)
        n_jobs: Parallel workers for the folds of each candidate
        storage: Optional Optuna storage URL. An existing study with the
                 same name is replaced.
        study_name: Study name within the storage

    Returns:
        TuneResults with per-fold metrics and failed candidates
    """
    if grid.empty:
        raise ValueError("Grid has no candidates")
    missing = [p for p in tunable_parameters() if p not in grid.columns]
    if missing:
        raise ValueError(f"Grid missing parameter columns: {missing}")

    if storage is not None:
        delete_study(study_name, storage)

    study = optuna.create_study(
        direction='minimize' if metric in MINIMIZE_METRICS else 'maximize',
        sampler=RandomSampler(seed=RANDOM_STATE),
        study_name=study_name,
        storage=storage,
    )

    grid = grid.reset_index(drop=True)
    if '.config' not in grid.columns:
        grid.insert(0, '.config', [_config_label(i) for i in range(len(grid))])

    for _, row in grid.iterrows():
        study.enqueue_trial(_clean_params(row.to_dict()), user_attrs={'config': row['.config']})

    objective = create_objective(X, y, cv, metric=metric, n_jobs=n_jobs)
    study.optimize(objective, n_trials=len(grid), show_progress_bar=False)

    fold_frames = []
    failures = []
    for trial in study.trials:
        config = trial.user_attrs.get('config', _config_label(trial.number))
        if trial.state == optuna.trial.TrialState.COMPLETE:
            folds = pd.DataFrame(trial.user_attrs['fold_metrics'])
            folds['.config'] = config
            for name in tunable_parameters():
                folds[name] = trial.params[name]
            fold_frames.append(folds)
        else:
            failures.append({
                '.config': config,
                **trial.params,
                'reason': trial.user_attrs.get('failure_reason', trial.state.name),
            })

    fold_columns = ['.config', *tunable_parameters(), 'id', '.metric', '.estimate']
    fold_metrics = (pd.concat(fold_frames, ignore_index=True)[fold_columns]
                    if fold_frames else pd.DataFrame(columns=fold_columns))
    failures_df = pd.DataFrame(failures, columns=['.config', *tunable_parameters(), 'reason'])

    results = TuneResults(grid=grid, fold_metrics=fold_metrics, failures=failures_df,
                          metric=metric, study=study)
    logger.info(f"Grid search: {results.n_successful}/{len(grid)} candidates completed"
                + (f", {len(failures_df)} failed" if len(failures_df) else ""))
    return results


def collect_tuning_metrics(results: TuneResults, summarize: bool = True) -> pd.DataFrame:
    """
    Per-candidate metrics.

    Returns:
        Per-fold table, or one row per candidate and metric with mean, n, std_err
    """
    folds = results.fold_metrics
    if not summarize:
        return folds.reset_index(drop=True)

    keys = ['.config', *tunable_parameters(), '.metric']
    if folds.empty:
        return pd.DataFrame(columns=[*keys, 'mean', 'n', 'std_err'])

    grouped = folds.groupby(keys, sort=False)['.estimate']
    summary = pd.DataFrame({
        'mean': grouped.mean(),
        'n': grouped.count(),
        'std_err': grouped.std(ddof=1) / np.sqrt(grouped.count()),
    }).reset_index()
    return summary


def show_best(
    results: TuneResults,
    metric: str = SELECTION_METRIC,
    n: int = SHOW_BEST_N
) -> pd.DataFrame:
    """Top `n` candidates for `metric`, best first."""
    summary = collect_tuning_metrics(results)
    ranked = summary.loc[summary['.metric'] == metric].dropna(subset=['mean'])
    ranked = ranked.sort_values('mean', ascending=metric in MINIMIZE_METRICS, kind='stable')
    return ranked.head(n).reset_index(drop=True)


def select_best(results: TuneResults, metric: str = SELECTION_METRIC) -> dict[str, Any]:
    """
    Parameters of the best candidate for `metric`.

    Returns:
        Dict with '.config' and one entry per tunable parameter

    Raises:
        RuntimeError: If no candidate completed
    """
    best = show_best(results, metric=metric, n=1)
    if best.empty:
        raise RuntimeError(
            f"No successful candidates to select from ({len(results.failures)} failed)"
        )
    row = best.iloc[0]
    selected = {'.config': row['.config'], **_clean_params(row.to_dict())}
    logger.info(f"Selected {selected['.config']} ({metric}={row['mean']:.4f}): "
                + ", ".join(f"{k}={v}" for k, v in selected.items() if k != '.config'))
    return selected


def last_fit(
    workflow: BaseEstimator,
    X_train: pd.DataFrame,
    y_train: ArrayLike,
    X_test: pd.DataFrame,
    y_test: ArrayLike,
    threshold: float = 0.5
) -> LastFitResult:
    """
    Fit on the full training split and evaluate once on the test split.

    Returns:
        LastFitResult with the fitted workflow, test metrics and a
        predictions table (.pred_bad, .pred_good, .pred_class, status)
    """
    fitted = clone(workflow).fit(X_train, y_train)

    classes = list(fitted.classes_)
    proba = fitted.predict_proba(X_test)[:, classes.index(1)]
    metrics = compute_metrics(y_test, proba, threshold=threshold)

    y_test_arr = np.asarray(y_test)
    predictions = pd.DataFrame({
        f'.pred_{POSITIVE_CLASS}': proba,
        f'.pred_{NEGATIVE_CLASS}': 1.0 - proba,
        '.pred_class': np.where(proba >= threshold, POSITIVE_CLASS, NEGATIVE_CLASS),
        TARGET_COLUMN: np.where(y_test_arr == 1, POSITIVE_CLASS, NEGATIVE_CLASS),
    }, index=getattr(X_test, 'index', None))

    logger.info("Test metrics: " + ", ".join(f"{k}={v:.4f}" for k, v in metrics.items()))
    return LastFitResult(workflow=fitted, metrics=metrics, predictions=predictions)
