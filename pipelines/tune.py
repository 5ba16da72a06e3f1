#!/usr/bin/env python
"""
Credit Decision Tree Tuning Pipeline

Loads the credit applicants table, splits it, scores the untuned workflow
by cross-validation, runs a random grid search over the tree and
downsampling parameters, and refits the best candidate on the full
training split for a single evaluation on the test split.

Usage:
    # Full run (10 folds, 10 candidates, MLflow tracking)
    python -m pipelines.tune

    # Smaller run from a local copy, keeping the Optuna study on disk
    python -m pipelines.tune --data=credit_small.csv --grid-size=5 --folds=5 --storage

    # Skip experiment tracking
    python -m pipelines.tune --no-mlflow --verbose

    # JSON-lines logs on stdout and in reports/logs/tune.jsonl
    python -m pipelines.tune --json-logs
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
import warnings
from pathlib import Path
from typing import Any

import joblib
import pandas as pd

warnings.filterwarnings('ignore', category=FutureWarning, module='sklearn')

# Add project root to path for module imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.config import (
    TUNING_ARTIFACTS, FIGURES_DIR, CV_FOLDS, GRID_SIZE, N_JOBS, RANDOM_STATE,
    SELECTION_METRIC, LOGGER_NAME, configure_cli_logging, ensure_directories, log_pipeline_step,
    log_execution_time, log_metric,
)
from src.data import (
    load_credit_data, split_features_target, initial_split, vfold_cv, class_counts, prep_and_juice,
)
from src.evaluation import collect_metrics
from src.models import build_workflow, finalize_workflow, tunable_parameters
from src.tuning_utils import (
    fit_resamples, grid_random, tune_grid, collect_tuning_metrics, show_best,
    select_best, last_fit, get_optuna_storage_url,
)
from src.mlflow_utils import setup_mlflow, log_tuning_run, log_final_model
from src.visualization import plot_tuning_results, plot_roc_curve, plot_confusion_matrix

logger = logging.getLogger(LOGGER_NAME)


def _safe_json_write(data: dict[str, Any], path: Path) -> None:
    """
    Write JSON with atomic write pattern and error handling.

    Uses a temporary file and atomic replace to prevent partial writes.

    Raises:
        RuntimeError: If write fails after cleanup
    """
    temp_path = path.with_name(f".{path.name}.tmp")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
        temp_path.replace(path)
        logger.debug(f"Wrote {path}")

    except (IOError, OSError, TypeError) as e:
        try:
            if temp_path.exists():
                temp_path.unlink()
        except OSError:
            logger.warning(f"Could not clean up temp file: {temp_path}")

        logger.error(f"Failed to write {path}: {type(e).__name__}: {e}")
        raise RuntimeError(f"Failed to write JSON to {path}: {e}") from e


def _save_artifacts(
    baseline_folds: pd.DataFrame,
    grid: pd.DataFrame,
    tuning_metrics: pd.DataFrame,
    best_table: pd.DataFrame,
    final: Any,
    best_params: dict[str, Any],
    baseline_summary: pd.DataFrame,
) -> None:
    """Persist tables, the fitted workflow and its metadata."""
    baseline_folds.to_csv(TUNING_ARTIFACTS['baseline_folds'], index=False)
    grid.to_csv(TUNING_ARTIFACTS['grid'], index=False)
    tuning_metrics.to_csv(TUNING_ARTIFACTS['grid_metrics'], index=False)
    best_table.to_csv(TUNING_ARTIFACTS['show_best'], index=False)
    final.predictions.to_csv(TUNING_ARTIFACTS['test_predictions'], index=False)

    try:
        joblib.dump(final.workflow, TUNING_ARTIFACTS['model'])
        logger.debug(f"Saved workflow: {TUNING_ARTIFACTS['model']}")
    except Exception as e:
        logger.error(f"Failed to save workflow: {e}")
        raise

    metadata = {
        'best_params': best_params,
        'baseline_cv': {
            row['.metric']: float(row['mean']) for _, row in baseline_summary.iterrows()
        },
        'test_metrics': {k: float(v) for k, v in final.metrics.items()},
        'timestamp': pd.Timestamp.now().isoformat(),
    }
    _safe_json_write(metadata, TUNING_ARTIFACTS['metrics'])


def run_tuning(
    source: str | None = None,
    refresh: bool = False,
    grid_size: int = GRID_SIZE,
    folds: int = CV_FOLDS,
    n_jobs: int = N_JOBS,
    storage: bool = False,
    use_mlflow: bool = True,
    save: bool = True,
) -> dict[str, Any]:
    """
    Run the complete tuning workflow.

    Args:
        source: CSV path or URL (default: remote dataset, cached locally)
        refresh: Re-download the dataset
        grid_size: Number of random grid candidates
        folds: Cross-validation folds
        n_jobs: Parallel workers for fold fitting
        storage: Persist the Optuna study to SQLite
        use_mlflow: Log runs to MLflow
        save: Write tables, figures and the fitted workflow to disk

    Returns:
        Dict with best_params, baseline and test metrics, and n_failed
    """
    start = time.time()
    log_pipeline_step(logger, "tune", "started")

    df = load_credit_data(source, refresh=refresh)
    X, y = split_features_target(df)
    logger.info("Class counts: " + ", ".join(
        f"{row['status']}={row['n']}" for _, row in class_counts(y).iterrows()))

    X_train, X_test, y_train, y_test = initial_split(X, y)
    _, y_juiced = prep_and_juice(X_train, y_train)
    logger.info("Class counts after downsampling: " + ", ".join(
        f"{row['status']}={row['n']}" for _, row in class_counts(y_juiced).iterrows()))
    cv = vfold_cv(n_splits=folds, random_state=RANDOM_STATE)

    with log_execution_time(logger, "baseline_resamples") as step_metrics:
        baseline_folds = fit_resamples(build_workflow(), X_train, y_train, cv, n_jobs=n_jobs)
        baseline_summary = collect_metrics(baseline_folds)
        step_metrics['n_folds'] = folds

    grid = grid_random(size=grid_size, seed=RANDOM_STATE)
    storage_url = get_optuna_storage_url() if storage else None

    with log_execution_time(logger, "grid_search") as step_metrics:
        results = tune_grid(X_train, y_train, cv, grid, n_jobs=n_jobs, storage=storage_url)
        step_metrics['n_candidates'] = len(grid)
        step_metrics['n_failed'] = len(results.failures)

    tuning_metrics = collect_tuning_metrics(results)
    best_table = show_best(results, metric=SELECTION_METRIC)
    logger.info(f"Top candidates by {SELECTION_METRIC}:\n{best_table.to_string(index=False)}")

    best_params = select_best(results, metric=SELECTION_METRIC)
    workflow = finalize_workflow(build_workflow(), best_params)
    final = last_fit(workflow, X_train, y_train, X_test, y_test)

    for _, row in baseline_summary.iterrows():
        log_metric(logger, f"baseline_cv_{row['.metric']}", float(row['mean']),
                   context={'std_err': float(row['std_err'])})
    for name, value in final.metrics.items():
        log_metric(logger, f"test_{name}", float(value), context={'config': best_params['.config']})

    if save:
        ensure_directories()
        _save_artifacts(baseline_folds, grid, tuning_metrics, best_table,
                        final, best_params, baseline_summary)
        plot_tuning_results(tuning_metrics, tunable_parameters(),
                            save_path=FIGURES_DIR / 'tuning_results.png')
        plot_roc_curve(y_test, final.predictions['.pred_bad'], model_name='Decision Tree',
                       save_path=FIGURES_DIR / 'test_roc_curve.png')
        plot_confusion_matrix(y_test, (final.predictions['.pred_class'] == 'bad').astype(int),
                              model_name='Decision Tree',
                              save_path=FIGURES_DIR / 'test_confusion_matrix.png')

    if use_mlflow:
        # Initialize MLflow before the first run; concurrent processes may race on the DB.
        setup_mlflow()
        log_tuning_run("credit_tree_grid", tuning_metrics, best_params,
                       n_failed=len(results.failures))
        log_final_model("credit_tree_last_fit", final.workflow, best_params, final.metrics)

    elapsed = time.time() - start
    log_pipeline_step(logger, "tune", "completed", duration_ms=elapsed * 1000,
                      metrics={k: round(v, 4) for k, v in final.metrics.items()})

    return {
        'best_params': best_params,
        'baseline_metrics': {
            row['.metric']: float(row['mean']) for _, row in baseline_summary.iterrows()
        },
        'test_metrics': final.metrics,
        'n_failed': len(results.failures),
        'elapsed_minutes': elapsed / 60,
    }


def main() -> None:
    """CLI entrypoint for decision tree tuning."""
    parser = argparse.ArgumentParser(
        description='Credit decision tree tuning with random grid search',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m pipelines.tune
  python -m pipelines.tune --grid-size=20 --folds=5 --storage
  python -m pipelines.tune --data=credit_small.csv --no-mlflow
  python -m pipelines.tune --json-logs
        """
    )
    parser.add_argument('--grid-size', type=int, default=GRID_SIZE, help='Random grid candidates')
    parser.add_argument('--folds', type=int, default=CV_FOLDS, help='Cross-validation folds')
    parser.add_argument('--n-jobs', type=int, default=N_JOBS, help='Parallel fold workers')
    parser.add_argument('--data', type=str, default=None, help='CSV path or URL (default: remote dataset)')
    parser.add_argument('--refresh', action='store_true', help='Re-download the dataset')
    parser.add_argument('--storage', action='store_true',
                        help='Persist the Optuna study to SQLite (replaces a previous study)')
    parser.add_argument('--no-mlflow', action='store_true', help='Disable MLflow tracking')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--json-logs', action='store_true', help='JSON-lines logs (stdout and reports/logs)')
    args = parser.parse_args()

    if args.grid_size < 1:
        parser.error("--grid-size must be >= 1")
    if args.folds < 2:
        parser.error("--folds must be >= 2")

    configure_cli_logging(args.verbose, args.json_logs, run_name='tune')

    result = run_tuning(
        source=args.data,
        refresh=args.refresh,
        grid_size=args.grid_size,
        folds=args.folds,
        n_jobs=args.n_jobs,
        storage=args.storage,
        use_mlflow=not args.no_mlflow,
    )

    test = result['test_metrics']
    logger.info(
        f"Best: {result['best_params']['.config']} -> "
        f"test roc_auc={test['roc_auc']:.4f}, accuracy={test['accuracy']:.4f}, "
        f"brier_class={test['brier_class']:.4f} ({result['elapsed_minutes']:.1f}min)"
    )


if __name__ == '__main__':
    main()
