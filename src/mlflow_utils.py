"""
MLflow experiment tracking utilities for the credit tree tuning runs
"""

from __future__ import annotations

import logging
import time
from typing import Any

import mlflow
import mlflow.sklearn
import pandas as pd
from sklearn.base import BaseEstimator
from sqlalchemy.exc import OperationalError, DatabaseError

from .config import MLFLOW_EXPERIMENT_NAME, CLASSIFICATION_METRICS, LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

# SQLAlchemy exceptions that indicate database contention (safe to retry)
_RETRYABLE_EXCEPTIONS = (OperationalError, DatabaseError)


def setup_mlflow(max_retries: int = 3, experiment_name: str = MLFLOW_EXPERIMENT_NAME) -> None:
    """
    Initialize MLflow experiment tracking with retry for parallel workers.

    MLflow defaults to sqlite:///mlflow.db when no mlruns/ directory exists.
    Parallel processes can race to create the schema, so we retry on failure.

    Args:
        max_retries: Number of retry attempts for initialization
        experiment_name: Experiment to create or reuse

    Raises:
        RuntimeError: If initialization fails after all retries
    """
    last_exception: Exception | None = None

    for attempt in range(max_retries):
        try:
            mlflow.set_experiment(experiment_name)
            mlflow.sklearn.autolog(disable=True)
            logger.debug(f"MLflow experiment: {experiment_name}")
            return
        except _RETRYABLE_EXCEPTIONS as e:
            last_exception = e
            logger.debug(f"MLflow setup attempt {attempt + 1}/{max_retries} failed ({type(e).__name__}): {e}")
            if attempt < max_retries - 1:
                time.sleep(1 * (attempt + 1))
        except Exception as e:
            logger.exception(f"MLflow setup failed with non-retryable error: {type(e).__name__}")
            raise RuntimeError(f"MLflow setup failed: {e}") from e

    raise RuntimeError(f"MLflow setup failed after {max_retries} attempts: {last_exception}") from last_exception


def log_tuning_run(
    run_name: str,
    summary: pd.DataFrame,
    best_params: dict[str, Any],
    n_failed: int = 0
) -> None:
    """
    Log a grid search to MLflow: one parent run, one nested run per candidate.

    Args:
        run_name: Name of the parent run
        summary: collect_tuning_metrics() output (.config, params, .metric, mean, n, std_err)
        best_params: select_best() output
        n_failed: Number of candidates that failed to fit
    """
    required = {'.config', '.metric', 'mean'}
    if not required.issubset(summary.columns):
        raise ValueError(f"summary missing required columns: {required - set(summary.columns)}")

    param_columns = [c for c in summary.columns if c not in {'.config', '.metric', 'mean', 'n', 'std_err'}]

    with mlflow.start_run(run_name=run_name):
        mlflow.log_param("n_candidates", summary['.config'].nunique() + n_failed)
        mlflow.log_param("n_failed", n_failed)
        for key, value in best_params.items():
            mlflow.log_param(f"best_{key.lstrip('.')}", value)

        for config, rows in summary.groupby('.config', sort=False):
            with mlflow.start_run(run_name=str(config), nested=True):
                for name in param_columns:
                    mlflow.log_param(name, rows[name].iloc[0])
                for _, row in rows.iterrows():
                    mlflow.log_metric(f"cv_{row['.metric']}", float(row['mean']))
                    if 'std_err' in row and pd.notna(row['std_err']):
                        mlflow.log_metric(f"cv_{row['.metric']}_std_err", float(row['std_err']))

        mlflow.set_tag("stage", "tuning")


def log_final_model(
    run_name: str,
    workflow: BaseEstimator,
    params: dict[str, Any],
    test_metrics: dict[str, float]
) -> None:
    """
    Log the finalized workflow and its test-set metrics.

    Args:
        run_name: Unique name for this run
        workflow: Workflow fitted on the full training split
        params: Tuned parameters the workflow was finalized with
        test_metrics: compute_metrics() output on the test split
    """
    missing = set(CLASSIFICATION_METRICS) - test_metrics.keys()
    if missing:
        raise ValueError(f"test_metrics missing required keys: {missing}")

    with mlflow.start_run(run_name=run_name):
        for key, value in params.items():
            mlflow.log_param(key.lstrip('.'), value)

        for metric in CLASSIFICATION_METRICS:
            mlflow.log_metric(f"test_{metric}", test_metrics[metric])

        mlflow.sklearn.log_model(workflow, name="model")
        mlflow.set_tag("model_type", "DecisionTree")
        mlflow.set_tag("stage", "last_fit")
