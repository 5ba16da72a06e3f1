"""
Configuration constants for the credit-risk tuning and retail cleaning project
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Generator


# Random seed for reproducibility
RANDOM_STATE = 42

# =============================================================================
# DATA SOURCES
# =============================================================================
CREDIT_DATA_URL = os.environ.get(
    'CREDIT_DATA_URL',
    'https://www.dropbox.com/scl/fi/vykejw5ud9ejjvcc442gd/credit_small.csv'
    '?rlkey=zuyurxikxickgdjchh6681j91&dl=1'
)
DOLLAR_STORE_URL = os.environ.get(
    'DOLLAR_STORE_URL',
    'https://www.dropbox.com/scl/fi/ug8tbxsdd2qtsfqwnnox1/dollar_store.csv'
    '?rlkey=fu36g6uhfpx8u644d1rpsq11i&dl=1'
)

# =============================================================================
# CREDIT MODEL SETTINGS
# =============================================================================
TARGET_COLUMN = 'status'

# Event class for ROC AUC and the label encoded as 1
POSITIVE_CLASS = 'bad'
NEGATIVE_CLASS = 'good'

# Skewed monetary predictors that get log(x + LOG_OFFSET)
LOG_COLUMNS = ('assets', 'debt', 'income', 'price', 'expenses')
LOG_OFFSET = 1

# Share of rows kept for training in the initial split
TRAIN_PROP = 0.75

# Stratified cross-validation folds
CV_FOLDS = 10

# Number of candidates in the random tuning grid
GRID_SIZE = 10

# Worker processes for fold-level parallelism (joblib)
N_JOBS = int(os.environ.get('CREDIT_N_JOBS', 7))

# Downsampling ratio used by the untuned baseline workflow
DEFAULT_UNDER_RATIO = 1.0

# Metrics computed for every resample; the first one ranks candidates
CLASSIFICATION_METRICS = ('roc_auc', 'accuracy', 'brier_class')
SELECTION_METRIC = 'roc_auc'

# Metrics where lower is better
MINIMIZE_METRICS = frozenset({'brier_class'})

# Default number of rows reported by show_best()
SHOW_BEST_N = 5

# Libraries to suppress verbose logging
_SUPPRESS_LIBRARIES = (
    ('mlflow', logging.WARNING),
    ('alembic', logging.WARNING),
    ('optuna', logging.WARNING),
    ('matplotlib', logging.WARNING),
)

LOGGER_NAME = 'analytics'


def _apply_log_suppression() -> None:
    """Apply log level suppression to noisy libraries."""
    for lib_name, level in _SUPPRESS_LIBRARIES:
        logging.getLogger(lib_name).setLevel(level)


def setup_logging(level: int = logging.INFO, force: bool = False) -> logging.Logger:
    """
    Configure project logging with proper handler management.

    Unlike logging.basicConfig(), repeated calls do not stack handlers;
    pass force=True to replace the existing ones.

    Args:
        level: Logging level (default: INFO)
        force: If True, remove existing handlers before adding new ones.

    Returns:
        Configured 'analytics' logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)

    if force or not logger.handlers:
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)

        logger.setLevel(level)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter('[%(levelname)s] %(message)s'))
        logger.addHandler(console_handler)

        # Prevent propagation to root logger (avoids duplicate messages)
        logger.propagate = False

    _apply_log_suppression()
    return logger


# =============================================================================
# STRUCTURED LOGGING (one JSON object per line, enabled with --json-logs)
# =============================================================================

# Extra LogRecord attributes copied into the JSON output
_STRUCTURED_FIELDS = ('duration_ms', 'metrics', 'context')


@dataclass
class LogRecord:
    """Structured log record for JSON serialization."""
    timestamp: str
    level: str
    message: str
    logger: str = LOGGER_NAME
    module: str | None = None
    function: str | None = None
    line: int | None = None
    duration_ms: float | None = None
    metrics: dict[str, Any] = field(default_factory=dict)
    context: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize to JSON, leaving out unset fields and empty dicts."""
        payload = {
            key: value for key, value in asdict(self).items()
            if value is not None and value != {}
        }
        # numpy scalars and Timestamps fall back to str
        return json.dumps(payload, default=str)


class JSONFormatter(logging.Formatter):
    """Render records as LogRecord JSON lines (UTC timestamps)."""

    def format(self, record: logging.LogRecord) -> str:
        structured = {
            name: getattr(record, name)
            for name in _STRUCTURED_FIELDS
            if getattr(record, name, None) is not None
        }
        return LogRecord(
            timestamp=datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%fZ'),
            level=record.levelname,
            message=record.getMessage(),
            logger=record.name,
            module=record.module,
            function=record.funcName,
            line=record.lineno,
            **structured,
        ).to_json()


def setup_json_logging(
    level: int = logging.INFO,
    log_file: Path | None = None,
    console: bool = True
) -> logging.Logger:
    """
    Replace the project log handlers with JSON-line handlers.

    Args:
        level: Logging level (default: INFO)
        log_file: Optional JSON-lines file, parent directories are created
        console: Also write JSON lines to stdout

    Returns:
        Configured 'analytics' logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(level)
    logger.propagate = False

    handlers: list[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    for handler in handlers:
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)

    _apply_log_suppression()
    return logger


def configure_cli_logging(verbose: bool, json_logs: bool, run_name: str) -> logging.Logger:
    """
    Logging for a pipeline entry point.

    Plain console output by default. With json_logs, JSON lines go to
    stdout and to LOGS_DIR/<run_name>.jsonl.
    """
    level = logging.DEBUG if verbose else logging.INFO
    if json_logs:
        return setup_json_logging(level, log_file=LOGS_DIR / f"{run_name}.jsonl")
    return setup_logging(level)


def _emit(
    logger: logging.Logger,
    level: int,
    msg: str,
    duration_ms: float | None = None,
    metrics: dict[str, Any] | None = None,
    context: dict[str, Any] | None = None,
) -> None:
    if not logger.isEnabledFor(level):
        return
    logger.log(
        level, msg,
        extra={'duration_ms': duration_ms, 'metrics': metrics or {}, 'context': context or {}},
        stacklevel=3,
    )


@contextmanager
def log_execution_time(
    logger: logging.Logger,
    operation: str,
    level: int = logging.INFO,
    extra_context: dict[str, Any] | None = None
) -> Generator[dict[str, Any], None, None]:
    """
    Time a block and log one '<operation> completed' record.

    Yields a dict the caller can fill with metrics; it is attached to the
    record, which is emitted even if the block raises.

    Example:
        with log_execution_time(logger, "grid_search") as metrics:
            results = tune_grid(X, y, cv, grid)
            metrics["n_candidates"] = len(grid)
    """
    metrics: dict[str, Any] = {}
    start_time = time.perf_counter()

    try:
        yield metrics
    finally:
        _emit(
            logger, level, f"{operation} completed",
            duration_ms=(time.perf_counter() - start_time) * 1000,
            metrics=metrics,
            context={"operation": operation, **(extra_context or {})},
        )


def log_metric(
    logger: logging.Logger,
    metric_name: str,
    value: float,
    step: int | None = None,
    context: dict[str, Any] | None = None,
    level: int = logging.INFO
) -> None:
    """Log one named value, e.g. a test-set metric or a missing-value count."""
    metrics: dict[str, Any] = {metric_name: value}
    if step is not None:
        metrics["step"] = step
    _emit(logger, level, f"{metric_name}={value}", metrics=metrics, context=context)


def log_pipeline_step(
    logger: logging.Logger,
    step_name: str,
    status: str,
    duration_ms: float | None = None,
    metrics: dict[str, Any] | None = None,
    level: int = logging.INFO
) -> None:
    """Log a pipeline status change ('started', 'completed', 'failed')."""
    _emit(
        logger, level, f"pipeline:{step_name}:{status}",
        duration_ms=duration_ms,
        metrics=metrics,
        context={"step": step_name, "status": status},
    )


# =============================================================================
# PROJECT PATHS
# =============================================================================
# ANALYTICS_PROJECT_ROOT relocates all artifacts (containers, CI)
PROJECT_ROOT = Path(os.environ.get('ANALYTICS_PROJECT_ROOT', Path(__file__).parent.parent))
DATA_DIR = PROJECT_ROOT / "data" / "processed"
RAW_DATA_DIR = PROJECT_ROOT / "data" / "raw"
MODELS_DIR = PROJECT_ROOT / "models"
REPORTS_DIR = PROJECT_ROOT / "reports"
FIGURES_DIR = REPORTS_DIR / "figures"
LOGS_DIR = REPORTS_DIR / "logs"

# NOTE: Directories are NOT created at import time.
# Call ensure_directories() explicitly in main entry points.


def ensure_directories(create: bool = True) -> dict[str, Path]:
    """
    Ensure required project directories exist and are accessible.

    Args:
        create: If True, create missing directories. If False, only validate.

    Returns:
        Dict mapping directory names to Path objects.

    Raises:
        RuntimeError: If directory creation fails (permissions, disk full, etc.)
    """
    directories = {
        'data': DATA_DIR,
        'raw_data': RAW_DATA_DIR,
        'models': MODELS_DIR,
        'reports': REPORTS_DIR,
        'figures': FIGURES_DIR,
        'logs': LOGS_DIR,
    }

    if not create:
        return directories

    for name, path in directories.items():
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RuntimeError(
                f"Cannot create {name} directory at {path}: {e}"
            ) from e

    return directories


def compute_class_counts(y: Any) -> dict[Any, int]:
    """
    Count labels per class.

    Args:
        y: Label array or Series

    Returns:
        Dict mapping class label to number of rows, sorted by label
    """
    import numpy as np
    labels, counts = np.unique(np.asarray(y), return_counts=True)
    return {label.item() if hasattr(label, 'item') else label: int(count)
            for label, count in zip(labels, counts)}


# Raw and processed file names
RAW_FILES = MappingProxyType({
    'credit': RAW_DATA_DIR / 'credit_small.csv',
    'dollar_store': RAW_DATA_DIR / 'dollar_store.csv',
})

DOLLAR_STORE_CLEAN_PATH = DATA_DIR / 'dollar_store_clean.csv'

# Tuning artifact paths
TUNING_ARTIFACTS = MappingProxyType({
    'model': MODELS_DIR / 'credit_tree_workflow.pkl',
    'metrics': MODELS_DIR / 'credit_tree_metrics.json',
    'baseline_folds': REPORTS_DIR / 'baseline_fold_metrics.csv',
    'grid': REPORTS_DIR / 'tuning_grid.csv',
    'grid_metrics': REPORTS_DIR / 'tuning_metrics.csv',
    'show_best': REPORTS_DIR / 'tuning_best.csv',
    'test_predictions': REPORTS_DIR / 'test_predictions.csv',
})

# Visualization configuration (immutable)
VIZ_CONFIG = MappingProxyType({
    'dpi': 150,
    'title_fontsize': 14,
    'label_fontsize': 12,
    'primary': '#1428A0',
    'highlight': '#EA580C',
    'heatmap_cmap': 'Blues',
    'figsize_square': (6, 5),
})

# MLflow configuration
MLFLOW_EXPERIMENT_NAME = "credit-tree-tuning"

# Optuna study name for the tuning grid
OPTUNA_STUDY_NAME = "credit_tree_grid"

# Optional SQLite storage so a grid search can be inspected after the run
OPTUNA_STORAGE_PATH = PROJECT_ROOT / "optuna_studies.db"
