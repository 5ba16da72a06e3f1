#!/usr/bin/env python
"""
Dollar Store Cleaning Pipeline

Reads the raw dollar-store product table, converts text columns to numbers
and dates, splits compound columns, and writes the tidy table to
data/processed.

Usage:
    python -m pipelines.clean
    python -m pipelines.clean --data=dollar_store.csv --verbose
    python -m pipelines.clean --json-logs
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import pandas as pd

# Add project root to path for module imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.config import (
    DOLLAR_STORE_CLEAN_PATH, LOGGER_NAME, configure_cli_logging, ensure_directories,
    log_execution_time, log_metric,
)
from src.data import load_dollar_store_data, clean_dollar_store

logger = logging.getLogger(LOGGER_NAME)

# Columns whose missing values are worth reporting after cleaning
_REPORT_COLUMNS = (
    'price', 'star_rating', 'review_count', 'stock_count', 'unit_size',
    'brand', 'product', 'sold_dt', 'date_added_c',
)


def run_cleaning(
    source: str | None = None,
    refresh: bool = False,
    output_path: Path | None = DOLLAR_STORE_CLEAN_PATH
) -> pd.DataFrame:
    """
    Load, clean and (optionally) save the dollar-store table.

    Args:
        source: CSV path or URL (default: remote dataset, cached locally)
        refresh: Re-download the dataset
        output_path: Where to write the cleaned CSV (None to skip writing)

    Returns:
        Cleaned DataFrame
    """
    with log_execution_time(logger, "clean_dollar_store") as step_metrics:
        raw = load_dollar_store_data(source, refresh=refresh)
        clean = clean_dollar_store(raw)
        step_metrics['rows'] = len(clean)

    for col in _REPORT_COLUMNS:
        if col in clean.columns:
            n_missing = int(clean[col].isna().sum())
            if n_missing:
                log_metric(logger, f"missing_{col}", n_missing)

    if output_path is not None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        clean.to_csv(output_path, index=False)
        logger.info(f"Saved cleaned data: {output_path}")

    return clean


def main() -> None:
    """CLI entrypoint for dollar-store cleaning."""
    parser = argparse.ArgumentParser(description='Clean the dollar-store product table')
    parser.add_argument('--data', type=str, default=None, help='CSV path or URL (default: remote dataset)')
    parser.add_argument('--refresh', action='store_true', help='Re-download the dataset')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--json-logs', action='store_true', help='JSON-lines logs (stdout and reports/logs)')
    args = parser.parse_args()

    configure_cli_logging(args.verbose, args.json_logs, run_name='clean')
    ensure_directories()

    run_cleaning(source=args.data, refresh=args.refresh)


if __name__ == '__main__':
    main()
