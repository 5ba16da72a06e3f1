"""
Shared pytest fixtures for the credit tuning and dollar-store cleaning tests.

Provides small synthetic versions of both datasets so no test needs the network.
"""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from src.config import RANDOM_STATE


# =============================================================================
# BASIC ARRAY FIXTURES
# =============================================================================

@pytest.fixture
def y_binary_balanced() -> np.ndarray:
    """Balanced binary labels (3 each class)."""
    return np.array([0, 0, 0, 1, 1, 1])


@pytest.fixture
def y_binary_imbalanced() -> np.ndarray:
    """Imbalanced binary labels (~10% positive)."""
    np.random.seed(RANDOM_STATE)
    y = np.array([0] * 90 + [1] * 10)
    np.random.shuffle(y)
    return y


@pytest.fixture
def y_proba_perfect() -> np.ndarray:
    """Perfect probability predictions (for balanced labels)."""
    return np.array([0.1, 0.2, 0.3, 0.7, 0.8, 0.9])


@pytest.fixture
def y_single_class() -> np.ndarray:
    """Labels with only one class (all zeros)."""
    return np.array([0, 0, 0, 0, 0, 0])


# =============================================================================
# CREDIT DATA FIXTURES
# =============================================================================

def _make_credit_frame(n_samples: int = 240) -> pd.DataFrame:
    """Credit applicants with a learnable outcome, missing cells and nominal columns."""
    np.random.seed(RANDOM_STATE)

    records = np.random.choice(['no', 'yes'], n_samples, p=[0.8, 0.2])
    seniority = np.random.randint(0, 30, n_samples)
    income = np.random.gamma(4.0, 35.0, n_samples).round()
    expenses = np.random.randint(35, 120, n_samples).astype(float)
    assets = np.where(np.random.rand(n_samples) < 0.3, 0.0, np.random.gamma(2.0, 3000.0, n_samples).round())
    debt = np.where(np.random.rand(n_samples) < 0.8, 0.0, np.random.gamma(2.0, 500.0, n_samples).round())
    amount = np.random.randint(300, 2500, n_samples).astype(float)
    price = amount + np.random.randint(0, 1500, n_samples)

    risk = (
        -1.0
        + 2.0 * (records == 'yes')
        - 0.08 * seniority
        - 0.01 * (income - 140)
        + 0.0008 * (amount - 1000)
    )
    p_bad = 1 / (1 + np.exp(-risk))
    status = np.where(np.random.rand(n_samples) < p_bad, 'bad', 'good')
    # Both classes present whatever the draw
    status[:6] = ['bad', 'bad', 'bad', 'good', 'good', 'good']

    df = pd.DataFrame({
        'status': status,
        'seniority': seniority,
        'home': np.random.choice(['rent', 'owner', 'parents', 'other'], n_samples),
        'time': np.random.choice([12, 24, 36, 48, 60], n_samples),
        'age': np.random.randint(18, 70, n_samples),
        'marital': np.random.choice(['married', 'single', 'widow'], n_samples),
        'records': records,
        'job': np.random.choice(['fixed', 'freelance', 'partime', 'others'], n_samples),
        'expenses': expenses,
        'income': income,
        'assets': assets,
        'debt': debt,
        'amount': amount,
        'price': price.astype(float),
    })

    df.loc[np.random.rand(n_samples) < 0.08, 'income'] = np.nan
    df.loc[np.random.rand(n_samples) < 0.03, 'assets'] = np.nan
    df.loc[np.random.rand(n_samples) < 0.03, 'home'] = np.nan
    return df


@pytest.fixture
def credit_raw() -> pd.DataFrame:
    """Raw credit table as read from CSV (status still text)."""
    return _make_credit_frame()


@pytest.fixture
def credit_csv(tmp_path, credit_raw) -> Path:
    """Credit table written to a temporary CSV."""
    path = tmp_path / 'credit_small.csv'
    credit_raw.to_csv(path, index=False)
    return path


@pytest.fixture
def credit_df(credit_csv) -> pd.DataFrame:
    """Credit table loaded through load_credit_data()."""
    from src.data import load_credit_data
    return load_credit_data(str(credit_csv))


@pytest.fixture
def credit_Xy(credit_df) -> tuple[pd.DataFrame, pd.Series]:
    """Predictors and encoded outcome (1 = bad)."""
    from src.data import split_features_target
    return split_features_target(credit_df)


# =============================================================================
# DOLLAR STORE FIXTURES
# =============================================================================

@pytest.fixture
def dollar_store_raw() -> pd.DataFrame:
    """Raw dollar-store rows covering the messy formats seen in the real table."""
    return pd.DataFrame({
        'Product Info': [
            'Brand: Acme - Product: Paper Towels',
            'Brand: Zest - Product: Soap - Lavender',
            'Product: Mystery Item',
            np.nan,
            'Brand: Dot - Product: Gum',
        ],
        'Price': ['$1.25', '$1,234.50', '1', np.nan, 'free'],
        'Star Rating': ['4.5 out of 5 stars', '3', np.nan, '5.0', 'Not rated'],
        'Review Count': ['1,024 reviews', 'No reviews', '12', np.nan, '3 reviews'],
        'Stock Status': ['In stock', 'Out of stock', 'Only 3 left', np.nan, '10 in stock'],
        'Unit Size': ['12 oz', '1.5L', '6 ct', np.nan, '100'],
        'Date Added': ['15/03/2023', '01/02/2023', '31/12/2022', np.nan, 'not a date'],
        'First Sold Day': ['03/20/2023', '02/05/2023', '01/10/2023', '04/01/2023', np.nan],
        'First Sold Time': ['14:05:00', '09:00:00', '23:59:59', np.nan, '10:00:00'],
    })


@pytest.fixture
def dollar_store_csv(tmp_path, dollar_store_raw) -> Path:
    """Dollar-store table written to a temporary CSV."""
    path = tmp_path / 'dollar_store.csv'
    dollar_store_raw.to_csv(path, index=False)
    return path
