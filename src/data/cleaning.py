"""
Cleaning utilities for the dollar-store product table.

Goals for every conversion:
- Don't lose information (units and raw text stay available)
- Missing where appropriate, but only where appropriate
"""

from __future__ import annotations

import logging
import re
import unicodedata
from typing import Literal, Sequence

import numpy as np
import pandas as pd

from ..config import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

TooMany = Literal['error', 'drop', 'merge']
TooFew = Literal['error', 'align_start', 'align_end']

# First number in a string; grouping commas are removed beforehand
_NUMBER_PATTERN = r'(-?(?:\d+(?:\.\d*)?|\.\d+))'
_GROUPING_COMMA = r'(?<=\d),(?=\d{3}(?:\D|$))'

# Text meaning "none of it" for count-like columns
REVIEW_ZERO_PATTERN = r'^\s*(?:no|none|zero)\b'
STOCK_ZERO_PATTERN = r'out\s+of\s+stock|sold\s+out|unavailable'
IN_STOCK_PATTERN = r'\bin\s+stock\b|\bavailable\b|\bleft\b'

PRODUCT_INFO_DELIM = ' - '


def _snake_case(name: object) -> str:
    text = unicodedata.normalize('NFKD', str(name)).encode('ascii', 'ignore').decode('ascii')
    text = text.replace('%', '_percent_').replace('#', '_number_')
    text = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', text)
    text = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', text)
    text = re.sub(r'[^0-9A-Za-z]+', '_', text).strip('_').lower()
    if not text:
        text = 'x'
    if text[0].isdigit():
        text = f'x{text}'
    return text


def clean_names(df: pd.DataFrame) -> pd.DataFrame:
    """
    Return a copy of df with snake_case, unique column names.

    'Product Info' -> 'product_info', 'firstSoldDay' -> 'first_sold_day',
    a repeated name gets '_2', '_3', ... suffixes.
    """
    seen: dict[str, int] = {}
    names = []
    for col in df.columns:
        base = _snake_case(col)
        seen[base] = seen.get(base, 0) + 1
        names.append(base if seen[base] == 1 else f"{base}_{seen[base]}")

    out = df.copy()
    out.columns = names
    return out


def parse_number(series: pd.Series, zero_pattern: str | None = None) -> pd.Series:
    """
    Extract the first number from each value.

    Text before and after the number is ignored, as are grouping commas:
    '$1,234.50' -> 1234.5, '4.5 out of 5 stars' -> 4.5.

    Args:
        series: Values to parse; numeric input passes through as float
        zero_pattern: Optional case-insensitive regex; matching values
                      without a number become 0 (e.g. 'No reviews')

    Returns:
        Float Series; unparsable or missing values are NaN
    """
    if pd.api.types.is_numeric_dtype(series) and not pd.api.types.is_bool_dtype(series):
        return series.astype(float)

    text = series.astype('string').str.replace(_GROUPING_COMMA, '', regex=True)
    extracted = text.str.extract(_NUMBER_PATTERN, expand=False)
    numbers = pd.Series(
        pd.to_numeric(extracted.to_numpy(dtype=object, na_value=np.nan), errors='coerce'),
        index=series.index,
        dtype=float,
    )

    if zero_pattern is not None:
        is_zero = text.str.contains(zero_pattern, case=False, regex=True).fillna(False).astype(bool)
        numbers = numbers.mask(is_zero & numbers.isna(), 0.0)

    n_failed = int((numbers.isna() & series.notna()).sum())
    if n_failed:
        logger.debug(f"  [parse_number] {series.name}: {n_failed} non-missing values without a number")
    return numbers.rename(series.name)


def parse_stock_status(series: pd.Series) -> pd.DataFrame:
    """
    Convert stock text into a quantity and an availability flag.

    'Out of stock' -> (0, False), 'Only 3 left' -> (3, True),
    'In stock' -> (NaN, True): available but the count is unknown.

    Returns:
        DataFrame with 'stock_count' (float) and 'in_stock' (nullable boolean)
    """
    count = parse_number(series, zero_pattern=STOCK_ZERO_PATTERN)

    text = series.astype('string')
    in_stock = pd.Series(pd.NA, index=series.index, dtype='boolean')
    in_stock = in_stock.mask(text.str.contains(IN_STOCK_PATTERN, case=False, regex=True).fillna(False).astype(bool), True)
    in_stock = in_stock.mask(count > 0, True)
    in_stock = in_stock.mask(count == 0, False)

    return pd.DataFrame({'stock_count': count, 'in_stock': in_stock}, index=series.index)


def split_unit_size(series: pd.Series) -> pd.DataFrame:
    """
    Split sizes like '12 oz' or '1.5L' into a number and a unit.

    The unit is the text after the first number. A value without a number
    keeps its text as the unit ('Each' -> NaN, 'each'). Text before the
    number ('Approx.', 'Pack of') only survives in the raw column.

    Returns:
        DataFrame with '<name>' (float), '<name>_unit' (lower-case string)
        and '<name>_raw' (the original text)
    """
    name = series.name or 'unit_size'
    value = parse_number(series)
    text = series.astype('string').str.replace(_GROUPING_COMMA, '', regex=True).str.strip()

    after_number = text.str.extract(_NUMBER_PATTERN + r'\s*(.*)$')[1]
    unit = after_number.where(value.notna(), text).str.strip().str.lower()
    unit = unit.mask((unit == '').fillna(False).astype(bool))

    return pd.DataFrame(
        {name: value, f'{name}_unit': unit, f'{name}_raw': series.astype('string')},
        index=series.index,
    )


def separate_wider_delim(
    df: pd.DataFrame,
    column: str,
    delim: str,
    names: Sequence[str],
    too_many: TooMany = 'error',
    too_few: TooFew = 'error',
) -> pd.DataFrame:
    """
    Split one string column into several, in place of the original column.

    Args:
        df: Input DataFrame (not modified)
        column: Column to split
        delim: Literal delimiter
        names: Output column names
        too_many: 'error', 'drop' extra pieces, or 'merge' them into the last column
        too_few: 'error', or pad with missing values at the end ('align_start')
                 or the start ('align_end')

    Returns:
        New DataFrame with `names` where `column` was

    Raises:
        KeyError: If column is absent
        ValueError: On a piece-count mismatch with too_many/too_few='error'
    """
    if column not in df.columns:
        raise KeyError(f"Column '{column}' not in DataFrame")
    if too_many not in ('error', 'drop', 'merge'):
        raise ValueError(f"Unknown too_many: '{too_many}'")
    if too_few not in ('error', 'align_start', 'align_end'):
        raise ValueError(f"Unknown too_few: '{too_few}'")

    n = len(names)
    rows: list[list[object]] = []
    too_many_rows: list[object] = []
    too_few_rows: list[object] = []

    for idx, value in df[column].items():
        if pd.isna(value):
            rows.append([np.nan] * n)
            continue

        maxsplit = n - 1 if too_many == 'merge' else -1
        pieces: list[object] = str(value).split(delim, maxsplit)

        if len(pieces) > n:
            if too_many == 'error':
                too_many_rows.append(idx)
                continue
            pieces = pieces[:n]
        elif len(pieces) < n:
            if too_few == 'error':
                too_few_rows.append(idx)
                continue
            padding = [np.nan] * (n - len(pieces))
            pieces = pieces + padding if too_few == 'align_start' else padding + pieces

        rows.append(pieces)

    if too_many_rows:
        raise ValueError(
            f"Expected {n} pieces in '{column}', got more in rows {too_many_rows[:10]}. "
            "Use too_many='drop' or too_many='merge'."
        )
    if too_few_rows:
        raise ValueError(
            f"Expected {n} pieces in '{column}', got fewer in rows {too_few_rows[:10]}. "
            "Use too_few='align_start' or too_few='align_end'."
        )

    split = pd.DataFrame(rows, columns=list(names), index=df.index, dtype=object)

    position = df.columns.get_loc(column)
    before = df.iloc[:, :position]
    after = df.iloc[:, position + 1:]
    return pd.concat([before, split, after], axis=1)


def _strip_label(series: pd.Series, label: str) -> pd.Series:
    text = series.astype('string').str.replace(label, '', n=1, regex=False).str.strip()
    return text.mask((text == '').fillna(False).astype(bool))


def split_product_info(df: pd.DataFrame, column: str = 'product_info') -> pd.DataFrame:
    """
    Create 'brand' and 'product' from 'Brand: X - Product: Y' text.

    Extra ' - ' separators stay inside the product name. A value holding
    only a 'Product:' part yields a missing brand rather than a brand
    named after the product.
    """
    out = separate_wider_delim(
        df, column, delim=PRODUCT_INFO_DELIM, names=('brand', 'product'),
        too_many='merge', too_few='align_start',
    )

    product_only = (
        out['brand'].astype('string').str.strip().str.startswith('Product:').fillna(False).astype(bool)
        & out['product'].isna()
    )
    out.loc[product_only, 'product'] = out.loc[product_only, 'brand']
    out.loc[product_only, 'brand'] = np.nan

    out['brand'] = _strip_label(out['brand'], 'Brand:')
    out['product'] = _strip_label(out['product'], 'Product:')
    return out


# Accepted layouts, tried in order; a value matching none of them is NaT
DAY_FIRST_FORMATS = ('%d/%m/%Y', '%d-%m-%Y', '%d.%m.%Y', '%d %b %Y', '%d %B %Y', '%d/%m/%y')
MONTH_FIRST_TIME_FORMATS = (
    '%m/%d/%Y %H:%M:%S', '%m-%d-%Y %H:%M:%S', '%m/%d/%y %H:%M:%S', '%b %d %Y %H:%M:%S',
)


def _to_datetime(values: pd.Series, formats: Sequence[str]) -> pd.Series:
    text = values.astype('string').str.strip()
    parsed = pd.to_datetime(text, format=formats[0], errors='coerce')
    for fmt in formats[1:]:
        remaining = parsed.isna() & text.notna()
        if not remaining.any():
            break
        parsed = parsed.fillna(pd.to_datetime(text.where(remaining), format=fmt, errors='coerce'))
    return parsed


def parse_dates(
    df: pd.DataFrame,
    added_column: str = 'date_added',
    sold_day_column: str = 'first_sold_day',
    sold_time_column: str = 'first_sold_time',
) -> pd.DataFrame:
    """
    Parse the listing and first-sale dates and measure shelf time.

    Adds:
        sold_dt: first sale timestamp (month-day-year day + H:M:S time)
        date_added_c: listing date (day-month-year)
        time_until_first_sale: whole days from listing to the first sale date

    Raw columns are kept. A missing day or time gives a missing sold_dt.
    """
    missing = [c for c in (added_column, sold_day_column, sold_time_column) if c not in df.columns]
    if missing:
        raise KeyError(f"Date columns not found: {missing}")

    out = df.copy()
    day = out[sold_day_column]
    clock = out[sold_time_column]
    combined = (
        day.astype(str).str.strip() + ' ' + clock.astype(str).str.strip()
    ).where(day.notna() & clock.notna())

    out['sold_dt'] = _to_datetime(combined, MONTH_FIRST_TIME_FORMATS)
    out['date_added_c'] = _to_datetime(out[added_column], DAY_FIRST_FORMATS)
    out['time_until_first_sale'] = (out['sold_dt'].dt.normalize() - out['date_added_c']).dt.days

    for parsed, raw in (('sold_dt', combined), ('date_added_c', out[added_column])):
        n_failed = int((out[parsed].isna() & raw.notna()).sum())
        if n_failed:
            logger.warning(f"  [dates] {parsed}: {n_failed} values could not be parsed")

    n_negative = int((out['time_until_first_sale'] < 0).sum())
    if n_negative:
        logger.warning(f"  [dates] {n_negative} products sold before they were added")

    return out


def clean_dollar_store(df: pd.DataFrame) -> pd.DataFrame:
    """
    Apply every cleaning step to the raw dollar-store table.

    Numeric conversions: price, star_rating, review_count, stock_status
    (-> stock_count, in_stock), unit_size (-> unit_size, unit_size_unit,
    unit_size_raw).
    Text: product_info -> brand, product. Dates: see parse_dates().

    Steps whose source columns are absent are skipped with a warning.
    The input frame is not modified.
    """
    out = clean_names(df)

    for col in ('price', 'star_rating'):
        if col in out.columns:
            out[col] = parse_number(out[col])

    if 'review_count' in out.columns:
        out['review_count'] = parse_number(out['review_count'], zero_pattern=REVIEW_ZERO_PATTERN)

    if 'stock_status' in out.columns:
        stock = parse_stock_status(out['stock_status'])
        out = pd.concat([out, stock], axis=1)

    if 'unit_size' in out.columns:
        sizes = split_unit_size(out['unit_size'])
        out['unit_size'] = sizes['unit_size']
        out['unit_size_unit'] = sizes['unit_size_unit']
        out['unit_size_raw'] = sizes['unit_size_raw']

    if 'product_info' in out.columns:
        out = split_product_info(out)
    else:
        logger.warning("product_info column missing, brand/product not created")

    date_columns = ('date_added', 'first_sold_day', 'first_sold_time')
    if all(c in out.columns for c in date_columns):
        out = parse_dates(out)
    else:
        logger.warning(f"Date columns incomplete, skipping date parsing: "
                       f"{[c for c in date_columns if c not in out.columns]}")

    logger.info(f"Cleaned dollar store data: {out.shape[0]} rows, {out.shape[1]} columns")
    return out
