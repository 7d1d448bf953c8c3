from __future__ import annotations

import numpy as np
import pandas as pd

from bike_injury.errors import IntegrityError


def summarize_missingness(df: pd.DataFrame) -> pd.DataFrame:
    """Return per-column missingness summary in stable column order."""

    n = len(df)
    rows = []
    for col in df.columns.astype(str).tolist():
        n_missing = int(df[col].isna().sum())
        missing_rate = n_missing / n if n else np.nan
        rows.append({"column": col, "n": n, "n_missing": n_missing, "missing_rate": missing_rate})
    return pd.DataFrame(rows, columns=["column", "n", "n_missing", "missing_rate"])


def sparse_columns(df: pd.DataFrame, threshold: float) -> list[str]:
    if len(df) == 0:
        raise IntegrityError("Cannot compute missingness on an empty table; no records survived selection.")
    summary = summarize_missingness(df)
    return summary.loc[summary["missing_rate"] >= threshold, "column"].tolist()


def drop_sparse_columns(df: pd.DataFrame, threshold: float) -> pd.DataFrame:
    """Drop every column whose missing fraction is at least `threshold`.

    Fractions are taken over the rows of `df` as given, so this must run after
    row filtering. No values are imputed here.
    """

    return df.drop(columns=sparse_columns(df, threshold))
