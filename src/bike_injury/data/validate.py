from typing import Iterable, Sequence

import pandas as pd

from bike_injury.config import NEGATIVE_CLASS, POSITIVE_CLASS, RAW_COLUMNS
from bike_injury.errors import IntegrityError, SchemaError


def assert_required_columns(df, required: Iterable[str]) -> None:
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise SchemaError(f"Missing required columns: {missing}")


def assert_expected_header(df: pd.DataFrame, expected: Sequence[str] = RAW_COLUMNS) -> None:
    observed = df.columns.astype(str).tolist()
    missing = [c for c in expected if c not in observed]
    unexpected = [c for c in observed if c not in expected]
    if missing or unexpected:
        raise SchemaError(
            "Raw header does not match the expected schema. "
            f"Missing columns: {missing}; unexpected columns: {unexpected}."
        )


def assert_binary_outcome(y: pd.Series) -> None:
    if y.isna().any():
        raise IntegrityError(f"Outcome column {y.name} contains {int(y.isna().sum())} missing values.", column=y.name)
    vals = set(y.astype(str).unique().tolist())
    if not vals.issubset({POSITIVE_CLASS, NEGATIVE_CLASS}):
        raise IntegrityError(
            f"Outcome column {y.name} must be binary {{{POSITIVE_CLASS}, {NEGATIVE_CLASS}}}; "
            f"observed values: {sorted(vals)}",
            column=y.name,
        )
