from typing import Iterable

import pandas as pd

from bike_injury.config import DATE_COL, INVOLVEMENT_COL
from bike_injury.errors import SchemaError
from bike_injury.data.validate import assert_required_columns


def parse_incident_dates(series: pd.Series) -> pd.Series:
    """Parse incident timestamps to calendar dates (time of day discarded).

    Values with a UTC offset are converted to UTC; values without one are
    taken as written. The result is timezone-naive. Raises SchemaError if a
    non-missing value cannot be parsed.
    """

    parsed = pd.to_datetime(series, errors="coerce", format="mixed", utc=True)
    bad = series.loc[series.notna() & parsed.isna()]
    if len(bad) > 0:
        examples = sorted(map(str, bad.unique()))[:5]
        raise SchemaError(f"Unparseable values in {series.name}: {examples}", column=str(series.name))
    return parsed.dt.tz_convert(None).dt.normalize()


def filter_by_date(df: pd.DataFrame, cutoff: str, date_col: str = DATE_COL) -> pd.DataFrame:
    """Keep records dated strictly after `cutoff`; undated records are dropped."""

    assert_required_columns(df, [date_col])
    dates = parse_incident_dates(df[date_col])
    keep = dates > pd.Timestamp(cutoff)
    return df.loc[keep.fillna(False).to_numpy(dtype=bool)].reset_index(drop=True)


def drop_columns(df: pd.DataFrame, columns: Iterable[str]) -> pd.DataFrame:
    present = [c for c in columns if c in df.columns]
    return df.drop(columns=present)


def drop_witness_reports(
    df: pd.DataFrame,
    keep_missing_involvement: bool = True,
    involvement_col: str = INVOLVEMENT_COL,
) -> pd.DataFrame:
    """Drop reports filed by witnesses, then drop the involvement field.

    Only an explicit "No" marks a witness report. A missing answer is treated as
    personally involved unless keep_missing_involvement is False.
    """

    assert_required_columns(df, [involvement_col])
    involvement = df[involvement_col]
    keep = involvement.ne("No") & involvement.notna()
    if keep_missing_involvement:
        keep = keep | involvement.isna()
    out = df.loc[keep.to_numpy(dtype=bool)].drop(columns=[involvement_col])
    return out.reset_index(drop=True)
