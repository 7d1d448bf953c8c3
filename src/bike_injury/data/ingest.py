import csv
from pathlib import Path
from typing import Optional

import pandas as pd

from bike_injury.config import RAW_NA_VALUES
from bike_injury.errors import DatasetIOError


def _check_field_counts(path: Path, nrows: Optional[int] = None) -> None:
    # pandas pads short rows with NaN; a ragged file is treated as malformed instead.
    with path.open("r", encoding="utf-8", newline="") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        if header is None:
            raise DatasetIOError(f"Input file is empty: {path}", stage="load")
        for record_no, row in enumerate(reader, start=1):
            if nrows is not None and record_no > nrows:
                break
            if not row:
                continue
            if len(row) != len(header):
                raise DatasetIOError(
                    f"Malformed record {record_no} in {path}: expected {len(header)} fields, saw {len(row)}.",
                    stage="load",
                )


def load_incidents(path: Path, nrows: Optional[int] = None) -> pd.DataFrame:
    """Read the raw incident export; every column is kept as text."""

    path = Path(path)
    try:
        _check_field_counts(path, nrows=nrows)
        return pd.read_csv(
            path,
            dtype=str,
            keep_default_na=False,
            na_values=RAW_NA_VALUES,
            nrows=nrows,
            encoding="utf-8",
        )
    except DatasetIOError:
        raise
    except (OSError, UnicodeDecodeError, csv.Error, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise DatasetIOError(f"Could not read {path}: {exc}", stage="load") from exc
