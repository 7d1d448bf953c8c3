from __future__ import annotations

from typing import Iterable, Mapping, Optional

import numpy as np
import pandas as pd

from bike_injury.config import (
    INCIDENT_WITH_LEVELS,
    INCIDENT_WITH_OTHER,
    INJURY_LEVELS,
    SENTINEL_VALUES,
    SEX_LEVELS,
    SEX_OTHER,
)
from bike_injury.errors import MappingError


def coerce_categorical(series: pd.Series) -> pd.Series:
    """Convert a Series to pandas categorical dtype.

    Levels are the observed non-missing values in first-encountered order.
    Missing values (None, NaN, pd.NA) become NaN.
    """

    s = series.astype(object).where(series.notna(), np.nan)
    levels = pd.unique(s.dropna())
    return pd.Series(pd.Categorical(s, categories=levels), index=series.index, name=series.name)


def collapse_levels(
    series: pd.Series,
    groups: Mapping[str, Iterable[str]],
    *,
    other_level: Optional[str] = None,
    passthrough: Iterable[str] = (),
    strict: bool = False,
) -> pd.Series:
    """Collapse source levels into named groups.

    - values listed under a group map to the group name
    - values in `passthrough` are kept unchanged (they never fall into other_level)
    - any other non-missing value maps to `other_level` when given; otherwise it
      is kept unchanged, or raises MappingError when strict=True
    - missing stays missing

    Matching is exact (case and whitespace sensitive).
    """

    lookup = {}
    for new_level, source_levels in groups.items():
        for source in source_levels:
            lookup[source] = new_level

    values = series.astype(object).where(series.notna(), np.nan)
    mapped = values.map(lookup).astype(object)

    unmapped = values.notna() & mapped.isna()
    kept = unmapped & values.isin(list(passthrough))
    leftover = unmapped & ~kept

    if leftover.any():
        if other_level is not None:
            mapped.loc[leftover] = other_level
        elif strict:
            unexpected = sorted(map(str, values.loc[leftover].unique()))
            raise MappingError(
                f"Unexpected values in {series.name}: {unexpected}; "
                f"expected one of {sorted(lookup)} or missing.",
                column=str(series.name),
            )
        else:
            mapped.loc[leftover] = values.loc[leftover]
    mapped.loc[kept] = values.loc[kept]

    return coerce_categorical(mapped.rename(series.name))


def collapse_injury(series: pd.Series) -> pd.Series:
    return collapse_levels(series, INJURY_LEVELS, strict=True)


def collapse_incident_with(series: pd.Series) -> pd.Series:
    return collapse_levels(
        series,
        INCIDENT_WITH_LEVELS,
        other_level=INCIDENT_WITH_OTHER,
        passthrough=SENTINEL_VALUES,
    )


def collapse_sex(series: pd.Series) -> pd.Series:
    return collapse_levels(series, SEX_LEVELS, other_level=SEX_OTHER, passthrough=SENTINEL_VALUES)


def replace_sentinels(series: pd.Series, sentinels: Iterable[str] = SENTINEL_VALUES) -> pd.Series:
    """Replace "don't know"-style answers with missing values."""

    sentinels = list(sentinels)
    if isinstance(series.dtype, pd.CategoricalDtype):
        present = [lv for lv in series.cat.categories if lv in sentinels]
        if not present:
            return series.copy()
        return series.cat.remove_categories(present)
    return series.where(~series.isin(sentinels), np.nan)


def tidy_levels(series: pd.Series) -> pd.Series:
    """Drop unobserved levels, then order levels by descending frequency.

    Equally frequent levels keep their current relative order.
    """

    s = series.cat.remove_unused_categories()
    counts = s.value_counts()
    ordered = sorted(s.cat.categories, key=lambda lv: -int(counts[lv]))
    return s.cat.reorder_categories(ordered)


def value_counts_table(series: pd.Series) -> pd.DataFrame:
    labels = series.astype(object).where(series.notna(), "<NA>").astype(str)
    vc = labels.value_counts(dropna=False)
    counts = vc.rename_axis("value").reset_index(name="count")
    counts["proportion"] = (counts["count"] / len(series)).round(6) if len(series) else np.nan
    return counts.sort_values(["count", "value"], ascending=[False, True], kind="mergesort").reset_index(drop=True)
