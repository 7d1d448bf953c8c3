"""Ordered cleaning pipeline: selected raw export -> modeling table.

Each stage is a pure function ``(DataFrame, PipelineConfig) -> DataFrame``.
Stages run strictly in the order of ``CLEANING_STAGES``; the order matters:

- missingness is measured on the rows that survive selection
- collapsing rules match raw strings exactly, so they run before sentinel
  answers are replaced, and they pass sentinel answers through untouched
- level tidying runs after sentinel replacement so emptied levels disappear
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import pandas as pd

from bike_injury.config import (
    INCIDENT_WITH_COL,
    INCIDENT_WITH_LEVELS,
    INCIDENT_WITH_OTHER,
    INJURY_COL,
    INJURY_LEVELS,
    IRRELEVANT_COLS,
    REDUNDANT_COLS,
    SENTINEL_VALUES,
    SEX_COL,
    SEX_LEVELS,
    SEX_OTHER,
    TARGET_COL,
    UNKNOWN_CLASS,
    PipelineConfig,
)
from bike_injury.data.coding import (
    coerce_categorical,
    collapse_incident_with,
    collapse_injury,
    collapse_sex,
    replace_sentinels,
    tidy_levels,
)
from bike_injury.data.missingness import drop_sparse_columns
from bike_injury.data.select import drop_columns, drop_witness_reports, filter_by_date
from bike_injury.data.validate import assert_binary_outcome, assert_expected_header, assert_required_columns
from bike_injury.errors import PipelineError


@dataclass(frozen=True)
class CleaningStage:
    name: str
    apply: Callable[[pd.DataFrame, PipelineConfig], pd.DataFrame]
    requires: str
    ensures: str


def _filter_by_date(df: pd.DataFrame, config: PipelineConfig) -> pd.DataFrame:
    return filter_by_date(df, config.date_cutoff)


def _drop_irrelevant_columns(df: pd.DataFrame, config: PipelineConfig) -> pd.DataFrame:
    return drop_columns(df, IRRELEVANT_COLS)


def _drop_witness_reports(df: pd.DataFrame, config: PipelineConfig) -> pd.DataFrame:
    return drop_witness_reports(df, keep_missing_involvement=config.keep_missing_involvement)


def _drop_sparse_columns(df: pd.DataFrame, config: PipelineConfig) -> pd.DataFrame:
    return drop_sparse_columns(df, config.missing_threshold)


def _to_categorical(df: pd.DataFrame, config: PipelineConfig) -> pd.DataFrame:
    return pd.DataFrame({col: coerce_categorical(df[col]) for col in df.columns}, index=df.index)


def _collapse_injury(df: pd.DataFrame, config: PipelineConfig) -> pd.DataFrame:
    assert_required_columns(df, [INJURY_COL])
    outcome = collapse_injury(df[INJURY_COL]).rename(TARGET_COL)
    rest = df.drop(columns=[INJURY_COL])
    return pd.concat([outcome, rest], axis=1)


def _drop_redundant_predictors(df: pd.DataFrame, config: PipelineConfig) -> pd.DataFrame:
    return drop_columns(df, REDUNDANT_COLS)


def _collapse_incident_with(df: pd.DataFrame, config: PipelineConfig) -> pd.DataFrame:
    if INCIDENT_WITH_COL not in df.columns:
        return df
    out = df.copy()
    out[INCIDENT_WITH_COL] = collapse_incident_with(df[INCIDENT_WITH_COL])
    return out


def _collapse_sex(df: pd.DataFrame, config: PipelineConfig) -> pd.DataFrame:
    if SEX_COL not in df.columns:
        return df
    out = df.copy()
    out[SEX_COL] = collapse_sex(df[SEX_COL])
    return out


def _replace_sentinels(df: pd.DataFrame, config: PipelineConfig) -> pd.DataFrame:
    return pd.DataFrame({col: replace_sentinels(df[col]) for col in df.columns}, index=df.index)


def _tidy_levels(df: pd.DataFrame, config: PipelineConfig) -> pd.DataFrame:
    return pd.DataFrame({col: tidy_levels(df[col]) for col in df.columns}, index=df.index)


def _drop_unknown_outcome(df: pd.DataFrame, config: PipelineConfig) -> pd.DataFrame:
    outcome = df[TARGET_COL]
    known = outcome.notna() & outcome.astype(object).ne(UNKNOWN_CLASS)
    out = df.loc[known.to_numpy(dtype=bool)].reset_index(drop=True)
    levels = [lv for lv in out[TARGET_COL].cat.categories if lv != UNKNOWN_CLASS]
    out[TARGET_COL] = out[TARGET_COL].cat.set_categories(levels)
    assert_binary_outcome(out[TARGET_COL])
    # Dropped rows shift the counts; re-tidy so the final order matches the final table.
    return _tidy_levels(out, config)


CLEANING_STAGES: List[CleaningStage] = [
    CleaningStage(
        "filter_by_date",
        _filter_by_date,
        requires="raw header validated; date column present",
        ensures="every record is dated strictly after the cutoff",
    ),
    CleaningStage(
        "drop_irrelevant_columns",
        _drop_irrelevant_columns,
        requires="date filter applied",
        ensures="temporal, free-text, spatial, index and impact fields are gone",
    ),
    CleaningStage(
        "drop_witness_reports",
        _drop_witness_reports,
        requires="personal_involvement present",
        ensures="no record answered 'No' to personal involvement; the field is gone",
    ),
    CleaningStage(
        "drop_sparse_columns",
        _drop_sparse_columns,
        requires="all row filters applied",
        ensures="every column has missing fraction below the threshold",
    ),
    CleaningStage(
        "to_categorical",
        _to_categorical,
        requires="only text columns remain",
        ensures="every column is categorical with observed levels",
    ),
    CleaningStage(
        "collapse_injury",
        _collapse_injury,
        requires="injury present; every injury value is covered by the level map",
        ensures="injury_level in {injured, not_injured, unknown, missing}; raw injury dropped",
    ),
    CleaningStage(
        "drop_redundant_predictors",
        _drop_redundant_predictors,
        requires="none",
        ensures="p_type is gone",
    ),
    CleaningStage(
        "collapse_incident_with",
        _collapse_incident_with,
        requires="raw incident_with strings (sentinels intact)",
        ensures="incident_with in {vehicle, bicyclist, pedestrian, other_level, sentinel, missing}",
    ),
    CleaningStage(
        "collapse_sex",
        _collapse_sex,
        requires="raw sex strings (sentinels intact)",
        ensures="sex in {M, F, O, sentinel, missing}",
    ),
    CleaningStage(
        "replace_sentinels",
        _replace_sentinels,
        requires="all collapsing stages applied",
        ensures="no column holds a sentinel answer",
    ),
    CleaningStage(
        "tidy_levels",
        _tidy_levels,
        requires="sentinels replaced",
        ensures="every level is observed; levels ordered by descending frequency",
    ),
    CleaningStage(
        "drop_unknown_outcome",
        _drop_unknown_outcome,
        requires="injury_level present",
        ensures="injury_level is non-missing and binary; levels re-tidied on the surviving rows",
    ),
]


def run_stages(
    df: pd.DataFrame,
    config: PipelineConfig,
    stages: Optional[List[CleaningStage]] = None,
) -> Tuple[pd.DataFrame, List[dict]]:
    """Run cleaning stages in order; return the final table and a per-stage log.

    Any PipelineError propagates with the failing stage name attached.
    """

    stages = CLEANING_STAGES if stages is None else stages
    log: List[dict] = []
    current = df
    for stage in stages:
        rows_before, cols_before = current.shape
        columns_before = current.columns.tolist()
        try:
            current = stage.apply(current, config)
        except PipelineError as exc:
            if exc.stage is None:
                exc.stage = stage.name
            raise
        log.append(
            {
                "stage": stage.name,
                "rows_before": int(rows_before),
                "rows_after": int(len(current)),
                "cols_before": int(cols_before),
                "cols_after": int(current.shape[1]),
                "dropped_columns": [c for c in columns_before if c not in current.columns],
                "added_columns": [c for c in current.columns if c not in columns_before],
            }
        )
    return current, log


def build_modeling_table(df_raw: pd.DataFrame, config: Optional[PipelineConfig] = None) -> Tuple[pd.DataFrame, dict]:
    config = config or PipelineConfig()
    try:
        assert_expected_header(df_raw)
    except PipelineError as exc:
        exc.stage = exc.stage or "validate_header"
        raise

    modeling, stage_log = run_stages(df_raw, config)

    decisions: dict = {
        "config": {
            "date_cutoff": config.date_cutoff,
            "missing_threshold": config.missing_threshold,
            "keep_missing_involvement": config.keep_missing_involvement,
        },
        "columns": {
            "target": TARGET_COL,
            "source_outcome": INJURY_COL,
            "irrelevant_dropped": list(IRRELEVANT_COLS),
            "redundant_dropped": list(REDUNDANT_COLS),
            "predictors": [c for c in modeling.columns if c != TARGET_COL],
        },
        "level_maps": {
            INJURY_COL: {k: list(v) for k, v in INJURY_LEVELS.items()},
            INCIDENT_WITH_COL: {
                **{k: list(v) for k, v in INCIDENT_WITH_LEVELS.items()},
                INCIDENT_WITH_OTHER: "all other non-sentinel values",
            },
            SEX_COL: {**{k: list(v) for k, v in SEX_LEVELS.items()}, SEX_OTHER: "all other non-sentinel values"},
        },
        "sentinel_values": list(SENTINEL_VALUES),
        "policies": {
            "missing_personal_involvement": (
                "treated as involved (kept)" if config.keep_missing_involvement else "dropped"
            ),
            "level_order": "descending frequency; ties keep first-encountered order",
        },
        "stages": stage_log,
    }
    return modeling, decisions
