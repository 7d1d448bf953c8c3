from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import StratifiedKFold, StratifiedShuffleSplit

from bike_injury.config import TARGET_COL, PipelineConfig
from bike_injury.errors import IntegrityError


@dataclass(frozen=True)
class SplitAssignment:
    train_idx: np.ndarray
    test_idx: np.ndarray
    # Fold number (1..k) for each entry of train_idx.
    fold_id: np.ndarray

    def to_frame(self) -> pd.DataFrame:
        train = pd.DataFrame({"row_id": self.train_idx, "partition": "train", "fold": self.fold_id})
        test = pd.DataFrame({"row_id": self.test_idx, "partition": "test", "fold": pd.NA})
        out = pd.concat([train, test], ignore_index=True)
        out["fold"] = out["fold"].astype("Int64")
        return out.sort_values("row_id", kind="mergesort").reset_index(drop=True)


def _check_stratifiable(y: pd.Series, min_per_class: int, what: str) -> None:
    counts = y.value_counts()
    counts = counts[counts > 0]
    if len(counts) < 2:
        raise IntegrityError(f"Cannot stratify {what}: outcome has a single class {counts.to_dict()}.", stage="split")
    if int(counts.min()) < min_per_class:
        raise IntegrityError(
            f"Cannot stratify {what}: smallest class has {int(counts.min())} records, need {min_per_class}.",
            stage="split",
        )


def make_holdout_split(X, y, train_size: float, seed: int) -> Tuple[np.ndarray, np.ndarray]:
    splitter = StratifiedShuffleSplit(n_splits=1, train_size=train_size, random_state=seed)
    train_idx, test_idx = next(splitter.split(X, y))
    return np.sort(train_idx), np.sort(test_idx)


def make_cv_folds(y_train: pd.Series, n_folds: int, seed: int) -> np.ndarray:
    """Return a 1-based stratified fold number for every training record."""

    skf = StratifiedKFold(n_splits=n_folds, shuffle=True, random_state=seed)
    fold_id = np.full(len(y_train), fill_value=0, dtype=int)
    for f, (_, va) in enumerate(skf.split(np.zeros(len(y_train)), y_train), start=1):
        fold_id[va] = f
    if (fold_id == 0).any():
        raise IntegrityError("Failed to assign all training rows to CV folds.", stage="split")
    return fold_id


def assign_partitions(
    table: pd.DataFrame,
    config: Optional[PipelineConfig] = None,
    target: str = TARGET_COL,
) -> SplitAssignment:
    """Stratified train/test split plus stratified folds over the training rows.

    Row positions refer to `table` as given. The seed comes from config, so the
    same table and config always give the same assignment.
    """

    config = config or PipelineConfig()
    y = table[target].astype(str).reset_index(drop=True)
    _check_stratifiable(y, min_per_class=2, what="train/test split")

    train_idx, test_idx = make_holdout_split(np.zeros(len(y)), y, config.train_proportion, config.seed)

    y_train = y.iloc[train_idx].reset_index(drop=True)
    if len(y_train) < config.cv_folds:
        raise IntegrityError(
            f"Training partition has {len(y_train)} records; need at least {config.cv_folds} for CV folds.",
            stage="split",
        )
    _check_stratifiable(y_train, min_per_class=1, what="CV folds")
    if int(y_train.value_counts().max()) < config.cv_folds:
        raise IntegrityError(
            f"Every outcome class in the training partition has fewer than {config.cv_folds} records.",
            stage="split",
        )
    fold_id = make_cv_folds(y_train, config.cv_folds, config.seed)

    return SplitAssignment(train_idx=train_idx, test_idx=test_idx, fold_id=fold_id)
