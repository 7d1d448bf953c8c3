"""Preprocessing recipe shared by every model family.

impute (bagged trees) -> one-hot encode -> SMOTE -> classifier

The steps live in an imbalanced-learn Pipeline: samplers only run during
``fit``, so synthetic minority rows are generated from training folds (or the
full training partition) and never from validation or test rows.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from imblearn.over_sampling import SMOTE
from imblearn.pipeline import Pipeline
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.ensemble import BaggingClassifier
from sklearn.preprocessing import OneHotEncoder
from sklearn.tree import DecisionTreeClassifier
from sklearn.utils.validation import check_is_fitted

from bike_injury.config import POSITIVE_CLASS, TARGET_COL, PipelineConfig
from bike_injury.data.validate import assert_binary_outcome
from bike_injury.errors import SchemaError


@dataclass(frozen=True)
class ModelingSchema:
    predictors: List[str]
    levels: Dict[str, List[str]]

    def categories(self) -> List[List[str]]:
        return [list(self.levels[c]) for c in self.predictors]


def modeling_schema(table: pd.DataFrame, target: str = TARGET_COL) -> ModelingSchema:
    """Predictor names and level universes, taken from the full cleaned table."""

    predictors = [c for c in table.columns if c != target]
    levels = {}
    for col in predictors:
        s = table[col]
        if isinstance(s.dtype, pd.CategoricalDtype):
            levels[col] = [str(v) for v in s.cat.categories]
        else:
            levels[col] = [str(v) for v in pd.unique(s.dropna())]
        if not levels[col]:
            raise SchemaError(f"Predictor {col} has no observed levels after cleaning.", column=col)
    return ModelingSchema(predictors=predictors, levels=levels)


def to_feature_frame(
    table: pd.DataFrame, schema: ModelingSchema, target: str = TARGET_COL
) -> Tuple[pd.DataFrame, pd.Series]:
    assert_binary_outcome(table[target])
    X = pd.DataFrame(index=table.index)
    for col in schema.predictors:
        s = table[col].astype(object)
        X[col] = s.where(s.notna(), np.nan)
    y = table[target].astype(str).eq(POSITIVE_CLASS).astype(int).rename(target)
    return X, y


class BaggedTreeImputer(BaseEstimator, TransformerMixin):
    """Fill missing categorical values with bagged decision-tree predictions.

    Every column gets its own bagged classifier trained on the rows where it
    is observed, using all other columns as inputs (ordinal codes; a missing
    input is coded -1 so trees can split on it).
    """

    def __init__(self, categories: Optional[List[List[str]]] = None, n_estimators: int = 25, random_state=None):
        self.categories = categories
        self.n_estimators = n_estimators
        self.random_state = random_state

    def _encode(self, X: pd.DataFrame) -> np.ndarray:
        codes = np.full(X.shape, -1, dtype=float)
        for j, col in enumerate(self.feature_names_in_):
            lookup = self.code_maps_[j]
            codes[:, j] = X[col].map(lookup).fillna(-1).to_numpy(dtype=float)
        return codes

    def fit(self, X, y=None):
        X = pd.DataFrame(X).copy()
        self.feature_names_in_ = np.asarray([str(c) for c in X.columns], dtype=object)
        self.n_features_in_ = len(self.feature_names_in_)
        X.columns = list(self.feature_names_in_)

        if self.categories is not None:
            levels = [list(c) for c in self.categories]
        else:
            levels = [sorted(map(str, X[c].dropna().unique())) for c in X.columns]
        if len(levels) != self.n_features_in_:
            raise ValueError(f"Got {len(levels)} category lists for {self.n_features_in_} columns.")
        self.levels_ = levels
        self.code_maps_ = [{lv: float(i) for i, lv in enumerate(lvs)} for lvs in levels]

        codes = self._encode(X)
        self.estimators_ = []
        for j in range(self.n_features_in_):
            observed = codes[:, j] >= 0
            classes = np.unique(codes[observed, j])
            if classes.size == 0:
                self.estimators_.append(None)
                continue
            if classes.size == 1:
                self.estimators_.append(float(classes[0]))
                continue
            others = np.delete(codes, j, axis=1)
            if others.shape[1] == 0:
                values, counts = np.unique(codes[observed, j], return_counts=True)
                self.estimators_.append(float(values[np.argmax(counts)]))
                continue
            model = BaggingClassifier(
                estimator=DecisionTreeClassifier(),
                n_estimators=self.n_estimators,
                random_state=self.random_state,
            )
            model.fit(others[observed], codes[observed, j])
            self.estimators_.append(model)
        return self

    def transform(self, X):
        check_is_fitted(self, "estimators_")
        X = pd.DataFrame(X).copy()
        X.columns = [str(c) for c in X.columns]
        missing_cols = [c for c in self.feature_names_in_ if c not in X.columns]
        if missing_cols:
            raise ValueError(f"Columns missing at transform time: {missing_cols}")
        X = X[list(self.feature_names_in_)]

        codes = self._encode(X)
        out = X.astype(object).copy()
        for j, col in enumerate(self.feature_names_in_):
            missing = codes[:, j] < 0
            if not missing.any():
                continue
            est = self.estimators_[j]
            if est is None:
                continue
            if isinstance(est, float):
                predicted = np.full(int(missing.sum()), est)
            else:
                predicted = est.predict(np.delete(codes, j, axis=1)[missing])
            filled = [self.levels_[j][int(code)] for code in predicted]
            out.loc[out.index[missing], col] = filled
        return out

    def get_feature_names_out(self, input_features=None):
        check_is_fitted(self, "estimators_")
        return np.asarray(self.feature_names_in_, dtype=object)


class MinorityRatio:
    """SMOTE sampling strategy: grow the minority class to `ratio` x majority.

    A minority class already at or above the ratio is left as is.
    """

    def __init__(self, ratio: float):
        self.ratio = ratio

    def __call__(self, y) -> Dict[int, int]:
        classes, counts = np.unique(np.asarray(y), return_counts=True)
        if classes.size < 2:
            return {}
        majority = int(counts.max())
        minority_pos = int(np.argmin(counts))
        target = max(int(counts[minority_pos]), int(math.ceil(self.ratio * majority)))
        return {classes[minority_pos].item(): target}

    def __repr__(self) -> str:
        return f"MinorityRatio(ratio={self.ratio})"


def build_recipe_pipeline(classifier, schema: ModelingSchema, config: Optional[PipelineConfig] = None) -> Pipeline:
    config = config or PipelineConfig()
    return Pipeline(
        steps=[
            (
                "imputer",
                BaggedTreeImputer(
                    categories=schema.categories(),
                    n_estimators=config.imputer_trees,
                    random_state=config.seed,
                ),
            ),
            (
                "encoder",
                OneHotEncoder(categories=schema.categories(), handle_unknown="ignore", sparse_output=False),
            ),
            ("smote", SMOTE(sampling_strategy=MinorityRatio(config.oversample_ratio), random_state=config.seed)),
            ("model", classifier),
        ]
    )
