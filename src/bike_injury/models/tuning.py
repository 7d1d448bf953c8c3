from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import numpy as np
import pandas as pd
from imblearn.pipeline import Pipeline
from sklearn.model_selection import GridSearchCV, PredefinedSplit

from bike_injury.config import SELECTION_METRIC, PipelineConfig
from bike_injury.evaluation.metrics import compute_binary_metrics
from bike_injury.models.forest import RANDOM_FOREST_GRID, build_random_forest
from bike_injury.models.linear import (
    ELASTIC_NET_GRID,
    LOGREG_GRID,
    build_elastic_net,
    build_logistic_regression,
)
from bike_injury.models.neighbors import KNN_GRID, build_knn
from bike_injury.models.recipe import ModelingSchema, build_recipe_pipeline


@dataclass(frozen=True)
class ModelFamily:
    name: str
    build: Callable[..., object]
    grid: Dict[str, list]
    # Builders of randomized estimators take the run seed.
    seeded: bool = True


FAMILIES: Dict[str, ModelFamily] = {
    "knn": ModelFamily("knn", build_knn, KNN_GRID, seeded=False),
    "logreg": ModelFamily("logreg", build_logistic_regression, LOGREG_GRID),
    "elastic_net": ModelFamily("elastic_net", build_elastic_net, ELASTIC_NET_GRID),
    "random_forest": ModelFamily("random_forest", build_random_forest, RANDOM_FOREST_GRID),
}


@dataclass
class TuningResult:
    family: str
    best_params: Dict[str, object]
    cv_score_mean: float
    cv_score_std: float
    cv_results: pd.DataFrame
    test_metrics: Dict[str, float]
    n_train: int
    n_test: int
    estimator: Pipeline = field(repr=False)


def build_estimator(family: str, schema: ModelingSchema, config: PipelineConfig) -> Pipeline:
    if family not in FAMILIES:
        raise ValueError(f"Unknown model family: {family}")
    spec = FAMILIES[family]
    classifier = spec.build(config.seed) if spec.seeded else spec.build()
    return build_recipe_pipeline(classifier, schema, config)


def predict_proba_positive(estimator, X: pd.DataFrame) -> np.ndarray:
    proba = estimator.predict_proba(X)
    if proba.ndim != 2 or proba.shape[1] < 2:
        raise ValueError("predict_proba output has unexpected shape.")
    return proba[:, 1]


def tune_family(
    family: str,
    *,
    X_train: pd.DataFrame,
    y_train: pd.Series,
    fold_id: np.ndarray,
    X_test: pd.DataFrame,
    y_test: pd.Series,
    schema: ModelingSchema,
    config: Optional[PipelineConfig] = None,
    param_grid: Optional[Dict[str, list]] = None,
    n_jobs: Optional[int] = None,
) -> TuningResult:
    """Grid-search one family over the stored folds, refit, score the test set once."""

    config = config or PipelineConfig()
    estimator = build_estimator(family, schema, config)
    grid = param_grid if param_grid is not None else FAMILIES[family].grid
    # PredefinedSplit treats fold -1 as "never validate"; stored folds are 1-based.
    cv = PredefinedSplit(test_fold=np.asarray(fold_id, dtype=int) - 1)

    search = GridSearchCV(
        estimator,
        param_grid=grid,
        scoring=SELECTION_METRIC,
        cv=cv,
        refit=True,
        n_jobs=n_jobs,
    )
    search.fit(X_train, y_train)

    cv_results = pd.DataFrame(search.cv_results_)
    best = int(search.best_index_)
    y_prob = predict_proba_positive(search.best_estimator_, X_test)

    return TuningResult(
        family=family,
        best_params={k.replace("model__", "", 1): v for k, v in search.best_params_.items()},
        cv_score_mean=float(cv_results.loc[best, "mean_test_score"]),
        cv_score_std=float(cv_results.loc[best, "std_test_score"]),
        cv_results=cv_results,
        test_metrics=compute_binary_metrics(y_test.to_numpy(dtype=int), y_prob),
        n_train=int(len(X_train)),
        n_test=int(len(X_test)),
        estimator=search.best_estimator_,
    )


def tune_all(families: List[str], **kwargs) -> List[TuningResult]:
    return [tune_family(f, **kwargs) for f in families]
