import numpy as np
import pandas as pd
import pytest

from bike_injury.config import MODEL_FAMILIES, PipelineConfig
from bike_injury.data.splits import assign_partitions
from bike_injury.evaluation.metrics import compute_binary_metrics
from bike_injury.models.recipe import modeling_schema, to_feature_frame
from bike_injury.models.tuning import FAMILIES, build_estimator, tune_all, tune_family


def _inputs(table: pd.DataFrame, config: PipelineConfig) -> dict:
    schema = modeling_schema(table)
    X, y = to_feature_frame(table, schema)
    split = assign_partitions(table, config)
    return {
        "X_train": X.iloc[split.train_idx].reset_index(drop=True),
        "y_train": y.iloc[split.train_idx].reset_index(drop=True),
        "fold_id": split.fold_id,
        "X_test": X.iloc[split.test_idx].reset_index(drop=True),
        "y_test": y.iloc[split.test_idx].reset_index(drop=True),
        "schema": schema,
        "config": config,
    }


def test_every_configured_family_is_registered():
    assert sorted(FAMILIES) == sorted(MODEL_FAMILIES)
    for family in FAMILIES.values():
        assert all(k.startswith("model__") for k in family.grid)


def test_tune_knn_small_grid(modeling_table: pd.DataFrame):
    config = PipelineConfig(imputer_trees=5)
    inputs = _inputs(modeling_table, config)

    result = tune_family("knn", param_grid={"model__n_neighbors": [5, 15]}, **inputs)

    assert result.family == "knn"
    assert result.best_params["n_neighbors"] in (5, 15)
    assert len(result.cv_results) == 2
    # One split per stored fold.
    assert "split4_test_score" in result.cv_results.columns
    assert "split5_test_score" not in result.cv_results.columns
    assert 0.0 <= result.cv_score_mean <= 1.0
    assert result.n_train == len(inputs["X_train"])
    assert result.n_test == len(inputs["X_test"])
    assert set(result.test_metrics) == {"roc_auc", "pr_auc", "brier", "accuracy"}
    assert 0.0 <= result.test_metrics["roc_auc"] <= 1.0


def test_tuning_is_reproducible(modeling_table: pd.DataFrame):
    config = PipelineConfig(imputer_trees=5)
    grid = {"model__C": [0.1, 1.0]}

    a = tune_family("logreg", param_grid=grid, **_inputs(modeling_table, config))
    b = tune_family("logreg", param_grid=grid, **_inputs(modeling_table, config))

    assert a.best_params == b.best_params
    assert a.test_metrics == pytest.approx(b.test_metrics)


def test_tune_all_returns_one_result_per_family(modeling_table: pd.DataFrame):
    config = PipelineConfig(imputer_trees=5)
    inputs = _inputs(modeling_table, config)

    results = tune_all(["knn", "logreg"], **inputs)
    assert [r.family for r in results] == ["knn", "logreg"]
    for r in results:
        n_candidates = int(np.prod([len(v) for v in FAMILIES[r.family].grid.values()]))
        assert len(r.cv_results) == n_candidates


def test_unknown_family(modeling_table: pd.DataFrame):
    schema = modeling_schema(modeling_table)
    with pytest.raises(ValueError, match="gradient_boosting"):
        build_estimator("gradient_boosting", schema, PipelineConfig())


def test_metrics_single_class_auc_is_nan():
    metrics = compute_binary_metrics(np.ones(4, dtype=int), np.array([0.2, 0.6, 0.7, 0.9]))
    assert np.isnan(metrics["roc_auc"])
    assert np.isnan(metrics["pr_auc"])
    assert metrics["accuracy"] == pytest.approx(0.75)


def test_metrics_perfect_ranking():
    metrics = compute_binary_metrics([0, 0, 1, 1], [0.1, 0.2, 0.8, 0.9])
    assert metrics["roc_auc"] == pytest.approx(1.0)
    assert metrics["pr_auc"] == pytest.approx(1.0)
    assert metrics["brier"] == pytest.approx((0.01 + 0.04 + 0.04 + 0.01) / 4)


def test_estimators_take_seed_only_when_randomized(modeling_table: pd.DataFrame):
    schema = modeling_schema(modeling_table)
    config = PipelineConfig(seed=7)

    assert not FAMILIES["knn"].seeded
    assert build_estimator("knn", schema, config).named_steps["model"].get_params()["n_neighbors"] == 11
    for family in ["logreg", "elastic_net", "random_forest"]:
        model = build_estimator(family, schema, config).named_steps["model"]
        assert model.get_params()["random_state"] == 7
