from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, List

import numpy as np
import pandas as pd


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT / "src") not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT / "src"))

from bike_injury.config import (  # noqa: E402
    DATASET_VERSION,
    EXPERIMENT_NAMESPACE,
    IMPUTER_TREES,
    MODEL_FAMILIES,
    MODELING_FILE,
    OUTPUTS_DIR,
    OVERSAMPLE_RATIO,
    RANDOM_SEED,
    SELECTION_METRIC,
    SPLITS_DIR,
    TARGET_COL,
    PipelineConfig,
)
from bike_injury.errors import IntegrityError, PipelineError  # noqa: E402
from bike_injury.models.recipe import modeling_schema, to_feature_frame  # noqa: E402
from bike_injury.models.tuning import FAMILIES, tune_family  # noqa: E402
from bike_injury.utils.logging import runtime_metadata, sha256_file, write_json  # noqa: E402


def deterministic_run_id(seed: int, family: str) -> str:
    return f"{EXPERIMENT_NAMESPACE}_seed{seed}_{family}"


def load_partitions(path: Path, n_rows: int) -> pd.DataFrame:
    partitions = pd.read_csv(path, dtype={"row_id": int, "partition": str})
    partitions["fold"] = partitions["fold"].astype("Int64")
    row_ids = partitions["row_id"].to_numpy()
    if len(np.unique(row_ids)) != len(row_ids):
        raise IntegrityError(f"Partition file {path} assigns some rows more than once.", stage="train")
    if set(row_ids.tolist()) != set(range(n_rows)):
        raise IntegrityError(
            f"Partition file {path} does not cover the {n_rows} modeling rows exactly; re-run 02_make_splits.py.",
            stage="train",
        )
    train = partitions.loc[partitions["partition"] == "train"]
    if train["fold"].isna().any():
        raise IntegrityError("Training rows without a fold id.", stage="train")
    return partitions


def quick_grid(grid: Dict[str, list]) -> Dict[str, list]:
    """First value of every hyperparameter (dev mode)."""

    return {k: v[:1] for k, v in grid.items()}


def main() -> None:
    parser = argparse.ArgumentParser(description="Tune, refit and test the four injury classifiers.")
    parser.add_argument("--input", type=Path, default=MODELING_FILE, help="Modeling parquet from 01_build_dataset.py.")
    parser.add_argument("--seed", type=int, default=RANDOM_SEED, help="Seed used for the stored split and the models.")
    parser.add_argument("--partitions", type=Path, default=None, help="Partition CSV (default: from --seed).")
    parser.add_argument("--outdir", type=Path, default=OUTPUTS_DIR, help="Output directory (default: outputs/).")
    parser.add_argument("--model", choices=MODEL_FAMILIES + ["all"], default="all")
    parser.add_argument("--oversample-ratio", type=float, default=OVERSAMPLE_RATIO)
    parser.add_argument("--imputer-trees", type=int, default=IMPUTER_TREES)
    parser.add_argument("--n-jobs", type=int, default=None, help="Parallel grid evaluation (GridSearchCV n_jobs).")
    parser.add_argument("--quick", action="store_true", help="Dev mode: one grid point per family.")
    args = parser.parse_args()

    if not args.input.exists():
        raise SystemExit(f"Modeling input not found: {args.input}. Run scripts/01_build_dataset.py first.")
    partitions_path = args.partitions or (SPLITS_DIR / f"partitions_seed{args.seed}.csv")
    if not partitions_path.exists():
        raise SystemExit(f"Partition labels not found: {partitions_path}. Run scripts/02_make_splits.py first.")
    if not 0.0 < args.oversample_ratio <= 1.0:
        raise SystemExit("--oversample-ratio must be in (0, 1].")

    config = PipelineConfig(seed=args.seed, oversample_ratio=args.oversample_ratio, imputer_trees=args.imputer_trees)

    df = pd.read_parquet(args.input)
    try:
        partitions = load_partitions(partitions_path, len(df))
        schema = modeling_schema(df)
        X, y = to_feature_frame(df, schema)
    except PipelineError as exc:
        raise SystemExit(f"Training setup failed: {exc}")

    train = partitions.loc[partitions["partition"] == "train"].sort_values("row_id", kind="mergesort")
    test = partitions.loc[partitions["partition"] == "test"].sort_values("row_id", kind="mergesort")
    train_idx = train["row_id"].to_numpy()
    test_idx = test["row_id"].to_numpy()
    fold_id = train["fold"].to_numpy(dtype=int)

    X_train, y_train = X.iloc[train_idx], y.iloc[train_idx]
    X_test, y_test = X.iloc[test_idx], y.iloc[test_idx]

    out_metrics = args.outdir / "metrics"
    out_tables = args.outdir / "tables"
    out_logs = args.outdir / "logs"
    for d in [out_metrics, out_tables, out_logs]:
        d.mkdir(parents=True, exist_ok=True)

    families = MODEL_FAMILIES if args.model == "all" else [args.model]
    summary_rows: List[dict] = []
    runs: Dict[str, dict] = {}

    for family in families:
        grid = FAMILIES[family].grid
        if args.quick:
            grid = quick_grid(grid)
        print(f"Tuning {family} over {int(np.prod([len(v) for v in grid.values()]))} grid points")

        result = tune_family(
            family,
            X_train=X_train,
            y_train=y_train,
            fold_id=fold_id,
            X_test=X_test,
            y_test=y_test,
            schema=schema,
            config=config,
            param_grid=grid,
            n_jobs=args.n_jobs,
        )

        cv_cols = [c for c in result.cv_results.columns if c == "params" or c.startswith(("param_", "mean_", "std_", "split", "rank_"))]
        cv_path = out_metrics / f"cv_results_seed{args.seed}_{family}.csv"
        result.cv_results[cv_cols].to_csv(cv_path, index=False)

        run_id = deterministic_run_id(args.seed, family)
        row = {
            "dataset_version": DATASET_VERSION,
            "run_id": run_id,
            "seed": args.seed,
            "model": family,
            "n_train": result.n_train,
            "n_test": result.n_test,
            "cv_folds": int(len(np.unique(fold_id))),
            "best_params": str(result.best_params),
            f"cv_{SELECTION_METRIC}_mean": result.cv_score_mean,
            f"cv_{SELECTION_METRIC}_std": result.cv_score_std,
            **{f"test_{k}": v for k, v in result.test_metrics.items()},
        }
        summary_rows.append(row)
        runs[family] = {
            "run_id": run_id,
            "best_params": result.best_params,
            "param_grid": {k.replace("model__", "", 1): v for k, v in grid.items()},
            "cv_results_csv": str(cv_path),
            "cv_score_mean": result.cv_score_mean,
            "cv_score_std": result.cv_score_std,
            "test_metrics": result.test_metrics,
        }
        print(
            f"  {family}: cv {SELECTION_METRIC}={result.cv_score_mean:.3f}, "
            f"test {SELECTION_METRIC}={result.test_metrics[SELECTION_METRIC]:.3f}"
        )

    summary_path = out_tables / f"results_summary_seed{args.seed}.csv"
    pd.DataFrame(summary_rows).to_csv(summary_path, index=False)

    log_path = out_logs / f"train_seed{args.seed}.json"
    write_json(
        log_path,
        {
            "dataset_version": DATASET_VERSION,
            "experiment_namespace": EXPERIMENT_NAMESPACE,
            "target_col": TARGET_COL,
            "selection_metric": SELECTION_METRIC,
            "protocol": {
                "seed": config.seed,
                "oversample_ratio": config.oversample_ratio,
                "imputer_trees": config.imputer_trees,
                "oversampling_scope": "training folds / training partition only",
                "quick": bool(args.quick),
            },
            "predictors": schema.predictors,
            "inputs": {
                "parquet_path": str(args.input),
                "parquet_sha256": sha256_file(args.input),
                "partitions_csv": str(partitions_path),
                "partitions_sha256": sha256_file(partitions_path),
            },
            "runs": runs,
            "summary_csv": str(summary_path),
            "runtime": runtime_metadata(),
        },
    )

    print(f"Wrote {summary_path}")
    print(f"Wrote {log_path}")


if __name__ == "__main__":
    main()
