import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT / "src") not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT / "src"))

import argparse

import pandas as pd

from bike_injury.config import (
    CV_FOLDS,
    DATASET_VERSION,
    LOGS_DIR,
    MODELING_FILE,
    POSITIVE_CLASS,
    RANDOM_SEED,
    SPLITS_DIR,
    TARGET_COL,
    TRAIN_PROPORTION,
    PipelineConfig,
)
from bike_injury.data.splits import assign_partitions
from bike_injury.errors import PipelineError
from bike_injury.utils.logging import runtime_metadata, sha256_file, write_json


def class_balance(partitions: pd.DataFrame, y: pd.Series) -> pd.DataFrame:
    """Positive-class counts and rates overall, per partition and per fold."""

    tmp = partitions.assign(is_pos=y.iloc[partitions["row_id"].to_numpy()].eq(POSITIVE_CLASS).to_numpy())
    rows = [{"group": "all", "n": len(tmp), "n_pos": int(tmp["is_pos"].sum())}]
    for part, gdf in tmp.groupby("partition", sort=True):
        rows.append({"group": str(part), "n": len(gdf), "n_pos": int(gdf["is_pos"].sum())})
    train = tmp.loc[tmp["partition"] == "train"]
    for fold, gdf in train.groupby("fold", sort=True):
        rows.append({"group": f"fold_{int(fold)}", "n": len(gdf), "n_pos": int(gdf["is_pos"].sum())})
    out = pd.DataFrame(rows)
    out["pos_rate"] = (out["n_pos"] / out["n"]).round(6)
    return out


def main() -> None:
    parser = argparse.ArgumentParser(description="Stratified train/test split and CV folds for the modeling table.")
    parser.add_argument("--input", type=Path, default=MODELING_FILE, help="Modeling parquet from 01_build_dataset.py.")
    parser.add_argument("--seed", type=int, default=RANDOM_SEED, help="Seed for the split and the folds.")
    parser.add_argument("--train-proportion", type=float, default=TRAIN_PROPORTION)
    parser.add_argument("--cv-folds", type=int, default=CV_FOLDS)
    parser.add_argument("--outdir", type=Path, default=SPLITS_DIR, help="Directory for partition labels.")
    parser.add_argument("--log-dir", type=Path, default=LOGS_DIR)
    args = parser.parse_args()

    if not args.input.exists():
        raise SystemExit(f"Modeling input not found: {args.input}. Run scripts/01_build_dataset.py first.")
    if not 0.0 < args.train_proportion < 1.0:
        raise SystemExit("--train-proportion must be in (0, 1).")
    if args.cv_folds < 2:
        raise SystemExit("--cv-folds must be >= 2.")

    config = PipelineConfig(train_proportion=args.train_proportion, cv_folds=args.cv_folds, seed=args.seed)
    df = pd.read_parquet(args.input)

    try:
        assignment = assign_partitions(df, config)
    except PipelineError as exc:
        raise SystemExit(f"Split failed: {exc}")

    partitions = assignment.to_frame()
    balance = class_balance(partitions, df[TARGET_COL].astype(str))

    args.outdir.mkdir(parents=True, exist_ok=True)
    partitions_path = args.outdir / f"partitions_seed{args.seed}.csv"
    partitions.to_csv(partitions_path, index=False)
    balance_path = args.outdir / f"class_balance_seed{args.seed}.csv"
    balance.to_csv(balance_path, index=False)

    log_path = args.log_dir / f"splits_seed{args.seed}.json"
    write_json(
        log_path,
        {
            "dataset_version": DATASET_VERSION,
            "input_parquet": str(args.input),
            "input_sha256": sha256_file(args.input),
            "protocol": {
                "train_proportion": config.train_proportion,
                "cv_folds": config.cv_folds,
                "seed": config.seed,
                "stratified_on": TARGET_COL,
            },
            "n_train": int(len(assignment.train_idx)),
            "n_test": int(len(assignment.test_idx)),
            "class_balance": balance.to_dict(orient="records"),
            "artifacts": {"partitions_csv": str(partitions_path), "class_balance_csv": str(balance_path)},
            "runtime": runtime_metadata(),
        },
    )

    print(f"Wrote {partitions_path}")
    print(f"Wrote {balance_path}")
    print(f"Wrote {log_path}")


if __name__ == "__main__":
    main()
