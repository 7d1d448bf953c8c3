import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT / "src") not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT / "src"))

import argparse

import pandas as pd

from bike_injury.config import (
    DATASET_VERSION,
    DATE_CUTOFF,
    LOGS_DIR,
    MISSING_THRESHOLD,
    MODELING_FILE,
    NEGATIVE_CLASS,
    POSITIVE_CLASS,
    RAW_FILE,
    TABLES_DIR,
    TARGET_COL,
    PipelineConfig,
)
from bike_injury.data.build import build_modeling_table, run_stages, CLEANING_STAGES
from bike_injury.data.ingest import load_incidents
from bike_injury.data.missingness import summarize_missingness
from bike_injury.errors import PipelineError
from bike_injury.utils.logging import runtime_metadata, sha256_df, sha256_file, write_json


def selected_missingness(df_raw: pd.DataFrame, config: PipelineConfig) -> pd.DataFrame:
    """Missingness over the post-selection rows, i.e. the table the threshold is applied to."""

    selection = [s for s in CLEANING_STAGES if s.name in {"filter_by_date", "drop_irrelevant_columns", "drop_witness_reports"}]
    selected, _ = run_stages(df_raw, config, stages=selection)
    miss = summarize_missingness(selected)
    miss["missing_rate"] = miss["missing_rate"].round(6)
    miss["dropped"] = miss["missing_rate"] >= config.missing_threshold
    return miss


def main() -> None:
    parser = argparse.ArgumentParser(description="Build the analysis-ready modeling table from the raw incident export.")
    parser.add_argument("--input", type=Path, default=RAW_FILE, help="Raw incident CSV.")
    parser.add_argument("--nrows", type=int, default=None, help="Optional: read only the first N rows (for tests).")
    parser.add_argument("--date-cutoff", type=str, default=DATE_CUTOFF, help="Keep incidents strictly after this date.")
    parser.add_argument(
        "--missing-threshold",
        type=float,
        default=MISSING_THRESHOLD,
        help="Drop columns whose missing fraction is at least this value.",
    )
    parser.add_argument(
        "--drop-missing-involvement",
        action="store_true",
        help="Drop reports with no personal-involvement answer (default: treat them as involved).",
    )
    parser.add_argument("--out-parquet", type=Path, default=MODELING_FILE, help="Output parquet path.")
    parser.add_argument(
        "--audit-csv",
        type=Path,
        default=TABLES_DIR / "modeling_table_audit.csv",
        help="Output audit CSV path.",
    )
    parser.add_argument(
        "--missingness-csv",
        type=Path,
        default=TABLES_DIR / "missingness_selected.csv",
        help="Output missingness summary CSV path.",
    )
    parser.add_argument(
        "--decisions-json",
        type=Path,
        default=LOGS_DIR / "decisions.json",
        help="Output JSON file for coding/filter decisions.",
    )
    args = parser.parse_args()

    if not args.input.exists():
        raise SystemExit(f"Input file not found: {args.input}")
    if args.nrows is not None and args.nrows <= 0:
        raise SystemExit("--nrows must be a positive integer.")
    if not 0.0 < args.missing_threshold <= 1.0:
        raise SystemExit("--missing-threshold must be in (0, 1].")

    config = PipelineConfig(
        date_cutoff=args.date_cutoff,
        missing_threshold=args.missing_threshold,
        keep_missing_involvement=not args.drop_missing_involvement,
    )

    # All-or-nothing: nothing is written unless every stage succeeds.
    try:
        df_raw = load_incidents(args.input, nrows=args.nrows)
        modeling, decisions = build_modeling_table(df_raw, config)
        miss = selected_missingness(df_raw, config)
    except PipelineError as exc:
        raise SystemExit(f"Dataset build failed: {exc}")

    raw_rows = len(df_raw)
    modeling_rows, modeling_cols = modeling.shape

    counts = modeling[TARGET_COL].value_counts().to_dict()
    n_pos = int(counts.get(POSITIVE_CLASS, 0))
    n_neg = int(counts.get(NEGATIVE_CLASS, 0))
    pos_rate = round(n_pos / (n_pos + n_neg), 6) if (n_pos + n_neg) else None

    content_hash = sha256_df(modeling)

    # Every artifact is assembled before the first write; the parquet goes first.
    decisions_payload = {
        **decisions,
        "dataset_version": DATASET_VERSION,
        "input_file": str(args.input),
        "input_sha256": sha256_file(args.input),
        "raw_rows": raw_rows,
        "modeling_rows": modeling_rows,
        "modeling_cols": modeling_cols,
        "levels": {c: [str(v) for v in modeling[c].cat.categories] for c in modeling.columns},
        "output_parquet": str(args.out_parquet),
        "missingness_csv": str(args.missingness_csv),
        "content_hash_sha256": content_hash,
        "runtime": runtime_metadata(),
    }
    audit = pd.DataFrame(
        [
            {
                "raw_rows": raw_rows,
                "modeling_rows": modeling_rows,
                "modeling_cols": modeling_cols,
                "n_predictors": modeling_cols - 1,
                f"{TARGET_COL}_n_{POSITIVE_CLASS}": n_pos,
                f"{TARGET_COL}_n_{NEGATIVE_CLASS}": n_neg,
                f"{TARGET_COL}_rate_{POSITIVE_CLASS}": pos_rate,
                "missingness_summary_csv": str(args.missingness_csv),
                "content_hash_sha256": content_hash,
                "decisions_json": str(args.decisions_json),
            }
        ]
    )

    try:
        args.out_parquet.parent.mkdir(parents=True, exist_ok=True)
        modeling.to_parquet(args.out_parquet, index=False)
    except OSError as exc:
        raise SystemExit(f"Could not write {args.out_parquet}: {exc}")

    args.missingness_csv.parent.mkdir(parents=True, exist_ok=True)
    miss.to_csv(args.missingness_csv, index=False)
    write_json(args.decisions_json, decisions_payload)
    args.audit_csv.parent.mkdir(parents=True, exist_ok=True)
    audit.to_csv(args.audit_csv, index=False)

    print(f"Wrote {args.out_parquet}")
    print(f"Wrote {args.audit_csv}")
    print(f"Wrote {args.missingness_csv}")
    print(f"Wrote {args.decisions_json}")


if __name__ == "__main__":
    main()
