from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import numpy as np
import pandas as pd
from pandas.api.types import infer_dtype


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT / "src") not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT / "src"))

from bike_injury.config import INJURY_COL, RAW_FILE, TABLES_DIR  # noqa: E402
from bike_injury.data.coding import value_counts_table  # noqa: E402
from bike_injury.data.ingest import load_incidents  # noqa: E402
from bike_injury.data.validate import assert_expected_header  # noqa: E402
from bike_injury.errors import PipelineError  # noqa: E402


VALUE_COUNTS_COLUMNS = [
    "p_type",
    "i_type",
    "incident_with",
    "injury",
    "personal_involvement",
    "sex",
    "age",
    "helmet",
    "road_conditions",
]


def first_k_distinct_examples(series: pd.Series, k: int = 5) -> list[str]:
    seen: set[str] = set()
    examples: list[str] = []
    for v in series.to_numpy(copy=False):
        if pd.isna(v):
            continue
        sv = str(v)
        if sv in seen:
            continue
        seen.add(sv)
        examples.append(sv)
        if len(examples) >= k:
            break
    return examples


def schema_notes(column: str, n_total: int, n_missing: int, n_unique: int) -> str:
    notes: list[str] = []
    missing_rate = (n_missing / n_total) if n_total else 0.0

    if n_missing == n_total:
        notes.append("all_missing")
        return ";".join(notes)

    if n_unique == 1:
        notes.append("constant")
    if missing_rate >= 0.95:
        notes.append("extreme_sparsity")
    if missing_rate >= 0.50:
        notes.append("high_missingness")
    if n_unique == n_total and n_total > 0:
        notes.append("unique_per_row")
    if n_total > 0 and (n_unique > 0.10 * n_total or n_unique >= 1000):
        notes.append("high_cardinality")

    if ("unique_per_row" in notes) and (column.lower() in {"x", "pk"} or column.lower().endswith("id")):
        notes.append("possible_identifier")

    return ";".join(notes)


def build_schema_table(df: pd.DataFrame) -> pd.DataFrame:
    n_total = len(df)
    rows: list[dict] = []

    for col in df.columns:
        s = df[col]
        n_missing = int(s.isna().sum())
        missing_rate = (n_missing / n_total) if n_total else np.nan
        n_unique = int(s.nunique(dropna=True))

        rows.append(
            {
                "column": col,
                "dtype_inferred": infer_dtype(s, skipna=True),
                "n_total": n_total,
                "n_missing": n_missing,
                "missing_rate": round(float(missing_rate), 6) if n_total else np.nan,
                "n_unique": n_unique,
                "example_values": json.dumps(first_k_distinct_examples(s, k=5), ensure_ascii=True),
                "notes": schema_notes(col, n_total=n_total, n_missing=n_missing, n_unique=n_unique),
            }
        )

    return pd.DataFrame(rows)


def write_value_counts(series: pd.Series, col_name: str, out_dir: Path) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    safe_name = "".join(ch if (ch.isalnum() or ch in {"_", "-", "."}) else "_" for ch in col_name)
    out_path = out_dir / f"value_counts_raw_{safe_name}.csv"
    value_counts_table(series).to_csv(out_path, index=False)
    return out_path


def main() -> None:
    parser = argparse.ArgumentParser(description="Audit the raw incident export: schema, missingness, value counts.")
    parser.add_argument("--input", type=Path, default=RAW_FILE, help="Raw incident CSV.")
    parser.add_argument("--outdir", type=Path, default=TABLES_DIR, help="Directory for audit tables.")
    args = parser.parse_args()

    if not args.input.exists():
        raise SystemExit(f"Input file not found: {args.input}")

    try:
        df = load_incidents(args.input)
        assert_expected_header(df)
    except PipelineError as exc:
        raise SystemExit(str(exc))

    args.outdir.mkdir(parents=True, exist_ok=True)

    schema = build_schema_table(df)
    schema.to_csv(args.outdir / "schema_raw.csv", index=False)

    for col in VALUE_COUNTS_COLUMNS:
        write_value_counts(df[col], col, args.outdir)

    n_injury = int(df[INJURY_COL].notna().sum())
    print(f"Audited {len(df)} rows x {df.shape[1]} columns ({n_injury} with a recorded injury answer)")
    print(f"Wrote schema audit outputs to {args.outdir}/")


if __name__ == "__main__":
    main()
