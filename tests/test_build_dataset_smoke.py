import json
import subprocess
import sys
from pathlib import Path

import pandas as pd

from conftest import make_raw_incidents


def _run(repo_root: Path, script: str, *args: str) -> None:
    cmd = [sys.executable, str(repo_root / "scripts" / script), *args]
    subprocess.run(cmd, cwd=repo_root, check=True)


def test_pipeline_smoke(tmp_path: Path):
    repo_root = Path(__file__).resolve().parents[1]

    raw_csv = tmp_path / "bikemaps_incidents.csv"
    make_raw_incidents(n=600, seed=5).to_csv(raw_csv, index=False)

    audit_dir = tmp_path / "audit"
    out_parquet = tmp_path / "bikemaps_modeling.parquet"
    audit_csv = tmp_path / "modeling_table_audit.csv"
    missingness_csv = tmp_path / "missingness_selected.csv"
    decisions_json = tmp_path / "decisions.json"
    splits_dir = tmp_path / "splits"
    outputs = tmp_path / "outputs"

    _run(repo_root, "00_schema_audit.py", "--input", str(raw_csv), "--outdir", str(audit_dir))
    assert (audit_dir / "schema_raw.csv").exists()
    assert (audit_dir / "value_counts_raw_injury.csv").exists()

    _run(
        repo_root,
        "01_build_dataset.py",
        "--input",
        str(raw_csv),
        "--out-parquet",
        str(out_parquet),
        "--audit-csv",
        str(audit_csv),
        "--missingness-csv",
        str(missingness_csv),
        "--decisions-json",
        str(decisions_json),
    )

    df = pd.read_parquet(out_parquet)
    assert df.columns[0] == "injury_level"
    assert set(df["injury_level"].astype(str)) == {"injured", "not_injured"}
    assert "personal_involvement" not in df.columns
    assert all(isinstance(df[c].dtype, pd.CategoricalDtype) for c in df.columns)

    payload = json.loads(decisions_json.read_text(encoding="utf-8"))
    assert payload["columns"]["target"] == "injury_level"
    assert payload["modeling_rows"] == len(df)
    assert [s["stage"] for s in payload["stages"]][-1] == "drop_unknown_outcome"
    assert audit_csv.exists()
    assert missingness_csv.exists()

    _run(
        repo_root,
        "02_make_splits.py",
        "--input",
        str(out_parquet),
        "--outdir",
        str(splits_dir),
        "--log-dir",
        str(tmp_path / "logs"),
    )
    partitions_csv = splits_dir / "partitions_seed3435.csv"
    partitions = pd.read_csv(partitions_csv)
    assert partitions["row_id"].tolist() == list(range(len(df)))
    assert set(partitions.loc[partitions["partition"] == "train", "fold"]) == {1, 2, 3, 4, 5}

    _run(
        repo_root,
        "03_train_models.py",
        "--input",
        str(out_parquet),
        "--partitions",
        str(partitions_csv),
        "--outdir",
        str(outputs),
        "--model",
        "all",
        "--quick",
        "--imputer-trees",
        "5",
    )
    summary = pd.read_csv(outputs / "tables" / "results_summary_seed3435.csv")
    assert summary["model"].tolist() == ["knn", "logreg", "elastic_net", "random_forest"]
    assert summary["test_roc_auc"].between(0, 1).all()
    assert (outputs / "metrics" / "cv_results_seed3435_knn.csv").exists()
    assert (outputs / "logs" / "train_seed3435.json").exists()


def test_build_writes_nothing_when_parquet_write_fails(tmp_path: Path):
    repo_root = Path(__file__).resolve().parents[1]

    raw_csv = tmp_path / "bikemaps_incidents.csv"
    make_raw_incidents(n=200, seed=2).to_csv(raw_csv, index=False)
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    missingness_csv = tmp_path / "missingness_selected.csv"
    decisions_json = tmp_path / "decisions.json"
    audit_csv = tmp_path / "modeling_table_audit.csv"

    cmd = [
        sys.executable,
        str(repo_root / "scripts" / "01_build_dataset.py"),
        "--input",
        str(raw_csv),
        "--out-parquet",
        str(blocker / "bikemaps_modeling.parquet"),
        "--audit-csv",
        str(audit_csv),
        "--missingness-csv",
        str(missingness_csv),
        "--decisions-json",
        str(decisions_json),
    ]
    proc = subprocess.run(cmd, cwd=repo_root, capture_output=True, text=True)

    assert proc.returncode != 0
    assert "Could not write" in proc.stderr
    assert not missingness_csv.exists()
    assert not decisions_json.exists()
    assert not audit_csv.exists()
