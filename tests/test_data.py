import pandas as pd
import yaml
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
DATA = ROOT / "data" / "ceremonial"


def test_dataset_files_exist():
    for name in ["substances.csv", "legend.yaml", "interactions.csv", "special_notes.yaml"]:
        assert (DATA / name).exists(), f"missing data/ceremonial/{name}"


def test_substances_schema():
    df = pd.read_csv(DATA / "substances.csv", dtype=str, keep_default_na=False)
    for req in ["id", "name", "class", "mechanism_tag", "notes"]:
        assert req in df.columns, f"missing column {req}"
    assert df["id"].is_unique
    assert not df["id"].str.contains("|", regex=False).any()


def test_interactions_reference_known_substances_and_codes():
    subs = pd.read_csv(DATA / "substances.csv", dtype=str, keep_default_na=False)
    inter = pd.read_csv(DATA / "interactions.csv", dtype=str, keep_default_na=False)
    legend = yaml.safe_load((DATA / "legend.yaml").read_text(encoding="utf-8"))
    known = set(subs["id"])
    assert set(inter["a"]) <= known
    assert set(inter["b"]) <= known
    assert set(inter["code"]) <= set(legend)
    assert set(inter["confidence"]) <= {"low", "medium", "high"}


def test_legend_reserved_codes():
    legend = yaml.safe_load((DATA / "legend.yaml").read_text(encoding="utf-8"))
    assert legend["SELF"]["severity_rank"] == -1
    assert legend["UNKNOWN"]["severity_rank"] == 0
