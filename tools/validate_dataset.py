#!/usr/bin/env python3
"""Report every integrity problem in a dataset directory.

Loading a dataset stops at the first broken rule; this walks the raw files and
prints all of them, then runs the real loader as a final check.

Usage:
    python tools/validate_dataset.py [data/ceremonial]
"""
from __future__ import annotations
import sys, yaml, pandas as pd
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.dataset import CONFIDENCE_LEVELS, DatasetError, RESERVED_CODES, load_dataset, pair_key
from backend.resolver import ACTIONS_BY_RANK, InteractionResolver


def main(data_dir="data/ceremonial") -> int:
    base = Path(data_dir)
    subs_csv, legend_yml, inter_csv = base/"substances.csv", base/"legend.yaml", base/"interactions.csv"
    for p in (subs_csv, legend_yml, inter_csv):
        if not p.exists():
            print(f"[err] missing {p}")
            return 1

    subs = pd.read_csv(subs_csv, dtype=str, keep_default_na=False)
    legend = yaml.safe_load(open(legend_yml, "r", encoding="utf-8")) or {}
    inter = pd.read_csv(inter_csv, dtype=str, keep_default_na=False)
    errs = 0

    ids = subs["id"].str.strip()
    for dup in sorted(set(ids[ids.duplicated()])):
        print(f"[err] substances.csv: duplicate id '{dup}'"); errs += 1
    known = set(ids)

    for code in RESERVED_CODES:
        if code not in legend:
            print(f"[err] legend.yaml: reserved code '{code}' missing"); errs += 1
    for code, entry in legend.items():
        rank = (entry or {}).get("severity_rank")
        if rank not in ACTIONS_BY_RANK:
            print(f"[err] legend.yaml: {code} severity_rank {rank!r} has no action guidance"); errs += 1

    seen = set()
    for n, row in enumerate(inter.to_dict(orient="records"), start=2):
        a, b = row.get("a", "").strip(), row.get("b", "").strip()
        for side in (a, b):
            if side not in known:
                print(f"[err] interactions.csv:{n}: '{side}' not in substances.csv"); errs += 1
        key = pair_key(a, b)
        if key in seen:
            print(f"[err] interactions.csv:{n}: duplicate pair {key}"); errs += 1
        seen.add(key)
        if row.get("code") not in legend:
            print(f"[err] interactions.csv:{n}: code '{row.get('code')}' not in legend.yaml"); errs += 1
        conf = row.get("confidence", "").strip().lower()
        if conf not in CONFIDENCE_LEVELS:
            print(f"[warn] interactions.csv:{n}: unusual confidence '{conf}'")

    if errs == 0:
        try:
            dataset = load_dataset(base)
            InteractionResolver(dataset)
        except (DatasetError, FileNotFoundError) as exc:
            print(f"[err] {exc}"); errs += 1
        else:
            print(f"[ok] {base}: {len(known)} substances, {dataset.interaction_count} interactions")
    return 0 if errs == 0 else 2


if __name__ == "__main__":
    raise SystemExit(main(*(sys.argv[1:2])))
