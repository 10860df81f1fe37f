from __future__ import annotations

import json
import logging
from pathlib import Path

import pandas as pd

from practice_imd.analysis.enrichment import (
    enrich_pcn_scores,
    enrich_practice_scores,
    write_outputs,
)
from practice_imd.config import (
    DATASETS_CONFIG,
    DIAG_FILE,
    OUTPUT_DIR,
    REQUIRED_TABLES,
    ROOT,
    Sentinels,
    load_datasets_config,
    load_sentinels,
    read_registry,
)
from practice_imd.harmonisation.membership import resolve_pcn_population
from practice_imd.ingestion.load_sources import load_all
from practice_imd.scoring.weighted_imd import aggregate_weighted_scores

# Nothing can be scored or named without these
NON_EMPTY_TABLES = ["imd", "practice_popn", "practice"]


def validate_tables(tables: dict[str, pd.DataFrame | None]) -> None:
    """Fail fast when an input table or one of its columns is missing."""
    problems = []
    for name, required_cols in REQUIRED_TABLES.items():
        df = tables.get(name)
        if df is None:
            problems.append(f"missing table '{name}'")
            continue
        missing = [c for c in required_cols if c not in df.columns]
        if missing:
            problems.append(f"table '{name}' missing columns {missing}")
        elif name in NON_EMPTY_TABLES and df.empty:
            problems.append(f"table '{name}' has no rows")

    if problems:
        raise ValueError("Cannot compose IMD tables: " + "; ".join(problems))


def compose(
    tables: dict[str, pd.DataFrame],
    sentinels: Sentinels = Sentinels(),
) -> tuple[pd.DataFrame, pd.DataFrame, dict]:
    """
    Build the practice and PCN level IMD tables from loaded inputs.

    Returns (practice_imd, pcn_imd, diagnostics).
    """
    logging.info("=== ComposerAgent: start composition ===")
    validate_tables(tables)

    imd = tables["imd"]
    practice_popn = tables["practice_popn"]

    logging.info("Resolving PCN membership...")
    pcn_popn = resolve_pcn_population(practice_popn, tables["pcn_member"], sentinels)

    logging.info("Scoring practices...")
    practice_scores, practice_diag = aggregate_weighted_scores(practice_popn, imd, "practice_code")

    logging.info("Scoring PCNs...")
    pcn_scores, pcn_diag = aggregate_weighted_scores(pcn_popn, imd, "pcn_code")

    logging.info("Adding practice and PCN details...")
    practice_imd = enrich_practice_scores(practice_scores, tables["practice"], sentinels)
    pcn_imd = enrich_pcn_scores(pcn_scores, tables["pcn"], sentinels)

    diagnostics = {
        "practice": practice_diag,
        "pcn": pcn_diag,
        "unallocated_pcn_code": sentinels.unallocated_group,
        "unallocated_popn": float(
            pcn_popn.loc[pcn_popn["pcn_code"] == sentinels.unallocated_group, "reg_popn"].sum()
        ),
    }

    logging.info(f"Practice IMD table shape: {practice_imd.shape}")
    logging.info(f"PCN IMD table shape: {pcn_imd.shape}")
    logging.info("=== ComposerAgent finished composition ===")
    return practice_imd, pcn_imd, diagnostics


def run(
    registry_path: Path = DATASETS_CONFIG,
    out_dir: Path = OUTPUT_DIR,
    diag_file: Path = DIAG_FILE,
    root: Path = ROOT,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    doc = read_registry(registry_path)
    sentinels = load_sentinels(doc)
    tables = load_all(load_datasets_config(registry_path), root)

    practice_imd, pcn_imd, diagnostics = compose(tables, sentinels)
    write_outputs(practice_imd, pcn_imd, out_dir)

    diag_file = Path(diag_file)
    diag_file.parent.mkdir(parents=True, exist_ok=True)
    with open(diag_file, "w") as f:
        json.dump(diagnostics, f, indent=2)
    logging.info(f"Diagnostics written → {diag_file}")

    return practice_imd, pcn_imd


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    run()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
