from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from practice_imd.config import Sentinels

PRACTICE_COLUMNS = [
    "practice_code",
    "practice_name",
    "postcode",
    "subicb_code",
    "imd_score",
    "imd_decile",
]

PCN_COLUMNS = [
    "pcn_code",
    "pcn_name",
    "postcode",
    "subicb_code",
    "imd_score",
    "imd_decile",
]


def enrich_scores(
    scores: pd.DataFrame,
    directory: pd.DataFrame,
    key: str,
    columns: list[str],
    fill: dict[str, str],
) -> pd.DataFrame:
    """
    Left-join directory metadata onto scored entities.

    Every scored row is kept; metadata the directory does not supply is
    replaced with the values in ``fill``.
    """
    meta_cols = [c for c in columns if c in directory.columns and c != key]
    meta = directory[[key] + meta_cols].drop_duplicates(subset=[key], keep="first")

    out = scores.merge(meta, on=key, how="left")
    for col in columns:
        if col not in out.columns:
            out[col] = None

    missing = out[list(fill)].isna().any(axis=1)
    if missing.any():
        logging.info(f"[ENRICH] {key}: {int(missing.sum())} rows without directory metadata")

    out = out.fillna(value=fill)
    out["imd_decile"] = out["imd_decile"].astype(int)

    return out[columns].sort_values(key).reset_index(drop=True)


def enrich_practice_scores(
    scores: pd.DataFrame,
    practice: pd.DataFrame,
    sentinels: Sentinels = Sentinels(),
) -> pd.DataFrame:
    """Attach practice name, postcode and sub-ICB code."""
    return enrich_scores(
        scores,
        practice,
        key="practice_code",
        columns=PRACTICE_COLUMNS,
        fill={
            "practice_code": sentinels.unknown_label,
            "practice_name": sentinels.unknown_label,
            "postcode": sentinels.unknown_label,
            "subicb_code": sentinels.unknown_code,
        },
    )


def enrich_pcn_scores(
    scores: pd.DataFrame,
    pcn: pd.DataFrame,
    sentinels: Sentinels = Sentinels(),
) -> pd.DataFrame:
    """Attach PCN name, postcode and sub-ICB code."""
    return enrich_scores(
        scores,
        pcn,
        key="pcn_code",
        columns=PCN_COLUMNS,
        fill={
            "pcn_code": sentinels.unknown_label,
            "pcn_name": sentinels.unknown_label,
            "postcode": sentinels.unknown_label,
            "subicb_code": sentinels.unknown_code,
        },
    )


def write_outputs(
    practice_imd: pd.DataFrame,
    pcn_imd: pd.DataFrame,
    out_dir: Path,
) -> tuple[Path, Path]:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    practice_path = out_dir / "practice_imd.csv"
    pcn_path = out_dir / "pcn_imd.csv"

    logging.info(f"[ENRICH] Writing practice IMD table ({len(practice_imd)} rows) → {practice_path}")
    practice_imd.to_csv(practice_path, index=False)
    logging.info(f"[ENRICH] Writing PCN IMD table ({len(pcn_imd)} rows) → {pcn_path}")
    pcn_imd.to_csv(pcn_path, index=False)

    return practice_path, pcn_path
