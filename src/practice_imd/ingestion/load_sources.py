from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from practice_imd.config import REQUIRED_TABLES, ROOT, get_dataset_config

CODE_COLUMNS = ["lsoa11cd", "practice_code", "pcn_code", "subicb_code"]
NUMERIC_COLUMNS = ["imd_score", "imd_popn", "reg_popn"]


def read_raw(key: str, cfg: dict, root: Path = ROOT) -> pd.DataFrame:
    """
    Read one raw source according to its registry block.

    Only the loader, sheet and header settings are applied here; column
    selection and filtering happen in ``select_columns`` / ``apply_filters``.
    """
    loader = cfg.get("loader", "csv")
    path_str = cfg.get("path")
    if not path_str:
        raise ValueError(f"{key} config must contain a 'path' field")

    raw_path = Path(root) / path_str
    if not raw_path.exists():
        raise FileNotFoundError(f"Raw file for '{key}' not found at {raw_path}")

    header = 0 if cfg.get("header", True) else None

    logging.info(f"[INGEST] Reading {key} ({loader}) from: {raw_path}")
    if loader == "csv":
        df = pd.read_csv(raw_path, header=header, dtype=str, keep_default_na=True)
    elif loader == "excel":
        df = pd.read_excel(
            raw_path,
            sheet_name=cfg.get("sheet", 0),
            header=header,
            dtype=str,
        )
    else:
        raise ValueError(
            f"Expected loader='csv' or 'excel' for {key}, found loader={loader!r}"
        )

    logging.info(f"[INGEST] {key} loaded shape: {df.shape[0]} rows x {df.shape[1]} columns")
    return df


def select_columns(key: str, df: pd.DataFrame, cfg: dict) -> pd.DataFrame:
    """Pick columns by position and give them their canonical names."""
    columns = cfg.get("columns")
    names = cfg.get("names")
    if columns is None:
        if names is None:
            return df.copy()
        columns = list(range(len(names)))
    if names is None or len(names) != len(columns):
        raise ValueError(
            f"{key} config must give one name per selected column "
            f"(columns={columns}, names={names})"
        )

    out_of_range = [c for c in columns if c >= df.shape[1]]
    if out_of_range:
        raise ValueError(
            f"{key} has {df.shape[1]} columns; cannot select {out_of_range}"
        )

    out = df.iloc[:, list(columns)].copy()
    out.columns = list(names)
    return out


def _is_blank(series: pd.Series) -> pd.Series:
    return series.isna() | (series.astype(str).str.strip() == "")


def apply_filters(key: str, df: pd.DataFrame, cfg: dict) -> pd.DataFrame:
    """Keep active rows only, then drop the columns used to decide that."""
    filters = cfg.get("filters") or {}
    mask = pd.Series(True, index=df.index)

    for col, value in (filters.get("equals") or {}).items():
        if col not in df.columns:
            raise ValueError(f"{key} filter column not selected: {col}")
        mask &= df[col].astype(str).str.strip() == str(value).strip()

    for col in filters.get("is_null") or []:
        if col not in df.columns:
            raise ValueError(f"{key} filter column not selected: {col}")
        mask &= _is_blank(df[col])

    out = df[mask].drop(columns=cfg.get("drop") or [], errors="ignore")
    if len(out) != len(df):
        logging.info(f"[INGEST] {key}: kept {len(out)} of {len(df)} rows after filters")
    return out.reset_index(drop=True)


def normalise_types(key: str, df: pd.DataFrame) -> pd.DataFrame:
    """Strip code columns and coerce counts and scores to numbers."""
    df = df.copy()
    for col in CODE_COLUMNS:
        if col in df.columns:
            df[col] = df[col].where(df[col].isna(), df[col].astype(str).str.strip())

    for col in NUMERIC_COLUMNS:
        if col in df.columns:
            df[col] = pd.to_numeric(df[col], errors="coerce")

    if "imd_score" in df.columns:
        bad = df["imd_score"].isna()
        if bad.any():
            logging.warning(f"[INGEST] {key}: dropping {int(bad.sum())} rows with a non-numeric IMD score")
            df = df[~bad].reset_index(drop=True)

    if "reg_popn" in df.columns:
        df["reg_popn"] = df["reg_popn"].fillna(0)

    return df


def load_dataset(key: str, datasets_cfg: dict, root: Path = ROOT) -> pd.DataFrame:
    cfg = get_dataset_config(datasets_cfg, key)
    df = read_raw(key, cfg, root)
    df = select_columns(key, df, cfg)
    df = apply_filters(key, df, cfg)
    return normalise_types(key, df)


def load_all(datasets_cfg: dict, root: Path = ROOT) -> dict[str, pd.DataFrame]:
    """Load every table the run needs, keyed by registry name."""
    return {key: load_dataset(key, datasets_cfg, root) for key in REQUIRED_TABLES}
