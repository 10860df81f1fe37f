from __future__ import annotations

import logging

import numpy as np
import pandas as pd


N_DECILES = 10


def assign_ntile(n: int, buckets: int = N_DECILES) -> np.ndarray:
    """
    Bucket numbers (1-based) for rank positions 0..n-1.

    Buckets are contiguous and as equal in size as possible; when n does not
    divide evenly the first n % buckets buckets take one extra member.
    """
    if buckets < 1:
        raise ValueError("buckets must be at least 1")
    positions = np.arange(n)
    base, rem = divmod(n, buckets)
    big = base + 1
    threshold = rem * big
    return np.where(
        positions < threshold,
        positions // big + 1,
        rem + (positions - threshold) // max(base, 1) + 1,
    ).astype(int)


def ntile_desc(scores: pd.DataFrame, entity_col: str, buckets: int = N_DECILES) -> pd.Series:
    """
    Decile per row, highest ``imd_score`` in decile 1.

    Equal scores are ordered by entity code so the assignment is repeatable.
    """
    ranked = scores.sort_values(
        ["imd_score", entity_col], ascending=[False, True], kind="mergesort"
    )
    deciles = pd.Series(assign_ntile(len(ranked), buckets), index=ranked.index)
    return deciles.reindex(scores.index)


def _unique_imd(imd: pd.DataFrame) -> pd.DataFrame:
    imd = imd[["lsoa11cd", "imd_score"]].dropna(subset=["lsoa11cd", "imd_score"])
    duplicated = imd["lsoa11cd"].duplicated(keep="first")
    if duplicated.any():
        logging.warning(f"[SCORING] {int(duplicated.sum())} duplicate LSOA codes in IMD table; keeping first")
        imd = imd[~duplicated]
    return imd


def aggregate_weighted_scores(
    popn: pd.DataFrame,
    imd: pd.DataFrame,
    entity_col: str,
) -> tuple[pd.DataFrame, dict]:
    """
    Population-weighted IMD score and decile per entity.

    Inputs (expected columns)
    -------------------------
    popn:
        <entity_col>, lsoa11cd, reg_popn
    imd:
        lsoa11cd, imd_score

    Rows whose LSOA has no IMD score (unknown codes such as 'NO2011', Welsh
    'W*' LSOAs) are excluded from both the population and the weighted sum.
    Entities left with no population get no record.

    Output
    ------
    DataFrame with columns:
        <entity_col>, imd_score, imd_decile
    and a diagnostics dict describing the excluded population.
    """
    imd = _unique_imd(imd)
    popn = popn[[entity_col, "lsoa11cd", "reg_popn"]]

    matched = popn.merge(imd, on="lsoa11cd", how="inner")
    matched["popn_weighted_imd_score"] = matched["imd_score"] * matched["reg_popn"]

    totals = (
        matched.groupby(entity_col, as_index=False, sort=True)
        .agg(
            entity_popn=("reg_popn", "sum"),
            popn_weighted_imd_score=("popn_weighted_imd_score", "sum"),
        )
    )
    totals = totals[totals["entity_popn"] > 0]

    scores = pd.DataFrame(
        {
            entity_col: totals[entity_col].to_numpy(),
            "imd_score": (totals["popn_weighted_imd_score"] / totals["entity_popn"]).to_numpy(),
        }
    )
    scores["imd_decile"] = ntile_desc(scores, entity_col).astype(int)

    unmatched = ~popn["lsoa11cd"].isin(imd["lsoa11cd"])
    unscored = sorted(set(popn[entity_col].dropna()) - set(scores[entity_col]))
    diagnostics = {
        "entity": entity_col,
        "input_rows": int(len(popn)),
        "input_popn": float(popn["reg_popn"].sum()),
        "excluded_rows": int(unmatched.sum()),
        "excluded_popn": float(popn.loc[unmatched, "reg_popn"].sum()),
        "unmatched_lsoa_examples": sorted(popn.loc[unmatched, "lsoa11cd"].dropna().astype(str).unique())[:20],
        "entities_scored": int(len(scores)),
        "entities_without_score": len(unscored),
        "entities_without_score_examples": [str(c) for c in unscored[:20]],
    }

    if diagnostics["excluded_popn"] > 0:
        logging.warning(
            f"[SCORING] {entity_col}: excluded population {diagnostics['excluded_popn']:.0f} "
            f"in {diagnostics['excluded_rows']} rows with no IMD match"
        )
    logging.info(f"[SCORING] {entity_col}: scored {len(scores)} entities")

    return scores, diagnostics
