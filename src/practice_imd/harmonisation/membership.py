from __future__ import annotations

import logging

import pandas as pd

from practice_imd.config import Sentinels


def resolve_pcn_population(
    practice_popn: pd.DataFrame,
    pcn_member: pd.DataFrame,
    sentinels: Sentinels = Sentinels(),
) -> pd.DataFrame:
    """
    Fold practice-by-LSOA registrations up to PCN-by-LSOA.

    Inputs (expected columns)
    -------------------------
    practice_popn:
        practice_code, lsoa11cd, reg_popn
    pcn_member:
        practice_code, pcn_code (active memberships only)

    Practices without an active membership are assigned the unallocated
    PCN code, so the total registered population is unchanged.

    Output
    ------
    DataFrame with one row per (pcn_code, lsoa11cd):
        pcn_code, lsoa11cd, reg_popn
    """
    members = pcn_member[["practice_code", "pcn_code"]].dropna(subset=["practice_code"])

    if (members["pcn_code"] == sentinels.unallocated_group).any():
        raise ValueError(
            f"Unallocated PCN code '{sentinels.unallocated_group}' is also a real PCN code "
            "in the membership table; choose a different sentinel"
        )

    duplicated = members["practice_code"].duplicated(keep="first")
    if duplicated.any():
        codes = sorted(members.loc[duplicated, "practice_code"].unique())
        logging.warning(
            f"[MEMBERSHIP] {len(codes)} practices have more than one active PCN; "
            f"using the first listed (e.g. {codes[:5]})"
        )
        members = members[~duplicated]

    merged = practice_popn[["practice_code", "lsoa11cd", "reg_popn"]].merge(
        members,
        on="practice_code",
        how="left",
    )
    merged["pcn_code"] = merged["pcn_code"].fillna(sentinels.unallocated_group)

    unallocated = merged.loc[merged["pcn_code"] == sentinels.unallocated_group, "practice_code"].nunique()
    logging.info(
        f"[MEMBERSHIP] {unallocated} practices assigned to unallocated PCN "
        f"'{sentinels.unallocated_group}'"
    )

    pcn_popn = (
        merged.groupby(["pcn_code", "lsoa11cd"], as_index=False, sort=True, dropna=False)["reg_popn"]
        .sum()
    )

    logging.info(f"[MEMBERSHIP] PCN-LSOA population table shape: {pcn_popn.shape}")
    return pcn_popn
