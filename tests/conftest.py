"""Shared in-memory fixtures for the practice / PCN IMD tests."""

import pandas as pd
import pytest


@pytest.fixture
def imd():
    return pd.DataFrame(
        {
            "lsoa11cd": ["E01000001", "E01000002"],
            "imd_score": [10.0, 40.0],
            "imd_popn": [1500, 1600],
        }
    )


@pytest.fixture
def practice_popn():
    # P3 has no PCN; P2 also has patients in a Welsh LSOA with no IMD score
    return pd.DataFrame(
        {
            "practice_code": ["P1", "P1", "P2", "P2", "P3", "P3"],
            "lsoa11cd": ["E01000001", "E01000002", "E01000001", "W01000001", "E01000002", "E01000001"],
            "reg_popn": [300, 100, 200, 50, 400, 100],
        }
    )


@pytest.fixture
def pcn_member():
    return pd.DataFrame(
        {
            "practice_code": ["P1", "P2"],
            "pcn_code": ["G1", "G1"],
        }
    )


@pytest.fixture
def practice():
    return pd.DataFrame(
        {
            "practice_code": ["P1", "P2", "P3"],
            "practice_name": ["HILLSIDE SURGERY", "RIVERSIDE MEDICAL CENTRE", "THE GREEN PRACTICE"],
            "postcode": ["EX1 1AA", "EX2 2BB", "EX3 3CC"],
            "subicb_code": ["15N", "15N", "11J"],
        }
    )


@pytest.fixture
def pcn():
    return pd.DataFrame(
        {
            "pcn_code": ["G1"],
            "pcn_name": ["EXETER CENTRAL PCN"],
            "subicb_code": ["15N"],
            "postcode": ["EX1 9ZZ"],
        }
    )


@pytest.fixture
def tables(imd, practice_popn, pcn_member, practice, pcn):
    return {
        "imd": imd,
        "practice_popn": practice_popn,
        "pcn_member": pcn_member,
        "practice": practice,
        "pcn": pcn,
    }
