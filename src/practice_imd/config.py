from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# Paths
ROOT = Path(__file__).resolve().parents[2]
DATASETS_CONFIG = ROOT / "config" / "datasets.yaml"
OUTPUT_DIR = ROOT / "outputs"
DIAG_FILE = OUTPUT_DIR / "diagnostics" / "imd_report.json"

# Tables the run cannot proceed without, with the columns each must carry
REQUIRED_TABLES = {
    "imd": ["lsoa11cd", "imd_score"],
    "practice_popn": ["practice_code", "lsoa11cd", "reg_popn"],
    "practice": ["practice_code", "practice_name", "postcode", "subicb_code"],
    "pcn": ["pcn_code", "pcn_name", "postcode", "subicb_code"],
    "pcn_member": ["practice_code", "pcn_code"],
}


@dataclass(frozen=True)
class Sentinels:
    """Reserved codes substituted for missing memberships and metadata."""

    unallocated_group: str = "U"
    unknown_label: str = "Unknown"
    unknown_code: str = "UNK"


def read_registry(path: Path | None = None) -> dict:
    """Read the raw YAML registry document."""
    path = Path(path) if path is not None else DATASETS_CONFIG
    if not path.exists():
        raise FileNotFoundError(f"Dataset registry not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_datasets_config(path: Path | None = None) -> dict:
    """Load the datasets registry from YAML."""
    doc = read_registry(path)
    # either {datasets: {...}} or direct mapping
    return doc.get("datasets", doc)


def get_dataset_config(datasets_cfg: dict, key: str) -> dict:
    """Return the config block for one dataset key."""
    try:
        return datasets_cfg[key]
    except KeyError:
        raise KeyError(
            f"Dataset '{key}' not found in the dataset registry"
        )


def load_sentinels(doc: dict | None = None) -> Sentinels:
    """
    Build the sentinel codes, applying any overrides from a ``sentinels:``
    block of the registry document.
    """
    overrides = (doc or {}).get("sentinels") or {}
    unknown = set(overrides) - set(Sentinels.__dataclass_fields__)
    if unknown:
        raise ValueError(f"Unknown sentinel keys: {sorted(unknown)}")
    empty = [k for k, v in overrides.items() if v is None]
    if empty:
        raise ValueError(f"Sentinel keys without a value: {sorted(empty)}")

    sentinels = Sentinels(**{k: str(v) for k, v in overrides.items()})
    if not sentinels.unallocated_group.strip():
        raise ValueError("The unallocated PCN code must not be empty")
    return sentinels
