import json

import pandas as pd
import pytest
import yaml

from practice_imd.agents.composer_agent import compose, run, validate_tables
from practice_imd.ingestion.load_sources import normalise_types


def test_end_to_end_scores(tables):
    practice_imd, pcn_imd, _ = compose(tables)

    practice = practice_imd.set_index("practice_code")
    assert practice.loc["P1", "imd_score"] == pytest.approx(17.5)
    assert practice.loc["P2", "imd_score"] == pytest.approx(10.0)
    assert practice.loc["P3", "imd_score"] == pytest.approx(34.0)
    assert practice["imd_decile"].to_dict() == {"P1": 2, "P2": 3, "P3": 1}

    pcn = pcn_imd.set_index("pcn_code")
    assert pcn.loc["G1", "imd_score"] == pytest.approx((500 * 10 + 100 * 40) / 600)
    assert pcn.loc["U", "imd_score"] == pytest.approx(34.0)
    assert pcn.loc["U", "pcn_name"] == "Unknown"
    assert pcn.loc["U", "subicb_code"] == "UNK"


def test_unallocated_only_at_pcn_level(tables):
    practice_imd, pcn_imd, _ = compose(tables)

    assert "U" not in set(practice_imd["practice_code"])
    assert "U" in set(pcn_imd["pcn_code"])


def test_diagnostics_report_excluded_population(tables):
    _, _, diagnostics = compose(tables)

    assert diagnostics["practice"]["excluded_popn"] == 50
    assert diagnostics["pcn"]["excluded_popn"] == 50
    assert diagnostics["unallocated_popn"] == 500
    json.dumps(diagnostics)


def test_practice_missing_from_directory_keeps_score(tables):
    tables["practice"] = tables["practice"][tables["practice"]["practice_code"] != "P3"]

    practice_imd, _, _ = compose(tables)

    p3 = practice_imd.set_index("practice_code").loc["P3"]
    assert (p3["practice_name"], p3["postcode"], p3["subicb_code"]) == ("Unknown", "Unknown", "UNK")
    assert p3["imd_decile"] == 1


def test_missing_table_fails_fast(tables):
    del tables["pcn_member"]
    tables["imd"] = None

    with pytest.raises(ValueError, match="pcn_member") as excinfo:
        validate_tables(tables)
    assert "'imd'" in str(excinfo.value)


def test_missing_column_fails_fast(tables):
    tables["practice_popn"] = tables["practice_popn"].drop(columns=["reg_popn"])

    with pytest.raises(ValueError, match="reg_popn"):
        compose(tables)


def _write_sources(root, tables):
    data = root / "data"
    data.mkdir()
    tables["imd"].to_csv(data / "imd.csv", index=False)
    tables["practice_popn"].to_csv(data / "popn.csv", index=False)
    tables["practice"].to_csv(data / "practice.csv", index=False)
    tables["pcn"].to_csv(data / "pcn.csv", index=False)
    tables["pcn_member"].to_csv(data / "members.csv", index=False)

    registry = {
        "datasets": {
            "imd": {"path": "data/imd.csv", "names": ["lsoa11cd", "imd_score", "imd_popn"]},
            "practice_popn": {"path": "data/popn.csv", "names": ["practice_code", "lsoa11cd", "reg_popn"]},
            "practice": {"path": "data/practice.csv", "names": ["practice_code", "practice_name", "postcode", "subicb_code"]},
            "pcn": {"path": "data/pcn.csv", "names": ["pcn_code", "pcn_name", "subicb_code", "postcode"]},
            "pcn_member": {"path": "data/members.csv", "names": ["practice_code", "pcn_code"]},
        },
        "sentinels": {"unallocated_group": "U"},
    }
    registry_path = root / "datasets.yaml"
    registry_path.write_text(yaml.safe_dump(registry))
    return registry_path


def test_run_is_idempotent(tmp_path, tables):
    registry_path = _write_sources(tmp_path, tables)

    outputs = []
    for i in range(2):
        out_dir = tmp_path / f"out{i}"
        run(registry_path, out_dir, out_dir / "diagnostics" / "report.json", root=tmp_path)
        outputs.append(((out_dir / "practice_imd.csv").read_bytes(), (out_dir / "pcn_imd.csv").read_bytes()))

    assert outputs[0] == outputs[1]
    practice = pd.read_csv(tmp_path / "out0" / "practice_imd.csv")
    assert practice["practice_code"].tolist() == ["P1", "P2", "P3"]
    report = json.loads((tmp_path / "out0" / "diagnostics" / "report.json").read_text())
    assert report["practice"]["excluded_popn"] == 50


def test_run_missing_source_file(tmp_path, tables):
    registry_path = _write_sources(tmp_path, tables)
    (tmp_path / "data" / "members.csv").unlink()

    with pytest.raises(FileNotFoundError, match="pcn_member"):
        run(registry_path, tmp_path / "out", tmp_path / "out" / "report.json", root=tmp_path)


def test_all_imd_scores_unreadable_fails_fast(tables):
    tables["imd"] = normalise_types(
        "imd",
        pd.DataFrame({"lsoa11cd": ["E01000001", "E01000002"], "imd_score": ["Hartlepool", "Leeds"]}),
    )

    with pytest.raises(ValueError, match="'imd' has no rows"):
        compose(tables)


def test_empty_practice_population_fails_fast(tables):
    tables["practice_popn"] = tables["practice_popn"].iloc[0:0]

    with pytest.raises(ValueError, match="'practice_popn' has no rows"):
        validate_tables(tables)


def test_empty_pcn_membership_is_allowed(tables):
    tables["pcn_member"] = tables["pcn_member"].iloc[0:0]

    _, pcn_imd, _ = compose(tables)

    assert pcn_imd["pcn_code"].tolist() == ["U"]
