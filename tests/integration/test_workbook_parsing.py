from __future__ import annotations

from pathlib import Path

import pytest

from client_recon.excel.reader import StructuralParseError, read_workbook, sheet_names
from client_recon.models.records import SourceVersion
from client_recon.parsing.ledger import parse_ledger_source
from client_recon.parsing.tabs import parse_version_source
from conftest import grid, ledger_block, ledger_sheet, v3_tab, write_workbook

"""Parsing real .xlsx bytes written with openpyxl."""


def test_version_source_selects_client_tabs(temp_workdir: Path):
    path = write_workbook(
        temp_workdir / "data" / "v3.xlsx",
        {
            "Instructions": grid({"A1": "how to"}),
            "12": v3_tab("Jane", "Smith"),
            "Summary": grid({"M7": "Totals", "N7": "All"}),
            "12B": v3_tab("Bob", "Ray"),
        },
    )
    records = parse_version_source(path.read_bytes(), SourceVersion.V3)
    assert [r.tab for r in records] == ["12", "12B"]
    jane = records[0]
    assert jane.get("contract_start_date") == "2024-01-01T00:00:00.000Z"
    assert jane.get("contract_end_date") == "2024-06-30T00:00:00.000Z"
    assert jane.get("email") == "jane.smith@example.com"
    assert jane.get("total_roommates") == 2.0


def test_na_like_text_is_kept(temp_workdir: Path):
    path = write_workbook(temp_workdir / "data" / "v4.xlsx", {"5": v3_tab("Jane", "Smith", R7="NA", S7="None")})
    [rec] = parse_version_source(path.read_bytes(), SourceVersion.V4)
    assert rec.get("gov_agency_or_dept") == "NA"
    assert rec.get("cell") == "None"


def test_ledger_source_roundtrip_with_gap(temp_workdir: Path):
    sheet = ledger_sheet(ledger_block(5, 1, "Ann", "Lee"), ledger_block(18, 2, "Bob", "Ray"))
    path = write_workbook(temp_workdir / "data" / "ledger.xlsx", {"Notes": grid({"A1": "x"}), "AllAccounts": sheet})
    records = parse_ledger_source(path.read_bytes())
    assert [(r.label, r.first_name) for r in records] == [("1", "Ann"), ("2", "Bob")]
    jan = records[0].billing_details["Jan 2024"]
    assert jan.due_date == "2024-01-15T00:00:00.000Z"
    assert jan.total_bill == 1605.0


def test_ledger_sheet_missing_is_structural_error(temp_workdir: Path):
    path = write_workbook(temp_workdir / "data" / "ledger.xlsx", {"Sheet1": grid({"A1": "x"})})
    with pytest.raises(StructuralParseError) as exc:
        parse_ledger_source(path.read_bytes())
    assert exc.value.source == "ledger"
    assert "AllAccounts" in exc.value.message


@pytest.mark.parametrize("data", [b"", b"not a workbook at all"])
def test_unreadable_workbook(data):
    with pytest.raises(StructuralParseError):
        parse_version_source(data, SourceVersion.V2)
    with pytest.raises(StructuralParseError):
        read_workbook(data, "v2")


def test_sheet_names_in_workbook_order(temp_workdir: Path):
    path = write_workbook(temp_workdir / "data" / "x.xlsx", {"b": grid({"A1": 1}), "a": grid({"A1": 2})})
    assert sheet_names(path.read_bytes()) == ["b", "a"]
