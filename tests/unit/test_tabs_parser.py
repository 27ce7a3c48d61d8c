from __future__ import annotations

import pytest

from client_recon.models.records import SourceVersion
from client_recon.parsing.schemas import (
    V2_SCHEMA,
    V3_SCHEMA,
    V4_SCHEMA,
    FieldKind,
    default_for,
    schema_for,
)
from client_recon.parsing.tabs import is_client_tab, parse_client_tab, parse_version_sheets
from conftest import grid, v2_tab, v3_tab


@pytest.mark.parametrize("name", ["12", "12B", " 7 ", "0 archive", "3-Smith"])
def test_client_tab_names_selected(name):
    assert is_client_tab(name)


@pytest.mark.parametrize("name", ["Summary", "Instructions", "", "  ", "Template 1", "１２"])
def test_non_client_tab_names_rejected(name):
    assert not is_client_tab(name)


def test_schema_tables():
    assert V4_SCHEMA is V3_SCHEMA
    assert schema_for(SourceVersion.V2) is V2_SCHEMA
    assert V2_SCHEMA["last_name"].address == "M7"
    assert V2_SCHEMA["first_name"].address == "N7"
    assert V3_SCHEMA["contract_tax_rate"].kind is FieldKind.NUMBER
    assert "contract_tax_rate" not in V2_SCHEMA
    assert "comments" in V3_SCHEMA and "comments" not in V2_SCHEMA
    with pytest.raises(ValueError):
        schema_for(SourceVersion.LEDGER)


def test_parse_client_tab_reads_every_schema_field():
    sheet = v3_tab("Jane", "Smith", B26="VIP", C20="$12,000")
    rec = parse_client_tab(sheet, "12", SourceVersion.V3)
    assert set(rec.values) == set(V3_SCHEMA)
    assert rec.version is SourceVersion.V3
    assert rec.client_number == "12"
    assert rec.get("first_name") == "Jane"
    assert rec.get("last_name") == "Smith"
    assert rec.get("contract_start_date") == "2024-01-01T00:00:00.000Z"
    assert rec.get("has_roommates") is True
    assert rec.get("total_roommates") == 2.0
    assert rec.get("contract_tax_rate") == pytest.approx(0.07)
    assert rec.get("total_contract_value") == 12000.0
    assert rec.get("comments") == "VIP"


def test_missing_cells_use_typed_defaults():
    rec = parse_client_tab(grid({"M7": "Lee"}), "9", SourceVersion.V2)
    for name, spec in V2_SCHEMA.items():
        if name == "last_name":
            continue
        assert rec.get(name) == default_for(spec.kind), name


def test_v2_layout_differs_from_v3():
    sheet = v2_tab("Ann", "Lee", B4="Friend", D4="Sam")
    rec = parse_client_tab(sheet, "7", SourceVersion.V2)
    assert rec.get("referral_source") == "Friend"
    assert rec.get("sales_rep") == "Sam"
    assert rec.get("liquidation_tax_rate") == pytest.approx(0.06)
    # the same sheet read as V3 looks elsewhere
    as_v3 = parse_client_tab(sheet, "7", SourceVersion.V3)
    assert as_v3.get("referral_source") == ""


def test_parse_version_sheets_filters_tabs_and_nameless_records():
    sheets = {
        "Summary": v3_tab("Not", "AClient"),
        "Instructions": grid({"A1": "help"}),
        "12": v3_tab("Jane", "Smith"),
        "12B": v3_tab("Bob", "Ray"),
        "99": grid({"O7": "template only"}),
    }
    records = parse_version_sheets(sheets, SourceVersion.V4)
    assert [r.tab for r in records] == ["12", "12B"]
    assert all(r.version is SourceVersion.V4 for r in records)
