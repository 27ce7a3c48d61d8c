# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from client_recon.excel.cells import resolve
from client_recon.logging.init import reset_logging


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


def grid(cells: Mapping[str, Any], rows: int = 30, cols: int = 26) -> pd.DataFrame:
    """Raw sheet (header=None shape) with the given "A1"-addressed cells filled."""
    data: list[list[Any]] = [[None] * cols for _ in range(rows)]
    for addr, value in cells.items():
        loc = resolve(addr)
        assert loc.is_valid, addr
        data[loc.row][loc.col] = value
    return pd.DataFrame(data, dtype=object)


def write_workbook(path: Path, sheets: Mapping[str, pd.DataFrame]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, df in sheets.items():
            df.to_excel(writer, sheet_name=name, header=False, index=False)
    return path


def v3_tab(first: str, last: str, **extra: Any) -> pd.DataFrame:
    """Client tab in the V3/V4 template."""
    cells = {
        "M7": last,
        "N7": first,
        "O7": "Fort Bragg, NC",
        "P7": 45292,  # 2024-01-01
        "Q7": 45473,  # 2024-06-30
        "T7": f"{first.lower()}.{last.lower()}@example.com",
        "E8": "Active",
        "F8": "Yes",
        "G8": 2,
        "B10": 45292,
        "H17": 0.07,
    }
    cells.update(extra)
    return grid(cells)


def v2_tab(first: str, last: str, **extra: Any) -> pd.DataFrame:
    """Client tab in the V2 template."""
    cells = {
        "M7": last,
        "N7": first,
        "O7": "Norfolk, VA",
        "E8": "Closed",
        "B4": "Referral",
        "G15": 0.06,
    }
    cells.update(extra)
    return grid(cells)


# ledger 既定レイアウト: 月ラベル row 3 (L..), 名前ヘッダ row 4 (D/E), ブロック row 5 から
LEDGER_MONTHS = ("Jan 2024", "Feb 2024")


def ledger_block(start: int, number: Any, first: str, last: str, **extra: Any) -> dict[str, Any]:
    """Cells of one 8-row client block starting at 1-based row `start`."""
    r = start
    cells: dict[str, Any] = {
        f"A{r}": "Sales Notes",
        f"B{r}": number,
        f"C{r}": f"notes for {first}",
        f"D{r}": last,
        f"E{r}": first,
        f"A{r + 1}": "Operations Notes",
        f"C{r + 1}": "ops",
        f"F{r + 2}": "Contract Tax",
        f"G{r + 2}": 0.07,
        f"F{r + 3}": "Payment Type",
        f"G{r + 3}": "ACH",
        # Jan 2024 billing column (L), rows 0..7
        f"L{r}": "Paid",
        f"L{r + 1}": 45306,  # 2024-01-15
        f"L{r + 2}": 1500,
        f"L{r + 3}": 105,
        f"L{r + 4}": 1605,
        f"L{r + 5}": 1605,
        f"L{r + 6}": "Yes",
        f"L{r + 7}": "Yes",
    }
    cells.update(extra)
    return cells


def ledger_sheet(*blocks: Mapping[str, Any], rows: int = 80) -> pd.DataFrame:
    cells: dict[str, Any] = {"L3": LEDGER_MONTHS[0], "M3": LEDGER_MONTHS[1], "D4": "Last", "E4": "First"}
    for block in blocks:
        cells.update(block)
    return grid(cells, rows=rows)


@pytest.fixture()
def sample_workbooks(temp_workdir: Path) -> dict[str, Path]:
    data = temp_workdir / "data"
    return {
        "v2": write_workbook(
            data / "clients_v2.xlsx",
            {"Instructions": grid({"A1": "read me"}), "7": v2_tab("Ann", "Lee")},
        ),
        "v3": write_workbook(
            data / "clients_v3.xlsx",
            {"Summary": grid({"A1": "totals"}), "12": v3_tab("Jane", "Smith"), "12B": v3_tab("Bob", "Ray")},
        ),
        "v4": write_workbook(data / "clients_v4.xlsx", {"30": v3_tab("Jane", "Smith", T7="")}),
        "ledger": write_workbook(
            data / "all_accounts.xlsx",
            {"AllAccounts": ledger_sheet(ledger_block(5, 12, "Jane", "Smith"))},
        ),
    }


@pytest.fixture()
def sample_config_yaml() -> str:
    return """sources:
  v2: data/clients_v2.xlsx
  v3: data/clients_v3.xlsx
  v4: data/clients_v4.xlsx
  ledger: data/all_accounts.xlsx
export_path: out/clients.csv
persistence:
  table: clients
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "recon.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg
