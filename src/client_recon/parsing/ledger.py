from __future__ import annotations

import logging
import numbers
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

import pandas as pd

from ..excel.cells import cell_value, column_index, number_of, text_of
from ..excel.dates import normalize_date
from ..excel.reader import StructuralParseError, read_workbook
from ..models.config_models import LedgerLayout
from ..models.records import BILLING_SUBFIELDS, LedgerRecord, MonthlyBillingEntry

"""Block scanner for the consolidated accounting ledger (AllAccounts sheet).

Sheet layout (defaults, see LedgerLayout):

    row 3          month labels across L..W
    rows 1-50      somewhere: a header row with "Last" / "First" columns
    row 5 onwards  one 8-row block per client, stacked at an 8-row stride

Block rows map positionally to the billing sub-fields
(payment_status, due_date, bill, tax, total_bill, paid, signed, invoiced),
each read across the month columns. Columns A..C are the identity columns
(row label, client number, notes); label cells such as "Contract Tax" or
"Payment Type" carry their value in the next cell to the right. Names and the
billing address are read down the columns of their header cells
("Last" / "First", "Billing Address" / "Bill City" / "Bill State" / "Bill Zip").

Hand-maintained ledgers contain hidden or deleted rows, so blocks do not always
sit on the stride. find_next_block_row is the single bounded search that
re-aligns on the next populated row; when nothing turns up inside the window
the scan ends (normal end of data).
"""

__all__ = [
    "LOOKAHEAD_ROWS",
    "BLOCK_ROWS",
    "find_name_columns",
    "find_address_columns",
    "read_month_labels",
    "find_next_block_row",
    "extract_block",
    "parse_ledger_sheet",
    "parse_ledger_source",
]

logger = logging.getLogger(__name__)

LOOKAHEAD_ROWS = LedgerLayout.lookahead_rows
BLOCK_ROWS = LedgerLayout.block_height

_NOTES_LABELS = {
    "sales notes": "sales_notes",
    "operations notes": "operations_notes",
    "accounting notes": "accounting_notes",
}
_FIRST_HEADERS = frozenset({"first", "first name"})
_LAST_HEADERS = frozenset({"last", "last name"})
_ADDRESS_HEADERS = {
    "billing address": "billing_address",
    "bill city": "billing_city",
    "bill state": "billing_state",
    "bill zip": "billing_zip",
}
_IDENTIFIER_TEXT_RE = re.compile(r"^\d+(\.0+)?$")


@dataclass(frozen=True)
class _Grid:
    """LedgerLayout resolved to zero-based indices."""
    header_scan_rows: int
    month_row: int
    month_cols: tuple[int, ...]
    first_block_row: int
    height: int
    identity_cols: tuple[int, ...]
    label_col: int
    identifier_col: int
    notes_col: int
    lookahead: int

    @classmethod
    def from_layout(cls, layout: LedgerLayout) -> _Grid:
        first = column_index(layout.month_first_column)
        last = column_index(layout.month_last_column)
        if first < 0 or last < first:
            raise ValueError(
                f"invalid month column span {layout.month_first_column}..{layout.month_last_column}"
            )
        return cls(
            header_scan_rows=layout.header_scan_rows,
            month_row=layout.month_header_row - 1,
            month_cols=tuple(range(first, last + 1)),
            first_block_row=layout.first_block_row - 1,
            height=layout.block_height,
            identity_cols=tuple(column_index(c) for c in layout.identity_columns),
            label_col=column_index(layout.label_column),
            identifier_col=column_index(layout.identifier_column),
            notes_col=column_index(layout.notes_column),
            lookahead=layout.lookahead_rows,
        )


def _grid(layout: LedgerLayout | _Grid | None) -> _Grid:
    if isinstance(layout, _Grid):
        return layout
    return _Grid.from_layout(layout or LedgerLayout())


def _header_key(value: Any) -> str:
    return " ".join(text_of(value).lower().split())


def find_name_columns(sheet: pd.DataFrame, layout: LedgerLayout | _Grid | None = None) -> tuple[int, int] | None:
    """(first_col, last_col) of the first row holding both name headers, or None.

    Header cells must match as a whole ("First", "First Name", ...) so note
    text such as "Last payment late" is never taken for a header.
    """
    grid = _grid(layout)
    n_rows, n_cols = sheet.shape
    for r in range(min(grid.header_scan_rows, n_rows)):
        first_col = last_col = -1
        for c in range(n_cols):
            key = _header_key(cell_value(sheet, r, c))
            if first_col < 0 and key in _FIRST_HEADERS:
                first_col = c
            elif last_col < 0 and key in _LAST_HEADERS:
                last_col = c
        if first_col >= 0 and last_col >= 0:
            return first_col, last_col
    return None


def find_address_columns(sheet: pd.DataFrame, layout: LedgerLayout | _Grid | None = None) -> dict[str, int]:
    """Billing address field -> column of its header cell (first occurrence in the header scan rows)."""
    grid = _grid(layout)
    n_rows, n_cols = sheet.shape
    columns: dict[str, int] = {}
    for r in range(min(grid.header_scan_rows, n_rows)):
        for c in range(n_cols):
            name = _ADDRESS_HEADERS.get(_header_key(cell_value(sheet, r, c)))
            if name is not None and name not in columns:
                columns[name] = c
        if len(columns) == len(_ADDRESS_HEADERS):
            break
    return columns


def _month_label(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return f"{value:%b %Y}"
    return text_of(value)


def read_month_labels(sheet: pd.DataFrame, layout: LedgerLayout | _Grid | None = None) -> list[str]:
    """Month labels across the month column span; blanks kept as "" positionally."""
    grid = _grid(layout)
    return [_month_label(cell_value(sheet, grid.month_row, c)) for c in grid.month_cols]


def _row_has_identity(sheet: pd.DataFrame, row: int, grid: _Grid) -> bool:
    return any(cell_value(sheet, row, c) is not None for c in grid.identity_cols)


def find_next_block_row(sheet: pd.DataFrame, start: int, layout: LedgerLayout | _Grid | None = None) -> int | None:
    """First row of the next populated block, searching at most the lookahead window.

    `start` is the fixed-stride position. A block is populated iff one of its
    rows has content in an identity column; the search returns the first such
    row so a block displaced by hidden / deleted rows is re-aligned on it.
    Returns None when the window (stride position + lookahead rows) is empty.
    """
    grid = _grid(layout)
    n_rows = sheet.shape[0]
    window = max(grid.lookahead, grid.height - 1)
    stop = min(start + window, n_rows - 1)
    for r in range(max(start, 0), stop + 1):
        if _row_has_identity(sheet, r, grid):
            return r
    return None


def _identifier(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        number = float(value)
        return str(int(number)) if number.is_integer() else str(number)
    text = str(value).strip()
    if _IDENTIFIER_TEXT_RE.match(text):
        return str(int(float(text)))
    return None


def _billing_entry(sheet: pd.DataFrame, rows: range, col: int) -> MonthlyBillingEntry:
    kwargs: dict[str, Any] = {}
    for name, r in zip(BILLING_SUBFIELDS, rows):
        value = cell_value(sheet, r, col)
        if value is None:
            continue
        if name == "due_date":
            parsed: Any = normalize_date(value) or None
        elif name in ("bill", "tax", "total_bill", "paid"):
            parsed = number_of(value)
        else:
            parsed = text_of(value) or None
        if parsed is not None:
            kwargs[name] = parsed
    return MonthlyBillingEntry(**kwargs)


def extract_block(
    sheet: pd.DataFrame,
    start: int,
    month_labels: list[str],
    name_columns: tuple[int, int] | None,
    layout: LedgerLayout | _Grid | None = None,
    address_columns: Mapping[str, int] | None = None,
) -> LedgerRecord:
    """Build one LedgerRecord from the block starting at `start`."""
    grid = _grid(layout)
    n_rows, n_cols = sheet.shape
    rows = range(start, min(start + grid.height, n_rows))
    conflicts: list[str] = []

    # identifier: 識別列の最初の数値 (なければ最初のテキスト)
    identifiers: list[str] = []
    fallback_label = ""
    for r in rows:
        value = cell_value(sheet, r, grid.identifier_col)
        ident = _identifier(value)
        if ident is not None:
            if ident not in identifiers:
                identifiers.append(ident)
        elif value is not None and not fallback_label:
            fallback_label = text_of(value)
    label = identifiers[0] if identifiers else fallback_label
    if len(identifiers) > 1:
        conflicts.append("identifier")

    # names: ヘッダ文字列そのものの行はスキップ
    names: list[tuple[str, str]] = []
    if name_columns is not None:
        first_col, last_col = name_columns
        for r in rows:
            first = text_of(cell_value(sheet, r, first_col))
            last = text_of(cell_value(sheet, r, last_col))
            if not first and not last:
                continue
            if _header_key(first) in _FIRST_HEADERS and _header_key(last) in _LAST_HEADERS:
                continue
            if (first, last) not in names:
                names.append((first, last))
    first_name, last_name = names[0] if names else ("", "")
    if len(names) > 1:
        conflicts.append("name")

    # billing address: 名前と同じくヘッダ列を下に読む、最初の値を採用
    address: dict[str, str] = {}
    for name, col in (address_columns or {}).items():
        for r in rows:
            text = text_of(cell_value(sheet, r, col))
            if text and _header_key(text) not in _ADDRESS_HEADERS:
                address[name] = text
                break

    notes: dict[str, str] = {}
    unlabelled_note = ""
    scalars: dict[str, Any] = {}
    for r in rows:
        note_text = text_of(cell_value(sheet, r, grid.notes_col))
        note_field = _NOTES_LABELS.get(text_of(cell_value(sheet, r, grid.label_col)).lower())
        if note_field and note_text and note_field not in notes:
            notes[note_field] = note_text
        elif note_text and not unlabelled_note and _identifier(note_text) is None:
            unlabelled_note = note_text
        for c in range(n_cols - 1):
            text = text_of(cell_value(sheet, r, c))
            if not text:
                continue
            neighbour = cell_value(sheet, r, c + 1)
            if text == "Contract Tax" and "contract_tax_rate" not in scalars:
                rate = number_of(neighbour)
                if rate is not None:
                    scalars["contract_tax_rate"] = rate
            elif text == "Liquidation Tax" and "liquidation_tax_rate" not in scalars:
                rate = number_of(neighbour)
                if rate is not None:
                    scalars["liquidation_tax_rate"] = rate
            elif text == "Payment Type" and "payment_type" not in scalars:
                if neighbour is not None:
                    scalars["payment_type"] = text_of(neighbour)
            elif text == "$ Last 4" and "last_four_digits" not in scalars:
                if neighbour is not None:
                    scalars["last_four_digits"] = text_of(neighbour)
    if unlabelled_note and not notes:
        # ラベル無しのメモは sales notes 扱い
        notes["sales_notes"] = unlabelled_note

    details: dict[str, MonthlyBillingEntry] = {}
    for month, col in zip(month_labels, grid.month_cols):
        if not month or month in details:
            continue
        entry = _billing_entry(sheet, rows, col)
        if not entry.is_empty():
            details[month] = entry

    if conflicts:
        logger.warning(
            "ledger block row=%d label=%s heuristics disagree on %s (first match kept) identifiers=%s names=%s",
            start + 1,
            label or "-",
            ",".join(conflicts),
            identifiers,
            names,
        )

    return LedgerRecord(
        label=label,
        row=start,
        first_name=first_name,
        last_name=last_name,
        billing_details=details,
        conflicts=tuple(conflicts),
        **address,
        **notes,
        **scalars,
    )


def parse_ledger_sheet(sheet: pd.DataFrame, layout: LedgerLayout | None = None) -> list[LedgerRecord]:
    """Scan the ledger sheet and return one record per discovered block."""
    grid = _grid(layout)
    name_columns = find_name_columns(sheet, grid)
    if name_columns is None:
        logger.warning("ledger: no First/Last header row in first %d rows, names skipped", grid.header_scan_rows)
    address_columns = find_address_columns(sheet, grid)
    month_labels = read_month_labels(sheet, grid)

    records: list[LedgerRecord] = []
    stride_row = grid.first_block_row
    while True:
        start = find_next_block_row(sheet, stride_row, grid)
        if start is None:
            break
        if start != stride_row:
            logger.debug("ledger: block realigned stride_row=%d found_row=%d", stride_row + 1, start + 1)
        records.append(extract_block(sheet, start, month_labels, name_columns, grid, address_columns))
        stride_row = start + grid.height
    return records


def parse_ledger_source(data: bytes, layout: LedgerLayout | None = None) -> list[LedgerRecord]:
    """Parse the consolidated ledger workbook.

    Raises:
        StructuralParseError: the workbook cannot be opened or the ledger sheet is absent
    """
    layout = layout or LedgerLayout()
    sheets = read_workbook(data, source="ledger", target_sheets=[layout.sheet_name])
    if layout.sheet_name not in sheets:
        raise StructuralParseError("ledger", f"sheet '{layout.sheet_name}' not found")
    records = parse_ledger_sheet(sheets[layout.sheet_name], layout)
    logger.info("source=ledger parsed_records=%d", len(records))
    return records
