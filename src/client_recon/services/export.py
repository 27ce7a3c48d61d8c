from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.records import BILLING_SUBFIELDS, CanonicalClientRecord
from .merge import canonical_field_names

"""CSV export of canonical records.

One row per client. Static columns first (reconciled scalars, presence flags,
ledger notes, billing address), then eight columns per month label in
first-seen order across all records. Quoting is RFC 4180 (csv.QUOTE_MINIMAL
with doubled quotes) and rows end with CRLF.
"""

__all__ = [
    "month_labels",
    "export_columns",
    "export_frame",
    "render_csv",
    "write_csv",
]

logger = logging.getLogger(__name__)

LINE_TERMINATOR = "\r\n"

_SUBFIELD_TITLES = {
    "payment_status": "Payment Status",
    "due_date": "Due Date",
    "bill": "Bill",
    "tax": "Tax",
    "total_bill": "Total Bill",
    "paid": "Paid",
    "signed": "Signed",
    "invoiced": "Invoiced",
}

_FLAG_COLUMNS = (
    ("In V2", "in_v2"),
    ("In V3", "in_v3"),
    ("In V4", "in_v4"),
    ("In Ledger", "in_ledger"),
)

_LEDGER_COLUMNS = (
    ("Sales Notes", "sales_notes"),
    ("Operations Notes", "operations_notes"),
    ("Accounting Notes", "accounting_notes"),
    ("Last Four Digits", "last_four_digits"),
    ("Billing Address", "billing_address"),
    ("Billing City", "billing_city"),
    ("Billing State", "billing_state"),
    ("Billing Zip", "billing_zip"),
)


def _title(name: str) -> str:
    return name.replace("_", " ").title()


def _static_columns() -> list[tuple[str, str]]:
    return [("Key", "key")] + [(_title(n), n) for n in canonical_field_names()]


def month_labels(records: Sequence[CanonicalClientRecord]) -> list[str]:
    """Distinct ledger month labels, first-seen order."""
    seen: dict[str, None] = {}
    for record in records:
        if record.ledger is None:
            continue
        for month in record.ledger.billing_details:
            seen.setdefault(month, None)
    return list(seen)


def export_columns(records: Sequence[CanonicalClientRecord]) -> list[str]:
    """Header row: static columns followed by 8 columns per month."""
    columns = [title for title, _ in _static_columns()]
    columns += [title for title, _ in _FLAG_COLUMNS]
    columns += [title for title, _ in _LEDGER_COLUMNS]
    for month in month_labels(records):
        columns += [f"{month} {_SUBFIELD_TITLES[s]}" for s in BILLING_SUBFIELDS]
    return columns


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _row(record: CanonicalClientRecord, months: list[str]) -> list[Any]:
    row = [_cell(getattr(record, attr)) for _, attr in _static_columns()]
    row += [_cell(getattr(record, attr)) for _, attr in _FLAG_COLUMNS]
    ledger = record.ledger
    row += [_cell(getattr(ledger, attr) if ledger is not None else None) for _, attr in _LEDGER_COLUMNS]
    for month in months:
        entry = ledger.billing_details.get(month) if ledger is not None else None
        row += [_cell(getattr(entry, s) if entry is not None else None) for s in BILLING_SUBFIELDS]
    return row


def export_frame(records: Sequence[CanonicalClientRecord]) -> pd.DataFrame:
    months = month_labels(records)
    # object dtype のまま: 数値列に "" が混ざるため
    return pd.DataFrame(
        [_row(r, months) for r in records], columns=export_columns(records), dtype=object
    )


def render_csv(records: Sequence[CanonicalClientRecord]) -> str:
    """CSV text for the records (header only when empty)."""
    return export_frame(records).to_csv(index=False, lineterminator=LINE_TERMINATOR)


def write_csv(records: Sequence[CanonicalClientRecord], path: str | Path) -> Path:
    """Write the CSV export to `path`, creating parent directories."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8", newline="") as f:
        f.write(render_csv(records))
    logger.info("export: wrote %d client(s) to %s", len(records), target)
    return target
