from __future__ import annotations

import numbers
from datetime import UTC, date, datetime, timedelta
from typing import Any

import pandas as pd

"""Date normalisation for spreadsheet cells.

Cells arrive either as day serials (plain numeric cells), as datetime objects
(pandas converts date-formatted cells) or as free text. All of them are turned
into `YYYY-MM-DDTHH:MM:SS.mmmZ` strings.

Serial arithmetic is `1900-01-01 + (serial - 2) days`. The -2 reproduces the
spreadsheet engine's 1900 leap-year miscount and must stay as is so values
match what the source files show.
"""

__all__ = [
    "EXCEL_EPOCH",
    "normalize_date",
    "to_iso",
]

EXCEL_EPOCH = datetime(1900, 1, 1, tzinfo=UTC)


def to_iso(dt: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with millisecond precision."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    else:
        dt = dt.astimezone(UTC)
    return f"{dt:%Y-%m-%dT%H:%M:%S}.{dt.microsecond // 1000:03d}Z"


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):  # list-like 等
        return False


def normalize_date(value: Any) -> str:
    """Convert a raw cell value to an ISO timestamp string.

    - empty / None / NaN / NaT -> ""
    - numeric day serial -> epoch arithmetic above
    - datetime / date / Timestamp -> ISO (naive values are taken as UTC)
    - text -> generic parse, or the trimmed text unchanged when unparsable

    Never raises.
    """
    if _is_missing(value):
        return ""

    if isinstance(value, datetime):  # pd.Timestamp を含む
        return to_iso(value)
    if isinstance(value, date):
        return to_iso(datetime(value.year, value.month, value.day, tzinfo=UTC))

    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        try:
            return to_iso(EXCEL_EPOCH + timedelta(days=float(value) - 2))
        except (OverflowError, ValueError):
            return str(value).strip()

    text = str(value).strip()
    if not text:
        return ""
    try:
        parsed = pd.to_datetime(text)
    except (ValueError, TypeError, OverflowError):
        return text
    if _is_missing(parsed):
        return text
    try:
        return to_iso(parsed.to_pydatetime())
    except (ValueError, OverflowError):  # pragma: no cover
        return text
