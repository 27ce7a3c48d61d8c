from __future__ import annotations

import numbers
import re
from datetime import date, datetime
from typing import Any, NamedTuple

import pandas as pd

from .dates import normalize_date

"""Cell address resolution and typed cell readers.

Sheet model: a raw DataFrame as returned by `read_workbook` (header=None),
so DataFrame position (row, col) == spreadsheet cell (row+1, column letter).

Readers are lenient by contract: an invalid address, a cell outside the sheet,
an empty cell or a value that cannot be read as the requested type yields the
caller's default. Source sheets are maintained by hand and routinely
incomplete, so nothing here raises for malformed input.
"""

__all__ = [
    "CellAddress",
    "INVALID_ADDRESS",
    "resolve",
    "column_index",
    "is_blank",
    "cell_value",
    "read_text",
    "read_number",
    "read_boolean",
    "read_date",
    "text_of",
    "number_of",
]


class CellAddress(NamedTuple):
    row: int
    col: int

    @property
    def is_valid(self) -> bool:
        return self.row >= 0 and self.col >= 0


INVALID_ADDRESS = CellAddress(-1, -1)

_ADDRESS_RE = re.compile(r"^([A-Za-z]+)([0-9]+)$")
_NUMBER_STRIP_RE = re.compile(r"[^0-9.\-]")
_TRUE_WORDS = frozenset({"yes", "y", "true", "1"})


def column_index(letters: str) -> int:
    """Zero-based column index for a column label ("A" -> 0, "AA" -> 26); -1 if invalid."""
    letters = letters.strip().upper()
    if not letters or not letters.isascii() or not letters.isalpha():
        return -1
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - ord("A") + 1)
    return n - 1


def resolve(addr: str) -> CellAddress:
    """Resolve "M7" style address to zero-based (row, col).

    Returns INVALID_ADDRESS for anything that is not letters followed by a
    1-based row number.
    """
    if not isinstance(addr, str):
        return INVALID_ADDRESS
    m = _ADDRESS_RE.match(addr.strip())
    if m is None:
        return INVALID_ADDRESS
    row = int(m.group(2)) - 1
    col = column_index(m.group(1))
    if row < 0 or col < 0:
        return INVALID_ADDRESS
    return CellAddress(row, col)


def is_blank(value: Any) -> bool:
    """True for None, NaN/NaT and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def cell_value(sheet: pd.DataFrame, row: int, col: int) -> Any:
    """Raw positional access. Out-of-range and NaN become None."""
    if row < 0 or col < 0:
        return None
    n_rows, n_cols = sheet.shape
    if row >= n_rows or col >= n_cols:
        return None
    value = sheet.iat[row, col]
    return None if is_blank(value) else value


def _value_at(sheet: pd.DataFrame, addr: str) -> Any:
    loc = resolve(addr)
    if not loc.is_valid:
        return None
    return cell_value(sheet, loc.row, loc.col)


def text_of(value: Any) -> str:
    """Plain text rendering of a present cell value."""
    if is_blank(value):
        return ""
    if isinstance(value, (datetime, date)):
        return normalize_date(value)
    if isinstance(value, float) and value.is_integer():
        # 数値列に混在した整数は 12.0 で入ってくる
        return str(int(value))
    return str(value).strip()


def number_of(value: Any) -> float | None:
    """Float for a present cell value, None when it cannot be read as a number."""
    if is_blank(value) or isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        return float(value)
    cleaned = _NUMBER_STRIP_RE.sub("", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return None


def read_text(sheet: pd.DataFrame, addr: str, default: str = "") -> str:
    text = text_of(_value_at(sheet, addr))
    return text if text else default


def read_number(sheet: pd.DataFrame, addr: str, default: float | None = 0.0) -> float | None:
    number = number_of(_value_at(sheet, addr))
    return default if number is None else number


def read_boolean(sheet: pd.DataFrame, addr: str, default: bool = False) -> bool:
    """Yes/Y/True/1 (any case) -> True, any other present value -> False."""
    value = _value_at(sheet, addr)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, numbers.Real):
        return float(value) == 1.0
    return str(value).strip().lower() in _TRUE_WORDS


def read_date(sheet: pd.DataFrame, addr: str, default: str = "") -> str:
    normalized = normalize_date(_value_at(sheet, addr))
    return normalized if normalized else default
