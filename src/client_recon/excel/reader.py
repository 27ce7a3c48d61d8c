from __future__ import annotations

import io
from collections.abc import Iterable
from pathlib import Path

import pandas as pd

"""Workbook loading.

Every sheet is read with header=None so the DataFrame keeps the physical grid:
DataFrame position (r, c) is spreadsheet cell (r+1, column c). Only truly empty
cells become NaN; text such as "NA" or "None" is kept as entered.

A workbook that cannot be opened (or a required sheet that is missing) is a
StructuralParseError for that source only; callers decide whether other sources
continue.
"""

__all__ = [
    "StructuralParseError",
    "read_source_bytes",
    "read_workbook",
    "sheet_names",
]


class StructuralParseError(Exception):
    """Raised when a source workbook cannot be opened or lacks a required sheet."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}" if source else message)
        self.source = source
        self.message = message


def read_source_bytes(path: Path, source: str = "") -> bytes:
    """Read raw workbook bytes from disk."""
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise StructuralParseError(source, f"cannot read {path}: {e}") from e


def _open(data: bytes, source: str) -> pd.ExcelFile:
    if not data:
        raise StructuralParseError(source, "workbook is empty")
    try:
        return pd.ExcelFile(io.BytesIO(data))
    except Exception as e:  # BadZipFile / InvalidFileException / ValueError 等
        raise StructuralParseError(source, f"cannot open workbook: {e}") from e


def sheet_names(data: bytes, source: str = "") -> list[str]:
    """Sheet names in workbook order."""
    xls = _open(data, source)
    try:
        return [str(n) for n in xls.sheet_names]
    finally:
        xls.close()


def read_workbook(
    data: bytes, source: str = "", target_sheets: Iterable[str] | None = None
) -> dict[str, pd.DataFrame]:
    """Read raw DataFrames keyed by sheet name (workbook order preserved).

    Parameters
    ----------
    data: ワークブックのバイト列
    source: エラーメッセージ用のソース名 (v2/v3/v4/ledger)
    target_sheets: 対象シート制限 (None なら全シート)
    """
    wanted = set(target_sheets) if target_sheets is not None else None
    xls = _open(data, source)
    dfs: dict[str, pd.DataFrame] = {}
    try:
        for name in xls.sheet_names:
            if wanted is not None and str(name) not in wanted:
                continue
            try:
                # 空セルのみ NaN、"NA" 等の文字列はそのまま
                df = xls.parse(name, header=None, keep_default_na=False, na_values=[""])
            except Exception as e:
                raise StructuralParseError(source, f"cannot read sheet '{name}': {e}") from e
            dfs[str(name)] = df
    finally:
        xls.close()
    return dfs
