from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Callable

import pandas as pd

from ..excel.cells import read_boolean, read_date, read_number, read_text
from ..excel.reader import read_workbook
from ..models.records import SourceRecord, SourceVersion
from .schemas import FieldKind, FieldSpec, default_for, schema_for

"""Tab discovery and per-tab extraction for the V2 / V3 / V4 client workbooks.

A workbook holds one tab per client (named after the client number, e.g.
"12" or "12B") next to instruction / summary / template tabs. Client tabs
are the ones whose trimmed name starts with an ASCII digit.
"""

__all__ = [
    "is_client_tab",
    "parse_client_tab",
    "parse_version_sheets",
    "parse_version_source",
]

logger = logging.getLogger(__name__)

_READERS: dict[FieldKind, Callable[[pd.DataFrame, str, Any], Any]] = {
    FieldKind.TEXT: read_text,
    FieldKind.NUMBER: read_number,
    FieldKind.BOOLEAN: read_boolean,
    FieldKind.DATE: read_date,
}


def is_client_tab(name: str) -> bool:
    stripped = str(name).strip()
    return bool(stripped) and stripped[0].isascii() and stripped[0].isdigit()


def parse_client_tab(
    sheet: pd.DataFrame, tab: str, version: SourceVersion, schema: Mapping[str, FieldSpec] | None = None
) -> SourceRecord:
    """Apply every entry of the version schema to one tab."""
    fields = schema if schema is not None else schema_for(version)
    values: dict[str, Any] = {}
    for name, spec in fields.items():
        values[name] = _READERS[spec.kind](sheet, spec.address, default_for(spec.kind))
    return SourceRecord(version=version, tab=tab, values=values)


def parse_version_sheets(sheets: Mapping[str, pd.DataFrame], version: SourceVersion) -> list[SourceRecord]:
    """Parse every client tab of an already loaded workbook.

    Tabs that qualify by name but carry neither first nor last name (e.g. a
    numbered template tab) are dropped.
    """
    schema = schema_for(version)
    records: list[SourceRecord] = []
    client_tabs = [name for name in sheets if is_client_tab(name)]
    logger.debug(
        "source=%s client_tabs=%d total_tabs=%d", version.value, len(client_tabs), len(sheets)
    )
    for tab in client_tabs:
        record = parse_client_tab(sheets[tab], tab, version, schema)
        if not str(record.get("first_name", "")).strip() and not str(record.get("last_name", "")).strip():
            logger.debug("source=%s tab=%s skipped: no client name", version.value, tab)
            continue
        records.append(record)
    return records


def parse_version_source(data: bytes, version: SourceVersion) -> list[SourceRecord]:
    """Parse one uploaded V2/V3/V4 workbook into source records.

    Raises:
        StructuralParseError: the workbook cannot be opened
        ValueError: `version` is the ledger slot
    """
    if not version.is_tabbed:
        raise ValueError("ledger workbooks are parsed with parse_ledger_source")
    sheets = read_workbook(data, source=version.value)
    records = parse_version_sheets(sheets, version)
    logger.info("source=%s parsed_records=%d", version.value, len(records))
    return records
