from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import fields, replace
from datetime import UTC, datetime
from typing import Any

from ..excel.dates import to_iso
from ..models.processing_result import MergeResult
from ..models.records import (
    BOOLEAN_FIELDS,
    MEANINGFUL_FIELDS,
    NUMBER_FIELDS,
    STRING_FIELDS,
    CanonicalClientRecord,
    LedgerRecord,
    SourceRecord,
    SourceVersion,
)

"""Record merge engine: four source lists -> one canonical record per client.

Precedence (all sources, fixed order V2, V3, V4, ledger):
    strings / numbers   the value already merged wins unless it is empty ("" / 0)
    booleans            the value already merged wins unless it is None (unset)
    payload slots       first writer wins
    presence flags      OR

Merging is a pure fold: given the same inputs and the same `now`, the output is
identical, and merging a result with itself changes nothing.
"""

__all__ = [
    "reconciliation_key",
    "shell_from_source",
    "shell_from_ledger",
    "merge_pair",
    "has_meaningful_data",
    "merge_records",
    "merge_sources",
    "canonical_field_names",
]

logger = logging.getLogger(__name__)

SYNTHETIC_KEY_PREFIX = "~"

_SLOTS = tuple(v.value for v in SourceVersion)
_FLAGS = tuple(f"in_{v.value}" for v in SourceVersion)


def reconciliation_key(first_name: str, last_name: str, fallback: str) -> str:
    """`first_last` (trimmed, lower-cased); `~<fallback>` when both are empty."""
    first = (first_name or "").strip().lower()
    last = (last_name or "").strip().lower()
    if first or last:
        return f"{first}_{last}"
    return SYNTHETIC_KEY_PREFIX + fallback


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_number(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def shell_from_source(record: SourceRecord, now: str) -> CanonicalClientRecord:
    """Canonical shell for one V2/V3/V4 tab, flag and payload set for its slot."""
    version = record.version
    values: dict[str, Any] = {}
    for name in STRING_FIELDS:
        values[name] = _as_text(record.get(name))
    # tab 名が client number
    values["client_number"] = values["client_number"] or record.client_number
    for name in NUMBER_FIELDS:
        values[name] = _as_number(record.get(name))
    for name in BOOLEAN_FIELDS:
        value = record.get(name)
        values[name] = None if value is None else bool(value)
    key = reconciliation_key(
        values["first_name"], values["last_name"], f"{version.value}:{record.client_number}"
    )
    return CanonicalClientRecord(
        key=key,
        **{f"in_{version.value}": True, version.value: record},
        **values,
        created_at=now,
        updated_at=now,
    )


def shell_from_ledger(record: LedgerRecord, now: str) -> CanonicalClientRecord:
    """Canonical shell for one ledger block."""
    key = reconciliation_key(record.first_name, record.last_name, f"ledger:{record.row}")
    return CanonicalClientRecord(
        key=key,
        in_ledger=True,
        ledger=record,
        # ledger 側の識別子がそのまま client number
        client_number=record.label,
        first_name=record.first_name.strip(),
        last_name=record.last_name.strip(),
        liquidation_tax_rate=record.liquidation_tax_rate,
        contract_tax_rate=record.contract_tax_rate,
        payment_type=record.payment_type,
        comments=record.notes,
        created_at=now,
        updated_at=now,
    )


def merge_pair(
    existing: CanonicalClientRecord, incoming: CanonicalClientRecord, now: str
) -> CanonicalClientRecord:
    """Fold `incoming` into `existing` (same key)."""
    changes: dict[str, Any] = {}
    for flag in _FLAGS:
        changes[flag] = getattr(existing, flag) or getattr(incoming, flag)
    for slot in _SLOTS:
        current = getattr(existing, slot)
        changes[slot] = current if current is not None else getattr(incoming, slot)
    for name in STRING_FIELDS:
        current = getattr(existing, name)
        changes[name] = current if current else getattr(incoming, name)
    for name in NUMBER_FIELDS:
        current = getattr(existing, name)
        changes[name] = current if current != 0 else getattr(incoming, name)
    for name in BOOLEAN_FIELDS:
        # False も確定値として残す (None のみ上書き)
        current = getattr(existing, name)
        changes[name] = current if current is not None else getattr(incoming, name)
    changes["updated_at"] = now
    return replace(existing, **changes)


def has_meaningful_data(record: CanonicalClientRecord) -> bool:
    return any(str(getattr(record, name) or "").strip() for name in MEANINGFUL_FIELDS)


def _sort_key(record: CanonicalClientRecord) -> tuple:
    if record.has_name:
        return (0, record.last_name.strip().lower(), record.first_name.strip().lower(), "")
    label = record.ledger.label if record.ledger is not None else ""
    # 名前なし: 末尾、ledger label 順 (label なしはさらに後ろ)
    return (1, 0 if label else 1, label)


def merge_records(
    batches: Iterable[Sequence[CanonicalClientRecord]], now: str | None = None
) -> MergeResult:
    """Fold batches (in order) into one record per key, filter and sort.

    `now` is the ISO timestamp used for every created/updated stamp; captured
    once when omitted.
    """
    stamp = now or to_iso(datetime.now(UTC))
    merged: dict[str, CanonicalClientRecord] = {}
    for batch in batches:
        for record in batch:
            current = merged.get(record.key)
            if current is None:
                merged[record.key] = replace(record, created_at=stamp, updated_at=stamp)
            else:
                merged[record.key] = merge_pair(current, record, stamp)

    # 意味のある項目が一つもないものは捨てる
    kept: list[CanonicalClientRecord] = []
    discarded: list[str] = []
    for key, record in merged.items():
        if has_meaningful_data(record):
            kept.append(record)
        else:
            discarded.append(key)
            logger.debug("record discarded: no meaningful data key=%s", key)

    kept.sort(key=_sort_key)
    logger.info("merge: clients=%d discarded=%d", len(kept), len(discarded))
    return MergeResult(records=kept, discarded=len(discarded), discarded_keys=tuple(discarded))


def merge_sources(
    v2: Sequence[SourceRecord] = (),
    v3: Sequence[SourceRecord] = (),
    v4: Sequence[SourceRecord] = (),
    ledger: Sequence[LedgerRecord] = (),
    now: str | None = None,
) -> MergeResult:
    """Merge the four source lists in the fixed order V2, V3, V4, ledger."""
    stamp = now or to_iso(datetime.now(UTC))
    batches = [
        [shell_from_source(r, stamp) for r in v2],
        [shell_from_source(r, stamp) for r in v3],
        [shell_from_source(r, stamp) for r in v4],
        [shell_from_ledger(r, stamp) for r in ledger],
    ]
    return merge_records(batches, now=stamp)


def canonical_field_names() -> list[str]:
    """Top-level scalar field names of CanonicalClientRecord, declaration order."""
    skip = {"key", *_SLOTS, *_FLAGS}
    return [f.name for f in fields(CanonicalClientRecord) if f.name not in skip]
