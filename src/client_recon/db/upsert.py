from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from typing import Any

import psycopg2
from psycopg2.extras import Json

from ..logging.error_log import ErrorLogBuffer
from ..models.error_record import ErrorRecord
from ..models.processing_result import PersistenceSummary
from ..models.records import CanonicalClientRecord
from ..services.merge import canonical_field_names

"""Persistence of canonical records as JSON documents keyed by reconciliation key.

Table shape (see CREATE_TABLE_SQL):
    client_key  text primary key
    document    jsonb   (to_document output)
    updated_at  timestamptz

Writes are per record. Each upsert runs inside a SAVEPOINT so one failing
record rolls back alone and the surrounding transaction stays usable; the
caller commits once at the end.
"""

__all__ = [
    "PersistenceWriteError",
    "Sink",
    "CREATE_TABLE_SQL",
    "ensure_table",
    "to_document",
    "upsert_client",
    "cursor_sink",
    "persist_records",
]

logger = logging.getLogger(__name__)

# key, document
Sink = Callable[[str, dict[str, Any]], None]

_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")
_SAVEPOINT = "client_upsert"

CREATE_TABLE_SQL = """
  CREATE TABLE IF NOT EXISTS {table} (
    client_key text PRIMARY KEY,
    document jsonb NOT NULL,
    updated_at timestamptz
  )
"""

UPSERT_SQL = """
  INSERT INTO {table} (client_key, document, updated_at)
  VALUES (%s, %s, %s)
  ON CONFLICT (client_key)
  DO UPDATE SET
    document = EXCLUDED.document,
    updated_at = EXCLUDED.updated_at
"""


class PersistenceWriteError(Exception):
    """Raised by a sink when one record cannot be written."""

    def __init__(self, key: str, message: str) -> None:
        super().__init__(f"{key}: {message}")
        self.key = key
        self.message = message


def _checked_table(table: str) -> str:
    if not _TABLE_RE.match(table):
        raise ValueError(f"invalid table name: {table!r}")
    return table


def ensure_table(cursor: Any, table: str = "clients") -> None:
    cursor.execute(CREATE_TABLE_SQL.format(table=_checked_table(table)))


def to_document(record: CanonicalClientRecord) -> dict[str, Any]:
    """Flat JSON-ready payload; source payloads embedded verbatim as dicts."""
    doc: dict[str, Any] = {"key": record.key}
    for flag in ("in_v2", "in_v3", "in_v4", "in_ledger"):
        doc[flag] = getattr(record, flag)
    for name in canonical_field_names():
        doc[name] = getattr(record, name)
    for slot in ("v2", "v3", "v4", "ledger"):
        payload = getattr(record, slot)
        doc[slot] = payload.to_dict() if payload is not None else None
    return doc


def upsert_client(cursor: Any, table: str, key: str, document: dict[str, Any]) -> None:
    """INSERT ... ON CONFLICT DO UPDATE for one record, isolated by a savepoint.

    Raises:
        PersistenceWriteError: any step of the savepoint sequence failed
            (the statement is rolled back to the savepoint when that is still possible)
    """
    sql = UPSERT_SQL.format(table=_checked_table(table))
    try:
        cursor.execute(f"SAVEPOINT {_SAVEPOINT}")
        try:
            cursor.execute(sql, (key, Json(document), document.get("updated_at") or None))
        except Exception:
            cursor.execute(f"ROLLBACK TO SAVEPOINT {_SAVEPOINT}")
            raise
        cursor.execute(f"RELEASE SAVEPOINT {_SAVEPOINT}")
    except psycopg2.Error as e:
        # rollback 自体の失敗 (接続断など) もこのレコードの失敗として扱う
        raise PersistenceWriteError(key, str(e).strip() or type(e).__name__) from e


def cursor_sink(cursor: Any, table: str = "clients") -> Sink:
    """Sink writing through a psycopg2 cursor."""
    _checked_table(table)

    def _write(key: str, document: dict[str, Any]) -> None:
        upsert_client(cursor, table, key, document)

    return _write


def persist_records(
    records: Iterable[CanonicalClientRecord],
    sink: Sink | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> PersistenceSummary:
    """Hand every record to `sink`; a failed write never stops the others.

    sink=None is mock mode: nothing is written, every record counts as succeeded.
    """
    succeeded = 0
    failed_keys: list[str] = []
    for record in records:
        if sink is None:
            succeeded += 1
            continue
        try:
            sink(record.key, to_document(record))
        except Exception as e:  # sink の想定外の例外も 1 件の失敗として数える
            message = e.message if isinstance(e, PersistenceWriteError) else f"{type(e).__name__}: {e}"
            failed_keys.append(record.key)
            logger.error("persist failed key=%s: %s", record.key, message)
            if error_log is not None:
                error_log.append(
                    ErrorRecord.create("<PERSIST>", record.key, -1, "PERSISTENCE_WRITE_ERROR", message)
                )
            continue
        succeeded += 1
    summary = PersistenceSummary(succeeded=succeeded, failed=len(failed_keys), failed_keys=tuple(failed_keys))
    logger.info("persist: %s%s", summary, " (mock)" if sink is None else "")
    return summary
