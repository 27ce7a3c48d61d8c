from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..db.upsert import cursor_sink, ensure_table, persist_records
from ..excel.reader import StructuralParseError, read_source_bytes
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.config_models import LedgerLayout, ReconConfig
from ..models.processing_result import ReconciliationResult, SourceStat
from ..models.records import LedgerRecord, SourceRecord, SourceVersion
from ..parsing.ledger import parse_ledger_source
from ..parsing.tabs import parse_version_source
from .export import write_csv
from .merge import merge_sources
from .progress import ProgressTracker

"""Run orchestration: parse every configured source, merge, export, persist.

Source failures are isolated: a StructuralParseError marks that one source as
failed (ERROR log + error log entry) and the merge proceeds with the rest.
Persistence failures are isolated per record inside persist_records. The error
log is flushed once at the end of the run.
"""

__all__ = [
    "ProcessingError",
    "parse_source",
    "run_reconciliation",
]

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Fatal condition for the whole run (nothing to process)."""


def parse_source(
    version: SourceVersion, data: bytes, layout: LedgerLayout | None = None
) -> list[SourceRecord] | list[LedgerRecord]:
    """Dispatch raw workbook bytes to the parser of its slot."""
    if version is SourceVersion.LEDGER:
        return parse_ledger_source(data, layout)
    return parse_version_source(data, version)


def run_reconciliation(
    config: ReconConfig,
    cursor: Any = None,
    *,
    error_log: ErrorLogBuffer | None = None,
    now: str | None = None,
) -> ReconciliationResult:
    """Process all configured sources.

    Args:
        config: run configuration
        cursor: psycopg2 cursor (None = mock mode, nothing written)
        error_log: buffer for structured failures (a fresh one when omitted)
        now: ISO timestamp for created/updated stamps (captured by the merge when omitted)

    Raises:
        ProcessingError: no source configured
    """
    start_time = datetime.now(UTC)
    error_log = error_log if error_log is not None else ErrorLogBuffer()

    configured = config.sources.configured()
    if not configured:
        raise ProcessingError("no sources configured")

    parsed: dict[SourceVersion, list[Any]] = {v: [] for v in SourceVersion}
    stats: list[SourceStat] = []

    with ProgressTracker(len(configured)) as progress:
        for slot, path in configured.items():
            version = SourceVersion(slot)
            file_name = Path(path).name
            progress.start_source(slot, file_name)
            t0 = time.perf_counter()
            try:
                data = read_source_bytes(Path(path), slot)
                records = parse_source(version, data, config.ledger)
            except StructuralParseError as e:
                elapsed = time.perf_counter() - t0
                logger.error("source=%s file=%s failed: %s", slot, file_name, e.message)
                sheet = config.ledger.sheet_name if version is SourceVersion.LEDGER else ""
                error_log.append(ErrorRecord.create(slot, sheet, -1, "STRUCTURAL_PARSE_ERROR", e.message))
                stats.append(SourceStat(slot, file_name, "failed", 0, elapsed, e.message))
                progress.finish_source(success=False)
                continue
            elapsed = time.perf_counter() - t0
            parsed[version] = records
            stats.append(SourceStat(slot, file_name, "parsed", len(records), elapsed))
            progress.finish_source(success=True, records=len(records))

    failed_sources = sum(1 for s in stats if s.status == "failed")
    parsed_sources = len(stats) - failed_sources

    merge_result = merge_sources(
        parsed[SourceVersion.V2],
        parsed[SourceVersion.V3],
        parsed[SourceVersion.V4],
        parsed[SourceVersion.LEDGER],
        now=now,
    )
    for key in merge_result.discarded_keys:
        error_log.append(ErrorRecord.create("<MERGE>", key, -1, "RECORD_DISCARDED", "no meaningful data"))

    export_path: str | None = None
    export_error: str | None = None
    if config.export_path:
        try:
            export_path = str(write_csv(merge_result.records, config.export_path))
        except OSError as e:
            export_error = str(e)
            logger.error("export failed path=%s: %s", config.export_path, e)
            error_log.append(ErrorRecord.create("<EXPORT>", config.export_path, -1, "EXPORT_WRITE_ERROR", str(e)))

    sink = None
    if cursor is not None:
        ensure_table(cursor, config.table)
        sink = cursor_sink(cursor, config.table)
    persistence = persist_records(merge_result.records, sink, error_log)
    if cursor is not None:
        cursor.connection.commit()

    error_log_path: str | None = None
    try:
        flushed = error_log.flush()
        error_log_path = str(flushed) if flushed is not None else None
    except OSError as e:
        logger.warning("error log flush failed: %s", e)

    end_time = datetime.now(UTC)
    return ReconciliationResult(
        configured_sources=len(configured),
        parsed_sources=parsed_sources,
        failed_sources=failed_sources,
        clients=len(merge_result.records),
        discarded=merge_result.discarded,
        persistence=persistence,
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        source_stats=stats,
        export_path=export_path,
        export_error=export_error,
        error_log_path=error_log_path,
    )
