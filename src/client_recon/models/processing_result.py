from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .records import CanonicalClientRecord

"""Processing result models for the reconciliation run.

SourceStat is recorded per source slot; ReconciliationResult aggregates the
whole run and feeds the SUMMARY line (services/summary.py).
"""


@dataclass(frozen=True)
class SourceStat:
    """Per-source parse statistics."""
    source: str  # v2/v3/v4/ledger
    file_name: str
    status: str  # parsed/failed
    records: int  # 抽出レコード数 (失敗時 0)
    elapsed_seconds: float
    error: str | None = None


@dataclass(frozen=True)
class PersistenceSummary:
    """Outcome of handing canonical records to the persistence sink."""
    succeeded: int = 0
    failed: int = 0
    failed_keys: tuple[str, ...] = ()

    def __str__(self) -> str:
        return f"{self.succeeded} succeeded, {self.failed} failed"


@dataclass(frozen=True)
class MergeResult:
    """Canonical records plus the number dropped by the meaningful-data filter."""
    records: list[CanonicalClientRecord]
    discarded: int = 0
    discarded_keys: tuple[str, ...] = ()


@dataclass(frozen=True)
class ReconciliationResult:
    """Aggregated results of one run."""
    configured_sources: int
    parsed_sources: int
    failed_sources: int
    clients: int
    discarded: int
    persistence: PersistenceSummary
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    source_stats: list[SourceStat] = field(default_factory=list)
    export_path: str | None = None
    export_error: str | None = None
    error_log_path: str | None = None

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_sources or self.persistence.failed or self.export_error)
