"""Domain models for the client reconciliation tool.

This package contains the record types produced by the parsers and the merge
engine, configuration dataclasses and run result models.
"""

from .config_models import DatabaseConfig, LedgerLayout, ReconConfig, SourcePaths
from .error_record import ErrorRecord
from .processing_result import MergeResult, PersistenceSummary, ReconciliationResult, SourceStat
from .records import (
    CanonicalClientRecord,
    LedgerRecord,
    MonthlyBillingEntry,
    SourceRecord,
    SourceVersion,
)

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "LedgerLayout",
    "ReconConfig",
    "SourcePaths",
    # Record models
    "CanonicalClientRecord",
    "LedgerRecord",
    "MonthlyBillingEntry",
    "SourceRecord",
    "SourceVersion",
    # Processing models
    "ErrorRecord",
    "MergeResult",
    "PersistenceSummary",
    "ReconciliationResult",
    "SourceStat",
]
