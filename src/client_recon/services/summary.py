from __future__ import annotations

from ..models.processing_result import ReconciliationResult

"""SUMMARY line rendering.

Format:
SUMMARY sources=<parsed+failed>/<configured> parsed=<n> failed=<n> clients=<n>
discarded=<n> persisted=<n> persist_failed=<n> elapsed_sec=<x>
"""

__all__ = [
    "format_number",
    "render_summary_line",
]


def format_number(value: float) -> str:
    """Integral values without decimals, tiny values without scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(round(value, 3))


def render_summary_line(result: ReconciliationResult) -> str:
    """Render the SUMMARY line for a finished run.

    Examples:
        >>> from datetime import datetime, timezone
        >>> from client_recon.models.processing_result import PersistenceSummary
        >>> t = datetime(2024, 1, 1, tzinfo=timezone.utc)
        >>> result = ReconciliationResult(
        ...     configured_sources=4, parsed_sources=3, failed_sources=1, clients=12,
        ...     discarded=2, persistence=PersistenceSummary(succeeded=12),
        ...     start_time=t, end_time=t, elapsed_seconds=2.0,
        ... )
        >>> render_summary_line(result)
        'SUMMARY sources=4/4 parsed=3 failed=1 clients=12 discarded=2 persisted=12 persist_failed=0 elapsed_sec=2'
    """
    processed = result.parsed_sources + result.failed_sources
    return (
        f"SUMMARY sources={processed}/{result.configured_sources} "
        f"parsed={result.parsed_sources} "
        f"failed={result.failed_sources} "
        f"clients={result.clients} "
        f"discarded={result.discarded} "
        f"persisted={result.persistence.succeeded} "
        f"persist_failed={result.persistence.failed} "
        f"elapsed_sec={format_number(result.elapsed_seconds)}"
    )
