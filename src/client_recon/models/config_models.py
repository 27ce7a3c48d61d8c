from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the reconciliation tool.

The loader (src/client_recon/config/loader.py) builds these from YAML after
JSON-schema validation. LedgerLayout defaults describe the physical layout of
the AllAccounts ledger template; any template change (inserted / removed rows
or columns) must be mirrored here or in the YAML `ledger` section.
"""


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback settings.

    Environment variables (DATABASE_URL / PGDSN / PG*) take precedence.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class SourcePaths:
    """Workbook path per source slot. None = slot not configured."""
    v2: str | None = None
    v3: str | None = None
    v4: str | None = None
    ledger: str | None = None

    def configured(self) -> dict[str, str]:
        # merge 順 (v2, v3, v4, ledger) を保持
        pairs = (("v2", self.v2), ("v3", self.v3), ("v4", self.v4), ("ledger", self.ledger))
        return {name: path for name, path in pairs if path}


@dataclass(frozen=True)
class LedgerLayout:
    """Physical layout of the consolidated ledger sheet.

    Rows are 1-based and columns are letters, as they appear in the spreadsheet.
    """
    sheet_name: str = "AllAccounts"
    header_scan_rows: int = 50
    month_header_row: int = 3
    month_first_column: str = "L"
    month_last_column: str = "W"
    first_block_row: int = 5
    block_height: int = 8
    identity_columns: tuple[str, ...] = ("A", "B", "C")
    label_column: str = "A"
    identifier_column: str = "B"
    notes_column: str = "C"
    lookahead_rows: int = 20


@dataclass(frozen=True)
class ReconConfig:
    """Root configuration object for one reconciliation run."""
    sources: SourcePaths
    ledger: LedgerLayout = field(default_factory=LedgerLayout)
    export_path: str | None = None
    table: str = "clients"  # persistence.table
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
