from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..excel.cells import column_index
from ..models.config_models import DatabaseConfig, LedgerLayout, ReconConfig, SourcePaths

"""Config loader.

- Load YAML (default config/recon.yml, overridable from the CLI)
- Validate against the packaged config_schema.json
- Apply defaults (persistence.table=clients, LedgerLayout defaults)

Relative source / export paths are taken relative to the working directory,
as the CLI is run from the project root.
"""

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
    "parse_config",
]

DEFAULT_CONFIG_PATH = Path("config/recon.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing / not JSON, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path)
        raise ConfigError(f"config validation failed{f' at {where}' if where else ''}: {e.message}") from e


def _path(value: str | None) -> str | None:
    if not value or not value.strip():
        return None
    return str(Path(value.strip()).expanduser())


def parse_config(data: dict[str, Any]) -> ReconConfig:
    """Build ReconConfig from an already loaded mapping (validated here)."""
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")
    _validate_config_schema(data)

    src = data["sources"]
    sources = SourcePaths(**{slot: _path(src.get(slot)) for slot in ("v2", "v3", "v4", "ledger")})

    ledger_raw = dict(data.get("ledger") or {})
    if "identity_columns" in ledger_raw:
        ledger_raw["identity_columns"] = tuple(ledger_raw["identity_columns"])
    ledger = LedgerLayout(**ledger_raw)
    if column_index(ledger.month_last_column) < column_index(ledger.month_first_column):
        raise ConfigError(
            f"ledger month columns out of order: {ledger.month_first_column}..{ledger.month_last_column}"
        )

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    persistence = data.get("persistence") or {}
    return ReconConfig(
        sources=sources,
        ledger=ledger,
        export_path=_path(data.get("export_path")),
        table=persistence.get("table", "clients"),
        database=db,
    )


def load_config(path: Path) -> ReconConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    return parse_config(data)
