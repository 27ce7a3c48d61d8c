from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from client_recon.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from client_recon.excel.reader import StructuralParseError, read_source_bytes, sheet_names
from client_recon.logging.init import log_summary, setup_logging
from client_recon.models.config_models import ReconConfig
from client_recon.parsing.tabs import is_client_tab
from client_recon.services.orchestrator import ProcessingError, run_reconciliation
from client_recon.services.summary import render_summary_line

"""CLI entrypoint.

- Load .env, then the YAML config
- Parse every configured source, merge, export CSV, persist
- Print one SUMMARY line

Exit codes: 0 everything succeeded, 2 partial failure (a source, the export or
a record write failed), 1 fatal (config error, nothing configured).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _dsn(cfg: ReconConfig) -> str:
    """Connection string. DATABASE_URL / PGDSN / PG* (incl. values from .env) win over YAML."""
    db_cfg = cfg.database
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def _db_session(conn: Any) -> Iterator[Any]:  # pragma: no cover (needs a live server)
    """Cursor on an open connection; rolled back unless the run committed, then closed."""
    conn.autocommit = False
    cur = conn.cursor()
    try:
        yield cur
    finally:
        if not conn.closed:
            conn.rollback()
        cur.close()
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; its values override the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="client-recon",
        description="Reconcile legacy client workbooks (V2/V3/V4 + ledger) into canonical client records",
    )
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config path")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="List tabs per source and which qualify, then exit")
    p.add_argument("--export", type=Path, default=None, help="CSV export path (overrides export_path)")
    p.add_argument("--no-db", action="store_true", help="Do not connect to the database (mock persistence)")
    return p.parse_args(argv)


def _inspect_data(cfg: ReconConfig) -> int:
    configured = cfg.sources.configured()
    if not configured:
        print("inspect: no sources configured")
        return EXIT_FATAL
    for slot, path in configured.items():
        print(f"SOURCE: {slot} file={path}")
        try:
            names = sheet_names(read_source_bytes(Path(path), slot), slot)
        except StructuralParseError as e:
            print(f"  read_error: {e.message}")
            continue
        for name in names:
            if slot == "ledger":
                mark = "ledger" if name == cfg.ledger.sheet_name else "-"
            else:
                mark = "client" if is_client_tab(name) else "-"
            print(f"  SHEET: {name} [{mark}]")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    # None のときのみ sys.argv を読む ([] はテストからの明示的な空引数)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    logger.debug("debug mode enabled")

    # .env を最優先で読み込む (DB 接続パラメータ優先順位保証)
    _load_env_file(Path(".env"), override=True)
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL
    if args.export is not None:
        cfg = replace(cfg, export_path=str(args.export))

    if args.inspect_data:
        return _inspect_data(cfg)

    if not cfg.sources.configured():
        logger.error("no sources configured")
        return EXIT_FATAL

    conn = None
    if args.no_db or os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled -> mock mode")
    else:
        try:
            conn = psycopg2.connect(_dsn(cfg))
        except psycopg2.Error as db_e:
            logger.info(f"DB connection failed -> fallback to mock mode: {str(db_e).strip()}")

    db_mode = "mock" if conn is None else "live"
    try:
        if conn is None:
            result = run_reconciliation(cfg, cursor=None)
        else:
            with _db_session(conn) as cur:
                result = run_reconciliation(cfg, cursor=cur)
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL
    except psycopg2.Error as e:
        logger.error(f"database: {str(e).strip()}")
        return EXIT_FATAL

    logger.info(f"mode={db_mode} clients={result.clients} persist={result.persistence}")
    if result.error_log_path:
        logger.info(f"error log: {result.error_log_path}")

    # log_summary が "SUMMARY " ラベルを付ける
    log_summary(render_summary_line(result)[len("SUMMARY "):])

    if result.has_failures:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
