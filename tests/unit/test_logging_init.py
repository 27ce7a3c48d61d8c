from __future__ import annotations

import json
import logging
from pathlib import Path

from client_recon.logging.error_log import ErrorLogBuffer, ErrorRecord
from client_recon.logging.init import (
    APP_LOGGER_NAME,
    SUMMARY_LEVEL,
    LabeledFormatter,
    get_logger,
    log_summary,
    setup_logging,
)

"""Logging setup (labelled prefixes) and the JSON Lines error log."""


def test_setup_logging_is_idempotent():
    first = setup_logging()
    second = setup_logging()
    assert first is second
    assert first.name == APP_LOGGER_NAME
    assert len(first.handlers) == 1
    assert first.propagate is False
    assert get_logger() is first


def test_labels(capsys):
    logger = setup_logging()
    logger.info("hello")
    logger.warning("careful")
    logger.error("broken")
    log_summary("sources=1/1")
    out = capsys.readouterr().out.splitlines()
    assert out == ["INFO hello", "WARN careful", "ERROR broken", "SUMMARY sources=1/1"]


def test_module_loggers_are_children(capsys):
    setup_logging()
    logging.getLogger("client_recon.parsing.ledger").warning("block skipped")
    assert "WARN block skipped" in capsys.readouterr().out


def test_debug_hidden_unless_enabled(capsys):
    logger = setup_logging()
    logger.debug("noise")
    assert capsys.readouterr().out == ""
    setup_logging(debug=True)
    logger.debug("detail")
    assert "DEBUG detail" in capsys.readouterr().out


def test_formatter_summary_label():
    record = logging.LogRecord("x", SUMMARY_LEVEL, __file__, 1, "done", None, None)
    assert LabeledFormatter().format(record) == "SUMMARY done"


def test_error_record_json_line():
    rec = ErrorRecord.create("ledger", "AllAccounts", -1, "STRUCTURAL_PARSE_ERROR", "sheet missing")
    data = json.loads(rec.to_json_line())
    assert set(data) == {"timestamp", "source", "sheet", "row", "error_type", "message"}
    assert data["timestamp"].endswith("Z")
    assert data["row"] == -1


def test_error_log_buffer_flush(temp_workdir: Path):
    buf = ErrorLogBuffer()
    assert buf.flush() is None
    buf.append(ErrorRecord.create("v3", "", -1, "STRUCTURAL_PARSE_ERROR", "cannot open workbook"))
    buf.append(ErrorRecord.create("<MERGE>", "~v3:9", -1, "RECORD_DISCARDED", "no meaningful data"))
    path = buf.flush()
    assert path is not None and path.exists()
    assert path.parent.name == "logs"
    assert path.name.startswith("errors-") and path.suffix == ".log"
    lines = path.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["error_type"] for line in lines] == ["STRUCTURAL_PARSE_ERROR", "RECORD_DISCARDED"]
    assert len(buf) == 0
