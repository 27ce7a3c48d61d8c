from __future__ import annotations

import logging

import pytest

from client_recon.models.config_models import LedgerLayout
from client_recon.parsing.ledger import (
    LOOKAHEAD_ROWS,
    find_address_columns,
    find_name_columns,
    find_next_block_row,
    parse_ledger_sheet,
    read_month_labels,
)
from conftest import grid, ledger_block, ledger_sheet

"""Ledger block scanner: header discovery, stride iteration, gap recovery."""


def test_lookahead_constant():
    assert LOOKAHEAD_ROWS == 20
    assert LedgerLayout().lookahead_rows == LOOKAHEAD_ROWS


def test_header_and_month_discovery():
    sheet = ledger_sheet(ledger_block(5, 12, "Jane", "Smith"))
    assert find_name_columns(sheet) == (4, 3)  # First in E, Last in D
    labels = read_month_labels(sheet)
    assert len(labels) == 12
    assert labels[:3] == ["Jan 2024", "Feb 2024", ""]


def test_single_block_fields():
    sheet = ledger_sheet(ledger_block(5, 12, "Jane", "Smith", **{"F9": "$ Last 4", "G9": 4242, "H7": "Liquidation Tax", "I7": "6%"}))
    [rec] = parse_ledger_sheet(sheet)
    assert rec.label == "12"
    assert rec.row == 4
    assert (rec.first_name, rec.last_name) == ("Jane", "Smith")
    assert rec.sales_notes == "notes for Jane"
    assert rec.operations_notes == "ops"
    assert rec.notes == "notes for Jane"
    assert rec.contract_tax_rate == pytest.approx(0.07)
    assert rec.liquidation_tax_rate == pytest.approx(6.0)
    assert rec.payment_type == "ACH"
    assert rec.last_four_digits == "4242"
    assert rec.conflicts == ()

    assert list(rec.billing_details) == ["Jan 2024"]
    jan = rec.billing_details["Jan 2024"]
    assert jan.payment_status == "Paid"
    assert jan.due_date == "2024-01-15T00:00:00.000Z"
    assert (jan.bill, jan.tax, jan.total_bill, jan.paid) == (1500.0, 105.0, 1605.0, 1605.0)
    assert (jan.signed, jan.invoiced) == ("Yes", "Yes")


def test_consecutive_blocks_on_stride():
    sheet = ledger_sheet(
        ledger_block(5, 1, "Ann", "Lee"),
        ledger_block(13, 2, "Bob", "Ray"),
        ledger_block(21, 3, "Cy", "Dunn"),
    )
    records = parse_ledger_sheet(sheet)
    assert [r.label for r in records] == ["1", "2", "3"]
    assert [r.row for r in records] == [4, 12, 20]


def test_gap_of_five_blank_rows_finds_both_blocks():
    # block 1 rows 5-12, rows 13-17 blank, block 2 at row 18
    sheet = ledger_sheet(ledger_block(5, 1, "Ann", "Lee"), ledger_block(18, 2, "Bob", "Ray"))
    records = parse_ledger_sheet(sheet)
    assert [(r.label, r.last_name) for r in records] == [("1", "Lee"), ("2", "Ray")]
    assert records[1].row == 17
    # realigned block keeps its billing rows in place
    assert records[1].billing_details["Jan 2024"].bill == 1500.0


def test_gap_of_thirty_blank_rows_ends_scan():
    sheet = ledger_sheet(ledger_block(5, 1, "Ann", "Lee"), ledger_block(43, 2, "Bob", "Ray"))
    records = parse_ledger_sheet(sheet)
    assert [r.label for r in records] == ["1"]


def test_find_next_block_row_window_is_bounded():
    sheet = ledger_sheet(ledger_block(5, 1, "Ann", "Lee"), ledger_block(33, 2, "Bob", "Ray"))
    # stride position 12 (row 13); row 33 is index 32 = 12 + 20
    assert find_next_block_row(sheet, 12) == 32
    sheet = ledger_sheet(ledger_block(5, 1, "Ann", "Lee"), ledger_block(34, 2, "Bob", "Ray"))
    assert find_next_block_row(sheet, 12) is None


def test_find_next_block_row_past_end_of_sheet():
    sheet = ledger_sheet(ledger_block(5, 1, "Ann", "Lee"), rows=12)
    assert find_next_block_row(sheet, 12) is None
    assert find_next_block_row(sheet, 100) is None


def test_blank_month_label_is_never_a_key():
    block = ledger_block(5, 1, "Ann", "Lee", **{"N5": "Open"})  # column N has no month label
    records = parse_ledger_sheet(ledger_sheet(block))
    assert list(records[0].billing_details) == ["Jan 2024"]
    assert "" not in records[0].billing_details


def test_month_without_data_is_dropped():
    records = parse_ledger_sheet(ledger_sheet(ledger_block(5, 1, "Ann", "Lee")))
    assert "Feb 2024" not in records[0].billing_details


def test_missing_name_header_skips_names(caplog):
    cells = ledger_block(5, 1, "Ann", "Lee")
    sheet = grid({"L3": "Jan 2024", **cells}, rows=20)
    with caplog.at_level(logging.WARNING, logger="client_recon"):
        [rec] = parse_ledger_sheet(sheet)
    assert (rec.first_name, rec.last_name) == ("", "")
    assert rec.label == "1"
    assert "no First/Last header" in caplog.text


def test_identifier_falls_back_to_text():
    records = parse_ledger_sheet(ledger_sheet(ledger_block(5, "Walk-in", "Ann", "Lee")))
    assert records[0].label == "Walk-in"


def test_disagreeing_heuristics_are_flagged(caplog):
    block = ledger_block(5, 1, "Ann", "Lee", **{"B7": 2, "D8": "Other", "E8": "Person"})
    with caplog.at_level(logging.WARNING, logger="client_recon"):
        [rec] = parse_ledger_sheet(ledger_sheet(block))
    assert rec.label == "1"
    assert (rec.first_name, rec.last_name) == ("Ann", "Lee")
    assert rec.conflicts == ("identifier", "name")
    assert "heuristics disagree" in caplog.text


def test_unlabelled_note_defaults_to_sales_notes():
    block = ledger_block(5, 1, "Ann", "Lee", A5=None, A6=None, C6=None)
    [rec] = parse_ledger_sheet(ledger_sheet(block))
    assert rec.sales_notes == "notes for Ann"
    assert rec.operations_notes == ""


def test_custom_layout():
    layout = LedgerLayout(first_block_row=6, month_first_column="L", month_last_column="M")
    cells = {"L3": "Mar 2024", "M3": "Apr 2024", "D4": "Last", "E4": "First"}
    cells.update(ledger_block(6, 8, "Ann", "Lee"))
    records = parse_ledger_sheet(grid(cells, rows=20), layout)
    assert [r.label for r in records] == ["8"]
    assert list(records[0].billing_details) == ["Mar 2024"]


def test_name_headers_match_whole_cells():
    # note text above the real header row must not be taken for a header
    sheet = ledger_sheet(ledger_block(5, 1, "Ann", "Lee"), {"B2": "First call done", "C2": "Last payment late"})
    assert find_name_columns(sheet) == (4, 3)
    sheet = grid({"D2": "Last Name", "E2": "first name"})
    assert find_name_columns(sheet) == (4, 3)


ADDRESS_HEADERS = {"H4": "Billing Address", "I4": "Bill City", "J4": "Bill State", "K4": "Bill Zip"}


def test_billing_address_read_under_headers():
    sheet = ledger_sheet(
        ledger_block(5, 1, "Ann", "Lee", H6="1 Main St", I6="Austin", J6="TX", K6=78701),
        ledger_block(13, 2, "Bob", "Ray"),
        ADDRESS_HEADERS,
    )
    assert find_address_columns(sheet) == {
        "billing_address": 7,
        "billing_city": 8,
        "billing_state": 9,
        "billing_zip": 10,
    }
    ann, bob = parse_ledger_sheet(sheet)
    assert (ann.billing_address, ann.billing_city, ann.billing_state, ann.billing_zip) == (
        "1 Main St",
        "Austin",
        "TX",
        "78701",
    )
    assert (bob.billing_address, bob.billing_zip) == ("", "")
    assert ann.to_dict()["billing_city"] == "Austin"


def test_billing_address_skips_repeated_header_text():
    # header repeated inside the block is not a value
    block = ledger_block(5, 1, "Ann", "Lee", I5="Bill City", I6="Reno")
    [rec] = parse_ledger_sheet(ledger_sheet(block, ADDRESS_HEADERS))
    assert rec.billing_city == "Reno"


def test_no_address_headers_leaves_address_empty():
    sheet = ledger_sheet(ledger_block(5, 1, "Ann", "Lee", I6="Austin"))
    assert find_address_columns(sheet) == {}
    [rec] = parse_ledger_sheet(sheet)
    assert rec.billing_city == ""
