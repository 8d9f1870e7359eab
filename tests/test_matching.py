"""
Unit tests for header row detection.
"""
from core.matching import detect_header, match_row, normalize_string
from core.schema import HeaderRole


def test_normalize_string():
    assert normalize_string("  Budget   CATEGORY ") == "budget category"
    assert normalize_string(None) == ""


def test_detects_header_with_any_casing():
    rows = [
        ["Project budget"],
        [],
        ["  BUDGET category", "Sub-Category ", "project PHASE", "Vendor", "Amount"],
        ["Travel", "Lodging", "1", "Acme", "$10"],
    ]
    header = detect_header(rows)
    assert header is not None
    assert header.header_row_index == 2
    assert header.role_to_column[HeaderRole.AMOUNT] == 4
    assert header.role_to_column[HeaderRole.CATEGORY] == 0


def test_first_qualifying_row_wins():
    rows = [
        ["Vendor", "Item", "Amount"],
        ["Budget Category", "Sub-Category", "Project Phase", "Vendor", "Item", "Amount"],
    ]
    assert detect_header(rows).header_row_index == 0


def test_needs_three_mandatory_roles():
    rows = [
        ["Vendor", "Amount", "Invoice Date", "Transaction Type"],
        ["Acme", "10", "", ""],
    ]
    assert detect_header(rows) is None


def test_later_column_wins_for_same_role():
    roles = match_row(["Amount", "Vendor", "Budgeted Amount", "Item"])
    assert roles[HeaderRole.AMOUNT] == 2


def test_optional_roles_are_mapped():
    roles = match_row(["Invoice/Credit #", "Invoice Date", "Transaction Type", "Check/Voucher #"])
    assert roles[HeaderRole.INVOICE] == 0
    assert roles[HeaderRole.INVOICE_DATE] == 1
    assert roles[HeaderRole.TRANSACTION] == 2
    assert roles[HeaderRole.CHECK] == 3


def test_empty_rows_never_match():
    assert detect_header([[], [None, None], ["", ""]]) is None
