"""
Unit tests for the PDF report and download naming.
"""
from datetime import date
from pathlib import Path

import fitz
import pytest

from core.exceptions import ExportError
from core.exporters import (
    PAGE_HEIGHT,
    PAGE_WIDTH,
    compose_report,
    create_save_point_filename,
    render_report,
    write_output,
)
from core.schema import AttachmentSlot, ExpenseRecord, FileRef
from core.session import ExpenseSession
from tests.conftest import make_png


def page_texts(data: bytes):
    with fitz.open(stream=data, filetype="pdf") as doc:
        return [page.get_text() for page in doc]


def test_report_page_order(sample_session):
    """Detail page, invoice content, proof content, per expense in order."""
    texts = page_texts(render_report(sample_session))

    # expense 1: detail + 2 invoice pages + proof image
    # expense 2: detail + two placeholders
    # expense 3: detail + invoice placeholder + proof image
    assert len(texts) == 10
    assert "Expense 1" in texts[0]
    assert "Invoice page 1" in texts[1]
    assert "Invoice page 2" in texts[2]
    assert "Proof of payment for expense 1" in texts[3]
    assert "Expense 2" in texts[4]
    assert "Expense 2: no invoice uploaded." in texts[5]
    assert "Expense 2: no proof uploaded." in texts[6]
    assert "Expense 3" in texts[7]
    assert "Expense 3: no invoice uploaded." in texts[8]
    assert "Proof of payment for expense 3" in texts[9]


def test_detail_page_shows_facets(sample_session):
    detail = page_texts(render_report(sample_session))[0]
    for text in ("Budget category", "Travel", "Lodging", "Acme Hotels - Room", "$1,200.00", "Expenses"):
        assert text in detail


def test_detail_page_uses_placeholders():
    session = ExpenseSession([ExpenseRecord(name="Supplies", amount=-5, sheet="Expenses")])
    detail = page_texts(render_report(session))[0]
    assert "(sub-category)" in detail
    assert "-$5.00" in detail


def test_long_name_is_shrunk_to_fit():
    details = " ".join(f"item{i}" for i in range(40))
    session = ExpenseSession([ExpenseRecord(name=f"Travel - Lodging - Trip - {details}", amount=1, sheet="Expenses")])
    detail = page_texts(render_report(session))[0]
    assert "item0" in detail
    assert "item39" in detail
    assert "$1.00" in detail


def test_overlong_name_is_truncated_not_dropped():
    session = ExpenseSession([ExpenseRecord(name="Travel - Lodging - Trip - " + "longword " * 600, amount=1, sheet="Expenses")])
    detail = page_texts(render_report(session))[0]
    assert "longword" in detail
    assert "..." in detail
    assert "$1.00" in detail
    assert "Expenses" in detail


def test_image_is_centred_and_not_enlarged():
    record = ExpenseRecord(name="A", amount=1, sheet="S")
    slot = AttachmentSlot(invoice=FileRef(name="small.png", mime_type="image/png", data=make_png(40, 20)))
    doc = compose_report(ExpenseSession([record], [slot]))
    try:
        [image] = doc[1].get_image_info()
        x0, y0, x1, y1 = image["bbox"]
        assert x1 - x0 == pytest.approx(40, abs=0.5)
        assert y1 - y0 == pytest.approx(20, abs=0.5)
        assert (x0 + x1) / 2 == pytest.approx(PAGE_WIDTH / 2, abs=0.5)
        assert (y0 + y1) / 2 == pytest.approx(PAGE_HEIGHT / 2, abs=0.5)
    finally:
        doc.close()


def test_large_image_is_scaled_to_box():
    record = ExpenseRecord(name="A", amount=1, sheet="S")
    slot = AttachmentSlot(proof=FileRef(name="big.png", mime_type="image/png", data=make_png(960, 640)))
    doc = compose_report(ExpenseSession([record], [slot]))
    try:
        [image] = doc[2].get_image_info()
        x0, y0, x1, y1 = image["bbox"]
        assert x1 - x0 == pytest.approx(480, abs=0.5)
        assert y1 - y0 == pytest.approx(320, abs=0.5)
    finally:
        doc.close()


def test_unsupported_type_gets_placeholder():
    record = ExpenseRecord(name="A", amount=1, sheet="S")
    slot = AttachmentSlot(invoice=FileRef(name="notes.txt", mime_type="text/plain", data=b"hi"))
    texts = page_texts(render_report(ExpenseSession([record], [slot])))
    assert "cannot be embedded" in texts[1]


def test_broken_pdf_attachment_is_generation_failure():
    record = ExpenseRecord(name="A", amount=1, sheet="S")
    slot = AttachmentSlot(invoice=FileRef(name="bad.pdf", mime_type="application/pdf", data=b"garbage"))
    with pytest.raises(ExportError):
        render_report(ExpenseSession([record], [slot]))


def test_empty_session_renders_single_page():
    texts = page_texts(render_report(ExpenseSession()))
    assert len(texts) == 1
    assert "No expenses loaded." in texts[0]


def test_save_point_filename_includes_date():
    assert create_save_point_filename(date(2024, 5, 1)) == "budget-save-point-2024-05-01.btsp"


def test_write_output(tmp_path):
    path = Path(write_output(b"data", "report.pdf"))
    assert path.parent == tmp_path / "files"
    assert path.name.startswith("report_")
    assert path.suffix == ".pdf"
    assert path.read_bytes() == b"data"


def test_write_output_never_reuses_a_path():
    """A second download must not overwrite a file that may still be streaming."""
    first = write_output(b"first", "expense-report.pdf")
    second = write_output(b"second", "expense-report.pdf")
    assert first != second
    assert Path(first).read_bytes() == b"first"
    assert Path(second).read_bytes() == b"second"
