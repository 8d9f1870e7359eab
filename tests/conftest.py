"""
Shared fixtures: generated workbooks, PDFs, images and sessions.
"""
import io
from typing import Dict, List

import fitz
import pandas as pd
import pytest

from core.config import reset_settings
from core.identity import assign_ids
from core.schema import AttachmentSlot, ExpenseRecord, FileRef, TemplateVersion
from core.session import ExpenseSession

GENERIC_HEADER = [
    "Budget Category",
    "Sub-Category",
    "Project Phase",
    "Vendor",
    "Item",
    "Invoice/Credit #",
    "Invoice Date",
    "Transaction Type",
    "Check/Voucher #",
    "Amount",
]


def make_workbook(sheets: Dict[str, List[list]]) -> bytes:
    """Write rows to an in-memory xlsx, one sheet per entry, no header row."""
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="xlsxwriter") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, header=False, index=False)
    return buffer.getvalue()


def make_pdf(*texts: str) -> bytes:
    """A PDF with one page per text."""
    doc = fitz.open()
    for text in texts:
        page = doc.new_page()
        page.insert_text((72, 72), text, fontsize=12)
    data = doc.tobytes()
    doc.close()
    return data


def make_png(width: int = 40, height: int = 20) -> bytes:
    pixmap = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, width, height), False)
    pixmap.clear_with(180)
    return pixmap.tobytes("png")


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point storage at a temp dir and rebuild settings for every test."""
    monkeypatch.setenv("STORAGE_PATH", str(tmp_path / "files"))
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("PORT", raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def generic_workbook() -> bytes:
    return make_workbook({
        "Expenses": [
            ["ACME Project Budget"],
            ["Prepared by finance"],
            ["FY2024"],
            GENERIC_HEADER,
            ["Travel", "Lodging", "1", "Acme Hotels", "Room", "", "", "", "", "$1,200.00"],
            ["Travel", "Meals", "1", "Diner", "Lunch", "", "", "", "", "$0.00"],
            ["Supplies", "Office", "2", "Paper Co", "Paper", "INV-7", "", "Check", "1001", "(250.50)"],
            ["Subtotal", "", "", "", "", "", "", "", "", ""],
        ]
    })


@pytest.fixture
def pdf_bytes() -> bytes:
    return make_pdf("Invoice page 1", "Invoice page 2")


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def sample_session(pdf_bytes, png_bytes) -> ExpenseSession:
    """Three expenses: PDF invoice + PNG proof, nothing, and a duplicate pair with a proof only."""
    records = assign_ids([
        ExpenseRecord(name="Travel - Lodging - 1 - Acme Hotels - Room", amount=1200.0, sheet="Expenses"),
        ExpenseRecord(name="Supplies - Office", amount=-250.5, sheet="Expenses"),
        ExpenseRecord(name="Supplies - Office", amount=-250.5, sheet="Expenses"),
    ])
    slots = [
        AttachmentSlot(
            invoice=FileRef(name="acme invoice #42.pdf", mime_type="application/pdf", data=pdf_bytes),
            proof=FileRef(name="receipt.png", mime_type="image/png", data=png_bytes),
        ),
        AttachmentSlot(),
        AttachmentSlot(proof=FileRef(name="bank/transfer.png", mime_type="image/png", data=png_bytes)),
    ]
    return ExpenseSession(records, slots, template_version=TemplateVersion.GENERIC)
