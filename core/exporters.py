"""
PDF report composition and download naming.
Builds one detail page per expense followed by its invoice and proof documents.
"""
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import fitz

from core.config import get_settings
from core.exceptions import ExportError
from core.logger import setup_logger
from core.normalize import decompose_name, format_currency
from core.parsing import get_strategy
from core.schema import AttachmentSide, ExpenseRecord, FileRef
from core.session import ExpenseSession

logger = setup_logger(__name__)

# A4 in points
PAGE_WIDTH = 595.28
PAGE_HEIGHT = 841.89
IMAGE_MAX_WIDTH = 480
IMAGE_MAX_HEIGHT = 640
MARGIN = 40
FIELD_FONT_SIZES = (12, 10, 8, 6)

TITLE_COLOR = (0.13, 0.45, 0.75)
LABEL_COLOR = (0.4, 0.45, 0.55)
TEXT_COLOR = (0, 0, 0)

SIDE_CAPTIONS = {
    AttachmentSide.INVOICE: "Invoice for expense {n}",
    AttachmentSide.PROOF: "Proof of payment for expense {n}",
}
SIDE_MISSING = {
    AttachmentSide.INVOICE: "Expense {n}: no invoice uploaded.",
    AttachmentSide.PROOF: "Expense {n}: no proof uploaded.",
}


def new_page(doc: fitz.Document) -> fitz.Page:
    return doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)


def add_message_page(doc: fitz.Document, message: str) -> None:
    """Add a page carrying a single line of text."""
    page = new_page(doc)
    page.insert_text((MARGIN + 10, 80), message, fontsize=14, color=TEXT_COLOR)


def insert_fitted_text(page: fitz.Page, box: fitz.Rect, text: str) -> None:
    """
    Write text into a box, shrinking the font until it fits.

    Text that overflows even at the smallest size is cut short and ends
    with "...", so a field is never silently dropped.
    """
    for fontsize in FIELD_FONT_SIZES:
        if page.insert_textbox(box, text, fontsize=fontsize, color=TEXT_COLOR) >= 0:
            return

    fontsize = FIELD_FONT_SIZES[-1]
    logger.warning(f"Truncated {len(text)}-character field on page {page.number + 1}")
    shortened = text
    while shortened:
        shortened = shortened[:int(len(shortened) * 0.8)]
        if page.insert_textbox(box, shortened + "...", fontsize=fontsize, color=TEXT_COLOR) >= 0:
            return
    page.insert_textbox(box, "...", fontsize=fontsize, color=TEXT_COLOR)


def add_detail_page(doc: fitz.Document, number: int, record: ExpenseRecord, facet_labels, title: str) -> None:
    """
    Add the detail page for one expense.

    Args:
        doc: Document being built
        number: 1-based expense position
        record: Expense record
        facet_labels: Labels for category, sub-category, phase and details
        title: Page title prefix
    """
    page = new_page(doc)
    facets = decompose_name(record.name)

    page.insert_text((MARGIN, 60), f"{title} {number}", fontsize=18, color=TITLE_COLOR)

    y = 100.0
    fields = [
        (facet_labels[0], facets.category),
        (facet_labels[1], facets.sub_category),
        (facet_labels[2], facets.phase),
        (facet_labels[3], facets.details),
        ("Name", facets.original or "(unnamed)"),
        ("Amount", format_currency(record.amount)),
        ("Sheet", record.sheet),
    ]
    for label, value in fields:
        page.insert_text((MARGIN, y), label, fontsize=10, color=LABEL_COLOR)
        box = fitz.Rect(MARGIN, y + 4, PAGE_WIDTH - MARGIN, y + 52)
        insert_fitted_text(page, box, value)
        y += 58


def append_pdf_attachment(doc: fitz.Document, file: FileRef) -> None:
    """Append every page of an attached PDF."""
    with fitz.open(stream=file.data, filetype="pdf") as source:
        doc.insert_pdf(source)


def append_image_attachment(doc: fitz.Document, file: FileRef, caption: str) -> None:
    """
    Add a page with the image centred and scaled to fit, never enlarged.

    Args:
        doc: Document being built
        file: PNG or JPEG attachment
        caption: Text drawn above the image
    """
    pixmap = fitz.Pixmap(file.data)
    width, height = pixmap.width, pixmap.height
    scale = min(IMAGE_MAX_WIDTH / width, IMAGE_MAX_HEIGHT / height, 1)
    scaled_width, scaled_height = width * scale, height * scale

    page = new_page(doc)
    page.insert_text((MARGIN, 60), caption, fontsize=14, color=TEXT_COLOR)

    x0 = (PAGE_WIDTH - scaled_width) / 2
    y0 = (PAGE_HEIGHT - scaled_height) / 2
    rect = fitz.Rect(x0, y0, x0 + scaled_width, y0 + scaled_height)
    page.insert_image(rect, stream=file.data, keep_proportion=True)


def append_attachment(doc: fitz.Document, number: int, side: AttachmentSide, file: Optional[FileRef]) -> None:
    """Append an attachment's content, or a placeholder page when there is none."""
    if file is None:
        add_message_page(doc, SIDE_MISSING[side].format(n=number))
    elif file.is_pdf:
        append_pdf_attachment(doc, file)
    elif file.is_image:
        append_image_attachment(doc, file, SIDE_CAPTIONS[side].format(n=number))
    else:
        logger.warning(f"Expense {number}: cannot embed {side.value} '{file.name}' ({file.mime_type})")
        add_message_page(
            doc,
            f"Expense {number}: {side.value} '{file.name}' ({file.mime_type}) cannot be embedded."
        )


def compose_report(session: ExpenseSession) -> fitz.Document:
    """
    Build the expense report document.

    Per expense, in order: detail page, invoice content or placeholder,
    proof content or placeholder.

    Args:
        session: Current expense session

    Returns:
        Open PyMuPDF document; the caller closes it

    Raises:
        ExportError: If any page or attachment cannot be rendered
    """
    strategy = get_strategy(session.template_version)
    doc = fitz.open()
    number = 0
    try:
        for number, (record, slot) in enumerate(session, start=1):
            add_detail_page(doc, number, record, strategy.facet_labels, strategy.detail_title)
            append_attachment(doc, number, AttachmentSide.INVOICE, slot.invoice)
            append_attachment(doc, number, AttachmentSide.PROOF, slot.proof)
        if session.is_empty():
            add_message_page(doc, "No expenses loaded.")
    except Exception as e:
        doc.close()
        logger.error(f"Failed to compose report at expense {number}: {e}")
        raise ExportError(
            "Something went wrong while creating the report",
            details={"expense": number, "error": str(e)}
        ) from e

    logger.info(f"Composed report with {len(session)} expenses, {doc.page_count} pages")
    return doc


def render_report(session: ExpenseSession) -> bytes:
    """Compose the report and return its PDF bytes."""
    doc = compose_report(session)
    try:
        return doc.tobytes(garbage=3, deflate=True)
    except Exception as e:
        raise ExportError(
            "Failed to encode the report PDF",
            details={"error": str(e)}
        ) from e
    finally:
        doc.close()


def create_save_point_filename(on: Optional[date] = None) -> str:
    """Save point download name, e.g. budget-save-point-2024-05-01.btsp."""
    settings = get_settings()
    day = (on or date.today()).strftime("%Y-%m-%d")
    return f"{settings.save_point_prefix}-{day}{settings.save_point_extension}"


def create_output_path(filename: str, base_path: Optional[str] = None) -> str:
    """
    Build a unique storage path for one generated download.

    The stored name is timestamped and suffixed so that concurrent
    downloads never share a file; `filename` stays the download name.

    Args:
        filename: Download file name
        base_path: Base directory path (defaults to configured temp storage)

    Returns:
        Full output file path, e.g. files/expense-report_2024-05-01T10-30-00_1a2b3c4d.pdf
    """
    if base_path is None:
        base_path = get_settings().temp_storage_path

    Path(base_path).mkdir(parents=True, exist_ok=True)

    name = Path(filename)
    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    unique_name = f"{name.stem}_{timestamp}_{uuid.uuid4().hex[:8]}{name.suffix}"
    return str(Path(base_path) / unique_name)


def write_output(data: bytes, filename: str, base_path: Optional[str] = None) -> str:
    """
    Write generated bytes to a fresh file in the storage directory.

    Raises:
        ExportError: If the file cannot be written
    """
    output_path = create_output_path(filename, base_path)
    try:
        Path(output_path).write_bytes(data)
    except OSError as e:
        logger.error(f"Failed to write {output_path}: {e}")
        raise ExportError(
            "Failed to write output file",
            details={"output_path": output_path, "error": str(e)}
        ) from e
    logger.info(f"Wrote {len(data)} bytes to {output_path}")
    return output_path
