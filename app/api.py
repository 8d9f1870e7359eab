"""
FastAPI routes for budget upload, attachments, reports and save points.
Thin HTTP layer over SessionService.
"""
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse, Response

from core.config import get_settings
from core.exceptions import (
    BudgetToolException,
    DataNotFoundError,
    ExportError,
    FileProcessingError,
    SessionBusyError,
)
from core.exporters import write_output
from core.logger import setup_logger
from core.normalize import decompose_name, format_currency
from core.schema import AttachmentSide, FileRef
from services.session_service import SessionService

logger = setup_logger(__name__)
settings = get_settings()

# Initialize FastAPI app
app = FastAPI(
    title="Budget Expense Reporter",
    description="Turn budget spreadsheets into expense reports with supporting documents",
    version="1.0.0"
)

# Single working session
session_service = SessionService()

SPREADSHEET_EXTENSIONS = (".xlsx", ".xlsm", ".xls")
SAVE_POINT_EXTENSIONS = (".btsp", ".zip")
ATTACHMENT_TYPES = ("application/pdf", "image/png", "image/jpeg")


def status_for(error: BudgetToolException) -> int:
    """Map a domain error to an HTTP status code."""
    if isinstance(error, SessionBusyError):
        return 409
    if isinstance(error, DataNotFoundError):
        return 404
    if isinstance(error, (ExportError, FileProcessingError)):
        return 500
    return 400


@app.exception_handler(BudgetToolException)
async def budget_error_handler(request: Request, exc: BudgetToolException):
    """Return the human-readable message plus the underlying cause."""
    status_code = status_for(exc)
    logger.warning(f"{request.method} {request.url.path} failed ({status_code}): {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.message, "error_details": exc.details},
    )


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "budget_expense_reporter",
        "version": "1.0.0"
    }


@app.get("/favicon.ico")
async def favicon():
    """Return empty response for favicon to avoid 404 errors."""
    return Response(status_code=204)


def validate_file_extension(filename: Optional[str], allowed: tuple) -> None:
    """
    Validate file has one of the allowed extensions.

    Raises:
        HTTPException: If file extension is invalid
    """
    if not filename or not filename.lower().endswith(allowed):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type: {filename}. Supported: {', '.join(allowed)}"
        )


async def read_upload(upload: UploadFile) -> bytes:
    """Read an upload, enforcing the configured size limit."""
    content = await upload.read()
    limit = settings.max_upload_mb * 1024 * 1024
    if len(content) > limit:
        raise HTTPException(
            status_code=413,
            detail=f"File {upload.filename} exceeds {settings.max_upload_mb} MB"
        )
    return content


def parse_side(side: str) -> AttachmentSide:
    try:
        return AttachmentSide(side)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown attachment side: {side}")


def download(data: bytes, filename: str, media_type: str) -> FileResponse:
    """Persist generated bytes to storage and stream them back."""
    output_path = write_output(data, filename)
    return FileResponse(path=output_path, filename=filename, media_type=media_type)


@app.post("/budget")
async def load_budget(
    file: UploadFile = File(...),
    version: Optional[int] = Form(None),
):
    """
    Load expenses from a budget spreadsheet, replacing the current session.

    Args:
        file: Budget workbook
        version: Template version (1 generic, 2 split sheets)
    """
    logger.info(f"Received budget: {file.filename} (version={version})")
    validate_file_extension(file.filename, SPREADSHEET_EXTENSIONS)
    content = await read_upload(file)
    summary = await session_service.load_budget(content, version=version, filename=file.filename)
    return {"status": "loaded", "summary": summary}


@app.get("/expenses")
async def list_expenses():
    """List expenses with their facets and attached documents."""
    items = []
    for number, (record, slot) in enumerate(session_service.session, start=1):
        facets = decompose_name(record.name)
        item: Dict[str, Any] = {
            "number": number,
            "id": record.id,
            "name": record.name or "(unnamed)",
            "amount": record.amount,
            "amount_formatted": format_currency(record.amount),
            "sheet": record.sheet,
            "facets": facets.model_dump(),
        }
        for side in AttachmentSide:
            file = slot.get(side)
            item[side.value] = {"name": file.name, "mime_type": file.mime_type} if file else None
        items.append(item)
    return {"summary": session_service.summary(), "expenses": items}


@app.post("/expenses/{number}/{side}")
async def attach_document(number: int, side: str, file: UploadFile = File(...)):
    """Attach an invoice or proof of payment to expense `number` (1-based)."""
    attachment_side = parse_side(side)
    content = await read_upload(file)
    document = FileRef.from_upload(file.filename or "attachment", content, file.content_type)
    if document.mime_type not in ATTACHMENT_TYPES:
        logger.warning(f"Attachment {document.name} has unsupported type {document.mime_type}")
    session_service.attach(number - 1, attachment_side, document)
    return {"status": "attached", "number": number, "side": attachment_side.value, "name": document.name}


@app.delete("/expenses/{number}/{side}")
async def detach_document(number: int, side: str):
    """Remove an invoice or proof of payment from expense `number`."""
    attachment_side = parse_side(side)
    session_service.detach(number - 1, attachment_side)
    return {"status": "removed", "number": number, "side": attachment_side.value}


@app.delete("/session")
async def clear_session():
    """Discard all expenses and attachments."""
    session_service.clear()
    return {"status": "cleared"}


@app.get("/report")
async def download_report():
    """Generate and download the expense report PDF."""
    filename, data = await session_service.build_report()
    return download(data, filename, "application/pdf")


@app.get("/save-point")
async def download_save_point():
    """Download a save-point archive of the full session."""
    filename, data = await session_service.build_save_point()
    return download(data, filename, "application/zip")


@app.post("/save-point")
async def restore_save_point(file: UploadFile = File(...)):
    """Restore the session from a save-point archive."""
    validate_file_extension(file.filename, SAVE_POINT_EXTENSIONS)
    content = await read_upload(file)
    summary = await session_service.restore_save_point(content, filename=file.filename)
    return {"status": "restored", "summary": summary}


@app.get("/progress")
async def download_progress_pdf():
    """Download the report PDF with the session embedded in it."""
    filename, data = await session_service.build_progress_pdf()
    return download(data, filename, "application/pdf")


@app.post("/progress")
async def restore_progress_pdf(file: UploadFile = File(...)):
    """Restore the session from a progress PDF."""
    validate_file_extension(file.filename, (".pdf",))
    content = await read_upload(file)
    summary = await session_service.restore_progress_pdf(content, filename=file.filename)
    return {"status": "restored", "summary": summary}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
