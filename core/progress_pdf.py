"""
Progress PDF codec.

The report PDF carries the full session as an embedded JSON file with
base64-inlined attachments. The document subject holds a reduced copy
(records only) for readers that drop embedded files.
"""
import base64
import binascii
import json
from typing import Optional

import fitz

from core.config import get_settings
from core.exceptions import DataNotFoundError, ExportError, RestoreError
from core.exporters import compose_report
from core.logger import setup_logger
from core.savestate import SessionCodec, build_state, dump_state, load_state, session_from_state
from core.schema import AttachmentSide, FileManifest, FileRef, SaveState
from core.session import ExpenseSession

logger = setup_logger(__name__)

PROGRESS_KIND = "budget-progress"
EMBEDDED_FILENAME = "budget-progress.json"
EMBEDDED_MIME_TYPE = "application/json"
DOCUMENT_TITLE = "Budget Expense Progress"


def subject_payload(state: SaveState) -> str:
    """Compact JSON of the state without attachment payloads."""
    reduced = state.model_copy(update={"attachments": []})
    payload = reduced.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class ProgressPdfCodec(SessionCodec):
    """Persist a session inside a generated report PDF."""

    format_name = "progress PDF"

    def serialize(self, session: ExpenseSession) -> bytes:
        """
        Render the report and embed the full session in it.

        Args:
            session: Session to persist

        Returns:
            PDF bytes

        Raises:
            ExportError: If the document cannot be produced
        """
        def inline(number: int, side: AttachmentSide, file: FileRef) -> FileManifest:
            encoded = base64.b64encode(file.data).decode("ascii")
            return FileManifest(name=file.name, mime_type=file.mime_type, data=encoded)

        state = build_state(session, inline, kind=PROGRESS_KIND)
        doc = compose_report(session)
        try:
            xref = doc.embfile_add(
                EMBEDDED_FILENAME,
                dump_state(state),
                filename=EMBEDDED_FILENAME,
                desc="Saved budget session",
            )
            # PDF names escape "/" as #2F
            doc.xref_set_key(xref, "Subtype", "/" + EMBEDDED_MIME_TYPE.replace("/", "#2F"))
            doc.set_metadata({
                "title": DOCUMENT_TITLE,
                "subject": subject_payload(state),
                "creator": get_settings().app_name,
                "producer": get_settings().app_name,
            })
            data = doc.tobytes(garbage=3, deflate=True)
        except Exception as e:
            logger.error(f"Failed to create progress PDF: {e}")
            raise ExportError(
                "Failed to create the progress PDF",
                details={"error": str(e)}
            ) from e
        finally:
            doc.close()

        logger.info(f"Created progress PDF: {len(session)} expenses, {len(data)} bytes")
        return data

    def deserialize(self, data: bytes) -> ExpenseSession:
        """
        Restore a session from a progress PDF.

        Uses the embedded JSON when present, otherwise the subject
        metadata; in the latter case every attachment slot is empty.

        Raises:
            RestoreError: If the PDF or its payload is unreadable
            DataNotFoundError: If neither payload is present
            UnsupportedSchemaError: If kind or schemaVersion do not match
        """
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise RestoreError(
                "Unable to open the progress PDF",
                details={"error": str(e)}
            ) from e

        try:
            embedded = self._read_embedded(doc)
            subject = (doc.metadata or {}).get("subject") or ""
        finally:
            doc.close()

        if embedded is not None:
            state = load_state(embedded, expected_kind=PROGRESS_KIND)
            session = session_from_state(state, decode_inline)
            logger.info(f"Restored progress PDF from embedded file: {len(session)} expenses")
            return session

        if not subject.strip():
            raise DataNotFoundError(
                "This PDF does not contain saved budget progress",
                details={"embedded_file": EMBEDDED_FILENAME}
            )

        logger.warning("Embedded progress file not found; restoring from subject metadata without attachments")
        state = load_state(subject, expected_kind=PROGRESS_KIND)
        session = session_from_state(state, lambda number, side, manifest: None)
        logger.info(f"Restored progress PDF from metadata: {len(session)} expenses")
        return session

    @staticmethod
    def _read_embedded(doc: fitz.Document) -> Optional[bytes]:
        try:
            if EMBEDDED_FILENAME not in doc.embfile_names():
                return None
            return doc.embfile_get(EMBEDDED_FILENAME)
        except Exception as e:
            raise RestoreError(
                "Unable to read the embedded progress file",
                details={"error": str(e)}
            ) from e


def decode_inline(number: int, side: AttachmentSide, manifest: FileManifest) -> Optional[bytes]:
    """Decode a base64-inlined attachment payload."""
    if manifest.data is None:
        return None
    try:
        return base64.b64decode(manifest.data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise RestoreError(
            f"Saved {side.value} of expense {number} is corrupted",
            details={"index": number, "side": side.value, "error": str(e)}
        ) from e
