"""
Zip save-point codec.

Archive layout:
    state.json                          SaveState, attachments referenced by path
    progress-report.pdf                 rendered report at save time
    attachments/<n>/invoice_<name>      invoice of expense n (1-based)
    attachments/<n>/proof_<name>        proof of payment of expense n
"""
import io
import re
import zipfile
import zlib
from typing import Dict

from core.exceptions import ExportError, RestoreError
from core.exporters import render_report
from core.logger import setup_logger
from core.savestate import SessionCodec, build_state, dump_state, load_state, require_payload, session_from_state
from core.schema import AttachmentSide, FileManifest, FileRef
from core.session import ExpenseSession

logger = setup_logger(__name__)

STATE_ENTRY = "state.json"
REPORT_ENTRY = "progress-report.pdf"
ATTACHMENTS_DIR = "attachments"

ARCHIVE_ERRORS = (zipfile.BadZipFile, zlib.error, OSError, ValueError, EOFError)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.\-() ]")


def sanitize_filename(name: str) -> str:
    """Replace every character outside [A-Za-z0-9_.-() ] with an underscore."""
    return _UNSAFE_CHARS.sub("_", name or "")


def attachment_path(number: int, side: AttachmentSide, name: str) -> str:
    return f"{ATTACHMENTS_DIR}/{number}/{side.value}_{sanitize_filename(name)}"


class SavePointCodec(SessionCodec):
    """Persist a session as a zip archive with a JSON manifest."""

    format_name = "save point"

    def serialize(self, session: ExpenseSession) -> bytes:
        """
        Encode the session as a save-point archive.

        Args:
            session: Session to persist

        Returns:
            Zip archive bytes

        Raises:
            ExportError: If the report or archive cannot be produced
        """
        payloads: Dict[str, bytes] = {}

        def store(number: int, side: AttachmentSide, file: FileRef) -> FileManifest:
            path = attachment_path(number, side, file.name)
            payloads[path] = file.data
            return FileManifest(name=file.name, mime_type=file.mime_type, path=path)

        state = build_state(session, store)
        report = render_report(session)

        buffer = io.BytesIO()
        try:
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                archive.writestr(STATE_ENTRY, dump_state(state))
                archive.writestr(REPORT_ENTRY, report)
                for path, data in payloads.items():
                    archive.writestr(path, data)
        except (OSError, zipfile.LargeZipFile) as e:
            logger.error(f"Failed to write save point: {e}")
            raise ExportError(
                "Failed to create the save point",
                details={"error": str(e)}
            ) from e

        data = buffer.getvalue()
        logger.info(
            f"Created save point: {len(session)} expenses, "
            f"{len(payloads)} attachments, {len(data)} bytes"
        )
        return data

    def deserialize(self, data: bytes) -> ExpenseSession:
        """
        Restore a session from save-point archive bytes.

        Raises:
            RestoreError: If the archive, its manifest or an attachment is unreadable
            DataNotFoundError: If state.json is absent
            UnsupportedSchemaError: If schemaVersion is not 1
        """
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except ARCHIVE_ERRORS as e:
            raise RestoreError(
                "Unable to open the save point archive",
                details={"error": str(e)}
            ) from e

        with archive:
            names = set(archive.namelist())
            raw_state = require_payload(
                read_entry(archive, STATE_ENTRY) if STATE_ENTRY in names else None,
                STATE_ENTRY,
            )
            state = load_state(raw_state)

            def read(number: int, side: AttachmentSide, manifest: FileManifest) -> bytes:
                if not manifest.path or manifest.path not in names:
                    raise RestoreError(
                        f"Save point is missing the {side.value} of expense {number}",
                        details={"index": number, "side": side.value, "path": manifest.path}
                    )
                return read_entry(archive, manifest.path)

            session = session_from_state(state, read)

        logger.info(f"Restored save point: {len(session)} expenses")
        return session


def read_entry(archive: zipfile.ZipFile, name: str) -> bytes:
    """
    Read one archive entry.

    Raises:
        RestoreError: If the entry is corrupted (bad CRC or deflate stream)
    """
    try:
        return archive.read(name)
    except ARCHIVE_ERRORS as e:
        logger.error(f"Corrupted save point entry {name}: {e}")
        raise RestoreError(
            f"Save point entry {name} is corrupted",
            details={"entry": name, "error": str(e)}
        ) from e
