"""
Expense session service.
Runs extraction, restore and generation pipelines against one session.
"""
import asyncio
from contextlib import asynccontextmanager
from datetime import date
from functools import partial
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar, Union

from core.config import get_settings
from core.exceptions import BudgetToolException, FileProcessingError, SessionBusyError, ValidationError
from core.exporters import create_save_point_filename, render_report
from core.logger import setup_logger
from core.parsing import extract_from_workbook, get_strategy
from core.progress_pdf import ProgressPdfCodec
from core.savepoint import SavePointCodec
from core.savestate import SessionCodec
from core.schema import AttachmentSide, FileRef
from core.session import ExpenseSession

logger = setup_logger(__name__)

T = TypeVar("T")


class SessionService:
    """
    Owns the single working session and serializes pipelines over it.

    Only one pipeline runs at a time; a second request while one is in
    flight is rejected. Loads and restores build a staging session and
    swap it in only after the whole pipeline succeeded.
    """

    def __init__(self, session: Optional[ExpenseSession] = None):
        """Initialize session service."""
        self.settings = get_settings()
        if session is None:
            session = ExpenseSession(template_version=self.settings.default_template_version)
        self.session = session
        self.save_point_codec: SessionCodec = SavePointCodec()
        self.progress_codec: SessionCodec = ProgressPdfCodec()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def _pipeline(self, name: str):
        if self._lock.locked():
            raise SessionBusyError(
                f"Cannot start {name}: another operation is in progress",
                details={"operation": name}
            )
        async with self._lock:
            logger.info(f"Starting {name}")
            yield
            logger.info(f"Finished {name}")

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        # Codecs and workbook decoding are synchronous
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args))

    async def load_budget(
        self,
        data: bytes,
        version: Optional[int] = None,
        filename: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Replace the session with expenses extracted from a budget workbook.

        Args:
            data: Workbook bytes
            version: Template version (defaults to the configured version)
            filename: Original file name

        Returns:
            Session summary

        Raises:
            BudgetToolException: If the workbook cannot be loaded; the
                current session is left unchanged
        """
        version = version if version is not None else self.settings.default_template_version
        strategy = get_strategy(version)

        async with self._pipeline("budget load"):
            try:
                records = await self._run(extract_from_workbook, data, strategy.version, filename)
            except BudgetToolException:
                logger.error(f"Budget load failed for {filename}", exc_info=True)
                raise
            except Exception as e:
                logger.error(f"Budget load failed for {filename}: {e}", exc_info=True)
                raise FileProcessingError(
                    "Unable to read the spreadsheet",
                    details={"file_name": filename, "error": str(e)}
                ) from e

            self.session.replace(ExpenseSession(records, template_version=strategy.version))
            logger.info(f"Loaded {len(records)} expenses from {filename or 'upload'}")
            return self.session.summary()

    async def _restore(self, codec: SessionCodec, data: bytes, filename: Optional[str]) -> Dict[str, Any]:
        async with self._pipeline(f"{codec.format_name} restore"):
            try:
                staged = await self._run(codec.deserialize, data)
            except BudgetToolException:
                logger.error(f"Failed to restore {codec.format_name} {filename or ''}", exc_info=True)
                raise
            except Exception as e:
                logger.error(f"Failed to restore {codec.format_name}: {e}", exc_info=True)
                raise FileProcessingError(
                    f"Unable to restore the {codec.format_name}",
                    details={"file_name": filename, "error": str(e)}
                ) from e

            self.session.replace(staged)
            return self.session.summary()

    async def restore_save_point(self, data: bytes, filename: Optional[str] = None) -> Dict[str, Any]:
        """Replace the session with the contents of a save-point archive."""
        return await self._restore(self.save_point_codec, data, filename)

    async def restore_progress_pdf(self, data: bytes, filename: Optional[str] = None) -> Dict[str, Any]:
        """Replace the session with the contents of a progress PDF."""
        return await self._restore(self.progress_codec, data, filename)

    async def _generate(self, name: str, func: Callable[[ExpenseSession], bytes]) -> bytes:
        if self.session.is_empty():
            raise ValidationError(
                "Load a budget spreadsheet first",
                details={"operation": name}
            )
        async with self._pipeline(name):
            snapshot = ExpenseSession(
                self.session.expenses,
                self.session.attachments,
                template_version=self.session.template_version,
            )
            try:
                return await self._run(func, snapshot)
            except BudgetToolException:
                logger.error(f"{name} failed", exc_info=True)
                raise
            except Exception as e:
                logger.error(f"{name} failed: {e}", exc_info=True)
                raise FileProcessingError(
                    f"Failed to generate {name}",
                    details={"error": str(e)}
                ) from e

    async def build_report(self) -> Tuple[str, bytes]:
        """Render the expense report. Returns (download name, PDF bytes)."""
        data = await self._generate("report", render_report)
        return self.settings.report_filename, data

    async def build_save_point(self, on: Optional[date] = None) -> Tuple[str, bytes]:
        """Encode a save-point archive. Returns (download name, archive bytes)."""
        data = await self._generate("save point", self.save_point_codec.serialize)
        return create_save_point_filename(on), data

    async def build_progress_pdf(self) -> Tuple[str, bytes]:
        """Encode a progress PDF. Returns (download name, PDF bytes)."""
        data = await self._generate("progress PDF", self.progress_codec.serialize)
        return self.settings.progress_filename, data

    def attach(self, index: int, side: Union[AttachmentSide, str], file: FileRef) -> None:
        """
        Attach a document to one expense.

        Args:
            index: 0-based expense position
            side: "invoice" or "proof"
            file: Uploaded document
        """
        self._ensure_idle("attach")
        self.session.set_attachment(index, side, file)
        logger.info(f"Attached {AttachmentSide(side).value} '{file.name}' ({file.mime_type}) to expense {index + 1}")

    def detach(self, index: int, side: Union[AttachmentSide, str]) -> None:
        """Remove a document from one expense."""
        self._ensure_idle("detach")
        self.session.set_attachment(index, side, None)
        logger.info(f"Removed {AttachmentSide(side).value} from expense {index + 1}")

    def clear(self) -> None:
        """Reset the session to empty."""
        self._ensure_idle("clear")
        self.session.clear()
        logger.info("Session cleared")

    def summary(self) -> Dict[str, Any]:
        return self.session.summary()

    def _ensure_idle(self, name: str) -> None:
        if self._lock.locked():
            raise SessionBusyError(
                f"Cannot {name}: another operation is in progress",
                details={"operation": name}
            )
