"""
Shared save-state handling for the session codecs.

Both persistence formats store the same SaveState document and differ
only in where attachment bytes live.
"""
import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from core.exceptions import DataNotFoundError, RestoreError, UnsupportedSchemaError
from core.logger import setup_logger
from core.schema import (
    SCHEMA_VERSION,
    AttachmentSide,
    AttachmentSlot,
    FileManifest,
    FileRef,
    SaveState,
    SlotManifest,
)
from core.session import ExpenseSession

logger = setup_logger(__name__)

# Produces the manifest entry for one stored attachment
ManifestWriter = Callable[[int, AttachmentSide, FileRef], FileManifest]
# Returns the payload for a manifest entry, or None when it is unavailable
PayloadReader = Callable[[int, AttachmentSide, FileManifest], Optional[bytes]]


class SessionCodec(ABC):
    """Serialize a full session to a container and restore it again."""

    format_name: str = ""

    @abstractmethod
    def serialize(self, session: ExpenseSession) -> bytes:
        """Encode the session, attachments included."""

    @abstractmethod
    def deserialize(self, data: bytes) -> ExpenseSession:
        """Decode a container into a new session without touching any existing one."""


def build_state(
    session: ExpenseSession,
    write_attachment: ManifestWriter,
    kind: Optional[str] = None,
) -> SaveState:
    """
    Build the SaveState for a session.

    Args:
        session: Session to persist
        write_attachment: Stores one attachment and returns its manifest entry
        kind: Optional payload discriminator

    Returns:
        SaveState with one manifest entry per slot that holds a document
    """
    manifest: List[SlotManifest] = []
    for number, (_, slot) in enumerate(session, start=1):
        if slot.is_empty():
            continue
        entry = SlotManifest(index=number)
        for side in AttachmentSide:
            file = slot.get(side)
            if file is not None:
                setattr(entry, side.value, write_attachment(number, side, file))
        manifest.append(entry)

    return SaveState(
        kind=kind,
        template_version=session.template_version,
        saved_at=datetime.now(timezone.utc).isoformat(),
        expenses=list(session.expenses),
        attachments=manifest,
    )


def dump_state(state: SaveState) -> bytes:
    """Encode a SaveState as indented UTF-8 JSON."""
    payload = state.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")


def load_state(raw: Union[bytes, str, Dict[str, Any]], expected_kind: Optional[str] = None) -> SaveState:
    """
    Decode and validate a SaveState payload.

    Args:
        raw: JSON bytes/text or an already decoded mapping
        expected_kind: Required `kind` discriminator, if any

    Returns:
        Validated SaveState

    Raises:
        RestoreError: If the payload is not valid JSON or not a SaveState
        UnsupportedSchemaError: If schemaVersion or kind do not match
    """
    if isinstance(raw, (bytes, bytearray, str)):
        try:
            payload = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise RestoreError(
                "Saved progress is not valid JSON",
                details={"error": str(e)}
            ) from e
    else:
        payload = raw

    if not isinstance(payload, dict):
        raise RestoreError(
            "Saved progress has an unexpected structure",
            details={"error": f"expected an object, got {type(payload).__name__}"}
        )

    if expected_kind is not None and payload.get("kind") != expected_kind:
        raise UnsupportedSchemaError(
            "This file is not a saved budget session",
            details={"expected_kind": expected_kind, "kind": payload.get("kind")}
        )

    version = payload.get("schemaVersion")
    if isinstance(version, bool) or not isinstance(version, int) or version != SCHEMA_VERSION:
        raise UnsupportedSchemaError(
            f"Unsupported save format version: {version}",
            details={"schema_version": version, "supported": SCHEMA_VERSION}
        )

    try:
        return SaveState.model_validate(payload)
    except PydanticValidationError as e:
        raise RestoreError(
            "Saved progress is incomplete or malformed",
            details={"error": str(e)}
        ) from e


def session_from_state(state: SaveState, read_attachment: PayloadReader) -> ExpenseSession:
    """
    Rebuild a session from a SaveState.

    Slots without a manifest entry stay empty, as do sides whose payload
    reader returns None.

    Args:
        state: Validated SaveState
        read_attachment: Fetches the bytes for one manifest entry

    Returns:
        New ExpenseSession

    Raises:
        RestoreError: If a manifest entry points past the last expense
    """
    expenses = list(state.expenses)
    slots = [AttachmentSlot() for _ in expenses]

    for entry in state.attachments:
        if entry.index > len(expenses):
            raise RestoreError(
                f"Attachment manifest refers to missing expense {entry.index}",
                details={"index": entry.index, "expenses": len(expenses)}
            )
        files: Dict[str, Optional[FileRef]] = {}
        for side in AttachmentSide:
            manifest = getattr(entry, side.value)
            if manifest is None:
                continue
            data = read_attachment(entry.index, side, manifest)
            if data is None:
                continue
            files[side.value] = FileRef(name=manifest.name, mime_type=manifest.mime_type, data=data)
        slots[entry.index - 1] = AttachmentSlot(**files)

    logger.debug(f"Rebuilt session: {len(expenses)} expenses, {len(state.attachments)} manifest entries")
    return ExpenseSession(expenses, slots, template_version=state.template_version)


def require_payload(data: Optional[bytes], what: str) -> bytes:
    """Fail the restore when a required container entry is absent."""
    if data is None:
        raise DataNotFoundError(
            f"Saved progress is missing {what}",
            details={"missing": what}
        )
    return data
