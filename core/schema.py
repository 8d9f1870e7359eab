"""
Pydantic schemas for expense records, attachments and the save-state wire format.
"""
import mimetypes
from enum import Enum, IntEnum
from typing import Annotated, Dict, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

SCHEMA_VERSION = 1
PLACEHOLDER_MIME_TYPE = "application/octet-stream"


class TemplateVersion(IntEnum):
    """Spreadsheet layout conventions, selected explicitly by the user."""
    GENERIC = 1
    SPLIT_SHEETS = 2


class AttachmentSide(str, Enum):
    INVOICE = "invoice"
    PROOF = "proof"


class HeaderRole(str, Enum):
    """Semantic column roles recognised in a generic-template header row."""
    CATEGORY = "category"
    SUB_CATEGORY = "sub_category"
    PHASE = "phase"
    VENDOR = "vendor"
    ITEM = "item"
    AMOUNT = "amount"
    INVOICE = "invoice"
    INVOICE_DATE = "invoice_date"
    TRANSACTION = "transaction"
    CHECK = "check"


def normalize_amount_field(v):
    """Accept integral JSON numbers for amounts."""
    if isinstance(v, bool):
        raise ValueError("Amount must be a number")
    return v


class ExpenseRecord(BaseModel):
    """One normalized expense line. Immutable once extracted or restored."""
    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str = ""
    amount: Annotated[float, BeforeValidator(normalize_amount_field)]
    sheet: str


class FileRef(BaseModel):
    """An uploaded supporting document held in memory."""
    model_config = ConfigDict(frozen=True)

    name: str
    mime_type: str = PLACEHOLDER_MIME_TYPE
    data: bytes = Field(repr=False)

    @classmethod
    def from_upload(cls, name: str, data: bytes, mime_type: Optional[str] = None) -> "FileRef":
        """
        Build a FileRef from an upload, guessing the MIME type from the name if missing.

        Args:
            name: Original file name
            data: File content
            mime_type: Declared MIME type, if the uploader supplied one

        Returns:
            FileRef instance
        """
        if not mime_type or mime_type == PLACEHOLDER_MIME_TYPE:
            guessed, _ = mimetypes.guess_type(name)
            mime_type = guessed or mime_type or PLACEHOLDER_MIME_TYPE
        return cls(name=name, mime_type=mime_type, data=data)

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == "application/pdf"

    @property
    def is_image(self) -> bool:
        return self.mime_type in ("image/png", "image/jpeg", "image/jpg")


class AttachmentSlot(BaseModel):
    """Invoice and proof-of-payment documents for the expense at the same position."""
    invoice: Optional[FileRef] = None
    proof: Optional[FileRef] = None

    def get(self, side: AttachmentSide) -> Optional[FileRef]:
        return getattr(self, AttachmentSide(side).value)

    def is_empty(self) -> bool:
        return self.invoice is None and self.proof is None


class NameFacets(BaseModel):
    """Display facets decomposed from a composed expense name."""
    category: str
    sub_category: str
    phase: str
    details: str
    original: str


class HeaderMatch(BaseModel):
    """Located header row and the column index of each recognised role."""
    header_row_index: int
    role_to_column: Dict[HeaderRole, int] = Field(default_factory=dict)


# --- Save-state wire format -------------------------------------------------


class FileManifest(BaseModel):
    """
    Manifest entry for one stored attachment.

    Zip save points reference the payload by container path; progress
    PDFs inline it as base64 under `data`.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str
    mime_type: str = Field(default=PLACEHOLDER_MIME_TYPE, alias="mimeType")
    path: Optional[str] = None
    data: Optional[str] = None


class SlotManifest(BaseModel):
    """Attachments recorded for the expense at 1-based `index`."""
    index: int = Field(..., ge=1)
    invoice: Optional[FileManifest] = None
    proof: Optional[FileManifest] = None


class SaveState(BaseModel):
    """Canonical persisted session. `schema_version` is the only compatibility gate."""
    model_config = ConfigDict(populate_by_name=True)

    kind: Optional[str] = None
    schema_version: Literal[1] = Field(default=SCHEMA_VERSION, alias="schemaVersion")
    template_version: TemplateVersion = Field(default=TemplateVersion.GENERIC, alias="templateVersion")
    saved_at: Optional[str] = Field(default=None, alias="savedAt")
    expenses: List[ExpenseRecord] = Field(default_factory=list)
    attachments: List[SlotManifest] = Field(default_factory=list)

    @field_validator("attachments")
    @classmethod
    def validate_unique_slots(cls, v):
        """Each expense position may appear at most once in the manifest."""
        seen = set()
        for entry in v:
            if entry.index in seen:
                raise ValueError(f"Duplicate attachment manifest entry for expense {entry.index}")
            seen.add(entry.index)
        return v
