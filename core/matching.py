"""
Header row detection for budget sheets without fixed column positions.
Uses case-insensitive substring matching of known header phrases.
"""
from typing import Any, Dict, Optional, Sequence, Tuple

from core.logger import setup_logger
from core.normalize import cell_text
from core.schema import HeaderMatch, HeaderRole

logger = setup_logger(__name__)

# Phrases that identify each role; a cell matches when it contains any of them
MANDATORY_ROLE_PHRASES: Dict[HeaderRole, Tuple[str, ...]] = {
    HeaderRole.CATEGORY: ("budget category",),
    HeaderRole.SUB_CATEGORY: ("sub-category", "sub category", "subcategory"),
    HeaderRole.PHASE: ("project phase",),
    HeaderRole.VENDOR: ("vendor",),
    HeaderRole.ITEM: ("item",),
    HeaderRole.AMOUNT: ("amount",),
}

OPTIONAL_ROLE_PHRASES: Dict[HeaderRole, Tuple[str, ...]] = {
    HeaderRole.INVOICE: ("invoice/credit", "invoice #", "invoice no", "invoice number", "credit memo"),
    HeaderRole.INVOICE_DATE: ("invoice date",),
    HeaderRole.TRANSACTION: ("transaction type", "transaction"),
    HeaderRole.CHECK: ("check/voucher", "check #", "check no", "voucher"),
}

MIN_MANDATORY_MATCHES = 3


def normalize_string(text: Any) -> str:
    """
    Normalize a cell for matching: lowercase, trim, collapse inner spaces.

    Args:
        text: Raw cell value

    Returns:
        Normalized string
    """
    return " ".join(cell_text(text).lower().strip().split())


def match_row(row: Sequence[Any]) -> Dict[HeaderRole, int]:
    """
    Map each role found in a row to the column of the cell containing it.

    When several cells match one role the later column wins.

    Args:
        row: Raw row cells

    Returns:
        Role to column index mapping
    """
    role_to_column: Dict[HeaderRole, int] = {}
    all_phrases = {**MANDATORY_ROLE_PHRASES, **OPTIONAL_ROLE_PHRASES}
    for column, cell in enumerate(row):
        text = normalize_string(cell)
        if not text:
            continue
        for role, phrases in all_phrases.items():
            if any(phrase in text for phrase in phrases):
                role_to_column[role] = column
    return role_to_column


def detect_header(rows: Sequence[Sequence[Any]]) -> Optional[HeaderMatch]:
    """
    Find the first row that looks like a header.

    A row qualifies when at least three of the six mandatory roles are
    matched. Scanning stops at the first qualifying row.

    Args:
        rows: Sheet rows, top to bottom

    Returns:
        HeaderMatch, or None when no row qualifies
    """
    for index, row in enumerate(rows):
        role_to_column = match_row(row or [])
        mandatory_hits = sum(1 for role in MANDATORY_ROLE_PHRASES if role in role_to_column)
        if mandatory_hits >= MIN_MANDATORY_MATCHES:
            logger.info(
                f"Header row detected at index {index} "
                f"({mandatory_hits} mandatory roles, {len(role_to_column)} total)"
            )
            roles = {role.value: column for role, column in role_to_column.items()}
            logger.debug(f"Header roles: {roles}")
            return HeaderMatch(header_row_index=index, role_to_column=role_to_column)

    logger.info("No header row detected; falling back to fixed layout")
    return None
