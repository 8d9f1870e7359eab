"""
Data normalization for raw spreadsheet cells.
Handles amount cleaning, cell text rendering and expense name composition.
"""
import math
import re
from datetime import date, datetime
from typing import Any, Iterable, List

from core.schema import NameFacets

NAME_SEPARATOR = " - "
CURRENCY_SYMBOLS = "$€£¥"

CATEGORY_PLACEHOLDER = "(category)"
SUB_CATEGORY_PLACEHOLDER = "(sub-category)"
PHASE_PLACEHOLDER = "(phase)"
DETAILS_PLACEHOLDER = "(details)"

# Leading decimal number, the way a lenient float parser reads "12.5abc"
_LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_CURRENCY_RE = re.compile(f"[{re.escape(CURRENCY_SYMBOLS)}]")


def is_blank(value: Any) -> bool:
    """
    Check whether a cell counts as empty for name composition.

    None, NaN, empty strings, False and zero are all blank.

    Args:
        value: Raw cell value

    Returns:
        True if the cell contributes nothing
    """
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str):
        return value == ""
    try:
        return not bool(value)
    except (TypeError, ValueError):
        return False


def cell_text(value: Any) -> str:
    """
    Render a raw cell value as display text.

    Whole floats lose their trailing ".0" and midnight datetimes render as dates.

    Args:
        value: Raw cell value

    Returns:
        String form of the cell, or "" for blank cells
    """
    if is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.strftime("%Y-%m-%d")
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.strftime("%Y-%m-%d")
    return str(value)


def normalize_amount(raw: Any) -> float:
    """
    Parse a raw cell value into a signed monetary amount.

    Strips thousands separators and currency symbols, reads accounting
    parentheses as a negative sign and parses the leading decimal number.
    Anything that does not yield a finite number becomes 0.

    Args:
        raw: Raw cell value (None, number or string)

    Returns:
        Signed amount, 0.0 for blank or malformed input
    """
    if raw is None or isinstance(raw, bool):
        return 0.0

    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else 0.0

    cleaned = _CURRENCY_RE.sub("", str(raw).replace(",", "")).strip()
    if cleaned.startswith("(") and cleaned.endswith(")"):
        cleaned = "-" + cleaned[1:-1].strip()

    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return 0.0

    try:
        value = float(match.group(0))
    except ValueError:
        return 0.0
    return value if math.isfinite(value) else 0.0


def compose_name(parts: Iterable[Any]) -> str:
    """Join non-blank name parts with the facet separator."""
    return NAME_SEPARATOR.join(cell_text(part) for part in parts if not is_blank(part))


def decompose_name(name: str) -> NameFacets:
    """
    Split a composed expense name into display facets.

    The first three segments are category, sub-category and phase; the
    rest are re-joined as details. Missing facets get placeholder labels.

    Args:
        name: Composed expense name

    Returns:
        NameFacets with the original name preserved verbatim
    """
    segments: List[str] = [
        segment.strip() for segment in (name or "").split(NAME_SEPARATOR) if segment.strip()
    ]

    def pick(index: int, placeholder: str) -> str:
        return segments[index] if len(segments) > index else placeholder

    details = NAME_SEPARATOR.join(segments[3:]) or DETAILS_PLACEHOLDER

    return NameFacets(
        category=pick(0, CATEGORY_PLACEHOLDER),
        sub_category=pick(1, SUB_CATEGORY_PLACEHOLDER),
        phase=pick(2, PHASE_PLACEHOLDER),
        details=details,
        original=name or "",
    )


def format_currency(amount: float) -> str:
    """Format an amount as US dollars, e.g. -$1,234.50."""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"
