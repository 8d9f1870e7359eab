"""
Budget workbook parsing.
Reads sheets as raw rows and extracts expense records per template version.
"""
import io
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import pandas as pd

from core.exceptions import DataNotFoundError, ParsingError, ValidationError
from core.identity import assign_ids
from core.logger import setup_logger
from core.matching import detect_header
from core.normalize import compose_name, normalize_amount
from core.schema import ExpenseRecord, HeaderRole, TemplateVersion

logger = setup_logger(__name__)

Row = List[Any]
SheetRows = Dict[str, List[Row]]

GENERIC_SHEET_NAME = "Expenses"
PERSONNEL_SHEET_NAME = "Personnel_Expenses"
NON_PERSONNEL_SHEET_NAME = "NonPersonnel_Expenses"

# Roles composing a generic-template expense name, in order
NAME_ROLE_ORDER: Tuple[HeaderRole, ...] = (
    HeaderRole.CATEGORY,
    HeaderRole.SUB_CATEGORY,
    HeaderRole.PHASE,
    HeaderRole.VENDOR,
    HeaderRole.ITEM,
    HeaderRole.INVOICE,
    HeaderRole.INVOICE_DATE,
    HeaderRole.TRANSACTION,
    HeaderRole.CHECK,
)


@dataclass(frozen=True)
class FixedLayout:
    """Fixed row offset and column positions for one sheet section."""
    sheet_name: str
    row_offset: int
    name_columns: int
    amount_column: int


def read_workbook(source: Union[str, Path, bytes], filename: Optional[str] = None) -> SheetRows:
    """
    Read every sheet of a workbook as raw rows.

    Args:
        source: Path to the workbook or its raw bytes
        filename: Original file name, used to pick the engine for raw bytes

    Returns:
        Mapping of sheet name to rows; empty cells are None

    Raises:
        DataNotFoundError: If the file doesn't exist
        ParsingError: If the workbook cannot be decoded
    """
    if isinstance(source, (bytes, bytearray)):
        name = filename or ""
        handle: Any = io.BytesIO(source)
    else:
        path = Path(source)
        if not path.exists():
            raise DataNotFoundError(
                f"File not found: {source}",
                details={"file_path": str(source)}
            )
        name = filename or path.name
        handle = str(path)

    suffix = Path(name).suffix.lower()
    engine = "xlrd" if suffix == ".xls" else "openpyxl"

    logger.info(f"Reading workbook {name or '<upload>'} (engine={engine})")

    try:
        frames = pd.read_excel(handle, sheet_name=None, header=None, dtype=object, engine=engine)
    except Exception as e:
        logger.error(f"Failed to read workbook {name or '<upload>'}: {e}")
        raise ParsingError(
            "Unable to read the spreadsheet",
            details={"file_name": name, "error": str(e)}
        ) from e

    sheets: SheetRows = {}
    for sheet_name, frame in frames.items():
        frame = frame.astype(object).where(frame.notna(), None)
        sheets[str(sheet_name)] = frame.values.tolist()
        logger.debug(f"Sheet '{sheet_name}': {len(frame)} rows")

    return sheets


def find_sheet(sheets: Mapping[str, Sequence[Row]], wanted: str) -> str:
    """
    Find a sheet whose name equals `wanted` ignoring case and whitespace.

    Args:
        sheets: Workbook sheets
        wanted: Expected sheet name

    Returns:
        Actual sheet name

    Raises:
        DataNotFoundError: If no sheet matches
    """
    key = "".join(wanted.split()).lower()
    for name in sheets:
        if "".join(str(name).split()).lower() == key:
            return name
    if wanted in sheets:
        return wanted
    raise DataNotFoundError(
        f"Sheet '{wanted}' not found in workbook",
        details={"expected_sheet": wanted, "available_sheets": list(sheets)}
    )


def require_sheet(sheets: Mapping[str, Sequence[Row]], name: str) -> Sequence[Row]:
    """Return rows of an exactly named sheet or fail the load."""
    if name not in sheets:
        raise DataNotFoundError(
            f"Sheet '{name}' not found in workbook",
            details={"expected_sheet": name, "available_sheets": list(sheets)}
        )
    return sheets[name]


def cell(row: Sequence[Any], index: Optional[int]) -> Any:
    if index is None or index < 0 or index >= len(row):
        return None
    return row[index]


def extract_fixed_rows(rows: Sequence[Row], layout: FixedLayout, sheet: Optional[str] = None) -> List[ExpenseRecord]:
    """
    Extract records from a fixed-layout section.

    Skips `row_offset` header rows, joins the first `name_columns` cells
    into the name and reads the amount from `amount_column`. Rows whose
    amount normalizes to zero are dropped.

    Args:
        rows: Sheet rows
        layout: Fixed layout of the section
        sheet: Sheet label for the records (defaults to the layout's sheet name)

    Returns:
        Records without ids
    """
    records = []
    for row in rows[layout.row_offset:]:
        row = row or []
        amount = normalize_amount(cell(row, layout.amount_column))
        if amount == 0:
            continue
        name = compose_name(cell(row, column) for column in range(layout.name_columns))
        records.append(ExpenseRecord(name=name, amount=amount, sheet=sheet or layout.sheet_name))
    return records


class TemplateStrategy(ABC):
    """Extraction rules and report layout for one template version."""

    version: TemplateVersion
    detail_title: str = "Expense"
    facet_labels: Tuple[str, str, str, str] = ("Category", "Sub-category", "Phase", "Details")

    @abstractmethod
    def extract(self, sheets: Mapping[str, Sequence[Row]]) -> List[ExpenseRecord]:
        """Extract un-identified records from the workbook sheets."""


class V1GenericStrategy(TemplateStrategy):
    """
    Generic template: one "Expenses" sheet with a header row that may sit
    anywhere near the top. Columns are located by header phrases, with a
    fixed layout fallback when no header is recognised.
    """

    version = TemplateVersion.GENERIC
    facet_labels = ("Budget category", "Sub-category", "Project phase", "Details")
    fallback = FixedLayout(GENERIC_SHEET_NAME, row_offset=6, name_columns=10, amount_column=10)

    def extract(self, sheets: Mapping[str, Sequence[Row]]) -> List[ExpenseRecord]:
        sheet_name = find_sheet(sheets, GENERIC_SHEET_NAME)
        rows = sheets[sheet_name]

        header = detect_header(rows)
        if header is None:
            return extract_fixed_rows(rows, self.fallback, sheet=sheet_name)

        roles = header.role_to_column
        amount_column = roles.get(HeaderRole.AMOUNT, self.fallback.amount_column)
        name_columns = [roles[role] for role in NAME_ROLE_ORDER if role in roles]

        records = []
        for row in rows[header.header_row_index + 1:]:
            row = row or []
            amount = normalize_amount(cell(row, amount_column))
            if amount == 0:
                continue
            name = compose_name(cell(row, column) for column in name_columns)
            records.append(ExpenseRecord(name=name, amount=amount, sheet=sheet_name))
        return records


class V2SplitSheetsStrategy(TemplateStrategy):
    """Split template: personnel and non-personnel sections on separate sheets."""

    version = TemplateVersion.SPLIT_SHEETS
    facet_labels = ("Category", "Line item", "Phase", "Details")
    sections: Tuple[FixedLayout, ...] = (
        FixedLayout(PERSONNEL_SHEET_NAME, row_offset=6, name_columns=6, amount_column=6),
        FixedLayout(NON_PERSONNEL_SHEET_NAME, row_offset=6, name_columns=3, amount_column=9),
    )

    def extract(self, sheets: Mapping[str, Sequence[Row]]) -> List[ExpenseRecord]:
        records: List[ExpenseRecord] = []
        for layout in self.sections:
            rows = require_sheet(sheets, layout.sheet_name)
            records.extend(extract_fixed_rows(rows, layout))
        return records


STRATEGIES: Dict[TemplateVersion, TemplateStrategy] = {
    TemplateVersion.GENERIC: V1GenericStrategy(),
    TemplateVersion.SPLIT_SHEETS: V2SplitSheetsStrategy(),
}


def get_strategy(version: Union[int, TemplateVersion]) -> TemplateStrategy:
    """
    Select the template strategy for a version number.

    Raises:
        ValidationError: If the version is unknown
    """
    try:
        return STRATEGIES[TemplateVersion(int(version))]
    except (KeyError, ValueError, TypeError) as e:
        raise ValidationError(
            f"Unsupported template version: {version}",
            details={"version": version, "supported": [v.value for v in TemplateVersion], "error": str(e)}
        ) from e


def extract_expenses(version: Union[int, TemplateVersion], sheets: Mapping[str, Sequence[Row]]) -> List[ExpenseRecord]:
    """
    Extract expense records (without ids) from workbook rows.

    Args:
        version: Template version (1 generic, 2 split sheets)
        sheets: Mapping of sheet name to rows

    Returns:
        Records in sheet/row order
    """
    strategy = get_strategy(version)
    records = strategy.extract(sheets)
    logger.info(f"Extracted {len(records)} expenses using template v{strategy.version.value}")
    return records


def extract_from_workbook(
    source: Union[str, Path, bytes],
    version: Union[int, TemplateVersion],
    filename: Optional[str] = None,
) -> List[ExpenseRecord]:
    """
    Read a workbook, extract its expenses and assign stable ids.

    Args:
        source: Path to the workbook or its raw bytes
        version: Template version
        filename: Original file name for raw bytes

    Returns:
        Records with ids
    """
    get_strategy(version)
    sheets = read_workbook(source, filename=filename)
    return assign_ids(extract_expenses(version, sheets))
