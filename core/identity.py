"""
Stable expense identifiers.

Ids are derived from the record content plus an occurrence counter, so
re-extracting the same spreadsheet reproduces the same ids.
"""
from collections import defaultdict
from typing import Dict, List, Sequence, Tuple

from core.schema import ExpenseRecord

ID_DELIMITER = "||"


def format_amount_key(amount: float) -> str:
    """Render an amount for use in an id: 1200.0 -> "1200", 12.5 -> "12.5"."""
    value = float(amount)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def base_key(record: ExpenseRecord) -> str:
    return ID_DELIMITER.join([record.sheet, record.name, format_amount_key(record.amount)])


def assign_ids(records: Sequence[ExpenseRecord]) -> List[ExpenseRecord]:
    """
    Assign a deterministic id to every record.

    Records sharing (sheet, name, amount) get a 1-based occurrence suffix
    in input order: "sheet||name||amount||1", "...||2".

    Args:
        records: Extracted records in display order

    Returns:
        New records with ids set, same order
    """
    occurrences: Dict[Tuple[str, str, float], int] = defaultdict(int)
    assigned = []
    for record in records:
        group = (record.sheet, record.name, float(record.amount))
        occurrences[group] += 1
        record_id = f"{base_key(record)}{ID_DELIMITER}{occurrences[group]}"
        assigned.append(record.model_copy(update={"id": record_id}))
    return assigned
