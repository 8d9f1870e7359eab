"""
In-memory expense session.
Holds the ordered expense records and one attachment slot per record.
"""
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from core.exceptions import ValidationError
from core.normalize import format_currency
from core.schema import AttachmentSide, AttachmentSlot, ExpenseRecord, FileRef, TemplateVersion


class ExpenseSession:
    """
    Aggregate root for one working session.

    `expenses` and `attachments` are parallel lists and always have the
    same length. Record order defines display and report page order.
    """

    def __init__(
        self,
        expenses: Optional[Sequence[ExpenseRecord]] = None,
        attachments: Optional[Sequence[AttachmentSlot]] = None,
        template_version: TemplateVersion = TemplateVersion.GENERIC,
    ):
        expenses = list(expenses or [])
        if attachments is None:
            attachments = [AttachmentSlot() for _ in expenses]
        attachments = list(attachments)
        if len(attachments) != len(expenses):
            raise ValidationError(
                "Attachment slots must match expenses one to one",
                details={"expenses": len(expenses), "attachments": len(attachments)}
            )
        self._expenses: List[ExpenseRecord] = expenses
        self._attachments: List[AttachmentSlot] = attachments
        self.template_version = TemplateVersion(template_version)

    @property
    def expenses(self) -> Tuple[ExpenseRecord, ...]:
        return tuple(self._expenses)

    @property
    def attachments(self) -> Tuple[AttachmentSlot, ...]:
        return tuple(self._attachments)

    def __len__(self) -> int:
        return len(self._expenses)

    def __iter__(self) -> Iterator[Tuple[ExpenseRecord, AttachmentSlot]]:
        return iter(zip(self._expenses, self._attachments))

    def is_empty(self) -> bool:
        return not self._expenses

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._expenses):
            raise ValidationError(
                f"No expense at position {index + 1}",
                details={"index": index, "count": len(self._expenses)}
            )

    def set_attachment(self, index: int, side: Union[AttachmentSide, str], file: Optional[FileRef]) -> None:
        """
        Replace the invoice or proof document of one expense.

        Args:
            index: 0-based expense position
            side: "invoice" or "proof"
            file: New document, or None to clear the side
        """
        self._check_index(index)
        try:
            side = AttachmentSide(side)
        except ValueError as e:
            raise ValidationError(
                f"Unknown attachment side: {side}",
                details={"side": str(side), "error": str(e)}
            ) from e
        slot = self._attachments[index]
        self._attachments[index] = slot.model_copy(update={side.value: file})

    def replace(self, other: "ExpenseSession") -> None:
        """Swap in the full contents of another session."""
        self._expenses = list(other._expenses)
        self._attachments = list(other._attachments)
        self.template_version = other.template_version

    def clear(self) -> None:
        self._expenses = []
        self._attachments = []

    def total_amount(self) -> float:
        return sum(record.amount for record in self._expenses)

    def summary(self) -> dict:
        """Counts and totals for display."""
        total = self.total_amount()
        return {
            "template_version": self.template_version.value,
            "expense_count": len(self._expenses),
            "total_amount": total,
            "total_formatted": format_currency(total),
            "invoices_attached": sum(1 for slot in self._attachments if slot.invoice is not None),
            "proofs_attached": sum(1 for slot in self._attachments if slot.proof is not None),
        }
