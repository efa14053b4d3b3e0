"""
Tagged reference from a ledger entry to the record that caused it.
"""

from dataclasses import dataclass
from typing import Optional

from backend.app.models.token_enums import RelatedKind


@dataclass(frozen=True)
class RelatedDocument:
    """
    {kind, id} pair stored as TokenTransaction.related_kind / related_id.

    ADJUSTMENT and SYSTEM entries may carry no id.
    """
    kind: RelatedKind
    id: Optional[int] = None

    def __post_init__(self):
        if self.kind in (RelatedKind.ATTENDANCE, RelatedKind.PAYMENT) and self.id is None:
            raise ValueError(f"{self.kind.value} reference requires an id")

    @classmethod
    def attendance(cls, attendance_id: int) -> "RelatedDocument":
        return cls(RelatedKind.ATTENDANCE, attendance_id)

    @classmethod
    def payment(cls, payment_id: int) -> "RelatedDocument":
        return cls(RelatedKind.PAYMENT, payment_id)

    @classmethod
    def adjustment(cls) -> "RelatedDocument":
        return cls(RelatedKind.ADJUSTMENT)

    @classmethod
    def system(cls) -> "RelatedDocument":
        return cls(RelatedKind.SYSTEM)

    @classmethod
    def from_row(cls, transaction) -> "RelatedDocument":
        return cls(RelatedKind(transaction.related_kind), transaction.related_id)


def describe(related: RelatedDocument) -> str:
    """Human-readable label for reports. Handles every RelatedKind."""
    if related.kind == RelatedKind.ATTENDANCE:
        return f"attendance #{related.id}"
    if related.kind == RelatedKind.PAYMENT:
        return f"payment #{related.id}"
    if related.kind == RelatedKind.ADJUSTMENT:
        return "admin adjustment"
    if related.kind == RelatedKind.SYSTEM:
        return "system"
    raise ValueError(f"Unhandled related document kind: {related.kind!r}")
