"""
Token ledger enumerations.
"""

import enum


class TransactionType(str, enum.Enum):
    """Ledger entry direction."""
    CREDIT = "credit"  # Tokens entering the member's balance
    DEBIT = "debit"  # Tokens leaving the member's balance


class RelatedKind(str, enum.Enum):
    """Kind of record that caused a ledger entry."""
    ATTENDANCE = "attendance"
    PAYMENT = "payment"
    ADJUSTMENT = "adjustment"  # Manual admin grant
    SYSTEM = "system"  # Registration grant and other system events
