"""
Database models package.
"""

from recurra.models.transaction import Transaction, TransactionType
from recurra.models.recurring import RecurringDefinition, Frequency, NOMINAL_DAYS

__all__ = [
    "Transaction",
    "TransactionType",
    "RecurringDefinition",
    "Frequency",
    "NOMINAL_DAYS",
]
