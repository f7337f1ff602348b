"""
Persistence boundaries used by the services.
"""

from recurra.repositories.recurring_repository import RecurringDefinitionRepository
from recurra.repositories.transaction_repository import TransactionRepository

__all__ = [
    "RecurringDefinitionRepository",
    "TransactionRepository",
]
