"""
FastAPI dependencies.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from recurra.database import get_db
from recurra.repositories import RecurringDefinitionRepository, TransactionRepository


def get_recurring_repository(db: Session = Depends(get_db)) -> RecurringDefinitionRepository:
    return RecurringDefinitionRepository(db)


def get_transaction_repository(db: Session = Depends(get_db)) -> TransactionRepository:
    """
    Shares the request's session with get_recurring_repository, so both
    repositories take part in the same unit of work.
    """
    return TransactionRepository(db)
