"""
Transaction store.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from recurra.models.transaction import Transaction, TransactionType


class TransactionRepository:
    """Reads transaction history and records new transactions."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, transaction_id: str) -> Optional[Transaction]:
        return self.db.query(Transaction).filter(Transaction.id == transaction_id).first()

    def list_history(self, since: Optional[date] = None, unlinked_only: bool = True) -> List[Transaction]:
        """Transactions to feed pattern detection, oldest first."""
        query = self.db.query(Transaction)
        if since:
            query = query.filter(Transaction.date >= since)
        if unlinked_only:
            query = query.filter(Transaction.recurring_definition_id.is_(None))
        return query.order_by(Transaction.date).all()

    def add(self, transaction: Transaction) -> Transaction:
        self.db.add(transaction)
        self.db.commit()
        self.db.refresh(transaction)
        return transaction

    def add_materialized(
        self,
        definition_id: str,
        occurrence_date: date,
        amount: Decimal,
        txn_type: TransactionType,
        description: str,
        category: Optional[str],
        account_id: Optional[str]
    ) -> Transaction:
        """
        Stage the transaction for one occurrence of a recurring definition.
        Flushes but does not commit, so it shares the caller's unit of work.
        """
        signed = -abs(amount) if txn_type == TransactionType.expense else abs(amount)
        transaction = Transaction(
            id=str(uuid.uuid4()),
            date=occurrence_date,
            amount=signed,
            description=description,
            category=category,
            type=txn_type,
            account_id=account_id,
            recurring_definition_id=definition_id,
        )
        self.db.add(transaction)
        self.db.flush()
        return transaction

    def count_for_definition(self, definition_id: str) -> int:
        return self.db.query(Transaction).filter(
            Transaction.recurring_definition_id == definition_id
        ).count()
