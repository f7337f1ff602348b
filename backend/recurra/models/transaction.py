"""
Transaction database model.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Date, Numeric, Text, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
import enum
from recurra.database import Base


class TransactionType(str, enum.Enum):
    """Direction of a transaction."""
    income = "income"
    expense = "expense"


class Transaction(Base):
    """Transaction model."""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)  # Negative = expense, positive = income
    description = Column(Text, nullable=False)
    category = Column(String(100), nullable=True)
    type = Column(Enum(TransactionType), nullable=False)
    account_id = Column(String(36), nullable=True)
    recurring_definition_id = Column(String(36), ForeignKey("recurring_definitions.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    recurring_definition = relationship("RecurringDefinition", back_populates="transactions")

    __table_args__ = (
        # One materialized transaction per (definition, occurrence date)
        UniqueConstraint("recurring_definition_id", "date", name="uq_transaction_occurrence"),
        Index("idx_transaction_date_account", "date", "account_id"),
        Index("idx_transaction_category", "category"),
    )

    @property
    def is_recurring(self) -> bool:
        return self.recurring_definition_id is not None
