"""
Recurring definition database model.
"""

import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import Column, String, Boolean, DateTime, Date, Numeric, Float, Integer, Enum, Text
from sqlalchemy.orm import relationship
import enum
from recurra.database import Base
from recurra.models.transaction import TransactionType


class Frequency(str, enum.Enum):
    """Recurring frequency enumeration."""
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"
    custom = "custom"

    @property
    def nominal_days(self) -> Optional[int]:
        """Nominal interval in days; None for custom, which carries its own."""
        return NOMINAL_DAYS.get(self)


NOMINAL_DAYS = {
    Frequency.daily: 1,
    Frequency.weekly: 7,
    Frequency.monthly: 30,
    Frequency.quarterly: 90,
    Frequency.yearly: 365,
}


class RecurringDefinition(Base):
    """An accepted recurring transaction and its schedule."""

    __tablename__ = "recurring_definitions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)  # Always positive, sign comes from type
    type = Column(Enum(TransactionType), nullable=False, default=TransactionType.expense)
    frequency = Column(Enum(Frequency), nullable=False)
    interval_days = Column(Integer, nullable=True)  # Only used by custom frequency
    category = Column(String(100), nullable=True)
    account_id = Column(String(36), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    auto_approve = Column(Boolean, default=False, nullable=False)
    start_date = Column(Date, nullable=False)
    next_run_date = Column(Date, nullable=False, index=True)
    last_run_date = Column(Date, nullable=True)
    confidence = Column(Float, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    transactions = relationship("Transaction", back_populates="recurring_definition")
