"""
Transaction schemas.
"""

from pydantic import BaseModel
from typing import Optional
from datetime import date, datetime
from decimal import Decimal

from recurra.models.transaction import TransactionType


class TransactionBase(BaseModel):
    date: date
    amount: Decimal
    description: str
    category: Optional[str] = None
    type: Optional[TransactionType] = None  # Derived from the amount sign when omitted
    account_id: Optional[str] = None


class TransactionCreate(TransactionBase):
    pass


class TransactionResponse(BaseModel):
    id: str
    date: date
    amount: Decimal
    description: str
    category: Optional[str]
    type: TransactionType
    account_id: Optional[str]
    recurring_definition_id: Optional[str]
    is_recurring: bool
    created_at: datetime

    class Config:
        from_attributes = True


class TransactionListResponse(BaseModel):
    items: list[TransactionResponse]
    total: int
    page: int
    pages: int
