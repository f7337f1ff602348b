"""Pydantic schemas for recurring definitions and pattern detection."""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Any, Dict
from datetime import date, datetime
from decimal import Decimal

from recurra.models.recurring import Frequency
from recurra.models.transaction import TransactionType


class RecurringDefinitionBase(BaseModel):
    name: Optional[str] = None
    description: str
    amount: Decimal = Field(gt=0)
    type: TransactionType = TransactionType.expense
    frequency: Frequency
    interval_days: Optional[int] = Field(default=None, ge=1)
    category: Optional[str] = None
    account_id: Optional[str] = None
    auto_approve: bool = False

    @model_validator(mode="after")
    def custom_needs_interval(self):
        if self.frequency == Frequency.custom and not self.interval_days:
            raise ValueError("interval_days is required for custom frequency")
        return self


class RecurringDefinitionCreate(RecurringDefinitionBase):
    start_date: Optional[date] = None  # Anchor; defaults to today


class RecurringDefinitionUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = Field(default=None, gt=0)
    frequency: Optional[Frequency] = None
    interval_days: Optional[int] = Field(default=None, ge=1)
    category: Optional[str] = None
    account_id: Optional[str] = None
    auto_approve: Optional[bool] = None


class ToggleRequest(BaseModel):
    """Explicit state, or flip the current one when omitted."""
    is_active: Optional[bool] = None


class RecurringDefinitionResponse(BaseModel):
    id: str
    name: str
    description: str
    amount: Decimal
    type: TransactionType
    frequency: Frequency
    interval_days: Optional[int] = None
    category: Optional[str] = None
    account_id: Optional[str] = None
    is_active: bool
    auto_approve: bool
    start_date: date
    next_run_date: date
    last_run_date: Optional[date] = None
    confidence: Optional[float] = None
    created_at: datetime

    # Computed fields added by API
    transaction_count: Optional[int] = None

    class Config:
        from_attributes = True


class DetectionRequest(BaseModel):
    """Transactions to analyse; stored history is used when omitted."""
    # Kept loose so malformed records reach the detector and are skipped there
    transactions: Optional[List[Dict[str, Any]]] = None
    include_low_confidence: bool = False


class PatternCandidateResponse(BaseModel):
    """A detected pattern, ready to be accepted."""
    name: str
    description: str
    amount: Decimal
    type: TransactionType
    category: Optional[str] = None
    frequency: Frequency
    interval_days: int
    confidence: float = Field(ge=0, le=1)
    last_date: date
    next_date: date
    sample_count: int
    is_acceptable: bool
    transaction_id: Optional[str] = None


class DetectionResponse(BaseModel):
    """Response from recurring detection."""
    detected: List[PatternCandidateResponse]
    total_found: int


class AcceptCandidateRequest(BaseModel):
    """
    The candidate identifies a series; its confidence is recomputed from the
    given transactions, or from stored history when omitted.
    """
    candidate: PatternCandidateResponse
    transactions: Optional[List[Dict[str, Any]]] = None
    account_id: Optional[str] = None
    auto_approve: bool = False


class ApplyDetectionRequest(BaseModel):
    account_id: Optional[str] = None
    auto_approve: bool = False


class ApplyDetectionResponse(BaseModel):
    created: List[RecurringDefinitionResponse]
    failed: List[Dict[str, Any]]


class DueOutcomeResponse(BaseModel):
    definition_id: str
    occurrence_date: date
    transaction_id: Optional[str] = None
    reason: Optional[str] = None
    next_run_date: Optional[date] = None


class ProcessDueResponse(BaseModel):
    materialized: List[DueOutcomeResponse]
    skipped: List[DueOutcomeResponse]
    errors: List[DueOutcomeResponse]
    cancelled: bool = False


class UpcomingOccurrence(BaseModel):
    definition_id: str
    name: str
    date: date
    amount: Decimal
    type: TransactionType


class CostSummaryResponse(BaseModel):
    monthly_expense: Decimal
    yearly_expense: Decimal
    monthly_income: Decimal
    yearly_income: Decimal
    monthly_expense_by_category: Dict[str, Decimal]
    active_count: int

    @field_validator(
        "monthly_expense", "yearly_expense", "monthly_income", "yearly_income"
    )
    @classmethod
    def round_cents(cls, value: Decimal) -> Decimal:
        return value.quantize(Decimal("0.01"))
