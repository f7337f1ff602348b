"""
Pydantic schemas package.
"""

from recurra.schemas.transaction import (
    TransactionBase,
    TransactionCreate,
    TransactionResponse,
    TransactionListResponse,
)
from recurra.schemas.recurring import (
    RecurringDefinitionCreate,
    RecurringDefinitionUpdate,
    RecurringDefinitionResponse,
    ToggleRequest,
    DetectionRequest,
    DetectionResponse,
    PatternCandidateResponse,
    AcceptCandidateRequest,
    ApplyDetectionRequest,
    ApplyDetectionResponse,
    ProcessDueResponse,
    DueOutcomeResponse,
    UpcomingOccurrence,
    CostSummaryResponse,
)

__all__ = [
    "TransactionBase",
    "TransactionCreate",
    "TransactionResponse",
    "TransactionListResponse",
    "RecurringDefinitionCreate",
    "RecurringDefinitionUpdate",
    "RecurringDefinitionResponse",
    "ToggleRequest",
    "DetectionRequest",
    "DetectionResponse",
    "PatternCandidateResponse",
    "AcceptCandidateRequest",
    "ApplyDetectionRequest",
    "ApplyDetectionResponse",
    "ProcessDueResponse",
    "DueOutcomeResponse",
    "UpcomingOccurrence",
    "CostSummaryResponse",
]
