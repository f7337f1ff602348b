"""API endpoints for recurring transaction detection and management."""

from dataclasses import asdict
from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from recurra.config import settings
from recurra.dependencies import get_recurring_repository, get_transaction_repository
from recurra.repositories import RecurringDefinitionRepository, TransactionRepository
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
    DueOutcomeResponse,
    ProcessDueResponse,
    UpcomingOccurrence,
    CostSummaryResponse,
)
from recurra.services import due_processor, recurring_service
from recurra.services.pattern_detection import (
    PatternCandidate,
    Signature,
    analyze_series,
    detect_patterns,
    group_by_signature,
)
from recurra.services.recurring_service import DefinitionNotFound


router = APIRouter(prefix="/recurring", tags=["recurring"])


def _to_response(
    definition,
    transactions: TransactionRepository
) -> RecurringDefinitionResponse:
    response = RecurringDefinitionResponse.model_validate(definition)
    response.transaction_count = transactions.count_for_definition(definition.id)
    return response


def _candidate_response(candidate: PatternCandidate) -> PatternCandidateResponse:
    txn = candidate.representative
    return PatternCandidateResponse(
        name=candidate.name,
        description=txn.description,
        amount=candidate.amount,
        type=txn.type,
        category=txn.category,
        frequency=candidate.frequency,
        interval_days=candidate.interval_days,
        confidence=candidate.confidence,
        last_date=candidate.last_date,
        next_date=candidate.next_date,
        sample_count=candidate.sample_count,
        is_acceptable=candidate.is_acceptable,
        transaction_id=txn.id,
    )


def _verified_candidate(
    request: AcceptCandidateRequest,
    transactions: TransactionRepository
) -> PatternCandidate:
    """Rebuild the candidate from its supporting history; client scores are ignored."""
    records = request.transactions if request.transactions is not None else _stored_history(transactions)
    signature = Signature.of(request.candidate.description, request.candidate.amount)
    series = group_by_signature(records).get(signature)
    if not series:
        raise ValueError("No transaction history supports this pattern")
    return analyze_series(signature, series, settings.confidence_threshold)


def _stored_history(transactions: TransactionRepository):
    since = date.today() - timedelta(days=settings.detection_lookback_days)
    return transactions.list_history(since=since)


@router.get("", response_model=List[RecurringDefinitionResponse])
def list_recurring(
    include_inactive: bool = Query(False),
    repo: RecurringDefinitionRepository = Depends(get_recurring_repository),
    transactions: TransactionRepository = Depends(get_transaction_repository)
):
    """Get all recurring definitions."""
    definitions = recurring_service.list_definitions(repo, include_inactive)
    return [_to_response(d, transactions) for d in definitions]


@router.get("/summary", response_model=CostSummaryResponse)
def get_cost_summary(
    repo: RecurringDefinitionRepository = Depends(get_recurring_repository)
):
    """Monthly and yearly totals of active recurring definitions."""
    return CostSummaryResponse(**recurring_service.summarize_costs(repo))


@router.get("/upcoming", response_model=List[UpcomingOccurrence])
def get_upcoming(
    days: int = Query(30, ge=1, le=366),
    repo: RecurringDefinitionRepository = Depends(get_recurring_repository)
):
    """Scheduled occurrences over the next N days."""
    today = date.today()
    return recurring_service.get_upcoming(repo, until=today + timedelta(days=days), today=today)


@router.get("/{definition_id}", response_model=RecurringDefinitionResponse)
def get_recurring(
    definition_id: str,
    repo: RecurringDefinitionRepository = Depends(get_recurring_repository),
    transactions: TransactionRepository = Depends(get_transaction_repository)
):
    """Get a single recurring definition."""
    try:
        definition = recurring_service.get_definition(repo, definition_id)
    except DefinitionNotFound:
        raise HTTPException(status_code=404, detail="Recurring definition not found")
    return _to_response(definition, transactions)


@router.post("", response_model=RecurringDefinitionResponse, status_code=201)
def create_recurring(
    data: RecurringDefinitionCreate,
    repo: RecurringDefinitionRepository = Depends(get_recurring_repository)
):
    """Manually create a recurring definition."""
    try:
        definition = recurring_service.create_definition(repo, **data.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    response = RecurringDefinitionResponse.model_validate(definition)
    response.transaction_count = 0
    return response


@router.patch("/{definition_id}", response_model=RecurringDefinitionResponse)
def update_recurring(
    definition_id: str,
    update: RecurringDefinitionUpdate,
    repo: RecurringDefinitionRepository = Depends(get_recurring_repository),
    transactions: TransactionRepository = Depends(get_transaction_repository)
):
    """Update a recurring definition."""
    try:
        definition = recurring_service.update_definition(
            repo, definition_id, update.model_dump(exclude_unset=True)
        )
    except DefinitionNotFound:
        raise HTTPException(status_code=404, detail="Recurring definition not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_response(definition, transactions)


@router.patch("/{definition_id}/toggle", response_model=RecurringDefinitionResponse)
def toggle_recurring(
    definition_id: str,
    request: ToggleRequest,
    repo: RecurringDefinitionRepository = Depends(get_recurring_repository),
    transactions: TransactionRepository = Depends(get_transaction_repository)
):
    """Pause or resume a recurring definition."""
    try:
        definition = recurring_service.toggle_definition(repo, definition_id, request.is_active)
    except DefinitionNotFound:
        raise HTTPException(status_code=404, detail="Recurring definition not found")
    return _to_response(definition, transactions)


@router.delete("/{definition_id}")
def delete_recurring(
    definition_id: str,
    repo: RecurringDefinitionRepository = Depends(get_recurring_repository)
):
    """Delete a recurring definition (unlinks transactions but doesn't delete them)."""
    try:
        recurring_service.delete_definition(repo, definition_id)
    except DefinitionNotFound:
        raise HTTPException(status_code=404, detail="Recurring definition not found")
    return {"deleted": True}


@router.post("/detect", response_model=DetectionResponse)
def detect_recurring(
    request: Optional[DetectionRequest] = None,
    transactions: TransactionRepository = Depends(get_transaction_repository)
):
    """
    Detect recurring patterns in the given transactions, or in stored history.
    Returns detected patterns without creating definitions yet.
    """
    request = request or DetectionRequest()
    records = request.transactions if request.transactions is not None else _stored_history(transactions)

    candidates = detect_patterns(
        records,
        include_low_confidence=request.include_low_confidence,
        max_workers=settings.detection_max_workers,
    )
    detected = [_candidate_response(c) for c in candidates]
    return DetectionResponse(detected=detected, total_found=len(detected))


@router.post("/accept", response_model=RecurringDefinitionResponse, status_code=201)
def accept_detection(
    request: AcceptCandidateRequest,
    repo: RecurringDefinitionRepository = Depends(get_recurring_repository),
    transactions: TransactionRepository = Depends(get_transaction_repository)
):
    """Persist one detected pattern as a recurring definition."""
    try:
        candidate = _verified_candidate(request, transactions)
        definition = recurring_service.accept_candidate(
            repo, candidate, account_id=request.account_id, auto_approve=request.auto_approve
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    response = RecurringDefinitionResponse.model_validate(definition)
    response.transaction_count = 0
    return response


@router.post("/detect/apply", response_model=ApplyDetectionResponse)
def apply_detection(
    request: Optional[ApplyDetectionRequest] = None,
    repo: RecurringDefinitionRepository = Depends(get_recurring_repository),
    transactions: TransactionRepository = Depends(get_transaction_repository)
):
    """
    Detect patterns in stored history and accept every one above the
    confidence threshold.
    """
    request = request or ApplyDetectionRequest()
    candidates = detect_patterns(
        _stored_history(transactions),
        include_low_confidence=False,
        max_workers=settings.detection_max_workers,
    )
    created, failed = recurring_service.accept_candidates(
        repo, candidates, account_id=request.account_id, auto_approve=request.auto_approve
    )
    return ApplyDetectionResponse(
        created=[_to_response(d, transactions) for d in created],
        failed=[
            {"name": candidate.name, "description": candidate.representative.description, "error": str(e)}
            for candidate, e in failed
        ],
    )


@router.post("/process-due", response_model=ProcessDueResponse)
def process_due(
    now: Optional[date] = Query(None, description="Process as of this date (default today)"),
    repo: RecurringDefinitionRepository = Depends(get_recurring_repository),
    transactions: TransactionRepository = Depends(get_transaction_repository)
):
    """Materialize transactions for every due, auto-approved definition."""
    result = due_processor.process_due(repo, transactions, now)
    return ProcessDueResponse(
        materialized=[DueOutcomeResponse(**asdict(o)) for o in result.materialized],
        skipped=[DueOutcomeResponse(**asdict(o)) for o in result.skipped],
        errors=[DueOutcomeResponse(**asdict(o)) for o in result.errors],
        cancelled=result.cancelled,
    )


@router.post("/{definition_id}/approve", response_model=DueOutcomeResponse)
def approve_occurrence(
    definition_id: str,
    now: Optional[date] = Query(None),
    repo: RecurringDefinitionRepository = Depends(get_recurring_repository),
    transactions: TransactionRepository = Depends(get_transaction_repository)
):
    """Confirm the pending occurrence of a definition that is not auto-approved."""
    try:
        outcome = due_processor.approve_occurrence(repo, transactions, definition_id, now)
    except DefinitionNotFound:
        raise HTTPException(status_code=404, detail="Recurring definition not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return DueOutcomeResponse(**asdict(outcome))
