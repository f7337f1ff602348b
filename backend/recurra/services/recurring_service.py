"""Service for recurring definition lifecycle management."""

import logging
import uuid
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from recurra.config import settings
from recurra.models.recurring import Frequency, RecurringDefinition
from recurra.models.transaction import TransactionType
from recurra.repositories.recurring_repository import RecurringDefinitionRepository
from recurra.services.naming import generate_pattern_name
from recurra.services.pattern_detection import PatternCandidate
from recurra.services.schedule import Cadence, predict_next_date

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "name", "description", "amount", "frequency", "interval_days",
    "category", "account_id", "auto_approve",
}

OCCURRENCES_PER_YEAR = {
    Frequency.daily: Decimal(365),
    Frequency.weekly: Decimal(52),
    Frequency.monthly: Decimal(12),
    Frequency.quarterly: Decimal(4),
    Frequency.yearly: Decimal(1),
}


class DefinitionNotFound(LookupError):
    """No recurring definition with the given id."""


def _require(repo: RecurringDefinitionRepository, definition_id: str) -> RecurringDefinition:
    definition = repo.get(definition_id)
    if not definition:
        raise DefinitionNotFound(f"Recurring definition {definition_id} not found")
    return definition


def _persist_new(repo: RecurringDefinitionRepository, definition: RecurringDefinition) -> RecurringDefinition:
    try:
        return repo.add(definition)
    except SQLAlchemyError:
        repo.rollback()
        logger.exception("Failed to persist recurring definition %r", definition.name)
        raise


def get_definition(repo: RecurringDefinitionRepository, definition_id: str) -> RecurringDefinition:
    return _require(repo, definition_id)


def list_definitions(
    repo: RecurringDefinitionRepository,
    include_inactive: bool = False
) -> List[RecurringDefinition]:
    """Get recurring definitions, active only unless asked otherwise."""
    return repo.list(include_inactive)


def create_definition(
    repo: RecurringDefinitionRepository,
    description: str,
    amount: Decimal,
    frequency: Frequency,
    interval_days: Optional[int] = None,
    name: Optional[str] = None,
    type: TransactionType = TransactionType.expense,
    category: Optional[str] = None,
    account_id: Optional[str] = None,
    auto_approve: bool = False,
    start_date: Optional[date] = None,
    confidence: Optional[float] = None,
) -> RecurringDefinition:
    """
    Create an active recurring definition anchored on start_date.

    The first run is one cadence step after the anchor.
    """
    amount = Decimal(str(amount))
    if amount <= 0:
        raise ValueError("Recurring amount must be positive")
    if confidence is not None and not 0 <= confidence <= 1:
        raise ValueError("Confidence must be between 0 and 1")

    cadence = Cadence.of(frequency, interval_days)
    anchor = start_date or date.today()

    definition = RecurringDefinition(
        id=str(uuid.uuid4()),
        name=name or generate_pattern_name(description),
        description=description,
        amount=amount,
        type=TransactionType(type),
        frequency=cadence.frequency,
        interval_days=cadence.interval_days if cadence.frequency == Frequency.custom else None,
        category=category,
        account_id=account_id,
        is_active=True,
        auto_approve=auto_approve,
        start_date=anchor,
        next_run_date=predict_next_date(anchor, cadence.frequency, cadence.interval_days),
        last_run_date=None,
        confidence=confidence,
    )
    definition = _persist_new(repo, definition)
    logger.info(
        "Created recurring definition %s (%s, next run %s)",
        definition.id, definition.frequency.value, definition.next_run_date
    )
    return definition


def accept_candidate(
    repo: RecurringDefinitionRepository,
    candidate: PatternCandidate,
    account_id: Optional[str] = None,
    auto_approve: bool = False,
    threshold: Optional[float] = None
) -> RecurringDefinition:
    """
    Persist a detected pattern as a recurring definition.

    The latest transaction of the series is the anchor, so the first run is
    the candidate's predicted next date.
    """
    if threshold is None:
        threshold = settings.confidence_threshold
    if candidate.confidence < threshold:
        raise ValueError(
            f"Candidate confidence {candidate.confidence:.2f} is below the acceptance threshold {threshold:.2f}"
        )

    txn = candidate.representative
    return create_definition(
        repo,
        description=txn.description,
        amount=candidate.amount,
        frequency=candidate.frequency,
        interval_days=candidate.interval_days,
        name=candidate.name,
        type=txn.type,
        category=txn.category,
        account_id=account_id,
        auto_approve=auto_approve,
        start_date=candidate.last_date,
        confidence=candidate.confidence,
    )


def accept_candidates(
    repo: RecurringDefinitionRepository,
    candidates: Iterable[PatternCandidate],
    account_id: Optional[str] = None,
    auto_approve: bool = False
) -> Tuple[List[RecurringDefinition], List[Tuple[PatternCandidate, Exception]]]:
    """
    Accept every acceptable candidate.

    Returns (created, failed); a failure on one candidate does not stop the
    others and is reported with its exception.
    """
    created: List[RecurringDefinition] = []
    failed: List[Tuple[PatternCandidate, Exception]] = []

    for candidate in candidates:
        if not candidate.is_acceptable:
            continue
        try:
            created.append(accept_candidate(repo, candidate, account_id, auto_approve))
        except (SQLAlchemyError, ValueError) as e:
            failed.append((candidate, e))

    return created, failed


def update_definition(
    repo: RecurringDefinitionRepository,
    definition_id: str,
    changes: Dict[str, Any]
) -> RecurringDefinition:
    """
    Apply field changes to a definition.

    A cadence change reschedules from the last run, or from the anchor when
    the definition never ran.
    """
    definition = _require(repo, definition_id)

    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
    if "amount" in changes and Decimal(str(changes["amount"])) <= 0:
        raise ValueError("Recurring amount must be positive")

    frequency = Frequency(changes.get("frequency", definition.frequency))
    interval_days = changes.get("interval_days", definition.interval_days)
    cadence = Cadence.of(frequency, interval_days)
    cadence_changed = (
        cadence.frequency != definition.frequency
        or (cadence.frequency == Frequency.custom and cadence.interval_days != definition.interval_days)
    )

    for field, value in changes.items():
        if field in ("frequency", "interval_days"):
            continue
        setattr(definition, field, value)

    if cadence_changed:
        definition.frequency = cadence.frequency
        definition.interval_days = cadence.interval_days if cadence.frequency == Frequency.custom else None
        anchor = definition.last_run_date or definition.start_date
        definition.next_run_date = predict_next_date(anchor, cadence.frequency, cadence.interval_days)
        logger.info(
            "Rescheduled recurring definition %s to %s, next run %s",
            definition.id, cadence.frequency.value, definition.next_run_date
        )

    try:
        return repo.save(definition)
    except SQLAlchemyError:
        repo.rollback()
        raise


def toggle_definition(
    repo: RecurringDefinitionRepository,
    definition_id: str,
    is_active: Optional[bool] = None
) -> RecurringDefinition:
    """Pause or resume a definition; the schedule is kept either way."""
    definition = _require(repo, definition_id)
    definition.is_active = (not definition.is_active) if is_active is None else is_active
    definition = repo.save(definition)
    logger.info(
        "Recurring definition %s is now %s",
        definition.id, "active" if definition.is_active else "paused"
    )
    return definition


def delete_definition(repo: RecurringDefinitionRepository, definition_id: str) -> None:
    """Delete a definition (unlinks its transactions but doesn't delete them)."""
    definition = _require(repo, definition_id)
    repo.delete(definition)
    logger.info("Deleted recurring definition %s", definition_id)


def _per_year(definition: RecurringDefinition) -> Decimal:
    if definition.frequency == Frequency.custom:
        return Decimal(365) / Decimal(definition.interval_days or 1)
    return OCCURRENCES_PER_YEAR[definition.frequency]


def summarize_costs(repo: RecurringDefinitionRepository) -> Dict[str, Any]:
    """Monthly and yearly equivalents of all active definitions."""
    yearly = {TransactionType.income: Decimal(0), TransactionType.expense: Decimal(0)}
    by_category: Dict[str, Decimal] = defaultdict(Decimal)

    definitions = repo.list(include_inactive=False)
    for definition in definitions:
        amount_per_year = Decimal(definition.amount) * _per_year(definition)
        yearly[definition.type] += amount_per_year
        if definition.type == TransactionType.expense:
            by_category[definition.category or "Uncategorized"] += amount_per_year / 12

    return {
        "monthly_expense": yearly[TransactionType.expense] / 12,
        "yearly_expense": yearly[TransactionType.expense],
        "monthly_income": yearly[TransactionType.income] / 12,
        "yearly_income": yearly[TransactionType.income],
        "monthly_expense_by_category": {
            category: total.quantize(Decimal("0.01")) for category, total in by_category.items()
        },
        "active_count": len(definitions),
    }


def get_upcoming(
    repo: RecurringDefinitionRepository,
    until: date,
    today: Optional[date] = None
) -> List[Dict[str, Any]]:
    """Projected occurrences of active definitions from today through until."""
    today = today or date.today()
    upcoming = []

    for definition in repo.list(include_inactive=False):
        current = definition.next_run_date
        while current <= until:
            if current >= today:
                upcoming.append({
                    "definition_id": definition.id,
                    "name": definition.name,
                    "date": current,
                    "amount": definition.amount,
                    "type": definition.type,
                })
            current = predict_next_date(current, definition.frequency, definition.interval_days)

    upcoming.sort(key=lambda o: (o["date"], o["name"]))
    return upcoming
