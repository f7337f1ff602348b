"""
Materializes due occurrences of recurring definitions.

Each occurrence is handled as one unit of work: the schedule is advanced with
a conditional update keyed on the next run date that was read, and only if
that update wins is the transaction inserted, in the same database
transaction. A concurrent or repeated scan holding the same stale snapshot
loses the conditional update and does nothing, so an occurrence is never
billed twice.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Union

from sqlalchemy.exc import IntegrityError

from recurra.models.recurring import Frequency, RecurringDefinition
from recurra.models.transaction import TransactionType
from recurra.repositories.recurring_repository import RecurringDefinitionRepository
from recurra.repositories.transaction_repository import TransactionRepository
from recurra.services.recurring_service import DefinitionNotFound
from recurra.services.schedule import predict_next_date

logger = logging.getLogger(__name__)

AWAITING_APPROVAL = "awaiting_approval"
ALREADY_PROCESSED = "already_processed"
NOT_DUE = "not_due"


@dataclass(frozen=True)
class DueOccurrence:
    """Snapshot of one scheduled run of a definition that has come due."""
    definition_id: str
    occurrence_date: date
    amount: Decimal
    type: TransactionType
    description: str
    category: Optional[str]
    account_id: Optional[str]
    frequency: Frequency
    interval_days: Optional[int]
    auto_approve: bool

    @classmethod
    def from_definition(cls, definition: RecurringDefinition) -> "DueOccurrence":
        return cls(
            definition_id=definition.id,
            occurrence_date=definition.next_run_date,
            amount=Decimal(definition.amount),
            type=definition.type,
            description=definition.description,
            category=definition.category,
            account_id=definition.account_id,
            frequency=definition.frequency,
            interval_days=definition.interval_days,
            auto_approve=definition.auto_approve,
        )

    @property
    def following_date(self) -> date:
        return predict_next_date(self.occurrence_date, self.frequency, self.interval_days)


@dataclass
class DueOutcome:
    definition_id: str
    occurrence_date: date
    transaction_id: Optional[str] = None
    reason: Optional[str] = None
    next_run_date: Optional[date] = None


@dataclass
class DueProcessingResult:
    materialized: List[DueOutcome] = field(default_factory=list)
    skipped: List[DueOutcome] = field(default_factory=list)
    errors: List[DueOutcome] = field(default_factory=list)
    cancelled: bool = False


def _as_date(now: Union[date, datetime, None]) -> date:
    if now is None:
        return date.today()
    if isinstance(now, datetime):
        return now.date()
    return now


def find_due_occurrences(
    definitions: RecurringDefinitionRepository,
    now: Union[date, datetime, None] = None
) -> List[DueOccurrence]:
    """Snapshot every active definition whose next run date is on or before now."""
    today = _as_date(now)
    return [DueOccurrence.from_definition(d) for d in definitions.list_due(today)]


def materialize_occurrence(
    definitions: RecurringDefinitionRepository,
    transactions: TransactionRepository,
    occurrence: DueOccurrence
) -> DueOutcome:
    """
    Record the transaction for one occurrence and advance its schedule.

    Both repositories must share a session. Returns an outcome with
    reason=ALREADY_PROCESSED if the schedule no longer matches the snapshot.
    Database errors roll back the whole unit and propagate.
    """
    next_run = occurrence.following_date
    try:
        advanced = definitions.advance_schedule(
            occurrence.definition_id,
            expected_next_run=occurrence.occurrence_date,
            new_next_run=next_run,
            last_run=occurrence.occurrence_date,
        )
        if not advanced:
            definitions.rollback()
            return DueOutcome(occurrence.definition_id, occurrence.occurrence_date, reason=ALREADY_PROCESSED)

        transaction = transactions.add_materialized(
            definition_id=occurrence.definition_id,
            occurrence_date=occurrence.occurrence_date,
            amount=occurrence.amount,
            txn_type=occurrence.type,
            description=occurrence.description,
            category=occurrence.category,
            account_id=occurrence.account_id,
        )
        transaction_id = transaction.id
        definitions.commit()
    except IntegrityError:
        # The occurrence already has a transaction
        definitions.rollback()
        return DueOutcome(occurrence.definition_id, occurrence.occurrence_date, reason=ALREADY_PROCESSED)
    except Exception:
        definitions.rollback()
        raise

    logger.info(
        "Materialized occurrence %s of recurring definition %s as transaction %s",
        occurrence.occurrence_date, occurrence.definition_id, transaction_id
    )
    return DueOutcome(
        occurrence.definition_id,
        occurrence.occurrence_date,
        transaction_id=transaction_id,
        next_run_date=next_run,
    )


def process_due(
    definitions: RecurringDefinitionRepository,
    transactions: TransactionRepository,
    now: Union[date, datetime, None] = None,
    cancel_event: Optional[threading.Event] = None
) -> DueProcessingResult:
    """
    Materialize one occurrence for every active, due, auto-approved definition.

    Paused definitions are not scanned. Due definitions without auto-approve
    are reported as skipped and keep their schedule. A failure on one
    definition is reported in errors and the scan continues. Setting
    cancel_event stops the scan before the next definition.
    """
    result = DueProcessingResult()
    today = _as_date(now)

    for occurrence in find_due_occurrences(definitions, today):
        if cancel_event is not None and cancel_event.is_set():
            result.cancelled = True
            logger.info("Due processing cancelled")
            break

        if not occurrence.auto_approve:
            result.skipped.append(
                DueOutcome(occurrence.definition_id, occurrence.occurrence_date, reason=AWAITING_APPROVAL)
            )
            continue

        try:
            outcome = materialize_occurrence(definitions, transactions, occurrence)
        except Exception as e:
            logger.exception("Failed to process recurring definition %s", occurrence.definition_id)
            result.errors.append(
                DueOutcome(occurrence.definition_id, occurrence.occurrence_date, reason=str(e))
            )
            continue

        if outcome.transaction_id:
            result.materialized.append(outcome)
        else:
            result.skipped.append(outcome)

    logger.info(
        "Processed due recurring definitions: %d materialized, %d skipped, %d errors",
        len(result.materialized), len(result.skipped), len(result.errors)
    )
    return result


def approve_occurrence(
    definitions: RecurringDefinitionRepository,
    transactions: TransactionRepository,
    definition_id: str,
    now: Union[date, datetime, None] = None
) -> DueOutcome:
    """Confirm the pending occurrence of a definition that is not auto-approved."""
    definition = definitions.get(definition_id)
    if not definition:
        raise DefinitionNotFound(f"Recurring definition {definition_id} not found")
    if not definition.is_active:
        raise ValueError("Cannot approve an occurrence of a paused definition")

    occurrence = DueOccurrence.from_definition(definition)
    if occurrence.occurrence_date > _as_date(now):
        return DueOutcome(definition_id, occurrence.occurrence_date, reason=NOT_DUE)

    return materialize_occurrence(definitions, transactions, occurrence)
