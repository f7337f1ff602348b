"""
Recurring definition store.
"""

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from recurra.models.recurring import RecurringDefinition
from recurra.models.transaction import Transaction


class RecurringDefinitionRepository:
    """CRUD over recurring definitions plus a compare-and-swap schedule update."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, definition_id: str) -> Optional[RecurringDefinition]:
        return self.db.query(RecurringDefinition).filter(
            RecurringDefinition.id == definition_id
        ).first()

    def list(self, include_inactive: bool = False) -> List[RecurringDefinition]:
        query = self.db.query(RecurringDefinition)
        if not include_inactive:
            query = query.filter(RecurringDefinition.is_active == True)
        return query.order_by(RecurringDefinition.name).all()

    def list_due(self, on_or_before: date) -> List[RecurringDefinition]:
        """Active definitions whose next run date has arrived."""
        return self.db.query(RecurringDefinition).filter(
            RecurringDefinition.is_active == True,
            RecurringDefinition.next_run_date <= on_or_before
        ).order_by(RecurringDefinition.next_run_date, RecurringDefinition.id).all()

    def add(self, definition: RecurringDefinition) -> RecurringDefinition:
        self.db.add(definition)
        self.db.commit()
        self.db.refresh(definition)
        return definition

    def save(self, definition: RecurringDefinition) -> RecurringDefinition:
        self.db.commit()
        self.db.refresh(definition)
        return definition

    def delete(self, definition: RecurringDefinition) -> None:
        # Keep materialized transactions, just detach them
        self.db.query(Transaction).filter(
            Transaction.recurring_definition_id == definition.id
        ).update(
            {Transaction.recurring_definition_id: None},
            synchronize_session=False
        )
        self.db.delete(definition)
        self.db.commit()

    def advance_schedule(
        self,
        definition_id: str,
        expected_next_run: date,
        new_next_run: date,
        last_run: date
    ) -> bool:
        """
        Move the schedule forward only if next_run_date still equals
        expected_next_run. Does not commit.

        Returns False when another writer already advanced it or the
        definition was paused or deleted.
        """
        updated = self.db.query(RecurringDefinition).filter(
            RecurringDefinition.id == definition_id,
            RecurringDefinition.next_run_date == expected_next_run,
            RecurringDefinition.is_active == True
        ).update(
            {
                RecurringDefinition.next_run_date: new_next_run,
                RecurringDefinition.last_run_date: last_run,
                RecurringDefinition.updated_at: datetime.utcnow(),
            },
            synchronize_session=False
        )
        return updated == 1

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
