"""
Borrowing eligibility.

``can_borrow`` answers one question: may this person open a new loan
right now? The checks run in a fixed order and the first failing one
becomes the ``reason``:

1. the person is inactive
2. the person already holds ``max_loans`` active loans
3. the person has an overdue loan (when blocking on overdue is enabled)

The same evaluation runs inside loan creation, so the advisory endpoint
and the real decision can never disagree.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy.orm import Session

from ..config import LibraryConfig
from ..database.gateways import PersonLookup
from ..database.loan_repository import LoanRepository
from ..models.loan import (
    BorrowRestrictions,
    CanBorrowResult,
    CurrentLoanSummary,
    UpcomingDueDate,
)
from . import overdue
from .errors import PersonNotFound

logger = logging.getLogger(__name__)

REASON_INACTIVE = "person inactive"
REASON_MAX_LOANS = "max loans reached"
REASON_OVERDUE = "has overdue loans"


class EligibilityEvaluator:
    def __init__(
        self,
        session: Session,
        people: PersonLookup,
        config: LibraryConfig,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.session = session
        self.people = people
        self.config = config
        self.clock = clock
        self.loans = LoanRepository(session, clock, config.due_soon_days)

    def can_borrow(self, person_id: str, now: datetime | None = None) -> CanBorrowResult:
        """
        Evaluate whether ``person_id`` may open a new loan.

        Raises:
            PersonNotFound: the id does not resolve to a person
        """
        now = now or self.clock()
        person = self.people.get(person_id)
        if person is None:
            raise PersonNotFound(f"Person {person_id} not found")

        max_loans = self.config.max_loans_for(person.person_type)
        active_rows = self.loans.active_for_person(person_id)

        current_loans = []
        upcoming = []
        overdue_count = 0
        for loan in active_rows:
            late = overdue.is_overdue(loan, now)
            if late:
                overdue_count += 1
            title = loan.resource.title if loan.resource is not None else None
            current_loans.append(
                CurrentLoanSummary(
                    id=loan.id,
                    resource_id=loan.resource_id,
                    resource_title=title,
                    due_date=loan.due_date,
                    is_overdue=late,
                    days_overdue=overdue.days_overdue(loan, now),
                )
            )
            if overdue.is_due_soon(loan, now, self.config.due_soon_days):
                upcoming.append(
                    UpcomingDueDate(
                        id=loan.id,
                        resource_id=loan.resource_id,
                        resource_title=title,
                        due_date=loan.due_date,
                        days_until_due=overdue.days_until_due(loan, now),
                    )
                )

        active_count = len(active_rows)
        restrictions = BorrowRestrictions(
            has_overdue_loans=overdue_count > 0,
            has_reached_limit=active_count >= max_loans,
            is_person_active=person.active,
        )

        reason = None
        if not person.active:
            reason = REASON_INACTIVE
        elif restrictions.has_reached_limit:
            reason = REASON_MAX_LOANS
        elif restrictions.has_overdue_loans and self.config.block_borrowing_when_overdue:
            reason = REASON_OVERDUE

        if reason:
            logger.debug("Person %s cannot borrow: %s", person_id, reason)

        return CanBorrowResult(
            can_borrow=reason is None,
            reason=reason,
            active_loans=active_count,
            max_loans=max_loans,
            overdue_loans=overdue_count,
            restrictions=restrictions,
            current_loans=current_loans,
            upcoming_due_dates=upcoming,
        )
