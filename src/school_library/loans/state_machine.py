"""
Loan lifecycle.

    active ──return_loan──▶ returned
       │
       └──mark_as_lost───▶ lost

``returned`` and ``lost`` are terminal. ``overdue`` is not a state: it is
what an ``active`` loan looks like once its due date has passed, and such
a loan can still be renewed, returned or lost.

Every operation checks all of its preconditions before touching a row,
so a refused call leaves the loan and the stock exactly as they were.
The state machine works inside the caller's transaction and never
commits; ``LoanService`` owns the transaction boundary.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy.orm import Session

from ..config import LibraryConfig
from ..database.gateways import PersonLookup, ResourceLookup
from ..database.loan_repository import LoanRepository, generate_loan_id
from ..database.schema import Loan as LoanDB
from ..database.schema import LoanRenewal as RenewalDB
from ..database.schema import LoanStatusEnum
from ..models.catalog import ResourceCondition, ResourceRef
from ..models.loan import CanBorrowResult, LoanView, PenaltyInfo
from . import overdue
from .availability import AvailabilityTracker, Reservation
from .eligibility import EligibilityEvaluator
from .errors import (
    InvalidLoanRequest,
    InvalidQuantity,
    LoanAlreadyReturned,
    LoanNotActive,
    LoanNotFound,
    MaxRenewalsReached,
    ObservationsRequired,
    PersonNotEligible,
    PersonNotFound,
    RenewalsDisabled,
    ResourceNotFound,
    ResourceUnavailable,
)

logger = logging.getLogger(__name__)


class PenaltyHook(Protocol):
    """Called after a successful return; returns None when no penalty applies."""

    def __call__(self, loan: LoanView, days_overdue: int) -> PenaltyInfo | None: ...


def no_penalty(loan: LoanView, days_overdue: int) -> PenaltyInfo | None:  # noqa: ARG001
    return None


@dataclass
class CreatedLoan:
    loan: LoanDB
    reservation: Reservation
    eligibility: CanBorrowResult
    resource: ResourceRef


@dataclass
class RenewedLoan:
    loan: LoanDB
    previous_due_date: datetime
    new_due_date: datetime
    renewals_remaining: int


@dataclass
class ReturnedLoan:
    loan: LoanDB
    was_overdue: bool
    days_overdue: int
    resource_condition_changed: bool


class LoanStateMachine:
    def __init__(
        self,
        session: Session,
        people: PersonLookup,
        resources: ResourceLookup,
        config: LibraryConfig,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.session = session
        self.people = people
        self.resources = resources
        self.config = config
        self.clock = clock
        self.loans = LoanRepository(session, clock, config.due_soon_days)
        self.availability = AvailabilityTracker(session, resources, clock)
        self.eligibility = EligibilityEvaluator(session, people, config, clock)

    def _load_active(self, loan_id: str) -> LoanDB:
        loan = self.loans.get_for_update(loan_id)
        if loan is None:
            raise LoanNotFound(f"Loan {loan_id} not found")
        if loan.status == LoanStatusEnum.RETURNED:
            raise LoanAlreadyReturned(f"Loan {loan_id} has already been returned")
        if loan.status != LoanStatusEnum.ACTIVE:
            raise LoanNotActive(f"Loan {loan_id} is {loan.status.value}, not active")
        return loan

    # === Create ===

    def create(
        self,
        person_id: str,
        resource_id: str,
        quantity: int = 1,
        observations: str | None = None,
    ) -> CreatedLoan:
        """
        Open a new active loan.

        The eligibility evaluation is repeated here so a stale advisory
        answer can never let a loan through.

        Raises:
            InvalidQuantity: quantity below 1, above the person's limit,
                or above the resource's total volumes
            PersonNotFound / ResourceNotFound: unknown ids
            PersonNotEligible: eligibility refused (carries the evaluation)
            ResourceUnavailable: resource not lendable or not enough free units
        """
        if quantity < 1:
            raise InvalidQuantity("Quantity must be at least 1")

        now = self.clock()
        person = self.people.get(person_id)
        if person is None:
            raise PersonNotFound(f"Person {person_id} not found")

        max_quantity = self.config.max_quantity_for(person.person_type)
        if quantity > max_quantity:
            raise InvalidQuantity(
                f"Quantity {quantity} exceeds the limit of {max_quantity} unit(s) per loan"
            )

        resource = self.resources.get(resource_id)
        if resource is None:
            raise ResourceNotFound(f"Resource {resource_id} not found")
        if quantity > resource.volumes:
            raise InvalidQuantity(
                f"Quantity {quantity} exceeds the {resource.volumes} volume(s) of {resource_id}"
            )
        if resource.state not in self.config.lendable_resource_states:
            raise ResourceUnavailable(
                f"Resource {resource_id} is {resource.state.value} and cannot be lent"
            )

        eligibility = self.eligibility.can_borrow(person_id, now)
        if not eligibility.can_borrow:
            raise PersonNotEligible(
                f"Person {person_id} cannot borrow: {eligibility.reason}", eligibility
            )

        # Last step before the insert: the reservation is the atomic gate
        reservation = self.availability.reserve(resource_id, quantity)

        loan = LoanDB(
            id=generate_loan_id(),
            person_id=person_id,
            resource_id=resource_id,
            quantity=quantity,
            loan_date=now,
            due_date=now + timedelta(days=self.config.loan_duration_for(person.person_type)),
            status=LoanStatusEnum.ACTIVE,
            observations=observations,
            renewal_count=0,
        )
        self.loans.add(loan)

        logger.info(
            "Loan %s created: person=%s resource=%s quantity=%d due=%s",
            loan.id,
            person_id,
            resource_id,
            quantity,
            loan.due_date.isoformat(),
        )
        return CreatedLoan(
            loan=loan, reservation=reservation, eligibility=eligibility, resource=resource
        )

    # === Renew ===

    def renew(
        self,
        loan_id: str,
        additional_days: int | None = None,
        observations: str | None = None,
    ) -> RenewedLoan:
        """
        Push the due date of an active loan back.

        Overdue loans may be renewed; the renewal count is the only bound.

        Raises:
            LoanNotFound, LoanNotActive, RenewalsDisabled, MaxRenewalsReached,
            InvalidLoanRequest (additional_days below 1)
        """
        loan = self._load_active(loan_id)

        if not self.config.allow_renewals:
            raise RenewalsDisabled("Loan renewals are disabled")
        if loan.renewal_count >= self.config.max_renewals:
            raise MaxRenewalsReached(
                f"Loan {loan_id} has reached the maximum of {self.config.max_renewals} renewal(s)"
            )

        days = additional_days if additional_days is not None else self.config.renewal_extension_days
        if days < 1:
            raise InvalidLoanRequest("Renewal must add at least one day")

        now = self.clock()
        previous_due = loan.due_date
        new_due = previous_due + timedelta(days=days)

        loan.due_date = new_due
        loan.renewal_count += 1
        loan.updated_at = now
        self.loans.add_renewal(
            RenewalDB(
                loan_id=loan.id,
                renewed_at=now,
                previous_due_date=previous_due,
                new_due_date=new_due,
                observations=observations,
            )
        )

        logger.info(
            "Loan %s renewed (%d/%d): due %s -> %s",
            loan.id,
            loan.renewal_count,
            self.config.max_renewals,
            previous_due.isoformat(),
            new_due.isoformat(),
        )
        return RenewedLoan(
            loan=loan,
            previous_due_date=previous_due,
            new_due_date=new_due,
            renewals_remaining=self.config.max_renewals - loan.renewal_count,
        )

    # === Return ===

    def return_loan(
        self,
        loan_id: str,
        return_observations: str | None = None,
        resource_condition: ResourceCondition | None = None,
    ) -> ReturnedLoan:
        """
        Close an active loan and give its units back.

        A reported ``resource_condition`` that differs from the resource's
        current state is written through the resource gateway.

        Raises:
            LoanNotFound, LoanAlreadyReturned, LoanNotActive (lost)
        """
        loan = self._load_active(loan_id)
        now = self.clock()

        was_overdue = overdue.is_overdue(loan, now)
        days_late = overdue.days_overdue(loan, now)

        resource = self.resources.get(loan.resource_id)
        condition_changed = (
            resource_condition is not None
            and resource is not None
            and resource.state != resource_condition
        )

        self.availability.release(loan.resource_id, loan.quantity)

        loan.status = LoanStatusEnum.RETURNED
        loan.returned_date = now
        loan.return_observations = return_observations
        loan.resource_condition = resource_condition.value if resource_condition else None
        loan.updated_at = now

        if condition_changed:
            self.resources.update_state(loan.resource_id, resource_condition)

        self.loans.flush()

        logger.info(
            "Loan %s returned%s",
            loan.id,
            f" {days_late} day(s) late" if was_overdue else "",
        )
        return ReturnedLoan(
            loan=loan,
            was_overdue=was_overdue,
            days_overdue=days_late,
            resource_condition_changed=condition_changed,
        )

    # === Lost ===

    def mark_as_lost(self, loan_id: str, observations: str) -> LoanDB:
        """
        Record an active loan as lost. Its units are never released.

        Raises:
            ObservationsRequired: blank observations
            LoanNotFound, LoanNotActive
        """
        if not observations or not observations.strip():
            raise ObservationsRequired("Observations are required to mark a loan as lost")

        loan = self._load_active(loan_id)
        now = self.clock()

        loan.status = LoanStatusEnum.LOST
        loan.lost_date = now
        loan.observations = observations.strip()
        loan.updated_at = now
        self.loans.flush()

        logger.warning(
            "Loan %s marked lost: %d unit(s) of %s withdrawn",
            loan.id,
            loan.quantity,
            loan.resource_id,
        )
        return loan
