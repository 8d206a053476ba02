"""
Loan service: the one entry point the REST API and MCP tools call.

The service wires the components together for a single session,
owns the transaction boundary (commit on success, rollback on any
refusal) and announces committed transitions to the notification sink.
Notifications go out only after a commit, so a listener never hears
about a loan that does not exist.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from ..config import LibraryConfig, get_config
from ..database.gateways import PersonGateway, PersonLookup, ResourceGateway, ResourceLookup
from ..database.loan_repository import LoanRepository
from ..database.repository import PaginatedResponse, PaginationParams
from ..database.session import begin_write, safe_commit
from ..models.loan import (
    AvailabilityInfo,
    CanBorrowResult,
    CreateLoanRequest,
    LoanFilters,
    LoanValidationResult,
    LoanView,
    MarkLostRequest,
    RenewLoanRequest,
    RenewLoanResponse,
    ReturnLoanRequest,
    ReturnLoanResponse,
)
from ..models.stats import LoanStatistics
from ..observability.decorators import trace_operation
from ..observability.metrics import record_loan_event
from . import notifications
from .availability import AvailabilityTracker
from .eligibility import EligibilityEvaluator
from .errors import LoanNotFound, ResourceNotFound
from .notifications import LoggingNotificationSink, NotificationSink
from .state_machine import LoanStateMachine, PenaltyHook, no_penalty
from .statistics import StatisticsAggregator

logger = logging.getLogger(__name__)


class LoanService:
    """Loan operations over one database session."""

    def __init__(
        self,
        session: Session,
        config: LibraryConfig | None = None,
        people: PersonLookup | None = None,
        resources: ResourceLookup | None = None,
        notifier: NotificationSink | None = None,
        penalty_hook: PenaltyHook = no_penalty,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.session = session
        self.config = config or get_config()
        self.people = people or PersonGateway(session)
        self.resources = resources or ResourceGateway(session, clock)
        self.notifier = notifier or LoggingNotificationSink()
        self.penalty_hook = penalty_hook
        self.clock = clock

        self.loans = LoanRepository(session, clock, self.config.due_soon_days)
        self.availability = AvailabilityTracker(session, self.resources, clock)
        self.eligibility = EligibilityEvaluator(session, self.people, self.config, clock)
        self.state_machine = LoanStateMachine(
            session, self.people, self.resources, self.config, clock
        )

    # === Transaction helpers ===

    def _begin_write(self) -> None:
        begin_write(self.session)

    def _commit(self, operation: str) -> None:
        safe_commit(self.session, operation)

    def _rollback(self) -> None:
        self.session.rollback()

    def _notify(self, event: str, payload: dict[str, Any]) -> None:
        record_loan_event(event, payload.get("quantity", 1))
        try:
            self.notifier.notify(event, payload)
        except Exception:
            # The transition is already committed
            logger.exception("Notification %s failed", event)

    def _loan_payload(self, loan: LoanView) -> dict[str, Any]:
        return {
            "loan_id": loan.id,
            "person_id": loan.person_id,
            "resource_id": loan.resource_id,
            "quantity": loan.quantity,
            "due_date": loan.due_date.isoformat(),
        }

    # === Mutations ===

    @trace_operation("create")
    def create_loan(self, request: CreateLoanRequest) -> LoanView:
        """Open a loan; the result is the committed loan with derived fields."""
        try:
            self._begin_write()
            created = self.state_machine.create(
                request.person_id,
                request.resource_id,
                request.quantity,
                request.observations,
            )
            view = self.loans.to_view(created.loan)
            remaining = self.availability.available(request.resource_id)
            self._commit("create loan")
        except Exception:
            self._rollback()
            raise

        self._notify(notifications.LOAN_CREATED, self._loan_payload(view))
        if remaining <= self.config.low_stock_threshold:
            self._notify(
                notifications.RESOURCE_LOW_STOCK,
                {
                    "resource_id": request.resource_id,
                    "resource_title": view.resource_title,
                    "available": remaining,
                    "volumes": created.resource.volumes,
                },
            )
        return view

    @trace_operation("renew")
    def renew_loan(self, loan_id: str, request: RenewLoanRequest | None = None) -> RenewLoanResponse:
        request = request or RenewLoanRequest()
        try:
            self._begin_write()
            renewed = self.state_machine.renew(loan_id, request.additional_days, request.observations)
            view = self.loans.to_view(renewed.loan)
            self._commit("renew loan")
        except Exception:
            self._rollback()
            raise

        payload = self._loan_payload(view)
        payload["previous_due_date"] = renewed.previous_due_date.isoformat()
        payload["renewal_count"] = view.renewal_count
        self._notify(notifications.LOAN_RENEWED, payload)

        return RenewLoanResponse(
            loan=view,
            previous_due_date=renewed.previous_due_date,
            new_due_date=renewed.new_due_date,
            renewals_remaining=renewed.renewals_remaining,
        )

    @trace_operation("return")
    def return_loan(
        self, loan_id: str, request: ReturnLoanRequest | None = None
    ) -> ReturnLoanResponse:
        request = request or ReturnLoanRequest()
        try:
            self._begin_write()
            returned = self.state_machine.return_loan(
                loan_id, request.return_observations, request.resource_condition
            )
            view = self.loans.to_view(returned.loan)
            penalties = self.penalty_hook(view, returned.days_overdue)
            self._commit("return loan")
        except Exception:
            self._rollback()
            raise

        payload = self._loan_payload(view)
        payload["was_overdue"] = returned.was_overdue
        payload["days_overdue"] = returned.days_overdue
        self._notify(notifications.LOAN_RETURNED, payload)

        if returned.was_overdue:
            message = f"Loan returned {returned.days_overdue} day(s) late"
        else:
            message = "Loan returned on time"

        return ReturnLoanResponse(
            loan=view,
            was_overdue=returned.was_overdue,
            days_overdue=returned.days_overdue,
            resource_condition_changed=returned.resource_condition_changed,
            message=message,
            penalties=penalties,
        )

    @trace_operation("mark_lost")
    def mark_as_lost(self, loan_id: str, request: MarkLostRequest) -> LoanView:
        try:
            self._begin_write()
            loan = self.state_machine.mark_as_lost(loan_id, request.observations)
            view = self.loans.to_view(loan)
            self._commit("mark loan lost")
        except Exception:
            self._rollback()
            raise

        payload = self._loan_payload(view)
        payload["observations"] = view.observations
        self._notify(notifications.LOAN_LOST, payload)
        return view

    # === Reads ===

    def get_loan(self, loan_id: str) -> LoanView:
        loan = self.loans.get(loan_id)
        if loan is None:
            raise LoanNotFound(f"Loan {loan_id} not found")
        return self.loans.to_view(loan)

    def list_loans(self, filters: LoanFilters | None = None) -> PaginatedResponse[LoanView]:
        return self.loans.search(filters or LoanFilters())

    def overdue_loans(self, pagination: PaginationParams | None = None) -> PaginatedResponse[LoanView]:
        return self.loans.overdue(pagination)

    @trace_operation("can_borrow")
    def can_borrow(self, person_id: str) -> CanBorrowResult:
        return self.eligibility.can_borrow(person_id)

    def availability_info(self, resource_id: str) -> AvailabilityInfo:
        resource = self.resources.get(resource_id)
        if resource is None:
            raise ResourceNotFound(f"Resource {resource_id} not found")
        committed = self.availability.committed_units(resource_id)
        return AvailabilityInfo(
            resource_id=resource_id,
            volumes=resource.volumes,
            committed_units=committed,
            available=max(0, resource.volumes - committed),
            state=resource.state,
            lendable=resource.state in self.config.lendable_resource_states,
        )

    def validate_loan(self, request: CreateLoanRequest) -> LoanValidationResult:
        """Dry run of ``create_loan``: report every problem, reserve nothing."""
        errors: list[str] = []
        warnings: list[str] = []
        eligibility = None
        availability = None

        if request.quantity < 1:
            errors.append("Quantity must be at least 1")

        person = self.people.get(request.person_id)
        if person is None:
            errors.append(f"Person {request.person_id} not found")
        else:
            eligibility = self.eligibility.can_borrow(request.person_id)
            if not eligibility.can_borrow:
                errors.append(f"Person cannot borrow: {eligibility.reason}")
            elif eligibility.overdue_loans:
                warnings.append(f"Person has {eligibility.overdue_loans} overdue loan(s)")
            if eligibility.upcoming_due_dates:
                warnings.append(
                    f"Person has {len(eligibility.upcoming_due_dates)} loan(s) due soon"
                )
            max_quantity = self.config.max_quantity_for(person.person_type)
            if request.quantity > max_quantity:
                errors.append(f"Quantity exceeds the limit of {max_quantity} unit(s) per loan")

        try:
            availability = self.availability_info(request.resource_id)
        except ResourceNotFound as e:
            errors.append(e.message)
        else:
            if not availability.lendable:
                errors.append(f"Resource is {availability.state.value} and cannot be lent")
            if request.quantity > availability.available:
                errors.append(
                    f"Only {availability.available} unit(s) available, {request.quantity} requested"
                )
            elif availability.available - request.quantity <= self.config.low_stock_threshold:
                warnings.append("This loan leaves the resource at low stock")

        return LoanValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            can_borrow=eligibility,
            availability=availability,
        )

    def statistics(self) -> LoanStatistics:
        return StatisticsAggregator(self.session, self.clock).summary()
