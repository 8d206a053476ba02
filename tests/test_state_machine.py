"""
Tests for the loan lifecycle.

    active -> returned
    active -> lost

1. Creation rules (quantity, resource state, ids)
2. Renewals and their bound
3. Returns, including late returns and condition reports
4. Losses and their mandatory observations
5. Terminal states refuse every further transition
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from school_library.database.schema import LoanRenewal, Resource
from school_library.loans.errors import (
    InvalidQuantity,
    LoanAlreadyReturned,
    LoanNotActive,
    LoanNotFound,
    MaxRenewalsReached,
    ObservationsRequired,
    PersonNotFound,
    RenewalsDisabled,
    ResourceNotFound,
    ResourceUnavailable,
)
from school_library.loans.service import LoanService
from school_library.models.catalog import ResourceState
from school_library.models.loan import (
    CreateLoanRequest,
    LoanStatus,
    MarkLostRequest,
    PenaltyInfo,
    RenewLoanRequest,
    ReturnLoanRequest,
)

from .conftest import (
    DAMAGED_ID,
    FIXED_NOW,
    MANY_ID,
    SINGLE_ID,
    STUDENT_ID,
    TEACHER_ID,
    TRIPLE_ID,
)


@pytest.fixture
def loan(service):
    """A fresh single-unit loan of the three-volume resource."""
    return service.create_loan(CreateLoanRequest(person_id=STUDENT_ID, resource_id=TRIPLE_ID))


class TestCreateLoan:
    def test_new_loan_is_active_and_due_after_loan_period(self, loan):
        assert loan.id.startswith("loan_")
        assert loan.status == LoanStatus.ACTIVE
        assert loan.stored_status == LoanStatus.ACTIVE
        assert loan.loan_date == FIXED_NOW
        assert loan.due_date == FIXED_NOW + timedelta(days=14)
        assert loan.renewal_count == 0
        assert loan.days_until_due == 14
        assert loan.person_name == "Ana García"
        assert loan.resource_title == "Don Quijote de la Mancha"

    def test_loan_period_depends_on_person_type(self, session, test_config, clock):
        config = test_config.model_copy(update={"teacher_loan_duration_days": 30})
        service = LoanService(session, config=config, clock=clock)

        teacher_loan = service.create_loan(
            CreateLoanRequest(person_id=TEACHER_ID, resource_id=TRIPLE_ID)
        )
        student_loan = service.create_loan(
            CreateLoanRequest(person_id=STUDENT_ID, resource_id=TRIPLE_ID)
        )

        assert teacher_loan.due_date == FIXED_NOW + timedelta(days=30)
        assert student_loan.due_date == FIXED_NOW + timedelta(days=14)

    def test_observations_are_kept(self, service):
        loan = service.create_loan(
            CreateLoanRequest(
                person_id=TEACHER_ID,
                resource_id=MANY_ID,
                quantity=6,
                observations="Salida de campo de 7°",
            )
        )
        assert loan.quantity == 6
        assert loan.observations == "Salida de campo de 7°"

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_quantity_below_one(self, service, quantity):
        with pytest.raises(InvalidQuantity) as exc_info:
            service.create_loan(
                CreateLoanRequest(person_id=STUDENT_ID, resource_id=TRIPLE_ID, quantity=quantity)
            )
        assert exc_info.value.status_code == 400

    def test_quantity_above_person_limit(self, service):
        """Students take at most three units per loan."""
        with pytest.raises(InvalidQuantity, match="limit of 3"):
            service.create_loan(
                CreateLoanRequest(person_id=STUDENT_ID, resource_id=MANY_ID, quantity=4)
            )

    def test_quantity_above_volumes(self, service):
        with pytest.raises(InvalidQuantity, match="volume"):
            service.create_loan(
                CreateLoanRequest(person_id=TEACHER_ID, resource_id=SINGLE_ID, quantity=2)
            )
        assert service.availability_info(SINGLE_ID).available == 1

    def test_damaged_resource_cannot_be_lent(self, service):
        with pytest.raises(ResourceUnavailable, match="damaged"):
            service.create_loan(CreateLoanRequest(person_id=STUDENT_ID, resource_id=DAMAGED_ID))

    def test_unknown_ids(self, service):
        with pytest.raises(PersonNotFound):
            service.create_loan(CreateLoanRequest(person_id="person_x", resource_id=TRIPLE_ID))
        with pytest.raises(ResourceNotFound):
            service.create_loan(CreateLoanRequest(person_id=STUDENT_ID, resource_id="resource_x"))

    def test_refused_create_writes_nothing(self, service):
        service.create_loan(CreateLoanRequest(person_id=STUDENT_ID, resource_id=SINGLE_ID))

        with pytest.raises(ResourceUnavailable):
            service.create_loan(CreateLoanRequest(person_id=TEACHER_ID, resource_id=SINGLE_ID))

        assert service.list_loans().pagination.total == 1
        assert service.can_borrow(TEACHER_ID).active_loans == 0


class TestRenewLoan:
    def test_default_extension(self, service, loan):
        result = service.renew_loan(loan.id)

        assert result.previous_due_date == loan.due_date
        assert result.new_due_date == loan.due_date + timedelta(days=7)
        assert result.loan.due_date == result.new_due_date
        assert result.loan.renewal_count == 1
        assert result.renewals_remaining == 1

    def test_explicit_days(self, service, loan):
        result = service.renew_loan(loan.id, RenewLoanRequest(additional_days=3))
        assert result.new_due_date == loan.due_date + timedelta(days=3)

    def test_renewal_is_recorded(self, service, session, loan, clock):
        clock.advance(days=2)
        service.renew_loan(loan.id, RenewLoanRequest(observations="Needs it for the exam"))

        renewal = session.execute(
            select(LoanRenewal).where(LoanRenewal.loan_id == loan.id)
        ).scalar_one()
        assert renewal.renewed_at == FIXED_NOW + timedelta(days=2)
        assert renewal.previous_due_date == loan.due_date
        assert renewal.observations == "Needs it for the exam"

    def test_renewal_bound(self, service, session, loan, clock):
        """Renew fails once the count reaches the maximum, however much time has passed."""
        service.renew_loan(loan.id)
        last = service.renew_loan(loan.id)
        assert last.renewals_remaining == 0

        clock.advance(days=365)
        with pytest.raises(MaxRenewalsReached):
            service.renew_loan(loan.id)

        unchanged = service.get_loan(loan.id)
        assert unchanged.renewal_count == 2
        assert unchanged.due_date == last.new_due_date
        count = session.execute(select(func.count()).select_from(LoanRenewal)).scalar()
        assert count == 2

    def test_overdue_loan_can_be_renewed(self, service, loan, clock):
        clock.advance(days=20)
        assert service.get_loan(loan.id).status == LoanStatus.OVERDUE

        result = service.renew_loan(loan.id, RenewLoanRequest(additional_days=10))

        assert result.loan.status == LoanStatus.ACTIVE
        assert result.loan.is_overdue is False

    def test_renewals_disabled(self, session, test_config, clock, loan):
        strict = test_config.model_copy(update={"allow_renewals": False})
        service = LoanService(session, config=strict, clock=clock)

        with pytest.raises(RenewalsDisabled):
            service.renew_loan(loan.id)

    def test_unknown_loan(self, service):
        with pytest.raises(LoanNotFound):
            service.renew_loan("loan_doesnotexist")


class TestReturnLoan:
    def test_return_on_time(self, service, loan, clock):
        clock.advance(days=5)

        result = service.return_loan(loan.id, ReturnLoanRequest(return_observations="Todo bien"))

        assert result.was_overdue is False
        assert result.days_overdue == 0
        assert result.message == "Loan returned on time"
        assert result.penalties is None
        assert result.loan.status == LoanStatus.RETURNED
        assert result.loan.returned_date == FIXED_NOW + timedelta(days=5)
        assert result.loan.return_observations == "Todo bien"
        assert result.loan.days_until_due is None

    def test_late_return(self, service, loan, clock):
        clock.advance(days=19)

        result = service.return_loan(loan.id)

        assert result.was_overdue is True
        assert result.days_overdue == 5
        assert result.message == "Loan returned 5 day(s) late"

    def test_double_return_fails_and_changes_nothing(self, service, loan, clock):
        first = service.return_loan(loan.id)
        clock.advance(days=3)

        with pytest.raises(LoanAlreadyReturned) as exc_info:
            service.return_loan(loan.id, ReturnLoanRequest(return_observations="again"))

        assert exc_info.value.status_code == 409
        after = service.get_loan(loan.id)
        assert after.returned_date == first.loan.returned_date
        assert after.return_observations is None
        assert service.availability_info(TRIPLE_ID).available == 3

    def test_condition_report_updates_resource(self, service, session, loan, clock):
        clock.advance(days=3)
        result = service.return_loan(
            loan.id, ReturnLoanRequest(resource_condition=ResourceState.DAMAGED)
        )

        assert result.resource_condition_changed is True
        assert result.loan.resource_condition == "damaged"

        session.expire_all()
        info = service.availability_info(TRIPLE_ID)
        assert info.state == ResourceState.DAMAGED
        assert info.lendable is False
        assert session.get(Resource, TRIPLE_ID).updated_at == FIXED_NOW + timedelta(days=3)

    def test_same_condition_is_not_a_change(self, service, loan):
        result = service.return_loan(loan.id, ReturnLoanRequest(resource_condition=ResourceState.GOOD))
        assert result.resource_condition_changed is False

    def test_penalty_hook(self, session, test_config, clock, loan):
        calls = []

        def late_fee(view, days_overdue):
            calls.append((view.id, days_overdue))
            if not days_overdue:
                return None
            return PenaltyInfo(has_late_return_penalty=True, penalty_days=days_overdue)

        service = LoanService(session, config=test_config, penalty_hook=late_fee, clock=clock)
        clock.advance(days=17)

        result = service.return_loan(loan.id)

        assert calls == [(loan.id, 3)]
        assert result.penalties.has_late_return_penalty is True
        assert result.penalties.penalty_days == 3


class TestMarkAsLost:
    @pytest.mark.parametrize("observations", ["", "   "])
    def test_observations_required(self, service, loan, observations):
        with pytest.raises(ObservationsRequired) as exc_info:
            service.mark_as_lost(loan.id, MarkLostRequest(observations=observations))

        assert exc_info.value.status_code == 400
        assert service.get_loan(loan.id).status == LoanStatus.ACTIVE

    def test_lost_loan_keeps_its_units(self, service, loan, clock):
        """Empty observations are refused; real ones close the loan and the unit stays out."""
        with pytest.raises(ObservationsRequired):
            service.mark_as_lost(loan.id, MarkLostRequest(observations=""))

        clock.advance(days=2)
        lost = service.mark_as_lost(loan.id, MarkLostRequest(observations="left on bus"))

        assert lost.status == LoanStatus.LOST
        assert lost.lost_date == FIXED_NOW + timedelta(days=2)
        assert lost.observations == "left on bus"
        assert service.availability_info(TRIPLE_ID).available == 2

        clock.advance(days=60)
        assert service.availability_info(TRIPLE_ID).available == 2
        assert service.get_loan(loan.id).status == LoanStatus.LOST

    def test_overdue_loan_can_be_lost(self, service, loan, clock):
        clock.advance(days=40)
        lost = service.mark_as_lost(loan.id, MarkLostRequest(observations="Never came back"))
        assert lost.status == LoanStatus.LOST
        assert lost.is_overdue is False


class TestTerminalStates:
    def test_lost_loan_cannot_be_returned(self, service, loan):
        service.mark_as_lost(loan.id, MarkLostRequest(observations="Stolen"))

        with pytest.raises(LoanNotActive) as exc_info:
            service.return_loan(loan.id)

        assert exc_info.type is LoanNotActive
        assert service.availability_info(TRIPLE_ID).available == 2

    def test_returned_loan_cannot_be_renewed_or_lost(self, service, loan):
        service.return_loan(loan.id)

        with pytest.raises(LoanAlreadyReturned):
            service.renew_loan(loan.id)
        with pytest.raises(LoanAlreadyReturned):
            service.mark_as_lost(loan.id, MarkLostRequest(observations="Too late"))

    def test_lost_loan_cannot_be_renewed(self, service, loan):
        service.mark_as_lost(loan.id, MarkLostRequest(observations="Stolen"))

        with pytest.raises(LoanNotActive):
            service.renew_loan(loan.id)
