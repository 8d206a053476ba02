"""
Tests for borrowing eligibility.

The advisory check and loan creation share one evaluation, so every
refusal here is also asserted against create_loan.
"""

import pytest

from school_library.loans.eligibility import (
    REASON_INACTIVE,
    REASON_MAX_LOANS,
    REASON_OVERDUE,
)
from school_library.loans.errors import PersonNotEligible, PersonNotFound
from school_library.loans.service import LoanService
from school_library.models.loan import CreateLoanRequest

from .conftest import INACTIVE_ID, MANY_ID, STUDENT_ID, TRIPLE_ID


def borrow(service, person_id=STUDENT_ID, resource_id=MANY_ID, quantity=1):
    return service.create_loan(
        CreateLoanRequest(person_id=person_id, resource_id=resource_id, quantity=quantity)
    )


class TestCanBorrow:
    def test_new_person_can_borrow(self, service):
        result = service.can_borrow(STUDENT_ID)

        assert result.can_borrow is True
        assert result.reason is None
        assert result.active_loans == 0
        assert result.max_loans == 5
        assert result.overdue_loans == 0
        assert result.current_loans == []
        assert result.restrictions.is_person_active is True

    def test_unknown_person(self, service):
        with pytest.raises(PersonNotFound):
            service.can_borrow("person_nobody")

    def test_inactive_person(self, service):
        result = service.can_borrow(INACTIVE_ID)

        assert result.can_borrow is False
        assert result.reason == REASON_INACTIVE
        assert result.restrictions.is_person_active is False

    def test_current_loans_are_listed(self, service):
        loan = borrow(service, resource_id=TRIPLE_ID)

        result = service.can_borrow(STUDENT_ID)

        assert result.can_borrow is True
        assert result.active_loans == 1
        assert [current.id for current in result.current_loans] == [loan.id]
        assert result.current_loans[0].resource_title == "Don Quijote de la Mancha"
        assert result.current_loans[0].is_overdue is False


class TestMaxLoans:
    def test_sixth_loan_refused(self, service):
        """A person holding the maximum of five loans cannot open a sixth, advisory or real."""
        for _ in range(5):
            borrow(service)

        result = service.can_borrow(STUDENT_ID)
        assert result.can_borrow is False
        assert result.reason == REASON_MAX_LOANS
        assert result.active_loans == 5
        assert result.restrictions.has_reached_limit is True

        with pytest.raises(PersonNotEligible) as exc_info:
            borrow(service)

        assert exc_info.value.status_code == 409
        assert exc_info.value.result.reason == REASON_MAX_LOANS
        assert service.availability_info(MANY_ID).available == 5

    def test_returning_a_loan_lifts_the_limit(self, service):
        loans = [borrow(service) for _ in range(5)]
        service.return_loan(loans[0].id)

        assert service.can_borrow(STUDENT_ID).can_borrow is True
        borrow(service)


class TestOverdueBlocking:
    def test_overdue_loan_blocks_borrowing(self, service, clock):
        loan = borrow(service)
        clock.advance(days=15)

        result = service.can_borrow(STUDENT_ID)

        assert result.can_borrow is False
        assert result.reason == REASON_OVERDUE
        assert result.overdue_loans == 1
        assert result.current_loans[0].id == loan.id
        assert result.current_loans[0].is_overdue is True
        assert result.current_loans[0].days_overdue == 1

        with pytest.raises(PersonNotEligible, match=REASON_OVERDUE):
            borrow(service)

    def test_overdue_allowed_when_policy_permits(self, session, test_config, clock):
        lenient = test_config.model_copy(update={"block_borrowing_when_overdue": False})
        service = LoanService(session, config=lenient, clock=clock)
        borrow(service)
        clock.advance(days=20)

        result = service.can_borrow(STUDENT_ID)

        assert result.can_borrow is True
        assert result.overdue_loans == 1
        assert result.restrictions.has_overdue_loans is True
        borrow(service)

    def test_renewal_clears_the_block(self, service, clock):
        """Overdue is derived, so pushing the due date back unblocks the person."""
        loan = borrow(service)
        clock.advance(days=15)
        assert service.can_borrow(STUDENT_ID).can_borrow is False

        service.renew_loan(loan.id)

        assert service.can_borrow(STUDENT_ID).can_borrow is True

    def test_limit_reported_before_overdue(self, service, clock):
        for _ in range(5):
            borrow(service)
        clock.advance(days=30)

        result = service.can_borrow(STUDENT_ID)

        assert result.reason == REASON_MAX_LOANS
        assert result.restrictions.has_overdue_loans is True


class TestUpcomingDueDates:
    def test_loans_due_soon(self, service, clock):
        loan = borrow(service)
        clock.advance(days=12)

        result = service.can_borrow(STUDENT_ID)

        assert result.can_borrow is True
        assert len(result.upcoming_due_dates) == 1
        assert result.upcoming_due_dates[0].id == loan.id
        assert result.upcoming_due_dates[0].days_until_due == 2

    def test_nothing_due_soon_early_in_the_loan(self, service):
        borrow(service)
        assert service.can_borrow(STUDENT_ID).upcoming_due_dates == []
