"""
Overdue calculations.

Pure functions of ``(stored status, due date, now)``. Nothing here touches
the database or mutates a loan: a loan slides into and out of the overdue
view purely as time passes, so there is no stored flag to go stale.

Any object with ``status`` and ``due_date`` attributes works (ORM rows,
LoanRecord, LoanView).
"""

from datetime import datetime, timedelta
from typing import Any

from ..models.loan import LoanStatus

ONE_DAY = timedelta(days=1)


def _stored_status(loan: Any) -> str:
    status = loan.status
    return getattr(status, "value", status)


def is_active(loan: Any) -> bool:
    return _stored_status(loan) == LoanStatus.ACTIVE.value


def is_overdue(loan: Any, now: datetime) -> bool:
    """Active and past its due date."""
    return is_active(loan) and now > loan.due_date


def days_overdue(loan: Any, now: datetime) -> int:
    """Whole days past the due date; 0 when not overdue."""
    if not is_overdue(loan, now):
        return 0
    return max(0, (now - loan.due_date) // ONE_DAY)


def days_until_due(loan: Any, now: datetime) -> int:
    """Whole days until the due date, floored; negative once overdue."""
    return (loan.due_date - now) // ONE_DAY


def is_due_soon(loan: Any, now: datetime, within_days: int) -> bool:
    """Active, not yet overdue, and due within ``within_days``."""
    if not is_active(loan) or is_overdue(loan, now):
        return False
    return loan.due_date - now <= timedelta(days=within_days)


def derived_status(loan: Any, now: datetime) -> LoanStatus:
    """Status as shown to clients: ``overdue`` replaces ``active`` past due."""
    if is_overdue(loan, now):
        return LoanStatus.OVERDUE
    return LoanStatus(_stored_status(loan))
