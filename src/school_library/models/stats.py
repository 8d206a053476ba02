"""Loan statistics models."""

from datetime import datetime

from pydantic import Field

from .base import WireModel


class StatusCounts(WireModel):
    total: int = 0
    active: int = Field(default=0, description="Stored active, overdue included")
    overdue: int = Field(default=0, description="Active loans past their due date")
    returned: int = 0
    lost: int = 0


class PeriodActivity(WireModel):
    new_loans: int = 0
    returns: int = 0
    renewals: int = 0


class ResourceRanking(WireModel):
    resource_id: str
    title: str | None = None
    borrow_count: int


class BorrowerRanking(WireModel):
    person_id: str
    full_name: str | None = None
    borrow_count: int
    active_loans: int = 0
    overdue_loans: int = 0


class StatusShare(WireModel):
    status: str
    count: int
    percentage: float


class OverdueAging(WireModel):
    less_than_one_day: int = 0
    one_to_seven_days: int = 0
    eight_to_fourteen_days: int = 0
    fifteen_plus_days: int = 0


class LoanStatistics(WireModel):
    """Aggregated loan statistics; may trail concurrent writes slightly."""

    generated_at: datetime
    counts: StatusCounts
    today: PeriodActivity
    this_week: PeriodActivity
    this_month: PeriodActivity
    most_borrowed_resources: list[ResourceRanking] = Field(default_factory=list)
    top_borrowers: list[BorrowerRanking] = Field(default_factory=list)
    status_distribution: list[StatusShare] = Field(default_factory=list)
    average_loan_duration_days: float = 0.0
    overdue_aging: OverdueAging = Field(default_factory=OverdueAging)
