"""
Loan statistics.

Read-only aggregates over the loan tables. Each figure is its own query,
so a summary taken while loans are being written may mix slightly
different instants; callers accept that in exchange for never blocking
writers.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import and_, case, desc, func, select
from sqlalchemy.orm import Session

from ..database.schema import Loan as LoanDB
from ..database.schema import LoanRenewal as RenewalDB
from ..database.schema import LoanStatusEnum
from ..database.schema import Person as PersonDB
from ..database.schema import Resource as ResourceDB
from ..database.session import safe_query
from ..models.loan import LoanStatus
from ..models.stats import (
    BorrowerRanking,
    LoanStatistics,
    OverdueAging,
    PeriodActivity,
    ResourceRanking,
    StatusCounts,
    StatusShare,
)
from .overdue import ONE_DAY

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 5


def period_starts(now: datetime) -> dict[str, datetime]:
    """Start of today, of the current week (Monday) and of the current month."""
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return {
        "today": today,
        "this_week": today - timedelta(days=today.weekday()),
        "this_month": today.replace(day=1),
    }


class StatisticsAggregator:
    def __init__(
        self,
        session: Session,
        clock: Callable[[], datetime] = datetime.now,
        top_n: int = DEFAULT_TOP_N,
    ):
        self.session = session
        self.clock = clock
        self.top_n = top_n

    def _scalar(self, query, error_msg: str) -> int:
        return safe_query(self.session, lambda s: s.execute(query).scalar(), error_msg) or 0

    def summary(self, now: datetime | None = None) -> LoanStatistics:
        now = now or self.clock()
        counts = self.status_counts(now)

        periods = {name: self.period_activity(start, now) for name, start in period_starts(now).items()}

        stats = LoanStatistics(
            generated_at=now,
            counts=counts,
            today=periods["today"],
            this_week=periods["this_week"],
            this_month=periods["this_month"],
            most_borrowed_resources=self.most_borrowed_resources(),
            top_borrowers=self.top_borrowers(now),
            status_distribution=self.status_distribution(counts),
            average_loan_duration_days=self.average_loan_duration_days(),
            overdue_aging=self.overdue_aging(now),
        )
        logger.debug("Loan statistics computed: total=%d overdue=%d", counts.total, counts.overdue)
        return stats

    def status_counts(self, now: datetime) -> StatusCounts:
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(LoanDB.status, func.count()).group_by(LoanDB.status)
            ).all(),
            "Failed to count loans by status",
        )
        by_status = {status.value: count for status, count in rows}

        overdue = self._scalar(
            select(func.count())
            .select_from(LoanDB)
            .where(LoanDB.status == LoanStatusEnum.ACTIVE, LoanDB.due_date < now),
            "Failed to count overdue loans",
        )

        return StatusCounts(
            total=sum(by_status.values()),
            active=by_status.get(LoanStatusEnum.ACTIVE.value, 0),
            overdue=overdue,
            returned=by_status.get(LoanStatusEnum.RETURNED.value, 0),
            lost=by_status.get(LoanStatusEnum.LOST.value, 0),
        )

    def period_activity(self, start: datetime, end: datetime) -> PeriodActivity:
        return PeriodActivity(
            new_loans=self._scalar(
                select(func.count())
                .select_from(LoanDB)
                .where(LoanDB.loan_date >= start, LoanDB.loan_date <= end),
                "Failed to count new loans",
            ),
            returns=self._scalar(
                select(func.count())
                .select_from(LoanDB)
                .where(LoanDB.returned_date >= start, LoanDB.returned_date <= end),
                "Failed to count returns",
            ),
            renewals=self._scalar(
                select(func.count())
                .select_from(RenewalDB)
                .where(RenewalDB.renewed_at >= start, RenewalDB.renewed_at <= end),
                "Failed to count renewals",
            ),
        )

    def most_borrowed_resources(self) -> list[ResourceRanking]:
        borrow_count = func.count(LoanDB.id).label("borrow_count")
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(LoanDB.resource_id, ResourceDB.title, borrow_count)
                .join(ResourceDB, ResourceDB.id == LoanDB.resource_id)
                .group_by(LoanDB.resource_id, ResourceDB.title)
                .order_by(desc("borrow_count"), LoanDB.resource_id)
                .limit(self.top_n)
            ).all(),
            "Failed to rank resources",
        )
        return [
            ResourceRanking(resource_id=row.resource_id, title=row.title, borrow_count=row.borrow_count)
            for row in rows
        ]

    def top_borrowers(self, now: datetime) -> list[BorrowerRanking]:
        is_active = LoanDB.status == LoanStatusEnum.ACTIVE
        borrow_count = func.count(LoanDB.id).label("borrow_count")
        active_loans = func.sum(case((is_active, 1), else_=0)).label("active_loans")
        overdue_loans = func.sum(
            case((and_(is_active, LoanDB.due_date < now), 1), else_=0)
        ).label("overdue_loans")

        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(
                    LoanDB.person_id,
                    PersonDB.first_name,
                    PersonDB.last_name,
                    borrow_count,
                    active_loans,
                    overdue_loans,
                )
                .join(PersonDB, PersonDB.id == LoanDB.person_id)
                .group_by(LoanDB.person_id, PersonDB.first_name, PersonDB.last_name)
                .order_by(desc("borrow_count"), LoanDB.person_id)
                .limit(self.top_n)
            ).all(),
            "Failed to rank borrowers",
        )
        return [
            BorrowerRanking(
                person_id=row.person_id,
                full_name=f"{row.first_name} {row.last_name}",
                borrow_count=row.borrow_count,
                active_loans=row.active_loans or 0,
                overdue_loans=row.overdue_loans or 0,
            )
            for row in rows
        ]

    @staticmethod
    def status_distribution(counts: StatusCounts) -> list[StatusShare]:
        """Share of each client-visible status; active here excludes overdue."""
        shares = {
            LoanStatus.ACTIVE: counts.active - counts.overdue,
            LoanStatus.OVERDUE: counts.overdue,
            LoanStatus.RETURNED: counts.returned,
            LoanStatus.LOST: counts.lost,
        }
        return [
            StatusShare(
                status=status.value,
                count=count,
                percentage=round(count / counts.total * 100, 1) if counts.total else 0.0,
            )
            for status, count in shares.items()
        ]

    def average_loan_duration_days(self) -> float:
        rows = safe_query(
            self.session,
            lambda s: s.execute(
                select(LoanDB.loan_date, LoanDB.returned_date).where(
                    LoanDB.status == LoanStatusEnum.RETURNED
                )
            ).all(),
            "Failed to read returned loans",
        )
        if not rows:
            return 0.0
        total = sum(((row.returned_date - row.loan_date) / ONE_DAY for row in rows), 0.0)
        return round(total / len(rows), 1)

    def overdue_aging(self, now: datetime) -> OverdueAging:
        due_dates = safe_query(
            self.session,
            lambda s: s.execute(
                select(LoanDB.due_date).where(
                    LoanDB.status == LoanStatusEnum.ACTIVE, LoanDB.due_date < now
                )
            )
            .scalars()
            .all(),
            "Failed to read overdue loans",
        )

        aging = OverdueAging()
        for due in due_dates:
            days = (now - due) // ONE_DAY
            if days < 1:
                aging.less_than_one_day += 1
            elif days <= 7:
                aging.one_to_seven_days += 1
            elif days <= 14:
                aging.eight_to_fourteen_days += 1
            else:
                aging.fifteen_plus_days += 1
        return aging
