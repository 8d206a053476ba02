"""
Loan repository: storage and queries for loan records.

This repository owns every SQL statement that reads or writes the
``loans`` and ``loan_renewals`` tables except the aggregate reporting
queries (see ``school_library.loans.statistics``). Business rules live in
the loans package; this layer only knows how to find and persist rows.

Derived status filters translate to SQL over ``(status, due_date, now)``:
- overdue: stored active and ``due_date < now``
- active:  stored active and ``due_date >= now``
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import and_, asc, desc, func, or_, select
from sqlalchemy.orm import Session, joinedload

from ..loans import overdue
from ..models.loan import LoanFilters, LoanStatus, LoanView
from .repository import PaginatedResponse, PaginationMeta, PaginationParams
from .schema import Loan as LoanDB
from .schema import LoanRenewal as RenewalDB
from .schema import LoanStatusEnum
from .schema import Person as PersonDB
from .schema import Resource as ResourceDB
from .session import safe_query

logger = logging.getLogger(__name__)

SORT_COLUMNS = {
    "loan_date": LoanDB.loan_date,
    "due_date": LoanDB.due_date,
    "returned_date": LoanDB.returned_date,
    "status": LoanDB.status,
}


def generate_loan_id() -> str:
    return f"loan_{uuid.uuid4().hex[:16]}"


def loan_to_view(loan: LoanDB, now: datetime, due_soon_days: int) -> LoanView:
    """Convert a loan row to a LoanView with derived fields as of ``now``."""
    stored = LoanStatus(loan.status.value)
    active = stored == LoanStatus.ACTIVE
    person = loan.person
    resource = loan.resource

    return LoanView(
        id=loan.id,
        person_id=loan.person_id,
        resource_id=loan.resource_id,
        quantity=loan.quantity,
        loan_date=loan.loan_date,
        due_date=loan.due_date,
        returned_date=loan.returned_date,
        lost_date=loan.lost_date,
        status=overdue.derived_status(loan, now),
        stored_status=stored,
        observations=loan.observations,
        return_observations=loan.return_observations,
        resource_condition=loan.resource_condition,
        renewal_count=loan.renewal_count,
        created_at=loan.created_at,
        updated_at=loan.updated_at,
        is_overdue=overdue.is_overdue(loan, now),
        days_overdue=overdue.days_overdue(loan, now),
        days_until_due=overdue.days_until_due(loan, now) if active else None,
        is_due_soon=overdue.is_due_soon(loan, now, due_soon_days),
        person_name=f"{person.first_name} {person.last_name}" if person is not None else None,
        resource_title=resource.title if resource is not None else None,
    )


class LoanRepository:
    """
    Repository for loan rows.

    Reads that feed mutations (``get_for_update``) lock the row on
    databases that support ``SELECT ... FOR UPDATE``; on SQLite the
    IMMEDIATE transaction already serializes writers.
    """

    def __init__(
        self,
        session: Session,
        clock: Callable[[], datetime] = datetime.now,
        due_soon_days: int = 3,
    ):
        self.session = session
        self.clock = clock
        self.due_soon_days = due_soon_days

    # === Single loans ===

    def get(self, loan_id: str) -> LoanDB | None:
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(LoanDB)
                .where(LoanDB.id == loan_id)
                .options(joinedload(LoanDB.person), joinedload(LoanDB.resource))
            )
            .unique()
            .scalar_one_or_none(),
            "Failed to get loan",
        )

    def get_for_update(self, loan_id: str) -> LoanDB | None:
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(LoanDB).where(LoanDB.id == loan_id).with_for_update()
            ).scalar_one_or_none(),
            "Failed to get loan for update",
        )

    def add(self, loan: LoanDB) -> LoanDB:
        self.session.add(loan)
        self.flush()
        return loan

    def flush(self) -> None:
        safe_query(self.session, lambda s: s.flush(), "Failed to write loan")

    def add_renewal(self, renewal: RenewalDB) -> None:
        self.session.add(renewal)
        safe_query(self.session, lambda s: s.flush(), "Failed to write loan renewal")

    def to_view(self, loan: LoanDB, now: datetime | None = None) -> LoanView:
        return loan_to_view(loan, now or self.clock(), self.due_soon_days)

    # === Per-person queries used by eligibility ===

    def active_for_person(self, person_id: str) -> list[LoanDB]:
        return list(
            safe_query(
                self.session,
                lambda s: s.execute(
                    select(LoanDB)
                    .where(
                        LoanDB.person_id == person_id,
                        LoanDB.status == LoanStatusEnum.ACTIVE,
                    )
                    .options(joinedload(LoanDB.resource))
                    .order_by(LoanDB.due_date)
                )
                .unique()
                .scalars()
                .all(),
                "Failed to get active loans for person",
            )
        )

    # === Listing ===

    def search(self, filters: LoanFilters) -> PaginatedResponse[LoanView]:
        """List loans matching ``filters``, newest first by default."""
        now = self.clock()
        query = select(LoanDB)

        if filters.person_id:
            query = query.where(LoanDB.person_id == filters.person_id)
        if filters.resource_id:
            query = query.where(LoanDB.resource_id == filters.resource_id)

        if filters.status == LoanStatus.OVERDUE:
            query = query.where(LoanDB.status == LoanStatusEnum.ACTIVE, LoanDB.due_date < now)
        elif filters.status == LoanStatus.ACTIVE:
            query = query.where(LoanDB.status == LoanStatusEnum.ACTIVE, LoanDB.due_date >= now)
        elif filters.status is not None:
            query = query.where(LoanDB.status == LoanStatusEnum(filters.status.value))

        if filters.is_overdue is True:
            query = query.where(LoanDB.status == LoanStatusEnum.ACTIVE, LoanDB.due_date < now)
        elif filters.is_overdue is False:
            query = query.where(
                or_(LoanDB.status != LoanStatusEnum.ACTIVE, LoanDB.due_date >= now)
            )

        if filters.date_from:
            query = query.where(LoanDB.loan_date >= filters.date_from)
        if filters.date_to:
            query = query.where(LoanDB.loan_date <= filters.date_to)

        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            query = (
                query.join(PersonDB, PersonDB.id == LoanDB.person_id)
                .join(ResourceDB, ResourceDB.id == LoanDB.resource_id)
                .where(
                    or_(
                        PersonDB.first_name.ilike(pattern),
                        PersonDB.last_name.ilike(pattern),
                        ResourceDB.title.ilike(pattern),
                    )
                )
            )

        sort_column = SORT_COLUMNS[filters.sort_by]
        order = desc if filters.sort_order == "desc" else asc
        query = query.order_by(order(sort_column), asc(LoanDB.id))

        return self._paginate(
            query, PaginationParams(page=filters.page, limit=filters.limit), now
        )

    def overdue(self, pagination: PaginationParams | None = None) -> PaginatedResponse[LoanView]:
        """Overdue loans, most overdue first."""
        now = self.clock()
        query = (
            select(LoanDB)
            .where(and_(LoanDB.status == LoanStatusEnum.ACTIVE, LoanDB.due_date < now))
            .order_by(asc(LoanDB.due_date), asc(LoanDB.id))
        )
        return self._paginate(query, pagination or PaginationParams(), now)

    def _paginate(
        self, query, pagination: PaginationParams, now: datetime
    ) -> PaginatedResponse[LoanView]:
        pagination.validate_params()

        count_query = select(func.count()).select_from(query.subquery())
        total = (
            safe_query(
                self.session,
                lambda s: s.execute(count_query).scalar(),
                "Failed to count total for pagination",
            )
            or 0
        )

        page_query = (
            query.options(joinedload(LoanDB.person), joinedload(LoanDB.resource))
            .offset(pagination.offset)
            .limit(pagination.limit)
        )
        rows = safe_query(
            self.session,
            lambda s: s.execute(page_query).unique().scalars().all(),
            "Failed to get paginated loans",
        )

        return PaginatedResponse[LoanView](
            data=[loan_to_view(row, now, self.due_soon_days) for row in rows],
            pagination=PaginationMeta.build(total, pagination),
        )
