"""
Loan models for the School Library loan service.

These models are the language shared by the service layer, the REST API
and the MCP tools:
- LoanRecord: a loan exactly as stored
- LoanView: a stored loan plus the read-time derived fields (overdue etc.)
- *Request models: inputs of the loan operations
- *Response / *Result models: outputs of the loan operations

Stored status is one of active/returned/lost. ``overdue`` only ever
appears in ``LoanView.status``, computed from the due date at read time.
"""

from datetime import datetime
from enum import Enum

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_snake

from .base import WireModel
from .catalog import ResourceCondition, ResourceState


class LoanStatus(str, Enum):
    """Loan status as exposed to clients (stored or derived)."""

    ACTIVE = "active"
    RETURNED = "returned"
    OVERDUE = "overdue"
    LOST = "lost"


class LoanRecord(WireModel):
    """A loan as stored in the database."""

    id: str = Field(..., description="Unique loan identifier", pattern=r"^loan_[a-zA-Z0-9]+$")
    person_id: str = Field(..., description="Borrowing person")
    resource_id: str = Field(..., description="Borrowed resource")
    quantity: int = Field(..., ge=1, description="Units taken by this loan")
    loan_date: datetime
    due_date: datetime
    returned_date: datetime | None = None
    lost_date: datetime | None = None
    status: LoanStatus = Field(..., description="Stored status (never 'overdue')")
    observations: str | None = None
    return_observations: str | None = None
    resource_condition: str | None = None
    renewal_count: int = Field(default=0, ge=0)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("status", mode="before")
    @classmethod
    def coerce_stored_status(cls, v):
        # The ORM hands us its own enum; compare by value
        return getattr(v, "value", v)

    model_config = ConfigDict(from_attributes=True)


class LoanView(LoanRecord):
    """
    A loan with its read-time derived fields.

    ``status`` is the derived status (``overdue`` for active loans past
    their due date); ``stored_status`` keeps the persisted value.
    """

    stored_status: LoanStatus
    is_overdue: bool = False
    days_overdue: int = 0
    days_until_due: int | None = Field(
        default=None, description="Days left until due; negative once overdue, None when closed"
    )
    is_due_soon: bool = False
    person_name: str | None = None
    resource_title: str | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "loan_3f9a2c1d7e5b4a60",
                "personId": "person_ana001",
                "resourceId": "resource_quijote",
                "quantity": 1,
                "loanDate": "2024-01-01T09:00:00",
                "dueDate": "2024-01-16T09:00:00",
                "status": "overdue",
                "storedStatus": "active",
                "renewalCount": 0,
                "isOverdue": True,
                "daysOverdue": 4,
                "daysUntilDue": -4,
            }
        },
    )


# =============================================================================
# REQUESTS
# =============================================================================


class CreateLoanRequest(WireModel):
    """Input of the create-loan operation."""

    person_id: str = Field(..., min_length=1, description="Person borrowing the resource")
    resource_id: str = Field(..., min_length=1, description="Resource being borrowed")
    quantity: int = Field(default=1, description="Units to borrow")
    observations: str | None = Field(default=None, max_length=500)


class RenewLoanRequest(WireModel):
    """Input of the renew operation."""

    additional_days: int | None = Field(
        default=None,
        ge=1,
        le=365,
        description="Days to add; defaults to the configured renewal extension",
    )
    observations: str | None = Field(default=None, max_length=500)


class ReturnLoanRequest(WireModel):
    """Input of the return operation."""

    return_observations: str | None = Field(default=None, max_length=500)
    resource_condition: ResourceCondition | None = Field(
        default=None, description="Condition of the resource as handed back"
    )


class MarkLostRequest(WireModel):
    """Input of the mark-as-lost operation. Observations are mandatory."""

    observations: str = Field(default="", max_length=500)


class LoanFilters(WireModel):
    """Query filters for listing loans."""

    person_id: str | None = None
    resource_id: str | None = None
    status: LoanStatus | None = None
    date_from: datetime | None = Field(default=None, description="Loan date lower bound")
    date_to: datetime | None = Field(default=None, description="Loan date upper bound")
    is_overdue: bool | None = None
    search: str | None = Field(default=None, description="Matches person name or resource title")
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    sort_by: str = Field(default="loan_date", pattern=r"^(loan_date|due_date|returned_date|status)$")
    sort_order: str = Field(default="desc", pattern=r"^(asc|desc)$")

    @field_validator("sort_by", mode="before")
    @classmethod
    def normalize_sort_field(cls, v):
        # Clients send camelCase field names (dueDate)
        return to_snake(v) if isinstance(v, str) else v


# =============================================================================
# RESULTS
# =============================================================================


class BorrowRestrictions(WireModel):
    has_overdue_loans: bool = False
    has_reached_limit: bool = False
    is_person_active: bool = True


class CurrentLoanSummary(WireModel):
    id: str
    resource_id: str
    resource_title: str | None = None
    due_date: datetime
    is_overdue: bool
    days_overdue: int = 0


class UpcomingDueDate(WireModel):
    id: str
    resource_id: str
    resource_title: str | None = None
    due_date: datetime
    days_until_due: int


class CanBorrowResult(WireModel):
    """Eligibility of a person to open a new loan."""

    can_borrow: bool
    reason: str | None = None
    active_loans: int = 0
    max_loans: int = 0
    overdue_loans: int = 0
    restrictions: BorrowRestrictions = Field(default_factory=BorrowRestrictions)
    current_loans: list[CurrentLoanSummary] = Field(default_factory=list)
    upcoming_due_dates: list[UpcomingDueDate] = Field(default_factory=list)


class PenaltyInfo(WireModel):
    """Result of a penalty hook; no penalty formula ships with the service."""

    has_late_return_penalty: bool
    penalty_days: int | None = None
    penalty_amount: float | None = None


class ReturnLoanResponse(WireModel):
    loan: LoanView
    was_overdue: bool
    days_overdue: int
    resource_condition_changed: bool = False
    message: str
    penalties: PenaltyInfo | None = None


class RenewLoanResponse(WireModel):
    loan: LoanView
    previous_due_date: datetime
    new_due_date: datetime
    renewals_remaining: int


class AvailabilityInfo(WireModel):
    """Stock of a single resource."""

    resource_id: str
    volumes: int
    committed_units: int
    available: int
    state: ResourceState
    lendable: bool


class LoanValidationResult(WireModel):
    """Dry run of a create-loan request; nothing is reserved."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    can_borrow: CanBorrowResult | None = None
    availability: AvailabilityInfo | None = None
