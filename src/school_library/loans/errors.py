"""
Loan error taxonomy.

Every business-rule failure is one of these exceptions. The REST layer
maps ``status_code`` and ``kind`` onto its response envelope and the MCP
tools turn them into ``isError`` payloads; nothing is coerced to a default.

- 400: the request itself is wrong (InvalidLoanRequest and subclasses)
- 404: an id does not resolve (LoanNotFound, PersonNotFound, ResourceNotFound)
- 409: the request is well formed but the current state forbids it
"""

from typing import TYPE_CHECKING

from ..database.exceptions import NotFoundError, RepositoryException

if TYPE_CHECKING:
    from ..models.loan import CanBorrowResult


class LoanError(RepositoryException):
    """Base class for loan business-rule failures."""

    kind = "loan_error"
    status_code = 409


# --- 400: validation -------------------------------------------------------


class InvalidLoanRequest(LoanError):
    kind = "invalid_request"
    status_code = 400


class InvalidQuantity(InvalidLoanRequest):
    kind = "invalid_quantity"


class ObservationsRequired(InvalidLoanRequest):
    kind = "observations_required"


# --- 404: not found --------------------------------------------------------


class LoanNotFound(NotFoundError):
    kind = "loan_not_found"


class PersonNotFound(NotFoundError):
    kind = "person_not_found"


class ResourceNotFound(NotFoundError):
    kind = "resource_not_found"


# --- 409: eligibility ------------------------------------------------------


class PersonNotEligible(LoanError):
    """The person may not open a new loan right now."""

    kind = "person_not_eligible"

    def __init__(self, message: str, result: "CanBorrowResult | None" = None):
        super().__init__(message)
        self.result = result


class ResourceUnavailable(LoanError):
    """The resource cannot be lent (no free units or not in a lendable state)."""

    kind = "resource_unavailable"


class InsufficientStock(ResourceUnavailable):
    """Fewer free units than requested at the instant of reservation."""

    kind = "insufficient_stock"

    def __init__(self, resource_id: str, requested: int, available: int):
        super().__init__(
            f"Resource {resource_id} has {available} unit(s) available, {requested} requested"
        )
        self.resource_id = resource_id
        self.requested = requested
        self.available = available


# --- 409: state ------------------------------------------------------------


class LoanNotActive(LoanError):
    kind = "loan_not_active"


class LoanAlreadyReturned(LoanNotActive):
    kind = "loan_already_returned"


class MaxRenewalsReached(LoanError):
    kind = "max_renewals_reached"


class RenewalsDisabled(LoanError):
    kind = "renewals_disabled"
