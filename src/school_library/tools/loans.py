"""
Loan tools for the School Library MCP server.

Tools are the side-effecting half of the MCP surface:
1. create_loan: open a loan after eligibility and stock checks
2. renew_loan: push the due date of an active loan back
3. return_loan: close a loan and give its units back
4. mark_loan_lost: record a loss with mandatory observations
5. check_can_borrow: advisory eligibility check (no side effects)

Every handler validates its arguments, runs one LoanService call in its
own session and answers either
``{"content": [{"type": "text", "text": ...}], "data": {...}}`` or
``{"isError": True, "content": [...], "error": kind}``. Business-rule
refusals are expected answers, not server failures.
"""

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import BaseModel, Field, ValidationError

from ..database.exceptions import RepositoryException
from ..database.session import session_scope
from ..loans.errors import PersonNotEligible
from ..loans.service import LoanService
from ..models.catalog import ResourceCondition
from ..models.loan import (
    CreateLoanRequest,
    MarkLostRequest,
    RenewLoanRequest,
    ReturnLoanRequest,
)
from ..observability.decorators import trace_tool

logger = logging.getLogger(__name__)

LOAN_ID_PATTERN = r"^loan_[a-zA-Z0-9]+$"


def _error(text: str, kind: str | None = None, data: Any = None) -> dict[str, Any]:
    response: dict[str, Any] = {"isError": True, "content": [{"type": "text", "text": text}]}
    if kind:
        response["error"] = kind
    if data is not None:
        response["data"] = data
    return response


M = TypeVar("M", bound=BaseModel)


def _success(text: str, data: dict[str, Any]) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], "data": data}


def _parse(model: type[M], arguments: dict[str, Any], tool: str) -> M | dict[str, Any]:
    try:
        return model.model_validate(arguments)
    except ValidationError as e:
        logger.warning("Invalid %s parameters: %s", tool, e)
        return _error(f"Invalid {tool} parameters: {e}", "validation_error")


def _run(tool: str, operation: Callable[[LoanService], dict[str, Any]]) -> dict[str, Any]:
    """Run one service call in its own session and map refusals to isError."""
    try:
        with session_scope() as session:
            return operation(LoanService(session))
    except PersonNotEligible as e:
        logger.info("%s refused: %s", tool, e.message)
        data = {"can_borrow": e.result.model_dump(mode="json")} if e.result else None
        return _error(e.message, e.kind, data)
    except RepositoryException as e:
        if e.status_code >= 500:
            logger.error("%s failed: %s", tool, e.message)
        else:
            logger.info("%s refused (%s): %s", tool, e.kind, e.message)
        return _error(e.message, e.kind)
    except Exception as e:
        # Keeps the server alive; the client still sees the failure
        logger.exception("Unexpected error in %s tool", tool)
        return _error(f"An unexpected error occurred: {e!s}", "internal_error")


# =============================================================================
# CREATE
# =============================================================================


class CreateLoanInput(CreateLoanRequest):
    """Arguments of the create_loan tool."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"person_id": "person_ana001", "resource_id": "resource_quijote", "quantity": 1},
            ]
        }
    }


@trace_tool("create_loan")
async def create_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = _parse(CreateLoanInput, arguments, "create_loan")
    if isinstance(params, dict):
        return params

    def operation(service: LoanService) -> dict[str, Any]:
        loan = service.create_loan(params)
        text = (
            f"Loan {loan.id} created: {loan.quantity} unit(s) of "
            f"'{loan.resource_title or loan.resource_id}' for "
            f"{loan.person_name or loan.person_id}. "
            f"Due {loan.due_date.strftime('%B %d, %Y')}."
        )
        return _success(text, {"loan": loan.model_dump(mode="json")})

    return _run("create_loan", operation)


# =============================================================================
# RENEW
# =============================================================================


class RenewLoanInput(RenewLoanRequest):
    """Arguments of the renew_loan tool."""

    loan_id: str = Field(..., pattern=LOAN_ID_PATTERN, examples=["loan_3f9a2c1d7e5b4a60"])


@trace_tool("renew_loan")
async def renew_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = _parse(RenewLoanInput, arguments, "renew_loan")
    if isinstance(params, dict):
        return params

    def operation(service: LoanService) -> dict[str, Any]:
        result = service.renew_loan(
            params.loan_id,
            RenewLoanRequest(additional_days=params.additional_days, observations=params.observations),
        )
        text = (
            f"Loan {params.loan_id} renewed. Due date moved from "
            f"{result.previous_due_date.strftime('%B %d, %Y')} to "
            f"{result.new_due_date.strftime('%B %d, %Y')}. "
            f"{result.renewals_remaining} renewal(s) left."
        )
        return _success(text, result.model_dump(mode="json"))

    return _run("renew_loan", operation)


# =============================================================================
# RETURN
# =============================================================================


class ReturnLoanInput(BaseModel):
    """Arguments of the return_loan tool."""

    loan_id: str = Field(..., pattern=LOAN_ID_PATTERN, examples=["loan_3f9a2c1d7e5b4a60"])
    return_observations: str | None = Field(
        default=None,
        max_length=500,
        examples=["Cover slightly bent"],
    )
    resource_condition: ResourceCondition | None = Field(
        default=None,
        description="Condition of the resource as handed back (good, deteriorated, damaged, lost)",
    )


@trace_tool("return_loan")
async def return_loan_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = _parse(ReturnLoanInput, arguments, "return_loan")
    if isinstance(params, dict):
        return params

    def operation(service: LoanService) -> dict[str, Any]:
        result = service.return_loan(
            params.loan_id,
            ReturnLoanRequest(
                return_observations=params.return_observations,
                resource_condition=params.resource_condition,
            ),
        )
        return _success(f"{result.message} (loan {params.loan_id}).", result.model_dump(mode="json"))

    return _run("return_loan", operation)


# =============================================================================
# LOST
# =============================================================================


class MarkLoanLostInput(MarkLostRequest):
    """Arguments of the mark_loan_lost tool."""

    loan_id: str = Field(..., pattern=LOAN_ID_PATTERN, examples=["loan_3f9a2c1d7e5b4a60"])


@trace_tool("mark_loan_lost")
async def mark_loan_lost_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = _parse(MarkLoanLostInput, arguments, "mark_loan_lost")
    if isinstance(params, dict):
        return params

    def operation(service: LoanService) -> dict[str, Any]:
        loan = service.mark_as_lost(params.loan_id, MarkLostRequest(observations=params.observations))
        text = (
            f"Loan {loan.id} marked as lost. {loan.quantity} unit(s) of "
            f"'{loan.resource_title or loan.resource_id}' are out of circulation."
        )
        return _success(text, {"loan": loan.model_dump(mode="json")})

    return _run("mark_loan_lost", operation)


# =============================================================================
# CAN BORROW
# =============================================================================


class CheckCanBorrowInput(BaseModel):
    """Arguments of the check_can_borrow tool."""

    person_id: str = Field(..., min_length=1, examples=["person_ana001"])


@trace_tool("check_can_borrow")
async def check_can_borrow_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    params = _parse(CheckCanBorrowInput, arguments, "check_can_borrow")
    if isinstance(params, dict):
        return params

    def operation(service: LoanService) -> dict[str, Any]:
        result = service.can_borrow(params.person_id)
        if result.can_borrow:
            text = (
                f"Person {params.person_id} can borrow "
                f"({result.active_loans}/{result.max_loans} active loans)."
            )
        else:
            text = f"Person {params.person_id} cannot borrow: {result.reason}."
        return _success(text, result.model_dump(mode="json"))

    return _run("check_can_borrow", operation)


# =============================================================================
# TOOL REGISTRY
# =============================================================================

create_loan_tool = {
    "name": "create_loan",
    "description": (
        "Lend units of a resource to a person. Checks the person's eligibility "
        "(active, under the loan limit, nothing overdue) and reserves the units "
        "atomically. The loan is due after the configured loan period."
    ),
    "inputSchema": CreateLoanInput.model_json_schema(by_alias=False),
    "handler": create_loan_handler,
}

renew_loan_tool = {
    "name": "renew_loan",
    "description": (
        "Extend the due date of an active loan, overdue ones included. "
        "Fails once the loan has used all of its renewals."
    ),
    "inputSchema": RenewLoanInput.model_json_schema(by_alias=False),
    "handler": renew_loan_handler,
}

return_loan_tool = {
    "name": "return_loan",
    "description": (
        "Return an active loan. Frees its units, reports whether it was overdue "
        "and optionally records the resource's condition."
    ),
    "inputSchema": ReturnLoanInput.model_json_schema(by_alias=False),
    "handler": return_loan_handler,
}

mark_loan_lost_tool = {
    "name": "mark_loan_lost",
    "description": (
        "Record an active loan as lost. Observations are mandatory; "
        "the lost units never return to availability."
    ),
    "inputSchema": MarkLoanLostInput.model_json_schema(by_alias=False),
    "handler": mark_loan_lost_handler,
}

check_can_borrow_tool = {
    "name": "check_can_borrow",
    "description": (
        "Check whether a person may open a new loan right now, with their "
        "current loans and upcoming due dates."
    ),
    "inputSchema": CheckCanBorrowInput.model_json_schema(by_alias=False),
    "handler": check_can_borrow_handler,
}

loan_tools = [
    create_loan_tool,
    renew_loan_tool,
    return_loan_tool,
    mark_loan_lost_tool,
    check_can_borrow_tool,
]
