"""Loan Resources - read-only loan views for MCP clients.

Resources:
- library://loans/stats - aggregated loan statistics
- library://loans/overdue - overdue loans, most overdue first
"""

import logging
from typing import Any

from fastmcp.exceptions import ResourceError

from ..database.repository import MAX_PAGE_SIZE, PaginationParams
from ..database.session import session_scope
from ..loans.service import LoanService
from ..observability.decorators import trace_resource

logger = logging.getLogger(__name__)


@trace_resource("loan_stats")
async def get_loan_stats_handler() -> dict[str, Any]:
    """Returns the loan statistics summary.

    Figures are computed query by query and may trail loans written while
    the summary is being built.
    """
    try:
        logger.debug("MCP Resource Request - loans/stats")
        with session_scope() as session:
            return LoanService(session).statistics().model_dump(mode="json")
    except Exception as e:
        logger.exception("Error in loans/stats resource")
        raise ResourceError(f"Failed to calculate loan statistics: {e!s}") from e


@trace_resource("overdue_loans")
async def get_overdue_loans_handler() -> dict[str, Any]:
    """Returns the first page of overdue loans with days overdue."""
    try:
        logger.debug("MCP Resource Request - loans/overdue")
        with session_scope() as session:
            page = LoanService(session).overdue_loans(PaginationParams(page=1, limit=MAX_PAGE_SIZE))
            return page.model_dump(mode="json")
    except Exception as e:
        logger.exception("Error in loans/overdue resource")
        raise ResourceError(f"Failed to list overdue loans: {e!s}") from e


loan_resources: list[dict[str, Any]] = [
    {
        "uri": "library://loans/stats",
        "name": "Loan Statistics",
        "description": (
            "Loan counts by status (overdue derived at read time), activity today, "
            "this week and this month, most borrowed resources, top borrowers, "
            "average loan duration and overdue aging."
        ),
        "mime_type": "application/json",
        "handler": get_loan_stats_handler,
    },
    {
        "uri": "library://loans/overdue",
        "name": "Overdue Loans",
        "description": (
            f"Active loans past their due date, most overdue first (up to {MAX_PAGE_SIZE}), "
            "with days overdue, borrower and resource."
        ),
        "mime_type": "application/json",
        "handler": get_overdue_loans_handler,
    },
]
