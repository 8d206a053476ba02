"""Loan REST endpoints.

Static paths under ``/loans`` are declared before ``/loans/{loan_id}``
so ``overdue`` and ``stats`` are never read as loan ids.
"""

from typing import Annotated

from fastapi import APIRouter, Query

from ..database.repository import MAX_PAGE_SIZE, PaginationParams
from ..loans.service import LoanService
from ..models.loan import (
    CreateLoanRequest,
    LoanFilters,
    MarkLostRequest,
    RenewLoanRequest,
    ReturnLoanRequest,
)
from .app import LoanServiceDep, envelope

router = APIRouter()


# === Loan collection ===


@router.get("/loans")
def list_loans(
    filters: Annotated[LoanFilters, Query()],
    service: LoanService = LoanServiceDep,
):
    page = service.list_loans(filters)
    return envelope(data=page, message=f"{page.pagination.total} loan(s) found")


@router.get("/loans/overdue")
def list_overdue_loans(
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 20,
    service: LoanService = LoanServiceDep,
):
    result = service.overdue_loans(PaginationParams(page=page, limit=limit))
    return envelope(data=result, message=f"{result.pagination.total} overdue loan(s)")


@router.get("/loans/stats/summary")
def loan_statistics(service: LoanService = LoanServiceDep):
    return envelope(data=service.statistics(), message="Loan statistics")


@router.post("/loans/validate")
def validate_loan(request: CreateLoanRequest, service: LoanService = LoanServiceDep):
    result = service.validate_loan(request)
    message = "Loan request is valid" if result.is_valid else "Loan request is not valid"
    return envelope(data=result, message=message)


@router.post("/loans", status_code=201)
def create_loan(request: CreateLoanRequest, service: LoanService = LoanServiceDep):
    loan = service.create_loan(request)
    return envelope(data=loan, message="Loan created", status_code=201)


# === Single loan ===


@router.get("/loans/{loan_id}")
def get_loan(loan_id: str, service: LoanService = LoanServiceDep):
    return envelope(data=service.get_loan(loan_id), message="Loan found")


@router.post("/loans/{loan_id}/renew")
def renew_loan(
    loan_id: str,
    request: RenewLoanRequest | None = None,
    service: LoanService = LoanServiceDep,
):
    result = service.renew_loan(loan_id, request)
    return envelope(
        data=result,
        message=f"Loan renewed until {result.new_due_date.date().isoformat()}",
    )


@router.post("/loans/{loan_id}/return")
def return_loan(
    loan_id: str,
    request: ReturnLoanRequest | None = None,
    service: LoanService = LoanServiceDep,
):
    result = service.return_loan(loan_id, request)
    return envelope(data=result, message=result.message)


@router.post("/loans/{loan_id}/lost")
def mark_loan_lost(
    loan_id: str,
    request: MarkLostRequest,
    service: LoanService = LoanServiceDep,
):
    loan = service.mark_as_lost(loan_id, request)
    return envelope(data=loan, message="Loan marked as lost")


# === People and resources ===


@router.get("/people/{person_id}/can-borrow")
def can_borrow(person_id: str, service: LoanService = LoanServiceDep):
    result = service.can_borrow(person_id)
    message = "Person can borrow" if result.can_borrow else f"Person cannot borrow: {result.reason}"
    return envelope(data=result, message=message)


@router.get("/resources/{resource_id}/availability")
def resource_availability(resource_id: str, service: LoanService = LoanServiceDep):
    info = service.availability_info(resource_id)
    return envelope(data=info, message=f"{info.available} of {info.volumes} unit(s) available")
