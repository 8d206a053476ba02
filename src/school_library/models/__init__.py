"""
Pydantic models for the School Library loan service.

- catalog: read-only snapshots of people and resources
- loan: loan records, derived views, requests and results
- stats: aggregated loan statistics
"""

from .catalog import PersonRef, PersonType, ResourceCondition, ResourceRef, ResourceState, ResourceType
from .loan import (
    AvailabilityInfo,
    CanBorrowResult,
    CreateLoanRequest,
    LoanFilters,
    LoanRecord,
    LoanStatus,
    LoanValidationResult,
    LoanView,
    MarkLostRequest,
    PenaltyInfo,
    RenewLoanRequest,
    RenewLoanResponse,
    ReturnLoanRequest,
    ReturnLoanResponse,
)
from .stats import LoanStatistics

__all__ = [
    "AvailabilityInfo",
    "CanBorrowResult",
    "CreateLoanRequest",
    "LoanFilters",
    "LoanRecord",
    "LoanStatistics",
    "LoanStatus",
    "LoanValidationResult",
    "LoanView",
    "MarkLostRequest",
    "PenaltyInfo",
    "PersonRef",
    "PersonType",
    "RenewLoanRequest",
    "RenewLoanResponse",
    "ResourceCondition",
    "ResourceRef",
    "ResourceState",
    "ResourceType",
    "ReturnLoanRequest",
    "ReturnLoanResponse",
]
