"""
Database package for the School Library loan service.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Session management and connection handling (session.py)
- Read gateways for people and resources (gateways.py)
- Pagination helpers and the repository base class (repository.py)

The loan repository lives in ``loan_repository`` and is imported from
there directly; it depends on the loans package's overdue rules.
"""

from .exceptions import NotFoundError, RepositoryException, StorageError
from .gateways import PersonGateway, PersonLookup, ResourceGateway, ResourceLookup
from .repository import BaseRepository, PaginatedResponse, PaginationMeta, PaginationParams
from .schema import (
    Base,
    Loan,
    LoanRenewal,
    LoanStatusEnum,
    Person,
    Resource,
    ResourceStock,
)
from .session import (
    DatabaseManager,
    begin_write,
    get_db_manager,
    safe_commit,
    safe_query,
    session_scope,
    set_db_manager,
)

__all__ = [
    "Base",
    "BaseRepository",
    "DatabaseManager",
    "Loan",
    "LoanRenewal",
    "LoanStatusEnum",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "Person",
    "PersonGateway",
    "PersonLookup",
    "RepositoryException",
    "Resource",
    "ResourceGateway",
    "ResourceLookup",
    "ResourceStock",
    "StorageError",
    "begin_write",
    "get_db_manager",
    "safe_commit",
    "safe_query",
    "session_scope",
    "set_db_manager",
]
