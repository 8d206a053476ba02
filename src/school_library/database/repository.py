"""
Repository pattern helpers for the School Library loan service.

This module provides the pieces every data access class shares:

1. **Exceptions**: a single hierarchy rooted in RepositoryException
2. **Pagination**: request parameters and the response envelope used by
   every list endpoint
3. **BaseRepository**: typed lookups by primary key returning Pydantic models

Repositories return Pydantic models so the REST and MCP surfaces can
serialize results without touching SQLAlchemy objects.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models.base import WireModel
from .exceptions import NotFoundError, RepositoryException, StorageError
from .schema import Base
from .session import safe_query

ModelType = TypeVar("ModelType", bound=Base)
ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)

MAX_PAGE_SIZE = 100


class PaginationParams(BaseModel):
    """Standard pagination parameters for list operations."""

    page: int = 1
    limit: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def validate_params(self) -> None:
        if self.page < 1:
            raise ValueError("Page must be >= 1")
        if self.limit < 1 or self.limit > MAX_PAGE_SIZE:
            raise ValueError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")


class PaginationMeta(WireModel):
    """Pagination block of a paginated response."""

    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, total: int, pagination: PaginationParams) -> "PaginationMeta":
        return cls(
            total=total,
            page=pagination.page,
            limit=pagination.limit,
            total_pages=(total + pagination.limit - 1) // pagination.limit,
            has_next_page=pagination.page * pagination.limit < total,
            has_prev_page=pagination.page > 1,
        )


class PaginatedResponse(WireModel, Generic[ResponseSchemaType]):
    """
    Standard paginated response.

    ``{data: [...], pagination: {total, page, limit, totalPages,
    hasNextPage, hasPrevPage}}`` on the wire
    """

    data: list[ResponseSchemaType] = Field(default_factory=list)
    pagination: PaginationMeta


class BaseRepository(ABC, Generic[ModelType, ResponseSchemaType]):
    """
    Abstract base repository providing primary-key lookups.

    All methods go through ``safe_query`` so driver failures surface as
    StorageError.
    """

    def __init__(self, session: Session):
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[ModelType]:
        """Return the SQLAlchemy model class."""

    @property
    @abstractmethod
    def response_schema(self) -> type[ResponseSchemaType]:
        """Return the Pydantic response schema."""

    def _to_response_model(self, db_obj: ModelType) -> ResponseSchemaType:
        return self.response_schema.model_validate(db_obj, from_attributes=True)

    def get_by_id(self, id: str) -> ResponseSchemaType | None:
        """
        Get entity by ID.

        Returns:
            Pydantic model or None if not found

        Raises:
            StorageError: On database errors
        """
        query = select(self.model_class).where(self.model_class.id == str(id))
        db_obj = safe_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            f"Failed to get {self.model_class.__name__} by ID",
        )

        if db_obj is None:
            return None

        return self._to_response_model(db_obj)


__all__ = [
    "BaseRepository",
    "MAX_PAGE_SIZE",
    "NotFoundError",
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "RepositoryException",
    "StorageError",
]
