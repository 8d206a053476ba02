"""
SQLAlchemy database schema for the School Library loan service.

Tables:
1. people / resources - minimal mirrors of the catalog owned elsewhere;
   the loan subsystem only reads them through the gateways
2. resource_stock - units of each resource currently committed to loans
3. loans - the loan records and their lifecycle state
4. loan_renewals - immutable audit trail of renewals

Enums are stored by value so CHECK constraints and raw SQL can use the
same strings the API exposes.
"""

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship, validates
from sqlalchemy.sql import func

from ..models.catalog import PersonType, ResourceState, ResourceType

Base = declarative_base()


class LoanStatusEnum(str, enum.Enum):
    """Database enum for stored loan status.

    ``overdue`` is never stored; it is derived at read time from
    ``active`` loans whose due date has passed.
    """

    ACTIVE = "active"
    RETURNED = "returned"
    LOST = "lost"


def _values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Person(Base):
    """
    People table - library members (students and teachers).

    Only ``active`` and ``person_type`` matter to lending decisions;
    names are carried for listings and rankings.
    """

    __tablename__ = "people"

    id = Column(String(50), primary_key=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    person_type = Column(
        Enum(PersonType, values_callable=_values, name="person_type"),
        nullable=False,
        default=PersonType.STUDENT,
    )
    document_number = Column(String(30), nullable=True, unique=True)
    grade = Column(String(30), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    loans = relationship("Loan", back_populates="person")

    __table_args__ = (
        Index("idx_person_active", "active"),
        Index("idx_person_name", "last_name", "first_name"),
    )


class Resource(Base):
    """
    Resources table - lendable items (books, games, maps, bibles).

    ``volumes`` is the physical unit count and is never changed by loan
    activity; availability is tracked in ``resource_stock``.
    """

    __tablename__ = "resources"

    id = Column(String(50), primary_key=True)
    title = Column(String(500), nullable=False, index=True)
    resource_type = Column(
        Enum(ResourceType, values_callable=_values, name="resource_type"),
        nullable=False,
        default=ResourceType.BOOK,
    )
    isbn = Column(String(13), nullable=True)
    volumes = Column(Integer, nullable=False, default=1)
    state = Column(
        Enum(ResourceState, values_callable=_values, name="resource_state"),
        nullable=False,
        default=ResourceState.GOOD,
    )

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    loans = relationship("Loan", back_populates="resource")
    stock = relationship("ResourceStock", back_populates="resource", uselist=False)

    __table_args__ = (
        Index("idx_resource_title", "title"),
        CheckConstraint("volumes >= 1", name="check_volumes_positive"),
    )


class ResourceStock(Base):
    """
    Resource stock table - units committed to active or lost loans.

    The row is the single point of contention for reservations: every
    reserve and release is one conditional UPDATE against it.
    """

    __tablename__ = "resource_stock"

    resource_id = Column(String(50), ForeignKey("resources.id"), primary_key=True)
    committed_units = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    resource = relationship("Resource", back_populates="stock")

    __table_args__ = (
        CheckConstraint("committed_units >= 0", name="check_committed_units_non_negative"),
    )


class Loan(Base):
    """
    Loans table - one row per loan.

    Stored status moves ``active -> returned`` or ``active -> lost`` and
    never back; rows are kept as history once they leave ``active``.
    """

    __tablename__ = "loans"

    id = Column(String(50), primary_key=True)
    person_id = Column(String(50), ForeignKey("people.id"), nullable=False)
    resource_id = Column(String(50), ForeignKey("resources.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    loan_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)
    returned_date = Column(DateTime, nullable=True)
    lost_date = Column(DateTime, nullable=True)
    status = Column(
        Enum(LoanStatusEnum, values_callable=_values, name="loan_status"),
        nullable=False,
        default=LoanStatusEnum.ACTIVE,
    )
    observations = Column(Text, nullable=True)
    return_observations = Column(Text, nullable=True)
    resource_condition = Column(String(20), nullable=True)
    renewal_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    person = relationship("Person", back_populates="loans")
    resource = relationship("Resource", back_populates="loans")
    renewals = relationship(
        "LoanRenewal", back_populates="loan", order_by="LoanRenewal.renewed_at"
    )

    __table_args__ = (
        Index("idx_loan_person", "person_id"),
        Index("idx_loan_resource", "resource_id"),
        Index("idx_loan_status", "status"),
        Index("idx_loan_due_date", "due_date"),
        Index("idx_loan_status_due", "status", "due_date"),
        CheckConstraint("id LIKE 'loan_%'", name="check_loan_id_format"),
        CheckConstraint("quantity >= 1", name="check_quantity_positive"),
        CheckConstraint("due_date > loan_date", name="check_due_after_loan"),
        CheckConstraint("renewal_count >= 0", name="check_renewal_count_non_negative"),
        CheckConstraint(
            "(status = 'returned') = (returned_date IS NOT NULL)",
            name="check_returned_date_matches_status",
        ),
        CheckConstraint(
            "(status = 'lost') = (lost_date IS NOT NULL)",
            name="check_lost_date_matches_status",
        ),
    )

    @validates("quantity")
    def validate_quantity(self, key, value):  # noqa: ARG002
        if value is not None and value < 1:
            raise ValueError("Loan quantity must be at least 1")
        return value


class LoanRenewal(Base):
    """
    Loan renewals table - one row per successful renewal.

    Immutable; used for the renewal counts in period statistics.
    """

    __tablename__ = "loan_renewals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(String(50), ForeignKey("loans.id"), nullable=False)
    renewed_at = Column(DateTime, nullable=False)
    previous_due_date = Column(DateTime, nullable=False)
    new_due_date = Column(DateTime, nullable=False)
    observations = Column(Text, nullable=True)

    loan = relationship("Loan", back_populates="renewals")

    __table_args__ = (
        Index("idx_renewal_loan", "loan_id"),
        Index("idx_renewal_date", "renewed_at"),
        CheckConstraint("new_due_date > previous_due_date", name="check_renewal_extends"),
    )
