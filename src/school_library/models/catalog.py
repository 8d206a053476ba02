"""
Catalog references used by the loan subsystem.

People and resources are owned by other parts of the library application.
The loan code only ever sees these read-only snapshots, produced by the
gateways in ``school_library.database.gateways``.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PersonType(str, Enum):
    """Kind of library member; drives per-type loan limits."""

    STUDENT = "student"
    TEACHER = "teacher"


class ResourceType(str, Enum):
    """Kind of lendable resource."""

    BOOK = "book"
    GAME = "game"
    MAP = "map"
    BIBLE = "bible"


class ResourceState(str, Enum):
    """Physical state of a resource."""

    GOOD = "good"
    DETERIORATED = "deteriorated"
    DAMAGED = "damaged"
    LOST = "lost"


# Conditions reported on return share the resource state vocabulary
ResourceCondition = ResourceState


class PersonRef(BaseModel):
    """Snapshot of a person as seen by the loan subsystem."""

    id: str
    active: bool
    person_type: PersonType | None = None
    first_name: str | None = None
    last_name: str | None = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    model_config = ConfigDict(from_attributes=True, frozen=True)


class ResourceRef(BaseModel):
    """Snapshot of a resource as seen by the loan subsystem."""

    id: str
    volumes: int = Field(..., ge=1, description="Total physical units")
    state: ResourceState = ResourceState.GOOD
    title: str | None = None
    resource_type: ResourceType | None = None

    model_config = ConfigDict(from_attributes=True, frozen=True)
