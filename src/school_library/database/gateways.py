"""
Entity gateways: read access to people and resources.

People and resources belong to the wider library application. The loan
subsystem depends only on the two protocols below; the SQLAlchemy
implementations read the local ``people`` / ``resources`` tables, and
another deployment can plug in any object with the same methods.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..models.catalog import PersonRef, ResourceRef, ResourceState
from .repository import BaseRepository
from .schema import Person as PersonDB
from .schema import Resource as ResourceDB
from .session import safe_query

logger = logging.getLogger(__name__)


class PersonLookup(Protocol):
    def get(self, person_id: str) -> PersonRef | None: ...


class ResourceLookup(Protocol):
    def get(self, resource_id: str) -> ResourceRef | None: ...

    def update_state(self, resource_id: str, state: ResourceState) -> None: ...


class PersonGateway(BaseRepository[PersonDB, PersonRef]):
    """Person lookups backed by the ``people`` table."""

    @property
    def model_class(self) -> type[PersonDB]:
        return PersonDB

    @property
    def response_schema(self) -> type[PersonRef]:
        return PersonRef

    def get(self, person_id: str) -> PersonRef | None:
        return self.get_by_id(person_id)


class ResourceGateway(BaseRepository[ResourceDB, ResourceRef]):
    """Resource lookups backed by the ``resources`` table."""

    def __init__(self, session: Session, clock: Callable[[], datetime] = datetime.now):
        super().__init__(session)
        self.clock = clock

    @property
    def model_class(self) -> type[ResourceDB]:
        return ResourceDB

    @property
    def response_schema(self) -> type[ResourceRef]:
        return ResourceRef

    def get(self, resource_id: str) -> ResourceRef | None:
        return self.get_by_id(resource_id)

    def update_state(self, resource_id: str, state: ResourceState) -> None:
        """Record a new physical state reported on return.

        Runs inside the caller's transaction; the caller commits.
        """
        safe_query(
            self.session,
            lambda s: s.execute(
                update(ResourceDB)
                .where(ResourceDB.id == resource_id)
                .values(state=state, updated_at=self.clock())
            ),
            "Failed to update resource state",
        )
        logger.info("Resource %s state set to %s", resource_id, state.value)
