"""
Availability tracking.

``resource_stock.committed_units`` counts the units of a resource tied to
loans that still hold them: stored-active loans and lost loans. Returns
give units back; losses never do, so a lost unit stays out of circulation
until an inventory correction outside this service fixes the row.

    available = resource.volumes - committed_units

``reserve`` is a single conditional UPDATE guarded by the availability
check, so two concurrent requests for the last unit cannot both succeed
no matter how their reads interleave.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..database.exceptions import RepositoryException
from ..database.gateways import ResourceLookup
from ..database.schema import ResourceStock as StockDB
from ..database.session import safe_query
from ..models.catalog import ResourceRef
from .errors import InsufficientStock, InvalidQuantity, ResourceNotFound

logger = logging.getLogger(__name__)


class Reservation(BaseModel):
    """Units successfully set aside for a loan."""

    id: str
    resource_id: str
    quantity: int
    reserved_at: datetime


class AvailabilityTracker:
    """Per-resource stock accounting with an atomic reserve primitive."""

    def __init__(
        self,
        session: Session,
        resources: ResourceLookup,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.session = session
        self.resources = resources
        self.clock = clock

    def _require_resource(self, resource_id: str) -> ResourceRef:
        resource = self.resources.get(resource_id)
        if resource is None:
            raise ResourceNotFound(f"Resource {resource_id} not found")
        return resource

    def committed_units(self, resource_id: str) -> int:
        committed = safe_query(
            self.session,
            lambda s: s.execute(
                select(StockDB.committed_units).where(StockDB.resource_id == resource_id)
            ).scalar_one_or_none(),
            "Failed to read resource stock",
        )
        return committed or 0

    def available(self, resource_id: str) -> int:
        """Units of the resource free right now (never negative)."""
        resource = self._require_resource(resource_id)
        return max(0, resource.volumes - self.committed_units(resource_id))

    def reserve(self, resource_id: str, quantity: int) -> Reservation:
        """
        Atomically set aside ``quantity`` units.

        Runs inside the caller's transaction; the units are only really
        taken once the caller commits.

        Raises:
            InvalidQuantity: quantity below 1
            ResourceNotFound: unknown resource
            InsufficientStock: fewer than ``quantity`` units free
        """
        if quantity < 1:
            raise InvalidQuantity("Quantity must be at least 1")

        resource = self._require_resource(resource_id)
        self._ensure_stock_row(resource_id)

        now = self.clock()
        result = safe_query(
            self.session,
            lambda s: s.execute(
                update(StockDB)
                .where(
                    StockDB.resource_id == resource_id,
                    StockDB.committed_units + quantity <= resource.volumes,
                )
                .values(committed_units=StockDB.committed_units + quantity, updated_at=now)
                .execution_options(synchronize_session=False)
            ),
            "Failed to reserve resource units",
        )

        if result.rowcount != 1:
            available = max(0, resource.volumes - self.committed_units(resource_id))
            logger.info(
                "Reservation refused for %s: requested=%d available=%d",
                resource_id,
                quantity,
                available,
            )
            raise InsufficientStock(resource_id, quantity, available)

        reservation = Reservation(
            id=f"rsv_{uuid.uuid4().hex[:16]}",
            resource_id=resource_id,
            quantity=quantity,
            reserved_at=now,
        )
        logger.debug("Reserved %d unit(s) of %s (%s)", quantity, resource_id, reservation.id)
        return reservation

    def release(self, resource_id: str, quantity: int) -> None:
        """
        Give ``quantity`` units back (called on return, never on loss).

        Raises:
            RepositoryException: the stock row holds fewer committed units
                than are being released
        """
        if quantity < 1:
            raise InvalidQuantity("Quantity must be at least 1")

        result = safe_query(
            self.session,
            lambda s: s.execute(
                update(StockDB)
                .where(
                    StockDB.resource_id == resource_id,
                    StockDB.committed_units >= quantity,
                )
                .values(
                    committed_units=StockDB.committed_units - quantity, updated_at=self.clock()
                )
                .execution_options(synchronize_session=False)
            ),
            "Failed to release resource units",
        )

        if result.rowcount != 1:
            logger.error("Stock accounting mismatch releasing %d of %s", quantity, resource_id)
            raise RepositoryException(
                f"Cannot release {quantity} unit(s) of {resource_id}: not that many committed"
            )

        logger.debug("Released %d unit(s) of %s", quantity, resource_id)

    def _ensure_stock_row(self, resource_id: str) -> None:
        """Create the stock row on first use; a concurrent creator wins harmlessly."""
        exists = safe_query(
            self.session,
            lambda s: s.execute(
                select(StockDB.resource_id).where(StockDB.resource_id == resource_id)
            ).scalar_one_or_none(),
            "Failed to read resource stock",
        )
        if exists is not None:
            return

        try:
            with self.session.begin_nested():
                self.session.execute(
                    insert(StockDB).values(
                        resource_id=resource_id, committed_units=0, updated_at=self.clock()
                    )
                )
        except IntegrityError:
            logger.debug("Stock row for %s created concurrently", resource_id)
