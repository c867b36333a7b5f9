"""Write authority over reservation fields, enforced with SQLAlchemy events.

Only the hold state machine may move a hold through its lifecycle or change a
bid's reservation phase. It does so inside ``reservation_authority(session)``;
any other flush or ORM bulk UPDATE/DELETE touching those fields is rejected
before it reaches the database.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy import event, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, object_session

from app.core.exceptions import InvalidHoldState
from app.domain.hold_state import BidHoldState, HoldStatus

logger = logging.getLogger(__name__)

AUTHORITY_KEY = "reservation_authority"

BID_RESERVATION_FIELDS = ("hold_state", "held_by_hold_id")
HOLD_LIFECYCLE_FIELDS = ("status", "resolution", "starts_at", "expires_at", "frozen_bid_ids")

_registered = False


class ReservationWriteViolation(InvalidHoldState):
    """Raised when code outside the hold state machine writes reservation fields."""

    def __init__(self, model_name: str, field: str, record_id: str):
        self.model_name = model_name
        self.field = field
        self.record_id = record_id
        super().__init__(
            f"{model_name} {record_id}: '{field}' can only be changed by the hold workflow"
        )


@contextmanager
def reservation_authority(session: AsyncSession | Session) -> Iterator[None]:
    """Grant the session write access to reservation fields for the block.

    Wrap the whole transaction, commit included: pending changes are flushed
    at commit and are checked against the authority at that moment.
    """
    sync_session = session.sync_session if isinstance(session, AsyncSession) else session
    previous = sync_session.info.get(AUTHORITY_KEY, False)
    sync_session.info[AUTHORITY_KEY] = True
    try:
        yield
    finally:
        sync_session.info[AUTHORITY_KEY] = previous


def _has_authority(target) -> bool:
    session = object_session(target)
    return bool(session is not None and session.info.get(AUTHORITY_KEY))


def _reject(model_name: str, field: str, record_id: str) -> None:
    logger.error(
        f"RESERVATION_WRITE_VIOLATION: {model_name} record_id={record_id} field={field} "
        f"at {datetime.now(UTC).isoformat()}"
    )
    raise ReservationWriteViolation(model_name, field, record_id)


def _changed(state, field: str) -> bool:
    return state.attrs[field].history.has_changes()


def _was_bound(state, connection) -> bool:
    """Bid was or is attached to a hold on either side of this flush."""
    history = state.attrs.hold_state.history
    values = list(history.unchanged or ()) + list(history.deleted or ()) + list(history.added or ())
    if not values:
        # Attribute not loaded: read the stored phase
        table = state.mapper.local_table
        values = [connection.scalar(select(table.c.hold_state).where(table.c.id == state.object.id))]
    return any(value not in (None, BidHoldState.AVAILABLE) for value in values)


def _statement_fields(orm_execute_state) -> set[str]:
    """Attribute names an ORM UPDATE sets, from .values() or bulk parameter rows."""
    statement = orm_execute_state.statement
    keys = list(getattr(statement, "_values", None) or ())
    keys += [key for key, _ in getattr(statement, "_ordered_values", None) or ()]
    fields = {getattr(key, "key", key) for key in keys}

    parameters = orm_execute_state.parameters
    if isinstance(parameters, dict):
        parameters = [parameters]
    for row in parameters or ():
        fields.update(row)
    return fields


def register_reservation_guard() -> None:
    """Register mapper and session listeners guarding Bid and Hold reservation fields.

    Safe to call more than once.
    """
    global _registered
    if _registered:
        return

    from app.models.hold import Hold
    from app.models.show_request import Bid

    # ============ Bid: reservation phase ============

    @event.listens_for(Bid, "before_insert")
    def check_bid_insert(mapper, connection, target):
        """New bids always start unbound."""
        if target.hold_state not in (None, BidHoldState.AVAILABLE) or target.held_by_hold_id:
            _reject("Bid", "hold_state", str(target.id))

    @event.listens_for(Bid, "before_update")
    def check_bid_update(mapper, connection, target):
        """Reservation phase, and lifecycle while bound, belong to the hold workflow."""
        if _has_authority(target):
            return
        state = inspect(target)
        for field in BID_RESERVATION_FIELDS:
            if _changed(state, field):
                _reject("Bid", field, str(target.id))
        if _changed(state, "status") and _was_bound(state, connection):
            _reject("Bid", "status", str(target.id))

    # ============ Hold: lifecycle ============

    @event.listens_for(Hold, "before_insert")
    def check_hold_insert(mapper, connection, target):
        """Holds are created PENDING."""
        if target.status not in (None, HoldStatus.PENDING):
            _reject("Hold", "status", str(target.id))

    @event.listens_for(Hold, "before_update")
    def check_hold_update(mapper, connection, target):
        """Lifecycle fields belong to the hold workflow."""
        if _has_authority(target):
            return
        state = inspect(target)
        for field in HOLD_LIFECYCLE_FIELDS:
            if _changed(state, field):
                _reject("Hold", field, str(target.id))

    # ============ Bulk statements ============

    # Bulk writes to bid status are refused whether or not the rows are bound
    bulk_guarded = {
        Bid: {"status", "reservation", *BID_RESERVATION_FIELDS},
        Hold: set(HOLD_LIFECYCLE_FIELDS),
    }

    @event.listens_for(Session, "do_orm_execute")
    def check_bulk_write(orm_execute_state):
        """ORM UPDATE and DELETE statements skip the mapper events above."""
        if not (orm_execute_state.is_update or orm_execute_state.is_delete):
            return
        if orm_execute_state.session.info.get(AUTHORITY_KEY):
            return
        mapper = orm_execute_state.bind_mapper
        if mapper is None or mapper.class_ not in bulk_guarded:
            return

        model_name = mapper.class_.__name__
        if orm_execute_state.is_delete:
            _reject(model_name, "*", "bulk delete")
        touched = sorted(_statement_fields(orm_execute_state) & bulk_guarded[mapper.class_])
        if touched:
            _reject(model_name, touched[0], "bulk update")

    _registered = True
    logger.info("Reservation write guard registered for bids and holds")
