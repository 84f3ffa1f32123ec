# Overview: Table status collaborator used by the order lifecycle.

"""
Table Status

Table and zone management belongs to another part of the product; the
settlement core only flips a table between AVAILABLE and OCCUPIED through
set_table_status. Nothing here commits: callers own the transaction.
"""

from sqlalchemy.orm.attributes import flag_modified

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import DiningTable
from .concurrency import lock_for_update


TABLE_AVAILABLE = "AVAILABLE"
TABLE_OCCUPIED = "OCCUPIED"
TABLE_RESERVED = "RESERVED"

VALID_TABLE_STATUSES = [TABLE_AVAILABLE, TABLE_OCCUPIED, TABLE_RESERVED]


def get_restaurant_table(restaurant_id: int, table_id: int, *, lock: bool = False) -> DiningTable:
    """Load a table scoped to a restaurant; foreign tables look missing."""
    query = db.session.query(DiningTable).filter_by(id=table_id, restaurant_id=restaurant_id)
    if lock:
        query = lock_for_update(query)
    table = query.first()
    if not table:
        raise NotFoundError("Table not found")
    return table


def set_table_status(table_id: int, status: str) -> DiningTable:
    if status not in VALID_TABLE_STATUSES:
        raise ValidationError(f"Invalid table status: {status}. Must be one of {VALID_TABLE_STATUSES}")

    table = db.session.get(DiningTable, table_id)
    if not table:
        raise NotFoundError("Table not found")

    table.status = status
    # Always written, even when unchanged: the loaded status may be stale
    flag_modified(table, "status")
    db.session.flush()
    return table
