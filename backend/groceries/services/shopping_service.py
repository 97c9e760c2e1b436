"""
Shopping mode: item status changes, completing a shopping trip and history.

Status flow: pending -> selected -> found | not_found, not_found -> pending.
Users may jump between any two statuses; only complete_shopping moves found
and not_found entries out of the list into history.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from groceries.models.history import HistoryRecord
from groceries.models.list_entry import ARCHIVABLE_STATUSES, EntryStatus, ListEntry
from groceries.models.product import Product
from groceries.services import normalization
from groceries.services.grocery_service import (
    GroceryError,
    find_open_entry,
    get_entry,
    upsert_open_entry,
)

logger = logging.getLogger(__name__)


class HistoryNotFoundError(GroceryError):
    pass


class RestoreError(GroceryError):
    """A history record can no longer be matched to a catalog product."""

    def __init__(self, message: str, product_name: Optional[str] = None):
        super().__init__(message)
        self.product_name = product_name


class ArchiveError(GroceryError):
    """Completing the shopping trip failed and was rolled back."""


@dataclass
class CompleteShoppingResult:
    session_id: str
    archived_count: int
    found_count: int
    not_found_count: int


def new_session_id() -> str:
    return secrets.token_hex(4)


# --- Status changes ---

def _apply_status(db: Session, entry: ListEntry, status: EntryStatus) -> ListEntry:
    """
    Move an entry to a new status.

    A found entry re-opened while the product already has another open entry
    is merged into that entry, keeping one open entry per product.
    """
    status = EntryStatus(status)
    if entry.status == EntryStatus.FOUND and status != EntryStatus.FOUND:
        other = find_open_entry(db, entry.product_id, exclude_id=entry.id)
        if other:
            logger.info(
                f"Merging re-opened entry {entry.id} into open entry {other.id} "
                f"for product {entry.product_id}"
            )
            other.quantity += entry.quantity
            other.status = status
            db.delete(entry)
            db.flush()
            return other

    entry.status = status
    db.flush()
    return entry


def update_status(db: Session, entry_id: int, status: EntryStatus) -> ListEntry:
    """Change the status of one list entry."""
    entry = get_entry(db, entry_id)
    try:
        entry = _apply_status(db, entry, status)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(entry)
    return entry


def update_entry(
    db: Session,
    entry_id: int,
    quantity: Optional[int] = None,
    note: Optional[str] = None,
    status: Optional[EntryStatus] = None,
) -> ListEntry:
    """Edit quantity, note and/or status of a list entry."""
    if quantity is not None and quantity < 1:
        raise ValueError("quantity must be at least 1")

    entry = get_entry(db, entry_id)
    try:
        if quantity is not None:
            entry.quantity = quantity
        if note is not None:
            entry.note = note or None
        if status is not None:
            entry = _apply_status(db, entry, status)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(entry)
    return entry


def reset_selection(db: Session) -> int:
    """Put every selected entry back to pending. Returns how many changed."""
    updated = (
        db.query(ListEntry)
        .filter(ListEntry.status == EntryStatus.SELECTED)
        .update(
            {ListEntry.status: EntryStatus.PENDING, ListEntry.updated_at: datetime.utcnow()},
            synchronize_session="fetch",
        )
    )
    db.commit()
    return updated


# --- Archive ---

def complete_shopping(db: Session) -> CompleteShoppingResult:
    """
    Archive every found / not_found entry into history in one transaction.

    All archived records share one session id. Pending and selected entries
    stay on the list. Any failure rolls back every write of the call.
    """
    session_id = new_session_id()

    try:
        entries = (
            db.query(ListEntry)
            .filter(ListEntry.status.in_(ARCHIVABLE_STATUSES))
            .order_by(ListEntry.id)
            .all()
        )

        completed_at = datetime.utcnow()
        found_count = 0
        not_found_count = 0
        for entry in entries:
            category = entry.category
            db.add(
                HistoryRecord(
                    product_id=entry.product_id,
                    product_name=entry.product_name,
                    category_name=category.name if category else None,
                    quantity=entry.quantity,
                    status=EntryStatus(entry.status).value,
                    session_id=session_id,
                    completed_at=completed_at,
                )
            )
            if entry.status == EntryStatus.FOUND:
                found_count += 1
            else:
                not_found_count += 1
            db.delete(entry)

        db.flush()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error completing shopping session {session_id}: {e}")
        raise ArchiveError("Failed to complete shopping") from e

    result = CompleteShoppingResult(
        session_id=session_id,
        archived_count=found_count + not_found_count,
        found_count=found_count,
        not_found_count=not_found_count,
    )
    logger.info(
        f"Completed shopping session {session_id}: archived {result.archived_count} items"
    )
    return result


# --- History ---

def get_history_record(db: Session, history_id: int) -> HistoryRecord:
    record = db.get(HistoryRecord, history_id)
    if not record:
        raise HistoryNotFoundError(f"History item {history_id} not found")
    return record


def restore_from_history(db: Session, history_id: int) -> ListEntry:
    """
    Put an archived item back on the list.

    Falls back to a name lookup when the product id is gone; merges into the
    product's open entry if there is one. The history record is kept.

    Raises:
        HistoryNotFoundError: unknown history id
        RestoreError: the product no longer exists in the catalog
    """
    record = get_history_record(db, history_id)

    product = db.get(Product, record.product_id) if record.product_id else None
    if product is None:
        product = normalization.find_product_by_name(db, record.product_name)
    if product is None:
        raise RestoreError(
            "Product no longer exists in catalog", product_name=record.product_name
        )

    try:
        entry = upsert_open_entry(db, product.id, record.quantity)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(entry)
    logger.info(f"Restored '{record.product_name}' x{record.quantity} from history")
    return entry


def list_history(db: Session, status: Optional[str] = None, limit: int = 100) -> List[HistoryRecord]:
    query = db.query(HistoryRecord)
    if status:
        query = query.filter(HistoryRecord.status == status)
    return query.order_by(HistoryRecord.completed_at.desc(), HistoryRecord.id.desc()).limit(limit).all()


def list_sessions(db: Session, limit: int = 20) -> List[Dict[str, Any]]:
    """Shopping sessions reconstructed from history, newest first."""
    rows = (
        db.query(
            HistoryRecord.session_id,
            func.min(HistoryRecord.completed_at).label("started_at"),
            func.max(HistoryRecord.completed_at).label("ended_at"),
            func.count(HistoryRecord.id).label("item_count"),
            func.sum(case((HistoryRecord.status == EntryStatus.FOUND.value, 1), else_=0)).label("found_count"),
            func.sum(case((HistoryRecord.status == EntryStatus.NOT_FOUND.value, 1), else_=0)).label("not_found_count"),
        )
        .group_by(HistoryRecord.session_id)
        .order_by(func.max(HistoryRecord.completed_at).desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "session_id": row.session_id,
            "started_at": row.started_at,
            "ended_at": row.ended_at,
            "item_count": row.item_count,
            "found_count": int(row.found_count or 0),
            "not_found_count": int(row.not_found_count or 0),
        }
        for row in rows
    ]


def get_session_items(db: Session, session_id: str) -> List[HistoryRecord]:
    return (
        db.query(HistoryRecord)
        .filter(HistoryRecord.session_id == session_id)
        .order_by(HistoryRecord.completed_at, HistoryRecord.id)
        .all()
    )


def clear_history(db: Session) -> int:
    deleted = db.query(HistoryRecord).delete(synchronize_session=False)
    db.commit()
    return deleted
