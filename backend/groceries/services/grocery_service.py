"""
Grocery list service: turns free text into list entries.

parse_and_add runs the whole pipeline in one transaction:
line parsing -> catalog lookup -> grocery parser for the misses ->
catalog learning -> merge into the open list.
"""

import logging
import secrets
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from groceries.database import dialect_insert
from groceries.models.category import DEFAULT_ICON, FALLBACK_CATEGORY
from groceries.models.list_entry import EntryStatus, ListEntry, OPEN_ENTRY_PREDICATE
from groceries.models.product import Product
from groceries.services import normalization
from groceries.services.line_parser import split_lines
from groceries.services.normalization import ResolvedItem

logger = logging.getLogger(__name__)


class GroceryError(Exception):
    """Base class for grocery list errors surfaced to the API."""


class ProductNotFoundError(GroceryError):
    pass


class EntryNotFoundError(GroceryError):
    pass


@dataclass
class ParseStats:
    total: int = 0
    from_cache: int = 0
    from_ai: int = 0


@dataclass
class ParseResult:
    batch_id: str
    items: List[ListEntry] = field(default_factory=list)
    stats: ParseStats = field(default_factory=ParseStats)


def new_batch_id() -> str:
    return secrets.token_hex(4)


def upsert_open_entry(
    db: Session,
    product_id: int,
    quantity: int,
    batch_id: Optional[str] = None,
    note: Optional[str] = None,
) -> ListEntry:
    """
    Add a quantity of a product to the list as a single statement.

    If the product already has an open entry (status != found) the quantity
    is added to it and the batch id / note replaced when given; otherwise a
    new pending entry is inserted.
    """
    if quantity < 1:
        raise ValueError("quantity must be at least 1")

    now = datetime.utcnow()
    stmt = dialect_insert(db, ListEntry).values(
        product_id=product_id,
        quantity=quantity,
        status=EntryStatus.PENDING,
        batch_id=batch_id,
        note=note,
        created_at=now,
        updated_at=now,
    )
    merge = {
        "quantity": ListEntry.quantity + stmt.excluded.quantity,
        "updated_at": stmt.excluded.updated_at,
    }
    if batch_id is not None:
        merge["batch_id"] = stmt.excluded.batch_id
    if note:
        merge["note"] = stmt.excluded.note

    stmt = stmt.on_conflict_do_update(
        index_elements=[ListEntry.product_id],
        index_where=OPEN_ENTRY_PREDICATE,
        set_=merge,
    ).returning(ListEntry.id)

    entry_id = db.execute(stmt).scalar_one()
    return db.get(ListEntry, entry_id, populate_existing=True)


def find_open_entry(db: Session, product_id: int, exclude_id: Optional[int] = None) -> Optional[ListEntry]:
    """Open (status != found) entry for a product, if any."""
    query = db.query(ListEntry).filter(
        ListEntry.product_id == product_id,
        ListEntry.status != EntryStatus.FOUND,
    )
    if exclude_id is not None:
        query = query.filter(ListEntry.id != exclude_id)
    return query.first()


def get_entry(db: Session, entry_id: int) -> ListEntry:
    entry = db.get(ListEntry, entry_id)
    if not entry:
        raise EntryNotFoundError(f"List entry {entry_id} not found")
    return entry


def parse_and_add(db: Session, grocery_text: str, parser) -> ParseResult:
    """
    Parse free text and merge the items into the shared list.

    Lines the catalog knows are resolved locally; the rest go to the grocery
    parser in one call and the catalog learns from its answer. If the parser
    fails, the whole call is rolled back and nothing is added.

    Args:
        db: Database session
        grocery_text: Raw multi-line text
        parser: GroceryParser used for unresolved lines

    Returns:
        ParseResult with the batch id, touched entries and counts
    """
    lines = split_lines(grocery_text or "")
    if not lines:
        raise ValueError("Grocery text is empty")

    try:
        found, not_found = normalization.parse_lines(db, lines)

        learned: List[ResolvedItem] = []
        categories_created = False
        if not_found:
            logger.info(f"Sending {len(not_found)} items to AI...")
            unparsed_text = "\n".join(item.original_input for item in not_found)
            parsed_items = parser.parse_grocery_items(db, unparsed_text)

            for parsed, original in zip(parsed_items, not_found):
                product, category_created = normalization.learn_from_parse(db, parsed, original.term)
                categories_created = categories_created or category_created
                # The line's own quantity wins; numbers inside the term are not quantities
                learned.append(ResolvedItem(product, original.quantity, original.original_input))
        else:
            logger.info("All items found in catalog, skipping AI")

        batch_id = new_batch_id()
        touched: "OrderedDict[int, ListEntry]" = OrderedDict()
        for item in found + learned:
            entry = upsert_open_entry(db, item.product.id, item.quantity, batch_id=batch_id)
            touched[entry.id] = entry

        db.commit()
    except Exception:
        db.rollback()
        raise

    if categories_created:
        parser.category_cache.invalidate()

    items = []
    for entry in touched.values():
        db.refresh(entry)
        items.append(entry)

    stats = ParseStats(total=len(items), from_cache=len(found), from_ai=len(learned))
    logger.info(
        f"Added batch {batch_id}: {stats.total} items ({stats.from_cache} cached, {stats.from_ai} from AI)"
    )
    return ParseResult(batch_id=batch_id, items=items, stats=stats)


def add_item_by_product(db: Session, product_id: int, quantity: int = 1, note: Optional[str] = None) -> ListEntry:
    """Add a catalog product to the list, merging into its open entry if there is one."""
    if quantity < 1:
        raise ValueError("quantity must be at least 1")

    product = db.get(Product, product_id)
    if not product:
        raise ProductNotFoundError(f"Product {product_id} not found")

    try:
        entry = upsert_open_entry(db, product.id, quantity, note=note)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(entry)
    return entry


def get_all_items_sorted(db: Session) -> Dict[str, Any]:
    """
    All list entries plus the active ones grouped by category.

    Active means status != found; groups follow the category sort order.
    """
    all_items = db.query(ListEntry).order_by(ListEntry.created_at, ListEntry.id).all()
    all_items.sort(key=lambda e: (e.category_sort if e.category_sort is not None else 99, (e.product_name or "").lower()))

    found_items = [e for e in all_items if e.status == EntryStatus.FOUND]
    active_items = [e for e in all_items if e.status != EntryStatus.FOUND]

    groups: Dict[str, Dict[str, Any]] = {}
    for entry in active_items:
        name = entry.category_name or FALLBACK_CATEGORY
        group = groups.setdefault(
            name,
            {
                "items": [],
                "icon": entry.category_icon or DEFAULT_ICON,
                "sort_order": entry.category_sort if entry.category_sort is not None else 99,
            },
        )
        group["items"].append(entry)

    ordered = sorted(groups.items(), key=lambda kv: kv[1]["sort_order"])
    return {
        "all_items": all_items,
        "active_items": active_items,
        "found_items": found_items,
        "grouped": OrderedDict((name, g["items"]) for name, g in ordered),
        "category_info": {name: {"icon": g["icon"]} for name, g in ordered},
    }


def delete_entry(db: Session, entry_id: int) -> None:
    entry = get_entry(db, entry_id)
    db.delete(entry)
    db.commit()


def delete_batch(db: Session, batch_id: str) -> int:
    """Cancel a parse batch. Returns the number of entries removed."""
    deleted = (
        db.query(ListEntry)
        .filter(ListEntry.batch_id == batch_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    logger.info(f"Deleted batch {batch_id}: {deleted} items")
    return deleted


def clear_found(db: Session) -> int:
    """Drop found entries without archiving them."""
    deleted = (
        db.query(ListEntry)
        .filter(ListEntry.status == EntryStatus.FOUND)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted
