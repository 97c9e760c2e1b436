"""
ListEntry database model: one line of the shared shopping list.
"""

import enum
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import relationship

from groceries.database import Base


class EntryStatus(str, enum.Enum):
    PENDING = "pending"      # On the list, not looked for yet
    SELECTED = "selected"    # Picked in shopping mode
    FOUND = "found"          # In the cart
    NOT_FOUND = "not_found"  # Not in the shop


# Statuses moved to history by the archive operation
ARCHIVABLE_STATUSES = (EntryStatus.FOUND, EntryStatus.NOT_FOUND)

# Rows matching this predicate are "open" for merging purposes
OPEN_ENTRY_PREDICATE = text("status != 'found'")


class ListEntry(Base):
    """Grocery item on the shared list."""

    __tablename__ = "list_entries"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_list_entry_quantity_positive"),
        # At most one open entry per product
        Index(
            "uq_list_entry_open_product",
            "product_id",
            unique=True,
            sqlite_where=OPEN_ENTRY_PREDICATE,
            postgresql_where=OPEN_ENTRY_PREDICATE,
        ),
        Index("idx_list_entry_status", "status"),
        Index("idx_list_entry_batch", "batch_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    quantity = Column(Integer, nullable=False, default=1)
    status = Column(
        Enum(
            EntryStatus,
            name="entry_status",
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=EntryStatus.PENDING,
    )
    batch_id = Column(String(16), nullable=True)
    note = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    product = relationship("Product", lazy="joined")

    @property
    def product_name(self):
        return self.product.name if self.product else None

    @property
    def category(self):
        return self.product.category if self.product else None

    @property
    def category_name(self):
        return self.category.name if self.category else None

    @property
    def category_icon(self):
        return self.category.icon if self.category else None

    @property
    def category_sort(self):
        return self.category.sort_order if self.category else None
