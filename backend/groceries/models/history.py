"""
HistoryRecord database model: immutable snapshot of an archived list entry.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from groceries.database import Base


class HistoryRecord(Base):
    """
    Archived grocery item.

    Product and category names are copied at archive time so the record stays
    readable after the catalog changes; product_id is nulled if the product is
    deleted later.
    """

    __tablename__ = "grocery_history"
    __table_args__ = (
        Index("idx_history_session", "session_id"),
        Index("idx_history_completed", "completed_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True
    )
    product_name = Column(String(200), nullable=False)
    category_name = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False)  # found, not_found
    session_id = Column(String(16), nullable=False)
    completed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
