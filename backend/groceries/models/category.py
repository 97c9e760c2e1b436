"""
Category database model.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship, validates

from groceries.database import Base

DEFAULT_ICON = "📦"
DEFAULT_SORT_ORDER = 50
FALLBACK_CATEGORY = "Autre"


def catalog_key(value: str) -> str:
    """Case-insensitive lookup key shared by category names, product names and aliases.

    Runs of whitespace fold to one space, like clean_catalog_name.
    """
    return " ".join(value.split()).lower()


class Category(Base):
    """Category model for product categorization."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    name_key = Column(String(100), nullable=False, unique=True, index=True)
    icon = Column(String(10), nullable=False, default=DEFAULT_ICON)
    sort_order = Column(Integer, nullable=False, default=DEFAULT_SORT_ORDER)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    products = relationship("Product", back_populates="category")

    @validates("name")
    def _sync_name_key(self, key, value):
        self.name_key = catalog_key(value)
        return value
