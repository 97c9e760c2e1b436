"""
Product and ProductAlias database models.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.orm import relationship, validates

from groceries.database import Base
from groceries.models.category import catalog_key


class Product(Base):
    """Catalog product; the target every list entry points to."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    name_key = Column(String(200), nullable=False, unique=True, index=True)
    category_id = Column(
        Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    category = relationship("Category", back_populates="products")
    aliases = relationship("ProductAlias", back_populates="product", cascade="all, delete-orphan")

    @validates("name")
    def _sync_name_key(self, key, value):
        self.name_key = catalog_key(value)
        return value


class ProductAlias(Base):
    """Alternate spelling (or language) mapped to exactly one product."""

    __tablename__ = "product_aliases"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(
        Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Stored already folded through catalog_key
    alias = Column(String(200), nullable=False, unique=True, index=True)

    # Relationships
    product = relationship("Product", back_populates="aliases")
