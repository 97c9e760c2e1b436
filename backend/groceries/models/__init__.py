"""
Database models for the grocery list service.

All SQLAlchemy models are imported here so Base.metadata sees every table.
"""

from groceries.models.category import Category
from groceries.models.product import Product, ProductAlias
from groceries.models.list_entry import ListEntry, EntryStatus
from groceries.models.history import HistoryRecord
from groceries.models.parser_log import ParserLog

__all__ = [
    "Category",
    "Product",
    "ProductAlias",
    "ListEntry",
    "EntryStatus",
    "HistoryRecord",
    "ParserLog",
]
