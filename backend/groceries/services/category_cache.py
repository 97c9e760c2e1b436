"""
Time-bounded cache of category names offered to the grocery parser.
"""

import logging
import time
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from groceries.models.category import Category, FALLBACK_CATEGORY

logger = logging.getLogger(__name__)


def load_category_names(db: Session) -> List[str]:
    rows = db.query(Category.name).order_by(Category.sort_order, Category.name).all()
    return [row.name for row in rows]


class CategoryCache:
    """
    Category vocabulary with a TTL.

    Call invalidate() whenever a category is created, renamed or deleted.
    """

    def __init__(
        self,
        ttl: float = 300.0,
        loader: Callable[[Session], List[str]] = load_category_names,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._loader = loader
        self._clock = clock
        self._names: Optional[List[str]] = None
        self._expires_at: Optional[float] = None

    def get(self, db: Session) -> List[str]:
        now = self._clock()
        if self._names is not None and self._expires_at is not None and now < self._expires_at:
            return list(self._names)

        try:
            names = self._loader(db)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load categories for the grocery parser: {e}")
            return list(self._names) if self._names else [FALLBACK_CATEGORY]

        self._names = names
        self._expires_at = now + self.ttl
        return list(names)

    def invalidate(self) -> None:
        self._names = None
        self._expires_at = None
