"""
Catalog lookup and learning.

Resolves free-text terms to catalog products (names, then aliases, across
plural/singular variants) and teaches the catalog new products and aliases
from validated grocery-parser output.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from groceries.database import dialect_insert
from groceries.models.category import (
    Category,
    DEFAULT_ICON,
    DEFAULT_SORT_ORDER,
    catalog_key,
)
from groceries.models.product import Product, ProductAlias
from groceries.schemas import (
    CATEGORY_NAME_MAX,
    PRODUCT_NAME_MAX,
    ParsedGroceryItem,
    clean_catalog_name,
)
from groceries.services.line_parser import parse_line

logger = logging.getLogger(__name__)

# Seed data for an empty catalog (name, icon, sort order)
DEFAULT_CATEGORIES = [
    ("Fruits et légumes", "🥬", 1),
    ("Boulangerie", "🥖", 2),
    ("Produits laitiers", "🥛", 3),
    ("Viandes et Poulet", "🥩", 4),
    ("Épicerie", "🛒", 5),
    ("Surgelés", "🧊", 6),
    ("Boissons", "🥤", 7),
    ("Conserves", "🥫", 8),
    ("Hygiène", "🧴", 9),
    ("Vaiselle Jetable", "🍽️", 10),
    ("Autre", "📦", 99),
]


@dataclass
class ResolvedItem:
    """A grocery line backed by a catalog product."""
    product: Product
    quantity: int
    original_input: str


@dataclass
class UnresolvedItem:
    """A grocery line with no catalog match; goes to the grocery parser."""
    term: str
    quantity: int
    original_input: str


# --- Lookup ---

def get_plural_variants(term: str) -> List[str]:
    """
    Generate plural/singular variants of an already folded term.

    "tomates" -> ["tomates", "tomate", "tomat"], "pomme" -> ["pomme", "pommes"]
    """
    variants = [term]
    if term.endswith("s") and len(term) > 2:
        variants.append(term[:-1])
        if term.endswith("es") and len(term) > 3:
            variants.append(term[:-2])
    else:
        variants.append(term + "s")

    # dict keeps first-seen order
    return list(dict.fromkeys(variants))


def find_product_by_name(db: Session, name: str) -> Optional[Product]:
    """Exact, case-insensitive product name match."""
    return db.query(Product).filter(Product.name_key == catalog_key(name)).first()


def find_product_by_alias(db: Session, alias: str) -> Optional[Product]:
    """Exact, case-insensitive alias match."""
    return (
        db.query(Product)
        .join(ProductAlias, ProductAlias.product_id == Product.id)
        .filter(ProductAlias.alias == catalog_key(alias))
        .first()
    )


def lookup_product(db: Session, term: str) -> Optional[Product]:
    """
    Find the product a term refers to.

    Each variant is tried in order, name before alias.
    """
    normalized = catalog_key(term)
    if not normalized:
        return None

    for variant in get_plural_variants(normalized):
        product = find_product_by_name(db, variant)
        if product:
            return product

        product = find_product_by_alias(db, variant)
        if product:
            return product

    return None


def parse_lines(db: Session, lines: List[str]) -> Tuple[List[ResolvedItem], List[UnresolvedItem]]:
    """
    Split grocery lines into catalog hits and misses.

    Args:
        db: Database session
        lines: Raw lines (blank lines are skipped)

    Returns:
        (found, not_found) in input order
    """
    found: List[ResolvedItem] = []
    not_found: List[UnresolvedItem] = []

    for line in lines:
        if not line.strip():
            continue

        parsed = parse_line(line)
        product = lookup_product(db, parsed.term)

        if product:
            found.append(ResolvedItem(product, parsed.quantity, line.strip()))
            logger.info(f"Found: '{parsed.term}' -> '{product.name}'")
        else:
            not_found.append(UnresolvedItem(parsed.term, parsed.quantity, line.strip()))
            logger.info(f"Not found: '{parsed.term}'")

    logger.info(f"Lookup stats: {len(found)} found, {len(not_found)} need AI")
    return found, not_found


# --- Catalog writes ---

def get_or_create_category(db: Session, name: str) -> Tuple[Category, bool]:
    """
    Find a category by case-insensitive name or create it.

    Returns:
        (Category, created)
    """
    name = clean_catalog_name(name, CATEGORY_NAME_MAX)
    key = catalog_key(name)

    category = db.query(Category).filter(Category.name_key == key).first()
    if category:
        return category, False

    stmt = (
        dialect_insert(db, Category)
        .values(
            name=name,
            name_key=key,
            icon=DEFAULT_ICON,
            sort_order=DEFAULT_SORT_ORDER,
            created_at=datetime.utcnow(),
        )
        .on_conflict_do_nothing(index_elements=["name_key"])
    )
    result = db.execute(stmt)
    category = db.query(Category).filter(Category.name_key == key).one()
    return category, result.rowcount > 0


def get_or_create_product(db: Session, name: str, category_id: Optional[int]) -> Tuple[Product, bool]:
    """
    Find a product by case-insensitive name or create it in the given category.

    Returns:
        (Product, created)
    """
    name = clean_catalog_name(name, PRODUCT_NAME_MAX)
    key = catalog_key(name)

    product = db.query(Product).filter(Product.name_key == key).first()
    if product:
        return product, False

    now = datetime.utcnow()
    stmt = (
        dialect_insert(db, Product)
        .values(
            name=name,
            name_key=key,
            category_id=category_id,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["name_key"])
    )
    result = db.execute(stmt)
    product = db.query(Product).filter(Product.name_key == key).one()
    return product, result.rowcount > 0


def add_alias(db: Session, product: Product, alias: str) -> bool:
    """
    Attach an alias to a product.

    Aliases equal to the product's own name, or already used by any product,
    are rejected without raising.

    Returns:
        True if the alias was stored
    """
    key = catalog_key(alias or "")
    if not key or key == product.name_key:
        return False

    stmt = (
        dialect_insert(db, ProductAlias)
        .values(product_id=product.id, alias=key)
        .on_conflict_do_nothing(index_elements=["alias"])
    )
    result = db.execute(stmt)
    return result.rowcount > 0


def remove_alias(db: Session, product: Product, alias: str) -> bool:
    """Detach an alias from a product. Returns True if a row was removed."""
    deleted = (
        db.query(ProductAlias)
        .filter(
            ProductAlias.product_id == product.id,
            ProductAlias.alias == catalog_key(alias),
        )
        .delete(synchronize_session="fetch")
    )
    return deleted > 0


def list_aliases(db: Session, product: Product) -> List[str]:
    rows = (
        db.query(ProductAlias.alias)
        .filter(ProductAlias.product_id == product.id)
        .order_by(ProductAlias.alias)
        .all()
    )
    return [row.alias for row in rows]


def learn_from_parse(
    db: Session,
    parsed: ParsedGroceryItem,
    original_term: Optional[str],
) -> Tuple[Product, bool]:
    """
    Teach the catalog what the grocery parser recognised.

    Creates or reuses the category and the product (the parser's category
    wins over the stored one) and remembers the original term as an alias so
    the same spelling resolves locally next time.

    Args:
        db: Database session
        parsed: Validated parser output
        original_term: Term the user typed, quantity already stripped

    Returns:
        (Product, category_created); callers drop cached category
        vocabularies after committing when category_created is True
    """
    category, category_created = get_or_create_category(db, parsed.category)
    if category_created:
        logger.info(f"Created category: '{category.name}'")

    product, product_created = get_or_create_product(db, parsed.article, category.id)
    if product_created:
        logger.info(f"Created product: '{product.name}' [{category.name}]")
    elif product.category_id != category.id:
        logger.info(
            f"Moving product '{product.name}' to category '{category.name}'"
        )
        product.category_id = category.id
        db.flush()

    if original_term and catalog_key(original_term) != product.name_key:
        if add_alias(db, product, original_term):
            logger.info(f"Added alias: '{catalog_key(original_term)}' -> '{product.name}'")
        else:
            logger.warning(
                f"Alias '{catalog_key(original_term)}' not added to '{product.name}' (already taken)"
            )

    return product, category_created


def seed_default_categories(db: Session) -> int:
    """Insert the default categories that are missing. Returns how many were added."""
    created = 0
    for name, icon, sort_order in DEFAULT_CATEGORIES:
        stmt = (
            dialect_insert(db, Category)
            .values(
                name=name,
                name_key=catalog_key(name),
                icon=icon,
                sort_order=sort_order,
                created_at=datetime.utcnow(),
            )
            .on_conflict_do_nothing(index_elements=["name_key"])
        )
        created += db.execute(stmt).rowcount
    return created
