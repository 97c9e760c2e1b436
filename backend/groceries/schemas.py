import re
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from groceries.models.list_entry import EntryStatus

CATEGORY_NAME_MAX = 100
PRODUCT_NAME_MAX = 200
NOTE_MAX = 500

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def clean_catalog_name(value: Any, max_length: int = PRODUCT_NAME_MAX) -> str:
    """
    Sanitize a category/product name before it reaches the catalog.

    Used for user edits and for names coming back from the grocery parser.
    """
    if not isinstance(value, str):
        raise ValueError("name must be a string")
    cleaned = " ".join(_CONTROL_CHARS.sub(" ", value).split())
    if not cleaned:
        raise ValueError("name must not be empty")
    if len(cleaned) > max_length:
        raise ValueError(f"name longer than {max_length} characters")
    return cleaned


def coerce_quantity(value: Any) -> int:
    """Positive integer quantity, 1 when missing or unusable."""
    if isinstance(value, bool) or value is None:
        return 1
    if isinstance(value, (int, float)):
        try:
            quantity = int(value)
        except (OverflowError, ValueError):
            return 1
        return quantity if quantity >= 1 else 1
    if isinstance(value, str):
        match = re.match(r"\s*([0-9]+)", value)
        if match:
            quantity = int(match.group(1))
            return quantity if quantity >= 1 else 1
    return 1


# --- Grocery parser output ---
class ParsedGroceryItem(BaseModel):
    """One item returned by the external grocery parser, after validation."""

    article: str
    quantity: int = 1
    category: str

    @field_validator("article", mode="before")
    @classmethod
    def _clean_article(cls, v):
        return clean_catalog_name(v, PRODUCT_NAME_MAX)

    @field_validator("category", mode="before")
    @classmethod
    def _clean_category(cls, v):
        return clean_catalog_name(v, CATEGORY_NAME_MAX)

    @field_validator("quantity", mode="before")
    @classmethod
    def _coerce_quantity(cls, v):
        return coerce_quantity(v)


# --- Grocery list ---
class ParseRequest(BaseModel):
    text: str = Field(..., min_length=1)

    @field_validator("text")
    @classmethod
    def _not_blank(cls, v):
        if not v.strip():
            raise ValueError("text must contain at least one item")
        return v


class AddItemRequest(BaseModel):
    product_id: int = Field(..., ge=1)
    quantity: int = Field(1, ge=1)
    note: Optional[str] = Field(None, max_length=NOTE_MAX)


class UpdateEntryRequest(BaseModel):
    quantity: Optional[int] = Field(None, ge=1)
    note: Optional[str] = Field(None, max_length=NOTE_MAX)
    status: Optional[EntryStatus] = None


class StatusUpdateRequest(BaseModel):
    status: EntryStatus


class ListEntryResponse(BaseModel):
    id: int
    product_id: int
    product_name: Optional[str] = None
    category_name: Optional[str] = None
    category_icon: Optional[str] = None
    quantity: int
    status: EntryStatus
    batch_id: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ParseStatsResponse(BaseModel):
    total: int
    from_cache: int
    from_ai: int


class ParseResponse(BaseModel):
    batch_id: str
    items: List[ListEntryResponse]
    stats: ParseStatsResponse


class GroceryListResponse(BaseModel):
    all_items: List[ListEntryResponse]
    active_items: List[ListEntryResponse]
    found_items: List[ListEntryResponse]
    grouped: Dict[str, List[ListEntryResponse]]
    category_info: Dict[str, Dict[str, str]]


class CompleteShoppingResponse(BaseModel):
    session_id: str
    archived_count: int
    found_count: int
    not_found_count: int


class MessageResponse(BaseModel):
    message: str


# --- History ---
class HistoryRecordResponse(BaseModel):
    id: int
    product_id: Optional[int] = None
    product_name: str
    category_name: Optional[str] = None
    quantity: int
    status: str
    session_id: str
    completed_at: datetime

    class Config:
        from_attributes = True


class SessionSummaryResponse(BaseModel):
    session_id: str
    started_at: datetime
    ended_at: datetime
    item_count: int
    found_count: int
    not_found_count: int
