"""
API endpoints for the shared grocery list and shopping mode.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from groceries.config import settings
from groceries.database import get_db
from groceries.dependencies import get_grocery_parser, limiter
from groceries.schemas import (
    AddItemRequest,
    CompleteShoppingResponse,
    GroceryListResponse,
    ListEntryResponse,
    MessageResponse,
    ParseRequest,
    ParseResponse,
    StatusUpdateRequest,
    UpdateEntryRequest,
)
from groceries.services import grocery_service, parser_log_service, shopping_service
from groceries.services.grocery_service import EntryNotFoundError, ProductNotFoundError
from groceries.services.llm_service import GroceryParser, ParserError, NOT_INITIALIZED
from groceries.services.shopping_service import ArchiveError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=GroceryListResponse)
def get_groceries(db: Session = Depends(get_db)):
    """Whole list, active entries grouped by category."""
    return grocery_service.get_all_items_sorted(db)


@router.post("/parse", response_model=ParseResponse)
@limiter.limit(settings.PARSE_RATE_LIMIT)
def parse_groceries(
    request: Request,
    body: ParseRequest,
    db: Session = Depends(get_db),
    parser: GroceryParser = Depends(get_grocery_parser),
):
    """Parse free text and add every line to the list."""
    try:
        result = grocery_service.parse_and_add(db, body.text, parser)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ParserError as e:
        status_code = 503 if e.kind == NOT_INITIALIZED else 502
        raise HTTPException(
            status_code=status_code,
            detail={"message": str(e), "kind": e.kind},
        )

    return {
        "batch_id": result.batch_id,
        "items": result.items,
        "stats": {
            "total": result.stats.total,
            "from_cache": result.stats.from_cache,
            "from_ai": result.stats.from_ai,
        },
    }


@router.post("", response_model=ListEntryResponse)
def add_item(body: AddItemRequest, db: Session = Depends(get_db)):
    """Add a catalog product to the list."""
    try:
        return grocery_service.add_item_by_product(db, body.product_id, body.quantity, body.note)
    except ProductNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/{entry_id}", response_model=ListEntryResponse)
def update_item(entry_id: int, body: UpdateEntryRequest, db: Session = Depends(get_db)):
    try:
        return shopping_service.update_entry(
            db, entry_id, quantity=body.quantity, note=body.note, status=body.status
        )
    except EntryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.patch("/{entry_id}/status", response_model=ListEntryResponse)
def update_item_status(entry_id: int, body: StatusUpdateRequest, db: Session = Depends(get_db)):
    """Shopping mode status change."""
    try:
        return shopping_service.update_status(db, entry_id, body.status)
    except EntryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{entry_id}", response_model=MessageResponse)
def delete_item(entry_id: int, db: Session = Depends(get_db)):
    try:
        grocery_service.delete_entry(db, entry_id)
    except EntryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"message": "Item deleted"}


@router.delete("/batch/{batch_id}", response_model=MessageResponse)
def delete_batch(batch_id: str, db: Session = Depends(get_db)):
    """Cancel everything added by one parse."""
    deleted = grocery_service.delete_batch(db, batch_id)
    return {"message": f"Deleted {deleted} items"}


@router.post("/complete-shopping", response_model=CompleteShoppingResponse)
def complete_shopping(db: Session = Depends(get_db)):
    """Archive found / not found entries into history."""
    try:
        return shopping_service.complete_shopping(db)
    except ArchiveError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.delete("/status/found", response_model=MessageResponse)
def clear_found(db: Session = Depends(get_db)):
    deleted = grocery_service.clear_found(db)
    return {"message": f"Deleted {deleted} found items"}


@router.post("/reset-selection", response_model=MessageResponse)
def reset_selection(db: Session = Depends(get_db)):
    updated = shopping_service.reset_selection(db)
    return {"message": f"Reset {updated} selected items"}


@router.get("/ai-stats")
def get_ai_stats(
    hours_back: int = 24,
    db: Session = Depends(get_db),
    parser: GroceryParser = Depends(get_grocery_parser),
):
    """Live parser usage plus the persisted call log summary."""
    return {
        "live": parser.get_stats(),
        "logged": parser_log_service.get_log_stats(db, hours_back=hours_back),
        "recent_failures": [
            {
                "id": log.id,
                "error_type": log.error_type,
                "error_message": log.error_message,
                "created_at": log.created_at,
            }
            for log in parser_log_service.find_failed_logs(db, limit=5)
        ],
    }
