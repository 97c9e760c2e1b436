"""
API endpoints for the shopping history.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from groceries.database import get_db
from groceries.schemas import (
    HistoryRecordResponse,
    ListEntryResponse,
    MessageResponse,
    SessionSummaryResponse,
)
from groceries.services import shopping_service
from groceries.services.shopping_service import HistoryNotFoundError, RestoreError

router = APIRouter()


@router.get("", response_model=List[HistoryRecordResponse])
def list_history(
    status: Optional[str] = Query(None, pattern="^(found|not_found)$"),
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    """Archived items, newest first."""
    return shopping_service.list_history(db, status=status, limit=limit)


@router.get("/sessions", response_model=List[SessionSummaryResponse])
def list_sessions(limit: int = Query(20, ge=1, le=200), db: Session = Depends(get_db)):
    return shopping_service.list_sessions(db, limit=limit)


@router.get("/sessions/{session_id}", response_model=List[HistoryRecordResponse])
def get_session(session_id: str, db: Session = Depends(get_db)):
    items = shopping_service.get_session_items(db, session_id)
    if not items:
        raise HTTPException(status_code=404, detail="Session not found")
    return items


@router.post("/{history_id}/restore", response_model=ListEntryResponse)
def restore_item(history_id: int, db: Session = Depends(get_db)):
    """Put an archived item back on the list."""
    try:
        return shopping_service.restore_from_history(db, history_id)
    except HistoryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RestoreError as e:
        raise HTTPException(
            status_code=400,
            detail={"message": str(e), "product_name": e.product_name},
        )


@router.delete("", response_model=MessageResponse)
def clear_history(db: Session = Depends(get_db)):
    deleted = shopping_service.clear_history(db)
    return {"message": f"Deleted {deleted} history items"}
