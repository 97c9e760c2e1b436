"""
Usage tracking for the grocery parser.

Every parser call is recorded twice: in a rolling in-process window (for the
live usage panel) and as a ParserLog row written through its own session, so
the audit row survives a rollback of the request that made the call.
Recording never raises.
"""

import logging
import threading
import time
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from groceries.config import settings
from groceries.models.parser_log import ParserLog

logger = logging.getLogger(__name__)


def estimate_tokens(text: Optional[str]) -> int:
    """Rough token estimate (~4 characters per token)."""
    if not text:
        return 0
    return -(-len(text) // 4)


class ParserStats:
    """Rolling one-hour window of parser calls kept in memory."""

    WINDOW_SECONDS = 3600

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._history = deque()
        self.total_requests = 0
        self.total_tokens = 0

    def track(self, input_tokens: int = 0, output_tokens: int = 0, success: bool = True) -> None:
        now = self._clock()
        with self._lock:
            self._history.append((now, input_tokens, output_tokens, success))
            self.total_requests += 1
            self.total_tokens += input_tokens + output_tokens
            self._prune(now)

    def _prune(self, now: float) -> None:
        cutoff = now - self.WINDOW_SECONDS
        while self._history and self._history[0][0] <= cutoff:
            self._history.popleft()

    def snapshot(self, is_initialized: bool, model: str) -> Dict[str, Any]:
        now = self._clock()
        with self._lock:
            self._prune(now)
            last_hour = list(self._history)
        last_minute = [r for r in last_hour if r[0] > now - 60]

        minute_tokens = sum(r[1] + r[2] for r in last_minute)
        hour_tokens = sum(r[1] + r[2] for r in last_hour)

        return {
            "is_initialized": is_initialized,
            "model": model,
            "requests_last_minute": len(last_minute),
            "requests_last_hour": len(last_hour),
            "total_requests_all_time": self.total_requests,
            "tokens_last_minute": minute_tokens,
            "tokens_last_hour": hour_tokens,
            "total_tokens_all_time": self.total_tokens,
            "successful_last_hour": sum(1 for r in last_hour if r[3]),
            "failed_last_hour": sum(1 for r in last_hour if not r[3]),
        }


class ParserCallRecorder:
    """Writes parser call outcomes to the log table and the in-memory stats."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        stats: Optional[ParserStats] = None,
        input_limit: int = settings.PARSER_LOG_INPUT_LIMIT,
        error_limit: int = settings.PARSER_LOG_ERROR_LIMIT,
    ):
        self.session_factory = session_factory
        self.stats = stats or ParserStats()
        self.input_limit = input_limit
        self.error_limit = error_limit

    def record(
        self,
        request_type: str,
        input_text: Optional[str],
        success: bool,
        input_tokens: int = 0,
        output_tokens: int = 0,
        response_time_ms: Optional[int] = None,
        error_type: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> Optional[ParserLog]:
        if success:
            logger.info(
                f"Parser call ok: {request_type}, ~{input_tokens} in / ~{output_tokens} out tokens, "
                f"{response_time_ms} ms"
            )
        else:
            logger.error(
                f"Parser call failed: {request_type} [{error_type}] {error_message} ({response_time_ms} ms)"
            )

        try:
            self.stats.track(input_tokens, output_tokens, success)
        except Exception as e:
            logger.error(f"Failed to update parser stats: {e}")

        if self.session_factory is None:
            return None

        try:
            db = self.session_factory()
            try:
                entry = ParserLog(
                    request_type=request_type[:50],
                    input_text=input_text[: self.input_limit] if input_text else None,
                    success=success,
                    error_message=error_message[: self.error_limit] if error_message else None,
                    error_type=error_type[:100] if error_type else None,
                    input_tokens=input_tokens or 0,
                    output_tokens=output_tokens or 0,
                    response_time_ms=response_time_ms,
                )
                db.add(entry)
                db.commit()
                db.refresh(entry)
                return entry
            finally:
                db.close()
        except Exception as e:
            # Logging must never break the grocery flow
            logger.error(f"Failed to save parser log to database: {e}")
            return None


def find_recent_logs(db: Session, limit: int = 50) -> List[ParserLog]:
    return db.query(ParserLog).order_by(ParserLog.created_at.desc(), ParserLog.id.desc()).limit(limit).all()


def find_failed_logs(db: Session, limit: int = 20) -> List[ParserLog]:
    return (
        db.query(ParserLog)
        .filter(ParserLog.success.is_(False))
        .order_by(ParserLog.created_at.desc(), ParserLog.id.desc())
        .limit(limit)
        .all()
    )


def get_log_stats(db: Session, hours_back: int = 24) -> Dict[str, Any]:
    """Aggregate the persisted parser log over the last N hours."""
    since = datetime.utcnow() - timedelta(hours=hours_back)
    row = (
        db.query(
            func.count(ParserLog.id).label("total_requests"),
            func.sum(case((ParserLog.success.is_(True), 1), else_=0)).label("successful"),
            func.sum(case((ParserLog.success.is_(False), 1), else_=0)).label("failed"),
            func.coalesce(func.sum(ParserLog.input_tokens), 0).label("total_input_tokens"),
            func.coalesce(func.sum(ParserLog.output_tokens), 0).label("total_output_tokens"),
            func.avg(
                case((ParserLog.success.is_(True), ParserLog.response_time_ms), else_=None)
            ).label("avg_response_time_ms"),
        )
        .filter(ParserLog.created_at > since)
        .one()
    )
    return {
        "hours_back": hours_back,
        "total_requests": row.total_requests or 0,
        "successful": int(row.successful or 0),
        "failed": int(row.failed or 0),
        "total_input_tokens": int(row.total_input_tokens or 0),
        "total_output_tokens": int(row.total_output_tokens or 0),
        "avg_response_time_ms": float(row.avg_response_time_ms or 0),
    }


def cleanup_logs(db: Session, days_to_keep: int = settings.PARSER_LOG_RETENTION_DAYS) -> int:
    """Delete log rows older than the retention window. Returns the number removed."""
    cutoff = datetime.utcnow() - timedelta(days=days_to_keep)
    deleted = (
        db.query(ParserLog)
        .filter(ParserLog.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted
