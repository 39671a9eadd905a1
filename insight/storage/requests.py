"""Ledger of OCR/AI round trips so results survive a consumer restart."""
from __future__ import annotations

import logging
from datetime import UTC, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from insight.config import get_settings
from insight.core.errors import ErrorInfo
from insight.core.models import utcnow

from .db import ServiceRequestRecord, session_scope

logger = logging.getLogger(__name__)

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
ERROR = "error"

FINISHED_STATUSES = (COMPLETED, ERROR)


def _as_aware(value):
    # SQLite drops tzinfo on round trip.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class RequestLedger:
    """Tracks the status of every service request issued by the orchestrator."""

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        *,
        recovery_window: timedelta | None = None,
        retention: timedelta | None = None,
    ) -> None:
        settings = get_settings()
        self._session_factory = session_factory
        self._recovery_window = recovery_window or timedelta(minutes=settings.request_recovery_minutes)
        self._retention = retention or timedelta(hours=settings.request_retention_hours)

    def open(self, kind: str, service: str, *, capture_handle: Optional[str] = None) -> int:
        with session_scope(self._session_factory) as session:
            record = ServiceRequestRecord(
                kind=kind,
                service=service,
                status=PROCESSING,
                capture_handle=capture_handle,
            )
            session.add(record)
            session.flush()
            request_id = int(record.id)
        logger.info("Opened service request", extra={"request_id": request_id, "kind": kind, "service": service})
        return request_id

    def complete(self, request_id: int, result: str) -> None:
        with session_scope(self._session_factory) as session:
            record = session.get(ServiceRequestRecord, request_id)
            if record is None:
                logger.warning("Unknown service request", extra={"request_id": request_id})
                return
            record.status = COMPLETED
            record.result = result
            record.completed_at = utcnow()

    def fail(self, request_id: int, error: ErrorInfo) -> None:
        with session_scope(self._session_factory) as session:
            record = session.get(ServiceRequestRecord, request_id)
            if record is None:
                logger.warning("Unknown service request", extra={"request_id": request_id})
                return
            record.status = ERROR
            record.error_kind = error.kind.value
            record.error_message = error.detail
            record.completed_at = utcnow()

    def get(self, request_id: int) -> Optional[Dict[str, Any]]:
        with session_scope(self._session_factory) as session:
            record = session.get(ServiceRequestRecord, request_id)
            return record.as_dict() if record else None

    def acknowledge(self, request_id: int) -> bool:
        with session_scope(self._session_factory) as session:
            result = session.execute(delete(ServiceRequestRecord).where(ServiceRequestRecord.id == request_id))
            return bool(result.rowcount)

    def recent(self, limit: int = 20) -> List[Dict[str, Any]]:
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(ServiceRequestRecord).order_by(ServiceRequestRecord.id.desc()).limit(limit)
            ).scalars()
            return [row.as_dict() for row in rows]

    def latest_finished(self) -> Optional[Dict[str, Any]]:
        """Most recent finished request; an errored one takes precedence over a completed one."""

        with session_scope(self._session_factory) as session:
            errored = session.execute(
                select(ServiceRequestRecord)
                .where(ServiceRequestRecord.status == ERROR)
                .order_by(ServiceRequestRecord.id.desc())
                .limit(1)
            ).scalar_one_or_none()
            if errored is not None:
                return errored.as_dict()
            completed = session.execute(
                select(ServiceRequestRecord)
                .where(ServiceRequestRecord.status == COMPLETED)
                .order_by(ServiceRequestRecord.id.desc())
                .limit(1)
            ).scalar_one_or_none()
            return completed.as_dict() if completed else None

    def recoverable(self) -> List[Dict[str, Any]]:
        """Unfinished requests young enough to be reported as still in flight."""

        cutoff = utcnow() - self._recovery_window
        with session_scope(self._session_factory) as session:
            rows = session.execute(
                select(ServiceRequestRecord)
                .where(ServiceRequestRecord.status.in_((PENDING, PROCESSING)))
                .order_by(ServiceRequestRecord.id)
            ).scalars()
            return [row.as_dict() for row in rows if _as_aware(row.created_at) >= cutoff]

    def cleanup(self) -> int:
        """Drop finished requests past retention and any request older than twice that."""

        now = utcnow()
        finished_cutoff = now - self._retention
        stale_cutoff = now - 2 * self._retention
        removed: list[int] = []
        with session_scope(self._session_factory) as session:
            rows = session.execute(select(ServiceRequestRecord)).scalars()
            for row in rows:
                created = _as_aware(row.created_at)
                finished = _as_aware(row.completed_at) or created
                if row.status in FINISHED_STATUSES and finished < finished_cutoff:
                    removed.append(row.id)
                elif created < stale_cutoff:
                    removed.append(row.id)
            if removed:
                session.execute(
                    delete(ServiceRequestRecord).where(ServiceRequestRecord.id.in_(removed))
                )
        if removed:
            logger.info("Cleaned up old service requests", extra={"count": len(removed)})
        return len(removed)
