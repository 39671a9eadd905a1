"""Durable key-value store shared by the capture and consumer contexts."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from .db import KeyValueEntry, session_scope

logger = logging.getLogger(__name__)


class StoreKeys:
    """Keys the pipeline reads and writes; everything else belongs to the settings editor."""

    PENDING_CAPTURE = "pendingCapture"
    LAST_EXTRACTED_TEXT = "lastExtractedText"
    LAST_PREVIEW_IMAGE = "lastPreviewImage"
    LAST_AI_RESPONSE = "lastAiResponse"
    OCR_SERVICE_CONFIG = "ocrServiceConfig"
    AI_SERVICE_CONFIG = "aiServiceConfig"

    ALL = (
        PENDING_CAPTURE,
        LAST_EXTRACTED_TEXT,
        LAST_PREVIEW_IMAGE,
        LAST_AI_RESPONSE,
        OCR_SERVICE_CONFIG,
        AI_SERVICE_CONFIG,
    )


class KeyValueStore:
    """JSON values addressed by string keys, persisted through SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self._session_factory = session_factory

    def get(self, key: str, default: Any = None) -> Any:
        with session_scope(self._session_factory) as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                return default
            return json.loads(entry.value)

    def get_many(self, keys: Iterable[str]) -> Dict[str, Any]:
        keys = list(keys)
        with session_scope(self._session_factory) as session:
            rows = session.execute(select(KeyValueEntry).where(KeyValueEntry.key.in_(keys))).scalars()
            return {row.key: json.loads(row.value) for row in rows}

    def set(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        with session_scope(self._session_factory) as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=payload))
            else:
                entry.value = payload
        logger.debug("Stored value", extra={"key": key, "size": len(payload)})

    def take(self, key: str) -> Optional[Any]:
        """Read and clear ``key`` in a single statement.

        ``DELETE ... RETURNING`` makes the read and the removal one atomic
        step, so two concurrent consumers can never both receive the value.
        """

        with session_scope(self._session_factory) as session:
            raw = session.execute(
                delete(KeyValueEntry).where(KeyValueEntry.key == key).returning(KeyValueEntry.value)
            ).scalar_one_or_none()
        if raw is None:
            return None
        logger.debug("Consumed value", extra={"key": key})
        return json.loads(raw)
