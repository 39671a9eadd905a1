"""Durable storage for capture bundles, results and request bookkeeping."""

from .db import Base, KeyValueEntry, ServiceRequestRecord, create_session_factory, get_session_factory, session_scope
from .requests import RequestLedger
from .store import KeyValueStore, StoreKeys

__all__ = [
    "Base",
    "KeyValueEntry",
    "ServiceRequestRecord",
    "create_session_factory",
    "get_session_factory",
    "session_scope",
    "RequestLedger",
    "KeyValueStore",
    "StoreKeys",
]
