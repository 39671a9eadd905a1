"""Shared fixtures for the InSight test-suite."""
from __future__ import annotations

import pytest

from insight.storage import KeyValueStore, RequestLedger, create_session_factory


@pytest.fixture()
def session_factory(tmp_path):
    return create_session_factory(f"sqlite:///{(tmp_path / 'insight.db').as_posix()}")


@pytest.fixture()
def store(session_factory) -> KeyValueStore:
    return KeyValueStore(session_factory)


@pytest.fixture()
def ledger(session_factory) -> RequestLedger:
    return RequestLedger(session_factory)
