"""Pytest configuration for test isolation.

The database client keeps one process-wide engine bound to the first URL it
sees, and ``get_engine`` refuses a different URL afterwards. Every test that
bootstraps its own SQLite file therefore needs a fresh client; an autouse
fixture disposes the shared engine around each test and removes any
``DATABASE_URL`` / ``MEMBER_LEDGER_*`` settings inherited from the developer's
shell so environment-driven defaults are deterministic.
"""

from __future__ import annotations

import os

import pytest
from ledger_db.client import reset_engine


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch):
    for name in list(os.environ):
        if name == "DATABASE_URL" or name.startswith("MEMBER_LEDGER_"):
            monkeypatch.delenv(name, raising=False)
    reset_engine()
    yield
    reset_engine()
