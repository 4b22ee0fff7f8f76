"""Shared fixtures for the test suite."""

from __future__ import annotations

import pytest

from es32_scheduler import database


@pytest.fixture(autouse=True)
def in_memory_drafts(monkeypatch: pytest.MonkeyPatch):
    """Keep drafts out of the user's home directory during tests."""
    monkeypatch.setenv("ES32_DRAFT_DB_URL", "memory")
    database.get_database_settings.cache_clear()
    yield
    database.get_database_settings.cache_clear()
