"""Shared test fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from scanhook.store.memory import MemoryStore


@pytest.fixture
def store() -> MemoryStore:
    """Fresh in-process store."""
    return MemoryStore()


@pytest.fixture
def repository() -> dict[str, Any]:
    """GitHub ``repository`` object as sent in webhook payloads."""
    return {
        "name": "widget",
        "full_name": "acme/widget",
        "html_url": "https://github.com/acme/widget",
    }
