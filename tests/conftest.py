"""Shared test fixtures."""

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest


def make_response(status: int = 200, body: Any = None, reason: str = "OK") -> AsyncMock:
    """Create a mock aiohttp response usable as an async context manager."""
    text = body if isinstance(body, str) else ("" if body is None else json.dumps(body))
    resp = AsyncMock()
    resp.status = status
    resp.reason = reason
    resp.text = AsyncMock(return_value=text)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


@pytest.fixture
def http():
    """Factory for a mock aiohttp.ClientSession returning one canned response."""

    def _make(status: int = 200, body: Any = None, reason: str = "OK") -> MagicMock:
        session = MagicMock()
        session.closed = False
        session.request = MagicMock(return_value=make_response(status, body, reason))
        return session

    return _make
