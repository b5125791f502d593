"""
Pytest configuration and shared fixtures for the rpcbridge test suite.

This module provides common fixtures for building APIs, driving requests
through them, and streaming bodies in chunks.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from rpcbridge import Api, Request, Response, TestClient  # noqa: E402


# ============================================================================
# Function-level fixtures
# ============================================================================

@pytest.fixture
def api() -> Api:
    """Provide an empty API without a base path."""
    return Api()


@pytest.fixture
def client(api: Api) -> TestClient:
    """Provide an in-memory client bound to the ``api`` fixture."""
    return TestClient(api)


@pytest.fixture
def dispatch(api: Api) -> Callable[..., Response]:
    """Run one request through ``api.handle`` synchronously."""

    def run(
        method: str,
        path: str,
        body: Any = b"",
        headers: Optional[Dict[str, str]] = None,
    ) -> Response:
        return asyncio.run(api.handle(Request(method, path, headers, body)))

    return run


# ============================================================================
# Test utilities
# ============================================================================

class ChunkedBody:
    """Async byte source that records how many chunks were pulled."""

    def __init__(self, chunks: List[bytes]) -> None:
        self.chunks = list(chunks)
        self.pulled = 0
        self.closed = False

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._generate()

    async def _generate(self) -> AsyncIterator[bytes]:
        try:
            for chunk in self.chunks:
                self.pulled += 1
                yield chunk
        finally:
            self.closed = True


@pytest.fixture
def chunked() -> Callable[[List[bytes]], ChunkedBody]:
    """Build chunked async body sources."""
    return ChunkedBody


# ============================================================================
# Hooks
# ============================================================================

def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on test names."""
    for item in items:
        if "asgi" in str(item.fspath) or "client" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
        if "error" in item.name or "invalid" in item.name or "rejects" in item.name:
            item.add_marker(pytest.mark.error_handling)
