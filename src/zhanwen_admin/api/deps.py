"""Shared request dependencies."""

from typing import AsyncGenerator

import httpx

from ..settings import settings


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Outbound HTTP client for provider calls, closed after the request."""
    async with httpx.AsyncClient(timeout=settings.upstream_timeout_seconds) as client:
        yield client
