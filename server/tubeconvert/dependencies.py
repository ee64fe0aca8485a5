from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterator

from fastapi import Depends, Request, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .config import Settings, get_settings
from .providers import Provider, build_provider


@asynccontextmanager
async def redis_client(settings: Settings) -> AsyncIterator[Redis]:
    client = Redis.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    try:
        yield client
    finally:
        await client.aclose()


def build_limiter(settings: Settings) -> Limiter:
    default_limit = f"{settings.rate_limit_per_minute}/minute"
    return Limiter(
        key_func=get_remote_address,
        default_limits=[default_limit],
        storage_uri=settings.rate_limit_storage_uri,
    )


def get_provider(settings: Settings = Depends(get_settings)) -> Iterator[Provider]:
    provider = build_provider(settings)
    try:
        yield provider
    finally:
        provider.close()


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"error": f"Rate limit exceeded: {exc.detail}."},
    )
