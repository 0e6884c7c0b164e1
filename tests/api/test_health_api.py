"""Tests for the health check endpoint."""
from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient

from core.redis import RedisClient, set_redis_client


@pytest.fixture
def redis_client() -> Generator[RedisClient]:
    client = RedisClient("redis://localhost:6379")
    client._client = MagicMock()
    set_redis_client(client)
    yield client
    set_redis_client(None)


async def test__health__redis_disabled_is_healthy(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "database": "healthy", "redis": "disabled"}


async def test__health__redis_reachable_is_healthy(
    client: AsyncClient, redis_client: RedisClient,
) -> None:
    redis_client._client.ping = AsyncMock(return_value=True)

    response = await client.get("/health")

    assert response.json()["redis"] == "healthy"
    assert response.json()["status"] == "healthy"


async def test__health__redis_unreachable_is_degraded(
    client: AsyncClient, redis_client: RedisClient,
) -> None:
    redis_client.ping = AsyncMock(return_value=False)

    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["redis"] == "unhealthy"
    assert response.json()["status"] == "degraded"
