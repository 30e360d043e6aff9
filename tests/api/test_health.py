"""Tests for the health check endpoint."""
from collections.abc import AsyncGenerator

from httpx import AsyncClient
from sqlalchemy.exc import OperationalError


async def test_health_endpoint_returns_200(client: AsyncClient) -> None:
    """Test that the health endpoint returns 200 OK."""
    response = await client.get("/health")
    assert response.status_code == 200


async def test_health_endpoint_returns_healthy_status(client: AsyncClient) -> None:
    """Test that the health endpoint reports a reachable database."""
    response = await client.get("/health")
    data = response.json()
    assert data == {"status": "healthy", "database": "healthy"}


async def test_health_endpoint_reports_degraded_when_database_fails(
    client: AsyncClient,
) -> None:
    """A failing database query is reported as degraded, not as a 500."""
    from page_history.api.main import app
    from page_history.db.session import get_async_session

    class UnreachableSession:
        async def execute(self, *_args: object, **_kwargs: object) -> None:
            raise OperationalError("SELECT 1", {}, ConnectionRefusedError("refused"))

    async def override_get_async_session() -> AsyncGenerator[UnreachableSession]:
        yield UnreachableSession()

    app.dependency_overrides[get_async_session] = override_get_async_session

    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "degraded", "database": "unhealthy"}
