"""Tests for middleware components."""

import pytest
from httpx import AsyncClient


class TestRequestIDMiddleware:
    """Tests for request id propagation."""

    @pytest.mark.asyncio
    async def test_generates_request_id(self, client: AsyncClient) -> None:
        """A request id is generated when none is sent."""
        response = await client.get("/api/health")

        request_id = response.headers["X-Request-ID"]
        assert len(request_id) == 32

    @pytest.mark.asyncio
    async def test_echoes_incoming_request_id(self, client: AsyncClient) -> None:
        """An incoming request id is kept."""
        response = await client.get("/api/health", headers={"X-Request-ID": "trace-123"})

        assert response.headers["X-Request-ID"] == "trace-123"

    @pytest.mark.asyncio
    async def test_request_id_on_error_responses(self, client: AsyncClient) -> None:
        """Error envelopes carry the request id header too."""
        response = await client.get(
            "/v1/graph/entities/Nobody/aliases", headers={"X-Request-ID": "trace-404"}
        )

        assert response.status_code == 404
        assert response.headers["X-Request-ID"] == "trace-404"


class TestCORS:
    """Tests for CORS configuration."""

    @pytest.mark.asyncio
    async def test_allowed_origin(self, client: AsyncClient) -> None:
        """Configured origins are allowed."""
        response = await client.options(
            "/api/health",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
