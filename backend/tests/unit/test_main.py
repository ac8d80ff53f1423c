"""
Unit tests for main FastAPI application.

Tests the root endpoints, global exception handlers, router setup and lifespan.
"""

import pytest
from unittest.mock import Mock, patch
from fastapi.testclient import TestClient
from fastapi import Request

from main import (
    app,
    root,
    health_check,
    global_exception_handler,
    value_error_handler,
    lifespan
)


class TestRootEndpoints:
    """Test root API endpoints."""

    def test_root_endpoint(self):
        """Test the root endpoint returns correct information."""
        client = TestClient(app)
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Clinic Assistant Backend API"
        assert data["version"] == "1.0.0"
        assert data["status"] == "running"

    def test_health_endpoint(self):
        """Test the health check endpoint."""
        client = TestClient(app)
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_root_function_directly(self):
        result = await root()
        assert result == {
            "message": "Clinic Assistant Backend API",
            "version": "1.0.0",
            "status": "running"
        }

    @pytest.mark.asyncio
    async def test_health_check_function_directly(self):
        assert await health_check() == {"status": "healthy"}


class TestExceptionHandlers:
    """Test global exception handlers."""

    @pytest.mark.asyncio
    async def test_global_exception_handler(self):
        """Test handling of unhandled exceptions."""
        mock_request = Mock(spec=Request)
        test_exception = RuntimeError("Test error")

        with patch('main.logger') as mock_logger:
            response = await global_exception_handler(mock_request, test_exception)

            assert response.status_code == 500
            data = response.body
            assert "Error interno del servidor".encode('utf-8') in data
            assert b"internal_error" in data

            mock_logger.exception.assert_called_once()
            assert "Unhandled exception: Test error" in mock_logger.exception.call_args[0][0]

    @pytest.mark.asyncio
    async def test_value_error_handler(self):
        """Test handling of ValueError exceptions."""
        mock_request = Mock(spec=Request)
        test_exception = ValueError("Invalid value")

        with patch('main.logger') as mock_logger:
            response = await value_error_handler(mock_request, test_exception)

            assert response.status_code == 400
            assert b"Invalid value" in response.body
            assert b"validation_error" in response.body

            mock_logger.warning.assert_called_once_with("ValueError: Invalid value")


class TestApplicationSetup:
    """Test FastAPI application setup and configuration."""

    def test_app_creation(self):
        assert app.title == "Clinic Assistant Backend"
        assert app.version == "1.0.0"
        assert app.docs_url == "/docs"

    def test_router_inclusion(self):
        """Test that the webhook and conversation routes are mounted."""
        paths = {route.path for route in app.routes if hasattr(route, 'path')}

        assert "/api/whatsapp/webhook" in paths
        assert "/api/conversations" in paths
        assert "/api/conversations/{conversation_id}/messages" in paths

    def test_cors_headers_on_preflight_request(self):
        """Test that the companion web view origin passes CORS preflight."""
        client = TestClient(app)
        response = client.options(
            "/api/conversations",
            headers={
                "Origin": "http://localhost:5173",
                "Access-Control-Request-Method": "GET",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"


class TestLifespan:
    """Test application lifespan management."""

    @pytest.mark.asyncio
    async def test_lifespan_starts_and_stops_cleanup_scheduler(self):
        with patch('main.logger') as mock_logger, \
             patch('main.start_cleanup_scheduler') as mock_start, \
             patch('main.stop_cleanup_scheduler') as mock_stop:
            async with lifespan(app):
                mock_start.assert_awaited_once()
                mock_stop.assert_not_awaited()

            mock_stop.assert_awaited_once()
            messages = [call.args[0] for call in mock_logger.info.call_args_list]
            assert "🚀 Starting Clinic Assistant Backend API" in messages
            assert "🛑 Shutting down Clinic Assistant Backend API" in messages

    @pytest.mark.asyncio
    async def test_scheduler_failure_does_not_block_startup(self):
        with patch('main.logger'), \
             patch('main.start_cleanup_scheduler', side_effect=RuntimeError("boom")), \
             patch('main.stop_cleanup_scheduler'):
            async with lifespan(app):
                pass
