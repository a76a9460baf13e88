"""Tests for RequestIDMiddleware and StaffContextMiddleware."""

import pytest
from uuid import UUID
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.testclient import TestClient

from api.middleware import RequestIDMiddleware, StaffContextMiddleware
from utils.user_context import get_current_staff_or_default


@pytest.fixture
def app():
    """Minimal FastAPI app with both middlewares."""
    app = FastAPI()
    app.add_middleware(StaffContextMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/test")
    async def test_endpoint(request: Request):
        return JSONResponse({
            "request_id": request.state.request_id,
            "staff": request.state.staff,
            "context_staff": get_current_staff_or_default(),
        })

    @app.get("/payment/receipt")
    async def receipt_endpoint():
        return JSONResponse({"context_staff": get_current_staff_or_default()})

    return app


@pytest.fixture
def client(app):
    return TestClient(app, headers={"X-Staff-Id": "cashier@workshop.test"})


class TestRequestIDMiddleware:
    """Tests for RequestIDMiddleware."""

    def test_response_has_request_id_header(self, client):
        """Response includes X-Request-ID header."""
        response = client.get("/test")

        assert "X-Request-ID" in response.headers
        # Should be a valid UUID
        UUID(response.headers["X-Request-ID"])

    def test_request_state_has_request_id(self, client):
        """request.state.request_id is set and matches header."""
        response = client.get("/test")

        assert response.headers["X-Request-ID"] == response.json()["request_id"]

    def test_each_request_gets_unique_id(self, client):
        """Different requests get different IDs."""
        r1 = client.get("/test")
        r2 = client.get("/test")

        assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


class TestStaffContextMiddleware:
    """Tests for StaffContextMiddleware."""

    def test_sets_staff_for_request(self, client):
        body = client.get("/test").json()

        assert body["staff"] == "cashier@workshop.test"
        assert body["context_staff"] == "cashier@workshop.test"

    def test_missing_header_returns_401(self, app):
        response = TestClient(app).get("/test")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "NOT_AUTHENTICATED"

    def test_blank_header_returns_401(self, app):
        response = TestClient(app).get("/test", headers={"X-Staff-Id": "   "})
        assert response.status_code == 401

    def test_public_path_runs_as_system(self, app):
        response = TestClient(app).get("/payment/receipt")

        assert response.status_code == 200
        assert response.json()["context_staff"] == "system"

    def test_rejection_carries_request_id(self, app):
        response = TestClient(app).get("/test")

        assert response.json()["meta"]["request_id"] == response.headers["X-Request-ID"]
