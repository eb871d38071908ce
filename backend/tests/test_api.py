"""HTTP-level tests for the response envelope and error rendering."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from taskflow.auth.dependencies import get_current_user
from taskflow.main import app
from taskflow.utils.errors import ConflictError, NotFoundError

USER = {"id": "user-1", "email": "ana@example.com", "full_name": "Ana", "role": "user"}


@pytest.fixture
def client():
    # Lifespan is not entered, so no database or scheduler is started
    return TestClient(app)


@pytest.fixture
def authed_client(client):
    app.dependency_overrides[get_current_user] = lambda: USER
    yield client
    app.dependency_overrides.clear()


def test_root(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["name"] == "TaskFlow"


def test_missing_token_is_rejected(client):
    r = client.get("/api/workspaces/")
    assert r.status_code in (401, 403)
    assert r.json()["success"] is False


def test_success_envelope(authed_client):
    workspaces = [{"id": "w1", "name": "Acme"}]
    with patch("taskflow.workspaces.service.list_workspaces", new_callable=AsyncMock,
               return_value=workspaces) as list_workspaces:
        r = authed_client.get("/api/workspaces/")

    assert r.status_code == 200
    assert r.json() == {"success": True, "message": "Workspaces retrieved", "data": workspaces}
    list_workspaces.assert_awaited_once_with("user-1", False)


def test_domain_errors_map_to_status(authed_client):
    with patch("taskflow.workspaces.service.get_workspace", new_callable=AsyncMock,
               side_effect=NotFoundError("Workspace not found")):
        r = authed_client.get("/api/workspaces/abc")
    assert r.status_code == 404
    assert r.json() == {"success": False, "message": "Workspace not found"}

    with patch("taskflow.invitations.service.accept", new_callable=AsyncMock,
               side_effect=ConflictError("Invitation is no longer pending")):
        r = authed_client.post("/api/invitations/token/tok/accept")
    assert r.status_code == 409
    assert r.json()["success"] is False


def test_request_validation_uses_envelope(authed_client):
    r = authed_client.post("/api/workspaces/", json={"name": ""})
    assert r.status_code == 422
    assert r.json()["success"] is False


def test_unhandled_error_is_hidden():
    app.dependency_overrides[get_current_user] = lambda: USER
    client = TestClient(app, raise_server_exceptions=False)
    try:
        with patch("taskflow.workspaces.service.get_workspace", new_callable=AsyncMock,
                   side_effect=RuntimeError("boom")):
            r = client.get("/api/workspaces/abc")
    finally:
        app.dependency_overrides.clear()
    assert r.status_code == 500
    assert r.json() == {"success": False, "message": "Internal server error"}
