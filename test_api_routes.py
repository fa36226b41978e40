"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from api.server import create_app, status_for
from core.provisioning.errors import (
    AuthenticationFailed,
    ConflictDetected,
    NotFound,
    ProvisioningError,
    RemoteOperationFailed,
    StorageError,
)


ORG = {"X-Organization-Id": "org1"}


@pytest.fixture
def client(provisioner):
    with TestClient(create_app(provisioner)) as test_client:
        yield test_client


@pytest.mark.parametrize("error,status", [
    (NotFound("x"), 404),
    (AuthenticationFailed("x"), 502),
    (RemoteOperationFailed("x"), 502),
    (ConflictDetected("x"), 409),
    (StorageError("x"), 500),
    (ProvisioningError("x"), 500),
])
def test_status_mapping(error, status):
    assert status_for(error) == status


class TestOdooUserRoutes:

    def test_provision(self, client):
        response = client.post("/odoo/users/u1/provision", headers=ORG)

        assert response.status_code == 200
        data = response.json()
        assert data["remote_uid"] == 42
        assert data["remote_login"] == "u1@example.com"
        assert data["has_api_key"] is True
        assert data["degraded"] is True
        assert data["warnings"][0]["code"] == "GROUP_NOT_FOUND"
        assert "credential" not in data

    def test_provision_with_role(self, client, odoo):
        response = client.post("/odoo/users/u1/provision", headers=ORG, json={"role": "user"})
        assert response.status_code == 200
        assert odoo.users["u1@example.com"]["groups"] == [1, 3]

    def test_organization_header_required(self, client):
        assert client.post("/odoo/users/u1/provision").status_code == 422

    def test_unknown_user(self, client):
        response = client.post("/odoo/users/nobody/provision", headers=ORG)
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    def test_remote_auth_failure(self, client, odoo):
        odoo.auth_down = True
        response = client.post("/odoo/users/u1/provision", headers=ORG)
        assert response.status_code == 502
        assert response.json()["error"] == "AuthenticationFailed"

    def test_credentials_hidden_unless_revealed(self, client):
        client.post("/odoo/users/u1/provision", headers=ORG)

        hidden = client.get("/odoo/users/u1/credentials", headers=ORG).json()
        revealed = client.get("/odoo/users/u1/credentials", headers=ORG, params={"reveal": "true"}).json()

        assert hidden["credential"] is None
        assert hidden["has_api_key"] is True
        assert hidden["database_name"] == "acme"
        assert revealed["credential"].startswith("key-42-")

    def test_credentials_not_provisioned(self, client):
        assert client.get("/odoo/users/u1/credentials", headers=ORG).status_code == 404

    def test_web_url(self, client):
        assert client.get("/odoo/users/u1/web-url", headers=ORG).status_code == 404

        client.post("/odoo/users/u1/provision", headers=ORG)
        response = client.get("/odoo/users/u1/web-url", headers=ORG)

        assert response.json()["web_url"] == "https://odoo.test/web/login?db=acme"

    def test_exists(self, client):
        assert client.get("/odoo/users/u1/exists", headers=ORG).json()["exists"] is False
        client.post("/odoo/users/u1/provision", headers=ORG)
        assert client.get("/odoo/users/u1/exists", headers=ORG).json()["exists"] is True

    def test_deactivate(self, client, odoo):
        client.post("/odoo/users/u1/provision", headers=ORG)

        response = client.post("/odoo/users/u1/deactivate", headers=ORG)

        assert response.status_code == 200
        assert response.json() == {"local_user_id": "u1", "status": "inactive"}
        assert odoo.users["u1@example.com"]["active"] is False


class TestHealthRoutes:

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["services"]["odoo"] == "https://odoo.test"

    def test_ready_and_live(self, client):
        assert client.get("/ready").json() == {"status": "ready"}
        assert client.get("/live").json() == {"status": "alive"}

    def test_metrics(self, client):
        client.post("/odoo/users/u1/provision", headers=ORG)
        data = client.get("/metrics").json()
        assert data["sagas"]["completed"] == 1
        assert data["remote_calls"]["calls"] > 0
