"""
Integration tests for the device activation flow.

Tests the full flow through the API with a real database. The external
collaborators (token, registration, association, notification services)
are served by an httpx.MockTransport installed as the shared client.
Requires PostgreSQL to be running (via docker-compose).
"""

import httpx
import pytest
from fastapi.testclient import TestClient
from psycopg_pool import ConnectionPool
from pydantic import SecretStr

from src.api.main import app
from src.config.settings import Settings, get_settings
from tests.fakes import QUALIFIER_SECRET, make_qualifier
from tests.seed import create_factory_record

pytestmark = pytest.mark.integration

VIN = "1HGCM82633A004352"
SERIAL = "SN-FLOW-0001"
TOKEN_URL = "http://auth.test/oauth2/token"


def _collaborators(calls: list) -> httpx.Client:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.path))
        if str(request.url) == TOKEN_URL:
            return httpx.Response(200, json={"access_token": "tok"})
        if request.method == "POST" and request.url.path == "/oauth2/clients":
            return httpx.Response(201)
        return httpx.Response(200)

    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def calls() -> list:
    return []


@pytest.fixture
def client(pool: ConnectionPool, calls: list):
    """Create test client with real database and mocked collaborators."""
    settings = Settings(
        qualifier_secret_key=SecretStr(QUALIFIER_SECRET),
        token_url=TOKEN_URL,
        registration_base_url="http://auth.test/oauth2/clients",
        association_base_url="http://association.test",
        notification_base_url=None,
    )
    app.state.pool = pool
    app.state.http_client = _collaborators(calls)
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _activate(client: TestClient, version: str = "v3", **extra) -> httpx.Response:
    body = {
        "vin": VIN,
        "serialNumber": SERIAL,
        "qualifier": make_qualifier(VIN, SERIAL),
        "hwVersion": "HW1",
        "swVersion": "SW1",
        **extra,
    }
    return client.post(f"/{version}/device/activate", json=body)


class TestActivationFlow:
    """Integration tests for activation, reactivation and deactivation."""

    def test_first_activation_then_reactivation(self, pool: ConnectionPool, client: TestClient, calls: list) -> None:
        """Reactivation keeps the identity and issues a new passcode."""
        create_factory_record(pool, SERIAL)

        first = _activate(client)
        assert first.status_code == 200
        device_id = first.json()["deviceId"]
        assert device_id.startswith("HU")
        assert ("POST", "/oauth2/clients") in calls

        second = _activate(client)
        assert second.status_code == 200
        assert second.json()["deviceId"] == device_id
        assert second.json()["passcode"] != first.json()["passcode"]
        assert ("DELETE", f"/oauth2/clients/{device_id}") in calls
        assert ("PUT", f"/oauth2/clients/{device_id}") in calls

    def test_type_aware_activation(self, pool: ConnectionPool, client: TestClient) -> None:
        create_factory_record(pool, SERIAL, device_type="dongle")

        response = _activate(client, "v4", deviceType="tcu")

        assert response.status_code == 200
        assert response.json()["deviceId"].startswith("TC")
        with pool.connection() as conn:
            device_type = conn.execute(
                "SELECT device_type FROM factory_data WHERE serial_number = %s", (SERIAL,)
            ).fetchone()[0]
        assert device_type == "tcu"

    def test_unassociated_device_is_provisioned_alive(self, pool: ConnectionPool, client: TestClient) -> None:
        create_factory_record(pool, SERIAL, state="PROVISIONED")

        response = _activate(client)

        assert response.status_code == 412
        assert response.json()["provisionedAlive"] is True
        assert response.json()["code"] == "dauth-003"

        again = _activate(client)
        assert again.status_code == 412
        assert again.json()["detail"]["code"] == "dauth-011"

    def test_stolen_device_rejected(self, pool: ConnectionPool, client: TestClient) -> None:
        create_factory_record(pool, SERIAL, stolen=True)

        response = _activate(client)

        assert response.status_code == 412
        assert response.json()["detail"]["code"] == "dauth-011"
        with pool.connection() as conn:
            count = conn.execute("SELECT COUNT(*) FROM device").fetchone()[0]
        assert count == 0

    def test_unknown_device(self, client: TestClient) -> None:
        response = _activate(client)

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "dauth-006"

    def test_wrong_qualifier(self, pool: ConnectionPool, client: TestClient) -> None:
        create_factory_record(pool, SERIAL)

        response = _activate(client, qualifier=make_qualifier(VIN, SERIAL, secret="OtherSecr"))

        assert response.status_code == 412
        assert response.json()["detail"]["code"] == "dauth-009"

    def test_deactivate_then_ready_then_activate(self, pool: ConnectionPool, client: TestClient) -> None:
        """Deactivation is idempotent and readiness reopens activation."""
        create_factory_record(pool, SERIAL)
        first = _activate(client).json()["deviceId"]

        for _ in range(2):
            response = client.post("/v1/device/deactivate", json={"serialNumber": SERIAL}, headers={"user-id": "admin"})
            assert response.status_code == 200

        blocked = _activate(client)
        assert blocked.status_code == 412
        assert blocked.json()["detail"]["code"] == "dauth-011"

        response = client.post(
            "/v1/device/readyToActivate", json={"serialNumber": SERIAL}, headers={"user-id": "user-1"}
        )
        assert response.status_code == 200

        again = _activate(client)
        assert again.status_code == 200
        assert again.json()["deviceId"] != first

    def test_deactivate_account(self, pool: ConnectionPool, client: TestClient, calls: list) -> None:
        factory_id = create_factory_record(pool, SERIAL)
        device_id = _activate(client).json()["deviceId"]

        response = client.post("/v2/device/deactivate", json={"factoryId": factory_id}, headers={"user-id": "admin"})

        assert response.status_code == 200
        assert ("DELETE", f"/oauth2/clients/{device_id}") in calls
        with pool.connection() as conn:
            state = conn.execute("SELECT state FROM factory_data WHERE id = %s", (factory_id,)).fetchone()[0]
        assert state == "PROVISIONED"


class TestPreSharedKeyFlow:
    """Integration tests for the activation-id path."""

    def test_generate_then_activate(self, client: TestClient) -> None:
        key = client.get("/v5/device/preSharedKey").json()["encryptedPreSharedKey"]
        settings = app.dependency_overrides[get_settings]()
        settings.activation_pre_shared_key = SecretStr(key)

        first = client.post("/v5/device/activate", json={"jitActId": "JIT-1", "passKey": key})
        second = client.post("/v5/device/activate", json={"jitActId": "JIT-1", "passKey": key})

        assert first.status_code == 200
        assert second.status_code == 200
        assert first.json()["deviceId"] == second.json()["deviceId"]
        assert first.json()["passcode"] != second.json()["passcode"]
