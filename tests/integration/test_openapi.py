"""
Integration tests for OpenAPI documentation.

Verifies OpenAPI schema is correctly generated for all endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from src.api.main import app


@pytest.fixture
def client() -> TestClient:
    """Create test client for the application."""
    return TestClient(app)


@pytest.fixture
def schema(client: TestClient) -> dict:
    response = client.get("/openapi.json")
    assert response.status_code == 200
    return response.json()


class TestOpenAPISchema:
    """Tests for OpenAPI schema generation."""

    def test_title_and_version(self, schema: dict) -> None:
        assert schema["info"]["title"] == "device-activation"
        assert schema["info"]["version"] == "0.1.0"

    @pytest.mark.parametrize(
        "path,method",
        [
            ("/v3/device/activate", "post"),
            ("/v4/device/activate", "post"),
            ("/v5/device/activate", "post"),
            ("/v5/device/preSharedKey", "get"),
            ("/v1/device/readyToActivate", "post"),
            ("/v1/device/deactivate", "post"),
            ("/v2/device/deactivate", "post"),
            ("/health", "get"),
        ],
    )
    def test_endpoint_documented(self, schema: dict, path: str, method: str) -> None:
        assert method in schema["paths"][path]

    def test_activation_errors_documented(self, schema: dict) -> None:
        """Activation documents its domain error statuses."""
        responses = schema["paths"]["/v3/device/activate"]["post"]["responses"]
        for status_code in ("400", "404", "409", "412", "500", "502"):
            assert status_code in responses

    def test_request_uses_camel_case(self, schema: dict) -> None:
        properties = schema["components"]["schemas"]["DeviceActivationRequest"]["properties"]
        assert "serialNumber" in properties
        assert "hwVersion" in properties
        assert "serial_number" not in properties

    def test_user_id_header_required(self, schema: dict) -> None:
        parameters = schema["paths"]["/v1/device/deactivate"]["post"]["parameters"]
        header = next(p for p in parameters if p["in"] == "header")
        assert header["name"] == "user-id"
        assert header["required"] is True
