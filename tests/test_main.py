# tests/test_main.py
"""
Tests for the application wiring in paygate.main.
"""
from unittest.mock import patch

from fastapi.testclient import TestClient

from paygate.main import app, run

client = TestClient(app)


def test_root_health_check():
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_health_endpoint():
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "web-scraper"}


def test_openapi_served_under_api_prefix():
    response = client.get("/api/openapi.json")

    assert response.status_code == 200
    assert "/api/run" in response.json()["paths"]


@patch("paygate.core.config.Settings.wallet_for", return_value=None)
def test_run_without_wallet_is_misconfigured(mock_wallet_for):
    response = client.get("/api/run", params={"url": "https://example.com/"})

    assert response.status_code == 500
    assert "WALLET_ADDRESS" in response.json()["error"]


@patch("uvicorn.run")
def test_run_serves_app_with_uvicorn(mock_uvicorn_run):
    run()

    mock_uvicorn_run.assert_called_once()
    args, kwargs = mock_uvicorn_run.call_args
    assert args[0] == "paygate.main:app"
    assert kwargs["port"] == 8000
