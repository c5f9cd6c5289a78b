"""
Tests for scheduled job endpoints in costagolf/api/jobs.py.

These tests verify the Cloud Scheduler sweep endpoint including OIDC and
API key authentication.
"""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from costagolf.api.deps import get_services
from costagolf.api.jobs import verify_oidc_token
from costagolf.config import settings


@pytest.fixture
def services() -> MagicMock:
    services = MagicMock()
    services.run_sweeps.return_value = {"expiredHolds": 2, "purgedHolds": 1, "expiredPrices": 5}
    return services


@pytest.fixture
def test_client(services: MagicMock):
    """Create a TestClient for the FastAPI app with the services swapped out."""
    from costagolf.main import app

    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def scheduler_key(monkeypatch) -> str:
    monkeypatch.setattr(settings, "scheduler_api_key", "sweep-secret")
    monkeypatch.setattr(settings, "scheduler_service_account", "scheduler@costagolf.iam.gserviceaccount.com")
    return "sweep-secret"


class TestJobsAuthentication:
    def test_missing_credentials_returns_401(self, test_client: TestClient, services: MagicMock) -> None:
        response = test_client.post("/jobs/sweep")

        assert response.status_code == 401
        services.run_sweeps.assert_not_called()

    def test_invalid_api_key_returns_401(self, test_client: TestClient, scheduler_key: str) -> None:
        response = test_client.post("/jobs/sweep", headers={"X-Scheduler-API-Key": "wrong"})

        assert response.status_code == 401

    def test_unconfigured_api_key_rejects_everything(self, test_client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(settings, "scheduler_api_key", "")

        response = test_client.post("/jobs/sweep", headers={"X-Scheduler-API-Key": "anything"})

        assert response.status_code == 401

    def test_valid_api_key_succeeds(self, test_client: TestClient, scheduler_key: str) -> None:
        response = test_client.post("/jobs/sweep", headers={"X-Scheduler-API-Key": scheduler_key})

        assert response.status_code == 200

    def test_valid_oidc_token_succeeds(self, test_client: TestClient, scheduler_key: str) -> None:
        with patch(
            "costagolf.api.jobs.id_token.verify_oauth2_token",
            return_value={"email": "scheduler@costagolf.iam.gserviceaccount.com"},
        ):
            response = test_client.post("/jobs/sweep", headers={"Authorization": "Bearer token"})

        assert response.status_code == 200

    def test_invalid_oidc_token_falls_back_to_api_key(self, test_client: TestClient, scheduler_key: str) -> None:
        with patch("costagolf.api.jobs.id_token.verify_oauth2_token", side_effect=ValueError("expired")):
            response = test_client.post(
                "/jobs/sweep",
                headers={"Authorization": "Bearer token", "X-Scheduler-API-Key": scheduler_key},
            )

        assert response.status_code == 200


class TestVerifyOidcToken:
    def test_requires_bearer_prefix(self) -> None:
        assert not verify_oidc_token("Basic abc")

    def test_wrong_service_account(self, scheduler_key: str) -> None:
        with patch(
            "costagolf.api.jobs.id_token.verify_oauth2_token",
            return_value={"email": "someone-else@example.iam.gserviceaccount.com"},
        ):
            assert not verify_oidc_token("Bearer token")

    def test_any_account_accepted_when_unconfigured(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "scheduler_service_account", "")
        with patch(
            "costagolf.api.jobs.id_token.verify_oauth2_token",
            return_value={"email": "someone@example.iam.gserviceaccount.com"},
        ):
            assert verify_oidc_token("Bearer token")


class TestSweepEndpoint:
    def test_returns_counts(self, test_client: TestClient, services: MagicMock, scheduler_key: str) -> None:
        response = test_client.post("/jobs/sweep", headers={"X-Scheduler-API-Key": scheduler_key})

        data = response.json()
        assert data["expired_holds"] == 2
        assert data["purged_holds"] == 1
        assert data["expired_prices"] == 5
        assert "executed_at" in data
        services.run_sweeps.assert_called_once()
