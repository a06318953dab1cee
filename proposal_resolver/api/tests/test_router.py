"""Tests for the proposals API router and health check."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ..router import get_pipeline, router
from proposal_resolver.schemas.proposal import ProposalRecord, ProposalStage

SNAPSHOT_URL = "https://snapshot.org/#/aave.eth/proposal/0xabc"


def make_record(record_id="0xabc", status="active", stage=ProposalStage.SECOND_ROUND):
    return ProposalRecord(
        id=record_id,
        title=f"Proposal {record_id}",
        status=status,
        canonical_status=status,
        stage=stage,
        url=f"https://example.test/{record_id}",
        type="snapshot",
    )


@pytest.fixture
def pipeline():
    fake = MagicMock()
    fake.resolve_proposal = AsyncMock(return_value=make_record())
    fake.resolve_thread = AsyncMock(return_value=[make_record()])
    return fake


@pytest.fixture
def client(pipeline):
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    return TestClient(app)


class TestClassifyEndpoint:

    def test_snapshot_url(self, client):
        response = client.get("/proposals/classify", params={"url": SNAPSHOT_URL})
        assert response.status_code == 200
        body = response.json()
        assert body["identifier"]["platform"] == "off-chain-vote"
        assert body["identifier"]["space"] == "aave.eth"

    def test_unrecognized_url(self, client):
        response = client.get("/proposals/classify", params={"url": "https://example.com"})
        assert response.status_code == 200
        assert response.json()["identifier"]["platform"] == "unrecognized"

    def test_missing_url_rejected(self, client):
        assert client.get("/proposals/classify").status_code == 422


class TestResolveEndpoint:

    def test_resolves(self, client, pipeline):
        response = client.get("/proposals/resolve", params={"url": SNAPSHOT_URL, "force_refresh": "true"})
        assert response.status_code == 200
        assert response.json()["id"] == "0xabc"
        pipeline.resolve_proposal.assert_awaited_once_with(SNAPSHOT_URL, force_refresh=True)

    def test_not_found(self, client, pipeline):
        pipeline.resolve_proposal.return_value = None
        response = client.get("/proposals/resolve", params={"url": SNAPSHOT_URL})
        assert response.status_code == 404
        detail = response.json()["detail"]
        assert detail["error_code"] == 404
        assert detail["retryable"] is False

    def test_unsupported_url(self, client, pipeline):
        response = client.get("/proposals/resolve", params={"url": "https://example.com/post/1"})
        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == 400
        pipeline.resolve_proposal.assert_not_called()


class TestSelectEndpoint:

    def test_selects_by_priority(self, client):
        candidates = [
            make_record("closed", status="closed").model_dump(mode="json"),
            make_record("active", status="active").model_dump(mode="json"),
        ]
        response = client.post("/proposals/select", json={"candidates": candidates, "k": 1})
        assert response.status_code == 200
        assert [r["id"] for r in response.json()] == ["active"]

    def test_k_out_of_range(self, client):
        response = client.post("/proposals/select", json={"candidates": [], "k": 0})
        assert response.status_code == 422


class TestThreadEndpoint:

    def test_delegates_to_pipeline(self, client, pipeline):
        response = client.post("/proposals/thread", json={"text": f"vote at {SNAPSHOT_URL}", "k": 2})
        assert response.status_code == 200
        assert len(response.json()) == 1
        pipeline.resolve_thread.assert_awaited_once_with(f"vote at {SNAPSHOT_URL}", k=2, force_refresh=False)


class TestHealthz:

    def test_reports_pipeline_state(self):
        from proposal_resolver.main import app

        fake = MagicMock()
        fake.cache.__len__.return_value = 2
        fake.in_flight = 0
        fake.onchain_available.return_value = False

        with patch("proposal_resolver.main.get_pipeline", return_value=fake):
            response = TestClient(app).get("/healthz")

        assert response.json() == {
            "status": "ok",
            "cache_entries": 2,
            "in_flight": 0,
            "onchain_client": "unavailable",
        }

    def test_reports_error(self):
        from proposal_resolver.main import app

        with patch("proposal_resolver.main.get_pipeline", side_effect=RuntimeError("boom")):
            response = TestClient(app).get("/healthz")

        assert response.json() == {"status": "error", "error": "boom"}
