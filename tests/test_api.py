"""Tests for the HTTP surface."""

import pytest
from fastapi.testclient import TestClient

from media_svc import main
from media_svc.media.types import AttemptOutcome

from .conftest import CID, GATEWAY


@pytest.fixture
def client(resolver, monkeypatch):
    for name in ("_resolver", "_cache", "_telemetry", "_emitter", "_promoter", "_backend"):
        monkeypatch.setattr(main, name, None)
    main._set_globals(resolver)
    return TestClient(main.app)


class TestResolveEndpoint:
    def test_resolve(self, client, probe):
        probe.script("https://legacy.test/1.jpg", AttemptOutcome.SUCCESS)

        response = client.post("/resolve", json={
            "entity_id": "1",
            "fast_tier_url": "https://fast.test/1.jpg",
            "legacy_url": "https://legacy.test/1.jpg",
        })

        assert response.status_code == 200
        data = response.json()
        assert data["url"] == "https://legacy.test/1.jpg"
        assert data["tier"] == "legacy"
        assert data["from_cache"] is False
        assert [a["outcome"] for a in data["attempts"]] == ["not_found", "success"]

    def test_second_call_from_cache(self, client, probe):
        probe.script("https://fast.test/1.jpg", AttemptOutcome.SUCCESS)
        body = {"entity_id": "1", "fast_tier_url": "https://fast.test/1.jpg"}

        client.post("/resolve", json=body)
        data = client.post("/resolve", json=body).json()

        assert data["from_cache"] is True
        assert data["attempts"] == []

    def test_no_sources(self, client):
        response = client.post("/resolve", json={"entity_id": "1"})

        assert response.status_code == 400
        assert response.json()["entity_id"] == "1"

    def test_exhausted(self, client):
        response = client.post("/resolve", json={"entity_id": "1", "content_hash": CID})

        assert response.status_code == 502
        data = response.json()
        assert data["retryable"] is True
        assert data["attempts"][0]["url"] == f"{GATEWAY}/{CID}"

    def test_option_overrides(self, client, probe):
        probe.script(f"{GATEWAY}/{CID}", AttemptOutcome.SUCCESS)

        response = client.post("/resolve", json={
            "entity_id": "1",
            "fast_tier_url": "https://fast.test/1.jpg",
            "content_hash": CID,
            "include_durable_tier": False,
        })

        assert response.status_code == 502
        assert f"{GATEWAY}/{CID}" not in probe.calls

    def test_variant(self, client, probe):
        probe.script("https://thumb.test/1.jpg", AttemptOutcome.SUCCESS)

        response = client.post("/resolve", json={
            "entity_id": "1",
            "fast_tier_url": "https://fast.test/1.jpg",
            "thumbnail_url": "https://thumb.test/1.jpg",
            "variant": "list",
        })

        assert response.json()["tier"] == "thumbnail"

    def test_invalid_overrides(self, client):
        response = client.post("/resolve", json={"entity_id": "1", "content_hash": CID, "max_sources": 10})
        assert response.status_code == 422

    def test_preload(self, client, probe):
        probe.script("https://fast.test/a.jpg", AttemptOutcome.SUCCESS)

        response = client.post("/preload", json={"assets": [
            {"entity_id": "a", "fast_tier_url": "https://fast.test/a.jpg"},
            {"entity_id": "b"},
        ]})

        assert response.status_code == 200
        data = response.json()
        assert data["resolved"]["a"]["tier"] == "fast"
        assert data["failed"]["b"]["error"] == "NoSourcesError"


class TestStatusEndpoints:
    def test_stats(self, client, probe):
        probe.script("https://fast.test/1.jpg", AttemptOutcome.SUCCESS)
        client.post("/resolve", json={"entity_id": "1", "fast_tier_url": "https://fast.test/1.jpg"})

        stats = client.get("/stats").json()
        assert stats["total_loads"] == 1
        assert stats["per_tier_success_rate"] == {"fast": 1.0}

    def test_cache_status(self, client, probe):
        probe.script("https://fast.test/1.jpg", AttemptOutcome.SUCCESS)
        client.post("/resolve", json={"entity_id": "1", "fast_tier_url": "https://fast.test/1.jpg"})

        status = client.get("/cache/status").json()
        assert status["size"] == 1
        assert status["persistent"] is False

    def test_promotions_disabled(self, client):
        assert client.get("/promotions/1").status_code == 404

    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["redis"] == {"status": "disabled"}
        assert data["telemetry"] == {"enabled": False}

    def test_root(self, client):
        assert "/resolve" in client.get("/").json()["endpoints"]

    def test_not_initialized(self, monkeypatch):
        monkeypatch.setattr(main, "_resolver", None)
        monkeypatch.setattr(main, "_cache", None)
        client = TestClient(main.app)

        response = client.post("/resolve", json={"entity_id": "1", "content_hash": CID})
        assert response.status_code == 503
        assert client.get("/health").status_code == 503
