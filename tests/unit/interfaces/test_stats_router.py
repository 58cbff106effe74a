"""Tests for the /stats endpoint."""

from __future__ import annotations

from unittest.mock import MagicMock

from fastapi import FastAPI
from fastapi.testclient import TestClient

from streamfinder.infrastructure.metrics import MetricsCollector
from streamfinder.interfaces.api.stats.router import router


class TestStats:
    def test_snapshot_and_chain(self) -> None:
        app = FastAPI()
        app.include_router(router)
        metrics = MetricsCollector()
        metrics.record_request(cache_hit=True)
        app.state.metrics = metrics
        providers = MagicMock()
        providers.ids.return_value = ["catalog", "inline"]
        app.state.providers = providers

        data = TestClient(app).get("/stats").json()

        assert data["resolution"]["cache_hits"] == 1
        assert data["chain"] == ["catalog", "inline"]

    def test_empty_state(self) -> None:
        app = FastAPI()
        app.include_router(router)
        assert TestClient(app).get("/stats").json() == {}
