"""HTTP tests for the pricing job and pricing mode routes.

The app runs its real lifespan against a SQLite file seeded beforehand.
"""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from conftest import add_line_items, add_pricing_mode
from pricebook.config import AppConfig, DBConfig, JobsConfig
from pricebook.db.connection import Database
from pricebook.jobs.errors import StoreUnavailable
from pricebook.web.app import create_app


@pytest.fixture
def catalog(database_url, test_org_id):
    """Create the schema and a small catalog; returns the seeded ids."""

    async def _seed():
        database = Database.from_url(database_url)
        try:
            await database.init_db()
            item_ids = await add_line_items(database, test_org_id, 12, Decimal("10.00"))
            mode_id = await add_pricing_mode(database, name="Premium", adjustments={"all": 1.5})
            reset_id = await add_pricing_mode(
                database, name="Reset to Baseline", adjustments={}, organization_id=None, is_preset=True
            )
            return {"item_ids": item_ids, "mode_id": mode_id, "reset_id": reset_id}
        finally:
            await database.close()

    return asyncio.run(_seed())


@pytest.fixture
def client(database_url, catalog, test_org_id):
    config = AppConfig(
        org_id=test_org_id,
        db=DBConfig(url=database_url),
        jobs=JobsConfig(batch_size=5),
    )
    with TestClient(create_app(config)) as test_client:
        yield test_client


def submit(client, mode_id, **extra):
    response = client.post("/pricing-jobs", json={"mode_id": str(mode_id), **extra})
    assert response.status_code == 201, response.text
    return response.json()["jobId"]


class TestHealth:
    def test_health_ok(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "connected"}

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"


class TestPricingJobRoutes:
    def test_submit_then_process(self, client, catalog):
        job_id = submit(client, catalog["mode_id"], created_by="estimator")

        job = client.get(f"/pricing-jobs/{job_id}").json()
        assert job["status"] == "pending"
        assert job["total_items"] == 12
        assert job["progress_percent"] == 0.0

        active = client.get("/pricing-jobs/active").json()["jobs"]
        assert [j["id"] for j in active] == [job_id]

        response = client.post("/pricing-jobs/process", json={"jobId": job_id})
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "jobId": job_id,
            "result": {"success_count": 12, "failed_count": 0},
        }

        job = client.get(f"/pricing-jobs/{job_id}").json()
        assert job["status"] == "completed"
        assert job["processed_items"] == 12
        assert job["progress_percent"] == 100.0
        assert client.get("/pricing-jobs/active").json()["jobs"] == []

    def test_process_twice_is_not_applicable(self, client, catalog):
        job_id = submit(client, catalog["mode_id"])
        client.post("/pricing-jobs/process", json={"jobId": job_id})

        response = client.post("/pricing-jobs/process", json={"jobId": job_id})

        assert response.status_code == 200
        body = response.json()
        assert body["jobId"] == job_id
        assert "message" in body
        assert "success" not in body

    def test_process_unknown_job(self, client):
        response = client.post("/pricing-jobs/process", json={"jobId": str(uuid4())})

        assert response.status_code == 404
        assert "error" in response.json()

    @pytest.mark.parametrize("payload", [{}, {"jobId": ""}, {"jobId": None}, {"job": "x"}])
    def test_process_requires_job_id(self, client, payload):
        response = client.post("/pricing-jobs/process", json=payload)

        assert response.status_code == 400
        assert response.json() == {"error": "Job ID is required"}

    def test_process_without_body(self, client):
        response = client.post("/pricing-jobs/process")

        assert response.status_code == 400
        assert "error" in response.json()

    def test_submit_selected_items(self, client, catalog):
        ids = [str(i) for i in catalog["item_ids"][:3]]
        job_id = submit(client, catalog["mode_id"], line_item_ids=ids)

        job = client.get(f"/pricing-jobs/{job_id}").json()
        assert job["total_items"] == 3
        assert job["job_data"]["apply_to_all"] is False
        assert job["job_data"]["line_item_ids"] == ids

    def test_submit_unknown_mode(self, client):
        response = client.post("/pricing-jobs", json={"mode_id": str(uuid4())})

        assert response.status_code == 404

    def test_active_jobs_scoped_by_org(self, client, catalog):
        submit(client, catalog["mode_id"])

        assert client.get("/pricing-jobs/active", params={"org": "other-org"}).json()["jobs"] == []

    def test_get_unknown_job(self, client):
        assert client.get(f"/pricing-jobs/{uuid4()}").status_code == 404
        assert client.get("/pricing-jobs/not-a-uuid").status_code == 404

    def test_events_for_finished_job(self, client, catalog):
        job_id = submit(client, catalog["mode_id"])
        client.post("/pricing-jobs/process", json={"jobId": job_id})

        response = client.get(f"/pricing-jobs/{job_id}/events")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        lines = response.text.strip().splitlines()
        assert lines[0] == "event: snapshot"
        payload = json.loads(lines[1].removeprefix("data: "))
        assert payload["status"] == "completed"
        assert payload["result_summary"]["success_count"] == 12

    def test_events_unknown_job(self, client):
        assert client.get(f"/pricing-jobs/{uuid4()}/events").status_code == 404

    def test_events_store_unavailable(self, client):
        store = client.app.state.job_store
        unavailable = AsyncMock(side_effect=StoreUnavailable("get_job failed"))
        with patch.object(store, "get_job", unavailable):
            response = client.get(f"/pricing-jobs/{uuid4()}/events")

        assert response.status_code == 503
        assert "get_job failed" in response.json()["detail"]


class TestPricingModeRoutes:
    def test_list_modes(self, client):
        modes = client.get("/pricing-modes").json()["modes"]

        assert [m["name"] for m in modes] == ["Reset to Baseline", "Premium"]

    def test_usage_count_after_job(self, client, catalog):
        job_id = submit(client, catalog["mode_id"])
        client.post("/pricing-jobs/process", json={"jobId": job_id})

        modes = {m["name"]: m for m in client.get("/pricing-modes").json()["modes"]}
        assert modes["Premium"]["usage_count"] == 1

    def test_preview(self, client, catalog):
        ids = catalog["item_ids"][:2]
        response = client.get(
            f"/pricing-modes/{catalog['mode_id']}/preview",
            params={"line_item_ids": [str(i) for i in ids]},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["mode"]["name"] == "Premium"
        assert [c["line_item_id"] for c in body["changes"]] == [str(i) for i in ids]
        assert Decimal(body["changes"][0]["new_price"]) == Decimal("15.00")
        assert Decimal(body["total_change"]) == Decimal("10.00")

    def test_preview_unknown_mode(self, client):
        assert client.get(f"/pricing-modes/{uuid4()}/preview").status_code == 404

    def test_list_includes_win_rate(self, client, catalog):
        client.post(f"/pricing-modes/{catalog['mode_id']}/outcomes", json={"was_successful": True})
        client.post(f"/pricing-modes/{catalog['mode_id']}/outcomes", json={"was_successful": False})

        modes = {m["name"]: m for m in client.get("/pricing-modes").json()["modes"]}

        assert modes["Premium"]["total_estimates"] == 2
        assert modes["Premium"]["successful_estimates"] == 1
        assert modes["Premium"]["win_rate"] == 50
        assert modes["Reset to Baseline"]["win_rate"] is None

    def test_outcome_unknown_mode(self, client):
        response = client.post(f"/pricing-modes/{uuid4()}/outcomes", json={"was_successful": True})

        assert response.status_code == 404

    def test_presets(self, client):
        modes = client.get("/pricing-modes/presets").json()["modes"]

        assert [m["name"] for m in modes] == ["Reset to Baseline"]
        assert modes[0]["is_preset"] is True

    def test_create_and_delete_custom_mode(self, client, test_org_id):
        response = client.post(
            "/pricing-modes",
            json={"name": "Aggressive", "adjustments": {"labor": 0.85}, "icon": "zap"},
        )

        assert response.status_code == 201
        created = response.json()
        assert created["is_preset"] is False
        assert created["adjustments"] == {"labor": 0.85}
        names = [m["name"] for m in client.get("/pricing-modes").json()["modes"]]
        assert "Aggressive" in names

        assert client.delete(f"/pricing-modes/{created['id']}").status_code == 204
        names = [m["name"] for m in client.get("/pricing-modes").json()["modes"]]
        assert "Aggressive" not in names
        assert client.delete(f"/pricing-modes/{created['id']}").status_code == 404

    def test_create_rejects_unknown_category(self, client):
        response = client.post("/pricing-modes", json={"name": "Bad", "adjustments": {"freight": 2}})

        assert response.status_code == 422

    def test_preset_cannot_be_deleted(self, client, catalog):
        response = client.delete(f"/pricing-modes/{catalog['reset_id']}")

        assert response.status_code == 404
        names = [m["name"] for m in client.get("/pricing-modes/presets").json()["modes"]]
        assert names == ["Reset to Baseline"]
