"""Tests for the HTTP API.

Verifies:
- Response envelopes ({"data": ...} / {"error": {...}}) and status codes
- Queue routes call through to the work queue and its scheduler
- Bulk generation, progress polling, validation and cost summary
- Malformed and invalid request bodies map to 400 E_INVALID_REQUEST
"""

import pytest
import respx

from pagegen.config import clear_settings_cache
from pagegen.services.rate_limit import get_bulk_limiter
from tests.helpers import CHAT_URL, OPENAI_BASE_URL, chat_completion, create_page

SEO_METADATA = {
    "focus_keyword": "gold engagement rings",
    "seo_title": "Gold Engagement Rings | Acme",
    "meta_description": "Shop gold engagement rings in yellow, white and rose gold, "
    "with free resizing and a lifetime warranty.",
}


@pytest.fixture
def provider_env(monkeypatch):
    """Point the API's settings at the mocked provider."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("OPENAI_BASE_URL", OPENAI_BASE_URL)
    monkeypatch.setenv("SITE_URL", "https://shop.test")
    clear_settings_cache()
    yield
    monkeypatch.undo()
    clear_settings_cache()


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"data": {"status": "ok"}}


# =============================================================================
# Queue
# =============================================================================


class TestQueueRoutes:
    def test_enqueue(self, client, scheduler):
        response = client.post(
            "/queue", json={"page_id": 10, "index": 1, "block_selection": ["hero"]}
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["page_id"] == 10
        assert data["status"] == "pending"
        assert data["block_selection"] == ["hero"]
        assert data["retry_count"] == 0
        assert len(scheduler.scheduled) == 1

    def test_enqueue_twice_conflicts(self, client):
        client.post("/queue", json={"page_id": 10})
        response = client.post("/queue", json={"page_id": 10})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "E_ALREADY_QUEUED"

    @pytest.mark.parametrize(
        "body",
        [
            {"page_id": 0},
            {"page_id": 10, "index": -1},
            {"page_id": 10, "block_selection": []},
            {"page_id": 10, "block_selection": ["sidebar"]},
            {},
        ],
    )
    def test_invalid_body(self, client, body):
        response = client.post("/queue", json=body)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"

    def test_malformed_json(self, client):
        response = client.post(
            "/queue", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "Malformed JSON body"

    def test_list_and_filter(self, client):
        client.post("/queue", json={"page_id": 10})
        client.post("/queue", json={"page_id": 11, "index": 1})

        all_items = client.get("/queue").json()["data"]
        assert [item["page_id"] for item in all_items] == [10, 11]
        assert client.get("/queue", params={"status": "failed"}).json()["data"] == []

    def test_stats(self, client):
        client.post("/queue", json={"page_id": 10})

        data = client.get("/queue/stats").json()["data"]

        assert data["pending"] == 1
        assert data["total"] == 1
        assert data["paused"] is False
        assert data["estimated_completion"] is not None

    def test_pause_and_resume(self, client):
        assert client.post("/queue/pause").json() == {"data": {"paused": True}}
        assert client.get("/queue/stats").json()["data"]["paused"] is True

        assert client.post("/queue/resume").json() == {"data": {"paused": False}}
        assert client.get("/queue/stats").json()["data"]["paused"] is False

    def test_retry(self, client):
        client.post("/queue", json={"page_id": 10})

        not_failed = client.post("/queue/10/retry")
        assert not_failed.status_code == 400

        missing = client.post("/queue/99/retry")
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "E_QUEUE_ITEM_NOT_FOUND"

    def test_remove(self, client, scheduler):
        client.post("/queue", json={"page_id": 10})

        assert client.delete("/queue/10").status_code == 204
        assert scheduler.cancelled == ["trigger-1"]
        assert client.delete("/queue/10").status_code == 404

    def test_clear(self, client):
        client.post("/queue", json={"page_id": 10})
        client.post("/queue", json={"page_id": 11, "index": 1})

        assert client.delete("/queue").json() == {"data": {"deleted": 2}}
        assert client.get("/queue").json()["data"] == []


# =============================================================================
# Generation
# =============================================================================


class TestGenerateRoute:
    @respx.mock
    def test_bulk_generation(self, provider_env, client, db_session):
        respx.post(CHAT_URL).respond(200, json=chat_completion(SEO_METADATA))
        page_id = create_page(db_session)

        response = client.post(
            f"/pages/{page_id}/generate",
            json={"user_id": "u-1", "block_types": ["seo_metadata"]},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["total_blocks"] == 1
        assert data["successful"] == 1
        assert data["failed"] == {}
        assert data["total_tokens"] == 1500

    def test_invalid_page(self, client):
        response = client.post("/pages/9999/generate", json={"user_id": "u-1"})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_PAGE_NOT_FOUND"

    def test_bulk_limit(self, client, db_session, fake_redis):
        page_id = create_page(db_session)
        fake_redis.sets["bulk:active:u-1"] = {"101", "102", "103"}

        response = client.post(f"/pages/{page_id}/generate", json={"user_id": "u-1"})

        assert response.status_code == 429
        assert response.json()["error"]["code"] == "E_RATE_LIMITED"

    def test_unknown_block_rejected(self, client, db_session):
        page_id = create_page(db_session)

        response = client.post(
            f"/pages/{page_id}/generate", json={"user_id": "u-1", "block_types": ["sidebar"]}
        )

        assert response.status_code == 400


class TestProgressRoute:
    def test_snapshot(self, client):
        get_bulk_limiter().update_progress(7, "u-1", {"current_block": "hero", "percentage": 50.0})

        response = client.get("/pages/7/progress", params={"user_id": "u-1"})

        assert response.status_code == 200
        assert response.json()["data"]["current_block"] == "hero"

    def test_no_progress(self, client):
        response = client.get("/pages/7/progress", params={"user_id": "u-1"})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_NOT_FOUND"

    def test_user_id_required(self, client):
        assert client.get("/pages/7/progress").status_code == 400


# =============================================================================
# Validation and costs
# =============================================================================


class TestValidationRoute:
    def test_reports_issues(self, client):
        response = client.post(
            "/validation",
            json={
                "slot_content": {
                    "seo_metadata": {
                        "seo_title": "Affordable Rings",
                        "seo_meta_description": "Short.",
                    }
                },
                "block_order": ["seo_metadata"],
                "focus_keyword": "gold rings",
            },
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["passed"] is False
        rules = {(issue["slot_name"], issue["rule"]) for issue in data["issues"]}
        assert ("seo_focus_keyword", "required") in rules
        assert ("seo_title", "must_contain_keyword") in rules
        assert data["warnings"]


class TestCostSummary:
    def test_empty_summary(self, client):
        data = client.get("/costs/summary").json()["data"]

        assert data["month_cost"] == 0
        assert data["monthly_budget"] == 0
        assert data["budget_used_percent"] is None
        assert data["success_rate"] == 100.0
        assert data["images"]["total_generated"] == 0
