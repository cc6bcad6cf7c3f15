"""Tests for dashboard stats, preferences and the activity feed."""

import json

from app.services import dashboard_service
from app.services.activity_service import log_activity


class TestStats:

    def test_stats_for_owner(self, ctx, store, seed_data):
        owner = seed_data["owner_id"]
        store.insert("leads", {"first_name": "Ann", "last_name": "Lee"}, owner)
        store.insert("leads", {"first_name": "Bo", "last_name": "Ray"}, owner)
        store.insert(
            "jobs", {"title": "Gutters", "status": "completed", "total_cost": 800}, owner
        )

        stats = dashboard_service.get_stats(owner)
        assert stats["total_jobs"] == 2
        assert stats["total_leads"] == 2
        assert stats["total_revenue"] == 2000.0
        assert stats["completed_jobs"] == 1
        assert stats["active_jobs"] == 1
        assert stats["conversion_rate"] == 100.0
        assert stats["avg_job_value"] == 1000.0
        assert stats["total_customers"] == 1
        assert stats["paid_revenue"] == 0.0

    def test_empty_user(self, ctx, seed_data):
        stats = dashboard_service.get_stats(seed_data["other_id"])
        assert stats["total_leads"] == 0
        assert stats["conversion_rate"] == 0.0
        assert stats["avg_job_value"] == 0.0

    def test_stats_endpoint(self, client, seed_data):
        resp = client.get("/api/dashboard/stats", headers=seed_data["owner_headers"])
        assert resp.status_code == 200
        assert json.loads(resp.data)["total_jobs"] == 1


class TestPreferences:

    def test_defaults_created_on_first_read(self, client, seed_data):
        resp = client.get("/api/preferences", headers=seed_data["owner_headers"])
        assert resp.status_code == 200
        data = json.loads(resp.data)
        assert data["layout"] == {"columns": 3}
        assert data["visible_widgets"] == ["stats", "recent-activity", "metrics"]
        assert data["theme_settings"] == {"mode": "light"}
        assert data["widget_positions"] == {}

    def test_patch(self, client, seed_data):
        resp = client.patch(
            "/api/preferences",
            json={"theme_settings": {"mode": "dark"}},
            headers=seed_data["owner_headers"],
        )
        assert resp.status_code == 200
        assert json.loads(resp.data)["theme_settings"] == {"mode": "dark"}

    def test_patch_unknown_field(self, client, seed_data):
        resp = client.patch(
            "/api/preferences", json={"font": "serif"}, headers=seed_data["owner_headers"]
        )
        assert resp.status_code == 400

    def test_toggle_widget(self, client, seed_data):
        headers = seed_data["owner_headers"]
        resp = client.post("/api/preferences/widgets/metrics/toggle", headers=headers)
        assert "metrics" not in json.loads(resp.data)["visible_widgets"]

        resp = client.post("/api/preferences/widgets/metrics/toggle", headers=headers)
        assert "metrics" in json.loads(resp.data)["visible_widgets"]

    def test_move_widget(self, client, seed_data):
        resp = client.put(
            "/api/preferences/widgets/stats/position",
            json={"x": 0, "y": 2},
            headers=seed_data["owner_headers"],
        )
        assert resp.status_code == 200
        assert json.loads(resp.data)["widget_positions"] == {"stats": {"x": 0, "y": 2}}

    def test_move_widget_bad_body(self, client, seed_data):
        resp = client.put(
            "/api/preferences/widgets/stats/position",
            json=[1, 2],
            headers=seed_data["owner_headers"],
        )
        assert resp.status_code == 400


class TestActivityFeed:

    def test_feed_is_scoped(self, client, seed_data, app):
        with app.app_context():
            log_activity(seed_data["owner_id"], "created", "job", seed_data["job_id"])
            log_activity(seed_data["other_id"], "created", "job", seed_data["other_job_id"])

        resp = client.get("/api/activity", headers=seed_data["owner_headers"])
        rows = json.loads(resp.data)["data"]
        assert [row["entity_id"] for row in rows] == [seed_data["job_id"]]

    def test_feed_filter(self, client, seed_data, app):
        with app.app_context():
            log_activity(seed_data["owner_id"], "created", "job", seed_data["job_id"])

        resp = client.get(
            "/api/activity?entity_type=invoice", headers=seed_data["owner_headers"]
        )
        assert json.loads(resp.data)["data"] == []
