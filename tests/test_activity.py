"""Tests for the activity audit logger."""

from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from app.extensions import db
from app.models.audit import ActivityLog, AuditTrail
from app.services.activity_service import (
    log_activity,
    recent_activity,
    validate_metadata,
)


class TestLogActivity:

    def test_writes_row(self, ctx, seed_data):
        entry = log_activity(
            seed_data["owner_id"], "created", "job", seed_data["job_id"],
            "Job created: Roof repair",
        )
        assert entry is not None
        row = ActivityLog.query.one()
        assert row.user_id == seed_data["owner_id"]
        assert row.entity_id == seed_data["job_id"]
        assert row.metadata_ == {}

    def test_no_user_is_a_noop(self, ctx, seed_data):
        assert log_activity(None, "created", "job", seed_data["job_id"]) is None
        assert ActivityLog.query.count() == 0

    def test_failure_is_swallowed(self, ctx, seed_data):
        boom = OperationalError("INSERT", {}, Exception("disk I/O error"))
        with patch.object(db.session, "commit", side_effect=boom):
            result = log_activity(
                seed_data["owner_id"], "created", "job", seed_data["job_id"]
            )
        assert result is None
        assert ActivityLog.query.count() == 0

    def test_non_conforming_metadata_still_logged(self, ctx, seed_data):
        entry = log_activity(
            seed_data["owner_id"], "payment_completed", "invoice",
            seed_data["invoice_id"], metadata={"amount_total": 10000},
        )
        assert entry is not None
        assert entry.metadata_ == {"amount_total": 10000}

    def test_activity_is_not_audited(self, ctx, seed_data):
        log_activity(seed_data["owner_id"], "created", "job", seed_data["job_id"])
        assert AuditTrail.query.count() == 0


class TestValidateMetadata:

    def test_known_shape(self):
        metadata, problem = validate_metadata(
            "lead", "converted", {"customer_id": "c-1"}
        )
        assert problem is None
        assert metadata == {"customer_id": "c-1"}

    def test_missing_key(self):
        _, problem = validate_metadata("invoice", "receipt_sent", {})
        assert problem == "invoice/receipt_sent metadata missing email"

    def test_unknown_shape_is_free_form(self):
        metadata, problem = validate_metadata("job", "updated", ["status"])
        assert problem is None
        assert metadata == {"value": ["status"]}


class TestRecentActivity:

    def test_scoped_and_filtered(self, ctx, seed_data):
        owner = seed_data["owner_id"]
        log_activity(owner, "created", "job", seed_data["job_id"])
        log_activity(owner, "updated", "invoice", seed_data["invoice_id"])
        log_activity(seed_data["other_id"], "created", "job", seed_data["other_job_id"])

        rows = recent_activity(owner)
        assert {row["action"] for row in rows} == {"created", "updated"}
        assert all(row["user_id"] == owner for row in rows)

        rows = recent_activity(owner, entity_type="invoice")
        assert [row["entity_id"] for row in rows] == [seed_data["invoice_id"]]

    def test_limit(self, ctx, seed_data):
        for _ in range(3):
            log_activity(seed_data["owner_id"], "updated", "job", seed_data["job_id"])
        assert len(recent_activity(seed_data["owner_id"], limit=2)) == 2
