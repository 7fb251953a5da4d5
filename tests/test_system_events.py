"""
Tests for system events: persistence, retention cleanup and the admin endpoints.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from app.db.models import SystemEvent
from app.services.system_event_service import (
    cleanup_old_events,
    error,
    info,
    record_event,
    warn,
)
from tests.helpers.campaign import seed_coupons


def test_log_event_levels_and_payload(db):
    info(db, "test.info", payload={"a": 1})
    warn(db, "test.warn", user_id=7)
    error(db, "test.error", exc=ValueError("boom"))

    events = db.query(SystemEvent).order_by(SystemEvent.id).all()
    assert [e.level for e in events] == ["INFO", "WARN", "ERROR"]
    assert events[0].payload == {"a": 1}
    assert events[1].user_id == 7
    assert events[1].payload is None
    assert events[2].payload["error"] == {"type": "ValueError", "message": "boom"}


def test_log_event_does_not_mutate_payload(db):
    payload = {"a": 1}
    error(db, "test.error", payload=payload, exc=RuntimeError("x"), correlation_id="cid-1")

    assert payload == {"a": 1}
    event = db.query(SystemEvent).one()
    assert event.payload["correlation_id"] == "cid-1"


def test_record_event_swallows_database_failure(session_factory):
    def broken_factory():
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    # Must not raise: the error being reported matters more than its record
    record_event(broken_factory, "ERROR", "test.error")


def test_record_event_uses_own_session(session_factory, db):
    record_event(session_factory, "WARN", "test.warn", payload={"k": "v"})

    assert db.query(SystemEvent).one().payload == {"k": "v"}


def test_cleanup_old_events_deletes_older_than_cutoff(db):
    old = datetime.now(UTC) - timedelta(days=100)
    db.add_all(
        [
            SystemEvent(level="INFO", event_type="test.old1", created_at=old),
            SystemEvent(level="INFO", event_type="test.old2", created_at=old),
        ]
    )
    db.commit()
    info(db, "test.recent")

    deleted = cleanup_old_events(db, retention_days=90)

    assert deleted == 2
    remaining = db.query(SystemEvent).all()
    assert [e.event_type for e in remaining] == ["test.recent"]


def test_admin_lists_events_filtered_by_level(client, db):
    info(db, "test.info")
    error(db, "test.error")

    response = client.get("/admin/events", params={"level": "error"})

    assert response.status_code == 200
    data = response.json()
    assert [e["event_type"] for e in data] == ["test.error"]
    assert data[0]["created_at"] is not None


def test_admin_retention_cleanup_endpoint(client, db):
    db.add(
        SystemEvent(
            level="INFO",
            event_type="test.old",
            created_at=datetime.now(UTC) - timedelta(days=30),
        )
    )
    db.commit()

    response = client.post("/admin/events/retention-cleanup", params={"retention_days": 7})

    assert response.status_code == 200
    assert response.json() == {"deleted": 1, "retention_days": 7}


def test_admin_coupon_stats_and_stranded(client, db):
    seed_coupons(db, 3)

    stats = client.get("/admin/coupons/stats").json()
    stranded = client.get("/admin/coupons/stranded").json()

    assert stats == {"total": 3, "available": 3, "claimed": 0, "assigned": 0, "stranded": 0}
    assert stranded == []


def test_admin_endpoints_require_api_key_when_configured(client):
    with patch("app.api.auth.settings.admin_api_key", "secret-key"):
        assert client.get("/admin/coupons/stats").status_code == 401
        assert client.get("/admin/events", headers={"X-Admin-API-Key": "x"}).status_code == 403
        ok = client.get("/admin/coupons/stranded", headers={"X-Admin-API-Key": "secret-key"})
        assert ok.status_code == 200
