"""Tests for src.api.server — authenticated scheduler trigger."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from src.api.server import create_app
from src.core.reminder_engine import ReminderRunResult, SummaryResult

SECRET = "s3cret-value"
AUTH = {"Authorization": f"Bearer {SECRET}"}


@pytest.fixture
def engine():
    mock = MagicMock()
    mock.process_reminders = AsyncMock(return_value=ReminderRunResult(sent=3, errors=1))
    mock.send_daily_summary = AsyncMock(return_value=SummaryResult(sent=2))
    return mock


@pytest.fixture
def client(engine):
    return TestClient(create_app(engine, SECRET))


class TestAuth:
    def test_missing_header(self, client, engine):
        resp = client.get("/cron/reminders")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}
        engine.process_reminders.assert_not_awaited()

    def test_wrong_secret(self, client):
        resp = client.get("/cron/reminders", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401

    def test_secret_without_bearer_prefix(self, client):
        resp = client.get("/cron/reminders", headers={"Authorization": SECRET})
        assert resp.status_code == 401

    def test_empty_configured_secret_rejects_everything(self, engine):
        client = TestClient(create_app(engine, ""))
        resp = client.get("/cron/reminders", headers={"Authorization": "Bearer "})
        assert resp.status_code == 401


class TestActions:
    def test_reminders_default(self, client, engine):
        resp = client.get("/cron/reminders", headers=AUTH)
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "sent": 3, "errors": 1}
        engine.process_reminders.assert_awaited_once()

    def test_post_is_accepted(self, client):
        resp = client.post("/cron/reminders", headers=AUTH)
        assert resp.status_code == 200

    def test_summary(self, client, engine):
        resp = client.get("/cron/reminders?action=summary", headers=AUTH)
        assert resp.json() == {"success": True, "action": "summary"}
        engine.send_daily_summary.assert_awaited_once()
        engine.process_reminders.assert_not_awaited()

    def test_unknown_action(self, client, engine):
        resp = client.get("/cron/reminders?action=purge", headers=AUTH)
        assert resp.status_code == 400
        engine.process_reminders.assert_not_awaited()

    def test_engine_failure_returns_500(self, client, engine):
        engine.process_reminders.side_effect = RuntimeError("boom")
        resp = client.get("/cron/reminders", headers=AUTH)
        assert resp.status_code == 500
        assert resp.json() == {"error": "Reminder processing failed"}

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"
