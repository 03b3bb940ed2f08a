"""
Family Scheduler — Scheduler trigger endpoint.

An external cron hits /cron/reminders on a fixed cadence (and once a day
with ?action=summary). Requests must carry `Authorization: Bearer <CRON_SECRET>`.
"""

from __future__ import annotations

import hmac
import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from src.core.reminder_engine import ReminderEngine

logger = logging.getLogger(__name__)

ACTIONS = ("reminders", "summary")


def _authorized(header: str | None, secret: str) -> bool:
    if not secret or not header:
        return False
    return hmac.compare_digest(header.encode(), f"Bearer {secret}".encode())


def create_app(engine: ReminderEngine, cron_secret: str) -> FastAPI:
    """Build the trigger app around an already-wired engine."""
    app = FastAPI(
        title="Family Scheduler",
        description="Scheduler trigger for reminders and daily summaries",
        version="1.0.0",
    )

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": "family-scheduler"}

    @app.api_route("/cron/reminders", methods=["GET", "POST"])
    async def run_cron(
        action: str = "reminders",
        authorization: str | None = Header(default=None),
    ):
        if not _authorized(authorization, cron_secret):
            logger.warning("Rejected cron trigger with bad credentials")
            return JSONResponse({"error": "Unauthorized"}, status_code=401)

        if action not in ACTIONS:
            return JSONResponse({"error": f"Unknown action: {action}"}, status_code=400)

        try:
            if action == "summary":
                await engine.send_daily_summary()
                return {"success": True, "action": "summary"}

            result = await engine.process_reminders()
            return {"success": True, "sent": result.sent, "errors": result.errors}
        except Exception as exc:
            logger.error("Cron %s failed: %s", action, exc)
            return JSONResponse({"error": "Reminder processing failed"}, status_code=500)

    return app
