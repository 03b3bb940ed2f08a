"""
Family Scheduler — Entry Point.

    python main.py serve       # scheduler trigger endpoint (/cron/reminders)
    python main.py bot         # Telegram capture bot
    python main.py reminders   # one reminder pass, then exit
    python main.py summary     # one daily summary run, then exit

Stores, dispatcher and engine are built here and passed down explicitly.
"""

import argparse
import asyncio
import json
import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from src.adapters.dispatcher import create_dispatcher
from src.config import Settings, load_settings
from src.core.capture_service import CaptureService
from src.core.conflict_checker import ConflictDetector
from src.core.reminder_engine import ReminderEngine
from src.data.db import EventDB, NotificationLogDB, ReminderRuleDB, UserDB

logger = logging.getLogger("main")


def build_engine(settings: Settings, users: UserDB, events: EventDB, bot=None) -> ReminderEngine:
    return ReminderEngine(
        events=events,
        rules=ReminderRuleDB(settings.DATABASE_PATH),
        users=users,
        log=NotificationLogDB(settings.DATABASE_PATH),
        notifier=create_dispatcher(settings, bot=bot),
        app_url=settings.APP_URL,
        window_days=settings.REMINDER_WINDOW_DAYS,
        morning_hour=settings.MORNING_OF_HOUR,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Family Scheduler")
    parser.add_argument("command", choices=["serve", "bot", "reminders", "summary"])
    args = parser.parse_args()

    settings = load_settings()
    users = UserDB(settings.DATABASE_PATH)
    events = EventDB(settings.DATABASE_PATH)

    if args.command == "bot":
        if not settings.TELEGRAM_BOT_TOKEN:
            raise SystemExit("ERROR: TELEGRAM_BOT_TOKEN is not set")
        from src.bot.telegram_bot import build_app

        capture = CaptureService(
            events, users, ConflictDetector(events),
            max_message_length=settings.MAX_MESSAGE_LENGTH,
        )
        logger.info("Starting Family Scheduler bot...")
        build_app(settings.TELEGRAM_BOT_TOKEN, users, capture).run_polling()
        return

    engine = build_engine(settings, users, events)

    if args.command == "serve":
        import uvicorn

        from src.api.server import create_app

        uvicorn.run(create_app(engine, settings.CRON_SECRET), host=settings.HOST, port=settings.PORT)
    elif args.command == "reminders":
        result = asyncio.run(engine.process_reminders())
        print(json.dumps({"success": True, "sent": result.sent, "errors": result.errors}))
    else:
        asyncio.run(engine.send_daily_summary())
        print(json.dumps({"success": True, "action": "summary"}))


if __name__ == "__main__":
    main()
