"""
Family Scheduler — Telegram Bot.

Chat capture channel: a linked family member sends "Math test for Noam on
Mar 10 8:00" and the bot stores the event for their family, warning about
overlaps for the same person.

Linking: the app shows a `/start <user id>` deep link; the first /start from
a chat binds that chat to the user.
"""

from __future__ import annotations

import logging
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from src.core.capture_service import format_capture_reply
from src.data.models import EventSource

if TYPE_CHECKING:
    from src.core.capture_service import CaptureService
    from src.data.db import UserDB
    from src.data.models import User

logger = logging.getLogger(__name__)

EXAMPLES = (
    '"Math test for Noam on Mar 10 8:00"\n'
    '"Soccer practice every Tue 16:00"\n'
    '"Gym tomorrow 19:00"'
)

RETRY_PROMPT = (
    "Sorry, I couldn't understand that. Try something like:\n"
    '"Math test for Noam on Mar 10 8:00"'
)


# ---------------------------------------------------------------------------
# Linked-users-only decorator
# ---------------------------------------------------------------------------


def linked_user_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Resolve the chat's linked user and pass it to the handler.

    Unlinked chats get a pointer to the linking flow; users without a family
    get a pointer to the setup wizard.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        users: UserDB = context.bot_data["users"]
        chat_id = str(update.effective_chat.id)
        user = users.get_user_by_chat(chat_id)
        if user is None:
            logger.info("Message from unlinked chat %s", chat_id)
            await update.message.reply_text(
                "I don't know who you are yet. Please link your account first "
                "in the Family Scheduler app settings."
            )
            return
        if user.family_id is None:
            await update.message.reply_text(
                "Your account isn't set up yet. Please complete the setup wizard in the app."
            )
            return
        return await func(update, context, user)

    return wrapper


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start [link code] — link this chat to a user account."""
    users: UserDB = context.bot_data["users"]
    args = context.args or []

    if not args:
        await update.message.reply_text(
            "Welcome! To link your account, go to Settings in the Family "
            "Scheduler app and click 'Link Telegram'."
        )
        return

    try:
        user_id = int(args[0])
    except ValueError:
        user_id = None
    user = users.get_user(user_id) if user_id is not None else None
    if user is None:
        logger.warning("Invalid link code '%s' from chat %s", args[0], update.effective_chat.id)
        await update.message.reply_text(
            "That link code isn't valid. Please use the link from the app settings."
        )
        return

    username = update.effective_user.username if update.effective_user else None
    users.link_chat(user.id, str(update.effective_chat.id), username)
    await update.message.reply_text(
        "Linked! You can now send messages like:\n\n"
        f"{EXAMPLES}\n\n"
        "I'll add them to your Family Calendar."
    )


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help."""
    await update.message.reply_text(
        "Send me an event in plain text, for example:\n\n"
        f"{EXAMPLES}\n\n"
        "Mention a family member's name to book it for them."
    )


# ---------------------------------------------------------------------------
# Capture: text -> event
# ---------------------------------------------------------------------------


@linked_user_only
async def handle_text(
    update: Update, context: ContextTypes.DEFAULT_TYPE, user: User,
) -> None:
    """Parse a free-text message and store it as a family event."""
    capture: CaptureService = context.bot_data["capture"]
    message = update.message
    source_id = f"{update.effective_chat.id}:{message.message_id}"

    try:
        result = capture.capture(
            user.family_id, message.text or "",
            source=EventSource.TELEGRAM, source_message_id=source_id,
        )
    except Exception as exc:
        logger.error("Capture failed for user %d: %s", user.id, exc)
        await message.reply_text(
            "Sorry, something went wrong while saving your event. Please try again."
        )
        return

    if result is None:
        await message.reply_text(RETRY_PROMPT)
        return

    if result.duplicate:
        logger.debug("Ignoring redelivered message %s", source_id)
        return

    await message.reply_text(format_capture_reply(result))


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(token: str, users: UserDB, capture: CaptureService) -> Application:
    """Build and configure the Telegram Application with all handlers."""
    app = ApplicationBuilder().token(token).build()

    app.bot_data["users"] = users
    app.bot_data["capture"] = capture

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app
