from collections.abc import Callable

from loguru import logger
from telegram import Update
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from app.bot.waiters import ReplyWaiters
from app.config import get_settings
from app.core.parser import clean_message
from app.deps import orchestrator

settings = get_settings()
waiters = ReplyWaiters()


class TelegramConversation:
    def __init__(self, update: Update, reply_waiters: ReplyWaiters):
        self.update = update
        self.user_id = str(update.effective_user.id)
        self._waiters = reply_waiters

    async def reply(self, text: str) -> None:
        await self.update.message.reply_text(text)

    async def await_next_message(
        self, accept: Callable[[str], bool], timeout: float
    ) -> str | None:
        return await self._waiters.wait(self.user_id, accept, timeout)

    def cancel_wait(self) -> None:
        self._waiters.release(self.user_id)


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Handle incoming text messages and commands, the main conversation entry point."""
    if update.message is None or update.effective_user is None:
        return
    if update.effective_user.is_bot:
        return

    user_text = (update.message.text or "").strip()
    user_id = str(update.effective_user.id)
    logger.info("Telegram message from {}: {}", user_id, user_text)

    # A handler waiting on this user's yes/no takes the message first
    if waiters.offer(user_id, clean_message(user_text)):
        return

    await update.message.chat.send_action("typing")
    await orchestrator.handle(TelegramConversation(update, waiters), user_text)


async def handle_error(update: object, context: ContextTypes.DEFAULT_TYPE):
    logger.error("Telegram update failed: {}", context.error)
    if isinstance(update, Update) and update.effective_message is not None:
        await update.effective_message.reply_text(
            "Sorry, there was an error processing your message. Please try again later."
        )


def build_bot_app() -> Application:
    """Build and return the Telegram bot application."""
    # Concurrent updates so the reply a duplicate confirmation awaits can arrive
    app = (
        Application.builder()
        .token(settings.telegram_bot_token)
        .concurrent_updates(True)
        .build()
    )

    app.add_handler(MessageHandler(filters.TEXT, handle_message))
    app.add_error_handler(handle_error)

    return app
