"""Telegram bot for portfolio notifications and quick queries."""

import asyncio
import logging
import threading
from typing import Optional

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.ext import (
    Application,
    CommandHandler,
    CallbackQueryHandler,
    ContextTypes,
)
from sqlmodel import Session, select

from backend.config import settings

logger = logging.getLogger(__name__)

_bot_instance: Optional["TelegramBot"] = None


def format_summary(summary) -> str:
    """Render a PortfolioSummary as a short text message."""
    if summary.position_count == 0:
        return "No open positions."
    lines = [
        f"{p.symbol or p.instrument_id}: {p.quantity:g} @ {p.average_cost:,.2f} | "
        f"{p.unrealized_pnl_pct:+.1f}%"
        for p in summary.positions
    ]
    lines.append(
        f"\nValue: ${summary.market_value:,.2f} | Cost: ${summary.total_cost:,.2f} | "
        f"P&L: {summary.unrealized_pnl_pct:+.2f}%"
    )
    return "\n".join(lines)


class TelegramBot:
    """Telegram bot running in a background thread with its own event loop."""

    def __init__(self, token: str, chat_ids: list[int]):
        self.token = token
        self.chat_ids = set(chat_ids)
        self._app: Optional[Application] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def _is_authorized(self, user_id: int) -> bool:
        return user_id in self.chat_ids

    async def _check_auth(self, update: Update) -> bool:
        if not update.effective_user or not self._is_authorized(update.effective_user.id):
            if update.message:
                await update.message.reply_text("Unauthorized.")
            return False
        return True

    async def _cmd_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        from backend.engine.scheduler import get_scheduler_status

        status = get_scheduler_status()
        scheduler_str = "running" if status["running"] else "stopped"
        lines = [f"Scheduler: {scheduler_str} ({status['job_count']} jobs)"]
        for name, stats in status["stats"].items():
            lines.append(
                f"{name}: {stats['successful_runs']} ok / {stats['failed_runs']} failed"
                + (f" | last error: {stats['last_error']}" if stats["last_error"] else "")
            )
        await update.message.reply_text("\n".join(lines))

    async def _cmd_portfolio(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        from backend.database import engine
        from backend.services.portfolio import build_summary
        from backend.services.repository import SqlRepository

        with Session(engine) as session:
            summary = build_summary(SqlRepository(session))
        await update.message.reply_text(format_summary(summary))

    async def _cmd_alerts(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        from backend.database import engine
        from backend.models.sell_analysis import SellAlert

        with Session(engine) as session:
            alerts = session.exec(
                select(SellAlert)
                .where(SellAlert.is_active == True)  # noqa: E712
                .order_by(SellAlert.created_at.desc())
            ).all()
            if not alerts:
                await update.message.reply_text("No active alerts.")
                return
            text = "\n".join(f"[{a.priority}] {a.message}" for a in alerts)
        await update.message.reply_text(text)

    async def _cmd_refresh(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        if not await self._check_auth(update):
            return

        keyboard = InlineKeyboardMarkup([
            [
                InlineKeyboardButton("Quotes", callback_data="refresh_quotes"),
                InlineKeyboardButton("Sell analysis", callback_data="refresh_sell"),
                InlineKeyboardButton("Cancel", callback_data="cancel"),
            ]
        ])
        await update.message.reply_text("What should be refreshed?", reply_markup=keyboard)

    async def _handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        if not query or not query.from_user or not self._is_authorized(query.from_user.id):
            return

        await query.answer()

        if query.data == "cancel":
            await query.edit_message_text("Cancelled.")
            return

        from backend.engine.jobs import run_quote_update, run_sell_monitor

        if query.data == "refresh_quotes":
            await query.edit_message_text("Refreshing quotes...")
            result = await run_quote_update(force=True)
            await query.edit_message_text(result.get("message", result["status"]))

        elif query.data == "refresh_sell":
            await query.edit_message_text("Running sell analysis...")
            result = await run_sell_monitor(force=True)
            await query.edit_message_text(result.get("message", result["status"]))

    async def send_notification(self, message: str):
        """Send a message to all whitelisted chat IDs."""
        if not self._app or not self._app.bot:
            return
        for chat_id in self.chat_ids:
            try:
                await self._app.bot.send_message(chat_id=chat_id, text=message)
            except Exception as e:
                logger.warning(f"Failed to send Telegram notification to {chat_id}: {e}")

    def _run_bot(self):
        """Run the bot in a background thread with its own event loop."""
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)

        self._app = (
            Application.builder()
            .token(self.token)
            .build()
        )

        self._app.add_handler(CommandHandler("status", self._cmd_status))
        self._app.add_handler(CommandHandler("portfolio", self._cmd_portfolio))
        self._app.add_handler(CommandHandler("alerts", self._cmd_alerts))
        self._app.add_handler(CommandHandler("refresh", self._cmd_refresh))
        self._app.add_handler(CallbackQueryHandler(self._handle_callback))

        logger.info("Telegram bot starting...")
        self._loop.run_until_complete(self._app.initialize())
        self._loop.run_until_complete(self._app.start())
        self._loop.run_until_complete(self._app.updater.start_polling())
        self._loop.run_forever()

    def start(self):
        self._thread = threading.Thread(target=self._run_bot, daemon=True)
        self._thread.start()

    def stop(self):
        if self._loop and self._app:
            async def _shutdown():
                await self._app.updater.stop()
                await self._app.stop()
                await self._app.shutdown()

            asyncio.run_coroutine_threadsafe(_shutdown(), self._loop).result(timeout=10)
            self._loop.call_soon_threadsafe(self._loop.stop)


def init_bot() -> TelegramBot:
    """Initialize and return the bot singleton."""
    global _bot_instance
    _bot_instance = TelegramBot(
        token=settings.telegram_bot_token,
        chat_ids=settings.telegram_chat_ids,
    )
    return _bot_instance


def get_bot() -> Optional[TelegramBot]:
    """Get the bot singleton, or None if not initialized."""
    return _bot_instance
