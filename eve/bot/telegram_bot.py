"""
Eve Assistant — Telegram channel adapter.

Telegram is one channel into the assistant core: it maps a Telegram user to
an account, hands text (or transcribed voice) to Assistant.handle_message,
and renders the reply's side effects (invoice PDF, spoken reply).

Unauthorized users are silently ignored.
"""

from __future__ import annotations

import io
import logging
import tempfile
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Coroutine

from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from eve.config import settings
from eve.core.assistant import Assistant
from eve.core.synthesizer import Reply, SideEffect
from eve.data.db import Stores

logger = logging.getLogger(__name__)

_AWAITING_MEETING = "awaiting_meeting_audio"


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def is_authorized(user_id: int | None) -> bool:
    if user_id is None:
        return False
    return not settings.ALLOWED_USER_IDS or user_id in settings.ALLOWED_USER_IDS


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores messages from unauthorized users.

    An empty ALLOWED_USER_IDS lets everyone in.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if not is_authorized(user.id if user else None):
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _account_id(update: Update, context: ContextTypes.DEFAULT_TYPE) -> str:
    """Map the Telegram user to an account, creating it on first contact."""
    stores: Stores = context.bot_data["stores"]
    user = update.effective_user
    account = stores.accounts.get_or_create_by_phone(str(user.id), user.first_name)
    return account.id


async def _render_reply(reply: Reply, update: Update) -> None:
    """Send the reply text, then any side effects the core asked for."""
    from eve.core.transcriber import synthesize_speech
    from eve.integrations.invoice_pdf import invoice_filename, render_invoice_pdf

    await update.message.reply_text(reply.text)

    if SideEffect.ATTACH_INVOICE_PDF in reply.side_effects and reply.invoice is not None:
        try:
            pdf = render_invoice_pdf(reply.invoice)
            await update.message.reply_document(
                document=io.BytesIO(pdf), filename=invoice_filename(reply.invoice)
            )
        except Exception as exc:
            logger.error("Invoice PDF delivery failed: %s", exc)
            await update.message.reply_text("I couldn't attach the invoice PDF this time.")

    if SideEffect.SPEAK_REPLY in reply.side_effects:
        try:
            audio = await synthesize_speech(reply.text)
            await update.message.reply_voice(voice=io.BytesIO(audio))
        except Exception as exc:
            logger.error("Spoken reply failed: %s", exc)


async def _download_voice(update: Update, context: ContextTypes.DEFAULT_TYPE) -> str:
    """Download the voice note (or audio file) to a temp path and return it."""
    media = update.message.voice or update.message.audio
    tg_file = await context.bot.get_file(media.file_id)
    with tempfile.NamedTemporaryFile(suffix=".ogg", delete=False) as tmp:
        tmp_path = tmp.name
    await tg_file.download_to_drive(tmp_path)
    return tmp_path


async def _process_meeting(
    transcript: str, update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    from eve.core.meeting import extract_meeting_details, format_meeting_summary, save_meeting_items

    stores: Stores = context.bot_data["stores"]
    details = await extract_meeting_details(transcript)
    save_meeting_items(stores, _account_id(update, context), details)
    await update.message.reply_text(format_meeting_summary(details))
    if details.message != "Meeting processed successfully":
        await update.message.reply_text(details.message)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    _account_id(update, context)
    await update.message.reply_text(
        "Hi, I'm *Eve*, your business assistant!\n\n"
        "Just tell me what you need:\n"
        "• \"Remind me to order tiles by Friday\"\n"
        "• \"Schedule a site visit with Dana tomorrow at 10am\"\n"
        "• \"Invoice Acme $1,200 for the bathroom remodel\"\n"
        "• \"Which invoices are overdue?\"\n\n"
        "Voice messages work too. Type /help for commands.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "*Available commands:*\n"
        "/meeting — Send a meeting recording next and I'll extract tasks, events and invoices\n"
        "/clear — Forget our conversation history\n"
        "/help — Show this message\n\n"
        "Anything else you type (or say) is handled as a request.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_clear(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /clear — purge the conversation history."""
    assistant: Assistant = context.bot_data["assistant"]
    removed = assistant.clear_conversation(_account_id(update, context))
    await update.message.reply_text(f"Conversation cleared ({removed} messages removed).")


@authorized_only
async def cmd_meeting(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /meeting — the next voice or audio message is a meeting recording."""
    context.user_data[_AWAITING_MEETING] = True
    await update.message.reply_text(
        "Send me the meeting recording as a voice message or audio file."
    )


# ---------------------------------------------------------------------------
# Message handlers
# ---------------------------------------------------------------------------


@authorized_only
async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle plain text messages — one conversational turn."""
    assistant: Assistant = context.bot_data["assistant"]
    reply = await assistant.handle_message(_account_id(update, context), update.message.text)
    await _render_reply(reply, update)


@authorized_only
async def handle_voice(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle voice/audio — a meeting recording after /meeting, otherwise a spoken request."""
    from eve.core.transcriber import transcribe_audio

    tmp_path: str | None = None
    try:
        tmp_path = await _download_voice(update, context)
        text = await transcribe_audio(tmp_path)
        logger.info("Voice transcribed: %s", text[:80])

        if context.user_data.pop(_AWAITING_MEETING, False):
            await update.message.reply_text("Processing the meeting recording...")
            await _process_meeting(text, update, context)
            return

        await update.message.reply_text(f"🎤 I heard: {text}")
        assistant: Assistant = context.bot_data["assistant"]
        reply = await assistant.handle_message(
            _account_id(update, context), text, voice_input=True
        )
        await _render_reply(reply, update)

    except Exception as exc:
        logger.error("Voice handling error: %s", exc)
        await update.message.reply_text(
            "Sorry, I couldn't process your voice message. Please try again."
        )
    finally:
        if tmp_path:
            Path(tmp_path).unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(assistant: Assistant | None = None, stores: Stores | None = None) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        assistant: Assistant core. Defaults to one wired with the configured
                   email sender and accounting session.
        stores: Storage handles. Defaults to the configured SQLite database.
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    stores = stores or Stores.open()
    if assistant is None:
        from eve.core.dispatcher import ActionDispatcher
        from eve.integrations.email_sender import create_email_sender
        from eve.integrations.xero_client import create_accounting_session

        dispatcher = ActionDispatcher(stores, email=create_email_sender())
        assistant = Assistant(stores, dispatcher, create_accounting_session())

    app.bot_data["stores"] = stores
    app.bot_data["assistant"] = assistant

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("clear", cmd_clear))
    app.add_handler(CommandHandler("meeting", cmd_meeting))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))
    app.add_handler(MessageHandler(filters.VOICE | filters.AUDIO, handle_voice))

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Eve Assistant bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
