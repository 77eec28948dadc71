"""Telegram bot application layer — polling, command handlers, callback handlers.

This package may import from ``core/``, ``sdk/`` and ``config`` only.
"""

from bot.callbacks import handle_callback_query
from bot.context import BotContext
from bot.dispatcher import process_update, run
from bot.handlers import (
    handle_help,
    handle_permissions,
    handle_start,
    handle_status,
    handle_sync,
    render_resolution,
)
from bot.telegram import answer_callback_query, edit_message_text, get_updates, send_message

__all__ = [
    # Dispatcher
    "run",
    "process_update",
    "BotContext",
    # Command handlers
    "handle_start",
    "handle_help",
    "handle_permissions",
    "handle_status",
    "handle_sync",
    "render_resolution",
    # Callback handlers
    "handle_callback_query",
    # Telegram API helpers
    "get_updates",
    "send_message",
    "edit_message_text",
    "answer_callback_query",
]
