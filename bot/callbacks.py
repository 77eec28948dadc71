"""Callback-query handlers for inline keyboard interactions.

When a user taps a command button from /help, the matching handler is
invoked through the registry as if the command had been typed.  Commands that
need arguments answer with their usage line instead.
"""

from bot.context import BotContext
from bot.models import CallbackQuery, Message
from bot.registry import registry
from bot.telegram import answer_callback_query, send_message
from core.logger import GroupkeeperLogger

logger = GroupkeeperLogger.get_logger("callbacks")


def _build_synthetic_message(callback_query: CallbackQuery, text: str) -> Message | None:
    """Build a message from a button press so command handlers get their usual input."""
    if callback_query.message is None:
        return None
    return Message(
        message_id=callback_query.message.message_id,
        date=callback_query.message.date,
        chat=callback_query.message.chat,
        from_field=callback_query.from_field,
        text=text,
    )


async def handle_callback_query(ctx: BotContext, callback_query: CallbackQuery, user_id: int) -> None:
    data = callback_query.data or ""
    logger.info("Callback query received", extra={"user_id": user_id, "callback_data": data})

    entry = registry.get(data)
    message = _build_synthetic_message(callback_query, data)
    if entry is None or message is None:
        logger.debug("Unhandled callback data", extra={"user_id": user_id, "callback_data": data})
        await answer_callback_query(callback_query.id)
        return

    await answer_callback_query(callback_query.id, f"Running {data}…")
    if entry.usage:
        await send_message(message.chat.id, f"Usage: {entry.usage}")
        return
    await entry.handler(ctx, message, user_id)
