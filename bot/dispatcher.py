"""Update dispatcher and main polling loop.

Routes each incoming Telegram update to a handler in :mod:`bot.handlers` or
:mod:`bot.callbacks`.  Every update runs in its own task so a slow provider
lookup never blocks polling, and the reconciliation scheduler runs as a
background task in the same event loop.
"""

import asyncio

from pydantic import ValidationError

from config import BOT_TOKEN
from bot.callbacks import handle_callback_query
from bot.context import BotContext
from bot.models import Update
from bot.registry import registry
from bot.telegram import get_updates
from core.identity import get_identity
from core.logger import GroupkeeperLogger

# Import handlers module so @registry.register decorators execute.
import bot.handlers as _handlers  # noqa: F401

logger = GroupkeeperLogger.get_logger("dispatcher")

_inflight: set[asyncio.Task] = set()


async def process_update(ctx: BotContext, update: dict) -> None:
    """Dispatch a single raw Telegram update."""
    update_id = update.get("update_id")

    user_id = get_identity(update)
    if user_id is None:
        logger.debug("Could not resolve identity, skipping", extra={"update_id": update_id})
        return

    try:
        parsed = Update.model_validate(update)
    except ValidationError as exc:
        logger.warning("Failed to parse update", extra={"update_id": update_id, "error": str(exc)})
        return

    if parsed.callback_query:
        await handle_callback_query(ctx, parsed.callback_query, user_id)
        return

    message = parsed.message or parsed.edited_message or parsed.channel_post or parsed.edited_channel_post
    if not message:
        logger.debug("Update has no message — skipping", extra={"update_id": update_id})
        return

    text = message.text or ""
    # "/permissions@MyBot alice" → "/permissions"
    command = text.split()[0].split("@")[0] if text.startswith("/") else ""
    if not command or not await registry.dispatch(command, ctx, message, user_id):
        logger.debug("No command matched", extra={"update_id": update_id, "user_id": user_id})


async def run(ctx: BotContext) -> None:
    """Start the scheduler and the long-polling loop.

    Raises:
        EnvironmentError: If ``BOT_TOKEN`` is not set.
    """
    if not BOT_TOKEN:
        raise EnvironmentError("BOT_TOKEN environment variable is not set or is empty.")

    scheduler_task = asyncio.create_task(ctx.scheduler.run_forever())
    offset: int | None = None

    logger.info("Groupkeeper bot is running. Polling for updates...")
    try:
        while True:
            data = await get_updates(offset)
            if not data.get("ok"):
                logger.warning("getUpdates returned ok=false, retrying in 5 s", extra={"api_endpoint": "getUpdates"})
                await asyncio.sleep(5)
                continue

            for update in data.get("result", []):
                task = asyncio.create_task(process_update(ctx, update))
                _inflight.add(task)
                task.add_done_callback(_inflight.discard)
                offset = update["update_id"] + 1
    finally:
        ctx.scheduler.stop()
        await scheduler_task
