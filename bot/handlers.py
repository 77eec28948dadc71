"""Command handlers for the Groupkeeper bot.

Each public function handles a single Telegram slash-command and is invoked
by the dispatcher in :mod:`bot.dispatcher`.  Replies use Telegram's HTML
parse mode, so every user-supplied value is escaped.
"""

from html import escape

from bot.context import BotContext
from bot.models import Message
from bot.registry import registry
from bot.telegram import edit_message_text, send_message
from core.logger import GroupkeeperLogger
from core.resolver import GroupsFound, Resolution
from core.store import StoreUnavailable
from sdk.exceptions import AuthFailure, ProviderUnavailable

logger = GroupkeeperLogger.get_logger("handlers")

LOOKUP_ERROR_TEXT = "❌ An error occurred while fetching user data."


def render_resolution(resolution: Resolution) -> str:
    """Turn a resolver outcome into reply text; the three outcomes read differently."""
    name = escape(resolution.identifier)
    if isinstance(resolution, GroupsFound):
        if not resolution.groups:
            return f"User <b>{name}</b> doesn't belong to any groups."
        listing = "\n".join(escape(group) for group in sorted(resolution.groups))
        return f"User <b>{name}</b> belongs to the following groups:\n<pre>{listing}</pre>"
    return f"User <b>{name}</b> not found."


async def _reply_in_place(chat_id: int, placeholder_id: int | None, text: str) -> None:
    """Edit the placeholder into *text*; send a fresh message if that is impossible."""
    if placeholder_id is not None and await edit_message_text(chat_id, placeholder_id, text, parse_mode="HTML"):
        return
    await send_message(chat_id, text, parse_mode="HTML")


@registry.register("/start", description="Introduce the bot")
async def handle_start(ctx: BotContext, message: Message, user_id: int) -> None:
    chat_id = message.chat.id
    display_name = message.from_field.first_name if message.from_field else str(user_id)
    logger.info("User invoked /start", extra={"user_id": user_id, "chat_id": chat_id, "command": "/start"})
    await send_message(
        chat_id,
        f"👋 Hi {escape(display_name)}! Send /permissions &lt;username&gt; to see a user's groups.",
        parse_mode="HTML",
    )


@registry.register("/help", description="Show available commands")
async def handle_help(ctx: BotContext, message: Message, user_id: int) -> None:
    """Handle /help — list the commands this user may run as inline buttons."""
    chat_id = message.chat.id
    logger.info("User invoked /help", extra={"user_id": user_id, "chat_id": chat_id, "command": "/help"})

    buttons = [
        [{"text": f"{entry.command} — {entry.description}", "callback_data": entry.command}]
        for entry in registry.available_to(ctx, user_id)
    ]
    await send_message(chat_id, "📖 Available commands (tap to use):", reply_markup={"inline_keyboard": buttons})


@registry.register("/permissions", description="Show the groups a user belongs to",
                   usage="/permissions <username>")
async def handle_permissions(ctx: BotContext, message: Message, user_id: int) -> None:
    """Handle /permissions <username>.

    Posts a placeholder straight away, resolves through the membership cache
    (falling back to the identity provider), then edits the placeholder into
    the answer.
    """
    chat_id = message.chat.id
    parts = (message.text or "").split(maxsplit=1)
    username = parts[1].strip() if len(parts) > 1 else ""
    if not username:
        await send_message(chat_id, "Usage: /permissions <username>")
        return

    logger.info("User invoked /permissions", extra={"user_id": user_id, "chat_id": chat_id, "command": "/permissions", "identifier": username})
    placeholder_id = await send_message(
        chat_id, f"⏳ Fetching permissions for <b>{escape(username)}</b>…", parse_mode="HTML",
    )

    try:
        resolution = await ctx.resolver.resolve(username)
    except (AuthFailure, ProviderUnavailable, StoreUnavailable) as exc:
        logger.error(
            "Group lookup failed",
            extra={"user_id": user_id, "identifier": username, "error": str(exc), "error_type": type(exc).__name__},
        )
        text = LOOKUP_ERROR_TEXT
    else:
        text = render_resolution(resolution)

    await _reply_in_place(chat_id, placeholder_id, text)


@registry.register("/status", description="Show cache and sync status")
async def handle_status(ctx: BotContext, message: Message, user_id: int) -> None:
    chat_id = message.chat.id
    logger.info("User invoked /status", extra={"user_id": user_id, "chat_id": chat_id, "command": "/status"})

    scheduler = ctx.scheduler
    if scheduler.last_run_at is None:
        last_run = "never"
    else:
        last_run = scheduler.last_run_at.strftime("%Y-%m-%d %H:%M UTC")

    if scheduler.last_error is not None:
        outcome = f"failed ({type(scheduler.last_error).__name__})"
    elif scheduler.last_report is not None:
        outcome = f"ok, {len(scheduler.last_report.upserted)} user(s) updated"
    else:
        outcome = "n/a"

    await send_message(
        chat_id,
        f"📊 Status:\n"
        f"• Cached users: {len(ctx.store)}\n"
        f"• Last sync: {last_run}\n"
        f"• Last sync result: {outcome}",
    )


@registry.register("/sync", description="Refresh every user's groups now", admin_only=True)
async def handle_sync(ctx: BotContext, message: Message, user_id: int) -> None:
    """Handle /sync — run one reconciliation immediately (admins only)."""
    chat_id = message.chat.id
    logger.info("User invoked /sync", extra={"user_id": user_id, "chat_id": chat_id, "command": "/sync"})

    if not ctx.is_admin(user_id):
        logger.warning("Unauthorised /sync attempt", extra={"user_id": user_id, "chat_id": chat_id, "command": "/sync"})
        await send_message(chat_id, "⛔ You do not have permission to run a sync.")
        return

    await send_message(chat_id, "🔄 Sync started…")
    report = await ctx.scheduler.run_guarded()
    if report is None:
        error = ctx.scheduler.last_error
        await send_message(chat_id, f"❌ Sync failed: {type(error).__name__ if error else 'unknown error'}.")
    elif report.ok:
        await send_message(chat_id, f"✅ Sync complete — {len(report.upserted)} user(s) updated.")
    else:
        await send_message(
            chat_id,
            f"⚠️ Sync finished with errors — {len(report.upserted)} updated, {len(report.failed)} failed.",
        )
