from core.logger import GroupkeeperLogger

logger = GroupkeeperLogger.get_logger("identity")

_MESSAGE_KEYS: tuple[str, ...] = ("message", "edited_message", "channel_post", "edited_channel_post")


def get_identity(update: dict) -> int | None:
    """Return the Telegram id of whoever sent *update*.

    Button presses are attributed to the presser (``callback_query.from``);
    messages to ``from``, falling back to ``sender_chat`` for channel posts
    and anonymous admins.
    """
    callback_query = update.get("callback_query")
    if callback_query:
        return (callback_query.get("from") or {}).get("id")

    message = next((update[key] for key in _MESSAGE_KEYS if update.get(key)), None)
    if message is None:
        return None

    sender = message.get("from") or message.get("sender_chat")
    if sender is None:
        logger.warning("Could not resolve identity from update", extra={"update_id": update.get("update_id")})
        return None
    return sender.get("id")
