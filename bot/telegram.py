"""Low-level Telegram Bot API helpers.

Thin async wrappers around ``requests`` for polling updates, sending and
editing messages, and acknowledging callback queries.  Blocking I/O goes
through :func:`sdk.client.make_request`, which offloads to a thread.
Failures are logged and reported through the return value; they never raise.
"""

import json

import requests

from config import BASE_URL
from core.logger import GroupkeeperLogger
from sdk.client import make_request

logger = GroupkeeperLogger.get_logger("telegram")


async def get_updates(offset: int | None = None) -> dict:
    """Long-poll the Telegram Bot API for new updates."""
    params: dict = {"timeout": 30}
    if offset is not None:
        params["offset"] = offset
    try:
        response = await make_request("get", f"{BASE_URL}/getUpdates", params=params, timeout=35)
        response.raise_for_status()
        try:
            return response.json()
        except json.JSONDecodeError as exc:
            logger.error("getUpdates JSON decode error", extra={"api_endpoint": "getUpdates", "error": str(exc)})
            return {"ok": False, "result": []}
    except requests.RequestException as exc:
        logger.error("getUpdates request error", extra={"api_endpoint": "getUpdates", "error": str(exc)})
        return {"ok": False, "result": []}


async def send_message(
    chat_id: int,
    text: str,
    reply_markup: dict | None = None,
    parse_mode: str | None = None,
) -> int | None:
    """Send a text message and return its ``message_id`` (``None`` on failure)."""
    payload: dict = {"chat_id": chat_id, "text": text}
    if parse_mode is not None:
        payload["parse_mode"] = parse_mode
    if reply_markup is not None:
        payload["reply_markup"] = reply_markup
    try:
        response = await make_request("post", f"{BASE_URL}/sendMessage", json=payload, timeout=10)
        response.raise_for_status()
        data = response.json()
    except requests.HTTPError as exc:
        logger.error("sendMessage HTTP error", extra={"chat_id": chat_id, "api_endpoint": "sendMessage", "status_code": exc.response.status_code, "error": str(exc)})
        return None
    except (requests.RequestException, ValueError) as exc:
        logger.error("sendMessage request error", extra={"chat_id": chat_id, "api_endpoint": "sendMessage", "error": str(exc)})
        return None

    if not data.get("ok"):
        logger.warning("sendMessage Telegram error", extra={"chat_id": chat_id, "api_endpoint": "sendMessage", "api_response": data})
        return None
    logger.debug("Message sent", extra={"chat_id": chat_id, "api_endpoint": "sendMessage"})
    return (data.get("result") or {}).get("message_id")


async def edit_message_text(chat_id: int, message_id: int, text: str, parse_mode: str | None = None) -> bool:
    """Replace the text of a previously sent message.  Returns True on success."""
    payload: dict = {"chat_id": chat_id, "message_id": message_id, "text": text}
    if parse_mode is not None:
        payload["parse_mode"] = parse_mode
    try:
        response = await make_request("post", f"{BASE_URL}/editMessageText", json=payload, timeout=10)
        data = response.json()
    except (requests.RequestException, ValueError) as exc:
        logger.error("editMessageText request error", extra={"chat_id": chat_id, "api_endpoint": "editMessageText", "error": str(exc)})
        return False
    if not data.get("ok"):
        logger.warning("editMessageText Telegram error", extra={"chat_id": chat_id, "api_endpoint": "editMessageText", "api_response": data})
        return False
    return True


async def answer_callback_query(callback_query_id: str, text: str | None = None) -> None:
    """Acknowledge a callback query so the spinner disappears for the user."""
    payload: dict = {"callback_query_id": callback_query_id}
    if text is not None:
        payload["text"] = text
    try:
        response = await make_request("post", f"{BASE_URL}/answerCallbackQuery", json=payload, timeout=10)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.error("answerCallbackQuery request error", extra={"api_endpoint": "answerCallbackQuery", "callback_query_id": callback_query_id, "error": str(exc)})
