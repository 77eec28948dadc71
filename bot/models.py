"""Pydantic models for the slice of the Telegram Bot API the bot consumes."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class User(BaseModel):
    """A Telegram user or bot."""

    id: int
    is_bot: bool = False
    first_name: str = ""
    last_name: Optional[str] = None
    username: Optional[str] = None

    model_config = {"populate_by_name": True}


class Chat(BaseModel):
    id: int
    type: str
    title: Optional[str] = None
    username: Optional[str] = None

    model_config = {"populate_by_name": True}


class Message(BaseModel):
    message_id: int
    date: int = 0
    chat: Chat
    from_field: Optional[User] = Field(None, alias="from")
    sender_chat: Optional[Chat] = None
    text: Optional[str] = None

    model_config = {"populate_by_name": True}


class CallbackQuery(BaseModel):
    """An inline-keyboard button press."""

    id: str
    from_field: User = Field(..., alias="from")
    chat_instance: str = ""
    message: Optional[Message] = None
    data: Optional[str] = None

    model_config = {"populate_by_name": True}


class Update(BaseModel):
    update_id: int
    message: Optional[Message] = None
    edited_message: Optional[Message] = None
    channel_post: Optional[Message] = None
    edited_channel_post: Optional[Message] = None
    callback_query: Optional[CallbackQuery] = None

    model_config = {"populate_by_name": True}
