"""Command registry — single source of truth for slash-command → handler mapping.

Handlers register themselves with ``@registry.register`` in
:mod:`bot.handlers`; the dispatcher, the ``/help`` menu and the inline-button
callbacks all read from the same registry.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Callable, Protocol, runtime_checkable

from bot.context import BotContext
from bot.models import Message


@runtime_checkable
class CommandHandler(Protocol):
    async def __call__(self, ctx: BotContext, message: Message, user_id: int) -> None: ...  # noqa: E704


@dataclasses.dataclass(frozen=True, slots=True)
class CommandEntry:
    """Metadata for a single registered slash-command."""
    command: str              # e.g. "/permissions"
    description: str          # shown in /help
    handler: CommandHandler
    admin_only: bool = False  # restricted to ADMINS
    usage: str | None = None  # set when the command needs arguments


class CommandRegistry:
    """Singleton command registry.

    Usage::

        @registry.register("/ping", description="Ping")
        async def handle_ping(ctx, message, user_id): ...

        await registry.dispatch("/ping", ctx, message, user_id)
    """

    _instance: CommandRegistry | None = None
    _entries: dict[str, CommandEntry]

    def __new__(cls) -> CommandRegistry:
        if cls._instance is None:
            inst = super().__new__(cls)
            inst._entries = {}
            cls._instance = inst
        return cls._instance

    def register(
        self,
        command: str,
        *,
        description: str,
        admin_only: bool = False,
        usage: str | None = None,
    ) -> Callable[[Any], Any]:
        """Decorator that registers the decorated coroutine for *command*."""
        def decorator(func: CommandHandler) -> CommandHandler:
            self._entries[command] = CommandEntry(
                command=command,
                description=description,
                handler=func,
                admin_only=admin_only,
                usage=usage,
            )
            return func
        return decorator

    def get(self, command: str) -> CommandEntry | None:
        return self._entries.get(command)

    def entries(self) -> dict[str, CommandEntry]:
        """Return a copy of all registered commands."""
        return dict(self._entries)

    def available_to(self, ctx: BotContext, user_id: int) -> list[CommandEntry]:
        """Entries *user_id* may run, in registration order."""
        return [e for e in self._entries.values() if not e.admin_only or ctx.is_admin(user_id)]

    async def dispatch(self, command: str, ctx: BotContext, message: Message, user_id: int) -> bool:
        """Invoke the handler for *command*; ``False`` if none is registered."""
        entry = self._entries.get(command)
        if entry is None:
            return False
        await entry.handler(ctx, message, user_id)
        return True


registry: CommandRegistry = CommandRegistry()
