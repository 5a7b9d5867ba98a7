# -*- coding: utf-8 -*-
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

import discord

from core.errors import VoiceBotError
from utils.responders import Responder

log = logging.getLogger('VoiceBot.Router')

UNKNOWN_COMMAND = "❓ Unknown command."

Handler = Callable[["CommandInvocation"], Awaitable[Optional[str]]]


@dataclass
class CommandInvocation:
    name: str
    text: str
    guild: Optional[discord.Guild]
    member: Optional[discord.Member]
    responder: Responder
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def log_prefix(self) -> str:
        guild = f"GID:{self.guild.id}" if self.guild is not None else "no guild"
        user = f"{self.member.name}({self.member.id})" if self.member is not None else "unknown user"
        return f"CMD ({self.name}, {guild}, {user}):"


@dataclass
class _Route:
    handler: Handler
    defer: bool
    description: str


def describe_error(error: BaseException) -> str:
    """User-facing text for an exception. Details of unexpected errors stay in the log."""
    if isinstance(error, VoiceBotError):
        return error.user_message
    return f"❌ An unexpected error occurred ({type(error).__name__})."


class CommandRouter:
    """Maps command names to handlers and owns acknowledgment and error reporting."""

    def __init__(self):
        self._routes: Dict[str, _Route] = {}

    def register(self, name: str, handler: Handler, *, defer: bool = True, description: str = "") -> None:
        key = name.lower()
        if key in self._routes:
            raise ValueError(f"Command '{name}' is already registered")
        self._routes[key] = _Route(handler, defer, description)

    def has(self, name: str) -> bool:
        return name.lower() in self._routes

    @property
    def names(self):
        return list(self._routes)

    def help_text(self, prefix: str = "") -> str:
        lines = [f"`{prefix}{name}` {route.description}".rstrip() for name, route in self._routes.items()]
        return "Available commands:\n" + "\n".join(lines)

    async def dispatch(self, invocation: CommandInvocation, *, prefix: str = "") -> None:
        route = self._routes.get(invocation.name.lower())
        if route is None:
            log.info(f"{invocation.log_prefix} Unknown command.")
            await self._deliver(invocation, f"{UNKNOWN_COMMAND}\n{self.help_text(prefix)}")
            return

        log.info(f"{invocation.log_prefix} Dispatching{' (deferred)' if route.defer else ''}.")
        try:
            if route.defer:
                await invocation.responder.acknowledge()
            content = await route.handler(invocation)
            if content:
                await invocation.responder.send(content)
        except Exception as e:
            message = describe_error(e)
            if isinstance(e, VoiceBotError):
                log.warning(f"{invocation.log_prefix} {type(e).__name__}: {e}")
            else:
                log.error(f"{invocation.log_prefix} Unexpected error in handler.", exc_info=e)
            await self._deliver(invocation, message)

    async def _deliver(self, invocation: CommandInvocation, content: str) -> None:
        try:
            await invocation.responder.send(content)
        except discord.NotFound:
            log.warning(f"{invocation.log_prefix} Interaction or message gone, could not deliver response.")
        except Exception as e:
            log.warning(f"{invocation.log_prefix} Could not deliver response: {type(e).__name__}: {e}")
