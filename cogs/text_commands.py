# -*- coding: utf-8 -*-
import logging
from typing import Optional, Tuple

import discord
from discord.ext import commands

import config
from core.command_router import CommandInvocation, CommandRouter
from utils.responders import MessageResponder

log = logging.getLogger('VoiceBot.Cog.Text')


def parse_command(content: str, prefix: str) -> Optional[Tuple[str, str]]:
    """'!say hello there' -> ('say', 'hello there'). None when the message is not a command."""
    if not prefix or not content.startswith(prefix):
        return None
    body = content[len(prefix):].strip()
    if not body:
        return None
    name, _, text = body.partition(' ')
    return name.lower(), text.strip()


class TextCommandsCog(commands.Cog):
    """Prefix commands (``!join``, ``!say ...``). Needs the message_content intent."""

    def __init__(self, bot: discord.Bot):
        self.bot = bot
        if not isinstance(getattr(bot, 'command_router', None), CommandRouter):
            log.critical("TextCommandsCog FATAL: bot.command_router not found!")
            raise RuntimeError("CommandRouter not initialized on Bot before loading TextCommandsCog")
        self.router: CommandRouter = bot.command_router
        self.prefix = config.COMMAND_PREFIX

    def _resolve_context(self, message: discord.Message) -> Tuple[Optional[discord.Guild], Optional[discord.Member]]:
        if message.guild is not None:
            member = message.author if isinstance(message.author, discord.Member) else None
            return message.guild, member
        # DM: act on the configured guild, as the author's member there if we can see it
        if not config.GUILD_ID:
            return None, None
        guild = self.bot.get_guild(config.GUILD_ID)
        if guild is None:
            log.warning(f"TEXT CMD: Configured GUILD_ID {config.GUILD_ID} not found in cache.")
            return None, None
        return guild, guild.get_member(message.author.id)

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        if message.author.bot:
            return
        parsed = parse_command(message.content or "", self.prefix)
        if parsed is None:
            return
        name, text = parsed
        guild, member = self._resolve_context(message)
        invocation = CommandInvocation(
            name=name,
            text=text,
            guild=guild,
            member=member,
            responder=MessageResponder(message),
        )
        await self.router.dispatch(invocation, prefix=self.prefix)


def setup(bot: discord.Bot):
    bot.add_cog(TextCommandsCog(bot))
    log.info("Text Commands Cog loaded.")
