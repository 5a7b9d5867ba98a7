# -*- coding: utf-8 -*-
import logging

import discord
from discord.ext import commands

import config
from core.command_router import CommandInvocation, CommandRouter
from utils.responders import InteractionResponder

log = logging.getLogger('VoiceBot.Cog.Voice')

# Status replies are only shown to the invoker; ask replies stay public.
EPHEMERAL_COMMANDS = {"join", "say", "leave", "pause", "resume"}


class VoiceCog(commands.Cog):
    """Slash-command front end. Every command is handed to the shared CommandRouter."""

    def __init__(self, bot: discord.Bot):
        self.bot = bot
        if not isinstance(getattr(bot, 'command_router', None), CommandRouter):
            log.critical("VoiceCog FATAL: bot.command_router not found!")
            raise RuntimeError("CommandRouter not initialized on Bot before loading VoiceCog")
        self.router: CommandRouter = bot.command_router

    async def _route(self, ctx: discord.ApplicationContext, name: str, text: str = "") -> None:
        member = ctx.author if isinstance(ctx.author, discord.Member) else None
        invocation = CommandInvocation(
            name=name,
            text=text or "",
            guild=ctx.guild,
            member=member,
            responder=InteractionResponder(ctx.interaction, ephemeral=name in EPHEMERAL_COMMANDS),
        )
        await self.router.dispatch(invocation, prefix="/")

    @commands.slash_command(name="join", description="Join your voice channel (or the configured one).")
    async def join(self, ctx: discord.ApplicationContext):
        await self._route(ctx, "join")

    @commands.slash_command(name="say", description="Speak some text, or play an audio URL, in voice.")
    async def say(
        self,
        ctx: discord.ApplicationContext,
        text: discord.Option(str, description=f"Text to speak (max {config.MAX_SAY_LENGTH} chars) or an audio URL.", required=True),
    ):
        await self._route(ctx, "say", text)

    @commands.slash_command(name="leave", description="Leave the voice channel.")
    async def leave(self, ctx: discord.ApplicationContext):
        await self._route(ctx, "leave")

    @commands.slash_command(name="pause", description="Stop sending questions to the character.")
    async def pause(self, ctx: discord.ApplicationContext):
        await self._route(ctx, "pause")

    @commands.slash_command(name="resume", description="Resume sending questions to the character.")
    async def resume(self, ctx: discord.ApplicationContext):
        await self._route(ctx, "resume")

    @commands.slash_command(name="ask", description="Ask the character something; the reply is spoken if I'm in voice.")
    async def ask(
        self,
        ctx: discord.ApplicationContext,
        question: discord.Option(str, description="What to ask.", required=True),
    ):
        await self._route(ctx, "ask", question)


def setup(bot: discord.Bot):
    bot.add_cog(VoiceCog(bot))
    log.info("Voice Cog loaded.")
