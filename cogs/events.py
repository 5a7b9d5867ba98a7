# -*- coding: utf-8 -*-
import logging

import discord
from discord.ext import commands

import config
from core.session_manager import VoiceSessionManager
from utils.responders import InteractionResponder

log = logging.getLogger('VoiceBot.Cog.Events')


class EventsCog(commands.Cog):
    def __init__(self, bot: discord.Bot):
        self.bot = bot
        if not isinstance(getattr(bot, 'voice_sessions', None), VoiceSessionManager):
            log.critical("EventsCog FATAL: bot.voice_sessions not found or is not a VoiceSessionManager!")
            raise RuntimeError("VoiceSessionManager not initialized on Bot before loading EventsCog")
        self.sessions: VoiceSessionManager = bot.voice_sessions

    @commands.Cog.listener()
    async def on_ready(self):
        """Called once the bot is ready and operational."""
        log.info(f'Logged in as {self.bot.user.name} ({self.bot.user.id})')
        log.info(f"Using py-cord version {discord.__version__}")
        log.info(f"Connect Timeout: {config.CONNECT_TIMEOUT_SECONDS}s, Fetch Timeout: {config.FETCH_TIMEOUT_SECONDS}s per source")
        log.info(f"Fallback Voice Channel: {config.VOICE_CHANNEL_ID or 'not set'}")
        log.info(f"Say Sources: {len(config.SAY_SOURCE_URLS)} URL template(s), Edge-TTS: {config.TTS_ENABLED and config.EDGE_TTS_AVAILABLE}")
        log.info(f"Conversation API configured: {getattr(self.bot, 'convai', None) is not None and self.bot.convai.configured}")
        log.info(f"PyNaCl Available: {config.NACL_AVAILABLE}, Opus Loaded: {discord.opus.is_loaded()}")
        log.info(f"Voice Bot is operational. Monitoring {len(self.bot.guilds)} guilds.")

    @commands.Cog.listener()
    async def on_voice_state_update(self, member: discord.Member, before: discord.VoiceState, after: discord.VoiceState):
        """Tracks the bot's own voice state. Drops are recorded, never reconnected."""
        if self.bot.user is None or member.id != self.bot.user.id or member.guild is None:
            return
        guild_id = member.guild.id
        if before.channel and not after.channel:
            log.info(f"EVENT: Bot left {before.channel.name} in {member.guild.name}.")
            self.sessions.handle_disconnect(guild_id, reason=f"disconnected from {before.channel.name}")
        elif after.channel and before.channel != after.channel:
            session = self.sessions.sessions.get(guild_id)
            if session is not None and session.channel != after.channel:
                log.info(f"EVENT: Bot was moved to {after.channel.name} in {member.guild.name}.")
                session.channel = after.channel

    @commands.Cog.listener()
    async def on_application_command_error(self, ctx: discord.ApplicationContext, error: discord.DiscordException):
        """Errors the framework raises before a command reaches the router (checks, expired interactions)."""
        command_name = ctx.command.qualified_name if ctx.command else 'N/A'
        user_name = f"{ctx.author.name}({ctx.author.id})" if ctx.author else "Unknown User"
        guild_name = f"{ctx.guild.name}({ctx.guild.id})" if ctx.guild else "DM Context"
        log_prefix = f"APP CMD ERROR (/{command_name}, User: {user_name}, Guild: {guild_name}):"

        if isinstance(error, discord.errors.NotFound):
            log.warning(f"{log_prefix} Interaction not found (possibly timed out?). Error: {error}")
            return
        if isinstance(error, commands.CheckFailure):
            log.warning(f"{log_prefix} CheckFailure encountered: {error}")
            message = "🚫 You do not meet the requirements to use this command."
        else:
            log.error(f"{log_prefix} Unhandled application command error: {error}", exc_info=error)
            message = f"❌ An unexpected error occurred ({type(error).__name__})."
        try:
            await InteractionResponder(ctx.interaction, ephemeral=True).send(message)
        except discord.HTTPException as e:
            log.warning(f"{log_prefix} Could not send error response: {e}")


def setup(bot: discord.Bot):
    bot.add_cog(EventsCog(bot))
    log.info("Events Cog loaded.")
